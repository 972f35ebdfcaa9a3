"""Per-connection sync bookkeeping and advisory lock state."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from vitalsync.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class SyncState(str, enum.Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncStatus(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "health_sync_status"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_sync_status_user_provider"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    last_successful_sync: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_sync_attempt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    sync_cursor: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Compare-and-set lock: only one pass per (user, provider) may be in_progress
    sync_state: Mapped[str] = mapped_column(String(16), nullable=False, default=SyncState.IDLE.value)
    sync_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<SyncStatus user_id={self.user_id} state={self.sync_state}>"
