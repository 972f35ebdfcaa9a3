"""Recovery records imported from the provider."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Float, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from vitalsync.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class HealthRecovery(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "health_recovery"
    __table_args__ = (
        UniqueConstraint("user_id", "external_id", name="uq_recovery_user_external"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    external_id: Mapped[str] = mapped_column(String(64), nullable=False)  # WHOOP cycle_id
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    recovery_score: Mapped[float] = mapped_column(Float, nullable=False)
    hrv_rmssd: Mapped[float | None] = mapped_column(Float, nullable=True)
    resting_heart_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    spo2: Mapped[float | None] = mapped_column(Float, nullable=True)
    skin_temp_celsius: Mapped[float | None] = mapped_column(Float, nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSONB, nullable=False, default=dict)
