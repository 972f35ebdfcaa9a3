"""OAuth connection model with encrypted token storage."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column

from vitalsync.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class OAuthConnection(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "health_oauth_connections"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_oauth_connection_user_provider"),
        Index("ix_oauth_connection_provider_external_user", "provider", "external_user_id"),
    )

    # Users live in the hosted auth service, so there is no local FK
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    # Serialized {encrypted, iv, authTag} JSON produced by CryptoService
    access_token_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    scopes: Mapped[list[str]] = mapped_column(ARRAY(Text), nullable=False, default=list)
    external_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<OAuthConnection user_id={self.user_id} provider={self.provider}>"
