"""Scalar time-series metrics (cycle strain)."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Float, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from vitalsync.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class HealthMetric(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "health_metrics"
    __table_args__ = (
        UniqueConstraint("user_id", "metric_type", "external_id", name="uq_metric_user_type_external"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    metric_type: Mapped[str] = mapped_column(String(32), nullable=False)
    external_id: Mapped[str] = mapped_column(String(64), nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSONB, nullable=False, default=dict)
