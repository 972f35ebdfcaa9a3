"""Initial schema.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # --- health_oauth_connections ---
    op.create_table(
        "health_oauth_connections",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("provider", sa.String(32), nullable=False),
        sa.Column("access_token_encrypted", sa.Text, nullable=False),
        sa.Column("refresh_token_encrypted", sa.Text, nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scopes", postgresql.ARRAY(sa.Text), nullable=False, server_default="{}"),
        sa.Column("external_user_id", sa.String(64), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "provider", name="uq_oauth_connection_user_provider"),
    )
    op.create_index("ix_health_oauth_connections_user_id", "health_oauth_connections", ["user_id"])
    op.create_index(
        "ix_oauth_connection_provider_external_user",
        "health_oauth_connections",
        ["provider", "external_user_id"],
    )

    # --- health_sync_status ---
    op.create_table(
        "health_sync_status",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("provider", sa.String(32), nullable=False),
        sa.Column("last_successful_sync", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_sync_attempt", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("sync_cursor", sa.Text, nullable=True),
        sa.Column("sync_state", sa.String(16), nullable=False, server_default="idle"),
        sa.Column("sync_started_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "provider", name="uq_sync_status_user_provider"),
    )
    op.create_index("ix_health_sync_status_user_id", "health_sync_status", ["user_id"])

    # --- health_recovery ---
    op.create_table(
        "health_recovery",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("source", sa.String(32), nullable=False),
        sa.Column("external_id", sa.String(64), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("recovery_score", sa.Float, nullable=False),
        sa.Column("hrv_rmssd", sa.Float, nullable=True),
        sa.Column("resting_heart_rate", sa.Float, nullable=True),
        sa.Column("spo2", sa.Float, nullable=True),
        sa.Column("skin_temp_celsius", sa.Float, nullable=True),
        sa.Column("metadata", postgresql.JSONB, nullable=False, server_default="{}"),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "external_id", name="uq_recovery_user_external"),
    )
    op.create_index("ix_health_recovery_user_id", "health_recovery", ["user_id"])

    # --- health_sleep ---
    op.create_table(
        "health_sleep",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("source", sa.String(32), nullable=False),
        sa.Column("external_id", sa.String(64), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_sleep_minutes", sa.Integer, nullable=False),
        sa.Column("rem_minutes", sa.Integer, nullable=True),
        sa.Column("deep_minutes", sa.Integer, nullable=True),
        sa.Column("light_minutes", sa.Integer, nullable=True),
        sa.Column("awake_minutes", sa.Integer, nullable=True),
        sa.Column("sleep_score", sa.Float, nullable=True),
        sa.Column("sleep_efficiency", sa.Float, nullable=True),
        sa.Column("respiratory_rate", sa.Float, nullable=True),
        sa.Column("metadata", postgresql.JSONB, nullable=False, server_default="{}"),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "external_id", name="uq_sleep_user_external"),
    )
    op.create_index("ix_health_sleep_user_id", "health_sleep", ["user_id"])

    # --- health_workouts ---
    op.create_table(
        "health_workouts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("source", sa.String(32), nullable=False),
        sa.Column("external_id", sa.String(64), nullable=False),
        sa.Column("activity_type", sa.String(64), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("strain_score", sa.Float, nullable=True),
        sa.Column("avg_heart_rate", sa.Integer, nullable=True),
        sa.Column("max_heart_rate", sa.Integer, nullable=True),
        sa.Column("calories_burned", sa.Integer, nullable=True),
        sa.Column("distance_meters", sa.Float, nullable=True),
        sa.Column("metadata", postgresql.JSONB, nullable=False, server_default="{}"),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "external_id", name="uq_workout_user_external"),
    )
    op.create_index("ix_health_workouts_user_id", "health_workouts", ["user_id"])

    # --- health_metrics ---
    op.create_table(
        "health_metrics",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("source", sa.String(32), nullable=False),
        sa.Column("metric_type", sa.String(32), nullable=False),
        sa.Column("external_id", sa.String(64), nullable=False),
        sa.Column("value", sa.Float, nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("metadata", postgresql.JSONB, nullable=False, server_default="{}"),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "metric_type", "external_id", name="uq_metric_user_type_external"),
    )
    op.create_index("ix_health_metrics_user_id", "health_metrics", ["user_id"])


def downgrade() -> None:
    op.drop_table("health_metrics")
    op.drop_table("health_workouts")
    op.drop_table("health_sleep")
    op.drop_table("health_recovery")
    op.drop_table("health_sync_status")
    op.drop_table("health_oauth_connections")
