"""Prometheus metric definitions for vitalsync.

Single source of truth for all custom metrics. Import from here in API and Celery code.
"""

from prometheus_client import Counter, Histogram

# --- Celery task metrics ---

celery_task_total = Counter(
    "vitalsync_celery_task_total",
    "Total Celery tasks executed",
    ["task_name", "status"],
)

celery_task_duration_seconds = Histogram(
    "vitalsync_celery_task_duration_seconds",
    "Celery task execution duration in seconds",
    ["task_name"],
    buckets=(0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0),
)

# --- Sync metrics ---

sync_runs_total = Counter(
    "vitalsync_sync_runs_total",
    "Sync passes by trigger and outcome",
    ["trigger", "status"],
)

sync_duration_seconds = Histogram(
    "vitalsync_sync_duration_seconds",
    "Duration of one sync pass in seconds",
    ["trigger"],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
)

records_upserted_total = Counter(
    "vitalsync_records_upserted_total",
    "Provider records written to the store",
    ["category"],
)

records_skipped_total = Counter(
    "vitalsync_records_skipped_total",
    "Provider records skipped because they were not fully scored",
    ["category"],
)

token_refresh_total = Counter(
    "vitalsync_token_refresh_total",
    "OAuth token refresh attempts by outcome",
    ["status"],
)

webhook_events_total = Counter(
    "vitalsync_webhook_events_total",
    "Webhook events received by type and outcome",
    ["event_type", "outcome"],
)
