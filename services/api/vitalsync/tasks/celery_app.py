"""Celery application configuration."""

import time

from celery import Celery
from celery.signals import task_failure, task_postrun, task_prerun, task_retry

from vitalsync.config import get_settings
from vitalsync.metrics import celery_task_duration_seconds, celery_task_total
from vitalsync.middleware.logging import setup_logging

settings = get_settings()
setup_logging(debug=settings.debug)

celery_app = Celery(
    "vitalsync",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_routes={
        "vitalsync.tasks.sync_tasks.*": {"queue": "sync"},
    },
    beat_schedule={
        # Sweep every connected user over the trailing window
        "scheduled-sync-sweep": {
            "task": "vitalsync.tasks.sync_tasks.run_sync_sweep",
            "schedule": settings.sync_interval_minutes * 60,
        },
    },
)

celery_app.autodiscover_tasks(["vitalsync.tasks"], related_name="sync_tasks")

_task_start_times: dict[str, float] = {}


def _setup_task_signals() -> None:
    @task_prerun.connect(weak=False)
    def _on_prerun(task_id=None, task=None, **kwargs):
        _task_start_times[task_id] = time.monotonic()

    @task_postrun.connect(weak=False)
    def _on_postrun(task_id=None, task=None, state=None, **kwargs):
        started = _task_start_times.pop(task_id, None)
        if task is None:
            return
        if started is not None:
            celery_task_duration_seconds.labels(task_name=task.name).observe(time.monotonic() - started)
        if state == "SUCCESS":
            celery_task_total.labels(task_name=task.name, status="success").inc()

    @task_failure.connect(weak=False)
    def _on_failure(sender=None, task_id=None, **kwargs):
        name = getattr(sender, "name", "unknown")
        celery_task_total.labels(task_name=name, status="failure").inc()

    @task_retry.connect(weak=False)
    def _on_retry(sender=None, **kwargs):
        name = getattr(sender, "name", "unknown")
        celery_task_total.labels(task_name=name, status="retry").inc()


_setup_task_signals()
