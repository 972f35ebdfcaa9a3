"""Celery tasks for scheduled WHOOP syncs."""

import asyncio
import logging

from celery import shared_task

from vitalsync.config import get_settings
from vitalsync.dependencies import init_db, shutdown_db
from vitalsync.services.crypto_service import get_crypto_service
from vitalsync.services.health_store import HealthStore
from vitalsync.services.sync_engine import SyncEngine
from vitalsync.services.sync_triggers import run_scheduled_sweep

logger = logging.getLogger(__name__)


def _build(settings) -> tuple[HealthStore, SyncEngine]:
    _, session_factory = init_db(settings)
    store = HealthStore(session_factory)
    engine = SyncEngine(store, get_crypto_service(settings), settings)
    return store, engine


@shared_task(name="vitalsync.tasks.sync_tasks.run_sync_sweep")
def run_sync_sweep() -> dict:
    """Periodic task: sync every connected user and return the sweep report."""
    settings = get_settings()

    async def _sweep():
        store, engine = _build(settings)
        try:
            return await run_scheduled_sweep(engine, store)
        finally:
            await shutdown_db()

    report = asyncio.run(_sweep())
    return {
        "message": "Sync completed",
        "total": report.total,
        "success": report.success,
        "failed": report.failed,
        "errors": report.errors,
    }
