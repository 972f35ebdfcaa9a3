"""Scheduled sweep endpoint, called by an external scheduler with a shared secret."""

import hmac
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from vitalsync.config import Settings, get_settings
from vitalsync.dependencies import get_store, get_sync_engine
from vitalsync.schemas.sync import SweepReportResponse
from vitalsync.services.health_store import HealthStore
from vitalsync.services.sync_engine import SyncEngine
from vitalsync.services.sync_triggers import run_scheduled_sweep

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/cron", tags=["cron"])


def _verify_cron_secret(request: Request, settings: Settings) -> bool:
    expected = settings.cron_secret.get_secret_value()
    if not expected:
        return False
    auth_header = request.headers.get("authorization", "")
    if not auth_header.startswith("Bearer "):
        return False
    return hmac.compare_digest(auth_header[7:].encode("utf-8"), expected.encode("utf-8"))


def require_cron_secret(request: Request, settings: Settings = Depends(get_settings)) -> None:
    if not _verify_cron_secret(request, settings):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.get("/sync", response_model=SweepReportResponse, dependencies=[Depends(require_cron_secret)])
async def cron_sync(
    engine: SyncEngine = Depends(get_sync_engine),
    store: HealthStore = Depends(get_store),
):
    """Sync every connected user and report per-user failures."""
    report = await run_scheduled_sweep(engine, store)
    return SweepReportResponse(
        total=report.total,
        success=report.success,
        failed=report.failed,
        errors=report.errors,
    )
