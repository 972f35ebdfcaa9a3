"""Dashboard-facing sync routes: manual sync, status and disconnect."""

import logging
import uuid

from fastapi import APIRouter, Depends

from vitalsync.dependencies import get_current_user_id, get_store, get_sync_engine
from vitalsync.schemas.sync import DisconnectResponse, ManualSyncResponse, SyncStatusResponse
from vitalsync.services.health_store import PROVIDER, HealthStore
from vitalsync.services.sync_engine import SyncEngine
from vitalsync.services.sync_triggers import trigger_manual_sync

logger = logging.getLogger(__name__)
router = APIRouter(tags=["sync"])


@router.post("/sync/manual", response_model=ManualSyncResponse)
async def manual_sync(
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: SyncEngine = Depends(get_sync_engine),
):
    result = await trigger_manual_sync(engine, user_id)
    return ManualSyncResponse(success=result.success, message=result.message)


@router.get("/sync/status", response_model=SyncStatusResponse)
async def sync_status(
    user_id: uuid.UUID = Depends(get_current_user_id),
    store: HealthStore = Depends(get_store),
):
    """Connection and last-sync bookkeeping for the dashboard."""
    connection = await store.get_connection(user_id)
    status = await store.get_sync_status(user_id)
    if status is None:
        return SyncStatusResponse(provider=PROVIDER, connected=connection is not None)
    return SyncStatusResponse(
        provider=PROVIDER,
        connected=connection is not None,
        sync_state=status.sync_state,
        last_successful_sync=status.last_successful_sync,
        last_sync_attempt=status.last_sync_attempt,
        last_error=status.last_error,
    )


@router.delete("/connections/whoop", response_model=DisconnectResponse)
async def disconnect_whoop(
    user_id: uuid.UUID = Depends(get_current_user_id),
    store: HealthStore = Depends(get_store),
):
    """Remove the stored connection and sync status. Synced records are kept."""
    removed = await store.delete_connection(user_id)
    if not removed:
        return DisconnectResponse(success=False, message="No WHOOP connection found")
    logger.info("WHOOP disconnected for user=%s", user_id)
    return DisconnectResponse(success=True, message="WHOOP disconnected")
