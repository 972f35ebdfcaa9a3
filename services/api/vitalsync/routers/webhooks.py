"""WHOOP webhook receiver."""

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from vitalsync.config import Settings, get_settings
from vitalsync.dependencies import get_store, get_sync_engine
from vitalsync.exceptions import SignatureError
from vitalsync.metrics import webhook_events_total
from vitalsync.schemas.whoop import WhoopWebhookEvent
from vitalsync.services.health_store import HealthStore
from vitalsync.services.sync_engine import SyncEngine
from vitalsync.services.sync_triggers import handle_webhook_event, verify_webhook_signature

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SIGNATURE_HEADER = "x-whoop-signature"


@router.post("/whoop")
async def whoop_webhook(
    request: Request,
    engine: SyncEngine = Depends(get_sync_engine),
    store: HealthStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Receive a WHOOP event and sync the record it names.

    Returns 200 for every processed or ignorable event, 401 for a bad
    signature, 400 for an unparseable body and 500 when processing fails
    so the provider retries.
    """
    body = await request.body()

    try:
        verify_webhook_signature(
            body,
            request.headers.get(SIGNATURE_HEADER),
            settings.whoop_webhook_secret.get_secret_value(),
        )
    except SignatureError as e:
        if settings.enforce_webhook_signature:
            logger.warning("Rejected WHOOP webhook: %s", e)
            webhook_events_total.labels(event_type="unknown", outcome="bad_signature").inc()
            return JSONResponse(status_code=401, content={"error": "Invalid signature"})
        logger.warning("Accepting unverified WHOOP webhook in %s mode", settings.app_env)

    try:
        event = WhoopWebhookEvent.model_validate(json.loads(body))
    except (ValueError, ValidationError) as e:
        logger.warning("Malformed WHOOP webhook body: %s", e)
        return JSONResponse(status_code=400, content={"error": "Invalid payload"})

    logger.info("WHOOP webhook received: type=%s user=%s", event.type, event.user_id)

    try:
        await handle_webhook_event(engine, store, event)
    except Exception as e:
        logger.error("WHOOP webhook processing failed: %s", e)
        webhook_events_total.labels(event_type=event.type.partition(".")[0], outcome="error").inc()
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})

    return {"received": True}
