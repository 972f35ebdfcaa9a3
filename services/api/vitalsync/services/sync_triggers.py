"""Entry points that scope a sync: scheduled sweep, manual sync, webhook event."""

import hashlib
import hmac
import logging
import uuid
from dataclasses import dataclass, field

from vitalsync.exceptions import NoConnectionError, SignatureError, SyncInProgressError
from vitalsync.metrics import webhook_events_total
from vitalsync.schemas.whoop import WhoopWebhookEvent
from vitalsync.services.health_store import HealthStore
from vitalsync.services.sync_engine import SyncEngine

logger = logging.getLogger(__name__)

NO_CONNECTION_MESSAGE = "No WHOOP connection found. Please reconnect your account."
IN_PROGRESS_MESSAGE = "A sync is already in progress."

# webhook event prefix -> sync category
EVENT_CATEGORIES = {
    "recovery": "recovery",
    "sleep": "sleep",
    "workout": "workout",
    "cycle": "cycle",
}


@dataclass
class SweepReport:
    total: int = 0
    success: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class ManualSyncResult:
    success: bool
    message: str


async def run_scheduled_sweep(engine: SyncEngine, store: HealthStore) -> SweepReport:
    """Sync every connected user; one user's failure never aborts the sweep."""
    user_ids = await store.list_connected_user_ids()
    report = SweepReport(total=len(user_ids))

    for user_id in user_ids:
        try:
            await engine.sync_user(user_id, trigger="scheduled")
            report.success += 1
        except Exception as e:
            report.failed += 1
            report.errors.append(f"User {user_id}: {str(e) or type(e).__name__}")
            logger.warning("Scheduled sync failed for user=%s: %s", user_id, e)

    logger.info("Sync sweep finished: total=%d success=%d failed=%d", report.total, report.success, report.failed)
    return report


async def trigger_manual_sync(engine: SyncEngine, user_id: uuid.UUID) -> ManualSyncResult:
    """Sync one user and summarise the outcome for display."""
    try:
        result = await engine.sync_user(user_id, trigger="manual")
    except NoConnectionError:
        return ManualSyncResult(success=False, message=NO_CONNECTION_MESSAGE)
    except SyncInProgressError:
        return ManualSyncResult(success=False, message=IN_PROGRESS_MESSAGE)
    except Exception as e:
        logger.error("Manual sync error for user=%s: %s", user_id, e)
        return ManualSyncResult(success=False, message=str(e) or "Sync failed. Please try again.")

    return ManualSyncResult(
        success=True,
        message=(
            f"Synced {result.counts.get('recovery', 0)} recovery, "
            f"{result.counts.get('sleep', 0)} sleep, and "
            f"{result.counts.get('workout', 0)} workout records."
        ),
    )


def compute_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_webhook_signature(body: bytes, signature: str | None, secret: str) -> None:
    """Check a hex HMAC-SHA256 over the raw body. Raises SignatureError."""
    if not secret:
        raise SignatureError("Webhook secret is not configured")
    if not signature:
        raise SignatureError("Missing webhook signature")
    expected = compute_signature(body, secret).encode("ascii")
    # Headers are latin-1 decoded; non-ASCII input must compare as a mismatch
    if not hmac.compare_digest(expected, signature.strip().lower().encode("utf-8")):
        raise SignatureError("Invalid webhook signature")


async def handle_webhook_event(engine: SyncEngine, store: HealthStore, event: WhoopWebhookEvent) -> str:
    """Process one verified event and return an outcome label.

    Every outcome here is acknowledged to the provider with a 200; unknown
    users and unscored records are not transient failures.
    """
    prefix, _, action = event.type.partition(".")
    category = EVENT_CATEGORIES.get(prefix)
    if category is None:
        logger.info("Unhandled webhook type: %s", event.type)
        outcome = "unhandled_type"
        webhook_events_total.labels(event_type="other", outcome=outcome).inc()
        return outcome

    connection = await store.get_connection_by_external_user(str(event.user_id))
    if connection is None:
        logger.warning("No user found for WHOOP user_id=%s", event.user_id)
        outcome = "unknown_user"
    elif action == "deleted":
        removed = await store.delete_record(category, connection.user_id, str(event.id))
        outcome = "deleted" if removed else "skipped"
    else:
        try:
            written = await engine.sync_record(connection.user_id, category, event.id)
            outcome = "processed" if written else "skipped"
        except SyncInProgressError:
            # Left for the next sweep; the running pass may not cover this record
            logger.info("Sync in progress for user=%s, webhook %s deferred", connection.user_id, event.type)
            outcome = "busy"
        except NoConnectionError:
            outcome = "unknown_user"

    webhook_events_total.labels(event_type=category, outcome=outcome).inc()
    return outcome
