"""Sync engine: one fetch-map-upsert pass for one user.

All three triggers (scheduled sweep, manual sync, webhook) go through
``SyncEngine``; they differ only in user scope, time window and the set of
record categories.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Iterable

from vitalsync.config import Settings
from vitalsync.exceptions import NoConnectionError, RequestError, SyncInProgressError
from vitalsync.metrics import (
    records_skipped_total,
    records_upserted_total,
    sync_duration_seconds,
    sync_runs_total,
)
from vitalsync.services import mappers
from vitalsync.services.crypto_service import CryptoService
from vitalsync.services.health_store import HealthStore
from vitalsync.services.whoop_client import WhoopClient, get_client_for_user

logger = logging.getLogger(__name__)

ClientFactory = Callable[[uuid.UUID, HealthStore, CryptoService, Settings], Awaitable[WhoopClient]]


@dataclass(frozen=True)
class Category:
    """How one record kind is fetched and mapped."""

    name: str
    getter: str  # paginated WhoopClient method
    single_getter: str  # by-id WhoopClient method
    mapper: Callable[[dict[str, Any]], dict[str, Any]]


CATEGORIES: dict[str, Category] = {
    "recovery": Category("recovery", "get_recovery", "get_recovery_for_cycle", mappers.map_recovery),
    "sleep": Category("sleep", "get_sleep", "get_sleep_by_id", mappers.map_sleep),
    "workout": Category("workout", "get_workouts", "get_workout_by_id", mappers.map_workout),
    "cycle": Category("cycle", "get_cycles", "get_cycle_by_id", mappers.map_cycle),
}

DEFAULT_CATEGORIES = ("recovery", "sleep", "workout")


@dataclass(frozen=True)
class SyncWindow:
    start: datetime
    end: datetime

    @classmethod
    def trailing(cls, days: int, now: datetime | None = None) -> "SyncWindow":
        end = now or datetime.now(timezone.utc)
        return cls(start=end - timedelta(days=days), end=end)


@dataclass
class SyncResult:
    user_id: uuid.UUID
    counts: dict[str, int] = field(default_factory=dict)
    skipped: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.counts.values())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncEngine:
    """Transient actor; holds no state between calls beyond its collaborators."""

    def __init__(
        self,
        store: HealthStore,
        crypto: CryptoService,
        settings: Settings,
        client_factory: ClientFactory = get_client_for_user,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._crypto = crypto
        self._settings = settings
        self._client_factory = client_factory
        self._clock = clock

    async def _acquire(self, user_id: uuid.UUID) -> None:
        # No partial identity: without a connection nothing is written at all
        if await self._store.get_connection(user_id) is None:
            raise NoConnectionError(user_id)
        lock_ttl = timedelta(seconds=self._settings.sync_lock_ttl_seconds)
        if not await self._store.begin_sync(user_id, self._clock(), lock_ttl):
            raise SyncInProgressError(user_id)

    async def _release(
        self,
        user_id: uuid.UUID,
        error: BaseException | None = None,
        full_pass: bool = True,
    ) -> None:
        message = None
        if error is not None:
            message = str(error) or type(error).__name__
        await self._store.finish_sync(user_id, self._clock(), error=message, full_pass=full_pass)

    async def _store_record(self, category: Category, user_id: uuid.UUID, record: dict[str, Any]) -> bool:
        if not mappers.is_scored(record):
            records_skipped_total.labels(category=category.name).inc()
            return False
        await self._store.upsert_record(category.name, user_id, category.mapper(record))
        records_upserted_total.labels(category=category.name).inc()
        return True

    async def sync_user(
        self,
        user_id: uuid.UUID,
        *,
        window: SyncWindow | None = None,
        categories: Iterable[str] = DEFAULT_CATEGORIES,
        trigger: str = "manual",
    ) -> SyncResult:
        """Run one full pass for a user and record the outcome in SyncStatus.

        Raises NoConnectionError, SyncInProgressError, or whatever aborted the
        pass (after it has been written to last_error).
        """
        window = window or SyncWindow.trailing(self._settings.sync_window_days, self._clock())
        selected = [CATEGORIES[name] for name in categories]
        started = time.monotonic()

        await self._acquire(user_id)
        result = SyncResult(user_id=user_id)
        try:
            client = await self._client_factory(user_id, self._store, self._crypto, self._settings)
            async with client:
                for category in selected:
                    getter = getattr(client, category.getter)
                    records = await client.fetch_all_pages(
                        lambda token, getter=getter: getter(window.start, window.end, token),
                        max_pages=self._settings.sync_max_pages,
                    )
                    written = 0
                    for record in records:
                        if await self._store_record(category, user_id, record):
                            written += 1
                    result.counts[category.name] = written
                    result.skipped[category.name] = len(records) - written
                    logger.info(
                        "Synced %s for user=%s: %d written, %d skipped",
                        category.name,
                        user_id,
                        written,
                        len(records) - written,
                    )
        except BaseException as e:
            # includes CancelledError; the lock must not outlive the pass
            logger.warning("Sync failed for user=%s: %s", user_id, e)
            sync_runs_total.labels(trigger=trigger, status="failure").inc()
            await self._release(user_id, e)
            raise

        await self._release(user_id)
        sync_runs_total.labels(trigger=trigger, status="success").inc()
        sync_duration_seconds.labels(trigger=trigger).observe(time.monotonic() - started)
        return result

    async def sync_record(
        self,
        user_id: uuid.UUID,
        category_name: str,
        external_id: str | int,
        *,
        trigger: str = "webhook",
    ) -> bool:
        """Fetch one record by id and upsert it if scored.

        A record the provider no longer has (404) is not an error. Returns
        True only when a row was written.
        """
        category = CATEGORIES[category_name]
        await self._acquire(user_id)
        try:
            client = await self._client_factory(user_id, self._store, self._crypto, self._settings)
            async with client:
                try:
                    record = await getattr(client, category.single_getter)(external_id)
                except RequestError as e:
                    if e.status_code != 404:
                        raise
                    record = None
            written = False
            if record is None:
                logger.info("%s %s not found for user=%s", category.name, external_id, user_id)
            else:
                written = await self._store_record(category, user_id, record)
        except BaseException as e:
            sync_runs_total.labels(trigger=trigger, status="failure").inc()
            await self._release(user_id, e)
            raise

        await self._release(user_id, full_pass=False)
        sync_runs_total.labels(trigger=trigger, status="success").inc()
        return written
