"""Persistence for connections, sync status and imported health records.

All writes are keyed so repeated syncs are idempotent: record tables upsert
on ``(user_id, external_id)`` and connection/status tables on
``(user_id, provider)``.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vitalsync.models import (
    HealthMetric,
    HealthRecovery,
    HealthSleep,
    HealthWorkout,
    OAuthConnection,
    SyncState,
    SyncStatus,
)

logger = logging.getLogger(__name__)

PROVIDER = "whoop"

# table -> conflict target for idempotent upserts
RECORD_MODELS: dict[str, tuple[type, tuple[str, ...]]] = {
    "recovery": (HealthRecovery, ("user_id", "external_id")),
    "sleep": (HealthSleep, ("user_id", "external_id")),
    "workout": (HealthWorkout, ("user_id", "external_id")),
    "cycle": (HealthMetric, ("user_id", "metric_type", "external_id")),
}


class HealthStore:
    """Repository over an async session factory.

    Each method runs in its own short transaction; the sync engine holds no
    session across provider calls.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # --- connections ---

    async def get_connection(self, user_id: uuid.UUID, provider: str = PROVIDER) -> OAuthConnection | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(OAuthConnection).where(
                    OAuthConnection.user_id == user_id,
                    OAuthConnection.provider == provider,
                )
            )
            return result.scalar_one_or_none()

    async def get_connection_by_external_user(
        self, external_user_id: str, provider: str = PROVIDER
    ) -> OAuthConnection | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(OAuthConnection).where(
                    OAuthConnection.external_user_id == external_user_id,
                    OAuthConnection.provider == provider,
                )
            )
            return result.scalars().first()

    async def list_connected_user_ids(self, provider: str = PROVIDER) -> list[uuid.UUID]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(OAuthConnection.user_id)
                .where(OAuthConnection.provider == provider)
                .order_by(OAuthConnection.created_at)
            )
            return list(result.scalars().all())

    async def save_connection(
        self,
        user_id: uuid.UUID,
        access_token_encrypted: str,
        refresh_token_encrypted: str | None,
        token_expires_at: datetime,
        scopes: list[str],
        external_user_id: str,
        provider: str = PROVIDER,
    ) -> None:
        """Upsert the connection and make sure a sync status row exists."""
        values = {
            "access_token_encrypted": access_token_encrypted,
            "refresh_token_encrypted": refresh_token_encrypted,
            "token_expires_at": token_expires_at,
            "scopes": scopes,
            "external_user_id": external_user_id,
        }
        async with self._session_factory() as session:
            stmt = pg_insert(OAuthConnection.__table__).values(
                id=uuid.uuid4(), user_id=user_id, provider=provider, **values
            )
            stmt = stmt.on_conflict_do_update(
                constraint="uq_oauth_connection_user_provider",
                set_={**values, "updated_at": func.now()},
            )
            await session.execute(stmt)
            await session.execute(self._insert_sync_status(user_id, provider))
            await session.commit()
        logger.info("Stored %s connection for user=%s", provider, user_id)

    async def update_tokens(
        self,
        user_id: uuid.UUID,
        access_token_encrypted: str,
        refresh_token_encrypted: str | None,
        token_expires_at: datetime,
        provider: str = PROVIDER,
    ) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(OAuthConnection)
                .where(OAuthConnection.user_id == user_id, OAuthConnection.provider == provider)
                .values(
                    access_token_encrypted=access_token_encrypted,
                    refresh_token_encrypted=refresh_token_encrypted,
                    token_expires_at=token_expires_at,
                    updated_at=func.now(),
                )
            )
            await session.commit()

    async def delete_connection(self, user_id: uuid.UUID, provider: str = PROVIDER) -> bool:
        """Remove the connection and its sync status. Imported records are kept."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(OAuthConnection).where(
                    OAuthConnection.user_id == user_id,
                    OAuthConnection.provider == provider,
                )
            )
            await session.execute(
                delete(SyncStatus).where(SyncStatus.user_id == user_id, SyncStatus.provider == provider)
            )
            await session.commit()
            return result.rowcount > 0

    # --- sync status ---

    @staticmethod
    def _insert_sync_status(user_id: uuid.UUID, provider: str):
        return (
            pg_insert(SyncStatus.__table__)
            .values(id=uuid.uuid4(), user_id=user_id, provider=provider, sync_state=SyncState.IDLE.value)
            .on_conflict_do_nothing(constraint="uq_sync_status_user_provider")
        )

    async def get_sync_status(self, user_id: uuid.UUID, provider: str = PROVIDER) -> SyncStatus | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(SyncStatus).where(SyncStatus.user_id == user_id, SyncStatus.provider == provider)
            )
            return result.scalar_one_or_none()

    async def begin_sync(
        self,
        user_id: uuid.UUID,
        now: datetime,
        lock_ttl: timedelta,
        provider: str = PROVIDER,
    ) -> bool:
        """Compare-and-set the status row to in_progress.

        Returns False when another pass holds an unexpired lock. On success
        the attempt timestamp is written before any provider work begins.
        """
        async with self._session_factory() as session:
            await session.execute(self._insert_sync_status(user_id, provider))
            result = await session.execute(
                update(SyncStatus)
                .where(
                    SyncStatus.user_id == user_id,
                    SyncStatus.provider == provider,
                    or_(
                        SyncStatus.sync_state != SyncState.IN_PROGRESS.value,
                        SyncStatus.sync_started_at.is_(None),
                        SyncStatus.sync_started_at < now - lock_ttl,
                    ),
                )
                .values(
                    sync_state=SyncState.IN_PROGRESS.value,
                    sync_started_at=now,
                    last_sync_attempt=now,
                    updated_at=func.now(),
                )
            )
            await session.commit()
            return result.rowcount == 1

    async def finish_sync(
        self,
        user_id: uuid.UUID,
        now: datetime,
        error: str | None = None,
        full_pass: bool = True,
        provider: str = PROVIDER,
    ) -> None:
        """Release the lock and record the outcome.

        last_successful_sync only moves forward when a full pass succeeds, so
        a failing connection keeps showing when it last worked. Single-record
        passes (webhooks) release the lock without touching it.
        """
        values: dict[str, Any] = {"sync_started_at": None, "updated_at": func.now()}
        if error is None:
            values["sync_state"] = SyncState.COMPLETED.value
            if full_pass:
                values.update(last_successful_sync=now, last_error=None)
        else:
            values.update(sync_state=SyncState.FAILED.value, last_error=error)
        async with self._session_factory() as session:
            await session.execute(
                update(SyncStatus)
                .where(SyncStatus.user_id == user_id, SyncStatus.provider == provider)
                .values(**values)
            )
            await session.commit()

    # --- records ---

    async def upsert_record(self, category: str, user_id: uuid.UUID, row: dict[str, Any]) -> None:
        model, conflict_columns = RECORD_MODELS[category]
        async with self._session_factory() as session:
            stmt = pg_insert(model.__table__).values(id=uuid.uuid4(), user_id=user_id, **row)
            stmt = stmt.on_conflict_do_update(
                index_elements=list(conflict_columns),
                set_={**{key: stmt.excluded[key] for key in row}, "updated_at": func.now()},
            )
            await session.execute(stmt)
            await session.commit()

    async def delete_record(self, category: str, user_id: uuid.UUID, external_id: str) -> bool:
        model, _ = RECORD_MODELS[category]
        async with self._session_factory() as session:
            result = await session.execute(
                delete(model).where(model.user_id == user_id, model.external_id == external_id)
            )
            await session.commit()
            return result.rowcount > 0
