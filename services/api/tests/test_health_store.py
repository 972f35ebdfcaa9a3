"""Tests for the SQL HealthStore: statement shape against the PostgreSQL dialect."""

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from conftest import NOW
from vitalsync.services import mappers
from vitalsync.services.health_store import HealthStore


class FakeSession:
    def __init__(self, rowcount: int = 1):
        self.statements = []
        self.commit = AsyncMock()
        self._rowcount = rowcount

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def execute(self, statement):
        self.statements.append(statement)
        return MagicMock(rowcount=self._rowcount)


def _sql(statement) -> str:
    return str(statement.compile(dialect=postgresql.dialect()))


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def health_store(session):
    return HealthStore(lambda: session)


class TestRecordUpserts:
    @pytest.mark.asyncio
    async def test_recovery_upsert_on_user_and_external_id(self, health_store, session, recovery_record):
        await health_store.upsert_record("recovery", uuid.uuid4(), mappers.map_recovery(recovery_record))

        sql = _sql(session.statements[0])
        assert "INSERT INTO health_recovery" in sql
        assert "ON CONFLICT (user_id, external_id) DO UPDATE" in sql
        assert "recovery_score = excluded.recovery_score" in sql
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cycle_upsert_keys_on_metric_type(self, health_store, session, cycle_record):
        await health_store.upsert_record("cycle", uuid.uuid4(), mappers.map_cycle(cycle_record))

        sql = _sql(session.statements[0])
        assert "INSERT INTO health_metrics" in sql
        assert "ON CONFLICT (user_id, metric_type, external_id) DO UPDATE" in sql

    @pytest.mark.asyncio
    async def test_delete_record(self, health_store, session):
        assert await health_store.delete_record("workout", uuid.uuid4(), "1043") is True
        assert "DELETE FROM health_workouts" in _sql(session.statements[0])


class TestConnections:
    @pytest.mark.asyncio
    async def test_save_connection_upserts_and_seeds_status(self, health_store, session):
        await health_store.save_connection(
            uuid.uuid4(),
            access_token_encrypted="{}",
            refresh_token_encrypted=None,
            token_expires_at=NOW,
            scopes=["offline"],
            external_user_id="10129",
        )

        connection_sql, status_sql = (_sql(s) for s in session.statements)
        assert "ON CONFLICT ON CONSTRAINT uq_oauth_connection_user_provider DO UPDATE" in connection_sql
        assert "ON CONFLICT ON CONSTRAINT uq_sync_status_user_provider DO NOTHING" in status_sql

    @pytest.mark.asyncio
    async def test_delete_connection_removes_status(self, health_store, session):
        assert await health_store.delete_connection(uuid.uuid4()) is True
        tables = [_sql(s) for s in session.statements]
        assert "DELETE FROM health_oauth_connections" in tables[0]
        assert "DELETE FROM health_sync_status" in tables[1]


class TestSyncLock:
    @pytest.mark.asyncio
    async def test_begin_sync_is_compare_and_set(self, health_store, session):
        assert await health_store.begin_sync(uuid.uuid4(), NOW, timedelta(minutes=15)) is True

        update_sql = _sql(session.statements[1])
        assert "UPDATE health_sync_status" in update_sql
        assert "health_sync_status.sync_state !=" in update_sql
        assert "health_sync_status.sync_started_at IS NULL" in update_sql

    @pytest.mark.asyncio
    async def test_begin_sync_lost_race(self):
        store = HealthStore(lambda: FakeSession(rowcount=0))
        assert await store.begin_sync(uuid.uuid4(), NOW, timedelta(minutes=15)) is False

    @pytest.mark.asyncio
    async def test_failed_pass_keeps_last_success(self, health_store, session):
        await health_store.finish_sync(uuid.uuid4(), NOW, error="boom")

        params = session.statements[0].compile(dialect=postgresql.dialect()).params
        assert params["sync_state"] == "failed"
        assert params["last_error"] == "boom"
        assert "last_successful_sync" not in params

    @pytest.mark.asyncio
    async def test_partial_pass_keeps_last_success(self, health_store, session):
        await health_store.finish_sync(uuid.uuid4(), NOW, full_pass=False)

        params = session.statements[0].compile(dialect=postgresql.dialect()).params
        assert params["sync_state"] == "completed"
        assert "last_successful_sync" not in params
