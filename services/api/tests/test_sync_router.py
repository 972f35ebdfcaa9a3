"""Tests for the dashboard sync routes."""

from datetime import timedelta

from conftest import NOW
from vitalsync.schemas.whoop import Page


class TestManualSync:
    def test_requires_auth(self, client):
        assert client.post("/api/v1/sync/manual").status_code in (401, 403)

    def test_rejects_bad_token(self, client):
        response = client.post("/api/v1/sync/manual", headers={"Authorization": "Bearer not.a.jwt"})
        assert response.status_code == 401

    def test_success(self, client, store, crypto, sample_user_id, fake_client, auth_headers, workout_record):
        store.add_connection(sample_user_id, crypto)
        fake_client.pages = {"workout": [Page(records=[workout_record])]}

        response = client.post("/api/v1/sync/manual", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Synced 0 recovery, 0 sleep, and 1 workout records."}

    def test_no_connection(self, client, auth_headers):
        response = client.post("/api/v1/sync/manual", headers=auth_headers)
        assert response.json() == {
            "success": False,
            "message": "No WHOOP connection found. Please reconnect your account.",
        }


class TestSyncStatus:
    def test_not_connected(self, client, auth_headers):
        response = client.get("/api/v1/sync/status", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["connected"] is False
        assert data["sync_state"] is None

    def test_after_sync(self, client, store, crypto, sample_user_id, auth_headers):
        store.add_connection(sample_user_id, crypto)
        client.post("/api/v1/sync/manual", headers=auth_headers)

        data = client.get("/api/v1/sync/status", headers=auth_headers).json()
        assert data["provider"] == "whoop"
        assert data["connected"] is True
        assert data["sync_state"] == "completed"
        assert data["last_error"] is None
        assert data["last_successful_sync"] is not None

    def test_in_progress(self, client, store, crypto, sample_user_id, auth_headers, settings):
        import asyncio

        store.add_connection(sample_user_id, crypto)
        asyncio.run(store.begin_sync(sample_user_id, NOW, timedelta(seconds=settings.sync_lock_ttl_seconds)))

        assert client.get("/api/v1/sync/status", headers=auth_headers).json()["sync_state"] == "in_progress"
        assert client.post("/api/v1/sync/manual", headers=auth_headers).json()["message"] == "A sync is already in progress."


class TestDisconnect:
    def test_removes_connection_and_status(self, client, store, crypto, sample_user_id, auth_headers):
        store.add_connection(sample_user_id, crypto)

        response = client.delete("/api/v1/connections/whoop", headers=auth_headers)
        assert response.json() == {"success": True, "message": "WHOOP disconnected"}
        assert sample_user_id not in store.connections
        assert sample_user_id not in store.statuses

    def test_nothing_to_disconnect(self, client, auth_headers):
        response = client.delete("/api/v1/connections/whoop", headers=auth_headers)
        assert response.json()["success"] is False
