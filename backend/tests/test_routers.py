"""Test the HTTP surface: job producers and status lookups."""

from unittest.mock import patch

import pytest


API = "/app/v1"


@pytest.fixture
def run_sync_job():
    """Capture background dispatches instead of running real jobs."""
    with patch("ledgersync.routers.sync.run_sync_job") as sync_run, \
            patch("ledgersync.routers.webhooks.run_sync_job") as webhook_run:
        yield {"sync": sync_run, "webhooks": webhook_run}


class TestHealth:
    """Test unauthenticated endpoints."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["api"] == API


class TestSyncJobs:
    """Test the internal trigger endpoint."""

    def test_requires_worker_secret(self, client):
        payload = {"user_id": "user-1", "item_id": "item-1", "sync_job_id": "sync-1"}

        assert client.post(f"{API}/sync/jobs", json=payload).status_code == 401
        response = client.post(
            f"{API}/sync/jobs",
            json=payload,
            headers={"Authorization": "Bearer wrong"},
        )
        assert response.status_code == 401

    def test_enqueue_dispatches_job(self, client, worker_headers, fake_supabase, run_sync_job):
        response = client.post(
            f"{API}/sync/jobs",
            headers=worker_headers,
            json={"user_id": "user-1", "item_id": "item-1", "sync_job_id": "sync-1"},
        )

        assert response.status_code == 202
        data = response.json()
        assert data["status"] == "queued"

        row = fake_supabase.rows("sync_jobs")[0]
        assert row["id"] == data["job_id"]
        assert row["type"] == "trigger"
        run_sync_job["sync"].assert_called_once_with(data["job_id"])

    def test_delayed_job_left_for_sweep(self, client, worker_headers, run_sync_job):
        response = client.post(
            f"{API}/sync/jobs",
            headers=worker_headers,
            json={
                "type": "sync",
                "user_id": "user-1",
                "item_id": "item-1",
                "sync_job_id": "sync-1",
                "available_at": "2099-01-01T00:00:00+00:00",
            },
        )

        assert response.status_code == 202
        assert "scheduled" in response.json()["message"]
        run_sync_job["sync"].assert_not_called()

    def test_rejects_incomplete_request(self, client, worker_headers, run_sync_job):
        response = client.post(
            f"{API}/sync/jobs",
            headers=worker_headers,
            json={"user_id": "user-1", "item_id": ""},
        )

        assert response.status_code == 422

    def test_get_job(self, client, worker_headers, fake_supabase):
        fake_supabase.seed("sync_jobs", {
            "id": "job-1", "type": "trigger", "status": "failed", "attempts": 1,
            "user_id": "user-1", "item_id": "item-1", "sync_job_id": "sync-1",
            "last_error": "GET /accounts returned 503", "error_code": "TRANSIENT_NETWORK",
        })

        response = client.get(f"{API}/sync/jobs/job-1", headers=worker_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "failed"
        assert data["attempts"] == 1
        assert data["error_code"] == "TRANSIENT_NETWORK"

    def test_get_unknown_job(self, client, worker_headers):
        response = client.get(f"{API}/sync/jobs/missing", headers=worker_headers)

        assert response.status_code == 404


class TestPluggyWebhook:
    """Test the aggregator webhook."""

    def test_item_updated_queues_sync_job(self, client, worker_headers, fake_supabase, run_sync_job):
        response = client.post(
            f"{API}/webhooks/pluggy",
            headers=worker_headers,
            json={
                "event": "item/updated",
                "itemId": "item-1",
                "clientUserId": "user-1",
                "eventId": "evt-1",
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["queued"] is True

        row = fake_supabase.rows("sync_jobs")[0]
        assert row["type"] == "sync"
        assert row["user_id"] == "user-1"
        assert row["sync_job_id"] == "evt-1"
        run_sync_job["webhooks"].assert_called_once_with(data["job_id"])

    def test_other_events_acknowledged(self, client, worker_headers, fake_supabase, run_sync_job):
        response = client.post(
            f"{API}/webhooks/pluggy",
            headers=worker_headers,
            json={"event": "item/login_succeeded", "itemId": "item-1"},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True, "queued": False}
        assert fake_supabase.rows("sync_jobs") == []
        run_sync_job["webhooks"].assert_not_called()

    def test_item_updated_without_user_dropped(self, client, worker_headers, fake_supabase, run_sync_job):
        response = client.post(
            f"{API}/webhooks/pluggy",
            headers=worker_headers,
            json={"event": "item/updated", "itemId": "item-1"},
        )

        assert response.status_code == 200
        assert response.json()["queued"] is False
        assert fake_supabase.rows("sync_jobs") == []
