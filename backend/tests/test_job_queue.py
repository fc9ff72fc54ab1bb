"""Test the sync job queue lifecycle."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from ledgersync.database import Database
from ledgersync.errors import PermanentAPIError, TransientNetworkError
from ledgersync.schemas.sync import JobStatus, JobType
from ledgersync.services.job_queue import JobQueue
from ledgersync.services.sync_service import SyncSummary


NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class RacingDatabase(Database):
    """Holds every claimer at its first read until all of them have read."""

    def __init__(self, client, parties: int):
        super().__init__(client)
        self.barrier = threading.Barrier(parties)
        self.local = threading.local()

    def get_sync_job_by_id(self, job_id):
        row = super().get_sync_job_by_id(job_id)
        if not getattr(self.local, "waited", False):
            self.local.waited = True
            self.barrier.wait(timeout=5)
        return row


@pytest.fixture
def now():
    return {"value": NOW}


@pytest.fixture
def queue(db, now):
    return JobQueue(db, clock=lambda: now["value"])


@pytest.fixture
def orchestrator():
    orchestrator = MagicMock()
    orchestrator.run.return_value = SyncSummary(accounts_synced=1, transactions_synced=4)
    return orchestrator


def enqueue(queue, **overrides):
    data = {
        "job_type": JobType.TRIGGER,
        "user_id": "user-1",
        "item_id": "item-1",
        "sync_job_id": "sync-1",
    }
    data.update(overrides)
    return queue.enqueue(**data)


class TestEnqueue:
    """Test job creation."""

    def test_creates_queued_job(self, queue, fake_supabase):
        job = enqueue(queue)

        assert job.status is JobStatus.QUEUED
        assert job.attempts == 0
        row = fake_supabase.rows("sync_jobs")[0]
        assert row["type"] == "trigger"
        assert row["sync_job_id"] == "sync-1"
        assert row["expires_at"] == (NOW + timedelta(hours=24)).isoformat()
        assert "credit_transaction_id" not in row

    def test_refund_replay_job(self, queue):
        job = enqueue(queue, job_type="sync", credit_transaction_id="tx99")

        assert job.type == "sync"
        assert job.is_refund_replay is True

    def test_writes_status_and_attempts_explicitly(self, queue, db):
        with patch.object(db, "create_sync_job", wraps=db.create_sync_job) as create:
            enqueue(queue)

        data = create.call_args.args[0]
        assert data["status"] == "queued"
        assert data["attempts"] == 0


class TestClaim:
    """Test the exactly-once claim."""

    def test_claim_moves_to_processing(self, queue, fake_supabase):
        job = enqueue(queue)

        claimed = queue.claim(job.id)

        assert claimed.status is JobStatus.PROCESSING
        assert claimed.attempts == 1
        row = fake_supabase.rows("sync_jobs")[0]
        assert row["status"] == "processing"
        assert row["attempts"] == 1
        assert row["started_at"] == NOW.isoformat()

    def test_second_claim_is_refused(self, queue):
        job = enqueue(queue)

        assert queue.claim(job.id) is not None
        assert queue.claim(job.id) is None

    def test_missing_job(self, queue):
        assert queue.claim("does-not-exist") is None

    def test_concurrent_claims_only_one_wins(self, fake_supabase, now):
        workers = 8
        db = RacingDatabase(fake_supabase, parties=workers)
        queue = JobQueue(db, clock=lambda: now["value"])
        job = enqueue(queue)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda _: queue.claim(job.id), range(workers)))

        winners = [r for r in results if r is not None]
        assert len(winners) == 1
        assert results.count(None) == workers - 1
        row = fake_supabase.rows("sync_jobs")[0]
        assert row["attempts"] == 1
        assert row["status"] == "processing"

    def test_not_claimed_before_available_at(self, queue, now, fake_supabase):
        job = enqueue(queue, available_at=NOW + timedelta(minutes=5))

        assert queue.claim(job.id) is None
        assert fake_supabase.rows("sync_jobs")[0]["status"] == "queued"

        now["value"] = NOW + timedelta(minutes=5)
        assert queue.claim(job.id) is not None

    def test_claims_row_without_attempts(self, queue, fake_supabase):
        fake_supabase.seed("sync_jobs", {
            "id": "legacy", "type": "sync", "status": "queued", "attempts": None,
            "user_id": "user-1", "item_id": "item-1", "sync_job_id": "sync-1",
        })

        claimed = queue.claim("legacy")

        assert claimed.attempts == 1
        assert fake_supabase.rows("sync_jobs")[0]["attempts"] == 1

    def test_claims_row_without_status(self, queue, fake_supabase):
        fake_supabase.seed("sync_jobs", {
            "id": "bare", "type": "sync", "status": None, "attempts": None,
            "user_id": "user-1", "item_id": "item-1", "sync_job_id": "sync-1",
        })

        claimed = queue.claim("bare")

        assert claimed.status is JobStatus.PROCESSING
        assert claimed.attempts == 1
        row = fake_supabase.rows("sync_jobs")[0]
        assert row["status"] == "processing"
        assert row["attempts"] == 1
        assert queue.claim("bare") is None


class TestProcess:
    """Test running a claimed job to a terminal state."""

    def test_success_marks_done(self, queue, orchestrator, fake_supabase):
        job = enqueue(queue)

        assert queue.process(job.id, orchestrator) is JobStatus.DONE

        row = fake_supabase.rows("sync_jobs")[0]
        assert row["status"] == "done"
        assert row["attempts"] == 1
        assert row["completed_at"] == NOW.isoformat()
        assert row["transactions_synced"] == 4
        orchestrator.run.assert_called_once()

    def test_duplicate_delivery_runs_once(self, queue, orchestrator):
        job = enqueue(queue)

        assert queue.process(job.id, orchestrator) is JobStatus.DONE
        assert queue.process(job.id, orchestrator) is None
        assert orchestrator.run.call_count == 1

    def test_missing_fields_fail_without_running(self, queue, orchestrator, fake_supabase):
        fake_supabase.seed("sync_jobs", {
            "id": "bad", "type": "trigger", "status": "queued", "attempts": 0,
            "user_id": "user-1", "sync_job_id": "sync-1",
        })

        assert queue.process("bad", orchestrator) is JobStatus.FAILED

        row = fake_supabase.rows("sync_jobs")[0]
        assert row["status"] == "failed"
        assert row["error_code"] == "INVALID_JOB"
        assert row["retryable"] is False
        assert "item_id" in row["last_error"]
        assert row["attempts"] == 1
        orchestrator.run.assert_not_called()

    def test_unknown_type_fails(self, queue, orchestrator, fake_supabase):
        fake_supabase.seed("sync_jobs", {
            "id": "odd", "type": "reindex", "status": "queued", "attempts": 0,
            "user_id": "user-1", "item_id": "item-1", "sync_job_id": "sync-1",
        })

        assert queue.process("odd", orchestrator) is JobStatus.FAILED
        assert fake_supabase.rows("sync_jobs")[0]["error_code"] == "INVALID_JOB"

    def test_retryable_error_recorded(self, queue, orchestrator, fake_supabase):
        orchestrator.run.side_effect = TransientNetworkError("GET /accounts returned 503")
        job = enqueue(queue)

        assert queue.process(job.id, orchestrator) is JobStatus.FAILED

        row = fake_supabase.rows("sync_jobs")[0]
        assert row["status"] == "failed"
        assert row["error_code"] == "TRANSIENT_NETWORK"
        assert row["retryable"] is True
        assert row["last_error"] == "GET /accounts returned 503"
        assert row["failed_at"] == NOW.isoformat()

    def test_permanent_error_recorded_verbatim(self, queue, orchestrator, fake_supabase):
        orchestrator.run.side_effect = PermanentAPIError(
            "GET /items/item-1 returned 404: not found", status_code=404, body="not found"
        )
        job = enqueue(queue)

        queue.process(job.id, orchestrator)

        row = fake_supabase.rows("sync_jobs")[0]
        assert row["error_code"] == "AGGREGATOR_REJECTED"
        assert row["last_error"] == "GET /items/item-1 returned 404: not found"

    def test_unexpected_error_does_not_escape(self, queue, orchestrator, fake_supabase):
        orchestrator.run.side_effect = RuntimeError("boom")
        job = enqueue(queue)

        assert queue.process(job.id, orchestrator) is JobStatus.FAILED

        row = fake_supabase.rows("sync_jobs")[0]
        assert row["error_code"] == "INTERNAL"
        assert row["last_error"] == "boom"

    def test_run_receives_heartbeat(self, queue, orchestrator, now, fake_supabase):
        job = enqueue(queue)

        def run(claimed, heartbeat):
            now["value"] = NOW + timedelta(minutes=20)
            assert heartbeat() is True
            return SyncSummary()

        orchestrator.run.side_effect = run

        assert queue.process(job.id, orchestrator) is JobStatus.DONE
        assert fake_supabase.rows("sync_jobs")[0]["updated_at"] == (NOW + timedelta(minutes=20)).isoformat()

    def test_heartbeat_keeps_long_run_from_being_reaped(self, queue, now, fake_supabase):
        job = enqueue(queue)
        queue.claim(job.id)

        now["value"] = NOW + timedelta(minutes=14)
        queue.heartbeat(job.id)
        now["value"] = NOW + timedelta(minutes=20)

        assert queue.reap_stale(timedelta(minutes=15)) == []
        assert fake_supabase.rows("sync_jobs")[0]["status"] == "processing"

    def test_reaped_job_keeps_failed_outcome(self, queue, orchestrator, now, fake_supabase):
        job = enqueue(queue)

        def slow_run(claimed, heartbeat):
            now["value"] = NOW + timedelta(minutes=20)
            assert queue.reap_stale(timedelta(minutes=15)) == [job.id]
            return SyncSummary(accounts_synced=1)

        orchestrator.run.side_effect = slow_run

        assert queue.process(job.id, orchestrator) is None

        row = fake_supabase.rows("sync_jobs")[0]
        assert row["status"] == "failed"
        assert row["error_code"] == "STALE_PROCESSING"
        assert "completed_at" not in row

    def test_late_failure_does_not_overwrite_reaper(self, queue, now, fake_supabase):
        job = enqueue(queue)
        queue.claim(job.id)
        now["value"] = NOW + timedelta(minutes=20)
        queue.reap_stale(timedelta(minutes=15))

        assert queue.mark_failed(job.id, TransientNetworkError("GET /accounts returned 503")) is False
        assert queue.mark_done(job.id) is False

        row = fake_supabase.rows("sync_jobs")[0]
        assert row["status"] == "failed"
        assert row["error_code"] == "STALE_PROCESSING"


class TestSweeps:
    """Test the queue sweep and stale job reaper."""

    def test_due_job_ids_skip_delayed_jobs(self, queue):
        ready = enqueue(queue)
        enqueue(queue, sync_job_id="sync-2", available_at=NOW + timedelta(hours=1))

        assert queue.due_job_ids() == [ready.id]

    def test_due_job_ids_include_rows_without_status(self, queue, fake_supabase):
        fake_supabase.seed("sync_jobs", {
            "id": "bare", "type": "sync", "status": None, "attempts": None,
            "user_id": "user-1", "item_id": "item-1", "sync_job_id": "sync-1",
            "created_at": NOW.isoformat(),
        })

        assert queue.due_job_ids() == ["bare"]

    def test_reap_stale_fails_old_processing_jobs(self, queue, fake_supabase):
        old = (NOW - timedelta(hours=1)).isoformat()
        recent = (NOW - timedelta(minutes=1)).isoformat()
        fake_supabase.seed(
            "sync_jobs",
            {"id": "stuck", "status": "processing", "attempts": 1, "updated_at": old},
            {"id": "busy", "status": "processing", "attempts": 1, "updated_at": recent},
            {"id": "old-done", "status": "done", "attempts": 1, "updated_at": old},
        )

        assert queue.reap_stale(timedelta(minutes=15)) == ["stuck"]

        rows = {row["id"]: row for row in fake_supabase.rows("sync_jobs")}
        assert rows["stuck"]["status"] == "failed"
        assert rows["stuck"]["error_code"] == "STALE_PROCESSING"
        assert rows["stuck"]["retryable"] is True
        assert rows["busy"]["status"] == "processing"
        assert rows["old-done"]["status"] == "done"
