"""Sync job queue - claim, run and finish jobs under duplicate delivery.

A job can be delivered to several workers at once (duplicate webhook,
manual re-trigger, platform retry, queue sweep). ``claim`` is the only
way into ``processing`` and lets exactly one of them through. Heartbeats
and terminal writes only match while the row is still ``processing``,
so a run the reaper already failed cannot overwrite that outcome.
"""

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable

from ledgersync.database import Database
from ledgersync.errors import JobValidationError, StaleJobError, SyncError
from ledgersync.logging_config import get_logger
from ledgersync.schemas.sync import JobStatus, JobType, SyncJob

if TYPE_CHECKING:
    from ledgersync.services.sync_service import SyncOrchestrator


logger = get_logger("job_queue")

JOB_TYPES = {job_type.value for job_type in JobType}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobQueue:
    """Lifecycle manager for rows of the ``sync_jobs`` table."""

    def __init__(
        self,
        db: Database,
        ttl: timedelta = timedelta(hours=24),
        max_claim_retries: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.ttl = ttl
        self.max_claim_retries = max_claim_retries
        self._now = clock

    # --- Producer side ---

    def enqueue(
        self,
        job_type: JobType | str,
        user_id: str,
        item_id: str,
        sync_job_id: str,
        credit_transaction_id: str | None = None,
        available_at: datetime | None = None,
    ) -> SyncJob:
        """Create a queued job with zero attempts."""
        data = {
            "type": JobType(job_type).value,
            "status": JobStatus.QUEUED.value,
            "attempts": 0,
            "user_id": user_id,
            "item_id": item_id,
            "sync_job_id": sync_job_id,
            "expires_at": (self._now() + self.ttl).isoformat(),
        }
        if credit_transaction_id:
            data["credit_transaction_id"] = credit_transaction_id
        if available_at:
            data["available_at"] = available_at.isoformat()

        job = SyncJob.model_validate(self.db.create_sync_job(data))
        logger.info(f"[{job.id}] Queued {job.type} job for item {item_id} (sync {sync_job_id})")
        return job

    # --- Lifecycle ---

    def claim(self, job_id: str) -> SyncJob | None:
        """
        Atomically move a queued job to processing.

        Returns None when the job does not exist, is not queued, or its
        ``available_at`` is still in the future. Otherwise increments
        ``attempts`` and returns the claimed snapshot.

        The write is conditional on the status and attempts just read. If
        it matches nothing another worker committed first, so the row is
        read again; that second read sees ``processing`` and gives up.
        """
        for _ in range(self.max_claim_retries):
            row = self.db.get_sync_job_by_id(job_id)
            if row is None:
                return None

            job = SyncJob.model_validate(row)
            now = self._now()
            if job.status is not JobStatus.QUEUED:
                return None
            if job.available_at and job.available_at > now:
                logger.debug(f"[{job_id}] Not available until {job.available_at.isoformat()}")
                return None

            timestamp = now.isoformat()
            updates = {
                "status": JobStatus.PROCESSING.value,
                "attempts": job.attempts + 1,
                "started_at": timestamp,
                "updated_at": timestamp,
                "expires_at": (now + self.ttl).isoformat(),
            }
            if self.db.claim_sync_job(job_id, row.get("status"), row.get("attempts"), updates):
                return job.model_copy(
                    update={
                        "status": JobStatus.PROCESSING,
                        "attempts": job.attempts + 1,
                        "started_at": now,
                        "updated_at": now,
                    }
                )

            logger.debug(f"[{job_id}] Lost claim race, re-reading")

        return None

    def heartbeat(self, job_id: str) -> bool:
        """Refresh ``updated_at`` so the reaper leaves a long run alone."""
        return self._write(job_id, {})

    def mark_done(self, job_id: str, summary: dict | None = None) -> bool:
        now = self._now()
        return self._write(job_id, {
            **(summary or {}),
            "status": JobStatus.DONE.value,
            "completed_at": now.isoformat(),
        })

    def mark_failed(self, job_id: str, error: BaseException) -> bool:
        now = self._now()
        code = error.code if isinstance(error, SyncError) else "INTERNAL"
        retryable = error.retryable if isinstance(error, SyncError) else False
        return self._write(job_id, {
            "status": JobStatus.FAILED.value,
            "last_error": str(error) or error.__class__.__name__,
            "error_code": code,
            "retryable": retryable,
            "failed_at": now.isoformat(),
        })

    def _write(self, job_id: str, data: dict) -> bool:
        """Write to a processing job. False when it was reaped meanwhile."""
        now = self._now()
        row = self.db.update_processing_sync_job(job_id, {
            **data,
            "updated_at": now.isoformat(),
            "expires_at": (now + self.ttl).isoformat(),
        })
        if row is None:
            logger.warning(f"[{job_id}] No longer processing, dropped write of {sorted(data)}")
            return False
        return True

    # --- Worker ---

    def process(self, job_id: str, orchestrator: "SyncOrchestrator") -> JobStatus | None:
        """
        Claim a job, run it and record the terminal state.

        Returns the terminal status written, or None when the claim was
        refused or the reaper failed the job before the run finished.
        No exception from the run escapes: a job left in processing
        without a terminal write stays stuck until the reaper finds it.
        """
        job = self.claim(job_id)
        if job is None:
            logger.info(f"[{job_id}] Skipped (missing, already claimed or not ready)")
            return None

        try:
            validate_job(job)
        except JobValidationError as e:
            logger.error(f"[{job_id}] Invalid job: {e}")
            return self._fail(job_id, e)

        logger.info(
            f"[{job_id}] Processing {job.type} job (attempt {job.attempts}) "
            f"user={job.user_id} item={job.item_id} sync={job.sync_job_id}"
        )
        try:
            summary = orchestrator.run(job, heartbeat=lambda: self.heartbeat(job_id))
        except SyncError as e:
            logger.error(f"[{job_id}] Failed with {e.code}: {e}")
            return self._fail(job_id, e)
        except Exception as e:
            logger.exception(f"[{job_id}] Unexpected error")
            return self._fail(job_id, e)

        if not self.mark_done(job_id, summary.as_dict()):
            return None
        logger.info(f"[{job_id}] Done: {summary.as_dict()}")
        return JobStatus.DONE

    def _fail(self, job_id: str, error: BaseException) -> JobStatus | None:
        return JobStatus.FAILED if self.mark_failed(job_id, error) else None

    # --- Sweeps ---

    def due_job_ids(self, limit: int = 50) -> list[str]:
        """Ids of queued jobs whose ``available_at`` has passed."""
        now = self._now()
        due = []
        for row in self.db.get_queued_sync_jobs(limit):
            job = SyncJob.model_validate(row)
            if job.available_at is None or job.available_at <= now:
                due.append(job.id)
        return due

    def reap_stale(self, stale_after: timedelta) -> list[str]:
        """Fail jobs stuck in processing longer than ``stale_after``.

        Jobs are failed, never re-queued; re-enqueueing stays a producer
        decision.
        """
        now = self._now()
        error = StaleJobError(
            f"Job still processing after {int(stale_after.total_seconds())}s without a terminal write"
        )
        rows = self.db.fail_stale_sync_jobs(
            (now - stale_after).isoformat(),
            {
                "status": JobStatus.FAILED.value,
                "last_error": str(error),
                "error_code": error.code,
                "retryable": error.retryable,
                "failed_at": now.isoformat(),
                "updated_at": now.isoformat(),
                "expires_at": (now + self.ttl).isoformat(),
            },
        )
        job_ids = [row["id"] for row in rows]
        if job_ids:
            logger.warning(f"Reaped {len(job_ids)} stale job(s): {job_ids}")
        return job_ids


def validate_job(job: SyncJob) -> None:
    """Reject jobs that can never succeed, whatever the retry."""
    missing = job.missing_fields()
    if missing:
        raise JobValidationError(f"Missing required fields: {', '.join(missing)}")
    if job.type not in JOB_TYPES:
        raise JobValidationError(f"Unknown job type: {job.type}")
