"""Scheduled cron jobs for background tasks."""

from datetime import timedelta
from fastapi_utils.tasks import repeat_every

from ledgersync.config import get_settings
from ledgersync.database import get_db
from ledgersync.logging_config import get_logger
from ledgersync.worker import build_job_queue, run_sync_job


settings = get_settings()
logger = get_logger("cron")


# Plain (non-async) functions: repeat_every runs them in the threadpool,
# so a job polling the aggregator does not block the event loop.

@repeat_every(seconds=settings.queue_sweep_seconds, logger=logger)
def sweep_sync_queue() -> None:
    """
    Dispatch queued jobs whose ``available_at`` has passed.

    Picks up delayed retries and jobs whose background task was lost.
    Running a job that another worker is already handling is harmless:
    the claim refuses it.
    """
    queue = build_job_queue(get_db(), settings)
    job_ids = queue.due_job_ids()
    if not job_ids:
        return

    logger.info(f"[CRON] Dispatching {len(job_ids)} queued job(s)")
    outcomes = {}
    for job_id in job_ids:
        result = run_sync_job(job_id)
        key = result.value if result else "skipped"
        outcomes[key] = outcomes.get(key, 0) + 1

    logger.info(f"[CRON] Queue sweep complete: {outcomes}")


@repeat_every(seconds=settings.stale_job_seconds, logger=logger)
def reap_stale_sync_jobs() -> None:
    """Fail jobs left in processing by a worker that died mid-run."""
    queue = build_job_queue(get_db(), settings)
    reaped = queue.reap_stale(timedelta(seconds=settings.stale_job_seconds))
    if reaped:
        logger.warning(f"[CRON] Marked {len(reaped)} stale job(s) failed")
