"""Wire settings, storage and the Pluggy client into a job run."""

from contextlib import contextmanager
from datetime import timedelta
from functools import lru_cache
from typing import Iterator

from ledgersync.config import Settings, get_settings
from ledgersync.database import Database, get_db
from ledgersync.schemas.sync import JobStatus
from ledgersync.services.item_poller import ItemPoller
from ledgersync.services.job_queue import JobQueue
from ledgersync.services.pluggy_service import PluggyClient
from ledgersync.services.sync_service import SyncOrchestrator
from ledgersync.utils.cache import TTLCache


@lru_cache
def get_api_key_cache() -> TTLCache:
    """Pluggy API key cache shared by every run in this process."""
    return TTLCache(ttl_seconds=get_settings().pluggy_api_key_ttl_seconds, maxsize=1)


@lru_cache
def get_institution_cache() -> TTLCache:
    """Institution name per item, shared by every run in this process."""
    return TTLCache(ttl_seconds=get_settings().institution_cache_ttl_seconds)


def build_job_queue(db: Database, settings: Settings) -> JobQueue:
    return JobQueue(
        db,
        ttl=timedelta(hours=settings.job_ttl_hours),
        max_claim_retries=settings.claim_max_retries,
    )


@contextmanager
def open_orchestrator(db: Database, settings: Settings) -> Iterator[SyncOrchestrator]:
    """Build an orchestrator with a fresh HTTP client, closed on exit."""
    client = PluggyClient.from_settings(settings, key_cache=get_api_key_cache())
    try:
        yield SyncOrchestrator(
            db,
            client,
            ItemPoller(
                client,
                interval_seconds=settings.poll_interval_seconds,
                budget_seconds=settings.poll_budget_seconds,
            ),
            get_institution_cache(),
            months_back=settings.sync_months_back,
            months_forward=settings.sync_months_forward,
            poll_budget_seconds=settings.poll_budget_seconds,
        )
    finally:
        client.close()


def run_sync_job(job_id: str) -> JobStatus | None:
    """Handle one delivery of a job: claim, run, record the outcome."""
    settings = get_settings()
    db = get_db()
    queue = build_job_queue(db, settings)
    with open_orchestrator(db, settings) as orchestrator:
        return queue.process(job_id, orchestrator)
