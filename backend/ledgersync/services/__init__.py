"""Business logic services."""

from ledgersync.services.job_queue import JobQueue
from ledgersync.services.pluggy_service import PluggyClient
from ledgersync.services.item_poller import ItemPoller
from ledgersync.services.reconciliation_service import ReconciliationEngine, SubscriptionIndex
from ledgersync.services.sync_service import SyncOrchestrator

__all__ = [
    "JobQueue",
    "PluggyClient",
    "ItemPoller",
    "ReconciliationEngine",
    "SubscriptionIndex",
    "SyncOrchestrator",
]
