"""Pydantic schemas for jobs, ledger rows and aggregator payloads."""

from ledgersync.schemas.sync import (
    JobType,
    JobStatus,
    SyncJob,
    EnqueueJobRequest,
    EnqueueJobResponse,
    SyncJobResponse,
    WebhookEvent,
)
from ledgersync.schemas.transaction import (
    TransactionType,
    Account,
    Transaction,
)
from ledgersync.schemas.subscription import (
    Subscription,
    SubscriptionConfirmation,
)
from ledgersync.schemas.payment import (
    PaymentData,
    parse_payment_data,
)

__all__ = [
    # Sync
    "JobType",
    "JobStatus",
    "SyncJob",
    "EnqueueJobRequest",
    "EnqueueJobResponse",
    "SyncJobResponse",
    "WebhookEvent",
    # Ledger
    "TransactionType",
    "Account",
    "Transaction",
    # Subscriptions
    "Subscription",
    "SubscriptionConfirmation",
    # Payment metadata
    "PaymentData",
    "parse_payment_data",
]
