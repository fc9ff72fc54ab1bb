"""Error taxonomy for the sync pipeline.

Every error raised while processing a job derives from ``SyncError`` and
carries a stable ``code`` plus a ``retryable`` flag. The worker boundary
records both on the failed job so producers can decide whether to
re-enqueue with a later ``available_at``.
"""


class SyncError(Exception):
    """Base class for failures that end a sync job."""

    code = "SYNC_ERROR"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class JobValidationError(SyncError):
    """Job document is structurally invalid. Never retried."""

    code = "INVALID_JOB"


class AggregatorAuthError(SyncError):
    """Aggregator rejected our credentials, even after a key refresh."""

    code = "AGGREGATOR_AUTH"


class TransientNetworkError(SyncError):
    """Timeout, dropped connection, 5xx or rate limit from the aggregator."""

    code = "TRANSIENT_NETWORK"
    retryable = True


class PermanentAPIError(SyncError):
    """Aggregator answered with a 4xx other than authentication."""

    code = "AGGREGATOR_REJECTED"

    def __init__(self, message: str, status_code: int, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class PollTimeoutError(SyncError):
    """Item never reached a terminal status within the poll budget."""

    code = "POLL_TIMEOUT"
    retryable = True


class StaleJobError(SyncError):
    """Job sat in processing past the staleness threshold (worker died)."""

    code = "STALE_PROCESSING"
    retryable = True


class ItemStatusError(SyncError):
    """Item refresh ended in a failed status (login error, outdated, ...)."""

    def __init__(self, message: str, status: str, retryable: bool = False):
        super().__init__(message)
        self.status = status
        self.code = f"ITEM_{status}"
        self.retryable = retryable
