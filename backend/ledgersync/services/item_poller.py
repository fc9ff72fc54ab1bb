"""Poll a Pluggy item until its refresh settles or the deadline passes."""

import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable

from ledgersync.errors import ItemStatusError, PollTimeoutError
from ledgersync.logging_config import get_logger
from ledgersync.services.pluggy_service import PluggyClient


logger = get_logger("poller")

UPDATED_STATUSES = frozenset({"UPDATED"})
FAILED_STATUSES = frozenset({"LOGIN_ERROR", "OUTDATED", "WAITING_USER_INPUT"})

# Execution statuses that describe a problem on the institution's side
# rather than with the user's credentials.
RETRYABLE_EXECUTION_STATUSES = frozenset({"SITE_NOT_AVAILABLE", "CONNECTION_ERROR", "ERROR"})


class PollOutcome(str, Enum):
    PENDING = "pending"
    UPDATED = "updated"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class PollResult:
    outcome: PollOutcome
    status: str | None = None
    execution_status: str | None = None
    attempts: int = 0
    item: dict | None = None

    @property
    def retryable(self) -> bool:
        return self.execution_status in RETRYABLE_EXECUTION_STATUSES

    def raise_for_outcome(self, item_id: str) -> None:
        """Turn a failed or timed-out poll into the matching ``SyncError``."""
        if self.outcome is PollOutcome.FAILED:
            raise ItemStatusError(
                f"Item {item_id} refresh ended in {self.status} "
                f"(executionStatus={self.execution_status})",
                status=self.status or "FAILED",
                retryable=self.retryable,
            )
        if self.outcome is PollOutcome.TIMED_OUT:
            raise PollTimeoutError(
                f"Item {item_id} still {self.status} after {self.attempts} polls"
            )


def classify_item(item: dict) -> PollResult:
    """Map an item payload onto a poll outcome."""
    status = (item.get("status") or "").upper()
    execution_status = item.get("executionStatus")

    if status in UPDATED_STATUSES:
        outcome = PollOutcome.UPDATED
    elif status in FAILED_STATUSES:
        outcome = PollOutcome.FAILED
    else:
        outcome = PollOutcome.PENDING

    return PollResult(outcome, status or None, execution_status, item=item)


class ItemPoller:
    """Bounded poll loop over ``GET /items/{id}``.

    ``sleep`` and ``clock`` are injectable so the loop can be driven
    without real waiting.
    """

    def __init__(
        self,
        client: PluggyClient,
        interval_seconds: float = 5.0,
        budget_seconds: float = 480.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.interval_seconds = interval_seconds
        self.budget_seconds = budget_seconds
        self._sleep = sleep
        self._clock = clock

    def poll(self, item_id: str, deadline: float | None = None) -> PollResult:
        """Poll until UPDATED, a failed status, or ``deadline`` (clock time).

        Never returns PENDING.
        """
        if deadline is None:
            deadline = self._clock() + self.budget_seconds

        attempts = 0
        while True:
            attempts += 1
            result = replace(classify_item(self.client.get_item(item_id)), attempts=attempts)
            logger.debug(f"[{item_id}] Poll #{attempts}: {result.status}")

            if result.outcome is not PollOutcome.PENDING:
                logger.info(f"[{item_id}] Refresh settled as {result.status} after {attempts} polls")
                return result

            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.warning(f"[{item_id}] Poll budget exhausted after {attempts} polls")
                return replace(result, outcome=PollOutcome.TIMED_OUT)

            self._sleep(min(self.interval_seconds, remaining))
