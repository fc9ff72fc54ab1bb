"""Sync service - drives the Pluggy refresh/fetch protocol for one job."""

import time
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from typing import Callable

from ledgersync.database import Database
from ledgersync.errors import SyncError
from ledgersync.logging_config import get_logger
from ledgersync.schemas.sync import JobType, SyncJob
from ledgersync.schemas.transaction import Account
from ledgersync.services.item_poller import ItemPoller
from ledgersync.services.pluggy_service import (
    PluggyClient,
    build_date_range,
    institution_from_item,
    parse_account,
    parse_transaction,
)
from ledgersync.services.reconciliation_service import (
    ReconciliationEngine,
    SubscriptionIndex,
)
from ledgersync.utils.cache import TTLCache


logger = get_logger("sync")


@dataclass
class SyncSummary:
    accounts_synced: int = 0
    transactions_synced: int = 0
    transactions_enriched: int = 0
    subscriptions_confirmed: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


class SyncOrchestrator:
    """Execute one claimed job against the aggregator.

    ``trigger`` jobs request a refresh and poll the item before fetching;
    ``sync`` jobs fetch straight away. Jobs carrying a
    ``credit_transaction_id`` replay that single transaction as a refund
    instead of scanning every account.
    """

    def __init__(
        self,
        db: Database,
        client: PluggyClient,
        poller: ItemPoller,
        institutions: TTLCache,
        months_back: int = 12,
        months_forward: int = 1,
        poll_budget_seconds: float = 480.0,
        today: Callable[[], date] = date.today,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.client = client
        self.poller = poller
        self.institutions = institutions
        self.months_back = months_back
        self.months_forward = months_forward
        self.poll_budget_seconds = poll_budget_seconds
        self._today = today
        self._clock = clock

    def run(self, job: SyncJob, heartbeat: Callable[[], object] | None = None) -> SyncSummary:
        """
        Run the protocol variant selected by the job.

        1. Records the correlated sync request as in progress.
        2. For trigger jobs, requests a refresh and polls the item.
        3. Fetches (full scan or single refund transaction).
        4. Records the sync request as succeeded or failed.

        ``heartbeat`` is called after the poll and after each account so
        the queue can keep the job from looking stale.

        Errors are recorded on the sync request and re-raised for the
        queue to mark the job failed.
        """
        beat = heartbeat or (lambda: None)
        deadline = self._clock() + self.poll_budget_seconds
        self._record_status(job, "in_progress", "Sincronizando")

        try:
            if job.type == JobType.TRIGGER.value:
                self.refresh_and_wait(job.item_id, deadline)
                beat()

            if job.is_refund_replay:
                summary = self.replay_refund(job)
            else:
                summary = self.full_sync(job, beat)
        except Exception as e:
            message = e.message if isinstance(e, SyncError) else str(e)
            self._record_status(job, "error", message)
            raise

        self._record_status(job, "success", "Sincronização concluída", summary)
        return summary

    def refresh_and_wait(self, item_id: str, deadline: float) -> None:
        logger.info(f"[{item_id}] Requesting item refresh")
        self.client.refresh_item(item_id)

        result = self.poller.poll(item_id, deadline)
        result.raise_for_outcome(item_id)

        institution = institution_from_item(result.item or {})
        if institution:
            self.institutions.set(item_id, institution)

    def full_sync(self, job: SyncJob, heartbeat: Callable[[], object] = lambda: None) -> SyncSummary:
        """Fetch every account of the item and reconcile its transactions in fetch order."""
        date_from, date_to = build_date_range(self.months_back, self.months_forward, self._today())
        engine = ReconciliationEngine(
            SubscriptionIndex.from_rows(self.db.get_user_subscriptions(job.user_id))
        )
        institution = self.institution_name(job.item_id)
        summary = SyncSummary()

        raw_accounts = self.client.list_accounts(job.item_id)
        logger.info(f"[{job.item_id}] {len(raw_accounts)} account(s), window {date_from}..{date_to}")

        for raw_account in raw_accounts:
            account = parse_account(raw_account, job.user_id, job.item_id, institution)
            self.db.upsert_accounts([account.to_row()])
            summary.accounts_synced += 1

            rows = []
            confirmations = []
            for raw in self.client.list_transactions(account.id, date_from, date_to):
                transaction = parse_transaction(
                    raw, job.user_id, account.id, job.item_id, account.is_credit_card
                )
                if transaction is None:
                    continue

                result = engine.reconcile(transaction)
                rows.append(result.transaction.to_row())
                confirmations.extend(c.to_row() for c in result.confirmations)
                summary.transactions_enriched += int(result.enriched)

            self.db.upsert_transactions(rows)
            self.db.record_subscription_confirmations(confirmations)
            summary.transactions_synced += len(rows)
            summary.subscriptions_confirmed += len(confirmations)
            logger.info(f"[{job.item_id}] Account {account.id}: {len(rows)} transactions")
            heartbeat()

        return summary

    def replay_refund(self, job: SyncJob) -> SyncSummary:
        """Fetch the single credited transaction and store it as a refund."""
        transaction_id = job.credit_transaction_id
        logger.info(f"[{job.item_id}] Replaying refund transaction {transaction_id}")

        raw = self.client.get_transaction(transaction_id)
        account_id = raw.get("accountId")
        if not account_id:
            raise SyncError(f"Refund transaction {transaction_id} has no accountId")
        account_row = self.db.get_account_by_id(account_id)
        is_credit_card = bool(account_row) and Account.model_validate(account_row).is_credit_card

        transaction = parse_transaction(raw, job.user_id, account_id, job.item_id, is_credit_card)
        if transaction is None:
            raise SyncError(f"Refund transaction {transaction_id} has no id or date")

        result = ReconciliationEngine().reconcile(transaction, match_subscriptions=False)
        refund = result.transaction.model_copy(update={"is_refund": True})
        self.db.upsert_transactions([refund.to_row()])

        return SyncSummary(
            transactions_synced=1,
            transactions_enriched=int(result.enriched),
        )

    def institution_name(self, item_id: str) -> str | None:
        """Institution display name for an item, cached per item."""
        return self.institutions.get_or_set(
            item_id, lambda: institution_from_item(self.client.get_item(item_id))
        )

    def _record_status(
        self, job: SyncJob, state: str, message: str, summary: SyncSummary | None = None
    ) -> None:
        now = datetime.now(timezone.utc).isoformat()
        status = {
            "sync_job_id": job.sync_job_id,
            "user_id": job.user_id,
            "item_id": job.item_id,
            "state": state,
            "message": message,
            "updated_at": now,
        }
        if summary is not None:
            status.update(summary.as_dict())
            status["last_synced_at"] = now
        self.db.upsert_sync_status(status)
