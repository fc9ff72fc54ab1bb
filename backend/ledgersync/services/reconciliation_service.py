"""Reconcile fetched transactions against installments and subscriptions."""

from collections import defaultdict
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable

from pydantic import ValidationError

from ledgersync.logging_config import get_logger
from ledgersync.schemas.subscription import Subscription, SubscriptionConfirmation
from ledgersync.schemas.transaction import Transaction
from ledgersync.services.enrichment import enrich_description
from ledgersync.services.installments import parse_installment
from ledgersync.services.invoice_month import resolve_invoice_month
from ledgersync.services.normalizer import normalize


logger = get_logger("reconciliation")


class SubscriptionIndex:
    """Read-only projection of a user's subscriptions, grouped by account.

    Built from the authoritative ``subscriptions`` rows at the start of a
    sync pass; nothing writes through it.
    """

    def __init__(self, subscriptions: Iterable[Subscription]):
        grouped: dict[str, list[Subscription]] = defaultdict(list)
        names: dict[str, str] = {}
        for subscription in subscriptions:
            if not subscription.account_id:
                continue
            normalized = normalize(subscription.name)
            # An empty name would be a substring of every description
            if not normalized:
                continue
            grouped[subscription.account_id].append(subscription)
            names[subscription.id] = normalized

        self._by_account = MappingProxyType(
            {account_id: tuple(subs) for account_id, subs in grouped.items()}
        )
        self._names = MappingProxyType(names)

    @classmethod
    def from_rows(cls, rows: Iterable[dict]) -> "SubscriptionIndex":
        """Build from storage rows, skipping rows that fail validation."""
        subscriptions = []
        for row in rows:
            try:
                subscriptions.append(Subscription.model_validate(row))
            except ValidationError as e:
                logger.warning(
                    f"Skipping invalid subscription {row.get('id')}: {e.error_count()} error(s)"
                )
        return cls(subscriptions)

    def for_account(self, account_id: str) -> tuple[Subscription, ...]:
        return self._by_account.get(account_id, ())

    def normalized_name(self, subscription: Subscription) -> str:
        return self._names[subscription.id]

    def __len__(self) -> int:
        return len(self._names)


@dataclass
class ReconciliationResult:
    """Outcome of reconciling one transaction."""

    transaction: Transaction
    confirmations: list[SubscriptionConfirmation] = field(default_factory=list)
    enriched: bool = False


class ReconciliationEngine:
    """Decide how a freshly fetched transaction maps onto local state.

    Steps, in order: installment tagging from the raw description,
    subscription matching on the normalized description, then
    description enrichment. The engine never mutates subscriptions; it
    emits confirmations for the subscription-status side to consume.
    """

    def __init__(self, subscriptions: SubscriptionIndex | None = None):
        self.subscriptions = subscriptions if subscriptions is not None else SubscriptionIndex([])

    def reconcile(
        self, transaction: Transaction, match_subscriptions: bool = True
    ) -> ReconciliationResult:
        updates: dict = {}

        # 1. Installments (aggregator metadata wins over parsing)
        if transaction.installment_number is None:
            installment = parse_installment(
                transaction.description_raw or transaction.description
            )
            if installment:
                updates["installment_number"] = installment.current
                updates["total_installments"] = installment.total

        # 2. Subscriptions
        confirmations = []
        if match_subscriptions:
            confirmations = self.match_subscriptions(transaction)

        # 3. Enrichment
        enriched = enrich_description(transaction.description, transaction.payment)
        if enriched and enriched != transaction.description:
            logger.debug(
                f"[{transaction.id}] Enriched '{transaction.description}' -> '{enriched}'"
            )
            updates["description"] = enriched

        if updates:
            transaction = transaction.model_copy(update=updates)

        return ReconciliationResult(
            transaction=transaction,
            confirmations=confirmations,
            enriched="description" in updates,
        )

    def match_subscriptions(self, transaction: Transaction) -> list[SubscriptionConfirmation]:
        """Confirm every subscription on this account whose name appears in the description."""
        candidates = self.subscriptions.for_account(transaction.account_id)
        if not candidates:
            return []

        description = normalize(transaction.description)
        confirmations = []
        for subscription in candidates:
            if subscription.user_id != transaction.user_id:
                continue
            if self.subscriptions.normalized_name(subscription) not in description:
                continue

            invoice_month = resolve_invoice_month(transaction.date, subscription.closing_day)
            logger.info(
                f"[{transaction.id}] Matches subscription {subscription.id} "
                f"({subscription.name}), invoice {invoice_month.key}"
            )
            confirmations.append(
                SubscriptionConfirmation(
                    user_id=transaction.user_id,
                    subscription_id=subscription.id,
                    invoice_month=invoice_month.key,
                    transaction_id=transaction.id,
                )
            )

        return confirmations
