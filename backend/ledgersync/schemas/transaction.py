"""Account and transaction records written by the sync pass."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from pydantic import BaseModel, ConfigDict, Field

from ledgersync.schemas.payment import PaymentData, parse_payment_data


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class Account(BaseModel):
    """Connected account, keyed by the aggregator account id."""

    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    item_id: str
    name: str
    institution: str | None = None
    type: str | None = None
    subtype: str | None = None
    balance: float = 0.0
    currency: str = "BRL"
    credit_limit: float | None = None
    available_credit_limit: float | None = None
    closing_day: int | None = Field(None, ge=1, le=31)
    due_day: int | None = Field(None, ge=1, le=31)
    last_updated: datetime | None = None

    @property
    def is_credit_card(self) -> bool:
        kind = f"{self.type or ''} {self.subtype or ''}".upper()
        return "CREDIT" in kind

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class Transaction(BaseModel):
    """Transaction keyed by the aggregator transaction id.

    ``description`` may be rewritten by enrichment; ``description_raw``
    and ``payment_data`` keep what the aggregator sent.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    account_id: str
    item_id: str | None = None
    description: str = ""
    description_raw: str | None = None
    amount: Decimal
    currency: str = "BRL"
    date: date
    category: str = "Outros"
    type: TransactionType
    status: str = "completed"
    installment_number: int | None = None
    total_installments: int | None = None
    is_refund: bool = False
    payment_data: dict[str, Any] | None = None
    synced_at: datetime | None = None

    @property
    def payment(self) -> PaymentData | None:
        return parse_payment_data(self.payment_data)

    def to_row(self) -> dict[str, Any]:
        """Row for an upsert keyed by id.

        ``is_refund`` is only sent when set, so a later full sync of the
        same transaction keeps a flag written by a refund replay. New rows
        take the column default (false). ``amount`` is serialized as a
        decimal string.
        """
        return self.model_dump(mode="json", exclude=None if self.is_refund else {"is_refund"})
