"""Recurring subscription schemas."""

from pydantic import BaseModel, ConfigDict, Field


class Subscription(BaseModel):
    """A recurring charge the user tracks against a card or account.

    Owned by the subscription-management side; the sync pipeline only
    reads it.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    user_id: str
    name: str
    amount: float | None = None
    account_id: str | None = None
    closing_day: int = Field(..., ge=1, le=31)


class SubscriptionConfirmation(BaseModel):
    """A transaction confirmed a subscription's invoice month."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    subscription_id: str
    invoice_month: str  # YYYY-MM
    transaction_id: str

    def to_row(self) -> dict:
        return self.model_dump()
