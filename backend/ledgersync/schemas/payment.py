"""Typed view over the aggregator's ``paymentData`` payload.

The aggregator sends loosely shaped payment metadata. It is parsed into
one variant per known payment method; anything else lands in
``UnknownPayment`` with the raw payload attached.
"""

from typing import Any, Literal, Union
from pydantic import BaseModel, ConfigDict, Field, ValidationError


class Party(BaseModel):
    """Payer or receiver of a transfer."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = None


class _Payment(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    payer: Party | None = None
    receiver: Party | None = None
    reason: str | None = None
    reference_number: str | None = Field(None, alias="referenceNumber")

    @property
    def payer_name(self) -> str | None:
        return _clean(self.payer.name if self.payer else None)

    @property
    def receiver_name(self) -> str | None:
        return _clean(self.receiver.name if self.receiver else None)

    def counterparty_name(self, received: bool) -> str | None:
        """Name of the other side of the transfer.

        For money received that is the payer, for money sent the receiver.
        Falls back to whichever name the aggregator did send.
        """
        if received:
            return self.payer_name or self.receiver_name
        return self.receiver_name or self.payer_name


class PixPayment(_Payment):
    method: Literal["PIX"] = "PIX"


class TedPayment(_Payment):
    method: Literal["TED"] = "TED"


class BoletoPayment(_Payment):
    method: Literal["BOLETO"] = "BOLETO"


class CardPayment(_Payment):
    method: Literal["CARD"] = "CARD"


class UnknownPayment(_Payment):
    method: Literal["UNKNOWN"] = "UNKNOWN"
    raw: dict[str, Any] = Field(default_factory=dict)


PaymentData = Union[PixPayment, TedPayment, BoletoPayment, CardPayment, UnknownPayment]

_METHODS: dict[str, type[_Payment]] = {
    "PIX": PixPayment,
    "TED": TedPayment,
    "BOLETO": BoletoPayment,
    "CARD": CardPayment,
    "CREDIT_CARD": CardPayment,
    "DEBIT_CARD": CardPayment,
}


def _clean(name: str | None) -> str | None:
    if name is None:
        return None
    name = name.strip()
    return name or None


def parse_payment_data(raw: dict[str, Any] | None) -> PaymentData | None:
    """Parse raw ``paymentData`` into its tagged variant."""
    if not raw or not isinstance(raw, dict):
        return None

    method = str(raw.get("paymentMethod") or "").upper()
    fields = {key: value for key, value in raw.items() if key != "method"}
    model = _METHODS.get(method)

    try:
        if model is None:
            return UnknownPayment.model_validate({**fields, "raw": raw})
        return model.model_validate(fields)
    except ValidationError:
        # Payer/receiver in an unexpected shape; keep the payload for audit
        return UnknownPayment(raw=raw)
