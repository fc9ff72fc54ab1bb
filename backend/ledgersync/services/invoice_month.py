"""Credit card invoice month resolution."""

from datetime import date
from typing import NamedTuple


class InvoiceMonth(NamedTuple):
    year: int
    month: int

    @property
    def key(self) -> str:
        """``YYYY-MM`` form used in storage."""
        return f"{self.year:04d}-{self.month:02d}"

    def __str__(self) -> str:
        return self.key


def resolve_invoice_month(transaction_date: date, closing_day: int) -> InvoiceMonth:
    """Return the invoice month a card charge is billed under.

    A charge made after the statement closing day goes on the next
    month's invoice; a charge on or before it stays in the current one.

    Args:
        transaction_date: Date the charge was posted.
        closing_day: Card statement closing day (1-31).

    Returns:
        The invoice year and month.
    """
    if not 1 <= closing_day <= 31:
        raise ValueError(f"closing_day must be between 1 and 31, got {closing_day}")

    year, month = transaction_date.year, transaction_date.month
    if transaction_date.day > closing_day:
        if month == 12:
            year, month = year + 1, 1
        else:
            month += 1

    return InvoiceMonth(year, month)
