"""Installment marker parsing ("PARC 03/10", "Loja 2 / 6")."""

import re
from typing import NamedTuple

# Digits glued to a word ("Steam1/3") or part of a longer slash run
# ("12/05/2024") are not installment markers.
_INSTALLMENT = re.compile(r"(?<![\w/])(\d+)\s*/\s*(\d+)(?![\w/])")


class Installment(NamedTuple):
    current: int
    total: int


def parse_installment(description: str | None) -> Installment | None:
    """Extract ``current/total`` from a description.

    Only accepts ``0 < current <= total``. When several candidates are
    present, the first valid one wins.
    """
    if not description:
        return None

    for match in _INSTALLMENT.finditer(description):
        current, total = int(match.group(1)), int(match.group(2))
        if 0 < current <= total:
            return Installment(current, total)

    return None
