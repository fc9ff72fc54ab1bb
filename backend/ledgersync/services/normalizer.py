"""Description normalization used for matching and generic-description checks."""

import re

_DATE_TOKEN = re.compile(r"\b\d{1,2}/\d{1,2}\b")
_PUNCTUATION = re.compile(r"[^\w\s]|_")
_INSTALLMENT_TOKEN = re.compile(r"\b\d+x\b", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def normalize(text: str | None) -> str:
    """Reduce a description to lowercase words for comparison.

    Drops ``DD/MM`` dates, ``12x`` installment markers and punctuation,
    then collapses whitespace. Total and idempotent:
    ``normalize(normalize(s)) == normalize(s)``.

    Punctuation becomes a space rather than vanishing, and installment
    markers are stripped after it, so removing one token can never glue
    two fragments into a new strippable token.
    """
    if not text:
        return ""

    value = str(text).lower()
    value = _DATE_TOKEN.sub(" ", value)
    value = _PUNCTUATION.sub(" ", value)
    value = _INSTALLMENT_TOKEN.sub(" ", value)
    return _WHITESPACE.sub(" ", value).strip()
