"""Rewrite generic PIX/TED descriptions using the counterparty name.

Banks often send "PIX RECEBIDO" or "TRANSF ENVIADA PIX   FULANO" as the
whole description. When the counterparty can be recovered, either from
the description tail or from the payment metadata, the description is
replaced with a readable template such as "Pix Recebido De Fulano".
Templated output never matches the generic forms again, so enrichment
is idempotent.
"""

import re
from typing import NamedTuple

from ledgersync.schemas.payment import PaymentData
from ledgersync.services.normalizer import normalize

# (normalized prefix, method, money received?) - longest prefixes first
_GENERIC_FORMS = [
    ("transf recebida pix", "PIX", True),
    ("transf enviada pix", "PIX", False),
    ("pix recebido", "PIX", True),
    ("pix enviado", "PIX", False),
    ("ted recebida", "TED", True),
    ("ted recebido", "TED", True),
    ("ted enviada", "TED", False),
    ("ted enviado", "TED", False),
]

_TEMPLATES = {
    ("PIX", True): "Pix Recebido De {name}",
    ("PIX", False): "Pix Enviado Para {name}",
    ("TED", True): "TED Recebido De {name}",
    ("TED", False): "TED Enviado Para {name}",
}

# Bank layout with the name after a wide gap ("PIX RECEBIDO   ACME") or
# after the bank tag ("PIX RECEBIDO C6 ACME")
_NAMED_TAILS = {
    prefix: re.compile(
        r"^" + r"\s+".join(prefix.split()) + r"(?:\s{2,}|\s+c6\s+)(?P<name>.+)$",
        re.IGNORECASE,
    )
    for prefix, _, _ in _GENERIC_FORMS
}

_MIN_NAME_LENGTH = 3


class GenericDescription(NamedTuple):
    method: str
    received: bool
    embedded_name: str | None


def format_name(name: str) -> str:
    """Title-case a person or company name: "ACME  LTDA" -> "Acme Ltda"."""
    return " ".join(word.capitalize() for word in name.split())


def match_generic(description: str | None) -> GenericDescription | None:
    """Classify a description as one of the generic transfer forms."""
    normalized = normalize(description)
    if not normalized:
        return None

    raw = (description or "").strip()
    for prefix, method, received in _GENERIC_FORMS:
        if normalized == prefix:
            return GenericDescription(method, received, None)
        if not normalized.startswith(prefix + " "):
            continue

        match = _NAMED_TAILS[prefix].match(raw)
        if match and len(match.group("name").strip()) >= _MIN_NAME_LENGTH:
            return GenericDescription(method, received, match.group("name").strip())

    return None


def enrich_description(description: str | None, payment: PaymentData | None) -> str | None:
    """Return the enriched description, or None when it should stay as is."""
    generic = match_generic(description)
    if generic is None:
        return None

    name = generic.embedded_name
    if not name and payment is not None:
        name = payment.counterparty_name(generic.received)
    if not name:
        return None

    return _TEMPLATES[(generic.method, generic.received)].format(name=format_name(name))
