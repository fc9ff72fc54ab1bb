"""Pluggy API client and payload parsing.

Pluggy authenticates with a short-lived API key obtained from ``POST /auth``
and sent as ``X-API-KEY``. The key is cached for a few minutes; a 401/403
drops it, fetches a fresh one and retries the call once.

Documentation: https://docs.pluggy.ai
"""

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from ledgersync.config import Settings
from ledgersync.errors import (
    AggregatorAuthError,
    PermanentAPIError,
    TransientNetworkError,
)
from ledgersync.logging_config import get_logger
from ledgersync.schemas.transaction import Account, Transaction, TransactionType
from ledgersync.utils.cache import TTLCache


logger = get_logger("pluggy")

ACCOUNTS_PAGE_SIZE = 200
TRANSACTIONS_PAGE_SIZE = 500

_API_KEY = "api_key"
_AUTH_STATUSES = (401, 403)

CATEGORY_LABELS = {
    "FOOD_RESTAURANTS": "Alimentacao",
    "TRANSFERS": "Transferencias",
    "ENTERTAINMENT": "Lazer",
    "TRANSPORTATION": "Transporte",
    "UTILITIES": "Contas",
    "SHOPPING": "Compras",
    "HEALTH": "Saude",
    "EDUCATION": "Educacao",
    "TRAVEL": "Viagem",
    "SERVICES": "Servicos",
}


class PluggyClient:
    """Thin synchronous client over the Pluggy REST API."""

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        static_api_key: str | None = None,
        key_cache: TTLCache | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.static_api_key = (static_api_key or "").strip() or None
        self.key_cache = key_cache if key_cache is not None else TTLCache(ttl_seconds=600, maxsize=1)
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        key_cache: TTLCache | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> "PluggyClient":
        return cls(
            base_url=settings.pluggy_api_url,
            client_id=settings.pluggy_client_id,
            client_secret=settings.pluggy_client_secret,
            static_api_key=settings.pluggy_api_key,
            key_cache=key_cache if key_cache is not None else TTLCache(
                ttl_seconds=settings.pluggy_api_key_ttl_seconds, maxsize=1
            ),
            timeout=settings.pluggy_timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "PluggyClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # --- Auth ---

    def get_api_key(self) -> str:
        """Return a usable API key, authenticating when the cache is empty."""
        if self.static_api_key:
            return self.static_api_key
        return self.key_cache.get_or_set(_API_KEY, self._authenticate)

    def _authenticate(self) -> str:
        if not self.client_id or not self.client_secret:
            raise AggregatorAuthError(
                "Pluggy credentials not configured (PLUGGY_CLIENT_ID/PLUGGY_CLIENT_SECRET)"
            )

        logger.info("Requesting new Pluggy API key")
        response = self._send(
            "POST",
            "/auth",
            json={"clientId": self.client_id, "clientSecret": self.client_secret},
        )
        if response.status_code in _AUTH_STATUSES:
            raise AggregatorAuthError(
                f"Pluggy rejected client credentials ({response.status_code}): {response.text}"
            )
        _raise_for_status(response, "POST", "/auth")

        api_key = response.json().get("apiKey")
        if not api_key:
            raise AggregatorAuthError("Pluggy /auth response did not include an apiKey")
        return api_key

    # --- Requests ---

    def request(
        self,
        method: str,
        endpoint: str,
        params: dict | None = None,
        json: Any = None,
    ) -> Any:
        """Send an authenticated request and return the decoded body.

        Raises:
            AggregatorAuthError: Still unauthorized after one key refresh.
            TransientNetworkError: Timeout, transport failure, 5xx or 429.
            PermanentAPIError: Any other 4xx.
        """
        response = self._send(method, endpoint, params=params, json=json, api_key=self.get_api_key())

        if response.status_code in _AUTH_STATUSES:
            logger.warning(
                f"{method} {endpoint} returned {response.status_code}, refreshing API key and retrying"
            )
            self.key_cache.invalidate(_API_KEY)
            response = self._send(
                method, endpoint, params=params, json=json, api_key=self.get_api_key()
            )
            if response.status_code in _AUTH_STATUSES:
                raise AggregatorAuthError(
                    f"{method} {endpoint} unauthorized after key refresh "
                    f"({response.status_code}): {response.text}"
                )

        _raise_for_status(response, method, endpoint)
        if not response.content:
            return {}
        return response.json()

    def _send(
        self,
        method: str,
        endpoint: str,
        params: dict | None = None,
        json: Any = None,
        api_key: str | None = None,
    ) -> httpx.Response:
        headers = {"X-API-KEY": api_key} if api_key else None
        logger.debug(f"Pluggy request: {method} {endpoint} params={params}")
        try:
            return self._http.request(method, endpoint, params=params, json=json, headers=headers)
        except httpx.TimeoutException as e:
            raise TransientNetworkError(f"Timeout calling {method} {endpoint}: {e}") from e
        except httpx.TransportError as e:
            raise TransientNetworkError(f"Network error calling {method} {endpoint}: {e}") from e

    def _paginate(self, endpoint: str, params: dict, page_size: int) -> list[dict]:
        results: list[dict] = []
        page = 1
        total_pages = 1
        while page <= total_pages:
            data = self.request("GET", endpoint, params={**params, "page": page, "pageSize": page_size})
            results.extend(data.get("results") or [])
            total_pages = data.get("totalPages") or 1
            page += 1
        return results

    # --- Endpoints ---

    def refresh_item(self, item_id: str) -> dict:
        """Ask Pluggy to pull fresh data from the institution."""
        return self.request("PATCH", f"/items/{item_id}", json={})

    def get_item(self, item_id: str) -> dict:
        return self.request("GET", f"/items/{item_id}")

    def list_accounts(self, item_id: str) -> list[dict]:
        return self._paginate("/accounts", {"itemId": item_id}, ACCOUNTS_PAGE_SIZE)

    def list_transactions(
        self, account_id: str, date_from: str, date_to: str | None = None
    ) -> list[dict]:
        params = {"accountId": account_id, "from": date_from}
        if date_to:
            params["to"] = date_to
        return self._paginate("/transactions", params, TRANSACTIONS_PAGE_SIZE)

    def get_transaction(self, transaction_id: str) -> dict:
        return self.request("GET", f"/transactions/{transaction_id}")


def _raise_for_status(response: httpx.Response, method: str, endpoint: str) -> None:
    status = response.status_code
    if status < 400:
        return
    if status >= 500 or status == 429:
        raise TransientNetworkError(f"{method} {endpoint} returned {status}: {response.text}")
    raise PermanentAPIError(
        f"{method} {endpoint} returned {status}: {response.text}",
        status_code=status,
        body=response.text,
    )


# ============================================================================
# Parsing
# ============================================================================

def build_date_range(months_back: int, months_forward: int, today: date | None = None) -> tuple[str, str]:
    """First day of ``today - months_back`` to last day of ``today + months_forward``."""
    today = today or date.today()
    start_index = today.year * 12 + (today.month - 1) - abs(months_back)
    end_index = today.year * 12 + (today.month - 1) + abs(months_forward) + 1

    date_from = date(start_index // 12, start_index % 12 + 1, 1)
    first_after = date(end_index // 12, end_index % 12 + 1, 1)
    date_to = date.fromordinal(first_after.toordinal() - 1)
    return date_from.isoformat(), date_to.isoformat()


def translate_category(category: str | None) -> str:
    if not category:
        return "Outros"
    return CATEGORY_LABELS.get(category, category)


def _day_of(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return int(value.split("T")[0].split("-")[2])
    except (IndexError, ValueError):
        return None


def _to_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _to_float(value: Any) -> float | None:
    amount = _to_decimal(value)
    return None if amount is None else float(amount)


def institution_from_item(item: dict) -> str | None:
    connector = item.get("connector") or {}
    return connector.get("name")


def parse_account(raw: dict, user_id: str, item_id: str, institution: str | None) -> Account:
    """Map a Pluggy account payload to an ``Account`` row."""
    credit = raw.get("creditData") or {}
    return Account(
        id=raw["id"],
        user_id=user_id,
        item_id=raw.get("itemId") or item_id,
        name=raw.get("marketingName") or raw.get("name") or "Conta",
        institution=institution,
        type=raw.get("type"),
        subtype=raw.get("subtype"),
        balance=_to_float(raw.get("balance")) or 0.0,
        currency=raw.get("currencyCode") or "BRL",
        credit_limit=_to_float(credit.get("creditLimit")),
        available_credit_limit=_to_float(credit.get("availableCreditLimit")),
        closing_day=_day_of(credit.get("balanceCloseDate")),
        due_day=_day_of(credit.get("balanceDueDate")),
        last_updated=datetime.now(timezone.utc),
    )


def parse_transaction(
    raw: dict,
    user_id: str,
    account_id: str,
    item_id: str | None = None,
    is_credit_card: bool = False,
) -> Transaction | None:
    """Map a Pluggy transaction payload to a ``Transaction``.

    Returns None for payloads without an id or a date.
    """
    transaction_id = raw.get("id")
    meta = raw.get("creditCardMetadata") or {}
    raw_date = raw.get("date") or meta.get("purchaseDate")
    if not transaction_id or not raw_date:
        logger.warning(f"Skipping transaction without id/date on account {account_id}")
        return None

    amount = _to_decimal(raw.get("amount")) or Decimal("0")

    # Card statements report purchases as positive amounts; bank
    # accounts say CREDIT/DEBIT explicitly.
    if is_credit_card:
        kind = TransactionType.EXPENSE if amount >= 0 else TransactionType.INCOME
    elif (raw.get("type") or "").upper() == "CREDIT":
        kind = TransactionType.INCOME
    elif (raw.get("type") or "").upper() == "DEBIT":
        kind = TransactionType.EXPENSE
    else:
        kind = TransactionType.INCOME if amount > 0 else TransactionType.EXPENSE

    return Transaction(
        id=transaction_id,
        user_id=user_id,
        account_id=raw.get("accountId") or account_id,
        item_id=item_id,
        description=raw.get("description") or "Lancamento",
        description_raw=raw.get("descriptionRaw") or raw.get("description"),
        amount=amount,
        currency=raw.get("currencyCode") or "BRL",
        date=date.fromisoformat(raw_date.split("T")[0]),
        category=translate_category(raw.get("category")),
        type=kind,
        status="pending" if (raw.get("status") or "").upper() == "PENDING" else "completed",
        installment_number=meta.get("installmentNumber") or None,
        total_installments=meta.get("totalInstallments") or None,
        payment_data=raw.get("paymentData"),
        synced_at=datetime.now(timezone.utc),
    )
