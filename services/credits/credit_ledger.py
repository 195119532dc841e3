"""Read-only client for the remote credit ledger."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

LOGGER = logging.getLogger(__name__)


class CreditLedgerError(RuntimeError):
    """Raised when the credit balance cannot be fetched."""


class CreditLedger:
    """Fetch and cache the user's credit balance.

    The ledger is the balance oracle for the generation precheck. It never
    adjusts the balance locally: the backend deducts credits as a side
    effect of generation, and callers re-fetch afterwards.

    Args:
        client: Async HTTP client used for balance requests.
        balance_url: Endpoint returning the balance as a JSON integer or
            an object with a ``balance`` field.
        token: Optional bearer token sent with each request.
    """

    def __init__(self, client: httpx.AsyncClient, balance_url: str, *, token: Optional[str] = None) -> None:
        if client is None:
            raise ValueError("httpx.AsyncClient is required.")
        if not balance_url:
            raise ValueError("Credit balance URL is required.")
        self.client = client
        self.balance_url = balance_url
        self.token = token
        self.balance: Optional[int] = None
        self.is_loading = False

    async def fetch_balance(self) -> int:
        """Fetch the authoritative balance and cache it.

        Safe to call repeatedly; every call re-reads the remote ledger.

        Raises:
            CreditLedgerError: If the request fails or the payload is not a
                non-negative integer.
        """
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        self.is_loading = True
        try:
            try:
                response = await self.client.post(self.balance_url, headers=headers)
            except httpx.HTTPError as exc:
                raise CreditLedgerError(f"Balance request failed: {exc}") from exc
            if response.status_code != 200:
                raise CreditLedgerError(
                    f"Balance request failed with status {response.status_code}: {response.text[:200]}"
                )
            try:
                payload = response.json()
            except ValueError as exc:
                raise CreditLedgerError("Balance response was not JSON.") from exc
            balance = self._parse_balance(payload)
        finally:
            self.is_loading = False

        self.balance = balance
        LOGGER.debug("Credit balance refreshed: %d", balance)
        return balance

    async def current_balance(self) -> int:
        """Return the cached balance, fetching it once if nothing is cached."""
        if self.balance is None:
            return await self.fetch_balance()
        return self.balance

    @staticmethod
    def _parse_balance(payload: Any) -> int:
        value = payload.get("balance") if isinstance(payload, dict) else payload
        if value is None:
            return 0
        if isinstance(value, bool) or not isinstance(value, (int, float)) or int(value) != value:
            raise CreditLedgerError(f"Unexpected balance payload: {payload!r}")
        if value < 0:
            raise CreditLedgerError(f"Balance must be non-negative, got {value}")
        return int(value)
