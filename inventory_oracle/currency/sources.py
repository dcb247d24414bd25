"""
Exchange-rate providers.

Each provider answers either a full rate table for a base currency or a
single pair rate. The currency service tries them in order and the first
positive answer wins.

Providers:
  - ``ExchangeRateApiSource``  https://api.exchangerate-api.com/v4/latest/{base}  (no key)
  - ``FixerSource``            https://api.fixer.io/latest                       (access key)
  - ``CurrencyLayerSource``    http://api.currencylayer.com/live                 (access key)

Keyed providers raise ``RateSourceError`` immediately when their key is not
configured, so the service simply moves on to the next one.

Credential setup (.env, gitignored)::

    INVENTORY_ORACLE_FIXER_API_KEY=...
    INVENTORY_ORACLE_CURRENCYLAYER_API_KEY=...

An ``httpx.AsyncClient`` may be injected (tests pass one built on
``httpx.MockTransport``); otherwise a short-lived client is opened per call.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, ClassVar, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)


class RateSourceError(RuntimeError):
    """Raised when a provider cannot answer (bad payload, missing key, no rate)."""


class RateSource(Protocol):
    name: str

    async def fetch_table(self, base: str) -> dict[str, float]:
        """Return ``{currency: rate}`` for 1 unit of ``base``."""
        ...

    async def fetch_pair(self, from_currency: str, to_currency: str) -> float:
        """Return the rate converting 1 ``from_currency`` into ``to_currency``."""
        ...


class _HttpRateSource:
    """Shared request plumbing for the HTTP providers."""

    name: ClassVar[str] = "http"

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout_s: float = 10.0) -> None:
        self._client = client
        self._timeout_s = timeout_s

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
        else:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                yield client

    async def _get_json(self, url: str, params: Optional[dict[str, str]] = None) -> dict[str, Any]:
        async with self._session() as client:
            resp = await client.get(url, params=params)
            resp.raise_for_status()
            data = resp.json()
        if not isinstance(data, dict):
            raise RateSourceError(f"{self.name}: unexpected payload type {type(data).__name__}")
        return data

    @staticmethod
    def _positive(rate: Any, label: str) -> float:
        try:
            value = float(rate)
        except (TypeError, ValueError) as exc:
            raise RateSourceError(f"{label}: no usable rate ({rate!r})") from exc
        if value <= 0:
            raise RateSourceError(f"{label}: non-positive rate {value}")
        return value


class ExchangeRateApiSource(_HttpRateSource):
    """Keyless provider; always returns the full table for the base currency."""

    name: ClassVar[str] = "exchangerate-api"
    URL_TEMPLATE: ClassVar[str] = "https://api.exchangerate-api.com/v4/latest/{base}"

    async def fetch_table(self, base: str) -> dict[str, float]:
        data = await self._get_json(self.URL_TEMPLATE.format(base=base.upper()))
        rates = data.get("rates")
        if not isinstance(rates, dict) or not rates:
            raise RateSourceError(f"{self.name}: response has no rates for {base}")
        return {code.upper(): float(rate) for code, rate in rates.items()}

    async def fetch_pair(self, from_currency: str, to_currency: str) -> float:
        table = await self.fetch_table(from_currency)
        return self._positive(table.get(to_currency.upper()), self.name)


class FixerSource(_HttpRateSource):
    """Fixer.io provider; needs an access key."""

    name: ClassVar[str] = "fixer"
    URL: ClassVar[str] = "https://api.fixer.io/latest"

    def __init__(
        self,
        api_key: Optional[str],
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 10.0,
    ) -> None:
        super().__init__(client, timeout_s)
        self._api_key = api_key

    def _require_key(self) -> str:
        if not self._api_key:
            raise RateSourceError(f"{self.name}: API key not configured")
        return self._api_key

    async def _latest(self, base: str, symbols: Optional[str] = None) -> dict[str, Any]:
        params = {"base": base.upper(), "access_key": self._require_key()}
        if symbols:
            params["symbols"] = symbols.upper()
        data = await self._get_json(self.URL, params=params)
        if not data.get("success"):
            raise RateSourceError(f"{self.name}: request unsuccessful ({data.get('error')})")
        return data

    async def fetch_table(self, base: str) -> dict[str, float]:
        data = await self._latest(base)
        return {code.upper(): float(rate) for code, rate in data.get("rates", {}).items()}

    async def fetch_pair(self, from_currency: str, to_currency: str) -> float:
        data = await self._latest(from_currency, to_currency)
        return self._positive(data.get("rates", {}).get(to_currency.upper()), self.name)


class CurrencyLayerSource(_HttpRateSource):
    """CurrencyLayer provider; quotes are keyed ``"{SOURCE}{TARGET}"``, e.g. ``"USDEUR"``."""

    name: ClassVar[str] = "currencylayer"
    URL: ClassVar[str] = "http://api.currencylayer.com/live"

    def __init__(
        self,
        api_key: Optional[str],
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 10.0,
    ) -> None:
        super().__init__(client, timeout_s)
        self._api_key = api_key

    async def _live(self, source: str, currencies: Optional[str] = None) -> dict[str, float]:
        if not self._api_key:
            raise RateSourceError(f"{self.name}: API key not configured")
        params = {"access_key": self._api_key, "source": source.upper()}
        if currencies:
            params["currencies"] = currencies.upper()
        data = await self._get_json(self.URL, params=params)
        if not data.get("success"):
            raise RateSourceError(f"{self.name}: request unsuccessful ({data.get('error')})")
        return data.get("quotes", {})

    async def fetch_table(self, base: str) -> dict[str, float]:
        prefix = base.upper()
        quotes = await self._live(prefix)
        return {
            key[len(prefix):]: float(rate)
            for key, rate in quotes.items()
            if key.startswith(prefix) and len(key) == len(prefix) + 3
        }

    async def fetch_pair(self, from_currency: str, to_currency: str) -> float:
        quotes = await self._live(from_currency, to_currency)
        key = f"{from_currency.upper()}{to_currency.upper()}"
        return self._positive(quotes.get(key), self.name)


def default_rate_sources(
    fixer_api_key: Optional[str] = None,
    currencylayer_api_key: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
    timeout_s: float = 10.0,
) -> list[RateSource]:
    """Build the provider chain in priority order."""
    return [
        ExchangeRateApiSource(client=client, timeout_s=timeout_s),
        FixerSource(fixer_api_key, client=client, timeout_s=timeout_s),
        CurrencyLayerSource(currencylayer_api_key, client=client, timeout_s=timeout_s),
    ]
