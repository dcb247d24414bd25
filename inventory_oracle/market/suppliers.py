"""
Supplier price sources.

The market service queries one ``PriceSource`` per supplier, independently.
Real supplier APIs are not integrated; ``SimulatedSupplierSource`` derives a
quote from the component's purchase price with a bounded variation.

The variation is deterministic: a SHA-256 digest of (supplier, component id,
UTC date) picks a value in ``[-variation, +variation]``. The same supplier
quotes the same price for a component all day, so repeated queries are
reproducible, and prices drift from day to day so history and trend analysis
have something to work with.
"""

from __future__ import annotations

import hashlib
import logging
from typing import ClassVar, Protocol
from urllib.parse import quote_plus

from inventory_oracle.currency.formatting import format_quote
from inventory_oracle.models.component import Component
from inventory_oracle.models.market import SupplierQuote
from inventory_oracle.utils.time_utils import Clock, utcnow

logger = logging.getLogger(__name__)

DEFAULT_BASE_PRICE = 10.0


class PriceSource(Protocol):
    name: str
    currency: str

    async def fetch_quote(self, component: Component) -> SupplierQuote:
        """Return this supplier's current quote, or raise on failure."""
        ...


class SimulatedSupplierSource:
    """Deterministic stand-in for a supplier price API.

    Parameters
    ----------
    name:
        Supplier name, e.g. ``"DigiKey"``.
    currency:
        Native currency of the supplier (``"GBP"`` for UK distributors), used
        when a quote carries no currency marker. Simulated quotes are written
        in the component's own currency, with an ISO code where the symbol
        is shared by several currencies.
    variation:
        Maximum relative deviation from the base price (``0.2`` = ±20%).
    clock:
        Returns the current UTC time; the date seeds the variation.
    """

    SEARCH_URL: ClassVar[str] = "https://www.{domain}.com/search?q={query}"

    def __init__(
        self,
        name: str,
        currency: str = "USD",
        variation: float = 0.2,
        clock: Clock = utcnow,
    ) -> None:
        self.name = name
        self.currency = currency.upper()
        self.variation = variation
        self._clock = clock

    def _factor(self, component_id: str) -> float:
        seed = f"{self.name}|{component_id}|{self._clock().date().isoformat()}"
        digest = hashlib.sha256(seed.encode("utf-8")).digest()
        unit = int.from_bytes(digest[:8], "big") / float(2**64)  # [0, 1)
        return 1.0 + (unit * 2.0 - 1.0) * self.variation

    async def fetch_quote(self, component: Component) -> SupplierQuote:
        base = component.purchase_price or DEFAULT_BASE_PRICE
        price = base * self._factor(component.id)
        domain = self.name.lower().replace(" ", "")
        link = self.SEARCH_URL.format(domain=domain, query=quote_plus(component.name))
        return SupplierQuote(price=format_quote(price, component.currency), link=link)


def build_simulated_sources(
    suppliers: list[str],
    supplier_currencies: dict[str, str],
    default_currency: str = "USD",
    variation: float = 0.2,
    clock: Clock = utcnow,
) -> list[SimulatedSupplierSource]:
    """One simulated source per configured supplier."""
    return [
        SimulatedSupplierSource(
            name,
            currency=supplier_currencies.get(name, default_currency),
            variation=variation,
            clock=clock,
        )
        for name in suppliers
    ]
