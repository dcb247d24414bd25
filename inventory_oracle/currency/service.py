"""
Exchange-rate lookup with caching and stale-on-failure fallback.

Lookup order for ``get_rate(from, to)``:
  1. Identity: ``from == to`` is always ``1.0``.
  2. Fresh cached pair rate, or the pair read from a fresh cached rate table.
  3. Rate sources in priority order; the first positive rate wins and is cached.
  4. On total failure: the most recent cached rate, however old (with a warning).
  5. With nothing cached at all: ``1.0``, a neutral rate that never raises.

Failures in steps 3 to 5 go through the error handler, so a degraded answer
is always recorded as an ``external_api_error``.

Usage::

    service = ExchangeRateService(cache, default_rate_sources(), handler, config.currency)
    eur = await service.convert(25.0, "USD", "EUR")
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from inventory_oracle.cache.store import CacheStore, make_cache_key
from inventory_oracle.config import CurrencyConfig
from inventory_oracle.currency.sources import RateSource
from inventory_oracle.errors.handler import (
    ConfigurationError,
    RecommendationErrorHandler,
    RecommendationSystemError,
)
from inventory_oracle.models.currency import CurrencyRates, ExchangeRate
from inventory_oracle.models.errors import ErrorContext
from inventory_oracle.taxonomy.error_taxonomy import ErrorKind, ErrorSeverity
from inventory_oracle.utils.retry import call_with_retry
from inventory_oracle.utils.time_utils import Clock, utcnow

logger = logging.getLogger(__name__)

_PAIR_OP = "exchange_rate"
_TABLE_OP = "exchange_rates"


class ExchangeRateService:
    """Currency conversion backed by a TTL cache and an ordered provider chain.

    Parameters
    ----------
    cache:
        Shared ``CacheStore``.
    sources:
        Rate providers in priority order. At least one is required.
    error_handler:
        Degradation choke point.
    config:
        ``CurrencyConfig`` (freshness window, retry policy, common currencies).
    clock:
        Returns the current UTC time.
    """

    def __init__(
        self,
        cache: CacheStore,
        sources: Sequence[RateSource],
        error_handler: RecommendationErrorHandler,
        config: Optional[CurrencyConfig] = None,
        clock: Clock = utcnow,
    ) -> None:
        if cache is None:
            raise ConfigurationError("ExchangeRateService requires a cache store.")
        if not sources:
            raise ConfigurationError("ExchangeRateService requires at least one rate source.")
        if error_handler is None:
            raise ConfigurationError("ExchangeRateService requires an error handler.")
        self.cache = cache
        self.sources = list(sources)
        self.error_handler = error_handler
        self.config = config or CurrencyConfig()
        self._clock = clock

    @property
    def base_currency(self) -> str:
        return self.config.base_currency

    # ── Public API ────────────────────────────────────────────────────────────

    async def get_rate(self, from_currency: str, to_currency: str) -> float:
        """Return the rate converting 1 ``from_currency`` into ``to_currency``."""
        src, dst = from_currency.upper(), to_currency.upper()
        if src == dst:
            return 1.0

        cached = await self._cached_rate(src, dst)
        if cached is not None:
            return cached

        try:
            rate = await self._fetch_pair(src, dst)
        except Exception as exc:
            return await self._pair_fallback(exc, src, dst)

        record = ExchangeRate(from_currency=src, to_currency=dst, rate=rate, last_updated=self._clock())
        await self.cache.set(
            make_cache_key(_PAIR_OP, src, dst),
            record.model_dump(mode="json"),
            self.config.rate_freshness_hours,
        )
        return rate

    async def convert(self, amount: float, from_currency: str, to_currency: str) -> float:
        """Convert ``amount`` between currencies. Same-currency input is returned unchanged."""
        if from_currency.upper() == to_currency.upper():
            return amount
        return amount * await self.get_rate(from_currency, to_currency)

    async def get_all_rates(self, base_currency: Optional[str] = None) -> Optional[CurrencyRates]:
        """Return the full rate table for ``base_currency`` (default: configured base).

        Returns ``None`` only when no provider answers and nothing was ever cached.
        """
        base = (base_currency or self.base_currency).upper()
        key = make_cache_key(_TABLE_OP, base)

        cached = await self.cache.get(key)
        if cached is not None:
            return CurrencyRates.model_validate(cached)

        try:
            return await self._refresh_table(base)
        except Exception as exc:
            context = ErrorContext(operation="get_all_rates", additional_data={"base": base})
            entry = await self.cache.get_entry(key)
            if entry is not None:
                logger.warning(
                    "Using stale rate table for %s (%.1fh old).", base, entry.age_hours(self._clock())
                )
                stale = CurrencyRates.model_validate(entry.value)
                return self.error_handler.handle(exc, context, stale, ErrorSeverity.LOW)
            return self.error_handler.handle(exc, context, None, ErrorSeverity.MEDIUM)

    async def update_all(self, currencies: Optional[Sequence[str]] = None) -> dict[str, bool]:
        """Refresh rate tables for each base currency; the daily scheduled job.

        A failure for one currency is recorded and does not stop the others.

        Returns:
            ``{currency: refreshed}`` for every currency attempted.
        """
        targets = [c.upper() for c in (currencies or self.config.common_currencies)]
        results: dict[str, bool] = {}
        for base in targets:
            try:
                await self._refresh_table(base)
            except Exception as exc:
                results[base] = self.error_handler.handle(
                    exc,
                    ErrorContext(operation="update_all_rates", additional_data={"base": base}),
                    False,
                    ErrorSeverity.LOW,
                )
            else:
                results[base] = True
                logger.info("Updated rates for %s.", base)
        logger.info(
            "Rate update finished: %d/%d currencies refreshed.",
            sum(results.values()),
            len(results),
        )
        return results

    # ── Internals ─────────────────────────────────────────────────────────────

    async def _cached_rate(self, src: str, dst: str) -> Optional[float]:
        pair = await self.cache.get(make_cache_key(_PAIR_OP, src, dst))
        if pair is not None:
            return ExchangeRate.model_validate(pair).rate
        table = await self.cache.get(make_cache_key(_TABLE_OP, src))
        if table is not None:
            return CurrencyRates.model_validate(table).rate_to(dst)
        return None

    async def _fetch_pair(self, src: str, dst: str) -> float:
        errors: list[str] = []
        for source in self.sources:
            try:
                return await call_with_retry(
                    lambda source=source: source.fetch_pair(src, dst),
                    timeout_s=self.config.request_timeout_s,
                    max_attempts=self.config.max_retries,
                    wait_s=self.config.retry_wait_s,
                )
            except Exception as exc:
                logger.debug("Rate source %s failed for %s->%s: %s", source.name, src, dst, exc)
                errors.append(f"{source.name}: {exc}")
        raise RecommendationSystemError(
            ErrorKind.EXTERNAL_API_ERROR,
            f"Failed to fetch exchange rate {src} -> {dst} ({'; '.join(errors)})",
            ErrorContext(operation="get_rate", additional_data={"from": src, "to": dst}),
        )

    async def _refresh_table(self, base: str) -> CurrencyRates:
        errors: list[str] = []
        for source in self.sources:
            try:
                rates = await call_with_retry(
                    lambda source=source: source.fetch_table(base),
                    timeout_s=self.config.request_timeout_s,
                    max_attempts=self.config.max_retries,
                    wait_s=self.config.retry_wait_s,
                )
            except Exception as exc:
                logger.debug("Rate source %s failed for table %s: %s", source.name, base, exc)
                errors.append(f"{source.name}: {exc}")
                continue
            table = CurrencyRates(base_currency=base, rates=rates, last_updated=self._clock())
            await self.cache.set(
                make_cache_key(_TABLE_OP, base),
                table.model_dump(mode="json"),
                self.config.rate_freshness_hours,
            )
            return table
        raise RecommendationSystemError(
            ErrorKind.EXTERNAL_API_ERROR,
            f"Failed to fetch rates for {base} ({'; '.join(errors)})",
            ErrorContext(operation="get_all_rates", additional_data={"base": base}),
        )

    async def _pair_fallback(self, exc: Exception, src: str, dst: str) -> float:
        context = ErrorContext(operation="get_rate", additional_data={"from": src, "to": dst})
        now = self._clock()

        entry = await self.cache.get_entry(make_cache_key(_PAIR_OP, src, dst))
        if entry is not None:
            logger.warning(
                "Using stale exchange rate %s->%s (%.1fh old).", src, dst, entry.age_hours(now)
            )
            stale = ExchangeRate.model_validate(entry.value).rate
            return self.error_handler.handle(exc, context, stale, ErrorSeverity.LOW)

        table_entry = await self.cache.get_entry(make_cache_key(_TABLE_OP, src))
        if table_entry is not None:
            rate = CurrencyRates.model_validate(table_entry.value).rate_to(dst)
            if rate is not None:
                logger.warning(
                    "Using stale rate table %s for %s (%.1fh old).", src, dst, table_entry.age_hours(now)
                )
                return self.error_handler.handle(exc, context, rate, ErrorSeverity.LOW)

        logger.warning("No exchange rate available for %s->%s; using 1.0.", src, dst)
        return self.error_handler.handle(exc, context, 1.0, ErrorSeverity.MEDIUM)
