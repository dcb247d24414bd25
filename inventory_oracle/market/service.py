"""
Market data aggregation across suppliers.

``MarketDataService`` queries every configured supplier concurrently, with
a per-supplier timeout and bounded retries, and isolates failures so one
supplier never cancels or fails the others. Prices are normalized to a
target currency through ``ExchangeRateService`` and cached per
(component, currency). Every fetch also appends to a per-day price-history
bucket that feeds trend analysis.

Price alerts are kept in memory and mirrored to the cache. They are evaluated
by ``refresh_prices()``, the scheduled job, against freshly fetched prices.

Usage::

    market = MarketDataService(inventory, cache, currency, handler, sources, config.market)
    items = await market.fetch_market_data("esp32-01", target_currency="EUR")
    comparison = await market.get_price_comparison("esp32-01")
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional, Sequence

from inventory_oracle.cache.store import CacheStore, make_cache_key
from inventory_oracle.config import CacheConfig, MarketConfig
from inventory_oracle.currency.formatting import extract_currency, format_price, parse_price
from inventory_oracle.currency.service import ExchangeRateService
from inventory_oracle.errors.handler import (
    ConfigurationError,
    RecommendationErrorHandler,
    RecommendationSystemError,
)
from inventory_oracle.market.alerts import should_trigger
from inventory_oracle.market.suppliers import PriceSource
from inventory_oracle.market.trends import (
    analyze_seasonality,
    calculate_trend,
    project_prices,
    trend_strength,
)
from inventory_oracle.models.component import Component
from inventory_oracle.models.errors import ErrorContext
from inventory_oracle.models.market import (
    Availability,
    LowestPrice,
    MarketDataItem,
    MarketDataStats,
    MarketTrend,
    NotificationMethod,
    PriceAlert,
    PriceAlertType,
    PriceComparison,
    PricePoint,
    PriceRange,
    SupplierPrice,
    SupplierQuote,
)
from inventory_oracle.scheduler import IntervalJob, Scheduler
from inventory_oracle.stores import InventoryStore
from inventory_oracle.taxonomy.error_taxonomy import ErrorKind, ErrorSeverity
from inventory_oracle.utils.retry import call_with_retry
from inventory_oracle.utils.time_utils import Clock, utcnow

logger = logging.getLogger(__name__)

AlertSink = Callable[[PriceAlert, float], Awaitable[None]]

MONITORING_JOB_NAME = "market-price-refresh"

# Category-level drivers reported alongside trend analysis.
CATEGORY_MARKET_FACTORS: dict[str, list[str]] = {
    "Microcontroller": ["Semiconductor shortage", "New product releases"],
    "Sensor": ["IoT market growth", "Manufacturing capacity"],
}

_UPDATABLE_ALERT_FIELDS = frozenset(
    {"threshold", "target_price", "is_active", "notification_method", "alert_type"}
)


class MarketDataService:
    """Multi-supplier price aggregation, trend analysis and price alerts.

    Parameters
    ----------
    inventory:
        Read-only component store.
    cache:
        Shared ``CacheStore``.
    currency:
        Exchange-rate service used for normalization.
    error_handler:
        Degradation choke point.
    price_sources:
        One source per supplier.
    config:
        ``MarketConfig`` (retry policy, reliable suppliers, trend constants).
    cache_config:
        TTLs for market data, price history and alerts.
    user_currency:
        Default target currency; changed with ``set_user_currency``.
    alert_sink:
        Optional coroutine receiving ``(alert, current_min_price)`` when an
        alert fires.
    clock:
        Returns the current UTC time.
    """

    def __init__(
        self,
        inventory: InventoryStore,
        cache: CacheStore,
        currency: ExchangeRateService,
        error_handler: RecommendationErrorHandler,
        price_sources: Sequence[PriceSource],
        config: Optional[MarketConfig] = None,
        cache_config: Optional[CacheConfig] = None,
        user_currency: Optional[str] = None,
        alert_sink: Optional[AlertSink] = None,
        clock: Clock = utcnow,
    ) -> None:
        if inventory is None:
            raise ConfigurationError("MarketDataService requires an inventory store.")
        if cache is None:
            raise ConfigurationError("MarketDataService requires a cache store.")
        if currency is None:
            raise ConfigurationError("MarketDataService requires an exchange-rate service.")
        if error_handler is None:
            raise ConfigurationError("MarketDataService requires an error handler.")
        if not price_sources:
            raise ConfigurationError("MarketDataService requires at least one price source.")

        self.inventory = inventory
        self.cache = cache
        self.currency = currency
        self.error_handler = error_handler
        self.price_sources = list(price_sources)
        self.config = config or MarketConfig()
        self.cache_config = cache_config or CacheConfig()
        self.user_currency = (user_currency or currency.base_currency).upper()
        self.alert_sink = alert_sink
        self._clock = clock

        self._alerts: dict[str, PriceAlert] = {}
        self._tracked: set[str] = set()
        self._refresh_cursor = 0
        self._last_update: Optional[datetime] = None

    # ── Price fetching ────────────────────────────────────────────────────────

    async def fetch_market_data(
        self,
        component_id: str,
        force_refresh: bool = False,
        target_currency: Optional[str] = None,
    ) -> list[MarketDataItem]:
        """Return every supplier's price for a component in ``target_currency``.

        Args:
            component_id: Component to price.
            force_refresh: Skip the cache and query suppliers.
            target_currency: ISO code; defaults to the user currency.

        Returns:
            One item per supplier that answered. Empty when the component is
            unknown or no supplier answered and nothing was cached before.
        """
        currency = (target_currency or self.user_currency).upper()
        key = make_cache_key("market_data", component_id, currency)
        context = ErrorContext(
            operation="fetch_market_data",
            component_id=component_id,
            additional_data={"currency": currency, "force_refresh": force_refresh},
        )

        try:
            if not force_refresh:
                cached = await self.cache.get(key)
                if cached is not None:
                    return [MarketDataItem.model_validate(item) for item in cached]

            component = await self._require_component(component_id, "fetch_market_data")
            items = await self._query_suppliers(component, currency)

            if not items:
                return await self._stale_market_data(key, context)

            await self.cache.set(
                key,
                [item.model_dump(mode="json") for item in items],
                self.cache_config.market_data_ttl_hours,
            )
            await self._append_price_history(component_id, items)
            self._tracked.add(component_id)
            self._last_update = self._clock()
            logger.info(
                "Fetched %d/%d supplier prices for %s in %s.",
                len(items),
                len(self.price_sources),
                component_id,
                currency,
            )
            return items

        except Exception as exc:
            return self.error_handler.handle(exc, context, [])

    async def _query_suppliers(self, component: Component, currency: str) -> list[MarketDataItem]:
        results = await asyncio.gather(
            *(self._fetch_quote(source, component) for source in self.price_sources),
            return_exceptions=True,
        )

        items: list[MarketDataItem] = []
        for source, result in zip(self.price_sources, results):
            context = ErrorContext(
                operation="fetch_supplier_price",
                component_id=component.id,
                additional_data={"supplier": source.name},
            )
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                failure = RecommendationSystemError(
                    ErrorKind.EXTERNAL_API_ERROR,
                    f"Failed to fetch price from {source.name}: {str(result) or type(result).__name__}",
                    context,
                    ErrorSeverity.LOW,
                )
                self.error_handler.handle(failure, context, None, ErrorSeverity.LOW)
                continue
            try:
                items.append(await self._normalize(source, result, currency))
            except ValueError as exc:
                self.error_handler.handle(exc, context, None, ErrorSeverity.LOW)
        return items

    async def _fetch_quote(self, source: PriceSource, component: Component) -> SupplierQuote:
        return await call_with_retry(
            lambda: source.fetch_quote(component),
            timeout_s=self.config.api_timeout_s,
            max_attempts=self.config.max_retries,
            wait_s=self.config.retry_wait_s,
        )

    async def _normalize(
        self, source: PriceSource, quote: SupplierQuote, currency: str
    ) -> MarketDataItem:
        amount = parse_price(quote.price)
        source_currency = extract_currency(quote.price, hint=source.currency) or source.currency
        converted = await self.currency.convert(amount, source_currency, currency)
        return MarketDataItem(
            supplier=source.name,
            price=format_price(converted, currency),
            amount=converted,
            currency=currency,
            link=quote.link,
            original_price=quote.price,
            original_amount=amount,
            original_currency=source_currency,
        )

    async def _stale_market_data(self, key: str, context: ErrorContext) -> list[MarketDataItem]:
        entry = await self.cache.get_entry(key)
        if entry is None:
            failure = RecommendationSystemError(
                ErrorKind.EXTERNAL_API_ERROR,
                f"No supplier returned a price for {context.component_id}",
                context,
            )
            return self.error_handler.handle(failure, context, [])

        failure = RecommendationSystemError(
            ErrorKind.PRICE_DATA_STALE,
            f"Serving stale price data for {context.component_id}",
            context,
            ErrorSeverity.LOW,
        )
        logger.warning(
            "All suppliers failed for %s; serving cached prices %.1fh old.",
            context.component_id,
            entry.age_hours(self._clock()),
        )
        stale = [MarketDataItem.model_validate(item) for item in entry.value]
        return self.error_handler.handle(failure, context, stale, ErrorSeverity.LOW)

    # ── Price history ─────────────────────────────────────────────────────────

    def _history_key(self, component_id: str, day: datetime) -> str:
        return make_cache_key("price_points", component_id, day.date().isoformat())

    async def _append_price_history(self, component_id: str, items: list[MarketDataItem]) -> None:
        """Record each supplier's quote in the day's bucket, in its quoted currency.

        A quote equal to the supplier's latest point of the day is not a new
        observation and is skipped, whatever currency it was requested in.
        """
        now = self._clock()
        key = self._history_key(component_id, now)
        existing = await self.cache.get(key) or []

        latest: dict[str, tuple[float, str]] = {}
        for raw in existing:
            point = PricePoint.model_validate(raw)
            latest[point.supplier] = (point.amount, point.currency)

        points = []
        for item in items:
            amount = item.original_amount if item.original_amount is not None else item.amount
            currency = item.original_currency or item.currency
            if latest.get(item.supplier) == (amount, currency):
                continue
            latest[item.supplier] = (amount, currency)
            points.append(
                PricePoint(
                    supplier=item.supplier, amount=amount, currency=currency, observed_at=now
                ).model_dump(mode="json")
            )

        if points:
            await self.cache.set(key, existing + points, self.cache_config.price_history_ttl_hours)

    async def get_price_history(
        self,
        component_id: str,
        days: Optional[int] = None,
        currency: Optional[str] = None,
    ) -> list[PricePoint]:
        """Collect price points of the last ``days`` daily buckets, oldest first.

        Points recorded in another currency are converted to ``currency``
        (default: the user currency).
        """
        window = days or self.config.history_window_days
        target = (currency or self.user_currency).upper()
        now = self._clock()

        points: list[PricePoint] = []
        for offset in range(window - 1, -1, -1):
            raw = await self.cache.get(self._history_key(component_id, now - timedelta(days=offset)))
            if raw:
                points.extend(PricePoint.model_validate(p) for p in raw)

        converted: list[PricePoint] = []
        for point in points:
            if point.currency != target:
                amount = await self.currency.convert(point.amount, point.currency, target)
                point = point.model_copy(update={"amount": amount, "currency": target})
            converted.append(point)
        converted.sort(key=lambda p: p.observed_at)
        return converted

    # ── Comparison and trends ─────────────────────────────────────────────────

    def _availability(self, supplier: str) -> Availability:
        if supplier in self.config.reliable_suppliers:
            return Availability.IN_STOCK
        return Availability.UNKNOWN

    async def get_price_comparison(
        self,
        component_id: str,
        target_currency: Optional[str] = None,
    ) -> Optional[PriceComparison]:
        """Reduce current supplier prices to lowest, mean, range and a recommendation.

        Returns ``None`` when no price data is available.
        """
        context = ErrorContext(operation="get_price_comparison", component_id=component_id)
        try:
            component = await self._require_component(component_id, "get_price_comparison")
            items = await self.fetch_market_data(component_id, target_currency=target_currency)
            if not items:
                return None

            now = self._clock()
            prices = [
                SupplierPrice(
                    supplier=item.supplier,
                    price=item.amount,
                    currency=item.currency,
                    availability=self._availability(item.supplier),
                    link=item.link,
                    last_updated=now,
                )
                for item in items
            ]
            lowest = min(prices, key=lambda p: p.price)
            amounts = [p.price for p in prices]
            return PriceComparison(
                component_id=component.id,
                component_name=component.name,
                prices=prices,
                lowest_price=LowestPrice(
                    supplier=lowest.supplier, price=lowest.price, currency=lowest.currency
                ),
                average_price=sum(amounts) / len(amounts),
                price_range=PriceRange(min=min(amounts), max=max(amounts)),
                recommended_supplier=lowest.supplier,
            )
        except Exception as exc:
            return self.error_handler.handle(exc, context, None)

    async def analyze_market_trends(self, component_id: str) -> Optional[MarketTrend]:
        """Trend, strength, seasonality and projection over the price history.

        Returns ``None`` when fewer than ``min_trend_points`` points exist.
        """
        context = ErrorContext(operation="analyze_market_trends", component_id=component_id)
        cfg = self.config
        try:
            component = await self._require_component(component_id, "analyze_market_trends")
            history = await self.get_price_history(component_id, cfg.history_window_days)
            if len(history) < cfg.min_trend_points:
                raise RecommendationSystemError(
                    ErrorKind.INSUFFICIENT_DATA,
                    f"Insufficient price history for {component_id}: "
                    f"{len(history)} points, need {cfg.min_trend_points}",
                    context,
                    ErrorSeverity.LOW,
                )

            prices = [p.amount for p in history]
            trend = calculate_trend(prices, cfg.trend_change_threshold, cfg.volatility_threshold)
            return MarketTrend(
                component_id=component.id,
                category=component.category or "Unknown",
                trend=trend,
                trend_strength=trend_strength(prices),
                seasonality=analyze_seasonality(
                    history, cfg.seasonality_threshold, cfg.min_seasonal_months
                ),
                market_factors=list(CATEGORY_MARKET_FACTORS.get(component.category or "", [])),
                price_projection=project_prices(
                    prices,
                    trend,
                    cfg.increasing_multiplier,
                    cfg.decreasing_multiplier,
                    cfg.projection_confidence,
                ),
            )
        except Exception as exc:
            return self.error_handler.handle(exc, context, None, ErrorSeverity.LOW)

    # ── Price alerts ──────────────────────────────────────────────────────────

    async def create_price_alert(
        self,
        user_id: str,
        component_id: str,
        alert_type: PriceAlertType,
        threshold: float = 0.0,
        target_price: Optional[float] = None,
        notification_method: NotificationMethod = NotificationMethod.IN_APP,
    ) -> Optional[PriceAlert]:
        """Register a price rule for a component. Returns ``None`` on failure."""
        context = ErrorContext(
            operation="create_price_alert", component_id=component_id, user_id=user_id
        )
        try:
            component = await self._require_component(component_id, "create_price_alert")
            original: Optional[float] = None
            if component.purchase_price:
                original = await self.currency.convert(
                    component.purchase_price, component.currency, self.user_currency
                )
            alert = PriceAlert(
                id=uuid.uuid4().hex,
                user_id=user_id,
                component_id=component_id,
                alert_type=alert_type,
                threshold=threshold,
                target_price=target_price,
                original_price=original,
                currency=self.user_currency,
                created_at=self._clock(),
                notification_method=notification_method,
            )
            await self._store_alert(alert)
            logger.info("Created %s alert %s for %s.", alert_type, alert.id, component_id)
            return alert
        except Exception as exc:
            return self.error_handler.handle(exc, context, None)

    async def update_price_alert(self, alert_id: str, **updates: Any) -> Optional[PriceAlert]:
        """Apply ``updates`` to an alert. Unknown ids or fields yield ``None``."""
        context = ErrorContext(operation="update_price_alert", additional_data={"alert_id": alert_id})
        try:
            alert = self._alerts.get(alert_id)
            if alert is None:
                raise RecommendationSystemError(
                    ErrorKind.INSUFFICIENT_DATA, f"Price alert {alert_id} not found", context
                )
            unknown = set(updates) - _UPDATABLE_ALERT_FIELDS
            if unknown:
                raise ValueError(f"Cannot update alert fields: {sorted(unknown)}")
            updated = PriceAlert.model_validate({**alert.model_dump(), **updates})
            await self._store_alert(updated)
            return updated
        except Exception as exc:
            return self.error_handler.handle(exc, context, None)

    async def delete_price_alert(self, alert_id: str) -> bool:
        context = ErrorContext(
            operation="delete_price_alert", additional_data={"alert_id": alert_id}
        )
        try:
            removed = self._alerts.pop(alert_id, None)
            await self.cache.delete(make_cache_key("price_alert", alert_id))
            if removed is not None:
                logger.info("Deleted price alert %s.", alert_id)
            return removed is not None
        except Exception as exc:
            return self.error_handler.handle(exc, context, False)

    async def get_user_price_alerts(self, user_id: str) -> list[PriceAlert]:
        return [a for a in self._alerts.values() if a.user_id == user_id]

    async def _store_alert(self, alert: PriceAlert) -> None:
        self._alerts[alert.id] = alert
        await self.cache.set(
            make_cache_key("price_alert", alert.id),
            alert.model_dump(mode="json"),
            self.cache_config.price_alert_ttl_hours,
        )

    # ── Scheduled refresh ─────────────────────────────────────────────────────

    async def _refresh_targets(self) -> list[str]:
        limit = self.config.max_components_per_refresh
        targets: list[str] = []
        for alert in self._alerts.values():
            if alert.is_active and alert.component_id not in targets:
                targets.append(alert.component_id)

        items = await self.inventory.get_all_items()
        if items:
            for step in range(len(items)):
                if len(targets) >= limit:
                    break
                candidate = items[(self._refresh_cursor + step) % len(items)].id
                if candidate not in targets:
                    targets.append(candidate)
            self._refresh_cursor = (self._refresh_cursor + limit) % len(items)
        return targets[:limit]

    async def refresh_prices(self) -> list[PriceAlert]:
        """Force-refresh tracked components and evaluate active alerts.

        Components with active alerts are refreshed first; the remaining
        budget walks the inventory round-robin across calls.

        Returns:
            Alerts that fired during this refresh.
        """
        triggered: list[PriceAlert] = []
        targets = await self._refresh_targets()
        for component_id in targets:
            alerts = [
                a for a in self._alerts.values() if a.component_id == component_id and a.is_active
            ]
            currencies = {a.currency for a in alerts} or {self.user_currency}
            for currency in sorted(currencies):
                items = await self.fetch_market_data(
                    component_id, force_refresh=True, target_currency=currency
                )
                if not items:
                    continue
                current_min = min(item.amount for item in items)
                for alert in alerts:
                    if alert.currency == currency and should_trigger(alert, current_min):
                        triggered.append(await self._fire(alert, current_min))

        logger.info(
            "Price refresh finished: %d components, %d alerts triggered.",
            len(targets),
            len(triggered),
        )
        return triggered

    async def _fire(self, alert: PriceAlert, current_min: float) -> PriceAlert:
        fired = alert.model_copy(update={"last_triggered": self._clock()})
        await self._store_alert(fired)
        logger.info(
            "Price alert %s fired: %s is now %s.",
            alert.id,
            alert.component_id,
            format_price(current_min, alert.currency),
        )
        if self.alert_sink is not None:
            try:
                await self.alert_sink(fired, current_min)
            except Exception as exc:
                self.error_handler.handle(
                    exc,
                    ErrorContext(operation="notify_price_alert", component_id=alert.component_id),
                    None,
                    ErrorSeverity.LOW,
                )
        return fired

    def start_price_monitoring(self, scheduler: Scheduler, interval_minutes: float) -> None:
        """Register ``refresh_prices`` as a repeating scheduler job."""
        if MONITORING_JOB_NAME in scheduler.job_names:
            return
        scheduler.add_job(IntervalJob(MONITORING_JOB_NAME, interval_minutes, self.refresh_prices))
        logger.info("Price monitoring every %s minutes.", interval_minutes)

    def stop_price_monitoring(self, scheduler: Scheduler) -> None:
        scheduler.remove_job(MONITORING_JOB_NAME)

    # ── Settings and stats ────────────────────────────────────────────────────

    def set_user_currency(self, currency: str) -> None:
        code = currency.strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError(f"Currency must be a 3-letter ISO code, got '{currency}'.")
        self.user_currency = code

    def get_market_data_stats(self) -> MarketDataStats:
        return MarketDataStats(
            active_alerts=sum(1 for a in self._alerts.values() if a.is_active),
            total_alerts=len(self._alerts),
            tracked_components=len(self._tracked),
            user_currency=self.user_currency,
            last_update=self._last_update,
        )

    # ── Helpers ───────────────────────────────────────────────────────────────

    async def _require_component(self, component_id: str, operation: str) -> Component:
        component = await self.inventory.get_by_id(component_id)
        if component is None:
            raise RecommendationSystemError(
                ErrorKind.INSUFFICIENT_DATA,
                f"Component {component_id} not found",
                ErrorContext(operation=operation, component_id=component_id),
            )
        return component
