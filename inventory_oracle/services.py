"""
Service wiring: builds every analytical service around one cache and one
error handler.

``build_services`` is the only place that decides concrete collaborators:
the cache backend from ``config.cache.backend``, HTTP rate providers, and
simulated supplier price sources. Tests and embedding applications pass their
own ``cache``, ``price_sources`` or ``rate_sources`` instead.

Usage::

    inventory, metrics = load_inventory_file("inventory.json")
    services = build_services(load_config(), inventory, metrics)
    alerts = await services.prediction.generate_stock_alerts()
    await services.scheduler.run_forever()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx

from inventory_oracle.cache.store import CacheStore, InMemoryCacheStore, SqliteCacheStore
from inventory_oracle.config import AppConfig
from inventory_oracle.currency.service import ExchangeRateService
from inventory_oracle.currency.sources import RateSource, default_rate_sources
from inventory_oracle.errors.handler import ConfigurationError, RecommendationErrorHandler
from inventory_oracle.market.service import AlertSink, MarketDataService
from inventory_oracle.market.suppliers import PriceSource, build_simulated_sources
from inventory_oracle.prediction.engine import PredictionEngine
from inventory_oracle.recommendations.engine import ComponentAlternativeEngine
from inventory_oracle.scheduler import DailyJob, Scheduler
from inventory_oracle.stores import InventoryStore, UsageMetricsStore
from inventory_oracle.utils.time_utils import Clock, utcnow

logger = logging.getLogger(__name__)

RATE_JOB_NAME = "exchange-rate-update"


@dataclass
class OracleServices:
    """The assembled analytics layer."""

    config: AppConfig
    cache: CacheStore
    error_handler: RecommendationErrorHandler
    currency: ExchangeRateService
    market: MarketDataService
    alternatives: ComponentAlternativeEngine
    prediction: PredictionEngine
    scheduler: Scheduler


def build_cache(config: AppConfig, clock: Clock = utcnow) -> CacheStore:
    """Cache store selected by ``config.cache.backend``."""
    if config.cache.backend == "memory":
        return InMemoryCacheStore(clock=clock)
    return SqliteCacheStore(
        config.database.db_path,
        clock=clock,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    )


def build_services(
    config: AppConfig,
    inventory: InventoryStore,
    metrics: UsageMetricsStore,
    cache: Optional[CacheStore] = None,
    price_sources: Optional[Sequence[PriceSource]] = None,
    rate_sources: Optional[Sequence[RateSource]] = None,
    alert_sink: Optional[AlertSink] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    scheduler: Optional[Scheduler] = None,
    clock: Clock = utcnow,
) -> OracleServices:
    """Assemble all services and register the background jobs.

    Raises:
        ConfigurationError: If ``inventory`` or ``metrics`` is missing.
    """
    if inventory is None:
        raise ConfigurationError("An inventory store is required.")
    if metrics is None:
        raise ConfigurationError("A usage-metrics store is required.")

    cache = cache if cache is not None else build_cache(config, clock)
    handler = RecommendationErrorHandler(config.errors, clock=clock)

    if rate_sources is None:
        rate_sources = default_rate_sources(
            config.currency.fixer_api_key,
            config.currency.currencylayer_api_key,
            client=http_client,
            timeout_s=config.currency.request_timeout_s,
        )
    if price_sources is None:
        price_sources = build_simulated_sources(
            config.market.suppliers,
            config.market.supplier_currencies,
            default_currency=config.market.default_supplier_currency,
            variation=config.market.price_variation,
            clock=clock,
        )

    currency = ExchangeRateService(cache, rate_sources, handler, config.currency, clock=clock)
    market = MarketDataService(
        inventory,
        cache,
        currency,
        handler,
        price_sources,
        config.market,
        config.cache,
        alert_sink=alert_sink,
        clock=clock,
    )
    alternatives = ComponentAlternativeEngine(inventory, metrics, handler, config.alternatives)
    prediction = PredictionEngine(
        inventory, metrics, cache, handler, config.prediction, config.cache, clock=clock
    )

    scheduler = scheduler or Scheduler()
    if config.scheduler.enable_price_monitoring:
        market.start_price_monitoring(scheduler, config.scheduler.price_refresh_minutes)
    scheduler.add_job(
        DailyJob(RATE_JOB_NAME, config.scheduler.daily_rate_time, currency.update_all)
    )

    logger.info(
        "Services ready: cache=%s, %d rate sources, %d price sources, jobs=%s.",
        type(cache).__name__,
        len(rate_sources),
        len(price_sources),
        ", ".join(scheduler.job_names),
    )
    return OracleServices(
        config=config,
        cache=cache,
        error_handler=handler,
        currency=currency,
        market=market,
        alternatives=alternatives,
        prediction=prediction,
        scheduler=scheduler,
    )
