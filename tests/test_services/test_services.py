"""
Tests for services.py: build_services wiring and job registration.
"""

import pytest

from inventory_oracle.cache.store import InMemoryCacheStore, SqliteCacheStore
from inventory_oracle.config import AppConfig, CacheConfig, DatabaseConfig, SchedulerConfig
from inventory_oracle.currency.sources import ExchangeRateApiSource
from inventory_oracle.errors.handler import ConfigurationError
from inventory_oracle.market.suppliers import build_simulated_sources
from inventory_oracle.scheduler import Scheduler
from inventory_oracle.services import RATE_JOB_NAME, build_cache, build_services

MEMORY = AppConfig(cache=CacheConfig(backend="memory"))


class _OfflineRates:
    name = "offline"

    async def fetch_table(self, base):
        return {}

    async def fetch_pair(self, from_currency, to_currency):
        return 1.0


def test_rate_sources_required(inventory, metrics_store):
    with pytest.raises(ConfigurationError):
        build_services(MEMORY, inventory, metrics_store, rate_sources=[])


@pytest.fixture
def services(inventory, metrics_store, clock):
    return build_services(
        MEMORY,
        inventory,
        metrics_store,
        price_sources=build_simulated_sources(["DigiKey", "Mouser"], {}, clock=clock),
        rate_sources=[_OfflineRates()],
        scheduler=Scheduler(),
        clock=clock,
    )


class TestBuildServices:
    def test_shared_collaborators(self, services):
        assert isinstance(services.cache, InMemoryCacheStore)
        assert services.market.cache is services.cache
        assert services.prediction.error_handler is services.error_handler
        assert services.alternatives.error_handler is services.error_handler

    def test_jobs_registered(self, services):
        assert services.scheduler.job_names == ["market-price-refresh", RATE_JOB_NAME]

    def test_monitoring_disabled(self, inventory, metrics_store):
        config = AppConfig(
            cache=CacheConfig(backend="memory"),
            scheduler=SchedulerConfig(enable_price_monitoring=False),
        )
        services = build_services(config, inventory, metrics_store, rate_sources=[_OfflineRates()])
        assert services.scheduler.job_names == [RATE_JOB_NAME]

    def test_default_rate_sources(self, inventory, metrics_store):
        services = build_services(MEMORY, inventory, metrics_store)
        assert isinstance(services.currency.sources[0], ExchangeRateApiSource)
        assert len(services.market.price_sources) == len(MEMORY.market.suppliers)

    def test_missing_inventory(self, metrics_store):
        with pytest.raises(ConfigurationError):
            build_services(MEMORY, None, metrics_store)

    def test_missing_metrics(self, inventory):
        with pytest.raises(ConfigurationError):
            build_services(MEMORY, inventory, None)


class TestBuildCache:
    def test_memory_backend(self):
        assert isinstance(build_cache(MEMORY), InMemoryCacheStore)

    def test_sqlite_backend(self, tmp_path):
        config = AppConfig(database=DatabaseConfig(db_path=str(tmp_path / "cache.db")))
        assert isinstance(build_cache(config), SqliteCacheStore)
