"""
Shared pytest fixtures for the Inventory Oracle test suite.

Provides:
  - ``clock``: A controllable UTC clock pinned to ``NOW``; call
    ``clock.advance(hours=...)`` to age cache entries and error logs.
  - Sample components and usage metrics, plus in-memory stores built from them.
  - ``handler`` and ``cache`` wired to the same clock.
  - ``currency_service``: an ExchangeRateService over fixed offline rates.

Nothing here touches the network: rate and price sources are faked in the
test modules that need them.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from inventory_oracle.cache.store import InMemoryCacheStore
from inventory_oracle.config import CurrencyConfig, ErrorHandlingConfig
from inventory_oracle.currency.service import ExchangeRateService
from inventory_oracle.currency.sources import RateSourceError
from inventory_oracle.errors.handler import RecommendationErrorHandler
from inventory_oracle.models.component import (
    Component,
    ComponentRelationship,
    ComponentSpecification,
    CurrentRating,
    UsageFrequency,
    UsageMetrics,
    VoltageRange,
)
from inventory_oracle.stores import InMemoryInventoryStore, InMemoryUsageMetricsStore

NOW = datetime(2026, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock returning a fixed time until advanced."""

    def __init__(self, start: datetime = NOW) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ── Clock, handler, cache ─────────────────────────────────────────────────────

@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def handler(clock: FixedClock) -> RecommendationErrorHandler:
    return RecommendationErrorHandler(ErrorHandlingConfig(), clock=clock)


@pytest.fixture
def cache(clock: FixedClock) -> InMemoryCacheStore:
    return InMemoryCacheStore(clock=clock)


# ── Sample domain objects ─────────────────────────────────────────────────────

def make_component(
    component_id: str,
    name: str,
    category: str | None = "Microcontroller",
    manufacturer: str | None = "Espressif",
    quantity: int = 10,
    purchase_price: float | None = 8.5,
    created_days_ago: float = 50,
    **kwargs,
) -> Component:
    return Component(
        id=component_id,
        name=name,
        category=category,
        manufacturer=manufacturer,
        quantity=quantity,
        purchase_price=purchase_price,
        created_at=NOW - timedelta(days=created_days_ago),
        **kwargs,
    )


MCU_SPECS = ComponentSpecification(
    voltage=VoltageRange(min=3.0, max=3.6),
    current=CurrentRating(max=0.5),
    protocols=["I2C", "SPI", "UART"],
    compatibility=["Arduino IDE", "ESP-IDF"],
)


@pytest.fixture
def esp32() -> Component:
    """100 units on hand; 100 used over 50 days, i.e. 2 units/day."""
    return make_component(
        "esp32-01",
        "ESP32 DevKit V1",
        quantity=100,
        condition="New",
        specifications=MCU_SPECS,
        relationships=[ComponentRelationship(related_component_id="rp2040-01")],
    )


@pytest.fixture
def esp32_s3() -> Component:
    return make_component(
        "esp32-s3",
        "ESP32-S3 DevKitC",
        quantity=10,
        condition="New",
        specifications=MCU_SPECS,
    )


@pytest.fixture
def arduino_uno() -> Component:
    return make_component(
        "uno-r3",
        "Arduino Uno R3",
        manufacturer="Arduino",
        quantity=0,
        purchase_price=23.0,
        condition="Used",
        specifications=ComponentSpecification(
            voltage=VoltageRange(min=5.0, max=5.0),
            current=CurrentRating(max=0.2),
            protocols=["I2C", "UART"],
        ),
    )


@pytest.fixture
def rp2040() -> Component:
    return make_component(
        "rp2040-01",
        "Raspberry Pi Pico",
        manufacturer="Raspberry Pi",
        quantity=3,
        purchase_price=4.0,
    )


@pytest.fixture
def bme280() -> Component:
    return make_component(
        "bme280-01",
        "BME280 Environmental Sensor",
        category="Sensor",
        manufacturer="Bosch",
        quantity=4,
        purchase_price=6.0,
    )


@pytest.fixture
def components(esp32, esp32_s3, arduino_uno, rp2040, bme280) -> list[Component]:
    return [esp32, esp32_s3, arduino_uno, rp2040, bme280]


@pytest.fixture
def usage_metrics() -> list[UsageMetrics]:
    return [
        UsageMetrics(
            component_id="esp32-01",
            total_used=100,
            project_count=6,
            last_used=date(2026, 5, 30),
            usage_frequency=UsageFrequency.HIGH,
            success_rate=0.9,
        ),
        UsageMetrics(
            component_id="esp32-s3",
            total_used=5,
            project_count=2,
            last_used=date(2026, 1, 10),
            usage_frequency=UsageFrequency.MEDIUM,
            success_rate=0.8,
        ),
        UsageMetrics(
            component_id="bme280-01",
            total_used=10,
            project_count=5,
            last_used=date(2026, 2, 1),
            usage_frequency=UsageFrequency.LOW,
            success_rate=0.4,
        ),
    ]


@pytest.fixture
def inventory(components) -> InMemoryInventoryStore:
    return InMemoryInventoryStore(components)


@pytest.fixture
def metrics_store(usage_metrics) -> InMemoryUsageMetricsStore:
    return InMemoryUsageMetricsStore(usage_metrics)


# ── Currency ──────────────────────────────────────────────────────────────────

FIXED_RATES: dict[str, dict[str, float]] = {
    "USD": {"EUR": 0.8, "GBP": 0.75, "JPY": 150.0},
    "EUR": {"USD": 1.25, "GBP": 0.9},
    "GBP": {"USD": 1.3, "EUR": 1.1},
    "CNY": {"USD": 0.14},
}


class FixedRateSource:
    """Offline rate provider answering from ``FIXED_RATES``."""

    name = "fixed"

    async def fetch_table(self, base: str) -> dict[str, float]:
        if base not in FIXED_RATES:
            raise RateSourceError(f"fixed: no table for {base}")
        return dict(FIXED_RATES[base])

    async def fetch_pair(self, from_currency: str, to_currency: str) -> float:
        rate = FIXED_RATES.get(from_currency, {}).get(to_currency)
        if rate is None:
            raise RateSourceError(f"fixed: no rate {from_currency}->{to_currency}")
        return rate


@pytest.fixture
def currency_service(cache, handler, clock) -> ExchangeRateService:
    config = CurrencyConfig(max_retries=1, retry_wait_s=0)
    return ExchangeRateService(cache, [FixedRateSource()], handler, config, clock=clock)
