"""
Tests for market/service.py: MarketDataService.

Suppliers are ``FakePriceSource`` instances with a fixed price string or a
fixed failure. Currency conversion uses the offline ``currency_service``.
"""

import asyncio

import pytest

from inventory_oracle.cache.store import InMemoryCacheStore
from inventory_oracle.config import MarketConfig
from inventory_oracle.errors.handler import ConfigurationError
from inventory_oracle.market.service import MONITORING_JOB_NAME, MarketDataService
from inventory_oracle.market.suppliers import SimulatedSupplierSource, build_simulated_sources
from inventory_oracle.models.component import Component
from inventory_oracle.models.market import (
    Availability,
    MarketTrendDirection,
    PriceAlertType,
    SupplierQuote,
)
from inventory_oracle.scheduler import Scheduler
from inventory_oracle.stores import InMemoryInventoryStore
from inventory_oracle.taxonomy.error_taxonomy import ErrorKind

FAST = MarketConfig(max_retries=1, retry_wait_s=0, api_timeout_s=1.0)


class FakePriceSource:
    def __init__(self, name, price="$10.00", currency="USD", error=None):
        self.name = name
        self.price = price
        self.currency = currency
        self.error = error
        self.calls: list[str] = []

    async def fetch_quote(self, component):
        self.calls.append(component.id)
        if self.error is not None:
            raise self.error
        return SupplierQuote(price=self.price, link=f"https://{self.name.lower()}.example/{component.id}")


def _service(inventory, cache, currency_service, handler, clock, sources, config=FAST, **kwargs):
    return MarketDataService(
        inventory, cache, currency_service, handler, sources, config, clock=clock, **kwargs
    )


@pytest.fixture
def sources():
    return [
        FakePriceSource("DigiKey", "$10.00"),
        FakePriceSource("Mouser", "$8.00"),
        FakePriceSource("Amazon", "$12.00"),
    ]


@pytest.fixture
def market(inventory, cache, currency_service, handler, clock, sources):
    return _service(inventory, cache, currency_service, handler, clock, sources)


class TestConstruction:
    def test_requires_price_sources(self, inventory, cache, currency_service, handler):
        with pytest.raises(ConfigurationError):
            MarketDataService(inventory, cache, currency_service, handler, [])

    def test_requires_inventory(self, cache, currency_service, handler, sources):
        with pytest.raises(ConfigurationError):
            MarketDataService(None, cache, currency_service, handler, sources)

    def test_user_currency_defaults_to_base(self, market):
        assert market.user_currency == "USD"


@pytest.mark.asyncio
class TestFetchMarketData:
    async def test_failing_suppliers_are_isolated(
        self, inventory, cache, currency_service, handler, clock
    ):
        sources = [
            FakePriceSource("DigiKey", "$10.00"),
            FakePriceSource("Mouser", error=ConnectionError("connection refused")),
            FakePriceSource("Arrow", "$9.50"),
            FakePriceSource("Newark", error=asyncio.TimeoutError()),
            FakePriceSource("SparkFun", "$11.00"),
        ]
        market = _service(inventory, cache, currency_service, handler, clock, sources)

        items = await market.fetch_market_data("esp32-01")

        assert [item.supplier for item in items] == ["DigiKey", "Arrow", "SparkFun"]
        errors = handler.get_recent_errors()
        assert len(errors) == 2
        assert all(e.kind == ErrorKind.EXTERNAL_API_ERROR for e in errors)
        assert "Mouser" in errors[0].message
        assert "Newark" in errors[1].message

    async def test_normalizes_currency(self, inventory, cache, currency_service, handler, clock):
        sources = [
            FakePriceSource("Conrad", "€10.00"),
            FakePriceSource("Farnell", "12.00", currency="GBP"),
        ]
        market = _service(inventory, cache, currency_service, handler, clock, sources)

        euro, pound = await market.fetch_market_data("esp32-01", target_currency="usd")

        assert euro.amount == pytest.approx(12.5)
        assert euro.price == "$12.50"
        assert euro.currency == "USD"
        assert euro.original_price == "€10.00"
        assert pound.amount == pytest.approx(15.6)
        assert pound.original_price == "12.00"

    async def test_yuan_quotes_are_not_read_as_yen(self, cache, currency_service, handler, clock):
        board = Component(
            id="ch32-01",
            name="CH32V003 Dev Board",
            category="Microcontroller",
            quantity=5,
            purchase_price=100.0,
            currency="CNY",
            created_at=clock(),
        )
        sources = [
            SimulatedSupplierSource("LCSC", variation=0.0, clock=clock),
            FakePriceSource("Taobao", "¥100.00", currency="CNY"),
        ]
        market = _service(
            InMemoryInventoryStore([board]), cache, currency_service, handler, clock, sources
        )

        simulated, taobao = await market.fetch_market_data("ch32-01", target_currency="USD")

        assert simulated.original_price == "100.00 CNY"
        assert simulated.original_currency == "CNY"
        assert simulated.amount == pytest.approx(14.0)
        assert taobao.original_currency == "CNY"
        assert taobao.amount == pytest.approx(14.0)

    async def test_served_from_cache(self, market, sources):
        first = await market.fetch_market_data("esp32-01")
        second = await market.fetch_market_data("esp32-01")
        assert first == second
        assert sources[0].calls == ["esp32-01"]

    async def test_cache_is_per_currency(self, market, sources):
        await market.fetch_market_data("esp32-01", target_currency="USD")
        eur = await market.fetch_market_data("esp32-01", target_currency="EUR")
        assert eur[0].currency == "EUR"
        assert eur[0].amount == pytest.approx(8.0)
        assert len(sources[0].calls) == 2

    async def test_force_refresh_requeries(self, market, sources):
        await market.fetch_market_data("esp32-01")
        await market.fetch_market_data("esp32-01", force_refresh=True)
        assert len(sources[0].calls) == 2

    async def test_stale_data_when_all_suppliers_fail(self, market, sources, clock, handler):
        fresh = await market.fetch_market_data("esp32-01")
        clock.advance(hours=3)
        for source in sources:
            source.error = ConnectionError("down")

        stale = await market.fetch_market_data("esp32-01")

        assert stale == fresh
        assert handler.get_recent_errors()[-1].kind == ErrorKind.PRICE_DATA_STALE

    async def test_nothing_cached_and_all_fail(self, market, sources, handler):
        for source in sources:
            source.error = ConnectionError("down")
        assert await market.fetch_market_data("esp32-01") == []
        assert handler.get_recent_errors()[-1].kind == ErrorKind.EXTERNAL_API_ERROR

    async def test_unknown_component(self, market, handler):
        assert await market.fetch_market_data("does-not-exist") == []
        assert handler.get_recent_errors()[-1].kind == ErrorKind.INSUFFICIENT_DATA

    async def test_unparseable_quote_is_skipped(self, inventory, cache, currency_service, handler, clock):
        sources = [FakePriceSource("DigiKey", "$4.00"), FakePriceSource("Amazon", "call for quote")]
        market = _service(inventory, cache, currency_service, handler, clock, sources)
        items = await market.fetch_market_data("rp2040-01")
        assert [item.supplier for item in items] == ["DigiKey"]
        assert len(handler.get_recent_errors()) == 1


@pytest.mark.asyncio
class TestComparisonAndHistory:
    async def test_price_comparison(self, market):
        comparison = await market.get_price_comparison("esp32-01")

        assert comparison.component_name == "ESP32 DevKit V1"
        assert comparison.lowest_price.supplier == "Mouser"
        assert comparison.lowest_price.price == pytest.approx(8.0)
        assert comparison.recommended_supplier == "Mouser"
        assert comparison.average_price == pytest.approx(10.0)
        assert (comparison.price_range.min, comparison.price_range.max) == (8.0, 12.0)
        availability = {p.supplier: p.availability for p in comparison.prices}
        assert availability == {
            "DigiKey": Availability.IN_STOCK,
            "Mouser": Availability.IN_STOCK,
            "Amazon": Availability.UNKNOWN,
        }

    async def test_comparison_without_data(self, market, sources):
        for source in sources:
            source.error = ConnectionError("down")
        assert await market.get_price_comparison("esp32-01") is None
        assert await market.get_price_comparison("nope") is None

    async def test_history_accumulates_oldest_first(self, market, clock):
        await market.fetch_market_data("esp32-01")
        clock.advance(days=1)
        await market.fetch_market_data("esp32-01", force_refresh=True)

        history = await market.get_price_history("esp32-01")
        assert len(history) == 6
        assert history[0].observed_at < history[-1].observed_at

    async def test_history_converted_to_requested_currency(self, market):
        await market.fetch_market_data("esp32-01")
        history = await market.get_price_history("esp32-01", currency="EUR")
        assert {p.currency for p in history} == {"EUR"}
        assert sorted(p.amount for p in history) == pytest.approx([6.4, 8.0, 9.6])

    async def test_history_window(self, market, clock):
        await market.fetch_market_data("esp32-01")
        clock.advance(days=10)
        assert await market.get_price_history("esp32-01", days=5) == []

    async def test_same_quotes_in_another_currency_recorded_once(self, market, sources):
        await market.fetch_market_data("esp32-01", target_currency="USD")
        await market.fetch_market_data("esp32-01", target_currency="EUR")
        await market.fetch_market_data("esp32-01", target_currency="USD", force_refresh=True)

        history = await market.get_price_history("esp32-01", currency="USD")
        assert len(history) == len(sources)
        assert sorted(p.amount for p in history) == pytest.approx([8.0, 10.0, 12.0])

    async def test_changed_quote_same_day_is_recorded(self, market, sources, clock):
        await market.fetch_market_data("esp32-01")
        sources[0].price = "$9.00"
        clock.advance(hours=1)
        await market.fetch_market_data("esp32-01", force_refresh=True)

        history = await market.get_price_history("esp32-01")
        digikey = [p.amount for p in history if p.supplier == "DigiKey"]
        assert digikey == pytest.approx([10.0, 9.0])

    async def test_history_keeps_quoted_currency(self, inventory, cache, currency_service, handler, clock):
        source = FakePriceSource("Farnell", "£10.00", currency="GBP")
        market = _service(inventory, cache, currency_service, handler, clock, [source])
        await market.fetch_market_data("esp32-01", target_currency="EUR")

        [point] = await market.get_price_history("esp32-01", currency="GBP")
        assert point.currency == "GBP"
        assert point.amount == pytest.approx(10.0)


@pytest.mark.asyncio
class TestMarketTrends:
    async def test_insufficient_history(self, market, handler):
        await market.fetch_market_data("esp32-01")
        assert await market.analyze_market_trends("esp32-01") is None
        assert handler.get_recent_errors()[-1].kind == ErrorKind.INSUFFICIENT_DATA

    async def test_refetching_in_other_currencies_does_not_reach_minimum(
        self, inventory, cache, currency_service, handler, clock
    ):
        sources = build_simulated_sources(
            ["DigiKey", "Mouser", "Arrow", "Newark", "SparkFun"], {}, clock=clock
        )
        market = _service(inventory, cache, currency_service, handler, clock, sources)
        await market.fetch_market_data("esp32-01", target_currency="USD")
        await market.fetch_market_data("esp32-01", target_currency="EUR")

        assert len(await market.get_price_history("esp32-01")) == 5
        assert await market.analyze_market_trends("esp32-01") is None

    async def test_rising_prices(self, inventory, cache, currency_service, handler, clock):
        source = FakePriceSource("DigiKey")
        market = _service(inventory, cache, currency_service, handler, clock, [source])
        for day in range(12):
            source.price = f"${10 + day}.00"
            await market.fetch_market_data("esp32-01", force_refresh=True)
            clock.advance(days=1)

        trend = await market.analyze_market_trends("esp32-01")

        assert trend.trend == MarketTrendDirection.INCREASING
        assert trend.category == "Microcontroller"
        assert trend.market_factors == ["Semiconductor shortage", "New product releases"]
        assert trend.seasonality.has_seasonality is False
        assert trend.price_projection.next_month == pytest.approx(21.0 * 1.05)
        assert 0.0 <= trend.trend_strength <= 1.0


@pytest.mark.asyncio
class TestPriceAlerts:
    async def test_create_and_list(self, market):
        alert = await market.create_price_alert(
            "maker-1", "esp32-01", PriceAlertType.PRICE_DROP, threshold=0.1
        )
        assert alert.original_price == pytest.approx(8.5)
        assert alert.currency == "USD"
        assert await market.get_user_price_alerts("maker-1") == [alert]
        assert await market.get_user_price_alerts("someone-else") == []

    async def test_create_for_unknown_component(self, market):
        assert await market.create_price_alert("u", "nope", PriceAlertType.PRICE_DROP) is None

    async def test_update(self, market):
        alert = await market.create_price_alert("u", "esp32-01", PriceAlertType.PRICE_DROP, 0.1)
        updated = await market.update_price_alert(alert.id, threshold=0.3, is_active=False)
        assert updated.threshold == 0.3
        assert updated.is_active is False
        assert updated.id == alert.id

    async def test_update_rejects_unknown(self, market):
        alert = await market.create_price_alert("u", "esp32-01", PriceAlertType.PRICE_DROP, 0.1)
        assert await market.update_price_alert(alert.id, user_id="intruder") is None
        assert await market.update_price_alert("missing", threshold=0.5) is None

    async def test_delete(self, market):
        alert = await market.create_price_alert("u", "esp32-01", PriceAlertType.PRICE_DROP, 0.1)
        assert await market.delete_price_alert(alert.id) is True
        assert await market.delete_price_alert(alert.id) is False
        assert await market.get_user_price_alerts("u") == []

    async def test_delete_with_failing_cache(self, inventory, currency_service, handler, clock, sources):
        class FailingDeleteCache(InMemoryCacheStore):
            async def delete(self, key):
                raise RuntimeError("disk I/O error")

        market = _service(
            inventory, FailingDeleteCache(clock=clock), currency_service, handler, clock, sources
        )
        alert = await market.create_price_alert("u", "esp32-01", PriceAlertType.PRICE_DROP, 0.1)

        assert await market.delete_price_alert(alert.id) is False
        [error] = handler.get_recent_errors()
        assert error.context.operation == "delete_price_alert"
        assert error.context.additional_data == {"alert_id": alert.id}

    async def test_refresh_fires_drop_alert(
        self, inventory, cache, currency_service, handler, clock
    ):
        notified = []

        async def sink(alert, price):
            notified.append((alert.id, price))

        market = _service(
            inventory, cache, currency_service, handler, clock,
            [FakePriceSource("DigiKey", "$7.00")], alert_sink=sink,
        )
        alert = await market.create_price_alert("u", "esp32-01", PriceAlertType.PRICE_DROP, 0.1)

        fired = await market.refresh_prices()

        assert [a.id for a in fired] == [alert.id]
        assert fired[0].last_triggered == clock()
        assert notified == [(alert.id, pytest.approx(7.0))]

    async def test_target_price_in_user_currency(self, market, sources):
        market.set_user_currency("eur")
        alert = await market.create_price_alert(
            "u", "esp32-01", PriceAlertType.TARGET_PRICE, target_price=6.5
        )
        assert alert.currency == "EUR"
        assert alert.original_price == pytest.approx(6.8)

        fired = await market.refresh_prices()
        assert [a.id for a in fired] == [alert.id]

    async def test_inactive_alert_does_not_fire(self, market):
        alert = await market.create_price_alert(
            "u", "esp32-01", PriceAlertType.TARGET_PRICE, target_price=100.0
        )
        await market.update_price_alert(alert.id, is_active=False)
        assert await market.refresh_prices() == []

    async def test_sink_failure_is_recorded(
        self, inventory, cache, currency_service, handler, clock
    ):
        async def broken_sink(alert, price):
            raise RuntimeError("smtp unreachable")

        market = _service(
            inventory, cache, currency_service, handler, clock,
            [FakePriceSource("DigiKey", "$1.00")], alert_sink=broken_sink,
        )
        await market.create_price_alert("u", "esp32-01", PriceAlertType.TARGET_PRICE, target_price=2.0)
        fired = await market.refresh_prices()
        assert len(fired) == 1
        assert "smtp unreachable" in handler.get_recent_errors()[-1].message


@pytest.mark.asyncio
class TestScheduledRefresh:
    async def test_round_robin_over_inventory(
        self, inventory, cache, currency_service, handler, clock
    ):
        source = FakePriceSource("DigiKey")
        config = MarketConfig(max_retries=1, retry_wait_s=0, max_components_per_refresh=2)
        market = _service(inventory, cache, currency_service, handler, clock, [source], config)

        for _ in range(3):
            await market.refresh_prices()

        assert source.calls == [
            "esp32-01", "esp32-s3",
            "uno-r3", "rp2040-01",
            "bme280-01", "esp32-01",
        ]

    async def test_alerted_components_refresh_first(
        self, inventory, cache, currency_service, handler, clock
    ):
        source = FakePriceSource("DigiKey")
        config = MarketConfig(max_retries=1, retry_wait_s=0, max_components_per_refresh=2)
        market = _service(inventory, cache, currency_service, handler, clock, [source], config)
        await market.create_price_alert("u", "bme280-01", PriceAlertType.PRICE_DROP, 0.5)

        await market.refresh_prices()

        assert source.calls == ["bme280-01", "esp32-01"]

    async def test_stats(self, market):
        await market.create_price_alert("u", "esp32-01", PriceAlertType.PRICE_DROP, 0.1)
        await market.refresh_prices()
        stats = market.get_market_data_stats()
        assert stats.total_alerts == 1
        assert stats.active_alerts == 1
        assert stats.tracked_components == 5
        assert stats.user_currency == "USD"
        assert stats.last_update is not None


class TestMonitoringAndSettings:
    def test_start_is_idempotent(self, market):
        scheduler = Scheduler()
        market.start_price_monitoring(scheduler, 30)
        market.start_price_monitoring(scheduler, 30)
        assert scheduler.job_names == [MONITORING_JOB_NAME]

        market.stop_price_monitoring(scheduler)
        assert scheduler.job_names == []

    def test_set_user_currency(self, market):
        market.set_user_currency(" gbp ")
        assert market.user_currency == "GBP"

    @pytest.mark.parametrize("bad", ["", "EURO", "E1R"])
    def test_set_user_currency_rejects(self, market, bad):
        with pytest.raises(ValueError):
            market.set_user_currency(bad)
