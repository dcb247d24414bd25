"""Tests for market/alerts.py: should_trigger rule evaluation."""

from datetime import datetime, timezone

from inventory_oracle.market.alerts import should_trigger
from inventory_oracle.models.market import PriceAlert, PriceAlertType

CREATED = datetime(2026, 6, 1, tzinfo=timezone.utc)


def _alert(alert_type, **kwargs) -> PriceAlert:
    return PriceAlert(
        id="a1",
        user_id="u1",
        component_id="esp32-01",
        alert_type=alert_type,
        created_at=CREATED,
        **kwargs,
    )


class TestPriceDrop:
    def test_fires_at_threshold(self):
        alert = _alert(PriceAlertType.PRICE_DROP, threshold=0.1, original_price=10.0)
        assert should_trigger(alert, 9.0) is True
        assert should_trigger(alert, 9.5) is False

    def test_falls_back_to_reference_price(self):
        alert = _alert(PriceAlertType.PRICE_DROP, threshold=0.2)
        assert should_trigger(alert, 7.0, reference_price=10.0) is True
        assert should_trigger(alert, 7.0) is False


class TestPriceIncrease:
    def test_fires_above_threshold(self):
        alert = _alert(PriceAlertType.PRICE_INCREASE, threshold=0.25, original_price=8.0)
        assert should_trigger(alert, 10.0) is True
        assert should_trigger(alert, 9.0) is False


class TestTargetPrice:
    def test_at_or_below_target(self):
        alert = _alert(PriceAlertType.TARGET_PRICE, target_price=5.0)
        assert should_trigger(alert, 5.0) is True
        assert should_trigger(alert, 5.01) is False

    def test_without_target(self):
        assert should_trigger(_alert(PriceAlertType.TARGET_PRICE), 0.5) is False


def test_inactive_alert_never_fires():
    alert = _alert(PriceAlertType.TARGET_PRICE, target_price=100.0, is_active=False)
    assert should_trigger(alert, 0.01) is False


def test_no_price_data_never_fires():
    alert = _alert(PriceAlertType.TARGET_PRICE, target_price=100.0)
    assert should_trigger(alert, None) is False


def test_availability_alerts_are_inert():
    alert = _alert(PriceAlertType.AVAILABILITY, original_price=10.0)
    assert should_trigger(alert, 1.0) is False
