"""Tests for market/trends.py: volatility, direction, projection, seasonality."""

from datetime import datetime, timezone

import pytest

from inventory_oracle.market.trends import (
    analyze_seasonality,
    calculate_trend,
    calculate_volatility,
    project_prices,
    trend_strength,
)
from inventory_oracle.models.market import MarketTrendDirection, PricePoint


def _point(month: int, amount: float) -> PricePoint:
    return PricePoint(
        supplier="DigiKey",
        amount=amount,
        currency="USD",
        observed_at=datetime(2026, month, 15, tzinfo=timezone.utc),
    )


class TestVolatility:
    def test_constant_series(self):
        assert calculate_volatility([10.0, 10.0, 10.0]) == 0.0

    def test_short_series(self):
        assert calculate_volatility([]) == 0.0
        assert calculate_volatility([7.0]) == 0.0

    def test_population_cv(self):
        assert calculate_volatility([8.0, 12.0]) == pytest.approx(0.2)


class TestTrendDirection:
    def test_increasing(self):
        assert calculate_trend([10, 10, 11, 11]) == MarketTrendDirection.INCREASING

    def test_decreasing(self):
        assert calculate_trend([11, 11, 10, 10]) == MarketTrendDirection.DECREASING

    def test_stable(self):
        assert calculate_trend([10, 10.1, 10, 10.1]) == MarketTrendDirection.STABLE

    def test_volatile_when_flat_but_noisy(self):
        assert calculate_trend([5, 15, 5, 15]) == MarketTrendDirection.VOLATILE

    def test_single_point_is_stable(self):
        assert calculate_trend([10]) == MarketTrendDirection.STABLE

    def test_thresholds_are_configurable(self):
        prices = [10, 10, 10.4, 10.4]
        assert calculate_trend(prices) == MarketTrendDirection.STABLE
        assert calculate_trend(prices, change_threshold=0.01) == MarketTrendDirection.INCREASING


class TestStrengthAndProjection:
    def test_strength(self):
        assert trend_strength([5, 15, 5, 15]) == pytest.approx(0.5)
        assert trend_strength([10]) == 0.0
        assert trend_strength([10, 10]) == 1.0

    def test_projection_increasing(self):
        projection = project_prices([10.0, 20.0], MarketTrendDirection.INCREASING)
        assert projection.next_month == pytest.approx(21.0)
        assert projection.next_quarter == pytest.approx(20.0 * 1.05**3)
        assert projection.confidence == 0.7

    def test_projection_flat_for_volatile(self):
        projection = project_prices([12.0], MarketTrendDirection.VOLATILE)
        assert projection.next_month == 12.0
        assert projection.next_quarter == 12.0

    def test_projection_empty(self):
        projection = project_prices([], MarketTrendDirection.STABLE)
        assert projection.next_month == 0.0
        assert projection.confidence == 0.0


class TestSeasonality:
    def test_peaks_and_lows(self):
        points = [_point(1, 10.0), _point(2, 10.0), _point(3, 14.0)]
        result = analyze_seasonality(points)
        assert result.has_seasonality is True
        assert result.peak_months == [3]
        assert result.low_months == [1, 2]

    def test_too_few_months(self):
        result = analyze_seasonality([_point(1, 5.0), _point(2, 50.0)])
        assert result.has_seasonality is False
        assert result.peak_months == []

    def test_flat_prices(self):
        points = [_point(m, 10.0) for m in (4, 5, 6, 7)]
        assert analyze_seasonality(points).has_seasonality is False
