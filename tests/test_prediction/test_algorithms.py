"""Tests for prediction/algorithms.py: consumption analysis and the linear algorithm."""

from datetime import date, datetime, timedelta, timezone

import pytest

from inventory_oracle.config import PredictionConfig
from inventory_oracle.models.component import Component, UsageMetrics
from inventory_oracle.prediction.algorithms import (
    AlgorithmResult,
    ConsumptionAnalysis,
    LinearTrendAlgorithm,
    analyze_consumption,
    select_best,
)

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def _part(quantity: int, days_old: float = 50) -> Component:
    return Component(
        id="p1", name="Part", quantity=quantity, created_at=NOW - timedelta(days=days_old)
    )


class TestAnalyzeConsumption:
    def test_average_rate(self):
        analysis = analyze_consumption(_part(100), UsageMetrics(component_id="p1", total_used=100), NOW)
        assert analysis.average_rate == pytest.approx(2.0)
        assert analysis.days_observed == pytest.approx(50.0)

    def test_record_from_the_future(self):
        analysis = analyze_consumption(
            _part(10, days_old=-3), UsageMetrics(component_id="p1", total_used=5), NOW
        )
        assert analysis.average_rate == 0.0
        assert analysis.days_observed == 0.0

    def test_naive_creation_time_treated_as_utc(self):
        component = Component(id="p1", name="Part", created_at=datetime(2026, 5, 22, 12, 0))
        analysis = analyze_consumption(component, UsageMetrics(component_id="p1", total_used=20), NOW)
        assert analysis.average_rate == pytest.approx(2.0)


class TestLinearTrend:
    def test_depletion_and_reorder(self):
        result = LinearTrendAlgorithm().predict(_part(100), ConsumptionAnalysis(average_rate=2.0), NOW)
        assert result.depletion_date == date(2026, 7, 21)
        assert result.reorder_quantity == 216
        assert result.confidence == 0.7
        assert result.algorithm == "linear"

    def test_exact_products_are_not_bumped(self):
        # 0.5/day over 90 days plus 20% is 54 units
        result = LinearTrendAlgorithm().predict(_part(10), ConsumptionAnalysis(average_rate=0.5), NOW)
        assert result.reorder_quantity == 54

    def test_fractional_reorder_rounds_up(self):
        result = LinearTrendAlgorithm().predict(_part(10), ConsumptionAnalysis(average_rate=0.1), NOW)
        assert result.reorder_quantity == 11

    def test_no_consumption(self):
        result = LinearTrendAlgorithm().predict(_part(10), ConsumptionAnalysis(average_rate=0.0), NOW)
        assert result.depletion_date is None
        assert result.reorder_quantity == 0

    def test_implausible_horizon(self):
        result = LinearTrendAlgorithm().predict(_part(5000), ConsumptionAnalysis(average_rate=2.0), NOW)
        assert result.depletion_date is None
        assert result.reorder_quantity == 216

    def test_empty_stock_has_no_depletion_date(self):
        result = LinearTrendAlgorithm().predict(_part(0), ConsumptionAnalysis(average_rate=2.0), NOW)
        assert result.depletion_date is None

    def test_configurable_constants(self):
        config = PredictionConfig(safety_stock_multiplier=1.5, reorder_cover_days=30, linear_confidence=0.6)
        result = LinearTrendAlgorithm(config).predict(_part(10), ConsumptionAnalysis(average_rate=2.0), NOW)
        assert result.reorder_quantity == 90
        assert result.confidence == 0.6


class TestSelectBest:
    def test_highest_confidence_wins(self):
        low = AlgorithmResult("a", None, 1, 0.5)
        high = AlgorithmResult("b", None, 2, 0.9)
        assert select_best([low, high]) is high

    def test_first_wins_ties(self):
        first = AlgorithmResult("a", None, 1, 0.7)
        second = AlgorithmResult("b", None, 2, 0.7)
        assert select_best([first, second]) is first

    def test_empty(self):
        with pytest.raises(ValueError):
            select_best([])
