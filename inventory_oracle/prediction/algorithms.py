"""
Interchangeable stock-depletion algorithms.

The prediction engine runs every registered algorithm over the same
``ConsumptionAnalysis`` and keeps the result with the highest confidence.
Adding an algorithm means appending an object with ``name`` and
``predict(...)``; callers of the engine do not change.

Only ``LinearTrendAlgorithm`` ships: stock divided by the average daily
consumption rate.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Protocol, Sequence

from inventory_oracle.config import PredictionConfig
from inventory_oracle.models.component import Component, UsageMetrics
from inventory_oracle.models.prediction import TrendDirection
from inventory_oracle.utils.time_utils import add_days, days_between


@dataclass(frozen=True)
class ConsumptionAnalysis:
    """Consumption pattern of one component.

    Attributes:
        average_rate:       Units consumed per day since the record was created.
        trend_direction:    Direction of consumption; always stable for now.
        days_observed:      Days between creation and the analysis time.
    """

    average_rate: float
    trend_direction: TrendDirection = TrendDirection.STABLE
    days_observed: float = 0.0


@dataclass(frozen=True)
class AlgorithmResult:
    algorithm: str
    depletion_date: Optional[date]
    reorder_quantity: int
    confidence: float


class PredictionAlgorithm(Protocol):
    name: str

    def predict(
        self,
        component: Component,
        analysis: ConsumptionAnalysis,
        now: datetime,
    ) -> AlgorithmResult: ...


def analyze_consumption(
    component: Component, metrics: UsageMetrics, now: datetime
) -> ConsumptionAnalysis:
    """Average daily rate = ``total_used / days since creation`` (0 if not positive)."""
    days = days_between(component.created_at, now)
    rate = metrics.total_used / days if days > 0 else 0.0
    return ConsumptionAnalysis(average_rate=rate, days_observed=max(days, 0.0))


class LinearTrendAlgorithm:
    """Constant-rate depletion with ``reorder_cover_days`` of safety stock."""

    name = "linear"

    def __init__(self, config: Optional[PredictionConfig] = None) -> None:
        self.config = config or PredictionConfig()

    def predict(
        self,
        component: Component,
        analysis: ConsumptionAnalysis,
        now: datetime,
    ) -> AlgorithmResult:
        cfg = self.config
        rate = analysis.average_rate

        depletion: Optional[date] = None
        if rate > 0:
            days = component.quantity / rate
            if 0 < days < cfg.max_depletion_days:
                depletion = add_days(now, days)

        # Round away float noise before ceil so exact products are not bumped up a unit.
        reorder = math.ceil(round(rate * cfg.reorder_cover_days * cfg.safety_stock_multiplier, 9))
        return AlgorithmResult(
            algorithm=self.name,
            depletion_date=depletion,
            reorder_quantity=reorder,
            confidence=cfg.linear_confidence,
        )


def select_best(results: Sequence[AlgorithmResult]) -> AlgorithmResult:
    """Highest-confidence result; the first one wins ties."""
    if not results:
        raise ValueError("No prediction algorithm produced a result.")
    best = results[0]
    for result in results[1:]:
        if result.confidence > best.confidence:
            best = result
    return best
