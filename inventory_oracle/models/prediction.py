"""
Output models of the stock prediction engine.

``StockPrediction`` and ``StockAlert`` are recomputed per query and cached
briefly. A prediction made without usage data carries ``confidence == 0`` and
a factor explaining why, so callers can tell degraded output from confident
output without inspecting logs.
"""

from __future__ import annotations

from datetime import date
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AlertUrgency(StrEnum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


# Sort key: lower is more urgent.
URGENCY_RANK: dict[AlertUrgency, int] = {
    AlertUrgency.CRITICAL: 0,
    AlertUrgency.WARNING: 1,
    AlertUrgency.INFO: 2,
}


class TrendDirection(StrEnum):
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


class StockPrediction(BaseModel):
    """Depletion forecast for one component.

    Attributes:
        component_id: Component predicted.
        current_stock: Units on hand at prediction time.
        predicted_depletion_date: Date stock runs out, or ``None`` when usage
            is zero or the horizon is implausibly far.
        recommended_reorder_quantity: Units to order for 90 days plus buffer.
        confidence: [0, 1]; ``0`` marks a fallback prediction.
        consumption_rate: Units per day.
        factors: Qualitative notes affecting confidence.
    """

    model_config = ConfigDict(frozen=True)

    component_id: str
    current_stock: int
    predicted_depletion_date: Optional[date] = None
    recommended_reorder_quantity: int = 0
    confidence: float = 0.0
    consumption_rate: float = 0.0
    factors: list[str] = Field(default_factory=list)

    @field_validator("confidence")
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"confidence must be in [0.0, 1.0], got {v}.")
        return v


class StockAlert(BaseModel):
    """A reorder alert for a component projected to run out soon."""

    model_config = ConfigDict(frozen=True)

    component_id: str
    component_name: str
    urgency: AlertUrgency
    current_stock: int
    predicted_depletion_date: date
    days_until_depletion: int
    recommended_action: str
    recommended_quantity: int
    confidence: float


class DemandPeriod(BaseModel):
    model_config = ConfigDict(frozen=True)

    period: str
    predicted_demand: float
    confidence: float


class DemandForecast(BaseModel):
    """Monthly demand projection for one component."""

    model_config = ConfigDict(frozen=True)

    component_id: str
    forecast_periods: list[DemandPeriod] = Field(default_factory=list)
    total_demand: float = 0.0
    peak_period: str = ""
    trend_direction: TrendDirection = TrendDirection.STABLE


class ProjectSuccessPrediction(BaseModel):
    model_config = ConfigDict(frozen=True)

    success_probability: float
    confidence: float
    risk_factors: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class ComponentTrend(BaseModel):
    model_config = ConfigDict(frozen=True)

    component_id: str
    name: str
    trend_score: float


class ComponentTrendReport(BaseModel):
    """Components of one category bucketed by usage trend."""

    model_config = ConfigDict(frozen=True)

    category: str
    trending_up: list[ComponentTrend] = Field(default_factory=list)
    trending_down: list[ComponentTrend] = Field(default_factory=list)
    stable: list[ComponentTrend] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)


class CostTier(BaseModel):
    model_config = ConfigDict(frozen=True)

    quantity: int
    unit_cost: float
    total_cost: float


class QuantitySuggestion(BaseModel):
    """Order-size suggestion with a three-tier cost table."""

    model_config = ConfigDict(frozen=True)

    component_id: str
    recommended_quantity: int
    min_quantity: int
    max_quantity: int
    reasoning: list[str] = Field(default_factory=list)
    cost_analysis: list[CostTier] = Field(default_factory=list)


class PredictionEngineStats(BaseModel):
    """Running counters of a ``PredictionEngine`` since construction."""

    model_config = ConfigDict(frozen=True)

    total_predictions: int = 0
    active_alerts: int = 0
    average_confidence: float = 0.0
    algorithms: list[str] = Field(default_factory=list)
