"""
Stock prediction engine: depletion dates, reorder alerts and demand outlook.

All forecasts derive from one quantity, the average daily consumption rate
``total_used / days since the component record was created``. Predictions
are cached for ``prediction_ttl_hours`` and the stock-alert batch for
``stock_alerts_ttl_hours``.

Alert urgency by days until depletion
-------------------------------------
    critical : days <= 7
    warning  : days <= 30
    info     : days <= 90
    (none)   : days >  90

Usage::

    engine = PredictionEngine(inventory, metrics, cache, handler, config.prediction)
    prediction = await engine.predict_depletion("esp32-01")
    alerts = await engine.generate_stock_alerts()
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta
from typing import Optional, Sequence

from inventory_oracle.cache.store import CacheStore, make_cache_key
from inventory_oracle.config import CacheConfig, PredictionConfig
from inventory_oracle.errors.handler import (
    ConfigurationError,
    RecommendationErrorHandler,
    RecommendationSystemError,
)
from inventory_oracle.models.component import Component, UsageFrequency, UsageMetrics
from inventory_oracle.models.errors import ErrorContext
from inventory_oracle.models.prediction import (
    URGENCY_RANK,
    AlertUrgency,
    ComponentTrend,
    ComponentTrendReport,
    CostTier,
    DemandForecast,
    DemandPeriod,
    PredictionEngineStats,
    ProjectSuccessPrediction,
    QuantitySuggestion,
    StockAlert,
    StockPrediction,
)
from inventory_oracle.prediction.algorithms import (
    LinearTrendAlgorithm,
    PredictionAlgorithm,
    analyze_consumption,
    select_best,
)
from inventory_oracle.stores import InventoryStore, UsageMetricsStore
from inventory_oracle.taxonomy.error_taxonomy import ErrorKind, ErrorSeverity
from inventory_oracle.utils.time_utils import Clock, month_key, utcnow

logger = logging.getLogger(__name__)

NO_HISTORY = "No usage history available"
PREDICTION_FAILED = "Prediction failed"
SMALL_SAMPLE = "Limited project history - prediction based on small sample size"
LOW_STOCK = "Low current stock - consider emergency reorder"

_MAX_TREND_ENTRIES = 10
_DEFAULT_UNIT_PRICE = 10.0
_DEFAULT_ORDER_QUANTITY = 5


class PredictionEngine:
    """Usage-based stock forecasting.

    Parameters
    ----------
    inventory:
        Read-only component store.
    metrics_store:
        Usage aggregates per component.
    cache:
        Shared ``CacheStore`` for predictions and the alert batch.
    error_handler:
        Degradation choke point.
    config:
        ``PredictionConfig`` constants.
    cache_config:
        TTLs for predictions and alerts.
    algorithms:
        Depletion algorithms; the most confident result wins.
    clock:
        Returns the current UTC time.
    """

    def __init__(
        self,
        inventory: InventoryStore,
        metrics_store: UsageMetricsStore,
        cache: CacheStore,
        error_handler: RecommendationErrorHandler,
        config: Optional[PredictionConfig] = None,
        cache_config: Optional[CacheConfig] = None,
        algorithms: Optional[Sequence[PredictionAlgorithm]] = None,
        clock: Clock = utcnow,
    ) -> None:
        if inventory is None:
            raise ConfigurationError("PredictionEngine requires an inventory store.")
        if metrics_store is None:
            raise ConfigurationError("PredictionEngine requires a usage-metrics store.")
        if cache is None:
            raise ConfigurationError("PredictionEngine requires a cache store.")
        if error_handler is None:
            raise ConfigurationError("PredictionEngine requires an error handler.")

        self.inventory = inventory
        self.metrics_store = metrics_store
        self.cache = cache
        self.error_handler = error_handler
        self.config = config or PredictionConfig()
        self.cache_config = cache_config or CacheConfig()
        self.algorithms: list[PredictionAlgorithm] = list(
            algorithms or [LinearTrendAlgorithm(self.config)]
        )
        if not self.algorithms:
            raise ConfigurationError("PredictionEngine requires at least one algorithm.")
        self._clock = clock

        self._prediction_count = 0
        self._confidence_sum = 0.0
        self._active_alerts = 0

    # ── Depletion ─────────────────────────────────────────────────────────────

    async def predict_depletion(self, component_id: str) -> StockPrediction:
        """Predict when a component runs out and how much to reorder.

        A missing usage record yields a zero-confidence prediction tagged
        ``"No usage history available"``; any failure yields one tagged
        ``"Prediction failed"``.
        """
        key = make_cache_key("stock_prediction", component_id)
        context = ErrorContext(operation="predict_depletion", component_id=component_id)
        try:
            cached = await self.cache.get(key)
            if cached is not None:
                return StockPrediction.model_validate(cached)

            component = await self._require_component(component_id, "predict_depletion")
            metrics = await self.metrics_store.get_usage_metrics(component_id)
            if metrics is None:
                return _empty_prediction(component_id, NO_HISTORY, component.quantity)

            now = self._clock()
            analysis = analyze_consumption(component, metrics, now)
            best = select_best(
                [algo.predict(component, analysis, now) for algo in self.algorithms]
            )
            prediction = StockPrediction(
                component_id=component_id,
                current_stock=component.quantity,
                predicted_depletion_date=best.depletion_date,
                recommended_reorder_quantity=best.reorder_quantity,
                confidence=best.confidence,
                consumption_rate=analysis.average_rate,
                factors=self._prediction_factors(component, metrics),
            )

            await self.cache.set(
                key, prediction.model_dump(mode="json"), self.cache_config.prediction_ttl_hours
            )
            self._prediction_count += 1
            self._confidence_sum += prediction.confidence
            logger.debug(
                "%s: %.3f/day via %s, depletion %s.",
                component_id,
                analysis.average_rate,
                best.algorithm,
                best.depletion_date,
            )
            return prediction

        except Exception as exc:
            return self.error_handler.handle(
                exc, context, _empty_prediction(component_id, PREDICTION_FAILED)
            )

    def _prediction_factors(self, component: Component, metrics: UsageMetrics) -> list[str]:
        factors: list[str] = []
        if metrics.project_count < self.config.min_project_history:
            factors.append(SMALL_SAMPLE)
        if component.quantity < self.config.low_stock_threshold:
            factors.append(LOW_STOCK)
        return factors

    # ── Stock alerts ──────────────────────────────────────────────────────────

    def alert_urgency(self, days_until_depletion: int) -> Optional[AlertUrgency]:
        """Urgency band for ``days_until_depletion``, or ``None`` beyond the info threshold."""
        thresholds = self.config.alert_thresholds
        if days_until_depletion <= thresholds.critical:
            return AlertUrgency.CRITICAL
        if days_until_depletion <= thresholds.warning:
            return AlertUrgency.WARNING
        if days_until_depletion <= thresholds.info:
            return AlertUrgency.INFO
        return None

    async def generate_stock_alerts(self) -> list[StockAlert]:
        """Alerts for every in-stock component projected to deplete within 90 days.

        Sorted most urgent first, then by fewest days remaining.
        """
        key = make_cache_key("stock_alerts", "all")
        context = ErrorContext(operation="generate_stock_alerts")
        try:
            cached = await self.cache.get(key)
            if cached is not None:
                return [StockAlert.model_validate(a) for a in cached]

            today = self._clock().date()
            alerts: list[StockAlert] = []
            for item in await self.inventory.get_all_items():
                if item.quantity <= 0:
                    continue
                prediction = await self.predict_depletion(item.id)
                if prediction.predicted_depletion_date is None:
                    continue
                days = (prediction.predicted_depletion_date - today).days
                urgency = self.alert_urgency(days)
                if urgency is None:
                    continue
                alerts.append(
                    StockAlert(
                        component_id=item.id,
                        component_name=item.name,
                        urgency=urgency,
                        current_stock=item.quantity,
                        predicted_depletion_date=prediction.predicted_depletion_date,
                        days_until_depletion=days,
                        recommended_action=recommended_action(urgency, days),
                        recommended_quantity=prediction.recommended_reorder_quantity,
                        confidence=prediction.confidence,
                    )
                )

            alerts.sort(key=lambda a: (URGENCY_RANK[a.urgency], a.days_until_depletion))
            await self.cache.set(
                key,
                [a.model_dump(mode="json") for a in alerts],
                self.cache_config.stock_alerts_ttl_hours,
            )
            self._active_alerts = len(alerts)
            logger.info("Generated %d stock alerts.", len(alerts))
            return alerts

        except Exception as exc:
            return self.error_handler.handle(exc, context, [])

    # ── Demand and project outlook ────────────────────────────────────────────

    async def forecast_component_demand(
        self, component_id: str, horizon_days: int
    ) -> DemandForecast:
        """Flat monthly demand (daily rate x 30) over ``ceil(horizon / 30)`` months, max 12."""
        context = ErrorContext(
            operation="forecast_component_demand",
            component_id=component_id,
            additional_data={"horizon_days": horizon_days},
        )
        try:
            component = await self._require_component(component_id, "forecast_component_demand")
            metrics = await self.metrics_store.get_usage_metrics(component_id)
            if metrics is None:
                raise RecommendationSystemError(
                    ErrorKind.INSUFFICIENT_DATA,
                    f"No usage data for component {component_id}",
                    context,
                    ErrorSeverity.LOW,
                )

            cfg = self.config
            now = self._clock()
            rate = analyze_consumption(component, metrics, now).average_rate
            period_count = min(math.ceil(max(horizon_days, 0) / 30), cfg.max_forecast_periods)
            monthly = max(0.0, rate * 30)

            periods: list[DemandPeriod] = []
            peak_period = ""
            peak_demand = 0.0
            for i in range(period_count):
                name = month_key(now + timedelta(days=30 * i))
                periods.append(
                    DemandPeriod(
                        period=name,
                        predicted_demand=round(monthly, 2),
                        confidence=max(
                            cfg.demand_min_confidence,
                            round(cfg.demand_base_confidence - i * cfg.demand_confidence_decay, 4),
                        ),
                    )
                )
                if monthly > peak_demand:
                    peak_demand = monthly
                    peak_period = name

            return DemandForecast(
                component_id=component_id,
                forecast_periods=periods,
                total_demand=round(monthly * period_count, 2),
                peak_period=peak_period,
            )

        except Exception as exc:
            return self.error_handler.handle(
                exc, context, DemandForecast(component_id=component_id)
            )

    async def predict_project_success(
        self, component_ids: list[str], project_type: str
    ) -> ProjectSuccessPrediction:
        """Blend component success rates into a project success probability."""
        context = ErrorContext(
            operation="predict_project_success",
            additional_data={"component_count": len(component_ids), "project_type": project_type},
        )
        cfg = self.config
        try:
            probability = cfg.project_success_base
            risks: list[str] = []
            for component_id in component_ids:
                metrics = await self.metrics_store.get_usage_metrics(component_id)
                if metrics is None:
                    risks.append(f"No usage history for component {component_id}")
                    probability *= cfg.missing_history_penalty
                    continue
                probability = (probability + metrics.success_rate) / 2
                if metrics.success_rate < cfg.project_success_risk_threshold:
                    risks.append(f"Low success rate for component {component_id}")

            recommendations: list[str] = []
            if probability < cfg.project_success_base:
                recommendations.append(
                    "Consider starting with a simpler project to gain experience"
                )

            return ProjectSuccessPrediction(
                success_probability=max(0.1, min(0.95, probability)),
                confidence=max(0.3, round(0.8 - len(risks) * 0.1, 4)),
                risk_factors=risks,
                recommendations=recommendations,
            )
        except Exception as exc:
            return self.error_handler.handle(
                exc,
                context,
                ProjectSuccessPrediction(
                    success_probability=0.5,
                    confidence=0.3,
                    risk_factors=[PREDICTION_FAILED],
                    recommendations=["Review project requirements carefully"],
                ),
            )

    async def identify_component_trends(self, category: str) -> ComponentTrendReport:
        """Bucket a category's components into trending up, down or stable."""
        context = ErrorContext(
            operation="identify_component_trends", additional_data={"category": category}
        )
        threshold = self.config.trend_score_threshold
        try:
            today = self._clock().date()
            up: list[ComponentTrend] = []
            down: list[ComponentTrend] = []
            stable: list[ComponentTrend] = []

            for component in await self.inventory.get_by_category(category):
                metrics = await self.metrics_store.get_usage_metrics(component.id)
                if metrics is None:
                    continue
                trend = ComponentTrend(
                    component_id=component.id,
                    name=component.name,
                    trend_score=trend_score(metrics, today),
                )
                if trend.trend_score > threshold:
                    up.append(trend)
                elif trend.trend_score < -threshold:
                    down.append(trend)
                else:
                    stable.append(trend)

            insights: list[str] = []
            if up:
                insights.append(f"{len(up)} components trending up in {category} category")

            return ComponentTrendReport(
                category=category,
                trending_up=up[:_MAX_TREND_ENTRIES],
                trending_down=down[:_MAX_TREND_ENTRIES],
                stable=stable[:_MAX_TREND_ENTRIES],
                insights=insights,
            )
        except Exception as exc:
            return self.error_handler.handle(
                exc,
                context,
                ComponentTrendReport(category=category, insights=["Trend analysis failed"]),
            )

    async def suggest_optimal_quantities(self, component_id: str) -> QuantitySuggestion:
        """Order size covering three projects of average usage, with a cost table."""
        context = ErrorContext(operation="suggest_optimal_quantities", component_id=component_id)
        try:
            component = await self._require_component(component_id, "suggest_optimal_quantities")
            metrics = await self.metrics_store.get_usage_metrics(component_id)

            reasoning: list[str] = []
            if metrics is not None and metrics.project_count > 0:
                per_project = metrics.total_used / metrics.project_count
                base = max(1, math.ceil(round(per_project * 3, 9)))
                reasoning.append(f"Based on average usage of {per_project:g} per project")
            else:
                base = _DEFAULT_ORDER_QUANTITY
                reasoning.append("No usage history - using conservative estimate")

            low = max(1, math.ceil(round(base * 0.7, 9)))
            high = math.ceil(round(base * 1.5, 9))
            price = component.purchase_price or _DEFAULT_UNIT_PRICE
            tiers = [
                _cost_tier(low, price * 1.1),
                _cost_tier(base, price),
                _cost_tier(high, price * 0.9),
            ]
            return QuantitySuggestion(
                component_id=component_id,
                recommended_quantity=base,
                min_quantity=low,
                max_quantity=high,
                reasoning=reasoning,
                cost_analysis=tiers,
            )
        except Exception as exc:
            return self.error_handler.handle(
                exc,
                context,
                QuantitySuggestion(
                    component_id=component_id,
                    recommended_quantity=5,
                    min_quantity=3,
                    max_quantity=10,
                    reasoning=["Default recommendation due to error"],
                ),
            )

    def get_engine_stats(self) -> PredictionEngineStats:
        average = self._confidence_sum / self._prediction_count if self._prediction_count else 0.0
        return PredictionEngineStats(
            total_predictions=self._prediction_count,
            active_alerts=self._active_alerts,
            average_confidence=round(average, 4),
            algorithms=[a.name for a in self.algorithms],
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


def recommended_action(urgency: AlertUrgency, days: int) -> str:
    if urgency == AlertUrgency.CRITICAL:
        return f"URGENT: Order immediately - only {days} days of stock remaining"
    if urgency == AlertUrgency.WARNING:
        return f"Order soon - {days} days of stock remaining"
    return f"Consider ordering - {days} days of stock remaining"


def trend_score(metrics: UsageMetrics, today: date) -> float:
    """Usage trend in [-1, 1] from recency of last use and usage frequency.

    Never-used components count as not used for a long time.
    """
    score = 0.0
    days_since = (today - metrics.last_used).days if metrics.last_used else None
    if days_since is not None and days_since < 7:
        score += 0.3
    elif days_since is None or days_since > 90:
        score -= 0.2

    if metrics.usage_frequency == UsageFrequency.HIGH:
        score += 0.2
    elif metrics.usage_frequency == UsageFrequency.LOW:
        score -= 0.1
    return round(max(-1.0, min(1.0, score)), 4)


def _empty_prediction(component_id: str, reason: str, stock: int = 0) -> StockPrediction:
    return StockPrediction(component_id=component_id, current_stock=stock, factors=[reason])


def _cost_tier(quantity: int, unit_cost: float) -> CostTier:
    return CostTier(
        quantity=quantity,
        unit_cost=round(unit_cost, 2),
        total_cost=round(quantity * unit_cost, 2),
    )
