"""
Compatibility scoring engine: ranked substitutes for an inventory component.

Pipeline per query
------------------
1. Discover candidates (category, manufacturer, name match, relationships).
2. Prefetch usage metrics for every candidate (the only I/O after discovery).
3. Score each candidate synchronously with the weighted strategies.
4. Drop candidates below ``min_compatibility_score``; sort descending by score
   (stable, so discovery order breaks ties); keep ``max_alternatives``.
5. Build technical differences, usability impact, required modifications and
   an explanation for each survivor.

Usage::

    engine = ComponentAlternativeEngine(inventory, metrics, handler, config.alternatives)
    alternatives = await engine.find_alternatives(component)
"""

from __future__ import annotations

import logging
from typing import Optional

from inventory_oracle.config import AlternativesConfig
from inventory_oracle.currency.formatting import format_price
from inventory_oracle.errors.handler import ConfigurationError, RecommendationErrorHandler
from inventory_oracle.models.component import Component, ComponentSpecification, UsageMetrics
from inventory_oracle.models.errors import ErrorContext
from inventory_oracle.models.recommendation import (
    ComponentAlternative,
    DifferenceImpact,
    PriceDelta,
    ProjectContext,
    TechnicalDifference,
    UsabilityImpact,
)
from inventory_oracle.recommendations.candidates import discover_candidates
from inventory_oracle.recommendations.strategies import (
    ScoringContext,
    ScoringStrategy,
    build_default_strategies,
    weighted_score,
)
from inventory_oracle.stores import InventoryStore, UsageMetricsStore

logger = logging.getLogger(__name__)

MAX_CONFIDENCE = 95

CONDITION_RANK: dict[str, int] = {
    "new": 5,
    "refurbished": 4,
    "used": 3,
    "unknown": 2,
    "damaged": 1,
}

MODIFICATION_ACTIONS: dict[str, str] = {
    "voltage": "Adjust power supply voltage or add voltage regulator",
    "current": "Ensure power supply can provide sufficient current",
    "protocols": "Update software to use compatible communication protocol",
}


class ComponentAlternativeEngine:
    """Ranks substitute components by weighted compatibility.

    Parameters
    ----------
    inventory:
        Read-only component store searched for candidates.
    metrics_store:
        Usage metrics source for the user-preference strategy.
    error_handler:
        Degradation choke point; failures yield an empty list.
    config:
        ``AlternativesConfig`` (limits, thresholds and strategy weights).
    strategies:
        Override the built-in strategy list.
    """

    def __init__(
        self,
        inventory: InventoryStore,
        metrics_store: UsageMetricsStore,
        error_handler: RecommendationErrorHandler,
        config: Optional[AlternativesConfig] = None,
        strategies: Optional[list[ScoringStrategy]] = None,
    ) -> None:
        if inventory is None:
            raise ConfigurationError("ComponentAlternativeEngine requires an inventory store.")
        if metrics_store is None:
            raise ConfigurationError("ComponentAlternativeEngine requires a usage-metrics store.")
        if error_handler is None:
            raise ConfigurationError("ComponentAlternativeEngine requires an error handler.")
        self.inventory = inventory
        self.metrics_store = metrics_store
        self.error_handler = error_handler
        self.config = config or AlternativesConfig()
        self.strategies = strategies or build_default_strategies(self.config.weightings)

    async def find_alternatives(
        self,
        component: Component,
        specs: Optional[ComponentSpecification] = None,
        context: Optional[ProjectContext] = None,
    ) -> list[ComponentAlternative]:
        """Return up to ``max_alternatives`` substitutes, best first.

        Args:
            component: The part to replace.
            specs: Required specification; defaults to the component's own.
            context: Optional project information (logged with errors).
        """
        error_context = ErrorContext(
            operation="find_alternatives",
            component_id=component.id,
            additional_data={"project_id": context.project_id} if context else {},
        )
        try:
            candidates = await discover_candidates(
                component, self.inventory, self.config.name_similarity_threshold
            )
            metrics = await self._prefetch_metrics(candidates)
            scoring = ScoringContext(
                required_specs=specs if specs is not None else component.specifications,
                metrics=metrics,
                current_tolerance=self.config.current_tolerance,
            )

            scored = [
                (candidate, weighted_score(component, candidate, self.strategies, scoring))
                for candidate in candidates
            ]
            kept = [(c, s) for c, s in scored if s >= self.config.min_compatibility_score]
            kept.sort(key=lambda pair: pair[1], reverse=True)
            kept = kept[: self.config.max_alternatives]

            logger.debug(
                "%s: %d candidates, %d above %d.",
                component.id,
                len(candidates),
                len(kept),
                self.config.min_compatibility_score,
            )
            return [self._build_alternative(component, c, s) for c, s in kept]

        except Exception as exc:
            return self.error_handler.handle(exc, error_context, [])

    async def _prefetch_metrics(self, candidates: list[Component]) -> dict[str, UsageMetrics]:
        metrics: dict[str, UsageMetrics] = {}
        for candidate in candidates:
            m = await self.metrics_store.get_usage_metrics(candidate.id)
            if m is not None:
                metrics[candidate.id] = m
        return metrics

    # ── Result assembly ───────────────────────────────────────────────────────

    def _build_alternative(
        self, original: Component, candidate: Component, score: int
    ) -> ComponentAlternative:
        differences = technical_differences(original, candidate)
        negatives = [d for d in differences if d.impact == DifferenceImpact.NEGATIVE]
        modifications = [modification_for(d.property) for d in negatives]
        price = price_delta(original, candidate)
        return ComponentAlternative(
            component_id=candidate.id,
            name=candidate.name,
            compatibility_score=score,
            price_comparison=price,
            technical_differences=differences,
            usability_impact=classify_usability(score, len(negatives)),
            explanation=build_explanation(original, candidate, score, price, negatives),
            confidence=min(score, MAX_CONFIDENCE),
            required_modifications=modifications or None,
        )


# ── Module-level helpers ──────────────────────────────────────────────────────

def price_delta(original: Component, candidate: Component) -> PriceDelta:
    """Unit-price comparison; unknown prices count as 0."""
    orig = original.purchase_price or 0.0
    alt = candidate.purchase_price or 0.0
    savings = orig - alt
    pct = (alt - orig) / orig * 100.0 if orig > 0 else 0.0
    return PriceDelta(
        original=orig,
        alternative=alt,
        savings=round(savings, 2),
        percentage_difference=round(pct, 2),
    )


def _condition_rank(condition: Optional[str]) -> int:
    return CONDITION_RANK.get((condition or "unknown").lower(), CONDITION_RANK["unknown"])


def technical_differences(original: Component, candidate: Component) -> list[TechnicalDifference]:
    """Property-level differences in fixed order: manufacturer, condition, voltage, current, protocols."""
    diffs: list[TechnicalDifference] = []

    if original.manufacturer != candidate.manufacturer:
        diffs.append(
            TechnicalDifference(
                property="manufacturer",
                original=original.manufacturer or "Unknown",
                alternative=candidate.manufacturer or "Unknown",
                impact=DifferenceImpact.NEUTRAL,
                description="Different manufacturer may have different quality or support",
            )
        )

    orig_rank = _condition_rank(original.condition)
    cand_rank = _condition_rank(candidate.condition)
    if orig_rank != cand_rank:
        better = cand_rank > orig_rank
        diffs.append(
            TechnicalDifference(
                property="condition",
                original=original.condition or "Unknown",
                alternative=candidate.condition or "Unknown",
                impact=DifferenceImpact.POSITIVE if better else DifferenceImpact.NEGATIVE,
                description=(
                    "Alternative is in better condition"
                    if better
                    else "Alternative is in worse condition"
                ),
            )
        )

    a = original.specifications
    b = candidate.specifications
    if a is None or b is None:
        return diffs

    if a.voltage and b.voltage and a.voltage != b.voltage:
        compatible = a.voltage.overlaps(b.voltage)
        diffs.append(
            TechnicalDifference(
                property="voltage",
                original=a.voltage.describe(),
                alternative=b.voltage.describe(),
                impact=DifferenceImpact.NEUTRAL if compatible else DifferenceImpact.NEGATIVE,
                description=(
                    "Voltage ranges overlap" if compatible else "Voltage ranges do not overlap"
                ),
            )
        )

    if a.current and b.current and a.current != b.current:
        sufficient = b.current.max >= a.current.max
        diffs.append(
            TechnicalDifference(
                property="current",
                original=a.current.describe(),
                alternative=b.current.describe(),
                impact=DifferenceImpact.POSITIVE if sufficient else DifferenceImpact.NEGATIVE,
                description=(
                    "Alternative supports equal or higher current"
                    if sufficient
                    else "Alternative has lower current capacity"
                ),
            )
        )

    if a.protocols and b.protocols:
        missing = sorted({p.lower() for p in a.protocols} - {p.lower() for p in b.protocols})
        if missing:
            diffs.append(
                TechnicalDifference(
                    property="protocols",
                    original=", ".join(a.protocols),
                    alternative=", ".join(b.protocols),
                    impact=DifferenceImpact.NEGATIVE,
                    description=f"Alternative lacks protocol support: {', '.join(missing)}",
                )
            )

    return diffs


def classify_usability(score: int, negative_count: int) -> UsabilityImpact:
    """Effort of substitution from score and number of negative differences."""
    if score >= 90 and negative_count == 0:
        return UsabilityImpact.NONE
    if score >= 80 and negative_count <= 1:
        return UsabilityImpact.MINIMAL
    if score >= 60 and negative_count <= 2:
        return UsabilityImpact.MODERATE
    return UsabilityImpact.SIGNIFICANT


def modification_for(prop: str) -> str:
    return MODIFICATION_ACTIONS.get(prop, f"Review {prop} compatibility and adjust as needed")


def build_explanation(
    original: Component,
    candidate: Component,
    score: int,
    price: PriceDelta,
    negatives: list[TechnicalDifference],
) -> str:
    reasons: list[str] = []
    if candidate.category and candidate.category == original.category:
        reasons.append(f"same category ({candidate.category})")
    if candidate.manufacturer and candidate.manufacturer == original.manufacturer:
        reasons.append(f"same manufacturer ({candidate.manufacturer})")
    if candidate.quantity > 0:
        reasons.append(f"in stock ({candidate.quantity} available)")
    if price.savings > 0 and candidate.purchase_price is not None:
        reasons.append(f"costs less (saves {format_price(price.savings, original.currency)})")

    if reasons:
        text = f"This component is suggested because it has {', '.join(reasons)}."
    else:
        text = "This component is suggested as a possible substitute."
    text += f" Compatibility score: {score}%."
    if negatives:
        plural = "s" if len(negatives) != 1 else ""
        text += (
            f" Note: {len(negatives)} technical difference{plural} to consider."
            " Review technical differences before substituting."
        )
    return text
