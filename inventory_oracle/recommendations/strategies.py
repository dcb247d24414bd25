"""
Weighted scoring strategies for compatibility between two components.

Each strategy is a ``(name, weight, score_fn)`` entry; ``score_fn`` maps an
(original, candidate, context) triple to a score in [0, 100]. The aggregate is
the weighted mean::

    score = Σ(score_i * weight_i) / Σ(weight_i)

so it stays inside [0, 100] for any weights that are non-negative with a
positive sum. New strategies are added by appending to the list; the
aggregation loop never changes.

Strategy scores
---------------
category:         100 same category, else 0.
manufacturer:     100 same manufacturer, else 0.
availability:     0 when none in stock, 20 per unit, 100 from 5 units.
price:            100 - |Δprice| / original * 100, clamped at 0; 50 if unknown.
specifications:   mean of voltage / current / protocol / platform checks;
                  50 without required specs, 25 if the candidate has none.
user_preference:  from usage frequency: high 100, medium 75, low 25, else 50.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

from inventory_oracle.config import WeightingsConfig
from inventory_oracle.models.component import Component, ComponentSpecification, UsageMetrics

NEUTRAL_SCORE = 50.0

_FREQUENCY_SCORES: dict[str, float] = {
    "high": 100.0,
    "medium": 75.0,
    "low": 25.0,
}


@dataclass(frozen=True)
class ScoringContext:
    """Inputs shared by every strategy for one scoring pass.

    Attributes:
        required_specs:    Specification the candidate is checked against.
        metrics:           Usage metrics by component id (prefetched).
        current_tolerance: Fraction of the required max current a candidate
                           must reach.
    """

    required_specs: Optional[ComponentSpecification] = None
    metrics: dict[str, UsageMetrics] = field(default_factory=dict)
    current_tolerance: float = 0.8


ScoreFn = Callable[[Component, Component, ScoringContext], float]


@dataclass(frozen=True)
class ScoringStrategy:
    name: str
    weight: float
    score_fn: ScoreFn


# ── Strategy functions ────────────────────────────────────────────────────────

def score_category(original: Component, candidate: Component, ctx: ScoringContext) -> float:
    return 100.0 if original.category == candidate.category else 0.0


def score_manufacturer(original: Component, candidate: Component, ctx: ScoringContext) -> float:
    return 100.0 if original.manufacturer == candidate.manufacturer else 0.0


def score_availability(original: Component, candidate: Component, ctx: ScoringContext) -> float:
    qty = candidate.quantity
    if qty <= 0:
        return 0.0
    if qty >= 5:
        return 100.0
    return 20.0 * qty


def score_price(original: Component, candidate: Component, ctx: ScoringContext) -> float:
    if not original.purchase_price or candidate.purchase_price is None:
        return NEUTRAL_SCORE
    diff = abs(candidate.purchase_price - original.purchase_price)
    return max(0.0, 100.0 - diff / original.purchase_price * 100.0)


def score_specifications(
    original: Component, candidate: Component, ctx: ScoringContext
) -> float:
    required = ctx.required_specs
    if required is None:
        return NEUTRAL_SCORE
    specs = candidate.specifications
    if specs is None:
        return 25.0

    checks: list[float] = []

    if required.voltage and specs.voltage:
        checks.append(100.0 if required.voltage.overlaps(specs.voltage) else 0.0)

    if required.current and specs.current:
        enough = specs.current.max >= required.current.max * ctx.current_tolerance
        checks.append(100.0 if enough else 0.0)

    if required.protocols and specs.protocols:
        checks.append(_overlap_fraction(required.protocols, specs.protocols))

    if required.compatibility and specs.compatibility:
        checks.append(_overlap_fraction(required.compatibility, specs.compatibility))

    if not checks:
        return NEUTRAL_SCORE
    return sum(checks) / len(checks)


def score_user_preference(
    original: Component, candidate: Component, ctx: ScoringContext
) -> float:
    metrics = ctx.metrics.get(candidate.id)
    if metrics is None or metrics.usage_frequency is None:
        return NEUTRAL_SCORE
    return _FREQUENCY_SCORES.get(metrics.usage_frequency.value, NEUTRAL_SCORE)


def _overlap_fraction(required: list[str], offered: list[str]) -> float:
    wanted = {r.lower() for r in required}
    have = {o.lower() for o in offered}
    return len(wanted & have) / len(wanted) * 100.0


# ── Aggregation ───────────────────────────────────────────────────────────────

def build_default_strategies(weightings: Optional[WeightingsConfig] = None) -> list[ScoringStrategy]:
    """The six built-in strategies with weights from ``weightings``."""
    w = weightings or WeightingsConfig()
    return [
        ScoringStrategy("category", w.category, score_category),
        ScoringStrategy("manufacturer", w.manufacturer, score_manufacturer),
        ScoringStrategy("availability", w.availability, score_availability),
        ScoringStrategy("price", w.price, score_price),
        ScoringStrategy("specifications", w.specifications, score_specifications),
        ScoringStrategy("user_preference", w.user_preference, score_user_preference),
    ]


def weighted_score(
    original: Component,
    candidate: Component,
    strategies: list[ScoringStrategy],
    ctx: ScoringContext,
) -> int:
    """Weighted mean of all strategy scores, rounded to an int in [0, 100]."""
    numerator = 0.0
    denominator = 0.0
    for strategy in strategies:
        score = _clamp(strategy.score_fn(original, candidate, ctx), 0.0, 100.0)
        numerator += score * strategy.weight
        denominator += strategy.weight
    if denominator <= 0:
        return 0
    return int(round(_clamp(numerator / denominator, 0.0, 100.0)))


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))
