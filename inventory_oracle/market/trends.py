"""
Price-trend math over a component's price history.

Pure functions, no I/O. Inputs are price series in chronological order.

  - ``calculate_volatility``  coefficient of variation (population std / mean).
  - ``calculate_trend``       first-half vs. second-half mean change; a change
                              beyond the threshold is increasing/decreasing,
                              otherwise a high CV is volatile, else stable.
  - ``trend_strength``        ``max(0, 1 - CV)``.
  - ``project_prices``        next month ``p * m`` and next quarter ``p * m**3``.
  - ``analyze_seasonality``   monthly means that deviate from the overall mean.
"""

from __future__ import annotations

import math
from collections import defaultdict
from statistics import fmean
from typing import Sequence

from inventory_oracle.models.market import (
    MarketTrendDirection,
    PricePoint,
    PriceProjection,
    Seasonality,
)


def calculate_volatility(prices: Sequence[float]) -> float:
    """Coefficient of variation of ``prices``; ``0`` for fewer than two points."""
    if len(prices) < 2:
        return 0.0
    mean = fmean(prices)
    if mean == 0:
        return 0.0
    variance = sum((p - mean) ** 2 for p in prices) / len(prices)
    return math.sqrt(variance) / mean


def calculate_trend(
    prices: Sequence[float],
    change_threshold: float = 0.05,
    volatility_threshold: float = 0.2,
) -> MarketTrendDirection:
    """Classify the direction of a price series.

    Args:
        prices: Chronological price series.
        change_threshold: Relative change of the half-means that counts as a move.
        volatility_threshold: CV above which a flat series is ``volatile``.
    """
    if len(prices) < 2:
        return MarketTrendDirection.STABLE

    half = len(prices) // 2
    first_avg = fmean(prices[:half])
    second_avg = fmean(prices[half:])
    change = (second_avg - first_avg) / first_avg if first_avg else 0.0

    if change > change_threshold:
        return MarketTrendDirection.INCREASING
    if change < -change_threshold:
        return MarketTrendDirection.DECREASING
    if calculate_volatility(prices) > volatility_threshold:
        return MarketTrendDirection.VOLATILE
    return MarketTrendDirection.STABLE


def trend_strength(prices: Sequence[float]) -> float:
    if len(prices) < 2:
        return 0.0
    return min(1.0, max(0.0, 1.0 - calculate_volatility(prices)))


def trend_multiplier(
    trend: MarketTrendDirection,
    increasing: float = 1.05,
    decreasing: float = 0.95,
) -> float:
    if trend == MarketTrendDirection.INCREASING:
        return increasing
    if trend == MarketTrendDirection.DECREASING:
        return decreasing
    return 1.0


def project_prices(
    prices: Sequence[float],
    trend: MarketTrendDirection,
    increasing: float = 1.05,
    decreasing: float = 0.95,
    confidence: float = 0.7,
) -> PriceProjection:
    """Project the latest price one month and one quarter ahead."""
    if not prices:
        return PriceProjection(next_month=0.0, next_quarter=0.0, confidence=0.0)
    current = prices[-1]
    multiplier = trend_multiplier(trend, increasing, decreasing)
    return PriceProjection(
        next_month=current * multiplier,
        next_quarter=current * multiplier**3,
        confidence=confidence,
    )


def analyze_seasonality(
    points: Sequence[PricePoint],
    threshold: float = 0.1,
    min_months: int = 3,
) -> Seasonality:
    """Flag months whose mean price deviates from the overall mean by ``threshold``.

    History spanning fewer than ``min_months`` calendar months is never
    seasonal: one or two months cannot separate seasonality from trend.
    """
    by_month: dict[int, list[float]] = defaultdict(list)
    for point in points:
        by_month[point.observed_at.month].append(point.amount)

    if len(by_month) < min_months:
        return Seasonality()

    overall = fmean(p.amount for p in points)
    if overall == 0:
        return Seasonality()

    month_means = {month: fmean(values) for month, values in by_month.items()}
    peaks = sorted(m for m, avg in month_means.items() if (avg - overall) / overall > threshold)
    lows = sorted(m for m, avg in month_means.items() if (overall - avg) / overall > threshold)
    return Seasonality(
        has_seasonality=bool(peaks or lows),
        peak_months=peaks,
        low_months=lows,
    )
