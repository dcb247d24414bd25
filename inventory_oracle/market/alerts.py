"""
Price-alert rule evaluation.

``should_trigger`` decides whether one alert fires against the current
minimum price of a component. Reference price for the fractional rules is
the alert's ``original_price`` (captured at creation), falling back to the
supplied reference (the component's purchase price). Without either, drop
and increase rules cannot fire.

Availability alerts never fire here: supplier quotes carry no stock levels.
"""

from __future__ import annotations

from typing import Optional

from inventory_oracle.models.market import PriceAlert, PriceAlertType


def should_trigger(
    alert: PriceAlert,
    current_min_price: Optional[float],
    reference_price: Optional[float] = None,
) -> bool:
    """Return ``True`` if ``alert`` fires at ``current_min_price``.

    Args:
        alert: The rule to evaluate. Inactive alerts never fire.
        current_min_price: Lowest price across suppliers, or ``None`` without data.
        reference_price: Fallback reference for drop/increase rules.
    """
    if not alert.is_active or current_min_price is None:
        return False

    if alert.alert_type == PriceAlertType.TARGET_PRICE:
        return alert.target_price is not None and current_min_price <= alert.target_price

    original = alert.original_price or reference_price
    if original is None or original <= 0:
        return False

    if alert.alert_type == PriceAlertType.PRICE_DROP:
        return (original - current_min_price) / original >= alert.threshold
    if alert.alert_type == PriceAlertType.PRICE_INCREASE:
        return (current_min_price - original) / original >= alert.threshold
    return False
