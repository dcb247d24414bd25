"""
Market data models: supplier quotes, price comparisons, trends and alerts.

``MarketDataItem`` is what a supplier fetch produces after currency
normalization. ``price`` is a display string in the target currency;
``amount`` is the same value as a number so downstream reducers never
re-parse strings. ``original_price`` keeps the supplier's pre-conversion text.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Availability(StrEnum):
    IN_STOCK = "in_stock"
    LIMITED = "limited"
    OUT_OF_STOCK = "out_of_stock"
    UNKNOWN = "unknown"


class MarketTrendDirection(StrEnum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"
    VOLATILE = "volatile"


class PriceAlertType(StrEnum):
    PRICE_DROP = "price_drop"
    PRICE_INCREASE = "price_increase"
    AVAILABILITY = "availability"
    TARGET_PRICE = "target_price"


class NotificationMethod(StrEnum):
    EMAIL = "email"
    PUSH = "push"
    IN_APP = "in_app"


class SupplierQuote(BaseModel):
    """Raw answer of one price source: a price string and a product link."""

    model_config = ConfigDict(frozen=True)

    price: str
    link: str = ""


class MarketDataItem(BaseModel):
    """One supplier's price for a component, normalized to ``currency``."""

    model_config = ConfigDict(frozen=True)

    supplier: str
    price: str
    amount: float
    currency: str
    link: str = ""
    original_price: Optional[str] = None
    original_amount: Optional[float] = None
    original_currency: Optional[str] = None


class PricePoint(BaseModel):
    """A single observed price, stored in the daily price-history buckets.

    ``amount`` and ``currency`` are the supplier's quote as observed, before
    conversion to any requested currency.
    """

    model_config = ConfigDict(frozen=True)

    supplier: str
    amount: float
    currency: str
    observed_at: datetime


class SupplierPrice(BaseModel):
    model_config = ConfigDict(frozen=True)

    supplier: str
    price: float
    currency: str
    availability: Availability
    quantity: int = 1
    link: str = ""
    last_updated: datetime


class LowestPrice(BaseModel):
    model_config = ConfigDict(frozen=True)

    supplier: str
    price: float
    currency: str


class PriceRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: float
    max: float


class PriceComparison(BaseModel):
    """Per-supplier prices for a component reduced to summary statistics."""

    model_config = ConfigDict(frozen=True)

    component_id: str
    component_name: str
    prices: list[SupplierPrice]
    lowest_price: LowestPrice
    average_price: float
    price_range: PriceRange
    recommended_supplier: str


class Seasonality(BaseModel):
    model_config = ConfigDict(frozen=True)

    has_seasonality: bool = False
    peak_months: list[int] = Field(default_factory=list)
    low_months: list[int] = Field(default_factory=list)


class PriceProjection(BaseModel):
    model_config = ConfigDict(frozen=True)

    next_month: float
    next_quarter: float
    confidence: float


class MarketTrend(BaseModel):
    """Trend analysis over a component's recent price history."""

    model_config = ConfigDict(frozen=True)

    component_id: str
    category: str
    trend: MarketTrendDirection
    trend_strength: float
    seasonality: Seasonality
    market_factors: list[str] = Field(default_factory=list)
    price_projection: PriceProjection

    @field_validator("trend_strength")
    @classmethod
    def validate_strength(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"trend_strength must be in [0.0, 1.0], got {v}.")
        return v


class PriceAlert(BaseModel):
    """A user-scoped price rule, evaluated on every scheduled refresh.

    Attributes:
        id: Alert identifier.
        user_id: Owner.
        component_id: Component watched.
        alert_type: Which rule applies.
        threshold: Fractional change for drop/increase rules (``0.1`` = 10%).
        target_price: Absolute price for ``target_price`` rules.
        original_price: Reference price the fractional rules compare against.
        currency: Currency of ``original_price`` and ``target_price``.
        is_active: Inactive alerts are skipped.
        created_at: Creation timestamp.
        last_triggered: Set whenever the rule fires.
        notification_method: Channel an alert sink should use.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    component_id: str
    alert_type: PriceAlertType
    threshold: float = 0.0
    target_price: Optional[float] = None
    original_price: Optional[float] = None
    currency: str = "USD"
    is_active: bool = True
    created_at: datetime
    last_triggered: Optional[datetime] = None
    notification_method: NotificationMethod = NotificationMethod.IN_APP

    @field_validator("threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"threshold must be non-negative, got {v}.")
        return v


class MarketDataStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    active_alerts: int
    total_alerts: int
    tracked_components: int
    user_currency: str
    last_update: Optional[datetime] = None
