"""
Inventory component and usage-metrics models.

``Component`` records are owned by the inventory store; the services in this
package only read them and never change quantity or allocation.

``UsageMetrics`` is the per-component usage aggregate maintained outside this
package (from project consumption). It feeds stock prediction and the
user-preference scoring strategy.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class UsageFrequency(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class VoltageRange(BaseModel):
    """Supported supply voltage range, e.g. 3.3-5.0 V."""

    model_config = ConfigDict(frozen=True)

    min: float
    max: float
    unit: str = "V"

    @field_validator("max")
    @classmethod
    def validate_order(cls, v: float, info: ValidationInfo) -> float:
        low = info.data.get("min")
        if low is not None and v < low:
            raise ValueError(f"Voltage max ({v}) must be >= min ({low}).")
        return v

    def overlaps(self, other: "VoltageRange") -> bool:
        """Return ``True`` if the ranges share a unit and intersect."""
        if self.unit != other.unit:
            return False
        return not (self.max < other.min or self.min > other.max)

    def describe(self) -> str:
        return f"{self.min:g}-{self.max:g}{self.unit}"


class CurrentRating(BaseModel):
    """Maximum current capacity, e.g. 0.5 A."""

    model_config = ConfigDict(frozen=True)

    max: float
    unit: str = "A"

    def describe(self) -> str:
        return f"{self.max:g}{self.unit}"


class ComponentSpecification(BaseModel):
    """Technical specification of a component.

    Attributes:
        voltage: Supported voltage range.
        current: Maximum current rating.
        protocols: Communication protocols (``"I2C"``, ``"SPI"`` ...).
        compatibility: Platforms the part is known to work with.
        extra: Any other free-form properties.
    """

    model_config = ConfigDict(frozen=True)

    voltage: Optional[VoltageRange] = None
    current: Optional[CurrentRating] = None
    protocols: Optional[list[str]] = None
    compatibility: Optional[list[str]] = None
    extra: dict[str, Any] = Field(default_factory=dict)


class ComponentRelationship(BaseModel):
    """A declared link from one component to another."""

    model_config = ConfigDict(frozen=True)

    related_component_id: str
    relationship_type: str = "alternative"


class Component(BaseModel):
    """A physical component held in the user's inventory.

    Attributes:
        id: Inventory identifier.
        name: Display name, e.g. ``"ESP32 DevKit V1"``.
        category: Free-form category, e.g. ``"Microcontroller"``.
        manufacturer: Manufacturer name if known.
        quantity: Units on hand.
        allocated_quantity: Units reserved for projects.
        purchase_price: Unit purchase price in ``currency``, if known.
        currency: ISO code of ``purchase_price``.
        condition: ``New``, ``Refurbished``, ``Used``, ``Damaged`` or ``Unknown``.
        specifications: Technical specification, if recorded.
        relationships: Declared links to other components.
        created_at: When the record was created; anchors the consumption rate.
        supplier_link: Optional product page.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: Optional[str] = None
    manufacturer: Optional[str] = None
    quantity: int = 0
    allocated_quantity: int = 0
    purchase_price: Optional[float] = None
    currency: str = "USD"
    condition: Optional[str] = None
    specifications: Optional[ComponentSpecification] = None
    relationships: list[ComponentRelationship] = Field(default_factory=list)
    created_at: datetime
    supplier_link: Optional[str] = None

    @field_validator("quantity", "allocated_quantity")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Quantities must be non-negative, got {v}.")
        return v

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return v.upper()


class UsageMetrics(BaseModel):
    """Aggregated usage of one component across projects.

    Attributes:
        component_id: Component this aggregate belongs to.
        total_used: Units consumed over the component's lifetime.
        project_count: Distinct projects the component was used in.
        last_used: Date of most recent use.
        usage_frequency: Qualitative frequency band.
        success_rate: Fraction [0, 1] of projects using it that succeeded.
    """

    model_config = ConfigDict(frozen=True)

    component_id: str
    total_used: float = 0.0
    project_count: int = 0
    last_used: Optional[date] = None
    usage_frequency: Optional[UsageFrequency] = None
    success_rate: float = 0.0

    @field_validator("success_rate")
    @classmethod
    def validate_rate(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"success_rate must be in [0.0, 1.0], got {v}.")
        return v

    @field_validator("total_used")
    @classmethod
    def validate_total(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"total_used must be non-negative, got {v}.")
        return v
