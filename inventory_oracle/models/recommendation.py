"""
Output models of the compatibility scoring engine.

A ``ComponentAlternative`` is built fresh for every query and never persisted.
``confidence`` is the compatibility score capped at 95 so that no substitute
is ever presented as a certain drop-in replacement.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DifferenceImpact(StrEnum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class UsabilityImpact(StrEnum):
    NONE = "none"
    MINIMAL = "minimal"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"


class TechnicalDifference(BaseModel):
    """One property on which the candidate differs from the original."""

    model_config = ConfigDict(frozen=True)

    property: str
    original: str
    alternative: str
    impact: DifferenceImpact
    description: str


class PriceDelta(BaseModel):
    """Unit-price comparison between the original and a candidate.

    ``savings`` is positive when the candidate is cheaper.
    """

    model_config = ConfigDict(frozen=True)

    original: float
    alternative: float
    savings: float
    percentage_difference: float


class ProjectContext(BaseModel):
    """Optional project information accompanying an alternatives query."""

    model_config = ConfigDict(frozen=True)

    project_id: Optional[str] = None
    project_type: Optional[str] = None
    budget: Optional[float] = None


class ComponentAlternative(BaseModel):
    """A ranked substitute for a component.

    Attributes:
        component_id: Candidate component id.
        name: Candidate display name.
        compatibility_score: Weighted score in [0, 100].
        price_comparison: Unit-price delta against the original.
        technical_differences: Property-level differences.
        usability_impact: Effort classification derived from score and negatives.
        explanation: Human-readable justification.
        confidence: ``min(compatibility_score, 95)``.
        required_modifications: One action per negative difference, if any.
    """

    model_config = ConfigDict(frozen=True)

    component_id: str
    name: str
    compatibility_score: int
    price_comparison: PriceDelta
    technical_differences: list[TechnicalDifference] = Field(default_factory=list)
    usability_impact: UsabilityImpact
    explanation: str
    confidence: int
    required_modifications: Optional[list[str]] = None

    @field_validator("compatibility_score")
    @classmethod
    def validate_score(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError(f"compatibility_score must be in [0, 100], got {v}.")
        return v

    @field_validator("confidence")
    @classmethod
    def validate_confidence(cls, v: int) -> int:
        if not 0 <= v <= 95:
            raise ValueError(f"confidence must be in [0, 95], got {v}.")
        return v
