"""
Record of one handled error, as kept in the error handler's rolling log.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from inventory_oracle.taxonomy.error_taxonomy import ErrorKind, ErrorSeverity


class ErrorContext(BaseModel):
    """Where an error happened: operation name plus the ids involved."""

    model_config = ConfigDict(frozen=True)

    operation: str
    component_id: Optional[str] = None
    user_id: Optional[str] = None
    additional_data: dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None


class RecommendationError(BaseModel):
    """A handled error with its classification and degradation decision."""

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str
    severity: ErrorSeverity
    retryable: bool
    fallback_strategy: str
    context: ErrorContext
    timestamp: datetime
    confidence: float = 0.0


class HealthReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    healthy: bool
    errors_last_hour: int
    critical_errors: int
    ai_service_errors: int
    external_api_errors: int
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class ErrorStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_errors: int
    errors_by_kind: dict[str, int]
    errors_by_severity: dict[str, int]
    errors_last_hour: int
    recent_errors: list[RecommendationError] = Field(default_factory=list)
