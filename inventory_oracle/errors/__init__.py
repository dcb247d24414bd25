from inventory_oracle.errors.handler import (
    ConfigurationError,
    RecommendationErrorHandler,
    RecommendationSystemError,
    with_error_handling,
)

__all__ = [
    "ConfigurationError",
    "RecommendationErrorHandler",
    "RecommendationSystemError",
    "with_error_handling",
]
