"""
Error taxonomy for the recommendation and prediction services.

The taxonomy is closed: five ``ErrorKind`` values, each with exactly one
fallback strategy description in ``FALLBACK_STRATEGIES``. Only the kinds in
``RETRYABLE_KINDS`` are worth a retry; the rest describe missing or unusable
input data that a retry cannot fix.

``classify_message`` is the one place that maps free-form error text to a
kind. Rules are evaluated in order and the first match wins.

This module has NO imports from any other ``inventory_oracle`` package.
"""

from enum import StrEnum


class ErrorKind(StrEnum):
    """What went wrong, from the point of view of the degradation policy."""

    INSUFFICIENT_DATA = "insufficient_data"
    """Required input (component, metrics, history) is missing or empty."""

    COMPATIBILITY_UNKNOWN = "compatibility_unknown"
    """Compatibility could not be determined; catch-all kind."""

    PRICE_DATA_STALE = "price_data_stale"
    """Price or rate data is out of date or unavailable."""

    AI_SERVICE_ERROR = "ai_service_error"
    """The conversational model or assistant call failed."""

    EXTERNAL_API_ERROR = "external_api_error"
    """An upstream supplier or rate provider timed out or failed."""


class ErrorSeverity(StrEnum):
    """How loudly a handled error is reported."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


FALLBACK_STRATEGIES: dict[ErrorKind, str] = {
    ErrorKind.INSUFFICIENT_DATA: "Use rule-based recommendations with available inventory data",
    ErrorKind.COMPATIBILITY_UNKNOWN: (
        "Show components from same category with compatibility warnings"
    ),
    ErrorKind.PRICE_DATA_STALE: (
        "Display cached price data with staleness indicator and refresh timestamp"
    ),
    ErrorKind.AI_SERVICE_ERROR: (
        "Fall back to rule-based compatibility analysis using component specifications"
    ),
    ErrorKind.EXTERNAL_API_ERROR: "Use cached data and schedule automatic retry in background",
}

RETRYABLE_KINDS: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.EXTERNAL_API_ERROR,
        ErrorKind.AI_SERVICE_ERROR,
        ErrorKind.PRICE_DATA_STALE,
    }
)

# Ordered: first rule whose keyword appears in the lower-cased message wins.
CLASSIFICATION_RULES: tuple[tuple[ErrorKind, tuple[str, ...]], ...] = (
    (ErrorKind.INSUFFICIENT_DATA, ("not found", "missing", "empty")),
    (ErrorKind.EXTERNAL_API_ERROR, ("timeout", "timed out", "network", "fetch")),
    (ErrorKind.AI_SERVICE_ERROR, ("ai", "gemini", "model", "assistant")),
    (ErrorKind.PRICE_DATA_STALE, ("price", "cost", "stale")),
)


def classify_message(message: str) -> ErrorKind:
    """Map an error message to its ``ErrorKind``.

    Args:
        message: Free-form error text.

    Returns:
        The first matching kind, or ``COMPATIBILITY_UNKNOWN``.
    """
    text = message.lower()
    for kind, keywords in CLASSIFICATION_RULES:
        if _matches_any(text, keywords):
            return kind
    return ErrorKind.COMPATIBILITY_UNKNOWN


def _matches_any(text: str, keywords: tuple[str, ...]) -> bool:
    for keyword in keywords:
        if keyword == "ai":
            # "ai" must stand alone; otherwise "failed" or "maintain" would match
            if any(token == "ai" for token in _tokens(text)):
                return True
        elif keyword in text:
            return True
    return False


def _tokens(text: str) -> list[str]:
    return "".join(ch if ch.isalnum() else " " for ch in text).split()


def is_retryable(kind: ErrorKind) -> bool:
    """Return ``True`` if errors of ``kind`` may succeed on retry."""
    return kind in RETRYABLE_KINDS
