"""
Error and fallback framework shared by every analytical service.

Every public service operation catches its own exceptions and hands them to
``RecommendationErrorHandler.handle``, which classifies the error, records it
in a bounded rolling log and returns the caller-supplied fallback value. The
handler is the single point of degradation; services never write their own
retry-or-fallback branches.

Configuration problems are the exception to the rule: a ``ConfigurationError``
is raised at construction time and never degraded.

Usage::

    handler = RecommendationErrorHandler(config.errors)

    try:
        prediction = await self._predict(component_id)
    except Exception as exc:
        prediction = handler.handle(
            exc,
            ErrorContext(operation="predict_depletion", component_id=component_id),
            fallback=StockPrediction(component_id=component_id, current_stock=0),
        )
"""

from __future__ import annotations

import functools
import logging
from collections import Counter, deque
from typing import Any, Awaitable, Callable, Optional, TypeVar

from inventory_oracle.config import ErrorHandlingConfig
from inventory_oracle.models.errors import (
    ErrorContext,
    ErrorStats,
    HealthReport,
    RecommendationError,
)
from inventory_oracle.taxonomy.error_taxonomy import (
    FALLBACK_STRATEGIES,
    ErrorKind,
    ErrorSeverity,
    classify_message,
    is_retryable,
)
from inventory_oracle.utils.time_utils import Clock, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SEVERITY_LOG_LEVEL: dict[ErrorSeverity, int] = {
    ErrorSeverity.CRITICAL: logging.ERROR,
    ErrorSeverity.HIGH: logging.ERROR,
    ErrorSeverity.MEDIUM: logging.WARNING,
    ErrorSeverity.LOW: logging.INFO,
}


# ── Custom exceptions ─────────────────────────────────────────────────────────


class RecommendationSystemError(RuntimeError):
    """A classified error carrying its degradation decision.

    Attributes:
        kind:              ``ErrorKind`` of the failure.
        severity:          ``ErrorSeverity`` used for log level and health.
        context:           Where the error happened.
        retryable:         Whether a retry may succeed.
        fallback_strategy: Fixed description of the degradation applied.
        confidence:        Always ``0``; a degraded result is never trusted.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        context: Optional[ErrorContext] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        retryable: Optional[bool] = None,
    ) -> None:
        self.kind = kind
        self.severity = severity
        self.context = context or ErrorContext(operation="unknown")
        self.retryable = is_retryable(kind) if retryable is None else retryable
        self.fallback_strategy = FALLBACK_STRATEGIES[kind]
        self.confidence = 0.0
        super().__init__(message)


class ConfigurationError(RuntimeError):
    """Raised when a service is built without a required collaborator or setting.

    Never degraded: configuration errors surface immediately to the caller.
    """


# ── Handler ───────────────────────────────────────────────────────────────────


class RecommendationErrorHandler:
    """Classifies, records and degrades errors for the analytical services.

    Parameters
    ----------
    config:
        ``ErrorHandlingConfig`` section (log cap, degradation switch,
        health thresholds).
    clock:
        Returns the current UTC time; injected so tests can age the log.
    """

    def __init__(
        self,
        config: Optional[ErrorHandlingConfig] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.config = config or ErrorHandlingConfig()
        self._clock = clock
        self._log: deque[RecommendationError] = deque(maxlen=self.config.max_log_size)

    # ── Classification ────────────────────────────────────────────────────────

    def classify(self, error: BaseException | str) -> ErrorKind:
        """Return the ``ErrorKind`` for ``error``.

        A ``RecommendationSystemError`` keeps its own kind; anything else is
        classified from its message.
        """
        if isinstance(error, RecommendationSystemError):
            return error.kind
        message = error if isinstance(error, str) else str(error) or type(error).__name__
        return classify_message(message)

    def create_error(
        self,
        kind: ErrorKind,
        message: str,
        context: Optional[ErrorContext] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
    ) -> RecommendationSystemError:
        """Build a ``RecommendationSystemError`` of an explicit kind."""
        return RecommendationSystemError(kind, message, self._stamp(context), severity)

    # ── Handling ──────────────────────────────────────────────────────────────

    def handle(
        self,
        error: BaseException,
        context: ErrorContext,
        fallback: T,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
    ) -> T:
        """Record ``error`` and return ``fallback``.

        Args:
            error: The exception caught by the service.
            context: Operation name and ids involved.
            fallback: Safe value returned to the caller.
            severity: Severity used when ``error`` is not already classified.

        Returns:
            ``fallback`` when degradation is enabled.

        Raises:
            ConfigurationError: Always propagated unchanged.
            RecommendationSystemError: When degradation is disabled.
        """
        if isinstance(error, ConfigurationError):
            raise error

        system_error = self._to_system_error(error, context, severity)
        self._record(system_error)

        if self.config.fallback_enabled:
            logger.debug(
                "Applying fallback for %s: %s",
                system_error.kind,
                system_error.fallback_strategy,
            )
            return fallback

        if system_error is error:
            raise system_error
        raise system_error from error

    def _to_system_error(
        self,
        error: BaseException,
        context: ErrorContext,
        severity: ErrorSeverity,
    ) -> RecommendationSystemError:
        if isinstance(error, RecommendationSystemError):
            return error
        kind = self.classify(error)
        message = str(error) or "Unknown error occurred"
        return RecommendationSystemError(kind, message, self._stamp(context), severity)

    def _stamp(self, context: Optional[ErrorContext]) -> ErrorContext:
        context = context or ErrorContext(operation="unknown")
        if context.timestamp is None:
            context = context.model_copy(update={"timestamp": self._clock()})
        return context

    def _record(self, error: RecommendationSystemError) -> None:
        context = self._stamp(error.context)
        record = RecommendationError(
            kind=error.kind,
            message=str(error),
            severity=error.severity,
            retryable=error.retryable,
            fallback_strategy=error.fallback_strategy,
            context=context,
            timestamp=context.timestamp or self._clock(),
        )
        self._log.append(record)
        logger.log(
            _SEVERITY_LOG_LEVEL[error.severity],
            "[%s] %s in %s: %s",
            error.severity.upper(),
            error.kind,
            context.operation,
            record.message,
        )

    # ── Monitoring ────────────────────────────────────────────────────────────

    def get_recent_errors(self, limit: int = 10) -> list[RecommendationError]:
        """Return the last ``limit`` recorded errors, oldest first."""
        if limit <= 0:
            return []
        return list(self._log)[-limit:]

    def clear_error_log(self) -> None:
        self._log.clear()

    def get_error_stats(self) -> ErrorStats:
        """Totals over the whole log plus the error count of the last hour."""
        cutoff = self._clock().timestamp() - 3600
        last_hour = [e for e in self._log if e.timestamp.timestamp() > cutoff]
        by_kind = Counter(str(e.kind) for e in self._log)
        by_severity = Counter(str(e.severity) for e in self._log)
        return ErrorStats(
            total_errors=len(self._log),
            errors_by_kind=dict(by_kind),
            errors_by_severity=dict(by_severity),
            errors_last_hour=len(last_hour),
            recent_errors=last_hour[-10:],
        )

    def is_system_healthy(self) -> HealthReport:
        """Evaluate the error log against the configured health thresholds."""
        stats = self.get_error_stats()
        issues: list[str] = []
        recommendations: list[str] = []

        if stats.errors_last_hour > self.config.max_errors_per_hour:
            issues.append(f"High error rate: {stats.errors_last_hour} errors in the last hour")
            recommendations.append("Investigate recent changes and check external service status")

        critical = stats.errors_by_severity.get(ErrorSeverity.CRITICAL.value, 0)
        if critical > 0:
            issues.append(f"{critical} critical errors detected")
            recommendations.append("Immediate attention required for critical errors")

        ai_errors = stats.errors_by_kind.get(ErrorKind.AI_SERVICE_ERROR.value, 0)
        if ai_errors > self.config.max_ai_service_errors:
            issues.append(f"AI service experiencing issues: {ai_errors} errors")
            recommendations.append("Check AI service connectivity and API limits")

        return HealthReport(
            healthy=not issues,
            errors_last_hour=stats.errors_last_hour,
            critical_errors=critical,
            ai_service_errors=ai_errors,
            external_api_errors=stats.errors_by_kind.get(ErrorKind.EXTERNAL_API_ERROR.value, 0),
            issues=issues,
            recommendations=recommendations,
        )


# ── Decorator ─────────────────────────────────────────────────────────────────


def with_error_handling(
    operation: str,
    fallback: Callable[[], Any] | Any,
    severity: ErrorSeverity = ErrorSeverity.MEDIUM,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Route exceptions of an async service method through ``self.error_handler``.

    ``fallback`` may be a value or a zero-argument factory; factories are
    called per failure so mutable fallbacks (lists, dicts) are never shared.
    A ``component_id`` keyword argument, when present, is copied into the
    error context.
    """

    def decorator(method: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(method)
        async def wrapper(self: Any, *args: Any, **kwargs: Any) -> T:
            try:
                return await method(self, *args, **kwargs)
            except Exception as exc:
                value = fallback() if callable(fallback) else fallback
                context = ErrorContext(
                    operation=operation,
                    component_id=kwargs.get("component_id"),
                    additional_data={"args": [repr(a) for a in args]},
                )
                return self.error_handler.handle(exc, context, value, severity)

        return wrapper

    return decorator
