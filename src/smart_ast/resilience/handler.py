"""Process-wide resilience state: error history, counters, circuit breakers.

The ErrorHandler is the only owner of mutable resilience state. Analysis
tasks running concurrently on the event loop all report through it, so the
per-category breaker counters behave as one logical counter.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import time
import uuid
from collections import deque
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

from smart_ast.entities.errors import ErrorCategory, ErrorInfo, ErrorRecord
from smart_ast.resilience.circuit_breaker import CircuitBreaker, CircuitState
from smart_ast.resilience.classifier import classify_error, coerce_fault
from smart_ast.resilience.errors import CircuitOpenError
from smart_ast.resilience.retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

BREAKER_CATEGORIES = (ErrorCategory.NETWORK, ErrorCategory.EXTERNAL_SERVICE)
DEFAULT_HISTORY_SIZE = 100
RECENT_WINDOW = timedelta(minutes=5)

_INFO_ATTR = "_smart_ast_error_info"

ErrorListener = Callable[[ErrorInfo], None]
CircuitListener = Callable[[dict[str, Any]], None]


class ErrorHandler:
    """Classifies, records and recovers from faults.

    Usage:
        handler = ErrorHandler()
        result = await handler.execute_with_retry(
            lambda: handler.execute_with_circuit_breaker(op, "api analysis"),
            "api analysis",
        )
    """

    def __init__(
        self,
        retry_policy: RetryPolicy | None = None,
        failure_threshold: int = 5,
        breaker_timeout: float = 60.0,
        history_size: int = DEFAULT_HISTORY_SIZE,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
        verbose: bool = False,
    ) -> None:
        """Initialize the handler.

        Args:
            retry_policy: Default policy for execute_with_retry.
            failure_threshold: Consecutive failures that open a breaker.
            breaker_timeout: Seconds an open breaker waits before half-opening.
            history_size: Maximum number of ErrorRecords kept.
            clock: Monotonic clock used by the breakers.
            sleep: Awaitable sleep used between retry attempts.
            rand: Jitter source in [0, 1).
            verbose: Log full tracebacks for handled faults.
        """
        self.retry_policy = retry_policy or RetryPolicy()
        self.verbose = verbose
        self._sleep = sleep
        self._rand = rand
        self._error_listeners: list[ErrorListener] = []
        self._circuit_listeners: list[CircuitListener] = []
        self.error_counts: dict[ErrorCategory, int] = {c: 0 for c in ErrorCategory}
        self.history: deque[ErrorRecord] = deque(maxlen=history_size)
        self.breakers: dict[ErrorCategory, CircuitBreaker] = {
            category: CircuitBreaker(
                category,
                failure_threshold=failure_threshold,
                timeout_seconds=breaker_timeout,
                clock=clock,
                on_open=self._notify_circuit_open,
            )
            for category in BREAKER_CATEGORIES
        }

    # -- listeners ---------------------------------------------------------

    def on_error(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    def on_circuit_open(self, listener: CircuitListener) -> None:
        self._circuit_listeners.append(listener)

    def _notify_circuit_open(self, payload: dict[str, Any]) -> None:
        for listener in self._circuit_listeners:
            listener(payload)

    # -- classification + bookkeeping -------------------------------------

    def handle(
        self,
        fault: object,
        context: str = "",
        category: ErrorCategory | None = None,
    ) -> ErrorInfo:
        """Classify a fault and record it exactly once.

        A fault that already passed through ``handle`` returns its original
        ErrorInfo without touching history, counters or breakers again.
        """
        exc = coerce_fault(fault)
        existing = getattr(exc, _INFO_ATTR, None)
        if isinstance(existing, ErrorInfo):
            return existing

        info = classify_error(exc, context, category)
        try:
            setattr(exc, _INFO_ATTR, info)
        except AttributeError:
            logger.debug("Cannot tag %s with error info", type(exc).__name__)

        self.error_counts[info.category] += 1
        self.history.appendleft(
            ErrorRecord(id=_generate_error_id(), timestamp=datetime.now(tz=UTC), info=info)
        )

        breaker = self.breakers.get(info.category)
        if breaker is not None and not isinstance(exc, CircuitOpenError):
            breaker.record_failure()

        if self.verbose:
            logger.error(
                "[%s] Error in %s: %s", info.category.value.upper(), context, info.original_message,
                exc_info=exc if isinstance(exc, Exception) else None,
            )
            logger.info("Suggestion: %s", info.suggested_action)
        else:
            logger.debug("[%s] Error in %s: %s", info.category.value, context, info.original_message)

        for listener in self._error_listeners:
            listener(info)
        return info

    # -- circuit breaker ---------------------------------------------------

    def is_circuit_open(self, category: ErrorCategory) -> bool:
        breaker = self.breakers.get(category)
        return breaker is not None and breaker.is_open

    def circuit_state(self, category: ErrorCategory) -> CircuitState:
        breaker = self.breakers.get(category)
        return breaker.state if breaker is not None else CircuitState.CLOSED

    def reset_circuit_breaker(self, category: ErrorCategory) -> None:
        breaker = self.breakers.get(category)
        if breaker is not None:
            breaker.reset()

    async def execute_with_circuit_breaker(
        self,
        operation: Callable[[], Awaitable[T]],
        context: str,
        category: ErrorCategory = ErrorCategory.NETWORK,
    ) -> T:
        """Run ``operation`` unless the category's breaker is open.

        Network and external-service faults raised by ``operation`` are
        attributed to ``category`` and count against its breaker. Other
        faults keep their own category and release a half-open probe.

        Raises:
            CircuitOpenError: Breaker open; ``operation`` was not invoked.
        """
        breaker = self.breakers.get(category)
        if breaker is not None and not breaker.allow_request():
            raise CircuitOpenError(category)

        try:
            result = await operation()
        except Exception as exc:
            info = self.handle(exc, context, self._guarded_category(exc, context, category))
            if breaker is not None and info.category != category:
                breaker.release_probe()
            raise

        if breaker is not None:
            breaker.record_success()
        return result

    def _guarded_category(
        self, exc: Exception, context: str, category: ErrorCategory
    ) -> ErrorCategory | None:
        if category not in self.breakers or isinstance(exc, CircuitOpenError):
            return None
        if classify_error(exc, context).category in BREAKER_CATEGORIES:
            return category
        return None

    # -- retry -------------------------------------------------------------

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        context: str,
        policy: RetryPolicy | None = None,
    ) -> T:
        """Run ``operation`` with bounded exponential backoff.

        The original fault is re-raised when it is not retryable, when it is
        a circuit-open rejection, or when the final attempt failed.
        """
        policy = policy or self.retry_policy
        attempt = 1
        while True:
            try:
                return await operation()
            except Exception as exc:
                info = self.handle(exc, context)
                if (
                    not info.retryable
                    or isinstance(exc, CircuitOpenError)
                    or policy.is_final(attempt)
                ):
                    raise

                delay = policy.delay_for_attempt(attempt, self._rand())
                logger.warning(
                    "%s: attempt %d/%d failed (%s), retrying in %.2fs",
                    context,
                    attempt,
                    policy.max_attempts,
                    info.message,
                    delay,
                )
                await self._sleep(delay)
                attempt += 1

    async def execute_with_fallback(
        self,
        primary: Callable[[], Awaitable[T]],
        fallback: Callable[[], Awaitable[T]] | None,
        context: str,
    ) -> T:
        """Run ``primary``; on a recoverable fault run ``fallback`` instead."""
        try:
            return await primary()
        except Exception as exc:
            info = self.handle(exc, context)
            if not info.recoverable or fallback is None:
                raise
            logger.warning("%s: primary operation failed, trying fallback", context)
            try:
                return await fallback()
            except Exception as fallback_exc:
                self.handle(fallback_exc, f"{context} (fallback)")
                raise

    # -- reporting ---------------------------------------------------------

    def get_error_stats(self) -> dict[str, Any]:
        total = sum(self.error_counts.values())
        most_common = "none"
        best = 0
        for category, count in self.error_counts.items():
            if count > best:
                most_common, best = category.value, count
        return {
            "total": total,
            "by_category": {c.value: n for c, n in self.error_counts.items()},
            "most_common": most_common,
            "recent_errors": [r.model_dump(mode="json") for r in list(self.history)[:10]],
            "circuit_breakers": {c.value: b.snapshot() for c, b in self.breakers.items()},
        }

    def get_health_status(self) -> dict[str, Any]:
        """Summarize recent error rate and breaker state as healthy/degraded/unhealthy."""
        cutoff = datetime.now(tz=UTC) - RECENT_WINDOW
        recent = [r for r in self.history if r.timestamp >= cutoff]
        status = "healthy"
        recommendations: list[str] = []

        if len(recent) > 20:
            status = "unhealthy"
            recommendations.append("High error rate detected in the last 5 minutes")
        elif len(recent) > 10:
            status = "degraded"
            recommendations.append("Elevated error rate detected")

        open_breakers = [b for b in self.breakers.values() if b.is_open]
        if open_breakers:
            if status == "healthy":
                status = "degraded"
            recommendations.append(f"{len(open_breakers)} circuit breaker(s) are open")

        return {
            "status": status,
            "total_errors": sum(self.error_counts.values()),
            "recent_errors": len(recent),
            "circuit_breakers": [b.snapshot() for b in self.breakers.values()],
            "recommendations": recommendations,
        }

    def global_suggestions(self) -> list[str]:
        suggestions = []
        if self.error_counts[ErrorCategory.NETWORK] > 5:
            suggestions.append(
                "High number of network errors detected. Check network stability."
            )
        if self.error_counts[ErrorCategory.FILESYSTEM] > 3:
            suggestions.append(
                "Multiple filesystem errors encountered. Verify file permissions and paths."
            )
        if self.error_counts[ErrorCategory.EXTERNAL_SERVICE] > 10:
            suggestions.append(
                "Frequent AI service errors. Consider the mock provider or a longer timeout."
            )
        return suggestions

    def save_error_report(self, output_path: Path) -> Path:
        """Write error statistics to ``output_path`` as JSON."""
        report = {
            "timestamp": datetime.now(tz=UTC).isoformat(),
            "stats": self.get_error_stats(),
            "configuration": {
                "verbose": self.verbose,
                "retry": {
                    "max_attempts": self.retry_policy.max_attempts,
                    "base_delay": self.retry_policy.base_delay,
                },
            },
            "suggestions": self.global_suggestions(),
        }
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json.dumps(report, indent=2), encoding="utf-8")
        return output_path

    def clear_error_counts(self) -> None:
        for category in self.error_counts:
            self.error_counts[category] = 0
        self.history.clear()


def _generate_error_id() -> str:
    return f"err_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
