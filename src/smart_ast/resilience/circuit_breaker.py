"""Per-category circuit breaker: CLOSED -> OPEN -> HALF_OPEN.

Stops hammering an external dependency after repeated failures and probes it
again after a cooldown. The OPEN -> HALF_OPEN move is evaluated lazily when
the state is read, there is no background timer.
"""

from __future__ import annotations

import logging
import time
from enum import StrEnum
from typing import Any, Callable

from smart_ast.entities.errors import ErrorCategory

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_TIMEOUT_SECONDS = 60.0


class CircuitState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Failure counter and gate for one error category.

    Only touched from the event loop thread, so counters are plain ints;
    concurrent task failures all land on the same counter between awaits.
    """

    def __init__(
        self,
        category: ErrorCategory,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        on_open: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self.category = category
        self.failure_threshold = failure_threshold
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._on_open = on_open
        self._state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.last_failure_at: float | None = None
        self._probe_in_flight = False

    @property
    def state(self) -> CircuitState:
        """Current state, moving OPEN to HALF_OPEN once the cooldown elapsed."""
        if (
            self._state == CircuitState.OPEN
            and self.last_failure_at is not None
            and self._clock() - self.last_failure_at >= self.timeout_seconds
        ):
            self._state = CircuitState.HALF_OPEN
            self._probe_in_flight = False
            logger.info("Circuit breaker for %s is half-open", self.category)
        return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def allow_request(self) -> bool:
        """Whether a guarded attempt may run now.

        In HALF_OPEN a single probe is admitted; other callers are rejected
        until the probe reports success or failure.
        """
        state = self.state
        if state == CircuitState.OPEN:
            return False
        if state == CircuitState.HALF_OPEN:
            if self._probe_in_flight:
                return False
            self._probe_in_flight = True
        return True

    def record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            logger.info("Circuit breaker for %s closed after successful probe", self.category)
        self._state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self._probe_in_flight = False

    def record_failure(self) -> None:
        self.consecutive_failures += 1
        self.last_failure_at = self._clock()
        self._probe_in_flight = False

        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning("Circuit breaker for %s re-opened after failed probe", self.category)
            return

        if self._state == CircuitState.CLOSED and self.consecutive_failures >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker for %s opened after %d consecutive failures",
                self.category,
                self.consecutive_failures,
            )
            if self._on_open is not None:
                self._on_open({
                    "category": self.category.value,
                    "failures": self.consecutive_failures,
                })

    def release_probe(self) -> None:
        """Let another HALF_OPEN probe through without judging the last one."""
        self._probe_in_flight = False

    def reset(self) -> None:
        """Force CLOSED and forget all failures."""
        self._state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.last_failure_at = None
        self._probe_in_flight = False

    def snapshot(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "state": self.state.value,
            "failures": self.consecutive_failures,
            "last_failure_at": self.last_failure_at,
        }
