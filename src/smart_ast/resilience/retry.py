"""Retry/backoff policy shared by every guarded task execution."""

from __future__ import annotations

import random
from dataclasses import dataclass

MAX_DELAY_CAP = 30.0


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff with optional jitter.

    delay(attempt) = min(max_delay, base_delay * 2**(attempt - 1) + jitter)
    where jitter is ``random() * base_delay`` when enabled. Attempts are
    1-based; no delay is ever computed for the final attempt.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = MAX_DELAY_CAP
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")

    def delay_for_attempt(self, attempt: int, rand: float | None = None) -> float:
        """Seconds to wait after a failed ``attempt`` before the next one."""
        attempt = max(1, int(attempt))
        delay = self.base_delay * (2 ** (attempt - 1))
        if self.jitter:
            r = random.random() if rand is None else rand
            delay += r * self.base_delay
        return max(0.0, min(delay, self.max_delay))

    def is_final(self, attempt: int) -> bool:
        return attempt >= self.max_attempts
