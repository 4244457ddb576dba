"""Retry policy shared by per-unit backup attempts."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """How often and how patiently a failing unit is retried.

    ``max_attempts=None`` retries forever. With the default multiplier of 1
    every wait is ``backoff_seconds`` long.
    """

    max_attempts: int | None = None
    backoff_seconds: float = 10.0
    backoff_multiplier: float = 1.0
    max_backoff_seconds: float | None = None

    def allows(self, attempt: int) -> bool:
        """Return ``True`` if attempt number ``attempt`` (1-based) may run."""

        return self.max_attempts is None or attempt <= self.max_attempts

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt``."""

        wait = self.backoff_seconds * (self.backoff_multiplier ** max(0, attempt - 1))
        if self.max_backoff_seconds is not None:
            wait = min(wait, self.max_backoff_seconds)
        return max(0.0, wait)
