"""
Circuit Breaker - pauses delivery after repeated failures.

Every failed delivery attempt counts. When the count reaches the threshold
the circuit opens and the sender stops posting until the cool-down has
been waited out; ``close_after_cooldown()`` is the only way back to closed.
A successful delivery resets the count. Nothing here is persisted.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from barcode_relay.core.logging_utils import get_module_logger

logger = get_module_logger("CircuitBreaker")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"


@dataclass
class CircuitConfig:
    """Thresholds for the delivery circuit."""
    failure_threshold: int = 3
    cooldown: float = 60.0

    @classmethod
    def default(cls) -> "CircuitConfig":
        return cls()


class CircuitBreaker:
    """
    Consecutive-failure circuit for the sender loop.

    Usage:
        breaker = CircuitBreaker(CircuitConfig(failure_threshold=3, cooldown=60.0))

        if breaker.is_open:
            await wait(breaker.remaining_cooldown())
            breaker.close_after_cooldown()

        if delivered:
            breaker.record_success()
        elif breaker.record_failure():
            ...  # circuit just opened, stop attempting
    """

    def __init__(
        self,
        config: Optional[CircuitConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CircuitConfig.default()
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is CircuitState.OPEN

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def record_success(self) -> None:
        if self._consecutive_failures:
            logger.debug("Delivery succeeded, clearing %d failure(s)", self._consecutive_failures)
        self._consecutive_failures = 0

    def record_failure(self) -> bool:
        """Count one failed attempt. Returns True if this opened the circuit."""
        self._consecutive_failures += 1
        if self.is_open or self._consecutive_failures < self.config.failure_threshold:
            return False

        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        logger.warning(
            "Too many consecutive failures (%d), pausing delivery for %.0fs",
            self._consecutive_failures, self.config.cooldown,
        )
        return True

    def remaining_cooldown(self) -> float:
        """Seconds left before the circuit may close; 0 when closed."""
        if not self.is_open or self._opened_at is None:
            return 0.0
        elapsed = self._clock() - self._opened_at
        return max(0.0, self.config.cooldown - elapsed)

    def close_after_cooldown(self) -> None:
        """Close the circuit and reset the failure count."""
        if not self.is_open:
            return
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = None
        logger.info("Cool-down finished, resuming delivery")


__all__ = [
    "CircuitBreaker",
    "CircuitConfig",
    "CircuitState",
]
