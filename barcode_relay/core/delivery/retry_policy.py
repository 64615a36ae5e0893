"""
Retry Policy - Exponential backoff for delivery attempts.

After the n-th failed attempt the policy waits ``base_delay * factor**n``
seconds (2 s, 4 s, ... with the defaults) before trying again, up to
``max_attempts`` attempts in total. Callers can stop the cycle early from
the failure callback (the circuit opened) or from the sleep function (the
sender is stopping).
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

from barcode_relay.core.logging_utils import get_module_logger

logger = get_module_logger("RetryPolicy")

# Returns True when the wait was interrupted
SleepFunc = Callable[[float], Awaitable[bool]]
# Returns False to stop retrying
FailureCallback = Callable[[int, Exception], bool]


class RetryOutcome(Enum):
    """Outcome of a retry cycle."""
    SUCCESS = "success"
    EXHAUSTED = "exhausted"  # All attempts failed
    ABORTED = "aborted"      # Stopped by the caller


@dataclass
class RetryAttempt:
    """Record of a single attempt."""
    attempt_number: int
    started_at: float
    duration_ms: float
    success: bool
    error: Optional[str] = None


@dataclass
class RetryResult:
    """Result of a retry cycle."""
    outcome: RetryOutcome
    success: bool
    attempts: List[RetryAttempt] = field(default_factory=list)
    total_duration_ms: float = 0.0
    final_error: Optional[str] = None
    result_data: Any = None

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)


async def _plain_sleep(delay: float) -> bool:
    await asyncio.sleep(delay)
    return False


class RetryPolicy:
    """
    Retry policy with exponential backoff.

    Usage:
        policy = RetryPolicy(max_attempts=3, base_delay=1.0)

        result = await policy.execute(
            lambda: client.post(url, payload),
            on_failure=lambda attempt, error: not breaker.record_failure(),
        )
        if result.success:
            ...
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        backoff_factor: float = 2.0,
        jitter: float = 0.0,
    ):
        """
        Args:
            max_attempts: Maximum number of attempts (including first try)
            base_delay: Delay unit in seconds
            max_delay: Upper bound for a single delay
            backoff_factor: Multiplier for exponential backoff
            jitter: Random jitter factor (0.1 = +/-10%)
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter

    def get_delay(self, failed_attempts: int) -> float:
        """Delay before the next attempt after ``failed_attempts`` failures."""
        if failed_attempts < 1:
            return 0.0

        delay = self.base_delay * (self.backoff_factor ** failed_attempts)
        delay = min(delay, self.max_delay)

        if self.jitter > 0:
            jitter_range = delay * self.jitter
            delay += random.uniform(-jitter_range, jitter_range)

        return max(0.0, delay)

    async def execute(
        self,
        operation: Callable[[], Awaitable[Any]],
        *,
        on_failure: Optional[FailureCallback] = None,
        sleep: SleepFunc = _plain_sleep,
    ) -> RetryResult:
        """
        Run ``operation`` until it returns without raising.

        Args:
            operation: Async callable; any ``Exception`` counts as a failure
            on_failure: Called after each failure with (attempt, error);
                returning False ends the cycle as ABORTED
            sleep: Backoff wait; returning True ends the cycle as ABORTED

        Returns:
            RetryResult with outcome and attempt history
        """
        attempts: List[RetryAttempt] = []
        start_time = time.time()
        last_error: Optional[str] = None

        def _result(outcome: RetryOutcome, data: Any = None) -> RetryResult:
            return RetryResult(
                outcome=outcome,
                success=outcome is RetryOutcome.SUCCESS,
                attempts=attempts,
                total_duration_ms=(time.time() - start_time) * 1000,
                final_error=None if outcome is RetryOutcome.SUCCESS else last_error,
                result_data=data,
            )

        for attempt in range(1, self.max_attempts + 1):
            attempt_start = time.time()
            try:
                data = await operation()
            except Exception as e:
                last_error = str(e) or type(e).__name__
                attempts.append(RetryAttempt(
                    attempt_number=attempt,
                    started_at=attempt_start,
                    duration_ms=(time.time() - attempt_start) * 1000,
                    success=False,
                    error=last_error,
                ))
                logger.debug("Attempt %d/%d failed: %s", attempt, self.max_attempts, last_error)

                if on_failure is not None and not on_failure(attempt, e):
                    return _result(RetryOutcome.ABORTED)
                if attempt >= self.max_attempts:
                    break

                delay = self.get_delay(attempt)
                logger.debug("Retrying in %.2fs", delay)
                if await sleep(delay):
                    return _result(RetryOutcome.ABORTED)
                continue

            attempts.append(RetryAttempt(
                attempt_number=attempt,
                started_at=attempt_start,
                duration_ms=(time.time() - attempt_start) * 1000,
                success=True,
            ))
            return _result(RetryOutcome.SUCCESS, data)

        return _result(RetryOutcome.EXHAUSTED)


__all__ = [
    "RetryAttempt",
    "RetryOutcome",
    "RetryPolicy",
    "RetryResult",
]
