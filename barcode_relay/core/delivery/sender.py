"""
Delivery Sender - drains the durable queue to the collector.

One drain task per process. The head of the queue is posted with retries
and exponential backoff; it is removed only after a 2xx answer, so an
entry that keeps failing blocks everything behind it and delivery is
at-least-once. Repeated failures open the circuit breaker and the sender
sits out the cool-down before trying again.

Stopping lets an in-flight post finish (or time out); only the idle,
backoff and cool-down waits are interrupted.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from barcode_relay.core.asyncio_utils import cancel_and_wait, create_logged_task, wait_or_stop
from barcode_relay.core.logging_utils import get_module_logger

from .circuit_breaker import CircuitBreaker, CircuitConfig
from .http_client import DEFAULT_REQUEST_TIMEOUT, AiohttpDeliveryClient, DeliveryClient
from .queue_store import DurableQueue, QueueEntry, QueueStoreError
from .retry_policy import RetryOutcome, RetryPolicy

logger = get_module_logger("DeliverySender")


@dataclass
class SenderConfig:
    """Delivery timing. All durations are in seconds."""
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_retries: int = 3
    circuit_cooldown: float = 60.0
    idle_interval: float = 0.5
    # Backoff after the n-th failure is backoff_unit * 2**n
    backoff_unit: float = 1.0


class DeliverySender:
    """
    Usage:
        sender = DeliverySender(queue, SenderConfig(max_retries=3))
        await sender.start()
        # ... later ...
        await sender.stop()
    """

    def __init__(
        self,
        queue: DurableQueue,
        config: Optional[SenderConfig] = None,
        *,
        client: Optional[DeliveryClient] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.config = config or SenderConfig()
        self._queue = queue
        self._owns_client = client is None
        self._client: DeliveryClient = client or AiohttpDeliveryClient(self.config.request_timeout)
        self._breaker = breaker or CircuitBreaker(
            CircuitConfig(
                failure_threshold=self.config.max_retries,
                cooldown=self.config.circuit_cooldown,
            )
        )
        self._policy = RetryPolicy(
            max_attempts=self.config.max_retries,
            base_delay=self.config.backoff_unit,
            max_delay=max(self.config.circuit_cooldown, self.config.backoff_unit),
            backoff_factor=2.0,
        )

        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.delivered_count = 0

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = create_logged_task(
            self._run(),
            logger=logger,
            context="DeliverySender.drain",
        )
        logger.info(
            "Sender started (timeout=%.1fs, retries=%d, cooldown=%.0fs)",
            self.config.request_timeout, self.config.max_retries, self.config.circuit_cooldown,
        )

    async def stop(self) -> None:
        self._stop_event.set()
        task = self._task
        self._task = None
        if task is not None and not task.done():
            grace = self.config.request_timeout + 1.0
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=grace)
            except asyncio.TimeoutError:
                logger.warning("Sender did not stop within %.1fs, cancelling", grace)
                await cancel_and_wait(task)
            except Exception:
                # Already logged by the task's exception logger
                pass

        if self._owns_client:
            await self._client.close()
        logger.info("Sender stopped (%d delivered)", self.delivered_count)

    # =========================================================================
    # Drain loop
    # =========================================================================

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Unexpected error in sender loop: %s", e)
                await self._sleep(self.config.idle_interval)

    async def run_once(self) -> None:
        """One pass of the drain loop."""
        if self._breaker.is_open:
            if await self._sleep(self._breaker.remaining_cooldown()):
                return
            self._breaker.close_after_cooldown()
            return

        try:
            entry = await self._queue.peek_front()
        except QueueStoreError as e:
            logger.error("Could not read queue: %s", e)
            await self._sleep(self.config.idle_interval)
            return

        if entry is None:
            await self._sleep(self.config.idle_interval)
            return

        await self._deliver(entry)

    async def _deliver(self, entry: QueueEntry) -> None:
        result = await self._policy.execute(
            lambda: self._client.post(entry.url, entry.payload),
            on_failure=self._on_attempt_failed,
            sleep=self._sleep,
        )

        if result.outcome is RetryOutcome.SUCCESS:
            self._breaker.record_success()
            try:
                await self._queue.dequeue_front(expected_id=entry.id)
            except QueueStoreError as e:
                # Entry stays on disk and will be posted again
                logger.error("Delivered event %d but could not dequeue it: %s", entry.id, e)
                await self._sleep(self.config.idle_interval)
                return
            self.delivered_count += 1
            logger.debug("Delivered event %d (HTTP %s)", entry.id, result.result_data)
            return

        if self._breaker.is_open:
            logger.warning(
                "Event %d kept in queue after %d failed attempt(s): %s",
                entry.id, result.attempt_count, result.final_error,
            )

    def _on_attempt_failed(self, attempt: int, error: Exception) -> bool:
        logger.warning("Delivery attempt %d failed: %s", attempt, error)
        self._breaker.record_failure()
        return not self._breaker.is_open

    async def _sleep(self, delay: float) -> bool:
        return await wait_or_stop(self._stop_event, delay)


__all__ = ["DeliverySender", "SenderConfig"]
