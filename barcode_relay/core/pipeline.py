"""
Scan pipeline - moves scan lines from the watcher into the delivery queue.

The line framer calls ``submit`` synchronously from the event loop; a single
consumer task validates each line and appends the payload to the durable
queue in arrival order. If the queue cannot be written, validated results
are held in memory and retried, still in order, before newer lines. The
hold is bounded; past ``max_pending`` the oldest held result is dropped.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional

from barcode_relay.core.asyncio_utils import create_logged_task
from barcode_relay.core.delivery.queue_store import DurableQueue, QueueStoreError
from barcode_relay.core.logging_utils import get_module_logger
from barcode_relay.core.scanning.symbology import ValidationResult, validate_barcode

logger = get_module_logger("ScanPipeline")

_STOP = object()
_RETRY = object()


class ScanPipeline:
    """
    Usage:
        pipeline = ScanPipeline(queue, "http://collector/events")
        await pipeline.start()
        watcher = DeviceWatcher(..., on_line=pipeline.submit)
        ...
        await pipeline.stop()
    """

    DEFAULT_RETRY_INTERVAL = 0.5
    DEFAULT_MAX_PENDING = 1000

    def __init__(
        self,
        queue: DurableQueue,
        endpoint_url: str,
        *,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
        max_pending: int = DEFAULT_MAX_PENDING,
    ):
        self._queue = queue
        self._endpoint_url = endpoint_url
        self._retry_interval = retry_interval
        self._max_pending = max(1, max_pending)
        self._lines: asyncio.Queue = asyncio.Queue()
        self._pending: List[ValidationResult] = []
        self._task: Optional[asyncio.Task] = None
        self.processed_count = 0
        self.dropped_count = 0

    @property
    def pending_count(self) -> int:
        """Validated results waiting for the queue to accept them."""
        return len(self._pending)

    def submit(self, line: str) -> None:
        """Hand over one scan line. Safe to call from framer callbacks."""
        self._lines.put_nowait(line)

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = create_logged_task(
            self._consume(),
            logger=logger,
            context="ScanPipeline.consume",
        )

    async def stop(self) -> None:
        """Process lines already submitted, then stop the consumer."""
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        self._lines.put_nowait(_STOP)
        try:
            await task
        except Exception:
            # Already logged by the task's exception logger
            pass
        if self._pending:
            logger.error("%d validated scan(s) could not be queued before shutdown", len(self._pending))

    async def process_line(self, line: str) -> ValidationResult:
        """Validate one line and queue it (or hold it for retry)."""
        result = validate_barcode(line)
        self.processed_count += 1
        logger.info(
            "Scanned %r -> %s (%s)",
            result.barcode, result.symbology.value, "valid" if result.valid else "invalid",
        )
        self._pending.append(result)
        await self._flush_pending()
        self._trim_pending()
        return result

    def _trim_pending(self) -> None:
        while len(self._pending) > self._max_pending:
            dropped = self._pending.pop(0)
            self.dropped_count += 1
            logger.error(
                "Holding more than %d unqueued result(s), dropped oldest scan %r",
                self._max_pending, dropped.barcode,
            )

    async def _consume(self) -> None:
        while True:
            timeout = self._retry_interval if self._pending else None
            try:
                item = await asyncio.wait_for(self._lines.get(), timeout=timeout)
            except asyncio.TimeoutError:
                item = _RETRY

            if item is _STOP:
                await self._flush_pending()
                return
            if item is _RETRY:
                await self._flush_pending()
                continue

            try:
                await self.process_line(item)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Failed to process scan line %r: %s", item, e)

    async def _flush_pending(self) -> None:
        while self._pending:
            result = self._pending[0]
            try:
                await self._queue.enqueue(self._endpoint_url, result.to_payload())
            except QueueStoreError as e:
                logger.warning("Queue unavailable, holding %d result(s): %s", len(self._pending), e)
                return
            self._pending.pop(0)


__all__ = ["ScanPipeline"]
