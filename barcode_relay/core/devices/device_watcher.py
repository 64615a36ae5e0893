"""
Device watcher - keeps one logical connection to the barcode scanner.

Polls HID enumeration, drives the ScannerStateMachine, owns the open device
handle and pumps its reports into a LineFramer. All state transitions run
on the polling task; the reader task only reports failures back to it.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

from barcode_relay.core.asyncio_utils import cancel_and_wait, create_logged_task
from barcode_relay.core.logging_utils import get_module_logger
from barcode_relay.core.scanning.line_framer import (
    DEFAULT_FLUSH_TIMEOUT,
    DEFAULT_MAX_BUFFER,
    LineCallback,
    LineFramer,
)

from .device_snapshot import DeviceSnapshotStore
from .device_state_machine import ScannerStateMachine
from .hid_transport import DeviceError, HidapiTransport, HidHandle, HidTransport
from .types import ConnectionEvent, ConnectionState, DeviceDescriptor, ProductSelector

logger = get_module_logger("DeviceWatcher")

ConnectionListener = Callable[[ConnectionEvent], Awaitable[None]]
CancelFunc = Callable[[], Awaitable[None]]


async def _join_task(task: Optional[asyncio.Task], timeout: float, label: str) -> None:
    """Wait for ``task`` to finish on its own, cancelling it after ``timeout``."""
    if task is None or task.done():
        return
    try:
        await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("%s did not stop within %.1fs, cancelling", label, timeout)
        await cancel_and_wait(task)
    except Exception:
        # Already logged by the task's exception logger
        pass


class DeviceWatcher:
    """
    Watches for the configured scanner and streams its scan lines.

    Usage:
        watcher = DeviceWatcher(
            vendor_id=0x05E0,
            product_selector=ProductSelector.parse("Symbol Bar Code Scanner"),
            on_line=line_queue.put_nowait,
        )
        watcher.add_listener(handle_connection_event)
        await watcher.start()
        # ... later ...
        await watcher.stop()
    """

    DEFAULT_POLL_INTERVAL = 1.0
    READ_SIZE = 64
    READ_TIMEOUT_MS = 100
    STOP_TIMEOUT = 2.0

    def __init__(
        self,
        vendor_id: int,
        product_selector: ProductSelector,
        *,
        on_line: Optional[LineCallback] = None,
        transport: Optional[HidTransport] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        flush_timeout: float = DEFAULT_FLUSH_TIMEOUT,
        max_buffer: int = DEFAULT_MAX_BUFFER,
        snapshot_store: Optional[DeviceSnapshotStore] = None,
    ):
        self._vendor_id = vendor_id
        self._selector = product_selector
        self._transport = transport if transport is not None else HidapiTransport()
        self._poll_interval = poll_interval
        self._snapshot_store = snapshot_store

        self._framer = LineFramer(on_line, flush_timeout=flush_timeout, max_buffer=max_buffer)
        self._fsm = ScannerStateMachine()
        self._listeners: List[ConnectionListener] = []

        self._handle: Optional[HidHandle] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._reader_stop = False
        self._read_failure: Optional[str] = None

        self._poll_task: Optional[asyncio.Task] = None
        self._poll_lock = asyncio.Lock()
        self._wake = asyncio.Event()
        self._running = False

    # ------------------------------------------------------------------
    # Properties

    @property
    def state(self) -> ConnectionState:
        return self._fsm.state

    @property
    def descriptor(self) -> Optional[DeviceDescriptor]:
        return self._fsm.descriptor

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def framer(self) -> LineFramer:
        return self._framer

    def add_listener(self, listener: ConnectionListener) -> None:
        """Subscribe to connected/reconnected/disconnected events."""
        self._listeners.append(listener)

    def remove_listener(self, listener: ConnectionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Lifecycle

    async def start(self) -> None:
        """Run an immediate poll, then keep polling in the background."""
        if self._running:
            return
        self._running = True
        self._wake.clear()

        await self.poll_once()

        self._poll_task = create_logged_task(
            self._poll_loop(),
            logger=logger,
            context="DeviceWatcher.poll",
        )
        logger.info(
            "Watching for vendor 0x%04x (%s) every %.2fs",
            self._vendor_id, self._selector.describe(), self._poll_interval,
        )

    async def stop(self) -> None:
        """Stop polling, close the device handle and drop partial lines."""
        if not self._running:
            return
        self._running = False
        self._wake.set()

        await _join_task(self._poll_task, self.STOP_TIMEOUT, "Poll loop")
        self._poll_task = None

        async with self._poll_lock:
            await self._teardown("watcher stopped")
        self._framer.close()
        logger.info("Device watcher stopped")

    async def poll_once(self) -> None:
        """Run one discovery cycle."""
        async with self._poll_lock:
            if self._read_failure is not None:
                reason = f"read error: {self._read_failure}"
                self._read_failure = None
                await self._teardown(reason)

            matches = await self._enumerate()
            await self._apply(matches)

    # ------------------------------------------------------------------
    # Polling

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await self._wait_for_tick()
                if not self._running:
                    break
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Error in device poll loop: %s", e)

    async def _wait_for_tick(self) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=self._poll_interval)
        except asyncio.TimeoutError:
            pass
        self._wake.clear()

    async def _enumerate(self) -> List[DeviceDescriptor]:
        """Matching devices in enumeration order; failures count as none found."""
        try:
            devices = await asyncio.to_thread(self._transport.enumerate, self._vendor_id)
        except DeviceError as e:
            logger.warning("HID enumeration failed: %s", e)
            return []
        except OSError as e:
            logger.warning("HID enumeration failed (%s): %s", type(e).__name__, e)
            return []

        return [
            device for device in devices
            if device.vendor_id == self._vendor_id and self._selector.matches(device)
        ]

    async def _apply(self, matches: List[DeviceDescriptor]) -> None:
        if self._fsm.is_connected:
            if any(self._fsm.is_current(device) for device in matches):
                return
            await self._teardown("device removed")

        if not matches:
            return

        if len(matches) > 1:
            logger.debug(
                "%d matching devices, using first: %s",
                len(matches), matches[0].path,
            )
        await self._connect(matches[0], matches)

    # ------------------------------------------------------------------
    # Connect / disconnect

    async def _connect(self, descriptor: DeviceDescriptor, matches: List[DeviceDescriptor]) -> None:
        try:
            handle = await asyncio.to_thread(self._transport.open, descriptor)
        except (DeviceError, OSError) as e:
            logger.warning("Could not open %s, retrying next poll: %s", descriptor.display_name, e)
            return

        self._handle = handle
        self._framer.reset()
        self._reader_stop = False
        self._read_failure = None

        event = self._fsm.connect(descriptor, reason=descriptor.path)
        self._reader_task = create_logged_task(
            self._read_loop(handle),
            logger=logger,
            context="DeviceWatcher.read",
        )

        await self._notify(event)
        if self._snapshot_store is not None:
            await self._snapshot_store.save(matches)

    async def _teardown(self, reason: str) -> None:
        await self._stop_reader()

        handle = self._handle
        self._handle = None
        if handle is not None:
            try:
                await asyncio.to_thread(handle.close)
            except (DeviceError, OSError) as e:
                logger.debug("Error closing device handle: %s", e)

        self._framer.reset()

        event = self._fsm.disconnect(reason)
        if event is not None:
            await self._notify(event)

    async def _stop_reader(self) -> None:
        task = self._reader_task
        self._reader_task = None
        if task is None:
            return
        self._reader_stop = True
        await _join_task(task, self.STOP_TIMEOUT, "Reader")

    async def _read_loop(self, handle: HidHandle) -> None:
        while not self._reader_stop:
            try:
                chunk = await asyncio.to_thread(handle.read, self.READ_SIZE, self.READ_TIMEOUT_MS)
            except (DeviceError, OSError) as e:
                if not self._reader_stop:
                    logger.warning("Device read failed: %s", e)
                    self._read_failure = str(e)
                    self._wake.set()
                return

            if chunk and not self._reader_stop:
                self._framer.feed(chunk)

    async def _notify(self, event: ConnectionEvent) -> None:
        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception as e:
                logger.error("Error in connection listener for %s: %s", event.name, e)


async def start_watching(
    vendor_id: int,
    product_selector: ProductSelector,
    *,
    on_line: Optional[LineCallback] = None,
    on_event: Optional[ConnectionListener] = None,
    **watcher_kwargs,
) -> CancelFunc:
    """Start a DeviceWatcher and return the coroutine function that stops it."""
    watcher = DeviceWatcher(vendor_id, product_selector, on_line=on_line, **watcher_kwargs)
    if on_event is not None:
        watcher.add_listener(on_event)
    await watcher.start()
    return watcher.stop


__all__ = [
    "CancelFunc",
    "ConnectionListener",
    "DeviceWatcher",
    "start_watching",
]
