import argparse
import asyncio
import json
import os
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from barcode_relay import __version__
from barcode_relay.core.asyncio_utils import wait_or_stop
from barcode_relay.core.config_manager import get_config_manager
from barcode_relay.core.delivery import DeliverySender, DurableQueue, QueueStoreError, SenderConfig
from barcode_relay.core.devices import (
    ConnectionEvent,
    DeviceError,
    DeviceSnapshotStore,
    DeviceWatcher,
    HidapiTransport,
    HidTransport,
)
from barcode_relay.core.logging_config import configure_logging
from barcode_relay.core.logging_utils import get_module_logger
from barcode_relay.core.paths import CONFIG_PATH, ensure_directories
from barcode_relay.core.pipeline import ScanPipeline
from barcode_relay.core.relay_config import (
    LOG_LEVELS,
    ConfigError,
    RelayConfig,
    load_config,
    parse_vendor_id,
)


logger = get_module_logger("Relay")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments. Unset options fall back to env/config."""
    parser = argparse.ArgumentParser(
        prog="barcode-relay",
        description="Barcode relay - forwards HID barcode scans to an HTTP collector",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=CONFIG_PATH,
        help=f"key = value config file (default: {CONFIG_PATH})"
    )

    parser.add_argument(
        "--vendor-id",
        help="USB vendor id, decimal or 0x hex (env: VENDOR_ID)"
    )

    parser.add_argument(
        "--product",
        help="Product name or product id (env: PRODUCT)"
    )

    parser.add_argument(
        "--usage-page",
        help="Only match HID interfaces with this usage page (e.g. 0x8C)"
    )

    parser.add_argument(
        "--endpoint-url",
        help="Collector URL that receives scan events (env: ENDPOINT_URL)"
    )

    parser.add_argument(
        "--queue-file",
        help="Durable queue location (env: QUEUE_FILE)"
    )

    parser.add_argument(
        "--poll-interval",
        type=float,
        help="Seconds between device discovery polls (default: 1.0)"
    )

    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        help="Logging level (env: LOG_LEVEL, default: info)"
    )

    parser.add_argument(
        "--log-file",
        help="Rotating log file location"
    )

    parser.add_argument(
        "--console",
        dest="console_output",
        action="store_true",
        default=None,
        help="Also log to console (default, config: console)"
    )

    parser.add_argument(
        "--no-console",
        dest="console_output",
        action="store_false",
        help="Log to file only"
    )

    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="Print HID devices for the vendor id (all devices without one) and exit"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


def _overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "vendor_id": args.vendor_id,
        "product": args.product,
        "usage_page": args.usage_page,
        "endpoint_url": args.endpoint_url,
        "queue_file": args.queue_file,
        "poll_interval": args.poll_interval,
        "log_level": args.log_level,
        "log_file": args.log_file,
        "console": args.console_output,
    }


async def list_devices(vendor_id: Optional[int], transport: Optional[HidTransport] = None) -> int:
    """Print matching HID devices as JSON lines. Returns the exit status."""
    transport = transport if transport is not None else HidapiTransport()
    try:
        devices = await asyncio.to_thread(transport.enumerate, vendor_id)
    except DeviceError as e:
        logger.error("HID enumeration failed: %s", e)
        return EXIT_FAILURE

    if vendor_id is not None:
        devices = [device for device in devices if device.vendor_id == vendor_id]

    if not devices:
        logger.warning("No HID devices found%s", f" for vendor 0x{vendor_id:04x}" if vendor_id else "")
        return EXIT_FAILURE

    for device in devices:
        print(json.dumps(device.to_dict()))
    return EXIT_OK


def _vendor_for_listing(args: argparse.Namespace) -> Optional[int]:
    config = get_config_manager().read_config(args.config)
    value = args.vendor_id or os.environ.get("VENDOR_ID") or config.get("vendor_id")
    return parse_vendor_id(value) if value else None


async def _log_connection_event(event: ConnectionEvent) -> None:
    name = event.descriptor.display_name if event.descriptor else "scanner"
    if event.state.is_connected:
        logger.info("Scanner %s: %s (serial=%s)", event.name, name,
                    event.descriptor.serial_number if event.descriptor else None)
    else:
        logger.warning("Scanner %s: %s (%s)", event.name, name, event.reason)


async def _open_queue(queue: DurableQueue, stop_event: asyncio.Event, retry_interval: float) -> bool:
    """Open the queue, retrying until it succeeds. False if stopped first."""
    attempt = 0
    while not stop_event.is_set():
        attempt += 1
        try:
            await queue.open()
            return True
        except QueueStoreError as e:
            logger.error("Cannot open delivery queue (attempt %d): %s", attempt, e)
        if await wait_or_stop(stop_event, retry_interval):
            break
    return False


async def run_relay(config: RelayConfig, stop_event: asyncio.Event) -> int:
    """Run queue, sender, pipeline and watcher until ``stop_event`` is set."""
    queue = DurableQueue(config.queue_path)
    if not await _open_queue(queue, stop_event, config.idle_interval):
        return EXIT_OK

    sender = DeliverySender(
        queue,
        SenderConfig(
            request_timeout=config.request_timeout,
            max_retries=config.max_retries,
            circuit_cooldown=config.circuit_cooldown,
            idle_interval=config.idle_interval,
        ),
    )
    pipeline = ScanPipeline(queue, config.endpoint_url)
    watcher = DeviceWatcher(
        config.vendor_id,
        config.product,
        on_line=pipeline.submit,
        poll_interval=config.poll_interval,
        flush_timeout=config.flush_timeout,
        max_buffer=config.max_buffer,
        snapshot_store=DeviceSnapshotStore(config.snapshot_path),
    )
    watcher.add_listener(_log_connection_event)

    await sender.start()
    await pipeline.start()
    try:
        await watcher.start()
        await stop_event.wait()
    finally:
        logger.info("Shutting down...")
        await watcher.stop()
        await pipeline.stop()
        await sender.stop()
        logger.info("%d event(s) left in queue", await queue.size())

    return EXIT_OK


async def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the barcode relay.

    Startup order: queue, sender, pipeline, watcher. SIGINT/SIGTERM stops
    them in reverse order; queued events stay on disk for the next run.
    """
    args = parse_args(argv)

    if args.list_devices:
        configure_logging(args.log_level or "info", force=True, console=True)
        try:
            vendor_id = _vendor_for_listing(args)
        except ConfigError as e:
            logger.error("%s", e)
            return EXIT_CONFIG
        return await list_devices(vendor_id)

    try:
        config = load_config(_overrides_from_args(args), config_path=args.config)
    except ConfigError as e:
        configure_logging("info", force=True, console=True)
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG

    ensure_directories()

    configure_logging(
        config.log_level,
        force=True,
        console=config.console,
        log_file=config.log_file,
        suppressed_loggers=("aiohttp.access",),
    )

    logger.info("=" * 60)
    logger.info("Barcode Relay %s starting", __version__)
    logger.info("=" * 60)
    logger.info("Vendor: 0x%04x  Product: %s", config.vendor_id, config.product.describe())
    logger.info("Endpoint: %s", config.endpoint_url)
    logger.info("Queue file: %s", config.queue_path)
    logger.info("Log file: %s", config.log_file)
    logger.info("=" * 60)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler():
        if not stop_event.is_set():
            logger.info("Signal received, stopping")
            stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            pass  # Windows doesn't support add_signal_handler

    status = await run_relay(config, stop_event)

    logger.info("=" * 60)
    logger.info("Barcode Relay stopped")
    logger.info("=" * 60)
    return status


def run(argv: Optional[list[str]] = None) -> int:
    try:
        return asyncio.run(main(argv))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130
    except Exception as exc:  # pragma: no cover - fatal guard
        print(f"Fatal error: {exc}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(run())
