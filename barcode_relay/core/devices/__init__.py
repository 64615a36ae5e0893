"""
Scanner discovery and connection management.

This package finds the configured HID barcode scanner, tracks its presence
through the ScannerStateMachine and feeds its byte stream to a LineFramer.
"""

from .types import (
    BARCODE_SCANNER_USAGE_PAGE,
    ConnectionEvent,
    ConnectionState,
    DeviceDescriptor,
    ProductSelector,
)

from .hid_transport import (
    DeviceError,
    HidHandle,
    HidTransport,
    HidapiTransport,
    descriptor_from_info,
)

from .device_state_machine import (
    IllegalTransition,
    ScannerStateMachine,
)

from .device_snapshot import DeviceSnapshotStore

from .device_watcher import (
    DeviceWatcher,
    start_watching,
)

__all__ = [
    # Types
    "BARCODE_SCANNER_USAGE_PAGE",
    "ConnectionEvent",
    "ConnectionState",
    "DeviceDescriptor",
    "ProductSelector",
    # Transport
    "DeviceError",
    "HidHandle",
    "HidTransport",
    "HidapiTransport",
    "descriptor_from_info",
    # State machine
    "IllegalTransition",
    "ScannerStateMachine",
    # Snapshot
    "DeviceSnapshotStore",
    # Watcher
    "DeviceWatcher",
    "start_watching",
]
