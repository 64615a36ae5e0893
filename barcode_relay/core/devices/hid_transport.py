"""
HID transport - thin wrapper over hidapi.

The watcher only talks to the ``HidTransport``/``HidHandle`` protocols so
tests can substitute a fake. ``HidapiTransport`` is the production
implementation backed by the ``hid`` module from the hidapi distribution.
All calls here are blocking; the watcher runs them via ``asyncio.to_thread``.
"""

from __future__ import annotations

from typing import List, Optional, Protocol

import hid

from barcode_relay.core.logging_utils import get_module_logger
from .types import DeviceDescriptor

logger = get_module_logger("HidTransport")


class DeviceError(Exception):
    """Enumeration, open or read failure on the HID subsystem."""


class HidHandle(Protocol):
    """An open HID device."""

    def read(self, size: int, timeout_ms: int) -> bytes:
        """Read one report; returns b"" when the timeout expires."""
        ...

    def close(self) -> None:
        ...


class HidTransport(Protocol):
    """Enumerates and opens HID devices."""

    def enumerate(self, vendor_id: Optional[int] = None) -> List[DeviceDescriptor]:
        ...

    def open(self, descriptor: DeviceDescriptor) -> HidHandle:
        ...


def _decode_path(path) -> str:
    if isinstance(path, bytes):
        return path.decode("utf-8", errors="replace")
    return str(path)


def descriptor_from_info(info: dict) -> DeviceDescriptor:
    """Convert one ``hid.enumerate()`` entry to a DeviceDescriptor."""
    return DeviceDescriptor(
        vendor_id=int(info.get("vendor_id", 0)),
        product_id=int(info.get("product_id", 0)),
        path=_decode_path(info.get("path", b"")),
        serial_number=info.get("serial_number") or None,
        product=info.get("product_string") or None,
        manufacturer=info.get("manufacturer_string") or None,
        interface_number=int(info.get("interface_number", -1)),
        usage_page=int(info.get("usage_page", 0)),
        usage=int(info.get("usage", 0)),
    )


class HidapiHandle:
    """Open hidapi device."""

    def __init__(self, device: "hid.device", descriptor: DeviceDescriptor):
        self._device = device
        self.descriptor = descriptor
        self._closed = False

    def read(self, size: int, timeout_ms: int) -> bytes:
        if self._closed:
            raise DeviceError(f"Device {self.descriptor.path} is closed")
        try:
            data = self._device.read(size, timeout_ms)
        except (OSError, ValueError) as e:
            raise DeviceError(f"Read failed on {self.descriptor.path}: {e}") from e
        return bytes(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._device.close()
        except (OSError, ValueError) as e:
            logger.debug("Error closing %s: %s", self.descriptor.path, e)


class HidapiTransport:
    """HidTransport backed by hidapi."""

    def enumerate(self, vendor_id: Optional[int] = None) -> List[DeviceDescriptor]:
        try:
            infos = hid.enumerate(vendor_id or 0, 0)
        except (OSError, ValueError) as e:
            raise DeviceError(f"HID enumeration failed: {e}") from e
        return [descriptor_from_info(info) for info in infos]

    def open(self, descriptor: DeviceDescriptor) -> HidHandle:
        device = hid.device()
        try:
            device.open_path(descriptor.path.encode("utf-8"))
        except (OSError, ValueError) as e:
            raise DeviceError(f"Could not open {descriptor.path}: {e}") from e
        return HidapiHandle(device, descriptor)


__all__ = [
    "DeviceError",
    "HidHandle",
    "HidTransport",
    "HidapiHandle",
    "HidapiTransport",
    "descriptor_from_info",
]
