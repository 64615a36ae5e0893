"""
Core type definitions for scanner discovery.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

# HID usage page assigned to bar code scanners
BARCODE_SCANNER_USAGE_PAGE = 0x8C


class ConnectionState(Enum):
    """Presence of the logical scanner session."""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"      # First sighting of this physical unit
    RECONNECTED = "reconnected"  # Same unit came back

    @property
    def is_connected(self) -> bool:
        return self is not ConnectionState.DISCONNECTED


@dataclass(frozen=True)
class DeviceDescriptor:
    """One HID interface as reported by enumeration."""
    vendor_id: int
    product_id: int
    path: str
    serial_number: Optional[str] = None
    product: Optional[str] = None
    manufacturer: Optional[str] = None
    interface_number: int = -1
    usage_page: int = 0
    usage: int = 0

    @property
    def identity(self) -> str:
        """Reconnection identity: serial number when present, else path."""
        if self.serial_number:
            return f"serial:{self.serial_number}"
        return f"path:{self.path}"

    @property
    def display_name(self) -> str:
        if self.product:
            return self.product
        return f"{self.vendor_id:04x}:{self.product_id:04x}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vendor_id": self.vendor_id,
            "product_id": self.product_id,
            "path": self.path,
            "serial_number": self.serial_number,
            "product": self.product,
            "manufacturer": self.manufacturer,
            "interface_number": self.interface_number,
            "usage_page": self.usage_page,
            "usage": self.usage,
        }


@dataclass(frozen=True)
class ProductSelector:
    """Matches a scanner by product name or product id.

    ``usage_page`` optionally narrows the match to one HID interface of a
    composite device.
    """
    product_id: Optional[int] = None
    product_name: Optional[str] = None
    usage_page: Optional[int] = None

    @classmethod
    def parse(cls, value: Union[str, int, None], usage_page: Optional[int] = None) -> "ProductSelector":
        """Build a selector from config text.

        Integers (decimal or ``0x`` hex) select by product id; anything else
        selects by product name. Empty input matches any product.
        """
        if value is None:
            return cls(usage_page=usage_page)
        if isinstance(value, int):
            return cls(product_id=value, usage_page=usage_page)

        text = value.strip()
        if not text:
            return cls(usage_page=usage_page)
        try:
            return cls(product_id=int(text, 0), usage_page=usage_page)
        except ValueError:
            return cls(product_name=text, usage_page=usage_page)

    def matches(self, descriptor: DeviceDescriptor) -> bool:
        if self.product_id is not None and descriptor.product_id != self.product_id:
            return False
        if self.product_name is not None and descriptor.product != self.product_name:
            return False
        if self.usage_page is not None and descriptor.usage_page != self.usage_page:
            return False
        return True

    def describe(self) -> str:
        parts = []
        if self.product_id is not None:
            parts.append(f"product_id=0x{self.product_id:04x}")
        if self.product_name is not None:
            parts.append(f"product={self.product_name!r}")
        if self.usage_page is not None:
            parts.append(f"usage_page=0x{self.usage_page:02x}")
        return ", ".join(parts) or "any product"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ConnectionEvent:
    """Emitted once per state machine transition."""
    state: ConnectionState
    descriptor: Optional[DeviceDescriptor]
    reason: str = ""
    timestamp: str = field(default_factory=_now)

    @property
    def name(self) -> str:
        return self.state.value


__all__ = [
    "BARCODE_SCANNER_USAGE_PAGE",
    "ConnectionEvent",
    "ConnectionState",
    "DeviceDescriptor",
    "ProductSelector",
]
