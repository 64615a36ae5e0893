"""Diagnostic snapshot of the devices matched on the last connect."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from barcode_relay.core.file_sync_utils import atomic_write_json
from barcode_relay.core.logging_utils import get_module_logger

from .types import DeviceDescriptor

logger = get_module_logger("DeviceSnapshot")


class DeviceSnapshotStore:
    """Writes the matched descriptor set to a JSON file. Best effort."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._write_lock = asyncio.Lock()

    async def save(self, descriptors: Sequence[DeviceDescriptor]) -> bool:
        document = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "devices": [descriptor.to_dict() for descriptor in descriptors],
        }
        async with self._write_lock:
            try:
                await asyncio.to_thread(atomic_write_json, self.path, document)
            except (OSError, TypeError, ValueError) as e:
                logger.warning("Could not write device snapshot %s: %s", self.path, e)
                return False

        logger.debug("Saved %d device(s) to %s", len(descriptors), self.path)
        return True


__all__ = ["DeviceSnapshotStore"]
