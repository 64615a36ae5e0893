"""
Durable delivery queue.

The queue is a JSON document on disk and is the only record of scan events
that have not been delivered yet:

    {"events": [{"id": 1, "url": "...", "payload": {...}}, ...]}

Every mutation runs inside ``transaction()``: the store lock is held, the
change is applied to a working copy, the copy is written atomically, and
only then does it replace the in-memory view. A failed write leaves both
the file and the in-memory view as they were and raises QueueStoreError.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import aiofiles

from barcode_relay.core.file_sync_utils import atomic_write_json
from barcode_relay.core.logging_utils import get_module_logger

logger = get_module_logger("QueueStore")


class QueueStoreError(Exception):
    """The queue file could not be read or written."""


@dataclass(frozen=True)
class QueueEntry:
    """One undelivered event. Never mutated; removed only after delivery."""
    id: int
    url: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "url": self.url, "payload": self.payload}


class QueueTransaction:
    """Working copy handed out by ``DurableQueue.transaction()``."""

    def __init__(self, entries: List[QueueEntry], next_id: int):
        self.entries = entries
        self.next_id = next_id
        self.changed = False

    @property
    def front(self) -> Optional[QueueEntry]:
        return self.entries[0] if self.entries else None

    def append(self, url: str, payload: Dict[str, Any]) -> QueueEntry:
        entry = QueueEntry(id=self.next_id, url=url, payload=dict(payload))
        self.next_id += 1
        self.entries.append(entry)
        self.changed = True
        return entry

    def pop_front(self) -> Optional[QueueEntry]:
        if not self.entries:
            return None
        self.changed = True
        return self.entries.pop(0)


class DurableQueue:
    """
    FIFO of QueueEntry persisted to a JSON file.

    Usage:
        queue = DurableQueue(QUEUE_FILE)
        await queue.open()

        await queue.enqueue(url, payload)
        entry = await queue.peek_front()
        if entry and delivered(entry):
            await queue.dequeue_front(expected_id=entry.id)
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._entries: List[QueueEntry] = []
        self._next_id = 1
        self._lock = asyncio.Lock()
        self._opened = False

    @property
    def is_open(self) -> bool:
        return self._opened

    # =========================================================================
    # Loading
    # =========================================================================

    async def open(self) -> int:
        """Load persisted entries. Returns the number of entries loaded.

        A missing file is an empty queue. A file that cannot be parsed is
        moved aside so it can be inspected, and the queue starts empty.
        """
        async with self._lock:
            entries, next_id = await self._load()
            self._entries = entries
            self._next_id = next_id
            self._opened = True

        if entries:
            logger.info("Loaded %d undelivered event(s) from %s", len(entries), self.path)
        else:
            logger.debug("Queue %s is empty", self.path)
        return len(entries)

    async def _load(self) -> Tuple[List[QueueEntry], int]:
        if not await asyncio.to_thread(self.path.exists):
            return [], 1

        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                text = await f.read()
        except OSError as e:
            raise QueueStoreError(f"Could not read queue file {self.path}: {e}") from e

        if not text.strip():
            return [], 1

        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            await self._quarantine(f"invalid JSON ({e})")
            return [], 1

        raw_events = document.get("events") if isinstance(document, dict) else None
        if not isinstance(raw_events, list):
            await self._quarantine("missing 'events' list")
            return [], 1

        return self._parse_events(raw_events)

    def _parse_events(self, raw_events: List[Any]) -> Tuple[List[QueueEntry], int]:
        known_ids = [
            item["id"] for item in raw_events
            if isinstance(item, dict) and isinstance(item.get("id"), int)
        ]
        next_id = max(known_ids, default=0) + 1

        entries: List[QueueEntry] = []
        for index, item in enumerate(raw_events):
            if not isinstance(item, dict) or not isinstance(item.get("url"), str):
                logger.warning("Skipping malformed queue entry #%d: %r", index, item)
                continue

            entry_id = item.get("id")
            if not isinstance(entry_id, int):
                # Files written before ids existed
                entry_id = next_id
                next_id += 1

            payload = item.get("payload")
            if not isinstance(payload, dict):
                payload = {"value": payload}
            entries.append(QueueEntry(id=entry_id, url=item["url"], payload=payload))

        return entries, next_id

    async def _quarantine(self, reason: str) -> None:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        aside = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        try:
            await asyncio.to_thread(os.replace, self.path, aside)
        except OSError as e:
            raise QueueStoreError(f"Queue file {self.path} is unreadable ({reason}) and could not be moved: {e}") from e
        logger.error("Queue file %s unreadable (%s); moved to %s", self.path, reason, aside)

    # =========================================================================
    # Transactions
    # =========================================================================

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[QueueTransaction]:
        """Scoped, all-or-nothing mutation of the queue."""
        if not self._opened:
            raise QueueStoreError("Queue is not open")

        async with self._lock:
            txn = QueueTransaction(list(self._entries), self._next_id)
            yield txn

            if not txn.changed:
                return

            document = {"events": [entry.to_dict() for entry in txn.entries]}
            try:
                await asyncio.to_thread(atomic_write_json, self.path, document)
            except (OSError, TypeError, ValueError) as e:
                logger.error("Queue persist failed, change rolled back: %s", e)
                raise QueueStoreError(f"Could not persist queue to {self.path}: {e}") from e

            self._entries = txn.entries
            self._next_id = txn.next_id

    # =========================================================================
    # Operations
    # =========================================================================

    async def enqueue(self, url: str, payload: Dict[str, Any]) -> QueueEntry:
        """Append an event; it is on disk when this returns."""
        async with self.transaction() as txn:
            entry = txn.append(url, payload)
        logger.debug("Enqueued event %d (%d pending)", entry.id, len(self._entries))
        return entry

    async def peek_front(self) -> Optional[QueueEntry]:
        async with self._lock:
            return self._entries[0] if self._entries else None

    async def dequeue_front(self, expected_id: Optional[int] = None) -> Optional[QueueEntry]:
        """Remove the oldest entry.

        With ``expected_id`` the entry is removed only if it is still the
        front; otherwise nothing changes and None is returned.
        """
        async with self.transaction() as txn:
            front = txn.front
            if front is None:
                return None
            if expected_id is not None and front.id != expected_id:
                logger.warning(
                    "Front entry is %d, expected %d; not dequeuing",
                    front.id, expected_id,
                )
                return None
            removed = txn.pop_front()
        logger.debug("Dequeued event %d (%d pending)", removed.id, len(self._entries))
        return removed

    async def size(self) -> int:
        async with self._lock:
            return len(self._entries)

    async def entries(self) -> List[QueueEntry]:
        """Snapshot of all pending entries, oldest first."""
        async with self._lock:
            return list(self._entries)


__all__ = [
    "DurableQueue",
    "QueueEntry",
    "QueueStoreError",
    "QueueTransaction",
]
