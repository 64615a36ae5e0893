"""
Line framer - turns raw HID report bytes into scan lines.

Scanners in ASCII Bar-Code-Scanner mode terminate each scan with a carriage
return, but some omit it on the last line of a burst and most pad reports
with control/NUL bytes. The framer keeps only CR and printable ASCII,
splits on CR, and flushes a dangling partial line after a short quiet
period.
"""

from __future__ import annotations

import asyncio
from typing import Callable, List, Optional

from barcode_relay.core.logging_utils import get_module_logger

logger = get_module_logger("LineFramer")

CARRIAGE_RETURN = 0x0D
ASCII_PRINTABLE_START = 0x20
ASCII_PRINTABLE_END = 0x7E

DEFAULT_FLUSH_TIMEOUT = 0.1
DEFAULT_MAX_BUFFER = 16 * 1024

_KEEP = bytes(
    b for b in range(256)
    if b == CARRIAGE_RETURN or ASCII_PRINTABLE_START <= b <= ASCII_PRINTABLE_END
)
_DROP = bytes(b for b in range(256) if b not in _KEEP)

LineCallback = Callable[[str], None]


def filter_chunk(chunk: bytes) -> bytes:
    """Keep only CR and printable ASCII bytes."""
    return bytes(chunk).translate(None, _DROP)


def clean_line(raw: bytes) -> str:
    """Strip NUL bytes and surrounding whitespace."""
    return raw.replace(b"\x00", b"").decode("ascii", errors="ignore").strip()


class LineFramer:
    """
    Accumulates byte chunks and emits completed lines.

    Every emitted line goes to ``on_line``. ``feed`` also returns the lines
    it emitted synchronously; lines emitted by the flush timer only reach
    the callback.

    Usage:
        framer = LineFramer(on_line=queue.put_nowait)
        framer.feed(b"4006381333931\\r")
        ...
        framer.close()
    """

    def __init__(
        self,
        on_line: Optional[LineCallback] = None,
        *,
        flush_timeout: float = DEFAULT_FLUSH_TIMEOUT,
        max_buffer: int = DEFAULT_MAX_BUFFER,
    ):
        if max_buffer <= 0:
            raise ValueError("max_buffer must be positive")
        self._on_line = on_line
        self._flush_timeout = flush_timeout
        self._max_buffer = max_buffer
        self._buffer = bytearray()
        self._flush_timer: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bytes:
        """Residual bytes waiting for a terminator."""
        return bytes(self._buffer)

    @property
    def flush_armed(self) -> bool:
        return self._flush_timer is not None

    def set_line_callback(self, callback: Optional[LineCallback]) -> None:
        self._on_line = callback

    # ------------------------------------------------------------------
    # Public API

    def feed(self, chunk: bytes) -> List[str]:
        """Consume one raw chunk and emit every line it completes."""
        clean = filter_chunk(chunk)
        if not clean:
            return []

        self._buffer.extend(clean)
        self._cancel_flush()

        lines = self._extract_lines()
        self._cap_buffer()

        if self._buffer:
            self._arm_flush()

        return lines

    def flush(self) -> Optional[str]:
        """Emit the residual buffer as a line right away."""
        self._cancel_flush()
        if not self._buffer:
            return None

        raw = bytes(self._buffer)
        self._buffer.clear()

        line = clean_line(raw)
        if not line:
            return None

        logger.debug("Flushed unterminated line (%d bytes)", len(raw))
        self._emit(line)
        return line

    def reset(self) -> None:
        """Drop any partial line and cancel the flush timer."""
        self._cancel_flush()
        if self._buffer:
            logger.debug("Dropping %d buffered bytes", len(self._buffer))
        self._buffer.clear()

    def close(self) -> None:
        self.reset()

    # ------------------------------------------------------------------
    # Internals

    def _extract_lines(self) -> List[str]:
        lines: List[str] = []
        while True:
            index = self._buffer.find(CARRIAGE_RETURN)
            if index < 0:
                break
            raw = bytes(self._buffer[:index])
            del self._buffer[:index + 1]

            line = clean_line(raw)
            if line:
                lines.append(line)
                self._emit(line)
        return lines

    def _cap_buffer(self) -> None:
        excess = len(self._buffer) - self._max_buffer
        if excess > 0:
            logger.warning("Line buffer over %d bytes, discarding %d oldest", self._max_buffer, excess)
            del self._buffer[:excess]

    def _emit(self, line: str) -> None:
        if self._on_line is None:
            return
        try:
            self._on_line(line)
        except Exception as e:
            logger.error("Line callback failed for %r: %s", line, e)

    def _arm_flush(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: callers flush explicitly
            return
        self._flush_timer = loop.call_later(self._flush_timeout, self._on_flush_timer)

    def _cancel_flush(self) -> None:
        if self._flush_timer is not None:
            self._flush_timer.cancel()
            self._flush_timer = None

    def _on_flush_timer(self) -> None:
        self._flush_timer = None
        self.flush()


__all__ = [
    "CARRIAGE_RETURN",
    "DEFAULT_FLUSH_TIMEOUT",
    "DEFAULT_MAX_BUFFER",
    "LineFramer",
    "clean_line",
    "filter_chunk",
]
