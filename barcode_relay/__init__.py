"""USB HID barcode scanner relay."""

from __future__ import annotations

from importlib import metadata
from typing import Optional, Sequence

try:
    __version__ = metadata.version("barcode-relay")
except metadata.PackageNotFoundError:  # pragma: no cover - local dev
    __version__ = "0.0.0"


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Run the relay until SIGINT/SIGTERM; returns the exit status."""
    from .app.master import run as _run
    return _run(list(argv) if argv is not None else None)


__all__ = ["__version__", "run"]
