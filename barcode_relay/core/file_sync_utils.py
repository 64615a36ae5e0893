"""
Durable file write helpers.

The queue store and the device snapshot both rewrite small JSON documents.
A write goes to a temporary file in the same directory, is fsynced, and
then atomically replaces the target, so a crash leaves either the old or
the new document on disk, never a truncated one.
"""

from __future__ import annotations

import json
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

from barcode_relay.core.logging_utils import get_module_logger

logger = get_module_logger("FileSyncUtils")

_msvcrt = None
if sys.platform == "win32":
    import msvcrt as _msvcrt


def safe_fsync(fd: int) -> bool:
    """Sync file descriptor to disk (cross-platform).

    Returns False instead of raising; fsync is advisory on some systems.
    """
    try:
        if _msvcrt is not None:
            _msvcrt._commit(fd)
        else:
            os.fsync(fd)
        return True
    except OSError as e:
        logger.debug("fsync failed for fd %d: %s", fd, e)
        return False


def fsync_file(file_obj) -> bool:
    """Flush and sync an open file object to disk."""
    try:
        file_obj.flush()
        return safe_fsync(file_obj.fileno())
    except (OSError, AttributeError, ValueError) as e:
        logger.debug("fsync_file failed: %s", e)
        return False


def atomic_write_json(path: Union[str, Path], data: Any, *, indent: Optional[int] = 2) -> None:
    """Write ``data`` as JSON to ``path`` atomically.

    Raises:
        OSError: if the directory cannot be created or the file replaced.
        TypeError: if ``data`` is not JSON serializable.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    tmp_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            dir=str(target.parent),
            prefix=f".{target.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        ) as tmp:
            tmp_path = Path(tmp.name)
            json.dump(data, tmp, indent=indent)
            fsync_file(tmp)

        os.replace(tmp_path, target)
        tmp_path = None
    finally:
        if tmp_path is not None:
            try:
                tmp_path.unlink()
            except FileNotFoundError:
                pass


__all__ = ["atomic_write_json", "fsync_file", "safe_fsync"]
