"""Centralized path constants for the barcode relay."""

from __future__ import annotations

import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]
PACKAGE_ROOT = PROJECT_ROOT / "barcode_relay"

# Configuration
CONFIG_PATH = PROJECT_ROOT / "config.txt"

# User-specific state (allows running from read-only project directories)
_USER_STATE_ENV = os.environ.get("BARCODE_RELAY_STATE_DIR")
USER_STATE_DIR = (
    Path(_USER_STATE_ENV).expanduser() if _USER_STATE_ENV else (Path.home() / ".barcode_relay")
)

# Durable delivery queue and diagnostic device snapshot
QUEUE_FILE = USER_STATE_DIR / "queue.json"
DEVICE_SNAPSHOT_FILE = USER_STATE_DIR / "devices.json"

# Logging
LOGS_DIR = USER_STATE_DIR / "logs"
RELAY_LOG_FILE = LOGS_DIR / "relay.log"


def ensure_directories() -> None:
    """Create necessary directories if they don't exist."""
    USER_STATE_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)


__all__ = [
    "PROJECT_ROOT",
    "PACKAGE_ROOT",
    "CONFIG_PATH",
    "USER_STATE_DIR",
    "QUEUE_FILE",
    "DEVICE_SNAPSHOT_FILE",
    "LOGS_DIR",
    "RELAY_LOG_FILE",
    "ensure_directories",
]
