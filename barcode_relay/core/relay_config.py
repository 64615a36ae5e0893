"""
Relay configuration.

Values are resolved once at startup, highest priority first: command-line
overrides, environment variables, the ``key = value`` config file, then
built-in defaults. A missing vendor id or endpoint URL is a ConfigError.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from barcode_relay.core.config_manager import get_config_manager
from barcode_relay.core.devices.types import ProductSelector
from barcode_relay.core.logging_utils import get_module_logger
from barcode_relay.core.paths import CONFIG_PATH, DEVICE_SNAPSHOT_FILE, QUEUE_FILE, RELAY_LOG_FILE

logger = get_module_logger("RelayConfig")

# Config file key -> environment variable
ENV_KEYS = {
    "vendor_id": "VENDOR_ID",
    "product": "PRODUCT",
    "endpoint_url": "ENDPOINT_URL",
    "log_level": "LOG_LEVEL",
    "queue_file": "QUEUE_FILE",
}

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


class ConfigError(Exception):
    """Startup configuration is missing or invalid."""


def parse_vendor_id(value: Union[str, int, None]) -> int:
    """Parse a USB vendor id given as decimal or ``0x`` hex."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigError("Vendor id is required (VENDOR_ID or vendor_id in config)")

    if isinstance(value, int):
        vendor_id = value
    else:
        try:
            vendor_id = int(value.strip(), 0)
        except ValueError:
            raise ConfigError(f"Invalid vendor id: {value!r}") from None

    if not 0 < vendor_id <= 0xFFFF:
        raise ConfigError(f"Vendor id out of range: {value!r}")
    return vendor_id


def parse_usage_page(value: Optional[str]) -> Optional[int]:
    if value is None or not value.strip():
        return None
    try:
        return int(value.strip(), 0)
    except ValueError:
        raise ConfigError(f"Invalid usage page: {value!r}") from None


def _validate_url(url: Optional[str]) -> str:
    if not url:
        raise ConfigError("Endpoint URL is required (ENDPOINT_URL or endpoint_url in config)")
    if not url.startswith(("http://", "https://")):
        raise ConfigError(f"Endpoint URL must be http(s): {url!r}")
    return url


@dataclass(frozen=True)
class RelayConfig:
    vendor_id: int
    product: ProductSelector
    endpoint_url: str
    poll_interval: float = 1.0
    flush_timeout: float = 0.1
    max_buffer: int = 16 * 1024
    request_timeout: float = 5.0
    max_retries: int = 3
    circuit_cooldown: float = 60.0
    idle_interval: float = 0.5
    queue_path: Path = QUEUE_FILE
    snapshot_path: Path = DEVICE_SNAPSHOT_FILE
    log_level: str = "info"
    log_file: Path = RELAY_LOG_FILE
    console: bool = True


def _merge_sources(
    overrides: Mapping[str, Any],
    env: Mapping[str, str],
    file_values: Mapping[str, str],
) -> Dict[str, str]:
    merged: Dict[str, str] = dict(file_values)
    for key, env_key in ENV_KEYS.items():
        value = env.get(env_key)
        if value:
            merged[key] = value
    for key, value in overrides.items():
        if value is not None:
            merged[key] = str(value)
    return merged


def load_config(
    overrides: Optional[Mapping[str, Any]] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
    config_path: Path = CONFIG_PATH,
) -> RelayConfig:
    """Resolve the relay configuration.

    Args:
        overrides: Values from the command line, keyed like the config file;
            ``None`` values are ignored
        env: Environment mapping (defaults to ``os.environ``)
        config_path: ``key = value`` file; a missing file is not an error

    Raises:
        ConfigError: vendor id or endpoint URL missing/invalid
    """
    config_manager = get_config_manager()
    file_values = config_manager.read_config(Path(config_path))
    values = _merge_sources(overrides or {}, os.environ if env is None else env, file_values)

    vendor_id = parse_vendor_id(values.get("vendor_id"))
    endpoint_url = _validate_url(values.get("endpoint_url"))
    product = ProductSelector.parse(
        values.get("product"),
        usage_page=parse_usage_page(values.get("usage_page")),
    )

    log_level = values.get("log_level", "info").strip().lower()
    if log_level not in LOG_LEVELS:
        logger.warning("Unknown log level %r, using info", log_level)
        log_level = "info"

    defaults = RelayConfig(vendor_id=vendor_id, product=product, endpoint_url=endpoint_url)
    queue_file = config_manager.get_str(values, "queue_file", default=None)
    snapshot_file = config_manager.get_str(values, "snapshot_file", default=None)
    log_file = config_manager.get_str(values, "log_file", default=None)

    config = RelayConfig(
        vendor_id=vendor_id,
        product=product,
        endpoint_url=endpoint_url,
        poll_interval=config_manager.get_float(values, "poll_interval", defaults.poll_interval),
        flush_timeout=config_manager.get_float(values, "flush_timeout", defaults.flush_timeout),
        max_buffer=config_manager.get_int(values, "max_buffer", defaults.max_buffer),
        request_timeout=config_manager.get_float(values, "request_timeout", defaults.request_timeout),
        max_retries=config_manager.get_int(values, "max_retries", defaults.max_retries),
        circuit_cooldown=config_manager.get_float(values, "circuit_cooldown", defaults.circuit_cooldown),
        idle_interval=config_manager.get_float(values, "idle_interval", defaults.idle_interval),
        queue_path=Path(queue_file).expanduser() if queue_file else defaults.queue_path,
        snapshot_path=Path(snapshot_file).expanduser() if snapshot_file else defaults.snapshot_path,
        log_level=log_level,
        log_file=Path(log_file).expanduser() if log_file else defaults.log_file,
        console=config_manager.get_bool(values, "console", defaults.console),
    )

    if config.max_retries < 1:
        raise ConfigError(f"max_retries must be at least 1, got {config.max_retries}")
    if config.poll_interval <= 0:
        raise ConfigError(f"poll_interval must be positive, got {config.poll_interval}")
    return config


__all__ = [
    "ConfigError",
    "ENV_KEYS",
    "RelayConfig",
    "load_config",
    "parse_usage_page",
    "parse_vendor_id",
]
