"""Application entrypoints for the barcode relay."""

from .master import list_devices, main, parse_args, run

__all__ = ["list_devices", "main", "parse_args", "run"]
