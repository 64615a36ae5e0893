"""Scan line framing and barcode validation."""

from .checksums import (
    BarcodeValidationError,
    compress_upca,
    expand_upce,
    has_valid_mod10,
    mod10_check_digit,
)
from .line_framer import LineFramer
from .symbology import (
    Symbology,
    ValidationResult,
    detect_symbology,
    validate_barcode,
)

__all__ = [
    "BarcodeValidationError",
    "LineFramer",
    "Symbology",
    "ValidationResult",
    "compress_upca",
    "detect_symbology",
    "expand_upce",
    "has_valid_mod10",
    "mod10_check_digit",
    "validate_barcode",
]
