"""
Symbology detection and validation for scanned lines.

``validate_barcode`` is the single entry point: it classifies a ScanLine,
runs the matching structural/checksum rule and always returns exactly one
``ValidationResult``. Nothing raises past it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from barcode_relay.core.logging_utils import get_module_logger

from .checksums import (
    CODE128_START_A,
    CODE128_START_B,
    CODE128_START_C,
    BarcodeValidationError,
    code128_symbol_value,
    has_valid_code128_checksum,
    has_valid_mod10,
    has_valid_upce_checksum,
    is_code128_framed,
    is_code128a_text,
    is_code128b_text,
    is_code128c_text,
    mod10_check_digit,
)

logger = get_module_logger("Symbology")

UNSUPPORTED_FORMAT_ERROR = "Unsupported or unrecognized barcode format"

# AIM symbology identifier: "]" + code letter + optional modifier digit
_AIM_PREFIX = re.compile(r"^\]([A-Za-z])(\d?)")


class Symbology(str, Enum):
    CODE128_A = "Code128-A"
    CODE128_B = "Code128-B"
    CODE128_C = "Code128-C"
    CODE128_OTHER = "Code128-Other"
    EAN_13 = "EAN-13"
    EAN_8 = "EAN-8"
    UPC_A = "UPC-A"
    UPC_E = "UPC-E"
    UNKNOWN = "UNKNOWN"

    @property
    def is_code128(self) -> bool:
        return self in _CODE128_FAMILY


_CODE128_FAMILY = frozenset({
    Symbology.CODE128_A,
    Symbology.CODE128_B,
    Symbology.CODE128_C,
    Symbology.CODE128_OTHER,
})

_AIM_CODES = {
    "A": Symbology.CODE128_A,
    "B": Symbology.CODE128_B,
    "C": Symbology.CODE128_C,
}

_START_CODES = {
    CODE128_START_A: Symbology.CODE128_A,
    CODE128_START_B: Symbology.CODE128_B,
    CODE128_START_C: Symbology.CODE128_C,
}


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one scan line."""
    barcode: str
    symbology: Symbology
    valid: bool
    timestamp: str
    error: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """JSON body posted to the collector."""
        payload: Dict[str, Any] = {
            "barcode": self.barcode,
            "simbology": self.symbology.value,
            "valid": self.valid,
            "ts": self.timestamp,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class Detection:
    """Classification of a line plus the payload the rule applies to."""
    symbology: Symbology
    payload: str
    aim_prefix: Optional[str] = None
    framed: bool = False


def strip_aim_prefix(line: str) -> Tuple[Optional[str], str]:
    """Split ``line`` into (AIM identifier, remaining payload)."""
    match = _AIM_PREFIX.match(line)
    if not match:
        return None, line
    return match.group(0), line[match.end():]


def detect_symbology(line: str) -> Detection:
    """Classify ``line``. First matching rule wins."""
    aim_prefix, payload = strip_aim_prefix(line)
    framed = is_code128_framed(payload)

    if aim_prefix is not None:
        code = aim_prefix[1].upper()
        symbology = _AIM_CODES.get(code, Symbology.CODE128_OTHER)
        return Detection(symbology, payload, aim_prefix=aim_prefix, framed=framed)

    if framed:
        start_value = code128_symbol_value(line[0])
        return Detection(_START_CODES[start_value], line, framed=True)

    numeric = line.isascii() and line.isdigit()
    length = len(line)

    if numeric and length == 13:
        return Detection(Symbology.EAN_13, line)

    if numeric and length == 12:
        return Detection(Symbology.UPC_A, line)

    if numeric and length == 8:
        if line[0] in "01" and has_valid_upce_checksum(line):
            return Detection(Symbology.UPC_E, line)
        return Detection(Symbology.EAN_8, line)

    if numeric and length % 2 == 0:
        return Detection(Symbology.CODE128_C, line)

    if is_code128a_text(line):
        return Detection(Symbology.CODE128_A, line)

    if is_code128b_text(line):
        return Detection(Symbology.CODE128_B, line)

    return Detection(Symbology.UNKNOWN, line)


def _check_mod10(code: str) -> Tuple[bool, Optional[str]]:
    if has_valid_mod10(code):
        return True, None
    expected = mod10_check_digit(code[:-1])
    return False, f"Check digit mismatch: expected {expected}, got {code[-1]}"


def _check_code128(detection: Detection) -> Tuple[bool, Optional[str]]:
    payload = detection.payload
    if not payload:
        return False, "Empty Code128 payload"

    if detection.framed:
        if has_valid_code128_checksum(payload):
            return True, None
        return False, "Code128 MOD-103 checksum mismatch"

    symbology = detection.symbology
    if symbology is Symbology.CODE128_A:
        ok = is_code128a_text(payload)
        window = "ASCII 32-95"
    elif symbology is Symbology.CODE128_C:
        ok = is_code128c_text(payload)
        window = "an even number of digits"
    else:
        ok = is_code128b_text(payload)
        window = "ASCII 32-126"

    if ok:
        return True, None
    return False, f"{symbology.value} payload must be {window}"


def _evaluate(detection: Detection) -> Tuple[bool, Optional[str]]:
    symbology = detection.symbology

    if symbology in (Symbology.EAN_13, Symbology.EAN_8, Symbology.UPC_A):
        return _check_mod10(detection.payload)

    if symbology is Symbology.UPC_E:
        if has_valid_upce_checksum(detection.payload):
            return True, None
        return False, "UPC-E check digit mismatch"

    if symbology.is_code128:
        return _check_code128(detection)

    raise BarcodeValidationError(UNSUPPORTED_FORMAT_ERROR)


def _timestamp(now: Optional[datetime]) -> str:
    moment = now or datetime.now(timezone.utc)
    return moment.isoformat()


def validate_barcode(line: str, *, now: Optional[datetime] = None) -> ValidationResult:
    """Classify and validate one scan line.

    Args:
        line: cleaned ScanLine from the framer
        now: timestamp override (defaults to the current UTC time)

    Returns:
        Exactly one ValidationResult; failures are reported in ``error``.
    """
    symbology = Symbology.UNKNOWN
    valid = False
    error: Optional[str] = None

    try:
        if not line:
            raise BarcodeValidationError("Empty barcode")
        detection = detect_symbology(line)
        symbology = detection.symbology
        valid, error = _evaluate(detection)
    except BarcodeValidationError as exc:
        valid = False
        error = str(exc)
        logger.warning("Validation error for barcode %r: %s", line, error)
    except Exception as exc:
        valid = False
        error = f"Internal validation failure: {exc}"
        logger.exception("Unexpected error validating barcode %r", line)

    return ValidationResult(
        barcode=line,
        symbology=symbology,
        valid=valid,
        timestamp=_timestamp(now),
        error=error,
    )


__all__ = [
    "Detection",
    "Symbology",
    "UNSUPPORTED_FORMAT_ERROR",
    "ValidationResult",
    "detect_symbology",
    "strip_aim_prefix",
    "validate_barcode",
]
