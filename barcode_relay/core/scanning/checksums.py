"""
Check-digit arithmetic for the supported linear symbologies.

Pure functions only. Everything here raises ``BarcodeValidationError`` on
malformed input; ``symbology.validate_barcode`` is the boundary that turns
those errors into invalid results.

MOD-10 (EAN/UPC):
    weights 3,1,3,1... starting from the rightmost data digit,
    check = (10 - sum % 10) % 10

UPC-E -> UPC-A expansion, keyed on the expansion digit ``e``
(``n`` number system, ``d1..d5`` payload digits, ``c`` check digit):

    e in 0-2:  n d1 d2 e  0 0 0 0 d3 d4 d5 c
    e == 3:    n d1 d2 d3 0 0 0 0 0  d4 d5 c
    e == 4:    n d1 d2 d3 d4 0 0 0 0 0  d5 c
    e in 5-9:  n d1 d2 d3 d4 d5 0 0 0 0  e c

MOD-103 (Code128):
    sum = start + value_1 * 1 + value_2 * 2 + ... + value_n * n
    check = sum % 103
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

MOD_10 = 10
MOD_103 = 103

CODE128_START_A = 103
CODE128_START_B = 104
CODE128_START_C = 105
CODE128_STOP = 106
CODE128_START_CODES = (CODE128_START_A, CODE128_START_B, CODE128_START_C)

ASCII_PRINTABLE_START = 32
ASCII_PRINTABLE_END = 126
CODE128_A_MAX = 95

# Common Code128 font encoding: values 95-106 are rendered as chr(195..206)
# and value 0 is sometimes rendered as chr(194) instead of a space.
_HIGH_GLYPH_OFFSET = 100
_HIGH_GLYPH_FIRST = 195
_HIGH_GLYPH_LAST = 206
_ALT_SPACE_GLYPH = 194


class BarcodeValidationError(Exception):
    """Raised when a barcode cannot be checked at all (wrong shape)."""


# =============================================================================
# MOD-10
# =============================================================================

def _require_digits(value: str, what: str) -> None:
    if not value or not value.isascii() or not value.isdigit():
        raise BarcodeValidationError(f"{what} must contain only digits")


def mod10_check_digit(data_digits: str) -> int:
    """Return the GS1 MOD-10 check digit for ``data_digits`` (no check digit)."""
    _require_digits(data_digits, "MOD-10 data")

    total = 0
    weight = 3
    for digit in reversed(data_digits):
        total += int(digit) * weight
        weight = 1 if weight == 3 else 3

    return (MOD_10 - total % MOD_10) % MOD_10


def has_valid_mod10(code: str) -> bool:
    """True if the final digit of ``code`` is its MOD-10 check digit."""
    _require_digits(code, "EAN/UPC code")
    if len(code) < 2:
        raise BarcodeValidationError("EAN/UPC code needs at least one data digit")
    return mod10_check_digit(code[:-1]) == int(code[-1])


# =============================================================================
# UPC-E
# =============================================================================

def expand_upce(upce: str) -> str:
    """Expand an 8-digit UPC-E code to its 12-digit UPC-A form.

    The UPC-E check digit is carried over unchanged as the UPC-A check digit.

    Raises:
        BarcodeValidationError: not exactly 8 digits, or number system not 0/1
    """
    if len(upce) != 8 or not upce.isascii() or not upce.isdigit():
        raise BarcodeValidationError("Invalid UPC-E code: must be exactly 8 digits")

    number_system, d1, d2, d3, d4, d5, expansion, check = upce
    if number_system not in "01":
        raise BarcodeValidationError("UPC-E must start with 0 or 1")

    if expansion in "012":
        body = f"{d1}{d2}{expansion}0000{d3}{d4}{d5}"
    elif expansion == "3":
        body = f"{d1}{d2}{d3}00000{d4}{d5}"
    elif expansion == "4":
        body = f"{d1}{d2}{d3}{d4}00000{d5}"
    else:
        body = f"{d1}{d2}{d3}{d4}{d5}0000{expansion}"

    return f"{number_system}{body}{check}"


def compress_upca(upca: str) -> Optional[str]:
    """Return the UPC-E form of a 12-digit UPC-A code, or None if it has none."""
    if len(upca) != 12 or not upca.isascii() or not upca.isdigit():
        raise BarcodeValidationError("Invalid UPC-A code: must be exactly 12 digits")

    number_system = upca[0]
    if number_system not in "01":
        return None

    manufacturer = upca[1:6]
    product = upca[6:11]
    check = upca[11]

    if manufacturer[2] in "012" and manufacturer[3:] == "00" and product[:2] == "00":
        body = manufacturer[:2] + product[2:] + manufacturer[2]
    elif manufacturer[3:] == "00" and product[:3] == "000":
        body = manufacturer[:3] + product[3:] + "3"
    elif manufacturer[4] == "0" and product[:4] == "0000":
        body = manufacturer[:4] + product[4] + "4"
    elif product[:4] == "0000" and product[4] in "56789":
        body = manufacturer + product[4]
    else:
        return None

    return f"{number_system}{body}{check}"


def has_valid_upce_checksum(upce: str) -> bool:
    """True if the UPC-E check digit matches the MOD-10 of its expansion."""
    expanded = expand_upce(upce)
    return mod10_check_digit(expanded[:-1]) == int(upce[-1])


# =============================================================================
# Code128 / MOD-103
# =============================================================================

def code128_symbol_value(char: str) -> int:
    """Map one Code128 glyph to its symbol value (0-106)."""
    code = ord(char)
    if ASCII_PRINTABLE_START <= code <= ASCII_PRINTABLE_END:
        return code - ASCII_PRINTABLE_START
    if _HIGH_GLYPH_FIRST <= code <= _HIGH_GLYPH_LAST:
        return code - _HIGH_GLYPH_OFFSET
    if code == _ALT_SPACE_GLYPH:
        return 0
    raise BarcodeValidationError(f"Character {char!r} is not a Code128 glyph")


def code128_symbol_char(value: int) -> str:
    """Inverse of ``code128_symbol_value`` using the canonical glyph for each value."""
    if 0 <= value <= ASCII_PRINTABLE_END - ASCII_PRINTABLE_START:
        return chr(value + ASCII_PRINTABLE_START)
    if _HIGH_GLYPH_FIRST - _HIGH_GLYPH_OFFSET <= value <= CODE128_STOP:
        return chr(value + _HIGH_GLYPH_OFFSET)
    raise BarcodeValidationError(f"Code128 symbol value out of range: {value}")


def code128_checksum(start_value: int, data_values: Sequence[int]) -> int:
    """MOD-103 check value for a start code followed by ``data_values``."""
    if start_value not in CODE128_START_CODES:
        raise BarcodeValidationError(f"Invalid Code128 start code: {start_value}")
    total = start_value
    for weight, value in enumerate(data_values, start=1):
        total += value * weight
    return total % MOD_103


def _safe_symbol_value(char: str) -> Optional[int]:
    try:
        return code128_symbol_value(char)
    except BarcodeValidationError:
        return None


def is_code128_framed(text: str) -> bool:
    """True if ``text`` carries raw Code128 start and stop symbols."""
    if len(text) < 3:
        return False
    return (
        _safe_symbol_value(text[0]) in CODE128_START_CODES
        and _safe_symbol_value(text[-1]) == CODE128_STOP
    )


def code128_data_values(start_value: int, data: str) -> List[int]:
    """Symbol values for the data portion of a framed Code128 payload.

    Subset C data is read as digit pairs (00-99); A and B data are glyphs.
    """
    if start_value == CODE128_START_C:
        if not data.isascii() or not data.isdigit() or len(data) % 2:
            raise BarcodeValidationError("Code128-C data must be an even number of digits")
        return [int(data[i:i + 2]) for i in range(0, len(data), 2)]
    return [code128_symbol_value(char) for char in data]


def split_code128_frame(text: str) -> Tuple[int, str, int]:
    """Split a framed payload into (start value, data text, declared check value)."""
    if not is_code128_framed(text):
        raise BarcodeValidationError("Payload does not carry Code128 start/stop framing")
    start_value = code128_symbol_value(text[0])
    declared = code128_symbol_value(text[-2])
    return start_value, text[1:-2], declared


def has_valid_code128_checksum(text: str) -> bool:
    """Validate the MOD-103 check symbol of a framed Code128 payload."""
    start_value, data, declared = split_code128_frame(text)
    values = code128_data_values(start_value, data)
    return code128_checksum(start_value, values) == declared


def build_code128_frame(start_value: int, data: str) -> str:
    """Wrap ``data`` in start, check and stop glyphs (used for test fixtures and tooling)."""
    values = code128_data_values(start_value, data)
    check = code128_checksum(start_value, values)
    return (
        code128_symbol_char(start_value)
        + data
        + code128_symbol_char(check)
        + code128_symbol_char(CODE128_STOP)
    )


# =============================================================================
# Range checks
# =============================================================================

def is_code128a_text(text: str) -> bool:
    """All characters within Code128-A's printable window (32-95)."""
    return bool(text) and all(
        ASCII_PRINTABLE_START <= ord(char) <= CODE128_A_MAX for char in text
    )


def is_code128b_text(text: str) -> bool:
    """All characters within Code128-B's printable window (32-126)."""
    return bool(text) and all(
        ASCII_PRINTABLE_START <= ord(char) <= ASCII_PRINTABLE_END for char in text
    )


def is_code128c_text(text: str) -> bool:
    """Numeric only, even length."""
    return bool(text) and text.isascii() and text.isdigit() and len(text) % 2 == 0


__all__ = [
    "BarcodeValidationError",
    "CODE128_START_A",
    "CODE128_START_B",
    "CODE128_START_C",
    "CODE128_STOP",
    "build_code128_frame",
    "code128_checksum",
    "code128_data_values",
    "code128_symbol_char",
    "code128_symbol_value",
    "compress_upca",
    "expand_upce",
    "has_valid_code128_checksum",
    "has_valid_mod10",
    "has_valid_upce_checksum",
    "is_code128_framed",
    "is_code128a_text",
    "is_code128b_text",
    "is_code128c_text",
    "mod10_check_digit",
    "split_code128_frame",
]
