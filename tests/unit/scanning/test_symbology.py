"""Unit tests for symbology detection and validate_barcode."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from barcode_relay.core.scanning.checksums import CODE128_START_B, CODE128_START_C, build_code128_frame
from barcode_relay.core.scanning.symbology import (
    UNSUPPORTED_FORMAT_ERROR,
    Symbology,
    detect_symbology,
    strip_aim_prefix,
    validate_barcode,
)


class TestDetection:
    """Test classification order."""

    def test_aim_prefix_selects_code128_subset(self):
        detection = detect_symbology("]C1123456")
        assert detection.symbology is Symbology.CODE128_C
        assert detection.aim_prefix == "]C1"
        assert detection.payload == "123456"

    def test_other_aim_letter_is_code128_other(self):
        detection = detect_symbology("]E08410376012699d")
        assert detection.symbology is Symbology.CODE128_OTHER
        assert detection.symbology.is_code128

    def test_framed_payload_classified_by_start_code(self):
        detection = detect_symbology(build_code128_frame(CODE128_START_C, "1234"))
        assert detection.symbology is Symbology.CODE128_C
        assert detection.framed

    @pytest.mark.parametrize("line,expected", [
        ("4006381333931", Symbology.EAN_13),
        ("036000291452", Symbology.UPC_A),
        ("01234565", Symbology.UPC_E),
        ("96385074", Symbology.EAN_8),
        ("01234567", Symbology.EAN_8),
        ("123456", Symbology.CODE128_C),
        ("ABC-123", Symbology.CODE128_A),
        ("abc123", Symbology.CODE128_B),
        ("héllo", Symbology.UNKNOWN),
    ])
    def test_rule_order(self, line, expected):
        assert detect_symbology(line).symbology is expected

    def test_strip_aim_prefix_without_prefix(self):
        assert strip_aim_prefix("4006381333931") == (None, "4006381333931")


class TestValidateBarcode:
    """Test the validator boundary."""

    def test_valid_ean13(self):
        result = validate_barcode("4006381333931")
        assert result.symbology is Symbology.EAN_13
        assert result.valid is True
        assert result.error is None

    def test_ean13_bad_check_digit(self):
        result = validate_barcode("4006381333932")
        assert result.symbology is Symbology.EAN_13
        assert result.valid is False
        assert result.error == "Check digit mismatch: expected 1, got 2"

    def test_valid_upca(self):
        result = validate_barcode("036000291452")
        assert result.symbology is Symbology.UPC_A
        assert result.valid

    def test_upce_is_tried_before_ean8(self):
        result = validate_barcode("01234565")
        assert result.symbology is Symbology.UPC_E
        assert result.valid

    def test_eight_digits_failing_upce_fall_back_to_ean8(self):
        result = validate_barcode("01234567")
        assert result.symbology is Symbology.EAN_8
        assert result.valid is False
        assert "expected 5" in result.error

    def test_aim_prefixed_code128(self):
        result = validate_barcode("]E08410376012699d")
        assert result.symbology.is_code128
        assert result.valid
        assert result.barcode == "]E08410376012699d"

    def test_aim_prefixed_subset_c_with_letters_is_invalid(self):
        result = validate_barcode("]C1ABC")
        assert result.symbology is Symbology.CODE128_C
        assert result.valid is False
        assert "even number of digits" in result.error

    def test_aim_prefix_with_empty_payload(self):
        result = validate_barcode("]C1")
        assert result.valid is False
        assert result.error == "Empty Code128 payload"

    def test_framed_code128_checksum(self):
        line = "]E0" + build_code128_frame(CODE128_START_B, "8410376012699")
        result = validate_barcode(line)
        assert result.symbology.is_code128
        assert result.valid

    def test_framed_code128_checksum_mismatch(self):
        frame = build_code128_frame(CODE128_START_B, "8410376012699")
        tampered = frame[0] + "8410376012698" + frame[-2:]
        result = validate_barcode(tampered)
        assert result.symbology is Symbology.CODE128_B
        assert result.valid is False
        assert result.error == "Code128 MOD-103 checksum mismatch"

    def test_unknown_format(self):
        result = validate_barcode("héllo")
        assert result.symbology is Symbology.UNKNOWN
        assert result.valid is False
        assert result.error == UNSUPPORTED_FORMAT_ERROR

    def test_empty_line(self):
        result = validate_barcode("")
        assert result.symbology is Symbology.UNKNOWN
        assert result.valid is False
        assert result.error == "Empty barcode"

    def test_unexpected_errors_do_not_escape(self):
        with patch(
            "barcode_relay.core.scanning.symbology._evaluate",
            side_effect=RuntimeError("boom"),
        ):
            result = validate_barcode("4006381333931")
        assert result.valid is False
        assert result.error == "Internal validation failure: boom"

    def test_timestamp_override(self):
        now = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
        result = validate_barcode("4006381333931", now=now)
        assert result.timestamp == now.isoformat()


class TestPayload:
    """Test the collector payload shape."""

    def test_valid_payload_has_no_error_key(self):
        now = datetime(2024, 5, 1, tzinfo=timezone.utc)
        payload = validate_barcode("4006381333931", now=now).to_payload()
        assert payload == {
            "barcode": "4006381333931",
            "simbology": "EAN-13",
            "valid": True,
            "ts": now.isoformat(),
        }

    def test_invalid_payload_carries_error(self):
        payload = validate_barcode("4006381333932").to_payload()
        assert payload["valid"] is False
        assert payload["error"].startswith("Check digit mismatch")

    def test_result_is_immutable(self):
        result = validate_barcode("4006381333931")
        with pytest.raises(AttributeError):
            result.valid = False
