"""Unit tests for relay configuration loading."""

from pathlib import Path

import pytest

from barcode_relay.core.relay_config import (
    ConfigError,
    load_config,
    parse_usage_page,
    parse_vendor_id,
)

URL = "http://collector.local/events"


@pytest.fixture
def config_file(tmp_path):
    def _write(text):
        path = tmp_path / "config.txt"
        path.write_text(text, encoding="utf-8")
        return path
    return _write


@pytest.fixture
def missing_file(tmp_path):
    return tmp_path / "absent.txt"


class TestParsing:

    @pytest.mark.parametrize("raw,expected", [
        ("1504", 1504),
        ("0x05e0", 0x05E0),
        (" 0X05E0 ", 0x05E0),
        (0x05E0, 0x05E0),
    ])
    def test_vendor_id_formats(self, raw, expected):
        assert parse_vendor_id(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "  ", "scanner", "0x10000", "0", -1])
    def test_vendor_id_rejected(self, raw):
        with pytest.raises(ConfigError):
            parse_vendor_id(raw)

    def test_usage_page(self):
        assert parse_usage_page(None) is None
        assert parse_usage_page("0x8c") == 0x8C
        with pytest.raises(ConfigError):
            parse_usage_page("page")


class TestLoadConfig:

    def test_from_file(self, config_file):
        path = config_file(
            "# relay settings\n"
            "vendor_id = 0x05e0\n"
            "product = \"Symbol Bar Code Scanner\"\n"
            f"endpoint_url = {URL}\n"
            "max_retries = 5\n"
            "poll_interval = 0.25\n"
        )

        config = load_config(env={}, config_path=path)

        assert config.vendor_id == 0x05E0
        assert config.product.product_name == "Symbol Bar Code Scanner"
        assert config.endpoint_url == URL
        assert config.max_retries == 5
        assert config.poll_interval == 0.25
        assert config.request_timeout == 5.0
        assert config.circuit_cooldown == 60.0

    def test_env_overrides_file(self, config_file):
        path = config_file(f"vendor_id = 0x05e0\nendpoint_url = {URL}\n")

        config = load_config(
            env={"VENDOR_ID": "0x0c2e", "ENDPOINT_URL": "https://other.example/events"},
            config_path=path,
        )

        assert config.vendor_id == 0x0C2E
        assert config.endpoint_url == "https://other.example/events"

    def test_overrides_beat_env(self, missing_file):
        config = load_config(
            {"vendor_id": "0x1234", "product": None},
            env={"VENDOR_ID": "0x05e0", "ENDPOINT_URL": URL, "PRODUCT": "0x1200"},
            config_path=missing_file,
        )

        assert config.vendor_id == 0x1234
        # None overrides are ignored
        assert config.product.product_id == 0x1200

    def test_empty_env_values_are_ignored(self, config_file):
        path = config_file(f"vendor_id = 0x05e0\nendpoint_url = {URL}\n")
        config = load_config(env={"VENDOR_ID": ""}, config_path=path)
        assert config.vendor_id == 0x05E0

    def test_queue_file_from_env(self, missing_file, tmp_path):
        queue_file = tmp_path / "q.json"
        config = load_config(
            env={"VENDOR_ID": "1504", "ENDPOINT_URL": URL, "QUEUE_FILE": str(queue_file)},
            config_path=missing_file,
        )
        assert config.queue_path == Path(queue_file)

    def test_missing_vendor_id(self, missing_file):
        with pytest.raises(ConfigError, match="Vendor id"):
            load_config(env={"ENDPOINT_URL": URL}, config_path=missing_file)

    def test_missing_endpoint(self, missing_file):
        with pytest.raises(ConfigError, match="Endpoint URL"):
            load_config(env={"VENDOR_ID": "1504"}, config_path=missing_file)

    def test_non_http_endpoint(self, missing_file):
        with pytest.raises(ConfigError):
            load_config(env={"VENDOR_ID": "1504", "ENDPOINT_URL": "ftp://x/y"}, config_path=missing_file)

    def test_unknown_log_level_falls_back_to_info(self, missing_file):
        config = load_config(
            env={"VENDOR_ID": "1504", "ENDPOINT_URL": URL, "LOG_LEVEL": "chatty"},
            config_path=missing_file,
        )
        assert config.log_level == "info"

    def test_log_level_is_normalized(self, missing_file):
        config = load_config(
            env={"VENDOR_ID": "1504", "ENDPOINT_URL": URL, "LOG_LEVEL": "DEBUG"},
            config_path=missing_file,
        )
        assert config.log_level == "debug"

    def test_invalid_numbers_use_defaults(self, config_file):
        path = config_file(f"vendor_id = 1504\nendpoint_url = {URL}\nrequest_timeout = soon\n")
        assert load_config(env={}, config_path=path).request_timeout == 5.0

    def test_zero_retries_rejected(self, config_file):
        path = config_file(f"vendor_id = 1504\nendpoint_url = {URL}\nmax_retries = 0\n")
        with pytest.raises(ConfigError):
            load_config(env={}, config_path=path)

    def test_non_positive_poll_interval_rejected(self, config_file):
        path = config_file(f"vendor_id = 1504\nendpoint_url = {URL}\npoll_interval = 0\n")
        with pytest.raises(ConfigError):
            load_config(env={}, config_path=path)

    def test_usage_page_override(self, missing_file):
        config = load_config(
            {"usage_page": "0x8c"},
            env={"VENDOR_ID": "1504", "ENDPOINT_URL": URL},
            config_path=missing_file,
        )
        assert config.product.usage_page == 0x8C

    def test_console_from_file(self, config_file):
        path = config_file(f"vendor_id = 1504\nendpoint_url = {URL}\nconsole = no\n")
        assert load_config(env={}, config_path=path).console is False

    def test_console_override_beats_file(self, config_file):
        path = config_file(f"vendor_id = 1504\nendpoint_url = {URL}\nconsole = off\n")
        assert load_config({"console": True}, env={}, config_path=path).console is True
