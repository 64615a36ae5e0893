"""Unit tests for the relay command-line entry point."""

import asyncio
import json
from unittest.mock import patch

import pytest

from barcode_relay.app import master as relay_main
from barcode_relay.app.master import EXIT_CONFIG, EXIT_FAILURE, EXIT_OK, list_devices, parse_args
from barcode_relay.core.delivery.queue_store import DurableQueue, QueueStoreError
from barcode_relay.core.devices.hid_transport import DeviceError
from barcode_relay.core.devices.types import ProductSelector
from barcode_relay.core.relay_config import RelayConfig
from tests.infrastructure.helpers import wait_until
from tests.infrastructure.mocks.hid_mocks import SCANNER_VENDOR_ID, FakeHidTransport, make_descriptor


def _relay_config(tmp_path):
    return RelayConfig(
        vendor_id=SCANNER_VENDOR_ID,
        product=ProductSelector(),
        endpoint_url="http://collector.local/events",
        poll_interval=0.05,
        idle_interval=0.01,
        queue_path=tmp_path / "queue.json",
        snapshot_path=tmp_path / "devices.json",
        log_file=tmp_path / "relay.log",
    )


@pytest.fixture
def no_relay_env(monkeypatch):
    for key in ("VENDOR_ID", "PRODUCT", "ENDPOINT_URL", "LOG_LEVEL", "QUEUE_FILE"):
        monkeypatch.delenv(key, raising=False)


class TestParseArgs:

    def test_defaults_leave_overrides_unset(self):
        args = parse_args([])
        overrides = relay_main._overrides_from_args(args)
        assert all(value is None for value in overrides.values())
        assert args.console_output is None
        assert args.list_devices is False

    def test_overrides(self):
        args = parse_args([
            "--vendor-id", "0x05e0",
            "--product", "Symbol Bar Code Scanner",
            "--endpoint-url", "http://collector.local/events",
            "--poll-interval", "0.5",
            "--log-level", "debug",
            "--no-console",
        ])
        overrides = relay_main._overrides_from_args(args)
        assert overrides["vendor_id"] == "0x05e0"
        assert overrides["product"] == "Symbol Bar Code Scanner"
        assert overrides["poll_interval"] == 0.5
        assert overrides["log_level"] == "debug"
        assert overrides["console"] is False

    def test_rejects_unknown_log_level(self):
        with pytest.raises(SystemExit):
            parse_args(["--log-level", "chatty"])


class TestListDevices:

    @pytest.mark.asyncio
    async def test_prints_matching_devices(self, capsys):
        transport = FakeHidTransport([
            make_descriptor(),
            make_descriptor(vendor_id=0x046D, product="Keyboard", path="/dev/hidraw2"),
        ])

        status = await list_devices(SCANNER_VENDOR_ID, transport=transport)

        assert status == EXIT_OK
        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 1
        record = json.loads(lines[0])
        assert record["vendor_id"] == SCANNER_VENDOR_ID
        assert record["serial_number"] == "S/N 0001"

    @pytest.mark.asyncio
    async def test_all_devices_without_vendor(self, capsys):
        transport = FakeHidTransport([
            make_descriptor(),
            make_descriptor(vendor_id=0x046D, path="/dev/hidraw2"),
        ])
        assert await list_devices(None, transport=transport) == EXIT_OK
        assert len(capsys.readouterr().out.strip().splitlines()) == 2

    @pytest.mark.asyncio
    async def test_nothing_found(self):
        assert await list_devices(SCANNER_VENDOR_ID, transport=FakeHidTransport([])) == EXIT_FAILURE

    @pytest.mark.asyncio
    async def test_enumeration_error(self):
        transport = FakeHidTransport([make_descriptor()])
        transport.enumerate_error = DeviceError("hid unavailable")
        assert await list_devices(SCANNER_VENDOR_ID, transport=transport) == EXIT_FAILURE


class TestMain:

    @pytest.mark.asyncio
    async def test_missing_vendor_is_config_error(self, tmp_path, no_relay_env):
        with patch("barcode_relay.app.master.configure_logging"):
            status = await relay_main.main([
                "--config", str(tmp_path / "missing.txt"),
                "--endpoint-url", "http://collector.local/events",
            ])
        assert status == EXIT_CONFIG

    @pytest.mark.asyncio
    async def test_bad_vendor_for_listing_is_config_error(self, tmp_path, no_relay_env):
        with patch("barcode_relay.app.master.configure_logging"):
            status = await relay_main.main([
                "--config", str(tmp_path / "missing.txt"),
                "--list-devices",
                "--vendor-id", "scanner",
            ])
        assert status == EXIT_CONFIG

    @pytest.mark.asyncio
    async def test_list_devices_uses_configured_vendor(self, tmp_path, no_relay_env):
        config_path = tmp_path / "config.txt"
        config_path.write_text("vendor_id = 0x05e0\n", encoding="utf-8")

        with patch("barcode_relay.app.master.configure_logging"), \
                patch("barcode_relay.app.master.list_devices", return_value=EXIT_OK) as listing:
            status = await relay_main.main(["--config", str(config_path), "--list-devices"])

        assert status == EXIT_OK
        listing.assert_awaited_once_with(0x05E0)

    @pytest.mark.asyncio
    async def test_unopenable_queue_is_retried_until_stop(self, tmp_path):
        config = _relay_config(tmp_path)
        stop_event = asyncio.Event()

        with patch.object(DurableQueue, "open", side_effect=QueueStoreError("disk unavailable")) as opener:
            task = asyncio.create_task(relay_main.run_relay(config, stop_event))
            assert await wait_until(lambda: opener.await_count >= 3)
            assert not task.done()
            stop_event.set()
            status = await asyncio.wait_for(task, timeout=2.0)

        assert status == EXIT_OK

    @pytest.mark.asyncio
    async def test_relay_starts_once_queue_becomes_readable(self, tmp_path, fake_transport):
        # A directory where the queue file should be cannot be read
        config = _relay_config(tmp_path)
        config.queue_path.mkdir()
        stop_event = asyncio.Event()

        with patch("barcode_relay.core.devices.device_watcher.HidapiTransport", return_value=fake_transport):
            task = asyncio.create_task(relay_main.run_relay(config, stop_event))
            await asyncio.sleep(0.1)
            assert not fake_transport.handles

            config.queue_path.rmdir()
            try:
                assert await wait_until(lambda: fake_transport.handles)
            finally:
                stop_event.set()
                status = await asyncio.wait_for(task, timeout=5.0)

        assert status == EXIT_OK

    def test_run_returns_status(self):
        with patch("barcode_relay.app.master.main", return_value=EXIT_CONFIG):
            assert relay_main.run(["--vendor-id", "x"]) == EXIT_CONFIG
