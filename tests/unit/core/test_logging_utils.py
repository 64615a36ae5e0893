"""Unit tests for logging helpers and configuration."""

import logging

import pytest

from barcode_relay.core import logging_config
from barcode_relay.core.logging_config import coerce_level, configure_logging
from barcode_relay.core.logging_utils import (
    StructuredLogger,
    ensure_structured_logger,
    get_module_logger,
)


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    configured = logging_config._configured
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    logging_config._configured = configured


class TestStructuredLogger:

    def test_module_logger_namespace(self):
        logger = get_module_logger("DeviceWatcher")
        assert logger.name == "barcode_relay.DeviceWatcher"
        assert logger.component == "DeviceWatcher"

    def test_messages_are_prefixed(self, caplog):
        logger = get_module_logger("QueueStore")
        with caplog.at_level(logging.INFO, logger="barcode_relay.QueueStore"):
            logger.info("Loaded %d event(s)", 3)
        assert caplog.messages == ["[QueueStore] Loaded 3 event(s)"]

    def test_bad_format_args_do_not_raise(self, caplog):
        logger = get_module_logger("Test")
        with caplog.at_level(logging.INFO, logger="barcode_relay.Test"):
            logger.info("value %d", "not-a-number")
        assert "args=not-a-number" in caplog.messages[0]

    def test_ensure_structured_logger(self):
        plain = logging.getLogger("barcode_relay.Plain")
        wrapped = ensure_structured_logger(plain)
        assert isinstance(wrapped, StructuredLogger)
        assert wrapped.component == "Plain"
        assert ensure_structured_logger(wrapped) is wrapped
        assert ensure_structured_logger(None, fallback_name="asyncio").name == "barcode_relay.asyncio"


class TestConfigureLogging:

    def test_coerce_level(self):
        assert coerce_level("debug") == logging.DEBUG
        assert coerce_level(logging.WARNING) == logging.WARNING
        with pytest.raises(ValueError):
            coerce_level("chatty")

    def test_file_handler_and_suppression(self, tmp_path, restore_root_logging):
        log_file = tmp_path / "logs" / "relay.log"

        configure_logging(
            "debug",
            force=True,
            console=False,
            log_file=log_file,
            suppressed_loggers=("aiohttp.access",),
        )
        get_module_logger("Test").debug("hello file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("aiohttp.access").level == logging.ERROR
        assert "[Test] hello file" in log_file.read_text(encoding="utf-8")

    def test_reconfigure_only_changes_level(self, restore_root_logging):
        configure_logging("info", force=True, console=True)
        handlers = list(logging.getLogger().handlers)

        configure_logging("warning")

        assert logging.getLogger().handlers == handlers
        assert logging.getLogger().level == logging.WARNING
