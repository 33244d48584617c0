"""Tests for structlog logging configuration."""

from __future__ import annotations

import logging
from unittest.mock import patch

import structlog

from mta_client.logging import configure_logging


class TestConfigureLogging:
    def test_console_format_default(self) -> None:
        with patch.dict("os.environ", {}, clear=False):
            configure_logging()
        log = structlog.get_logger()
        assert log is not None

    def test_json_format(self, capsys) -> None:
        with patch.dict("os.environ", {"LOG_FORMAT": "json", "LOG_LEVEL": "INFO"}):
            configure_logging()
        structlog.get_logger().info("json_probe", value=3)
        out = capsys.readouterr().out
        assert '"event": "json_probe"' in out
        assert '"value": 3' in out

    def test_log_level_debug(self) -> None:
        with patch.dict("os.environ", {"LOG_LEVEL": "DEBUG"}):
            configure_logging()
        assert logging.getLogger().level == logging.DEBUG

    def test_log_level_warning(self) -> None:
        with patch.dict("os.environ", {"LOG_LEVEL": "WARNING"}):
            configure_logging()
        assert logging.getLogger().level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self) -> None:
        with patch.dict("os.environ", {"LOG_LEVEL": "CHATTY"}):
            configure_logging()
        assert logging.getLogger().level == logging.INFO

    def test_noisy_libraries_silenced(self) -> None:
        configure_logging()
        assert logging.getLogger("asyncio").level == logging.WARNING
        assert logging.getLogger("google.protobuf").level == logging.WARNING

    def test_handler_writes_to_stdout(self) -> None:
        configure_logging()
        root = logging.getLogger()
        assert len(root.handlers) == 1
        handler = root.handlers[0]
        assert isinstance(handler, logging.StreamHandler)
