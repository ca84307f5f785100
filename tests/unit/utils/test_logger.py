# SPDX-License-Identifier: Apache-2.0
"""
Unit tests for the logging setup.
"""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from utils.logger import SensitiveDataFilter, get_logger, set_log_level, setup_logging


@pytest.fixture
def tandem_logger():
    logger = logging.getLogger("tandem")
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


class TestSensitiveDataFilter:
    @pytest.mark.parametrize(
        "message, expected",
        [
            ("endpoint?api_key=abc123&x=1", "endpoint?api_key=***&x=1"),
            ("Authorization: Bearer sk-live-1", "Authorization: Bearer ***"),
            ("password=hunter2", "password=***"),
        ],
    )
    def test_masks_credentials(self, message, expected):
        assert SensitiveDataFilter.mask(message) == expected

    def test_filter_freezes_masked_message(self):
        record = logging.LogRecord("tandem", logging.INFO, __file__, 1, "token=%s", ("abc",), None)

        assert SensitiveDataFilter().filter(record) is True
        assert record.getMessage() == "token=***"

    def test_plain_messages_untouched(self):
        record = logging.LogRecord("tandem", logging.INFO, __file__, 1, "Chunk %d queued", (3,), None)

        SensitiveDataFilter().filter(record)

        assert record.args == (3,)


class TestSetupLogging:
    def test_writes_rotating_log_file(self, tmp_path, tandem_logger):
        setup_logging(str(tmp_path), level="DEBUG", console_output=False)

        get_logger("realtime.test").info("hello api_key=secret1")
        for handler in tandem_logger.handlers:
            handler.flush()

        content = (tmp_path / "tandem.log").read_text(encoding="utf-8")
        assert "hello api_key=***" in content
        assert "tandem.realtime.test" in content

    def test_repeated_setup_replaces_handlers(self, tmp_path, tandem_logger):
        setup_logging(str(tmp_path), console_output=True)
        setup_logging(str(tmp_path), console_output=True)

        assert len(tandem_logger.handlers) == 2

    def test_set_log_level(self, tmp_path, tandem_logger):
        setup_logging(str(tmp_path), level="INFO", console_output=False)

        set_log_level("warning")

        file_handler = next(h for h in tandem_logger.handlers if isinstance(h, RotatingFileHandler))
        assert file_handler.level == logging.WARNING

    def test_get_logger_prefixes_names(self):
        assert get_logger("sessions").name == "tandem.sessions"
        assert get_logger("tandem.events").name == "tandem.events"
