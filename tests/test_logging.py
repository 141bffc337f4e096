"""
Unit tests for logging configuration and setup.

Tests setup_logging levels, stream selection, file handlers and edge cases.
"""

import logging
import os
import sys
import tempfile
from unittest.mock import patch

import pytest

from main import setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Keep handler changes from leaking into other tests."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


class TestSetupLogging:
    """Test setup_logging function."""

    def test_basic_logging_config(self):
        """Test basic logging configuration with defaults."""
        config = {
            "logging": {
                "level": "INFO",
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            }
        }

        setup_logging(config)

        assert logging.getLogger().level == logging.INFO
        stream_handlers = [h for h in logging.getLogger().handlers if isinstance(h, logging.StreamHandler)]
        assert len(stream_handlers) >= 1

    def test_debug_level(self):
        """Test that level names are case-insensitive."""
        setup_logging({"logging": {"level": "debug"}})
        assert logging.getLogger().level == logging.DEBUG

    def test_invalid_log_level_defaults_to_info(self):
        """Test that invalid log level defaults to INFO."""
        config = {
            "logging": {
                "level": "INVALID_LEVEL"
            }
        }

        with patch('main.logger') as mock_logger:
            setup_logging(config)
            mock_logger.warning.assert_called()

        assert logging.getLogger().level == logging.INFO

    def test_missing_logging_config_uses_defaults(self):
        """Test that missing logging config uses defaults."""
        setup_logging({})
        assert logging.getLogger().level == logging.INFO

    def test_custom_format(self):
        """Test that the configured format reaches the handler."""
        setup_logging({"logging": {"level": "INFO", "format": "%(levelname)s - %(message)s"}})
        handler = logging.getLogger().handlers[0]
        assert handler.formatter._fmt == "%(levelname)s - %(message)s"

    def test_stderr_stream(self):
        """Test that output can be sent to stderr."""
        setup_logging({"logging": {"level": "INFO", "stream": "stderr"}})
        handler = logging.getLogger().handlers[0]
        assert handler.stream is sys.stderr

    def test_file_logging_enabled(self):
        """Test file logging is enabled when a log file is specified."""
        with tempfile.TemporaryDirectory() as tmpdir:
            log_file = os.path.join(tmpdir, "test.log")
            setup_logging({"logging": {"level": "INFO", "file": log_file}})

            file_handlers = [h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)]
            assert len(file_handlers) == 1
            assert os.path.exists(log_file)
            for handler in file_handlers:
                handler.close()

    def test_log_file_directory_creation(self):
        """Test that the log file directory is created if it doesn't exist."""
        with tempfile.TemporaryDirectory() as tmpdir:
            log_file = os.path.join(tmpdir, "subdir", "test.log")
            setup_logging({"logging": {"level": "INFO", "file": log_file}})

            assert os.path.exists(os.path.dirname(log_file))
            for handler in logging.getLogger().handlers:
                if isinstance(handler, logging.FileHandler):
                    handler.close()

    def test_unusable_log_path_raises(self):
        """Test that a log path that cannot be prepared is reported."""
        with patch('main.resolve_log_path', side_effect=PermissionError("denied")):
            with pytest.raises(RuntimeError) as exc_info:
                setup_logging({"logging": {"level": "INFO", "file": "logs/app.log"}})
        assert "Unable to prepare log file path" in str(exc_info.value)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
