"""
Unit tests for rentdesk/logging_config.py.

Tests configure_logging (idempotency, dir creation, level, handler type)
and log_call (entry/exit/reject/failure logging, re-raise, argument rendering).
"""

import logging
import logging.handlers
import os
from unittest.mock import MagicMock, patch

import pytest

from rentdesk.errors import ValidationError, ERROR_TENANT_NAME_REQUIRED
from rentdesk.logging_config import configure_logging, log_call


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _clear_rentdesk_logger():
    """Close and remove all handlers from the rentdesk logger."""
    logger = logging.getLogger("rentdesk")
    for h in logger.handlers[:]:
        h.close()
        logger.removeHandler(h)
    logger.setLevel(logging.NOTSET)


def _patched_paths(log_dir):
    return (
        patch("rentdesk.logging_config._LOG_DIR", log_dir),
        patch("rentdesk.logging_config._LOG_FILE", log_dir / "rentdesk.log"),
    )


@pytest.fixture
def mock_logger():
    logger = MagicMock()
    with patch("rentdesk.logging_config.logging") as mock_logging:
        mock_logging.getLogger.return_value = logger
        yield logger


# ---------------------------------------------------------------------------
# configure_logging
# ---------------------------------------------------------------------------

class TestConfigureLogging:

    def setup_method(self):
        _clear_rentdesk_logger()

    def teardown_method(self):
        _clear_rentdesk_logger()

    def test_returns_rentdesk_logger(self, tmp_path):
        dir_patch, file_patch = _patched_paths(tmp_path)
        with dir_patch, file_patch:
            result = configure_logging()
        assert isinstance(result, logging.Logger)
        assert result.name == "rentdesk"

    def test_creates_log_dir_if_missing(self, tmp_path):
        log_dir = tmp_path / "logs"
        dir_patch, file_patch = _patched_paths(log_dir)
        with dir_patch, file_patch:
            configure_logging()
        assert log_dir.exists()

    def test_adds_rotating_file_handler(self, tmp_path):
        dir_patch, file_patch = _patched_paths(tmp_path)
        with dir_patch, file_patch:
            configure_logging()
        handlers = logging.getLogger("rentdesk").handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.handlers.RotatingFileHandler)
        assert handlers[0].maxBytes == 5 * 1024 * 1024
        assert handlers[0].backupCount == 3

    def test_idempotent_does_not_add_duplicate_handlers(self, tmp_path):
        dir_patch, file_patch = _patched_paths(tmp_path)
        with dir_patch, file_patch:
            configure_logging()
            configure_logging()
        assert len(logging.getLogger("rentdesk").handlers) == 1

    def test_default_level_is_info(self, tmp_path):
        env = {k: v for k, v in os.environ.items() if k != "LOG_LEVEL"}
        dir_patch, file_patch = _patched_paths(tmp_path)
        with patch.dict(os.environ, env, clear=True), dir_patch, file_patch:
            configure_logging()
        assert logging.getLogger("rentdesk").level == logging.INFO

    def test_respects_log_level_debug(self, tmp_path):
        dir_patch, file_patch = _patched_paths(tmp_path)
        with patch.dict(os.environ, {"LOG_LEVEL": "debug"}), dir_patch, file_patch:
            configure_logging()
        assert logging.getLogger("rentdesk").level == logging.DEBUG

    def test_invalid_log_level_falls_back_to_info(self, tmp_path):
        dir_patch, file_patch = _patched_paths(tmp_path)
        with patch.dict(os.environ, {"LOG_LEVEL": "BOGUS"}), dir_patch, file_patch:
            configure_logging()
        assert logging.getLogger("rentdesk").level == logging.INFO


# ---------------------------------------------------------------------------
# log_call decorator
# ---------------------------------------------------------------------------

class TestLogCall:

    def test_passes_return_value_through(self):
        @log_call
        def add(a, b):
            return a + b

        assert add(2, 3) == 5

    def test_preserves_function_name(self):
        @log_call
        def my_func():
            pass

        assert my_func.__name__ == "my_func"

    def test_logs_call_on_entry_with_args(self, mock_logger):
        @log_call
        def func(x, y=10):
            return x + y

        func(1, y=99)

        msg = mock_logger.debug.call_args[0][0]
        assert "CALL" in msg
        assert "func" in msg
        assert "1" in msg
        assert "y=99" in msg

    def test_bytes_arguments_are_logged_as_size(self, mock_logger):
        @log_call
        def upload(content):
            pass

        upload(b"%PDF-1.7" * 100)

        msg = mock_logger.debug.call_args[0][0]
        assert "<800 bytes>" in msg
        assert "PDF" not in msg

    def test_long_arguments_are_truncated(self, mock_logger):
        @log_call
        def func(text):
            pass

        func("x" * 500)

        msg = mock_logger.debug.call_args[0][0]
        assert "x" * 500 not in msg
        assert "…" in msg

    def test_logs_ok_with_timing_on_success(self, mock_logger):
        @log_call
        def noop():
            pass

        noop()

        mock_logger.info.assert_called_once()
        msg = mock_logger.info.call_args[0][0]
        assert "OK" in msg
        assert "noop" in msg
        assert "ms" in msg

    def test_logs_reject_as_warning_for_coded_errors(self, mock_logger):
        @log_call
        def provision():
            raise ValidationError(ERROR_TENANT_NAME_REQUIRED, "Tenant name is required")

        with pytest.raises(ValidationError):
            provision()

        mock_logger.warning.assert_called_once()
        mock_logger.error.assert_not_called()
        msg = mock_logger.warning.call_args[0][0]
        assert "REJECT" in msg
        assert ERROR_TENANT_NAME_REQUIRED in msg

    def test_logs_fail_as_error_for_unexpected_exceptions(self, mock_logger):
        @log_call
        def boom():
            raise ValueError("bad input")

        with pytest.raises(ValueError, match="bad input"):
            boom()

        mock_logger.error.assert_called_once()
        msg = mock_logger.error.call_args[0][0]
        assert "FAIL" in msg
        assert "ValueError" in msg
        assert "bad input" in msg
        mock_logger.info.assert_not_called()
