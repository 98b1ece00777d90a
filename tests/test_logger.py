"""Test logging setup and report files"""

import logging

import pytest

from ytm_stream.core.logger import (
    ErrorOnlyFilter,
    get_logger,
    log_cipher_fallback,
    log_playability_failure,
    setup_logging,
    shutdown_logging,
)


@pytest.fixture
def isolated_root_logger():
    """Restore the root logger's handlers and level after the test"""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    for handler in handlers:
        root.removeHandler(handler)
    yield root
    shutdown_logging()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def read_single(directory, pattern):
    matches = list(directory.glob(pattern))
    assert len(matches) == 1
    return matches[0].read_text(encoding="utf-8")


class TestSetupLogging:
    """Test setup_logging() and the report handlers"""

    def test_console_only(self, isolated_root_logger, tmp_path):
        setup_logging(None, "WARNING")

        assert len(isolated_root_logger.handlers) == 1
        assert isolated_root_logger.handlers[0].level == logging.WARNING
        assert list(tmp_path.iterdir()) == []

    def test_log_files(self, isolated_root_logger, tmp_path):
        """Every file handler is created in the log directory"""
        log_dir = tmp_path / "logs"
        setup_logging(log_dir)

        logger = get_logger("ytm_stream.test")
        logger.debug("debug detail")
        logger.error("something broke")
        shutdown_logging()

        full = read_single(log_dir, "log_full_*.log")
        errors = read_single(log_dir, "log_errors_*.log")
        assert "debug detail" in full
        assert "something broke" in full
        assert "something broke" in errors
        assert "debug detail" not in errors

    def test_playability_report(self, isolated_root_logger, tmp_path):
        setup_logging(tmp_path)

        log_playability_failure(
            get_logger("ytm_stream.test"),
            "dQw4w9WgXcQ",
            "Video unavailable",
            "UNPLAYABLE",
            ["TV_EMBEDDED", "ANDROID"],
        )
        get_logger("ytm_stream.test").error("unrelated error")
        shutdown_logging()

        report = read_single(tmp_path, "playability_failures_*.log")
        assert report == (
            "dQw4w9WgXcQ [UNPLAYABLE]\n"
            "Tried: TV_EMBEDDED, ANDROID\n"
            "Reason: Video unavailable\n\n"
        )

    def test_cipher_fallback_report(self, isolated_root_logger, tmp_path):
        setup_logging(tmp_path)

        log_cipher_fallback(
            get_logger("ytm_stream.test"),
            "https://www.youtube.com/s/player/abc/base.js",
            "signature function not found in player asset",
        )
        get_logger("ytm_stream.test").warning("unrelated warning")
        shutdown_logging()

        report = read_single(tmp_path, "cipher_fallbacks_*.log")
        assert "https://www.youtube.com/s/player/abc/base.js" in report
        assert "Error: signature function not found in player asset" in report
        assert "unrelated" not in report

    def test_error_only_filter(self):
        error_filter = ErrorOnlyFilter()
        warning = logging.LogRecord("x", logging.WARNING, __file__, 1, "w", None, None)
        error = logging.LogRecord("x", logging.ERROR, __file__, 1, "e", None, None)

        assert not error_filter.filter(warning)
        assert error_filter.filter(error)
