"""
Logging configuration for ytm-stream.

Outputs (file outputs only when a log directory is configured):
    - stderr: colored level, short logger name, message
    - log_full_*.log: every record, DEBUG and up
    - log_errors_*.log: ERROR and CRITICAL only
    - playability_failures_*.log: video IDs every client identity rejected
    - cipher_fallbacks_*.log: runs that computed signatures with the
      static fallback transform (degraded mode)

The two report files are fed by tagged records: a record only reaches
a report when it carries that report's trigger attribute, which the
log_playability_failure() and log_cipher_fallback() helpers attach.

Usage:
    from ytm_stream.core.logger import setup_logging, get_logger

    setup_logging(config.logging.directory, config.logging.level)
    logger = get_logger(__name__)
    logger.info("Relay server listening")
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO


FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
RUN_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

# Report file prefixes (run timestamp and .log are appended)
PLAYABILITY_FAILURES_PREFIX = "playability_failures"
CIPHER_FALLBACKS_PREFIX = "cipher_fallbacks"


class Colors:
    """ANSI escapes used by the console formatter."""
    RESET = "\033[0m"
    DIM = "\033[2m"
    BOLD = "\033[1m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    MAGENTA = "\033[35m"


class ColoredConsoleFormatter(logging.Formatter):
    """
    Compact console format: "LEVEL   component: message".

    The component is the last segment of the logger name
    ('ytm_stream.stream.proxy' -> 'proxy'). DEBUG lines are dimmed so
    relay chatter stays readable next to warnings.
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.DIM,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.MAGENTA,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        component = record.name.rsplit(".", 1)[-1]
        line = f"{color}{record.levelname:<8}{Colors.RESET}{component}: {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ReportFileHandler(logging.Handler):
    """
    Appends tagged records to a dedicated report file.

    Records without the TRIGGER attribute are ignored. Subclasses set
    TRIGGER and render entries in format_entry().

    Attributes:
        report_path: Where the report is written.
        report_file: Open handle, or None before open() / after close().
    """

    TRIGGER = ""

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """Create (or truncate) the report file. setup_logging() calls this."""
        self.report_file = self.report_path.open("w", encoding="utf-8")

    def format_entry(self, record: logging.LogRecord) -> str:
        raise NotImplementedError

    def emit(self, record: logging.LogRecord) -> None:
        if self.report_file is None or not hasattr(record, self.TRIGGER):
            return

        try:
            entry = self.format_entry(record)
            with self.lock:
                self.report_file.write(entry)
                self.report_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        """Close the report file. Idempotent."""
        report_file, self.report_file = self.report_file, None
        if report_file is not None:
            try:
                report_file.close()
            except OSError:
                pass
        super().close()


class PlayabilityFailureHandler(ReportFileHandler):
    """
    Captures videos that no client identity could play.

    Entry format in playability_failures_*.log:

        dQw4w9WgXcQ [UNPLAYABLE]
        Tried: TV_EMBEDDED, ANDROID, IOS, ANDROID_MUSIC, WEB_REMIX
        Reason: Video unavailable

    Record attributes:
        - 'playability_video_id': The rejected video ID (trigger)
        - 'playability_status': Last playabilityStatus.status (optional)
        - 'playability_attempts': Identity keys tried, in order
        - 'playability_reason': Last rejection reason
    """

    TRIGGER = "playability_video_id"

    def format_entry(self, record: logging.LogRecord) -> str:
        video_id = getattr(record, "playability_video_id", "")
        status = getattr(record, "playability_status", None) or "no status"
        attempts = getattr(record, "playability_attempts", [])
        reason = getattr(record, "playability_reason", "")
        return (
            f"{video_id} [{status}]\n"
            f"Tried: {', '.join(attempts)}\n"
            f"Reason: {reason}\n\n"
        )


class CipherFallbackHandler(ReportFileHandler):
    """
    Captures cipher pipelines that were not derived from the player asset.

    Every entry marks a run where signatures were computed with the
    static fallback transform and stream URLs may be rejected upstream.

        2024-01-01 12:00:00 https://www.youtube.com/s/player/abc/base.js
        Error: signature function not found in player asset

    Record attributes:
        - 'cipher_degraded': Always True (trigger)
        - 'cipher_asset_url': URL of the player asset that was parsed
        - 'cipher_error': Why derivation failed
    """

    TRIGGER = "cipher_degraded"

    def format_entry(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created).strftime(FILE_DATE_FORMAT)
        asset_url = getattr(record, "cipher_asset_url", "")
        error = getattr(record, "cipher_error", "")
        return f"{created} {asset_url}\nError: {error}\n\n"


class ErrorOnlyFilter(logging.Filter):
    """Passes ERROR and CRITICAL records; used by the errors file."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def _file_handler(path: Path, formatter: logging.Formatter) -> logging.FileHandler:
    handler = logging.FileHandler(path, mode="w", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_dir: Path | None = None, level: str = "INFO") -> None:
    """
    Install the application's handlers on the root logger.

    Call once at startup, after the configuration is loaded. Calling it
    again replaces the previous handlers.

    Args:
        log_dir: Directory for the per-run log and report files (created
                 if missing). None keeps output on the console only.
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               File outputs always receive DEBUG and up.

    Not thread-safe; run it before the event loop starts.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
        existing.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(getattr(logging, level.upper(), logging.INFO))
    console.setFormatter(ColoredConsoleFormatter())
    root_logger.addHandler(console)

    # aiohttp's access log is noisy at INFO for a streaming relay
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

    if log_dir is None:
        return

    log_dir.mkdir(parents=True, exist_ok=True)
    run = datetime.now().strftime(RUN_TIMESTAMP_FORMAT)
    formatter = logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT)

    root_logger.addHandler(_file_handler(log_dir / f"log_full_{run}.log", formatter))

    errors = _file_handler(log_dir / f"log_errors_{run}.log", formatter)
    errors.addFilter(ErrorOnlyFilter())
    root_logger.addHandler(errors)

    for report_class, prefix in (
        (PlayabilityFailureHandler, PLAYABILITY_FAILURES_PREFIX),
        (CipherFallbackHandler, CIPHER_FALLBACKS_PREFIX),
    ):
        report = report_class(log_dir / f"{prefix}_{run}.log")
        report.open()
        root_logger.addHandler(report)


def get_logger(name: str) -> logging.Logger:
    """Module logger; pass __name__ so names follow the package tree."""
    return logging.getLogger(name)


def log_playability_failure(
    logger: logging.Logger,
    video_id: str,
    reason: str,
    status: str | None,
    attempts: list[str]
) -> None:
    """
    Log a video that every client identity refused to play.

    Emitted at ERROR with the attributes PlayabilityFailureHandler
    reads, so the video also lands in the playability report.

    Args:
        logger: Logger of the calling module.
        video_id: The rejected video ID.
        reason: Last rejection reason seen.
        status: Last playabilityStatus.status seen, if any.
        attempts: Identity keys tried, in priority order.
    """
    logger.error(
        f"No client identity could play {video_id}: {reason}",
        extra={
            "playability_video_id": video_id,
            "playability_status": status,
            "playability_attempts": list(attempts),
            "playability_reason": reason,
        }
    )


def log_cipher_fallback(logger: logging.Logger, asset_url: str, error: str) -> None:
    """
    Log that the static fallback cipher pipeline is in use.

    Emitted at WARNING with the attributes CipherFallbackHandler reads.
    Signatures computed in this mode are best-effort.

    Example:
        log_cipher_fallback(
            logger,
            asset_url="https://www.youtube.com/s/player/abc/base.js",
            error="signature function not found in player asset"
        )
    """
    logger.warning(
        f"Cipher derivation failed, using fallback pipeline (degraded): {error}",
        extra={
            "cipher_degraded": True,
            "cipher_asset_url": asset_url,
            "cipher_error": error,
        }
    )


def shutdown_logging() -> None:
    """Flush, close and detach every root handler. Call at exit."""
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        try:
            handler.flush()
            handler.close()
        except (OSError, ValueError):
            pass
        root_logger.removeHandler(handler)
