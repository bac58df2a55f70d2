"""Logging configuration for gravedigger.

Each replication run writes its own session log file
(replication_YYYYMMDD_HHMMSS.log) in the configured log directory, mirrors
output to the console, and appends ERROR and CRITICAL records to a
size-rotated errors.log whose rotations are gzip-compressed.
"""

import getpass
import gzip
import logging
import os
import platform
import shutil
from datetime import datetime, timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Callable, Optional

from gravedigger.config import LoggingConfig, VALID_LOG_LEVELS, normalize_log_level


# Logger name for the gravedigger package
LOGGER_NAME = "gravedigger"

SESSION_LOG_PREFIX = "replication_"
SESSION_LOG_GLOB = "replication_*.log"
ERROR_LOG_NAME = "errors.log"

# Default rotation settings
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_BACKUP_COUNT = 5

BANNER = "=" * 51


class LoggingError(Exception):
    """Raised when logging setup fails."""
    pass


class GzipRotatingFileHandler(RotatingFileHandler):
    """
    Rotating file handler that compresses rotated files with gzip.

    Rotated files are named with a .gz extension.
    """

    def rotation_filename(self, default_name: str) -> str:
        return default_name + ".gz"

    def rotate(self, source: str, dest: str) -> None:
        """
        Compress the source file into dest and remove the source.

        Falls back to a plain rename if compression fails.
        """
        if not os.path.exists(source):
            return

        try:
            with open(source, 'rb') as f_in:
                with gzip.open(dest, 'wb') as f_out:
                    shutil.copyfileobj(f_in, f_out)
            os.remove(source)
        except OSError:
            if os.path.exists(source):
                fallback_dest = dest[:-3] if dest.endswith('.gz') else dest
                try:
                    os.rename(source, fallback_dest)
                except OSError:
                    pass  # Best effort - don't fail logging


def _ensure_log_directory(log_dir: Path) -> None:
    """Ensure the log directory exists."""
    if not log_dir.exists():
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LoggingError(f"Failed to create log directory {log_dir}: {e}")


def get_log_level(level_str: str) -> int:
    """Convert a log level string to a logging constant."""
    level_str = normalize_log_level(level_str)
    if level_str not in VALID_LOG_LEVELS:
        raise LoggingError(
            f"Invalid log level '{level_str}'. Must be one of: "
            f"{', '.join(sorted(VALID_LOG_LEVELS))}"
        )
    return getattr(logging, level_str)


def resolve_log_dir(config: LoggingConfig) -> Path:
    """Return the configured log directory with ~ expanded."""
    return Path(os.path.expanduser(str(config.log_dir)))


def session_log_name(now: Optional[datetime] = None) -> str:
    """Return the file name for a session log started at `now`."""
    now = now or datetime.now()
    return f"{SESSION_LOG_PREFIX}{now.strftime('%Y%m%d_%H%M%S')}.log"


def setup_logging(
    config: LoggingConfig,
    now: Optional[datetime] = None,
) -> logging.Logger:
    """
    Configure logging for gravedigger.

    Sets up logging with:
    - A session log file in the log directory, at the configured level
    - A rotating errors.log for ERROR and above
    - Console output for immediate feedback

    Args:
        config: LoggingConfig with directory, level and rotation settings
        now: Timestamp used to name the session log (defaults to now)

    Returns:
        Configured logger instance. Use get_session_log_path() for the
        session log file.

    Raises:
        LoggingError: If the log directory cannot be created or level is invalid
    """
    log_dir = resolve_log_dir(config)
    _ensure_log_directory(log_dir)

    log_level = get_log_level(config.level)

    logger = logging.getLogger(LOGGER_NAME)

    # Clear any existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    logger.setLevel(logging.DEBUG)  # Allow all levels, handlers will filter

    detailed_formatter = logging.Formatter(
        "[%(asctime)s.%(msecs)03d] [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    session_log_path = log_dir / session_log_name(now)
    try:
        file_handler = logging.FileHandler(session_log_path, encoding="utf-8")
    except OSError as e:
        raise LoggingError(f"Failed to open session log {session_log_path}: {e}")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(detailed_formatter)
    logger.addHandler(file_handler)

    error_handler = GzipRotatingFileHandler(
        log_dir / ERROR_LOG_NAME,
        maxBytes=getattr(config, 'log_max_bytes', DEFAULT_MAX_BYTES),
        backupCount=getattr(config, 'log_backup_count', DEFAULT_BACKUP_COUNT),
        encoding="utf-8",
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(detailed_formatter)
    logger.addHandler(error_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(detailed_formatter)
    logger.addHandler(console_handler)

    return logger


def get_logger() -> logging.Logger:
    """
    Get the gravedigger logger instance.

    Returns:
        The gravedigger logger. If setup_logging hasn't been called,
        records propagate to the root logger's configuration.
    """
    return logging.getLogger(LOGGER_NAME)


def get_session_log_path(logger: Optional[logging.Logger] = None) -> Optional[Path]:
    """Return the session log file of a logger configured by setup_logging, or None."""
    logger = logger or get_logger()
    for handler in logger.handlers:
        # errors.log is a RotatingFileHandler, itself a FileHandler subclass
        if isinstance(handler, logging.FileHandler) and not isinstance(handler, RotatingFileHandler):
            return Path(handler.baseFilename)
    return None


def log_session_start(logger: logging.Logger, level: str) -> None:
    """Write the session header: level, timestamp, machine and user."""
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"

    logger.info("=== Gravedigger Replication Session Started ===")
    logger.info(f"Log Level: {level.upper()}")
    logger.info(f"Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info(f"Machine: {platform.node()}")
    logger.info(f"User: {user}")
    logger.info(BANNER)


def log_session_end(logger: logging.Logger, success: bool, summary: str) -> None:
    """Write the session footer with the run's outcome."""
    logger.info(BANNER)
    logger.info(f"Session Status: {'SUCCESS' if success else 'FAILURE'}")
    logger.info(f"Summary: {summary}")
    logger.info(f"End Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info("=== Gravedigger Replication Session Ended ===")


def cleanup_old_logs(
    log_dir: Path,
    retention_days: int,
    logger: Optional[logging.Logger] = None,
    now: Callable[[], datetime] = datetime.now,
) -> int:
    """
    Delete session log files older than the retention period.

    Age is judged by modification time. Failures are logged as a warning
    and never raised.

    Args:
        log_dir: Directory holding replication_*.log files
        retention_days: Files last written more than this many days ago are removed
        logger: Logger for progress and warnings (defaults to get_logger())
        now: Clock used to compute the cutoff

    Returns:
        Number of log files deleted
    """
    logger = logger or get_logger()
    cutoff = (now() - timedelta(days=retention_days)).timestamp()
    deleted = 0

    try:
        for log_file in Path(log_dir).glob(SESSION_LOG_GLOB):
            if log_file.stat().st_mtime < cutoff:
                log_file.unlink()
                deleted += 1
    except OSError as e:
        logger.warning(f"Failed to cleanup old logs: {e}")
        return deleted

    if deleted > 0:
        logger.info(f"Cleaned up {deleted} old log file(s)")
    return deleted
