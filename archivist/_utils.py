import logging
import os
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

logger = logging.getLogger("archivist")

LOG_FORMAT = "%(asctime)s - [%(name)s] - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _remove_handlers() -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def setup_logging(
    log_dir: Optional[Path] = None,
    level: int = logging.INFO,
    retention_days: int = 90,
) -> logging.Logger:
    """Attach console and rotating file handlers to the package logger.

    The logger does not propagate so output stays the same regardless of
    how the host process configured the root logger.

    Args:
        log_dir: Directory for ``backup.log``. Console only when None.
        level: Minimum level for both handlers.
        retention_days: Number of rotated daily log files to keep.

    Returns:
        The configured package logger.
    """
    logger.setLevel(level)
    logger.propagate = False
    _remove_handlers()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            log_dir / "backup.log",
            when="midnight",
            backupCount=retention_days,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Escape hatch for hosts that want to own the handlers
    if os.getenv("DISABLE_APP_LOGGING", "false").lower() == "true":
        _remove_handlers()
        logger.propagate = True

    return logger


def format_bytes(size: float) -> str:
    """Format a byte count as a human readable string (e.g. ``1.5 MB``)."""
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while size >= 1024 and i < len(units) - 1:
        size /= 1024
        i += 1
    return f"{round(size, 2)} {units[i]}"
