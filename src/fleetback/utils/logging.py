"""
Logging configuration for fleetback.

Console output goes through Rich; an optional file handler writes either a
plain line format or one JSON object per line (see observability.structured_logging).
"""

import logging
import sys
import threading
from pathlib import Path
from typing import Any

from rich.logging import RichHandler


class FileFormatter(logging.Formatter):
    """Formatter for file logs - clean and parseable."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        """Format log record, appending kind/host when the record carries them."""
        result = super().format(record)

        tags = [f"{key}={getattr(record, key)}" for key in ("kind", "host", "path") if getattr(record, key, None)]
        if tags:
            result += " [" + " ".join(tags) + "]"

        return result


# Map string level names to logging constants
LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _parse_level(level: str | int) -> int:
    """
    Parse logging level from string or int.

    Args:
        level: Logging level as string (DEBUG, INFO, etc.) or int

    Returns:
        Logging level constant
    """
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        level_upper = level.upper()
        if level_upper in LEVEL_MAP:
            return LEVEL_MAP[level_upper]
    # Default to INFO if invalid
    return logging.INFO


def setup_logging(
    level: str | int = logging.INFO,
    log_file: str | Path | None = None,
    json_format: bool = False,
    file_mode: str = "a",
    console_enabled: bool = True,
    use_rich: bool = True,
) -> logging.Logger:
    """
    Setup logging configuration for fleetback.

    Args:
        level: Logging level as string (DEBUG, INFO, etc.) or int (default: INFO)
        log_file: Optional file path to write logs to (default: None, console only)
        json_format: Write the file log as JSON lines instead of plain text
        file_mode: File mode for file handler - 'a' for append, 'w' for overwrite (default: 'a')
        console_enabled: Whether to enable console logging (default: True)
        use_rich: Whether to use RichHandler for console output (default: True)

    Returns:
        Logger instance
    """
    global _logging_setup_done

    logger = logging.getLogger("fleetback")

    # Remove existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    level_int = _parse_level(level)
    logger.setLevel(level_int)

    if console_enabled:
        if use_rich:
            logger.addHandler(
                RichHandler(
                    level=level_int,
                    show_time=True,
                    show_path=False,
                    markup=False,
                    rich_tracebacks=True,
                    log_time_format="[%X]",
                )
            )
        else:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(level_int)
            console_handler.setFormatter(FileFormatter())
            logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode=file_mode)
        file_handler.setLevel(logging.DEBUG)
        if json_format:
            from fleetback.observability.structured_logging import StructuredFormatter

            file_handler.setFormatter(StructuredFormatter())
        else:
            file_handler.setFormatter(FileFormatter())
        logger.addHandler(file_handler)

    _logging_setup_done = True
    return logger


def setup_logging_from_config(config: Any, *, console_enabled: bool = True) -> logging.Logger:
    """
    Setup logging from a loaded GlobalConfig.

    Args:
        config: GlobalConfig instance
        console_enabled: Whether to log to the console as well

    Returns:
        Logger instance
    """
    return setup_logging(
        level=config.log_level,
        log_file=config.log_file,
        json_format=config.log_format == "json",
        console_enabled=console_enabled,
    )


# Track if logging has been set up to avoid duplicate setup
_logging_setup_done = False
_logging_setup_lock = threading.Lock()


def _auto_setup_logging() -> None:
    """Install a console handler if nobody called setup_logging() yet."""
    global _logging_setup_done

    if _logging_setup_done:
        return

    with _logging_setup_lock:
        if _logging_setup_done:
            return
        fleetback_logger = logging.getLogger("fleetback")
        if not fleetback_logger.handlers:
            setup_logging()
        _logging_setup_done = True


def get_logger(name: str = "fleetback") -> logging.Logger:
    """
    Get a logger instance.

    Automatically sets up console logging if not already configured.

    Args:
        name: Logger name (default: "fleetback")

    Returns:
        Logger instance
    """
    _auto_setup_logging()

    logger = logging.getLogger(name)
    logger.propagate = True
    return logger
