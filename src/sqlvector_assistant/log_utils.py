"""
Logging Utilities

Provides consistent formatted logging with colored tags and timestamps.

Format: HH:MM:SS AM/PM | Tag Name          |  Message

Console lines go to stderr so the streamed answer on stdout stays clean.
Thread-safe: uses a lock to prevent interleaved writes.
"""

import logging
import sys
import threading
from datetime import datetime
from typing import Optional

# ANSI color codes
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
CYAN = "\033[96m"
RESET = "\033[0m"

# Tag column width for alignment (longest tag "Context Retriever" = 17, +1 = 18)
TAG_WIDTH = 18

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_log_lock = threading.Lock()
_file_logger = logging.getLogger("sqlvector_assistant.console")


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure the standard library logging tree for the assistant.

    Module loggers propagate to the root handler on stderr; when log_file is
    set, every record (including tagged console lines) is also appended there.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())

    for handler in list(root.handlers):
        root.removeHandler(handler)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
    # Tagged console lines are printed directly; keep them out of stderr twice
    stream_handler.addFilter(lambda record: record.name != _file_logger.name)
    root.addHandler(stream_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
        root.addHandler(file_handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def log_message(
    tag: str,
    message: str,
    color: str = GREEN,
    level: str = "INFO",
) -> None:
    """
    Print a formatted log message to stderr and forward it to the log file.

    Args:
        tag: The tag to display (e.g., "Context Retriever")
        message: The log message
        color: ANSI color code for the tag (default: GREEN)
        level: Log level for file output (DEBUG, INFO, WARNING, ERROR)
    """
    numeric_level = logging.getLevelName(level)
    if isinstance(numeric_level, int) and not logging.getLogger().isEnabledFor(numeric_level):
        return

    timestamp = datetime.now().strftime("%I:%M:%S %p")
    padded_tag = tag[:TAG_WIDTH].ljust(TAG_WIDTH)
    console_msg = f"{timestamp} {color}| {padded_tag}|{RESET}  {message}"

    with _log_lock:
        print(console_msg, file=sys.stderr, flush=True)
        _file_logger.log(
            numeric_level if isinstance(numeric_level, int) else logging.INFO,
            f"{padded_tag}|  {message}",
        )


def log_info(tag: str, message: str) -> None:
    """Log an info message with its tag in cyan."""
    log_message(tag, message, CYAN, "INFO")


def log_warning(tag: str, message: str) -> None:
    """Log a warning message in yellow."""
    log_message(tag, message, YELLOW, "WARNING")


def log_error(tag: str, message: str) -> None:
    """Log an error message in red."""
    log_message(tag, message, RED, "ERROR")


def log_debug(tag: str, message: str) -> None:
    """Log a debug message (no color)."""
    log_message(tag, message, RESET, "DEBUG")
