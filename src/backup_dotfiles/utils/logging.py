"""
Structured logging configuration with JSON output.

Provides consistent logging format across the application.
"""

import functools
import json
import logging
import time
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, TypeVar

from backup_dotfiles.config.settings import Settings

F = TypeVar("F", bound=Callable[..., Any])

# Structured fields passed through ``extra=`` that the JSON formatter keeps
EXTRA_FIELDS = (
    "operation",
    "path",
    "source_path",
    "backup_path",
    "directory",
    "checksum",
    "file_size",
    "dry_run",
    "removed",
    "states_equal",
    "before_exists",
    "after_exists",
    "before_size",
    "after_size",
    "before_symlink",
    "after_symlink",
    "before_file_count",
    "after_file_count",
)


class JsonFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs log records as JSON objects with timestamp, level, logger, and message.
    """

    def __init__(self, service_name: str = "dotfiles-backup") -> None:
        """Initialize JSON formatter."""
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "service": self.service_name,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add exception info if present
        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        for name in EXTRA_FIELDS:
            if hasattr(record, name):
                log_obj[name] = getattr(record, name)

        return json.dumps(log_obj, default=str)


class TextFormatter(logging.Formatter):
    """
    Text formatter for human-readable logs.

    Simple text format for console output when JSON is not desired.
    """

    def __init__(self) -> None:
        """Initialize text formatter."""
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging(
    settings: Settings, use_json: bool = True, service_name: str = "dotfiles-backup"
) -> logging.Logger:
    """
    Configure application logging.

    Sets up console and file handlers with appropriate formatters.

    Args:
        settings: Application settings
        use_json: If True, use JSON formatter; otherwise use text formatter
        service_name: Service name for log identification

    Returns:
        Configured logger instance
    """
    level = getattr(logging, settings.logging.log_level)

    logger = logging.getLogger()
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = JsonFormatter(service_name) if use_json else TextFormatter()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    # File handler with rotation (if configured)
    if settings.logging.log_file:
        log_path = Path(settings.logging.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            filename=str(log_path),
            maxBytes=settings.logging.log_max_bytes,
            backupCount=settings.logging.log_backup_count,
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (typically __name__ from calling module)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def log_execution_time(func: F) -> F:
    """
    Decorator to log function execution time.

    Args:
        func: Function to decorate

    Returns:
        Wrapped function with execution time logging
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        """Execute function and log execution time."""
        logger = get_logger(func.__module__)
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed = time.perf_counter() - start
            logger.debug(f"{func.__name__} executed in {elapsed:.3f}s")

    return wrapper  # type: ignore[return-value]


def log_dry_run_operation(
    logger: logging.Logger, operation: str, path: Path | str, **details: Any
) -> None:
    """Log what would be done in dry-run mode."""
    extra = {"operation": operation, "path": str(path), "dry_run": True}
    extra.update({k: v for k, v in details.items() if k in EXTRA_FIELDS})
    logger.info(f"DRY RUN: Would perform {operation} on {path}", extra=extra)
