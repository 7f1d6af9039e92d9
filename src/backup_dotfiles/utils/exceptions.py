"""
Custom exceptions for the backup system.

Provides specific exception types for different error scenarios.
"""

from pathlib import Path
from typing import Any


class ConfigurationError(Exception):
    """Raised when configuration is invalid."""

    pass


class BackupError(Exception):
    """Base exception for backup operations."""

    pass


class BackupIOError(BackupError):
    """Raised when a filesystem step of a backup fails."""

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        self.path = Path(path) if path is not None else None
        if self.path is not None:
            message = f"{message} (path={self.path})"
        super().__init__(message)


class RetentionError(BackupError):
    """
    Raised when retention policy enforcement fails.

    The backup that triggered enforcement already exists when this is raised;
    ``result`` holds it so callers can treat the failure as cleanup debt.
    """

    def __init__(self, message: str, result: Any = None) -> None:
        super().__init__(message)
        self.result = result


class FingerprintError(Exception):
    """Raised when a file or directory state cannot be captured."""

    pass


class PathNotFoundError(FingerprintError, FileNotFoundError):
    """Raised when the fingerprinted path does not exist."""

    pass


class RestoreError(Exception):
    """Base exception for restore operations."""

    pass


class ValidationError(RestoreError):
    """Raised when a restored or stored backup fails its checksum."""

    pass
