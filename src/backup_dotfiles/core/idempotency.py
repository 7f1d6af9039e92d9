"""
Idempotency telemetry for mutating operations.

The wrappers fingerprint a path before and after an operation and log
whether anything changed. They never skip the operation, and a failure to
capture state never fails the call.
"""

import logging
from pathlib import Path
from typing import Callable, TypeVar

from backup_dotfiles.core.fingerprint import (
    directory_states_equal,
    fingerprint_directory,
    fingerprint_file,
    states_equal,
)
from backup_dotfiles.core.models import DirectoryState, FileState
from backup_dotfiles.utils.exceptions import FingerprintError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _capture_file(path: Path, phase: str) -> FileState | None:
    try:
        return fingerprint_file(path)
    except FingerprintError as e:
        logger.debug(f"Could not get {phase} file state: {e}", extra={"path": str(path)})
        return None


def _capture_directory(path: Path, recursive: bool, phase: str) -> DirectoryState | None:
    try:
        return fingerprint_directory(path, recursive=recursive)
    except FingerprintError as e:
        logger.debug(f"Could not get {phase} directory state: {e}", extra={"path": str(path)})
        return None


def with_idempotency_check(path: Path | str, operation: Callable[[], T]) -> T:
    """
    Run ``operation`` and log whether it changed the file at ``path``.

    Args:
        path: File the operation targets
        operation: Zero-argument callable performing the change

    Returns:
        Whatever ``operation`` returns

    Raises:
        Exception: Anything raised by ``operation``, unchanged
    """
    path = Path(path)
    before = _capture_file(path, "initial")

    result = operation()

    after = _capture_file(path, "final")
    if before is None or after is None:
        return result

    equal = states_equal(before, after)
    logger.debug(
        f"File operation completed: {path}",
        extra={
            "path": str(path),
            "states_equal": equal,
            "before_exists": before.exists,
            "after_exists": after.exists,
            "before_size": before.size,
            "after_size": after.size,
            "before_symlink": before.is_symlink,
            "after_symlink": after.is_symlink,
        },
    )
    if equal:
        logger.info(
            f"File operation was idempotent - no changes made: {path}",
            extra={"path": str(path), "states_equal": True},
        )
    return result


def with_directory_idempotency_check(
    path: Path | str, recursive: bool, operation: Callable[[], T]
) -> T:
    """
    Run ``operation`` and log whether it changed the directory at ``path``.

    Args:
        path: Directory the operation targets
        recursive: Fingerprint the whole tree rather than immediate children
        operation: Zero-argument callable performing the change

    Returns:
        Whatever ``operation`` returns
    """
    path = Path(path)
    before = _capture_directory(path, recursive, "initial")

    result = operation()

    after = _capture_directory(path, recursive, "final")
    if before is None or after is None:
        return result

    equal = directory_states_equal(before, after)
    logger.debug(
        f"Directory operation completed: {path}",
        extra={
            "path": str(path),
            "states_equal": equal,
            "before_exists": before.exists,
            "after_exists": after.exists,
            "before_file_count": before.file_count,
            "after_file_count": after.file_count,
        },
    )
    if equal:
        logger.info(
            f"Directory operation was idempotent - no changes made: {path}",
            extra={"path": str(path), "states_equal": True},
        )
    return result
