"""
File and directory fingerprinting.

A fingerprint captures enough of a path's state (size, mode, content hash,
symlink target) to tell whether an operation changed it.
"""

import logging
import os
import stat
from pathlib import Path

from backup_dotfiles.core.models import DirectoryState, FileState
from backup_dotfiles.utils.checksum import calculate_sha256
from backup_dotfiles.utils.exceptions import FingerprintError, PathNotFoundError
from backup_dotfiles.utils.logging import log_execution_time

logger = logging.getLogger(__name__)


def fingerprint_file(path: Path | str) -> FileState:
    """
    Capture the state of a single path without following symlinks.

    Regular files are hashed with SHA-256. Symlinks record their target and
    are never hashed. Directories report size 0 and no hash.

    Args:
        path: File, symlink or directory to fingerprint

    Returns:
        FileState snapshot

    Raises:
        PathNotFoundError: If the path does not exist
        FingerprintError: If the path cannot be inspected
    """
    path = Path(path)
    try:
        info = os.lstat(path)
    except FileNotFoundError as e:
        raise PathNotFoundError(f"File does not exist: {path}") from e
    except OSError as e:
        raise FingerprintError(f"Failed to stat file {path}: {e}") from e

    is_symlink = stat.S_ISLNK(info.st_mode)
    symlink_target = ""
    content_hash = ""

    if is_symlink:
        try:
            symlink_target = os.readlink(path)
        except OSError as e:
            raise FingerprintError(f"Failed to read symlink target for {path}: {e}") from e
    elif stat.S_ISREG(info.st_mode):
        try:
            content_hash = calculate_sha256(path)
        except OSError as e:
            raise FingerprintError(f"Failed to calculate hash for {path}: {e}") from e

    return FileState(
        path=path,
        exists=True,
        size=0 if stat.S_ISDIR(info.st_mode) else info.st_size,
        mtime_ns=info.st_mtime_ns,
        mode=stat.S_IMODE(info.st_mode),
        content_hash=content_hash,
        is_symlink=is_symlink,
        symlink_target=symlink_target,
    )


@log_execution_time
def fingerprint_directory(
    path: Path | str, recursive: bool = True, fail_fast: bool = True
) -> DirectoryState:
    """
    Capture the state of a directory and the files beneath it.

    Only leaf entries (files and symlinks) are recorded, keyed by their path
    relative to ``path``. Symlinked directories are recorded as symlinks and
    not descended into.

    Args:
        path: Directory to fingerprint
        recursive: Walk subdirectories; otherwise only immediate children
        fail_fast: Fail the whole fingerprint on the first unreadable entry.
            When False, unreadable entries are logged and left out.

    Returns:
        DirectoryState snapshot

    Raises:
        PathNotFoundError: If the directory does not exist
        FingerprintError: If the path is not a directory or the walk fails
    """
    root = Path(path)
    try:
        info = os.stat(root)
    except FileNotFoundError as e:
        raise PathNotFoundError(f"Directory does not exist: {root}") from e
    except OSError as e:
        raise FingerprintError(f"Failed to stat directory {root}: {e}") from e

    if not stat.S_ISDIR(info.st_mode):
        raise FingerprintError(f"Path {root} is not a directory")

    files: dict[str, FileState] = {}
    pending = [root]

    while pending:
        current = pending.pop()
        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda entry: entry.name)
        except OSError as e:
            _walk_failure(root, current, e, fail_fast)
            continue

        for entry in entries:
            entry_path = Path(entry.path)
            try:
                if entry.is_dir(follow_symlinks=False):
                    if recursive:
                        pending.append(entry_path)
                    continue
                state = fingerprint_file(entry_path)
            except (OSError, FingerprintError) as e:
                _walk_failure(root, entry_path, e, fail_fast)
                continue

            files[entry_path.relative_to(root).as_posix()] = state

    return DirectoryState(
        path=root,
        exists=True,
        file_count=len(files),
        mtime_ns=info.st_mtime_ns,
        files=files,
    )


def _walk_failure(root: Path, path: Path, error: Exception, fail_fast: bool) -> None:
    logger.warning(f"Error walking directory at {path}: {error}", extra={"path": str(path)})
    if fail_fast:
        raise FingerprintError(f"Failed to walk directory {root}: {error}") from error


def states_equal(before: FileState | None, after: FileState | None) -> bool:
    """
    Compare two file states.

    Absent states are equal to each other. Symlinks compare by target only.
    Regular files compare by size and content hash, falling back to size and
    modification time when either hash is missing.
    """
    if before is None and after is None:
        return True
    if before is None or after is None:
        return False

    if before.exists != after.exists:
        return False
    if not before.exists:
        return True

    if before.is_symlink != after.is_symlink:
        return False
    if before.is_symlink:
        return before.symlink_target == after.symlink_target

    if before.size != after.size:
        return False

    if before.content_hash and after.content_hash:
        return before.content_hash == after.content_hash

    return before.mtime_ns == after.mtime_ns


def directory_states_equal(before: DirectoryState | None, after: DirectoryState | None) -> bool:
    """Compare two directory states file by file."""
    if before is None and after is None:
        return True
    if before is None or after is None:
        return False

    if before.exists != after.exists:
        return False
    if not before.exists:
        return True

    if before.file_count != after.file_count or len(before.files) != len(after.files):
        return False

    for rel_path, before_file in before.files.items():
        after_file = after.files.get(rel_path)
        if after_file is None or not states_equal(before_file, after_file):
            return False

    return True
