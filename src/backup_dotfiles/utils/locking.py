"""
Directory-scoped critical sections.

Every ledger write and every backup/retention pass for a backup directory runs
while holding that directory's lock. The lock is re-entrant within a thread and
takes an exclusive ``flock`` on ``<dir>/.backup_index.lock`` at its outermost
acquisition, so separate processes sharing a directory serialize as well.
"""

import fcntl
import logging
import os
import threading
from pathlib import Path
from types import TracebackType

logger = logging.getLogger(__name__)

LOCK_FILENAME = ".backup_index.lock"

_registry_guard = threading.Lock()
_locks: dict[str, "DirectoryLock"] = {}


class DirectoryLock:
    """Re-entrant in-process lock combined with an advisory file lock."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.lock_path = directory / LOCK_FILENAME
        self._rlock = threading.RLock()
        self._depth = 0
        self._handle = None

    def acquire(self) -> None:
        self._rlock.acquire()
        if self._depth == 0:
            try:
                self.directory.mkdir(mode=0o755, parents=True, exist_ok=True)
                handle = open(self.lock_path, "a+")
                try:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
                except OSError:
                    handle.close()
                    raise
                self._handle = handle
                logger.debug(f"Acquired directory lock: {self.lock_path}")
            except OSError:
                self._rlock.release()
                raise
        self._depth += 1

    def release(self) -> None:
        self._depth -= 1
        if self._depth == 0 and self._handle is not None:
            try:
                fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
            finally:
                self._handle.close()
                self._handle = None
                logger.debug(f"Released directory lock: {self.lock_path}")
        self._rlock.release()

    def __enter__(self) -> "DirectoryLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


def directory_lock(directory: Path) -> DirectoryLock:
    """
    Get the lock guarding a backup directory.

    The same object is returned for every spelling of the same directory.
    """
    key = os.path.realpath(directory)
    with _registry_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = DirectoryLock(Path(key))
            _locks[key] = lock
        return lock
