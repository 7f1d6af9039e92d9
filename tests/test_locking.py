"""Tests for directory-scoped locks."""

import threading

from backup_dotfiles.utils.locking import directory_lock


def test_same_directory_shares_one_lock(tmp_path):
    assert directory_lock(tmp_path / "b") is directory_lock(tmp_path / "b" / ".." / "b")


def test_lock_is_reentrant_and_creates_directory(tmp_path):
    lock = directory_lock(tmp_path / "b")

    with lock:
        with lock:
            assert lock.lock_path.exists()


def test_lock_excludes_other_threads(tmp_path):
    lock = directory_lock(tmp_path / "b")
    acquired = threading.Event()

    def contender():
        with lock:
            acquired.set()

    with lock:
        worker = threading.Thread(target=contender)
        worker.start()
        assert not acquired.wait(timeout=0.2)

    worker.join(timeout=5)
    assert acquired.is_set()
