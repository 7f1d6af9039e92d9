"""Shared fixtures for backup tests."""

import pytest

from backup_dotfiles.config.settings import EnhancedBackupConfig


@pytest.fixture
def backup_dir(tmp_path):
    return tmp_path / "backups"


@pytest.fixture
def source_file(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    path = src / "config.txt"
    path.write_text("v1")
    return path


@pytest.fixture
def make_config(backup_dir):
    """Build a config rooted at the test backup directory."""

    def _make(**overrides):
        options = {
            "directory": backup_dir,
            "incremental": False,
            "backup_index": False,
            "max_backups": 0,
        }
        options.update(overrides)
        return EnhancedBackupConfig(**options)

    return _make
