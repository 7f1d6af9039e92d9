"""Tests for backup creation, naming, dedup and retention."""

import gzip
import hashlib
import json
import os
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime

import pytest

from backup_dotfiles.config.settings import EnhancedBackupConfig
from backup_dotfiles.core import backup as backup_module
from backup_dotfiles.core import metadata as metadata_module
from backup_dotfiles.core.backup import BackupManager
from backup_dotfiles.core.ledger import BackupLedger
from backup_dotfiles.core.retention import RetentionEnforcer
from backup_dotfiles.utils.exceptions import BackupIOError, ConfigurationError, RetentionError


def _backup_names(directory):
    return sorted(p.name for p in directory.iterdir() if p.name.startswith("config.txt.backup."))


def test_disabled_config_does_nothing(source_file, make_config, backup_dir):
    result = BackupManager().create_backup(source_file, make_config(enabled=False))

    assert result is None
    assert not backup_dir.exists()


def test_plain_backup_copies_bytes(source_file, make_config):
    result = BackupManager().create_backup(source_file, make_config(backup_format="numbered"))

    assert result.backup_path.name == "config.txt.backup.001"
    assert result.backup_path.read_text() == "v1"
    assert result.size == 2
    assert result.checksum == hashlib.sha256(b"v1").hexdigest()
    assert not result.compressed


def test_compressed_backup_round_trips(tmp_path, make_config):
    source = tmp_path / "blob.bin"
    payload = bytes(range(256)) * 500
    source.write_bytes(payload)

    result = BackupManager().create_backup(source, make_config(compression=True))

    assert result.compressed
    assert result.backup_path.name.endswith(".gz")
    with gzip.open(result.backup_path, "rb") as f:
        assert f.read() == payload


def test_timestamped_name(source_file, make_config):
    result = BackupManager().create_backup(source_file, make_config(backup_format="timestamped"))

    assert re.fullmatch(r"config\.txt\.backup\.\d{4}-\d{2}-\d{2}-\d{6}", result.backup_path.name)


def test_git_style_name_is_content_addressed(source_file, make_config):
    result = BackupManager().create_backup(source_file, make_config(backup_format="git_style"))

    expected = hashlib.sha256(b"v1").hexdigest()[:8]
    assert result.backup_path.name == f"config.txt.backup.{expected}"


def test_numbered_names_increase_past_meta_and_gz(source_file, make_config, backup_dir):
    config = make_config(backup_format="numbered", compression=True, backup_metadata=True)
    manager = BackupManager()

    names = []
    for content in ("a", "b", "c"):
        source_file.write_text(content)
        names.append(manager.create_backup(source_file, config).backup_path.name)

    assert names == [
        "config.txt.backup.001.gz",
        "config.txt.backup.002.gz",
        "config.txt.backup.003.gz",
    ]
    assert (backup_dir / "config.txt.backup.003.gz.meta").exists()


def test_numbered_ignores_stray_sidecar(source_file, make_config, backup_dir):
    backup_dir.mkdir()
    (backup_dir / "config.txt.backup.009.meta").write_text("{}")

    result = BackupManager().create_backup(source_file, make_config(backup_format="numbered"))

    assert result.backup_path.name == "config.txt.backup.001"


def test_metadata_sidecar(source_file, make_config):
    os.chmod(source_file, 0o644)

    result = BackupManager().create_backup(source_file, make_config(backup_metadata=True))

    assert result.metadata_path == result.backup_path.with_name(result.backup_path.name + ".meta")
    text = result.metadata_path.read_text()
    assert text.startswith("{\n  ")
    data = json.loads(text)
    assert data["original_path"] == str(source_file)
    assert data["backup_path"] == str(result.backup_path)
    assert data["checksum"] == hashlib.sha256(b"v1").hexdigest()
    assert data["compressed"] is False
    assert data["original_size"] == 2
    assert data["backup_size"] == 2
    assert data["file_mode"] == "0644"


def test_incremental_skips_unchanged_content(source_file, make_config, backup_dir):
    config = make_config(incremental=True, backup_index=True, backup_format="numbered")
    manager = BackupManager()

    first = manager.create_backup(source_file, config)
    second = manager.create_backup(source_file, config)

    assert first is not None
    assert second is None
    assert _backup_names(backup_dir) == ["config.txt.backup.001"]
    assert len(BackupLedger(backup_dir).load().backups) == 1

    source_file.write_text("v2")
    third = manager.create_backup(source_file, config)

    assert third is not None
    assert third.backup_path.name == "config.txt.backup.002"
    assert len(BackupLedger(backup_dir).load().backups) == 2


def test_incremental_dedup_is_path_scoped(tmp_path, make_config, backup_dir):
    config = make_config(incremental=True, backup_index=True, backup_format="numbered")
    one = tmp_path / "one" / "config.txt"
    two = tmp_path / "two" / "config.txt"
    for path in (one, two):
        path.parent.mkdir()
        path.write_text("same")

    manager = BackupManager()
    assert manager.create_backup(one, config) is not None
    assert manager.create_backup(two, config) is not None
    assert len(BackupLedger(backup_dir).load().backups) == 2


def test_incremental_with_corrupt_ledger_backs_up(source_file, make_config, backup_dir):
    config = make_config(incremental=True, backup_index=True)
    backup_dir.mkdir()
    (backup_dir / ".backup_index.json").write_text("{not json")

    result = BackupManager().create_backup(source_file, config)

    assert result is not None
    assert len(BackupLedger(backup_dir).load().backups) == 1


def test_scenario_numbered_with_retention(source_file, make_config, backup_dir):
    config = make_config(backup_format="numbered", max_backups=2)
    manager = BackupManager()

    for content in ("v1", "v2", "v3"):
        source_file.write_text(content)
        manager.create_backup(source_file, config)

    assert _backup_names(backup_dir) == ["config.txt.backup.002", "config.txt.backup.003"]
    assert (backup_dir / "config.txt.backup.002").read_text() == "v2"
    assert (backup_dir / "config.txt.backup.003").read_text() == "v3"


def test_retention_keeps_most_recent_with_sidecars(source_file, make_config, backup_dir):
    config = make_config(backup_format="numbered", max_backups=3, backup_metadata=True)
    manager = BackupManager()

    for i in range(5):
        source_file.write_text(f"content {i}")
        manager.create_backup(source_file, config)

    assert _backup_names(backup_dir) == [
        "config.txt.backup.003",
        "config.txt.backup.003.meta",
        "config.txt.backup.004",
        "config.txt.backup.004.meta",
        "config.txt.backup.005",
        "config.txt.backup.005.meta",
    ]


def test_retention_only_touches_one_source(tmp_path, make_config, backup_dir):
    config = make_config(backup_format="numbered", max_backups=1)
    other = tmp_path / "other.conf"
    other.write_text("x")
    source = tmp_path / "config.txt"
    manager = BackupManager()

    manager.create_backup(other, config)
    for content in ("a", "b"):
        source.write_text(content)
        manager.create_backup(source, config)

    assert (backup_dir / "other.conf.backup.001").exists()
    assert _backup_names(backup_dir) == ["config.txt.backup.002"]


def test_tags_are_returned(source_file, make_config):
    result = BackupManager().create_backup(source_file, make_config(), tags={"reason": "pre-apply"})

    assert result.tags == {"reason": "pre-apply"}


def test_dry_run_touches_nothing(source_file, make_config, backup_dir):
    config = make_config(compression=True, backup_metadata=True, backup_index=True, max_backups=2)

    result = BackupManager(dry_run=True).create_backup(source_file, config)

    assert result.dry_run
    assert result.size == 0
    assert result.checksum == "dry-run"
    assert result.backup_path.name.endswith(".gz")
    assert not result.backup_path.exists()
    assert not backup_dir.exists()


def test_dry_run_tolerates_missing_source(tmp_path, make_config):
    result = BackupManager(dry_run=True).create_backup(tmp_path / "missing.conf", make_config())

    assert result is not None
    assert result.dry_run


def test_invalid_config_fails_before_io(source_file, backup_dir):
    config = EnhancedBackupConfig.model_construct(
        directory=backup_dir, backup_format="zip", max_backups=1
    )

    with pytest.raises(ConfigurationError):
        BackupManager().create_backup(source_file, config)
    assert not backup_dir.exists()


def test_negative_max_backups_rejected(source_file, backup_dir):
    config = EnhancedBackupConfig.model_construct(directory=backup_dir, max_backups=-1)

    with pytest.raises(ConfigurationError):
        BackupManager().create_backup(source_file, config)
    assert not backup_dir.exists()


def test_missing_source_raises_io_error(tmp_path, make_config):
    missing = tmp_path / "missing.conf"

    with pytest.raises(BackupIOError) as excinfo:
        BackupManager().create_backup(missing, make_config())

    assert excinfo.value.path == missing


def test_retention_failure_surfaces_with_result(source_file, make_config):
    class BrokenRetention(RetentionEnforcer):
        def enforce_retention(self, source_path, config):
            raise RetentionError("cannot delete")

    manager = BackupManager(retention=BrokenRetention())

    with pytest.raises(RetentionError) as excinfo:
        manager.create_backup(source_file, make_config(max_backups=1))

    assert excinfo.value.result is not None
    assert excinfo.value.result.backup_path.exists()


def test_latest_backup(source_file, make_config):
    config = make_config(backup_format="numbered")
    manager = BackupManager()
    assert manager.get_latest_backup(source_file, config) is None

    manager.create_backup(source_file, config)
    source_file.write_text("v2")
    manager.create_backup(source_file, config)

    assert manager.get_latest_backup(source_file, config).name == "config.txt.backup.002"


def test_numbered_skips_all_digit_git_style_name(source_file, make_config, backup_dir):
    backup_dir.mkdir()
    (backup_dir / "config.txt.backup.20240101").write_text("hash-named")
    (backup_dir / "config.txt.backup.004").write_text("numbered")

    result = BackupManager().create_backup(source_file, make_config(backup_format="numbered"))

    assert result.backup_path.name == "config.txt.backup.005"


def test_same_second_overwrite_does_not_hide_earlier_content(
    source_file, make_config, backup_dir, monkeypatch
):
    class FrozenDatetime(datetime):
        @classmethod
        def now(cls, tz=None):
            return datetime(2026, 10, 19, 3, 3, 16, tzinfo=UTC)

    monkeypatch.setattr(metadata_module, "datetime", FrozenDatetime)
    config = make_config(incremental=True, backup_index=True, backup_format="timestamped")
    manager = BackupManager()

    first = manager.create_backup(source_file, config)
    source_file.write_text("v2")
    second = manager.create_backup(source_file, config)

    assert second.backup_path == first.backup_path
    assert second.backup_path.read_text() == "v2"
    [entry] = BackupLedger(backup_dir).load().backups
    assert entry.checksum == hashlib.sha256(b"v2").hexdigest()

    source_file.write_text("v1")
    third = manager.create_backup(source_file, config)

    assert third is not None
    assert third.backup_path.read_text() == "v1"


def test_concurrent_numbered_backups_with_retention(source_file, make_config, backup_dir):
    config = make_config(backup_format="numbered", backup_index=True, max_backups=3)
    manager = BackupManager()

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(pool.map(lambda _: manager.create_backup(source_file, config), range(12)))

    names = sorted(r.backup_path.name for r in results)
    assert len(set(names)) == 12
    assert names == [f"config.txt.backup.{n:03d}" for n in range(1, 13)]
    assert _backup_names(backup_dir) == names[-3:]

    recorded = {e.backup_path for e in BackupLedger(backup_dir).load().backups}
    assert recorded == {str(r.backup_path) for r in results}


def test_failed_ledger_write_removes_backup(source_file, make_config, backup_dir, monkeypatch):
    def broken_record(self, metadata):
        raise OSError("disk full")

    monkeypatch.setattr(BackupLedger, "record", broken_record)
    config = make_config(backup_format="numbered", backup_index=True, backup_metadata=True)

    with pytest.raises(BackupIOError) as excinfo:
        BackupManager().create_backup(source_file, config)

    assert excinfo.value.path == BackupLedger(backup_dir).index_path
    assert _backup_names(backup_dir) == []


def test_failed_sidecar_write_removes_backup(source_file, make_config, backup_dir, monkeypatch):
    def broken_save(metadata_path, metadata):
        raise OSError("read-only")

    monkeypatch.setattr(backup_module, "save_metadata", broken_save)

    with pytest.raises(BackupIOError):
        BackupManager().create_backup(
            source_file, make_config(backup_format="numbered", backup_metadata=True)
        )

    assert _backup_names(backup_dir) == []
