"""
Backup manager.

Protects files before they are overwritten: versioned, optionally gzip
compressed copies with optional metadata sidecars, a per-directory ledger,
incremental deduplication and count-based retention.
"""

import gzip
import logging
import os
import shutil
import stat
from datetime import UTC, datetime
from pathlib import Path

from backup_dotfiles.config.settings import EnhancedBackupConfig, ensure_valid_config
from backup_dotfiles.core.ledger import BackupLedger
from backup_dotfiles.core.metadata import (
    BACKUP_MARKER,
    COMPRESSED_SUFFIX,
    generate_backup_name,
    metadata_path_for,
    save_metadata,
)
from backup_dotfiles.core.models import BackupMetadata, BackupResult
from backup_dotfiles.core.retention import RetentionEnforcer
from backup_dotfiles.utils.checksum import calculate_sha256
from backup_dotfiles.utils.exceptions import BackupIOError, RetentionError
from backup_dotfiles.utils.locking import directory_lock
from backup_dotfiles.utils.logging import log_dry_run_operation, log_execution_time
from backup_dotfiles.utils.permissions import format_file_mode

logger = logging.getLogger(__name__)

DIRECTORY_MODE = 0o755
DRY_RUN_SUFFIX = "dry-run"
DRY_RUN_CHECKSUM = "dry-run"


class BackupManager:
    """
    Manages backup creation.

    Responsibilities:
    - Skip unchanged content (incremental mode)
    - Write plain or gzip-compressed copies
    - Write metadata sidecars and update the directory ledger
    - Enforce retention
    """

    def __init__(self, dry_run: bool = False, retention: RetentionEnforcer | None = None) -> None:
        """
        Initialize backup manager.

        Args:
            dry_run: Simulate backups without touching the filesystem
            retention: Retention enforcer (defaults to a new one)
        """
        self.dry_run = dry_run
        self.retention = retention or RetentionEnforcer()

    @log_execution_time
    def create_backup(
        self,
        source_path: Path | str,
        config: EnhancedBackupConfig,
        tags: dict[str, str] | None = None,
    ) -> BackupResult | None:
        """
        Create a backup of ``source_path``.

        Args:
            source_path: File to protect
            config: Backup policy for this call
            tags: Caller metadata echoed back on the result

        Returns:
            BackupResult, or None when backups are disabled or the content
            is already backed up (incremental mode)

        Raises:
            ConfigurationError: If the configuration is invalid (before any I/O)
            BackupIOError: If a filesystem step fails
            RetentionError: If old backups cannot be removed; the new backup
                exists and is available as ``error.result``
        """
        config = ensure_valid_config(config)
        if not config.enabled:
            logger.debug(f"Backups disabled, skipping: {source_path}")
            return None

        source = Path(os.path.abspath(source_path))
        tags = dict(tags or {})

        if self.dry_run:
            return self._simulate_backup(source, config, tags)

        logger.info(f"Creating backup of {source}", extra={"source_path": str(source)})

        with directory_lock(config.directory):
            result = self._create_locked(source, config, tags)
            if result is None:
                return None

            if config.max_backups > 0:
                try:
                    self.retention.enforce_retention(source, config)
                except RetentionError as e:
                    e.result = result
                    raise

        logger.info(
            f"Backup completed: {result.backup_path}",
            extra={
                "source_path": str(source),
                "backup_path": str(result.backup_path),
                "file_size": result.size,
                "checksum": result.checksum,
            },
        )
        return result

    def _create_locked(
        self, source: Path, config: EnhancedBackupConfig, tags: dict[str, str]
    ) -> BackupResult | None:
        self._check_source(source)
        directory = config.directory
        ledger = BackupLedger(directory)
        checksum: str | None = None

        # 1. Incremental: skip if this content is already recorded for this path
        if config.incremental and ledger.exists():
            checksum = self._checksum(source)
            existing = ledger.find(str(source), checksum)
            if existing is not None:
                logger.info(
                    f"Content unchanged since {existing.backup_path}, skipping backup",
                    extra={"source_path": str(source), "backup_path": existing.backup_path},
                )
                return None

        # 2. Backup directory
        try:
            directory.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
        except OSError as e:
            raise BackupIOError(f"Failed to create backup directory: {e}", directory) from e

        # 3. Backup path
        if checksum is None and (
            config.backup_format == "git_style" or config.backup_metadata or config.backup_index
        ):
            checksum = self._checksum(source)
        backup_name = generate_backup_name(source, config.backup_format, directory, checksum)
        backup_path = directory / backup_name
        if config.compression:
            backup_path = backup_path.with_name(backup_path.name + COMPRESSED_SUFFIX)

        # 4. Write the backup
        self._write_backup(source, backup_path, config.compression)
        created_at = datetime.now(UTC)

        try:
            original_info = source.stat()
            backup_size = backup_path.stat().st_size
        except OSError as e:
            raise BackupIOError(f"Failed to stat backup: {e}", backup_path) from e

        if checksum is None:
            checksum = self._checksum(source)

        metadata = BackupMetadata(
            original_path=str(source),
            backup_path=str(backup_path),
            timestamp=created_at,
            checksum=checksum,
            compressed=config.compression,
            original_size=original_info.st_size,
            backup_size=backup_size,
            file_mode=format_file_mode(original_info.st_mode),
        )

        # 5. Sidecar
        metadata_path = None
        if config.backup_metadata:
            metadata_path = metadata_path_for(backup_path)
            try:
                save_metadata(metadata_path, metadata)
            except OSError as e:
                self._discard(backup_path, metadata_path)
                raise BackupIOError(f"Failed to create backup metadata: {e}", metadata_path) from e

        # 6. Ledger
        if config.backup_index:
            try:
                ledger.record(metadata)
            except OSError as e:
                self._discard(backup_path, metadata_path)
                raise BackupIOError(f"Failed to update backup index: {e}", ledger.index_path) from e

        return BackupResult(
            backup_path=backup_path,
            size=backup_size,
            checksum=checksum,
            created_at=created_at,
            compressed=config.compression,
            metadata_path=metadata_path,
            tags=tags,
        )

    def _check_source(self, source: Path) -> None:
        try:
            info = source.stat()
        except FileNotFoundError as e:
            raise BackupIOError("Source file does not exist", source) from e
        except OSError as e:
            raise BackupIOError(f"Failed to stat source file: {e}", source) from e
        if not stat.S_ISREG(info.st_mode):
            raise BackupIOError("Source is not a regular file", source)

    def _checksum(self, source: Path) -> str:
        try:
            return calculate_sha256(source)
        except OSError as e:
            raise BackupIOError(f"Failed to calculate checksum: {e}", source) from e

    def _write_backup(self, source: Path, backup_path: Path, compress: bool) -> None:
        """Copy or gzip ``source`` to ``backup_path``, removing partial output on failure."""
        try:
            if compress:
                with open(source, "rb") as src, gzip.open(backup_path, "wb") as dst:
                    shutil.copyfileobj(src, dst)
            else:
                shutil.copyfile(source, backup_path)
            shutil.copymode(source, backup_path)
        except OSError as e:
            logger.error(f"Failed to write backup {backup_path}: {e}")
            try:
                backup_path.unlink(missing_ok=True)
            except OSError:
                logger.warning(f"Could not remove partial backup {backup_path}")
            raise BackupIOError(f"Failed to create backup: {e}", backup_path) from e

    def _discard(self, *paths: Path | None) -> None:
        """Remove the files of a backup that could not be recorded."""
        for path in paths:
            if path is None:
                continue
            try:
                path.unlink(missing_ok=True)
            except OSError:
                logger.warning(f"Could not remove unrecorded backup file {path}")

    def _simulate_backup(
        self, source: Path, config: EnhancedBackupConfig, tags: dict[str, str]
    ) -> BackupResult:
        backup_path = config.directory / f"{source.name}{BACKUP_MARKER}{DRY_RUN_SUFFIX}"
        if config.compression:
            backup_path = backup_path.with_name(backup_path.name + COMPRESSED_SUFFIX)

        log_dry_run_operation(
            logger, "create_backup", source, backup_path=str(backup_path)
        )
        if config.backup_metadata:
            log_dry_run_operation(logger, "write_metadata", metadata_path_for(backup_path))
        if config.backup_index:
            log_dry_run_operation(logger, "update_index", BackupLedger(config.directory).index_path)
        if config.max_backups > 0:
            log_dry_run_operation(logger, "enforce_retention", config.directory)

        return BackupResult(
            backup_path=backup_path,
            size=0,
            checksum=DRY_RUN_CHECKSUM,
            created_at=datetime.now(UTC),
            compressed=config.compression,
            metadata_path=metadata_path_for(backup_path) if config.backup_metadata else None,
            tags=tags,
            dry_run=True,
        )

    def list_backups(self, source_path: Path | str, config: EnhancedBackupConfig) -> list[Path]:
        """
        List backup files of ``source_path``, oldest first.

        Args:
            source_path: Original file
            config: Backup configuration naming the directory

        Returns:
            Backup file paths
        """
        return self.retention.list_backups(Path(source_path), config.directory)

    def get_latest_backup(self, source_path: Path | str, config: EnhancedBackupConfig) -> Path | None:
        """Get the most recent backup of ``source_path``, if any."""
        backups = self.list_backups(source_path, config)
        return backups[-1] if backups else None
