"""
Restore and verification of file backups.

Reads back metadata sidecars, checks backup integrity against the recorded
checksum and restores content and permission bits to the original path.
"""

import gzip
import json
import logging
import os
import shutil
import tempfile
from pathlib import Path

from backup_dotfiles.core.ledger import BackupLedger
from backup_dotfiles.core.metadata import COMPRESSED_SUFFIX, load_metadata, metadata_path_for
from backup_dotfiles.core.models import BackupMetadata, RestoreResult
from backup_dotfiles.utils.checksum import calculate_sha256, verify_checksum
from backup_dotfiles.utils.exceptions import ConfigurationError, RestoreError, ValidationError
from backup_dotfiles.utils.permissions import parse_permission_string

logger = logging.getLogger(__name__)


def load_backup_metadata(metadata_path: Path) -> BackupMetadata:
    """
    Load a backup's metadata sidecar.

    Raises:
        RestoreError: If the sidecar is missing or unreadable
    """
    try:
        metadata = load_metadata(metadata_path)
    except (OSError, ValueError) as e:
        raise RestoreError(f"Failed to load metadata {metadata_path}: {e}") from e
    if metadata is None:
        raise RestoreError(f"Metadata file not found: {metadata_path}")
    return metadata


def list_backups(directory: Path, original_path: Path | str | None = None) -> list[BackupMetadata]:
    """
    List backups recorded in a directory's ledger, oldest first.

    Args:
        directory: Backup directory
        original_path: Only return backups of this file

    Returns:
        Recorded backups
    """
    key = os.path.abspath(original_path) if original_path is not None else None
    return BackupLedger(directory).entries_for(key)


class RestoreManager:
    """
    Manages restore operations.

    Responsibilities:
    - Verify backup integrity against sidecar checksums
    - Decompress and write backups back to their original location
    - Reapply recorded permission bits
    """

    def verify_backup(self, backup_path: Path) -> bool:
        """
        Check a backup against the checksum in its sidecar.

        Args:
            backup_path: Backup file (plain or .gz)

        Returns:
            True if the backup content matches its recorded checksum
        """
        if not backup_path.exists():
            logger.error(f"Backup file not found: {backup_path}")
            return False

        try:
            metadata = load_backup_metadata(metadata_path_for(backup_path))
        except RestoreError as e:
            logger.warning(f"Cannot verify {backup_path}: {e}")
            return False

        return verify_checksum(backup_path, metadata.checksum, compressed=metadata.compressed)

    def restore_backup(
        self,
        backup_path: Path,
        target_path: Path | None = None,
        verify: bool = True,
    ) -> RestoreResult:
        """
        Restore a backup.

        Args:
            backup_path: Backup file to restore
            target_path: Destination (defaults to the recorded original path)
            verify: Check the restored content against the recorded checksum

        Returns:
            RestoreResult

        Raises:
            RestoreError: If the backup cannot be read or written back
            ValidationError: If verification is on and the checksum does not match
        """
        if not backup_path.exists():
            raise RestoreError(f"Backup file not found: {backup_path}")

        metadata_path = metadata_path_for(backup_path)
        metadata = load_backup_metadata(metadata_path) if metadata_path.exists() else None

        if target_path is None:
            if metadata is None:
                raise RestoreError(
                    f"No metadata for {backup_path}; a target path is required"
                )
            target_path = Path(metadata.original_path)

        compressed = (
            metadata.compressed if metadata is not None else backup_path.name.endswith(COMPRESSED_SUFFIX)
        )
        logger.info(f"Restoring {backup_path} to {target_path}")

        target_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target_path.name}.", dir=target_path.parent)
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as dst:
                opener = gzip.open if compressed else open
                with opener(backup_path, "rb") as src:
                    shutil.copyfileobj(src, dst)

            checksum = calculate_sha256(tmp_path)
            verified = False
            if verify and metadata is not None:
                if checksum != metadata.checksum:
                    raise ValidationError(
                        f"Checksum mismatch restoring {backup_path}: "
                        f"expected {metadata.checksum}, got {checksum}"
                    )
                verified = True

            mode_applied = None
            if metadata is not None and metadata.file_mode:
                try:
                    os.chmod(tmp_path, parse_permission_string(metadata.file_mode))
                    mode_applied = metadata.file_mode
                except ConfigurationError as e:
                    logger.warning(f"Ignoring recorded file mode for {backup_path}: {e}")

            os.replace(tmp_path, target_path)
        except OSError as e:
            raise RestoreError(f"Failed to restore {backup_path}: {e}") from e
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

        logger.info(f"Restore completed: {target_path}")
        return RestoreResult(
            backup_path=backup_path,
            target_path=target_path,
            checksum=checksum,
            verified=verified,
            mode_applied=mode_applied,
        )


def dump_backup_list(entries: list[BackupMetadata]) -> str:
    """Render ledger entries as indented JSON."""
    return json.dumps([entry.to_dict() for entry in entries], indent=2)
