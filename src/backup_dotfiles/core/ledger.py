"""
Backup ledger for tracking every backup written to a directory.

One ``.backup_index.json`` per backup directory records all backups created
there, across every source file sharing the directory. It backs incremental
deduplication and backup listing.

Contract: loads never fail (a missing or corrupt ledger reads as empty), and
writes are load-append-write cycles run under the directory lock, so no two
writes for the same directory interleave. The file is replaced atomically.
"""

import json
import logging
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path

from backup_dotfiles.core.models import BackupIndex, BackupMetadata
from backup_dotfiles.utils.locking import directory_lock

logger = logging.getLogger(__name__)

INDEX_FILENAME = ".backup_index.json"


class BackupLedger:
    """Durable catalogue of the backups in one directory."""

    def __init__(self, directory: Path) -> None:
        """
        Initialize backup ledger.

        Args:
            directory: Backup directory the ledger belongs to
        """
        self.directory = directory
        self.index_path = directory / INDEX_FILENAME

    def exists(self) -> bool:
        """Whether a ledger file is present."""
        return self.index_path.exists()

    def load(self) -> BackupIndex:
        """
        Load the ledger, substituting an empty one on any failure.

        Returns:
            BackupIndex (empty if missing or unreadable)
        """
        if not self.index_path.exists():
            logger.debug(f"Ledger does not exist, starting empty: {self.index_path}")
            return BackupIndex()

        try:
            with open(self.index_path, "r", encoding="utf-8") as f:
                index = BackupIndex.from_dict(json.load(f))
            logger.debug(f"Ledger contains {len(index.backups)} entries: {self.index_path}")
            return index
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Unreadable ledger {self.index_path}, treating as empty: {e}")
            return BackupIndex()

    def record(self, metadata: BackupMetadata) -> BackupIndex:
        """
        Append a backup to the ledger.

        An earlier entry for the same backup path describes a file that has
        since been overwritten, so it is replaced.

        Args:
            metadata: Record of the backup just written

        Returns:
            The ledger as written

        Raises:
            OSError: If the ledger cannot be written
        """
        with directory_lock(self.directory):
            index = self.load()
            index.backups = [
                entry for entry in index.backups if entry.backup_path != metadata.backup_path
            ]
            index.backups.append(metadata)
            index.last_updated = datetime.now(UTC)
            self._save(index)
        logger.debug(f"Ledger updated: {len(index.backups)} entries")
        return index

    def find(self, original_path: str, checksum: str) -> BackupMetadata | None:
        """
        Find a recorded backup of ``original_path`` with the given checksum.

        Entries whose backup file no longer exists are ignored.
        """
        for entry in self.load().backups:
            if (
                entry.original_path == original_path
                and entry.checksum == checksum
                and Path(entry.backup_path).exists()
            ):
                return entry
        return None

    def entries_for(self, original_path: str | None = None) -> list[BackupMetadata]:
        """List recorded backups, optionally for one original path, oldest first."""
        entries = self.load().backups
        if original_path is not None:
            entries = [e for e in entries if e.original_path == original_path]
        return sorted(entries, key=lambda e: e.timestamp)

    def _save(self, index: BackupIndex) -> None:
        self.directory.mkdir(mode=0o755, parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=f"{INDEX_FILENAME}.", dir=self.directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(index.to_dict(), f, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.index_path)
        except OSError as e:
            logger.error(f"Failed to save ledger {self.index_path}: {e}")
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
