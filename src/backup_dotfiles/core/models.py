"""
Data models for backup operations.

Defines data structures for fingerprints, backup results, metadata, the
backup index and restore/conflict outcomes.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal


@dataclass(frozen=True)
class FileState:
    """Fingerprint of one file, symlink or directory at an instant."""

    path: Path
    exists: bool
    size: int = 0
    mtime_ns: int = 0
    mode: int = 0
    content_hash: str = ""  # regular files only
    is_symlink: bool = False
    symlink_target: str = ""

    @classmethod
    def missing(cls, path: Path | str) -> "FileState":
        """State describing a path that does not exist."""
        return cls(path=Path(path), exists=False)

    @property
    def modified(self) -> datetime:
        """Modification time as an aware UTC datetime."""
        return datetime.fromtimestamp(self.mtime_ns / 1e9, tz=UTC)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "path": str(self.path),
            "exists": self.exists,
            "size": self.size,
            "modified": self.modified.isoformat() if self.exists else None,
            "mode": f"0{self.mode:o}",
            "content_hash": self.content_hash,
            "is_symlink": self.is_symlink,
            "symlink_target": self.symlink_target,
        }


@dataclass(frozen=True)
class DirectoryState:
    """Aggregate fingerprint of a directory tree."""

    path: Path
    exists: bool
    file_count: int = 0
    mtime_ns: int = 0
    files: dict[str, FileState] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "path": str(self.path),
            "exists": self.exists,
            "file_count": self.file_count,
            "files": {rel: state.to_dict() for rel, state in sorted(self.files.items())},
        }


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class BackupMetadata:
    """Sidecar and index record for one backup."""

    original_path: str
    backup_path: str
    timestamp: datetime
    checksum: str
    compressed: bool
    original_size: int
    backup_size: int
    file_mode: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "original_path": self.original_path,
            "backup_path": self.backup_path,
            "timestamp": self.timestamp.isoformat(),
            "checksum": self.checksum,
            "compressed": self.compressed,
            "original_size": self.original_size,
            "backup_size": self.backup_size,
            "file_mode": self.file_mode,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BackupMetadata":
        """
        Build from a decoded JSON record.

        Raises:
            KeyError, TypeError, ValueError: If the record is malformed
        """
        return cls(
            original_path=str(data["original_path"]),
            backup_path=str(data["backup_path"]),
            timestamp=_parse_timestamp(data["timestamp"]),
            checksum=str(data["checksum"]),
            compressed=bool(data["compressed"]),
            original_size=int(data["original_size"]),
            backup_size=int(data["backup_size"]),
            file_mode=str(data.get("file_mode", "")),
        )


@dataclass
class BackupIndex:
    """Catalogue of every backup recorded in one directory."""

    last_updated: datetime = field(default_factory=lambda: datetime.now(UTC))
    backups: list[BackupMetadata] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "last_updated": self.last_updated.isoformat(),
            "backups": [b.to_dict() for b in self.backups],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BackupIndex":
        """Build from decoded JSON; raises on a malformed document."""
        backups = data["backups"] or []
        if not isinstance(backups, list):
            raise TypeError("backups must be a list")
        return cls(
            last_updated=_parse_timestamp(data["last_updated"]),
            backups=[BackupMetadata.from_dict(item) for item in backups],
        )


@dataclass
class BackupResult:
    """Result of a backup operation."""

    backup_path: Path
    size: int
    checksum: str
    created_at: datetime
    compressed: bool
    metadata_path: Path | None = None
    tags: dict[str, str] = field(default_factory=dict)
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "backup_path": str(self.backup_path),
            "size": self.size,
            "checksum": self.checksum,
            "created_at": self.created_at.isoformat(),
            "compressed": self.compressed,
            "metadata_path": str(self.metadata_path) if self.metadata_path else None,
            "tags": self.tags,
            "dry_run": self.dry_run,
        }


@dataclass
class RetentionReport:
    """Report of retention policy enforcement."""

    removed: list[Path] = field(default_factory=list)
    removed_sidecars: list[Path] = field(default_factory=list)
    kept: int = 0

    @property
    def total_removed(self) -> int:
        """Number of backups removed."""
        return len(self.removed)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "removed": [str(p) for p in self.removed],
            "removed_sidecars": [str(p) for p in self.removed_sidecars],
            "kept": self.kept,
            "total_removed": self.total_removed,
        }


@dataclass
class ConflictResolution:
    """Decision made when a target path already exists."""

    action: Literal["backup", "overwrite", "skip"]
    backup_path: Path | None = None
    should_proceed: bool = False


@dataclass
class RestoreResult:
    """Result of a restore operation."""

    backup_path: Path
    target_path: Path
    checksum: str
    verified: bool
    mode_applied: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "backup_path": str(self.backup_path),
            "target_path": str(self.target_path),
            "checksum": self.checksum,
            "verified": self.verified,
            "mode_applied": self.mode_applied,
        }
