"""
Backup naming and metadata sidecars.

Backups are named ``<basename>.backup.<suffix>[.gz]`` where the suffix comes
from the configured format, and may carry a ``.meta`` JSON sidecar.
"""

import json
import logging
import re
from datetime import UTC, datetime
from pathlib import Path

from backup_dotfiles.core.models import BackupMetadata
from backup_dotfiles.utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

BACKUP_MARKER = ".backup."
COMPRESSED_SUFFIX = ".gz"
METADATA_SUFFIX = ".meta"
TIMESTAMP_FORMAT = "%Y-%m-%d-%H%M%S"
NUMBER_WIDTH = 3
GIT_STYLE_LENGTH = 8


def backup_prefix(source_path: Path) -> str:
    """Common file-name prefix of every backup of ``source_path``."""
    return f"{source_path.name}{BACKUP_MARKER}"


def next_backup_number(file_name: str, backup_dir: Path) -> int:
    """
    Find the next free number for a ``numbered`` backup.

    Existing ``<name>.backup.NNN`` files are scanned, with or without ``.gz``;
    sidecars and other suffixes are ignored. An all-digit suffix of git_style
    length is taken to be a content hash, not a number.

    Args:
        file_name: Base name of the source file
        backup_dir: Directory holding the backups

    Returns:
        Highest existing number plus one, or 1 when none exist
    """
    pattern = re.compile(
        rf"^{re.escape(file_name)}\.backup\.(\d{{{NUMBER_WIDTH},}})"
        rf"(?:{re.escape(COMPRESSED_SUFFIX)})?$"
    )
    highest = 0
    if backup_dir.is_dir():
        for candidate in backup_dir.iterdir():
            match = pattern.match(candidate.name)
            if match and len(match.group(1)) != GIT_STYLE_LENGTH:
                highest = max(highest, int(match.group(1)))
    return highest + 1


def generate_backup_name(
    source_path: Path,
    backup_format: str,
    backup_dir: Path,
    checksum: str | None = None,
    timestamp: datetime | None = None,
) -> str:
    """
    Generate a backup file name (without compression suffix).

    Formats:
        timestamped: config.txt.backup.2026-10-19-030316
        numbered:    config.txt.backup.004
        git_style:   config.txt.backup.3f2a9c1d

    Args:
        source_path: File being backed up
        backup_format: One of timestamped, numbered, git_style
        backup_dir: Directory the backup will be written to
        checksum: SHA-256 of the source, required for git_style
        timestamp: Timestamp to use (defaults to now)

    Returns:
        Backup file name

    Raises:
        ConfigurationError: If the format is unknown or git_style lacks a checksum
    """
    prefix = backup_prefix(source_path)

    if backup_format == "timestamped":
        if timestamp is None:
            timestamp = datetime.now(UTC)
        return f"{prefix}{timestamp.strftime(TIMESTAMP_FORMAT)}"

    if backup_format == "numbered":
        return f"{prefix}{next_backup_number(source_path.name, backup_dir):0{NUMBER_WIDTH}d}"

    if backup_format == "git_style":
        if not checksum:
            raise ConfigurationError("git_style backups require a source checksum")
        return f"{prefix}{checksum[:GIT_STYLE_LENGTH]}"

    raise ConfigurationError(f"Unsupported backup format: {backup_format}")


def metadata_path_for(backup_path: Path) -> Path:
    """Sidecar path for a backup file."""
    return backup_path.with_name(backup_path.name + METADATA_SUFFIX)


def is_sidecar(path: Path) -> bool:
    """Whether ``path`` is a metadata sidecar rather than a backup."""
    return path.name.endswith(METADATA_SUFFIX)


def save_metadata(metadata_path: Path, metadata: BackupMetadata) -> None:
    """
    Save metadata to JSON file.

    Args:
        metadata_path: Path where metadata will be saved
        metadata: Metadata record to save

    Raises:
        OSError: If file cannot be written
    """
    try:
        with open(metadata_path, "w", encoding="utf-8") as f:
            json.dump(metadata.to_dict(), f, indent=2)
            f.write("\n")
        logger.debug(f"Metadata saved to: {metadata_path}")
    except OSError as e:
        logger.error(f"Failed to save metadata to {metadata_path}: {e}")
        raise


def load_metadata(metadata_path: Path) -> BackupMetadata | None:
    """
    Load metadata from JSON file.

    Args:
        metadata_path: Path to metadata file

    Returns:
        Metadata record, or None if file doesn't exist

    Raises:
        OSError: If file cannot be read
        ValueError: If file is not a valid metadata record
    """
    if not metadata_path.exists():
        logger.warning(f"Metadata file not found: {metadata_path}")
        return None

    try:
        with open(metadata_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return BackupMetadata.from_dict(data)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in metadata file {metadata_path}: {e}")
        raise
    except (KeyError, TypeError) as e:
        logger.error(f"Malformed metadata file {metadata_path}: {e}")
        raise ValueError(f"Malformed metadata file {metadata_path}: {e}") from e
