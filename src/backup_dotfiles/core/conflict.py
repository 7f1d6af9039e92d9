"""
Conflict resolution for target paths that already exist.
"""

import logging
from pathlib import Path

from backup_dotfiles.config.settings import EnhancedBackupConfig
from backup_dotfiles.core.backup import BackupManager
from backup_dotfiles.core.models import ConflictResolution
from backup_dotfiles.utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFLICT_STRATEGIES = ("backup", "overwrite", "skip")


def resolve_conflict(
    existing_path: Path | str,
    strategy: str,
    config: EnhancedBackupConfig,
    manager: BackupManager | None = None,
) -> ConflictResolution:
    """
    Decide what to do about an existing target path.

    ``backup`` protects the existing file first and proceeds, ``overwrite``
    proceeds without a backup and ``skip`` leaves the target alone.

    Args:
        existing_path: Target path that may already exist
        strategy: One of backup, overwrite, skip
        config: Backup policy used for the ``backup`` strategy
        manager: Backup manager to use (defaults to a new one)

    Returns:
        ConflictResolution

    Raises:
        ConfigurationError: If the strategy is unknown
        BackupError: If the protective backup fails
    """
    if strategy not in CONFLICT_STRATEGIES:
        raise ConfigurationError(f"Unknown conflict resolution strategy: {strategy}")

    existing_path = Path(existing_path)

    if strategy == "skip":
        logger.info(f"Skipping existing target: {existing_path}")
        return ConflictResolution(action="skip", should_proceed=False)

    if strategy == "overwrite":
        return ConflictResolution(action="overwrite", should_proceed=True)

    backup_path = None
    if existing_path.exists():
        result = (manager or BackupManager()).create_backup(existing_path, config)
        if result is not None:
            backup_path = result.backup_path
    return ConflictResolution(action="backup", backup_path=backup_path, should_proceed=True)
