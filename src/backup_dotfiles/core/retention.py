"""
Backup retention policy enforcement.

Keeps the newest ``max_backups`` backups of a source file in its backup
directory and removes the rest together with their ``.meta`` sidecars.
Age-based limits in the retention policy are carried but not enforced.
"""

import logging
from pathlib import Path

from backup_dotfiles.config.settings import EnhancedBackupConfig
from backup_dotfiles.core.metadata import backup_prefix, is_sidecar, metadata_path_for
from backup_dotfiles.core.models import RetentionReport
from backup_dotfiles.utils.exceptions import RetentionError
from backup_dotfiles.utils.locking import directory_lock

logger = logging.getLogger(__name__)


class RetentionEnforcer:
    """Manages backup retention enforcement for one source file at a time."""

    def enforce_retention(
        self, source_path: Path | str, config: EnhancedBackupConfig
    ) -> RetentionReport:
        """
        Enforce the backup count limit for ``source_path``.

        Runs under the backup directory lock so concurrent passes never pick
        overlapping victims.

        Args:
            source_path: Original file whose backups are trimmed
            config: Backup configuration (directory and max_backups)

        Returns:
            RetentionReport with details of actions taken

        Raises:
            RetentionError: If an old backup cannot be removed
        """
        source_path = Path(source_path)
        directory = config.directory
        report = RetentionReport()

        if config.max_backups <= 0:
            logger.debug("Retention disabled (max_backups=0)")
            return report

        policy = config.retention()
        if policy.is_age_based:
            logger.debug(
                f"Age-based retention ({config.retention_policy}) is advisory; "
                "enforcing count limit only"
            )

        if not directory.is_dir():
            logger.debug(f"Backup directory does not exist: {directory}")
            return report

        with directory_lock(directory):
            backups = self.list_backups(source_path, directory)
            report.kept = len(backups)

            if len(backups) <= config.max_backups:
                logger.debug(
                    f"No cleanup needed for {source_path.name}: "
                    f"{len(backups)} <= {config.max_backups}"
                )
                return report

            to_remove = backups[: len(backups) - config.max_backups]
            for backup_path in to_remove:
                try:
                    backup_path.unlink()
                except OSError as e:
                    logger.error(f"Failed to remove old backup {backup_path}: {e}")
                    raise RetentionError(
                        f"Failed to remove old backup {backup_path}: {e}"
                    ) from e
                report.removed.append(backup_path)
                report.kept -= 1
                logger.debug(f"Removed: {backup_path}")

                sidecar = metadata_path_for(backup_path)
                if sidecar.exists():
                    try:
                        sidecar.unlink()
                        report.removed_sidecars.append(sidecar)
                    except OSError as e:
                        logger.warning(f"Could not remove sidecar {sidecar}: {e}")

        logger.info(
            f"Retention for {source_path.name}: removed {report.total_removed}, kept {report.kept}",
            extra={"source_path": str(source_path), "removed": report.total_removed},
        )
        return report

    def list_backups(self, source_path: Path, directory: Path) -> list[Path]:
        """
        List backup files of ``source_path`` in ``directory``, oldest first.

        Sidecars are excluded. Ordering is by modification time, ties broken
        by name.
        """
        if not directory.is_dir():
            return []

        prefix = backup_prefix(source_path)
        candidates = [
            path
            for path in directory.iterdir()
            if path.name.startswith(prefix) and not is_sidecar(path) and path.is_file()
        ]

        def sort_key(path: Path) -> tuple[int, str]:
            try:
                return path.stat().st_mtime_ns, path.name
            except OSError:
                return 0, path.name

        return sorted(candidates, key=sort_key)
