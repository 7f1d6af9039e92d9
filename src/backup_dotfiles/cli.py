"""
CLI commands for the dotfiles backup system.

Provides manual commands for backup, restore, verification, listing and
fingerprinting.
"""

import argparse
import json
import sys
from pathlib import Path

from backup_dotfiles.config.settings import load_settings
from backup_dotfiles.core.backup import BackupManager
from backup_dotfiles.core.fingerprint import fingerprint_directory, fingerprint_file
from backup_dotfiles.core.restore import RestoreManager, dump_backup_list, list_backups
from backup_dotfiles.core.retention import RetentionEnforcer
from backup_dotfiles.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def cmd_backup(args) -> int:
    """Create a backup."""
    try:
        settings = load_settings()
        setup_logging(settings, use_json=False)

        config = settings.backup.to_backup_config(
            directory=args.directory,
            backup_format=args.format,
            compression=True if args.compress else None,
            incremental=False if args.no_incremental else None,
            backup_metadata=True if args.metadata else None,
            max_backups=args.max_backups,
        )
        manager = BackupManager(dry_run=args.dry_run or settings.backup.dry_run)
        result = manager.create_backup(args.path, config)

        if result is None:
            print(f"No backup needed: {args.path}")
            return 0

        print(f"Backup created: {result.backup_path}")
        if result.metadata_path:
            print(f"Metadata: {result.metadata_path}")
        print(f"Size: {result.size} bytes")
        print(f"Checksum: {result.checksum}")
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.error(f"Backup failed: {e}", exc_info=True)
        return 1


def cmd_list(args) -> int:
    """List backups recorded in the ledger."""
    try:
        settings = load_settings()
        setup_logging(settings, use_json=False)

        config = settings.backup.to_backup_config(directory=args.directory)
        entries = list_backups(config.directory, args.file)

        if args.json:
            print(dump_backup_list(entries))
        else:
            print(f"Backups in {config.directory} ({len(entries)}):")
            for entry in entries:
                status = "" if Path(entry.backup_path).exists() else " [removed]"
                print(f"  {Path(entry.backup_path).name}{status}")
                print(f"    Original: {entry.original_path}")
                print(f"    Date: {entry.timestamp.isoformat()}")
                print(f"    Size: {entry.backup_size} bytes")
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.error(f"List failed: {e}", exc_info=True)
        return 1


def cmd_verify(args) -> int:
    """Verify a backup against its metadata sidecar."""
    try:
        settings = load_settings()
        setup_logging(settings, use_json=False)

        if RestoreManager().verify_backup(Path(args.backup_file)):
            print("Verification: PASSED")
            return 0
        print("Verification: FAILED", file=sys.stderr)
        return 1

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.error(f"Verify failed: {e}", exc_info=True)
        return 1


def cmd_restore(args) -> int:
    """Restore from a backup."""
    try:
        settings = load_settings()
        setup_logging(settings, use_json=False)

        result = RestoreManager().restore_backup(
            backup_path=Path(args.backup_file),
            target_path=Path(args.to) if args.to else None,
            verify=not args.no_verify,
        )
        print(f"Restored to: {result.target_path}")
        if result.verified:
            print("Checksum: VERIFIED")
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.error(f"Restore failed: {e}", exc_info=True)
        return 1


def cmd_prune(args) -> int:
    """Apply the retention limit to one file's backups."""
    try:
        settings = load_settings()
        setup_logging(settings, use_json=False)

        config = settings.backup.to_backup_config(
            directory=args.directory, max_backups=args.max_backups
        )
        report = RetentionEnforcer().enforce_retention(Path(args.path).absolute(), config)
        print(f"Removed {report.total_removed} backups, kept {report.kept}")
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.error(f"Prune failed: {e}", exc_info=True)
        return 1


def cmd_fingerprint(args) -> int:
    """Print the fingerprint of a file or directory."""
    try:
        settings = load_settings()
        setup_logging(settings, use_json=False)

        path = Path(args.path)
        if path.is_dir() and not path.is_symlink():
            state = fingerprint_directory(path, recursive=args.recursive)
        else:
            state = fingerprint_file(path)

        if args.json:
            print(json.dumps(state.to_dict(), indent=2))
        else:
            data = state.to_dict()
            for key in ("path", "exists", "size", "file_count", "content_hash", "symlink_target"):
                if data.get(key) not in (None, ""):
                    print(f"{key}: {data[key]}")
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.error(f"Fingerprint failed: {e}", exc_info=True)
        return 1


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="dotbackup",
        description="Dotfiles Backup CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Backup command
    backup_parser = subparsers.add_parser("backup", help="Create a backup")
    backup_parser.add_argument("path", help="File to back up")
    backup_parser.add_argument("--directory", "-d", help="Backup directory")
    backup_parser.add_argument(
        "--format",
        choices=["timestamped", "numbered", "git_style"],
        help="Backup naming format",
    )
    backup_parser.add_argument("--compress", action="store_true", help="Gzip the backup")
    backup_parser.add_argument(
        "--no-incremental", action="store_true", help="Back up even if content is unchanged"
    )
    backup_parser.add_argument("--metadata", action="store_true", help="Write a .meta sidecar")
    backup_parser.add_argument("--max-backups", type=int, help="Backups to keep for this file")
    backup_parser.add_argument("--dry-run", action="store_true", help="Simulate only")
    backup_parser.set_defaults(func=cmd_backup)

    # List command
    list_parser = subparsers.add_parser("list", help="List recorded backups")
    list_parser.add_argument("--directory", "-d", help="Backup directory")
    list_parser.add_argument("--file", help="Only backups of this file")
    list_parser.add_argument("--json", action="store_true", help="JSON output")
    list_parser.set_defaults(func=cmd_list)

    # Verify command
    verify_parser = subparsers.add_parser("verify", help="Verify a backup checksum")
    verify_parser.add_argument("backup_file", help="Path to backup file")
    verify_parser.set_defaults(func=cmd_verify)

    # Restore command
    restore_parser = subparsers.add_parser("restore", help="Restore from backup")
    restore_parser.add_argument("backup_file", help="Path to backup file")
    restore_parser.add_argument("--to", help="Restore here instead of the original path")
    restore_parser.add_argument(
        "--no-verify", action="store_true", help="Don't check the restored checksum"
    )
    restore_parser.set_defaults(func=cmd_restore)

    # Prune command
    prune_parser = subparsers.add_parser("prune", help="Apply retention to a file's backups")
    prune_parser.add_argument("path", help="Original file")
    prune_parser.add_argument("--directory", "-d", help="Backup directory")
    prune_parser.add_argument("--max-backups", type=int, help="Backups to keep")
    prune_parser.set_defaults(func=cmd_prune)

    # Fingerprint command
    fp_parser = subparsers.add_parser("fingerprint", help="Show a file or directory fingerprint")
    fp_parser.add_argument("path", help="File or directory")
    fp_parser.add_argument(
        "--recursive", action="store_true", help="Include subdirectories"
    )
    fp_parser.add_argument("--json", action="store_true", help="JSON output")
    fp_parser.set_defaults(func=cmd_fingerprint)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
