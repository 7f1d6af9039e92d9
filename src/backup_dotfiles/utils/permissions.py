"""
Permission-mode string handling.

Modes travel as octal text ("0644", "755") in metadata and configuration.
"""

import re
import stat

from backup_dotfiles.utils.exceptions import ConfigurationError

# Applied when no mode is given
DEFAULT_FILE_MODE = 0o600
MAX_FILE_MODE = 0o777

_OCTAL_DIGITS = re.compile(r"[0-7]+")


def parse_permission_string(perm: str) -> int:
    """
    Parse an octal permission string.

    Args:
        perm: Octal text such as "0644" or "755"; empty means the default

    Returns:
        Permission bits as an integer

    Raises:
        ConfigurationError: If the string is not octal or exceeds 0777
    """
    if perm == "":
        return DEFAULT_FILE_MODE

    # Digits only: int() would also take a sign or underscores
    trimmed = perm.strip()
    if not _OCTAL_DIGITS.fullmatch(trimmed):
        raise ConfigurationError(f"Invalid permission format {perm!r}")
    parsed = int(trimmed, 8)

    if parsed > MAX_FILE_MODE:
        raise ConfigurationError(f"Permission {perm!r} is out of valid range (0-777)")

    return parsed


def format_file_mode(mode: int) -> str:
    """Format the permission bits of ``mode`` as octal text like "0644"."""
    return f"0{stat.S_IMODE(mode):o}"
