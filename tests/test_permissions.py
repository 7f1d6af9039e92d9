"""Tests for permission string parsing."""

import pytest

from backup_dotfiles.utils.exceptions import ConfigurationError
from backup_dotfiles.utils.permissions import format_file_mode, parse_permission_string


@pytest.mark.parametrize(
    "text, expected",
    [("0644", 0o644), ("755", 0o755), ("0", 0), ("0000", 0), ("0777", 0o777), ("", 0o600)],
)
def test_parse_permission_string(text, expected):
    assert parse_permission_string(text) == expected


@pytest.mark.parametrize(
    "text", ["1000", "0778", "rw-r--r--", "9", "-644", "-1", "+644", "1_0", " ", "0o644"]
)
def test_invalid_permission_string(text):
    with pytest.raises(ConfigurationError):
        parse_permission_string(text)


def test_format_file_mode_drops_type_bits():
    assert format_file_mode(0o100644) == "0644"
    assert format_file_mode(0o40755) == "0755"
