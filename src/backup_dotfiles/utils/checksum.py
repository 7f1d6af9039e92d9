"""
Checksum utilities for backup verification.

Provides SHA-256 checksum calculation for file integrity verification.
"""

import gzip
import hashlib
import logging
from pathlib import Path
from typing import BinaryIO

logger = logging.getLogger(__name__)

# Buffer size for reading files (64KB)
BUFFER_SIZE = 65536


def _hash_stream(stream: BinaryIO) -> str:
    sha256 = hashlib.sha256()
    while True:
        data = stream.read(BUFFER_SIZE)
        if not data:
            break
        sha256.update(data)
    return sha256.hexdigest()


def calculate_sha256(file_path: Path) -> str:
    """
    Calculate SHA-256 checksum of a file.

    Args:
        file_path: Path to file

    Returns:
        Hexadecimal SHA-256 checksum

    Raises:
        OSError: If file cannot be read
    """
    try:
        with open(file_path, "rb") as f:
            checksum = _hash_stream(f)
        logger.debug(f"SHA-256 checksum for {file_path}: {checksum}")
        return checksum
    except OSError as e:
        logger.error(f"Failed to read file for checksum: {file_path}: {e}")
        raise


def calculate_content_sha256(file_path: Path, compressed: bool) -> str:
    """
    Calculate SHA-256 of the logical content of a backup file.

    Gzip backups are hashed after decompression so the result is comparable
    with the checksum of the original file.

    Raises:
        OSError: If file cannot be read or decompressed
    """
    if not compressed:
        return calculate_sha256(file_path)

    try:
        with gzip.open(file_path, "rb") as f:
            return _hash_stream(f)
    except OSError as e:
        logger.error(f"Failed to decompress file for checksum: {file_path}: {e}")
        raise


def verify_checksum(file_path: Path, expected_checksum: str, compressed: bool = False) -> bool:
    """
    Verify file checksum matches expected value.

    Args:
        file_path: Path to file
        expected_checksum: Expected SHA-256 checksum
        compressed: Whether the file is gzip-compressed

    Returns:
        True if checksums match, False otherwise
    """
    try:
        actual_checksum = calculate_content_sha256(file_path, compressed)
        matches = actual_checksum.lower() == expected_checksum.lower()

        if matches:
            logger.info(f"Checksum verified for {file_path}")
        else:
            logger.error(
                f"Checksum mismatch for {file_path}: "
                f"expected {expected_checksum}, got {actual_checksum}"
            )

        return matches
    except OSError:
        logger.error(f"Failed to verify checksum for {file_path}")
        return False
