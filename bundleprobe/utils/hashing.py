# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Hashing utilities for bundleprobe.

SHA256 is used in two places: pinning the downloaded toolchain installer,
and recording the digests of the input archives in the run report.
"""

import hashlib
import hmac
from pathlib import Path

HASH_BUFFER_SIZE = 65536  # 64 KiB


def compute_sha256(file_path: Path) -> str:
    """
    Compute the SHA256 hex digest of a file.

    Reads in 64 KiB chunks so release bundles of several hundred MB don't
    get loaded into memory.

    Args:
        file_path: Path to the file to hash.

    Returns:
        Lowercase hex string of the SHA256 digest.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        OSError: If the file can't be read.
    """
    hasher = hashlib.sha256()
    with open(file_path, "rb") as f:
        while True:
            chunk = f.read(HASH_BUFFER_SIZE)
            if not chunk:
                break
            hasher.update(chunk)
    return hasher.hexdigest()


def compute_sha256_bytes(data: bytes) -> str:
    """Compute the SHA256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def digests_match(actual_hash: str, expected_hash: str) -> bool:
    """Compare two hex digests case-insensitively in constant time."""
    return hmac.compare_digest(actual_hash.lower(), expected_hash.lower())

