"""Utility functions for backup/restore operations."""

import gzip
import hashlib
import json
import os
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .._utils import logger

CHUNK_SIZE = 1024 * 1024
RUN_ID_FORMAT = "%Y-%m-%d_%H-%M-%S"
_RUN_DATE_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})")


def compute_checksum(file_path: Path) -> str:
    """Compute SHA-256 checksum of file.

    Args:
        file_path: Path to file

    Returns:
        SHA-256 checksum as hex string with 'sha256:' prefix
    """
    sha256 = hashlib.sha256()

    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256.update(chunk)

    return f"sha256:{sha256.hexdigest()}"


def verify_checksum(file_path: Path, expected_checksum: str) -> bool:
    """Verify file checksum.

    Args:
        file_path: Path to file
        expected_checksum: Expected checksum (with 'sha256:' prefix)

    Returns:
        True if checksum matches, False otherwise
    """
    actual_checksum = compute_checksum(file_path)
    return actual_checksum == expected_checksum


def compress_file(
    source: Path,
    dest: Path,
    level: int = 6,
    chunk_size: int = CHUNK_SIZE,
) -> int:
    """Stream a file through gzip in fixed-size blocks.

    Args:
        source: Uncompressed input file
        dest: Output ``.gz`` file
        level: gzip compression level (1-9)
        chunk_size: Bytes read per block

    Returns:
        Size of the compressed file in bytes
    """
    with open(source, "rb") as f_in, gzip.open(dest, "wb", compresslevel=level) as f_out:
        for chunk in iter(lambda: f_in.read(chunk_size), b""):
            f_out.write(chunk)

    return dest.stat().st_size


def decompress_file(source: Path, dest: Path, chunk_size: int = CHUNK_SIZE) -> int:
    """Inverse of :func:`compress_file`.

    Returns:
        Size of the decompressed file in bytes
    """
    with gzip.open(source, "rb") as f_in, open(dest, "wb") as f_out:
        for chunk in iter(lambda: f_in.read(chunk_size), b""):
            f_out.write(chunk)

    return dest.stat().st_size


def compression_ratio(compressed_size: int, original_size: int) -> float:
    """Space saved as a percentage rounded to two decimals."""
    if original_size <= 0:
        return 0.0
    return round((1 - compressed_size / original_size) * 100, 2)


def generate_run_id(now: Optional[datetime] = None) -> str:
    """Generate run ID with local timestamp.

    Returns:
        Run ID in format: YYYY-MM-DD_HH-MM-SS
    """
    return (now or datetime.now()).strftime(RUN_ID_FORMAT)


def parse_run_date(name: str) -> Optional[date]:
    """Parse the leading ``YYYY-MM-DD`` token of a run directory name.

    Returns:
        The calendar date, or None when the name does not start with a valid date
    """
    match = _RUN_DATE_RE.match(name)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), "%Y-%m-%d").date()
    except ValueError:
        return None


def directory_size(directory: Path) -> int:
    """Total size in bytes of regular files below a directory."""
    total = 0
    for path in directory.rglob("*"):
        if path.is_file() and not path.is_symlink():
            total += path.stat().st_size
    return total


async def save_manifest(manifest: Dict[str, Any], output_path: Path) -> None:
    """Save manifest JSON to file atomically.

    The document is written to a temporary sibling, flushed to disk and then
    renamed over the target, so readers never observe a partial manifest.

    Args:
        manifest: Manifest dictionary
        output_path: Output file path
    """
    tmp_path = output_path.with_name(output_path.name + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(manifest, f, indent=2, ensure_ascii=False, default=str)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, output_path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()

    logger.debug(f"Manifest saved: {output_path}")


async def load_manifest(manifest_path: Path) -> Dict[str, Any]:
    """Load manifest JSON from file.

    Args:
        manifest_path: Manifest file path

    Returns:
        Manifest dictionary
    """
    with open(manifest_path, "r", encoding="utf-8") as f:
        manifest = json.load(f)

    logger.debug(f"Manifest loaded: {manifest_path}")
    return manifest
