"""Post-creation sanity checks for backup artifacts."""

import gzip
import zipfile
import zlib
from pathlib import Path

from .._utils import logger
from ..exceptions import IntegrityFailure
from .utils import verify_checksum

HEADER_BYTES = 1024
DUMP_HEADER_TOKENS = ("MySQL", "MariaDB", "CREATE")


class IntegrityVerifier:
    """Verify database dumps and upload archives after they are written."""

    def verify_database(self, file_path: Path) -> None:
        """Check that a dump is readable and looks like a dump.

        Raises:
            IntegrityFailure: the dump is missing, empty, undecompressable,
                or lacks a recognizable header
        """
        if not file_path.exists() or file_path.stat().st_size == 0:
            raise IntegrityFailure(f"Database dump missing or empty: {file_path.name}")

        if file_path.suffix == ".gz":
            try:
                with gzip.open(file_path, "rb") as f:
                    block = f.read(HEADER_BYTES)
            except (OSError, EOFError, zlib.error) as e:
                raise IntegrityFailure(f"Cannot decompress {file_path.name}: {e}") from e
            if not block:
                raise IntegrityFailure(f"Compressed dump is empty: {file_path.name}")
        else:
            with open(file_path, "rb") as f:
                header = f.read(HEADER_BYTES).decode("utf-8", errors="ignore")
            if not any(token in header for token in DUMP_HEADER_TOKENS):
                raise IntegrityFailure(f"No dump header found in {file_path.name}")

        logger.info("Database integrity check: OK")

    def verify_archive(self, file_path: Path) -> int:
        """Check ZIP structure and CRCs.

        Returns:
            Number of entries in the archive

        Raises:
            IntegrityFailure: the archive is corrupt or has no entries
        """
        try:
            with zipfile.ZipFile(file_path, "r") as zf:
                bad_member = zf.testzip()
                entries = len(zf.infolist())
        except (zipfile.BadZipFile, OSError, zlib.error) as e:
            logger.error(f"Archive is corrupt: {file_path.name}")
            raise IntegrityFailure(f"Corrupt archive {file_path.name}: {e}") from e

        if bad_member is not None:
            logger.error(f"Archive member failed CRC check: {bad_member}")
            raise IntegrityFailure(f"CRC mismatch in {file_path.name}: {bad_member}")

        if entries == 0:
            logger.warning(f"Archive is empty: {file_path.name}")
            raise IntegrityFailure(f"Archive has no entries: {file_path.name}")

        logger.info(f"Archive integrity check: OK ({entries} entries)")
        return entries

    def verify_checksum(self, file_path: Path, expected: str) -> None:
        """Compare a stored artifact against the checksum in its manifest.

        Raises:
            IntegrityFailure: the file is missing or its checksum differs
        """
        if not file_path.exists():
            raise IntegrityFailure(f"Artifact not found: {file_path}")

        if not verify_checksum(file_path, expected):
            raise IntegrityFailure(f"Checksum mismatch for {file_path.name}: expected {expected}")
        logger.debug(f"Checksum verified: {file_path.name}")
