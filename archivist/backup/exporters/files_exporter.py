"""Uploads tree backup/restore exporter (ZIP)."""

import fnmatch
import os
import zipfile
import zlib
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Sequence

from ..._utils import format_bytes, logger
from ...exceptions import FilesystemFailure
from ..models import FileArtifact
from ..utils import compression_ratio, compute_checksum


@dataclass(frozen=True)
class TreeEntry:
    """A regular file or an empty directory found below the source root."""
    path: Path
    arcname: str
    is_dir: bool = False
    size: int = 0


@dataclass
class ArchiveStats:
    """Running totals while entries are written to the archive."""
    files: int = 0
    directories: int = 0
    original_size: int = 0

    @property
    def entries(self) -> int:
        return self.files + self.directories

    def add(self, entry: TreeEntry) -> "ArchiveStats":
        if entry.is_dir:
            self.directories += 1
        else:
            self.files += 1
            self.original_size += entry.size
        return self


def walk_tree(root: Path, exclude_patterns: Sequence[str] = ()) -> Iterator[TreeEntry]:
    """Yield every regular file and every empty directory below ``root``.

    Traversal is depth-first with siblings in name order. Symlinks and
    special files are skipped. A directory whose children are all excluded
    counts as empty.
    """

    def excluded(relative: str, name: str) -> bool:
        return any(
            fnmatch.fnmatch(relative, pattern) or fnmatch.fnmatch(name, pattern)
            for pattern in exclude_patterns
        )

    def walk(directory: Path, prefix: str) -> Iterator[TreeEntry]:
        with os.scandir(directory) as it:
            children = sorted(it, key=lambda e: e.name)

        for child in children:
            relative = f"{prefix}{child.name}"
            if excluded(relative, child.name):
                continue

            if child.is_dir(follow_symlinks=False):
                found = False
                for entry in walk(Path(child.path), relative + "/"):
                    found = True
                    yield entry
                if not found:
                    yield TreeEntry(path=Path(child.path), arcname=relative + "/", is_dir=True)
            elif child.is_file(follow_symlinks=False):
                yield TreeEntry(
                    path=Path(child.path),
                    arcname=relative,
                    size=child.stat(follow_symlinks=False).st_size,
                )
            else:
                logger.debug(f"Skipping non-regular file: {relative}")

    yield from walk(root, "")


class FileArchiver:
    """Pack the uploads tree into a ZIP archive and unpack it on restore."""

    def __init__(
        self,
        compression_level: int = 6,
        exclude_patterns: Optional[Sequence[str]] = None,
        progress_interval: int = 100,
    ):
        self.compression_level = compression_level
        self.exclude_patterns = list(exclude_patterns or [])
        self.progress_interval = progress_interval

    async def export(self, source_root: Path, output_dir: Path, run_id: str) -> Optional[FileArtifact]:
        """Archive ``source_root`` into ``output_dir``.

        Args:
            source_root: Uploads directory
            output_dir: Directory to write the archive into
            run_id: Run identifier used in the archive name

        Returns:
            FileArtifact, or None when the source root does not exist
        """
        if not source_root.is_dir():
            logger.warning(f"Uploads directory not found, skipping file backup: {source_root}")
            return None

        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemFailure(f"Cannot create files backup directory {output_dir}: {e}") from e

        archive_path = output_dir / f"uploads_{run_id}.zip"
        stats = ArchiveStats()

        logger.info(f"Archiving {source_root}...")
        with zipfile.ZipFile(
            archive_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=self.compression_level
        ) as zf:
            for entry in walk_tree(source_root, self.exclude_patterns):
                zf.write(entry.path, arcname=entry.arcname)
                stats.add(entry)
                if not entry.is_dir and stats.files % self.progress_interval == 0:
                    logger.info(f"Processed {stats.files} files...")

        archive_size = archive_path.stat().st_size
        logger.info(f"Archived {stats.files} files ({format_bytes(stats.original_size)}) into {format_bytes(archive_size)}")

        return FileArtifact(
            file=archive_path.name,
            size=archive_size,
            checksum=compute_checksum(archive_path),
            count=stats.files,
            original_size=stats.original_size,
            compression_ratio=compression_ratio(archive_size, stats.original_size),
        )

    async def restore(self, archive_path: Path, target_root: Path) -> Optional[Path]:
        """Replace ``target_root`` with the archive contents.

        The current tree is renamed aside, never deleted.

        Args:
            archive_path: ZIP archive produced by :meth:`export`
            target_root: Uploads directory to recreate

        Returns:
            Path the previous tree was moved to, or None if there was none

        Raises:
            FilesystemFailure: the tree could not be moved aside or the archive
                could not be extracted; ``safety_path`` tells where the old tree went
        """
        if not archive_path.exists():
            raise FileNotFoundError(f"Archive not found: {archive_path}")

        safety_path = None
        if target_root.exists():
            safety_path = self._safety_path(target_root)
            try:
                target_root.rename(safety_path)
            except OSError as e:
                raise FilesystemFailure(f"Cannot move {target_root} aside: {e}") from e
            logger.info(f"Previous uploads moved to: {safety_path}")

        try:
            target_root.mkdir(parents=True, exist_ok=True)
            with zipfile.ZipFile(archive_path, "r") as zf:
                zf.extractall(target_root)
        except (zipfile.BadZipFile, OSError, zlib.error) as e:
            message = f"Cannot extract {archive_path.name}: {e}"
            if safety_path is not None:
                message = f"{message} (previous uploads kept at {safety_path})"
            raise FilesystemFailure(message, safety_path=safety_path) from e

        logger.info(f"Files restored into {target_root}")
        return safety_path

    @staticmethod
    def _safety_path(target_root: Path) -> Path:
        stamp = datetime.now().strftime("%Y%m%d%H%M%S")
        candidate = target_root.with_name(f"{target_root.name}_backup_{stamp}")
        suffix = 1
        while candidate.exists():
            candidate = target_root.with_name(f"{target_root.name}_backup_{stamp}_{suffix}")
            suffix += 1
        return candidate
