"""Retention policy: remove run directories past the retention window."""

import shutil
from datetime import date, timedelta
from pathlib import Path
from typing import Optional

from .._utils import format_bytes, logger
from .models import RetentionResult
from .utils import directory_size, parse_run_date


class RetentionSweeper:
    """Delete run directories whose name-encoded date is past the window.

    Only the leading ``YYYY-MM-DD`` of a directory name is considered; file
    system timestamps are ignored. Entries whose name does not start with a
    date are never touched.
    """

    def __init__(
        self,
        backup_root: Path,
        retention_days: int,
        min_keep: int = 0,
        dry_run: bool = False,
    ):
        self.backup_root = Path(backup_root)
        self.retention_days = retention_days
        self.min_keep = min_keep
        self.dry_run = dry_run

    def cutoff(self, today: Optional[date] = None) -> date:
        return (today or date.today()) - timedelta(days=self.retention_days)

    async def sweep(self, today: Optional[date] = None) -> RetentionResult:
        """Remove expired run directories.

        A directory dated exactly on the cutoff day is kept.

        Args:
            today: Reference day, defaults to the current local date

        Returns:
            RetentionResult with deleted names and freed bytes
        """
        result = RetentionResult()
        if not self.backup_root.is_dir():
            return result

        cutoff = self.cutoff(today)
        logger.info(f"Sweeping backups older than {cutoff.isoformat()}...")

        dated = []
        for child in self.backup_root.iterdir():
            if not child.is_dir() or child.is_symlink():
                continue
            run_date = parse_run_date(child.name)
            if run_date is None:
                logger.debug(f"Ignoring non-run directory: {child.name}")
                continue
            dated.append((run_date, child))

        # Newest first so the min_keep most recent runs are protected
        dated.sort(key=lambda item: (item[0], item[1].name), reverse=True)

        for index, (run_date, path) in enumerate(dated):
            if run_date >= cutoff or index < self.min_keep:
                result.kept += 1
                continue

            size = directory_size(path)
            if self.dry_run:
                logger.info(f"[dry-run] Would delete expired backup: {path.name} ({format_bytes(size)})")
                result.kept += 1
                continue

            try:
                shutil.rmtree(path)
            except OSError as e:
                logger.error(f"Failed to delete expired backup {path.name}: {e}")
                result.failed[path.name] = str(e)
                continue

            result.deleted.append(path.name)
            result.freed_bytes += size
            logger.info(f"Deleted expired backup: {path.name}")

        if result.deleted:
            logger.info(f"Deleted {len(result.deleted)} backups, freed {format_bytes(result.freed_bytes)}")
        else:
            logger.info("No backups to delete")

        return result
