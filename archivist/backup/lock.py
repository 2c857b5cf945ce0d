"""Advisory lock file shared by backup and restore runs."""

import os
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Tuple

from .._utils import logger
from ..exceptions import LockContention

DEFAULT_STALE_AFTER = 2 * 60 * 60


class LockManager:
    """Cooperative mutual exclusion through a single lock file.

    The lock holds the owner pid and acquisition time. A lock older than
    ``stale_after`` seconds is presumed abandoned by a crashed run and is
    reclaimed.
    """

    def __init__(self, lock_path: Path, stale_after: int = DEFAULT_STALE_AFTER):
        self.lock_path = Path(lock_path)
        self.stale_after = stale_after

    def acquire(self) -> bool:
        """Try to take the lock.

        Returns:
            True if the lock is now held by this process, False if another
            run holds a fresh lock
        """
        if self.lock_path.exists():
            try:
                age = time.time() - self.lock_path.stat().st_mtime
            except FileNotFoundError:
                age = None

            if age is not None:
                if age <= self.stale_after:
                    return False
                logger.warning(f"Removing stale lock ({int(age)}s old): {self.lock_path}")
                try:
                    self.lock_path.unlink()
                except FileNotFoundError:
                    pass

        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            # Lost the race against another process reclaiming the same lock
            return False

        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(f"{os.getpid()}\n{datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

        logger.debug(f"Lock acquired: {self.lock_path}")
        return True

    def release(self) -> None:
        """Delete the lock file if present. Safe to call repeatedly."""
        try:
            self.lock_path.unlink()
            logger.debug(f"Lock released: {self.lock_path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to release lock {self.lock_path}: {e}")

    @contextmanager
    def held(self) -> Iterator["LockManager"]:
        """Hold the lock for the duration of the block.

        Raises:
            LockContention: another run holds a fresh lock
        """
        if not self.acquire():
            raise LockContention(str(self.lock_path))
        try:
            yield self
        finally:
            self.release()

    def read_owner(self) -> Optional[Tuple[int, str]]:
        """Return ``(pid, acquired_at)`` of the current holder, if readable."""
        try:
            content = self.lock_path.read_text(encoding="utf-8")
        except OSError:
            return None

        lines = content.splitlines()
        if len(lines) < 2:
            return None
        try:
            return int(lines[0]), lines[1]
        except ValueError:
            return None
