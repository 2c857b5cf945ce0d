"""Error taxonomy for backup and restore runs."""

from pathlib import Path
from typing import Optional, Sequence


class BackupError(Exception):
    """Base exception for backup/restore errors."""
    pass


class LockContention(BackupError):
    """Another backup or restore currently holds the lock."""

    def __init__(self, lock_path: str):
        super().__init__(f"Another run holds the lock: {lock_path}")
        self.lock_path = lock_path


class SubprocessFailure(BackupError):
    """An external dump/restore utility exited with a non-zero status."""

    def __init__(self, command: Sequence[str], returncode: int, output: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        program = self.command[0] if self.command else "command"
        message = f"{program} exited with status {returncode}"
        if output.strip():
            message = f"{message}: {output.strip()}"
        super().__init__(message)


class IntegrityFailure(BackupError):
    """A produced or stored artifact failed verification."""
    pass


class FilesystemFailure(BackupError):
    """A directory or file could not be created, moved or read.

    ``safety_path`` is set when a live tree had already been moved aside.
    """

    def __init__(self, message: str, safety_path: Optional[Path] = None):
        super().__init__(message)
        self.safety_path = safety_path
