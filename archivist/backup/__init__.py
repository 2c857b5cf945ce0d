"""Backup, verification, retention and restore for a database and an uploads tree."""

from .manager import BackupManager
from .models import BackupManifest, BackupResult, RestoreResult, RunStatus, RunType
from .restore import RestoreOrchestrator

__all__ = [
    "BackupManager",
    "BackupManifest",
    "BackupResult",
    "RestoreOrchestrator",
    "RestoreResult",
    "RunStatus",
    "RunType",
]
