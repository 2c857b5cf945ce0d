"""Data models for backup/restore operations."""

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .._utils import logger


class RunType(str, Enum):
    """What a backup run covers."""
    FULL = "full"
    WEEKLY = "weekly"
    DAILY = "daily"


class RunState(str, Enum):
    """Lifecycle of a backup run."""
    PENDING = "pending"
    LOCK_ACQUIRED = "lock_acquired"
    DB_PHASE = "db_phase"
    FILES_PHASE = "files_phase"
    MANIFEST_WRITTEN = "manifest_written"
    RETENTION_SWEPT = "retention_swept"
    REPORTED = "reported"
    COMPLETE = "complete"
    FAILED = "failed"


class PhaseState(str, Enum):
    """State of a single archiving phase."""
    PENDING = "pending"
    SKIPPED = "skipped"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class RunStatus(str, Enum):
    """Overall outcome of a backup or restore invocation."""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    ALREADY_RUNNING = "already_running"


class ServerInfo(BaseModel):
    """Host facts recorded with every run."""

    hostname: str
    python_version: str
    os: str


class ManifestMetadata(BaseModel):
    """Run metadata block, present in every manifest."""

    date: str = Field(..., description="Run identifier (YYYY-MM-DD_HH-MM-SS)")
    timestamp: int = Field(..., description="Unix time the manifest was built")
    type: RunType
    duration: float = Field(..., description="Seconds elapsed when the manifest was built")
    total_size: int = Field(..., description="Bytes across all artifacts")
    server: ServerInfo
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class DatabaseArtifact(BaseModel):
    """Database dump produced by a run."""

    file: str
    size: int
    checksum: str
    tables: List[str] = Field(default_factory=list)
    rows: int = 0
    compressed: bool
    original_size: int
    compression_ratio: Optional[float] = None


class FileArtifact(BaseModel):
    """Uploads archive produced by a run."""

    file: str
    size: int
    checksum: str
    count: int
    original_size: int
    compression_ratio: float


class BackupManifest(BaseModel):
    """Durable record of one backup run."""

    metadata: ManifestMetadata
    database: Optional[DatabaseArtifact] = None
    files: Optional[FileArtifact] = None


class BackupResult(BaseModel):
    """Outcome of a backup invocation."""

    run_id: Optional[str] = None
    status: RunStatus
    run_type: Optional[RunType] = None
    duration: float = 0.0
    total_size: int = 0
    manifest_path: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == RunStatus.SUCCESS


class RestoreResult(BaseModel):
    """Outcome of a restore invocation."""

    run_id: str
    status: RunStatus
    database_restored: bool = False
    files_restored: bool = False
    safety_path: Optional[str] = None
    pre_restore_dump: Optional[str] = None
    skipped: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == RunStatus.SUCCESS


class RunSummary(BaseModel):
    """Listing entry for a run directory."""

    run_id: str
    type: Optional[RunType] = None
    total_size: int = 0
    database: bool = False
    files: bool = False
    errors: int = 0
    manifest: bool = True


@dataclass
class RetentionResult:
    """Accounting for one retention sweep."""
    deleted: List[str] = field(default_factory=list)
    freed_bytes: int = 0
    kept: int = 0
    failed: Dict[str, str] = field(default_factory=dict)


@dataclass
class BackupRun:
    """Mutable state of a backup run while its phases execute."""
    run_id: str
    run_type: RunType = RunType.DAILY
    started_at: float = field(default_factory=time.time)
    state: RunState = RunState.PENDING
    database_phase: PhaseState = PhaseState.PENDING
    files_phase: PhaseState = PhaseState.PENDING
    total_size: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    run_dir: Optional[Path] = None

    @property
    def duration(self) -> float:
        return round(time.time() - self.started_at, 2)

    def advance(self, state: RunState) -> None:
        """Move to the next lifecycle state. A failed run stays failed."""
        if self.state == RunState.FAILED:
            return
        logger.debug(f"Run {self.run_id}: {self.state.value} -> {state.value}")
        self.state = state

    def fail(self, message: str) -> None:
        """Abort the run before its phases could execute."""
        self.errors.append(message)
        self.state = RunState.FAILED

    @property
    def status(self) -> RunStatus:
        if self.state == RunState.FAILED:
            return RunStatus.FAILED
        if not self.errors:
            return RunStatus.SUCCESS
        if PhaseState.DONE in (self.database_phase, self.files_phase):
            return RunStatus.PARTIAL
        return RunStatus.FAILED

    @property
    def success(self) -> bool:
        return self.status == RunStatus.SUCCESS
