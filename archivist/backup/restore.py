"""Restore orchestration: the backup pipeline in reverse for one run."""

import zipfile
from pathlib import Path
from typing import Optional

from .._utils import logger
from ..config import BackupConfig
from ..exceptions import BackupError, FilesystemFailure, LockContention
from .exporters import DatabaseArchiver, FileArchiver
from .lock import LockManager
from .manifest import ManifestBuilder
from .models import BackupManifest, RestoreResult, RunStatus
from .utils import generate_run_id
from .verifier import IntegrityVerifier

RESTORE_ERRORS = (BackupError, OSError, zipfile.BadZipFile)


class RestoreOrchestrator:
    """Restore the database and/or the uploads tree from a prior run.

    Steps run one after another. A failing step stops the remaining ones;
    steps that already succeeded are not rolled back.
    """

    def __init__(
        self,
        config: BackupConfig,
        database: DatabaseArchiver,
        files: FileArchiver,
        lock: LockManager,
        verifier: Optional[IntegrityVerifier] = None,
        manifests: Optional[ManifestBuilder] = None,
    ):
        self.config = config
        self.database = database
        self.files = files
        self.lock = lock
        self.verifier = verifier or IntegrityVerifier()
        self.manifests = manifests or ManifestBuilder()

    def run_dir(self, run_id: str) -> Path:
        if not run_id or Path(run_id).name != run_id or run_id in (".", ".."):
            raise FilesystemFailure(f"Invalid run identifier: {run_id!r}")
        path = self.config.backup_root / run_id
        if not path.is_dir():
            raise FilesystemFailure(f"Backup not found: {run_id}")
        return path

    async def restore(self, run_id: str, database: bool = True, files: bool = False) -> RestoreResult:
        """Restore the selected parts of run ``run_id``.

        Args:
            run_id: Run directory name (YYYY-MM-DD_HH-MM-SS)
            database: Restore the database dump
            files: Restore the uploads archive

        Returns:
            RestoreResult; ``already_running`` when another run holds the lock
        """
        result = RestoreResult(run_id=run_id, status=RunStatus.SUCCESS)

        try:
            with self.lock.held():
                logger.info(f"=== RESTORE START {run_id} ===")
                await self._restore(run_id, database, files, result)
        except LockContention:
            logger.warning("Another backup or restore is running")
            result.status = RunStatus.ALREADY_RUNNING
            return result

        if result.errors:
            restored = result.database_restored or result.files_restored
            result.status = RunStatus.PARTIAL if restored else RunStatus.FAILED
            logger.error(f"=== RESTORE FAILED {run_id} ===")
        else:
            logger.info(f"=== RESTORE COMPLETE {run_id} ===")
        return result

    async def _restore(self, run_id: str, database: bool, files: bool, result: RestoreResult) -> None:
        try:
            run_dir = self.run_dir(run_id)
            manifest = await self.manifests.load(run_dir)
        except (*RESTORE_ERRORS, ValueError) as e:
            logger.error(f"Cannot load backup {run_id}: {e}")
            result.errors.append(str(e))
            return

        if database:
            try:
                await self._restore_database(run_dir, manifest, result)
            except RESTORE_ERRORS as e:
                logger.error(f"Database restore failed: {e}")
                result.errors.append(f"Database: {e}")
                return

        if files:
            try:
                await self._restore_files(run_dir, manifest, result)
            except RESTORE_ERRORS as e:
                logger.error(f"Files restore failed: {e}")
                result.errors.append(f"Files: {e}")
                if result.database_restored:
                    logger.warning("Database was already restored and has not been rolled back")

    async def _restore_database(self, run_dir: Path, manifest: BackupManifest, result: RestoreResult) -> None:
        if manifest.database is None:
            logger.warning("No database backup in manifest, skipping database restore")
            result.skipped.append("database")
            return

        dump_file = run_dir / "database" / manifest.database.file
        if self.config.verify_checksums:
            self.verifier.verify_checksum(dump_file, manifest.database.checksum)

        if self.config.pre_restore_snapshot:
            snapshot_id = f"{generate_run_id()}_pre-restore"
            logger.info(f"Taking safety dump of the current database: {snapshot_id}")
            artifact = await self.database.export(
                self.config.backup_root / snapshot_id / "database", snapshot_id
            )
            result.pre_restore_dump = str(self.config.backup_root / snapshot_id / "database" / artifact.file)

        await self.database.restore(dump_file)
        result.database_restored = True

    async def _restore_files(self, run_dir: Path, manifest: BackupManifest, result: RestoreResult) -> None:
        if manifest.files is None:
            logger.warning("No files backup in manifest, skipping files restore")
            result.skipped.append("files")
            return

        archive_path = run_dir / "files" / manifest.files.file
        if self.config.verify_checksums:
            self.verifier.verify_checksum(archive_path, manifest.files.checksum)

        try:
            safety_path = await self.files.restore(archive_path, self.config.uploads_dir)
        except FilesystemFailure as e:
            if e.safety_path is not None:
                result.safety_path = str(e.safety_path)
            raise
        result.safety_path = str(safety_path) if safety_path else None
        result.files_restored = True
