"""Backup orchestration: one locked, sequential run over database and uploads."""

from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from .._utils import format_bytes, logger
from ..config import BackupConfig
from ..exceptions import FilesystemFailure, IntegrityFailure
from .exporters import DatabaseArchiver, FileArchiver
from .lock import LockManager
from .manifest import MANIFEST_FILE, ManifestBuilder
from .models import (
    BackupManifest,
    BackupResult,
    BackupRun,
    DatabaseArtifact,
    FileArtifact,
    PhaseState,
    RestoreResult,
    RunState,
    RunStatus,
    RunSummary,
    RunType,
)
from .report import ReportNotifier
from .restore import RestoreOrchestrator
from .retention import RetentionSweeper
from .runner import CommandRunner, SubprocessRunner
from .schema import ConnectionProvider, SchemaInspector, SQLAlchemyConnectionProvider
from .utils import generate_run_id, parse_run_date
from .verifier import IntegrityVerifier


class BackupManager:
    """Orchestrate backup runs and expose restore for prior runs."""

    def __init__(
        self,
        config: BackupConfig,
        runner: Optional[CommandRunner] = None,
        connection_provider: Optional[ConnectionProvider] = None,
        notifier: Optional[ReportNotifier] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize backup manager.

        Args:
            config: Backup configuration
            runner: Executes mysqldump/mysql; defaults to a real subprocess runner
            connection_provider: Database connections for schema statistics
            notifier: Report delivery; built from ``config.notification`` if None
            clock: Source of the current time, used for run ids and scheduling
        """
        self.config = config
        self.clock = clock
        self.backup_root = config.backup_root
        self.backup_root.mkdir(parents=True, exist_ok=True)

        self.runner = runner or SubprocessRunner()
        self.provider = connection_provider or SQLAlchemyConnectionProvider(config.database)

        self.lock = LockManager(config.lock_path, config.lock.stale_after_seconds)
        self.database = DatabaseArchiver(
            config.database,
            self.runner,
            inspector=SchemaInspector(self.provider),
            compress=config.storage.compress_database,
            compression_level=config.storage.compression_level,
            chunk_size=config.storage.chunk_size,
        )
        self.files = FileArchiver(
            compression_level=config.storage.compression_level,
            exclude_patterns=config.storage.exclude_patterns,
        )
        self.verifier = IntegrityVerifier()
        self.manifests = ManifestBuilder()
        self.retention = RetentionSweeper(
            self.backup_root,
            config.retention.days,
            min_keep=config.retention.min_keep,
            dry_run=config.dry_run,
        )
        self.notifier = notifier or ReportNotifier(
            config.notification, dry_run=config.dry_run, debug=config.debug
        )
        self.restorer = RestoreOrchestrator(
            config, self.database, self.files, self.lock, self.verifier, self.manifests
        )

    def should_backup_files(self, full: bool, files: bool, now: Optional[datetime] = None) -> bool:
        """Files are archived when forced, on full runs, and on the weekly day."""
        if files or full:
            return True
        # datetime.weekday() is Monday=0; the config counts from Sunday=0
        today = ((now or self.clock()).weekday() + 1) % 7
        return today == self.config.storage.weekly_day

    async def run(self, full: bool = False, files: bool = False) -> BackupResult:
        """Execute one backup run.

        Args:
            full: Force a full run (database and files)
            files: Force the files phase outside its weekly schedule

        Returns:
            BackupResult; ``already_running`` when the lock is held elsewhere
        """
        now = self.clock()
        run = BackupRun(run_id=generate_run_id(now))

        if not self.lock.acquire():
            logger.warning("Backup already running, nothing to do")
            return BackupResult(status=RunStatus.ALREADY_RUNNING)

        try:
            manifest = None
            try:
                manifest = await self._execute(run, full, files, now)
            except Exception as e:
                logger.critical(f"Fatal error during backup: {e}")
                run.fail(f"Fatal: {e}")

            result = self._result(run)
            self._report(run, result, manifest)
            return result
        finally:
            self.provider.dispose()
            self.lock.release()

    async def restore(self, run_id: str, database: bool = True, files: bool = False) -> RestoreResult:
        """Restore a prior run. See :class:`RestoreOrchestrator`."""
        try:
            return await self.restorer.restore(run_id, database=database, files=files)
        finally:
            self.provider.dispose()

    async def list_runs(self) -> List[RunSummary]:
        """List run directories, newest first."""
        summaries = []
        for child in self.backup_root.iterdir():
            if not child.is_dir() or parse_run_date(child.name) is None:
                continue
            try:
                manifest = await self.manifests.load(child)
            except FilesystemFailure:
                summaries.append(RunSummary(run_id=child.name, manifest=False))
                continue
            except ValueError as e:
                logger.warning(f"Failed to read manifest of {child.name}: {e}")
                summaries.append(RunSummary(run_id=child.name, manifest=False))
                continue

            summaries.append(RunSummary(
                run_id=child.name,
                type=manifest.metadata.type,
                total_size=manifest.metadata.total_size,
                database=manifest.database is not None,
                files=manifest.files is not None,
                errors=len(manifest.metadata.errors),
            ))

        summaries.sort(key=lambda s: s.run_id, reverse=True)
        return summaries

    async def verify_run(self, run_id: str) -> List[str]:
        """Re-check the artifacts of a stored run against its manifest.

        Returns:
            Problems found; an empty list means every artifact verified
        """
        problems = []
        try:
            run_dir = self.restorer.run_dir(run_id)
            manifest = await self.manifests.load(run_dir)
        except (FilesystemFailure, ValueError) as e:
            return [str(e)]

        if manifest.database is not None:
            dump_file = run_dir / "database" / manifest.database.file
            try:
                self.verifier.verify_checksum(dump_file, manifest.database.checksum)
                self.verifier.verify_database(dump_file)
            except IntegrityFailure as e:
                problems.append(f"Database: {e}")

        if manifest.files is not None:
            archive_path = run_dir / "files" / manifest.files.file
            try:
                self.verifier.verify_checksum(archive_path, manifest.files.checksum)
                if manifest.files.count:
                    self.verifier.verify_archive(archive_path)
            except IntegrityFailure as e:
                problems.append(f"Files: {e}")

        return problems

    # Private helper methods

    async def _execute(self, run: BackupRun, full: bool, files: bool, now: datetime) -> Optional[BackupManifest]:
        run.advance(RunState.LOCK_ACQUIRED)
        logger.info("=== BACKUP START ===")

        include_files = self.should_backup_files(full, files, now)
        if full:
            run.run_type = RunType.FULL
        elif include_files:
            run.run_type = RunType.WEEKLY
        else:
            run.run_type = RunType.DAILY
        logger.info(f"Run {run.run_id}, type: {run.run_type.value}")

        try:
            run.run_dir = self._create_run_dir(run.run_id)
        except FilesystemFailure as e:
            logger.critical(str(e))
            run.fail(str(e))
            return None

        database = await self._database_phase(run)
        file_artifact = await self._files_phase(run, include_files)
        manifest = await self._write_manifest(run, database, file_artifact)
        await self._sweep(run)
        return manifest

    def _create_run_dir(self, run_id: str) -> Path:
        run_dir = self.backup_root / run_id
        try:
            run_dir.mkdir(parents=True, exist_ok=False)
        except OSError as e:
            raise FilesystemFailure(f"Cannot create backup directory {run_dir}: {e}") from e
        return run_dir

    async def _database_phase(self, run: BackupRun) -> Optional[DatabaseArtifact]:
        run.advance(RunState.DB_PHASE)
        run.database_phase = PhaseState.RUNNING
        logger.info("Starting database backup")

        output_dir = run.run_dir / "database"
        try:
            artifact = await self.database.export(output_dir, run.run_id)
            self.verifier.verify_database(output_dir / artifact.file)
        except Exception as e:
            run.database_phase = PhaseState.FAILED
            logger.error(f"Database backup failed: {e}")
            run.errors.append(f"Database: {e}")
            return None

        run.total_size += artifact.size
        run.database_phase = PhaseState.DONE
        logger.info("Database backup complete")
        return artifact

    async def _files_phase(self, run: BackupRun, include_files: bool) -> Optional[FileArtifact]:
        if not include_files:
            run.files_phase = PhaseState.SKIPPED
            logger.info("File backup not scheduled for this run")
            return None

        run.advance(RunState.FILES_PHASE)
        run.files_phase = PhaseState.RUNNING
        logger.info("Starting files backup")

        output_dir = run.run_dir / "files"
        try:
            artifact = await self.files.export(self.config.uploads_dir, output_dir, run.run_id)
            if artifact is None:
                run.warnings.append(f"Files: uploads directory not found: {self.config.uploads_dir}")
            elif artifact.count:
                self.verifier.verify_archive(output_dir / artifact.file)
            else:
                logger.info("Uploads directory is empty, archive has no entries")
        except Exception as e:
            run.files_phase = PhaseState.FAILED
            logger.error(f"Files backup failed: {e}")
            run.errors.append(f"Files: {e}")
            return None

        if artifact is not None:
            run.total_size += artifact.size
        run.files_phase = PhaseState.DONE
        logger.info("Files backup complete")
        return artifact

    async def _write_manifest(
        self,
        run: BackupRun,
        database: Optional[DatabaseArtifact],
        files: Optional[FileArtifact],
    ) -> BackupManifest:
        manifest = self.manifests.build(run, database=database, files=files)
        try:
            await self.manifests.write(manifest, run.run_dir)
        except FilesystemFailure as e:
            logger.error(str(e))
            run.errors.append(f"Manifest: {e}")
            return manifest

        run.advance(RunState.MANIFEST_WRITTEN)
        return manifest

    async def _sweep(self, run: BackupRun) -> None:
        try:
            swept = await self.retention.sweep(self.clock().date())
        except OSError as e:
            logger.error(f"Retention sweep failed: {e}")
            run.warnings.append(f"Retention: {e}")
            return

        for name, error in swept.failed.items():
            run.warnings.append(f"Retention: could not delete {name}: {error}")
        run.advance(RunState.RETENTION_SWEPT)

    def _result(self, run: BackupRun) -> BackupResult:
        manifest_path = None
        if run.run_dir is not None and (run.run_dir / MANIFEST_FILE).exists():
            manifest_path = str(run.run_dir / MANIFEST_FILE)

        return BackupResult(
            run_id=run.run_id,
            status=run.status,
            run_type=run.run_type,
            duration=run.duration,
            total_size=run.total_size,
            manifest_path=manifest_path,
            errors=list(run.errors),
            warnings=list(run.warnings),
        )

    def _report(self, run: BackupRun, result: BackupResult, manifest: Optional[BackupManifest]) -> None:
        logger.info(
            f"Backup finished in {result.duration}s, size: {format_bytes(result.total_size)}, "
            f"status: {result.status.value}"
        )
        self.notifier.notify(result, manifest, run.run_dir)
        run.advance(RunState.REPORTED)
        run.advance(RunState.COMPLETE)
        logger.info("=== BACKUP END ===")
