"""Tests for RestoreOrchestrator, driven through BackupManager."""

import dataclasses
from datetime import datetime
from pathlib import Path

import pytest
from unittest.mock import MagicMock

from archivist.backup.lock import LockManager
from archivist.backup.manager import BackupManager
from archivist.backup.models import RunStatus
from archivist.backup.report import ReportNotifier

SUNDAY = datetime(2024, 3, 10, 2, 0, 0)
TUESDAY = datetime(2024, 3, 12, 2, 0, 0)


def make_manager(config, runner, provider, now=TUESDAY):
    return BackupManager(
        config,
        runner=runner,
        connection_provider=provider,
        notifier=MagicMock(spec=ReportNotifier),
        clock=lambda: now,
    )


def populate_uploads(config):
    (config.uploads_dir / "avatars").mkdir()
    (config.uploads_dir / "avatars" / "me.png").write_bytes(b"png" * 10)
    (config.uploads_dir / "notes.txt").write_text("original")


@pytest.mark.asyncio
async def test_restore_without_files_section_skips_files(backup_config, fake_runner, sqlite_provider):
    """A daily run has no files section; the file step is skipped with a warning."""
    manager = make_manager(backup_config, fake_runner, sqlite_provider)
    backup = await manager.run()
    assert backup.status == RunStatus.SUCCESS
    fake_runner.calls.clear()

    result = await manager.restore(backup.run_id, database=True, files=True)

    assert result.status == RunStatus.SUCCESS
    assert result.database_restored is True
    assert result.files_restored is False
    assert result.skipped == ["files"]
    assert fake_runner.calls[0]["args"][0] == "mysql"
    assert fake_runner.calls[0]["stdin"] == fake_runner.dump_content.encode()


@pytest.mark.asyncio
async def test_full_restore(backup_config, fake_runner, sqlite_provider):
    populate_uploads(backup_config)
    manager = make_manager(backup_config, fake_runner, sqlite_provider)
    backup = await manager.run(full=True)

    (backup_config.uploads_dir / "notes.txt").write_text("edited after backup")

    result = await manager.restore(backup.run_id, database=True, files=True)

    assert result.status == RunStatus.SUCCESS
    assert result.database_restored and result.files_restored
    assert (backup_config.uploads_dir / "notes.txt").read_text() == "original"
    assert result.safety_path is not None
    assert "uploads_backup_" in result.safety_path
    assert not backup_config.lock_path.exists()


@pytest.mark.asyncio
async def test_files_only_restore(backup_config, fake_runner, sqlite_provider):
    populate_uploads(backup_config)
    manager = make_manager(backup_config, fake_runner, sqlite_provider, now=SUNDAY)
    backup = await manager.run()
    fake_runner.calls.clear()

    result = await manager.restore(backup.run_id, database=False, files=True)

    assert result.status == RunStatus.SUCCESS
    assert result.files_restored is True
    assert fake_runner.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("run_id", ["2019-01-01_00-00-00", "../etc", ""])
async def test_unknown_run(backup_config, fake_runner, sqlite_provider, run_id):
    manager = make_manager(backup_config, fake_runner, sqlite_provider)

    result = await manager.restore(run_id)

    assert result.status == RunStatus.FAILED
    assert result.errors
    assert fake_runner.calls == []


@pytest.mark.asyncio
async def test_restore_while_locked(backup_config, fake_runner, sqlite_provider):
    manager = make_manager(backup_config, fake_runner, sqlite_provider)
    backup = await manager.run()
    fake_runner.calls.clear()

    other = LockManager(backup_config.lock_path)
    assert other.acquire()

    result = await manager.restore(backup.run_id)

    assert result.status == RunStatus.ALREADY_RUNNING
    assert fake_runner.calls == []
    assert backup_config.lock_path.exists()


@pytest.mark.asyncio
async def test_checksum_mismatch_aborts(backup_config, fake_runner, sqlite_provider):
    manager = make_manager(backup_config, fake_runner, sqlite_provider)
    backup = await manager.run()
    fake_runner.calls.clear()

    dump = next((backup_config.backup_root / backup.run_id / "database").iterdir())
    dump.write_bytes(dump.read_bytes() + b"tampered")

    result = await manager.restore(backup.run_id)

    assert result.status == RunStatus.FAILED
    assert result.errors[0].startswith("Database: Checksum mismatch")
    assert fake_runner.calls == []


@pytest.mark.asyncio
async def test_database_failure_stops_file_step(backup_config, fake_runner, sqlite_provider):
    populate_uploads(backup_config)
    manager = make_manager(backup_config, fake_runner, sqlite_provider)
    backup = await manager.run(full=True)
    (backup_config.uploads_dir / "notes.txt").write_text("live")

    fake_runner.returncode = 1
    fake_runner.output = "ERROR 1064 (42000) at line 1"
    result = await manager.restore(backup.run_id, database=True, files=True)

    assert result.status == RunStatus.FAILED
    assert result.database_restored is False
    assert result.files_restored is False
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Database: mysql exited with status 1")
    assert (backup_config.uploads_dir / "notes.txt").read_text() == "live"


@pytest.mark.asyncio
async def test_pre_restore_snapshot(backup_config, fake_runner, sqlite_provider):
    config = dataclasses.replace(backup_config, pre_restore_snapshot=True)
    manager = make_manager(config, fake_runner, sqlite_provider)
    backup = await manager.run()

    result = await manager.restore(backup.run_id)

    assert result.status == RunStatus.SUCCESS
    assert result.pre_restore_dump is not None
    snapshot = config.backup_root / result.pre_restore_dump
    assert snapshot.exists()
    assert snapshot.parent.parent.name.endswith("_pre-restore")


@pytest.mark.asyncio
async def test_failed_extraction_reports_safety_path(backup_config, fake_runner, sqlite_provider):
    """Uploads moved aside before a failed extraction are still reported."""
    config = dataclasses.replace(backup_config, verify_checksums=False)
    populate_uploads(config)
    manager = make_manager(config, fake_runner, sqlite_provider, now=SUNDAY)
    backup = await manager.run()

    archive = next((config.backup_root / backup.run_id / "files").iterdir())
    archive.write_bytes(b"corrupted archive")

    result = await manager.restore(backup.run_id, database=False, files=True)

    assert result.status == RunStatus.FAILED
    assert result.files_restored is False
    assert result.errors[0].startswith("Files: Cannot extract")
    assert result.safety_path is not None
    assert (Path(result.safety_path) / "notes.txt").read_text() == "original"
