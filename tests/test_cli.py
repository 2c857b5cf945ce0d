"""Tests for the command line entry point."""

import os

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from archivist.backup.models import BackupResult, RestoreResult, RunStatus, RunSummary, RunType
from archivist.cli import (
    EXIT_ALREADY_RUNNING,
    EXIT_FAILURE,
    EXIT_OK,
    build_parser,
    execute,
    exit_code,
    load_config,
    main,
)


@pytest.fixture
def manager():
    manager = MagicMock()
    manager.run = AsyncMock(return_value=BackupResult(run_id="r", status=RunStatus.SUCCESS))
    manager.restore = AsyncMock(return_value=RestoreResult(run_id="r", status=RunStatus.SUCCESS))
    manager.list_runs = AsyncMock(return_value=[])
    manager.verify_run = AsyncMock(return_value=[])
    return manager


def test_exit_codes():
    assert exit_code(RunStatus.SUCCESS) == EXIT_OK
    assert exit_code(RunStatus.PARTIAL) == EXIT_FAILURE
    assert exit_code(RunStatus.FAILED) == EXIT_FAILURE
    assert exit_code(RunStatus.ALREADY_RUNNING) == EXIT_ALREADY_RUNNING == 2


def test_restore_and_list_are_exclusive(capsys):
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--restore", "2024-03-10_02-00-00", "--list"])


@pytest.mark.asyncio
async def test_backup_flags(manager):
    args = build_parser().parse_args(["--full"])

    assert await execute(args, manager) == EXIT_OK
    manager.run.assert_awaited_once_with(full=True, files=False)


@pytest.mark.asyncio
async def test_backup_already_running(manager):
    manager.run.return_value = BackupResult(status=RunStatus.ALREADY_RUNNING)

    assert await execute(build_parser().parse_args([]), manager) == EXIT_ALREADY_RUNNING


@pytest.mark.asyncio
async def test_restore_flags(manager):
    args = build_parser().parse_args(["--restore", "2024-03-10_02-00-00", "--no-database", "--restore-files"])

    assert await execute(args, manager) == EXIT_OK
    manager.restore.assert_awaited_once_with("2024-03-10_02-00-00", database=False, files=True)


@pytest.mark.asyncio
async def test_restore_failure(manager):
    manager.restore.return_value = RestoreResult(
        run_id="r", status=RunStatus.FAILED, errors=["Backup not found: r"]
    )

    assert await execute(build_parser().parse_args(["--restore", "r"]), manager) == EXIT_FAILURE


@pytest.mark.asyncio
async def test_list(manager, capsys):
    manager.list_runs.return_value = [
        RunSummary(run_id="2024-03-10_02-00-00", type=RunType.WEEKLY, total_size=2048, database=True, files=True),
        RunSummary(run_id="2024-03-09_02-00-00", manifest=False),
    ]

    assert await execute(build_parser().parse_args(["--list"]), manager) == EXIT_OK

    out = capsys.readouterr().out
    assert "2024-03-10_02-00-00" in out
    assert "database+files" in out
    assert "no manifest" in out
    manager.run.assert_not_called()


@pytest.mark.asyncio
async def test_verify(manager, capsys):
    manager.verify_run.return_value = ["Files: Checksum mismatch"]

    assert await execute(build_parser().parse_args(["--verify", "r"]), manager) == EXIT_FAILURE
    assert "FAILED: Files: Checksum mismatch" in capsys.readouterr().out


def test_load_config_applies_flags(temp_dir):
    env_file = temp_dir / "backup.env"
    env_file.write_text("DB_NAME=from_file\n")

    with patch.dict(os.environ, {}, clear=False):
        args = build_parser().parse_args(["--env", str(env_file), "--dry-run", "--debug"])
        config = load_config(args)

    assert config.database.name == "from_file"
    assert config.dry_run is True
    assert config.debug is True


def test_main_invalid_config(capsys):
    with patch.dict(os.environ, {"BACKUP_RETENTION_DAYS": "0"}):
        with pytest.raises(SystemExit) as exc_info:
            main([])

    assert exc_info.value.code == EXIT_FAILURE
    assert "Invalid configuration" in capsys.readouterr().err
