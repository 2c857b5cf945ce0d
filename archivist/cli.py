"""Command line entry point for scheduled backups and manual restores."""

import argparse
import asyncio
import dataclasses
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from ._utils import format_bytes, logger, setup_logging
from .backup.manager import BackupManager
from .backup.models import RunStatus
from .config import BackupConfig, validate_config

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_ALREADY_RUNNING = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="archivist",
        description="Back up a MySQL database and an uploads directory",
    )
    parser.add_argument(
        "--env",
        help="Environment file to load before reading configuration",
        default=None
    )

    action = parser.add_mutually_exclusive_group()
    action.add_argument(
        "--restore",
        metavar="RUN_ID",
        help="Restore the given run (YYYY-MM-DD_HH-MM-SS)"
    )
    action.add_argument(
        "--list",
        action="store_true",
        help="List stored runs and exit"
    )
    action.add_argument(
        "--verify",
        metavar="RUN_ID",
        help="Re-verify the artifacts of a stored run"
    )

    parser.add_argument(
        "--full",
        action="store_true",
        help="Back up database and files regardless of the weekly schedule"
    )
    parser.add_argument(
        "--files",
        action="store_true",
        help="Include the uploads directory in this run"
    )
    parser.add_argument(
        "--no-database",
        action="store_true",
        help="With --restore: do not restore the database"
    )
    parser.add_argument(
        "--restore-files",
        action="store_true",
        help="With --restore: also restore the uploads directory"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log the report and expired runs instead of mailing or deleting"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Verbose logging; the report is logged, not mailed"
    )
    return parser


def load_config(args: argparse.Namespace) -> BackupConfig:
    """Read configuration from the environment and apply command line flags."""
    if args.env:
        load_dotenv(args.env, override=True)
    config = BackupConfig.from_env()
    return dataclasses.replace(
        config,
        dry_run=config.dry_run or args.dry_run,
        debug=config.debug or args.debug,
    )


def exit_code(status: RunStatus) -> int:
    if status == RunStatus.SUCCESS:
        return EXIT_OK
    if status == RunStatus.ALREADY_RUNNING:
        return EXIT_ALREADY_RUNNING
    return EXIT_FAILURE


async def execute(args: argparse.Namespace, manager: BackupManager) -> int:
    """Dispatch the parsed command line to the manager.

    Returns:
        Process exit code
    """
    if args.list:
        runs = await manager.list_runs()
        if not runs:
            print("No backups found")
        for summary in runs:
            parts = []
            if summary.database:
                parts.append("database")
            if summary.files:
                parts.append("files")
            kind = summary.type.value if summary.type else "unknown"
            contents = "+".join(parts) if parts else ("no manifest" if not summary.manifest else "empty")
            flag = f" ({summary.errors} errors)" if summary.errors else ""
            print(f"  {summary.run_id}  {kind:7} {format_bytes(summary.total_size):>10}  {contents}{flag}")
        return EXIT_OK

    if args.verify:
        problems = await manager.verify_run(args.verify)
        if problems:
            for problem in problems:
                print(f"FAILED: {problem}")
            return EXIT_FAILURE
        print(f"{args.verify}: OK")
        return EXIT_OK

    if args.restore:
        restore_result = await manager.restore(
            args.restore,
            database=not args.no_database,
            files=args.restore_files,
        )
        for error in restore_result.errors:
            logger.error(error)
        if restore_result.safety_path:
            logger.info(f"Previous uploads kept at {restore_result.safety_path}")
        return exit_code(restore_result.status)

    result = await manager.run(full=args.full, files=args.files)
    return exit_code(result.status)


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(EXIT_FAILURE)

    setup_logging(
        config.log_dir,
        level=logging.DEBUG if config.debug else logging.INFO,
        retention_days=config.log_retention_days,
    )
    for warning in validate_config(config):
        logger.warning(warning)

    manager = BackupManager(config)
    sys.exit(asyncio.run(execute(args, manager)))


if __name__ == "__main__":
    main()
