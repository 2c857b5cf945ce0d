"""Global pytest configuration and fixtures."""

import pytest
import sys
import tempfile
from pathlib import Path
from typing import Mapping, Optional, Sequence

from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from archivist.backup.runner import CommandResult
from archivist.backup.schema import SQLAlchemyConnectionProvider
from archivist.config import BackupConfig, DatabaseConfig, StorageConfig

DUMP_SQL = (
    "-- MySQL dump 10.13  Distrib 8.0.36, for Linux (x86_64)\n"
    "--\n"
    "-- Host: localhost    Database: shop\n"
    "CREATE TABLE `orders` (`id` int NOT NULL);\n"
    "INSERT INTO `orders` (`id`) VALUES (1),(2),(3);\n"
)


class FakeRunner:
    """Stands in for mysqldump and mysql.

    Records every call. On success it writes ``dump_content`` to the file named
    by ``--result-file=`` the way mysqldump does. Standard input is read at
    call time because restore deletes its temporary file afterwards.
    """

    def __init__(self, returncode: int = 0, output: str = "", dump_content: str = DUMP_SQL):
        self.returncode = returncode
        self.output = output
        self.dump_content = dump_content
        self.calls = []

    async def run(
        self,
        args: Sequence[str],
        *,
        stdin_path: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> CommandResult:
        self.calls.append({
            "args": list(args),
            "stdin_path": stdin_path,
            "stdin": stdin_path.read_bytes() if stdin_path is not None else None,
            "env": dict(env or {}),
        })
        if self.returncode == 0:
            for arg in args:
                if arg.startswith("--result-file="):
                    Path(arg.split("=", 1)[1]).write_text(self.dump_content)
        return CommandResult(returncode=self.returncode, output=self.output)


@pytest.fixture
def temp_dir():
    """Create temporary working directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def backup_config(temp_dir):
    """Config rooted in the temporary directory, uploads directory present."""
    uploads = temp_dir / "uploads"
    uploads.mkdir()
    return BackupConfig(
        database=DatabaseConfig(user="backup", password="secret", name="shop"),
        storage=StorageConfig(
            backup_root=str(temp_dir / "backups"),
            uploads_dir=str(uploads),
        ),
    )


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def sqlite_provider():
    """Connection provider over an in-memory SQLite database with two tables.

    One shared connection, usable from the worker thread statistics run in.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE orders (id INTEGER PRIMARY KEY)"))
        conn.execute(text("CREATE TABLE customers (id INTEGER PRIMARY KEY)"))
        conn.execute(text("INSERT INTO orders (id) VALUES (1), (2), (3)"))
        conn.execute(text("INSERT INTO customers (id) VALUES (1)"))

    provider = SQLAlchemyConnectionProvider(DatabaseConfig(), engine=engine)
    yield provider
    provider.dispose()
