"""MySQL dump/restore exporter driven by the mysqldump and mysql clients."""

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

from ..._utils import format_bytes, logger
from ...config import DatabaseConfig
from ...exceptions import FilesystemFailure, IntegrityFailure
from ..models import DatabaseArtifact
from ..runner import CommandRunner, check_result
from ..schema import SchemaInspector, SchemaStats
from ..utils import CHUNK_SIZE, compress_file, compression_ratio, compute_checksum, decompress_file

DUMP_OPTIONS = [
    "--single-transaction",
    "--routines",
    "--triggers",
    "--events",
    "--complete-insert",
    "--extended-insert",
    "--quick",
    "--lock-tables=false",
]


class DatabaseArchiver:
    """Export and restore the relational store through its command line clients.

    The password is handed to the clients through ``MYSQL_PWD`` so it never
    shows up in the argument list.
    """

    def __init__(
        self,
        config: DatabaseConfig,
        runner: CommandRunner,
        inspector: Optional[SchemaInspector] = None,
        compress: bool = True,
        compression_level: int = 6,
        chunk_size: int = CHUNK_SIZE,
    ):
        self.config = config
        self.runner = runner
        self.inspector = inspector
        self.compress = compress
        self.compression_level = compression_level
        self.chunk_size = chunk_size

    def build_dump_command(self, result_file: Path) -> List[str]:
        args = [
            self.config.dump_binary,
            f"--host={self.config.host}",
            f"--port={self.config.port}",
            f"--user={self.config.user}",
            *DUMP_OPTIONS,
            f"--default-character-set={self.config.charset}",
            f"--result-file={result_file}",
        ]
        args.extend(
            f"--ignore-table={self.config.name}.{name}" for name in self.config.exclude_tables
        )
        args.append(self.config.name)
        return args

    def build_restore_command(self) -> List[str]:
        return [
            self.config.client_binary,
            f"--host={self.config.host}",
            f"--port={self.config.port}",
            f"--user={self.config.user}",
            f"--default-character-set={self.config.charset}",
            self.config.name,
        ]

    def _client_env(self) -> Dict[str, str]:
        return {"MYSQL_PWD": self.config.password} if self.config.password else {}

    async def export(self, output_dir: Path, run_id: str) -> DatabaseArtifact:
        """Dump the database into ``output_dir``.

        Args:
            output_dir: Directory to write the dump into
            run_id: Run identifier used in the dump file name

        Returns:
            DatabaseArtifact describing the final (possibly compressed) dump

        Raises:
            SubprocessFailure: mysqldump exited non-zero
            IntegrityFailure: the dump file is missing or empty
            FilesystemFailure: the output directory cannot be created
        """
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemFailure(f"Cannot create database backup directory {output_dir}: {e}") from e

        dump_file = output_dir / f"db_{self.config.name}_{run_id}.sql"
        args = self.build_dump_command(dump_file)

        logger.info(f"Dumping database {self.config.name}@{self.config.host}:{self.config.port}")
        result = await self.runner.run(args, env=self._client_env())
        check_result(args, result)

        if not dump_file.exists() or dump_file.stat().st_size == 0:
            raise IntegrityFailure("Database dump is empty or was not created")

        original_size = dump_file.stat().st_size
        logger.info(f"Database dump complete: {format_bytes(original_size)}")

        artifact_path = dump_file
        ratio = None
        if self.compress:
            artifact_path = dump_file.with_name(dump_file.name + ".gz")
            logger.info("Compressing database dump...")
            compressed_size = compress_file(
                dump_file, artifact_path, level=self.compression_level, chunk_size=self.chunk_size
            )
            dump_file.unlink()
            ratio = compression_ratio(compressed_size, original_size)
            logger.info(f"Database compressed: {format_bytes(compressed_size)} (saved {ratio}%)")

        stats = await self.get_statistics()

        return DatabaseArtifact(
            file=artifact_path.name,
            size=artifact_path.stat().st_size,
            checksum=compute_checksum(artifact_path),
            tables=stats.tables,
            rows=stats.rows,
            compressed=self.compress,
            original_size=original_size,
            compression_ratio=ratio,
        )

    async def restore(self, dump_file: Path) -> None:
        """Load a dump into the configured database.

        A gzip dump is decompressed to a temporary file first; the temporary
        file is removed whatever the outcome.

        Args:
            dump_file: ``.sql`` or ``.sql.gz`` dump

        Raises:
            SubprocessFailure: the mysql client exited non-zero
        """
        if not dump_file.exists():
            raise FileNotFoundError(f"Dump file not found: {dump_file}")

        sql_file = dump_file
        temp_file: Optional[Path] = None
        try:
            if dump_file.suffix == ".gz":
                fd, temp_name = tempfile.mkstemp(prefix="restore_", suffix=".sql", dir=dump_file.parent)
                os.close(fd)
                temp_file = Path(temp_name)
                logger.info("Decompressing database dump...")
                decompress_file(dump_file, temp_file, chunk_size=self.chunk_size)
                sql_file = temp_file

            args = self.build_restore_command()
            logger.info(f"Restoring database {self.config.name} from {dump_file.name}")
            result = await self.runner.run(args, stdin_path=sql_file, env=self._client_env())
            check_result(args, result)
        finally:
            if temp_file is not None and temp_file.exists():
                temp_file.unlink()

        logger.info("Database restore complete")

    async def get_statistics(self) -> SchemaStats:
        """Table list and row counts, empty when no inspector is configured.

        Collection runs in a worker thread since the queries and retry waits block.
        """
        if self.inspector is None:
            return SchemaStats()
        return await asyncio.to_thread(self.inspector.collect)
