"""Schema statistics for manifest enrichment."""

from dataclasses import dataclass, field
from typing import ContextManager, Dict, List, Optional, Protocol

from sqlalchemy import create_engine, func, inspect, select, table
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import OperationalError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .._utils import logger
from ..config import DatabaseConfig


class ConnectionProvider(Protocol):
    """Source of database connections handed to the components that need one."""

    def connect(self) -> ContextManager[Connection]:
        ...

    def dispose(self) -> None:
        ...


class SQLAlchemyConnectionProvider:
    """Lazily builds a SQLAlchemy engine for the configured MySQL database."""

    def __init__(self, config: DatabaseConfig, engine: Optional[Engine] = None):
        self.config = config
        self._engine = engine

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            url = URL.create(
                "mysql+pymysql",
                username=self.config.user,
                password=self.config.password or None,
                host=self.config.host,
                port=self.config.port,
                database=self.config.name,
                query={"charset": self.config.charset},
            )
            self._engine = create_engine(url, pool_pre_ping=True)
        return self._engine

    def connect(self) -> ContextManager[Connection]:
        return self.engine.connect()

    def dispose(self) -> None:
        """Close pooled connections; the engine reconnects on next use."""
        if self._engine is not None:
            self._engine.dispose()


@dataclass
class SchemaStats:
    tables: List[str] = field(default_factory=list)
    row_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def rows(self) -> int:
        return sum(self.row_counts.values())


class SchemaInspector:
    """Collects the table list and per-table row counts.

    The numbers are informational only. Any failure is logged and reported
    as empty statistics so it can never fail the database phase.
    """

    def __init__(self, provider: ConnectionProvider):
        self.provider = provider

    def collect(self) -> SchemaStats:
        try:
            return self._collect()
        except Exception as e:
            logger.warning(f"Could not collect schema statistics: {e}")
            return SchemaStats()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(OperationalError),
        reraise=True,
    )
    def _collect(self) -> SchemaStats:
        stats = SchemaStats()
        with self.provider.connect() as conn:
            stats.tables = sorted(inspect(conn).get_table_names())
            for name in stats.tables:
                count = conn.execute(select(func.count()).select_from(table(name))).scalar()
                stats.row_counts[name] = int(count or 0)

        logger.debug(f"Schema statistics: {len(stats.tables)} tables, {stats.rows} rows")
        return stats
