"""SQL engine adapter using SQLAlchemy for PostgreSQL and MySQL-compatible databases."""
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import NoSuchModuleError, SQLAlchemyError
from sqlalchemy.pool import NullPool

from querygate.agents.query_engine.connection_params import SQLConnectionParams, build_sql_connection_params
from querygate.agents.query_engine.interfaces import EngineAdapterInterface
from querygate.agents.utils.database_connection_schema import DataSourceDescriptor, EngineType
from querygate.agents.utils.errors import ConnectionFailedError, QueryFailedError


logger = logging.getLogger(__name__)


def _driver_message(error: Exception) -> str:
    """Prefer the DBAPI's own message over SQLAlchemy's wrapper text."""
    orig = getattr(error, "orig", None)
    return str(orig).strip() if orig is not None else str(error).strip()


class SQLEngineAdapter(EngineAdapterInterface):
    """
    Executes SQL statements using SQLAlchemy.

    Supports: PostgreSQL (psycopg2), MySQL and MariaDB (PyMySQL).

    Each ``connect`` builds an engine with ``NullPool`` so the pool is scoped
    to the call: one DBAPI connection is opened and the engine is disposed
    on exit.
    """

    engine_types = (EngineType.POSTGRESQL, EngineType.MYSQL, EngineType.MARIADB)

    def __init__(
        self,
        connect_timeout: float = 5.0,
        execution_timeout: float = 30.0,
        engine_factory: Optional[Callable[..., Engine]] = None
    ):
        """
        Initialize SQL engine adapter.

        Args:
            connect_timeout: Seconds allowed for establishing a connection
            execution_timeout: Seconds allowed for a single statement
            engine_factory: Replacement for ``sqlalchemy.create_engine``
        """
        self.connect_timeout = connect_timeout
        self.execution_timeout = execution_timeout
        self.engine_factory = engine_factory or create_engine

    def build_params(self, descriptor: DataSourceDescriptor) -> SQLConnectionParams:
        return build_sql_connection_params(descriptor, self.connect_timeout, self.execution_timeout)

    @contextmanager
    def connect(self, descriptor: DataSourceDescriptor) -> Iterator[Connection]:
        params = self.build_params(descriptor)
        engine_name = descriptor.engine_type.value
        engine = self._create_engine(params, engine_name)

        try:
            try:
                connection = engine.connect()
            except SQLAlchemyError as e:
                logger.error(f"{engine_name} connection to {params.url.host}:{params.url.port} failed: {_driver_message(e)}")
                raise ConnectionFailedError(message=_driver_message(e), engine_type=engine_name)

            logger.debug(f"{engine_name} connection opened to {params.url.host}:{params.url.port}/{params.url.database}")
            try:
                yield connection
            finally:
                connection.close()
        finally:
            engine.dispose()
            logger.debug(f"{engine_name} connection released")

    def ping(self, handle: Connection) -> None:
        try:
            handle.exec_driver_sql("SELECT 1").close()
        except SQLAlchemyError as e:
            raise ConnectionFailedError(message=_driver_message(e), engine_type=self._engine_name(handle))

    def run_query(self, handle: Connection, query_text: str) -> List[Dict[str, Any]]:
        logger.info(f"Executing SQL query: {query_text[:100]}...")
        try:
            # no_parameters: hand the text to cursor.execute() untouched, so '%' is not a placeholder
            result = handle.execution_options(no_parameters=True).exec_driver_sql(query_text)
            if not result.returns_rows:
                result.close()
                return []
            rows = [dict(row._mapping) for row in result]
        except SQLAlchemyError as e:
            logger.error(f"SQL execution error: {_driver_message(e)}")
            raise QueryFailedError(message=_driver_message(e), engine_type=self._engine_name(handle))

        logger.info(f"Query executed successfully. Rows: {len(rows)}")
        return rows

    def _create_engine(self, params: SQLConnectionParams, engine_name: str) -> Engine:
        try:
            return self.engine_factory(
                params.url,
                poolclass=NullPool,
                isolation_level="AUTOCOMMIT",
                connect_args=params.connect_args,
            )
        except (NoSuchModuleError, ImportError) as e:
            logger.error(f"Failed to create engine: {e}")
            raise ConnectionFailedError(message=f"Database driver unavailable: {e}", engine_type=engine_name)

    @staticmethod
    def _engine_name(handle: Connection) -> Optional[str]:
        dialect = getattr(handle, "dialect", None)
        if dialect is None:
            return None
        return {"postgresql": "PostgreSQL", "mysql": "MySQL", "mariadb": "MariaDB"}.get(dialect.name, dialect.name)
