import os
import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import pytest

# Keep tests independent of a developer's .env
os.environ.setdefault("CONNECT_TIMEOUT_SECONDS", "5")
os.environ.setdefault("EXECUTION_TIMEOUT_SECONDS", "30")

from querygate.agents.query_engine import QueryGateway
from querygate.agents.query_engine.interfaces import EngineAdapterInterface
from querygate.agents.utils.database_connection_schema import (
    ConnectionMode,
    DataSourceDescriptor,
    EngineType,
)
from querygate.agents.utils.errors import ConnectionFailedError, QueryFailedError
from querygate.core.config import Settings


class CountingAdapter(EngineAdapterInterface):
    """Adapter double that records every connection it opens and releases."""

    def __init__(
        self,
        rows: Optional[List[Dict[str, Any]]] = None,
        fail_on: Optional[str] = None,
        delay: float = 0.0,
        engine_types=(),
    ):
        self.rows = rows if rows is not None else []
        self.fail_on = fail_on
        self.delay = delay
        self.engine_types = tuple(engine_types)
        self.opened = 0
        self.closed = 0
        self.queries: List[str] = []
        self.pings = 0
        self.released = threading.Event()

    @contextmanager
    def connect(self, descriptor: DataSourceDescriptor):
        self.opened += 1
        try:
            if self.fail_on == "connect":
                raise ConnectionFailedError(message="connection refused", engine_type=descriptor.engine_type.value)
            yield {"descriptor": descriptor}
        finally:
            self.closed += 1
            self.released.set()

    def ping(self, handle: Any) -> None:
        self.pings += 1
        if self.delay:
            time.sleep(self.delay)
        if self.fail_on == "ping":
            raise ConnectionFailedError(message="authentication failed")

    def run_query(self, handle: Any, query_text: str) -> List[Dict[str, Any]]:
        self.queries.append(query_text)
        if self.delay:
            time.sleep(self.delay)
        if self.fail_on == "query":
            raise QueryFailedError(message='relation "missing" does not exist')
        if self.fail_on == "crash":
            raise RuntimeError("driver exploded")
        return list(self.rows)


@pytest.fixture
def settings() -> Settings:
    return Settings(connect_timeout_seconds=5.0, execution_timeout_seconds=30.0)


@pytest.fixture
def postgres_descriptor() -> DataSourceDescriptor:
    return DataSourceDescriptor(
        engine_type=EngineType.POSTGRESQL,
        connection_mode=ConnectionMode.DISCRETE_FIELDS,
        host="localhost",
        port=5432,
        username="u",
        password="p",
        database="salesdb",
    )


@pytest.fixture
def mongo_descriptor() -> DataSourceDescriptor:
    return DataSourceDescriptor(
        engine_type=EngineType.MONGODB,
        connection_mode=ConnectionMode.DISCRETE_FIELDS,
        host="localhost",
        port=27017,
        username="",
        password="",
        database="shop",
    )


@pytest.fixture
def oracle_descriptor() -> DataSourceDescriptor:
    return DataSourceDescriptor(
        engine_type=EngineType.ORACLE,
        connection_mode=ConnectionMode.DISCRETE_FIELDS,
        host="localhost",
        port=1521,
        username="system",
        password="oracle",
        database="XE",
    )


@pytest.fixture
def sql_adapter() -> CountingAdapter:
    return CountingAdapter(
        rows=[{"id": 1, "name": "Widget"}, {"id": 2, "name": "Gadget"}],
        engine_types=(EngineType.POSTGRESQL, EngineType.MYSQL, EngineType.MARIADB),
    )


@pytest.fixture
def mongo_adapter() -> CountingAdapter:
    return CountingAdapter(rows=[{"name": "Ada"}], engine_types=(EngineType.MONGODB,))


@pytest.fixture
def gateway(settings, sql_adapter, mongo_adapter) -> QueryGateway:
    return QueryGateway(
        adapters={
            EngineType.POSTGRESQL: sql_adapter,
            EngineType.MYSQL: sql_adapter,
            EngineType.MARIADB: sql_adapter,
            EngineType.MONGODB: mongo_adapter,
        },
        settings=settings,
    )
