"""Single entry point that dispatches probes and queries to engine adapters."""
import asyncio
import logging
import threading
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional

from querygate.agents.query_engine.adapters import MongoDBEngineAdapter, SQLEngineAdapter
from querygate.agents.query_engine.interfaces import EngineAdapterInterface, ProbeResult, QueryResult
from querygate.agents.query_engine.result_normalizer import ResultNormalizer
from querygate.agents.utils.database_connection_schema import DataSourceDescriptor, EngineType, QueryRequest
from querygate.agents.utils.errors import (
    ConnectionFailedError,
    ErrorKind,
    GatewayError,
    QueryFailedError,
    UnsupportedEngineError,
)
from querygate.core.config import Settings, get_settings


logger = logging.getLogger(__name__)


def build_default_adapters(settings: Settings) -> Dict[EngineType, EngineAdapterInterface]:
    """Register the SQLAlchemy adapter for relational engines and the pymongo adapter for MongoDB."""
    adapters = (
        SQLEngineAdapter(settings.CONNECT_TIMEOUT_SECONDS, settings.EXECUTION_TIMEOUT_SECONDS),
        MongoDBEngineAdapter(settings.CONNECT_TIMEOUT_SECONDS, settings.EXECUTION_TIMEOUT_SECONDS),
    )
    return {engine_type: adapter for adapter in adapters for engine_type in adapter.engine_types}


def collect_columns(rows: Iterable[Mapping[str, Any]]) -> List[str]:
    """Column names in first-seen order across all rows."""
    seen: Dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(key, None)
    return list(seen)


class QueryGateway:
    """
    Routes each call to the adapter registered for the descriptor's engine.

    Every ``probe``/``execute`` call opens its own connection inside the
    adapter's ``connect`` context and releases it before returning. The
    gateway keeps no per-call state, so one instance serves any number of
    concurrent calls.

    Blocking driver work runs in a worker thread bounded by a deadline
    (connect timeout for probes, execution timeout for queries). When the
    deadline passes or the caller cancels, the awaiting side stops waiting
    and the worker drops its rows and releases the connection as soon as the
    driver call returns.

    Usage:
        gateway = QueryGateway()
        probe = await gateway.probe(descriptor)
        result = await gateway.execute(descriptor, "SELECT id, name FROM products LIMIT 2")
    """

    def __init__(
        self,
        adapters: Optional[Mapping[EngineType, EngineAdapterInterface]] = None,
        settings: Optional[Settings] = None
    ):
        self.settings = settings or get_settings()
        if adapters is None:
            adapters = build_default_adapters(self.settings)
        self._adapters: Dict[EngineType, EngineAdapterInterface] = dict(adapters)

    def register_adapter(self, engine_type: EngineType, adapter: EngineAdapterInterface) -> None:
        logger.info(f"Registering {type(adapter).__name__} for {engine_type.value}")
        self._adapters[engine_type] = adapter

    def get_adapter(self, engine_type: EngineType) -> EngineAdapterInterface:
        adapter = self._adapters.get(engine_type)
        if adapter is None:
            raise UnsupportedEngineError(
                message=f"Connections to {engine_type.value} are not supported",
                engine_type=engine_type.value,
            )
        return adapter

    def get_supported_engines(self) -> List[EngineType]:
        return list(self._adapters)

    async def probe(self, descriptor: DataSourceDescriptor, timeout: Optional[float] = None) -> ProbeResult:
        """
        Check that the descriptor's engine is reachable and accepts the credentials.

        Never raises for engine failures: they come back as ``ok=False`` with a
        ConnectionFailed error. Unsupported engines and invalid descriptors keep
        their own error kinds and never reach the network.
        """
        if timeout is None:
            timeout = self.settings.CONNECT_TIMEOUT_SECONDS
        engine = descriptor.engine_type.value
        start_time = time.perf_counter()

        def elapsed_ms() -> float:
            return (time.perf_counter() - start_time) * 1000

        try:
            adapter = self.get_adapter(descriptor.engine_type)
            descriptor.validate()
            await self._run_bounded(self._probe_blocking, adapter, descriptor, timeout=timeout)
        except GatewayError as e:
            if e.kind not in (ErrorKind.UNSUPPORTED_ENGINE, ErrorKind.INVALID_DESCRIPTOR):
                e = ConnectionFailedError(message=e.message, engine_type=engine)
            logger.warning(f"Connection test failed for {descriptor.redacted()}: {e}")
            return ProbeResult(ok=False, error=e, connection_time_ms=elapsed_ms())
        except asyncio.TimeoutError:
            logger.warning(f"Connection test timed out after {timeout}s for {descriptor.redacted()}")
            error = ConnectionFailedError(message=f"Connection timed out after {timeout}s", engine_type=engine)
            return ProbeResult(ok=False, error=error, connection_time_ms=elapsed_ms())
        except Exception as e:
            logger.exception(f"Unexpected error testing connection to {engine}")
            return ProbeResult(
                ok=False,
                error=ConnectionFailedError(message=str(e), engine_type=engine),
                connection_time_ms=elapsed_ms(),
            )

        logger.info(f"Connection test succeeded for {engine} in {elapsed_ms():.2f}ms")
        return ProbeResult(ok=True, connection_time_ms=elapsed_ms())

    async def execute(
        self,
        descriptor: DataSourceDescriptor,
        query_text: str,
        timeout: Optional[float] = None
    ) -> QueryResult:
        """
        Run one query and return normalized rows.

        Raises:
            GatewayError: One of the typed kinds in ``ErrorKind``
        """
        if timeout is None:
            timeout = self.settings.EXECUTION_TIMEOUT_SECONDS
        engine = descriptor.engine_type.value
        start_time = time.perf_counter()

        # Dispatch and preconditions fail before any connection attempt
        adapter = self.get_adapter(descriptor.engine_type)
        descriptor.validate()
        adapter.validate_query(query_text)
        if not query_text or not query_text.strip():
            raise QueryFailedError(message="Query text is empty", engine_type=engine)

        try:
            rows = await self._run_bounded(self._execute_blocking, adapter, descriptor, query_text, timeout=timeout)
        except GatewayError as e:
            logger.error(f"Query execution failed on {engine}: {e.kind.value}: {e.message}")
            raise
        except asyncio.TimeoutError:
            logger.error(f"Query on {engine} exceeded the {timeout}s execution deadline")
            raise QueryFailedError(message=f"Query exceeded the {timeout}s execution deadline", engine_type=engine)
        except Exception as e:
            logger.exception(f"Unexpected error executing query on {engine}")
            raise QueryFailedError(message=str(e), engine_type=engine)

        execution_time_ms = (time.perf_counter() - start_time) * 1000
        logger.info(f"Query executed on {engine}. Rows: {len(rows)}, Time: {execution_time_ms:.2f}ms")
        return QueryResult(
            rows=rows,
            columns=collect_columns(rows),
            row_count=len(rows),
            execution_time_ms=execution_time_ms,
            engine_type=engine,
        )

    async def execute_request(self, request: QueryRequest, timeout: Optional[float] = None) -> QueryResult:
        return await self.execute(request.descriptor, request.query_text, timeout=timeout)

    async def _run_bounded(self, func, *args, timeout: float):
        cancelled = threading.Event()
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args, cancelled), timeout=timeout)
        except (asyncio.TimeoutError, asyncio.CancelledError):
            cancelled.set()
            raise

    def _probe_blocking(
        self,
        adapter: EngineAdapterInterface,
        descriptor: DataSourceDescriptor,
        cancelled: threading.Event
    ) -> None:
        engine = descriptor.engine_type.value
        logger.debug(f"{engine}: connecting")
        with adapter.connect(descriptor) as handle:
            if cancelled.is_set():
                return
            adapter.ping(handle)
        logger.debug(f"{engine}: released")

    def _execute_blocking(
        self,
        adapter: EngineAdapterInterface,
        descriptor: DataSourceDescriptor,
        query_text: str,
        cancelled: threading.Event
    ) -> List[Dict[str, Any]]:
        engine = descriptor.engine_type.value
        logger.debug(f"{engine}: connecting")
        with adapter.connect(descriptor) as handle:
            if cancelled.is_set():
                return []
            logger.debug(f"{engine}: executing")
            raw_rows = adapter.run_query(handle, query_text)
        logger.debug(f"{engine}: released")

        if cancelled.is_set():
            # Nobody is waiting for these rows any more
            return []
        return ResultNormalizer(engine).normalize_rows(raw_rows)
