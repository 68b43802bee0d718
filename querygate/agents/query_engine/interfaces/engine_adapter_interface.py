"""Interface for engine adapters across different data sources."""
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from querygate.agents.utils.database_connection_schema import DataSourceDescriptor, EngineType
from querygate.agents.utils.errors import GatewayError


@dataclass
class QueryResult:
    """Container for normalized query results."""
    rows: List[Dict[str, Any]]
    columns: List[str] = field(default_factory=list)
    row_count: int = 0
    execution_time_ms: float = 0.0
    engine_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rows": self.rows,
            "columns": self.columns,
            "row_count": self.row_count,
            "execution_time_ms": self.execution_time_ms,
            "engine_type": self.engine_type,
        }


@dataclass
class ProbeResult:
    """Outcome of a connectivity check."""
    ok: bool
    error: Optional[GatewayError] = None
    connection_time_ms: float = 0.0


class EngineAdapterInterface(ABC):
    """
    Abstract interface for engine adapters.

    An adapter turns a descriptor into a live connection and runs exactly one
    query string against it. ``connect`` is a context manager: the connection
    it yields is released when the ``with`` block exits, whether it exits
    normally or by exception.
    """

    engine_types: Tuple[EngineType, ...] = ()

    def validate_query(self, query_text: str) -> None:
        """
        Check query preconditions before any connection is attempted.

        Raises:
            UnsupportedQueryFormError: If the text cannot be run by this adapter
        """

    @abstractmethod
    def connect(self, descriptor: DataSourceDescriptor) -> AbstractContextManager:
        """
        Open a scoped connection for one gateway call.

        Raises:
            InvalidDescriptorError: If connection parameters cannot be built
            ConnectionFailedError: If the engine cannot be reached or rejects the credentials
        """
        pass

    @abstractmethod
    def ping(self, handle: Any) -> None:
        """Run the cheapest round trip that proves the connection is usable."""
        pass

    @abstractmethod
    def run_query(self, handle: Any, query_text: str) -> List[Dict[str, Any]]:
        """
        Execute one query and fetch every resulting record into memory.

        Raises:
            QueryFailedError: If the engine rejects or fails the query
        """
        pass
