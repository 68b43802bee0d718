from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from querygate.agents.utils.errors import (
    InvalidDescriptorError,
    UnsupportedEngineError,
)


class EngineType(Enum):
    POSTGRESQL = "PostgreSQL"
    MYSQL = "MySQL"
    MARIADB = "MariaDB"
    MONGODB = "MongoDB"
    ORACLE = "Oracle"

    @classmethod
    def from_value(cls, value: Any) -> "EngineType":
        """Resolve a boundary string (case-insensitive, common aliases allowed)."""
        if isinstance(value, EngineType):
            return value
        key = str(value or "").strip().lower()
        engine_type = _ENGINE_ALIASES.get(key)
        if engine_type is None:
            raise UnsupportedEngineError(
                message=f"Unsupported database type: {value!r}",
                engine_type=str(value) if value is not None else None,
            )
        return engine_type

    @property
    def default_port(self) -> Optional[int]:
        return _DEFAULT_PORTS.get(self)


_ENGINE_ALIASES = {
    "postgresql": EngineType.POSTGRESQL,
    "postgres": EngineType.POSTGRESQL,
    "mysql": EngineType.MYSQL,
    "mariadb": EngineType.MARIADB,
    "mongodb": EngineType.MONGODB,
    "mongo": EngineType.MONGODB,
    "oracle": EngineType.ORACLE,
}

_DEFAULT_PORTS = {
    EngineType.POSTGRESQL: 5432,
    EngineType.MYSQL: 3306,
    EngineType.MARIADB: 3306,
    EngineType.MONGODB: 27017,
    EngineType.ORACLE: 1521,
}


class ConnectionMode(Enum):
    DISCRETE_FIELDS = "discrete_fields"
    CONNECTION_URL = "connection_url"


@dataclass(frozen=True)
class DataSourceDescriptor:
    """Connection and dialect information for one target engine."""

    engine_type: EngineType
    connection_mode: ConnectionMode
    host: Optional[str] = None
    port: Optional[int] = None
    username: Optional[str] = None
    password: Optional[str] = None
    database: Optional[str] = None
    connection_url: Optional[str] = None

    @classmethod
    def from_dict(cls, record: Mapping[str, Any]) -> "DataSourceDescriptor":
        """
        Build a descriptor from a stored data-source record.

        Accepts both the dashboard's camelCase keys (``type``,
        ``connectionString``) and snake_case ones. A non-empty connection URL
        selects URL mode; otherwise the discrete fields are used and a missing
        port falls back to the engine default.
        """
        engine_type = EngineType.from_value(record.get("engine_type", record.get("type")))

        connection_url = record.get("connection_url") or record.get("connectionString")
        if isinstance(connection_url, str):
            connection_url = connection_url.strip() or None

        if connection_url:
            return cls(
                engine_type=engine_type,
                connection_mode=ConnectionMode.CONNECTION_URL,
                connection_url=connection_url,
                database=record.get("database") or None,
            )

        port = record.get("port")
        if port is None or port == "":
            port = engine_type.default_port
        else:
            try:
                port = int(port)
            except (TypeError, ValueError):
                raise InvalidDescriptorError(
                    message=f"Port must be an integer, got {port!r}",
                    engine_type=engine_type.value,
                )

        return cls(
            engine_type=engine_type,
            connection_mode=ConnectionMode.DISCRETE_FIELDS,
            host=record.get("host"),
            port=port,
            username=record.get("username"),
            password=record.get("password"),
            database=record.get("database"),
        )

    def validate(self) -> None:
        """Raise InvalidDescriptorError if the group chosen by connection_mode is incomplete."""
        engine = self.engine_type.value

        if self.connection_mode is ConnectionMode.CONNECTION_URL:
            if not self.connection_url or "://" not in self.connection_url:
                raise InvalidDescriptorError(
                    message="A connection URL of the form scheme://... is required",
                    engine_type=engine,
                )
            return

        missing = []
        if not self.host or not str(self.host).strip():
            missing.append("host")
        if not self.database or not str(self.database).strip():
            missing.append("database")
        if self.engine_type is not EngineType.MONGODB and not self.username:
            missing.append("username")
        if missing:
            raise InvalidDescriptorError(
                message=f"Missing required connection fields: {', '.join(missing)}",
                engine_type=engine,
            )
        if isinstance(self.port, bool) or not isinstance(self.port, int) or self.port <= 0 or self.port > 65535:
            raise InvalidDescriptorError(
                message=f"Port must be a positive integer, got {self.port!r}",
                engine_type=engine,
            )

    def redacted(self) -> Dict[str, Any]:
        """Log-safe view of the descriptor (no password, no URL credentials)."""
        data: Dict[str, Any] = {
            "engine_type": self.engine_type.value,
            "connection_mode": self.connection_mode.value,
        }
        if self.connection_mode is ConnectionMode.CONNECTION_URL:
            url = self.connection_url or ""
            scheme, _, rest = url.partition("://")
            data["connection_url"] = f"{scheme}://***@{rest.rsplit('@', 1)[-1]}" if "@" in rest else url
        else:
            data.update(host=self.host, port=self.port, username=self.username, database=self.database)
        return data


@dataclass(frozen=True)
class QueryRequest:
    descriptor: DataSourceDescriptor
    query_text: str
