"""Pure builders turning a descriptor into driver connection parameters."""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import SplitResult, quote_plus, unquote, urlsplit

from pymongo.errors import ConfigurationError, InvalidURI
from pymongo.uri_parser import parse_uri
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError

from querygate.agents.utils.database_connection_schema import (
    ConnectionMode,
    DataSourceDescriptor,
    EngineType,
)
from querygate.agents.utils.errors import InvalidDescriptorError


# Map engine families to SQLAlchemy dialects
SQL_DRIVERS = {
    EngineType.POSTGRESQL: "postgresql+psycopg2",
    EngineType.MYSQL: "mysql+pymysql",
    EngineType.MARIADB: "mysql+pymysql",
}

_SQL_SCHEMES = {
    EngineType.POSTGRESQL: ("postgresql", "postgres"),
    EngineType.MYSQL: ("mysql", "mariadb"),
    EngineType.MARIADB: ("mysql", "mariadb"),
}

MONGODB_SCHEMES = ("mongodb", "mongodb+srv")


@dataclass(frozen=True)
class SQLConnectionParams:
    url: URL
    connect_args: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MongoConnectionParams:
    connection_string: str
    database: Optional[str]
    client_options: Dict[str, Any] = field(default_factory=dict)


def build_sql_connection_params(
    descriptor: DataSourceDescriptor,
    connect_timeout: float = 5.0,
    execution_timeout: float = 30.0,
) -> SQLConnectionParams:
    """Build a SQLAlchemy URL plus driver timeouts for a relational descriptor."""
    engine_type = descriptor.engine_type
    if engine_type not in SQL_DRIVERS:
        raise InvalidDescriptorError(
            message=f"{engine_type.value} is not a relational engine",
            engine_type=engine_type.value,
        )
    descriptor.validate()

    drivername = SQL_DRIVERS[engine_type]
    if descriptor.connection_mode is ConnectionMode.CONNECTION_URL:
        url = _normalize_sql_url(descriptor, drivername)
    else:
        url = URL.create(
            drivername,
            username=descriptor.username,
            password=descriptor.password or None,
            host=descriptor.host.strip(),
            port=descriptor.port,
            database=descriptor.database.strip(),
        )

    return SQLConnectionParams(
        url=url,
        connect_args=_sql_connect_args(url.get_backend_name(), connect_timeout, execution_timeout),
    )


def _normalize_sql_url(descriptor: DataSourceDescriptor, default_driver: str) -> URL:
    engine = descriptor.engine_type.value
    try:
        url = make_url(descriptor.connection_url)
    except (ArgumentError, ValueError) as e:
        raise InvalidDescriptorError(message=f"Malformed connection URL: {e}", engine_type=engine)

    backend, _, driver = url.drivername.partition("+")
    if backend not in _SQL_SCHEMES[descriptor.engine_type]:
        raise InvalidDescriptorError(
            message=f"URL scheme '{url.drivername}' does not match engine {engine}",
            engine_type=engine,
        )
    if not url.host:
        raise InvalidDescriptorError(message="Connection URL has no host", engine_type=engine)

    # An explicit driver in the URL wins; bare schemes get the default driver
    drivername = f"{default_driver.split('+')[0]}+{driver}" if driver else default_driver
    url = url.set(drivername=drivername)
    if descriptor.database and not url.database:
        url = url.set(database=descriptor.database)
    if not url.database:
        raise InvalidDescriptorError(message="Connection URL has no database name", engine_type=engine)
    return url


def _sql_connect_args(backend: str, connect_timeout: float, execution_timeout: float) -> Dict[str, Any]:
    if backend == "postgresql":
        return {
            # libpq only takes whole seconds
            "connect_timeout": max(1, int(round(connect_timeout))),
            "options": f"-c statement_timeout={int(execution_timeout * 1000)}",
        }
    return {
        "connect_timeout": max(1, int(round(connect_timeout))),
        "read_timeout": max(1, int(round(execution_timeout))),
        "write_timeout": max(1, int(round(execution_timeout))),
    }


def build_mongo_connection_params(
    descriptor: DataSourceDescriptor,
    connect_timeout: float = 5.0,
    execution_timeout: float = 30.0,
) -> MongoConnectionParams:
    """Resolve a MongoDB connection string and target database."""
    engine = descriptor.engine_type.value
    if descriptor.engine_type is not EngineType.MONGODB:
        raise InvalidDescriptorError(message=f"{engine} is not a document store", engine_type=engine)
    descriptor.validate()

    if descriptor.connection_mode is ConnectionMode.CONNECTION_URL:
        connection_string = descriptor.connection_url.strip()
        parts = urlsplit(connection_string)
        if parts.scheme not in MONGODB_SCHEMES:
            raise InvalidDescriptorError(
                message=f"URL scheme '{parts.scheme}' does not match engine {engine}",
                engine_type=engine,
            )
        url_database = _mongo_url_database(connection_string, parts, engine)
        database = descriptor.database or url_database
    else:
        auth = ""
        if descriptor.username:
            auth = f"{quote_plus(descriptor.username)}:{quote_plus(descriptor.password or '')}@"
        database = descriptor.database.strip()
        connection_string = f"mongodb://{auth}{descriptor.host.strip()}:{descriptor.port}/{database}"

    if not database:
        raise InvalidDescriptorError(message="No database name in descriptor or connection URL", engine_type=engine)

    timeout_ms = int(connect_timeout * 1000)
    return MongoConnectionParams(
        connection_string=connection_string,
        database=database,
        client_options={
            "serverSelectionTimeoutMS": timeout_ms,
            "connectTimeoutMS": timeout_ms,
            "socketTimeoutMS": int(execution_timeout * 1000),
        },
    )


def _mongo_url_database(connection_string: str, parts: SplitResult, engine: str) -> Optional[str]:
    """Validate a MongoDB URL and return the database named in its path, if any."""
    try:
        if parts.scheme == "mongodb+srv":
            # parse_uri would resolve SRV records; keep this builder free of I/O
            if not parts.hostname or parts.port is not None:
                raise InvalidURI("mongodb+srv URLs need a host name and no port")
            return unquote(parts.path.lstrip("/")) or None
        return parse_uri(connection_string)["database"]
    except (InvalidURI, ConfigurationError, ValueError) as e:
        raise InvalidDescriptorError(message=f"Malformed connection URL: {e}", engine_type=engine)
