"""MongoDB engine adapter for shell-style commands."""
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

from bson.errors import BSONError
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import ConfigurationError, ConnectionFailure, OperationFailure, PyMongoError

from querygate.agents.query_engine.connection_params import MongoConnectionParams, build_mongo_connection_params
from querygate.agents.query_engine.interfaces import EngineAdapterInterface
from querygate.agents.query_engine.parsers.mongodb_command_parser import (
    AggregateCommand,
    CountDocumentsCommand,
    DistinctCommand,
    EstimatedDocumentCountCommand,
    FindCommand,
    ListCollectionsCommand,
    MongoCommand,
    has_command_prefix,
    parse_mongodb_command,
)
from querygate.agents.utils.database_connection_schema import DataSourceDescriptor, EngineType
from querygate.agents.utils.errors import (
    ConnectionFailedError,
    QueryFailedError,
    UnsupportedQueryFormError,
)


logger = logging.getLogger(__name__)

ENGINE_NAME = EngineType.MONGODB.value

# AuthenticationFailed
AUTH_FAILED_CODE = 18


class MongoDBEngineAdapter(EngineAdapterInterface):
    """
    Executes MongoDB shell commands (``db.orders.find({...})``).

    The command text is parsed into a fixed set of operations and run through
    pymongo; nothing is evaluated as code. Count and distinct results are
    wrapped into records so every command yields a list of documents.
    """

    engine_types = (EngineType.MONGODB,)

    def __init__(
        self,
        connect_timeout: float = 5.0,
        execution_timeout: float = 30.0,
        client_factory: Optional[Callable[..., MongoClient]] = None
    ):
        self.connect_timeout = connect_timeout
        self.execution_timeout = execution_timeout
        self.client_factory = client_factory or MongoClient

    def build_params(self, descriptor: DataSourceDescriptor) -> MongoConnectionParams:
        return build_mongo_connection_params(descriptor, self.connect_timeout, self.execution_timeout)

    def validate_query(self, query_text: str) -> None:
        if not has_command_prefix(query_text):
            raise UnsupportedQueryFormError(
                message='Only MongoDB commands starting with "db." are supported',
                engine_type=ENGINE_NAME,
            )
        parse_mongodb_command(query_text)

    @contextmanager
    def connect(self, descriptor: DataSourceDescriptor) -> Iterator[Database]:
        params = self.build_params(descriptor)
        try:
            client = self.client_factory(params.connection_string, **params.client_options)
        except (ConfigurationError, ConnectionFailure) as e:
            logger.error(f"Failed to create MongoDB client: {e}")
            raise ConnectionFailedError(message=str(e), engine_type=ENGINE_NAME)

        try:
            logger.debug(f"MongoDB client created for database: {params.database}")
            yield client[params.database]
        finally:
            client.close()
            logger.debug("MongoDB connection closed")

    def ping(self, handle: Database) -> None:
        try:
            handle.command("ping")
        except PyMongoError as e:
            logger.error(f"MongoDB connection test failed: {e}")
            raise ConnectionFailedError(message=str(e), engine_type=ENGINE_NAME)

    def run_query(self, handle: Database, query_text: str) -> List[Dict[str, Any]]:
        command = parse_mongodb_command(query_text)
        logger.info(f"Executing MongoDB {type(command).__name__} on {handle.name}.{getattr(command, 'collection', '*')}")

        try:
            documents = self._execute(handle, command)
        except ConnectionFailure as e:
            # Client connects lazily, so an unreachable server surfaces here
            logger.error(f"MongoDB connection error: {e}")
            raise ConnectionFailedError(message=str(e), engine_type=ENGINE_NAME)
        except OperationFailure as e:
            # Credentials are checked on first use, not when the client is built
            if e.code == AUTH_FAILED_CODE:
                logger.error(f"MongoDB authentication failed: {e}")
                raise ConnectionFailedError(message=str(e), engine_type=ENGINE_NAME)
            logger.error(f"MongoDB execution error: {e}")
            raise QueryFailedError(message=str(e), engine_type=ENGINE_NAME)
        except (PyMongoError, BSONError) as e:
            logger.error(f"MongoDB execution error: {e}")
            raise QueryFailedError(message=str(e), engine_type=ENGINE_NAME)

        logger.info(f"MongoDB query executed successfully. Documents: {len(documents)}")
        return documents

    def _execute(self, handle: Database, command: MongoCommand) -> List[Dict[str, Any]]:
        max_time_ms = int(self.execution_timeout * 1000)

        if isinstance(command, ListCollectionsCommand):
            return [{"name": name} for name in handle.list_collection_names()]

        collection = handle[command.collection]

        if isinstance(command, FindCommand):
            if command.single:
                document = collection.find_one(command.filter, command.projection, max_time_ms=max_time_ms)
                return [document] if document is not None else []
            cursor = collection.find(command.filter, command.projection, max_time_ms=max_time_ms)
            if command.sort:
                cursor = cursor.sort(list(command.sort.items()))
            if command.skip:
                cursor = cursor.skip(command.skip)
            if command.limit:
                cursor = cursor.limit(command.limit)
            return list(cursor)

        if isinstance(command, AggregateCommand):
            options = dict(command.options)
            options.setdefault("maxTimeMS", max_time_ms)
            return list(collection.aggregate(command.pipeline, **options))

        if isinstance(command, CountDocumentsCommand):
            return [{"count": collection.count_documents(command.filter, maxTimeMS=max_time_ms)}]

        if isinstance(command, EstimatedDocumentCountCommand):
            return [{"count": collection.estimated_document_count(maxTimeMS=max_time_ms)}]

        if isinstance(command, DistinctCommand):
            values = collection.distinct(command.key, command.filter, maxTimeMS=max_time_ms)
            return [{"value": value} for value in values]

        raise UnsupportedQueryFormError(
            message=f"Unsupported MongoDB command: {type(command).__name__}",
            engine_type=ENGINE_NAME,
        )
