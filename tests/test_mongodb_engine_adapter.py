from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from querygate.agents.query_engine import QueryGateway
from querygate.agents.query_engine.adapters import MongoDBEngineAdapter
from querygate.agents.utils.database_connection_schema import EngineType
from querygate.agents.utils.errors import ErrorKind, GatewayError


class FakeCursor:
    def __init__(self, documents):
        self.documents = list(documents)
        self.calls = []

    def sort(self, spec):
        self.calls.append(("sort", spec))
        return self

    def skip(self, n):
        self.calls.append(("skip", n))
        return self

    def limit(self, n):
        self.calls.append(("limit", n))
        return self

    def __iter__(self):
        return iter(self.documents)


@pytest.fixture
def collection():
    return MagicMock(name="collection")


@pytest.fixture
def client(collection):
    database = MagicMock(name="database")
    database.name = "shop"
    database.__getitem__.return_value = collection

    mongo_client = MagicMock(name="client")
    mongo_client.__getitem__.return_value = database
    return mongo_client


@pytest.fixture
def client_factory(client):
    return MagicMock(name="client_factory", return_value=client)


@pytest.fixture
def mongo_gateway(settings, client_factory):
    adapter = MongoDBEngineAdapter(client_factory=client_factory)
    return QueryGateway(adapters={EngineType.MONGODB: adapter}, settings=settings)


@pytest.mark.asyncio
async def test_command_without_prefix_never_connects(mongo_gateway, client_factory, mongo_descriptor):
    with pytest.raises(GatewayError) as excinfo:
        await mongo_gateway.execute(mongo_descriptor, "find all")

    assert excinfo.value.kind is ErrorKind.UNSUPPORTED_QUERY_FORM
    client_factory.assert_not_called()


@pytest.mark.asyncio
async def test_command_outside_grammar_never_connects(mongo_gateway, client_factory, mongo_descriptor):
    with pytest.raises(GatewayError) as excinfo:
        await mongo_gateway.execute(mongo_descriptor, "db.customers.drop()")

    assert excinfo.value.kind is ErrorKind.UNSUPPORTED_QUERY_FORM
    client_factory.assert_not_called()


@pytest.mark.asyncio
async def test_find_connects_and_closes(mongo_gateway, client_factory, client, collection, mongo_descriptor):
    oid = ObjectId("65a1b2c3d4e5f60718293a4b")
    collection.find.return_value = FakeCursor([{"_id": oid, "name": "Ada"}])

    result = await mongo_gateway.execute(mongo_descriptor, "db.customers.find({})")

    client_factory.assert_called_once()
    connection_string = client_factory.call_args.args[0]
    assert connection_string == "mongodb://localhost:27017/shop"
    assert client_factory.call_args.kwargs["serverSelectionTimeoutMS"] == 5000
    client.close.assert_called_once()
    assert result.rows == [{"_id": "65a1b2c3d4e5f60718293a4b", "name": "Ada"}]


@pytest.mark.asyncio
async def test_find_applies_cursor_modifiers(mongo_gateway, collection, mongo_descriptor):
    cursor = FakeCursor([{"name": "Ada", "age": 36}])
    collection.find.return_value = cursor

    await mongo_gateway.execute(
        mongo_descriptor,
        "db.customers.find({ age: { $gt: 30 } }, { name: 1, _id: 0 }).sort({ age: -1 }).skip(5).limit(10).toArray()",
    )

    args = collection.find.call_args.args
    assert args[0] == {"age": {"$gt": 30}}
    assert args[1] == {"name": 1, "_id": 0}
    assert cursor.calls == [("sort", [("age", -1)]), ("skip", 5), ("limit", 10)]


@pytest.mark.asyncio
async def test_find_one_is_wrapped_in_a_list(mongo_gateway, collection, mongo_descriptor):
    collection.find_one.return_value = {"name": "Ada"}

    result = await mongo_gateway.execute(mongo_descriptor, 'db.customers.findOne({name: "Ada"})')

    assert result.rows == [{"name": "Ada"}]


@pytest.mark.asyncio
async def test_find_one_without_match_is_empty(mongo_gateway, collection, mongo_descriptor):
    collection.find_one.return_value = None

    result = await mongo_gateway.execute(mongo_descriptor, 'db.customers.findOne({name: "Nobody"})')

    assert result.rows == []


@pytest.mark.asyncio
async def test_aggregate_passes_pipeline(mongo_gateway, collection, mongo_descriptor):
    collection.aggregate.return_value = iter([{"_id": "books", "total": 2 ** 60}])

    result = await mongo_gateway.execute(
        mongo_descriptor,
        'db.orders.aggregate([{ $group: { _id: "$category", total: { $sum: "$amount" } } }])',
    )

    pipeline = collection.aggregate.call_args.args[0]
    assert pipeline == [{"$group": {"_id": "$category", "total": {"$sum": "$amount"}}}]
    assert collection.aggregate.call_args.kwargs["maxTimeMS"] == 30000
    assert result.rows == [{"_id": "books", "total": str(2 ** 60)}]


@pytest.mark.asyncio
async def test_count_and_distinct_become_records(mongo_gateway, collection, mongo_descriptor):
    collection.count_documents.return_value = 42
    collection.distinct.return_value = ["north", "south"]

    count = await mongo_gateway.execute(mongo_descriptor, "db.orders.countDocuments({ status: 'paid' })")
    distinct = await mongo_gateway.execute(mongo_descriptor, 'db.orders.distinct("region")')

    assert count.rows == [{"count": 42}]
    assert distinct.rows == [{"value": "north"}, {"value": "south"}]


@pytest.mark.asyncio
async def test_unreachable_server_is_connection_failed(mongo_gateway, client, collection, mongo_descriptor):
    collection.find.side_effect = ServerSelectionTimeoutError("localhost:27017: connection refused")

    with pytest.raises(GatewayError) as excinfo:
        await mongo_gateway.execute(mongo_descriptor, "db.customers.find({})")

    assert excinfo.value.kind is ErrorKind.CONNECTION_FAILED
    client.close.assert_called_once()


@pytest.mark.asyncio
async def test_server_error_is_query_failed(mongo_gateway, client, collection, mongo_descriptor):
    collection.aggregate.side_effect = OperationFailure("Unrecognized pipeline stage name: '$bogus'")

    with pytest.raises(GatewayError) as excinfo:
        await mongo_gateway.execute(mongo_descriptor, "db.orders.aggregate([{ $bogus: {} }])")

    assert excinfo.value.kind is ErrorKind.QUERY_FAILED
    assert "$bogus" in excinfo.value.message
    client.close.assert_called_once()


@pytest.mark.asyncio
async def test_probe_pings_and_closes(mongo_gateway, client, mongo_descriptor):
    result = await mongo_gateway.probe(mongo_descriptor)

    assert result.ok is True
    database = client.__getitem__.return_value
    database.command.assert_called_once_with("ping")
    client.close.assert_called_once()


@pytest.mark.asyncio
async def test_probe_failure_closes_client(mongo_gateway, client, mongo_descriptor):
    database = client.__getitem__.return_value
    database.command.side_effect = ServerSelectionTimeoutError("timed out")

    result = await mongo_gateway.probe(mongo_descriptor)

    assert result.ok is False
    assert result.error.kind is ErrorKind.CONNECTION_FAILED
    client.close.assert_called_once()


@pytest.mark.asyncio
async def test_list_collections(mongo_gateway, client, mongo_descriptor):
    database = client.__getitem__.return_value
    database.list_collection_names.return_value = ["customers", "orders"]

    result = await mongo_gateway.execute(mongo_descriptor, "db.getCollectionNames()")

    assert result.rows == [{"name": "customers"}, {"name": "orders"}]


@pytest.mark.asyncio
async def test_deeply_nested_command_never_connects(mongo_gateway, client_factory, mongo_descriptor):
    with pytest.raises(GatewayError) as excinfo:
        await mongo_gateway.execute(mongo_descriptor, "db.c.find(" + "{a:" * 3000 + "1" + "}" * 3000 + ")")

    assert excinfo.value.kind is ErrorKind.UNSUPPORTED_QUERY_FORM
    client_factory.assert_not_called()


@pytest.mark.asyncio
async def test_blank_command_is_unsupported_form(mongo_gateway, client_factory, mongo_descriptor):
    with pytest.raises(GatewayError) as excinfo:
        await mongo_gateway.execute(mongo_descriptor, "   ")

    assert excinfo.value.kind is ErrorKind.UNSUPPORTED_QUERY_FORM
    client_factory.assert_not_called()


@pytest.mark.asyncio
async def test_rejected_credentials_are_connection_failed(mongo_gateway, client, collection, mongo_descriptor):
    collection.find.side_effect = OperationFailure("Authentication failed.", code=18)

    with pytest.raises(GatewayError) as excinfo:
        await mongo_gateway.execute(mongo_descriptor, "db.customers.find({})")

    assert excinfo.value.kind is ErrorKind.CONNECTION_FAILED
    assert "Authentication failed" in excinfo.value.message
    client.close.assert_called_once()


@pytest.mark.asyncio
async def test_unauthorized_operation_is_query_failed(mongo_gateway, collection, mongo_descriptor):
    collection.find.side_effect = OperationFailure("not authorized on shop to execute command", code=13)

    with pytest.raises(GatewayError) as excinfo:
        await mongo_gateway.execute(mongo_descriptor, "db.customers.find({})")

    assert excinfo.value.kind is ErrorKind.QUERY_FAILED
