from datetime import datetime, timezone

import pytest
from bson import Decimal128, Int64, ObjectId, Regex

from querygate.agents.query_engine.parsers import has_command_prefix, parse_mongodb_command
from querygate.agents.query_engine.parsers.mongodb_command_parser import (
    AggregateCommand,
    CountDocumentsCommand,
    DistinctCommand,
    EstimatedDocumentCountCommand,
    FindCommand,
    ListCollectionsCommand,
)
from querygate.agents.utils.errors import ErrorKind, UnsupportedQueryFormError


def test_find_with_filter_and_projection():
    command = parse_mongodb_command('db.customers.find({ city: "Oslo", age: { $gte: 18 } }, { name: 1, _id: 0 })')

    assert command == FindCommand(
        collection="customers",
        filter={"city": "Oslo", "age": {"$gte": 18}},
        projection={"name": 1, "_id": 0},
    )


def test_find_without_arguments():
    command = parse_mongodb_command("db.customers.find()")

    assert command.filter == {}
    assert command.projection is None


def test_find_cursor_chain():
    command = parse_mongodb_command(
        "db.orders.find({}).sort({ createdAt: -1, _id: 1 }).skip(20).limit(10).toArray();"
    )

    assert command.sort == {"createdAt": -1, "_id": 1}
    assert list(command.sort) == ["createdAt", "_id"]
    assert command.skip == 20
    assert command.limit == 10


def test_multiline_command_with_trailing_commas():
    command = parse_mongodb_command(
        """
        db.orders
          .find(
            { 'status': 'shipped', },
          )
          .limit(5)
        """
    )

    assert command.filter == {"status": "shipped"}
    assert command.limit == 5


def test_find_one():
    command = parse_mongodb_command('db.customers.findOne({ email: "ada@example.com" })')

    assert isinstance(command, FindCommand)
    assert command.single is True


def test_aggregate_pipeline_and_options():
    command = parse_mongodb_command(
        'db.orders.aggregate([{ $match: { status: "paid" } }, { $group: { _id: "$region", n: { $sum: 1 } } }], '
        "{ allowDiskUse: true }).toArray()"
    )

    assert command == AggregateCommand(
        collection="orders",
        pipeline=[{"$match": {"status": "paid"}}, {"$group": {"_id": "$region", "n": {"$sum": 1}}}],
        options={"allowDiskUse": True},
    )


def test_counts_and_distinct():
    assert parse_mongodb_command("db.orders.countDocuments({ paid: true })") == CountDocumentsCommand(
        collection="orders", filter={"paid": True}
    )
    assert parse_mongodb_command("db.orders.count()") == CountDocumentsCommand(collection="orders")
    assert parse_mongodb_command("db.orders.estimatedDocumentCount()") == EstimatedDocumentCountCommand(
        collection="orders"
    )
    assert parse_mongodb_command("db.orders.distinct('region', { paid: false })") == DistinctCommand(
        collection="orders", key="region", filter={"paid": False}
    )


def test_collection_addressing_forms():
    assert parse_mongodb_command('db.getCollection("order-items").find({})').collection == "order-items"
    assert parse_mongodb_command("db.system.profile.find({})").collection == "system.profile"
    assert isinstance(parse_mongodb_command("db.getCollectionNames()"), ListCollectionsCommand)


def test_shell_constructors():
    command = parse_mongodb_command(
        "db.events.find({"
        ' _id: ObjectId("65a1b2c3d4e5f60718293a4b"),'
        ' at: { $gte: ISODate("2024-01-31T00:00:00Z"), $lt: new Date(1706745600000) },'
        " views: NumberLong(9007199254740993),"
        ' price: NumberDecimal("19.99"),'
        " name: /^ada/i,"
        " deleted: null"
        " })"
    )

    f = command.filter
    assert f["_id"] == ObjectId("65a1b2c3d4e5f60718293a4b")
    assert f["at"]["$gte"] == datetime(2024, 1, 31, tzinfo=timezone.utc)
    assert f["at"]["$lt"] == datetime(2024, 2, 1, tzinfo=timezone.utc)
    assert f["views"] == Int64(9007199254740993)
    assert f["price"] == Decimal128("19.99")
    assert f["name"] == Regex("^ada", "i")
    assert f["deleted"] is None


def test_string_escapes_and_numbers():
    command = parse_mongodb_command(r'db.t.find({ a: "line\nbreak \"quoted\"", b: -1.5e2, c: 0 })')

    assert command.filter == {"a": 'line\nbreak "quoted"', "b": -150.0, "c": 0}


def test_prefix_is_case_insensitive():
    assert has_command_prefix("  DB.users.find({})")
    assert not has_command_prefix("SELECT * FROM users")
    assert not has_command_prefix("")


@pytest.mark.parametrize(
    "text",
    [
        "find all",
        "db.users.drop()",
        "db.users.insertOne({ name: 'x' })",
        "db.users.find({ $where: function() { return true } })",
        "db.users.find({}).forEach(printjson)",
        "db.users.find({}); db.users.drop()",
        "db.users.find({ a: 1 }",
        "db.users.find('not a document')",
        "db.users.aggregate({ $match: {} })",
        "db.users.find({}).limit(-1)",
        'db.users.find({ _id: ObjectId("nothex") })',
        "db.users.find({ a: process.exit(1) })",
    ],
)
def test_rejects_commands_outside_the_grammar(text):
    with pytest.raises(UnsupportedQueryFormError) as excinfo:
        parse_mongodb_command(text)

    assert excinfo.value.kind is ErrorKind.UNSUPPORTED_QUERY_FORM
    assert excinfo.value.engine_type == "MongoDB"


def test_nesting_up_to_the_bson_limit_is_accepted():
    command = parse_mongodb_command("db.c.find({ a: " + "[" * 98 + "]" * 98 + " })")

    value = command.filter["a"]
    depth = 0
    while isinstance(value, list) and value:
        value = value[0]
        depth += 1
    assert depth == 97


def test_deeply_nested_arguments_are_rejected():
    with pytest.raises(UnsupportedQueryFormError) as excinfo:
        parse_mongodb_command("db.c.find(" + "[" * 5000 + "]" * 5000 + ")")

    assert "nesting" in excinfo.value.message
