"""
Query Engine Package

Multi-datasource query execution behind one gateway.

Supports:
- SQL databases (PostgreSQL, MySQL, MariaDB) via SQLAlchemy
- MongoDB (shell-style commands parsed into pymongo calls)
- Extensible: register an adapter for any other engine type

Usage:
    from querygate.agents.query_engine import QueryGateway
    from querygate.agents.utils.database_connection_schema import DataSourceDescriptor

    descriptor = DataSourceDescriptor.from_dict({
        "type": "PostgreSQL",
        "host": "localhost",
        "port": 5432,
        "username": "u",
        "password": "p",
        "database": "salesdb",
    })

    gateway = QueryGateway()

    probe = await gateway.probe(descriptor)
    if probe.ok:
        result = await gateway.execute(descriptor, "SELECT id, name FROM products LIMIT 2")
        for row in result.rows:
            print(row)
"""
from .query_gateway import QueryGateway, build_default_adapters

__all__ = [
    'QueryGateway',
    'build_default_adapters'
]
