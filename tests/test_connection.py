from unittest.mock import MagicMock

import pytest

from database.connection import DatabaseConnection


@pytest.fixture
def builder():
    """Chainable stand-in for a PostgREST query builder."""
    query = MagicMock()
    for name in ("select", "eq", "gt", "gte", "order", "range", "offset", "limit"):
        getattr(query, name).return_value = query
    query.execute.return_value.data = [{"id": "c-1"}]
    return query


@pytest.fixture
def connection(builder):
    conn = object.__new__(DatabaseConnection)
    conn._client = MagicMock()
    conn._client.table.return_value = builder
    return conn


def test_select_where_pages_in_id_order(connection, builder):
    rows = connection.select_where(
        "contacts",
        [{"field": "total_spent", "operator": "greater_than", "value": 500}],
        limit=1000,
        offset=1000,
    )

    assert rows == [{"id": "c-1"}]
    builder.gt.assert_called_once_with("total_spent", 500)
    builder.order.assert_called_once_with("id")
    builder.range.assert_called_once_with(1000, 1999)


def test_select_where_orders_unpaged_queries_too(connection, builder):
    connection.select_where("contacts", [{"field": "lead_status", "operator": "equals", "value": "hot"}])

    builder.order.assert_called_once_with("id")
    builder.range.assert_not_called()
