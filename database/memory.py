"""
🧪 IN-MEMORY STORE
==================
Dict-backed implementation of the store interface for tests and
local dry runs. Mirrors the Supabase adapter's semantics:

- values are serialized the same way (datetimes become ISO strings)
- upsert merges into the existing row, keeping columns it doesn't set
- list filter values mean IN, None means IS NULL

Not suitable for production use.
"""

import copy
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from database.base import BaseDatabase


class InMemoryDatabase(BaseDatabase):
    """
    In-process table store.

    Usage:
        store = InMemoryDatabase()
        store.insert("contacts", {"id": "c-1", "full_name": "Jane Doe"})
        store.get_contact("c-1")
    """

    def __init__(self):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._tables.setdefault(table, {})

    def _new_row(self, data: Dict[str, Any]) -> Dict[str, Any]:
        row = self._serialize_data(data)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        return row

    def insert(self, table: str, data: Dict[str, Any]) -> Optional[Dict]:
        with self._lock:
            row = self._new_row(data)
            self._table(table)[row["id"]] = row
            logger.debug(f"Inserted record into {table}")
            return copy.deepcopy(row)

    def insert_many(self, table: str, records: List[Dict[str, Any]]) -> List[Dict]:
        with self._lock:
            return [self.insert(table, record) for record in records]

    def upsert(
        self,
        table: str,
        data: Dict[str, Any],
        conflict_columns: List[str]
    ) -> Optional[Dict]:
        with self._lock:
            clean = self._serialize_data(data)
            for row in self._table(table).values():
                if all(row.get(col) == clean.get(col) for col in conflict_columns):
                    row.update({k: v for k, v in clean.items() if k != "id"})
                    logger.debug(f"Upserted record in {table}")
                    return copy.deepcopy(row)
            return self.insert(table, data)

    def query(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Dict]:
        with self._lock:
            rows = [
                row for row in self._table(table).values()
                if _matches_filters(row, filters or {})
            ]
            if order_by:
                desc = order_by.startswith("-")
                key = order_by.lstrip("-")
                rows.sort(key=lambda r: _sort_key(r.get(key)), reverse=desc)
            rows = rows[offset:]
            if limit:
                rows = rows[:limit]
            return [_project(row, columns) for row in rows]

    def select_where(
        self,
        table: str,
        conditions: List[Dict[str, Any]],
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Dict]:
        with self._lock:
            rows = sorted(self._table(table).values(), key=lambda r: str(r["id"]))
            for condition in conditions:
                predicate = _condition_predicate(condition)
                rows = [row for row in rows if predicate(row)]
            rows = rows[offset:]
            if limit:
                rows = rows[:limit]
            return copy.deepcopy(rows)

    def update(self, table: str, id: str, data: Dict[str, Any]) -> Optional[Dict]:
        with self._lock:
            row = self._table(table).get(id)
            if row is None:
                return None
            row.update(self._serialize_data(data))
            logger.debug(f"Updated record {id} in {table}")
            return copy.deepcopy(row)

    def update_where(
        self,
        table: str,
        filters: Dict[str, Any],
        data: Dict[str, Any]
    ) -> List[Dict]:
        with self._lock:
            clean = self._serialize_data(data)
            updated = []
            for row in self._table(table).values():
                if _matches_filters(row, filters):
                    row.update(clean)
                    updated.append(copy.deepcopy(row))
            return updated

    def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        with self._lock:
            return sum(
                1 for row in self._table(table).values()
                if _matches_filters(row, filters or {})
            )

    def delete(self, table: str, id: str) -> bool:
        with self._lock:
            return self._table(table).pop(id, None) is not None


def _matches_filters(row: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    for col, val in filters.items():
        if isinstance(val, list):
            if row.get(col) not in val:
                return False
        elif row.get(col) != val:
            return False
    return True


def _sort_key(value: Any):
    # None sorts first ascending, like Postgres NULLS FIRST on DESC
    return (value is not None, value if value is not None else "")


def _project(row: Dict[str, Any], columns: str) -> Dict[str, Any]:
    if columns.strip() == "*":
        return copy.deepcopy(row)
    wanted = [c.strip() for c in columns.split(",")]
    return {c: copy.deepcopy(row.get(c)) for c in wanted}


def _as_number(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return value
    return value


def _compare(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(actual: Any, expected: Any) -> bool:
        if actual is None:
            return False
        try:
            return op(_as_number(actual), _as_number(expected))
        except TypeError:
            return op(str(actual), str(expected))
    return check


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else [value]


def _condition_predicate(condition: Dict[str, Any]) -> Callable[[Dict[str, Any]], bool]:
    field = condition["field"]
    operator = condition["operator"]
    value = condition.get("value")

    checks: Dict[str, Callable[[Any], bool]] = {
        "equals": lambda v: v == value,
        "not_equals": lambda v: v != value,
        "contains": lambda v: v is not None and str(value).lower() in str(v).lower(),
        "greater_than": lambda v: _compare(lambda a, b: a > b)(v, value),
        "less_than": lambda v: _compare(lambda a, b: a < b)(v, value),
        "greater_or_equal": lambda v: _compare(lambda a, b: a >= b)(v, value),
        "less_or_equal": lambda v: _compare(lambda a, b: a <= b)(v, value),
        "in": lambda v: v in _as_list(value),
        "includes": lambda v: isinstance(v, list) and all(x in v for x in _as_list(value)),
        "includes_any": lambda v: isinstance(v, list) and any(x in v for x in _as_list(value)),
        "is_null": lambda v: v is None,
        "is_not_null": lambda v: v is not None,
    }

    check = checks.get(operator)
    if check is None:
        logger.warning(f"Unknown filter operator: {operator}")
        return lambda row: True
    return lambda row: check(row.get(field))
