"""
🗄️ STORE INTERFACE
==================
Table-level operations every backend implements, plus the
convenience methods the engine uses on top of them.

Backends:
- database.connection.DatabaseConnection (Supabase, production)
- database.memory.InMemoryDatabase (tests, local runs)
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

# Filter operators accepted by select_where (audience filters use these)
FILTER_OPERATORS = (
    "equals",
    "not_equals",
    "contains",
    "greater_than",
    "less_than",
    "greater_or_equal",
    "less_or_equal",
    "in",
    "includes",
    "includes_any",
    "is_null",
    "is_not_null",
)


class BaseDatabase:
    """
    Shared behaviour for all store backends.

    Subclasses implement the primitive table operations:
    insert, insert_many, upsert, query, select_where, update,
    update_where, count, delete.
    """

    # ===================================
    # PRIMITIVES (implemented by backends)
    # ===================================

    def insert(self, table: str, data: Dict[str, Any]) -> Optional[Dict]:
        raise NotImplementedError

    def insert_many(self, table: str, records: List[Dict[str, Any]]) -> List[Dict]:
        raise NotImplementedError

    def upsert(
        self,
        table: str,
        data: Dict[str, Any],
        conflict_columns: List[str]
    ) -> Optional[Dict]:
        raise NotImplementedError

    def query(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Dict]:
        raise NotImplementedError

    def select_where(
        self,
        table: str,
        conditions: List[Dict[str, Any]],
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Dict]:
        """Rows matching every condition, ordered by id."""
        raise NotImplementedError

    def update(self, table: str, id: str, data: Dict[str, Any]) -> Optional[Dict]:
        raise NotImplementedError

    def update_where(
        self,
        table: str,
        filters: Dict[str, Any],
        data: Dict[str, Any]
    ) -> List[Dict]:
        raise NotImplementedError

    def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        raise NotImplementedError

    def delete(self, table: str, id: str) -> bool:
        raise NotImplementedError

    def get_by_id(self, table: str, id: str) -> Optional[Dict]:
        """Get a single record by UUID."""
        results = self.query(table, filters={"id": id}, limit=1)
        return results[0] if results else None

    @staticmethod
    def _serialize_data(data: Dict[str, Any]) -> Dict[str, Any]:
        """Convert Python objects to JSON-serializable types."""
        result = {}
        for key, value in data.items():
            if isinstance(value, (datetime, date)):
                result[key] = value.isoformat()
            elif isinstance(value, Enum):
                result[key] = value.value
            else:
                result[key] = value
        return result

    # ===================================
    # CONVENIENCE METHODS FOR THIS PROJECT
    # ===================================

    def get_contact(self, contact_id: str) -> Optional[Dict]:
        return self.get_by_id("contacts", contact_id)

    def get_campaign(self, campaign_id: str) -> Optional[Dict]:
        return self.get_by_id("ai_sales_campaigns", campaign_id)

    def get_recent_messages(self, contact_id: str, limit: int = 10) -> List[Dict]:
        """Most recent SMS messages for a contact, newest first."""
        return self.query(
            "messages",
            columns="body,created_at,direction",
            filters={"contact_id": contact_id},
            order_by="-created_at",
            limit=limit
        )

    def get_conversation_state(self, contact_id: str) -> Optional[Dict]:
        rows = self.query(
            "conversation_state",
            filters={"contact_id": contact_id},
            limit=1
        )
        return rows[0] if rows else None

    def save_conversation_state(self, state: Dict[str, Any]) -> Optional[Dict]:
        """Write the whole state row in one upsert."""
        return self.upsert(
            "conversation_state",
            {**state, "updated_at": datetime.now(timezone.utc)},
            conflict_columns=["contact_id"]
        )

    def upsert_assignment(
        self,
        table: str,
        type_column: str,
        data: Dict[str, Any]
    ) -> Optional[Dict]:
        """
        Create or reactivate the (contact, agent type) row.

        Columns not present in ``data`` (message counters, context)
        keep their stored values.
        """
        return self.upsert(
            table,
            data,
            conflict_columns=["contact_id", type_column]
        )

    def save_contact_scores(self, contact_id: str, scores: Dict[str, Any]) -> Optional[Dict]:
        return self.update("contacts", contact_id, scores)

    def get_campaign_contacts(
        self,
        campaign_id: str,
        statuses: Optional[List[str]] = None
    ) -> List[Dict]:
        filters: Dict[str, Any] = {"campaign_id": campaign_id}
        if statuses:
            filters["status"] = statuses
        return self.query(
            "ai_sales_campaign_contacts",
            filters=filters,
            order_by="created_at"
        )
