"""
💾 DATABASE CONNECTION MODULE
==============================
Handles all Supabase interactions with retry logic and error handling.
"""

from typing import Any, Dict, List, Optional

from loguru import logger
from supabase import Client, create_client
from tenacity import retry, stop_after_attempt, wait_exponential

from config.settings import settings
from database.base import BaseDatabase


class DatabaseConnection(BaseDatabase):
    """
    Singleton class for Supabase database operations.

    Usage:
        from database.connection import db

        # Insert a record
        db.insert("contacts", {"full_name": "Jane Doe"})

        # Query records
        results = db.query("agent_conversations", filters={"contact_id": cid})

        # Upsert (insert or update)
        db.upsert("conversation_state", state, conflict_columns=["contact_id"])
    """

    _instance: Optional['DatabaseConnection'] = None
    _client: Optional[Client] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._client is None:
            self._initialize_client()

    def _initialize_client(self):
        """Initialize the Supabase client."""
        url = settings.database.supabase_url
        key = settings.database.supabase_key

        if not url or not key:
            logger.warning("⚠️ Supabase credentials not configured!")
            logger.info("Set SUPABASE_URL and SUPABASE_KEY in your .env file")
            return

        try:
            self._client = create_client(url, key)
            logger.info("✅ Connected to Supabase successfully")
        except Exception as e:
            logger.error(f"❌ Failed to connect to Supabase: {e}")
            raise

    @property
    def client(self) -> Client:
        """Get the Supabase client, initializing if needed."""
        if self._client is None:
            self._initialize_client()
        return self._client

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10)
    )
    def insert(
        self,
        table: str,
        data: Dict[str, Any]
    ) -> Optional[Dict]:
        """
        Insert a single record into a table.

        Args:
            table: Table name
            data: Dictionary of column:value pairs

        Returns:
            The inserted record or None on error
        """
        try:
            clean_data = self._serialize_data(data)

            response = self.client.table(table).insert(clean_data).execute()

            if response.data:
                logger.debug(f"Inserted record into {table}")
                return response.data[0]
            return None

        except Exception as e:
            logger.error(f"Insert error in {table}: {e}")
            raise

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10)
    )
    def insert_many(
        self,
        table: str,
        records: List[Dict[str, Any]]
    ) -> List[Dict]:
        """
        Insert multiple records at once (batch insert).

        Args:
            table: Table name
            records: List of dictionaries

        Returns:
            List of inserted records
        """
        if not records:
            return []

        try:
            clean_records = [self._serialize_data(r) for r in records]
            response = self.client.table(table).insert(clean_records).execute()

            logger.info(f"Inserted {len(response.data)} records into {table}")
            return response.data

        except Exception as e:
            logger.error(f"Batch insert error in {table}: {e}")
            raise

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10)
    )
    def upsert(
        self,
        table: str,
        data: Dict[str, Any],
        conflict_columns: List[str]
    ) -> Optional[Dict]:
        """
        Insert or update a record based on conflict columns.

        Only the columns present in ``data`` are written on conflict,
        so counters and other stored columns survive a reactivation.

        Args:
            table: Table name
            data: Dictionary of column:value pairs
            conflict_columns: Columns that determine uniqueness

        Returns:
            The upserted record
        """
        try:
            clean_data = self._serialize_data(data)

            response = (
                self.client
                .table(table)
                .upsert(clean_data, on_conflict=",".join(conflict_columns))
                .execute()
            )

            if response.data:
                logger.debug(f"Upserted record in {table}")
                return response.data[0]
            return None

        except Exception as e:
            logger.error(f"Upsert error in {table}: {e}")
            raise

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10)
    )
    def query(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Dict]:
        """
        Query records from a table.

        Args:
            table: Table name
            columns: Comma-separated column names or "*" for all
            filters: Dictionary of column:value pairs for WHERE clause
            order_by: Column name to sort by (prefix with - for DESC)
            limit: Maximum records to return
            offset: Number of records to skip

        Returns:
            List of matching records
        """
        try:
            query = self.client.table(table).select(columns)

            # Apply filters
            if filters:
                for col, val in filters.items():
                    if isinstance(val, list):
                        query = query.in_(col, val)
                    elif val is None:
                        query = query.is_(col, "null")
                    else:
                        query = query.eq(col, val)

            # Apply ordering
            if order_by:
                if order_by.startswith("-"):
                    query = query.order(order_by[1:], desc=True)
                else:
                    query = query.order(order_by)

            # Apply pagination
            if limit:
                query = query.limit(limit)
            if offset:
                query = query.offset(offset)

            response = query.execute()
            return response.data

        except Exception as e:
            logger.error(f"Query error in {table}: {e}")
            raise

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10)
    )
    def select_where(
        self,
        table: str,
        conditions: List[Dict[str, Any]],
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Dict]:
        """
        Query records using operator conditions.

        Rows come back ordered by id so that limit/offset pages never
        overlap or skip rows.

        Args:
            table: Table name
            conditions: List of {"field", "operator", "value"} dicts
            limit: Maximum records to return
            offset: Number of records to skip

        Returns:
            List of matching records
        """
        try:
            query = self.client.table(table).select("*")

            for condition in conditions:
                query = self._apply_condition(query, condition)

            query = query.order("id")
            if limit:
                query = query.range(offset, offset + limit - 1)
            elif offset:
                query = query.offset(offset)

            response = query.execute()
            return response.data

        except Exception as e:
            logger.error(f"Filtered query error in {table}: {e}")
            raise

    @staticmethod
    def _apply_condition(query, condition: Dict[str, Any]):
        """Translate one audience condition into a PostgREST filter."""
        field = condition["field"]
        operator = condition["operator"]
        value = condition.get("value")

        if operator == "equals":
            return query.eq(field, value)
        if operator == "not_equals":
            return query.neq(field, value)
        if operator == "contains":
            return query.ilike(field, f"%{value}%")
        if operator == "greater_than":
            return query.gt(field, value)
        if operator == "less_than":
            return query.lt(field, value)
        if operator == "greater_or_equal":
            return query.gte(field, value)
        if operator == "less_or_equal":
            return query.lte(field, value)
        if operator == "in":
            return query.in_(field, value if isinstance(value, list) else [value])
        if operator == "includes":
            return query.contains(field, value if isinstance(value, list) else [value])
        if operator == "includes_any":
            return query.overlaps(field, value if isinstance(value, list) else [value])
        if operator == "is_null":
            return query.is_(field, "null")
        if operator == "is_not_null":
            return query.not_.is_(field, "null")

        logger.warning(f"Unknown filter operator: {operator}")
        return query

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10)
    )
    def update(
        self,
        table: str,
        id: str,
        data: Dict[str, Any]
    ) -> Optional[Dict]:
        """
        Update a record by ID.

        Args:
            table: Table name
            id: Record UUID
            data: Fields to update

        Returns:
            Updated record
        """
        try:
            clean_data = self._serialize_data(data)

            response = (
                self.client
                .table(table)
                .update(clean_data)
                .eq("id", id)
                .execute()
            )

            if response.data:
                logger.debug(f"Updated record {id} in {table}")
                return response.data[0]
            return None

        except Exception as e:
            logger.error(f"Update error in {table}: {e}")
            raise

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10)
    )
    def update_where(
        self,
        table: str,
        filters: Dict[str, Any],
        data: Dict[str, Any]
    ) -> List[Dict]:
        """
        Update every record matching the filters.

        Args:
            table: Table name
            filters: Dictionary of column:value pairs (lists mean IN)
            data: Fields to update

        Returns:
            List of updated records
        """
        try:
            clean_data = self._serialize_data(data)
            query = self.client.table(table).update(clean_data)

            for col, val in filters.items():
                if isinstance(val, list):
                    query = query.in_(col, val)
                else:
                    query = query.eq(col, val)

            response = query.execute()
            logger.debug(f"Updated {len(response.data)} records in {table}")
            return response.data

        except Exception as e:
            logger.error(f"Bulk update error in {table}: {e}")
            raise

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10)
    )
    def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count records matching the filters."""
        try:
            query = self.client.table(table).select("id", count="exact")
            for col, val in (filters or {}).items():
                if isinstance(val, list):
                    query = query.in_(col, val)
                else:
                    query = query.eq(col, val)
            response = query.execute()
            return response.count or 0
        except Exception as e:
            logger.error(f"Count error in {table}: {e}")
            raise

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10)
    )
    def delete(self, table: str, id: str) -> bool:
        """Delete a record by ID."""
        try:
            self.client.table(table).delete().eq("id", id).execute()
            logger.debug(f"Deleted record {id} from {table}")
            return True
        except Exception as e:
            logger.error(f"Delete error in {table}: {e}")
            return False


# Singleton instance - use this in other modules
db = DatabaseConnection()


# ===========================================
# TESTING
# ===========================================

if __name__ == "__main__":
    # Test the connection
    logger.info("Testing database connection...")

    try:
        contacts = db.query("contacts", limit=5)
        logger.info(f"✅ Found {len(contacts)} contacts in database")

        states = db.count("conversation_state")
        logger.info(f"✅ Found {states} conversation states")

        logger.info("✅ All database tests passed!")

    except Exception as e:
        logger.error(f"❌ Database test failed: {e}")
