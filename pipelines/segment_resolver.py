"""
🎯 SEGMENT RESOLVER
===================
Turns a campaign's stored audience filter into contact ids.

An audience filter is a list of conditions, all of which must hold:

    [
        {"field": "lead_status", "operator": "in", "value": ["hot", "warm"]},
        {"field": "total_spent", "operator": "greater_than", "value": "500"},
        {"field": "tags", "operator": "includes_any", "value": ["webinar"]},
    ]

Supported operators are listed in database.base.FILTER_OPERATORS.
Numeric strings are converted for comparisons; unknown operators are
skipped with a warning.
"""

from typing import Any, Dict, List, Optional, Union

from loguru import logger

from config.settings import settings
from database.base import FILTER_OPERATORS, BaseDatabase
from database.connection import db

COMPARISON_OPERATORS = ("greater_than", "less_than", "greater_or_equal", "less_or_equal")

PAGE_SIZE = 1000


class SegmentResolver:
    """
    Resolves audience filters against the contacts table.

    Usage:
        resolver = SegmentResolver()
        contact_ids = resolver.resolve(campaign["audience_filter"])
    """

    def __init__(self, database: Optional[BaseDatabase] = None):
        self.db = database if database is not None else db

    def resolve(
        self,
        audience_filter: Union[List[Dict[str, Any]], Dict[str, Any], None],
        limit: Optional[int] = None
    ) -> List[str]:
        """
        Contact ids matching every condition of the filter.

        Args:
            audience_filter: List of conditions (or {"conditions": [...]})
            limit: Maximum contacts (defaults to the segment limit setting)

        Returns:
            Distinct contact ids, ordered by id
        """
        limit = limit or settings.campaigns.segment_limit
        conditions = self.normalize(audience_filter)

        contact_ids: List[str] = []
        seen = set()
        offset = 0
        while len(contact_ids) < limit:
            page_size = min(PAGE_SIZE, limit - len(contact_ids))
            rows = self.db.select_where("contacts", conditions, limit=page_size, offset=offset)
            for row in rows:
                if row["id"] not in seen and len(contact_ids) < limit:
                    seen.add(row["id"])
                    contact_ids.append(row["id"])
            if len(rows) < page_size:
                break
            offset += len(rows)

        logger.info(f"🎯 Segment resolved to {len(contact_ids)} contacts ({len(conditions)} conditions)")
        return contact_ids

    __call__ = resolve

    @staticmethod
    def normalize(audience_filter: Union[List[Dict[str, Any]], Dict[str, Any], None]) -> List[Dict[str, Any]]:
        """
        Clean up stored conditions.

        Drops UI-only keys, unknown operators and conditions without a
        field, and converts numeric strings for comparison operators.
        """
        if not audience_filter:
            return []
        if isinstance(audience_filter, dict):
            audience_filter = audience_filter.get("conditions") or audience_filter.get("filters") or []

        conditions = []
        for raw in audience_filter:
            field = raw.get("field")
            operator = raw.get("operator")
            value = raw.get("value")

            if not field:
                continue
            if operator not in FILTER_OPERATORS:
                logger.warning(f"Unknown filter operator: {operator} (ignored)")
                continue

            if operator in COMPARISON_OPERATORS and isinstance(value, str):
                value = _to_number(value)

            conditions.append({"field": field, "operator": operator, "value": value})
        return conditions


def _to_number(value: str) -> Any:
    try:
        number = float(value)
    except ValueError:
        return value
    return int(number) if number.is_integer() else number
