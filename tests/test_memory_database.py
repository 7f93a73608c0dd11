from datetime import datetime, timezone

from orchestration.models import AgentType


def test_upsert_merges_into_existing_row(store):
    first = store.upsert(
        "agent_conversations",
        {"contact_id": "c-1", "agent_type": "webinar", "status": "active", "messages_sent": 4},
        conflict_columns=["contact_id", "agent_type"],
    )
    second = store.upsert(
        "agent_conversations",
        {"contact_id": "c-1", "agent_type": "webinar", "status": "expired"},
        conflict_columns=["contact_id", "agent_type"],
    )

    assert second["id"] == first["id"]
    assert second["status"] == "expired"
    assert second["messages_sent"] == 4
    assert store.count("agent_conversations") == 1


def test_upsert_inserts_for_a_new_key(store):
    store.upsert("conversation_state", {"contact_id": "c-1"}, conflict_columns=["contact_id"])
    store.upsert("conversation_state", {"contact_id": "c-2"}, conflict_columns=["contact_id"])

    assert store.count("conversation_state") == 2


def test_values_are_serialized(store):
    when = datetime(2026, 1, 5, 9, 30, tzinfo=timezone.utc)

    row = store.insert("agent_conversations", {"agent_type": AgentType.WEBINAR, "started_at": when})

    assert row["agent_type"] == "webinar"
    assert row["started_at"] == "2026-01-05T09:30:00+00:00"
    assert row["id"]
    assert row["created_at"]


def test_query_filters_orders_and_projects(store):
    store.insert("messages", {"contact_id": "c-1", "body": "old", "created_at": "2026-01-01T00:00:00+00:00"})
    store.insert("messages", {"contact_id": "c-1", "body": "new", "created_at": "2026-01-03T00:00:00+00:00"})
    store.insert("messages", {"contact_id": "c-2", "body": "other", "created_at": "2026-01-02T00:00:00+00:00"})

    rows = store.query("messages", columns="body", filters={"contact_id": "c-1"}, order_by="-created_at")

    assert rows == [{"body": "new"}, {"body": "old"}]
    assert store.query("messages", filters={"contact_id": ["c-1", "c-2"]}, order_by="created_at", limit=1)[0]["body"] == "old"


def test_returned_rows_are_copies(store):
    store.insert("contacts", {"id": "c-1", "tags": ["vip"]})

    store.get_contact("c-1")["tags"].append("mutated")

    assert store.get_contact("c-1")["tags"] == ["vip"]


def test_update_where_touches_only_matching_rows(store):
    store.insert("ai_sales_campaign_contacts", {"campaign_id": "a", "status": "active"})
    store.insert("ai_sales_campaign_contacts", {"campaign_id": "a", "status": "failed"})
    store.insert("ai_sales_campaign_contacts", {"campaign_id": "b", "status": "active"})

    updated = store.update_where(
        "ai_sales_campaign_contacts",
        {"campaign_id": "a", "status": ["active", "pending"]},
        {"status": "paused"},
    )

    assert len(updated) == 1
    assert store.count("ai_sales_campaign_contacts", {"status": "paused"}) == 1
    assert store.count("ai_sales_campaign_contacts", {"status": "active"}) == 1


def test_update_and_delete_missing_rows(store):
    assert store.update("contacts", "missing", {"lead_score": 1}) is None
    assert store.delete("contacts", "missing") is False


def test_select_where_compares_timestamps_as_strings(store):
    store.insert("agent_conversations", {"id": "past", "expiration_date": "2026-01-01T00:00:00+00:00"})
    store.insert("agent_conversations", {"id": "future", "expiration_date": "2026-12-01T00:00:00+00:00"})
    store.insert("agent_conversations", {"id": "forever", "expiration_date": None})

    rows = store.select_where("agent_conversations", [
        {"field": "expiration_date", "operator": "less_or_equal", "value": "2026-06-01T00:00:00+00:00"},
    ])

    assert [row["id"] for row in rows] == ["past"]


def test_unknown_operator_matches_everything(store):
    store.insert("contacts", {"id": "c-1"})

    rows = store.select_where("contacts", [{"field": "x", "operator": "approximately", "value": 1}])

    assert len(rows) == 1
