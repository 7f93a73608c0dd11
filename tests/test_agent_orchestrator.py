import threading
from datetime import timedelta

import pytest

from conftest import NOW, RecordingGenerator
from orchestration.agent_orchestrator import AgentOrchestrator
from orchestration.exceptions import ContactLockTimeout, InvalidAgentTypeError
from orchestration.locks import ContactLockRegistry
from orchestration.models import AgentAssignment, AssignmentSource


def make_assignment(agent_type, assigned_days_ago=0, status="active", expires_in_days=30, id=None):
    return AgentAssignment(
        id=id or f"a-{agent_type}",
        contact_id="c-1",
        agent_type=agent_type,
        status=status,
        source=AssignmentSource.AGENT_CONVERSATION,
        assigned_at=NOW - timedelta(days=assigned_days_ago),
        expiration_date=None if expires_in_days is None else NOW + timedelta(days=expires_in_days),
    )


# ===================================
# PURE RULES
# ===================================

def test_expiration_for_uses_lifetime_table():
    assert AgentOrchestrator.expiration_for("webinar", NOW) == NOW + timedelta(days=30)
    assert AgentOrchestrator.expiration_for("flashcards", NOW) == NOW + timedelta(days=60)
    assert AgentOrchestrator.expiration_for("customer_service", NOW) is None
    assert AgentOrchestrator.expiration_for("brand_new_type", NOW) == NOW + timedelta(days=90)


def test_most_recent_non_service_agent_wins():
    assignments = [
        make_assignment("customer_service", assigned_days_ago=0, expires_in_days=None),
        make_assignment("webinar", assigned_days_ago=5),
        make_assignment("sales_agent", assigned_days_ago=1),
    ]

    active = AgentOrchestrator.select_active_agent(assignments, None, NOW)

    assert active.agent_type == "sales_agent"


def test_help_mode_prefers_customer_service():
    assignments = [
        make_assignment("customer_service", assigned_days_ago=10, expires_in_days=None),
        make_assignment("sales_agent", assigned_days_ago=0),
    ]

    active = AgentOrchestrator.select_active_agent(assignments, NOW + timedelta(hours=1), NOW)
    assert active.agent_type == "customer_service"

    # Help mode in the past no longer applies
    active = AgentOrchestrator.select_active_agent(assignments, NOW - timedelta(hours=1), NOW)
    assert active.agent_type == "sales_agent"


def test_help_mode_without_service_agent_uses_normal_rule():
    assignments = [make_assignment("sales_agent")]

    active = AgentOrchestrator.select_active_agent(assignments, NOW + timedelta(hours=1), NOW)

    assert active.agent_type == "sales_agent"


def test_service_agent_is_fallback_and_dead_agents_are_ignored():
    assignments = [
        make_assignment("customer_service", expires_in_days=None),
        make_assignment("webinar", expires_in_days=-1),
        make_assignment("sales_agent", status="paused"),
    ]
    assert AgentOrchestrator.select_active_agent(assignments, None, NOW).agent_type == "customer_service"
    assert AgentOrchestrator.select_active_agent(assignments[1:], None, NOW) is None


def test_expired_when_expiration_reached_and_indefinite_never_expires():
    webinar = make_assignment("webinar", expires_in_days=0)
    service = make_assignment("customer_service", expires_in_days=None)

    assert webinar.is_expired(NOW)
    assert not webinar.is_live(NOW)
    assert not service.is_expired(NOW + timedelta(days=100000))


# ===================================
# ASSIGNMENT
# ===================================

def test_first_assignment_is_an_introduction(orchestrator, store):
    result = orchestrator.assign_agent("c-1", "sales_agent", context={"campaign_id": "camp-1"})

    assert not result.is_handoff
    assert result.message_type == "introduction"
    assert result.state.active_agent_id == result.assignment.id
    assert result.state.agent_queue == []

    row = store.get_by_id("agent_conversations", result.assignment.id)
    assert row["status"] == "active"
    assert row["key_entities"] == {"campaign_id": "camp-1"}
    assert row["expiration_date"] == (NOW + timedelta(days=90)).isoformat()

    state = store.get_conversation_state("c-1")
    assert state["active_agent_id"] == result.assignment.id
    assert state["last_engagement_at"] == NOW.isoformat()


def test_reactivation_reuses_row_and_keeps_counters(orchestrator, store, clock):
    first = orchestrator.assign_agent("c-1", "webinar")
    store.update("agent_conversations", first.assignment.id, {
        "messages_sent": 5,
        "messages_received": 2,
        "status": "expired",
    })

    clock.advance(days=40)
    second = orchestrator.assign_agent("c-1", "webinar")

    assert second.assignment.id == first.assignment.id
    assert store.count("agent_conversations", {"contact_id": "c-1"}) == 1
    assert second.assignment.messages_sent == 5
    assert second.assignment.messages_received == 2
    assert second.assignment.status == "active"
    assert second.assignment.expiration_date == clock.now + timedelta(days=30)
    assert second.state.active_agent_id == first.assignment.id


def test_handoff_queues_the_displaced_agent(orchestrator, clock):
    webinar = orchestrator.assign_agent("c-1", "webinar")
    clock.advance(minutes=5)

    sales = orchestrator.assign_agent("c-1", "sales_agent")

    assert sales.is_handoff
    assert sales.message_type == "handoff"
    assert sales.previous_agent_type == "webinar"
    assert sales.state.active_agent_id == sales.assignment.id
    assert [e.agent_id for e in sales.state.agent_queue] == [webinar.assignment.id]


def test_queue_never_holds_duplicates(orchestrator, clock):
    for agent_type in ("webinar", "sales_agent", "webinar", "sales_agent", "textbook"):
        result = orchestrator.assign_agent("c-1", agent_type)
        clock.advance(minutes=1)

    queued = [e.agent_id for e in result.state.agent_queue]
    assert len(queued) == len(set(queued)) == 2
    assert result.assignment.id not in queued


def test_customer_service_is_never_displaced(orchestrator, clock):
    orchestrator.assign_agent("c-1", "customer_service", source=AssignmentSource.PRODUCT_AGENT)
    clock.advance(minutes=1)

    result = orchestrator.assign_agent("c-1", "sales_agent")

    assert not result.is_handoff
    assert result.message_type == "introduction"
    assert result.state.active_agent_id == result.assignment.id


def test_unknown_agent_type_is_rejected(orchestrator):
    with pytest.raises(InvalidAgentTypeError):
        orchestrator.assign_agent("c-1", "astrologer")


def test_get_assignments_merges_sources_one_per_type(orchestrator, store):
    store.insert("agent_conversations", {
        "id": "old", "contact_id": "c-1", "agent_type": "sales_agent",
        "status": "expired", "started_at": NOW,
    })
    store.insert("product_agents", {
        "id": "live", "contact_id": "c-1", "product_type": "sales_agent",
        "status": "active", "assigned_date": NOW - timedelta(days=3),
        "expiration_date": NOW + timedelta(days=10), "replies_received": 4,
    })
    store.insert("product_agents", {
        "id": "tb", "contact_id": "c-1", "product_type": "textbook", "status": "active",
    })

    assignments = {a.agent_type: a for a in orchestrator.get_assignments("c-1")}

    assert set(assignments) == {"sales_agent", "textbook"}
    assert assignments["sales_agent"].id == "live"
    assert assignments["sales_agent"].source is AssignmentSource.PRODUCT_AGENT
    assert assignments["sales_agent"].messages_received == 4


# ===================================
# HELP MODE / STATUS / EXPIRY
# ===================================

def test_help_mode_gives_customer_service_the_floor(orchestrator, clock, store):
    sales = orchestrator.assign_agent("c-1", "sales_agent")

    state = orchestrator.activate_help_mode("c-1")

    service = next(a for a in orchestrator.get_assignments("c-1") if a.is_customer_service)
    assert state.active_agent_id == service.id
    assert state.help_mode_until == NOW + timedelta(hours=4)
    assert sales.assignment.id in [e.agent_id for e in state.agent_queue]

    # Handoffs during help mode don't take the floor from customer service
    clock.advance(minutes=10)
    webinar = orchestrator.assign_agent("c-1", "webinar")
    assert webinar.state.active_agent_id == service.id

    state = orchestrator.clear_help_mode("c-1")
    assert state.active_agent_id == webinar.assignment.id


def test_help_mode_expires_by_time(orchestrator, clock):
    sales = orchestrator.assign_agent("c-1", "sales_agent")
    orchestrator.activate_help_mode("c-1", hours=1)

    clock.advance(hours=2)
    state = orchestrator.recalculate_active_agent("c-1")

    assert state.active_agent_id == sales.assignment.id


def test_pausing_an_agent_removes_it_from_the_queue(orchestrator, clock):
    orchestrator.assign_agent("c-1", "webinar")
    clock.advance(minutes=1)
    sales = orchestrator.assign_agent("c-1", "sales_agent")

    updated = orchestrator.set_assignment_status("c-1", "webinar", "paused")

    state = orchestrator.get_state("c-1")
    assert updated.status == "paused"
    assert state.active_agent_id == sales.assignment.id
    assert state.agent_queue == []


def test_set_status_for_missing_agent_returns_none(orchestrator):
    assert orchestrator.set_assignment_status("c-1", "webinar", "paused") is None


def test_expired_active_agent_is_replaced_on_recalculation(orchestrator, clock):
    service = orchestrator.assign_agent("c-1", "customer_service", source=AssignmentSource.PRODUCT_AGENT)
    clock.advance(minutes=1)
    orchestrator.assign_agent("c-1", "webinar")

    clock.advance(days=31)
    state = orchestrator.recalculate_active_agent("c-1")

    assert state.active_agent_id == service.assignment.id
    assert state.agent_queue == []


def test_sweep_marks_expired_rows_and_recalculates(orchestrator, store, clock):
    webinar = orchestrator.assign_agent("c-1", "webinar")
    orchestrator.assign_agent("c-2", "customer_service")

    clock.advance(days=31)
    summary = orchestrator.sweep_expired()

    assert summary == {"expired": 1, "contacts": 1}
    assert store.get_by_id("agent_conversations", webinar.assignment.id)["status"] == "expired"
    assert orchestrator.get_state("c-1").active_agent_id is None
    assert orchestrator.get_state("c-2").active_agent_id is not None


# ===================================
# QUEUE RESUMPTION
# ===================================

def test_stale_active_agent_yields_to_queue_head(orchestrator, clock):
    webinar = orchestrator.assign_agent("c-1", "webinar")
    clock.advance(minutes=1)
    sales = orchestrator.assign_agent("c-1", "sales_agent")

    clock.advance(hours=49)
    generator = RecordingGenerator()
    summary = orchestrator.resume_queued_agents(generator=generator)

    state = orchestrator.get_state("c-1")
    assert summary == {"processed": 1, "resumed": 1, "failed": 0}
    assert state.active_agent_id == webinar.assignment.id
    assert [e.agent_id for e in state.agent_queue] == [sales.assignment.id]
    assert generator.calls[0]["message_type"] == "resume"
    assert generator.calls[0]["agent_id"] == webinar.assignment.id


def test_stale_agent_yields_past_queued_customer_service(orchestrator, store, clock):
    service = orchestrator.assign_agent("c-1", "customer_service", source=AssignmentSource.PRODUCT_AGENT)
    clock.advance(minutes=1)
    webinar = orchestrator.assign_agent("c-1", "webinar")
    clock.advance(minutes=1)
    sales = orchestrator.assign_agent("c-1", "sales_agent")
    assert [e.agent_id for e in orchestrator.get_state("c-1").agent_queue] == [
        service.assignment.id, webinar.assignment.id,
    ]

    clock.advance(hours=49)
    generator = RecordingGenerator()
    summary = orchestrator.resume_queued_agents(generator=generator)

    state = orchestrator.get_state("c-1")
    assert summary == {"processed": 1, "resumed": 1, "failed": 0}
    assert state.active_agent_id == webinar.assignment.id
    assert [e.agent_id for e in state.agent_queue] == [service.assignment.id, sales.assignment.id]
    assert generator.calls[0]["agent_id"] == webinar.assignment.id
    assert store.get_by_id("product_agents", service.assignment.id)["assigned_date"] == NOW.isoformat()


def test_stale_agent_with_only_customer_service_queued_stays(orchestrator, store, clock):
    service = orchestrator.assign_agent("c-1", "customer_service", source=AssignmentSource.PRODUCT_AGENT)
    clock.advance(minutes=1)
    sales = orchestrator.assign_agent("c-1", "sales_agent")

    clock.advance(hours=49)
    summary = orchestrator.resume_queued_agents(generator=RecordingGenerator())

    assert summary["resumed"] == 0
    assert orchestrator.get_state("c-1").active_agent_id == sales.assignment.id
    assert store.get_by_id("product_agents", service.assignment.id)["assigned_date"] == NOW.isoformat()


def test_recently_messaged_agent_keeps_the_floor(orchestrator, store, clock):
    orchestrator.assign_agent("c-1", "webinar")
    clock.advance(minutes=1)
    sales = orchestrator.assign_agent("c-1", "sales_agent")
    store.update_where("conversation_state", {"contact_id": "c-1"}, {"last_message_sent_at": clock.now})

    clock.advance(hours=1)
    generator = RecordingGenerator()
    summary = orchestrator.resume_queued_agents(generator=generator)

    assert summary["resumed"] == 0
    assert generator.calls == []
    assert orchestrator.get_state("c-1").active_agent_id == sales.assignment.id


def test_resume_failure_is_counted(orchestrator, clock):
    orchestrator.assign_agent("c-1", "webinar")
    clock.advance(minutes=1)
    orchestrator.assign_agent("c-1", "sales_agent")

    clock.advance(hours=49)
    summary = orchestrator.resume_queued_agents(generator=RecordingGenerator(fail_for={"c-1"}))

    assert summary["resumed"] == 1
    assert summary["failed"] == 1


# ===================================
# CONCURRENCY
# ===================================

def test_busy_contact_times_out(store, clock):
    locks = ContactLockRegistry(timeout=0.05)
    orchestrator = AgentOrchestrator(store, locks=locks, clock=clock)
    held = threading.Event()
    release = threading.Event()

    def hold():
        with locks.hold("c-1"):
            held.set()
            release.wait(2)

    worker = threading.Thread(target=hold)
    worker.start()
    held.wait(2)
    try:
        with pytest.raises(ContactLockTimeout):
            orchestrator.assign_agent("c-1", "sales_agent")
    finally:
        release.set()
        worker.join()


def test_concurrent_assignments_leave_one_active_agent(store, clock):
    orchestrator = AgentOrchestrator(store, locks=ContactLockRegistry(timeout=5), clock=clock)
    agent_types = ["sales_agent", "webinar", "textbook", "flashcards", "ccta", "lead_nurture"]

    threads = [
        threading.Thread(target=orchestrator.assign_agent, args=("c-1", agent_type))
        for agent_type in agent_types
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    state = orchestrator.get_state("c-1")
    assignments = orchestrator.get_assignments("c-1")
    queued = [e.agent_id for e in state.agent_queue]

    assert len(assignments) == len(agent_types)
    assert state.active_agent_id in {a.id for a in assignments}
    assert state.active_agent_id not in queued
    assert len(queued) == len(set(queued)) == len(agent_types) - 1
