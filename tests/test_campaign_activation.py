import pytest

from conftest import RecordingGenerator
from orchestration.exceptions import CampaignNotFoundError
from pipelines.campaign_activation import CampaignActivationPipeline
from pipelines.segment_resolver import SegmentResolver

AUDIENCE = [{"id": "ui-1", "field": "total_spent", "operator": "greater_than", "value": "100"}]


@pytest.fixture
def campaign(store, add_contact):
    add_contact("c-1", total_spent=500)
    add_contact("c-2", total_spent=900)
    add_contact("c-3", total_spent=1500)
    add_contact("c-poor", total_spent=10)
    return store.insert("ai_sales_campaigns", {
        "id": "camp-1",
        "name": "Spring push",
        "agent_type": "sales_agent",
        "channel": "sms",
        "audience_filter": AUDIENCE,
        "campaign_strategy": {"goal": "book a call"},
        "status": "draft",
    })


def make_pipeline(store, orchestrator, generator):
    return CampaignActivationPipeline(
        database=store,
        orchestrator=orchestrator,
        generator=generator,
        resolver=SegmentResolver(store),
    )


def memberships(store, campaign_id="camp-1"):
    return {row["contact_id"]: row for row in store.get_campaign_contacts(campaign_id)}


def test_activation_materializes_segment_and_isolates_failures(store, orchestrator, campaign):
    generator = RecordingGenerator(fail_for={"c-2"})
    pipeline = make_pipeline(store, orchestrator, generator)

    result = pipeline.activate("camp-1")

    assert result == {
        "success": True,
        "campaign_id": "camp-1",
        "activated_count": 2,
        "failed_count": 1,
        "skipped_count": 0,
        "total_contacts": 3,
    }

    rows = memberships(store)
    assert set(rows) == {"c-1", "c-2", "c-3"}
    assert rows["c-1"]["status"] == "active"
    assert rows["c-1"]["agent_id"] is not None
    assert rows["c-3"]["status"] == "active"

    failed = rows["c-2"]
    assert failed["status"] == "failed"
    assert failed["last_error"]["message"] == "generation timed out"
    assert "MessageGenerationError" in failed["last_error"]["error"]
    assert failed["last_error"]["retry_count"] == 0
    assert failed["last_error"]["message_type"] == "introduction"
    assert failed["last_error"]["contact_name"] == "Contact c-2"
    assert failed["last_error"]["timestamp"]

    stored = store.get_campaign("camp-1")
    assert stored["status"] == "active"
    assert stored["contacts_engaged"] == 2
    assert stored["contact_count"] == 3
    assert stored["start_date"] is not None


def test_generation_request_carries_campaign_context(store, orchestrator, campaign):
    generator = RecordingGenerator()
    make_pipeline(store, orchestrator, generator).activate("camp-1")

    call = generator.for_contact("c-1")[0]
    assert call["message_type"] == "introduction"
    assert call["channel"] == "sms"
    assert call["trigger_context"]["campaign_id"] == "camp-1"
    assert call["trigger_context"]["campaign_strategy"] == {"goal": "book a call"}
    assert call["agent_id"] == memberships(store)["c-1"]["agent_id"]


def test_contact_with_another_agent_gets_a_handoff(store, orchestrator, clock, campaign):
    webinar = orchestrator.assign_agent("c-1", "webinar")
    clock.advance(minutes=5)
    generator = RecordingGenerator()

    make_pipeline(store, orchestrator, generator).activate("camp-1")

    call = generator.for_contact("c-1")[0]
    assert call["message_type"] == "handoff"
    assert call["trigger_context"]["previous_agent_type"] == "webinar"

    state = orchestrator.get_state("c-1")
    assert state.active_agent_id == memberships(store)["c-1"]["agent_id"]
    assert [e.agent_id for e in state.agent_queue] == [webinar.assignment.id]


def test_rerun_skips_failed_and_engaged_contacts(store, orchestrator, campaign):
    generator = RecordingGenerator(fail_for={"c-2"})
    pipeline = make_pipeline(store, orchestrator, generator)
    pipeline.activate("camp-1")
    generator.calls.clear()

    result = pipeline.activate("camp-1")

    assert result["total_contacts"] == 2
    assert result["activated_count"] == 0
    assert result["skipped_count"] == 2
    assert generator.calls == []
    assert store.get_campaign("camp-1")["contacts_engaged"] == 2
    assert store.count("ai_sales_campaign_contacts", {"campaign_id": "camp-1"}) == 3
    assert store.count("agent_conversations", {"contact_id": "c-1"}) == 1


def test_rerun_reintroduces_contacts_whose_agent_lapsed(store, orchestrator, campaign):
    generator = RecordingGenerator()
    pipeline = make_pipeline(store, orchestrator, generator)
    pipeline.activate("camp-1")
    first_agent = memberships(store)["c-1"]["agent_id"]
    orchestrator.set_assignment_status("c-1", "sales_agent", "paused")
    generator.calls.clear()

    result = pipeline.activate("camp-1")

    assert result["activated_count"] == 1
    assert result["skipped_count"] == 2
    assert [call["contact_id"] for call in generator.calls] == ["c-1"]
    assert memberships(store)["c-1"]["agent_id"] == first_agent
    assert store.count("agent_conversations", {"contact_id": "c-1"}) == 1


def test_missing_contact_fails_only_that_membership(store, orchestrator, campaign):
    store.insert("ai_sales_campaign_contacts", {"campaign_id": "camp-1", "contact_id": "ghost", "status": "pending"})
    store.insert("ai_sales_campaign_contacts", {"campaign_id": "camp-1", "contact_id": "c-1", "status": "pending"})

    result = make_pipeline(store, orchestrator, RecordingGenerator()).activate("camp-1")

    assert result["activated_count"] == 1
    assert result["failed_count"] == 1
    assert memberships(store)["ghost"]["status"] == "failed"
    assert "ghost" in memberships(store)["ghost"]["last_error"]["message"]


def test_unknown_campaign_raises(store, orchestrator):
    with pytest.raises(CampaignNotFoundError):
        make_pipeline(store, orchestrator, RecordingGenerator()).activate("missing")


def test_retry_failed_increments_retry_count(store, orchestrator, campaign):
    generator = RecordingGenerator(fail_for={"c-2"})
    pipeline = make_pipeline(store, orchestrator, generator)
    pipeline.activate("camp-1")

    result = pipeline.retry_failed("camp-1")

    assert result["retried"] == 1
    assert memberships(store)["c-2"]["status"] == "failed"
    assert memberships(store)["c-2"]["last_error"]["retry_count"] == 1

    generator.fail_for.clear()
    result = pipeline.retry_failed("camp-1")

    assert result["activated_count"] == 1
    assert result["skipped_count"] == 2
    assert memberships(store)["c-2"]["status"] == "active"
    assert memberships(store)["c-2"]["last_error"] is None


def test_pause_resume_stop_lifecycle(store, orchestrator, clock, campaign):
    pipeline = make_pipeline(store, orchestrator, RecordingGenerator())
    pipeline.activate("camp-1")

    paused = pipeline.pause("camp-1")
    assert paused["contacts_updated"] == 3
    assert store.get_campaign("camp-1")["status"] == "paused"
    assert {row["status"] for row in memberships(store).values()} == {"paused"}

    resumed = pipeline.resume("camp-1")
    assert resumed["contacts_updated"] == 3
    assert store.get_campaign("camp-1")["status"] == "active"

    clock.advance(minutes=1)
    stopped = pipeline.stop("camp-1")
    assert stopped["contacts_updated"] == 3
    assert stopped["agents_expired"] == 3
    assert store.get_campaign("camp-1")["status"] == "completed"
    assert {row["status"] for row in memberships(store).values()} == {"completed"}
    assert orchestrator.get_state("c-1").active_agent_id is None


def test_resume_populates_an_empty_segment(store, orchestrator, campaign):
    pipeline = make_pipeline(store, orchestrator, RecordingGenerator())

    pipeline.resume("camp-1")

    assert set(memberships(store)) == {"c-1", "c-2", "c-3"}
    assert {row["status"] for row in memberships(store).values()} == {"pending"}


def test_campaign_without_audience_activates_nothing(store, orchestrator):
    store.insert("ai_sales_campaigns", {"id": "empty", "name": "Empty", "agent_type": "sales_agent"})

    result = make_pipeline(store, orchestrator, RecordingGenerator()).activate("empty")

    assert result["total_contacts"] == 0
    assert result["activated_count"] == 0
