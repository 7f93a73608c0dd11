import pathlib
import sys
from datetime import datetime, timedelta, timezone

import pytest

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[1]))
from database.memory import InMemoryDatabase
from orchestration.agent_orchestrator import AgentOrchestrator
from orchestration.exceptions import MessageGenerationError
from orchestration.locks import ContactLockRegistry
from orchestration.models import IntentAnalysis

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for time-dependent behaviour."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeClassifier:
    def __init__(self, analysis: IntentAnalysis = None, error: Exception = None):
        self.analysis = analysis or IntentAnalysis.neutral()
        self.error = error
        self.calls = []

    def __call__(self, messages, contact_context):
        self.calls.append((messages, contact_context))
        if self.error:
            raise self.error
        return self.analysis


class RecordingGenerator:
    """Message generator double; fails for the given contact ids."""

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.calls = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        if kwargs["contact_id"] in self.fail_for:
            raise MessageGenerationError("generation timed out")
        return {"body": "hello", "message_id": f"msg-{len(self.calls)}"}

    def for_contact(self, contact_id):
        return [call for call in self.calls if call["contact_id"] == contact_id]


@pytest.fixture
def store():
    return InMemoryDatabase()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def locks():
    return ContactLockRegistry(timeout=1)


@pytest.fixture
def orchestrator(store, locks, clock):
    return AgentOrchestrator(store, locks=locks, clock=clock)


@pytest.fixture
def add_contact(store):
    def _add(contact_id, **fields):
        return store.insert("contacts", {"id": contact_id, "full_name": f"Contact {contact_id}", **fields})
    return _add
