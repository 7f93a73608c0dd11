"""
📦 DOMAIN MODELS
================
Enums and record types shared by the scoring engine, the agent
orchestrator and the campaign pipeline.

Rows come out of the store as plain dicts; the ``from_row`` helpers
turn them into typed records and ``to_row`` turns them back.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class AgentType(str, Enum):
    CUSTOMER_SERVICE = "customer_service"
    SALES_AGENT = "sales_agent"
    LEAD_NURTURE = "lead_nurture"
    WEBINAR = "webinar"
    TEXTBOOK = "textbook"
    FLASHCARDS = "flashcards"
    ALGO_MONTHLY = "algo_monthly"
    CCTA = "ccta"
    INFLUENCER_OUTREACH = "influencer_outreach"


class AssignmentStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    EXPIRED = "expired"
    CONVERTED = "converted"
    ARCHIVED = "archived"


class AssignmentSource(str, Enum):
    """Which physical table an assignment row lives in."""
    AGENT_CONVERSATION = "agent_conversation"
    PRODUCT_AGENT = "product_agent"


class IntentLevel(str, Enum):
    NONE = "none"
    LOW = "low"
    MODERATE = "moderate"
    STRONG = "strong"
    IMMEDIATE = "immediate"


class LeadStatus(str, Enum):
    READY_TO_BUY = "ready_to_buy"
    HOT = "hot"
    WARM = "warm"
    NEUTRAL = "neutral"
    COLD = "cold"


class LikelihoodCategory(str, Enum):
    HOT = "hot"
    WARM = "warm"
    COLD = "cold"


class MessageType(str, Enum):
    INTRODUCTION = "introduction"
    HANDOFF = "handoff"
    RESUME = "resume"


class Channel(str, Enum):
    SMS = "sms"
    EMAIL = "email"


class CampaignStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class MembershipStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    FAILED = "failed"
    PAUSED = "paused"
    COMPLETED = "completed"


# Physical table per assignment source, and the column holding the type
ASSIGNMENT_TABLES = {
    AssignmentSource.AGENT_CONVERSATION: ("agent_conversations", "agent_type"),
    AssignmentSource.PRODUCT_AGENT: ("product_agents", "product_type"),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp from the store.

    Accepts datetimes and ISO-8601 strings (with or without a trailing
    ``Z``). Naive values are taken to be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def days_between(earlier: datetime, later: datetime) -> float:
    """Fractional days from ``earlier`` to ``later``."""
    return (later - earlier).total_seconds() / 86400


@dataclass
class Contact:
    """The subset of a contact row the core reads."""
    id: str
    full_name: Optional[str] = None
    total_spent: float = 0.0
    products_owned: List[str] = field(default_factory=list)
    customer_tier: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    has_disputed: bool = False
    disputed_amount: float = 0.0
    last_engagement_date: Optional[datetime] = None
    last_contact_date: Optional[datetime] = None
    last_purchase_date: Optional[datetime] = None
    webinar_attendance: List[Any] = field(default_factory=list)
    form_submissions: List[Any] = field(default_factory=list)
    lead_score: Optional[float] = None
    lead_status: Optional[str] = None
    likelihood_category: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Contact":
        return cls(
            id=row["id"],
            full_name=row.get("full_name"),
            total_spent=float(row.get("total_spent") or 0),
            products_owned=list(row.get("products_owned") or []),
            customer_tier=row.get("customer_tier"),
            tags=list(row.get("tags") or []),
            has_disputed=bool(row.get("has_disputed")),
            disputed_amount=float(row.get("disputed_amount") or 0),
            last_engagement_date=parse_timestamp(row.get("last_engagement_date")),
            last_contact_date=parse_timestamp(row.get("last_contact_date")),
            last_purchase_date=parse_timestamp(row.get("last_purchase_date")),
            webinar_attendance=_as_list(row.get("webinar_attendance")),
            form_submissions=_as_list(row.get("form_submissions")),
            lead_score=row.get("lead_score"),
            lead_status=row.get("lead_status"),
            likelihood_category=row.get("likelihood_category"),
        )


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


@dataclass
class AgentAssignment:
    """
    One (contact, agent type) engagement.

    Agent conversations and product agents are stored in separate tables
    but behave identically here; ``source`` remembers where the row lives.
    """
    id: str
    contact_id: str
    agent_type: str
    status: str
    source: AssignmentSource
    assigned_at: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    messages_sent: int = 0
    messages_received: int = 0

    @classmethod
    def from_row(cls, row: Dict[str, Any], source: AssignmentSource) -> "AgentAssignment":
        if source is AssignmentSource.PRODUCT_AGENT:
            agent_type = row.get("product_type")
            assigned_at = row.get("assigned_date")
            received = row.get("replies_received")
        else:
            agent_type = row.get("agent_type")
            assigned_at = row.get("started_at")
            received = row.get("messages_received")
        return cls(
            id=row["id"],
            contact_id=row["contact_id"],
            agent_type=agent_type,
            status=row.get("status") or AssignmentStatus.PENDING.value,
            source=source,
            assigned_at=parse_timestamp(assigned_at),
            expiration_date=parse_timestamp(row.get("expiration_date")),
            messages_sent=int(row.get("messages_sent") or 0),
            messages_received=int(received or 0),
        )

    def is_expired(self, now: datetime) -> bool:
        # No expiration date means the agent never expires
        return self.expiration_date is not None and self.expiration_date <= now

    def is_live(self, now: datetime) -> bool:
        """Active status and not past its expiration."""
        return self.status == AssignmentStatus.ACTIVE.value and not self.is_expired(now)

    @property
    def is_customer_service(self) -> bool:
        return self.agent_type == AgentType.CUSTOMER_SERVICE.value


@dataclass
class QueueEntry:
    agent_id: str
    agent_type: str
    queued_at: datetime

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueueEntry":
        return cls(
            agent_id=data["agent_id"],
            agent_type=data.get("agent_type"),
            queued_at=parse_timestamp(data.get("queued_at")) or utcnow(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "agent_type": self.agent_type,
            "queued_at": self.queued_at.isoformat(),
        }


@dataclass
class ConversationState:
    """Per-contact record of which agent may speak next."""
    contact_id: str
    active_agent_id: Optional[str] = None
    agent_queue: List[QueueEntry] = field(default_factory=list)
    help_mode_until: Optional[datetime] = None
    last_engagement_at: Optional[datetime] = None
    last_message_sent_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Optional[Dict[str, Any]], contact_id: str) -> "ConversationState":
        if not row:
            return cls(contact_id=contact_id)
        return cls(
            contact_id=row.get("contact_id") or contact_id,
            active_agent_id=row.get("active_agent_id"),
            agent_queue=[QueueEntry.from_dict(e) for e in row.get("agent_queue") or []],
            help_mode_until=parse_timestamp(row.get("help_mode_until")),
            last_engagement_at=parse_timestamp(row.get("last_engagement_at")),
            last_message_sent_at=parse_timestamp(row.get("last_message_sent_at")),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "contact_id": self.contact_id,
            "active_agent_id": self.active_agent_id,
            "agent_queue": [entry.to_dict() for entry in self.agent_queue],
            "help_mode_until": self.help_mode_until,
            "last_engagement_at": self.last_engagement_at,
        }

    def in_help_mode(self, now: datetime) -> bool:
        return self.help_mode_until is not None and self.help_mode_until > now

    def is_queued(self, agent_id: str) -> bool:
        return any(entry.agent_id == agent_id for entry in self.agent_queue)

    def enqueue(self, assignment: AgentAssignment, now: datetime) -> bool:
        """Append an agent to the queue unless it is already there."""
        if self.is_queued(assignment.id):
            return False
        self.agent_queue.append(
            QueueEntry(agent_id=assignment.id, agent_type=assignment.agent_type, queued_at=now)
        )
        return True


@dataclass
class IntentAnalysis:
    """Output of the buying-intent classifier for a single scoring call."""
    intent_level: IntentLevel = IntentLevel.LOW
    intent_score: float = 50.0
    confidence: float = 0.5
    key_signals: List[str] = field(default_factory=list)
    sentiment: str = "neutral"

    @classmethod
    def neutral(cls) -> "IntentAnalysis":
        return cls()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IntentAnalysis":
        level = str(data.get("intent_level", "low")).lower()
        try:
            intent_level = IntentLevel(level)
        except ValueError:
            intent_level = IntentLevel.LOW
        score = min(max(float(data.get("intent_score", 50)), 0.0), 100.0)
        confidence = min(max(float(data.get("confidence", 0.5)), 0.0), 1.0)
        return cls(
            intent_level=intent_level,
            intent_score=score,
            confidence=confidence,
            key_signals=[str(s) for s in data.get("key_signals") or []],
            sentiment=str(data.get("sentiment") or "neutral"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent_level": self.intent_level.value,
            "intent_score": self.intent_score,
            "confidence": self.confidence,
            "key_signals": list(self.key_signals),
            "sentiment": self.sentiment,
        }
