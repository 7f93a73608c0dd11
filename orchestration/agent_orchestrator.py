"""
🧭 AGENT ASSIGNMENT ORCHESTRATOR
================================
Decides which AI agent may speak to a contact.

A contact can hold many agent assignments (sales, customer service,
product agents) but only one is ACTIVE at a time:

PRIORITY RULE:
1. Help mode in the future -> the live customer_service agent
2. Most recently assigned live non-customer_service agent
3. Otherwise the live customer_service agent
4. Nothing live -> no active agent

Agents that lose the floor wait in the contact's queue (FIFO, no
duplicates) and come back when the active agent expires or goes quiet.

Every change to a contact's conversation state happens while holding
that contact's lock, and each operation writes the state row once.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from config.settings import AGENT_LIFETIME_DAYS, INDEFINITE, settings
from database.base import BaseDatabase
from database.connection import db
from orchestration.exceptions import InvalidAgentTypeError, LeadflowError
from orchestration.locks import ContactLockRegistry, contact_locks
from orchestration.models import (
    ASSIGNMENT_TABLES,
    AgentAssignment,
    AgentType,
    AssignmentSource,
    AssignmentStatus,
    ConversationState,
    MessageType,
    parse_timestamp,
    utcnow,
)

# Column holding the assignment timestamp / free-form context, per source
ASSIGNED_AT_COLUMNS = {
    AssignmentSource.AGENT_CONVERSATION: "started_at",
    AssignmentSource.PRODUCT_AGENT: "assigned_date",
}
CONTEXT_COLUMNS = {
    AssignmentSource.AGENT_CONVERSATION: "key_entities",
    AssignmentSource.PRODUCT_AGENT: "agent_context",
}


@dataclass
class AssignmentResult:
    """Outcome of assign_agent."""
    assignment: AgentAssignment
    state: ConversationState
    is_handoff: bool = False
    previous_agent_type: Optional[str] = None

    @property
    def message_type(self) -> str:
        return MessageType.HANDOFF.value if self.is_handoff else MessageType.INTRODUCTION.value

    @property
    def is_active(self) -> bool:
        return self.state.active_agent_id == self.assignment.id


class AgentOrchestrator:
    """
    Single-active-agent bookkeeping for contacts.

    Usage:
        orchestrator = AgentOrchestrator()

        # Campaign hands the contact to the sales agent
        result = orchestrator.assign_agent(contact_id, "sales_agent", context={"campaign_id": cid})
        result.is_handoff          # True if another agent was talking
        result.state.agent_queue   # displaced agents wait here

        # Customer asked for help
        orchestrator.activate_help_mode(contact_id)
    """

    def __init__(
        self,
        database: Optional[BaseDatabase] = None,
        locks: Optional[ContactLockRegistry] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.db = database if database is not None else db
        self.locks = locks if locks is not None else contact_locks
        self.clock = clock

    # ===================================
    # READS
    # ===================================

    def get_assignments(self, contact_id: str) -> List[AgentAssignment]:
        """
        All assignments for a contact, one per agent type.

        Merges agent conversations and product agents. Where both hold
        the same type, the live row wins, then the most recently assigned.
        """
        now = self.clock()
        by_type: Dict[str, AgentAssignment] = {}

        for source, (table, _) in ASSIGNMENT_TABLES.items():
            for row in self.db.query(table, filters={"contact_id": contact_id}):
                assignment = AgentAssignment.from_row(row, source)
                current = by_type.get(assignment.agent_type)
                if current is None or _preference(assignment, now) > _preference(current, now):
                    by_type[assignment.agent_type] = assignment

        return list(by_type.values())

    def get_state(self, contact_id: str) -> ConversationState:
        return ConversationState.from_row(self.db.get_conversation_state(contact_id), contact_id)

    @staticmethod
    def select_active_agent(
        assignments: List[AgentAssignment],
        help_mode_until: Optional[datetime],
        now: datetime
    ) -> Optional[AgentAssignment]:
        """
        Apply the priority rule.

        Args:
            assignments: The contact's assignments (any status)
            help_mode_until: End of help mode, if any
            now: Reference time for expiration and help mode

        Returns:
            The assignment allowed to speak, or None
        """
        live = [a for a in assignments if a.is_live(now)]
        service = [a for a in live if a.is_customer_service]
        others = [a for a in live if not a.is_customer_service]

        if help_mode_until is not None and help_mode_until > now and service:
            return service[0]

        if others:
            return max(others, key=_assigned_key)

        return service[0] if service else None

    @staticmethod
    def expiration_for(agent_type: str, start: datetime) -> Optional[datetime]:
        """Expiration date for an assignment started at ``start`` (None = never)."""
        days = AGENT_LIFETIME_DAYS.get(agent_type, settings.agents.default_lifetime_days)
        if days is INDEFINITE:
            return None
        return start + timedelta(days=days)

    # ===================================
    # STATE RECALCULATION
    # ===================================

    def _recalculate(
        self,
        state: ConversationState,
        assignments: List[AgentAssignment],
        now: datetime,
        displaced: Optional[AgentAssignment] = None
    ) -> ConversationState:
        """Pick the active agent and rebuild the queue in memory."""
        if displaced is not None:
            state.enqueue(displaced, now)

        active = self.select_active_agent(assignments, state.help_mode_until, now)
        active_id = active.id if active else None
        live_ids = {a.id for a in assignments if a.is_live(now)}

        queue = []
        seen = set()
        for entry in state.agent_queue:
            if entry.agent_id in seen or entry.agent_id == active_id or entry.agent_id not in live_ids:
                continue
            seen.add(entry.agent_id)
            queue.append(entry)
        state.agent_queue = queue

        waiting = sorted(
            (a for a in assignments if a.id in live_ids and a.id != active_id),
            key=_assigned_key
        )
        for assignment in waiting:
            state.enqueue(assignment, now)

        state.active_agent_id = active_id
        return state

    def _save(self, state: ConversationState) -> ConversationState:
        self.db.save_conversation_state(state.to_row())
        return state

    def recalculate_active_agent(
        self,
        contact_id: str,
        displaced: Optional[AgentAssignment] = None
    ) -> ConversationState:
        """
        Recompute the contact's active agent and queue.

        Enqueueing ``displaced`` and recalculating happen under one lock
        hold and end in a single state write.

        Args:
            contact_id: Contact UUID
            displaced: Agent that just lost the floor, if any

        Returns:
            The saved ConversationState
        """
        with self.locks.hold(contact_id):
            now = self.clock()
            state = self.get_state(contact_id)
            previous = state.active_agent_id
            self._recalculate(state, self.get_assignments(contact_id), now, displaced)
            self._save(state)

        if state.active_agent_id != previous:
            logger.debug(f"🧭 Contact {contact_id}: active agent {previous} -> {state.active_agent_id}")
        return state

    # ===================================
    # ASSIGNMENT
    # ===================================

    def _upsert_assignment(
        self,
        contact_id: str,
        agent_type: str,
        source: AssignmentSource,
        now: datetime,
        context: Optional[Dict[str, Any]] = None,
        channel: Optional[str] = None
    ) -> AgentAssignment:
        """Create or reactivate the (contact, type) row; counters are left alone."""
        table, type_column = ASSIGNMENT_TABLES[source]
        data = {
            "contact_id": contact_id,
            type_column: agent_type,
            "status": AssignmentStatus.ACTIVE.value,
            ASSIGNED_AT_COLUMNS[source]: now,
            "expiration_date": self.expiration_for(agent_type, now),
        }
        if context:
            data[CONTEXT_COLUMNS[source]] = context
        if channel:
            data["channel"] = getattr(channel, "value", channel)

        row = self.db.upsert_assignment(table, type_column, data)
        if not row:
            raise LeadflowError(f"Failed to save {agent_type} assignment for contact {contact_id}")
        return AgentAssignment.from_row(row, source)

    def assign_agent(
        self,
        contact_id: str,
        agent_type: str,
        source: AssignmentSource = AssignmentSource.AGENT_CONVERSATION,
        context: Optional[Dict[str, Any]] = None,
        channel: Optional[str] = None
    ) -> AssignmentResult:
        """
        Activate an agent for a contact, handing off from the current one.

        If the contact already has a row for this agent type it is
        reactivated in place (new expiration, counters kept). A live
        agent of a different, non-customer_service type is displaced
        into the queue.

        Args:
            contact_id: Contact UUID
            agent_type: One of AGENT_LIFETIME_DAYS
            source: Which assignment table to write
            context: Stored on the assignment (campaign id, strategy, ...)
            channel: Preferred channel for this agent

        Returns:
            AssignmentResult

        Raises:
            InvalidAgentTypeError: agent_type is unknown
            ContactLockTimeout: the contact is busy
        """
        agent_type = getattr(agent_type, "value", agent_type)
        if agent_type not in AGENT_LIFETIME_DAYS:
            raise InvalidAgentTypeError(agent_type)

        with self.locks.hold(contact_id):
            now = self.clock()
            state = self.get_state(contact_id)
            assignments = self.get_assignments(contact_id)

            current = self._current_agent(state, assignments, now)
            is_handoff = (
                current is not None
                and current.agent_type != agent_type
                and not current.is_customer_service
            )

            assignment = self._upsert_assignment(contact_id, agent_type, source, now, context, channel)

            state.last_engagement_at = now
            assignments = self.get_assignments(contact_id)
            self._recalculate(state, assignments, now, displaced=current if is_handoff else None)
            self._save(state)

        if is_handoff:
            logger.info(f"🔀 Handoff {current.agent_type} -> {agent_type} for contact {contact_id}")
        else:
            logger.debug(f"👋 {agent_type} assigned to contact {contact_id}")

        return AssignmentResult(
            assignment=assignment,
            state=state,
            is_handoff=is_handoff,
            previous_agent_type=current.agent_type if is_handoff else None,
        )

    def _current_agent(
        self,
        state: ConversationState,
        assignments: List[AgentAssignment],
        now: datetime
    ) -> Optional[AgentAssignment]:
        """The agent speaking right now: the stored active one if still live."""
        for assignment in assignments:
            if assignment.id == state.active_agent_id and assignment.is_live(now):
                return assignment
        return self.select_active_agent(assignments, state.help_mode_until, now)

    def set_assignment_status(
        self,
        contact_id: str,
        agent_type: str,
        status: str
    ) -> Optional[AgentAssignment]:
        """
        Pause, convert, archive or expire one of a contact's agents.

        Returns:
            The updated assignment, or None if the contact has no such agent
        """
        agent_type = getattr(agent_type, "value", agent_type)
        status = getattr(status, "value", status)

        with self.locks.hold(contact_id):
            match = next((a for a in self.get_assignments(contact_id) if a.agent_type == agent_type), None)
            if match is None:
                logger.warning(f"⚠️ Contact {contact_id} has no {agent_type} agent")
                return None

            table, _ = ASSIGNMENT_TABLES[match.source]
            row = self.db.update(table, match.id, {"status": status})
            self.recalculate_active_agent(contact_id)

        logger.info(f"📌 {agent_type} for contact {contact_id} -> {status}")
        return AgentAssignment.from_row(row, match.source) if row else None

    # ===================================
    # HELP MODE
    # ===================================

    def activate_help_mode(self, contact_id: str, hours: Optional[int] = None) -> ConversationState:
        """
        Give customer service the floor for ``hours`` (default from settings).

        Creates or reactivates the customer_service assignment if needed.
        """
        hours = hours if hours is not None else settings.agents.help_mode_hours

        with self.locks.hold(contact_id):
            now = self.clock()
            assignments = self.get_assignments(contact_id)
            if not any(a.is_customer_service and a.is_live(now) for a in assignments):
                self._upsert_assignment(
                    contact_id,
                    AgentType.CUSTOMER_SERVICE.value,
                    AssignmentSource.PRODUCT_AGENT,
                    now
                )
                assignments = self.get_assignments(contact_id)

            state = self.get_state(contact_id)
            state.help_mode_until = now + timedelta(hours=hours)
            self._recalculate(state, assignments, now)
            self._save(state)

        logger.info(f"🆘 Help mode for contact {contact_id} until {state.help_mode_until.isoformat()}")
        return state

    def clear_help_mode(self, contact_id: str) -> ConversationState:
        with self.locks.hold(contact_id):
            now = self.clock()
            state = self.get_state(contact_id)
            state.help_mode_until = None
            self._recalculate(state, self.get_assignments(contact_id), now)
            self._save(state)
        return state

    # ===================================
    # MAINTENANCE
    # ===================================

    def sweep_expired(self) -> Dict[str, int]:
        """
        Mark active assignments past their expiration as expired.

        Expiration is already enforced when reading; this keeps the
        stored status in line and recalculates the affected contacts.

        Returns:
            Dict with expired and contacts counts
        """
        now = self.clock()
        contact_ids: List[str] = []
        expired = 0

        for source, (table, _) in ASSIGNMENT_TABLES.items():
            rows = self.db.select_where(table, [
                {"field": "status", "operator": "equals", "value": AssignmentStatus.ACTIVE.value},
                {"field": "expiration_date", "operator": "less_or_equal", "value": now.isoformat()},
            ])
            for row in rows:
                self.db.update(table, row["id"], {"status": AssignmentStatus.EXPIRED.value})
                expired += 1
                if row["contact_id"] not in contact_ids:
                    contact_ids.append(row["contact_id"])

        for contact_id in contact_ids:
            try:
                self.recalculate_active_agent(contact_id)
            except Exception as e:
                logger.error(f"Error recalculating contact {contact_id}: {e}")
                continue

        logger.info(f"⌛ Expired {expired} assignments across {len(contact_ids)} contacts")
        return {"expired": expired, "contacts": len(contact_ids)}

    def resume_queued_agents(self, generator: Optional[Callable[..., Any]] = None) -> Dict[str, int]:
        """
        Bring queued agents back for contacts whose active agent is gone
        or has been quiet for longer than the stale window.

        A quiet but live active agent swaps places with the first live,
        non-customer_service agent in the queue. When a different agent ends up active, ``generator`` (if
        given) is asked for a resume message.

        Returns:
            Dict with processed, resumed and failed counts
        """
        now = self.clock()
        stale_after = timedelta(hours=settings.agents.queue_stale_hours)
        processed = resumed = failed = 0

        for row in self.db.query("conversation_state"):
            if not row.get("agent_queue"):
                continue
            contact_id = row["contact_id"]
            last_sent = parse_timestamp(row.get("last_message_sent_at"))
            stale = last_sent is None or now - last_sent >= stale_after

            try:
                with self.locks.hold(contact_id):
                    state = self.get_state(contact_id)
                    if state.in_help_mode(now):
                        continue
                    assignments = self.get_assignments(contact_id)
                    by_id = {a.id: a for a in assignments}
                    current = by_id.get(state.active_agent_id)
                    current_live = current is not None and current.is_live(now)
                    if current_live and not stale:
                        continue

                    processed += 1
                    previous_id = state.active_agent_id
                    displaced = None
                    if current_live:
                        # customer_service never outranks a live agent outside help mode
                        head = next(
                            (by_id[e.agent_id] for e in state.agent_queue
                             if e.agent_id in by_id
                             and e.agent_id != current.id
                             and by_id[e.agent_id].is_live(now)
                             and not by_id[e.agent_id].is_customer_service),
                            None
                        )
                        if head is None:
                            continue
                        self._touch(head, now)
                        assignments = self.get_assignments(contact_id)
                        displaced = current

                    self._recalculate(state, assignments, now, displaced)
                    self._save(state)
            except Exception as e:
                logger.error(f"Error resuming queue for contact {contact_id}: {e}")
                failed += 1
                continue

            if state.active_agent_id is None or state.active_agent_id == previous_id:
                continue
            resumed += 1

            if generator is not None:
                active = next(a for a in assignments if a.id == state.active_agent_id)
                try:
                    generator(
                        contact_id=contact_id,
                        agent_id=active.id,
                        message_type=MessageType.RESUME.value,
                        trigger_context={"dequeued": True, "agent_type": active.agent_type},
                        channel=settings.campaigns.default_channel,
                    )
                except Exception as e:
                    logger.error(f"❌ Resume message failed for contact {contact_id}: {e}")
                    failed += 1

        logger.info(f"▶️ Processed {processed} queues, resumed {resumed} agents")
        return {"processed": processed, "resumed": resumed, "failed": failed}

    def _touch(self, assignment: AgentAssignment, now: datetime) -> None:
        """Move an assignment to the front of the recency order."""
        table, _ = ASSIGNMENT_TABLES[assignment.source]
        self.db.update(table, assignment.id, {ASSIGNED_AT_COLUMNS[assignment.source]: now})


def _assigned_key(assignment: AgentAssignment):
    return (assignment.assigned_at is not None, assignment.assigned_at or datetime.min, assignment.id)


def _preference(assignment: AgentAssignment, now: datetime):
    return (assignment.is_live(now),) + _assigned_key(assignment)
