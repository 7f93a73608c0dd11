"""
🤖 LEADFLOW ORCHESTRATION
=========================
Lead scoring and agent assignment for the CRM.

Components:
- LeadScoringEngine: Scores contacts from intent, purchases and activity
- ScoreSyncQueue: Rescores contacts on a background worker pool
- AgentOrchestrator: Keeps one active agent per contact, with queueing
- IntentClassifier / MessageGenerator: Gemini-backed collaborators

Usage:
    from orchestration import LeadScoringEngine, AgentOrchestrator

    # Score a contact
    engine = LeadScoringEngine()
    result = engine.score_contact(contact_id)

    # Hand a contact to the sales agent
    orchestrator = AgentOrchestrator()
    orchestrator.assign_agent(contact_id, "sales_agent")
"""

from .agent_orchestrator import AgentOrchestrator, AssignmentResult
from .intent_classifier import IntentClassifier
from .message_generator import MessageGenerator
from .score_sync import ScoreSyncQueue
from .scoring_engine import LeadScoringEngine, ScoringSignals

__all__ = [
    "AgentOrchestrator",
    "AssignmentResult",
    "IntentClassifier",
    "LeadScoringEngine",
    "MessageGenerator",
    "ScoreSyncQueue",
    "ScoringSignals",
]
