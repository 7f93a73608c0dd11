"""
🎯 UNIFIED LEAD SCORING ENGINE
==============================
Turns a contact's state and recent signals into one 0-100 lead score.

HOW IT WORKS:
1. Classifies buying intent from the 10 most recent messages (Gemini)
2. Adds up negative points (shitlist, disputes, cancelled, inactive tags)
3. Confident intent (immediate/strong/moderate) overrides the formula
4. Otherwise sums the weighted components:
   message intelligence (50) + purchase history (30) + activity (20)
   + time decay (<= 0) + purchase recency (<= 0) - negative points
5. Clamps to 0-100 and maps to status/category

SCORE INTERPRETATION:
- 80-100: 🔥 READY TO BUY (hot)
- 70-79:  🌶️ HOT (hot)
- 50-69:  👍 WARM (warm)
- 30-49:  🤔 NEUTRAL (warm)
- 0-29:   ❄️ COLD (cold)
"""

import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))
from config.settings import DISPUTE_PENALTY, INTENT_OVERRIDE_SCORES, NEGATIVE_TAG_POINTS, settings
from database.base import BaseDatabase
from database.connection import db
from orchestration.exceptions import ContactNotFoundError, DataFetchError
from orchestration.intent_classifier import IntentClassifier
from orchestration.models import (
    Contact,
    IntentAnalysis,
    IntentLevel,
    LeadStatus,
    LikelihoodCategory,
    days_between,
    utcnow,
)


@dataclass
class ScoringSignals:
    """Everything the formula reads, gathered up front."""
    intent: IntentAnalysis = field(default_factory=IntentAnalysis.neutral)
    tags: List[str] = field(default_factory=list)
    has_disputed: bool = False
    disputed_amount: float = 0.0
    total_spent: float = 0.0
    product_count: int = 0
    emails_sent: int = 0
    emails_opened: int = 0
    sms_replies: int = 0
    webinar_count: int = 0
    form_count: int = 0
    last_engagement_date: Optional[datetime] = None
    last_contact_date: Optional[datetime] = None
    last_purchase_date: Optional[datetime] = None

    @property
    def email_open_rate(self) -> float:
        return self.emails_opened / self.emails_sent if self.emails_sent else 0.0

    @classmethod
    def from_contact(cls, contact: Contact, intent: IntentAnalysis, **counts: int) -> "ScoringSignals":
        return cls(
            intent=intent,
            tags=contact.tags,
            has_disputed=contact.has_disputed,
            disputed_amount=contact.disputed_amount,
            total_spent=contact.total_spent,
            product_count=len(contact.products_owned),
            webinar_count=len(contact.webinar_attendance),
            form_count=len(contact.form_submissions),
            last_engagement_date=contact.last_engagement_date,
            last_contact_date=contact.last_contact_date,
            last_purchase_date=contact.last_purchase_date,
            **counts,
        )


def _tier(value: float, bands: List[tuple]) -> int:
    """Points for the first (threshold, points) band the value reaches."""
    for threshold, points in bands:
        if value >= threshold:
            return points
    return 0


class LeadScoringEngine:
    """
    Calculates lead scores for contacts.

    The formula:

    score = (
        message_intelligence +   # intent * 0.3 + email opens + SMS replies
        purchase_history +       # revenue tier + product count
        activity_engagement +    # webinars + forms
        time_decay +             # 0 .. -30
        purchase_recency -       # 0 .. -30
        negative_points
    )

    clamped to 0-100. A confident intent level replaces the whole sum
    with a fixed score minus negative points.

    Usage:
        engine = LeadScoringEngine()

        # Score a single contact (persists the result)
        result = engine.score_contact(contact_id="uuid-here")

        # Score many contacts
        results = engine.score_all(limit=100)
    """

    def __init__(
        self,
        database: Optional[BaseDatabase] = None,
        classifier: Optional[Callable[..., IntentAnalysis]] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.db = database if database is not None else db
        self.classifier = classifier if classifier is not None else IntentClassifier()
        self.clock = clock
        self.message_limit = settings.scoring.message_history_limit

    # ===================================
    # PURE FORMULA
    # ===================================

    @staticmethod
    def negative_points(signals: ScoringSignals) -> int:
        """Penalty points from tags and disputes (summed, not capped)."""
        tags = [str(tag).lower() for tag in signals.tags]
        points = 0
        for needle, value in NEGATIVE_TAG_POINTS.items():
            if any(needle in tag for tag in tags):
                points += value
        if signals.has_disputed or signals.disputed_amount > 0:
            points += DISPUTE_PENALTY
        return points

    @staticmethod
    def time_decay(signals: ScoringSignals, now: datetime) -> int:
        last = signals.last_engagement_date or signals.last_contact_date
        if last is None:
            return 0
        days = days_between(last, now)
        if days <= 7:
            return 0
        elif days <= 14:
            return -5
        elif days <= 30:
            return -10
        elif days <= 60:
            return -15
        elif days <= 90:
            return -20
        elif days <= 180:
            return -25
        return -30

    @staticmethod
    def purchase_recency(signals: ScoringSignals, now: datetime) -> int:
        """Penalty for contacts that just bought."""
        if signals.last_purchase_date is None:
            return 0
        days = days_between(signals.last_purchase_date, now)
        if days <= 30:
            return -30
        elif days <= 60:
            return -20
        elif days <= 90:
            return -10
        return 0

    @staticmethod
    def classify(score: float) -> tuple:
        """Map a final score to (status, category)."""
        if score >= 80:
            return LeadStatus.READY_TO_BUY.value, LikelihoodCategory.HOT.value
        elif score >= 70:
            return LeadStatus.HOT.value, LikelihoodCategory.HOT.value
        elif score >= 50:
            return LeadStatus.WARM.value, LikelihoodCategory.WARM.value
        elif score >= 30:
            return LeadStatus.NEUTRAL.value, LikelihoodCategory.WARM.value
        return LeadStatus.COLD.value, LikelihoodCategory.COLD.value

    def calculate_score(self, signals: ScoringSignals, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Calculate the lead score from gathered signals.

        No I/O: everything it needs is in ``signals``.

        Args:
            signals: ScoringSignals for one contact
            now: Reference time for decay (defaults to the engine clock)

        Returns:
            Dict with score, status, category and breakdown
        """
        now = now or self.clock()
        intent = signals.intent
        negative = self.negative_points(signals)

        override = INTENT_OVERRIDE_SCORES.get(intent.intent_level.value)
        if override is not None:
            score = min(max(override - negative, 0), 100)
            return {
                "score": round(score, 1),
                "status": LeadStatus.READY_TO_BUY.value if score >= 80 else LeadStatus.HOT.value,
                "category": LikelihoodCategory.HOT.value if score >= 80 else LikelihoodCategory.WARM.value,
                "breakdown": {
                    "buying_signal_boost": override,
                    "message_intelligence": 0,
                    "purchase_history": 0,
                    "activity_engagement": 0,
                    "time_decay": 0,
                    "purchase_recency": 0,
                    "negative_signals": -negative,
                    "intent": intent.to_dict(),
                },
            }

        message_intelligence = (
            intent.intent_score * 0.30
            + _tier(signals.email_open_rate, [(0.5, 10), (0.3, 7), (0.1, 4)])
            + _tier(signals.sms_replies, [(5, 10), (2, 6), (1, 3)])
        )
        purchase_history = (
            _tier(signals.total_spent, [(10000, 20), (3000, 15), (1000, 10), (500, 7), (1, 3)])
            + _tier(signals.product_count, [(4, 10), (3, 7), (2, 5), (1, 3)])
        )
        activity = (
            _tier(signals.webinar_count, [(4, 12), (2, 8), (1, 4)])
            + _tier(signals.form_count, [(4, 8), (2, 5), (1, 3)])
        )
        decay = self.time_decay(signals, now)
        recency = self.purchase_recency(signals, now)

        raw = message_intelligence + purchase_history + activity + decay + recency - negative
        score = round(min(max(raw, 0), 100), 1)
        status, category = self.classify(score)

        return {
            "score": score,
            "status": status,
            "category": category,
            "breakdown": {
                "buying_signal_boost": 0,
                "message_intelligence": round(message_intelligence, 1),
                "purchase_history": purchase_history,
                "activity_engagement": activity,
                "time_decay": decay,
                "purchase_recency": recency,
                "negative_signals": -negative,
                "intent": intent.to_dict(),
            },
        }

    # ===================================
    # STORE-BACKED SCORING
    # ===================================

    def gather_signals(self, contact_id: str) -> ScoringSignals:
        """
        Read everything the formula needs for one contact.

        Raises:
            ContactNotFoundError: no such contact
            DataFetchError: any store read failed
        """
        try:
            row = self.db.get_contact(contact_id)
        except Exception as e:
            raise DataFetchError("contacts", e) from e
        if not row:
            raise ContactNotFoundError(contact_id)
        contact = Contact.from_row(row)

        try:
            messages = self.db.get_recent_messages(contact_id, limit=self.message_limit)
            emails = self.db.query(
                "ai_messages",
                columns="id,opened",
                filters={"contact_id": contact_id, "channel": "email"}
            )
            replies = self.db.count("messages", {"contact_id": contact_id, "direction": "inbound"})
        except Exception as e:
            raise DataFetchError("messages", e) from e

        try:
            intent = self.classifier(
                messages,
                {
                    "total_spent": contact.total_spent,
                    "products_owned": contact.products_owned,
                    "customer_tier": contact.customer_tier,
                }
            )
        except Exception as e:
            logger.warning(f"⚠️ Intent classifier failed for {contact_id}, using neutral: {e}")
            intent = IntentAnalysis.neutral()

        return ScoringSignals.from_contact(
            contact,
            intent,
            emails_sent=len(emails),
            emails_opened=sum(1 for e in emails if e.get("opened")),
            sms_replies=replies,
        )

    def score_contact(self, contact_id: str) -> Dict[str, Any]:
        """
        Calculate and persist the lead score for one contact.

        Args:
            contact_id: UUID of the contact

        Returns:
            Dict with score, status, category, breakdown, contact_id, scored_at

        Raises:
            ContactNotFoundError / DataFetchError: nothing is written
        """
        signals = self.gather_signals(contact_id)
        now = self.clock()

        result = self.calculate_score(signals, now)
        result["contact_id"] = contact_id
        result["scored_at"] = now.isoformat()

        self.db.save_contact_scores(contact_id, {
            "lead_score": int(round(result["score"])),
            "lead_status": result["status"],
            "likelihood_category": result["category"],
            "last_score_update": now,
        })
        logger.debug(f"🎯 Contact {contact_id}: {result['score']} ({result['status']})")
        return result

    def score_all(self, limit: int = 100) -> List[Dict[str, Any]]:
        """
        Score many contacts, skipping ones that fail.

        Args:
            limit: Maximum contacts to score

        Returns:
            List of results, highest score first
        """
        logger.info("Scoring contacts...")

        contacts = self.db.query("contacts", columns="id,full_name", limit=limit)

        results = []
        for contact in contacts:
            try:
                results.append(self.score_contact(contact["id"]))
            except Exception as e:
                logger.error(f"Error scoring {contact.get('full_name') or contact['id']}: {e}")
                continue

        results.sort(key=lambda x: x["score"], reverse=True)
        logger.info(f"Scored {len(results)} contacts")
        return results

    def explain_score(self, result: Dict[str, Any]) -> str:
        """
        Generate a human-readable explanation of a score.

        Args:
            result: Score result from score_contact() or calculate_score()

        Returns:
            Formatted explanation string
        """
        breakdown = result.get("breakdown", {})
        intent = breakdown.get("intent", {})

        lines = [
            f"📊 LEAD SCORE: {result['score']}/100 ({result['status'].upper()}, {result['category']})",
            "",
        ]
        if result.get("contact_id"):
            lines.append(f"Contact: {result['contact_id']}")
        lines.append(
            f"🤖 Intent: {intent.get('intent_level', 'low')} "
            f"(score {intent.get('intent_score', 50)}, confidence {intent.get('confidence', 0.5)})"
        )
        lines.append("")

        if breakdown.get("buying_signal_boost"):
            lines.append(f"🚀 Buying signal override: {breakdown['buying_signal_boost']}")
        else:
            lines.append("📈 Score Breakdown:")
            emoji_map = {
                "message_intelligence": "💬",
                "purchase_history": "💰",
                "activity_engagement": "🎓",
                "time_decay": "⏳",
                "purchase_recency": "🛒",
            }
            for factor, emoji in emoji_map.items():
                value = breakdown.get(factor, 0)
                lines.append(f"  {emoji} {factor.replace('_', ' ').title()}: {value:+}")

        lines.append(f"  ⛔ Negative Signals: {breakdown.get('negative_signals', 0):+}")
        if result.get("scored_at"):
            lines.append("")
            lines.append(f"📅 Scored: {result['scored_at'][:10]}")

        return "\n".join(lines)


# ===========================================
# STANDALONE EXECUTION
# ===========================================

def main():
    """Demo the scoring formula with example contacts."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
        level="INFO"
    )

    engine = LeadScoringEngine(classifier=lambda messages, context: IntentAnalysis.neutral())
    now = utcnow()

    print("\n" + "=" * 60)
    print("🎯 UNIFIED LEAD SCORING ENGINE DEMO")
    print("=" * 60)

    # Big spender, low intent, engaged recently
    loyal = ScoringSignals(
        intent=IntentAnalysis(intent_level=IntentLevel.LOW, intent_score=40),
        total_spent=12000,
        product_count=2,
        last_engagement_date=now,
    )
    print("\n👍 LOYAL CUSTOMER, LOW INTENT:")
    print(engine.explain_score(engine.calculate_score(loyal, now)))

    # Strong intent, but on the shitlist
    flagged = ScoringSignals(
        intent=IntentAnalysis(intent_level=IntentLevel.STRONG, intent_score=90),
        tags=["SHITLIST"],
    )
    print("\n⛔ STRONG INTENT, SHITLISTED:")
    print(engine.explain_score(engine.calculate_score(flagged, now)))


if __name__ == "__main__":
    main()
