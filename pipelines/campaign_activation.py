"""
📣 CAMPAIGN ACTIVATION PIPELINE
===============================
Hands every contact in a campaign's segment to the campaign's agent
and asks for the agent's first message.

HOW IT WORKS:
1. Loads the campaign (missing campaign stops the whole run)
2. Materializes the segment into membership rows if there are none
3. For each pending/active membership, one at a time:
   - assigns the campaign's agent (handoff if another agent was talking)
   - marks the membership active with the assignment id
   - requests a handoff or introduction message
   (active memberships whose agent is still live are left alone)
4. A contact that fails is marked failed with a structured last_error;
   the run carries on with the next contact
5. Marks the campaign active and records how many contacts engaged

Failed memberships are skipped by later runs until an operator calls
retry_failed().
"""

import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))
from config.settings import settings
from database.base import BaseDatabase
from database.connection import db
from orchestration.agent_orchestrator import AgentOrchestrator
from orchestration.exceptions import CampaignNotFoundError, ContactNotFoundError
from orchestration.message_generator import MessageGenerator
from orchestration.models import (
    AgentType,
    AssignmentSource,
    AssignmentStatus,
    CampaignStatus,
    MembershipStatus,
    MessageType,
    utcnow,
)
from pipelines.segment_resolver import SegmentResolver

MEMBERSHIP_TABLE = "ai_sales_campaign_contacts"
CAMPAIGN_TABLE = "ai_sales_campaigns"


class CampaignActivationPipeline:
    """
    Campaign lifecycle: activate, pause, resume, stop, retry.

    Usage:
        pipeline = CampaignActivationPipeline()
        result = pipeline.activate(campaign_id="uuid-here")
        # {"success": True, "activated_count": 98, "failed_count": 2, ...}
    """

    def __init__(
        self,
        database: Optional[BaseDatabase] = None,
        orchestrator: Optional[AgentOrchestrator] = None,
        generator: Optional[Callable[..., Any]] = None,
        resolver: Optional[SegmentResolver] = None
    ):
        self.db = database if database is not None else db
        self.orchestrator = orchestrator if orchestrator is not None else AgentOrchestrator(self.db)
        self.generator = generator if generator is not None else MessageGenerator(self.db)
        self.resolver = resolver if resolver is not None else SegmentResolver(self.db)

    def _load_campaign(self, campaign_id: str) -> Dict[str, Any]:
        campaign = self.db.get_campaign(campaign_id)
        if not campaign:
            raise CampaignNotFoundError(campaign_id)
        return campaign

    # ===================================
    # SEGMENT
    # ===================================

    def materialize_segment(self, campaign: Dict[str, Any]) -> int:
        """
        Create pending membership rows from the campaign's audience filter.

        Returns:
            Number of memberships created
        """
        if not campaign.get("audience_filter"):
            logger.warning(f"⚠️ Campaign {campaign['id']} has no audience filter")
            return 0

        contact_ids = self.resolver.resolve(campaign["audience_filter"])
        if not contact_ids:
            logger.warning(f"⚠️ Audience filter for campaign {campaign['id']} matched no contacts")
            return 0

        self.db.insert_many(MEMBERSHIP_TABLE, [
            {
                "campaign_id": campaign["id"],
                "contact_id": contact_id,
                "status": MembershipStatus.PENDING.value,
            }
            for contact_id in contact_ids
        ])
        self.db.update(CAMPAIGN_TABLE, campaign["id"], {"contact_count": len(contact_ids)})

        logger.info(f"📋 Added {len(contact_ids)} contacts to campaign {campaign['id']}")
        return len(contact_ids)

    def _ensure_segment(self, campaign: Dict[str, Any]) -> None:
        if self.db.count(MEMBERSHIP_TABLE, {"campaign_id": campaign["id"]}) == 0:
            logger.info("No contacts found, populating from audience filter...")
            self.materialize_segment(campaign)

    # ===================================
    # ACTIVATION
    # ===================================

    def activate(self, campaign_id: str) -> Dict[str, Any]:
        """
        Activate a campaign for every pending or active membership.

        Args:
            campaign_id: Campaign UUID

        Returns:
            Dict with success, campaign_id, activated_count, failed_count,
            skipped_count (active memberships whose agent is still live),
            total_contacts

        Raises:
            CampaignNotFoundError: the campaign does not exist
        """
        campaign = self._load_campaign(campaign_id)

        logger.info("=" * 50)
        logger.info(f"📣 ACTIVATING CAMPAIGN: {campaign.get('name') or campaign_id}")
        logger.info("=" * 50)

        self._ensure_segment(campaign)

        memberships = self.db.get_campaign_contacts(
            campaign_id,
            statuses=[MembershipStatus.PENDING.value, MembershipStatus.ACTIVE.value]
        )

        activated_count = 0
        failed_count = 0
        skipped_count = 0

        for i, membership in enumerate(memberships, start=1):
            logger.debug(f"[{i}/{len(memberships)}] Contact {membership['contact_id']}")
            outcome: Dict[str, Any] = {}
            try:
                if self._already_engaged(membership):
                    skipped_count += 1
                    continue
                self._activate_contact(campaign, membership, outcome)
                activated_count += 1
            except Exception as e:
                logger.error(f"   ❌ Error activating contact {membership['contact_id']}: {e}")
                self._record_failure(membership, e, outcome)
                failed_count += 1
                continue

        self.db.update(CAMPAIGN_TABLE, campaign_id, {
            "status": CampaignStatus.ACTIVE.value,
            "start_date": utcnow(),
            "contacts_engaged": activated_count + skipped_count,
        })

        logger.info(
            f"📊 Campaign {campaign_id}: {activated_count} activated, "
            f"{skipped_count} already engaged, {failed_count} failed of {len(memberships)}"
        )

        return {
            "success": True,
            "campaign_id": campaign_id,
            "activated_count": activated_count,
            "failed_count": failed_count,
            "skipped_count": skipped_count,
            "total_contacts": len(memberships),
        }

    def _already_engaged(self, membership: Dict[str, Any]) -> bool:
        """Active membership whose campaign agent is still live (no second intro)."""
        if membership.get("status") != MembershipStatus.ACTIVE.value or not membership.get("agent_id"):
            return False
        now = self.orchestrator.clock()
        return any(
            assignment.id == membership["agent_id"] and assignment.is_live(now)
            for assignment in self.orchestrator.get_assignments(membership["contact_id"])
        )

    def _activate_contact(
        self,
        campaign: Dict[str, Any],
        membership: Dict[str, Any],
        outcome: Dict[str, Any]
    ) -> None:
        """Assign, record and message one contact. Any exception fails the contact only."""
        contact_id = membership["contact_id"]
        contact = self.db.get_contact(contact_id)
        if not contact:
            raise ContactNotFoundError(contact_id)
        outcome["contact_name"] = contact.get("full_name")

        agent_type = campaign.get("agent_type") or AgentType.SALES_AGENT.value
        channel = campaign.get("channel") or settings.campaigns.default_channel
        strategy = campaign.get("campaign_strategy") or {}

        result = self.orchestrator.assign_agent(
            contact_id,
            agent_type,
            source=AssignmentSource.AGENT_CONVERSATION,
            context={"campaign_id": campaign["id"], "campaign_strategy": strategy},
            channel=channel,
        )
        outcome["message_type"] = result.message_type

        now = utcnow()
        self.db.update(MEMBERSHIP_TABLE, membership["id"], {
            "agent_id": result.assignment.id,
            "agent_assigned_at": now,
            "status": MembershipStatus.ACTIVE.value,
        })

        self.generator(
            contact_id=contact_id,
            agent_id=result.assignment.id,
            message_type=result.message_type,
            trigger_context={
                "campaign_id": campaign["id"],
                "campaign_strategy": strategy,
                "agent_type": agent_type,
                "previous_agent_type": result.previous_agent_type,
            },
            channel=channel,
        )

        if membership.get("last_error"):
            self.db.update(MEMBERSHIP_TABLE, membership["id"], {"last_error": None})

        if result.is_handoff:
            logger.info(f"   🔀 {result.previous_agent_type} -> {agent_type} for {outcome['contact_name'] or contact_id}")

    def _record_failure(
        self,
        membership: Dict[str, Any],
        error: Exception,
        outcome: Dict[str, Any]
    ) -> None:
        previous = membership.get("last_error") or {}
        last_error = {
            "message": str(error) or "Failed to activate contact",
            "error": repr(error),
            "timestamp": utcnow().isoformat(),
            "retry_count": previous.get("retry_count", 0),
            "message_type": outcome.get("message_type", MessageType.INTRODUCTION.value),
            "contact_name": outcome.get("contact_name"),
        }
        try:
            self.db.update(MEMBERSHIP_TABLE, membership["id"], {
                "status": MembershipStatus.FAILED.value,
                "last_error": last_error,
            })
        except Exception as e:
            logger.error(f"   ❌ Could not record failure for membership {membership['id']}: {e}")

    # ===================================
    # LIFECYCLE
    # ===================================

    def pause(self, campaign_id: str) -> Dict[str, Any]:
        """Pause the campaign and its active memberships."""
        self._load_campaign(campaign_id)

        self.db.update(CAMPAIGN_TABLE, campaign_id, {"status": CampaignStatus.PAUSED.value})
        updated = self.db.update_where(
            MEMBERSHIP_TABLE,
            {"campaign_id": campaign_id, "status": MembershipStatus.ACTIVE.value},
            {"status": MembershipStatus.PAUSED.value, "updated_at": utcnow()}
        )

        logger.info(f"⏸️ Campaign {campaign_id} paused. {len(updated)} contacts updated.")
        return {"success": True, "campaign_id": campaign_id, "contacts_updated": len(updated)}

    def resume(self, campaign_id: str) -> Dict[str, Any]:
        """Resume a paused campaign, populating an empty segment first."""
        campaign = self._load_campaign(campaign_id)
        self._ensure_segment(campaign)

        self.db.update(CAMPAIGN_TABLE, campaign_id, {"status": CampaignStatus.ACTIVE.value})
        updated = self.db.update_where(
            MEMBERSHIP_TABLE,
            {"campaign_id": campaign_id, "status": MembershipStatus.PAUSED.value},
            {"status": MembershipStatus.ACTIVE.value, "updated_at": utcnow()}
        )

        logger.info(f"▶️ Campaign {campaign_id} resumed. {len(updated)} contacts updated.")
        return {"success": True, "campaign_id": campaign_id, "contacts_updated": len(updated)}

    def stop(self, campaign_id: str) -> Dict[str, Any]:
        """
        Complete the campaign and retire its agent.

        Open memberships become completed; the campaign's agent
        conversations for those contacts are expired and each contact's
        active agent is recalculated.
        """
        campaign = self._load_campaign(campaign_id)
        agent_type = campaign.get("agent_type") or AgentType.SALES_AGENT.value
        now = utcnow()

        self.db.update(CAMPAIGN_TABLE, campaign_id, {
            "status": CampaignStatus.COMPLETED.value,
            "end_date": now,
        })
        completed = self.db.update_where(
            MEMBERSHIP_TABLE,
            {
                "campaign_id": campaign_id,
                "status": [
                    MembershipStatus.ACTIVE.value,
                    MembershipStatus.PAUSED.value,
                    MembershipStatus.PENDING.value,
                ],
            },
            {"status": MembershipStatus.COMPLETED.value, "updated_at": now}
        )

        contact_ids: List[str] = list(dict.fromkeys(row["contact_id"] for row in completed))
        expired = []
        if contact_ids:
            expired = self.db.update_where(
                "agent_conversations",
                {
                    "contact_id": contact_ids,
                    "agent_type": agent_type,
                    "status": AssignmentStatus.ACTIVE.value,
                },
                {"status": AssignmentStatus.EXPIRED.value, "expiration_date": now}
            )
            for contact_id in contact_ids:
                try:
                    self.orchestrator.recalculate_active_agent(contact_id)
                except Exception as e:
                    logger.error(f"Error recalculating contact {contact_id}: {e}")
                    continue

        logger.info(
            f"⏹️ Campaign {campaign_id} stopped. {len(completed)} contacts completed, "
            f"{len(expired)} agents expired."
        )
        return {
            "success": True,
            "campaign_id": campaign_id,
            "contacts_updated": len(completed),
            "agents_expired": len(expired),
        }

    def retry_failed(self, campaign_id: str) -> Dict[str, Any]:
        """
        Put failed memberships back in line and run activation again.

        Each retried row's last_error.retry_count goes up by one.
        """
        self._load_campaign(campaign_id)
        failed = self.db.get_campaign_contacts(campaign_id, statuses=[MembershipStatus.FAILED.value])

        for membership in failed:
            last_error = dict(membership.get("last_error") or {})
            last_error["retry_count"] = last_error.get("retry_count", 0) + 1
            self.db.update(MEMBERSHIP_TABLE, membership["id"], {
                "status": MembershipStatus.PENDING.value,
                "last_error": last_error,
            })

        logger.info(f"🔁 Retrying {len(failed)} failed contacts in campaign {campaign_id}")
        result = self.activate(campaign_id)
        result["retried"] = len(failed)
        return result


# ===========================================
# STANDALONE EXECUTION
# ===========================================

def main():
    """Activate one campaign from the command line."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
        level="INFO"
    )

    if len(sys.argv) < 2:
        print("Usage: python pipelines/campaign_activation.py <campaign_id>")
        sys.exit(1)

    result = CampaignActivationPipeline().activate(sys.argv[1])
    print(f"\n✅ Activated {result['activated_count']}/{result['total_contacts']} "
          f"({result['failed_count']} failed)")


if __name__ == "__main__":
    main()
