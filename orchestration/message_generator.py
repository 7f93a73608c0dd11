"""
✉️ AGENT MESSAGE GENERATOR
==========================
Drafts the first message an agent sends after it becomes a contact's
active agent, using Google Gemini.

MESSAGE TYPES:
- introduction: agent speaks to the contact for the first time
- handoff:      agent takes over from another agent (names the previous one)
- resume:       a queued agent picks the conversation back up

Drafts are recorded in ``ai_messages`` for the delivery workers; the
engine never sends anything itself. Any failure raises
MessageGenerationError so callers can record it against the contact.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import google.generativeai as genai
from loguru import logger

from config.settings import settings
from database.base import BaseDatabase
from database.connection import db
from orchestration.exceptions import MessageGenerationError
from orchestration.models import Channel, MessageType


class MessageGenerator:
    """
    Gemini-backed drafting of agent messages.

    Without a Gemini key it fills the fixed templates below instead,
    which keeps local runs and demos working end to end.

    Usage:
        generator = MessageGenerator()

        draft = generator.generate(
            contact_id="uuid-here",
            agent_id="assignment-uuid",
            message_type="handoff",
            trigger_context={"campaign_id": "...", "previous_agent_type": "webinar"},
            channel="sms"
        )
    """

    # Fallback copy by message type
    TEMPLATES = {
        MessageType.INTRODUCTION.value: (
            "Hi {first_name}, this is your {agent_label} assistant. "
            "I'm here to help with anything you need - just reply to this message."
        ),
        MessageType.HANDOFF.value: (
            "Hi {first_name}, your {previous_label} assistant has handed things over to me, "
            "your {agent_label} assistant. I'll pick up from here - reply any time."
        ),
        MessageType.RESUME.value: (
            "Hi {first_name}, it's your {agent_label} assistant again. "
            "Want to pick up where we left off?"
        ),
    }

    def __init__(
        self,
        database: Optional[BaseDatabase] = None,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self.db = database if database is not None else db
        self.api_key = api_key if api_key is not None else settings.api.gemini_api_key
        self.model_name = model_name or settings.ai.gemini_pro_model
        self.timeout = timeout if timeout is not None else settings.campaigns.generation_timeout_seconds
        self.model = None

        if self.api_key:
            genai.configure(api_key=self.api_key)
            self.model = genai.GenerativeModel(self.model_name)
            logger.info(f"✅ Message generator ready ({self.model_name})")
        else:
            logger.warning("⚠️ GEMINI_API_KEY not set - using templates only")

    def generate(
        self,
        contact_id: str,
        agent_id: str,
        message_type: str,
        trigger_context: Optional[Dict[str, Any]] = None,
        channel: str = Channel.SMS.value
    ) -> Dict[str, Any]:
        """
        Draft and record one agent message.

        Args:
            contact_id: Contact UUID
            agent_id: Assignment UUID that will speak
            message_type: introduction | handoff | resume
            trigger_context: campaign_id, campaign_strategy, previous_agent_type, ...
            channel: sms | email

        Returns:
            Dict with body, subject, model, message_type, channel, message_id

        Raises:
            MessageGenerationError: contact missing, model error or timeout
        """
        trigger_context = trigger_context or {}
        message_type = getattr(message_type, "value", message_type)
        channel = getattr(channel, "value", channel)

        contact = self.db.get_contact(contact_id)
        if not contact:
            raise MessageGenerationError(f"Contact not found: {contact_id}")

        agent_type = trigger_context.get("agent_type") or "sales_agent"

        if self.model is not None:
            draft = self._generate_with_ai(contact, agent_type, message_type, trigger_context, channel)
        else:
            draft = self._generate_from_template(contact, agent_type, message_type, trigger_context)

        record = self.db.insert("ai_messages", {
            "contact_id": contact_id,
            "agent_id": agent_id,
            "channel": channel,
            "message_type": message_type,
            "subject": draft.get("subject") if channel == Channel.EMAIL.value else None,
            "body": draft["body"],
            "model": draft["model"],
            "status": "scheduled",
            "trigger_context": trigger_context,
        })
        self.db.update_where(
            "conversation_state",
            {"contact_id": contact_id},
            {"last_message_sent_at": datetime.now(timezone.utc)}
        )

        draft.update({
            "message_id": record.get("id") if record else None,
            "message_type": message_type,
            "channel": channel,
            "generated_at": datetime.now(timezone.utc).isoformat(),
        })
        logger.debug(f"✉️ Drafted {message_type} for contact {contact_id} via {draft['model']}")
        return draft

    __call__ = generate

    def _generate_with_ai(
        self,
        contact: Dict[str, Any],
        agent_type: str,
        message_type: str,
        trigger_context: Dict[str, Any],
        channel: str
    ) -> Dict[str, Any]:
        """Draft with Gemini, bounded by the request timeout."""
        prompt = self._build_prompt(contact, agent_type, message_type, trigger_context, channel)

        try:
            response = self.model.generate_content(
                prompt,
                request_options={"timeout": self.timeout}
            )
            text = response.text
        except Exception as e:
            logger.error(f"Gemini error: {e}")
            raise MessageGenerationError(f"Message generation failed: {e}", cause=e)

        if not text or not text.strip():
            raise MessageGenerationError("Message generation returned an empty draft")

        # Extract subject and body
        subject = None
        body = text.strip()
        if "SUBJECT:" in text and "BODY:" in text:
            subject_match = re.search(r'SUBJECT:\s*(.+?)(?=BODY:|$)', text, re.DOTALL)
            body_match = re.search(r'BODY:\s*(.+)', text, re.DOTALL)
            subject = subject_match.group(1).strip() if subject_match else None
            body = body_match.group(1).strip() if body_match else body

        return {"subject": subject, "body": body, "model": self.model_name}

    @staticmethod
    def _build_prompt(
        contact: Dict[str, Any],
        agent_type: str,
        message_type: str,
        trigger_context: Dict[str, Any],
        channel: str
    ) -> str:
        strategy = trigger_context.get("campaign_strategy") or {}
        previous = trigger_context.get("previous_agent_type")

        context_parts = [f"Contact: {contact.get('full_name') or 'Unknown'}"]
        if contact.get("customer_tier"):
            context_parts.append(f"Tier: {contact['customer_tier']}")
        if contact.get("products_owned"):
            context_parts.append(f"Products owned: {', '.join(contact['products_owned'])}")
        if strategy:
            context_parts.append(f"Campaign strategy: {strategy}")

        if message_type == MessageType.HANDOFF.value and previous:
            situation = (
                f"You are taking over this conversation from the {_label(previous)} assistant. "
                "Acknowledge the transition briefly."
            )
        elif message_type == MessageType.RESUME.value:
            situation = "You are resuming a conversation that was paused for another assistant."
        else:
            situation = "This is your first message to this contact."

        length = "under 320 characters" if channel == Channel.SMS.value else "under 150 words"
        output = (
            "Output only the message text."
            if channel == Channel.SMS.value
            else "Output format:\nSUBJECT: [subject line]\nBODY:\n[email body]"
        )

        return f"""You are the {_label(agent_type)} assistant for our company, writing a {channel} message.

{situation}

CONTACT:
{chr(10).join(context_parts)}

Keep it {length}, friendly and specific. End with an easy question to reply to.
{output}
"""

    def _generate_from_template(
        self,
        contact: Dict[str, Any],
        agent_type: str,
        message_type: str,
        trigger_context: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Fill the fixed template for this message type (fallback)."""
        template = self.TEMPLATES.get(message_type, self.TEMPLATES[MessageType.INTRODUCTION.value])
        full_name = contact.get("full_name") or ""
        first_name = full_name.split()[0] if full_name.strip() else "there"

        body = template.format(
            first_name=first_name,
            agent_label=_label(agent_type),
            previous_label=_label(trigger_context.get("previous_agent_type") or "previous"),
        )
        return {
            "subject": f"A quick hello from your {_label(agent_type)} assistant",
            "body": body,
            "model": "template",
        }


def _label(agent_type: str) -> str:
    return str(agent_type).replace("_", " ")
