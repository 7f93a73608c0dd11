"""
🧠 BUYING INTENT CLASSIFIER
===========================
Asks Gemini to classify a contact's recent conversation into one of
five ordinal intent levels plus a 0-100 sub-score.

Best effort: any failure (no API key, timeout, bad JSON) returns the
neutral analysis instead of raising.

INTENT LEVELS:
- immediate (95-100): explicit buying language
- strong (85-94):     price, availability, timeline questions
- moderate (70-84):   interest, feature questions
- low (40-69):        general engagement
- none (0-39):        off-topic, support, complaints
"""

import json
import re
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from loguru import logger

from config.settings import settings
from orchestration.models import IntentAnalysis


PROMPT_TEMPLATE = """You are an expert sales intent analyzer. Analyze the customer's recent messages and determine their buying intent.

Context:
- Customer tier: {tier}
- Previous purchases: {product_count} products
- Total spent: ${total_spent}

Recent conversation (most recent first):
{conversation}

Respond with a JSON object:
{{
  "intent_level": "immediate" | "strong" | "moderate" | "low" | "none",
  "intent_score": 0-100,
  "confidence": 0-1.0,
  "key_signals": ["specific phrase or behavior"],
  "sentiment": "positive" | "neutral" | "negative"
}}

Intent Levels:
- immediate (95-100): Explicit buying language ("I want to buy", "sign me up", "send payment link")
- strong (85-94): Price inquiries, availability questions, timeline questions
- moderate (70-84): Interest expressions, feature questions, "tell me more"
- low (40-69): General engagement, product awareness, casual conversation
- none (0-39): Off-topic, support questions, complaints

Return ONLY valid JSON, no additional text."""


class IntentClassifier:
    """
    Gemini-backed buying intent classifier.

    Usage:
        classifier = IntentClassifier()
        analysis = classifier.classify(
            messages=[{"body": "how much is it?", "direction": "inbound"}],
            contact_context={"total_spent": 500, "products_owned": ["textbook"]}
        )
        analysis.intent_level  # IntentLevel.STRONG
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self.api_key = api_key if api_key is not None else settings.api.gemini_api_key
        self.model_name = model_name or settings.ai.gemini_flash_model
        self.timeout = timeout if timeout is not None else settings.scoring.intent_timeout_seconds
        self.model = None

        if self.api_key:
            genai.configure(api_key=self.api_key)
            self.model = genai.GenerativeModel(
                self.model_name,
                generation_config={"response_mime_type": "application/json"}
            )
            logger.info(f"✅ Intent classifier ready ({self.model_name})")
        else:
            logger.warning("⚠️ GEMINI_API_KEY not set - intent defaults to neutral")

    def classify(
        self,
        messages: List[Dict[str, Any]],
        contact_context: Optional[Dict[str, Any]] = None
    ) -> IntentAnalysis:
        """
        Classify buying intent from recent messages.

        Args:
            messages: Message rows, newest first (body, direction, created_at)
            contact_context: total_spent, products_owned, customer_tier

        Returns:
            IntentAnalysis (neutral on any failure)
        """
        if self.model is None:
            return IntentAnalysis.neutral()

        prompt = self.build_prompt(messages, contact_context or {})

        try:
            response = self.model.generate_content(
                prompt,
                request_options={"timeout": self.timeout}
            )
            analysis = self.parse_response(response.text)
        except Exception as e:
            logger.warning(f"⚠️ Intent classification failed, using neutral default: {e}")
            return IntentAnalysis.neutral()

        logger.debug(
            f"🤖 Intent: {analysis.intent_level.value} "
            f"(score {analysis.intent_score}, confidence {analysis.confidence})"
        )
        return analysis

    __call__ = classify

    @staticmethod
    def build_prompt(messages: List[Dict[str, Any]], contact_context: Dict[str, Any]) -> str:
        """Render the classifier prompt for up to 10 messages."""
        lines = []
        for i, message in enumerate(messages[:10], start=1):
            speaker = "Customer" if message.get("direction") == "inbound" else "Us"
            lines.append(f"[{i}] {speaker}: {message.get('body') or ''}")

        return PROMPT_TEMPLATE.format(
            tier=contact_context.get("customer_tier") or "Lead",
            product_count=len(contact_context.get("products_owned") or []),
            total_spent=contact_context.get("total_spent") or 0,
            conversation="\n".join(lines) if lines else "(no messages yet)",
        )

    @staticmethod
    def parse_response(text: str) -> IntentAnalysis:
        """
        Parse the model's JSON answer.

        Tolerates a fenced ```json block around the object.

        Raises:
            ValueError: if no JSON object can be read
        """
        cleaned = text.strip()
        fenced = re.search(r"```(?:json)?\s*(\{.*\})\s*```", cleaned, re.DOTALL)
        if fenced:
            cleaned = fenced.group(1)
        data = json.loads(cleaned)
        if not isinstance(data, dict):
            raise ValueError("Intent response is not a JSON object")
        return IntentAnalysis.from_dict(data)
