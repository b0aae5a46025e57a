"""Language-model intent classification against the live intent catalog.

Classification never raises: an unconfigured or failing model degrades to
the keyword classifier, and unusable model output degrades to UNKNOWN.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional

from ..llm.client import LanguageModel
from . import taxonomy
from .catalog import IntentCatalog
from .keyword import KeywordClassifier
from .schemas import ClassificationResult, IntentDefinition, IntentMatch

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

_SYSTEM_PROMPT = """You are an intent classifier for a customer support system. Analyze customer messages and classify them into one or more predefined intents.

AVAILABLE INTENTS:
{intent_reference}

CLASSIFICATION RULES:
1. A message can have MULTIPLE intents if the customer is asking about multiple things
2. Assign confidence scores from 0.0 to 1.0 for each intent
3. Only include intents with confidence >= {floor}
4. If no intent matches with >= {floor} confidence, return UNKNOWN
5. Order intents by confidence (highest first)
6. Consider the conversation context if provided
7. Use only the slugs listed above
8. VENDOR_SPAM includes partnership pitches, marketing outreach, sales emails and agencies selling services

VERIFICATION ASSESSMENT:
Set requires_verification: true if the customer asks about a specific order, shipment or purchase, wants to modify, cancel or return something, needs account-specific information, or reports a problem with a product they claim to own.
Set requires_verification: false for pre-sale questions, general product questions not tied to a purchase, spam, or general feedback.

ESCALATION ASSESSMENT:
Set auto_escalate: true if the customer mentions a chargeback, dispute or legal action, the message contains threats or abuse, or something looks unusual enough that a human should review it.

RESPONSE FORMAT:
Return a JSON object with this exact structure:
{{
  "intents": [
    {{"slug": "INTENT_SLUG", "confidence": 0.85, "reasoning": "Brief explanation"}}
  ],
  "primary_intent": "HIGHEST_CONFIDENCE_SLUG",
  "requires_verification": true,
  "auto_escalate": false
}}"""


class MalformedClassificationError(ValueError):
    """Raised when the model response cannot be interpreted."""


def build_intent_reference(intents: List[IntentDefinition]) -> str:
    """Render the active intents grouped by category for the prompt."""

    by_category: Dict[str, List[IntentDefinition]] = {}
    for intent in intents:
        by_category.setdefault(intent.category, []).append(intent)
    lines: List[str] = []
    for category, members in by_category.items():
        lines.append(f"\n## {category.upper()}")
        for intent in members:
            lines.append(f"\n### {intent.slug}")
            lines.append(f"Name: {intent.name}")
            if intent.description:
                lines.append(f"Description: {intent.description}")
            if intent.examples:
                lines.append(f"Examples: {', '.join(intent.examples[:5])}")
    return "\n".join(lines)


def _unknown(confidence: float, reasoning: str, source: str = "fallback") -> ClassificationResult:
    return ClassificationResult(
        intents=[IntentMatch(intent=taxonomy.UNKNOWN, confidence=confidence, reasoning=reasoning)],
        primary_intent=taxonomy.UNKNOWN,
        source=source,  # type: ignore[arg-type]
    )


class IntentClassifier:
    """Classify messages with the language model, falling back to keywords."""

    def __init__(
        self,
        llm: LanguageModel,
        catalog: IntentCatalog,
        *,
        keyword_classifier: Optional[KeywordClassifier] = None,
        min_confidence: float = 0.5,
        timeout_seconds: float = 15.0,
    ) -> None:
        self._llm = llm
        self._catalog = catalog
        self._keyword = keyword_classifier
        self._min_confidence = min_confidence
        self._timeout = timeout_seconds

    async def classify(
        self,
        subject: str,
        body: str,
        conversation_context: Optional[str] = None,
    ) -> ClassificationResult:
        if not self._llm.is_configured:
            logger.warning("LLM not configured, using fallback classification")
            return self._fallback(subject, body, "LLM not configured")

        intents = await self._catalog.active()
        if not intents:
            logger.warning("No active intents available, using fallback classification")
            return self._fallback(subject, body, "No intents configured")

        try:
            completion = await asyncio.wait_for(
                self._llm.complete(
                    system_prompt=_SYSTEM_PROMPT.format(
                        intent_reference=build_intent_reference(list(intents.values())),
                        floor=self._min_confidence,
                    ),
                    user_prompt=self._user_prompt(subject, body, conversation_context),
                    task="classification",
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Intent classification timed out after %.1fs", self._timeout)
            return self._fallback(subject, body, "Classification timed out")
        except Exception as exc:
            logger.warning("Intent classification failed: %s", exc)
            return self._fallback(subject, body, "Classification error")

        try:
            result = self.parse_response(completion.content, intents)
        except MalformedClassificationError as exc:
            logger.warning("Discarding malformed classification: %s", exc)
            result = _unknown(0.3, "Unparseable classification response")

        if (
            result.primary_intent == taxonomy.UNKNOWN
            and result.confidence <= 0.5
            and self._keyword is not None
        ):
            keyword_result = self._keyword.classify(subject, body)
            if keyword_result.primary_intent != taxonomy.UNKNOWN:
                logger.info(
                    "Model returned UNKNOWN; keyword rules matched %s",
                    keyword_result.primary_intent,
                )
                return keyword_result
        return result

    def parse_response(
        self, content: str, intents: Dict[str, IntentDefinition]
    ) -> ClassificationResult:
        """Validate raw model output against the active intent set."""

        match = _JSON_OBJECT.search(content or "")
        if not match:
            raise MalformedClassificationError("no JSON object in response")
        try:
            parsed = json.loads(match.group(0))
        except ValueError as exc:
            raise MalformedClassificationError(str(exc)) from exc
        if not isinstance(parsed, dict):
            raise MalformedClassificationError("response is not a JSON object")

        best: Dict[str, IntentMatch] = {}
        for item in parsed.get("intents") or []:
            candidate = self._coerce_match(item, intents)
            if candidate is None:
                continue
            current = best.get(candidate.intent)
            if current is None or candidate.confidence > current.confidence:
                best[candidate.intent] = candidate

        matches = sorted(best.values(), key=lambda m: m.confidence, reverse=True)
        if not matches:
            return _unknown(
                0.5, "No intent matched with sufficient confidence", source="llm"
            )

        primary = intents.get(matches[0].intent)
        return ClassificationResult(
            intents=matches,
            primary_intent=matches[0].intent,
            requires_verification=_flag(
                parsed.get("requires_verification"),
                bool(primary and primary.requires_verification),
            ),
            auto_escalate=_flag(
                parsed.get("auto_escalate"), bool(primary and primary.auto_escalate)
            ),
            source="llm",
        )

    def _coerce_match(
        self, item: Any, intents: Dict[str, IntentDefinition]
    ) -> Optional[IntentMatch]:
        if not isinstance(item, dict):
            return None
        slug = item.get("slug") or item.get("intent")
        if not isinstance(slug, str) or slug not in intents:
            return None
        try:
            confidence = float(item.get("confidence", 0))
        except (TypeError, ValueError):
            return None
        confidence = min(max(confidence, 0.0), 1.0)
        if confidence < self._min_confidence:
            return None
        reasoning = item.get("reasoning")
        return IntentMatch(
            intent=slug,
            confidence=confidence,
            reasoning=reasoning if isinstance(reasoning, str) else None,
        )

    def _fallback(self, subject: str, body: str, reason: str) -> ClassificationResult:
        if self._keyword is not None:
            return self._keyword.classify(subject, body)
        return _unknown(0.3, reason)

    @staticmethod
    def _user_prompt(subject: str, body: str, conversation_context: Optional[str]) -> str:
        prompt = f"Classify this customer message:\n\nSUBJECT: {subject}\n\nBODY:\n{body}\n"
        if conversation_context:
            prompt += f"\nCONVERSATION CONTEXT:\n{conversation_context}\n"
        prompt += "\nReturn ONLY the JSON classification, no other text."
        return prompt


def _flag(value: Any, default: bool) -> bool:
    """Prefer the model's contextual judgement when it gave a boolean."""

    return value if isinstance(value, bool) else default
