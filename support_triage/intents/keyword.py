"""Deterministic regex classifier used when the language model is unavailable."""

from __future__ import annotations

import re
from dataclasses import dataclass

from . import taxonomy
from .schemas import ClassificationResult, IntentMatch

_THANKS_PATTERN = re.compile(
    r"\bthank(?:s| you)\b|\bappreciate\b|happy new year|\bcheers\b", re.I
)

_Rule = tuple[str, re.Pattern[str], float]

# Non-customer mail is recognised before anything else.
_NOISE_RULES: tuple[_Rule, ...] = (
    (
        taxonomy.VENDOR_SPAM,
        re.compile(
            r"partnership opportunit|seo services|guest post|link building|marketing services"
            r"|\bb2b\b|increase your (?:sales|traffic)|grow your (?:store|business)",
            re.I,
        ),
        0.8,
    ),
    (
        taxonomy.AUTOMATED_EMAIL,
        re.compile(r"do not reply|\bno-?reply\b|this is an automated|automated message", re.I),
        0.8,
    ),
)

# Checked in order; the first match wins.
_INTENT_RULES: tuple[_Rule, ...] = (
    (
        taxonomy.CHARGEBACK_THREAT,
        re.compile(r"charge\s?back|\bbbb\b|dispute|\bbank\b|fraud", re.I),
        0.9,
    ),
    (
        taxonomy.LEGAL_SAFETY_RISK,
        re.compile(
            r"\blawyer|attorney|lawsuit|legal action|\bsue\b|fire hazard|burning smell|caught fire",
            re.I,
        ),
        0.85,
    ),
    (
        taxonomy.FIRMWARE_ACCESS_ISSUE,
        re.compile(r"kicking me off|can'?t log ?in|login loop|\b403\b|access denied", re.I),
        0.8,
    ),
    (
        taxonomy.FIRMWARE_UPDATE_REQUEST,
        re.compile(r"firmware|update software|update file", re.I),
        0.7,
    ),
    (
        taxonomy.DOCS_VIDEO_MISMATCH,
        re.compile(r"watched the video|didn'?t get the email|email shown in|video shows", re.I),
        0.8,
    ),
    (
        taxonomy.MISSING_DAMAGED_ITEM,
        re.compile(r"arrived damaged|missing (?:an? )?(?:item|part)|broken on arrival|crushed", re.I),
        0.7,
    ),
    (
        taxonomy.WRONG_ITEM_RECEIVED,
        re.compile(r"wrong (?:item|product|part)|not what i ordered|sent (?:me )?the wrong", re.I),
        0.7,
    ),
    (
        taxonomy.RETURN_REFUND_REQUEST,
        re.compile(r"\brefund|\breturn (?:it|this|my)|money back|\brma\b", re.I),
        0.7,
    ),
    (
        taxonomy.ORDER_STATUS,
        re.compile(
            r"where is my order|when will (?:my|it|the) ?(?:order )?(?:ship|arrive)"
            r"|tracking|has (?:it|my order) shipped|order status",
            re.I,
        ),
        0.7,
    ),
    (
        taxonomy.FOLLOW_UP_NO_NEW_INFO,
        re.compile(r"no response|still waiting|any update|just checking in|following up", re.I),
        0.7,
    ),
    (
        taxonomy.PART_IDENTIFICATION,
        re.compile(r"what is this part|no idea what that was|part number|which part", re.I),
        0.7,
    ),
    (
        taxonomy.COMPATIBILITY_QUESTION,
        re.compile(r"compatible with|will (?:it|this) fit|work with my", re.I),
        0.6,
    ),
)


@dataclass
class KeywordClassifier:
    """Single-intent classifier over ordered keyword rules."""

    unknown_confidence: float = 0.3

    def classify(self, subject: str, body: str) -> ClassificationResult:
        text = f"{subject or ''}\n{body or ''}"
        for slug, pattern, confidence in _NOISE_RULES:
            if pattern.search(text):
                return self._result(slug, confidence)
        # A note of thanks without a question closes the thread.
        if _THANKS_PATTERN.search(body or "") and "?" not in (body or ""):
            return self._result(taxonomy.THANK_YOU_CLOSE, 0.9)
        for slug, pattern, confidence in _INTENT_RULES:
            if pattern.search(text):
                return self._result(slug, confidence)
        return ClassificationResult(
            intents=[
                IntentMatch(
                    intent=taxonomy.UNKNOWN,
                    confidence=self.unknown_confidence,
                    reasoning="No keyword rule matched",
                )
            ],
            primary_intent=taxonomy.UNKNOWN,
            source="fallback",
        )

    @staticmethod
    def _result(slug: str, confidence: float) -> ClassificationResult:
        definition = taxonomy.default_intent(slug)
        return ClassificationResult(
            intents=[IntentMatch(intent=slug, confidence=confidence, reasoning="Keyword match")],
            primary_intent=slug,
            requires_verification=slug in taxonomy.PROTECTED_INTENTS
            or bool(definition and definition.requires_verification),
            auto_escalate=bool(definition and definition.auto_escalate),
            source="keyword",
        )
