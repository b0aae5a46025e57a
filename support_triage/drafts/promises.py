"""Commitment detection for drafts.

Detection never blocks a draft. The orchestrator records what it finds on
the audit event so reviewers can see which promises were made to a
customer.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Tuple

_WILL = r"(?:will|going to|we'll|i'll)"
_DONE = r"i(?:'ve|'m|\s+have)"

PROMISE_PATTERNS: Tuple[Tuple[re.Pattern[str], str, str], ...] = tuple(
    (re.compile(pattern, re.I), category, description)
    for pattern, category, description in (
        (r"\brefund(?:ed|s)?\s+(?:has been\s+)?approved\b", "refund", "Refund approved"),
        (rf"\b{_WILL}\s+(?:process|issue)\s+(?:your\s+)?refund\b", "refund", "Will process refund"),
        (rf"\b{_WILL}\s+refund\b", "refund", "Will refund"),
        (r"\bprocess(?:ing|ed)?\s+(?:your\s+)?refund\b", "refund", "Processing refund"),
        (
            rf"\b{_DONE}\s+(?:issued|processed|approved)\s+(?:a\s+|the\s+)?refund\b",
            "refund",
            "Refund issued/processed",
        ),
        (rf"\b{_WILL}\s+ship\b", "shipping", "Will ship"),
        (rf"\b{_WILL}\s+send\b", "shipping", "Will send"),
        (r"\bshipping\s+(?:today|tomorrow|this week|within)\b", "shipping", "Shipping timeline commitment"),
        (
            r"\b(?:will\s+)?(?:be\s+)?shipped?\s+(?:out\s+)?(?:today|tomorrow|this week)\b",
            "shipping",
            "Shipping today/tomorrow",
        ),
        (r"\byou(?:'ll| will)\s+receive\s+(?:it\s+)?(?:by|within|in)\b", "shipping", "Delivery timeline commitment"),
        (r"\bexpect\s+(?:delivery|it|your order)\s+(?:by|within|in)\b", "shipping", "Expected delivery timeline"),
        (
            rf"\b{_WILL}\s+(?:send\s+(?:a|you)\s+)?replace(?:ment)?\b",
            "replacement",
            "Will send replacement",
        ),
        (r"\breplacement\s+(?:has been\s+)?(?:approved|confirmed)\b", "replacement", "Replacement approved"),
        (
            r"\b(?:send(?:ing)?|ship(?:ping)?)\s+(?:a\s+)?(?:new\s+)?replacement\b",
            "replacement",
            "Sending replacement",
        ),
        (
            rf"\b{_DONE}\s+(?:arranged|approved|processed)\s+a\s+replacement\b",
            "replacement",
            "Replacement arranged",
        ),
        (rf"\b{_WILL}\s+(?:follow\s+up|get\s+back\s+to\s+you)\b", "follow_up", "Will follow up"),
        (
            rf"\b{_WILL}\s+(?:check|look\s+into|investigate)\s+(?:on\s+)?this\b",
            "follow_up",
            "Will investigate",
        ),
        (rf"\b{_WILL}\s+escalate\b", "follow_up", "Will escalate"),
        (rf"\b{_WILL}\s+(?:reach\s+out|contact)\b", "follow_up", "Will contact"),
        (
            r"\bexpect\s+(?:a\s+)?(?:response|reply|update)\s+(?:within|by)\b",
            "follow_up",
            "Response timeline commitment",
        ),
        (rf"\b{_DONE}\s+confirmed\b", "confirmation", "Confirmed action"),
        (r"\b(?:has been|is now)\s+(?:approved|confirmed|processed)\b", "confirmation", "Action approved/confirmed"),
        (rf"\b{_DONE}\s+(?:processed|completed|updated)\b", "confirmation", "Action processed/completed"),
        (
            r"\byour\s+(?:request|order|return)\s+(?:has been|is)\s+(?:approved|confirmed)\b",
            "confirmation",
            "Request approved",
        ),
        (
            r"\bwithin\s+(?:\d+|one|two|three)\s+(?:hours?|days?|business\s+days?)\b",
            "timeline",
            "Timeline commitment",
        ),
        (
            r"\bby\s+(?:end\s+of\s+)?(?:today|tomorrow|this\s+week|monday|tuesday|wednesday|thursday|friday)\b",
            "timeline",
            "Deadline commitment",
        ),
    )
)


@dataclass(frozen=True)
class DetectedPromise:
    category: str
    matched_text: str
    description: str

    def as_payload(self) -> Dict[str, str]:
        return {
            "category": self.category,
            "matched_text": self.matched_text,
            "description": self.description,
        }


def detect_promised_actions(text: str | None) -> List[DetectedPromise]:
    """Return the commitments found in ``text``, first match per pattern."""

    if not text or not text.strip():
        return []
    detected: List[DetectedPromise] = []
    for pattern, category, description in PROMISE_PATTERNS:
        match = pattern.search(text)
        if match:
            detected.append(DetectedPromise(category, match.group(0), description))
    return detected


def promises_payload(promises: List[DetectedPromise]) -> Dict[str, object]:
    """Summarise detected promises for an audit event."""

    categories: List[str] = []
    for promise in promises:
        if promise.category not in categories:
            categories.append(promise.category)
    return {
        "promises": [p.as_payload() for p in promises],
        "count": len(promises),
        "categories": categories,
    }
