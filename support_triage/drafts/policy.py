"""Deterministic safety filter applied to every customer-facing draft.

The gate is a pure function of the text: no I/O and no model calls, so the
same draft always produces the same verdict.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Tuple

_Rule = Tuple[re.Pattern[str], str]


def _rules(*pairs: Tuple[str, str]) -> Tuple[_Rule, ...]:
    return tuple((re.compile(pattern, re.I), reason) for pattern, reason in pairs)


PROMISE_RULES = _rules(
    (r"\b(?:we|i) guarantee\b", "Makes a guarantee"),
    (r"\bwill refund\b", "Promises a refund"),
    (r"\bwill replace\b", "Promises a replacement"),
    (r"\bwill ship (?:today|tomorrow)\b", "Promises a shipping date"),
    (r"\byou will receive (?:it )?by\b", "Promises a delivery date"),
    (r"\bwill (?:arrive|be delivered) (?:in|within|by) \w+", "Promises a delivery timeline"),
)

LEGAL_RULES = _rules(
    (r"\b(?:not|isn'?t|aren'?t) (?:legally )?liable\b", "Makes a legal liability claim"),
    (r"\blegally (?:required|obligated|entitled)\b", "Makes a legal claim"),
    (r"\b(?:100%|completely|perfectly) (?:safe|legal)\b", "Makes a safety or legality claim"),
    (r"\bvoids? (?:your|the) warranty\b", "Makes a warranty ruling"),
)

DEFLECTION_RULES = _rules(
    (r"\breach out to (?:our )?support\b", "Deflects to another support channel"),
    (r"\bcontact (?:our )?(?:support|customer service)\b", "Deflects to another support channel"),
    (r"\bcontact support@", "Deflects to a support address"),
    (r"\bi'?ll check on (?:that|this)\b", "Promises to check instead of answering"),
)

DISALLOWED_SIGNOFFS = _rules(
    (r"[-–—]\s*Rob(?:ert)?\b", "Disallowed sign-off name"),
    (r"[-–—]\s*The\s+(?:Team|Support)\b", "Disallowed team sign-off"),
)


@dataclass(frozen=True)
class PolicyResult:
    ok: bool
    reasons: Tuple[str, ...] = field(default_factory=tuple)


class PolicyGate:
    """Scan drafts for promises, legal claims, competitor mentions and deflection."""

    def __init__(self, agent_name: str = "Lina", competitors: Iterable[str] = ()) -> None:
        self._agent_name = agent_name
        self._signature = re.compile(rf"[-–—]\s*{re.escape(agent_name)}\s*$", re.I)
        self._competitors: Tuple[_Rule, ...] = tuple(
            (re.compile(rf"\b{re.escape(name)}\b", re.I), f"Mentions competitor '{name}'")
            for name in competitors
            if name.strip()
        )

    @property
    def signature(self) -> str:
        return f"– {self._agent_name}"

    def check(self, text: str) -> PolicyResult:
        reasons: List[str] = []
        for rules in (PROMISE_RULES, LEGAL_RULES, self._competitors, DEFLECTION_RULES):
            reasons.extend(_matches(rules, text))
        reasons.extend(_matches(DISALLOWED_SIGNOFFS, text))

        trimmed = text.strip()
        if trimmed and not self._signature.search(trimmed):
            reasons.append(f"Draft must end with '{self.signature}' signature")
        return PolicyResult(ok=not reasons, reasons=tuple(reasons))


def _matches(rules: Sequence[_Rule], text: str) -> List[str]:
    reasons = []
    for pattern, reason in rules:
        match = pattern.search(text)
        if match:
            reasons.append(f'{reason}: "{match.group(0)}"')
    return reasons


def policy_gate(text: str, *, agent_name: str = "Lina") -> PolicyResult:
    """Check ``text`` with the default rules."""

    return PolicyGate(agent_name).check(text)
