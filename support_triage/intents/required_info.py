"""Per-intent checklist of details needed before a definitive answer.

The check is deterministic: each field is present when any of its patterns
matches the subject or body. Missing required fields turn the reply into a
clarifying question.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from . import taxonomy


@dataclass(frozen=True)
class RequiredField:
    id: str
    label: str
    patterns: Tuple[re.Pattern[str], ...]
    required: bool = True

    def present_in(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self.patterns)


@dataclass
class RequiredInfoCheck:
    all_required_present: bool = True
    missing_required: List[RequiredField] = field(default_factory=list)
    present: List[RequiredField] = field(default_factory=list)
    missing_optional: List[RequiredField] = field(default_factory=list)

    def as_payload(self) -> dict:
        return {
            "all_required_present": self.all_required_present,
            "missing_fields": [f.id for f in self.missing_required],
            "present_fields": [f.id for f in self.present],
        }


def _patterns(*expressions: str, flags: int = re.I) -> Tuple[re.Pattern[str], ...]:
    return tuple(re.compile(expression, flags) for expression in expressions)


_ORDER_NUMBER = RequiredField(
    "order_number",
    "Order number",
    _patterns(r"order\s*#?\s*\d+", r"#\s?\d{4,}", r"\b\d{4,}\b"),
)
_ORDER_OR_EMAIL = RequiredField(
    "order_info",
    "Order number or email",
    _patterns(r"order\s*#?\s*\d+", r"#\s?\d{4,}", r"@[a-z0-9.-]+\.[a-z]{2,}"),
    required=False,
)
_UNIT_TYPE = RequiredField(
    "unit_type",
    "Unit type or model",
    _patterns(r"\bmodel\b", r"\bunit\b", r"\bversion\b", r"\b[a-z]{1,4}-?\d{2,5}\b"),
)

INTENT_REQUIREMENTS: Dict[str, Tuple[RequiredField, ...]] = {
    taxonomy.FIRMWARE_UPDATE_REQUEST: (_UNIT_TYPE, _ORDER_OR_EMAIL),
    taxonomy.FIRMWARE_ACCESS_ISSUE: (
        _UNIT_TYPE,
        RequiredField(
            "error_description",
            "Error description",
            _patterns(r"error", r"message", r"says", r"shows", r"screen", r"page"),
            required=False,
        ),
        _ORDER_OR_EMAIL,
    ),
    taxonomy.ORDER_STATUS: (_ORDER_NUMBER,),
    taxonomy.ORDER_CHANGE_REQUEST: (
        _ORDER_NUMBER,
        RequiredField(
            "change_details",
            "What to change",
            _patterns(r"change", r"cancel", r"modify", r"address", r"shipping"),
        ),
    ),
    taxonomy.MISSING_DAMAGED_ITEM: (
        _ORDER_NUMBER,
        RequiredField(
            "item_description",
            "Which item is missing/damaged",
            _patterns(r"missing", r"damaged", r"broken", r"item", r"part", r"box"),
        ),
    ),
    taxonomy.WRONG_ITEM_RECEIVED: (
        _ORDER_NUMBER,
        RequiredField(
            "wrong_item",
            "What was received",
            _patterns(r"received", r"\bgot\b", r"sent", r"wrong"),
        ),
        RequiredField(
            "expected_item",
            "What was expected",
            _patterns(r"ordered", r"expected", r"supposed", r"should"),
            required=False,
        ),
    ),
    taxonomy.PART_IDENTIFICATION: (
        RequiredField(
            "part_number",
            "Part number or description",
            _patterns(r"\b\d{3,5}\b", r"part\s*#?\s*\w+", r"labeled", r"says"),
        ),
    ),
    taxonomy.RETURN_REFUND_REQUEST: (
        _ORDER_NUMBER,
        RequiredField(
            "reason",
            "Reason for return/refund",
            _patterns(
                r"because", r"reason", r"defective", r"doesn'?t work", r"not working",
                r"changed my mind",
            ),
            required=False,
        ),
    ),
    taxonomy.COMPATIBILITY_QUESTION: (
        RequiredField(
            "product",
            "Which product",
            _patterns(r"\bmodel\b", r"\bunit\b", r"\bgauge\b", r"\bkit\b", r"\b[a-z]{1,4}-?\d{2,5}\b"),
        ),
        RequiredField(
            "vehicle",
            "Vehicle info",
            _patterns(r"\b(?:19|20)\d{2}\b", r"\btruck\b", r"\bcar\b", r"\bvehicle\b"),
            required=False,
        ),
    ),
}


def check_required_info(intent: str, text: str) -> RequiredInfoCheck:
    """Report which checklist fields for ``intent`` appear in ``text``."""

    fields = INTENT_REQUIREMENTS.get(intent)
    if not fields:
        return RequiredInfoCheck()
    check = RequiredInfoCheck()
    for required_field in fields:
        if required_field.present_in(text):
            check.present.append(required_field)
        elif required_field.required:
            check.missing_required.append(required_field)
        else:
            check.missing_optional.append(required_field)
    check.all_required_present = not check.missing_required
    return check


def missing_info_prompt(missing: List[RequiredField], signature: str) -> str:
    """Build the numbered clarifying question for ``missing`` fields."""

    if not missing:
        return ""
    items = "\n".join(f"{index}) {f.label}" for index, f in enumerate(missing, start=1))
    return f"Hey, I can help, but I need a few details first:\n\n{items}\n\n{signature}"
