"""Negative-flag detection on customer and order records."""

from __future__ import annotations

from typing import Iterable, List, Optional

from ..orders.schemas import CustomerSnapshot, OrderSnapshot

NEGATIVE_TAGS = (
    "chargeback",
    "fraud",
    "fraud_risk",
    "do_not_support",
    "abusive",
    "blocked",
    "banned",
    "dispute",
    "scam",
    "blacklist",
)

NEGATIVE_NOTE_KEYWORDS = (
    "chargeback",
    "fraud",
    "abusive",
    "threatening",
    "do not support",
    "blacklist",
    "scam",
    "dispute",
    "banned",
)


def _tag_flags(prefix: str, tags: Iterable[str]) -> List[str]:
    flags = []
    for tag in tags:
        normalised = tag.lower().strip()
        if any(negative in normalised for negative in NEGATIVE_TAGS):
            flags.append(f"{prefix}_tag:{tag}")
    return flags


def _note_flag(prefix: str, note: Optional[str]) -> List[str]:
    lowered = (note or "").lower()
    for keyword in NEGATIVE_NOTE_KEYWORDS:
        if keyword in lowered:
            return [f"{prefix}_note:{keyword}"]
    return []


def check_negative_flags(
    customer: Optional[CustomerSnapshot], order: Optional[OrderSnapshot]
) -> List[str]:
    """Return every risk flag found on ``customer`` and ``order`` (empty if clean)."""

    flags: List[str] = []
    if customer is not None:
        flags += _tag_flags("customer", customer.tags)
        flags += _note_flag("customer", customer.note)
    if order is not None:
        flags += _tag_flags("order", order.tags)
        flags += _note_flag("order", order.note)
    return flags
