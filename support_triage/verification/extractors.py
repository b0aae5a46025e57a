"""Pull order numbers and e-mail addresses out of free text."""

from __future__ import annotations

import re

# Tried in order: "#1234", "order 1234" / "order number 1234", "SW-1234" / "SWA 1234".
_ORDER_PATTERNS = (
    re.compile(r"#\s?(\d{4,})"),
    re.compile(r"order\s*(?:number|#|no\.?)?\s*(\d{4,})", re.I),
    re.compile(r"\bSWA?[-\s]?(\d{4,})", re.I),
)

_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")


def extract_order_number(text: str) -> str | None:
    for pattern in _ORDER_PATTERNS:
        match = pattern.search(text or "")
        if match:
            return match.group(1)
    return None


def extract_email(text: str) -> str | None:
    match = _EMAIL_PATTERN.search(text or "")
    return match.group(0).lower() if match else None
