"""Pre-approved replies that skip generation."""

from __future__ import annotations

from typing import Optional

from ..intents import taxonomy

CHARGEBACK_NOTE = (
    "Draft only (escalate): Customer mentions chargeback/dispute. "
    "Do not promise. Ask for order # + summarize situation."
)


def docs_video_mismatch(signature: str, name: Optional[str] = None) -> str:
    greeting = f"Hey {name}," if name else "Hey,"
    return (
        f"{greeting}\n\n"
        "That video shows an example email some customers receive, but not everyone gets "
        "that exact message depending on when the unit shipped and which update path applies.\n\n"
        "Reply with:\n"
        "1) which unit you have\n"
        "2) the order email or order number\n"
        "3) what you see when you try to update (error or screenshot if possible)\n\n"
        "Then I can point you to the correct update method for your exact setup.\n\n"
        f"{signature}"
    )


def firmware_access_clarify(signature: str) -> str:
    return (
        "Hey, I can help, but I need 3 quick details so I don't send you the wrong file:\n\n"
        "1) Which unit are you updating?\n"
        '2) What exactly happens when the site "kicks you off" '
        "(login loop, error message, blank page, etc.)?\n"
        "3) What email did you order with (or your order number)?\n\n"
        f"{signature}"
    )


MACROS = {
    taxonomy.DOCS_VIDEO_MISMATCH: docs_video_mismatch,
    taxonomy.FIRMWARE_ACCESS_ISSUE: firmware_access_clarify,
}


def macro_for(intent: str, signature: str) -> Optional[str]:
    """Return the signed macro for ``intent``, if one exists."""
    builder = MACROS.get(intent)
    return builder(signature) if builder else None
