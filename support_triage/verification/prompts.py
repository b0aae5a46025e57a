"""Customer-facing replies for each verification outcome."""

from __future__ import annotations

from .schemas import VerificationStatus

FLAGGED_NOTE = """[ESCALATED - Customer flagged for human review]

This customer has been flagged and requires human review before proceeding.
Check the customer notes and order history for context."""


def verification_prompt(status: VerificationStatus, signature: str) -> str:
    if status is VerificationStatus.FLAGGED:
        return FLAGGED_NOTE
    if status is VerificationStatus.NOT_FOUND:
        return (
            "Hmm, I couldn't find that order in our system. A few things that might help:\n\n"
            "- Double-check the order number (sometimes there's a typo)\n"
            "- Was it placed under a different email address?\n"
            "- Check your confirmation email for the exact order number\n\n"
            "Mind taking another look and sending it over?\n\n"
            f"{signature}"
        )
    return (
        "Hey! I'd love to help you with this.\n\n"
        "To pull up your order info, could you share your order number? "
        "You can find it in your confirmation email (it looks like #12345).\n\n"
        f"{signature}"
    )
