"""One-line thread summaries synced to downstream CRMs."""

from __future__ import annotations

from ..intents import taxonomy
from .state_machine import Action, ThreadState

_ISSUE_TYPES = {
    taxonomy.ORDER_STATUS: "Order status inquiry",
    taxonomy.ORDER_CHANGE_REQUEST: "Order change request",
    taxonomy.MISSING_DAMAGED_ITEM: "Missing or damaged item",
    taxonomy.WRONG_ITEM_RECEIVED: "Wrong item received",
    taxonomy.RETURN_REFUND_REQUEST: "Return/refund request",
    taxonomy.PRODUCT_SUPPORT: "Technical support",
    taxonomy.FIRMWARE_UPDATE_REQUEST: "Firmware update request",
    taxonomy.FIRMWARE_ACCESS_ISSUE: "Firmware access issue",
    taxonomy.DOCS_VIDEO_MISMATCH: "Documentation issue",
    taxonomy.INSTALL_GUIDANCE: "Installation help",
    taxonomy.FUNCTIONALITY_BUG: "Functionality bug",
    taxonomy.COMPATIBILITY_QUESTION: "Fitment question",
    taxonomy.PART_IDENTIFICATION: "Part identification",
    taxonomy.CHARGEBACK_THREAT: "Chargeback threat",
    taxonomy.LEGAL_SAFETY_RISK: "Legal/safety concern",
    taxonomy.THANK_YOU_CLOSE: "Thank you message",
    taxonomy.FOLLOW_UP_NO_NEW_INFO: "Follow-up",
    taxonomy.VENDOR_SPAM: "Vendor spam",
    taxonomy.AUTOMATED_EMAIL: "Automated notification",
}

_STATUSES = {
    ThreadState.NEW: "new",
    ThreadState.AWAITING_INFO: "awaiting customer info",
    ThreadState.IN_PROGRESS: "in progress",
    ThreadState.ESCALATED: "escalated",
    ThreadState.HUMAN_HANDLING: "human handling",
    ThreadState.RESOLVED: "resolved",
}


def generate_thread_summary(intent: str, state: ThreadState, action: Action) -> str:
    """Return ``"<issue type> - <status>"`` for the thread's latest decision."""

    issue_type = _ISSUE_TYPES.get(intent, "General inquiry")
    if action is Action.ESCALATE_WITH_DRAFT:
        return f"{issue_type} - ESCALATED"
    return f"{issue_type} - {_STATUSES[state]}"
