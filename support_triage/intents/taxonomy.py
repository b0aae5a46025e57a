"""Built-in intent slugs and the default catalog seeded into new installs."""

from __future__ import annotations

from .schemas import IntentDefinition

PRODUCT_SUPPORT = "PRODUCT_SUPPORT"
FIRMWARE_UPDATE_REQUEST = "FIRMWARE_UPDATE_REQUEST"
FIRMWARE_ACCESS_ISSUE = "FIRMWARE_ACCESS_ISSUE"
DOCS_VIDEO_MISMATCH = "DOCS_VIDEO_MISMATCH"
INSTALL_GUIDANCE = "INSTALL_GUIDANCE"
FUNCTIONALITY_BUG = "FUNCTIONALITY_BUG"
COMPATIBILITY_QUESTION = "COMPATIBILITY_QUESTION"
PART_IDENTIFICATION = "PART_IDENTIFICATION"
ORDER_STATUS = "ORDER_STATUS"
ORDER_CHANGE_REQUEST = "ORDER_CHANGE_REQUEST"
MISSING_DAMAGED_ITEM = "MISSING_DAMAGED_ITEM"
WRONG_ITEM_RECEIVED = "WRONG_ITEM_RECEIVED"
RETURN_REFUND_REQUEST = "RETURN_REFUND_REQUEST"
CHARGEBACK_THREAT = "CHARGEBACK_THREAT"
LEGAL_SAFETY_RISK = "LEGAL_SAFETY_RISK"
THANK_YOU_CLOSE = "THANK_YOU_CLOSE"
FOLLOW_UP_NO_NEW_INFO = "FOLLOW_UP_NO_NEW_INFO"
VENDOR_SPAM = "VENDOR_SPAM"
AUTOMATED_EMAIL = "AUTOMATED_EMAIL"
UNKNOWN = "UNKNOWN"

# Intents that always pass through the verification gate, whatever the
# classifier decided about the individual message.
PROTECTED_INTENTS = frozenset(
    {
        ORDER_STATUS,
        ORDER_CHANGE_REQUEST,
        MISSING_DAMAGED_ITEM,
        WRONG_ITEM_RECEIVED,
        RETURN_REFUND_REQUEST,
        PRODUCT_SUPPORT,
        FIRMWARE_UPDATE_REQUEST,
        FIRMWARE_ACCESS_ISSUE,
        INSTALL_GUIDANCE,
        FUNCTIONALITY_BUG,
    }
)

ESCALATION_INTENTS = frozenset({CHARGEBACK_THREAT, LEGAL_SAFETY_RISK})

# Messages that close a thread without a reply.
CLOSING_INTENTS = frozenset({THANK_YOU_CLOSE, VENDOR_SPAM, AUTOMATED_EMAIL})

CATEGORY_LABELS = {
    "support": "Product Support",
    "presale": "Pre-sale Questions",
    "order": "Orders",
    "escalation": "Escalation Triggers",
    "closing": "Closing / Follow-ups",
    "spam": "Non-customer",
    "unknown": "Unknown",
}


def _intent(
    slug: str,
    name: str,
    description: str,
    category: str,
    priority: int,
    examples: list[str],
    *,
    requires_verification: bool = False,
    auto_escalate: bool = False,
) -> IntentDefinition:
    return IntentDefinition(
        slug=slug,
        name=name,
        description=description,
        category=category,
        priority=priority,
        examples=examples,
        requires_verification=requires_verification,
        auto_escalate=auto_escalate,
    )


DEFAULT_INTENTS: tuple[IntentDefinition, ...] = (
    _intent(
        PRODUCT_SUPPORT,
        "Product Support",
        "General product troubleshooting - screen dead, audio issues, not working",
        "support",
        10,
        ["screen is dead", "audio not working", "stopped working", "not turning on", "no sound"],
        requires_verification=True,
    ),
    _intent(
        FIRMWARE_UPDATE_REQUEST,
        "Firmware Update Request",
        "Customer requesting firmware files or access to download firmware",
        "support",
        10,
        ["need firmware", "send firmware", "latest firmware", "software update"],
        requires_verification=True,
    ),
    _intent(
        FIRMWARE_ACCESS_ISSUE,
        "Firmware Access Issue",
        "Problems accessing or downloading firmware from the portal",
        "support",
        15,
        ["cant login", "access denied", "403 error", "kicking me off"],
        requires_verification=True,
    ),
    _intent(
        DOCS_VIDEO_MISMATCH,
        "Documentation Mismatch",
        "Install docs or videos do not match the actual product",
        "support",
        10,
        ["video shows different", "instructions wrong", "docs dont match"],
    ),
    _intent(
        INSTALL_GUIDANCE,
        "Installation Guidance",
        "How-to install questions and step-by-step help",
        "support",
        5,
        ["how to install", "installation guide", "walk me through"],
        requires_verification=True,
    ),
    _intent(
        FUNCTIONALITY_BUG,
        "Functionality Bug",
        "Product feature not working as expected",
        "support",
        15,
        ["supposed to", "feature not working", "button doesnt work"],
        requires_verification=True,
    ),
    _intent(
        COMPATIBILITY_QUESTION,
        "Compatibility Question",
        "Will product X work with my car? Pre-purchase questions",
        "presale",
        5,
        ["compatible with", "will it fit", "work with my car", "before I buy"],
    ),
    _intent(
        PART_IDENTIFICATION,
        "Part Identification",
        "Customer asking what part they need or have",
        "presale",
        5,
        ["what part", "which part", "part number", "identify this"],
    ),
    _intent(
        ORDER_STATUS,
        "Order Status",
        "Where is my order? Tracking questions",
        "order",
        20,
        ["where is my order", "tracking number", "has it shipped", "when will it arrive"],
        requires_verification=True,
    ),
    _intent(
        ORDER_CHANGE_REQUEST,
        "Order Change Request",
        "Cancel or modify order, change shipping address",
        "order",
        25,
        ["cancel order", "change order", "different address"],
        requires_verification=True,
    ),
    _intent(
        MISSING_DAMAGED_ITEM,
        "Missing/Damaged Item",
        "Item missing from order or arrived damaged",
        "order",
        30,
        ["missing item", "arrived damaged", "box crushed", "parts missing"],
        requires_verification=True,
    ),
    _intent(
        WRONG_ITEM_RECEIVED,
        "Wrong Item Received",
        "Customer received incorrect product",
        "order",
        30,
        ["wrong item", "not what I ordered", "sent wrong product"],
        requires_verification=True,
    ),
    _intent(
        RETURN_REFUND_REQUEST,
        "Return/Refund Request",
        "Customer wants to return product or get refund",
        "order",
        25,
        ["return", "refund", "money back", "RMA"],
        requires_verification=True,
    ),
    _intent(
        CHARGEBACK_THREAT,
        "Chargeback Threat",
        "Customer threatening chargeback or payment dispute",
        "escalation",
        100,
        ["chargeback", "dispute charge", "BBB", "paypal dispute", "contact bank"],
        requires_verification=True,
        auto_escalate=True,
    ),
    _intent(
        LEGAL_SAFETY_RISK,
        "Legal/Safety Risk",
        "Legal threats or genuine safety concerns",
        "escalation",
        100,
        ["lawyer", "legal action", "lawsuit", "fire risk", "burning smell"],
        auto_escalate=True,
    ),
    _intent(
        THANK_YOU_CLOSE,
        "Thank You / Close",
        "Customer saying thanks, closing thread",
        "closing",
        0,
        ["thank you", "thanks so much", "problem solved", "works now"],
    ),
    _intent(
        FOLLOW_UP_NO_NEW_INFO,
        "Follow-up (No New Info)",
        "Follow-up with no new information",
        "closing",
        0,
        ["any update", "still waiting", "just checking", "following up"],
    ),
    _intent(
        VENDOR_SPAM,
        "Vendor/Spam",
        "Sales pitches, partnerships, vendor inquiries",
        "spam",
        -10,
        ["partnership opportunity", "SEO services", "guest post", "B2B"],
    ),
    _intent(
        AUTOMATED_EMAIL,
        "Automated Email",
        "Automated notifications from platforms and services",
        "spam",
        -10,
        ["do not reply", "this is an automated message", "your account notification"],
    ),
    _intent(
        UNKNOWN,
        "Unknown Intent",
        "Intent could not be determined - requires human review",
        "unknown",
        0,
        [],
    ),
)


def default_intent(slug: str) -> IntentDefinition | None:
    for definition in DEFAULT_INTENTS:
        if definition.slug == slug:
            return definition
    return None


def intent_label(slug: str) -> str:
    """Return a human label for ``slug`` (``ORDER_STATUS`` -> ``Order Status``)."""

    definition = default_intent(slug)
    if definition is not None:
        return definition.name
    return slug.replace("_", " ").title()
