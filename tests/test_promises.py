import pytest

from support_triage.drafts.promises import detect_promised_actions, promises_payload

SIGNED = "\n\n– Lina"


@pytest.mark.parametrize(
    "text, category",
    [
        ("Good news! Your refund has been approved.", "refund"),
        ("I'll process your refund once the unit is back.", "refund"),
        ("I've issued a refund for the damaged item.", "refund"),
        ("I'll send out a new unit right away.", "shipping"),
        ("The order is shipping today!", "shipping"),
        ("Based on tracking, you'll receive it by Friday.", "shipping"),
        ("We'll send a replacement unit free of charge.", "replacement"),
        ("Your replacement has been approved.", "replacement"),
        ("I'll get back to you after talking to the warehouse.", "follow_up"),
        ("We'll look into this today.", "follow_up"),
        ("Expect a reply within a day.", "follow_up"),
        ("I've updated the shipping address.", "confirmation"),
        ("Your return has been approved.", "confirmation"),
        ("The team answers within 2 business days.", "timeline"),
        ("We can sort this by end of this week.", "timeline"),
    ],
)
def test_detects_commitments(text, category):
    promises = detect_promised_actions(text + SIGNED)
    assert category in {p.category for p in promises}


@pytest.mark.parametrize(
    "text",
    [
        "",
        "   ",
        None,
        "Your order shipped with UPS, tracking 1Z999." + SIGNED,
        "Thanks for the photos, that harness is the right one." + SIGNED,
    ],
)
def test_plain_text_has_no_commitments(text):
    assert detect_promised_actions(text) == []


def test_matched_text_and_description():
    promises = detect_promised_actions("We will refund the full amount." + SIGNED)
    assert [(p.matched_text, p.description) for p in promises] == [("will refund", "Will refund")]


def test_payload_groups_categories_in_first_seen_order():
    promises = detect_promised_actions(
        "I'll follow up tomorrow, and we'll send a replacement within 3 days." + SIGNED
    )
    payload = promises_payload(promises)
    assert payload["count"] == len(promises)
    assert payload["categories"] == ["shipping", "replacement", "follow_up", "timeline"]
    assert all(set(item) == {"category", "matched_text", "description"} for item in payload["promises"])
