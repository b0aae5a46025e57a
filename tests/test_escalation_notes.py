from support_triage.drafts.escalation import build_escalation_note
from support_triage.intents import taxonomy
from support_triage.orders.schemas import CustomerSnapshot
from support_triage.retrieval.schemas import KBDocument, SearchResult
from support_triage.verification.schemas import VerificationResult, VerificationStatus


def _kb(title):
    return SearchResult(document=KBDocument(id=title.lower(), title=title), score=0.8)


def test_note_without_verification_or_retrieval():
    note = build_escalation_note(
        "Auto-escalated due to intent type", taxonomy.LEGAL_SAFETY_RISK, sender="a@b.com"
    )
    assert note == (
        "Escalation reason: Auto-escalated due to intent type\n"
        "Detected intent: LEGAL_SAFETY_RISK\n"
        "Customer: a@b.com\n"
        "Verification: not checked\n"
        "\n"
        "Recommended actions:\n"
        "- Review the full conversation before replying\n"
        "- Route to the owner for legal or safety review"
    )


def test_note_with_flagged_customer():
    verification = VerificationResult(
        status=VerificationStatus.FLAGGED,
        order_number="5001",
        customer=CustomerSnapshot(id="c", email="max@example.com", name="Max Risk"),
        flags=["customer_tag:chargeback"],
    )
    note = build_escalation_note(
        "Verification flagged the customer account",
        taxonomy.ORDER_STATUS,
        sender="other@example.com",
        verification=verification,
    )
    assert "Customer: Max Risk (max@example.com)" in note
    assert "Verification: flagged (order #5001)" in note
    assert "Flags: customer_tag:chargeback" in note
    assert "Confirm the order number" not in note


def test_unverified_protected_intent_asks_for_order_details():
    note = build_escalation_note("Escalation required", taxonomy.RETURN_REFUND_REQUEST)
    assert "Customer: Unknown" in note
    assert "- Confirm the order number and purchase email" in note


def test_empty_retrieval_is_reported_as_a_gap():
    note = build_escalation_note(
        "Draft contained blocked policy language",
        taxonomy.PART_IDENTIFICATION,
        kb_results=[],
        policy_reasons=['Promises a refund: "will refund"'],
    )
    assert "Knowledge base: no matching articles" in note
    assert 'Policy violations: Promises a refund: "will refund"' in note
    assert "- Rewrite the draft without the blocked language" in note
    assert "- No knowledge-base article matched; consider writing one" in note


def test_matched_articles_are_listed_up_to_three():
    results = [_kb(t) for t in ("Shipping Times", "Returns", "Warranty", "Install")]
    note = build_escalation_note("x", taxonomy.ORDER_STATUS, kb_results=results)
    assert "Knowledge base: 4 article(s) matched: Shipping Times, Returns, Warranty\n" in note
    assert "consider writing one" not in note
