import pytest

from support_triage.drafts.policy import PolicyGate, policy_gate

SIGNED = "\n\n– Lina"


def test_clean_signed_draft_passes():
    result = policy_gate("Your order shipped yesterday with UPS." + SIGNED)
    assert result.ok
    assert result.reasons == ()


@pytest.mark.parametrize(
    "text, reason",
    [
        ("We guarantee it works with your truck.", 'Makes a guarantee: "We guarantee"'),
        ("We will refund the full amount.", 'Promises a refund: "will refund"'),
        ("It will arrive in three days.", 'Promises a delivery timeline: "will arrive in three"'),
        ("We are not liable for install damage.", 'Makes a legal liability claim: "not liable"'),
        ("The harness is 100% safe.", 'Makes a safety or legality claim: "100% safe"'),
        ("Please reach out to support for that.", 'Deflects to another support channel: "reach out to support"'),
        ("I'll check on that for you.", 'Promises to check instead of answering: "I\'ll check on that"'),
    ],
)
def test_blocked_phrases(text, reason):
    result = policy_gate(text + SIGNED)
    assert not result.ok
    assert reason in result.reasons


def test_competitor_mentions_are_configurable():
    gate = PolicyGate("Lina", competitors=["Acme Gauges", " "])
    result = gate.check("Acme Gauges makes a similar kit." + SIGNED)
    assert result.reasons == ("Mentions competitor 'Acme Gauges': \"Acme Gauges\"",)


def test_missing_signature_is_blocked():
    result = policy_gate("Your order shipped yesterday.")
    assert result.reasons == ("Draft must end with '– Lina' signature",)


def test_disallowed_signoff_is_reported_alongside_missing_signature():
    result = policy_gate("Your order shipped yesterday.\n\n- Rob")
    assert not result.ok
    assert any(reason.startswith("Disallowed sign-off name") for reason in result.reasons)
    assert "Draft must end with '– Lina' signature" in result.reasons


def test_signature_accepts_hyphen_variants_and_custom_agent():
    assert policy_gate("All set.\n- Lina").ok
    assert PolicyGate("Sam").check("All set.\n— Sam").ok
    assert PolicyGate("Sam").signature == "– Sam"


def test_same_text_same_verdict():
    text = "We will replace it." + SIGNED
    assert policy_gate(text) == policy_gate(text)
