import json

import pytest
from conftest import Counter, FakeLLM, classification_json

from support_triage.intents import taxonomy
from support_triage.intents.catalog import IntentCatalog
from support_triage.intents.classifier import IntentClassifier, build_intent_reference
from support_triage.intents.keyword import KeywordClassifier
from support_triage.intents.repository import InMemoryIntentRepository


def _classifier(llm, repository=None, **kwargs):
    catalog = IntentCatalog(repository or InMemoryIntentRepository())
    kwargs.setdefault("keyword_classifier", KeywordClassifier())
    return IntentClassifier(llm, catalog, **kwargs)


# ---------------------------------------------------------------------------
# Keyword rules


@pytest.mark.parametrize(
    "subject, body, expected",
    [
        ("", "Thanks so much, all working now", taxonomy.THANK_YOU_CLOSE),
        ("Thanks", "Thanks! Where is my order?", taxonomy.ORDER_STATUS),
        ("Partnership opportunity", "We offer SEO services", taxonomy.VENDOR_SPAM),
        ("Notification", "This is an automated message, do not reply", taxonomy.AUTOMATED_EMAIL),
        ("", "I will file a chargeback", taxonomy.CHARGEBACK_THREAT),
        ("", "The unit has a burning smell", taxonomy.LEGAL_SAFETY_RISK),
        ("", "The portal keeps kicking me off", taxonomy.FIRMWARE_ACCESS_ISSUE),
        ("", "Can you send the firmware?", taxonomy.FIRMWARE_UPDATE_REQUEST),
        ("", "I watched the video but my screen looks different", taxonomy.DOCS_VIDEO_MISMATCH),
        ("", "Is this compatible with a 2015 Silverado?", taxonomy.COMPATIBILITY_QUESTION),
    ],
)
def test_keyword_rules(subject, body, expected):
    result = KeywordClassifier().classify(subject, body)
    assert result.primary_intent == expected
    assert result.source == "keyword"


def test_keyword_flags_follow_intent_definition():
    result = KeywordClassifier().classify("", "I will dispute this with my bank")
    assert result.primary_intent == taxonomy.CHARGEBACK_THREAT
    assert result.auto_escalate
    assert result.requires_verification


def test_keyword_unknown():
    result = KeywordClassifier().classify("Hi", "Hello there")
    assert result.primary_intent == taxonomy.UNKNOWN
    assert result.confidence == pytest.approx(0.3)
    assert result.source == "fallback"


# ---------------------------------------------------------------------------
# Model classification


async def test_parses_and_orders_multiple_intents():
    llm = FakeLLM(
        classification=json.dumps(
            {
                "intents": [
                    {"slug": "RETURN_REFUND_REQUEST", "confidence": 0.6},
                    {"slug": "ORDER_STATUS", "confidence": 0.9},
                    {"slug": "ORDER_STATUS", "confidence": 0.7},
                    {"slug": "MADE_UP", "confidence": 0.99},
                    {"slug": "COMPATIBILITY_QUESTION", "confidence": 0.2},
                ],
                "primary_intent": "ORDER_STATUS",
            }
        )
    )
    result = await _classifier(llm).classify("Order", "Where is order 4013? I may return it")
    assert [m.intent for m in result.intents] == ["ORDER_STATUS", "RETURN_REFUND_REQUEST"]
    assert result.confidence == pytest.approx(0.9)
    assert result.requires_verification
    assert result.source == "llm"


async def test_extracts_json_wrapped_in_prose():
    content = "Sure! ```json\n" + classification_json("INSTALL_GUIDANCE", 0.8) + "\n```"
    result = await _classifier(FakeLLM(classification=content)).classify("", "How do I install it")
    assert result.primary_intent == taxonomy.INSTALL_GUIDANCE


async def test_model_flags_override_definition_defaults():
    llm = FakeLLM(
        classification=classification_json(
            "ORDER_STATUS", 0.8, requires_verification=False, auto_escalate=True
        )
    )
    result = await _classifier(llm).classify("", "When will it arrive")
    assert not result.requires_verification
    assert result.auto_escalate


async def test_malformed_output_falls_back_to_keyword_rules():
    llm = FakeLLM(classification="sorry, I cannot help with that")
    result = await _classifier(llm).classify("", "When will my order ship?")
    assert result.primary_intent == taxonomy.ORDER_STATUS
    assert result.source == "keyword"


async def test_malformed_output_without_keyword_match_is_unknown():
    llm = FakeLLM(classification="I think this is about something")
    result = await _classifier(llm).classify("", "Hello there")
    assert result.primary_intent == taxonomy.UNKNOWN
    assert result.confidence == pytest.approx(0.3)


async def test_low_confidence_unknown_is_rescued_by_keywords():
    llm = FakeLLM(classification=classification_json("ORDER_STATUS", 0.2))
    result = await _classifier(llm).classify("", "Where is my order?")
    assert result.primary_intent == taxonomy.ORDER_STATUS
    assert result.source == "keyword"


async def test_low_confidence_unknown_without_keyword_match():
    llm = FakeLLM(classification=classification_json("ORDER_STATUS", 0.2))
    result = await _classifier(llm).classify("", "Hello there")
    assert result.primary_intent == taxonomy.UNKNOWN
    assert result.confidence == pytest.approx(0.5)
    assert result.source == "llm"


async def test_unconfigured_model_uses_keywords():
    llm = FakeLLM(configured=False)
    result = await _classifier(llm).classify("", "Can you send the firmware?")
    assert result.primary_intent == taxonomy.FIRMWARE_UPDATE_REQUEST
    assert llm.calls == []


async def test_model_error_uses_keywords():
    llm = FakeLLM(classification=RuntimeError("rate limited"))
    result = await _classifier(llm).classify("", "Thank you!")
    assert result.primary_intent == taxonomy.THANK_YOU_CLOSE


async def test_model_timeout_uses_keywords():
    llm = FakeLLM(classification=classification_json("ORDER_STATUS"), delay=0.5)
    result = await _classifier(llm, timeout_seconds=0.01).classify("", "Can you send the firmware?")
    assert result.primary_intent == taxonomy.FIRMWARE_UPDATE_REQUEST


async def test_no_keyword_classifier_degrades_to_unknown():
    llm = FakeLLM(configured=False)
    result = await _classifier(llm, keyword_classifier=None).classify("", "Thank you!")
    assert result.primary_intent == taxonomy.UNKNOWN
    assert result.confidence == pytest.approx(0.3)


async def test_disabled_intent_is_rejected():
    repository = InMemoryIntentRepository()
    for intent in repository.intents:
        if intent.slug == taxonomy.ORDER_STATUS:
            intent.is_active = False
    llm = FakeLLM(classification=classification_json("ORDER_STATUS", 0.9))
    result = await _classifier(llm, repository, keyword_classifier=None).classify("", "Status?")
    assert result.primary_intent == taxonomy.UNKNOWN


async def test_prompt_carries_catalog_and_context():
    llm = FakeLLM(classification=classification_json("ORDER_STATUS", 0.9))
    await _classifier(llm).classify("Order", "Any news?", "[inbound]: order 4013 please")
    call = llm.calls[0]
    assert call["task"] == "classification"
    assert "### ORDER_STATUS" in call["system_prompt"]
    assert "CONVERSATION CONTEXT:\n[inbound]: order 4013 please" in call["user_prompt"]


def test_intent_reference_groups_by_category():
    reference = build_intent_reference(list(taxonomy.DEFAULT_INTENTS[:2]))
    assert reference.count("## SUPPORT") == 1
    assert "Examples: need firmware" in reference


# ---------------------------------------------------------------------------
# Catalog refresh


class _FlakyRepository(InMemoryIntentRepository):
    def __init__(self):
        super().__init__()
        self.fail = False
        self.loads = 0

    async def list_active_intents(self):
        self.loads += 1
        if self.fail:
            raise RuntimeError("database unavailable")
        return await super().list_active_intents()


async def test_catalog_caches_until_refresh_interval():
    repository = _FlakyRepository()
    counter = Counter()
    catalog = IntentCatalog(repository, refresh_seconds=60, clock=counter)

    assert taxonomy.ORDER_STATUS in await catalog.active()
    counter.value = 30
    await catalog.active()
    assert repository.loads == 1

    counter.value = 61
    await catalog.active()
    assert repository.loads == 2

    catalog.invalidate()
    await catalog.get(taxonomy.ORDER_STATUS)
    assert repository.loads == 3


async def test_catalog_keeps_previous_intents_when_refresh_fails():
    repository = _FlakyRepository()
    counter = Counter()
    catalog = IntentCatalog(repository, refresh_seconds=60, clock=counter)
    await catalog.active()

    repository.fail = True
    counter.value = 120
    intents = await catalog.active()
    assert taxonomy.ORDER_STATUS in intents


async def test_catalog_priority_order():
    catalog = IntentCatalog(InMemoryIntentRepository())
    slugs = list(await catalog.active())
    assert slugs[0] in {taxonomy.CHARGEBACK_THREAT, taxonomy.LEGAL_SAFETY_RISK}
