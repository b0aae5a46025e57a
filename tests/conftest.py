import asyncio
import json
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="triage-logs-"))

from support_triage.intents import taxonomy
from support_triage.ingest.schemas import IngestRequest
from support_triage.llm.client import Completion
from support_triage.orders.lookup import InMemoryOrderLookup
from support_triage.orders.schemas import CustomerSnapshot, LineItem, OrderSnapshot, TrackingInfo
from support_triage.pipeline import build_in_memory_pipeline
from support_triage.retrieval.schemas import KBChunk, KBDocument
from support_triage.retrieval.store import InMemoryKnowledgeStore
from support_triage.settings import TriageSettings

START = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class Counter:
    """Monotonic-seconds stand-in for TTL caches."""

    def __init__(self) -> None:
        self.value = 0.0

    def __call__(self) -> float:
        return self.value


@dataclass
class FakeLLM:
    """Scripted language model: one canned response (or error) per task."""

    classification: Any = None
    drafting: Any = None
    configured: bool = True
    delay: float = 0.0
    calls: list[dict[str, str]] = field(default_factory=list)

    @property
    def is_configured(self) -> bool:
        return self.configured

    def tasks(self) -> list[str]:
        return [call["task"] for call in self.calls]

    async def complete(
        self, *, system_prompt: str, user_prompt: str, task: str, **overrides: Any
    ) -> Completion:
        self.calls.append(
            {"task": task, "system_prompt": system_prompt, "user_prompt": user_prompt}
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.classification if task == "classification" else self.drafting
        if isinstance(response, Exception):
            raise response
        if response is None:
            raise RuntimeError(f"no scripted response for {task}")
        return Completion(content=response, model="fake-model", input_tokens=120, output_tokens=40)


def classification_json(slug: str, confidence: float = 0.9, **flags: Any) -> str:
    payload: dict[str, Any] = {
        "intents": [{"slug": slug, "confidence": confidence, "reasoning": "test"}],
        "primary_intent": slug,
    }
    payload.update(flags)
    return json.dumps(payload)


def inbound(body: str, subject: str = "Help", **overrides: Any) -> IngestRequest:
    data: dict[str, Any] = {
        "channel": "email",
        "external_id": "thread-1",
        "from_identifier": "jane@example.com",
        "to_identifier": "support@store.example",
        "subject": subject,
        "body_text": body,
    }
    data.update(overrides)
    return IngestRequest(**data)


SHIPPING_DOC = KBDocument(
    id="kb-shipping",
    title="Shipping Times",
    body="Orders ship within two business days from our warehouse.",
    intent_tags=[taxonomy.ORDER_STATUS],
)
FIRMWARE_DOC = KBDocument(
    id="kb-firmware",
    title="Firmware Update Guide",
    body="Download the latest firmware from the portal and follow the steps.",
    intent_tags=[taxonomy.FIRMWARE_UPDATE_REQUEST],
    product_tags=["Gauge Kit"],
)
INSTALL_DOC = KBDocument(
    id="kb-install",
    title="Installation Guide",
    body="Mount the unit and connect the harness.",
    intent_tags=[taxonomy.INSTALL_GUIDANCE],
    vehicle_tags=["All"],
)


class KeywordEmbedder:
    """Three-dimensional embeddings keyed on a few words."""

    def embed(self, texts):
        vectors = []
        for text in texts:
            lowered = text.lower()
            if "firmware" in lowered:
                vectors.append([1.0, 0.0, 0.0])
            elif "harness" in lowered or "mount" in lowered:
                vectors.append([0.0, 1.0, 0.0])
            else:
                vectors.append([0.0, 0.0, 1.0])
        return vectors


def make_knowledge() -> InMemoryKnowledgeStore:
    return InMemoryKnowledgeStore(
        documents=[SHIPPING_DOC, FIRMWARE_DOC, INSTALL_DOC],
        chunks=[
            KBChunk(
                id="chunk-firmware-0",
                document_id="kb-firmware",
                content="Download the latest firmware from the portal.",
                embedding=[1.0, 0.0, 0.0],
            ),
            KBChunk(
                id="chunk-install-0",
                document_id="kb-install",
                content="Mount the unit and connect the harness.",
                embedding=[0.0, 1.0, 0.0],
            ),
        ],
    )


def make_orders() -> list[OrderSnapshot]:
    jane = CustomerSnapshot(
        id="cust-1", email="jane@example.com", name="Jane Doe", total_orders=2, total_spent=412.5
    )
    risky = CustomerSnapshot(
        id="cust-2", email="max@example.com", name="Max Risk", tags=["chargeback"]
    )
    return [
        OrderSnapshot(
            id="order-1",
            number="4013",
            email="jane@example.com",
            financial_status="PAID",
            fulfillment_status="FULFILLED",
            line_items=[LineItem(title="Digital Gauge Kit", quantity=1)],
            tracking=[TrackingInfo(carrier="UPS", number="1Z999")],
            customer=jane,
        ),
        OrderSnapshot(
            id="order-2",
            number="5001",
            email="max@example.com",
            financial_status="PAID",
            fulfillment_status="UNFULFILLED",
            customer=risky,
        ),
    ]


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def settings() -> TriageSettings:
    return TriageSettings()


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def knowledge() -> InMemoryKnowledgeStore:
    return make_knowledge()


@pytest.fixture
def lookup() -> InMemoryOrderLookup:
    return InMemoryOrderLookup(make_orders())


@pytest.fixture
def pipeline(settings, llm, knowledge, lookup, clock):
    return build_in_memory_pipeline(
        settings,
        llm=llm,
        knowledge=knowledge,
        embedder=KeywordEmbedder(),
        lookup=lookup,
        clock=clock,
    )
