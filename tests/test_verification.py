import asyncio

import pytest
from conftest import FixedClock, make_orders

from support_triage.orders.lookup import InMemoryOrderLookup
from support_triage.orders.schemas import CustomerSnapshot, OrderSnapshot
from support_triage.verification.extractors import extract_email, extract_order_number
from support_triage.verification.flags import check_negative_flags
from support_triage.verification.gate import VerificationGate
from support_triage.verification.prompts import FLAGGED_NOTE, verification_prompt
from support_triage.verification.repository import InMemoryVerificationRepository
from support_triage.verification.schemas import VerificationStatus


@pytest.fixture
def repository():
    return InMemoryVerificationRepository(FixedClock())


@pytest.fixture
def gate(repository, lookup):
    return VerificationGate(repository, lookup)


# ---------------------------------------------------------------------------
# Extraction


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Order #4013 hasn't arrived", "4013"),
        ("my order number 55120 please", "55120"),
        ("Order no. 7781", "7781"),
        ("ref SW-1234 from the invoice", "1234"),
        ("SWA 98765", "98765"),
        ("I bought it in 2024", None),
        ("#12 is too short", None),
        ("", None),
    ],
)
def test_extract_order_number(text, expected):
    assert extract_order_number(text) == expected


def test_extract_email_lowercases():
    assert extract_email("Reach me at Jane.Doe@Example.COM thanks") == "jane.doe@example.com"
    assert extract_email("no address here") is None


# ---------------------------------------------------------------------------
# Flags


def test_negative_flags_on_customer_and_order():
    customer = CustomerSnapshot(
        id="c", tags=["VIP", "Chargeback-2024"], note="Was abusive on the phone"
    )
    order = OrderSnapshot(id="o", number="1", tags=["fraud_risk"], note="fine")
    assert check_negative_flags(customer, order) == [
        "customer_tag:Chargeback-2024",
        "customer_note:abusive",
        "order_tag:fraud_risk",
    ]


def test_clean_records_have_no_flags():
    assert check_negative_flags(CustomerSnapshot(id="c", tags=["vip"]), None) == []
    assert check_negative_flags(None, None) == []


# ---------------------------------------------------------------------------
# Gate


async def test_pending_without_order_number(gate, repository):
    result = await gate.verify("t-1", "Jane <jane@example.com>", "Where is my stuff?")
    assert result.status is VerificationStatus.PENDING
    assert result.email == "jane@example.com"
    assert result.message == "Order number required for verification"
    assert result.blocks_reply
    assert (await repository.latest("t-1")).status is VerificationStatus.PENDING


async def test_verified_order(gate):
    result = await gate.verify("t-1", "jane@example.com", "Order #4013 status?")
    assert result.status is VerificationStatus.VERIFIED
    assert result.order.number == "4013"
    assert result.customer.id == "cust-1"
    assert not result.blocks_reply


async def test_sender_mismatch_does_not_block(gate):
    result = await gate.verify("t-1", "other@example.com", "Order #4013 status?")
    assert result.status is VerificationStatus.VERIFIED


async def test_flagged_customer(gate):
    result = await gate.verify("t-1", "max@example.com", "Order #5001?")
    assert result.status is VerificationStatus.FLAGGED
    assert result.flags == ["customer_tag:chargeback"]
    assert result.message == "Customer flagged: customer_tag:chargeback"


async def test_not_found(gate):
    result = await gate.verify("t-1", "jane@example.com", "Order #9999?")
    assert result.status is VerificationStatus.NOT_FOUND
    assert result.message == "Order #9999 not found"


async def test_follow_up_reuses_verified_order_number(gate, lookup):
    await gate.verify("t-1", "jane@example.com", "Order #4013 status?")
    result = await gate.verify("t-1", "jane@example.com", "Any update?")
    assert result.status is VerificationStatus.VERIFIED
    assert result.order_number == "4013"
    assert lookup.order_requests == ["4013", "4013"]


async def test_not_found_number_is_not_reused(gate):
    await gate.verify("t-1", "jane@example.com", "Order #9999?")
    result = await gate.verify("t-1", "jane@example.com", "Any update?")
    assert result.status is VerificationStatus.PENDING


async def test_attachment_order_number_is_used_when_text_has_none(gate):
    result = await gate.verify(
        "t-1", "jane@example.com", "See attached invoice", attachment_order_number="4013"
    )
    assert result.status is VerificationStatus.VERIFIED


async def test_without_lookup_auto_verifies(repository):
    result = await VerificationGate(repository).verify("t-1", None, "Order #4013")
    assert result.status is VerificationStatus.VERIFIED
    assert result.order is None
    assert result.message == "Order lookup not configured - auto-verified"


class _SlowLookup(InMemoryOrderLookup):
    async def get_order_by_number(self, number):
        await asyncio.sleep(0.5)
        return await super().get_order_by_number(number)


class _BrokenLookup(InMemoryOrderLookup):
    async def get_order_by_number(self, number):
        raise ConnectionError("store API down")


async def test_lookup_timeout_is_not_found(repository):
    gate = VerificationGate(repository, _SlowLookup(make_orders()), timeout_seconds=0.01)
    result = await gate.verify("t-1", None, "Order #4013")
    assert result.status is VerificationStatus.NOT_FOUND
    assert result.message == "Order lookup timed out"


async def test_lookup_failure_is_not_found(repository):
    gate = VerificationGate(repository, _BrokenLookup())
    result = await gate.verify("t-1", None, "Order #4013")
    assert result.status is VerificationStatus.NOT_FOUND
    assert result.message == "Order lookup failed: store API down"


# ---------------------------------------------------------------------------
# Prompts


def test_verification_prompts():
    assert "order number" in verification_prompt(VerificationStatus.PENDING, "– Lina")
    assert verification_prompt(VerificationStatus.PENDING, "– Lina").endswith("– Lina")
    assert "couldn't find that order" in verification_prompt(
        VerificationStatus.NOT_FOUND, "– Lina"
    )
    assert verification_prompt(VerificationStatus.FLAGGED, "– Lina") == FLAGGED_NOTE
