"""Verification gate for protected intents.

Each inbound message re-evaluates the thread's verification status:

* no order number anywhere -> ``pending``
* order number that the store cannot resolve -> ``not_found``
* order found but customer/order carries a risk flag -> ``flagged``
* otherwise -> ``verified`` with the order snapshot

An order number seen on an earlier message is reused once the thread has
been verified or flagged, so follow-ups do not have to repeat it. The gate
only reads from the store backend and records its outcome.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..orders.lookup import OrderLookup
from ..orders.schemas import OrderSnapshot
from .extractors import extract_email, extract_order_number
from .flags import check_negative_flags
from .repository import VerificationRepository
from .schemas import VerificationResult, VerificationStatus

logger = logging.getLogger(__name__)

_REUSABLE_STATUSES = {VerificationStatus.VERIFIED, VerificationStatus.FLAGGED}


class VerificationGate:
    def __init__(
        self,
        repository: VerificationRepository,
        lookup: Optional[OrderLookup] = None,
        *,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._repository = repository
        self._lookup = lookup
        self._timeout = timeout_seconds

    async def verify(
        self,
        thread_id: str,
        sender: Optional[str],
        message_text: str,
        *,
        attachment_order_number: Optional[str] = None,
    ) -> VerificationResult:
        email = _sender_email(sender) or extract_email(message_text)
        order_number = extract_order_number(message_text) or attachment_order_number
        if order_number is None:
            previous = await self._repository.latest(thread_id)
            if previous and previous.status in _REUSABLE_STATUSES and previous.order_number:
                order_number = previous.order_number

        if order_number is None:
            return await self._record(
                thread_id,
                VerificationResult(
                    status=VerificationStatus.PENDING,
                    email=email,
                    message="Order number required for verification",
                ),
            )

        if self._lookup is None:
            logger.warning(
                "Order lookup not configured; accepting order %s for thread %s unchecked",
                order_number,
                thread_id,
            )
            return await self._record(
                thread_id,
                VerificationResult(
                    status=VerificationStatus.VERIFIED,
                    order_number=order_number,
                    email=email,
                    message="Order lookup not configured - auto-verified",
                ),
            )

        try:
            order = await asyncio.wait_for(
                self._lookup.get_order_by_number(order_number), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Order lookup for %s timed out", order_number)
            return await self._record(
                thread_id,
                _not_found(order_number, email, "Order lookup timed out"),
            )
        except Exception as exc:
            logger.warning("Order lookup for %s failed: %s", order_number, exc)
            return await self._record(
                thread_id,
                _not_found(order_number, email, f"Order lookup failed: {exc}"),
            )

        if order is None:
            return await self._record(
                thread_id,
                _not_found(order_number, email, f"Order #{order_number} not found"),
            )

        return await self._record(thread_id, _evaluate_order(order, order_number, email))

    async def _record(self, thread_id: str, result: VerificationResult) -> VerificationResult:
        await self._repository.save(thread_id, result)
        logger.info(
            "Verification for thread %s: %s (%s)", thread_id, result.status.value, result.message
        )
        return result


def _evaluate_order(
    order: OrderSnapshot, order_number: str, email: Optional[str]
) -> VerificationResult:
    customer = order.customer
    flags = check_negative_flags(customer, order)
    if flags:
        return VerificationResult(
            status=VerificationStatus.FLAGGED,
            order_number=order_number,
            email=email,
            order=order,
            customer=customer,
            flags=flags,
            message=f"Customer flagged: {', '.join(flags)}",
        )

    on_file = (customer.email if customer and customer.email else order.email) or ""
    if email and on_file and email.lower() != on_file.lower():
        # Different inboxes are common; the mismatch is logged, not blocking.
        logger.warning(
            "Sender %s does not match %s on order %s", email, on_file, order_number
        )

    return VerificationResult(
        status=VerificationStatus.VERIFIED,
        order_number=order_number,
        email=email,
        order=order,
        customer=customer,
        message="Customer verified",
    )


def _not_found(order_number: str, email: Optional[str], message: str) -> VerificationResult:
    return VerificationResult(
        status=VerificationStatus.NOT_FOUND,
        order_number=order_number,
        email=email,
        message=message,
    )


def _sender_email(sender: Optional[str]) -> Optional[str]:
    if not sender:
        return None
    return extract_email(sender)
