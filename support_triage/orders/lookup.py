"""Lookup contract for the e-commerce backend."""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Protocol

from .schemas import CustomerProfile, OrderSnapshot


class OrderLookup(Protocol):
    async def get_order_by_number(self, number: str) -> Optional[OrderSnapshot]: ...

    async def get_customer_profile(self, email: str) -> Optional[CustomerProfile]: ...


class InMemoryOrderLookup(OrderLookup):
    """Dictionary-backed lookup for tests and local runs."""

    def __init__(
        self,
        orders: Optional[Iterable[OrderSnapshot]] = None,
        profiles: Optional[Iterable[CustomerProfile]] = None,
    ) -> None:
        self._orders: Dict[str, OrderSnapshot] = {
            _normalise_number(order.number): order for order in orders or []
        }
        self._profiles: Dict[str, CustomerProfile] = {
            (profile.customer.email or "").lower(): profile for profile in profiles or []
        }
        self.order_requests: list[str] = []

    async def get_order_by_number(self, number: str) -> Optional[OrderSnapshot]:
        self.order_requests.append(number)
        return self._orders.get(_normalise_number(number))

    async def get_customer_profile(self, email: str) -> Optional[CustomerProfile]:
        return self._profiles.get(email.lower())


def _normalise_number(number: str) -> str:
    return number.lstrip("#").strip()
