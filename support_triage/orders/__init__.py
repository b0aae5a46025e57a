"""Order and customer lookup collaborator contract."""

from .lookup import InMemoryOrderLookup, OrderLookup
from .schemas import CustomerProfile, CustomerSnapshot, LineItem, OrderSnapshot, TrackingInfo

__all__ = [
    "CustomerProfile",
    "CustomerSnapshot",
    "InMemoryOrderLookup",
    "LineItem",
    "OrderLookup",
    "OrderSnapshot",
    "TrackingInfo",
]
