"""Normalized order/customer snapshots returned by the store backend."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class TrackingInfo(BaseModel):
    carrier: str | None = None
    number: str | None = None
    url: str | None = None


class LineItem(BaseModel):
    title: str
    quantity: int = 1
    sku: str | None = None


class CustomerSnapshot(BaseModel):
    id: str
    email: str | None = None
    name: str | None = None
    tags: list[str] = Field(default_factory=list)
    note: str | None = None
    total_orders: int = 0
    total_spent: float = 0.0


class OrderSnapshot(BaseModel):
    id: str
    number: str
    email: str | None = None
    financial_status: str | None = None
    fulfillment_status: str | None = None
    created_at: datetime | None = None
    line_items: list[LineItem] = Field(default_factory=list)
    tracking: list[TrackingInfo] = Field(default_factory=list)
    shipping_city: str | None = None
    shipping_state: str | None = None
    shipping_country: str | None = None
    tags: list[str] = Field(default_factory=list)
    note: str | None = None
    customer: CustomerSnapshot | None = None

    @property
    def is_fulfilled(self) -> bool:
        return (self.fulfillment_status or "").upper() == "FULFILLED"


class CustomerProfile(BaseModel):
    """Customer history used to personalise drafts."""

    customer: CustomerSnapshot
    recent_orders: list[OrderSnapshot] = Field(default_factory=list)
    likely_product: str | None = None
