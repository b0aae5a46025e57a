"""Pydantic schemas for verification outcomes."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from ..orders.schemas import CustomerSnapshot, OrderSnapshot


class VerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    FLAGGED = "flagged"
    NOT_FOUND = "not_found"


class VerificationResult(BaseModel):
    status: VerificationStatus
    order_number: str | None = None
    email: str | None = None
    order: OrderSnapshot | None = None
    customer: CustomerSnapshot | None = None
    flags: list[str] = Field(default_factory=list)
    message: str = ""

    @property
    def blocks_reply(self) -> bool:
        return self.status is not VerificationStatus.VERIFIED


class VerificationRecord(BaseModel):
    id: str
    thread_id: str
    status: VerificationStatus
    order_number: str | None = None
    email: str | None = None
    order_id: str | None = None
    customer_id: str | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    flags: list[str] = Field(default_factory=list)
    message: str = ""
    created_at: datetime
