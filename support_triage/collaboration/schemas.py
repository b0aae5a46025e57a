"""Pydantic schemas for human intervention and observation mode."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from ..threads.schemas import MessageDirection


class SignalType(str, Enum):
    DIRECT_EMAIL = "direct_email"
    CC_SUPPORT = "cc_support"
    CRM_UPDATE = "crm_update"
    ADMIN_TAKEOVER = "admin_takeover"


class ResolutionType(str, Enum):
    RESOLVED = "resolved"
    ESCALATED_FURTHER = "escalated_further"
    RETURNED_TO_AGENT = "returned_to_agent"
    TRANSFERRED = "transferred"


class OutboundMessage(BaseModel):
    """An outbound message reported by a channel adapter."""

    from_identifier: str
    to_identifier: str | None = None
    body_text: str = ""
    channel: str = "email"
    draft_id: str | None = None
    generated_by_agent: bool = False
    cc_support: bool = False
    message_id: str | None = None
    sent_at: datetime | None = None


class InterventionSignal(BaseModel):
    type: SignalType
    thread_id: str
    handler: str
    channel: str = "email"
    timestamp: datetime
    content: str | None = None


class ObservedMessage(BaseModel):
    direction: MessageDirection
    sender: str
    recipient: str | None = None
    content: str
    timestamp: datetime


class ObservationResolution(BaseModel):
    resolution_type: ResolutionType
    summary: str
    questions_asked: list[str] = Field(default_factory=list)
    troubleshooting_steps: list[str] = Field(default_factory=list)
    new_information: list[str] = Field(default_factory=list)


class Observation(BaseModel):
    id: str
    thread_id: str
    handler: str
    channel: str
    signal_type: SignalType
    started_at: datetime
    ended_at: datetime | None = None
    observed_messages: list[ObservedMessage] = Field(default_factory=list)
    resolution: ObservationResolution | None = None

    @property
    def is_active(self) -> bool:
        return self.ended_at is None


class TakeoverRequest(BaseModel):
    handler: str
    channel: str = "email"
    content: str | None = None
