"""Pydantic schemas for threads, messages and audit events."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .state_machine import ThreadState


class MessageDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MessageRole(str, Enum):
    NORMAL = "normal"
    DRAFT = "draft"
    INTERNAL = "internal"


class EventType(str, Enum):
    AUTO_TRIAGE = "AUTO_TRIAGE"
    OBSERVATION_RECORDED = "OBSERVATION_RECORDED"
    INTENT_CLARIFIED = "INTENT_CLARIFIED"
    HUMAN_INTERVENTION_STARTED = "HUMAN_INTERVENTION_STARTED"
    HUMAN_INTERVENTION_ENDED = "HUMAN_INTERVENTION_ENDED"
    MANUAL_TRANSITION = "MANUAL_TRANSITION"


class Thread(BaseModel):
    """Composite per-thread state: lifecycle, verification and observation."""

    id: str
    external_id: str | None = None
    channel: str = "email"
    subject: str = ""
    sender: str | None = None
    state: ThreadState = ThreadState.NEW
    last_intent: str | None = None
    verification_status: str | None = None
    human_handling_mode: bool = False
    human_handler: str | None = None
    human_handling_started_at: datetime | None = None
    summary: str | None = None
    version: int = 1
    created_at: datetime
    updated_at: datetime


class ThreadCreate(BaseModel):
    external_id: str | None = None
    channel: str = "email"
    subject: str = ""
    sender: str | None = None


class ThreadUpdate(BaseModel):
    """Fields changed by one transition; unset fields are left untouched."""

    state: ThreadState | None = None
    last_intent: str | None = None
    verification_status: str | None = None
    human_handling_mode: bool | None = None
    human_handler: str | None = None
    human_handling_started_at: datetime | None = None
    summary: str | None = None
    subject: str | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class Attachment(BaseModel):
    filename: str
    mime_type: str = Field(default="application/octet-stream", alias="mimeType")
    size: int = 0
    extracted_content: str | None = Field(default=None, alias="extractedContent")

    model_config = {"populate_by_name": True}


class Message(BaseModel):
    id: str
    thread_id: str
    direction: MessageDirection
    from_identifier: str | None = None
    to_identifier: str | None = None
    body_text: str = ""
    role: MessageRole = MessageRole.NORMAL
    channel_metadata: dict[str, Any] = Field(default_factory=dict)
    dedup_key: str | None = None
    message_date: datetime
    created_at: datetime


class MessageCreate(BaseModel):
    thread_id: str
    direction: MessageDirection
    from_identifier: str | None = None
    to_identifier: str | None = None
    body_text: str = ""
    role: MessageRole = MessageRole.NORMAL
    channel_metadata: dict[str, Any] = Field(default_factory=dict)
    dedup_key: str | None = None
    message_date: datetime | None = None


class Event(BaseModel):
    id: str
    thread_id: str
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class ThreadDetail(Thread):
    events: list[Event] = Field(default_factory=list)
    intents: list[dict[str, Any]] = Field(default_factory=list)
