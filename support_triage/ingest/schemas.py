"""Channel-neutral request/response contract for the triage pipeline."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from ..threads.schemas import Attachment
from ..threads.state_machine import Action, ThreadState


class IngestRequest(BaseModel):
    """One inbound message normalised by a channel adapter.

    ``metadata["message_id"]`` is the channel-native message id used to make
    reprocessing a no-op.
    """

    channel: str = "email"
    external_id: str | None = None
    from_identifier: str | None = None
    to_identifier: str | None = None
    subject: str = ""
    body_text: str
    attachments: list[Attachment] = Field(default_factory=list)
    message_date: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def dedup_key(self) -> str | None:
        value = self.metadata.get("message_id")
        return str(value) if value else None


class IngestResult(BaseModel):
    thread_id: str
    message_id: str | None = None
    intent: str
    confidence: float
    action: Action
    draft: str | None = None
    state: ThreadState
    previous_state: ThreadState
    intents: list[str] = Field(default_factory=list)
    draft_id: str | None = None
    verification_status: str | None = None
    human_handling: bool = False
    duplicate: bool = False
    auto_send_eligible: bool = False


class ManualTransitionRequest(BaseModel):
    state: ThreadState
    reason: str = ""
    actor: str | None = None
