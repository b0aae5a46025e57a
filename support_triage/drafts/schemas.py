"""Pydantic schemas for draft generation and draft tracking."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from ..orders.schemas import CustomerProfile, OrderSnapshot
from ..retrieval.schemas import SearchResult
from ..threads.schemas import Attachment, Message, Thread


class Citation(BaseModel):
    document_id: str
    title: str
    chunk_id: str | None = None
    score: float = 0.0


class DraftInput(BaseModel):
    """Everything the generator may layer into one prompt."""

    thread_id: str
    message_id: str | None = None
    customer_message: str
    intent: str
    kb_results: list[SearchResult] = Field(default_factory=list)
    conversation_history: list[Message] = Field(default_factory=list)
    verified_order: OrderSnapshot | None = None
    attachments: list[Attachment] = Field(default_factory=list)
    customer_profile: CustomerProfile | None = None
    previous_tickets: list[Thread] = Field(default_factory=list)
    thread_created_at: datetime | None = None
    last_outbound_at: datetime | None = None


class DraftResult(BaseModel):
    success: bool
    draft: str | None = None
    raw_draft: str | None = None
    citations: list[Citation] = Field(default_factory=list)
    policy_passed: bool | None = None
    policy_reasons: list[str] = Field(default_factory=list)
    draft_id: str | None = None
    model: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    error: str | None = None


class DraftGeneration(BaseModel):
    """Durable record of one generation attempt.

    ``final_draft`` is null whenever ``policy_gate_passed`` is false; the
    unfiltered model output stays in ``raw_draft`` for human review.
    """

    id: str
    thread_id: str
    message_id: str | None = None
    intent: str
    kb_document_ids: list[str] = Field(default_factory=list)
    kb_chunk_ids: list[str] = Field(default_factory=list)
    raw_draft: str | None = None
    final_draft: str | None = None
    citations: list[Citation] = Field(default_factory=list)
    policy_gate_passed: bool | None = None
    policy_violations: list[str] = Field(default_factory=list)
    model: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    error: str | None = None
    was_sent: bool = False
    was_edited: bool = False
    edit_distance: int | None = None
    sent_at: datetime | None = None
    created_at: datetime


class MarkSentRequest(BaseModel):
    was_edited: bool = False
    edit_distance: int | None = Field(default=None, ge=0)
