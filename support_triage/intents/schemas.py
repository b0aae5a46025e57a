"""Pydantic schemas for intents and classification output."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class IntentDefinition(BaseModel):
    slug: str
    name: str
    description: str = ""
    category: str = "support"
    priority: int = 0
    examples: list[str] = Field(default_factory=list)
    requires_verification: bool = False
    auto_escalate: bool = False
    is_active: bool = True


class IntentMatch(BaseModel):
    intent: str
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str | None = None


class ClassificationResult(BaseModel):
    """Ordered intents (highest confidence first) plus routing flags."""

    intents: list[IntentMatch] = Field(min_length=1)
    primary_intent: str
    requires_verification: bool = False
    auto_escalate: bool = False
    source: Literal["llm", "keyword", "fallback"] = "llm"

    @property
    def confidence(self) -> float:
        return self.intents[0].confidence


class ThreadIntent(BaseModel):
    thread_id: str
    intent: str
    confidence: float
    detected_from_message_id: str | None = None
    is_resolved: bool = False
    detected_at: datetime
    resolved_at: datetime | None = None
