"""Editable agent instructions and the TTL cache in front of them.

Instructions are stored as named sections (``tone``, ``safety``,
``intent_orders`` ...). General sections make up the system prompt; sections
prefixed with ``intent_`` are appended only when the classified intent maps
to them.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional, Protocol

import psycopg
from psycopg.rows import dict_row
from pydantic import BaseModel

from ..intents import taxonomy
from ..settings import TriageSettings

logger = logging.getLogger(__name__)


class InstructionSection(BaseModel):
    section_key: str
    title: str
    content: str
    display_order: int = 0


INTENT_SECTIONS: Dict[str, str] = {
    taxonomy.PRODUCT_SUPPORT: "intent_product_support",
    taxonomy.INSTALL_GUIDANCE: "intent_product_support",
    taxonomy.FUNCTIONALITY_BUG: "intent_product_support",
    taxonomy.FIRMWARE_UPDATE_REQUEST: "intent_firmware",
    taxonomy.FIRMWARE_ACCESS_ISSUE: "intent_firmware",
    taxonomy.ORDER_STATUS: "intent_orders",
    taxonomy.ORDER_CHANGE_REQUEST: "intent_orders",
    taxonomy.MISSING_DAMAGED_ITEM: "intent_orders",
    taxonomy.WRONG_ITEM_RECEIVED: "intent_orders",
    taxonomy.RETURN_REFUND_REQUEST: "intent_returns",
    taxonomy.COMPATIBILITY_QUESTION: "intent_presale",
    taxonomy.PART_IDENTIFICATION: "intent_presale",
    taxonomy.CHARGEBACK_THREAT: "intent_escalation",
    taxonomy.LEGAL_SAFETY_RISK: "intent_escalation",
    taxonomy.THANK_YOU_CLOSE: "intent_closing",
    taxonomy.FOLLOW_UP_NO_NEW_INFO: "intent_followup",
    taxonomy.VENDOR_SPAM: "intent_vendor_spam",
}


def fallback_instructions(settings: TriageSettings) -> str:
    """Built-in system prompt used when no instruction sections are stored."""

    return f"""You are {settings.agent_name}, a helpful customer support agent for {settings.company_name}.

## Truthfulness
- Never make up information that isn't in the provided knowledge base, order data or conversation
- If you don't have specific information, say so clearly
- Admit uncertainty rather than guessing
- Don't promise to "check on" things when you already have the data - just provide it

## Core Safety Rules
1. Never promise refunds, replacements, or specific shipping times
2. Never speculate about order status without verified data
3. Never provide legal advice or safety claims
4. Never discuss competitor products
5. Never say "I'll check on that" when data is already provided

## Tone & Style
- Friendly but professional
- Concise (2-4 paragraphs max)
- Lead with the answer, then explain
- Sign off with "{settings.signature}"

## Critical Behaviors
- Never tell the customer to "reach out to support" - you are support
- Only ask for information that will actually help resolve the issue
- Never deflect to another channel without escalating; if a human is needed, say a team member will follow up
"""


class InstructionRepository(Protocol):
    async def list_sections(self) -> List[InstructionSection]: ...


class PostgresInstructionRepository:
    def __init__(self, conn: psycopg.AsyncConnection) -> None:
        self._conn = conn

    async def list_sections(self) -> List[InstructionSection]:
        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                SELECT section_key, title, content, display_order
                FROM agent_instructions
                ORDER BY display_order, section_key
                """
            )
            rows = await cur.fetchall()
        return [InstructionSection(**row) for row in rows]


class InMemoryInstructionRepository(InstructionRepository):
    def __init__(self, sections: Optional[List[InstructionSection]] = None) -> None:
        self.sections: List[InstructionSection] = list(sections or [])
        self.loads = 0

    async def list_sections(self) -> List[InstructionSection]:
        self.loads += 1
        return sorted(self.sections, key=lambda s: (s.display_order, s.section_key))


class InstructionCache:
    """TTL cache over the instruction store.

    ``clock`` returns monotonic seconds; tests pass a controllable counter.
    A failed reload keeps serving the previous sections.
    """

    def __init__(
        self,
        repository: InstructionRepository,
        *,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._repository = repository
        self._ttl = ttl_seconds
        self._clock = clock
        self._sections: Optional[Dict[str, InstructionSection]] = None
        self._loaded_at: float = 0.0

    def _expired(self) -> bool:
        return self._sections is None or self._clock() - self._loaded_at >= self._ttl

    async def get(self) -> Dict[str, InstructionSection]:
        if self._expired():
            try:
                sections = await self._repository.list_sections()
            except Exception as exc:
                logger.warning("Loading agent instructions failed: %s", exc)
                return dict(self._sections or {})
            self._sections = {section.section_key: section for section in sections}
            self._loaded_at = self._clock()
        return dict(self._sections or {})

    def invalidate(self) -> None:
        self._sections = None


class SystemPromptBuilder:
    """Compose the drafting system prompt from cached instruction sections."""

    def __init__(self, cache: InstructionCache, settings: TriageSettings) -> None:
        self._cache = cache
        self._settings = settings

    async def build(self, intent: Optional[str] = None) -> str:
        sections = await self._cache.get()
        general = [s for s in sections.values() if not s.section_key.startswith("intent_")]
        if general:
            general.sort(key=lambda s: (s.display_order, s.section_key))
            prompt = (
                f"You are {self._settings.agent_name}, a helpful customer support agent "
                f"for {self._settings.company_name}.\n\n"
            )
            prompt += "".join(f"## {s.title}\n{s.content}\n\n" for s in general)
        else:
            prompt = fallback_instructions(self._settings)

        guidance = self._intent_guidance(sections, intent)
        if guidance:
            prompt += f"\n## Intent-Specific Guidance\n{guidance}\n"
        return prompt

    @staticmethod
    def _intent_guidance(
        sections: Dict[str, InstructionSection], intent: Optional[str]
    ) -> str:
        key = INTENT_SECTIONS.get(intent or "")
        section = sections.get(key) if key else None
        return section.content if section else ""
