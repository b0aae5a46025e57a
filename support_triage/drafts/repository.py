"""Persistence for draft generation records."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from ..core.clock import Clock, utcnow
from ..exceptions import DraftAlreadySentError, DraftNotFoundError
from .schemas import Citation, DraftGeneration


class DraftRepository(Protocol):
    async def record(self, generation: DraftGeneration) -> DraftGeneration: ...

    async def get(self, draft_id: str) -> Optional[DraftGeneration]: ...

    async def history(self, thread_id: str) -> List[DraftGeneration]: ...

    async def mark_sent(
        self,
        draft_id: str,
        *,
        was_edited: bool = False,
        edit_distance: Optional[int] = None,
    ) -> DraftGeneration: ...


# ---------------------------------------------------------------------------
# Postgres repository implementation


class PostgresDraftRepository:
    def __init__(self, conn: psycopg.AsyncConnection, clock: Clock = utcnow) -> None:
        self._conn = conn
        self._clock = clock

    def _cursor(self):
        return self._conn.cursor(row_factory=dict_row)

    async def record(self, generation: DraftGeneration) -> DraftGeneration:
        async with self._cursor() as cur:
            await cur.execute(
                """
                INSERT INTO draft_generations (
                    id, thread_id, message_id, intent, kb_document_ids, kb_chunk_ids,
                    raw_draft, final_draft, citations, policy_gate_passed,
                    policy_violations, model, input_tokens, output_tokens, error,
                    was_sent, was_edited, edit_distance, sent_at, created_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s,
                        %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    generation.id,
                    generation.thread_id,
                    generation.message_id,
                    generation.intent,
                    generation.kb_document_ids,
                    generation.kb_chunk_ids,
                    generation.raw_draft,
                    generation.final_draft,
                    Jsonb([c.model_dump() for c in generation.citations]),
                    generation.policy_gate_passed,
                    generation.policy_violations,
                    generation.model,
                    generation.input_tokens,
                    generation.output_tokens,
                    generation.error,
                    generation.was_sent,
                    generation.was_edited,
                    generation.edit_distance,
                    generation.sent_at,
                    generation.created_at,
                ),
            )
            row = await cur.fetchone()
        return _row_to_generation(row)

    async def get(self, draft_id: str) -> Optional[DraftGeneration]:
        async with self._cursor() as cur:
            await cur.execute("SELECT * FROM draft_generations WHERE id = %s", (draft_id,))
            row = await cur.fetchone()
        return _row_to_generation(row) if row else None

    async def history(self, thread_id: str) -> List[DraftGeneration]:
        async with self._cursor() as cur:
            await cur.execute(
                "SELECT * FROM draft_generations WHERE thread_id = %s ORDER BY created_at DESC",
                (thread_id,),
            )
            rows = await cur.fetchall()
        return [_row_to_generation(row) for row in rows]

    async def mark_sent(
        self,
        draft_id: str,
        *,
        was_edited: bool = False,
        edit_distance: Optional[int] = None,
    ) -> DraftGeneration:
        async with self._cursor() as cur:
            await cur.execute(
                """
                UPDATE draft_generations
                SET was_sent = TRUE, was_edited = %s, edit_distance = %s, sent_at = %s
                WHERE id = %s AND NOT was_sent
                RETURNING *
                """,
                (was_edited, edit_distance, self._clock(), draft_id),
            )
            row = await cur.fetchone()
        if row:
            return _row_to_generation(row)
        if await self.get(draft_id) is None:
            raise DraftNotFoundError(f"Draft {draft_id} not found")
        raise DraftAlreadySentError(f"Draft {draft_id} was already sent")


def _row_to_generation(row: Dict[str, Any]) -> DraftGeneration:
    data = dict(row)
    for key in ("id", "thread_id", "message_id"):
        if data.get(key) is not None:
            data[key] = str(data[key])
    data["citations"] = [Citation(**c) for c in data.get("citations") or []]
    data["kb_document_ids"] = [str(i) for i in data.get("kb_document_ids") or []]
    data["kb_chunk_ids"] = [str(i) for i in data.get("kb_chunk_ids") or []]
    data["policy_violations"] = list(data.get("policy_violations") or [])
    return DraftGeneration(**data)


# ---------------------------------------------------------------------------
# In-memory repository


class InMemoryDraftRepository(DraftRepository):
    def __init__(self, clock: Clock = utcnow) -> None:
        self._clock = clock
        self.generations: Dict[str, DraftGeneration] = {}

    async def record(self, generation: DraftGeneration) -> DraftGeneration:
        self.generations[generation.id] = generation.model_copy()
        return generation

    async def get(self, draft_id: str) -> Optional[DraftGeneration]:
        generation = self.generations.get(draft_id)
        return generation.model_copy() if generation else None

    async def history(self, thread_id: str) -> List[DraftGeneration]:
        matches = [g.model_copy() for g in self.generations.values() if g.thread_id == thread_id]
        matches.sort(key=lambda g: g.created_at, reverse=True)
        return matches

    async def mark_sent(
        self,
        draft_id: str,
        *,
        was_edited: bool = False,
        edit_distance: Optional[int] = None,
    ) -> DraftGeneration:
        generation = self.generations.get(draft_id)
        if generation is None:
            raise DraftNotFoundError(f"Draft {draft_id} not found")
        if generation.was_sent:
            raise DraftAlreadySentError(f"Draft {draft_id} was already sent")
        sent_at: datetime = self._clock()
        updated = generation.model_copy(
            update={
                "was_sent": True,
                "was_edited": was_edited,
                "edit_distance": edit_distance,
                "sent_at": sent_at,
            }
        )
        self.generations[draft_id] = updated
        return updated.model_copy()
