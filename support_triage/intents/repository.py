"""Storage for the runtime-editable intent catalog."""

from __future__ import annotations

from typing import Iterable, List, Optional, Protocol

import psycopg
from psycopg.rows import dict_row

from .schemas import IntentDefinition
from .taxonomy import DEFAULT_INTENTS


class IntentRepository(Protocol):
    async def list_active_intents(self) -> List[IntentDefinition]: ...


class PostgresIntentRepository:
    def __init__(self, conn: psycopg.AsyncConnection) -> None:
        self._conn = conn

    async def list_active_intents(self) -> List[IntentDefinition]:
        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                SELECT slug, name, description, category, priority, examples,
                       requires_verification, auto_escalate, is_active
                FROM intents
                WHERE is_active
                ORDER BY priority DESC, slug
                """
            )
            rows = await cur.fetchall()
        return [_row_to_intent(row) for row in rows]


def _row_to_intent(row: dict) -> IntentDefinition:
    data = dict(row)
    data["description"] = data.get("description") or ""
    data["examples"] = list(data.get("examples") or [])
    return IntentDefinition(**data)


class InMemoryIntentRepository(IntentRepository):
    def __init__(self, intents: Optional[Iterable[IntentDefinition]] = None) -> None:
        source = DEFAULT_INTENTS if intents is None else intents
        self.intents: List[IntentDefinition] = [i.model_copy() for i in source]

    async def list_active_intents(self) -> List[IntentDefinition]:
        active = [i.model_copy() for i in self.intents if i.is_active]
        active.sort(key=lambda i: (-i.priority, i.slug))
        return active
