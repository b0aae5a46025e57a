"""Persistence for threads, messages, audit events and intent assignments."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol
from uuid import uuid4

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from ..core.clock import Clock, utcnow
from ..exceptions import ConcurrentUpdateError, ThreadNotFoundError
from ..intents.schemas import ThreadIntent
from . import schemas


class ThreadRepository(Protocol):
    """Abstraction for persisting thread artefacts."""

    async def get_thread(self, thread_id: str) -> Optional[schemas.Thread]: ...

    async def get_thread_by_external_id(self, external_id: str) -> Optional[schemas.Thread]: ...

    async def create_thread(self, payload: schemas.ThreadCreate) -> schemas.Thread: ...

    async def apply_transition(
        self, thread_id: str, expected_version: int, update: schemas.ThreadUpdate
    ) -> schemas.Thread: ...

    async def list_threads_for_sender(
        self, sender: str, *, exclude_thread_id: Optional[str] = None, limit: int = 5
    ) -> List[schemas.Thread]: ...

    async def add_message(self, payload: schemas.MessageCreate) -> Optional[schemas.Message]: ...

    async def find_message(self, thread_id: str, dedup_key: str) -> Optional[schemas.Message]: ...

    async def delete_message(self, message_id: str) -> None: ...

    async def list_messages(self, thread_id: str) -> List[schemas.Message]: ...

    async def append_event(
        self, thread_id: str, event_type: str, payload: Dict[str, Any]
    ) -> schemas.Event: ...

    async def list_events(self, thread_id: str) -> List[schemas.Event]: ...

    async def list_thread_intents(
        self, thread_id: str, *, include_resolved: bool = False
    ) -> List[ThreadIntent]: ...

    async def upsert_thread_intent(self, intent: ThreadIntent) -> ThreadIntent: ...

    async def delete_thread_intent(self, thread_id: str, intent: str) -> None: ...


# ---------------------------------------------------------------------------
# Postgres repository implementation


_THREAD_COLUMNS = """
    id, external_id, channel, subject, sender, state, last_intent,
    verification_status, human_handling_mode, human_handler,
    human_handling_started_at, summary, version, created_at, updated_at
"""


class PostgresThreadRepository:
    """PostgreSQL implementation of :class:`ThreadRepository`."""

    def __init__(self, conn: psycopg.AsyncConnection, clock: Clock = utcnow) -> None:
        self._conn = conn
        self._clock = clock

    def _cursor(self):
        return self._conn.cursor(row_factory=dict_row)

    # Threads -----------------------------------------------------------------
    async def get_thread(self, thread_id: str) -> Optional[schemas.Thread]:
        async with self._cursor() as cur:
            await cur.execute(
                f"SELECT {_THREAD_COLUMNS} FROM support_threads WHERE id = %s",
                (thread_id,),
            )
            row = await cur.fetchone()
        return _row_to_thread(row) if row else None

    async def get_thread_by_external_id(self, external_id: str) -> Optional[schemas.Thread]:
        async with self._cursor() as cur:
            await cur.execute(
                f"SELECT {_THREAD_COLUMNS} FROM support_threads WHERE external_id = %s",
                (external_id,),
            )
            row = await cur.fetchone()
        return _row_to_thread(row) if row else None

    async def create_thread(self, payload: schemas.ThreadCreate) -> schemas.Thread:
        now = self._clock()
        async with self._cursor() as cur:
            await cur.execute(
                f"""
                INSERT INTO support_threads (id, external_id, channel, subject, sender,
                                             state, version, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, 'NEW', 1, %s, %s)
                ON CONFLICT (external_id) DO UPDATE SET external_id = EXCLUDED.external_id
                RETURNING {_THREAD_COLUMNS}
                """,
                (
                    str(uuid4()),
                    payload.external_id,
                    payload.channel,
                    payload.subject,
                    payload.sender,
                    now,
                    now,
                ),
            )
            row = await cur.fetchone()
        return _row_to_thread(row)

    async def apply_transition(
        self, thread_id: str, expected_version: int, update: schemas.ThreadUpdate
    ) -> schemas.Thread:
        changes = update.changes()
        if "state" in changes and changes["state"] is not None:
            changes["state"] = changes["state"].value
        assignments = ", ".join(f"{column} = %s" for column in changes)
        params: list[Any] = list(changes.values())
        set_clause = f"{assignments}, " if assignments else ""
        async with self._cursor() as cur:
            await cur.execute(
                f"""
                UPDATE support_threads
                SET {set_clause}version = version + 1, updated_at = %s
                WHERE id = %s AND version = %s
                RETURNING {_THREAD_COLUMNS}
                """,
                (*params, self._clock(), thread_id, expected_version),
            )
            row = await cur.fetchone()
        if row:
            return _row_to_thread(row)
        if await self.get_thread(thread_id) is None:
            raise ThreadNotFoundError(f"Thread {thread_id} not found")
        raise ConcurrentUpdateError(
            f"Thread {thread_id} changed since version {expected_version}"
        )

    async def list_threads_for_sender(
        self, sender: str, *, exclude_thread_id: Optional[str] = None, limit: int = 5
    ) -> List[schemas.Thread]:
        async with self._cursor() as cur:
            await cur.execute(
                f"""
                SELECT {_THREAD_COLUMNS} FROM support_threads
                WHERE lower(sender) = lower(%s) AND (%s::uuid IS NULL OR id <> %s::uuid)
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (sender, exclude_thread_id, exclude_thread_id, limit),
            )
            rows = await cur.fetchall()
        return [_row_to_thread(row) for row in rows]

    # Messages ----------------------------------------------------------------
    async def add_message(self, payload: schemas.MessageCreate) -> Optional[schemas.Message]:
        now = self._clock()
        async with self._cursor() as cur:
            await cur.execute(
                """
                INSERT INTO support_messages (id, thread_id, direction, from_identifier,
                                              to_identifier, body_text, role, channel_metadata,
                                              dedup_key, message_date, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (thread_id, dedup_key) DO NOTHING
                RETURNING *
                """,
                (
                    str(uuid4()),
                    payload.thread_id,
                    payload.direction.value,
                    payload.from_identifier,
                    payload.to_identifier,
                    payload.body_text,
                    payload.role.value,
                    Jsonb(payload.channel_metadata),
                    payload.dedup_key,
                    payload.message_date or now,
                    now,
                ),
            )
            row = await cur.fetchone()
        return _row_to_message(row) if row else None

    async def find_message(self, thread_id: str, dedup_key: str) -> Optional[schemas.Message]:
        async with self._cursor() as cur:
            await cur.execute(
                "SELECT * FROM support_messages WHERE thread_id = %s AND dedup_key = %s",
                (thread_id, dedup_key),
            )
            row = await cur.fetchone()
        return _row_to_message(row) if row else None

    async def delete_message(self, message_id: str) -> None:
        async with self._cursor() as cur:
            await cur.execute("DELETE FROM support_messages WHERE id = %s", (message_id,))

    async def list_messages(self, thread_id: str) -> List[schemas.Message]:
        async with self._cursor() as cur:
            await cur.execute(
                """
                SELECT * FROM support_messages
                WHERE thread_id = %s
                ORDER BY message_date ASC, created_at ASC
                """,
                (thread_id,),
            )
            rows = await cur.fetchall()
        return [_row_to_message(row) for row in rows]

    # Events ------------------------------------------------------------------
    async def append_event(
        self, thread_id: str, event_type: str, payload: Dict[str, Any]
    ) -> schemas.Event:
        async with self._cursor() as cur:
            await cur.execute(
                """
                INSERT INTO thread_events (id, thread_id, type, payload, created_at)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING *
                """,
                (str(uuid4()), thread_id, event_type, Jsonb(payload), self._clock()),
            )
            row = await cur.fetchone()
        return _row_to_event(row)

    async def list_events(self, thread_id: str) -> List[schemas.Event]:
        async with self._cursor() as cur:
            await cur.execute(
                "SELECT * FROM thread_events WHERE thread_id = %s ORDER BY created_at ASC",
                (thread_id,),
            )
            rows = await cur.fetchall()
        return [_row_to_event(row) for row in rows]

    # Intent assignments ------------------------------------------------------
    async def list_thread_intents(
        self, thread_id: str, *, include_resolved: bool = False
    ) -> List[ThreadIntent]:
        async with self._cursor() as cur:
            await cur.execute(
                """
                SELECT thread_id, intent, confidence, detected_from_message_id,
                       is_resolved, detected_at, resolved_at
                FROM thread_intents
                WHERE thread_id = %s AND (%s OR NOT is_resolved)
                ORDER BY detected_at ASC
                """,
                (thread_id, include_resolved),
            )
            rows = await cur.fetchall()
        return [_row_to_thread_intent(row) for row in rows]

    async def upsert_thread_intent(self, intent: ThreadIntent) -> ThreadIntent:
        async with self._cursor() as cur:
            await cur.execute(
                """
                INSERT INTO thread_intents (thread_id, intent, confidence,
                                            detected_from_message_id, is_resolved,
                                            detected_at, resolved_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (thread_id, intent) DO UPDATE SET
                    confidence = EXCLUDED.confidence,
                    detected_from_message_id = EXCLUDED.detected_from_message_id,
                    is_resolved = EXCLUDED.is_resolved,
                    resolved_at = EXCLUDED.resolved_at
                RETURNING thread_id, intent, confidence, detected_from_message_id,
                          is_resolved, detected_at, resolved_at
                """,
                (
                    intent.thread_id,
                    intent.intent,
                    intent.confidence,
                    intent.detected_from_message_id,
                    intent.is_resolved,
                    intent.detected_at,
                    intent.resolved_at,
                ),
            )
            row = await cur.fetchone()
        return _row_to_thread_intent(row)

    async def delete_thread_intent(self, thread_id: str, intent: str) -> None:
        async with self._cursor() as cur:
            await cur.execute(
                "DELETE FROM thread_intents WHERE thread_id = %s AND intent = %s",
                (thread_id, intent),
            )


def _str_or_none(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def _row_to_thread(row: Dict[str, Any]) -> schemas.Thread:
    data = dict(row)
    data["id"] = str(data["id"])
    return schemas.Thread(**data)


def _row_to_message(row: Dict[str, Any]) -> schemas.Message:
    data = dict(row)
    data["id"] = str(data["id"])
    data["thread_id"] = str(data["thread_id"])
    data["channel_metadata"] = data.get("channel_metadata") or {}
    return schemas.Message(**data)


def _row_to_event(row: Dict[str, Any]) -> schemas.Event:
    return schemas.Event(
        id=str(row["id"]),
        thread_id=str(row["thread_id"]),
        type=row["type"],
        payload=row.get("payload") or {},
        created_at=row["created_at"],
    )


def _row_to_thread_intent(row: Dict[str, Any]) -> ThreadIntent:
    data = dict(row)
    data["thread_id"] = str(data["thread_id"])
    data["detected_from_message_id"] = _str_or_none(data.get("detected_from_message_id"))
    return ThreadIntent(**data)


# ---------------------------------------------------------------------------
# In-memory repository


class InMemoryThreadRepository(ThreadRepository):
    def __init__(self, clock: Clock = utcnow) -> None:
        self._clock = clock
        self._threads: Dict[str, schemas.Thread] = {}
        self._messages: Dict[str, List[schemas.Message]] = {}
        self._events: Dict[str, List[schemas.Event]] = {}
        self._intents: Dict[str, Dict[str, ThreadIntent]] = {}

    async def get_thread(self, thread_id: str) -> Optional[schemas.Thread]:
        thread = self._threads.get(thread_id)
        return thread.model_copy() if thread else None

    async def get_thread_by_external_id(self, external_id: str) -> Optional[schemas.Thread]:
        for thread in self._threads.values():
            if thread.external_id == external_id:
                return thread.model_copy()
        return None

    async def create_thread(self, payload: schemas.ThreadCreate) -> schemas.Thread:
        if payload.external_id:
            existing = await self.get_thread_by_external_id(payload.external_id)
            if existing:
                return existing
        now = self._clock()
        thread = schemas.Thread(
            id=str(uuid4()),
            external_id=payload.external_id,
            channel=payload.channel,
            subject=payload.subject,
            sender=payload.sender,
            created_at=now,
            updated_at=now,
        )
        self._threads[thread.id] = thread
        return thread.model_copy()

    async def apply_transition(
        self, thread_id: str, expected_version: int, update: schemas.ThreadUpdate
    ) -> schemas.Thread:
        current = self._threads.get(thread_id)
        if current is None:
            raise ThreadNotFoundError(f"Thread {thread_id} not found")
        if current.version != expected_version:
            raise ConcurrentUpdateError(
                f"Thread {thread_id} changed since version {expected_version}"
            )
        updated = current.model_copy(
            update={
                **update.changes(),
                "version": current.version + 1,
                "updated_at": self._clock(),
            }
        )
        self._threads[thread_id] = updated
        return updated.model_copy()

    async def list_threads_for_sender(
        self, sender: str, *, exclude_thread_id: Optional[str] = None, limit: int = 5
    ) -> List[schemas.Thread]:
        matches = [
            thread.model_copy()
            for thread in self._threads.values()
            if thread.sender
            and thread.sender.lower() == sender.lower()
            and thread.id != exclude_thread_id
        ]
        matches.sort(key=lambda t: t.created_at, reverse=True)
        return matches[:limit]

    async def add_message(self, payload: schemas.MessageCreate) -> Optional[schemas.Message]:
        if payload.dedup_key and await self.find_message(payload.thread_id, payload.dedup_key):
            return None
        now = self._clock()
        message = schemas.Message(
            id=str(uuid4()),
            thread_id=payload.thread_id,
            direction=payload.direction,
            from_identifier=payload.from_identifier,
            to_identifier=payload.to_identifier,
            body_text=payload.body_text,
            role=payload.role,
            channel_metadata=dict(payload.channel_metadata),
            dedup_key=payload.dedup_key,
            message_date=payload.message_date or now,
            created_at=now,
        )
        self._messages.setdefault(payload.thread_id, []).append(message)
        return message

    async def find_message(self, thread_id: str, dedup_key: str) -> Optional[schemas.Message]:
        for message in self._messages.get(thread_id, []):
            if message.dedup_key == dedup_key:
                return message
        return None

    async def delete_message(self, message_id: str) -> None:
        for thread_id, messages in self._messages.items():
            self._messages[thread_id] = [m for m in messages if m.id != message_id]

    async def list_messages(self, thread_id: str) -> List[schemas.Message]:
        messages = list(self._messages.get(thread_id, []))
        messages.sort(key=lambda m: (m.message_date, m.created_at))
        return messages

    async def append_event(
        self, thread_id: str, event_type: str, payload: Dict[str, Any]
    ) -> schemas.Event:
        event = schemas.Event(
            id=str(uuid4()),
            thread_id=thread_id,
            type=event_type,
            payload=dict(payload),
            created_at=self._clock(),
        )
        self._events.setdefault(thread_id, []).append(event)
        return event

    async def list_events(self, thread_id: str) -> List[schemas.Event]:
        return list(self._events.get(thread_id, []))

    async def list_thread_intents(
        self, thread_id: str, *, include_resolved: bool = False
    ) -> List[ThreadIntent]:
        intents = list(self._intents.get(thread_id, {}).values())
        if not include_resolved:
            intents = [intent for intent in intents if not intent.is_resolved]
        intents.sort(key=lambda i: i.detected_at)
        return intents

    async def upsert_thread_intent(self, intent: ThreadIntent) -> ThreadIntent:
        bucket = self._intents.setdefault(intent.thread_id, {})
        existing = bucket.get(intent.intent)
        if existing is not None:
            intent = intent.model_copy(update={"detected_at": existing.detected_at})
        bucket[intent.intent] = intent
        return intent

    async def delete_thread_intent(self, thread_id: str, intent: str) -> None:
        self._intents.get(thread_id, {}).pop(intent, None)

