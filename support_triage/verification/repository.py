"""Persistence for per-thread verification records."""

from __future__ import annotations

from typing import Dict, List, Optional, Protocol
from uuid import uuid4

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from ..core.clock import Clock, utcnow
from .schemas import VerificationRecord, VerificationResult


class VerificationRepository(Protocol):
    async def save(self, thread_id: str, result: VerificationResult) -> VerificationRecord: ...

    async def latest(self, thread_id: str) -> Optional[VerificationRecord]: ...


def _record_from_result(
    thread_id: str, result: VerificationResult, clock: Clock
) -> VerificationRecord:
    return VerificationRecord(
        id=str(uuid4()),
        thread_id=thread_id,
        status=result.status,
        order_number=result.order_number,
        email=result.email,
        order_id=result.order.id if result.order else None,
        customer_id=result.customer.id if result.customer else None,
        customer_name=result.customer.name if result.customer else None,
        customer_email=result.customer.email if result.customer else None,
        flags=list(result.flags),
        message=result.message,
        created_at=clock(),
    )


class PostgresVerificationRepository:
    def __init__(self, conn: psycopg.AsyncConnection, clock: Clock = utcnow) -> None:
        self._conn = conn
        self._clock = clock

    def _cursor(self):
        return self._conn.cursor(row_factory=dict_row)

    async def save(self, thread_id: str, result: VerificationResult) -> VerificationRecord:
        record = _record_from_result(thread_id, result, self._clock)
        async with self._cursor() as cur:
            await cur.execute(
                """
                INSERT INTO verifications (id, thread_id, status, order_number, email, order_id,
                                           customer_id, customer_name, customer_email, flags,
                                           message, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    record.id,
                    record.thread_id,
                    record.status.value,
                    record.order_number,
                    record.email,
                    record.order_id,
                    record.customer_id,
                    record.customer_name,
                    record.customer_email,
                    Jsonb(record.flags),
                    record.message,
                    record.created_at,
                ),
            )
        return record

    async def latest(self, thread_id: str) -> Optional[VerificationRecord]:
        async with self._cursor() as cur:
            await cur.execute(
                """
                SELECT * FROM verifications
                WHERE thread_id = %s
                ORDER BY created_at DESC
                LIMIT 1
                """,
                (thread_id,),
            )
            row = await cur.fetchone()
        if not row:
            return None
        data = dict(row)
        data["id"] = str(data["id"])
        data["thread_id"] = str(data["thread_id"])
        data["flags"] = data.get("flags") or []
        data["message"] = data.get("message") or ""
        return VerificationRecord(**data)


class InMemoryVerificationRepository(VerificationRepository):
    def __init__(self, clock: Clock = utcnow) -> None:
        self._clock = clock
        self.records: Dict[str, List[VerificationRecord]] = {}

    async def save(self, thread_id: str, result: VerificationResult) -> VerificationRecord:
        record = _record_from_result(thread_id, result, self._clock)
        self.records.setdefault(thread_id, []).append(record)
        return record

    async def latest(self, thread_id: str) -> Optional[VerificationRecord]:
        records = self.records.get(thread_id)
        return records[-1] if records else None
