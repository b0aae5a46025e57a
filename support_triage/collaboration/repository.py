"""Persistence for observation-mode records."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from .schemas import Observation, ObservationResolution, ObservedMessage


class ObservationRepository(Protocol):
    async def create(self, observation: Observation) -> Observation: ...

    async def active(self, thread_id: str) -> Optional[Observation]: ...

    async def append_message(self, observation_id: str, message: ObservedMessage) -> Observation: ...

    async def close(
        self, observation_id: str, resolution: ObservationResolution, ended_at: datetime
    ) -> Observation: ...


# ---------------------------------------------------------------------------
# Postgres repository implementation


class PostgresObservationRepository:
    def __init__(self, conn: psycopg.AsyncConnection) -> None:
        self._conn = conn

    def _cursor(self):
        return self._conn.cursor(row_factory=dict_row)

    async def create(self, observation: Observation) -> Observation:
        async with self._cursor() as cur:
            await cur.execute(
                """
                INSERT INTO human_observations (id, thread_id, handler, channel, signal_type,
                                                started_at, observed_messages)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    observation.id,
                    observation.thread_id,
                    observation.handler,
                    observation.channel,
                    observation.signal_type.value,
                    observation.started_at,
                    Jsonb(_dump_messages(observation.observed_messages)),
                ),
            )
            row = await cur.fetchone()
        return _row_to_observation(row)

    async def active(self, thread_id: str) -> Optional[Observation]:
        async with self._cursor() as cur:
            await cur.execute(
                """
                SELECT * FROM human_observations
                WHERE thread_id = %s AND ended_at IS NULL
                ORDER BY started_at DESC
                LIMIT 1
                """,
                (thread_id,),
            )
            row = await cur.fetchone()
        return _row_to_observation(row) if row else None

    async def append_message(self, observation_id: str, message: ObservedMessage) -> Observation:
        async with self._cursor() as cur:
            await cur.execute(
                """
                UPDATE human_observations
                SET observed_messages = observed_messages || %s
                WHERE id = %s
                RETURNING *
                """,
                (Jsonb(_dump_messages([message])), observation_id),
            )
            row = await cur.fetchone()
        return _row_to_observation(row)

    async def close(
        self, observation_id: str, resolution: ObservationResolution, ended_at: datetime
    ) -> Observation:
        async with self._cursor() as cur:
            await cur.execute(
                """
                UPDATE human_observations
                SET ended_at = %s, resolution_type = %s, resolution_summary = %s,
                    questions_asked = %s, troubleshooting_steps = %s, new_information = %s
                WHERE id = %s
                RETURNING *
                """,
                (
                    ended_at,
                    resolution.resolution_type.value,
                    resolution.summary,
                    Jsonb(resolution.questions_asked),
                    Jsonb(resolution.troubleshooting_steps),
                    Jsonb(resolution.new_information),
                    observation_id,
                ),
            )
            row = await cur.fetchone()
        return _row_to_observation(row)


def _dump_messages(messages: List[ObservedMessage]) -> List[Dict[str, Any]]:
    return [message.model_dump(mode="json") for message in messages]


def _row_to_observation(row: Dict[str, Any]) -> Observation:
    resolution = None
    if row.get("resolution_type"):
        resolution = ObservationResolution(
            resolution_type=row["resolution_type"],
            summary=row.get("resolution_summary") or "",
            questions_asked=row.get("questions_asked") or [],
            troubleshooting_steps=row.get("troubleshooting_steps") or [],
            new_information=row.get("new_information") or [],
        )
    return Observation(
        id=str(row["id"]),
        thread_id=str(row["thread_id"]),
        handler=row["handler"],
        channel=row["channel"],
        signal_type=row["signal_type"],
        started_at=row["started_at"],
        ended_at=row.get("ended_at"),
        observed_messages=[ObservedMessage(**m) for m in row.get("observed_messages") or []],
        resolution=resolution,
    )


# ---------------------------------------------------------------------------
# In-memory repository


class InMemoryObservationRepository(ObservationRepository):
    def __init__(self) -> None:
        self.observations: Dict[str, Observation] = {}

    async def create(self, observation: Observation) -> Observation:
        self.observations[observation.id] = observation.model_copy(deep=True)
        return observation

    async def active(self, thread_id: str) -> Optional[Observation]:
        candidates = [
            o for o in self.observations.values() if o.thread_id == thread_id and o.is_active
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda o: o.started_at).model_copy(deep=True)

    async def append_message(self, observation_id: str, message: ObservedMessage) -> Observation:
        current = self.observations[observation_id]
        updated = current.model_copy(
            update={"observed_messages": [*current.observed_messages, message]}, deep=True
        )
        self.observations[observation_id] = updated
        return updated.model_copy(deep=True)

    async def close(
        self, observation_id: str, resolution: ObservationResolution, ended_at: datetime
    ) -> Observation:
        current = self.observations[observation_id]
        updated = current.model_copy(
            update={"ended_at": ended_at, "resolution": resolution}, deep=True
        )
        self.observations[observation_id] = updated
        return updated.model_copy(deep=True)
