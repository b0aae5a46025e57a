"""Track every intent detected on a thread, not just the primary one."""

from __future__ import annotations

import logging
from typing import List, Optional

from ..core.clock import Clock, utcnow
from ..threads.repository import ThreadRepository
from ..threads.schemas import EventType, Thread
from . import taxonomy
from .schemas import ClassificationResult, ThreadIntent

logger = logging.getLogger(__name__)


class ThreadIntentTracker:
    """Maintain the thread <-> intent assignments.

    UNKNOWN is a placeholder: it is dropped as soon as a known intent is
    assigned and never added next to one.
    """

    def __init__(self, repository: ThreadRepository, clock: Clock = utcnow) -> None:
        self._repository = repository
        self._clock = clock

    async def record(
        self,
        thread: Thread,
        classification: ClassificationResult,
        *,
        message_id: Optional[str] = None,
    ) -> List[ThreadIntent]:
        existing = await self._repository.list_thread_intents(thread.id)
        has_known = any(item.intent != taxonomy.UNKNOWN for item in existing)
        now = self._clock()
        for match in classification.intents:
            if match.intent == taxonomy.UNKNOWN:
                if has_known:
                    continue
            elif not has_known:
                await self._repository.delete_thread_intent(thread.id, taxonomy.UNKNOWN)
                has_known = True
            await self._repository.upsert_thread_intent(
                ThreadIntent(
                    thread_id=thread.id,
                    intent=match.intent,
                    confidence=match.confidence,
                    detected_from_message_id=message_id,
                    detected_at=now,
                )
            )

        if thread.last_intent == taxonomy.UNKNOWN and classification.primary_intent != taxonomy.UNKNOWN:
            await self._repository.append_event(
                thread.id,
                EventType.INTENT_CLARIFIED.value,
                {
                    "from": taxonomy.UNKNOWN,
                    "to": classification.primary_intent,
                    "confidence": classification.confidence,
                },
            )
            logger.info(
                "Thread %s clarified from UNKNOWN to %s",
                thread.id,
                classification.primary_intent,
            )
        return await self._repository.list_thread_intents(thread.id)

    async def resolve(self, thread_id: str, intent: str) -> Optional[ThreadIntent]:
        for item in await self._repository.list_thread_intents(thread_id):
            if item.intent == intent:
                resolved = item.model_copy(
                    update={"is_resolved": True, "resolved_at": self._clock()}
                )
                return await self._repository.upsert_thread_intent(resolved)
        return None
