"""Observation mode: automation stands down while a human handles a thread.

An outbound message the pipeline did not produce means an operator replied
through a side channel. The thread then enters ``HUMAN_HANDLING``; inbound
messages are only logged as observations until an operator releases it
with a resolution, after which the thread is back ``IN_PROGRESS``.
"""

from __future__ import annotations

import logging
import re
from typing import Optional
from uuid import uuid4

from ..core.clock import Clock, utcnow
from ..core.locks import ThreadLocks
from ..drafts.repository import DraftRepository
from ..exceptions import (
    ObservationAlreadyActiveError,
    ObservationNotActiveError,
    ThreadNotFoundError,
)
from ..threads.repository import ThreadRepository
from ..threads.schemas import (
    EventType,
    MessageCreate,
    MessageDirection,
    Thread,
    ThreadUpdate,
)
from ..threads.state_machine import ThreadState
from .repository import ObservationRepository
from .schemas import (
    InterventionSignal,
    Observation,
    ObservationResolution,
    ObservedMessage,
    OutboundMessage,
    SignalType,
)

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def _normalise(text: Optional[str]) -> str:
    return _WHITESPACE.sub(" ", text or "").strip().lower()


def signal_type_for(message: OutboundMessage) -> SignalType:
    if message.channel == "crm":
        return SignalType.CRM_UPDATE
    if message.cc_support:
        return SignalType.CC_SUPPORT
    return SignalType.DIRECT_EMAIL


class ObservationController:
    def __init__(
        self,
        threads: ThreadRepository,
        observations: ObservationRepository,
        drafts: DraftRepository,
        *,
        locks: Optional[ThreadLocks] = None,
        clock: Clock = utcnow,
    ) -> None:
        self._threads = threads
        self._observations = observations
        self._drafts = drafts
        self._locks = locks or ThreadLocks()
        self._clock = clock

    async def is_human_intervention(self, thread_id: str, message: OutboundMessage) -> bool:
        """True when ``message`` was not produced by the pipeline."""
        if message.generated_by_agent or message.draft_id:
            return False
        body = _normalise(message.body_text)
        for generation in await self._drafts.history(thread_id):
            if generation.final_draft and _normalise(generation.final_draft) == body:
                return False
        return True

    async def handle_outbound(self, thread_id: str, message: OutboundMessage) -> Thread:
        """Record an outbound message and enter observation mode for human replies."""
        thread = await self._require_thread(thread_id)
        stored = await self._threads.add_message(
            MessageCreate(
                thread_id=thread_id,
                direction=MessageDirection.OUTBOUND,
                from_identifier=message.from_identifier,
                to_identifier=message.to_identifier,
                body_text=message.body_text,
                channel_metadata={"channel": message.channel, "draft_id": message.draft_id},
                dedup_key=message.message_id,
                message_date=message.sent_at,
            )
        )
        if stored is None:
            logger.info("Outbound message %s already recorded", message.message_id)
            return thread

        if not await self.is_human_intervention(thread_id, message):
            return thread

        timestamp = message.sent_at or self._clock()
        if thread.human_handling_mode:
            await self.record_observation(
                thread_id,
                ObservedMessage(
                    direction=MessageDirection.OUTBOUND,
                    sender=message.from_identifier,
                    recipient=message.to_identifier,
                    content=message.body_text,
                    timestamp=timestamp,
                ),
            )
            return thread

        await self.enter_observation(
            InterventionSignal(
                type=signal_type_for(message),
                thread_id=thread_id,
                handler=message.from_identifier,
                channel=message.channel,
                timestamp=timestamp,
                content=message.body_text,
            )
        )
        return await self._require_thread(thread_id)

    async def enter_observation(self, signal: InterventionSignal) -> Observation:
        async with self._locks.for_thread(signal.thread_id):
            thread = await self._require_thread(signal.thread_id)
            if thread.human_handling_mode:
                raise ObservationAlreadyActiveError(
                    f"Thread {thread.id} is already handled by {thread.human_handler}"
                )

            initial = []
            if signal.content:
                initial.append(
                    ObservedMessage(
                        direction=MessageDirection.OUTBOUND,
                        sender=signal.handler,
                        content=signal.content,
                        timestamp=signal.timestamp,
                    )
                )
            observation = await self._observations.create(
                Observation(
                    id=str(uuid4()),
                    thread_id=thread.id,
                    handler=signal.handler,
                    channel=signal.channel,
                    signal_type=signal.type,
                    started_at=signal.timestamp,
                    observed_messages=initial,
                )
            )
            await self._threads.apply_transition(
                thread.id,
                thread.version,
                ThreadUpdate(
                    state=ThreadState.HUMAN_HANDLING,
                    human_handling_mode=True,
                    human_handler=signal.handler,
                    human_handling_started_at=signal.timestamp,
                ),
            )
            await self._threads.append_event(
                thread.id,
                EventType.HUMAN_INTERVENTION_STARTED.value,
                {
                    "handler": signal.handler,
                    "channel": signal.channel,
                    "signal_type": signal.type.value,
                    "observation_id": observation.id,
                    "stateTransition": {
                        "from": thread.state.value,
                        "to": ThreadState.HUMAN_HANDLING.value,
                        "reason": f"Human intervention via {signal.type.value}",
                    },
                },
            )
        logger.info(
            "Thread %s entered observation mode; handler %s via %s",
            thread.id,
            signal.handler,
            signal.type.value,
        )
        return observation

    async def record_observation(
        self, thread_id: str, message: ObservedMessage
    ) -> Optional[Observation]:
        observation = await self._observations.active(thread_id)
        if observation is None:
            logger.warning("No active observation for thread %s", thread_id)
            return None
        updated = await self._observations.append_message(observation.id, message)
        logger.info("Recorded %s observation for thread %s", message.direction.value, thread_id)
        return updated

    async def exit_observation(
        self, thread_id: str, resolution: ObservationResolution
    ) -> Observation:
        async with self._locks.for_thread(thread_id):
            thread = await self._require_thread(thread_id)
            observation = await self._observations.active(thread_id)
            if observation is None:
                raise ObservationNotActiveError(f"Thread {thread_id} is not in observation mode")

            now = self._clock()
            observation = await self._observations.close(observation.id, resolution, now)
            await self._threads.apply_transition(
                thread.id,
                thread.version,
                ThreadUpdate(
                    state=ThreadState.IN_PROGRESS,
                    human_handling_mode=False,
                    human_handler=None,
                    human_handling_started_at=None,
                ),
            )
            await self._threads.append_event(
                thread.id,
                EventType.HUMAN_INTERVENTION_ENDED.value,
                {
                    "observation_id": observation.id,
                    "resolution_type": resolution.resolution_type.value,
                    "summary": resolution.summary,
                    "stateTransition": {
                        "from": thread.state.value,
                        "to": ThreadState.IN_PROGRESS.value,
                        "reason": f"Released by operator ({resolution.resolution_type.value})",
                    },
                },
            )
        logger.info(
            "Thread %s left observation mode (%s)", thread_id, resolution.resolution_type.value
        )
        return observation

    async def get_active_observation(self, thread_id: str) -> Optional[Observation]:
        return await self._observations.active(thread_id)

    async def is_in_observation_mode(self, thread_id: str) -> bool:
        thread = await self._threads.get_thread(thread_id)
        return bool(thread and thread.human_handling_mode)

    async def _require_thread(self, thread_id: str) -> Thread:
        thread = await self._threads.get_thread(thread_id)
        if thread is None:
            raise ThreadNotFoundError(f"Thread {thread_id} not found")
        return thread
