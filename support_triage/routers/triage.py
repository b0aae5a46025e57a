"""HTTP surface for the triage pipeline.

Channel adapters post inbound and outbound messages here; operators use
the thread, draft and cache endpoints.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..collaboration.schemas import (
    InterventionSignal,
    Observation,
    ObservationResolution,
    OutboundMessage,
    SignalType,
    TakeoverRequest,
)
from ..core.clock import utcnow
from ..drafts.schemas import DraftGeneration, MarkSentRequest
from ..exceptions import (
    ConcurrentUpdateError,
    DraftAlreadySentError,
    DraftNotFoundError,
    InvalidTransitionError,
    ObservationAlreadyActiveError,
    ObservationNotActiveError,
    ThreadNotFoundError,
)
from ..ingest.schemas import IngestRequest, IngestResult, ManualTransitionRequest
from ..pipeline import TriagePipeline
from ..threads.schemas import Thread, ThreadDetail

router = APIRouter(prefix="/api", tags=["triage"])


def get_pipeline(request: Request) -> TriagePipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Triage pipeline not initialised")
    return pipeline


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except (ThreadNotFoundError, DraftNotFoundError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (
        InvalidTransitionError,
        DraftAlreadySentError,
        ObservationAlreadyActiveError,
        ObservationNotActiveError,
        ConcurrentUpdateError,
    ) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


# ---------------------------------------------------------------------------
# Messages


@router.post("/ingest", response_model=IngestResult)
async def ingest(
    payload: IngestRequest, pipeline: TriagePipeline = Depends(get_pipeline)
) -> IngestResult:
    """Run one inbound message through the triage pipeline."""
    with _translate_errors():
        return await pipeline.orchestrator.process(payload)


@router.post("/threads/{thread_id}/outbound", response_model=Thread)
async def outbound(
    thread_id: str,
    payload: OutboundMessage,
    pipeline: TriagePipeline = Depends(get_pipeline),
) -> Thread:
    """Report a sent message; human-written replies pause automation."""
    with _translate_errors():
        return await pipeline.observations.handle_outbound(thread_id, payload)


# ---------------------------------------------------------------------------
# Threads


@router.get("/threads/{thread_id}", response_model=ThreadDetail)
async def get_thread(
    thread_id: str, pipeline: TriagePipeline = Depends(get_pipeline)
) -> ThreadDetail:
    thread = await pipeline.threads.get_thread(thread_id)
    if thread is None:
        raise HTTPException(status_code=404, detail=f"Thread {thread_id} not found")
    events = await pipeline.threads.list_events(thread_id)
    intents = await pipeline.threads.list_thread_intents(thread_id, include_resolved=True)
    return ThreadDetail(
        **thread.model_dump(),
        events=events,
        intents=[item.model_dump(mode="json") for item in intents],
    )


@router.post("/threads/{thread_id}/transition", response_model=Thread)
async def transition(
    thread_id: str,
    payload: ManualTransitionRequest,
    pipeline: TriagePipeline = Depends(get_pipeline),
) -> Thread:
    with _translate_errors():
        return await pipeline.orchestrator.transition_thread(
            thread_id, payload.state, reason=payload.reason, actor=payload.actor
        )


@router.post(
    "/threads/{thread_id}/takeover",
    response_model=Observation,
    status_code=status.HTTP_201_CREATED,
)
async def takeover(
    thread_id: str,
    payload: TakeoverRequest,
    pipeline: TriagePipeline = Depends(get_pipeline),
) -> Observation:
    """Put a thread in observation mode on an operator's request."""
    signal = InterventionSignal(
        type=SignalType.ADMIN_TAKEOVER,
        thread_id=thread_id,
        handler=payload.handler,
        channel=payload.channel,
        timestamp=utcnow(),
        content=payload.content,
    )
    with _translate_errors():
        return await pipeline.observations.enter_observation(signal)


@router.post("/threads/{thread_id}/release", response_model=Observation)
async def release(
    thread_id: str,
    payload: ObservationResolution,
    pipeline: TriagePipeline = Depends(get_pipeline),
) -> Observation:
    """End observation mode and hand the thread back to automation."""
    with _translate_errors():
        return await pipeline.observations.exit_observation(thread_id, payload)


# ---------------------------------------------------------------------------
# Drafts


@router.get("/drafts", response_model=list[DraftGeneration])
async def list_drafts(
    thread_id: str, pipeline: TriagePipeline = Depends(get_pipeline)
) -> list[DraftGeneration]:
    return await pipeline.drafts.history(thread_id)


@router.post("/drafts/{draft_id}/sent", response_model=DraftGeneration)
async def mark_draft_sent(
    draft_id: str,
    payload: MarkSentRequest,
    pipeline: TriagePipeline = Depends(get_pipeline),
) -> DraftGeneration:
    with _translate_errors():
        return await pipeline.drafts.mark_sent(
            draft_id, was_edited=payload.was_edited, edit_distance=payload.edit_distance
        )


# ---------------------------------------------------------------------------
# Caches


@router.post("/intents/refresh", status_code=status.HTTP_204_NO_CONTENT)
async def refresh_intents(pipeline: TriagePipeline = Depends(get_pipeline)) -> None:
    pipeline.catalog.invalidate()


@router.post("/instructions/invalidate", status_code=status.HTTP_204_NO_CONTENT)
async def invalidate_instructions(pipeline: TriagePipeline = Depends(get_pipeline)) -> None:
    pipeline.instructions.invalidate()
