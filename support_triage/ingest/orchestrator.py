"""Per-message triage transaction.

``TriageOrchestrator.process`` is the single entry point channel adapters
call. Steps run strictly in order: intake, classify, verify, retrieve,
generate, policy gate, state transition, persist, notify. Component
failures degrade to safe defaults inside the components; only persistence
errors escape to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from ..collaboration.observation import ObservationController
from ..collaboration.schemas import ObservedMessage
from ..core.clock import Clock, utcnow
from ..core.locks import ThreadLocks
from ..drafts import macros
from ..drafts.escalation import build_escalation_note
from ..drafts.generator import DraftGenerator
from ..drafts.policy import PolicyGate
from ..drafts.promises import detect_promised_actions, promises_payload
from ..drafts.schemas import DraftInput, DraftResult
from ..exceptions import InvalidTransitionError, ThreadNotFoundError
from ..intents import taxonomy
from ..intents.assignments import ThreadIntentTracker
from ..intents.classifier import IntentClassifier
from ..intents.required_info import RequiredInfoCheck, check_required_info, missing_info_prompt
from ..intents.schemas import ClassificationResult
from ..orders.lookup import OrderLookup
from ..orders.schemas import CustomerProfile
from ..retrieval.hybrid import HybridRetriever
from ..retrieval.schemas import SearchContext, SearchOptions, SearchResult
from ..settings import TriageSettings
from ..threads.repository import ThreadRepository
from ..threads.schemas import (
    EventType,
    Message,
    MessageCreate,
    MessageDirection,
    Thread,
    ThreadCreate,
    ThreadUpdate,
)
from ..threads.state_machine import (
    ABSORBING_STATES,
    ESCALATED_FAMILY,
    Action,
    ThreadState,
    Transition,
    decide,
    is_valid_transition,
    state_label,
)
from ..threads.summary import generate_thread_summary
from ..verification.extractors import extract_order_number
from ..verification.gate import VerificationGate
from ..verification.prompts import FLAGGED_NOTE, verification_prompt
from ..verification.schemas import VerificationResult, VerificationStatus
from .schemas import IngestRequest, IngestResult

logger = logging.getLogger(__name__)

Listener = Callable[[IngestResult], Awaitable[None]]

CONTEXT_MESSAGES = 3
CONTEXT_MESSAGE_CHARS = 200
PREVIOUS_TICKETS = 5

_ESCALATING_ACTIONS = {Action.ESCALATE, Action.ESCALATE_WITH_DRAFT}
_NON_SENDING_ACTIONS = {Action.NO_REPLY} | _ESCALATING_ACTIONS
# Threads in these states wait for a human before anything is sent.
_HELD_STATES = ESCALATED_FAMILY | ABSORBING_STATES


@dataclass
class _Decision:
    """Working state for one message while the pipeline runs."""

    action: Action = Action.ASK_CLARIFYING_QUESTIONS
    draft: Optional[str] = None
    internal: bool = False
    policy_blocked: bool = False
    missing_info: bool = False
    verification: Optional[VerificationResult] = None
    draft_result: Optional[DraftResult] = None
    kb_results: List[SearchResult] = field(default_factory=list)
    required_info: RequiredInfoCheck = field(default_factory=RequiredInfoCheck)
    note: Optional[str] = None
    escalation_reason: Optional[str] = None
    policy_reasons: List[str] = field(default_factory=list)


class TriageOrchestrator:
    def __init__(
        self,
        threads: ThreadRepository,
        classifier: IntentClassifier,
        tracker: ThreadIntentTracker,
        verification: VerificationGate,
        retriever: HybridRetriever,
        generator: DraftGenerator,
        observations: ObservationController,
        settings: TriageSettings,
        *,
        lookup: Optional[OrderLookup] = None,
        policy: Optional[PolicyGate] = None,
        locks: Optional[ThreadLocks] = None,
        clock: Clock = utcnow,
    ) -> None:
        self._threads = threads
        self._classifier = classifier
        self._tracker = tracker
        self._verification = verification
        self._retriever = retriever
        self._generator = generator
        self._observations = observations
        self._settings = settings
        self._lookup = lookup
        self._policy = policy or PolicyGate(settings.agent_name, competitors=settings.competitors)
        self._locks = locks or ThreadLocks()
        self._clock = clock
        self._listeners: List[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        """Register a coroutine called with every persisted result."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Inbound messages

    async def process(self, request: IngestRequest) -> IngestResult:
        thread = await self._upsert_thread(request)
        async with self._locks.for_thread(thread.id):
            result = await self._process_locked(thread.id, request)
        if not result.duplicate:
            await self._notify(result)
        return result

    async def _upsert_thread(self, request: IngestRequest) -> Thread:
        if request.external_id:
            existing = await self._threads.get_thread_by_external_id(request.external_id)
            if existing is not None:
                return existing
        return await self._threads.create_thread(
            ThreadCreate(
                external_id=request.external_id,
                channel=request.channel,
                subject=request.subject,
                sender=request.from_identifier,
            )
        )

    async def _process_locked(self, thread_id: str, request: IngestRequest) -> IngestResult:
        thread = await self._require_thread(thread_id)
        history = await self._threads.list_messages(thread.id)
        message = await self._threads.add_message(
            MessageCreate(
                thread_id=thread.id,
                direction=MessageDirection.INBOUND,
                from_identifier=request.from_identifier,
                to_identifier=request.to_identifier,
                body_text=request.body_text,
                channel_metadata={"channel": request.channel, **request.metadata},
                dedup_key=request.dedup_key,
                message_date=request.message_date,
            )
        )
        if message is None:
            logger.info(
                "Message %s on thread %s already processed", request.dedup_key, thread.id
            )
            return IngestResult(
                thread_id=thread.id,
                intent=thread.last_intent or taxonomy.UNKNOWN,
                confidence=0.0,
                action=Action.NO_REPLY,
                state=thread.state,
                previous_state=thread.state,
                verification_status=thread.verification_status,
                human_handling=thread.human_handling_mode,
                duplicate=True,
            )

        try:
            if thread.human_handling_mode:
                return await self._observe(thread, message, request)
            return await self._triage(thread, history, message, request)
        except Exception:
            # A failed run leaves the dedup key free for the retry.
            logger.warning(
                "Triage of message %s on thread %s failed; releasing it for retry",
                message.id,
                thread.id,
            )
            await self._threads.delete_message(message.id)
            raise

    async def _triage(
        self,
        thread: Thread,
        history: List[Message],
        message: Message,
        request: IngestRequest,
    ) -> IngestResult:
        classification = await self._classifier.classify(
            request.subject, request.body_text, _conversation_context(history)
        )
        await self._tracker.record(thread, classification, message_id=message.id)
        intent = classification.primary_intent
        confidence = classification.confidence
        if len(classification.intents) > 1:
            logger.info(
                "Multiple intents on thread %s: %s",
                thread.id,
                ", ".join(f"{m.intent} ({m.confidence:.2f})" for m in classification.intents),
            )

        decision = await self._decide_response(thread, request, message, history, classification)
        transition = decide(
            thread.state,
            decision.action,
            intent,
            policy_blocked=decision.policy_blocked,
            missing_required_info=decision.missing_info,
        )
        if transition.action is Action.NO_REPLY:
            decision.draft = None
        if transition.action in _ESCALATING_ACTIONS:
            decision.note = build_escalation_note(
                decision.escalation_reason or transition.reason,
                intent,
                sender=request.from_identifier,
                verification=decision.verification,
                kb_results=decision.kb_results if decision.draft_result is not None else None,
                policy_reasons=decision.policy_reasons,
            )

        summary = generate_thread_summary(intent, transition.state, transition.action)
        verification_status = (
            decision.verification.status.value
            if decision.verification
            else thread.verification_status
        )
        await self._threads.apply_transition(
            thread.id,
            thread.version,
            ThreadUpdate(
                state=transition.state,
                last_intent=intent,
                verification_status=verification_status,
                summary=summary,
            ),
        )
        await self._threads.append_event(
            thread.id,
            EventType.AUTO_TRIAGE.value,
            _event_payload(request, classification, decision, transition),
        )
        logger.info(
            "Thread %s: intent=%s (%.2f) action=%s state %s -> %s",
            thread.id,
            intent,
            confidence,
            transition.action.value,
            transition.previous_state.value,
            transition.state.value,
        )

        return IngestResult(
            thread_id=thread.id,
            message_id=message.id,
            intent=intent,
            confidence=confidence,
            action=transition.action,
            draft=decision.draft,
            state=transition.state,
            previous_state=transition.previous_state,
            intents=[m.intent for m in classification.intents],
            draft_id=decision.draft_result.draft_id if decision.draft_result else None,
            verification_status=verification_status,
            auto_send_eligible=self._auto_send_eligible(
                decision, transition, confidence, classification
            ),
        )

    async def _observe(
        self, thread: Thread, message: Message, request: IngestRequest
    ) -> IngestResult:
        await self._observations.record_observation(
            thread.id,
            ObservedMessage(
                direction=MessageDirection.INBOUND,
                sender=request.from_identifier or "unknown",
                recipient=request.to_identifier,
                content=request.body_text,
                timestamp=message.message_date,
            ),
        )
        transition = Transition(
            thread.state,
            thread.state,
            Action.NO_REPLY,
            "Human handling in progress - automation paused",
        )
        await self._threads.append_event(
            thread.id,
            EventType.OBSERVATION_RECORDED.value,
            {
                "channel": request.channel,
                "handler": thread.human_handler,
                "message_id": message.id,
                "humanHandling": True,
                "stateTransition": transition.as_payload(),
            },
        )
        logger.info("Thread %s is human-handled; recorded observation only", thread.id)
        return IngestResult(
            thread_id=thread.id,
            message_id=message.id,
            intent=taxonomy.UNKNOWN,
            confidence=0.0,
            action=Action.NO_REPLY,
            state=transition.state,
            previous_state=thread.state,
            verification_status=thread.verification_status,
            human_handling=True,
        )

    async def _decide_response(
        self,
        thread: Thread,
        request: IngestRequest,
        message: Message,
        history: List[Message],
        classification: ClassificationResult,
    ) -> _Decision:
        intent = classification.primary_intent
        decision = _Decision()
        signature = self._settings.signature

        if intent == taxonomy.CHARGEBACK_THREAT:
            decision.action = Action.ESCALATE_WITH_DRAFT
            decision.draft = macros.CHARGEBACK_NOTE
            decision.internal = True
            decision.escalation_reason = "Customer mentions a chargeback or dispute"
            return decision
        if classification.auto_escalate:
            decision.action = Action.ESCALATE
            decision.escalation_reason = "Auto-escalated due to intent type"
            return decision
        if intent in taxonomy.CLOSING_INTENTS:
            decision.action = Action.NO_REPLY
            return decision

        if classification.requires_verification or intent in taxonomy.PROTECTED_INTENTS:
            verification = await self._verification.verify(
                thread.id,
                request.from_identifier,
                request.body_text,
                attachment_order_number=_attachment_order_number(request),
            )
            decision.verification = verification
            if verification.status is VerificationStatus.FLAGGED:
                decision.action = Action.ESCALATE
                decision.draft = FLAGGED_NOTE
                decision.internal = True
                decision.escalation_reason = "Verification flagged the customer account"
                return decision
            if verification.status is not VerificationStatus.VERIFIED:
                decision.action = Action.ASK_CLARIFYING_QUESTIONS
                decision.draft = verification_prompt(verification.status, signature)
                decision.missing_info = True
                return self._gate_template(decision)

        text = "\n".join(
            [request.subject, request.body_text]
            + [a.extracted_content for a in request.attachments if a.extracted_content]
        )
        decision.required_info = check_required_info(intent, text)

        if not decision.required_info.all_required_present:
            decision.action = Action.ASK_CLARIFYING_QUESTIONS
            decision.missing_info = True
            decision.draft = macros.macro_for(intent, signature) or missing_info_prompt(
                decision.required_info.missing_required, signature
            )
            return self._gate_template(decision)

        if intent == taxonomy.DOCS_VIDEO_MISMATCH:
            decision.action = Action.SEND_PREAPPROVED_MACRO
            decision.draft = macros.docs_video_mismatch(signature)
            return self._gate_template(decision)

        if not self._generator.is_configured:
            decision.action = Action.ASK_CLARIFYING_QUESTIONS
            decision.draft = macros.macro_for(intent, signature)
            return self._gate_template(decision)

        await self._generate(decision, thread, request, message, history, intent)
        return decision

    async def _generate(
        self,
        decision: _Decision,
        thread: Thread,
        request: IngestRequest,
        message: Message,
        history: List[Message],
        intent: str,
    ) -> None:
        decision.action = Action.ASK_CLARIFYING_QUESTIONS
        decision.kb_results = await self._retriever.search(
            SearchContext(intent=intent, query=f"{request.subject} {request.body_text}"),
            SearchOptions(
                limit=self._settings.search_limit, min_score=self._settings.search_min_score
            ),
        )
        verification = decision.verification
        profile = await self._customer_profile(verification)
        previous_tickets = []
        if request.from_identifier:
            previous_tickets = await self._threads.list_threads_for_sender(
                request.from_identifier, exclude_thread_id=thread.id, limit=PREVIOUS_TICKETS
            )
        outbound = [m for m in history if m.direction is MessageDirection.OUTBOUND]

        result = await self._generator.generate(
            DraftInput(
                thread_id=thread.id,
                message_id=message.id,
                customer_message=f"{request.subject}\n{request.body_text}",
                intent=intent,
                kb_results=decision.kb_results,
                conversation_history=history,
                verified_order=verification.order if verification else None,
                attachments=request.attachments,
                customer_profile=profile,
                previous_tickets=previous_tickets,
                thread_created_at=thread.created_at,
                last_outbound_at=outbound[-1].message_date if outbound else None,
            )
        )
        decision.draft_result = result
        if not result.success:
            logger.warning("No draft for thread %s: %s", thread.id, result.error)
            return
        if result.policy_passed:
            decision.draft = result.draft
            return
        decision.policy_blocked = True
        decision.action = Action.ESCALATE_WITH_DRAFT
        decision.internal = True
        decision.policy_reasons = list(result.policy_reasons)
        decision.draft = (
            f"Policy gate blocked LLM draft: {', '.join(result.policy_reasons)}\n\n"
            f"Original draft:\n{result.raw_draft}"
        )

    def _gate_template(self, decision: _Decision) -> _Decision:
        """Run the policy gate over a customer-facing template reply."""
        if not decision.draft or decision.internal:
            return decision
        verdict = self._policy.check(decision.draft)
        if not verdict.ok:
            logger.warning("Policy gate blocked template reply: %s", "; ".join(verdict.reasons))
            decision.policy_blocked = True
            decision.action = Action.ESCALATE_WITH_DRAFT
            decision.internal = True
            decision.policy_reasons = list(verdict.reasons)
            decision.draft = (
                "Policy gate blocked draft due to banned language: "
                + ", ".join(verdict.reasons)
            )
        return decision

    async def _customer_profile(
        self, verification: Optional[VerificationResult]
    ) -> Optional[CustomerProfile]:
        if (
            self._lookup is None
            or verification is None
            or verification.status is not VerificationStatus.VERIFIED
        ):
            return None
        email = (verification.customer.email if verification.customer else None) or verification.email
        if not email:
            return None
        try:
            return await asyncio.wait_for(
                self._lookup.get_customer_profile(email),
                timeout=self._settings.retrieval_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Customer profile lookup for %s timed out", email)
        except Exception as exc:
            logger.warning("Customer profile lookup for %s failed: %s", email, exc)
        return None

    def _auto_send_eligible(
        self,
        decision: _Decision,
        transition: Transition,
        confidence: float,
        classification: ClassificationResult,
    ) -> bool:
        settings = self._settings
        if not settings.auto_send_enabled or not decision.draft or decision.internal:
            return False
        if transition.action in _NON_SENDING_ACTIONS:
            return False
        if transition.state in _HELD_STATES:
            return False
        if confidence < settings.auto_send_threshold:
            return False
        if settings.require_verification_for_send:
            needs = classification.requires_verification or (
                classification.primary_intent in taxonomy.PROTECTED_INTENTS
            )
            verified = (
                decision.verification is not None
                and decision.verification.status is VerificationStatus.VERIFIED
            )
            if needs and not verified:
                return False
        return True

    async def _notify(self, result: IngestResult) -> None:
        for listener in self._listeners:
            try:
                await listener(result)
            except Exception as exc:
                logger.warning("Triage listener failed for thread %s: %s", result.thread_id, exc)

    # ------------------------------------------------------------------
    # Operator actions

    async def transition_thread(
        self,
        thread_id: str,
        to_state: ThreadState,
        *,
        reason: str = "",
        actor: Optional[str] = None,
    ) -> Thread:
        """Move a thread by hand along the allowed-transition map."""
        async with self._locks.for_thread(thread_id):
            thread = await self._require_thread(thread_id)
            if thread.human_handling_mode:
                raise InvalidTransitionError(
                    f"Thread {thread_id} is in observation mode; release it first"
                )
            if not is_valid_transition(thread.state, to_state):
                raise InvalidTransitionError(
                    f"Cannot move thread from {state_label(thread.state)} "
                    f"to {state_label(to_state)}"
                )
            updated = await self._threads.apply_transition(
                thread.id,
                thread.version,
                ThreadUpdate(
                    state=to_state,
                    summary=generate_thread_summary(
                        thread.last_intent or taxonomy.UNKNOWN, to_state, Action.NO_REPLY
                    ),
                ),
            )
            await self._threads.append_event(
                thread.id,
                EventType.MANUAL_TRANSITION.value,
                {
                    "actor": actor,
                    "stateTransition": {
                        "from": thread.state.value,
                        "to": to_state.value,
                        "reason": reason or f"Manually moved to {state_label(to_state)}",
                    },
                },
            )
        logger.info(
            "Thread %s manually moved %s -> %s by %s",
            thread_id,
            thread.state.value,
            to_state.value,
            actor or "unknown",
        )
        return updated

    async def _require_thread(self, thread_id: str) -> Thread:
        thread = await self._threads.get_thread(thread_id)
        if thread is None:
            raise ThreadNotFoundError(f"Thread {thread_id} not found")
        return thread


def _conversation_context(history: List[Message]) -> Optional[str]:
    if not history:
        return None
    return "\n".join(
        f"[{m.direction.value}]: {m.body_text[:CONTEXT_MESSAGE_CHARS]}"
        for m in history[:CONTEXT_MESSAGES]
    )


def _attachment_order_number(request: IngestRequest) -> Optional[str]:
    for attachment in request.attachments:
        number = extract_order_number(attachment.extracted_content or "")
        if number:
            return number
    return None


def _event_payload(
    request: IngestRequest,
    classification: ClassificationResult,
    decision: _Decision,
    transition: Transition,
) -> dict:
    payload: dict = {
        "intent": classification.primary_intent,
        "confidence": classification.confidence,
        "intents": [m.model_dump() for m in classification.intents],
        "classification_source": classification.source,
        "action": transition.action.value,
        "draft": decision.draft,
        "channel": request.channel,
        "requiredInfo": decision.required_info.as_payload(),
        "stateTransition": transition.as_payload(),
    }
    if decision.note:
        payload["note"] = decision.note
    if decision.draft and not decision.internal:
        promises = detect_promised_actions(decision.draft)
        if promises:
            payload["promisedActions"] = promises_payload(promises)
    if decision.verification is not None:
        payload["verification"] = {
            "status": decision.verification.status.value,
            "order_number": decision.verification.order_number,
            "flags": decision.verification.flags,
            "reason": decision.verification.message,
        }
    if decision.kb_results:
        payload["kb"] = [
            {"document_id": r.document.id, "score": round(r.score, 3), "sources": r.sources}
            for r in decision.kb_results
        ]
    result = decision.draft_result
    if result is not None:
        payload["llmDraft"] = {
            "success": result.success,
            "draft_id": result.draft_id,
            "kbDocsUsed": len(decision.kb_results),
            "citations": len(result.citations),
            "policyGatePassed": result.policy_passed,
            "policyViolations": result.policy_reasons,
            "promptTokens": result.input_tokens,
            "completionTokens": result.output_tokens,
            "error": result.error,
        }
    return payload
