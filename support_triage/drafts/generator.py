"""Knowledge-grounded draft generation.

One model call per draft. The raw output always passes through the policy
gate before it may become the final draft, and every attempt is recorded.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import List, Optional
from uuid import uuid4

from ..core.clock import Clock, utcnow
from ..llm.client import LanguageModel
from ..llm.instructions import SystemPromptBuilder
from ..retrieval.schemas import SearchResult
from ..settings import TriageSettings
from .policy import PolicyGate
from .prompts import build_user_prompt
from .repository import DraftRepository
from .schemas import Citation, DraftGeneration, DraftInput, DraftResult

logger = logging.getLogger(__name__)

_CITATION = re.compile(r"\[KB:\s*([^\]]+)\]")


def extract_citations(text: str, results: List[SearchResult]) -> List[Citation]:
    """Match ``[KB: Title]`` markers to the supplied results, once per document."""
    by_title = {}
    for result in results:
        by_title.setdefault(result.document.title.strip().lower(), result)
    citations: List[Citation] = []
    seen = set()
    for match in _CITATION.finditer(text or ""):
        result = by_title.get(match.group(1).strip().lower())
        if result is None or result.document.id in seen:
            continue
        seen.add(result.document.id)
        citations.append(
            Citation(
                document_id=result.document.id,
                title=result.document.title,
                chunk_id=result.chunk.id if result.chunk else None,
                score=result.score,
            )
        )
    return citations


class DraftGenerator:
    def __init__(
        self,
        llm: LanguageModel,
        prompts: SystemPromptBuilder,
        repository: DraftRepository,
        settings: TriageSettings,
        *,
        policy: Optional[PolicyGate] = None,
        clock: Clock = utcnow,
    ) -> None:
        self._llm = llm
        self._prompts = prompts
        self._repository = repository
        self._settings = settings
        self._policy = policy or PolicyGate(settings.agent_name, competitors=settings.competitors)
        self._clock = clock

    @property
    def is_configured(self) -> bool:
        return self._llm.is_configured

    async def generate(self, draft_input: DraftInput) -> DraftResult:
        try:
            result = await asyncio.wait_for(
                self._generate(draft_input), timeout=self._settings.generation_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Draft generation for thread %s timed out after %.1fs",
                draft_input.thread_id,
                self._settings.generation_timeout_seconds,
            )
            result = DraftResult(success=False, error="Draft generation timed out")
        except Exception as exc:
            logger.warning("Draft generation for thread %s failed: %s", draft_input.thread_id, exc)
            result = DraftResult(success=False, error=str(exc))

        generation = await self._repository.record(self._generation(draft_input, result))
        return result.model_copy(update={"draft_id": generation.id})

    async def _generate(self, draft_input: DraftInput) -> DraftResult:
        system_prompt = await self._prompts.build(draft_input.intent)
        user_prompt = build_user_prompt(
            draft_input,
            now=self._clock(),
            agent_name=self._settings.agent_name,
            history_limit=self._settings.history_limit,
            history_message_chars=self._settings.history_message_chars,
            stale_thread_days=self._settings.stale_thread_days,
            stale_response_days=self._settings.stale_response_days,
        )
        completion = await self._llm.complete(
            system_prompt=system_prompt, user_prompt=user_prompt, task="drafting"
        )
        raw = completion.content.strip()
        if not raw:
            raise ValueError("Model returned an empty draft")

        verdict = self._policy.check(raw)
        if not verdict.ok:
            logger.warning(
                "Policy gate blocked draft for thread %s: %s",
                draft_input.thread_id,
                "; ".join(verdict.reasons),
            )
        return DraftResult(
            success=True,
            draft=raw if verdict.ok else None,
            raw_draft=raw,
            citations=extract_citations(raw, draft_input.kb_results),
            policy_passed=verdict.ok,
            policy_reasons=list(verdict.reasons),
            model=completion.model,
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
        )

    def _generation(self, draft_input: DraftInput, result: DraftResult) -> DraftGeneration:
        return DraftGeneration(
            id=str(uuid4()),
            thread_id=draft_input.thread_id,
            message_id=draft_input.message_id,
            intent=draft_input.intent,
            kb_document_ids=[r.document.id for r in draft_input.kb_results],
            kb_chunk_ids=[r.chunk.id for r in draft_input.kb_results if r.chunk is not None],
            raw_draft=result.raw_draft,
            final_draft=result.draft if result.policy_passed else None,
            citations=result.citations,
            policy_gate_passed=result.policy_passed,
            policy_violations=result.policy_reasons,
            model=result.model,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            error=result.error,
            created_at=self._clock(),
        )
