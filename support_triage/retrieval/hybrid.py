"""Hybrid knowledge-base retrieval.

Three passes feed one score map keyed by document id:

1. intent lookup, weighted 0.6
2. semantic search, weighted 0.3 when the document already matched and 0.4
   otherwise; its chunk replaces any earlier one
3. text search, only when fewer than ``limit`` documents matched, weighted
   0.1 / 0.3 the same way

Scores from several passes are summed. Results below ``min_score`` are
dropped, the rest sorted and truncated, and the list is divided by the top
score when that exceeds 1. A failing or slow pass is logged and skipped.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .embedding import Embedder
from .schemas import KBChunk, KBDocument, ScoredMatch, SearchContext, SearchOptions, SearchResult
from .store import KnowledgeStore
from .strategies import IntentStrategy, RetrievalStrategy, SemanticStrategy, TextStrategy

logger = logging.getLogger(__name__)

INTENT_WEIGHT = 0.6
SEMANTIC_WEIGHT_MATCHED = 0.3
SEMANTIC_WEIGHT_NEW = 0.4
TEXT_WEIGHT_MATCHED = 0.1
TEXT_WEIGHT_NEW = 0.3

MAX_QUERY_LENGTH = 100
MIN_QUERY_LENGTH = 3
RELEVANT_MIN_SCORE = 0.5
SUGGESTED_MIN_SCORE = 0.2

_HTML_TAG = re.compile(r"<[^>]+>")
_SPECIAL = re.compile(r"[^\w\s'\-.?]")
_WHITESPACE = re.compile(r"\s+")


def sanitize_query(query: str) -> str:
    """Strip markup and punctuation noise; empty when too short to search."""
    text = _HTML_TAG.sub(" ", query or "")
    text = _SPECIAL.sub(" ", text)
    text = _WHITESPACE.sub(" ", text).strip()[:MAX_QUERY_LENGTH].strip()
    if len(text) < MIN_QUERY_LENGTH:
        return ""
    return text


@dataclass
class _Merged:
    document: KBDocument
    score: float
    chunk: Optional[KBChunk] = None
    sources: List[str] = field(default_factory=list)


class HybridRetriever:
    def __init__(
        self,
        store: KnowledgeStore,
        embedder: Optional[Embedder] = None,
        *,
        timeout_seconds: float = 10.0,
        default_options: Optional[SearchOptions] = None,
    ) -> None:
        self._intent = IntentStrategy(store)
        self._semantic: Optional[SemanticStrategy] = (
            SemanticStrategy(store, embedder) if embedder is not None else None
        )
        self._text = TextStrategy(store)
        self._timeout = timeout_seconds
        self._defaults = default_options or SearchOptions()

    async def search(
        self, context: SearchContext, options: Optional[SearchOptions] = None
    ) -> List[SearchResult]:
        options = options or self._defaults
        context = context.model_copy(update={"query": sanitize_query(context.query)})
        merged: Dict[str, _Merged] = {}

        if context.intent:
            for match in await self._run(self._intent, context, options.limit):
                self._merge(merged, match, "intent", INTENT_WEIGHT, INTENT_WEIGHT)

        if options.use_semantic and self._semantic is not None and context.query:
            # Over-fetch so overlap with the intent pass still leaves enough.
            for match in await self._run(self._semantic, context, options.limit * 2):
                self._merge(
                    merged,
                    match,
                    "semantic",
                    SEMANTIC_WEIGHT_MATCHED,
                    SEMANTIC_WEIGHT_NEW,
                    prefer_chunk=True,
                )

        if options.use_text_fallback and context.query and len(merged) < options.limit:
            for match in await self._run(self._text, context, options.limit):
                self._merge(merged, match, "text", TEXT_WEIGHT_MATCHED, TEXT_WEIGHT_NEW)

        return _finalize(merged, options)

    async def search_by_query(self, query: str, limit: int = 5) -> List[SearchResult]:
        return await self.search(
            SearchContext(query=query), self._defaults.model_copy(update={"limit": limit})
        )

    async def search_by_intent(
        self, intent: str, query: str = "", limit: int = 5
    ) -> List[SearchResult]:
        options = self._defaults.model_copy(update={"limit": limit, "use_semantic": False})
        return await self.search(SearchContext(intent=intent, query=query), options)

    async def get_best_match(self, context: SearchContext) -> Optional[SearchResult]:
        results = await self.search(context, self._defaults.model_copy(update={"limit": 1}))
        return results[0] if results else None

    async def has_relevant_content(self, context: SearchContext) -> bool:
        options = self._defaults.model_copy(update={"limit": 1, "min_score": RELEVANT_MIN_SCORE})
        return bool(await self.search(context, options))

    async def get_suggested_content(
        self, context: SearchContext, limit: int = 3
    ) -> List[SearchResult]:
        options = self._defaults.model_copy(
            update={"limit": limit, "min_score": SUGGESTED_MIN_SCORE}
        )
        return await self.search(context, options)

    async def _run(
        self, strategy: RetrievalStrategy, context: SearchContext, limit: int
    ) -> List[ScoredMatch]:
        try:
            return await asyncio.wait_for(strategy.search(context, limit), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("%s search timed out after %.1fs", strategy.name, self._timeout)
        except Exception as exc:
            logger.warning("%s search failed: %s", strategy.name, exc)
        return []

    @staticmethod
    def _merge(
        merged: Dict[str, _Merged],
        match: ScoredMatch,
        source: str,
        weight_if_matched: float,
        weight_if_new: float,
        *,
        prefer_chunk: bool = False,
    ) -> None:
        raw = min(max(match.score, 0.0), 1.0)
        entry = merged.get(match.document.id)
        if entry is None:
            merged[match.document.id] = _Merged(
                document=match.document,
                score=raw * weight_if_new,
                chunk=match.chunk,
                sources=[source],
            )
            return
        entry.score += raw * weight_if_matched
        if match.chunk is not None and (prefer_chunk or entry.chunk is None):
            entry.chunk = match.chunk
        if source not in entry.sources:
            entry.sources.append(source)


def _finalize(merged: Dict[str, _Merged], options: SearchOptions) -> List[SearchResult]:
    ranked = sorted(
        (entry for entry in merged.values() if entry.score >= options.min_score),
        key=lambda entry: entry.score,
        reverse=True,
    )[: options.limit]
    if not ranked:
        return []
    top = ranked[0].score
    scale = top if top > 1.0 else 1.0
    return [
        SearchResult(
            document=entry.document,
            chunk=entry.chunk,
            score=min(entry.score / scale, 1.0),
            sources=entry.sources,
        )
        for entry in ranked
    ]
