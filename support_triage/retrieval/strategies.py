"""Independent retrieval strategies sharing one ``search`` interface.

Each strategy returns raw matches scored in ``[0, 1]``; weighting and
merging belongs to :class:`~support_triage.retrieval.hybrid.HybridRetriever`.
"""

from __future__ import annotations

import asyncio
from typing import List, Protocol

from .embedding import Embedder
from .schemas import ScoredMatch, SearchContext
from .store import ALL_PRODUCTS, ALL_VEHICLES, KnowledgeStore, matches_tags

__all__ = [
    "ALL_PRODUCTS",
    "ALL_VEHICLES",
    "IntentStrategy",
    "RetrievalStrategy",
    "SemanticStrategy",
    "TextStrategy",
    "matches_tags",
]


class RetrievalStrategy(Protocol):
    name: str

    async def search(self, context: SearchContext, limit: int) -> List[ScoredMatch]: ...


class IntentStrategy:
    name = "intent"

    def __init__(self, store: KnowledgeStore) -> None:
        self._store = store

    async def search(self, context: SearchContext, limit: int) -> List[ScoredMatch]:
        if not context.intent:
            return []
        return await self._store.documents_for_intent(context.intent, limit)


class SemanticStrategy:
    """Cosine similarity between the query and chunk embeddings."""

    name = "semantic"

    def __init__(
        self,
        store: KnowledgeStore,
        embedder: Embedder,
        *,
        min_similarity: float = 0.5,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._min_similarity = min_similarity

    async def search(self, context: SearchContext, limit: int) -> List[ScoredMatch]:
        if not context.query:
            return []
        # fastembed is CPU bound and synchronous.
        vectors = await asyncio.to_thread(self._embedder.embed, [context.query])
        return await self._store.match_chunks(
            vectors[0],
            limit,
            self._min_similarity,
            vehicle_tag=context.vehicle_tag,
            product_tag=context.product_tag,
        )


class TextStrategy:
    name = "text"

    def __init__(self, store: KnowledgeStore) -> None:
        self._store = store

    async def search(self, context: SearchContext, limit: int) -> List[ScoredMatch]:
        if not context.query:
            return []
        return await self._store.search_text(context.query, limit)
