"""Hybrid retrieval over the knowledge base."""

from .embedding import Embedder, FastEmbedEmbedder
from .hybrid import HybridRetriever, sanitize_query
from .schemas import KBChunk, KBDocument, ScoredMatch, SearchContext, SearchOptions, SearchResult
from .store import InMemoryKnowledgeStore, KnowledgeStore, PostgresKnowledgeStore

__all__ = [
    "Embedder",
    "FastEmbedEmbedder",
    "HybridRetriever",
    "InMemoryKnowledgeStore",
    "KBChunk",
    "KBDocument",
    "KnowledgeStore",
    "PostgresKnowledgeStore",
    "ScoredMatch",
    "SearchContext",
    "SearchOptions",
    "SearchResult",
    "sanitize_query",
]
