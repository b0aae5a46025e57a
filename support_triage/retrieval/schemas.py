"""Knowledge-base documents and retrieval results."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, Field


class KBDocument(BaseModel):
    id: str
    title: str
    body: str = ""
    intent_tags: list[str] = Field(default_factory=list)
    vehicle_tags: list[str] = Field(default_factory=list)
    product_tags: list[str] = Field(default_factory=list)
    source_url: str | None = None


class KBChunk(BaseModel):
    id: str
    document_id: str
    chunk_index: int = 0
    content: str
    embedding: list[float] | None = None


class SearchContext(BaseModel):
    query: str = ""
    intent: str | None = None
    vehicle_tag: str | None = None
    product_tag: str | None = None


class SearchOptions(BaseModel):
    limit: int = Field(default=5, ge=1)
    min_score: float = Field(default=0.3, ge=0.0, le=1.0)
    use_semantic: bool = True
    use_text_fallback: bool = True


class SearchResult(BaseModel):
    """One document with its merged score and contributing strategies."""

    document: KBDocument
    chunk: KBChunk | None = None
    score: float = Field(ge=0.0, le=1.0)
    sources: list[str] = Field(default_factory=list)


@dataclass
class ScoredMatch:
    """A single strategy's raw match, scored in [0, 1] before weighting."""

    document: KBDocument
    score: float
    chunk: KBChunk | None = None
