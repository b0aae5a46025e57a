"""Read-only access to the knowledge base.

The retriever never writes documents; ingestion of KB content and chunk
embeddings belongs to a separate tool.
"""

from __future__ import annotations

import math
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

import psycopg
from psycopg.rows import dict_row
from rank_bm25 import BM25Okapi

from .schemas import KBChunk, KBDocument, ScoredMatch

TITLE_MATCH_SCORE = 0.9
BODY_MATCH_SCORE = 0.7
LEXICAL_MAX_SCORE = 0.5

ALL_VEHICLES = "All"
ALL_PRODUCTS = "All Products"


class KnowledgeStore(Protocol):
    async def documents_for_intent(self, intent: str, limit: int) -> List[ScoredMatch]: ...

    async def match_chunks(
        self,
        embedding: Sequence[float],
        limit: int,
        min_similarity: float,
        *,
        vehicle_tag: Optional[str] = None,
        product_tag: Optional[str] = None,
    ) -> List[ScoredMatch]: ...

    async def search_text(self, query: str, limit: int) -> List[ScoredMatch]: ...


def tokenize(text: str) -> List[str]:
    """Lowercase and keep only alpha-numerics."""
    return [
        t.lower()
        for t in "".join(c if c.isalnum() else " " for c in text).split()
        if t
    ]


def matches_tags(
    document: KBDocument, vehicle_tag: Optional[str], product_tag: Optional[str]
) -> bool:
    """True when the document applies to the requested vehicle and product.

    Untagged documents and documents tagged ``All``/``All Products`` apply
    everywhere.
    """
    if vehicle_tag and document.vehicle_tags:
        if vehicle_tag not in document.vehicle_tags and ALL_VEHICLES not in document.vehicle_tags:
            return False
    if product_tag and document.product_tags:
        if product_tag not in document.product_tags and ALL_PRODUCTS not in document.product_tags:
            return False
    return True


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if not norm:
        return 0.0
    return dot / norm


# ---------------------------------------------------------------------------
# Postgres implementation


_DOCUMENT_COLUMNS = "d.id, d.title, d.body, d.intent_tags, d.vehicle_tags, d.product_tags, d.source_url"


class PostgresKnowledgeStore:
    """Knowledge store backed by ``kb_documents``/``kb_chunks`` with pgvector.

    The connection must have had ``register_vector_async`` applied.
    """

    def __init__(self, conn: psycopg.AsyncConnection) -> None:
        self._conn = conn

    async def documents_for_intent(self, intent: str, limit: int) -> List[ScoredMatch]:
        sql = f"""
        SELECT {_DOCUMENT_COLUMNS}, MAX(score) AS score FROM (
            SELECT d.id AS doc_id, 1.0 AS score
            FROM kb_documents d
            WHERE %s = ANY(d.intent_tags)
            UNION ALL
            SELECT m.document_id AS doc_id, m.confidence AS score
            FROM kb_document_intents m
            WHERE m.intent = %s
        ) hits
        JOIN kb_documents d ON d.id = hits.doc_id
        GROUP BY {_DOCUMENT_COLUMNS}
        ORDER BY score DESC
        LIMIT %s
        """
        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(sql, (intent, intent, limit))
            rows = await cur.fetchall()
        return [ScoredMatch(document=_row_to_document(row), score=float(row["score"])) for row in rows]

    async def match_chunks(
        self,
        embedding: Sequence[float],
        limit: int,
        min_similarity: float,
        *,
        vehicle_tag: Optional[str] = None,
        product_tag: Optional[str] = None,
    ) -> List[ScoredMatch]:
        # ``<=>`` is pgvector's cosine distance operator. Tag filters run
        # before LIMIT so filtered-out chunks never take a slot.
        vehicle_tag = vehicle_tag or None
        product_tag = product_tag or None
        sql = f"""
        SELECT {_DOCUMENT_COLUMNS},
               c.id AS chunk_id, c.chunk_index, c.content,
               1 - (c.embedding <=> %s::vector) AS similarity
        FROM kb_chunks c
        JOIN kb_documents d ON d.id = c.document_id
        WHERE c.embedding IS NOT NULL
          AND 1 - (c.embedding <=> %s::vector) >= %s
          AND (%s::text IS NULL OR cardinality(d.vehicle_tags) = 0
               OR %s = ANY(d.vehicle_tags) OR %s = ANY(d.vehicle_tags))
          AND (%s::text IS NULL OR cardinality(d.product_tags) = 0
               OR %s = ANY(d.product_tags) OR %s = ANY(d.product_tags))
        ORDER BY c.embedding <=> %s::vector
        LIMIT %s
        """
        vector = list(embedding)
        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                sql,
                (
                    vector,
                    vector,
                    min_similarity,
                    vehicle_tag,
                    vehicle_tag,
                    ALL_VEHICLES,
                    product_tag,
                    product_tag,
                    ALL_PRODUCTS,
                    vector,
                    limit,
                ),
            )
            rows = await cur.fetchall()
        matches = []
        for row in rows:
            document = _row_to_document(row)
            chunk = KBChunk(
                id=str(row["chunk_id"]),
                document_id=document.id,
                chunk_index=row["chunk_index"],
                content=row["content"],
            )
            matches.append(
                ScoredMatch(document=document, chunk=chunk, score=float(row["similarity"]))
            )
        return matches

    async def search_text(self, query: str, limit: int) -> List[ScoredMatch]:
        pattern = f"%{query}%"
        sql = f"""
        SELECT {_DOCUMENT_COLUMNS},
               CASE WHEN d.title ILIKE %s THEN {TITLE_MATCH_SCORE}
                    WHEN d.body ILIKE %s THEN {BODY_MATCH_SCORE}
                    ELSE LEAST({LEXICAL_MAX_SCORE}, ts_rank(
                        to_tsvector('english', d.title || ' ' || coalesce(d.body, '')),
                        plainto_tsquery('english', %s)))
               END AS score
        FROM kb_documents d
        WHERE d.title ILIKE %s
           OR d.body ILIKE %s
           OR to_tsvector('english', d.title || ' ' || coalesce(d.body, ''))
              @@ plainto_tsquery('english', %s)
        ORDER BY score DESC
        LIMIT %s
        """
        params = (pattern, pattern, query, pattern, pattern, query, limit)
        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(sql, params)
            rows = await cur.fetchall()
        return [ScoredMatch(document=_row_to_document(row), score=float(row["score"])) for row in rows]


def _row_to_document(row: dict) -> KBDocument:
    return KBDocument(
        id=str(row["id"]),
        title=row["title"],
        body=row.get("body") or "",
        intent_tags=list(row.get("intent_tags") or []),
        vehicle_tags=list(row.get("vehicle_tags") or []),
        product_tags=list(row.get("product_tags") or []),
        source_url=row.get("source_url"),
    )


# ---------------------------------------------------------------------------
# In-memory implementation


class InMemoryKnowledgeStore(KnowledgeStore):
    def __init__(
        self,
        documents: Iterable[KBDocument] = (),
        chunks: Iterable[KBChunk] = (),
        intent_mappings: Optional[Dict[Tuple[str, str], float]] = None,
    ) -> None:
        self.documents: Dict[str, KBDocument] = {doc.id: doc for doc in documents}
        self.chunks: List[KBChunk] = list(chunks)
        self.intent_mappings: Dict[Tuple[str, str], float] = dict(intent_mappings or {})

    def add_document(self, document: KBDocument, *chunks: KBChunk) -> None:
        self.documents[document.id] = document
        self.chunks.extend(chunks)

    async def documents_for_intent(self, intent: str, limit: int) -> List[ScoredMatch]:
        best: Dict[str, float] = {}
        for document in self.documents.values():
            if intent in document.intent_tags:
                best[document.id] = 1.0
        for (document_id, mapped_intent), confidence in self.intent_mappings.items():
            if mapped_intent == intent and document_id in self.documents:
                best[document_id] = max(best.get(document_id, 0.0), confidence)
        ranked = sorted(best.items(), key=lambda item: item[1], reverse=True)[:limit]
        return [ScoredMatch(document=self.documents[doc_id], score=score) for doc_id, score in ranked]

    async def match_chunks(
        self,
        embedding: Sequence[float],
        limit: int,
        min_similarity: float,
        *,
        vehicle_tag: Optional[str] = None,
        product_tag: Optional[str] = None,
    ) -> List[ScoredMatch]:
        matches = []
        for chunk in self.chunks:
            document = self.documents.get(chunk.document_id)
            if document is None or not chunk.embedding:
                continue
            if not matches_tags(document, vehicle_tag, product_tag):
                continue
            similarity = cosine_similarity(embedding, chunk.embedding)
            if similarity >= min_similarity:
                matches.append(ScoredMatch(document=document, chunk=chunk, score=similarity))
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:limit]

    async def search_text(self, query: str, limit: int) -> List[ScoredMatch]:
        needle = query.lower()
        matches: List[ScoredMatch] = []
        remaining: List[KBDocument] = []
        for document in self.documents.values():
            if needle in document.title.lower():
                matches.append(ScoredMatch(document=document, score=TITLE_MATCH_SCORE))
            elif needle in document.body.lower():
                matches.append(ScoredMatch(document=document, score=BODY_MATCH_SCORE))
            else:
                remaining.append(document)
        matches.extend(_bm25_matches(query, remaining))
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:limit]


def _bm25_matches(query: str, documents: List[KBDocument]) -> List[ScoredMatch]:
    """Rank documents lexically, scaled into the lowest confidence tier."""
    terms = tokenize(query)
    if not documents or not terms:
        return []
    corpus = [tokenize(f"{doc.title} {doc.body}") for doc in documents]
    if not any(corpus):
        return []
    scores = BM25Okapi(corpus).get_scores(terms)
    top = max(scores)
    if top <= 0:
        return []
    return [
        ScoredMatch(document=document, score=LEXICAL_MAX_SCORE * float(score) / top)
        for document, score in zip(documents, scores)
        if score > 0
    ]
