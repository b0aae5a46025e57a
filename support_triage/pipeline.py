"""Assemble the triage pipeline from its stores and components.

``build_in_memory_pipeline`` wires everything against in-process stores and
is what tests and local runs use. ``build_postgres_pipeline`` opens one
async connection with pgvector registered and uses the Postgres stores.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import psycopg
from pgvector.psycopg import register_vector_async

from .collaboration.observation import ObservationController
from .collaboration.repository import (
    InMemoryObservationRepository,
    ObservationRepository,
    PostgresObservationRepository,
)
from .core.clock import Clock, utcnow
from .core.locks import ThreadLocks
from .drafts.generator import DraftGenerator
from .drafts.policy import PolicyGate
from .drafts.repository import DraftRepository, InMemoryDraftRepository, PostgresDraftRepository
from .ingest.orchestrator import TriageOrchestrator
from .intents.assignments import ThreadIntentTracker
from .intents.catalog import IntentCatalog
from .intents.classifier import IntentClassifier
from .intents.keyword import KeywordClassifier
from .intents.repository import (
    InMemoryIntentRepository,
    IntentRepository,
    PostgresIntentRepository,
)
from .llm.client import LanguageModel, build_language_model
from .llm.instructions import (
    InMemoryInstructionRepository,
    InstructionCache,
    InstructionRepository,
    PostgresInstructionRepository,
    SystemPromptBuilder,
)
from .orders.lookup import OrderLookup
from .retrieval.embedding import Embedder, FastEmbedEmbedder
from .retrieval.hybrid import HybridRetriever
from .retrieval.schemas import SearchOptions
from .retrieval.store import InMemoryKnowledgeStore, KnowledgeStore, PostgresKnowledgeStore
from .schema import ensure_schema
from .settings import TriageSettings, get_settings
from .threads.repository import (
    InMemoryThreadRepository,
    PostgresThreadRepository,
    ThreadRepository,
)
from .verification.gate import VerificationGate
from .verification.repository import (
    InMemoryVerificationRepository,
    PostgresVerificationRepository,
    VerificationRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class TriagePipeline:
    settings: TriageSettings
    threads: ThreadRepository
    drafts: DraftRepository
    verifications: VerificationRepository
    catalog: IntentCatalog
    instructions: InstructionCache
    retriever: HybridRetriever
    observations: ObservationController
    orchestrator: TriageOrchestrator
    tracker: ThreadIntentTracker
    connections: List[psycopg.AsyncConnection] = field(default_factory=list)

    async def close(self) -> None:
        for conn in self.connections:
            await conn.close()
        self.connections.clear()


def assemble_pipeline(
    settings: TriageSettings,
    *,
    threads: ThreadRepository,
    drafts: DraftRepository,
    verifications: VerificationRepository,
    observations: ObservationRepository,
    intents: IntentRepository,
    instructions: InstructionRepository,
    knowledge: KnowledgeStore,
    llm: Optional[LanguageModel] = None,
    embedder: Optional[Embedder] = None,
    lookup: Optional[OrderLookup] = None,
    clock: Clock = utcnow,
) -> TriagePipeline:
    llm = llm if llm is not None else build_language_model(settings)
    locks = ThreadLocks()
    policy = PolicyGate(settings.agent_name, competitors=settings.competitors)

    catalog = IntentCatalog(intents, refresh_seconds=settings.intent_refresh_seconds)
    classifier = IntentClassifier(
        llm,
        catalog,
        keyword_classifier=KeywordClassifier(),
        min_confidence=settings.min_intent_confidence,
        timeout_seconds=settings.classify_timeout_seconds,
    )
    tracker = ThreadIntentTracker(threads, clock)
    gate = VerificationGate(
        verifications, lookup, timeout_seconds=settings.retrieval_timeout_seconds
    )
    retriever = HybridRetriever(
        knowledge,
        embedder,
        timeout_seconds=settings.retrieval_timeout_seconds,
        default_options=SearchOptions(
            limit=settings.search_limit, min_score=settings.search_min_score
        ),
    )
    instruction_cache = InstructionCache(instructions, ttl_seconds=settings.instruction_ttl_seconds)
    generator = DraftGenerator(
        llm,
        SystemPromptBuilder(instruction_cache, settings),
        drafts,
        settings,
        policy=policy,
        clock=clock,
    )
    controller = ObservationController(threads, observations, drafts, locks=locks, clock=clock)
    orchestrator = TriageOrchestrator(
        threads,
        classifier,
        tracker,
        gate,
        retriever,
        generator,
        controller,
        settings,
        lookup=lookup,
        policy=policy,
        locks=locks,
        clock=clock,
    )
    return TriagePipeline(
        settings=settings,
        threads=threads,
        drafts=drafts,
        verifications=verifications,
        catalog=catalog,
        instructions=instruction_cache,
        retriever=retriever,
        observations=controller,
        orchestrator=orchestrator,
        tracker=tracker,
    )


def build_in_memory_pipeline(
    settings: Optional[TriageSettings] = None,
    *,
    llm: Optional[LanguageModel] = None,
    knowledge: Optional[InMemoryKnowledgeStore] = None,
    embedder: Optional[Embedder] = None,
    lookup: Optional[OrderLookup] = None,
    instructions: Optional[InMemoryInstructionRepository] = None,
    clock: Clock = utcnow,
) -> TriagePipeline:
    settings = settings or get_settings()
    return assemble_pipeline(
        settings,
        threads=InMemoryThreadRepository(clock),
        drafts=InMemoryDraftRepository(clock),
        verifications=InMemoryVerificationRepository(clock),
        observations=InMemoryObservationRepository(),
        intents=InMemoryIntentRepository(),
        instructions=instructions or InMemoryInstructionRepository(),
        knowledge=knowledge if knowledge is not None else InMemoryKnowledgeStore(),
        llm=llm,
        embedder=embedder,
        lookup=lookup,
        clock=clock,
    )


async def build_postgres_pipeline(
    settings: Optional[TriageSettings] = None,
    *,
    llm: Optional[LanguageModel] = None,
    lookup: Optional[OrderLookup] = None,
) -> TriagePipeline:
    settings = settings or get_settings()
    if not settings.database_url:
        raise RuntimeError("DATABASE_URL not configured")
    applied = await asyncio.to_thread(ensure_schema, settings.database_url)
    if applied:
        logger.info("Applied %d schema migration(s)", len(applied))
    conn = await psycopg.AsyncConnection.connect(settings.database_url, autocommit=True)
    await register_vector_async(conn)
    logger.info("Connected triage pipeline to PostgreSQL")
    pipeline = assemble_pipeline(
        settings,
        threads=PostgresThreadRepository(conn),
        drafts=PostgresDraftRepository(conn),
        verifications=PostgresVerificationRepository(conn),
        observations=PostgresObservationRepository(conn),
        intents=PostgresIntentRepository(conn),
        instructions=PostgresInstructionRepository(conn),
        knowledge=PostgresKnowledgeStore(conn),
        llm=llm,
        embedder=FastEmbedEmbedder(settings.embedding_model),
        lookup=lookup,
    )
    pipeline.connections.append(conn)
    return pipeline
