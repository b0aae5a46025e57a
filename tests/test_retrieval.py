import asyncio

import pytest
from conftest import FIRMWARE_DOC, INSTALL_DOC, SHIPPING_DOC, KeywordEmbedder, make_knowledge

from support_triage.intents import taxonomy
from support_triage.retrieval.hybrid import HybridRetriever, sanitize_query
from support_triage.retrieval.schemas import KBChunk, KBDocument, SearchContext, SearchOptions
from support_triage.retrieval.store import InMemoryKnowledgeStore, cosine_similarity, tokenize
from support_triage.retrieval.strategies import SemanticStrategy, matches_tags


class _IntentOutage(InMemoryKnowledgeStore):
    async def documents_for_intent(self, intent, limit):
        raise ConnectionError("kb_document_intents unavailable")


class _SlowVectors(InMemoryKnowledgeStore):
    async def match_chunks(self, embedding, limit, min_similarity, **tags):
        await asyncio.sleep(0.5)
        return await super().match_chunks(embedding, limit, min_similarity, **tags)


def _retriever(store=None, **kwargs):
    return HybridRetriever(store or make_knowledge(), KeywordEmbedder(), **kwargs)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Where's my <i>order</i>?!!", "Where's my order ?"),
        ("<b>Hi</b>", ""),
        ("  firmware   update\n", "firmware update"),
        ("x" * 150, "x" * 100),
        ("", ""),
    ],
)
def test_sanitize_query(raw, expected):
    assert sanitize_query(raw) == expected


async def test_all_three_passes_sum_for_one_document():
    results = await _retriever().search(
        SearchContext(query="firmware update", intent=taxonomy.FIRMWARE_UPDATE_REQUEST)
    )
    assert len(results) == 1
    top = results[0]
    assert top.document.id == "kb-firmware"
    assert top.score == pytest.approx(0.99)
    assert top.sources == ["intent", "semantic", "text"]
    assert top.chunk.id == "chunk-firmware-0"


async def test_semantic_then_lexical_without_intent():
    results = await _retriever().search(SearchContext(query="harness wiring"))
    assert [r.document.id for r in results] == ["kb-install"]
    assert results[0].score == pytest.approx(0.45)
    assert results[0].sources == ["semantic", "text"]


async def test_failing_pass_is_skipped():
    store = _IntentOutage(documents=[SHIPPING_DOC, FIRMWARE_DOC, INSTALL_DOC])
    retriever = _retriever(store)
    context = SearchContext(query="Shipping Times", intent=taxonomy.ORDER_STATUS)

    results = await retriever.search(context, SearchOptions(min_score=0.2))
    assert [r.document.id for r in results] == ["kb-shipping"]
    assert results[0].score == pytest.approx(0.27)
    assert results[0].sources == ["text"]

    assert await retriever.search(context) == []


async def test_slow_pass_times_out():
    store = _SlowVectors(documents=make_knowledge().documents.values(), chunks=make_knowledge().chunks)
    retriever = _retriever(store, timeout_seconds=0.01)
    results = await retriever.search(
        SearchContext(query="firmware update", intent=taxonomy.FIRMWARE_UPDATE_REQUEST)
    )
    assert results[0].sources == ["intent", "text"]
    assert results[0].score == pytest.approx(0.69)


async def test_intent_mappings_carry_confidence():
    store = make_knowledge()
    store.intent_mappings[("kb-install", taxonomy.ORDER_STATUS)] = 0.5
    results = await _retriever(store).search_by_intent(taxonomy.ORDER_STATUS)
    assert [(r.document.id, round(r.score, 2)) for r in results] == [
        ("kb-shipping", 0.6),
        ("kb-install", 0.3),
    ]


async def test_limit_and_min_score():
    store = make_knowledge()
    store.intent_mappings[("kb-install", taxonomy.ORDER_STATUS)] = 0.4
    retriever = _retriever(store)
    context = SearchContext(intent=taxonomy.ORDER_STATUS)
    assert [r.document.id for r in await retriever.search(context)] == ["kb-shipping"]
    best = await retriever.get_best_match(context)
    assert best.document.id == "kb-shipping"
    suggested = await retriever.get_suggested_content(context)
    assert [r.document.id for r in suggested] == ["kb-shipping", "kb-install"]


async def test_has_relevant_content():
    retriever = _retriever()
    assert await retriever.has_relevant_content(SearchContext(intent=taxonomy.INSTALL_GUIDANCE))
    assert not await retriever.has_relevant_content(SearchContext(query="zzz qqq"))


async def test_search_by_query_uses_semantic_pass():
    results = await _retriever().search_by_query("mount it", limit=1)
    assert results[0].document.id == "kb-install"
    assert "semantic" in results[0].sources


async def test_without_embedder_semantic_pass_is_skipped():
    retriever = HybridRetriever(make_knowledge())
    results = await retriever.search(
        SearchContext(query="Installation Guide"), SearchOptions(min_score=0.2)
    )
    assert [r.document.id for r in results] == ["kb-install"]
    assert results[0].sources == ["text"]
    assert results[0].score == pytest.approx(0.27)


def test_matches_tags():
    assert matches_tags(FIRMWARE_DOC, None, "Gauge Kit")
    assert not matches_tags(FIRMWARE_DOC, None, "Boost Controller")
    assert matches_tags(INSTALL_DOC, "2015 Silverado", None)
    assert matches_tags(SHIPPING_DOC, "2015 Silverado", "Boost Controller")


async def test_semantic_strategy_filters_by_product():
    strategy = SemanticStrategy(make_knowledge(), KeywordEmbedder())
    matches = await strategy.search(
        SearchContext(query="firmware", product_tag="Boost Controller"), 5
    )
    assert matches == []


def test_helpers():
    assert tokenize("Mount-the UNIT, now!") == ["mount", "the", "unit", "now"]
    assert cosine_similarity([1.0, 0.0], [0.0, 0.0]) == 0.0
    assert cosine_similarity([1.0, 1.0], [2.0, 2.0]) == pytest.approx(1.0)


def _tagged_store():
    store = InMemoryKnowledgeStore()
    for index in range(3):
        store.add_document(
            KBDocument(id=f"kb-ford-{index}", title=f"Ford firmware {index}", vehicle_tags=["F-150"]),
            KBChunk(id=f"ford-{index}", document_id=f"kb-ford-{index}", content="", embedding=[1.0, 0.0, 0.0]),
        )
    store.add_document(
        KBDocument(id="kb-chevy", title="Chevy firmware", vehicle_tags=["Silverado"]),
        KBChunk(id="chevy-0", document_id="kb-chevy", content="", embedding=[0.9, 0.1, 0.0]),
    )
    store.add_document(
        KBDocument(id="kb-any", title="Universal firmware", vehicle_tags=["All"]),
        KBChunk(id="any-0", document_id="kb-any", content="", embedding=[0.8, 0.2, 0.0]),
    )
    return store


async def test_vehicle_filter_applies_before_the_limit():
    strategy = SemanticStrategy(_tagged_store(), KeywordEmbedder())
    matches = await strategy.search(SearchContext(query="firmware", vehicle_tag="Silverado"), 2)
    assert [m.document.id for m in matches] == ["kb-chevy", "kb-any"]


async def test_store_tag_filter_keeps_untagged_and_all_documents():
    store = _tagged_store()
    store.add_document(
        KBDocument(id="kb-plain", title="Plain"),
        KBChunk(id="plain-0", document_id="kb-plain", content="", embedding=[0.7, 0.3, 0.0]),
    )
    matches = await store.match_chunks([1.0, 0.0, 0.0], 10, 0.5, vehicle_tag="Silverado")
    assert [m.document.id for m in matches] == ["kb-chevy", "kb-any", "kb-plain"]
    unfiltered = await store.match_chunks([1.0, 0.0, 0.0], 10, 0.5)
    assert len(unfiltered) == 6


async def test_merged_scores_stay_normalised_with_unique_documents():
    store = make_knowledge()
    for index in range(1, 4):
        store.chunks.append(
            KBChunk(
                id=f"chunk-firmware-{index}",
                document_id="kb-firmware",
                chunk_index=index,
                content="Firmware portal steps.",
                embedding=[1.0, 0.0, 0.0],
            )
        )
    store.intent_mappings[("kb-install", taxonomy.FIRMWARE_UPDATE_REQUEST)] = 0.9
    results = await _retriever(store).search(
        SearchContext(query="firmware update", intent=taxonomy.FIRMWARE_UPDATE_REQUEST),
        SearchOptions(limit=10, min_score=0.0),
    )

    ids = [r.document.id for r in results]
    assert len(ids) == len(set(ids))
    assert ids[0] == "kb-firmware"
    assert results[0].score == pytest.approx(1.0)
    assert all(0.0 <= r.score <= 1.0 for r in results)
    assert [r.score for r in results] == sorted((r.score for r in results), reverse=True)
    assert all(len(r.sources) == len(set(r.sources)) for r in results)
