from __future__ import annotations

import pytest

from formrag.cache.keys import indexed_marker_key, make_query_cache_key
from formrag.ingestion.service import CustomerDataIngestor
from formrag.models import RetrievalSummary
from formrag.retrieval.service import HybridRetriever
from formrag.services.generation import AnswerGenerator
from formrag.services.query import NO_INFORMATION_ANSWER, FormQueryService
from formrag.storage.blob import FilesystemObjectStore

from conftest import BrokenCacheStore, ScriptedCompletionProvider, write_customer

QUESTION = "What is the customer's email address?"


class CountingIngestor:
    def __init__(self, inner: CustomerDataIngestor) -> None:
        self.inner = inner
        self.runs = 0

    async def ingest(self, customer_id, *, force_reindex=False):
        self.runs += 1
        return await self.inner.ingest(customer_id, force_reindex=force_reindex)


class EmptyRetriever:
    async def retrieve(self, query, *, customer_id=None, top_k=None):
        return RetrievalSummary()


def _service(object_store, index, embedder, cache, tokenizer, *, provider=None, retriever=None):
    ingestor = CountingIngestor(
        CustomerDataIngestor(
            object_store=object_store,
            index=index,
            embedder=embedder,
            cache=cache,
            tokenizer=tokenizer,
        ),
    )
    provider = provider or ScriptedCompletionProvider()
    service = FormQueryService(
        cache=cache,
        ingestor=ingestor,
        retriever=retriever or HybridRetriever(embedder, index),
        generator=AnswerGenerator(provider),
    )
    return service, ingestor, provider


@pytest.mark.asyncio
async def test_answers_from_customer_data_then_serves_from_cache(object_store, index, embedder, cache, tokenizer):
    service, ingestor, provider = _service(object_store, index, embedder, cache, tokenizer)

    first = await service.answer(QUESTION, customer_id="cust-123")
    assert "john.doe@example.com" in first.answer
    assert "contact.email" in first.data_path
    assert 0.0 < first.confidence <= 1.0
    assert 0 < len(first.sources) <= 5
    assert first.cached is False
    assert ingestor.runs == 1

    second = await service.answer(QUESTION, customer_id="cust-123")
    assert second.cached is True
    assert second.answer == first.answer
    assert second.confidence == first.confidence
    assert len(provider.calls) == 1

    stored = await cache.get(make_query_cache_key(QUESTION, "cust-123"))
    assert stored["cached"] is False


@pytest.mark.asyncio
async def test_equivalent_questions_share_a_cache_entry(object_store, index, embedder, cache, tokenizer):
    service, _, provider = _service(object_store, index, embedder, cache, tokenizer)
    await service.answer("What is the email?", customer_id="cust-123")
    repeat = await service.answer("  what IS the   email!! ", customer_id="cust-123")
    assert repeat.cached is True
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_ingestion_marker_prevents_reingestion(object_store, index, embedder, cache, tokenizer):
    service, ingestor, _ = _service(object_store, index, embedder, cache, tokenizer)
    await service.answer("What is the email?", customer_id="cust-123")
    await service.answer("What is the company name?", customer_id="cust-123")
    assert ingestor.runs == 1
    assert await cache.exists(indexed_marker_key("cust-123"))


@pytest.mark.asyncio
async def test_empty_retrieval_returns_fixed_answer_and_is_not_cached(object_store, index, embedder, cache, tokenizer):
    service, _, provider = _service(
        object_store, index, embedder, cache, tokenizer, retriever=EmptyRetriever()
    )
    response = await service.answer(QUESTION)
    assert response.answer == NO_INFORMATION_ANSWER
    assert response.confidence == 0.0
    assert list(response.sources) == []
    assert list(response.data_path) == []
    assert provider.calls == []
    assert await cache.get(make_query_cache_key(QUESTION)) is None


@pytest.mark.asyncio
async def test_corrupt_cache_entry_is_a_miss(object_store, index, embedder, cache, tokenizer):
    service, _, provider = _service(object_store, index, embedder, cache, tokenizer)
    await cache.set_raw(make_query_cache_key(QUESTION, "cust-123"), "{truncated")
    response = await service.answer(QUESTION, customer_id="cust-123")
    assert response.cached is False
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_malformed_cache_payload_is_a_miss(object_store, index, embedder, cache, tokenizer):
    service, _, _ = _service(object_store, index, embedder, cache, tokenizer)
    await cache.set(make_query_cache_key(QUESTION, "cust-123"), {"answer": "stale"})
    response = await service.answer(QUESTION, customer_id="cust-123")
    assert response.cached is False


@pytest.mark.asyncio
async def test_cache_outage_does_not_fail_requests(object_store, index, embedder, tokenizer):
    broken = BrokenCacheStore()
    service, ingestor, _ = _service(object_store, index, embedder, broken, tokenizer)
    response = await service.answer(QUESTION, customer_id="cust-123")
    assert "john.doe@example.com" in response.answer
    assert response.cached is False
    assert ingestor.runs == 1


@pytest.mark.asyncio
async def test_missing_citations_fall_back_to_retrieved_paths(object_store, index, embedder, cache, tokenizer):
    provider = ScriptedCompletionProvider(
        {"answer": "john.doe@example.com", "dataPath": [], "explanation": "", "confidence": 0.8}
    )
    service, _, _ = _service(object_store, index, embedder, cache, tokenizer, provider=provider)
    response = await service.answer(QUESTION, customer_id="cust-123")
    assert response.data_path
    assert list(response.data_path) == list(dict.fromkeys(s.data_path for s in response.sources))


@pytest.mark.asyncio
async def test_customer_without_informative_fields_gets_no_information(data_root, index, embedder, cache, tokenizer):
    write_customer(data_root, "cust-empty", {"status": "ok", "tags": ["a", "b"], "score": 7})
    service, ingestor, provider = _service(FilesystemObjectStore(data_root), index, embedder, cache, tokenizer)
    response = await service.answer(QUESTION, customer_id="cust-empty")
    assert ingestor.runs == 1
    assert response.answer == NO_INFORMATION_ANSWER
    assert response.confidence == 0.0
    assert list(response.sources) == []
    assert provider.calls == []


@pytest.mark.asyncio
async def test_cached_confidence_out_of_range_is_a_miss(object_store, index, embedder, cache, tokenizer):
    service, _, provider = _service(object_store, index, embedder, cache, tokenizer)
    await cache.set(
        make_query_cache_key(QUESTION, "cust-123"),
        {"answer": "stale", "dataPath": ["contact.email"], "confidence": 1.5, "sources": [], "cached": False},
    )
    response = await service.answer(QUESTION, customer_id="cust-123")
    assert response.cached is False
    assert 0.0 <= response.confidence <= 1.0
    assert len(provider.calls) == 1
