from __future__ import annotations

import pytest

from formrag.models import SearchResult
from formrag.retrieval.service import HybridRetriever, RetrievalConfig, extract_source_paths, summarize


def _result(chunk_id: str, path: str, score: float, lexical: float | None = None) -> SearchResult:
    return SearchResult(chunk_id=chunk_id, content=f"content {chunk_id}", data_path=path, score=score, lexical_score=lexical)


class FakeIndex:
    def __init__(self, results):
        self.results = results
        self.calls = []

    async def hybrid_search(self, vector, *, top_k=5, customer_id=None, query_text=None):
        self.calls.append({"top_k": top_k, "customer_id": customer_id, "query_text": query_text})
        return self.results[:top_k]


def test_summarize_averages_top_three_similarity_and_all_lexical():
    results = [
        _result("1", "a", 0.9, 60.0),
        _result("2", "b", 0.8, 30.0),
        _result("3", "c", 0.7, 0.0),
        _result("4", "d", 0.1, 10.0),
    ]
    summary = summarize(results)
    assert summary.avg_similarity == pytest.approx(0.8)
    assert summary.avg_lexical == pytest.approx(25.0)
    assert not summary.is_empty


def test_summarize_falls_back_to_similarity_without_lexical():
    summary = summarize([_result("1", "a", 0.6), _result("2", "b", 0.4)])
    assert summary.avg_similarity == pytest.approx(0.5)
    assert summary.avg_lexical == pytest.approx(0.5)


def test_summarize_empty():
    summary = summarize([])
    assert summary.is_empty
    assert summary.avg_similarity == 0.0
    assert summary.avg_lexical == 0.0


def test_extract_source_paths_keeps_rank_order_without_duplicates():
    results = [_result("1", "contact.email", 0.9), _result("2", "notes[0]", 0.8), _result("3", "contact.email", 0.7)]
    assert extract_source_paths(results) == ["contact.email", "notes[0]"]


@pytest.mark.asyncio
async def test_retriever_passes_scope_and_query_text(embedder):
    index = FakeIndex([_result("1", "contact.email", 0.9, 50.0), _result("2", "company.name", 0.5, 0.0)])
    retriever = HybridRetriever(embedder, index, RetrievalConfig(top_k=5))
    summary = await retriever.retrieve("what is the email", customer_id="cust-123")
    assert index.calls == [{"top_k": 5, "customer_id": "cust-123", "query_text": "what is the email"}]
    assert embedder.calls == [["what is the email"]]
    assert [r.chunk_id for r in summary.results] == ["1", "2"]
    assert summary.avg_similarity == pytest.approx(0.7)
    assert summary.avg_lexical == pytest.approx(25.0)


@pytest.mark.asyncio
async def test_retriever_honours_explicit_top_k(embedder):
    index = FakeIndex([_result(str(i), f"p{i}", 0.5) for i in range(10)])
    summary = await HybridRetriever(embedder, index).retrieve("question", top_k=2)
    assert len(summary.results) == 2
    assert index.calls[0]["top_k"] == 2
