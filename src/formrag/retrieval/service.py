"""Hybrid retrieval over the customer index."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import List, Protocol, Sequence

from formrag.embeddings.service import EmbeddingBackend
from formrag.embeddings.store import SearchIndex
from formrag.errors import UpstreamProviderError
from formrag.metrics.observability import PipelineMetrics, get_logger
from formrag.models import RetrievalSummary, SearchResult


@dataclass(frozen=True)
class RetrievalConfig:
    """Configuration for retrieval."""

    top_k: int = 5
    similarity_window: int = 3


class Retriever(Protocol):
    """Retrieve ranked results and aggregate signals for a query string."""

    async def retrieve(
        self,
        query: str,
        *,
        customer_id: str | None = None,
        top_k: int | None = None,
    ) -> RetrievalSummary:
        """Return the ranked results with their average scores."""


class HybridRetriever:
    """Embeds the query and runs hybrid search against the index."""

    def __init__(
        self,
        embedder: EmbeddingBackend,
        index: SearchIndex,
        config: RetrievalConfig | None = None,
    ) -> None:
        self._embedder = embedder
        self._index = index
        self._config = config or RetrievalConfig()
        self._logger = get_logger("retrieval")

    async def retrieve(
        self,
        query: str,
        *,
        customer_id: str | None = None,
        top_k: int | None = None,
    ) -> RetrievalSummary:
        limit = max(1, top_k or self._config.top_k)
        start = time.perf_counter()
        vectors = await self._embedder.embed([query])
        if not vectors:
            raise UpstreamProviderError("embeddings", "No vector returned for query")
        results = list(
            await self._index.hybrid_search(
                vectors[0],
                top_k=limit,
                customer_id=customer_id,
                query_text=query,
            ),
        )
        duration = time.perf_counter() - start
        summary = summarize(results, window=self._config.similarity_window)
        PipelineMetrics.observe_retrieval(duration, len(results), (r.score for r in results))
        self._logger.info(
            "retrieval.complete",
            customer_id=customer_id,
            result_count=len(results),
            avg_similarity=summary.avg_similarity,
            avg_lexical=summary.avg_lexical,
            duration_seconds=duration,
            top_k=limit,
        )
        return summary


def summarize(results: Sequence[SearchResult], *, window: int = 3) -> RetrievalSummary:
    """Aggregate similarity over the top ``window`` hits and lexical over all hits."""

    if not results:
        return RetrievalSummary()
    head = results[:window]
    avg_similarity = sum(r.score for r in head) / len(head)
    # providers without a distinct lexical score fall back to similarity
    lexical = [r.lexical_score if r.lexical_score is not None else r.score for r in results]
    avg_lexical = sum(lexical) / len(lexical)
    return RetrievalSummary(results=tuple(results), avg_similarity=avg_similarity, avg_lexical=avg_lexical)


def extract_source_paths(results: Sequence[SearchResult]) -> List[str]:
    """Unique data paths in rank order."""

    seen: set[str] = set()
    ordered: List[str] = []
    for result in results:
        if not result.data_path or result.data_path in seen:
            continue
        seen.add(result.data_path)
        ordered.append(result.data_path)
    return ordered
