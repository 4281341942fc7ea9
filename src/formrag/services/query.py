"""Query orchestration combining caching, ingestion, retrieval, generation and scoring."""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from typing import Any

from formrag.cache.keys import CachePolicy, indexed_marker_key
from formrag.cache.store import CacheStore
from formrag.errors import CacheError, FormRagError
from formrag.ingestion.service import CustomerDataIngestor
from formrag.metrics.observability import PipelineMetrics, get_logger
from formrag.models import FormQueryResponse, Query, SourceReference
from formrag.retrieval.service import Retriever, extract_source_paths
from formrag.services.confidence import ConfidenceScorer
from formrag.services.generation import AnswerGenerator

NO_INFORMATION_ANSWER = "No relevant information found."


@dataclass(frozen=True)
class QueryServiceConfig:
    use_query_cache: bool = True
    top_k: int = 5
    max_sources: int = 5


class FormQueryService:
    """Runs one question through the full pipeline.

    Normalize -> cache lookup -> ensure ingested -> retrieve -> generate ->
    score -> assemble -> cache store. Stages run strictly in sequence and any
    stage failure aborts the rest; only cache reads and writes are best-effort.

    Two requests for the same not-yet-indexed customer may both ingest. That
    race is accepted: chunk ids are deterministic so the second run overwrites
    the first instead of duplicating it.
    """

    def __init__(
        self,
        *,
        cache: CacheStore,
        ingestor: CustomerDataIngestor,
        retriever: Retriever,
        generator: AnswerGenerator,
        scorer: ConfidenceScorer | None = None,
        config: QueryServiceConfig | None = None,
        cache_policy: CachePolicy | None = None,
    ) -> None:
        self._cache = cache
        self._ingestor = ingestor
        self._retriever = retriever
        self._generator = generator
        self._scorer = scorer or ConfidenceScorer()
        self._config = config or QueryServiceConfig()
        self._cache_policy = cache_policy or CachePolicy()
        self._logger = get_logger("query")

    async def answer(self, question: str, *, customer_id: str | None = None) -> FormQueryResponse:
        query = Query(raw_text=question, customer_id=customer_id)
        cache_key = query.cache_key
        start = time.perf_counter()
        self._logger.info("query.start", customer_id=customer_id, question_length=len(question))

        if self._config.use_query_cache:
            cached = await self._read_cached(cache_key)
            if cached is not None:
                self._logger.info("query.cache_hit", cache_key=cache_key)
                return replace(cached, cached=True)
            self._logger.info("query.cache_miss", cache_key=cache_key)

        try:
            response = await self._compute(query)
        except FormRagError as exc:
            self._logger.error("query.failed", customer_id=customer_id, error=str(exc), error_code=exc.code)
            raise

        # empty-retrieval answers carry no sources and are never cached
        if response.sources and self._config.use_query_cache:
            await self._store(cache_key, response)
        self._logger.info(
            "query.complete",
            customer_id=customer_id,
            confidence=response.confidence,
            source_count=len(response.sources),
            duration_seconds=time.perf_counter() - start,
        )
        return response

    async def ensure_ingested(self, customer_id: str) -> bool:
        """Ingest ``customer_id`` unless the marker says it was done recently.

        Returns whether an ingestion run happened.
        """

        marker = indexed_marker_key(customer_id)
        try:
            indexed = await self._cache.exists(marker)
        except CacheError as exc:
            self._logger.warning("query.marker_read_failed", customer_id=customer_id, error=str(exc))
            indexed = False
        PipelineMetrics.record_cache_lookup("indexed_marker", indexed)
        if indexed:
            return False
        await self._ingestor.ingest(customer_id, force_reindex=False)
        try:
            await self._cache.set(marker, {"indexed": True}, ttl=self._cache_policy.indexed_marker_ttl)
        except CacheError as exc:
            self._logger.warning("query.marker_write_failed", customer_id=customer_id, error=str(exc))
        return True

    async def _compute(self, query: Query) -> FormQueryResponse:
        if query.customer_id:
            await self.ensure_ingested(query.customer_id)

        summary = await self._retriever.retrieve(
            query.raw_text,
            customer_id=query.customer_id,
            top_k=self._config.top_k,
        )
        if summary.is_empty:
            self._logger.warning("query.no_results", customer_id=query.customer_id)
            return FormQueryResponse(answer=NO_INFORMATION_ANSWER, data_path=(), confidence=0.0, sources=())

        generation = await self._generator.generate(query.raw_text, summary.results)
        confidence = self._scorer.score(
            similarity=summary.avg_similarity,
            lexical=summary.avg_lexical,
            llm_self=generation.llm_confidence,
        )
        PipelineMetrics.observe_confidence(confidence.final)
        if not self._scorer.meets_threshold(confidence.final):
            self._logger.info(
                "query.low_confidence",
                confidence=confidence.final,
                components=confidence.components.to_dict(),
            )

        data_paths = tuple(generation.data_paths) or tuple(extract_source_paths(summary.results))
        sources = tuple(
            SourceReference(data_path=result.data_path, score=result.score)
            for result in summary.results[: self._config.max_sources]
        )
        return FormQueryResponse(
            answer=generation.answer,
            data_path=data_paths,
            confidence=confidence.final,
            sources=sources,
            cached=False,
        )

    async def _read_cached(self, cache_key: str) -> FormQueryResponse | None:
        try:
            payload: Any = await self._cache.get(cache_key)
        except CacheError as exc:
            self._logger.warning("query.cache_read_failed", cache_key=cache_key, error=str(exc))
            payload = None
        response = None
        if payload is not None:
            try:
                response = FormQueryResponse.from_dict(payload)
            except (KeyError, TypeError, ValueError) as exc:
                self._logger.warning("query.cache_corrupt", cache_key=cache_key, error=str(exc))
        PipelineMetrics.record_cache_lookup("query", response is not None)
        return response

    async def _store(self, cache_key: str, response: FormQueryResponse) -> None:
        try:
            await self._cache.set(cache_key, response.to_cache_payload(), ttl=self._cache_policy.query_ttl)
        except CacheError as exc:
            self._logger.warning("query.cache_write_failed", cache_key=cache_key, error=str(exc))
            return
        self._logger.info("query.cached", cache_key=cache_key)
