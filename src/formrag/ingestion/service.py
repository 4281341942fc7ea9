"""Customer data ingestion: fetch, flatten, chunk, embed, index."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, List, Sequence

from formrag.cache.keys import CachePolicy, customer_data_key, hash_string
from formrag.cache.store import CacheStore
from formrag.embeddings.service import EmbeddingBackend
from formrag.embeddings.store import SearchIndex
from formrag.errors import CacheError, FormRagError, IngestionError
from formrag.ingestion.chunking import Tokenizer
from formrag.ingestion.flatten import flatten
from formrag.metrics.observability import PipelineMetrics, get_logger
from formrag.models import Chunk, IndexedDocument, IngestResult
from formrag.storage.blob import ObjectStore


@dataclass(frozen=True)
class IngestionConfig:
    """Configuration for customer data ingestion."""

    min_value_length: int = 10
    batch_size: int = 100
    use_data_cache: bool = True


def make_chunk_id(customer_id: str, data_path: str, index: int) -> str:
    """Stable id so re-ingesting identical content overwrites instead of duplicating."""

    return f"{customer_id}-{hash_string(data_path)}-{index}"


class CustomerDataIngestor:
    """Indexes one customer's JSON document into the search index.

    Ingestion is all-or-nothing from the caller's point of view: any failing
    embedding or index call aborts the run and it must be restarted from the
    beginning. Re-running is safe because chunk ids are deterministic.
    """

    def __init__(
        self,
        *,
        object_store: ObjectStore,
        index: SearchIndex,
        embedder: EmbeddingBackend,
        cache: CacheStore,
        tokenizer: Tokenizer,
        config: IngestionConfig | None = None,
        cache_policy: CachePolicy | None = None,
    ) -> None:
        self._object_store = object_store
        self._index = index
        self._embedder = embedder
        self._cache = cache
        self._tokenizer = tokenizer
        self._config = config or IngestionConfig()
        self._cache_policy = cache_policy or CachePolicy()
        self._logger = get_logger("ingestion")

    async def ingest(self, customer_id: str, *, force_reindex: bool = False) -> IngestResult:
        start = time.perf_counter()
        self._logger.info("ingestion.start", customer_id=customer_id, force_reindex=force_reindex)
        try:
            await self._index.ensure_index()
            data = await self._resolve_data(customer_id, force_reindex=force_reindex)
            if force_reindex:
                await self._index.delete_by_scope(customer_id)
            fields = flatten(data)
            self._logger.info("ingestion.flattened", customer_id=customer_id, fields=len(fields))
            documents = await self._build_documents(customer_id, fields)
            await self._upsert_in_batches(documents)
        except FormRagError as exc:
            self._logger.error("ingestion.failed", customer_id=customer_id, error=str(exc))
            raise IngestionError(f"Failed to ingest data for customer {customer_id}") from exc

        duration = time.perf_counter() - start
        PipelineMetrics.observe_ingestion(duration, len(documents))
        self._logger.info(
            "ingestion.complete",
            customer_id=customer_id,
            documents_processed=len(fields),
            chunks_created=len(documents),
            duration_seconds=duration,
        )
        return IngestResult(
            customer_id=customer_id,
            documents_processed=len(fields),
            chunks_created=len(documents),
            success=True,
        )

    def chunk_field(self, customer_id: str, data_path: str, value: str) -> List[Chunk]:
        return [
            Chunk(
                chunk_id=make_chunk_id(customer_id, data_path, index),
                source_path=data_path,
                text=window.text,
                index=index,
                token_start=window.start,
                token_end=window.end,
            )
            for index, window in enumerate(self._tokenizer.windows(value))
        ]

    async def _resolve_data(self, customer_id: str, *, force_reindex: bool) -> Any:
        key = customer_data_key(customer_id)
        if self._config.use_data_cache and not force_reindex:
            cached = await self._cache_get(key)
            if cached is not None:
                self._logger.info("ingestion.cached_data", customer_id=customer_id)
                return cached

        data = await self._object_store.get_customer_data(customer_id)
        if self._config.use_data_cache:
            try:
                await self._cache.set(key, data, ttl=self._cache_policy.customer_data_ttl)
            except CacheError as exc:
                self._logger.warning("ingestion.data_cache_write_failed", customer_id=customer_id, error=str(exc))
        return data

    async def _cache_get(self, key: str) -> Any | None:
        try:
            value = await self._cache.get(key)
        except CacheError as exc:
            self._logger.warning("ingestion.data_cache_read_failed", key=key, error=str(exc))
            value = None
        PipelineMetrics.record_cache_lookup("customer_data", value is not None)
        return value

    async def _build_documents(self, customer_id: str, fields: Sequence[tuple[str, str]]) -> List[IndexedDocument]:
        documents: List[IndexedDocument] = []
        for data_path, value in fields:
            if len(value) < self._config.min_value_length:
                continue
            chunks = self.chunk_field(customer_id, data_path, value)
            vectors = await self._embedder.embed([chunk.text for chunk in chunks])
            if len(vectors) != len(chunks):
                raise IngestionError(f"Embedding count mismatch for {data_path}")
            documents.extend(
                IndexedDocument(
                    id=chunk.chunk_id,
                    content=chunk.text,
                    vector=vector,
                    data_path=data_path,
                    customer_id=customer_id,
                    chunk_index=chunk.index,
                )
                for chunk, vector in zip(chunks, vectors)
            )
        return documents

    async def _upsert_in_batches(self, documents: Sequence[IndexedDocument]) -> None:
        size = self._config.batch_size
        for offset in range(0, len(documents), size):
            await self._index.upsert(documents[offset : offset + size])
