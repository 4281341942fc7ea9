"""Search index implementations."""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Protocol, Sequence

import chromadb
from chromadb.api import ClientAPI
from chromadb.api.models.Collection import Collection

from formrag.embeddings.service import Vector
from formrag.errors import UpstreamProviderError
from formrag.metrics.observability import get_logger
from formrag.models import IndexedDocument, SearchResult

LOGGER = get_logger("search")

_TOKEN = re.compile(r"\w+")

# Lexical scores are reported on the 0..100 scale of a BM25-style ranker
LEXICAL_SCALE = 100.0

# Stored metadata uses the same field names as the persisted document layout
DATA_PATH_FIELD = "dataPath"
CUSTOMER_FIELD = "customerId"


class SearchIndex(Protocol):
    """Protocol for hybrid (vector + lexical) search backends."""

    async def ensure_index(self) -> None:
        """Create the index if it does not exist yet."""

    async def upsert(self, documents: Sequence[IndexedDocument]) -> None:
        """Insert or overwrite documents by id."""

    async def delete_by_scope(self, customer_id: str) -> int:
        """Remove every document owned by ``customer_id``; return how many."""

    async def hybrid_search(
        self,
        vector: Vector,
        *,
        top_k: int = 5,
        customer_id: str | None = None,
        query_text: str | None = None,
    ) -> Sequence[SearchResult]:
        """Return ranked results, restricted to ``customer_id`` when given."""

    async def count(self) -> int:
        """Return total number of stored documents."""


class ChromaSearchIndex:
    """Chroma-backed index blending cosine similarity with token overlap."""

    def __init__(
        self,
        collection_name: str = "rag-documents",
        *,
        client: ClientAPI | None = None,
        persist_directory: str | Path | None = None,
        lexical_weight: float = 0.35,
    ) -> None:
        if client is not None:
            self._client = client
        elif persist_directory is not None:
            self._client = chromadb.PersistentClient(path=str(persist_directory))
        else:
            self._client = chromadb.EphemeralClient()
        self._collection_name = collection_name
        self._collection: Collection | None = None
        self._lexical_weight = _clamp_weight(lexical_weight)

    async def ensure_index(self) -> None:
        await self._call("ensure_index", self._get_collection)

    async def upsert(self, documents: Sequence[IndexedDocument]) -> None:
        if not documents:
            return

        def _upsert() -> None:
            self._get_collection().upsert(
                ids=[doc.id for doc in documents],
                documents=[doc.content for doc in documents],
                embeddings=[list(doc.vector) for doc in documents],
                metadatas=[self._serialize(doc) for doc in documents],
            )

        await self._call("upsert", _upsert)
        LOGGER.info("search.upserted", count=len(documents))

    async def delete_by_scope(self, customer_id: str) -> int:
        def _delete() -> int:
            collection = self._get_collection()
            existing = collection.get(where={CUSTOMER_FIELD: customer_id}, include=[])
            ids = list(existing.get("ids") or [])
            if ids:
                collection.delete(ids=ids)
            return len(ids)

        deleted = await self._call("delete_by_scope", _delete)
        LOGGER.info("search.deleted_scope", customer_id=customer_id, count=deleted)
        return deleted

    async def hybrid_search(
        self,
        vector: Vector,
        *,
        top_k: int = 5,
        customer_id: str | None = None,
        query_text: str | None = None,
    ) -> Sequence[SearchResult]:
        if top_k <= 0:
            return []
        where = {CUSTOMER_FIELD: customer_id} if customer_id else None

        def _query() -> Mapping[str, Any]:
            return self._get_collection().query(
                query_embeddings=[list(vector)],
                n_results=top_k,
                where=where,
                include=["documents", "metadatas", "distances"],
            )

        raw = await self._call("hybrid_search", _query)
        results = self._deserialize_results(raw, query_text)
        return self._rank(results)

    async def count(self) -> int:
        return int(await self._call("count", lambda: self._get_collection().count()))

    def _get_collection(self) -> Collection:
        if self._collection is None:
            self._collection = self._client.get_or_create_collection(
                name=self._collection_name,
                metadata={"hnsw:space": "cosine"},
            )
        return self._collection

    async def _call(self, operation: str, func):
        try:
            return await asyncio.to_thread(func)
        except Exception as exc:  # chromadb raises a mix of ValueError and ChromaError
            LOGGER.error("search.failed", operation=operation, error=str(exc))
            raise UpstreamProviderError("search", f"{operation} failed: {exc}") from exc

    def _rank(self, results: List[SearchResult]) -> List[SearchResult]:
        if not self._lexical_weight:
            return results

        def blended(result: SearchResult) -> float:
            if result.lexical_score is None:
                return result.score
            lexical = result.lexical_score / LEXICAL_SCALE
            return (1.0 - self._lexical_weight) * result.score + self._lexical_weight * lexical

        return sorted(results, key=blended, reverse=True)

    @staticmethod
    def _serialize(document: IndexedDocument) -> dict[str, object]:
        return {
            DATA_PATH_FIELD: document.data_path,
            CUSTOMER_FIELD: document.customer_id,
            "chunkId": document.id,
            "chunkIndex": document.chunk_index,
        }

    def _deserialize_results(self, raw: Mapping[str, Any], query_text: str | None) -> List[SearchResult]:
        ids = self._first(raw.get("ids"))
        documents = self._first(raw.get("documents"))
        metadatas = self._first(raw.get("metadatas"))
        distances = self._first(raw.get("distances"))
        query_tokens = set(_TOKEN.findall(query_text.lower())) if query_text else None
        results: List[SearchResult] = []
        for index, chunk_id in enumerate(ids):
            content = documents[index] if index < len(documents) else ""
            metadata = metadatas[index] if index < len(metadatas) and metadatas[index] else {}
            distance = distances[index] if index < len(distances) else None
            lexical = None
            if query_tokens is not None:
                lexical = _token_overlap_score(query_tokens, content or "") * LEXICAL_SCALE
            results.append(
                SearchResult(
                    chunk_id=str(chunk_id),
                    content=content or "",
                    data_path=str(metadata.get(DATA_PATH_FIELD, "")),
                    customer_id=metadata.get(CUSTOMER_FIELD),
                    score=_distance_to_similarity(distance),
                    lexical_score=lexical,
                ),
            )
        return results

    @staticmethod
    def _first(value: object) -> list:
        if isinstance(value, list) and value:
            first = value[0]
            return list(first) if first is not None else []
        return []


def _distance_to_similarity(distance: float | None) -> float:
    if distance is None:
        return 0.0
    return min(1.0, max(0.0, 1.0 - float(distance)))


def _clamp_weight(weight: float) -> float:
    if weight < 0.0:
        return 0.0
    if weight > 1.0:
        return 1.0
    return weight


def _token_overlap_score(query_tokens: Iterable[str], text: str) -> float:
    query_tokens = set(query_tokens)
    tokens = set(_TOKEN.findall(text.lower()))
    if not tokens or not query_tokens:
        return 0.0
    overlap = len(query_tokens.intersection(tokens))
    return overlap / len(query_tokens)
