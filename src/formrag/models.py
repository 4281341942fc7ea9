"""Shared domain models used across the FormRAG pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Sequence, Tuple

from formrag.cache.keys import make_query_cache_key, normalize_query


@dataclass(frozen=True)
class Query:
    """Incoming question, optionally scoped to a customer."""

    raw_text: str
    customer_id: str | None = None

    @property
    def normalized(self) -> str:
        return normalize_query(self.raw_text)

    @property
    def cache_key(self) -> str:
        return make_query_cache_key(self.raw_text, self.customer_id)


@dataclass(frozen=True)
class Chunk:
    """Token-bounded window of a flattened field value."""

    chunk_id: str
    source_path: str
    text: str
    index: int
    token_start: int
    token_end: int


@dataclass(frozen=True)
class IndexedDocument:
    """Record submitted to the search index for one chunk."""

    id: str
    content: str
    vector: Tuple[float, ...]
    data_path: str
    customer_id: str
    chunk_index: int


@dataclass(frozen=True)
class SearchResult:
    """Ranked hit returned by hybrid search."""

    chunk_id: str
    content: str
    data_path: str
    score: float
    lexical_score: float | None = None
    customer_id: str | None = None


@dataclass(frozen=True)
class RetrievalSummary:
    """Ranked results plus the aggregate signals used for confidence."""

    results: Sequence[SearchResult] = ()
    avg_similarity: float = 0.0
    avg_lexical: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.results


@dataclass(frozen=True)
class GenerationResult:
    """Structured answer produced by the completion provider."""

    answer: str
    data_paths: Sequence[str]
    explanation: str
    llm_confidence: float


@dataclass(frozen=True)
class ConfidenceWeights:
    similarity: float = 0.45
    lexical: float = 0.35
    llm: float = 0.20

    def __post_init__(self) -> None:
        values = (self.similarity, self.lexical, self.llm)
        if any(value < 0 for value in values):
            raise ValueError("confidence weights must be non-negative")
        if abs(sum(values) - 1.0) > 1e-6:
            raise ValueError("confidence weights must sum to 1.0")

    def to_dict(self) -> dict[str, float]:
        return {"similarity": self.similarity, "lexical": self.lexical, "llm": self.llm}


@dataclass(frozen=True)
class ConfidenceComponents:
    similarity: float
    lexical: float
    llm: float

    def to_dict(self) -> dict[str, float]:
        return {"similarity": self.similarity, "lexical": self.lexical, "llm": self.llm}


@dataclass(frozen=True)
class ConfidenceResult:
    """Final confidence with the normalized inputs and weights that produced it."""

    final: float
    components: ConfidenceComponents
    weights: ConfidenceWeights


@dataclass(frozen=True)
class SourceReference:
    data_path: str
    score: float


@dataclass(frozen=True)
class FormQueryResponse:
    """Answer returned to callers; ``cached`` is only ever set at read time."""

    answer: str
    data_path: Sequence[str]
    confidence: float
    sources: Sequence[SourceReference] = field(default_factory=tuple)
    cached: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "answer": self.answer,
            "dataPath": list(self.data_path),
            "confidence": self.confidence,
            "sources": [{"dataPath": s.data_path, "score": s.score} for s in self.sources],
            "cached": self.cached,
        }

    def to_cache_payload(self) -> dict[str, Any]:
        return replace(self, cached=False).to_dict()

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "FormQueryResponse":
        """Rebuild a response from its wire form; raises on malformed payloads."""

        sources = tuple(
            SourceReference(data_path=str(item["dataPath"]), score=float(item["score"]))
            for item in payload["sources"]
        )
        confidence = float(payload["confidence"])
        if not 0.0 <= confidence <= 1.0:
            raise ValueError(f"confidence {confidence} outside [0, 1]")
        return cls(
            answer=str(payload["answer"]),
            data_path=tuple(str(path) for path in payload["dataPath"]),
            confidence=confidence,
            sources=sources,
            cached=bool(payload.get("cached", False)),
        )


@dataclass(frozen=True)
class IngestResult:
    customer_id: str
    documents_processed: int
    chunks_created: int
    success: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "customerId": self.customer_id,
            "documentsProcessed": self.documents_processed,
            "chunksCreated": self.chunks_created,
            "success": self.success,
        }
