"""Observability helpers for FormRAG."""

from __future__ import annotations

import logging
from typing import Iterable

import structlog
from prometheus_client import Counter, Histogram

_logger_configured = False


def configure_logging(level: int | str | None = None) -> None:
    """Configure structlog JSON output.

    Called without a level it only installs defaults once; an explicit level
    (e.g. from settings at app start) always reconfigures.
    """

    global _logger_configured  # noqa: PLW0603 - module-level guard
    if _logger_configured and level is None:
        return
    if level is None:
        level = logging.INFO
    elif isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger_configured = True


def bind_correlation_id(correlation_id: str) -> None:
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def clear_correlation_id() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str = "formrag") -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


def _clamp_score(score: float) -> float:
    if score < 0.0:
        return 0.0
    if score > 1.0:
        return 1.0
    return score


class PipelineMetrics:
    """Prometheus metrics for pipeline stages."""

    ingestion_latency = Histogram(
        "formrag_ingestion_duration_seconds",
        "Time spent ingesting a customer's data.",
        buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
    )
    ingestion_chunks = Histogram(
        "formrag_ingestion_chunk_count",
        "Chunks produced per ingestion run.",
        buckets=(0, 10, 50, 100, 250, 500, 1000, 5000),
    )
    retrieval_latency = Histogram(
        "formrag_retrieval_duration_seconds",
        "Time spent embedding the query and running hybrid search.",
        buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0),
    )
    retrieved_chunk_count = Histogram(
        "formrag_retrieved_chunk_count",
        "Number of results returned by hybrid search.",
        buckets=(0, 1, 2, 3, 5, 8, 13),
    )
    similarity_score = Histogram(
        "formrag_similarity_score",
        "Vector similarity of retrieved results.",
        buckets=(0.0, 0.25, 0.5, 0.75, 1.0),
    )
    generation_latency = Histogram(
        "formrag_generation_duration_seconds",
        "Time spent generating structured answers.",
        buckets=(0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0),
    )
    confidence_score = Histogram(
        "formrag_confidence_score",
        "Final confidence attached to answers.",
        buckets=(0.0, 0.25, 0.5, 0.75, 1.0),
    )
    cache_lookups = Counter(
        "formrag_cache_lookups_total",
        "Cache lookups by namespace and outcome.",
        ["cache", "result"],
    )

    @classmethod
    def observe_ingestion(cls, duration_seconds: float, chunk_count: int) -> None:
        cls.ingestion_latency.observe(duration_seconds)
        cls.ingestion_chunks.observe(chunk_count)

    @classmethod
    def observe_retrieval(
        cls,
        duration_seconds: float,
        chunk_count: int,
        scores: Iterable[float],
    ) -> None:
        cls.retrieval_latency.observe(duration_seconds)
        cls.retrieved_chunk_count.observe(chunk_count)
        for score in scores:
            cls.similarity_score.observe(_clamp_score(score))

    @classmethod
    def observe_generation(cls, duration_seconds: float) -> None:
        cls.generation_latency.observe(duration_seconds)

    @classmethod
    def observe_confidence(cls, score: float) -> None:
        cls.confidence_score.observe(_clamp_score(score))

    @classmethod
    def record_cache_lookup(cls, cache: str, hit: bool) -> None:
        cls.cache_lookups.labels(cache=cache, result="hit" if hit else "miss").inc()


__all__ = [
    "PipelineMetrics",
    "bind_correlation_id",
    "clear_correlation_id",
    "configure_logging",
    "get_logger",
]
