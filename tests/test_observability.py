from __future__ import annotations

from prometheus_client import REGISTRY

from formrag.metrics.observability import PipelineMetrics


def _lookups(cache: str, result: str) -> float:
    return REGISTRY.get_sample_value("formrag_cache_lookups_total", {"cache": cache, "result": result}) or 0.0


def test_cache_lookups_are_counted_by_outcome():
    hits, misses = _lookups("query", "hit"), _lookups("query", "miss")
    PipelineMetrics.record_cache_lookup("query", True)
    PipelineMetrics.record_cache_lookup("query", False)
    PipelineMetrics.record_cache_lookup("query", False)
    assert _lookups("query", "hit") == hits + 1
    assert _lookups("query", "miss") == misses + 2


def test_confidence_histogram_clamps_scores():
    before = REGISTRY.get_sample_value("formrag_confidence_score_count") or 0.0
    PipelineMetrics.observe_confidence(1.7)
    assert REGISTRY.get_sample_value("formrag_confidence_score_count") == before + 1
    assert REGISTRY.get_sample_value("formrag_confidence_score_bucket", {"le": "1.0"}) >= 1
