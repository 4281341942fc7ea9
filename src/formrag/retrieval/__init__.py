"""Retrieval components."""

from .service import HybridRetriever, RetrievalConfig, Retriever, extract_source_paths, summarize

__all__ = ["HybridRetriever", "RetrievalConfig", "Retriever", "extract_source_paths", "summarize"]
