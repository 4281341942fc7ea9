"""Embedding backends and the search index."""

from .service import AzureOpenAIEmbeddingBackend, EmbeddingBackend, EmbeddingConfig, HashEmbeddingBackend, Vector
from .store import ChromaSearchIndex, SearchIndex

__all__ = [
    "AzureOpenAIEmbeddingBackend",
    "ChromaSearchIndex",
    "EmbeddingBackend",
    "EmbeddingConfig",
    "HashEmbeddingBackend",
    "SearchIndex",
    "Vector",
]
