"""Embedding backends for FormRAG."""

from __future__ import annotations

import hashlib
import math
from dataclasses import dataclass
from typing import List, Protocol, Sequence, Tuple

from openai import AsyncAzureOpenAI, OpenAIError

from formrag.errors import UpstreamProviderError
from formrag.metrics.observability import get_logger

LOGGER = get_logger("embeddings")

Vector = Tuple[float, ...]


@dataclass(frozen=True)
class EmbeddingConfig:
    """Configuration for embedding backends."""

    deployment: str = "text-embedding-3-large"
    dim: int = 3072
    normalize: bool = True


class EmbeddingBackend(Protocol):
    """Protocol describing embedding behaviour."""

    async def embed(self, texts: Sequence[str]) -> List[Vector]:
        """Return one vector per input text, in order."""


class HashEmbeddingBackend:
    """Deterministic lightweight embedding fallback used for testing."""

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self._config = config or EmbeddingConfig()

    def _hash_to_vector(self, text: str) -> Vector:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        repeat = (self._config.dim + len(digest) - 1) // len(digest)
        raw = (digest * repeat)[: self._config.dim]
        vector = [byte / 255.0 for byte in raw]
        if self._config.normalize:
            norm = math.sqrt(sum(value * value for value in vector)) or 1.0
            vector = [value / norm for value in vector]
        return tuple(vector)

    async def embed(self, texts: Sequence[str]) -> List[Vector]:
        return [self._hash_to_vector(text) for text in texts]


class AzureOpenAIEmbeddingBackend:
    """Embedding backend calling an Azure OpenAI embedding deployment."""

    def __init__(self, client: AsyncAzureOpenAI, config: EmbeddingConfig | None = None) -> None:
        self._client = client
        self._config = config or EmbeddingConfig()

    async def embed(self, texts: Sequence[str]) -> List[Vector]:
        if not texts:
            return []
        try:
            response = await self._client.embeddings.create(
                model=self._config.deployment,
                input=list(texts),
            )
        except OpenAIError as exc:
            LOGGER.error("embeddings.failed", input_count=len(texts), error=str(exc))
            raise UpstreamProviderError("embeddings", str(exc)) from exc
        ordered = sorted(response.data, key=lambda item: item.index)
        if len(ordered) != len(texts):
            LOGGER.error("embeddings.count_mismatch", expected=len(texts), actual=len(ordered))
            raise UpstreamProviderError("embeddings", "Mismatch between number of inputs and embedding vectors")
        if ordered and len(ordered[0].embedding) != self._config.dim:
            LOGGER.warning(
                "embeddings.dim_mismatch",
                configured=self._config.dim,
                actual=len(ordered[0].embedding),
            )
        return [self._normalize(tuple(item.embedding)) for item in ordered]

    def _normalize(self, vector: Vector) -> Vector:
        if not self._config.normalize:
            return vector
        norm = math.sqrt(sum(value * value for value in vector)) or 1.0
        return tuple(value / norm for value in vector)
