from __future__ import annotations

import math
from types import SimpleNamespace

import pytest
from openai import OpenAIError

from formrag.embeddings.service import AzureOpenAIEmbeddingBackend, EmbeddingConfig, HashEmbeddingBackend
from formrag.errors import UpstreamProviderError


class FakeEmbeddings:
    def __init__(self, vectors=None, error: Exception | None = None) -> None:
        self.vectors = vectors
        self.error = error
        self.requests = []

    async def create(self, *, model, input):
        self.requests.append((model, input))
        if self.error is not None:
            raise self.error
        vectors = self.vectors or [[float(i + 1), 0.0, 0.0] for i in range(len(input))]
        data = [SimpleNamespace(index=i, embedding=vec) for i, vec in enumerate(vectors)]
        # providers may return items out of order
        return SimpleNamespace(data=list(reversed(data)))


def _client(embeddings: FakeEmbeddings) -> SimpleNamespace:
    return SimpleNamespace(embeddings=embeddings)


@pytest.mark.asyncio
async def test_hash_embedding_dim_matches_config():
    backend = HashEmbeddingBackend(EmbeddingConfig(dim=64))
    [vec] = await backend.embed(["hello world"])
    assert isinstance(vec, tuple)
    assert len(vec) == 64
    assert math.isclose(math.sqrt(sum(v * v for v in vec)), 1.0, rel_tol=1e-9)


@pytest.mark.asyncio
async def test_hash_embedding_is_deterministic():
    backend = HashEmbeddingBackend(EmbeddingConfig(dim=32))
    first = await backend.embed(["alpha", "beta"])
    second = await backend.embed(["alpha", "beta"])
    assert first == second
    assert first[0] != first[1]


@pytest.mark.asyncio
async def test_azure_backend_orders_by_index_and_normalizes():
    fake = FakeEmbeddings(vectors=[[3.0, 4.0, 0.0], [0.0, 0.0, 2.0]])
    backend = AzureOpenAIEmbeddingBackend(_client(fake), EmbeddingConfig(deployment="embed", dim=3))
    vectors = await backend.embed(["first", "second"])
    assert vectors == [(0.6, 0.8, 0.0), (0.0, 0.0, 1.0)]
    assert fake.requests == [("embed", ["first", "second"])]


@pytest.mark.asyncio
async def test_azure_backend_skips_empty_input():
    fake = FakeEmbeddings()
    backend = AzureOpenAIEmbeddingBackend(_client(fake), EmbeddingConfig(dim=3))
    assert await backend.embed([]) == []
    assert fake.requests == []


@pytest.mark.asyncio
async def test_azure_backend_wraps_provider_errors():
    backend = AzureOpenAIEmbeddingBackend(_client(FakeEmbeddings(error=OpenAIError("quota exceeded"))))
    with pytest.raises(UpstreamProviderError) as info:
        await backend.embed(["text"])
    assert info.value.provider == "embeddings"
    assert info.value.code == "UPSTREAM_ERROR"


@pytest.mark.asyncio
async def test_azure_backend_rejects_count_mismatch():
    fake = FakeEmbeddings(vectors=[[1.0, 0.0, 0.0]])
    backend = AzureOpenAIEmbeddingBackend(_client(fake), EmbeddingConfig(dim=3))
    with pytest.raises(UpstreamProviderError):
        await backend.embed(["one", "two"])
