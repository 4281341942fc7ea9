"""Shared fakes for provider capabilities."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Mapping, Sequence
from uuid import uuid4

import chromadb
import pytest

from formrag.cache.store import InMemoryCacheStore
from formrag.embeddings.service import EmbeddingConfig, HashEmbeddingBackend
from formrag.embeddings.store import ChromaSearchIndex
from formrag.errors import CacheError
from formrag.ingestion.chunking import Tokenizer
from formrag.services.generation import StructuredCompletion
from formrag.storage.blob import FilesystemObjectStore

CUSTOMER_DATA = {
    "contact": {
        "email": "john.doe@example.com",
        "phone": "555",
        "address": {"street": "42 Harbour Road", "city": "Springfield"},
    },
    "company": {"name": "Acme Corporation", "employees": 12},
    "notes": ["Prefers email over phone calls", "Renewal due next quarter"],
}


class WhitespaceEncoding:
    """One token per whitespace-separated word; decode joins with single spaces."""

    def __init__(self) -> None:
        self._ids: dict[str, int] = {}
        self._words: List[str] = []

    def encode(self, text: str) -> List[int]:
        tokens = []
        for word in text.split():
            if word not in self._ids:
                self._ids[word] = len(self._words)
                self._words.append(word)
            tokens.append(self._ids[word])
        return tokens

    def decode(self, tokens: Sequence[int]) -> str:
        return " ".join(self._words[token] for token in tokens)


class ScriptedCompletionProvider:
    """Returns a fixed JSON payload (or raw text) and records every prompt."""

    def __init__(self, payload: Mapping[str, Any] | str | None = None) -> None:
        self.payload = payload if payload is not None else {
            "answer": "The customer's email is john.doe@example.com",
            "dataPath": ["contact.email"],
            "explanation": "Found in the contact section.",
            "confidence": 0.92,
        }
        self.calls: List[Sequence[Mapping[str, str]]] = []

    async def complete(self, messages: Sequence[Mapping[str, str]]) -> str:
        self.calls.append(messages)
        return self.payload if isinstance(self.payload, str) else json.dumps(self.payload)

    async def complete_structured(self, messages, schema=None) -> StructuredCompletion:
        return StructuredCompletion.from_text(await self.complete(messages))


class CountingEmbedder(HashEmbeddingBackend):
    def __init__(self, dim: int = 16) -> None:
        super().__init__(EmbeddingConfig(dim=dim))
        self.calls: List[List[str]] = []

    async def embed(self, texts):
        self.calls.append(list(texts))
        return await super().embed(texts)


class BrokenCacheStore(InMemoryCacheStore):
    """Cache whose reads and/or writes fail like an unreachable Redis."""

    def __init__(self, *, fail_reads: bool = True, fail_writes: bool = True) -> None:
        super().__init__()
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

    async def get(self, key: str):
        if self.fail_reads:
            raise CacheError("connection refused")
        return await super().get(key)

    async def exists(self, key: str) -> bool:
        if self.fail_reads:
            raise CacheError("connection refused")
        return await super().exists(key)

    async def set(self, key: str, value, ttl=None) -> None:
        if self.fail_writes:
            raise CacheError("connection refused")
        await super().set(key, value, ttl)


def write_customer(root: Path, customer_id: str, data: Any) -> None:
    path = root / "customers" / customer_id / "data.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


def make_index(lexical_weight: float = 0.35) -> ChromaSearchIndex:
    return ChromaSearchIndex(
        f"test-{uuid4().hex[:12]}",
        client=chromadb.EphemeralClient(),
        lexical_weight=lexical_weight,
    )


@pytest.fixture
def encoding() -> WhitespaceEncoding:
    return WhitespaceEncoding()


@pytest.fixture
def tokenizer(encoding: WhitespaceEncoding) -> Tokenizer:
    return Tokenizer(encoding, size=8, overlap=2)


@pytest.fixture
def data_root(tmp_path: Path) -> Path:
    write_customer(tmp_path, "cust-123", CUSTOMER_DATA)
    return tmp_path


@pytest.fixture
def object_store(data_root: Path) -> FilesystemObjectStore:
    return FilesystemObjectStore(data_root)


@pytest.fixture
def index() -> ChromaSearchIndex:
    return make_index()


@pytest.fixture
def embedder() -> CountingEmbedder:
    return CountingEmbedder()


@pytest.fixture
def cache() -> InMemoryCacheStore:
    return InMemoryCacheStore()
