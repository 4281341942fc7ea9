"""Runtime configuration for the FormRAG services."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional
from urllib.parse import quote

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_WEIGHT_TOLERANCE = 1e-6


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="formrag_", env_file=".env", case_sensitive=False)

    environment: Literal["dev", "test", "prod"] = "dev"
    log_level: str = "INFO"

    # Azure OpenAI (embeddings + chat)
    azure_openai_endpoint: str | None = None
    azure_openai_api_key: str | None = None
    azure_openai_api_version: str = "2024-02-15-preview"
    azure_openai_chat_deployment: str = "gpt-4.1-mini"
    azure_openai_embedding_deployment: str = "text-embedding-3-large"
    openai_max_retries: int = 3
    openai_timeout_seconds: float = 30.0

    # "hash" keeps everything offline, mirroring the deterministic test backend
    embedding_provider: Literal["azure_openai", "hash"] = "azure_openai"
    embedding_dim: int = 3072

    # Search index
    search_index_name: str = "rag-documents"
    chroma_persist_dir: Path = Path("./.chroma")
    chroma_host: str | None = None
    chroma_port: int | None = None
    chroma_ssl: bool = False
    lexical_blend_weight: float = 0.35

    # Cache
    redis_url: str | None = None
    redis_host: str | None = None
    redis_port: int = 6380
    redis_password: str | None = None
    cache_default_ttl_seconds: int = 3600

    # Object store
    data_dir: Path = Path("./data")
    blob_base_url: str | None = None
    blob_container: str = "customer-documents"
    blob_sas_token: str | None = None

    # Feature flags
    enable_query_cache: bool = True
    enable_customer_data_cache: bool = True
    enable_pii_redaction: bool = True

    # RAG
    chunk_size: int = 500
    chunk_overlap: int = 100
    search_top_k: int = 5
    confidence_threshold: float = 0.5
    min_value_length: int = 10
    index_batch_size: int = 100
    tokenizer_model: str = "gpt-4"

    # Confidence weighting; must sum to 1.0
    weight_similarity: float = 0.45
    weight_lexical: float = 0.35
    weight_llm: float = 0.20
    lexical_score_ceiling: float = 100.0

    # API & security
    ingest_api_key: str = "dev-api-key"
    rate_limit_requests: int = 100  # per window per client
    rate_limit_window_seconds: int = 60
    # only enable behind a proxy that overwrites X-Forwarded-For
    trust_forwarded_for: bool = False
    cors_allow_origins: tuple[str, ...] = ()
    cors_allow_methods: tuple[str, ...] = ("GET", "POST")
    cors_allow_headers: tuple[str, ...] = ("Content-Type", "Authorization", "X-API-Key")

    @model_validator(mode="after")
    def _check_rag_parameters(self) -> "Settings":
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        if self.chunk_overlap < 0:
            raise ValueError("chunk_overlap must be >= 0")
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        if self.search_top_k < 1:
            raise ValueError("search_top_k must be >= 1")
        if self.index_batch_size < 1:
            raise ValueError("index_batch_size must be >= 1")
        if self.lexical_score_ceiling <= 0:
            raise ValueError("lexical_score_ceiling must be > 0")
        weights = (self.weight_similarity, self.weight_lexical, self.weight_llm)
        if any(weight < 0 for weight in weights):
            raise ValueError("confidence weights must be non-negative")
        if abs(sum(weights) - 1.0) > _WEIGHT_TOLERANCE:
            raise ValueError(f"confidence weights must sum to 1.0, got {sum(weights):.4f}")
        return self

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    @property
    def is_production(self) -> bool:
        return self.environment == "prod"

    @property
    def resolved_redis_url(self) -> str | None:
        if self.redis_url:
            return self.redis_url
        if not self.redis_host:
            return None
        # Azure Cache for Redis only accepts TLS on 6380
        scheme = "rediss" if self.redis_port == 6380 else "redis"
        auth = f":{quote(self.redis_password, safe='')}@" if self.redis_password else ""
        return f"{scheme}://{auth}{self.redis_host}:{self.redis_port}/0"


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()
