"""FastAPI application exposing FormRAG services."""

from __future__ import annotations

import time
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Sequence
from uuid import uuid4

import chromadb
from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from openai import AsyncAzureOpenAI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from formrag.api.schemas import (
    ErrorBody,
    ErrorResponse,
    FormQueryData,
    FormQueryEnvelope,
    FormQueryRequest,
    HealthResponse,
    IngestData,
    IngestEnvelope,
    IngestRequest,
)
from formrag.cache.keys import HEALTH_CHECK_KEY, CachePolicy
from formrag.cache.store import CacheStore, InMemoryCacheStore, RedisCacheStore
from formrag.config import Settings, get_settings
from formrag.embeddings import (
    AzureOpenAIEmbeddingBackend,
    ChromaSearchIndex,
    EmbeddingBackend,
    EmbeddingConfig,
    HashEmbeddingBackend,
    SearchIndex,
)
from formrag.errors import AuthError, ConfigurationError, FormRagError, RateLimitError, ValidationError
from formrag.ingestion import CustomerDataIngestor, IngestionConfig, Tokenizer
from formrag.metrics.observability import bind_correlation_id, clear_correlation_id, configure_logging, get_logger
from formrag.models import ConfidenceWeights
from formrag.retrieval import HybridRetriever, RetrievalConfig
from formrag.services import (
    AnswerGenerator,
    AzureOpenAICompletionProvider,
    CompletionProvider,
    ConfidenceScorer,
    FormQueryService,
    GenerationConfig,
    QueryServiceConfig,
    redact_pii,
)
from formrag.storage import FilesystemObjectStore, HttpObjectStore, ObjectStore

Closer = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class AppDependencies:
    cache: CacheStore
    index: SearchIndex
    ingestor: CustomerDataIngestor
    query_service: FormQueryService
    closers: Sequence[Closer] = field(default_factory=tuple)

    async def aclose(self) -> None:
        for close in self.closers:
            await close()


def _build_openai_client(settings: Settings) -> AsyncAzureOpenAI:
    if not settings.azure_openai_endpoint or not settings.azure_openai_api_key:
        raise ConfigurationError("FORMRAG_AZURE_OPENAI_ENDPOINT and FORMRAG_AZURE_OPENAI_API_KEY are required")
    return AsyncAzureOpenAI(
        azure_endpoint=settings.azure_openai_endpoint,
        api_key=settings.azure_openai_api_key,
        api_version=settings.azure_openai_api_version,
        max_retries=settings.openai_max_retries,
        timeout=settings.openai_timeout_seconds,
    )


def _build_cache(settings: Settings) -> CacheStore:
    url = settings.resolved_redis_url
    if url:
        return RedisCacheStore.from_url(url, default_ttl=settings.cache_default_ttl_seconds)
    get_logger("api").warning("cache.in_memory_fallback", reason="no redis configured")
    return InMemoryCacheStore(default_ttl=settings.cache_default_ttl_seconds)


def _build_object_store(settings: Settings) -> ObjectStore:
    if settings.blob_base_url:
        container_url = f"{settings.blob_base_url.rstrip('/')}/{settings.blob_container}"
        return HttpObjectStore(container_url, sas_token=settings.blob_sas_token)
    return FilesystemObjectStore(settings.data_dir)


def _build_index(settings: Settings) -> ChromaSearchIndex:
    chroma_client = None
    if settings.chroma_host:
        chroma_client = chromadb.HttpClient(
            host=settings.chroma_host,
            port=settings.chroma_port or 8000,
            ssl=settings.chroma_ssl,
        )
    return ChromaSearchIndex(
        settings.search_index_name,
        client=chroma_client,
        persist_directory=None if chroma_client else settings.chroma_persist_dir,
        lexical_weight=settings.lexical_blend_weight,
    )


def build_dependencies(settings: Settings) -> AppDependencies:
    """Construct every provider client once for the lifetime of the process."""

    openai_client = _build_openai_client(settings)
    embedder: EmbeddingBackend
    embedding_config = EmbeddingConfig(
        deployment=settings.azure_openai_embedding_deployment,
        dim=settings.embedding_dim,
    )
    if settings.embedding_provider == "hash":
        embedder = HashEmbeddingBackend(embedding_config)
    else:
        embedder = AzureOpenAIEmbeddingBackend(openai_client, embedding_config)

    cache = _build_cache(settings)
    object_store = _build_object_store(settings)
    index = _build_index(settings)
    return assemble_dependencies(
        settings,
        cache=cache,
        index=index,
        object_store=object_store,
        embedder=embedder,
        completion=AzureOpenAICompletionProvider(
            openai_client,
            GenerationConfig(deployment=settings.azure_openai_chat_deployment),
        ),
        closers=(cache.close, object_store.close, openai_client.close),
    )


def assemble_dependencies(
    settings: Settings,
    *,
    cache: CacheStore,
    index: SearchIndex,
    object_store: ObjectStore,
    embedder: EmbeddingBackend,
    completion: CompletionProvider,
    tokenizer: Tokenizer | None = None,
    closers: Sequence[Closer] = (),
) -> AppDependencies:
    """Wire the pipeline services around already-constructed providers."""

    cache_policy = CachePolicy(query_ttl=settings.cache_default_ttl_seconds)
    tokenizer = tokenizer or Tokenizer(
        model=settings.tokenizer_model,
        size=settings.chunk_size,
        overlap=settings.chunk_overlap,
    )
    ingestor = CustomerDataIngestor(
        object_store=object_store,
        index=index,
        embedder=embedder,
        cache=cache,
        tokenizer=tokenizer,
        config=IngestionConfig(
            min_value_length=settings.min_value_length,
            batch_size=settings.index_batch_size,
            use_data_cache=settings.enable_customer_data_cache,
        ),
        cache_policy=cache_policy,
    )
    retriever = HybridRetriever(embedder, index, RetrievalConfig(top_k=settings.search_top_k))
    scorer = ConfidenceScorer(
        ConfidenceWeights(
            similarity=settings.weight_similarity,
            lexical=settings.weight_lexical,
            llm=settings.weight_llm,
        ),
        lexical_ceiling=settings.lexical_score_ceiling,
        threshold=settings.confidence_threshold,
    )
    query_service = FormQueryService(
        cache=cache,
        ingestor=ingestor,
        retriever=retriever,
        generator=AnswerGenerator(completion),
        scorer=scorer,
        config=QueryServiceConfig(use_query_cache=settings.enable_query_cache, top_k=settings.search_top_k),
        cache_policy=cache_policy,
    )
    return AppDependencies(
        cache=cache,
        index=index,
        ingestor=ingestor,
        query_service=query_service,
        closers=tuple(closers),
    )


def _error_response(status_code: int, message: str, code: str, details: list[str] | None = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorBody(message=message, code=code, status=status_code, details=details))
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


class RateLimiter:
    """Sliding-window request limit per client address and path."""

    def __init__(
        self,
        requests: int,
        window_seconds: int,
        *,
        trust_forwarded_for: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.requests = requests
        self.window = window_seconds
        self.trust_forwarded_for = trust_forwarded_for
        self._clock = clock
        self._buckets: dict[str, deque[float]] = {}
        self._last_sweep = clock()

    def __call__(self, request: Request) -> None:
        key = f"{self._client_address(request)}:{request.url.path}"
        now = self._clock()
        cutoff = now - self.window
        if now - self._last_sweep >= self.window:
            self._sweep(cutoff)
            self._last_sweep = now
        bucket = self._buckets.setdefault(key, deque())
        while bucket and bucket[0] <= cutoff:
            bucket.popleft()
        if len(bucket) >= self.requests:
            raise RateLimitError("Too many requests from this IP, please try again later.")
        bucket.append(now)

    @property
    def tracked_clients(self) -> int:
        return len(self._buckets)

    def _client_address(self, request: Request) -> str:
        if self.trust_forwarded_for:
            forwarded = request.headers.get("x-forwarded-for", "")
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop
        return request.client.host if request.client else "-"

    def _sweep(self, cutoff: float) -> None:
        # drop buckets whose newest request has left the window
        stale = [key for key, bucket in self._buckets.items() if not bucket or bucket[-1] <= cutoff]
        for key in stale:
            del self._buckets[key]


def create_app(*, settings: Settings | None = None, dependencies: AppDependencies | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    logger = get_logger("api")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        deps = dependencies or build_dependencies(settings)
        app.state.dependencies = deps
        logger.info("app.started", environment=settings.environment)
        try:
            yield
        finally:
            await deps.aclose()
            logger.info("app.stopped")

    app = FastAPI(title="FormRAG API", version="0.1.0", lifespan=lifespan)
    if dependencies is not None:
        app.state.dependencies = dependencies

    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_allow_origins),
            allow_methods=list(settings.cors_allow_methods),
            allow_headers=list(settings.cors_allow_headers),
        )

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Request-ID", uuid4().hex)
        request.state.correlation_id = correlation_id
        bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    def require_api_key(request: Request) -> None:
        provided = request.headers.get("X-API-Key")
        if provided != settings.ingest_api_key:
            raise AuthError("Unauthorized")

    rate_limiter = RateLimiter(
        settings.rate_limit_requests,
        settings.rate_limit_window_seconds,
        trust_forwarded_for=settings.trust_forwarded_for,
    )

    @app.exception_handler(FormRagError)
    async def handle_formrag_error(request: Request, exc: FormRagError) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", "-")
        logger.error(
            "api.error",
            correlation_id=correlation_id,
            path=request.url.path,
            code=exc.code,
            detail=str(exc),
        )
        message = str(exc)
        if exc.status_code >= 500 and settings.is_production:
            message = "Internal server error"
        details = list(exc.details) if isinstance(exc, ValidationError) and exc.details else None
        return _error_response(exc.status_code, message, exc.code, details)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            f"{'.'.join(str(part) for part in error.get('loc', ()) if part != 'body')}: {error.get('msg')}"
            for error in exc.errors()
        ]
        return await handle_formrag_error(request, ValidationError("Validation failed", details=details))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", "-")
        logger.error("unhandled.error", correlation_id=correlation_id, detail=str(exc))
        message = "Internal server error" if settings.is_production else str(exc)
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, message, "INTERNAL_ERROR")

    def get_dependencies(request: Request) -> AppDependencies:
        return request.app.state.dependencies

    def get_query_service(dep: AppDependencies = Depends(get_dependencies)) -> FormQueryService:
        return dep.query_service

    def get_ingestor(dep: AppDependencies = Depends(get_dependencies)) -> CustomerDataIngestor:
        return dep.ingestor

    @app.post("/api/form-query", response_model=FormQueryEnvelope)
    async def form_query(
        payload: FormQueryRequest,
        service: FormQueryService = Depends(get_query_service),
        _rl: None = Depends(rate_limiter),
    ) -> FormQueryEnvelope:
        question = redact_pii(payload.form_question) if settings.enable_pii_redaction else payload.form_question
        logger.info("api.form_query", customer_id=payload.customer_id, question_length=len(question))
        result = await service.answer(question, customer_id=payload.customer_id)
        return FormQueryEnvelope(data=FormQueryData.model_validate(result.to_dict()))

    @app.post("/api/ingest", response_model=IngestEnvelope)
    async def ingest(
        payload: IngestRequest,
        _auth: None = Depends(require_api_key),
        ingestor: CustomerDataIngestor = Depends(get_ingestor),
        _rl: None = Depends(rate_limiter),
    ) -> IngestEnvelope:
        logger.info("api.ingest", customer_id=payload.customer_id, force_reindex=payload.force_reindex)
        result = await ingestor.ingest(payload.customer_id, force_reindex=payload.force_reindex)
        return IngestEnvelope(data=IngestData.model_validate(result.to_dict()))

    @app.get("/health", response_model=HealthResponse)
    async def health(dep: AppDependencies = Depends(get_dependencies)) -> JSONResponse:
        services = {"cache": "unknown", "search": "unknown"}
        try:
            await dep.cache.set(HEALTH_CHECK_KEY, {"check": True}, ttl=CachePolicy().health_check_ttl)
            await dep.cache.delete(HEALTH_CHECK_KEY)
            services["cache"] = "ok"
        except Exception as exc:  # any probe failure degrades health
            logger.warning("health.cache_failed", error=str(exc))
            services["cache"] = "error"
        try:
            await dep.index.ensure_index()
            services["search"] = "ok"
        except Exception as exc:
            logger.warning("health.search_failed", error=str(exc))
            services["search"] = "error"
        healthy = all(value == "ok" for value in services.values())
        body = HealthResponse(
            status="ok" if healthy else "degraded",
            timestamp=datetime.now(timezone.utc).isoformat(),
            services=services,
        )
        return JSONResponse(
            status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
            content=body.model_dump(),
        )

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    return app
