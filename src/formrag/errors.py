"""Error taxonomy shared by the FormRAG pipeline and API."""

from __future__ import annotations


class FormRagError(RuntimeError):
    """Base error carrying the HTTP status and machine-readable code."""

    code = "INTERNAL_ERROR"
    status_code = 500


class ConfigurationError(FormRagError):
    """Raised when the process cannot be wired from the supplied settings."""

    code = "CONFIGURATION_ERROR"


class ValidationError(FormRagError):
    """Raised for malformed requests; ``details`` lists each failing field."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, *, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class AuthError(FormRagError):
    """Raised when the ingest credential is missing or wrong."""

    code = "UNAUTHORIZED"
    status_code = 401


class RateLimitError(FormRagError):
    code = "RATE_LIMITED"
    status_code = 429


class UpstreamProviderError(FormRagError):
    """Raised when an embedding, search, cache or object-store call fails."""

    code = "UPSTREAM_ERROR"

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class CacheError(UpstreamProviderError):
    """Raised by cache adapters on connectivity failures."""

    def __init__(self, message: str) -> None:
        super().__init__("cache", message)


class GenerationParseError(FormRagError):
    """Raised when a structured completion cannot be parsed or fails validation."""

    code = "GENERATION_ERROR"

    def __init__(self, message: str, *, raw_text: str | None = None) -> None:
        super().__init__(message)
        self.raw_text = raw_text


class IngestionError(FormRagError):
    """Raised when ingestion fails; ingestion must then be restarted from scratch."""

    code = "INGESTION_ERROR"


__all__ = [
    "AuthError",
    "CacheError",
    "ConfigurationError",
    "FormRagError",
    "GenerationParseError",
    "IngestionError",
    "RateLimitError",
    "UpstreamProviderError",
    "ValidationError",
]
