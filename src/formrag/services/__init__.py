"""Service layer orchestrations for FormRAG."""

from .confidence import ConfidenceScorer
from .generation import (
    ANSWER_SCHEMA,
    AnswerGenerator,
    AzureOpenAICompletionProvider,
    CompletionProvider,
    GenerationConfig,
    PromptBuilder,
    StructuredCompletion,
    parse_generation,
    validate_answer,
)
from .query import NO_INFORMATION_ANSWER, FormQueryService, QueryServiceConfig
from .redaction import redact_pii

__all__ = [
    "ANSWER_SCHEMA",
    "AnswerGenerator",
    "AzureOpenAICompletionProvider",
    "CompletionProvider",
    "ConfidenceScorer",
    "FormQueryService",
    "GenerationConfig",
    "NO_INFORMATION_ANSWER",
    "PromptBuilder",
    "QueryServiceConfig",
    "StructuredCompletion",
    "parse_generation",
    "redact_pii",
    "validate_answer",
]
