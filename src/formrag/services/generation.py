"""Completion providers and grounded answer generation."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, List, Mapping, Protocol, Sequence

from openai import AsyncAzureOpenAI, OpenAIError

from formrag.errors import GenerationParseError, UpstreamProviderError
from formrag.metrics.observability import PipelineMetrics, get_logger
from formrag.models import GenerationResult, SearchResult

LOGGER = get_logger("generation")

ChatMessage = Mapping[str, str]

ANSWER_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "answer": {"type": "string", "description": "Concise answer to the question"},
        "dataPath": {"type": "array", "items": {"type": "string"}},
        "explanation": {"type": "string", "description": "One or two sentences"},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
    },
    "required": ["answer", "dataPath", "explanation", "confidence"],
}


@dataclass(frozen=True)
class StructuredCompletion:
    """Either a parsed JSON object or the raw text that failed to parse."""

    raw_text: str
    parsed: Mapping[str, Any] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.parsed is not None

    @classmethod
    def from_text(cls, raw_text: str) -> "StructuredCompletion":
        try:
            value = json.loads(raw_text)
        except json.JSONDecodeError as exc:
            return cls(raw_text=raw_text, error=f"invalid JSON: {exc.msg}")
        if not isinstance(value, dict):
            return cls(raw_text=raw_text, error=f"expected a JSON object, got {type(value).__name__}")
        return cls(raw_text=raw_text, parsed=value)


class CompletionProvider(Protocol):
    """Protocol describing chat completion behaviour."""

    async def complete(self, messages: Sequence[ChatMessage]) -> str:
        """Return the assistant message text."""

    async def complete_structured(
        self,
        messages: Sequence[ChatMessage],
        schema: Mapping[str, Any] | None = None,
    ) -> StructuredCompletion:
        """Return a JSON-constrained completion as a tagged result."""


@dataclass(frozen=True)
class GenerationConfig:
    """Configuration for answer generation."""

    deployment: str = "gpt-4.1-mini"
    temperature: float = 0.0
    max_tokens: int = 800


class AzureOpenAICompletionProvider:
    """Chat completions against an Azure OpenAI deployment."""

    def __init__(self, client: AsyncAzureOpenAI, config: GenerationConfig | None = None) -> None:
        self._client = client
        self._config = config or GenerationConfig()

    async def complete(self, messages: Sequence[ChatMessage], *, json_mode: bool = False) -> str:
        kwargs: dict[str, Any] = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            response = await self._client.chat.completions.create(
                model=self._config.deployment,
                messages=[dict(message) for message in messages],
                temperature=self._config.temperature,
                max_tokens=self._config.max_tokens,
                **kwargs,
            )
        except OpenAIError as exc:
            LOGGER.error("completion.failed", error=str(exc))
            raise UpstreamProviderError("completion", str(exc)) from exc
        if not response.choices or response.choices[0].message is None:
            raise UpstreamProviderError("completion", "No choices returned")
        return response.choices[0].message.content or ""

    async def complete_structured(
        self,
        messages: Sequence[ChatMessage],
        schema: Mapping[str, Any] | None = None,
    ) -> StructuredCompletion:
        if schema:
            system = f"You must respond with valid JSON matching this schema: {json.dumps(schema)}"
        else:
            system = "You must respond with valid JSON only, no additional text."
        text = await self.complete([{"role": "system", "content": system}, *messages], json_mode=True)
        return StructuredCompletion.from_text(text)


class PromptBuilder:
    """Builds the grounded prompt for the generation backend."""

    def build_context(self, results: Sequence[SearchResult]) -> str:
        return "\n".join(
            f"[{index}] Data Path: {result.data_path}\nContent: {result.content}\n"
            for index, result in enumerate(results, start=1)
        )

    def build_messages(self, question: str, results: Sequence[SearchResult]) -> List[dict[str, str]]:
        prompt = (
            "You are a helpful assistant answering questions about form data. "
            "Based on the provided context, answer the question accurately and concisely.\n\n"
            f"Context:\n{self.build_context(results)}\n"
            f"Question: {question}\n\n"
            "Respond with a JSON object containing:\n"
            '- "answer": your concise answer to the question\n'
            '- "dataPath": the list of data paths from the context that support the answer\n'
            '- "explanation": a brief explanation of your answer (1-2 sentences)\n'
            '- "confidence": a number between 0 and 1 indicating how confident you are '
            "based on the available context"
        )
        return [{"role": "user", "content": prompt}]


def validate_answer(result: GenerationResult) -> List[str]:
    """Return every failed quality check; an empty list means the answer is valid."""

    problems: List[str] = []
    if not result.answer.strip():
        problems.append("answer is empty")
    if not result.data_paths:
        problems.append("no data paths cited")
    if not result.explanation.strip():
        problems.append("explanation is empty")
    if not 0.0 <= result.llm_confidence <= 1.0:
        problems.append(f"confidence {result.llm_confidence} outside [0, 1]")
    return problems


class AnswerGenerator:
    """Requests a structured, grounded answer and validates it field by field."""

    def __init__(self, provider: CompletionProvider, prompt_builder: PromptBuilder | None = None) -> None:
        self._provider = provider
        self._prompt_builder = prompt_builder or PromptBuilder()

    async def generate(self, question: str, context: Sequence[SearchResult]) -> GenerationResult:
        messages = self._prompt_builder.build_messages(question, context)
        start = time.perf_counter()
        completion = await self._provider.complete_structured(messages, ANSWER_SCHEMA)
        duration = time.perf_counter() - start
        PipelineMetrics.observe_generation(duration)
        if not completion.ok:
            LOGGER.error("generation.unparseable", error=completion.error)
            raise GenerationParseError(
                f"Structured completion could not be parsed: {completion.error}",
                raw_text=completion.raw_text,
            )
        result = parse_generation(completion.parsed, raw_text=completion.raw_text)
        problems = validate_answer(result)
        # an empty answer or out-of-range confidence is unusable; missing citations
        # or explanation only degrade the response
        if not result.answer or not 0.0 <= result.llm_confidence <= 1.0:
            LOGGER.error("generation.invalid", problems=problems)
            raise GenerationParseError(
                f"Generated answer failed validation: {'; '.join(problems)}",
                raw_text=completion.raw_text,
            )
        if problems:
            LOGGER.warning("generation.degraded", problems=problems)
        LOGGER.info(
            "generation.complete",
            context_size=len(context),
            data_path_count=len(result.data_paths),
            llm_confidence=result.llm_confidence,
            duration_seconds=duration,
        )
        return result


def parse_generation(payload: Mapping[str, Any] | None, *, raw_text: str | None = None) -> GenerationResult:
    """Build a ``GenerationResult`` from a parsed completion; never fills in defaults."""

    if payload is None:
        raise GenerationParseError("Structured completion is empty", raw_text=raw_text)
    answer = payload.get("answer")
    if not isinstance(answer, str):
        raise GenerationParseError("'answer' must be a string", raw_text=raw_text)
    paths = payload.get("dataPath")
    if not isinstance(paths, list) or not all(isinstance(path, str) for path in paths):
        raise GenerationParseError("'dataPath' must be a list of strings", raw_text=raw_text)
    explanation = payload.get("explanation")
    if not isinstance(explanation, str):
        raise GenerationParseError("'explanation' must be a string", raw_text=raw_text)
    confidence = payload.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise GenerationParseError("'confidence' must be a number", raw_text=raw_text)
    return GenerationResult(
        answer=answer.strip(),
        data_paths=tuple(path for path in paths if path),
        explanation=explanation.strip(),
        llm_confidence=float(confidence),
    )
