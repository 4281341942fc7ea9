"""Token-bounded overlapping chunking."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Protocol, Sequence, Tuple

import tiktoken


class Encoding(Protocol):
    """Subset of the tiktoken ``Encoding`` API the chunker relies on."""

    def encode(self, text: str) -> List[int]:
        ...

    def decode(self, tokens: Sequence[int]) -> str:
        ...


@dataclass(frozen=True)
class TextWindow:
    text: str
    start: int
    end: int


def token_windows(total_tokens: int, size: int, overlap: int) -> List[Tuple[int, int]]:
    """Return ``(start, end)`` token offsets of each window.

    Consecutive windows start ``size - overlap`` tokens apart; the last window
    ends at ``total_tokens`` and may be shorter than ``size``.
    """

    if size <= 0:
        raise ValueError("chunk size must be > 0")
    if overlap < 0 or overlap >= size:
        raise ValueError("chunk overlap must satisfy 0 <= overlap < size")
    windows: List[Tuple[int, int]] = []
    start = 0
    while start < total_tokens:
        end = min(start + size, total_tokens)
        windows.append((start, end))
        if end == total_tokens:
            break
        start += size - overlap
    return windows


class Tokenizer:
    """Counts, truncates and chunks text using a BPE encoding."""

    def __init__(
        self,
        encoding: Encoding | None = None,
        *,
        model: str = "gpt-4",
        size: int = 500,
        overlap: int = 100,
    ) -> None:
        # Fail at construction rather than looping forever on the first chunk call
        token_windows(0, size, overlap)
        self._encoding = encoding
        self._model = model
        self.size = size
        self.overlap = overlap

    @property
    def encoding(self) -> Encoding:
        if self._encoding is None:
            self._encoding = tiktoken.encoding_for_model(self._model)
        return self._encoding

    def count(self, text: str) -> int:
        return len(self.encoding.encode(text))

    def truncate(self, text: str, max_tokens: int) -> str:
        tokens = self.encoding.encode(text)
        if len(tokens) <= max_tokens:
            return text
        return self.encoding.decode(tokens[:max_tokens])

    def windows(self, text: str, size: int | None = None, overlap: int | None = None) -> List[TextWindow]:
        size = self.size if size is None else size
        overlap = self.overlap if overlap is None else overlap
        tokens = self.encoding.encode(text)
        return [
            TextWindow(text=self.encoding.decode(tokens[start:end]), start=start, end=end)
            for start, end in token_windows(len(tokens), size, overlap)
        ]

    def chunk(self, text: str, size: int | None = None, overlap: int | None = None) -> List[str]:
        return [window.text for window in self.windows(text, size, overlap)]
