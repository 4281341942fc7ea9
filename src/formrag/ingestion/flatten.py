"""Flatten nested JSON documents into (path, value) pairs."""

from __future__ import annotations

from typing import Any, Iterator, List, Mapping, Sequence, Tuple


def flatten(value: Any, prefix: str = "") -> List[Tuple[str, str]]:
    """Return every scalar leaf of ``value`` with its dotted/bracketed path.

    Mapping keys are joined with ``.`` and sequence positions rendered as
    ``[i]``; ``None`` leaves are dropped. Repeated paths are kept as-is.

    >>> flatten({"contact": {"emails": ["a@b.co"]}, "active": True})
    [('contact.emails[0]', 'a@b.co'), ('active', 'true')]
    """

    return list(_walk(value, prefix))


def _walk(value: Any, path: str) -> Iterator[Tuple[str, str]]:
    if value is None:
        return
    if isinstance(value, Mapping):
        for key, child in value.items():
            yield from _walk(child, f"{path}.{key}" if path else str(key))
    elif isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        for index, child in enumerate(value):
            yield from _walk(child, f"{path}[{index}]")
    elif isinstance(value, bool):
        # JSON spelling, matching what the source documents contain
        yield path, "true" if value else "false"
    elif isinstance(value, (str, int, float)):
        yield path, str(value)
