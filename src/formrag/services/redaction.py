"""Best-effort PII scrubbing for incoming questions."""

from __future__ import annotations

import re

_EMAIL = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_SSN = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")
_PHONE = re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b")


def redact_pii(text: str) -> str:
    """Replace emails, SSNs and phone numbers with placeholder tags."""

    redacted = _EMAIL.sub("[EMAIL]", text)
    redacted = _SSN.sub("[SSN]", redacted)
    return _PHONE.sub("[PHONE]", redacted)
