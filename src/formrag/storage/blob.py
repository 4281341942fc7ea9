"""Object store adapters returning parsed JSON documents."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Protocol

import httpx

from formrag.errors import UpstreamProviderError
from formrag.metrics.observability import get_logger

LOGGER = get_logger("storage")


def customer_object_id(customer_id: str) -> str:
    return f"customers/{customer_id}/data.json"


class ObjectStore(Protocol):
    async def get_json(self, object_id: str) -> Any:
        """Download ``object_id`` and decode it as JSON."""

    async def get_customer_data(self, customer_id: str) -> Any:
        """Return the raw document for ``customer_id``."""

    async def close(self) -> None:
        """Release network resources."""


class FilesystemObjectStore:
    """Reads objects from a local directory laid out like the blob container."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    async def get_json(self, object_id: str) -> Any:
        path = (self._root / object_id).resolve()
        if self._root.resolve() not in path.parents:
            raise UpstreamProviderError("storage", f"Object id escapes store root: {object_id}")
        try:
            payload = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except OSError as exc:
            LOGGER.error("storage.read_failed", object_id=object_id, error=str(exc))
            raise UpstreamProviderError("storage", f"Failed to read {object_id}") from exc
        return _decode(object_id, payload)

    async def get_customer_data(self, customer_id: str) -> Any:
        return await self.get_json(customer_object_id(customer_id))

    async def close(self) -> None:
        return None


class HttpObjectStore:
    """Fetches objects over HTTP(S), e.g. from a blob container URL with a SAS token."""

    def __init__(
        self,
        base_url: str,
        *,
        sas_token: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._sas_token = (sas_token or "").lstrip("?") or None
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def get_json(self, object_id: str) -> Any:
        url = f"{self._base_url}/{object_id.lstrip('/')}"
        if self._sas_token:
            url = f"{url}?{self._sas_token}"
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            # never log the signed URL
            LOGGER.error("storage.download_failed", object_id=object_id, error=type(exc).__name__)
            raise UpstreamProviderError("storage", f"Failed to download {object_id}") from exc
        return _decode(object_id, response.text)

    async def get_customer_data(self, customer_id: str) -> Any:
        return await self.get_json(customer_object_id(customer_id))

    async def close(self) -> None:
        await self._client.aclose()


def _decode(object_id: str, payload: str) -> Any:
    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        raise UpstreamProviderError("storage", f"Object {object_id} is not valid JSON") from exc
