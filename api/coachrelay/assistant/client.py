"""Assistants API client — threads, messages, runs, files, vector stores.

Thin async wrapper over the OpenAI Assistants v2 REST API. Every call opens a
short-lived ``httpx.AsyncClient``; transport errors and non-2xx statuses are
raised as ``UpstreamUnavailable``.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import AsyncIterator
from typing import Any

import httpx

from coachrelay.core.config import CR_OPENAI_BASE_URL, CR_OPENAI_TIMEOUT, OPENAI_API_KEY
from coachrelay.core.errors import UpstreamUnavailable

logger = logging.getLogger("coachrelay.assistant.client")

_BETA_HEADER = "assistants=v2"


def message_text(message: dict) -> str:
    """Concatenate the text parts of an Assistants message object."""
    parts = []
    for block in message.get("content") or []:
        if block.get("type") == "text":
            parts.append((block.get("text") or {}).get("value", ""))
    return "".join(parts)


class AssistantClient:
    """Async client for the hosted assistant service."""

    def __init__(
        self,
        *,
        api_key: str = OPENAI_API_KEY,
        base_url: str = CR_OPENAI_BASE_URL,
        timeout: float = CR_OPENAI_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self, timeout: float | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "OpenAI-Beta": _BETA_HEADER,
            },
            timeout=timeout or self.timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict:
        try:
            async with self._client() as client:
                r = await client.request(method, path, **kwargs)
                r.raise_for_status()
                return r.json()
        except httpx.HTTPStatusError as exc:
            raise UpstreamUnavailable(
                f"{method} {path} returned {exc.response.status_code}: {exc.response.text[:300]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(f"{method} {path} failed: {exc}") from exc

    # ── Threads & messages ────────────────────────────────

    async def create_thread(self) -> str:
        data = await self._request("POST", "/threads", json={})
        return data["id"]

    async def append_message(self, thread_id: str, content: str, role: str = "user") -> dict:
        return await self._request(
            "POST",
            f"/threads/{thread_id}/messages",
            json={"role": role, "content": content},
        )

    async def list_messages(self, thread_id: str, limit: int = 20) -> list[dict]:
        """Return the thread's messages, newest first."""
        data = await self._request(
            "GET",
            f"/threads/{thread_id}/messages",
            params={"order": "desc", "limit": limit},
        )
        return data.get("data", [])

    # ── Runs ──────────────────────────────────────────────

    async def create_run(
        self, thread_id: str, assistant_id: str, additional_instructions: str = ""
    ) -> dict:
        body: dict = {"assistant_id": assistant_id}
        if additional_instructions:
            body["additional_instructions"] = additional_instructions
        return await self._request("POST", f"/threads/{thread_id}/runs", json=body)

    async def get_run(self, thread_id: str, run_id: str) -> dict:
        return await self._request("GET", f"/threads/{thread_id}/runs/{run_id}")

    async def list_runs(self, thread_id: str, limit: int = 20) -> list[dict]:
        data = await self._request(
            "GET", f"/threads/{thread_id}/runs", params={"limit": limit}
        )
        return data.get("data", [])

    async def stream_run(
        self, thread_id: str, assistant_id: str, additional_instructions: str = ""
    ) -> AsyncIterator[tuple[str, Any]]:
        """Create a streaming run and yield ``(event, data)`` pairs from the SSE feed.

        ``data`` is the decoded JSON payload, or the raw string when it is not JSON.
        The feed ends at the ``[DONE]`` sentinel or when the server closes.
        """
        body: dict = {"assistant_id": assistant_id, "stream": True}
        if additional_instructions:
            body["additional_instructions"] = additional_instructions

        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", f"/threads/{thread_id}/runs", json=body
                ) as r:
                    if r.status_code >= 400:
                        await r.aread()
                        raise UpstreamUnavailable(
                            f"POST /threads/{thread_id}/runs (stream) returned "
                            f"{r.status_code}: {r.text[:300]}"
                        )
                    event = "message"
                    data_lines: list[str] = []
                    async for line in r.aiter_lines():
                        if line.startswith("event:"):
                            event = line[6:].strip()
                        elif line.startswith("data:"):
                            data_lines.append(line[5:].strip())
                        elif not line and data_lines:
                            raw = "\n".join(data_lines)
                            data_lines = []
                            if raw == "[DONE]":
                                return
                            yield event, _decode(raw)
                            event = "message"
                    if data_lines:
                        raw = "\n".join(data_lines)
                        if raw != "[DONE]":
                            yield event, _decode(raw)
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(f"Run stream failed: {exc}") from exc

    # ── Files ─────────────────────────────────────────────

    async def upload_file(self, path: str, filename: str | None = None, purpose: str = "assistants") -> dict:
        name = filename or os.path.basename(path)
        try:
            with open(path, "rb") as fh:
                async with self._client() as client:
                    r = await client.post(
                        "/files",
                        data={"purpose": purpose},
                        files={"file": (name, fh, "application/octet-stream")},
                    )
                    r.raise_for_status()
                    return r.json()
        except httpx.HTTPStatusError as exc:
            raise UpstreamUnavailable(
                f"POST /files returned {exc.response.status_code}: {exc.response.text[:300]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(f"POST /files failed: {exc}") from exc

    async def list_files(self, purpose: str = "assistants") -> list[dict]:
        data = await self._request("GET", "/files", params={"purpose": purpose})
        return data.get("data", [])

    async def retrieve_file(self, file_id: str) -> dict:
        return await self._request("GET", f"/files/{file_id}")

    # ── Vector stores ─────────────────────────────────────

    async def supports_vector_stores(self) -> bool:
        """Probe the vector store endpoint; a 404 means the API predates it."""
        try:
            async with self._client() as client:
                r = await client.get("/vector_stores", params={"limit": 1})
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(f"Vector store probe failed: {exc}") from exc
        if r.status_code == 200:
            return True
        if r.status_code in (400, 404):
            return False
        raise UpstreamUnavailable(f"Vector store probe returned {r.status_code}: {r.text[:300]}")

    async def create_vector_store(self, name: str) -> dict:
        return await self._request("POST", "/vector_stores", json={"name": name})

    async def add_vector_store_file(self, vector_store_id: str, file_id: str) -> dict:
        return await self._request(
            "POST", f"/vector_stores/{vector_store_id}/files", json={"file_id": file_id}
        )

    async def list_vector_store_files(self, vector_store_id: str) -> list[dict]:
        data = await self._request("GET", f"/vector_stores/{vector_store_id}/files")
        return data.get("data", [])

    # ── Assistants ────────────────────────────────────────

    async def create_assistant(self, payload: dict) -> dict:
        return await self._request("POST", "/assistants", json=payload)

    async def retrieve_assistant(self, assistant_id: str) -> dict:
        return await self._request("GET", f"/assistants/{assistant_id}")

    async def update_assistant(self, assistant_id: str, payload: dict) -> dict:
        return await self._request("POST", f"/assistants/{assistant_id}", json=payload)


def _decode(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw
