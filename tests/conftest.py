"""tests/conftest.py

Pytest configuration and shared fixtures for the coachrelay test suite.

The remote Assistants API is replaced by ``FakeAssistantsAPI``, a small
stateful fake served through ``httpx.MockTransport`` so the real client code
(URL building, SSE parsing, error mapping) is exercised.
"""

from __future__ import annotations

# Standard Library
import itertools
import json
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

# Third-Party Libraries
import httpx
import pytest
from fastapi import FastAPI

# Local Modules
from coachrelay.assistant.client import AssistantClient
from coachrelay.main import create_app
from coachrelay.services import build_services

BASE_URL = "https://api.test/v1"
JWT_SECRET = "test-secret"
ASSISTANT_ID = "asst_test"
DEFAULT_REPLY = "Being stuck is information. What is the one decision you keep postponing?"


@dataclass
class FakeRun:
    id: str
    thread_id: str
    script: list[str]
    failure_reason: str = "Rate limit exceeded"
    index: int = 0

    @property
    def status(self) -> str:
        return self.script[self.index]

    def advance(self) -> str:
        self.index = min(self.index + 1, len(self.script) - 1)
        return self.status

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "object": "thread.run", "status": self.status}
        data["last_error"] = (
            {"code": "server_error", "message": self.failure_reason}
            if self.status == "failed"
            else None
        )
        if self.status == "incomplete":
            data["incomplete_details"] = {"reason": self.failure_reason}
        return data


class _DroppedStream(httpx.AsyncByteStream):
    """SSE body whose connection drops after the given chunks."""

    def __init__(self, chunks: list[bytes]) -> None:
        self.chunks = chunks

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        raise httpx.ReadError("Connection reset by peer")


def _text_message(message_id: str, role: str, text: str) -> dict[str, Any]:
    return {
        "id": message_id,
        "role": role,
        "content": [{"type": "text", "text": {"value": text, "annotations": []}}],
    }


@dataclass
class FakeAssistantsAPI:
    """In-memory stand-in for the Assistants v2 REST API."""

    supports_vector_stores: bool = True
    run_script: list[str] = field(default_factory=lambda: ["queued", "in_progress", "completed"])
    reply_text: str = DEFAULT_REPLY
    failure_reason: str = "Rate limit exceeded"
    stream_chunks: list[str] = field(default_factory=lambda: ["Being stuck ", "is information."])
    stream_failure: str | None = None
    stream_incomplete: str | None = None
    stream_truncated: bool = False
    stream_disconnect: bool = False
    fail_paths: set[tuple[str, str]] = field(default_factory=set)

    calls: list[tuple[str, str]] = field(default_factory=list)
    threads: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    runs: dict[str, FakeRun] = field(default_factory=dict)
    files: dict[str, dict[str, Any]] = field(default_factory=dict)
    file_contents: dict[str, bytes] = field(default_factory=dict)
    vector_stores: dict[str, list[str]] = field(default_factory=dict)
    assistants: dict[str, dict[str, Any]] = field(default_factory=dict)
    overlapping_submissions: int = 0

    def __post_init__(self) -> None:
        self._ids = itertools.count(1)
        self.assistants[ASSISTANT_ID] = {
            "id": ASSISTANT_ID,
            "name": "Test Coach",
            "tools": [{"type": "file_search"}],
            "tool_resources": {},
            "file_ids": [],
        }

    # ── helpers for tests ─────────────────────────────────
    def _new_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids)}"

    def count(self, method: str, pattern: str) -> int:
        return sum(1 for m, p in self.calls if m == method and re.fullmatch(pattern, p))

    def start_run(self, thread_id: str, script: list[str]) -> str:
        """Create a run directly, as if another request had submitted it."""
        run = FakeRun(self._new_id("run"), thread_id, list(script), self.failure_reason)
        self.runs[run.id] = run
        return run.id

    def transport(self) -> httpx.MockTransport:
        # Late-bound so tests can wrap ``handler`` after the client exists
        return httpx.MockTransport(lambda request: self.handler(request))

    def _complete(self, run: FakeRun) -> None:
        self.threads[run.thread_id].append(
            _text_message(self._new_id("msg"), "assistant", self.reply_text)
        )

    # ── request dispatch ──────────────────────────────────
    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path.removeprefix("/v1")
        self.calls.append((method, path))

        for fail_method, fail_prefix in self.fail_paths:
            if method == fail_method and path.startswith(fail_prefix):
                return httpx.Response(500, json={"error": {"message": "upstream exploded"}})

        body: Any = None
        content_type = request.headers.get("content-type", "")
        if request.content and content_type.startswith("application/json"):
            body = json.loads(request.content)

        parts = path.strip("/").split("/")

        if parts == ["threads"] and method == "POST":
            thread_id = self._new_id("thread")
            self.threads[thread_id] = []
            return httpx.Response(200, json={"id": thread_id, "object": "thread"})

        if len(parts) >= 3 and parts[0] == "threads":
            thread_id = parts[1]
            if thread_id not in self.threads:
                return httpx.Response(404, json={"error": {"message": "No thread found"}})
            return self._thread_route(method, thread_id, parts[2:], body, request)

        if parts[0] == "files":
            return self._files_route(method, parts[1:], request)

        if parts[0] == "vector_stores":
            return self._vector_store_route(method, parts[1:], body)

        if parts[0] == "assistants":
            return self._assistant_route(method, parts[1:], body)

        return httpx.Response(404, json={"error": {"message": f"Unknown route {path}"}})

    def _thread_route(self, method, thread_id, rest, body, request) -> httpx.Response:
        messages = self.threads[thread_id]

        if rest == ["messages"] and method == "POST":
            msg = _text_message(self._new_id("msg"), body["role"], body["content"])
            messages.append(msg)
            return httpx.Response(200, json=msg)

        if rest == ["messages"] and method == "GET":
            limit = int(request.url.params.get("limit", "20"))
            ordered = list(reversed(messages)) if request.url.params.get("order") == "desc" else messages
            return httpx.Response(200, json={"data": ordered[:limit]})

        if rest == ["runs"] and method == "POST":
            active = [
                r for r in self.runs.values()
                if r.thread_id == thread_id
                and r.status in ("queued", "in_progress", "requires_action", "cancelling")
            ]
            if active:
                self.overlapping_submissions += 1
            if body.get("stream"):
                return self._stream_run(thread_id)
            run_id = self.start_run(thread_id, self.run_script)
            return httpx.Response(200, json=self.runs[run_id].as_dict())

        if rest == ["runs"] and method == "GET":
            on_thread = [r.as_dict() for r in reversed(list(self.runs.values())) if r.thread_id == thread_id]
            return httpx.Response(200, json={"data": on_thread})

        if len(rest) == 2 and rest[0] == "runs" and method == "GET":
            run = self.runs.get(rest[1])
            if run is None:
                return httpx.Response(404, json={"error": {"message": "No run found"}})
            before = run.status
            run.advance()
            if run.status == "completed" and before != "completed":
                self._complete(run)
            return httpx.Response(200, json=run.as_dict())

        return httpx.Response(404, json={"error": {"message": "Unknown thread route"}})

    def _stream_run(self, thread_id: str) -> httpx.Response:
        run_id = self.start_run(thread_id, ["in_progress"])
        run = self.runs[run_id]

        def event(name: str, data: Any) -> str:
            payload = data if isinstance(data, str) else json.dumps(data)
            return f"event: {name}\ndata: {payload}\n\n"

        chunks = [event("thread.run.created", {"id": run_id, "status": "queued"})]
        for piece in self.stream_chunks:
            chunks.append(event(
                "thread.message.delta",
                {"id": "msg_delta", "delta": {"content": [
                    {"index": 0, "type": "text", "text": {"value": piece}}
                ]}},
            ))
        if self.stream_disconnect:
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                stream=_DroppedStream([c.encode() for c in chunks]),
            )
        if self.stream_failure:
            run.script = ["failed"]
            run.failure_reason = self.stream_failure
            chunks.append(event("thread.run.failed", run.as_dict()))
        elif self.stream_incomplete:
            run.script = ["incomplete"]
            run.failure_reason = self.stream_incomplete
            chunks.append(event("thread.run.incomplete", run.as_dict()))
        elif not self.stream_truncated:
            run.script = ["completed"]
            self.threads[thread_id].append(
                _text_message(self._new_id("msg"), "assistant", "".join(self.stream_chunks))
            )
            chunks.append(event("thread.run.completed", run.as_dict()))
        chunks.append(event("done", "[DONE]"))
        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content="".join(chunks).encode(),
        )

    def _files_route(self, method, rest, request) -> httpx.Response:
        if not rest and method == "POST":
            raw = request.content
            match = re.search(rb'filename="([^"]+)"', raw)
            filename = match.group(1).decode() if match else "upload.bin"
            file_id = self._new_id("file")
            # Body of the file part sits between the part headers and the closing boundary
            payload = raw.split(b"\r\n\r\n", 2)[-1].rsplit(b"\r\n--", 1)[0]
            self.file_contents[file_id] = payload
            self.files[file_id] = {
                "id": file_id,
                "object": "file",
                "filename": filename,
                "bytes": len(payload),
                "purpose": "assistants",
                "created_at": 1_700_000_000,
            }
            return httpx.Response(200, json=self.files[file_id])
        if not rest and method == "GET":
            return httpx.Response(200, json={"data": list(self.files.values())})
        if len(rest) == 1 and method == "GET":
            info = self.files.get(rest[0])
            if info is None:
                return httpx.Response(404, json={"error": {"message": "No such file"}})
            return httpx.Response(200, json=info)
        return httpx.Response(404, json={"error": {"message": "Unknown files route"}})

    def _vector_store_route(self, method, rest, body) -> httpx.Response:
        if not self.supports_vector_stores:
            return httpx.Response(404, json={"error": {"message": "Invalid URL"}})
        if not rest and method == "GET":
            return httpx.Response(200, json={"data": [{"id": v} for v in self.vector_stores]})
        if not rest and method == "POST":
            store_id = self._new_id("vs")
            self.vector_stores[store_id] = []
            return httpx.Response(200, json={"id": store_id, "name": body.get("name")})
        if len(rest) == 2 and rest[1] == "files":
            files = self.vector_stores.get(rest[0])
            if files is None:
                return httpx.Response(404, json={"error": {"message": "No vector store"}})
            if method == "POST":
                files.append(body["file_id"])
                return httpx.Response(200, json={"id": body["file_id"], "status": "completed"})
            return httpx.Response(200, json={"data": [{"id": f, "status": "completed"} for f in files]})
        return httpx.Response(404, json={"error": {"message": "Unknown vector store route"}})

    def _assistant_route(self, method, rest, body) -> httpx.Response:
        if not rest and method == "POST":
            assistant_id = self._new_id("asst")
            self.assistants[assistant_id] = {"id": assistant_id, "file_ids": [], **body}
            return httpx.Response(200, json=self.assistants[assistant_id])
        assistant = self.assistants.get(rest[0]) if rest else None
        if assistant is None:
            return httpx.Response(404, json={"error": {"message": "No assistant found"}})
        if method == "POST":
            assistant.update(body)
        return httpx.Response(200, json=assistant)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_api() -> FakeAssistantsAPI:
    """Create a fresh fake Assistants API.

    Returns:
        FakeAssistantsAPI with a pre-seeded assistant ``asst_test``.
    """
    return FakeAssistantsAPI()


@pytest.fixture
def assistant_client(fake_api: FakeAssistantsAPI) -> AssistantClient:
    """Create an AssistantClient wired to the fake API.

    Returns:
        AssistantClient using an ``httpx.MockTransport``.
    """
    return AssistantClient(api_key="sk-test", base_url=BASE_URL, transport=fake_api.transport())


@pytest.fixture
def make_app(assistant_client: AssistantClient, tmp_path) -> Callable[..., FastAPI]:
    """Build an app whose lifespan wires services against the fake API.

    Keyword arguments are forwarded to ``build_services``.
    """

    def _make(**overrides: Any) -> FastAPI:
        options: dict[str, Any] = {
            "assistant_id": ASSISTANT_ID,
            "jwt_secret": JWT_SECRET,
            "poll_interval": 0,
            "poll_max_attempts": 5,
            "upload_dir": str(tmp_path),
        }
        options.update(overrides)
        return create_app(lambda: build_services(assistant_client, **options))

    return _make
