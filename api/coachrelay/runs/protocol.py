"""Run submission and completion — polling and streaming strategies.

Both strategies append exactly one user message to the thread and start one
run. Polling returns the newest assistant message once the run completes;
streaming forwards text deltas as they arrive.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

from coachrelay.assistant.client import AssistantClient, message_text
from coachrelay.core.errors import UpstreamError, UpstreamFailure
from coachrelay.runs.polling import JobState, Waiter, failure_reason, job_state

logger = logging.getLogger("coachrelay.runs.protocol")

_FAILURE_EVENTS = (
    "thread.run.failed",
    "thread.run.cancelled",
    "thread.run.expired",
    "thread.run.incomplete",
    # no tool outputs are ever submitted, so the run cannot resume
    "thread.run.requires_action",
    "error",
)


def error_marker(reason: str) -> str:
    return f"\n[Error: {reason}]"


class RunProtocol:
    def __init__(self, client: AssistantClient, assistant_id: str, waiter: Waiter) -> None:
        self.client = client
        self.assistant_id = assistant_id
        self.waiter = waiter

    async def submit_and_await(self, thread_id: str, message: str, instructions: str) -> str:
        """Post *message*, run the assistant, and return its reply text."""
        await self.client.append_message(thread_id, message)
        run = await self.client.create_run(thread_id, self.assistant_id, instructions)
        run_id = run["id"]
        logger.info("[RUN] Started %s on thread %s", run_id, thread_id)

        async def fetch() -> dict:
            return await self.client.get_run(thread_id, run_id)

        done = await self.waiter.await_terminal(fetch, label=f"run {run_id}")
        if job_state(done) is not JobState.completed:
            reason = failure_reason(done)
            logger.error("[RUN] %s ended %s: %s", run_id, done.get("status"), reason)
            raise UpstreamFailure(reason)

        messages = await self.client.list_messages(thread_id)
        latest = messages[0] if messages else None
        if latest is None or latest.get("role") != "assistant":
            raise UpstreamFailure("No assistant response found")
        logger.info("[RUN] %s completed", run_id)
        return message_text(latest)

    async def open_stream(self, thread_id: str, message: str, instructions: str) -> AsyncIterator[str]:
        """Post *message* and return an iterator over the assistant's reply text.

        Errors posting the message raise here. Failures once the reply is
        flowing are reported as an inline error marker, since the response
        has already started.
        """
        await self.client.append_message(thread_id, message)
        return self._relay(thread_id, instructions)

    async def _relay(self, thread_id: str, instructions: str) -> AsyncIterator[str]:
        run_id = "?"
        try:
            events = self.client.stream_run(thread_id, self.assistant_id, instructions)
            async with aclosing(events):
                async for event, data in events:
                    if event == "thread.run.created" and isinstance(data, dict):
                        run_id = data.get("id", run_id)
                        logger.info("[STREAM] Started %s on thread %s", run_id, thread_id)
                    elif event == "thread.message.delta" and isinstance(data, dict):
                        for block in (data.get("delta") or {}).get("content") or []:
                            if block.get("type") == "text":
                                text = (block.get("text") or {}).get("value", "")
                                if text:
                                    yield text
                    elif event == "thread.run.completed":
                        logger.info("[STREAM] %s completed", run_id)
                        return
                    elif event in _FAILURE_EVENTS:
                        reason = _event_reason(data)
                        logger.error("[STREAM] %s failed: %s", run_id, reason)
                        yield error_marker(reason)
                        return
        except UpstreamError as exc:
            logger.error("[STREAM] %s transport error: %s", run_id, exc)
            yield error_marker(str(exc))
            return

        logger.error("[STREAM] %s feed ended before the run finished", run_id)
        yield error_marker("Response ended before the run finished")


def _event_reason(data: object) -> str:
    if isinstance(data, dict):
        if "last_error" in data or "status" in data:
            return failure_reason(data)
        return data.get("message") or "Unknown error"
    return str(data) or "Unknown error"
