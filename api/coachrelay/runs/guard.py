"""Per-thread concurrency guard — wait for any active run before submitting."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from coachrelay.assistant.client import AssistantClient
from coachrelay.runs.polling import JobState, Waiter, job_state

logger = logging.getLogger("coachrelay.runs.guard")


class ConcurrencyGuard:
    """Linearize run submissions per thread.

    ``ensure_exclusive_access`` only waits: two requests that both observe an
    idle thread may still submit concurrently. With ``strict=True``, ``hold``
    serializes the whole check → submit → complete sequence per thread.
    """

    def __init__(self, client: AssistantClient, waiter: Waiter, strict: bool = False) -> None:
        self.client = client
        self.waiter = waiter
        self.strict = strict
        self._locks: dict[str, asyncio.Lock] = {}

    async def ensure_exclusive_access(self, thread_id: str) -> None:
        runs = await self.client.list_runs(thread_id)
        for run in runs:
            if job_state(run).terminal:
                continue
            run_id = run["id"]
            logger.info(
                "[GUARD] Thread %s has active run %s (status=%s); waiting",
                thread_id, run_id, run.get("status"),
            )

            async def fetch(run_id: str = run_id) -> dict:
                return await self.client.get_run(thread_id, run_id)

            done = await self.waiter.await_terminal(fetch, label=f"prior run {run_id}")
            logger.info("[GUARD] Prior run %s finished with %s", run_id, done.get("status"))
            if job_state(done) is JobState.failed:
                logger.warning("[GUARD] Prior run %s failed; continuing with new submission", run_id)

    @asynccontextmanager
    async def hold(self, thread_id: str) -> AsyncIterator[None]:
        """Guard a submission; in strict mode, also hold the thread's mutex."""
        if not self.strict:
            await self.ensure_exclusive_access(thread_id)
            yield
            return

        lock = self._locks.setdefault(thread_id, asyncio.Lock())
        async with lock:
            await self.ensure_exclusive_access(thread_id)
            yield
