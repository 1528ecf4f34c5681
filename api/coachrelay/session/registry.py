"""Session identity → conversation thread registry."""

from __future__ import annotations

import asyncio
import logging

from coachrelay.assistant.client import AssistantClient
from coachrelay.core.store import KeyValueStore

logger = logging.getLogger("coachrelay.session.registry")


class SessionRegistry:
    """Resolve a session's thread, creating it remotely on first use.

    Concurrent first calls for the same identity share one creation; a failed
    creation stores nothing so the next call retries.
    """

    def __init__(self, client: AssistantClient, store: KeyValueStore) -> None:
        self.client = client
        self.store = store
        self._creating: dict[str, asyncio.Lock] = {}
        self._pending: dict[str, int] = {}

    async def resolve_or_create(self, session_id: str) -> str:
        thread_id = self.store.get(session_id)
        if thread_id:
            return thread_id

        lock = self._creating.setdefault(session_id, asyncio.Lock())
        self._pending[session_id] = self._pending.get(session_id, 0) + 1
        try:
            async with lock:
                thread_id = self.store.get(session_id)
                if thread_id:
                    return thread_id
                thread_id = await self.client.create_thread()
                self.store.put(session_id, thread_id)
                logger.info("[THREAD] Created %s for session %s", thread_id, session_id)
                return thread_id
        finally:
            # The lock is dropped only once no caller is queued on it
            self._pending[session_id] -= 1
            if not self._pending[session_id]:
                del self._pending[session_id]
                self._creating.pop(session_id, None)

    def __len__(self) -> int:
        return len(self.store)
