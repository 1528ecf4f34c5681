"""One-time capability negotiation against the remote assistant API.

Decides at startup whether retrieval documents are attached through a vector
store or through the legacy assistant ``file_ids`` list, and makes sure an
assistant exists. The decision is cached on the returned ``Capabilities``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from coachrelay.assistant.client import AssistantClient
from coachrelay.assistant.prompts import ASSISTANT_NAME, assistant_instructions
from coachrelay.core.config import CR_ASSISTANT_MODEL

logger = logging.getLogger("coachrelay.assistant.capabilities")

VECTOR_STORE_NAME = "Course Materials Vector Store"


class RetrievalStrategy(str, Enum):
    vector_store = "vector_store"
    legacy = "legacy"


@dataclass
class Capabilities:
    strategy: RetrievalStrategy
    assistant_id: str
    vector_store_id: str | None = None


def _attached_vector_store(assistant: dict) -> str | None:
    resources = assistant.get("tool_resources") or {}
    ids = (resources.get("file_search") or {}).get("vector_store_ids") or []
    return ids[0] if ids else None


async def negotiate(
    client: AssistantClient,
    assistant_id: str = "",
    model: str = CR_ASSISTANT_MODEL,
) -> Capabilities:
    """Probe the API once and return the retrieval strategy to use for this process."""
    vector_stores = await client.supports_vector_stores()
    strategy = RetrievalStrategy.vector_store if vector_stores else RetrievalStrategy.legacy

    if assistant_id:
        assistant = await client.retrieve_assistant(assistant_id)
        vector_store_id = _attached_vector_store(assistant) if vector_stores else None
        logger.info(
            "Using existing assistant %s — strategy=%s vector_store=%s",
            assistant_id, strategy.value, vector_store_id or "—",
        )
        return Capabilities(strategy, assistant_id, vector_store_id)

    payload: dict = {
        "name": ASSISTANT_NAME,
        "instructions": assistant_instructions(vector_stores),
        "tools": [{"type": "file_search"}],
        "model": model,
    }
    vector_store_id = None
    if vector_stores:
        store = await client.create_vector_store(VECTOR_STORE_NAME)
        vector_store_id = store["id"]
        payload["tool_resources"] = {"file_search": {"vector_store_ids": [vector_store_id]}}

    assistant = await client.create_assistant(payload)
    logger.info(
        "Created assistant %s — strategy=%s vector_store=%s",
        assistant["id"], strategy.value, vector_store_id or "—",
    )
    return Capabilities(strategy, assistant["id"], vector_store_id)
