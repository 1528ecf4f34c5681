"""Course materials: upload documents and make them searchable by the assistant."""

from __future__ import annotations

import asyncio
import logging
import time

from coachrelay.assistant.capabilities import (
    VECTOR_STORE_NAME,
    Capabilities,
    RetrievalStrategy,
)
from coachrelay.assistant.client import AssistantClient
from coachrelay.core.errors import UpstreamError

logger = logging.getLogger("coachrelay.materials")

# Upper bound on files attached directly to an assistant (legacy API)
_LEGACY_FILE_LIMIT = 20


class MaterialLibrary:
    def __init__(self, client: AssistantClient, capabilities: Capabilities) -> None:
        self.client = client
        self.capabilities = capabilities

    async def _ensure_vector_store(self) -> str:
        caps = self.capabilities
        if caps.vector_store_id:
            return caps.vector_store_id
        store = await self.client.create_vector_store(VECTOR_STORE_NAME)
        await self.client.update_assistant(
            caps.assistant_id,
            {
                "tools": [{"type": "file_search"}],
                "tool_resources": {"file_search": {"vector_store_ids": [store["id"]]}},
            },
        )
        caps.vector_store_id = store["id"]
        logger.info("Attached new vector store %s to assistant %s", store["id"], caps.assistant_id)
        return store["id"]

    async def _attach_legacy(self, file_id: str) -> None:
        assistant = await self.client.retrieve_assistant(self.capabilities.assistant_id)
        current = assistant.get("file_ids") or []
        if file_id in current:
            logger.info("File %s already attached to assistant", file_id)
            return
        await self.client.update_assistant(
            self.capabilities.assistant_id,
            {
                "file_ids": (current + [file_id])[:_LEGACY_FILE_LIMIT],
                "tools": [{"type": "file_search"}],
            },
        )
        logger.info("File %s attached to assistant (legacy)", file_id)

    async def add(self, path: str, filename: str) -> dict:
        """Upload *path* and attach it with the negotiated strategy."""
        uploaded = await self.client.upload_file(path, filename=filename)
        file_id = uploaded["id"]
        logger.info("Uploaded %s as %s", filename, file_id)

        if self.capabilities.strategy is RetrievalStrategy.vector_store:
            vector_store_id = await self._ensure_vector_store()
            await self.client.add_vector_store_file(vector_store_id, file_id)
            logger.info("File %s added to vector store %s", file_id, vector_store_id)
        else:
            await self._attach_legacy(file_id)

        return {
            "fileId": file_id,
            "filename": filename,
            "vectorStoreId": self.capabilities.vector_store_id,
            "method": self.capabilities.strategy.value,
        }

    async def _describe(self, file_id: str, status: str) -> dict:
        try:
            info = await self.client.retrieve_file(file_id)
        except UpstreamError:
            logger.error("Error retrieving file info for %s", file_id)
            return {
                "id": file_id,
                "filename": "File info unavailable",
                "size": 0,
                "created_at": time.time(),
                "status": "error",
            }
        return {
            "id": file_id,
            "filename": info.get("filename") or "Unknown filename",
            "size": info.get("bytes") or 0,
            "created_at": info.get("created_at"),
            "status": status,
        }

    async def list(self) -> list[dict]:
        caps = self.capabilities
        if caps.strategy is RetrievalStrategy.vector_store:
            if not caps.vector_store_id:
                return []
            entries = await self.client.list_vector_store_files(caps.vector_store_id)
            pairs = [(e["id"], e.get("status") or "connected") for e in entries]
        else:
            assistant = await self.client.retrieve_assistant(caps.assistant_id)
            pairs = [(fid, "connected") for fid in assistant.get("file_ids") or []]
        return list(await asyncio.gather(*(self._describe(fid, st) for fid, st in pairs)))
