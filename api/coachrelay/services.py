"""Service wiring. Builds the orchestration components once per process."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Request

from coachrelay.assistant.capabilities import Capabilities, negotiate
from coachrelay.assistant.client import AssistantClient
from coachrelay.core.config import (
    CR_ASSISTANT_ID,
    CR_JWT_SECRET,
    CR_POLL_INTERVAL,
    CR_POLL_MAX_ATTEMPTS,
    CR_STATE_DB_PATH,
    CR_STRICT_CONTEXT_LOCK,
    CR_UPLOAD_DIR,
)
from coachrelay.core.store import open_store
from coachrelay.materials.library import MaterialLibrary
from coachrelay.profile.writer import ProfileMemoryWriter
from coachrelay.runs.guard import ConcurrencyGuard
from coachrelay.runs.polling import Waiter
from coachrelay.runs.protocol import RunProtocol
from coachrelay.session.registry import SessionRegistry

logger = logging.getLogger("coachrelay.services")


@dataclass
class Services:
    client: AssistantClient
    capabilities: Capabilities
    sessions: SessionRegistry
    guard: ConcurrencyGuard
    runs: RunProtocol
    profiles: ProfileMemoryWriter
    materials: MaterialLibrary
    jwt_secret: str


async def build_services(
    client: AssistantClient | None = None,
    *,
    assistant_id: str = CR_ASSISTANT_ID,
    jwt_secret: str = CR_JWT_SECRET,
    poll_interval: float = CR_POLL_INTERVAL,
    poll_max_attempts: int = CR_POLL_MAX_ATTEMPTS,
    strict_lock: bool = CR_STRICT_CONTEXT_LOCK,
    state_db_path: str = CR_STATE_DB_PATH,
    upload_dir: str = CR_UPLOAD_DIR,
) -> Services:
    client = client or AssistantClient()
    capabilities = await negotiate(client, assistant_id)
    waiter = Waiter(poll_interval, poll_max_attempts)

    if not jwt_secret:
        logger.warning("CR_JWT_SECRET not set — all callers will be fingerprinted anonymously")

    return Services(
        client=client,
        capabilities=capabilities,
        sessions=SessionRegistry(client, open_store("threads", state_db_path)),
        guard=ConcurrencyGuard(client, waiter, strict=strict_lock),
        runs=RunProtocol(client, capabilities.assistant_id, waiter),
        profiles=ProfileMemoryWriter(client, open_store("profiles", state_db_path), upload_dir),
        materials=MaterialLibrary(client, capabilities),
        jwt_secret=jwt_secret,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
