"""Router: Chat — relay a message to the caller's assistant thread."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from coachrelay.assistant.prompts import (
    ContextKind,
    FreeForm,
    PathContext,
    StructuredSequence,
    additional_instructions,
    context_from_text,
)
from coachrelay.services import Services, get_services
from coachrelay.session.fingerprint import resolve_request

logger = logging.getLogger("coachrelay.chat")

router = APIRouter(tags=["chat"])


# ── Request / Response models ─────────────────────────────

class ContextSpec(BaseModel):
    kind: Literal["structured_sequence", "path", "free_form"]
    path: str = ""


class ChatRequest(BaseModel):
    message: str | None = None
    context: ContextSpec | str | None = None

    def context_kind(self) -> ContextKind:
        ctx = self.context
        if ctx is None or isinstance(ctx, str):
            return context_from_text(ctx)
        if ctx.kind == "structured_sequence":
            return StructuredSequence()
        if ctx.kind == "path":
            return PathContext(ctx.path)
        return FreeForm()


class ChatResponse(BaseModel):
    message: str
    userId: str


# ── Endpoints ─────────────────────────────────────────────

async def _prepare(req: ChatRequest, request: Request, services: Services) -> tuple[str, str, str]:
    """Validate, resolve identity and thread, and render instructions."""
    if not req.message:
        raise HTTPException(status_code=400, detail="Message is required")

    identity = resolve_request(request, services.jwt_secret)
    if identity.principal:
        logger.info(
            "Processing message for %s (principal=%s)",
            identity.session_id, identity.principal.get("principalId", "?"),
        )
    else:
        logger.info("Processing message for anonymous %s", identity.session_id)

    thread_id = await services.sessions.resolve_or_create(identity.session_id)
    instructions = additional_instructions(req.context_kind(), identity.session_id)
    return identity.session_id, thread_id, instructions


@router.post("/chat", response_model=ChatResponse)
async def chat(req: ChatRequest, request: Request, services: Services = Depends(get_services)):
    """Post the message, wait for the assistant run, and return its reply."""
    session_id, thread_id, instructions = await _prepare(req, request, services)

    async with services.guard.hold(thread_id):
        reply = await services.runs.submit_and_await(thread_id, req.message, instructions)

    return ChatResponse(message=reply, userId=session_id)


@router.post("/chat-stream")
async def chat_stream(req: ChatRequest, request: Request, services: Services = Depends(get_services)):
    """Stream the assistant's reply as plain text while the run executes."""
    _, thread_id, instructions = await _prepare(req, request, services)

    stack = AsyncExitStack()
    try:
        await stack.enter_async_context(services.guard.hold(thread_id))
        chunks = await services.runs.open_stream(thread_id, req.message, instructions)
    except Exception:
        await stack.aclose()
        raise

    async def _body():
        try:
            async for chunk in chunks:
                yield chunk
        finally:
            await stack.aclose()

    return StreamingResponse(
        _body(),
        media_type="text/plain; charset=utf-8",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
