"""Router: Sessions — persist a caller's coaching summary as profile memory."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from coachrelay.core.errors import GENERIC_ERROR_MESSAGE
from coachrelay.profile.writer import SummaryFields
from coachrelay.services import Services, get_services
from coachrelay.session.fingerprint import resolve_request

logger = logging.getLogger("coachrelay.sessions")

router = APIRouter(tags=["sessions"])


@router.post("/save-user-session")
async def save_user_session(
    fields: SummaryFields,
    request: Request,
    services: Services = Depends(get_services),
):
    identity = resolve_request(request, services.jwt_secret)
    logger.info("Saving session data for %s", identity.session_id)

    try:
        document_id = await services.profiles.persist_summary(identity.session_id, fields)
    except OSError:
        logger.exception("Could not write profile buffer for %s", identity.session_id)
        raise HTTPException(status_code=500, detail=GENERIC_ERROR_MESSAGE)

    return {
        "success": True,
        "message": "User session saved successfully",
        "userId": identity.session_id,
        "documentId": document_id,
    }
