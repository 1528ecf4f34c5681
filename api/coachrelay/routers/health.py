from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from coachrelay.core.errors import UpstreamError
from coachrelay.routers.materials import verify_admin_key
from coachrelay.services import Services, get_services

router = APIRouter(tags=["meta"])


@router.get("/health")
async def health(services: Services = Depends(get_services)):
    caps = services.capabilities
    return {
        "status": "ok",
        "assistant": "ready" if caps.assistant_id else "not created",
        "vector_store": "ready" if caps.vector_store_id else "not created",
        "strategy": caps.strategy.value,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/debug-assistant", dependencies=[Depends(verify_admin_key)])
async def debug_assistant(services: Services = Depends(get_services)):
    caps = services.capabilities
    client = services.client
    report: dict = {
        "assistant_id": caps.assistant_id,
        "vector_store_id": caps.vector_store_id,
        "strategy": caps.strategy.value,
        "sessions_count": len(services.sessions),
        "user_profiles_count": len(services.profiles),
    }

    # ── Assistant ──
    try:
        assistant = await client.retrieve_assistant(caps.assistant_id)
        report["assistant_details"] = {
            "name": assistant.get("name"),
            "tools": assistant.get("tools"),
            "tool_resources": assistant.get("tool_resources"),
            "file_ids": assistant.get("file_ids"),
        }
    except UpstreamError as exc:
        report["assistant_error"] = str(exc)

    # ── Vector store ──
    if caps.vector_store_id:
        try:
            files = await client.list_vector_store_files(caps.vector_store_id)
            report["vector_store_files"] = len(files)
        except UpstreamError as exc:
            report["vector_store_error"] = str(exc)

    # ── Uploaded files ──
    try:
        uploaded = await client.list_files()
        report["all_uploaded_files"] = len(uploaded)
        report["uploaded_files_list"] = [
            {"id": f.get("id"), "filename": f.get("filename"), "size": f.get("bytes")}
            for f in uploaded
        ]
    except UpstreamError as exc:
        report["files_error"] = str(exc)

    return report
