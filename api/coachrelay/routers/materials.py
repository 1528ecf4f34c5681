"""Router: Course materials — admin upload and listing of retrieval documents."""

from __future__ import annotations

import logging
import os
import tempfile

from fastapi import APIRouter, Depends, File, Header, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from coachrelay.core.config import CR_ADMIN_API_KEY, CR_MAX_UPLOAD_BYTES, CR_UPLOAD_DIR
from coachrelay.core.errors import UpstreamError
from coachrelay.services import Services, get_services

logger = logging.getLogger("coachrelay.materials.router")

router = APIRouter(tags=["materials"])

_CHUNK_SIZE = 1 << 16  # 64 KiB

# ── Admin key auth ────────────────────────────────────────

_ADMIN_API_KEY = CR_ADMIN_API_KEY


async def verify_admin_key(x_cr_admin_key: str = Header(default="", alias="X-CR-ADMIN-KEY")) -> None:
    """Require X-CR-ADMIN-KEY to match CR_ADMIN_API_KEY when one is configured."""
    if _ADMIN_API_KEY and x_cr_admin_key != _ADMIN_API_KEY:
        raise HTTPException(status_code=401, detail="Invalid or missing admin key (X-CR-ADMIN-KEY)")


# ── Endpoints ─────────────────────────────────────────────

@router.post("/upload-course-material", dependencies=[Depends(verify_admin_key)])
async def upload_course_material(
    courseFile: UploadFile | None = File(default=None),
    services: Services = Depends(get_services),
):
    if courseFile is None or not courseFile.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    filename = os.path.basename(courseFile.filename)
    logger.info("Uploading file: %s", filename)

    fd, tmp_path = tempfile.mkstemp(prefix="upload_", dir=CR_UPLOAD_DIR)
    try:
        written = 0
        with os.fdopen(fd, "wb") as fh:
            while chunk := await courseFile.read(_CHUNK_SIZE):
                written += len(chunk)
                if written > CR_MAX_UPLOAD_BYTES:
                    raise HTTPException(status_code=413, detail="File exceeds upload limit")
                fh.write(chunk)

        result = await services.materials.add(tmp_path, filename)
    except UpstreamError as exc:
        logger.error("Upload error for %s: %s", filename, exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to upload course material", "details": str(exc)},
        )
    finally:
        os.unlink(tmp_path)

    return {"success": True, "message": "File uploaded and connected successfully", **result}


@router.get("/course-files")
async def course_files(services: Services = Depends(get_services)):
    try:
        files = await services.materials.list()
    except UpstreamError as exc:
        logger.error("Error listing files: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to list course files", "details": str(exc)},
        )
    return {
        "files": files,
        "vectorStoreId": services.capabilities.vector_store_id,
        "message": f"{len(files)} files connected to assistant" if files else "No files connected yet",
    }
