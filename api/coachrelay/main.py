from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from coachrelay.core.errors import GENERIC_ERROR_MESSAGE, UpstreamError
from coachrelay.routers import chat, health, materials, sessions
from coachrelay.services import Services, build_services

import logging

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger("coachrelay")


def create_app(services_factory: Callable[[], Awaitable[Services]] | None = None) -> FastAPI:
    factory = services_factory or build_services

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: negotiate API capabilities once and wire the services
        app.state.services = await factory()
        caps = app.state.services.capabilities
        logger.info(
            "Ready: assistant=%s strategy=%s vector_store=%s",
            caps.assistant_id, caps.strategy.value, caps.vector_store_id or "none",
        )
        yield

    app = FastAPI(title="coachrelay", docs_url="/docs", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(UpstreamError)
    async def _upstream_error(request: Request, exc: UpstreamError):
        logger.error("Upstream error on %s: %s", request.url.path, exc, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": GENERIC_ERROR_MESSAGE})

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ())[1:]) or "body"
        return JSONResponse(
            status_code=400,
            content={"error": f"Invalid request ({field}): {first.get('msg', 'invalid')}"},
        )

    app.include_router(health.router)
    app.include_router(chat.router)
    app.include_router(sessions.router)
    app.include_router(materials.router)
    return app


app = create_app()
