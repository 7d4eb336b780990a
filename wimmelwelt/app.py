"""
FastAPI application entry point for the Wimmel Welt backend.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from wimmelwelt.config import get_settings
from wimmelwelt.errors import ServiceError
from wimmelwelt.files import LOCAL_MODE
from wimmelwelt.routes import router

logger = logging.getLogger(__name__)


async def handle_service_error(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"message": exc.message}, status_code=exc.status_code)


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    app = FastAPI(title="Wimmel Welt Backend (FastAPI)", version="0.1.0")
    app.add_exception_handler(ServiceError, handle_service_error)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(router, prefix=settings.api_prefix)
    if settings.storage_mode == LOCAL_MODE and not settings.use_in_memory_backends:
        app.mount(
            "/uploads",
            StaticFiles(directory=settings.local_upload_dir, check_dir=False),
            name="uploads",
        )
    return app


app = create_app()
