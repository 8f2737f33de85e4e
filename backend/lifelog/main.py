"""ASGI entry-point for the FastAPI application.

This module
1. instantiates the :class:`fastapi.FastAPI` application;
2. wires the API routers located in ``lifelog.api``;
3. registers global exception handlers and middleware; and
4. performs a few start-up sanity checks (log directory, uploads tree
   writable, database tables present).
"""

from __future__ import annotations

import logging
import os
import traceback
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from lifelog.api import api_router
from lifelog.config import settings
from lifelog.db.database import create_tables
from lifelog.exceptions import AppBaseException, ChunkingError
from lifelog.logging_config import LOG_DIR as APP_LOG_DIR
from lifelog.logging_config import setup_logging
from lifelog.utils.storage import AUDIO_SUBDIR, TEMP_SUBDIR, ensure_dir_exists


# ---------------------------------------------------------------------------
# Logging must be configured as soon as possible so that any errors during
# import/start-up are captured.
# ---------------------------------------------------------------------------
setup_logging()
logger = logging.getLogger(__name__)


def _error_body(error: str, details: Any = None, exc: Exception | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"error": error}
    if details is not None:
        body["details"] = details
    if exc is not None and settings.EXPOSE_ERROR_STACK:
        body["type"] = type(exc).__name__
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:  # noqa: D401 – factory nomenclature is fine
    """Wire and return the FastAPI application instance."""

    app = FastAPI(
        title="Lifelog API",
        version="0.1.0",
        docs_url="/api/docs",
    )

    # ------------------------------------------------------------------
    # Start-up checks
    # ------------------------------------------------------------------

    @app.on_event("startup")
    async def _startup_checks() -> None:  # noqa: D401
        logger.info("Running start-up checks …")

        uploads_dir = Path(settings.UPLOADS_DIR)
        for path in (Path(APP_LOG_DIR), uploads_dir, uploads_dir / AUDIO_SUBDIR, uploads_dir / TEMP_SUBDIR):
            try:
                ensure_dir_exists(path)
            except OSError as exc:
                logger.critical("Cannot create/access directory %s – %s", path, exc)
            else:
                writable = os.access(str(path), os.W_OK)
                logger.info("Directory %s is %swritable", path, "" if writable else "NOT ")

        if not settings.TOGETHERAI_API_KEY:
            logger.warning("TOGETHERAI_API_KEY is not set; Whisper transcription will fail")
        if not settings.OPENAI_API_KEY:
            logger.warning("OPENAI_API_KEY is not set; OpenAI transcription models will fail")

        create_tables()
        logger.info("Start-up checks finished.")

    # ------------------------------------------------------------------
    # Exception handlers
    # ------------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(  # noqa: D401
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        logger.error("Request validation error: %s", exc.errors())
        return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})

    @app.exception_handler(StarletteHTTPException)
    async def _http_error_handler(  # noqa: D401
        _request: Request,
        exc: StarletteHTTPException,
    ) -> JSONResponse:
        logger.error("HTTP exception %s: %s", exc.status_code, exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(AppBaseException)
    async def _app_error_handler(  # noqa: D401
        request: Request,
        exc: AppBaseException,
    ) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
            body = _error_body(exc.error, exc.details, exc)
        else:
            logger.warning("%s %s rejected (%s): %s", request.method, request.url.path, exc.status_code, exc)
            body = _error_body(exc.error, exc.details)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(body))

    @app.exception_handler(ChunkingError)
    async def _chunking_error_handler(  # noqa: D401
        request: Request,
        exc: ChunkingError,
    ) -> JSONResponse:
        logger.error("%s %s failed while chunking audio: %s", request.method, request.url.path, exc, exc_info=exc)
        return JSONResponse(status_code=500, content=_error_body("Audio chunking failed", str(exc), exc))

    @app.exception_handler(Exception)
    async def _generic_error_handler(  # noqa: D401
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        logger.exception("Unhandled exception in %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content=_error_body("Internal Server Error", str(exc), exc))

    # ------------------------------------------------------------------
    # Middleware
    # ------------------------------------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ------------------------------------------------------------------
    # Routers
    # ------------------------------------------------------------------

    app.include_router(api_router, prefix="/api")

    # ------------------------------------------------------------------
    # Miscellaneous endpoints
    # ------------------------------------------------------------------

    @app.get("/api/health")
    async def _health() -> dict[str, str]:  # noqa: D401
        return {"status": "ok"}

    return app


# Instantiate at import time so `uvicorn lifelog.main:app` works.
app: FastAPI = create_app()
