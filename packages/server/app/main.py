"""
Taskflow API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from app.core.config import get_settings
from app.core.database import init_db
from app.core.errors import TaskGraphError
from app.core.logging import configure_logging
from app.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.api.v1 import router as api_v1_router

settings = get_settings()
log = structlog.get_logger()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Taskflow",
        description="Tasks, subtasks and dependency-aware status tracking.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware (order matters: outermost first)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(TaskGraphError)
    async def task_graph_error_handler(request: Request, exc: TaskGraphError) -> JSONResponse:
        log.info("request.rejected", path=request.url.path, error_code=exc.error_code)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(OperationalError)
    async def store_unavailable_handler(request: Request, exc: OperationalError) -> JSONResponse:
        log.error("store.unavailable", path=request.url.path, error=str(exc.orig))
        return JSONResponse(
            status_code=503,
            content={"detail": "Record store unavailable", "error_code": "STORE_UNAVAILABLE"},
        )

    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check endpoint for startup probes."""
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        configure_logging(settings.log_level, settings.log_format)
        if settings.create_tables:
            await init_db()
        log.info("Taskflow starting", create_tables=settings.create_tables)

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("Taskflow shutting down")

    return app


app = create_app()
