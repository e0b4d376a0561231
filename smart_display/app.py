"""
Smart Display Service application factory.

`create_app()` wires the application context, routers, CORS, the error
handler that turns integration errors into notification payloads, the log
collector and the admin panel.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .admin import mount_admin
from .context import build_context
from .db import init_models
from .exceptions import SmartDisplayError
from .routes import auth, google_calendar, home_assistant, layouts, public, screens, settings as settings_routes, system
from .settings import Settings, get_settings
from .utils.log_collector import configure_logging

logger = logging.getLogger(__name__)

SERVICE_NAME = "Smart Display Service"
SERVICE_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: create tables on startup, release resources on shutdown."""
    context = app.state.context
    logger.info("🚀 Starting application lifecycle...")
    try:
        await init_models(context.engine)
    except Exception as e:
        logger.error(f"❌ Failed to create database tables: {e}", exc_info=True)
        raise
    logger.info("✅ Database tables ready")

    yield

    logger.info("🔻 Shutting down...")
    await context.aclose()


async def smart_display_error_handler(request: Request, exc: SmartDisplayError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.description}")
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.description}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_notification())


def create_app(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    ws_connector: Optional[Callable[[str], Awaitable[Any]]] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: explicit configuration, read from the environment when None
        http_client: outbound HTTP client; one is created (and closed) when None
        ws_connector: Home Assistant websocket connector override

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    logger.info("🏗️ Creating FastAPI application...")
    app = FastAPI(
        title=SERVICE_NAME,
        version=SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )
    app.state.context = build_context(settings, http_client=http_client, ws_connector=ws_connector)

    # ============= CORS Configuration =============
    allow_origins = settings.cors_allow_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=allow_origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SmartDisplayError, smart_display_error_handler)

    # ============= SQLAdmin Panel =============
    if settings.enable_admin:
        mount_admin(app, app.state.context.engine)

    # ============= Basic Routes =============

    @app.get("/")
    async def root():
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "status": "running",
            "endpoints": {
                "admin_panel": "/admin" if settings.enable_admin else None,
                "api_docs": "/api/docs",
                "health": "/health",
            },
        }

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    @app.get("/api/health")
    async def api_health():
        context = app.state.context
        return {
            "status": "healthy",
            "events": context.event_bus.get_stats()["total_events"],
            "pending_oauth_flows": len(context.oauth_registry),
        }

    # ============= Mount Routers =============
    for module in (auth, settings_routes, screens, layouts, public, google_calendar, home_assistant, system):
        app.include_router(module.router)

    logger.info("✅ FastAPI application created successfully")
    return app
