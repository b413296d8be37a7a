"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from authcore.api.error_handlers import register_exception_handlers
from authcore.api.routers import get_api_router
from authcore.core.config import AuthCoreSettings, get_settings
from authcore.core.database import session_scope
from authcore.core.logging import configure_logging
from authcore.services.apps import AppService

# Imported for their Session listeners (cache invalidation and event delivery after commit).
import authcore.events_engine.dispatcher  # noqa: F401
import authcore.services.invalidation  # noqa: F401


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: D401
    """Application lifespan context for startup/shutdown hooks."""

    with session_scope() as session:
        AppService(session).ensure_reserved_apps()

    yield


def create_app(settings: AuthCoreSettings | None = None) -> FastAPI:
    """Application factory."""

    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="Tenant Authorization Core",
        version="1.0.0",
        lifespan=lifespan,
    )

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    register_exception_handlers(app)
    app.include_router(get_api_router())
    return app


app = create_app()
