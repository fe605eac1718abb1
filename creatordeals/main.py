import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from creatordeals.api.health import APP_VERSION
from creatordeals.core.async_tasks import drain_background_tasks
from creatordeals.core.chat_broker import chat_broker
from creatordeals.database import dispose_engine, init_db
from creatordeals.models import *  # noqa: F403

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup: create tables
    await init_db()
    logger.info("creatordeals %s started", APP_VERSION)
    yield
    # Shutdown: close live streams, flush best-effort work, release the pool
    chat_broker.clear()
    await drain_background_tasks(timeout_seconds=5.0)
    await dispose_engine()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=(), usb=()"
        return response


def create_app() -> FastAPI:
    app = FastAPI(
        title="CreatorDeals",
        description="Marketplace backend for marketer/creator offers, negotiation, chat and deals",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    # CORS configurable via CORS_ORIGINS env var
    from creatordeals.config import settings

    allowed_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Rate limiting
    from creatordeals.core.rate_limit_middleware import RateLimitMiddleware
    app.add_middleware(RateLimitMiddleware)

    # Security headers
    app.add_middleware(SecurityHeadersMiddleware)

    # Tracing (no-op unless OTEL_ENABLED)
    from creatordeals.core.telemetry import setup_telemetry
    setup_telemetry(app)

    # Register REST routers
    from creatordeals.api import API_PREFIX, API_ROUTERS
    for router in API_ROUTERS:
        app.include_router(router, prefix=API_PREFIX)

    @app.get("/")
    async def root() -> dict[str, str]:
        return {
            "name": "CreatorDeals",
            "version": APP_VERSION,
            "docs": "/docs",
            "health": f"{API_PREFIX}/health",
        }

    return app


app = create_app()
