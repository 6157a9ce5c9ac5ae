"""
FastAPI application entry point for the Splan backend.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from splan.cache import CacheConnection, build_cache
from splan.config import Settings, get_settings
from splan.errors import register_error_handlers
from splan.middleware import RateLimitMiddleware, RequestLoggingMiddleware
from splan.routes import router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    connection: CacheConnection = app.state.cache_connection
    connection.connect()
    try:
        yield
    finally:
        connection.disconnect()


def create_app(
    settings: Settings | None = None, cache_connection: CacheConnection | None = None
) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="Splan API", version="1.0.0", lifespan=lifespan)

    app.state.cache_connection = cache_connection or CacheConnection(
        settings.redis_url, socket_timeout=settings.redis_socket_timeout
    )
    app.state.cache = build_cache(settings, app.state.cache_connection)

    # Added last runs first: the limiter sits outside the access log.
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )

    register_error_handlers(app, is_production=settings.is_production)
    app.include_router(router, prefix=settings.api_prefix)
    logger.info("Splan API configured (%s)", settings.environment)
    return app


app = create_app()
