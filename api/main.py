from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from api.observability import RequestContextMiddleware, configure_logging
from api.ratelimit import limiter, rate_limit_exceeded_handler
from api.routes import router
from core.config import Settings, get_settings
from core.db import create_schema

logger = logging.getLogger(__name__)


def _lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not settings.is_production:
            # Production schemas are provisioned ahead of time.
            create_schema()
        logger.info("api_started", extra={"ctx_app_env": settings.app_env})
        yield
        logger.info("api_stopped")

    return lifespan


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Practice Plan Builder API", version="1.0.0", lifespan=_lifespan(settings))
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.include_router(router)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Authorization", "Content-Type", settings.request_id_header_name],
        expose_headers=[settings.request_id_header_name],
    )
    app.add_middleware(RequestContextMiddleware, header_name=settings.request_id_header_name)
    return app


app = create_app()
