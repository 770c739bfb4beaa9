"""
FastAPI application entry point for the Fairfence backend.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request

from fairfence.config import get_settings
from fairfence.dependencies import get_config_resolver
from fairfence.logging_config import setup_logging
from fairfence.routes import CORS_HEADERS, edge_router, router
from fairfence.schemas import HealthResponse

logger = logging.getLogger(__name__)

_started_at = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if settings.use_in_memory_backends:
        logger.info("In-memory backends enabled, skipping config resolution")
    else:
        # ConfigurationError propagates and halts startup.
        config = get_config_resolver().resolve()
        logger.info("Configuration ready for %s", config.supabase_url)
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    app = FastAPI(title="Fairfence Backend (FastAPI)", version="0.1.0", lifespan=lifespan)

    @app.middleware("http")
    async def open_cors(request: Request, call_next):
        response = await call_next(request)
        for name, value in CORS_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    @app.middleware("http")
    async def log_api_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        if request.url.path.startswith(settings.api_prefix):
            duration_ms = (time.perf_counter() - start) * 1000
            logger.info(
                "%s %s %s in %dms",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
            )
        return response

    @app.get("/health", response_model=HealthResponse)
    def health():
        return HealthResponse(
            status="healthy",
            timestamp=datetime.now(timezone.utc).isoformat(),
            uptime=time.monotonic() - _started_at,
        )

    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(edge_router)
    return app


app = create_app()
