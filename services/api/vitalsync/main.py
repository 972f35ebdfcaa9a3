"""vitalsync FastAPI application factory."""

import logging
import os
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest, multiprocess
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import text

from vitalsync.config import Settings, get_settings
from vitalsync.dependencies import get_session_factory, init_db, shutdown_db
from vitalsync.exceptions import ConfigurationError
from vitalsync.middleware.error_handler import ErrorHandlerMiddleware
from vitalsync.middleware.logging import LoggingMiddleware, setup_logging
from vitalsync.routers import auth, cron, sync, webhooks
from vitalsync.services.crypto_service import CryptoService

logger = logging.getLogger(__name__)

SERVICE_NAME = "vitalsync-api"
VERSION = "1.0.0"
UNMETERED_PATHS = ["/health", "/health/ready", "/docs", "/redoc", "/openapi.json", "/metrics"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    settings = get_settings()
    setup_logging(debug=settings.debug)
    logger.info("Starting vitalsync API (env=%s)", settings.app_env)

    init_db(settings)

    yield

    await shutdown_db()
    logger.info("vitalsync API shutting down")


async def _check_database() -> str:
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        return f"error: {type(e).__name__}"
    return "ok"


async def _check_redis(settings: Settings) -> str:
    """OAuth state nonces live in Redis; without it no user can connect."""
    client = aioredis.from_url(settings.redis_url, decode_responses=True)
    try:
        await client.ping()
    except Exception as e:
        return f"error: {type(e).__name__}"
    finally:
        await client.aclose()
    return "ok"


def _check_provider_config(settings: Settings) -> str:
    try:
        settings.require_oauth_client()
        CryptoService(settings)
    except ConfigurationError as e:
        return f"error: {e}"
    return "ok"


def render_metrics() -> bytes:
    """Prometheus exposition, aggregated across workers when multiprocess mode is on."""
    if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        return generate_latest(registry)
    return generate_latest()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = get_settings()
    production = settings.app_env == "production"

    app = FastAPI(
        title="vitalsync",
        description="WHOOP wearable sync: OAuth connection, scheduled, manual and webhook-driven imports",
        version=VERSION,
        lifespan=lifespan,
        docs_url=None if production else "/docs",
        redoc_url=None if production else "/redoc",
    )

    # Middleware (order matters: outermost first)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(LoggingMiddleware)
    origins = settings.cors_origins
    allow_all = origins == ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[] if allow_all else origins,
        allow_origin_regex=r".*" if allow_all else None,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
        max_age=600,
    )

    for module in (auth, cron, webhooks, sync):
        app.include_router(module.router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        return {"status": "running", "service": SERVICE_NAME, "version": VERSION}

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": SERVICE_NAME}

    @app.get("/health/ready")
    async def health_ready():
        """Deep health check: database, Redis and provider credentials."""
        checks = {
            "database": await _check_database(),
            "redis": await _check_redis(settings),
            "whoop": _check_provider_config(settings),
        }
        ready = all(value == "ok" for value in checks.values())
        return JSONResponse(
            status_code=200 if ready else 503,
            content={"status": "ready" if ready else "degraded", "checks": checks},
        )

    Instrumentator(excluded_handlers=UNMETERED_PATHS).instrument(app)

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        return Response(content=render_metrics(), media_type=CONTENT_TYPE_LATEST)

    return app


# Default app instance for uvicorn
app = create_app()
