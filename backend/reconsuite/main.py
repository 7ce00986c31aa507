"""
ReconSuite FastAPI application entry point.

Creates and configures the FastAPI app with:
- CORS middleware
- Security headers middleware
- REST API router and WebSocket routes
- Health check endpoint
- A lifespan handler that builds the scan engine on startup and cancels
  every in-flight scan on shutdown
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from reconsuite import __version__
from reconsuite.api.v1.router import router as api_router
from reconsuite.api.v1.websocket import router as ws_router
from reconsuite.config import get_settings
from reconsuite.core.database import async_session_factory, create_schema, engine
from reconsuite.core.logging import configure_logging, get_logger
from reconsuite.engine.broadcast import BroadcastHub
from reconsuite.engine.executor import ScanExecutor
from reconsuite.engine.runner import ToolRunner
from reconsuite.engine.store import ScanRepository

# ── Constants ────────────────────────────────────────────────────────────────

_HEALTH_CHECK_PATH: str = "/health"

_SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), camera=(), microphone=()",
}


# ── Security Headers Middleware ──────────────────────────────────────────────

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware that injects security-related HTTP response headers."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response: Response = await call_next(request)
        for header_name, header_value in _SECURITY_HEADERS.items():
            response.headers[header_name] = header_value
        return response


# ── Lifespan ─────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Build the scan engine on startup and tear it down on shutdown.

    Startup:
        - Configures structured logging.
        - Creates missing tables when ``AUTO_CREATE_SCHEMA`` is set.
        - Stores the hub, repository, and executor on ``app.state``.
        - Connects the optional Redis mirror.

    Shutdown:
        - Cancels in-flight scans and waits for their processes to die.
        - Closes Redis and disposes of the database engine.
    """
    settings = get_settings()
    configure_logging()
    logger = get_logger(__name__)
    logger.info(
        "Application starting",
        extra={"action": "startup", "target": settings.APP_NAME},
    )

    if settings.AUTO_CREATE_SCHEMA:
        await create_schema(engine)
        logger.info(
            "Database schema verified",
            extra={"action": "db_check", "target": settings.DATABASE_URL.split("@")[-1]},
        )

    redis_client: Optional[Any] = None
    observer_factory = None
    if settings.REDIS_URL:
        import redis.asyncio as aioredis  # noqa: WPS433 (local import)

        from reconsuite.engine.relay import redis_observer_factory

        redis_client = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
        observer_factory = redis_observer_factory(redis_client)
        logger.info(
            "Mirroring scan events to Redis",
            extra={"action": "redis_init", "target": settings.REDIS_URL.split("@")[-1]},
        )

    hub = BroadcastHub(send_timeout=settings.OBSERVER_SEND_TIMEOUT_SECONDS)
    repository = ScanRepository(async_session_factory, serialize_writes=settings.is_sqlite)
    executor = ScanExecutor(
        repository,
        hub,
        ToolRunner(kill_grace_seconds=settings.KILL_GRACE_SECONDS),
        max_concurrent=settings.MAX_CONCURRENT_SCANS,
        output_buffer=settings.OUTPUT_BUFFER_LINES,
        observer_factory=observer_factory,
    )
    application.state.hub = hub
    application.state.repository = repository
    application.state.executor = executor

    try:
        yield
    finally:
        logger.info(
            "Application shutting down",
            extra={"action": "shutdown", "target": settings.APP_NAME},
        )
        await executor.shutdown(timeout=settings.SHUTDOWN_TIMEOUT_SECONDS)
        if redis_client is not None:
            await redis_client.aclose()
        await engine.dispose()


# ── Application Factory ─────────────────────────────────────────────────────

def create_app() -> FastAPI:
    """Build and return the configured FastAPI application instance.

    Returns:
        A fully configured ``FastAPI`` app ready to serve requests.
    """
    settings = get_settings()

    application = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Recon toolkit backend -- runs external and built-in tools, "
            "streams their output live, and stores structured findings."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Middleware (order matters: outermost first) ───────────────────────

    application.add_middleware(SecurityHeadersMiddleware)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        max_age=600,
    )

    # ── Routers ──────────────────────────────────────────────────────────

    application.include_router(api_router, prefix=settings.API_PREFIX)
    application.include_router(ws_router, tags=["websocket"])

    # ── Health Check ─────────────────────────────────────────────────────

    @application.get(
        _HEALTH_CHECK_PATH,
        tags=["health"],
        summary="Application health check",
        response_class=JSONResponse,
    )
    async def health_check(request: Request) -> dict[str, Any]:
        """Return the current health status of the application.

        Returns:
            A JSON object with ``status``, ``app``, ``version``,
            ``active_scans`` and ``timestamp`` fields.
        """
        executor: Optional[ScanExecutor] = getattr(request.app.state, "executor", None)
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": __version__,
            "active_scans": len(executor.active_scan_ids()) if executor is not None else 0,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return application


# ── Module-Level App Instance ────────────────────────────────────────────────

app: FastAPI = create_app()
