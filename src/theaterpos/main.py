import asyncio
import contextlib
import secrets
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from prometheus_fastapi_instrumentator import Instrumentator

from src.theaterpos.agent.supervisor import agent_supervisor
from src.theaterpos.api.middlewares import setup_middlewares
from src.theaterpos.api.v1.router import api_router
from src.theaterpos.core.config import get_settings
from src.theaterpos.core.db import dispose_engine, init_models, ping_database
from src.theaterpos.core.exceptions import setup_exception_handlers
from src.theaterpos.core.logging import get_logger, setup_logging
from src.theaterpos.core.rate_limit import limiter
from src.theaterpos.core.shutdown import request_tracker
from src.theaterpos.services.credential_cleanup import run_credential_cleanup
from src.theaterpos.services.notification_bus import notification_bus

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan - startup and shutdown."""
    settings = get_settings()
    setup_logging(settings.debug)
    logger.info(f"Starting {settings.app_name}", env=settings.app_env)

    if settings.jwt_secret_is_fallback:
        logger.warning(
            "JWT_SECRET_KEY missing or shorter than 32 bytes, using the development fallback. "
            "Never run like this in production."
        )

    await init_models()
    notification_bus.max_queue = settings.sse_queue_size
    agent_supervisor.start_monitoring()
    cleanup_task = asyncio.create_task(run_credential_cleanup(), name="credential-cleanup")

    yield

    # Graceful shutdown with proper request draining
    grace_period = settings.shutdown_grace_period
    logger.info(
        f"Shutdown initiated, waiting for {request_tracker.in_flight_count} in-flight requests..."
    )
    await request_tracker.start_shutdown()

    # Streams never finish on their own; close them so the drain can complete
    notification_bus.close_all()

    drained = await request_tracker.wait_for_drain(timeout=grace_period)
    if not drained:
        logger.warning(
            f"Shutdown timeout after {grace_period}s - "
            f"{request_tracker.in_flight_count} requests may not have completed"
        )

    cleanup_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await cleanup_task

    logger.info("Stopping print agents...")
    await agent_supervisor.stop_monitoring()
    await agent_supervisor.stop_all()

    logger.info("Closing connections...")
    await dispose_engine()
    logger.info("Shutdown complete")


OPENAPI_TAGS = [
    {"name": "auth", "description": "Login, PIN step and session lifecycle"},
    {"name": "orders", "description": "Idempotent order ingest and print bookkeeping"},
    {"name": "stream", "description": "Server-sent event streams"},
    {"name": "agents", "description": "Print agent supervision"},
]


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Multi-tenant theater point-of-sale API",
        version="0.1.0",
        openapi_tags=OPENAPI_TAGS,
        lifespan=lifespan,
        docs_url="/docs" if settings.enable_openapi else None,
        redoc_url="/redoc" if settings.enable_openapi else None,
        openapi_url="/openapi.json" if settings.enable_openapi else None,
    )

    setup_exception_handlers(
        app, expose_internal_errors=settings.debug and not settings.is_production
    )

    app.state.limiter = limiter

    setup_middlewares(app, settings)

    app.include_router(api_router)

    # Prometheus metrics instrumentation
    instrumentator = Instrumentator(excluded_handlers=["/metrics", "/api/v1/stream"]).instrument(
        app
    )

    # Protect /metrics endpoint if API key is configured
    if settings.metrics_api_key:
        api_key_header = APIKeyHeader(name="X-Metrics-Key", auto_error=False)

        async def verify_metrics_key(api_key: str | None = Depends(api_key_header)) -> None:
            if (
                api_key is None
                or settings.metrics_api_key is None
                or not secrets.compare_digest(api_key, settings.metrics_api_key)
            ):
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid or missing metrics API key",
                )

        instrumentator.expose(app, endpoint="/metrics", dependencies=[Depends(verify_metrics_key)])
    else:
        instrumentator.expose(app, endpoint="/metrics")

    @app.get("/health")
    async def health() -> JSONResponse:
        """Database check plus stream and agent counts."""
        if request_tracker.is_shutting_down:
            return JSONResponse(
                content={
                    "status": "draining",
                    "in_flight_requests": request_tracker.in_flight_count,
                    "message": "Server is shutting down",
                },
                status_code=503,
            )

        health_status: dict[str, Any] = {
            "status": "healthy",
            "database": "unknown",
            "streams": len(notification_bus),
            "agents": sum(1 for r in agent_supervisor.statuses() if r.is_active),
            "timestamp": time.time(),
        }

        try:
            await ping_database()
            health_status["database"] = "healthy"
        except Exception as e:
            health_status["database"] = f"unhealthy: {str(e)}"
            health_status["status"] = "unhealthy"

        status_code = 200 if health_status["status"] == "healthy" else 503
        return JSONResponse(content=health_status, status_code=status_code)

    return app


app = create_app()


def serve() -> None:
    """Run the API with uvicorn (`theaterpos-api`)."""
    uvicorn.run("src.theaterpos.main:app", host="0.0.0.0", port=8000, proxy_headers=True)
