"""FeedRelay — FastAPI application entry point."""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from feedrelay.api.control import router as control_router
from feedrelay.api.messages import router as messages_router
from feedrelay.api.webhooks import router as webhooks_router
from feedrelay.api.websocket import router as websocket_router
from feedrelay.config import load_relay_config, settings
from feedrelay.database import init_db
from feedrelay.logging_config import setup_logging
from feedrelay.observability.metrics import metrics
from feedrelay.state import RelayState

logger = logging.getLogger("feedrelay")

# Rate limiter
limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit_default])


def _startup_checks() -> None:
    """Log warnings for misconfigured or missing settings."""
    relay_config = load_relay_config(settings)

    for connector in relay_config.connectors:
        if connector.webhook_enabled and not connector.webhook_secret:
            msg = f"Connector {connector.id} accepts webhooks without a shared secret"
            logger.warning(f"⚠  {msg}")

    if settings.is_production and not settings.cors_origins_list:
        logger.warning("⚠  APP_ENV=production but CORS_ORIGINS is empty")

    if settings.persist_messages:
        logger.info(f"✓ Message persistence enabled ({settings.database_url})")
    else:
        logger.info("○ Message persistence disabled (PERSIST_MESSAGES=false)")

    logger.info(
        f"  Connectors: {', '.join(f'{c.id}({c.platform})' for c in relay_config.connectors) or 'none'}"
    )
    logger.info(f"  Dedup limit: {relay_config.pipeline.dedup_limit}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    setup_logging(settings.log_level)
    _startup_checks()

    # Startup
    if settings.persist_messages:
        await init_db()

    app.state.relay = RelayState.init(settings, metrics=metrics)
    logger.info("✦ FeedRelay API started")

    if settings.autostart:
        await app.state.relay.start()

    yield

    # Shutdown
    await app.state.relay.clear()
    logger.info("✦ FeedRelay API shutting down")


app = FastAPI(
    title="FeedRelay",
    description="Social/messaging event ingestion, dedup and fan-out",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request tracing + access log middleware
@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    start = time.perf_counter()

    response: Response = await call_next(request)

    duration_ms = round((time.perf_counter() - start) * 1000, 2)
    response.headers["X-Request-ID"] = request_id
    metrics.observe_request(request.url.path, response.status_code, duration_ms)
    logger.info(
        "request completed",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        },
    )
    return response


# Routers
app.include_router(control_router)
app.include_router(webhooks_router)
app.include_router(websocket_router)
app.include_router(messages_router)


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run("feedrelay.main:app", host=settings.host, port=settings.port)
