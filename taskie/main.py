"""
Taskie notification service.

FastAPI application exposing notification feeds, read state and
per-workspace preferences.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

from taskie.cache import build_redis, ping
from taskie.config import settings
from taskie.database import AsyncSessionLocal, init_db
from taskie.dependencies import get_redis
from taskie.errors import NotificationPersistenceError
from taskie.logging_config import configure_logging
from taskie.routers.notifications import router as notifications_router
from taskie.services.notifications import NotificationService
from taskie.services.senders import SqlUserDirectory, TransportChannelSender

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    configure_logging()
    await init_db()

    redis = build_redis()
    http_client = httpx.AsyncClient(timeout=settings.dispatch_timeout_seconds)
    app.state.redis = redis
    app.state.notification_service = NotificationService(
        AsyncSessionLocal,
        redis,
        TransportChannelSender(http_client=http_client),
        SqlUserDirectory(AsyncSessionLocal),
    )
    logger.info("Notification service started (%s)", settings.environment)
    yield

    await http_client.aclose()
    await redis.aclose()


app = FastAPI(
    title="Taskie Notifications API",
    description="Notification composition, delivery and feeds for Taskie workspaces",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["*"],
)

app.include_router(notifications_router)


# --- Middleware ---


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add a unique request ID to each request."""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# --- Exception Handlers ---


def _sanitize_error_detail(error: dict[str, Any]) -> dict[str, Any]:
    """Sanitize Pydantic error detail to be JSON-serializable."""
    sanitized = {}
    for key, value in error.items():
        if key == "ctx":
            # ctx may hold exception instances
            sanitized[key] = {k: str(v) for k, v in value.items()} if isinstance(value, dict) else str(value)
        elif key == "loc":
            sanitized[key] = [str(loc) for loc in value]
        elif key == "input":
            continue
        else:
            sanitized[key] = value
    return sanitized


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors with consistent error format."""
    request_id = getattr(request.state, "request_id", None)

    errors = [_sanitize_error_detail(e) for e in exc.errors()]
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", []))
        msg = first_error.get("msg", "Validation error")
        message = f"{field}: {msg}" if field else msg
    else:
        message = "Validation error"

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": message,
                "request_id": request_id,
                "details": errors,
            }
        },
    )


@app.exception_handler(NotificationPersistenceError)
async def persistence_exception_handler(
    request: Request, exc: NotificationPersistenceError
) -> JSONResponse:
    """The durable store is unavailable; the request had no effect."""
    request_id = getattr(request.state, "request_id", None)
    logger.error("Request %s failed: %s", request_id, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "error": {
                "code": exc.code,
                "message": "Notification storage is temporarily unavailable",
                "request_id": request_id,
            }
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions with consistent error format."""
    request_id = getattr(request.state, "request_id", None)
    logger.exception("Unhandled error in request %s", request_id, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "request_id": request_id,
            }
        },
    )


# --- Health Check ---


@app.get("/api/v1/health", tags=["System"])
async def health_check(redis: Redis = Depends(get_redis)) -> dict[str, str]:
    """
    Health check endpoint.

    Returns 200 OK while the API runs; a cache outage is reported as
    degraded since every operation falls back to the durable store.
    """
    cache_ok = await ping(redis)
    return {
        "status": "healthy" if cache_ok else "degraded",
        "cache": "ok" if cache_ok else "unavailable",
    }
