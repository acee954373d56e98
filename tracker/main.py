"""Main FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import redis.asyncio as redis
import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from tracker import __version__
from tracker.api.health import router as health_router
from tracker.api.v1.router import router as api_v1_router
from tracker.config import settings
from tracker.core.exceptions import APIException, ServiceUnavailableError
from tracker.database import close_db, init_db
from tracker.middleware.audit_logger import AuditLogMiddleware
from tracker.middleware.request_id import RequestIDMiddleware
from tracker.redis import close_redis, init_redis

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events handler."""
    # Startup
    await init_db()
    await init_redis()
    logger.info("application_started", app_env=settings.app_env, version=__version__)
    yield
    # Shutdown
    await close_db()
    await close_redis()


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description=(
        "Accounts, groups and permissions of an issue tracker: authentication, "
        "group membership with inheritance, bless rights, visibility groups and "
        "per-product access."
    ),
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan,
)


# Request size limiting middleware
class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to limit request body size."""

    MAX_SIZE = 1 * 1024 * 1024  # 1MB

    async def dispatch(self, request: Request, call_next) -> Response:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.MAX_SIZE:
            return JSONResponse(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                content={
                    "error": {
                        "code": "REQUEST_TOO_LARGE",
                        "message": f"Request body too large. Maximum size is {self.MAX_SIZE // 1024}KB.",
                    }
                },
            )
        return await call_next(request)


# Add middleware (order matters - last added is outermost, so the request
# id is assigned before the audit log runs)
app.add_middleware(RequestSizeLimitMiddleware)
app.add_middleware(AuditLogMiddleware)
app.add_middleware(RequestIDMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)


# Exception handlers
@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    """Handle custom API exceptions."""
    # Add request ID to error response
    if hasattr(request.state, "request_id"):
        if isinstance(exc.detail, dict) and "error" in exc.detail:
            exc.detail["error"]["request_id"] = request.state.request_id

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.detail,
        headers=exc.headers,
    )


@app.exception_handler(redis.RedisError)
async def redis_exception_handler(request: Request, exc: redis.RedisError) -> JSONResponse:
    """Sessions and revocations live in Redis; without it tokens cannot be issued or checked."""
    logger.error("session_store_unavailable", error=str(exc), path=request.url.path)
    return await api_exception_handler(
        request,
        ServiceUnavailableError(
            message="Sessions cannot be verified right now",
            code="session_store_unavailable",
        ),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
        })

    content = {
        "error": {
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": errors,
        }
    }

    if hasattr(request.state, "request_id"):
        content["error"]["request_id"] = request.state.request_id

    return JSONResponse(
        status_code=422,
        content=content,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
    )

    content = {
        "error": {
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
        }
    }

    if hasattr(request.state, "request_id"):
        content["error"]["request_id"] = request.state.request_id

    # Include details in debug mode
    if settings.debug:
        content["error"]["details"] = [
            {"type": type(exc).__name__, "message": str(exc)}
        ]

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
    )


# Include API routers
app.include_router(api_v1_router, prefix=settings.api_v1_prefix)
app.include_router(health_router)

