"""Audit logging middleware and structured log helpers."""

import logging
import time
from typing import Any, Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from tracker.config import settings

# Map log level string to logging constants
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        LOG_LEVELS.get(settings.log_level.upper(), logging.INFO)
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Keys ending in one of these are masked in logs: `password`,
# `cryptpassword`, `new_password`, `refresh_token`, ...
SENSITIVE_SUFFIXES = ("password", "token", "secret", "authorization", "api_key")


def is_sensitive(key: str) -> bool:
    return key.lower().endswith(SENSITIVE_SUFFIXES)


def mask_sensitive(data: dict[str, Any]) -> dict[str, Any]:
    """Mask sensitive fields in the data, including in nested dicts."""
    masked = {}
    for key, value in data.items():
        if is_sensitive(key):
            masked[key] = "***MASKED***"
        elif isinstance(value, dict):
            masked[key] = mask_sensitive(value)
        else:
            masked[key] = value
    return masked


class AuditLogMiddleware(BaseHTTPMiddleware):
    """
    Middleware for audit logging of API requests.

    Logs:
    - Request details (method, path, client)
    - Response status, timing and the authenticated user
    - Sensitive query parameters are masked
    """

    # Health checks are polled constantly
    EXCLUDED_PREFIX = "/health"

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Log request and response details."""
        if request.url.path.startswith(self.EXCLUDED_PREFIX):
            return await call_next(request)

        start_time = time.time()
        request_id = getattr(request.state, "request_id", None)

        log_context = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "query_params": mask_sensitive(dict(request.query_params)),
            "client_ip": get_client_ip(request),
            "user_agent": request.headers.get("User-Agent", "unknown"),
        }
        if "/auth/" in request.url.path:
            log_context["auth_event_type"] = "auth_request"

        logger.info("request_started", **log_context)

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000

        # Set by the authentication dependency as a plain id
        user_id = getattr(request.state, "user_id", None)

        response_context = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(duration_ms, 2),
            "user_id": user_id,
        }

        if response.status_code >= 500:
            logger.error("request_completed", **response_context)
        elif response.status_code >= 400:
            logger.warning("request_completed", **response_context)
        else:
            logger.info("request_completed", **response_context)

        return response


def get_client_ip(request: Request) -> str:
    """Get the client IP address from the request."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


def log_auth_event(
    event: str,
    user_id: Optional[int] = None,
    login: Optional[str] = None,
    success: bool = True,
    reason: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> None:
    """
    Log an authentication event.

    Args:
        event: Type of auth event (login, logout, account_request, password_change)
        user_id: User ID (if known)
        login: Login name (truncated on failures)
        success: Whether the operation succeeded
        reason: Reason for failure (if applicable)
        ip_address: Client IP address
    """
    context = {
        "event_type": "auth",
        "auth_action": event,
        "success": success,
        "ip_address": ip_address,
    }

    if success:
        context["user_id"] = user_id
        context["login"] = login
        logger.info("auth_event", **context)
    else:
        # Don't log full login on failed attempts (prevent enumeration)
        if login:
            context["login_prefix"] = login[:2] + "***"
        context["reason"] = reason
        logger.warning("auth_event", **context)


def log_permission_event(
    action: str,
    resource: str,
    user_id: Optional[int],
    granted: bool,
    required_group: Optional[str] = None,
) -> None:
    """
    Log a permission check event.

    Args:
        action: Action attempted (view, create, update, delete, bless)
        resource: Resource type (user, group, product)
        user_id: Acting user ID
        granted: Whether permission was granted
        required_group: Group the check required
    """
    context = {
        "event_type": "permission",
        "action": action,
        "resource": resource,
        "user_id": user_id,
        "granted": granted,
        "required_group": required_group,
    }

    if granted:
        logger.debug("permission_check", **context)
    else:
        logger.warning("permission_denied", **context)


def log_data_modification(
    action: str,
    resource: str,
    resource_id: int,
    user_id: Optional[int],
    changes: Optional[dict[str, Any]] = None,
) -> None:
    """
    Log a data modification event.

    Args:
        action: Action performed (create, update, delete)
        resource: Resource type (user, group)
        resource_id: ID of the resource
        user_id: User who performed the action
        changes: Dictionary of changes (masked)
    """
    context = {
        "event_type": "data_modification",
        "action": action,
        "resource": resource,
        "resource_id": resource_id,
        "user_id": user_id,
    }

    if changes:
        context["changes"] = mask_sensitive(changes)

    logger.info("data_modified", **context)
