"""Middleware components for the application."""

from tracker.middleware.audit_logger import AuditLogMiddleware
from tracker.middleware.request_id import RequestIDMiddleware

__all__ = [
    "AuditLogMiddleware",
    "RequestIDMiddleware",
]
