"""Pydantic schemas for request/response validation."""

from tracker.schemas.auth import (
    AccountConfirm,
    AccountRequest,
    LoginRequest,
    RefreshRequest,
    TokenResponse,
)
from tracker.schemas.common import (
    ErrorResponse,
    MessageResponse,
    PaginatedResponse,
    PaginationParams,
)
from tracker.schemas.group import (
    GroupCreate,
    GroupGrantRequest,
    GroupResponse,
    GroupUpdate,
)
from tracker.schemas.product import ProductAccessResponse, ProductResponse
from tracker.schemas.user import (
    GroupChanges,
    UserCreate,
    UserResponse,
    UserUpdate,
)

__all__ = [
    # Auth
    "AccountConfirm",
    "AccountRequest",
    "LoginRequest",
    "RefreshRequest",
    "TokenResponse",
    # User
    "GroupChanges",
    "UserCreate",
    "UserResponse",
    "UserUpdate",
    # Group
    "GroupCreate",
    "GroupGrantRequest",
    "GroupResponse",
    "GroupUpdate",
    # Product
    "ProductAccessResponse",
    "ProductResponse",
    # Common
    "ErrorResponse",
    "MessageResponse",
    "PaginatedResponse",
    "PaginationParams",
]
