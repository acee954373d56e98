"""Core security and utility modules."""

from tracker.core.exceptions import (
    APIException,
    AuthenticationError,
    AuthorizationError,
    CodeError,
    NotFoundError,
    UserError,
    ServiceUnavailableError,
)
from tracker.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)

__all__ = [
    # Security
    "hash_password",
    "verify_password",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
    # Exceptions
    "APIException",
    "AuthenticationError",
    "AuthorizationError",
    "CodeError",
    "NotFoundError",
    "UserError",
    "ServiceUnavailableError",
]
