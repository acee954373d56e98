"""Security utilities for passwords, JWTs and one-time tokens."""

import base64
import re
import secrets
import string
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from jose import JWTError, jwt

from tracker.config import settings
from tracker.core.exceptions import UserError

# Initialize Argon2 password hasher with secure defaults
password_hasher = PasswordHasher(
    time_cost=3,  # Number of iterations
    memory_cost=65536,  # 64 MB
    parallelism=4,  # Number of parallel threads
    hash_len=32,  # Length of the hash in bytes
    salt_len=16,  # Length of the salt in bytes
)

TOKEN_ALPHABET = string.ascii_letters + string.digits


def hash_password(password: str) -> str:
    """
    Hash a password using Argon2id.

    Args:
        password: Plain text password

    Returns:
        Hashed password string
    """
    return password_hasher.hash(password)


def verify_password(password: str, hashed_password: Optional[str]) -> bool:
    """
    Verify a password against a hash.

    Accounts without a usable hash (including the `*` marker for accounts
    that only authenticate externally) never verify.

    Args:
        password: Plain text password to verify
        hashed_password: Hashed password to compare against

    Returns:
        True if password matches, False otherwise
    """
    if not hashed_password or hashed_password == "*":
        return False
    try:
        password_hasher.verify(hashed_password, password)
        return True
    except (VerificationError, InvalidHashError):
        return False


def needs_rehash(hashed_password: str) -> bool:
    """Check if a password hash was made with outdated parameters."""
    return password_hasher.check_needs_rehash(hashed_password)


def assert_password_is_secure(password: str) -> None:
    """
    Check a new password against the configured length and complexity.

    Raises:
        UserError: `password_too_short` or `password_not_complex`
    """
    if len(password) < settings.password_min_length:
        raise UserError("password_too_short", min_length=settings.password_min_length)

    complexity = settings.password_complexity
    if complexity == "mixed_letters":
        if not (re.search(r"[A-Z]", password) and re.search(r"[a-z]", password)):
            raise UserError("password_not_complex", complexity=complexity)
    elif complexity == "letters_numbers":
        if not (
            re.search(r"[A-Z]", password)
            and re.search(r"[a-z]", password)
            and re.search(r"\d", password)
        ):
            raise UserError("password_not_complex", complexity=complexity)


def generate_token(length: int = 10) -> str:
    """Generate a random alphanumeric one-time token."""
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def _get_private_key() -> str:
    """Get the JWT private key for signing tokens."""
    if settings.jwt_private_key:
        # Decode from base64 if provided
        try:
            return base64.b64decode(settings.jwt_private_key).decode("utf-8")
        except ValueError:
            return settings.jwt_private_key

    # Fallback for development (use secret key with HS256)
    return settings.secret_key


def _get_public_key() -> str:
    """Get the JWT public key for verifying tokens."""
    if settings.jwt_public_key:
        try:
            return base64.b64decode(settings.jwt_public_key).decode("utf-8")
        except ValueError:
            return settings.jwt_public_key

    return settings.secret_key


def _get_algorithm() -> str:
    """Get the JWT algorithm to use."""
    # If no private key is set, fall back to HS256 for development
    if not settings.jwt_private_key:
        return "HS256"
    return settings.jwt_algorithm


def create_access_token(
    user_id: int,
    session_id: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        user_id: User ID to encode in token
        session_id: Session ID for token tracking
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT access token
    """
    now = datetime.now(timezone.utc)
    expires_delta = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)

    payload = {
        "sub": str(user_id),
        "session_id": session_id,
        "exp": now + expires_delta,
        "iat": now,
        "jti": str(uuid.uuid4()),  # JWT ID for blacklisting
        "type": "access",
    }

    return jwt.encode(payload, _get_private_key(), algorithm=_get_algorithm())


def create_refresh_token(
    user_id: int,
    session_id: str,
    expires_delta: Optional[timedelta] = None,
) -> tuple[str, str]:
    """
    Create a JWT refresh token.

    Returns:
        Tuple of (encoded JWT refresh token, token JTI)
    """
    now = datetime.now(timezone.utc)
    expires_delta = expires_delta or timedelta(days=settings.refresh_token_expire_days)
    jti = str(uuid.uuid4())

    payload = {
        "sub": str(user_id),
        "session_id": session_id,
        "exp": now + expires_delta,
        "iat": now,
        "jti": jti,
        "type": "refresh",
    }

    token = jwt.encode(payload, _get_private_key(), algorithm=_get_algorithm())
    return token, jti


def decode_token(token: str) -> dict[str, Any]:
    """
    Decode and verify a JWT token.

    Raises:
        JWTError: If token is invalid or expired
    """
    algorithm = _get_algorithm()
    if algorithm.startswith("RS") or algorithm.startswith("ES"):
        key = _get_public_key()
    else:
        key = _get_private_key()

    return jwt.decode(token, key, algorithms=[algorithm])


def token_remaining_seconds(payload: dict[str, Any]) -> int:
    """Seconds until a decoded token expires (0 if already expired)."""
    exp = payload.get("exp", 0)
    return max(0, int(exp - datetime.now(timezone.utc).timestamp()))


def generate_session_id() -> str:
    """Generate a unique session ID."""
    return str(uuid.uuid4())


__all__ = [
    "JWTError",
    "assert_password_is_secure",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
    "generate_session_id",
    "generate_token",
    "hash_password",
    "needs_rehash",
    "token_remaining_seconds",
    "verify_password",
]
