"""API dependencies for authentication and authorization."""

from typing import Annotated, Optional

import redis.asyncio as redis
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ServiceUnavailableError,
)
from tracker.core.permissions import UserPermissions
from tracker.core.security import decode_token
from tracker.database import get_db
from tracker.middleware.audit_logger import log_permission_event
from tracker.models.user import User
from tracker.redis import SessionStore, TokenBlacklist, get_redis

logger = structlog.get_logger()

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
    redis_client: Annotated[Optional[redis.Redis], Depends(get_redis)],
) -> User:
    """
    Get the current authenticated user from the JWT token.

    Raises:
        AuthenticationError: If authentication fails
        ServiceUnavailableError: If Redis cannot confirm the session
    """
    if not credentials:
        raise AuthenticationError(message="Authentication required")

    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise AuthenticationError(message="Invalid or expired token")

    if payload.get("type") != "access":
        raise AuthenticationError(message="Invalid token type")

    if redis_client is not None:
        jti = payload.get("jti")
        session_id = payload.get("session_id")
        try:
            revoked = bool(jti) and await TokenBlacklist(redis_client).is_blacklisted(jti)
            # Sessions end on logout, password and login changes.
            ended = bool(session_id) and not await SessionStore(redis_client).exists(session_id)
        except redis.RedisError as exc:
            # Revocation cannot be checked, so the token is not accepted.
            logger.error("session_store_unavailable", error=str(exc))
            raise ServiceUnavailableError(
                message="Sessions cannot be verified right now",
                code="session_store_unavailable",
            )
        if revoked:
            raise AuthenticationError(message="Token has been revoked")
        if ended:
            raise AuthenticationError(message="Session expired")

    try:
        user_id = int(payload.get("sub", ""))
    except ValueError:
        raise AuthenticationError(message="Invalid user ID in token")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError(message="User not found")

    if not user.is_enabled:
        raise AuthenticationError(
            message=user.disabledtext or "Account is disabled",
            code="account_disabled",
        )

    # Store user ID in request state for logging (avoid DetachedInstanceError)
    request.state.user_id = user.id

    return user


async def get_optional_user(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
    redis_client: Annotated[Optional[redis.Redis], Depends(get_redis)],
) -> Optional[User]:
    """
    Get the current user if authenticated, otherwise return None.

    This is useful for endpoints that have different behavior for
    authenticated vs anonymous users.
    """
    if not credentials:
        return None

    try:
        return await get_current_user(request, credentials, db, redis_client)
    except AuthenticationError:
        return None


async def get_permissions(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    redis_client: Annotated[Optional[redis.Redis], Depends(get_redis)],
) -> UserPermissions:
    """Group-based permissions of the current user, memoized for the request."""
    return UserPermissions(db, current_user, redis_client)


async def get_optional_permissions(
    current_user: Annotated[Optional[User], Depends(get_optional_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    redis_client: Annotated[Optional[redis.Redis], Depends(get_redis)],
) -> UserPermissions:
    """Permissions of the current user, or of an anonymous visitor."""
    return UserPermissions(db, current_user, redis_client)


def require_group(*groups: str):
    """
    Dependency to require membership in any of the given groups.

    Usage:
        @router.post("/groups", dependencies=[Depends(require_group("creategroups"))])
        async def create_group(...):
            ...
    """

    async def group_checker(
        permissions: Annotated[UserPermissions, Depends(get_permissions)],
    ) -> UserPermissions:
        for group in groups:
            if await permissions.in_group(group):
                log_permission_event(
                    action="access",
                    resource="group",
                    user_id=permissions.user_id,
                    granted=True,
                    required_group=group,
                )
                return permissions

        log_permission_event(
            action="access",
            resource="group",
            user_id=permissions.user_id,
            granted=False,
            required_group=",".join(groups),
        )
        raise AuthorizationError(
            message="You don't have permission to access this resource",
            code="auth_failure",
            details=[{"required_groups": list(groups)}],
        )

    return group_checker


# Type aliases for common dependencies
CurrentUser = Annotated[User, Depends(get_current_user)]
Permissions = Annotated[UserPermissions, Depends(get_permissions)]
OptionalPermissions = Annotated[UserPermissions, Depends(get_optional_permissions)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
RedisClient = Annotated[Optional[redis.Redis], Depends(get_redis)]
