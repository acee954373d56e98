"""Authentication and account creation API endpoints."""

from typing import Annotated, Optional

from fastapi import APIRouter, Body, Header, Request

from tracker.api.deps import CurrentUser, DbSession, Permissions, RedisClient
from tracker.config import settings
from tracker.middleware.audit_logger import get_client_ip, log_auth_event
from tracker.schemas.auth import (
    AccountConfirm,
    AccountRequest,
    AccountRequestResponse,
    CurrentUserResponse,
    LoginRequest,
    PasswordChangeRequest,
    RefreshRequest,
    TokenResponse,
)
from tracker.schemas.common import MessageResponse
from tracker.schemas.user import UserResponse
from tracker.services.auth import AuthService

router = APIRouter()


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login to get tokens",
    description=(
        "Authenticate with login name and password to obtain access and refresh "
        "tokens. Repeated failures from one address lock the account for that address."
    ),
)
async def login(
    data: LoginRequest,
    request: Request,
    db: DbSession,
    redis_client: RedisClient,
) -> TokenResponse:
    """Login and return access and refresh tokens."""
    auth_service = AuthService(db, redis_client)
    _, tokens = await auth_service.authenticate(data.login, data.password, get_client_ip(request))
    return tokens


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Refresh access token",
    description="Use a refresh token to obtain a new access token. The old refresh token is invalidated.",
)
async def refresh(
    data: RefreshRequest,
    db: DbSession,
    redis_client: RedisClient,
) -> TokenResponse:
    """Refresh access token using refresh token."""
    auth_service = AuthService(db, redis_client)
    return await auth_service.refresh_tokens(data.refresh_token)


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Logout current session",
    description="Invalidate the current access token and optionally the refresh token.",
)
async def logout(
    current_user: CurrentUser,
    db: DbSession,
    redis_client: RedisClient,
    authorization: Annotated[str, Header()],
    refresh_token: Annotated[Optional[str], Body(embed=True)] = None,
) -> MessageResponse:
    """Logout and invalidate tokens."""
    auth_service = AuthService(db, redis_client)
    await auth_service.logout(authorization.removeprefix("Bearer ").strip(), refresh_token)
    log_auth_event("logout", user_id=current_user.id, login=current_user.login_name)
    return MessageResponse(message="Successfully logged out")


@router.post(
    "/logout-all",
    response_model=MessageResponse,
    summary="Logout from all devices",
)
async def logout_all(
    current_user: CurrentUser,
    db: DbSession,
    redis_client: RedisClient,
) -> MessageResponse:
    """Logout from all devices."""
    auth_service = AuthService(db, redis_client)
    count = await auth_service.logout_all_devices(current_user.id)
    return MessageResponse(message=f"Successfully logged out from {count} device(s)")


@router.get(
    "/me",
    response_model=CurrentUserResponse,
    summary="Get current user profile",
    description="Get the profile and group names of the currently authenticated user.",
)
async def get_me(current_user: CurrentUser, permissions: Permissions) -> CurrentUserResponse:
    """Get current user profile."""
    return CurrentUserResponse(
        id=current_user.id,
        login=current_user.login_name,
        email=current_user.email_address,
        realname=current_user.realname,
        nick=current_user.nick,
        identity=current_user.identity,
        is_enabled=current_user.is_enabled,
        groups=sorted(await permissions.group_names()),
        can_bless=await permissions.can_bless(),
        password_change_required=current_user.password_change_required,
        creation_ts=current_user.creation_ts.isoformat(),
        last_seen_date=(
            current_user.last_seen_date.isoformat() if current_user.last_seen_date else None
        ),
    )


@router.post(
    "/change-password",
    response_model=MessageResponse,
    summary="Change password",
    description="Change the current user's password. This will invalidate all existing sessions.",
)
async def change_password(
    data: PasswordChangeRequest,
    current_user: CurrentUser,
    db: DbSession,
    redis_client: RedisClient,
) -> MessageResponse:
    """Change user password."""
    auth_service = AuthService(db, redis_client)

    await auth_service.change_password(
        user=current_user,
        current_password=data.current_password,
        new_password=data.new_password,
    )

    return MessageResponse(
        message="Password changed successfully. Please login again with your new password."
    )


@router.post(
    "/create-account",
    response_model=AccountRequestResponse,
    status_code=202,
    summary="Request a new account",
    description=(
        "Validate the login and email address and issue a confirmation token "
        "for the new account."
    ),
)
async def create_account(
    data: AccountRequest,
    request: Request,
    db: DbSession,
    redis_client: RedisClient,
) -> AccountRequestResponse:
    """Start self-registration."""
    auth_service = AuthService(db, redis_client)
    token = await auth_service.check_and_send_account_creation_confirmation(data.login, data.email)
    log_auth_event("account_request", login=data.login, ip_address=get_client_ip(request))
    return AccountRequestResponse(
        message="A confirmation token has been issued for this account.",
        token=token if settings.debug else None,
    )


@router.post(
    "/confirm-account",
    response_model=UserResponse,
    status_code=201,
    summary="Confirm a new account",
)
async def confirm_account(
    data: AccountConfirm,
    db: DbSession,
    redis_client: RedisClient,
) -> UserResponse:
    """Create the account a confirmation token was issued for."""
    auth_service = AuthService(db, redis_client)
    user = await auth_service.confirm_account_creation(data.token, data.realname, data.password)
    return UserResponse.model_validate(user)
