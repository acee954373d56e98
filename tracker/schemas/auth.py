"""Authentication and account creation schemas."""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    """Login request schema."""

    login: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    """Token refresh request schema."""

    refresh_token: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    """Token response schema."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Access token expiry in seconds")
    password_change_required: bool = False


class PasswordChangeRequest(BaseModel):
    """Password change request schema.

    Strength rules are configurable and enforced by the service.
    """

    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=1, max_length=128)


class AccountRequest(BaseModel):
    """Self-service account creation request."""

    login: str = Field(..., min_length=1, max_length=127)
    email: EmailStr


class AccountRequestResponse(BaseModel):
    """Result of an account creation request."""

    message: str
    token: Optional[str] = Field(
        default=None,
        description="Confirmation token; only returned in debug mode since it is normally mailed",
    )


class AccountConfirm(BaseModel):
    """Confirmation of a pending account."""

    token: str = Field(..., min_length=1, max_length=16)
    realname: str = Field(default="", max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


class CurrentUserResponse(BaseModel):
    """Current user profile response."""

    id: int
    login: str
    email: str
    realname: str
    nick: str
    identity: str
    is_enabled: bool
    groups: list[str]
    can_bless: bool
    password_change_required: bool
    creation_ts: str
    last_seen_date: Optional[str] = None
