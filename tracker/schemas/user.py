"""User schemas for request/response validation."""

from datetime import date, datetime
from typing import Optional, Union

from pydantic import EmailStr, Field, model_validator

from tracker.schemas.common import BaseSchema


class GroupChanges(BaseSchema):
    """
    Changes to a user's groups, given by group id or name.

    Either replace the whole list with `set`, or `add` and `remove`
    individual groups.
    """

    set: Optional[list[Union[int, str]]] = None
    add: Optional[list[Union[int, str]]] = None
    remove: Optional[list[Union[int, str]]] = None

    @model_validator(mode="after")
    def check_exclusive(self) -> "GroupChanges":
        """`set` cannot be combined with `add`/`remove`."""
        if self.set is not None and (self.add is not None or self.remove is not None):
            raise ValueError("'set' cannot be combined with 'add' or 'remove'")
        return self

    def as_dict(self) -> dict[str, list[Union[int, str]]]:
        return {
            key: value
            for key, value in (("set", self.set), ("add", self.add), ("remove", self.remove))
            if value is not None
        }


class UserCreate(BaseSchema):
    """Schema for creating a new user."""

    login: str = Field(..., max_length=255, description="Login name, usually an email address")
    email: Optional[EmailStr] = Field(default=None, description="Defaults to the login")
    realname: str = Field(default="", max_length=255)
    password: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Plain text password, or '*' for accounts that only log in externally",
    )
    disabledtext: str = Field(default="", description="Non-empty text disables the account")
    disable_mail: bool = False
    extern_id: Optional[str] = Field(default=None, max_length=64)


class UserUpdate(BaseSchema):
    """Schema for updating a user."""

    login: Optional[str] = Field(default=None, max_length=255)
    realname: Optional[str] = Field(default=None, max_length=255)
    nick: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, min_length=1, max_length=128)
    disabledtext: Optional[str] = None
    disable_mail: Optional[bool] = None
    extern_id: Optional[str] = Field(default=None, max_length=64)
    password_change_required: Optional[bool] = None
    password_change_reason: Optional[str] = Field(default=None, max_length=64)
    mfa: Optional[str] = Field(default=None, max_length=8)
    mfa_required_date: Optional[datetime] = Field(
        default=None, description="Deadline for enabling MFA; null clears it"
    )
    bounce_count: Optional[Union[int, str]] = None
    groups: Optional[GroupChanges] = None
    bless_groups: Optional[GroupChanges] = None
    keep_tokens: bool = False
    keep_session: bool = False

    @property
    def profile_fields(self) -> set[str]:
        """Fields set on the request other than group changes and options."""
        return self.model_fields_set - {"groups", "bless_groups", "keep_tokens", "keep_session"}


class UserSummary(BaseSchema):
    """Minimal user summary for embedding in other responses."""

    id: int
    login: str
    realname: str
    identity: str


class UserResponse(BaseSchema):
    """Schema for user response."""

    id: int
    login: str
    email: str = Field(validation_alias="email_address")
    realname: str
    nick: str
    identity: str
    is_enabled: bool
    disabledtext: str
    email_enabled: bool
    extern_id: Optional[str] = None
    password_change_required: bool
    password_change_reason: str
    mfa: str
    mfa_required_date: Optional[datetime] = None
    bounce_count: int
    creation_ts: Optional[datetime] = None
    last_seen_date: Optional[date] = None


class UserUpdateResponse(BaseSchema):
    """An updated user and the changes made, as `{field: [old, new]}`."""

    user: UserResponse
    changes: dict[str, list]


class UserListItem(BaseSchema):
    """Row of the user list."""

    login: str
    identity: str
    visible: bool


class ProfileActivityResponse(BaseSchema):
    """A profile change."""

    when: datetime
    who: str
    field: str
    removed: Optional[str] = None
    added: Optional[str] = None


class UserGroupsResponse(BaseSchema):
    """Group memberships and derived rights of a user."""

    groups: list[str]
    direct_groups: list[str]
    regexp_groups: list[str]
    bless_groups: list[str]
    visible_groups: list[str]
    is_insider: bool
    is_timetracker: bool
    can_tag_comments: bool
    in_mfa_group: bool
    is_global_watcher: bool
    is_silent_user: bool


class SettingResponse(BaseSchema):
    """A preference and the value in effect."""

    name: str
    value: str
    default_value: str
    is_default: bool
    is_enabled: bool
    legal_values: list[str]


class UserSettingsResponse(BaseSchema):
    """All preferences of a user and the timezone they resolve to."""

    settings: list[SettingResponse]
    timezone: str


class UserSettingsUpdate(BaseSchema):
    """New preference values; null returns a preference to the site default."""

    settings: dict[str, Optional[str]] = Field(..., min_length=1)


class BounceMessageResponse(BaseSchema):
    """A bounced mail recorded for the user."""

    when: datetime
    message: Optional[str] = None
