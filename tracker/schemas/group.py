"""Group schemas for request/response validation."""

from typing import Literal, Optional, Union

from pydantic import Field

from tracker.schemas.common import BaseSchema

GrantTypeName = Literal["membership", "bless", "visible"]


class GroupCreate(BaseSchema):
    """Schema for creating a group."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    userregexp: str = Field(default="", max_length=255)
    isactive: bool = True
    isbuggroup: bool = True
    icon_url: Optional[str] = Field(default=None, max_length=255)
    owner_user_id: Optional[int] = None


class GroupUpdate(BaseSchema):
    """Schema for updating a group."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, min_length=1)
    userregexp: Optional[str] = Field(default=None, max_length=255)
    isactive: Optional[bool] = None
    icon_url: Optional[str] = Field(default=None, max_length=255)
    owner_user_id: Optional[int] = None


class GroupResponse(BaseSchema):
    """Schema for group response."""

    id: int
    name: str
    description: str
    userregexp: str
    isactive: bool
    isbuggroup: bool
    icon_url: Optional[str] = None
    owner_user_id: Optional[int] = None


class GroupGrantRequest(BaseSchema):
    """Grant `grant_type` rights on this group to the members of `member`."""

    member: Union[int, str]
    grant_type: GrantTypeName = "membership"


class GroupGrantResponse(BaseSchema):
    """A group-to-group grant."""

    member_id: int
    member: str
    grantor_id: int
    grantor: str
    grant_type: GrantTypeName
