"""User administration API endpoints."""

from typing import Annotated, Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select

from tracker.api.deps import (
    DbSession,
    OptionalPermissions,
    Permissions,
    RedisClient,
    require_group,
)
from tracker.constants import GRANT_DIRECT, GRANT_REGEXP
from tracker.core.exceptions import AuthorizationError
from tracker.core.permissions import UserPermissions
from tracker.middleware.audit_logger import log_permission_event
from tracker.models.group import Group, UserGroupMap
from tracker.models.user import User
from tracker.schemas.common import MessageResponse, PaginatedResponse
from tracker.schemas.user import (
    BounceMessageResponse,
    ProfileActivityResponse,
    SettingResponse,
    UserCreate,
    UserGroupsResponse,
    UserListItem,
    UserResponse,
    UserSettingsResponse,
    UserSettingsUpdate,
    UserSummary,
    UserUpdate,
    UserUpdateResponse,
)
from tracker.services.setting import SettingService
from tracker.services.user import UserService

router = APIRouter()


async def require_user_admin(permissions: Permissions) -> UserPermissions:
    """Account administration is open to `editusers` and to anyone who can bless."""
    if await permissions.in_group("editusers") or await permissions.can_bless():
        return permissions
    log_permission_event(
        action="list",
        resource="user",
        user_id=permissions.user_id,
        granted=False,
        required_group="editusers",
    )
    raise AuthorizationError(
        message="You don't have permission to administer users",
        code="auth_failure",
        details=[{"required_groups": ["editusers"], "reason": "cant_bless"}],
    )


UserAdmin = Annotated[UserPermissions, Depends(require_user_admin)]


async def _self_or_editusers(permissions: UserPermissions, user_id: int, what: str) -> None:
    if user_id != permissions.user_id and not await permissions.in_group("editusers"):
        raise AuthorizationError(
            message=f"You may only view your own {what}",
            code="auth_failure",
            details=[{"required_groups": ["editusers"]}],
        )


@router.get(
    "",
    response_model=PaginatedResponse[UserResponse],
    summary="List users",
    description="Search accounts by login, real name or id. Requires editusers or bless rights.",
)
async def list_users(
    permissions: UserAdmin,
    db: DbSession,
    redis_client: RedisClient,
    matchvalue: Annotated[Literal["login_name", "realname", "userid"], Query()] = "login_name",
    matchstr: Annotated[Optional[str], Query(max_length=255)] = None,
    matchtype: Annotated[Literal["substr", "regexp", "notregexp", "exact"], Query()] = "substr",
    groupid: Annotated[Optional[int], Query()] = None,
    is_enabled: Annotated[Optional[bool], Query()] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> PaginatedResponse[UserResponse]:
    """List users with filters and pagination."""
    user_service = UserService(db, redis_client, permissions)
    users, total = await user_service.list_users(
        matchvalue=matchvalue,
        matchstr=matchstr,
        matchtype=matchtype,
        group_id=groupid,
        is_enabled=is_enabled,
        offset=(page - 1) * limit,
        limit=limit,
    )
    return PaginatedResponse.create(
        items=[UserResponse.model_validate(u) for u in users],
        total=total,
        page=page,
        limit=limit,
    )


@router.get(
    "/match",
    response_model=list[UserSummary],
    summary="Match users",
    description=(
        "Resolve free text to users: `*` wildcards, then an exact login, then a "
        "substring of login, real name or nickname."
    ),
)
async def match_users(
    permissions: OptionalPermissions,
    db: DbSession,
    redis_client: RedisClient,
    q: Annotated[str, Query(min_length=1, max_length=255)],
    limit: Annotated[Optional[int], Query(ge=1, le=1000)] = None,
    exclude_disabled: Annotated[bool, Query()] = False,
) -> list[UserSummary]:
    user_service = UserService(db, redis_client, permissions)
    users = await user_service.match(q, limit=limit, exclude_disabled=exclude_disabled)
    return [UserSummary.model_validate(u) for u in users]


@router.get(
    "/userlist",
    response_model=list[UserListItem],
    summary="List enabled users",
    description="All enabled users, each flagged with whether the caller may see them.",
)
async def get_userlist(
    permissions: Permissions,
    db: DbSession,
    redis_client: RedisClient,
) -> list[UserListItem]:
    user_service = UserService(db, redis_client, permissions)
    return [UserListItem.model_validate(entry) for entry in await user_service.get_userlist()]


@router.post(
    "",
    response_model=UserResponse,
    status_code=201,
    summary="Create a user",
)
async def create_user(
    data: UserCreate,
    permissions: Annotated[UserPermissions, Depends(require_group("editusers"))],
    db: DbSession,
    redis_client: RedisClient,
) -> UserResponse:
    """Create an account with default mail settings and regexp groups."""
    user_service = UserService(db, redis_client, permissions)
    user = await user_service.create(data)
    return UserResponse.model_validate(user)


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get user by ID",
)
async def get_user(
    user_id: int,
    permissions: Permissions,
    db: DbSession,
    redis_client: RedisClient,
) -> UserResponse:
    """Get a user; users outside the caller's visibility groups are not found."""
    user_service = UserService(db, redis_client, permissions)
    user = await user_service.get_visible_or_404(user_id)
    return UserResponse.model_validate(user)


@router.patch(
    "/{user_id}",
    response_model=UserUpdateResponse,
    summary="Update a user",
    description=(
        "Change an account. Members of editusers may change everything; users "
        "with bless rights may only change group memberships they can bless."
    ),
)
async def update_user(
    user_id: int,
    data: UserUpdate,
    permissions: UserAdmin,
    db: DbSession,
    redis_client: RedisClient,
) -> UserUpdateResponse:
    """Update a user and report the changes."""
    user_service = UserService(db, redis_client, permissions)
    user = await user_service.get_visible_or_404(user_id)

    if not await permissions.in_group("editusers"):
        if data.profile_fields or data.bless_groups is not None:
            log_permission_event(
                action="update",
                resource="user",
                user_id=permissions.user_id,
                granted=False,
                required_group="editusers",
            )
            raise AuthorizationError(
                message="Only members of editusers may change account details",
                code="auth_failure",
                details=[{"required_groups": ["editusers"]}],
            )

    changes = await user_service.update(user, data)
    await db.refresh(user)
    return UserUpdateResponse(user=UserResponse.model_validate(user), changes=changes)


@router.delete(
    "/{user_id}",
    response_model=MessageResponse,
    summary="Delete a user",
    description="Requires the allowuserdeletion parameter. Users with history need `force`.",
)
async def delete_user(
    user_id: int,
    permissions: Annotated[UserPermissions, Depends(require_group("editusers"))],
    db: DbSession,
    redis_client: RedisClient,
    force: Annotated[bool, Query()] = False,
) -> MessageResponse:
    user_service = UserService(db, redis_client, permissions)
    user = await user_service.get_visible_or_404(user_id)
    login = user.login_name
    await user_service.delete(user, force=force)
    return MessageResponse(message=f"User {login} has been deleted")


@router.get(
    "/{user_id}/activity",
    response_model=list[ProfileActivityResponse],
    summary="Get profile changes of a user",
)
async def get_user_activity(
    user_id: int,
    permissions: Annotated[UserPermissions, Depends(require_group("editusers"))],
    db: DbSession,
    redis_client: RedisClient,
) -> list[ProfileActivityResponse]:
    user_service = UserService(db, redis_client, permissions)
    user = await user_service.get_visible_or_404(user_id)
    return [
        ProfileActivityResponse.model_validate(entry)
        for entry in await user_service.list_activity(user)
    ]


@router.get(
    "/{user_id}/permissions",
    response_model=UserGroupsResponse,
    summary="Get group memberships and rights of a user",
    description="Available for the user themselves and for members of editusers.",
)
async def get_user_permissions(
    user_id: int,
    permissions: Permissions,
    db: DbSession,
    redis_client: RedisClient,
) -> UserGroupsResponse:
    await _self_or_editusers(permissions, user_id, "permissions")
    user_service = UserService(db, redis_client, permissions)
    user = await user_service.get_visible_or_404(user_id)
    target = UserPermissions(db, user, redis_client)

    result = await db.execute(
        select(Group.name, UserGroupMap.grant_type)
        .join(UserGroupMap, UserGroupMap.group_id == Group.id)
        .where(
            UserGroupMap.user_id == user.id,
            UserGroupMap.isbless.is_(False),
            UserGroupMap.grant_type.in_((GRANT_DIRECT, GRANT_REGEXP)),
        )
    )
    rows = result.all()

    return UserGroupsResponse(
        groups=sorted(await target.group_names()),
        direct_groups=sorted({name for name, grant in rows if grant == GRANT_DIRECT}),
        regexp_groups=sorted({name for name, grant in rows if grant == GRANT_REGEXP}),
        bless_groups=[g.name for g in await target.bless_groups()],
        visible_groups=[g.name for g in await target.visible_groups()],
        is_insider=await target.is_insider(),
        is_timetracker=await target.is_timetracker(),
        can_tag_comments=await target.can_tag_comments(),
        in_mfa_group=await target.in_mfa_group(),
        is_global_watcher=target.is_global_watcher(),
        is_silent_user=target.is_silent_user(),
    )


async def _settings_response(
    setting_service: SettingService, user: User
) -> UserSettingsResponse:
    values = await setting_service.get_settings(user)
    return UserSettingsResponse(
        settings=[SettingResponse(name=name, **entry) for name, entry in values.items()],
        timezone=str(await setting_service.timezone(user)),
    )


@router.get(
    "/{user_id}/settings",
    response_model=UserSettingsResponse,
    summary="Get the preferences of a user",
    description="Available for the user themselves and for members of editusers.",
)
async def get_user_settings(
    user_id: int,
    permissions: Permissions,
    db: DbSession,
    redis_client: RedisClient,
) -> UserSettingsResponse:
    await _self_or_editusers(permissions, user_id, "preferences")
    user = await UserService(db, redis_client, permissions).get_visible_or_404(user_id)
    return await _settings_response(SettingService(db, permissions.user_id), user)


@router.patch(
    "/{user_id}/settings",
    response_model=UserSettingsResponse,
    summary="Change your own preferences",
)
async def update_user_settings(
    user_id: int,
    data: UserSettingsUpdate,
    permissions: Permissions,
    db: DbSession,
) -> UserSettingsResponse:
    if user_id != permissions.user_id:
        raise AuthorizationError(
            message="You may only change your own preferences",
            code="auth_failure",
        )
    setting_service = SettingService(db, permissions.user_id)
    await setting_service.set_settings(permissions.user, data.settings)
    return await _settings_response(setting_service, permissions.user)


@router.get(
    "/{user_id}/bounces",
    response_model=list[BounceMessageResponse],
    summary="Get recent bounced mail of a user",
    description="The latest `bounce_count` bounce messages, newest first.",
)
async def get_user_bounces(
    user_id: int,
    permissions: Permissions,
    db: DbSession,
    redis_client: RedisClient,
) -> list[BounceMessageResponse]:
    await _self_or_editusers(permissions, user_id, "bounced mail")
    user_service = UserService(db, redis_client, permissions)
    user = await user_service.get_visible_or_404(user_id)
    return [
        BounceMessageResponse(when=entry.at_time, message=entry.added)
        for entry in await user_service.bounce_messages(user)
    ]
