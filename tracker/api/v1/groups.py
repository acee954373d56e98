"""Group administration API endpoints."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query

from tracker.api.deps import DbSession, Permissions, RedisClient, require_group
from tracker.core.permissions import UserPermissions
from tracker.schemas.common import MessageResponse
from tracker.schemas.group import (
    GrantTypeName,
    GroupCreate,
    GroupGrantRequest,
    GroupGrantResponse,
    GroupResponse,
    GroupUpdate,
)
from tracker.services.group import GroupService

router = APIRouter()

GroupAdmin = Annotated[UserPermissions, Depends(require_group("creategroups"))]


@router.get(
    "",
    response_model=list[GroupResponse],
    summary="List groups",
)
async def list_groups(
    permissions: Permissions,
    db: DbSession,
    redis_client: RedisClient,
    is_active: Annotated[Optional[bool], Query()] = None,
) -> list[GroupResponse]:
    group_service = GroupService(db, redis_client, permissions.user_id)
    groups = await group_service.list_groups(is_active=is_active)
    return [GroupResponse.model_validate(g) for g in groups]


@router.post(
    "",
    response_model=GroupResponse,
    status_code=201,
    summary="Create a group",
    description="Requires creategroups. Members of admin receive membership and bless rights.",
)
async def create_group(
    data: GroupCreate,
    permissions: GroupAdmin,
    db: DbSession,
    redis_client: RedisClient,
) -> GroupResponse:
    group_service = GroupService(db, redis_client, permissions.user_id)
    group = await group_service.create(data)
    return GroupResponse.model_validate(group)


@router.get(
    "/{group_ref}",
    response_model=GroupResponse,
    summary="Get group by ID or name",
)
async def get_group(
    group_ref: str,
    permissions: Permissions,
    db: DbSession,
    redis_client: RedisClient,
) -> GroupResponse:
    group_service = GroupService(db, redis_client, permissions.user_id)
    return GroupResponse.model_validate(await group_service.get_or_404(group_ref))


@router.patch(
    "/{group_ref}",
    response_model=GroupResponse,
    summary="Update a group",
)
async def update_group(
    group_ref: str,
    data: GroupUpdate,
    permissions: GroupAdmin,
    db: DbSession,
    redis_client: RedisClient,
) -> GroupResponse:
    group_service = GroupService(db, redis_client, permissions.user_id)
    group = await group_service.get_or_404(group_ref)
    await group_service.update(group, data)
    return GroupResponse.model_validate(group)


@router.delete(
    "/{group_ref}",
    response_model=MessageResponse,
    summary="Delete a group",
    description="System groups cannot be deleted; groups with members need `force`.",
)
async def delete_group(
    group_ref: str,
    permissions: GroupAdmin,
    db: DbSession,
    redis_client: RedisClient,
    force: Annotated[bool, Query()] = False,
) -> MessageResponse:
    group_service = GroupService(db, redis_client, permissions.user_id)
    group = await group_service.get_or_404(group_ref)
    name = group.name
    await group_service.delete(group, force=force)
    return MessageResponse(message=f"Group {name} has been deleted")


@router.get(
    "/{group_ref}/grants",
    response_model=list[GroupGrantResponse],
    summary="List grants from and to a group",
)
async def list_grants(
    group_ref: str,
    permissions: GroupAdmin,
    db: DbSession,
    redis_client: RedisClient,
) -> list[GroupGrantResponse]:
    group_service = GroupService(db, redis_client, permissions.user_id)
    group = await group_service.get_or_404(group_ref)
    return [GroupGrantResponse.model_validate(g) for g in await group_service.list_grants(group)]


@router.post(
    "/{group_ref}/grants",
    response_model=MessageResponse,
    status_code=201,
    summary="Grant rights on this group to another group",
    description=(
        "Members of `member` become members of this group (membership), may "
        "bless it (bless) or may see its members (visible)."
    ),
)
async def add_grant(
    group_ref: str,
    data: GroupGrantRequest,
    permissions: GroupAdmin,
    db: DbSession,
    redis_client: RedisClient,
) -> MessageResponse:
    group_service = GroupService(db, redis_client, permissions.user_id)
    grantor = await group_service.get_or_404(group_ref)
    member = await group_service.get_or_404(data.member)
    added = await group_service.add_grant(grantor, member, data.grant_type)
    if not added:
        return MessageResponse(message="Grant already exists")
    return MessageResponse(message=f"Granted {data.grant_type} on {grantor.name} to {member.name}")


@router.delete(
    "/{group_ref}/grants",
    response_model=MessageResponse,
    summary="Revoke a grant",
)
async def remove_grant(
    group_ref: str,
    permissions: GroupAdmin,
    db: DbSession,
    redis_client: RedisClient,
    member: Annotated[str, Query(min_length=1)],
    grant_type: Annotated[GrantTypeName, Query()] = "membership",
) -> MessageResponse:
    group_service = GroupService(db, redis_client, permissions.user_id)
    grantor = await group_service.get_or_404(group_ref)
    member_group = await group_service.get_or_404(member)
    await group_service.remove_grant(grantor, member_group, grant_type)
    return MessageResponse(message=f"Revoked {grant_type} on {grantor.name} from {member_group.name}")
