"""Group service for group management and group-to-group grants."""

from typing import Optional, Union

import redis.asyncio as redis
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from tracker.config import settings
from tracker.constants import (
    GRANT_REGEXP,
    GRANT_TYPE_NAMES,
    GROUP_BLESS,
    GROUP_MEMBERSHIP,
    GROUP_VISIBLE,
    SYSTEM_GROUPS,
)
from tracker.core.exceptions import NotFoundError, UserError
from tracker.core.permissions import login_matches_regexp
from tracker.middleware.audit_logger import log_data_modification
from tracker.models.activity import AuditLog
from tracker.models.group import Group, GroupGroupMap, UserGroupMap
from tracker.models.product import GroupControlMap
from tracker.models.user import User
from tracker.redis import GroupCache
from tracker.schemas.group import GroupCreate, GroupUpdate
from tracker.utils.validators import is_numeric_id, trim, validate_regexp

GRANT_TYPES_BY_NAME = {name: value for value, name in GRANT_TYPE_NAMES.items()}
CLEARABLE_FIELDS = ("icon_url", "owner_user_id")


class GroupService:
    """Service for group operations."""

    def __init__(
        self,
        db: AsyncSession,
        redis_client: Optional[redis.Redis] = None,
        actor_id: Optional[int] = None,
    ):
        self.db = db
        self.cache = GroupCache(redis_client)
        self.actor_id = actor_id

    async def get_by_id(self, group_id: int) -> Optional[Group]:
        """Get group by ID."""
        result = await self.db.execute(select(Group).where(Group.id == group_id))
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> Optional[Group]:
        """Get group by name."""
        result = await self.db.execute(select(Group).where(Group.name == name))
        return result.scalar_one_or_none()

    async def get_or_404(self, ref: Union[int, str]) -> Group:
        """Get group by id or name, or raise NotFoundError."""
        if is_numeric_id(ref):
            group = await self.get_by_id(int(ref))
        else:
            group = await self.get_by_name(str(ref))
        if not group:
            raise NotFoundError(resource="Group")
        return group

    async def list_groups(self, is_active: Optional[bool] = None) -> list[Group]:
        query = select(Group).order_by(Group.name)
        if is_active is not None:
            query = query.where(Group.isactive.is_(is_active))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def _check_name(self, name: str, group: Optional[Group] = None) -> str:
        name = trim(name)
        if not name:
            raise UserError("empty_group_name")
        if group is None or group.name != name:
            if await self.get_by_name(name):
                raise UserError("group_exists", status_code=409, name=name)
        return name

    @staticmethod
    def _check_regexp(regexp: Optional[str]) -> str:
        regexp = trim(regexp)
        if regexp and not validate_regexp(regexp):
            raise UserError("invalid_regexp", regexp=regexp)
        return regexp

    def _audit(self, group: Group, field: str, removed=None, added=None) -> None:
        self.db.add(
            AuditLog(
                user_id=self.actor_id or None,
                class_name="Group",
                object_id=group.id,
                field=field,
                removed=None if removed is None else str(removed),
                added=None if added is None else str(added),
            )
        )

    async def create(self, data: GroupCreate) -> Group:
        """
        Create a group.

        Members of `admin` get membership and bless rights on the new group,
        and visibility when visibility groups are in use.

        Raises:
            UserError: If the name is taken or the user regexp is invalid
        """
        group = Group(
            name=await self._check_name(data.name),
            description=trim(data.description),
            userregexp=self._check_regexp(data.userregexp),
            isactive=data.isactive,
            isbuggroup=data.isbuggroup,
            icon_url=data.icon_url,
            owner_user_id=data.owner_user_id,
        )
        self.db.add(group)
        await self.db.flush()

        admin = await self.get_by_name("admin")
        if admin is not None and admin.id != group.id:
            grant_types = [GROUP_MEMBERSHIP, GROUP_BLESS]
            if settings.usevisibilitygroups:
                grant_types.append(GROUP_VISIBLE)
            for grant_type in grant_types:
                await self._add_grant_row(admin.id, group.id, grant_type)
                await self._grants_changed(grant_type)

        self._audit(group, "__create__", added=group.name)
        await self.db.flush()
        await self.rederive_regexp(group)
        await self.db.refresh(group)

        log_data_modification(
            action="create",
            resource="group",
            resource_id=group.id,
            user_id=self.actor_id,
            changes={"name": group.name},
        )
        return group

    async def update(self, group: Group, data: GroupUpdate) -> dict[str, list]:
        """
        Update a group.

        Returns:
            Changes made, as `{field: [old, new]}`
        """
        # Only the icon and the owner can be cleared.
        update_data = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None or field in CLEARABLE_FIELDS
        }
        if "name" in update_data:
            if group.name in SYSTEM_GROUPS and update_data["name"] != group.name:
                raise UserError("group_not_renamable", name=group.name)
            update_data["name"] = await self._check_name(update_data["name"], group)
        if "userregexp" in update_data:
            update_data["userregexp"] = self._check_regexp(update_data["userregexp"])
        if "description" in update_data:
            update_data["description"] = trim(update_data["description"])

        changes: dict[str, list] = {}
        for field, value in update_data.items():
            old = getattr(group, field)
            if value != old:
                changes[field] = [old, value]
                setattr(group, field, value)
                self._audit(group, field, removed=old, added=value)

        await self.db.flush()
        if "userregexp" in changes:
            await self.rederive_regexp(group)

        if changes:
            log_data_modification(
                action="update",
                resource="group",
                resource_id=group.id,
                user_id=self.actor_id,
                changes=changes,
            )
        return changes

    async def member_count(self, group: Group) -> int:
        result = await self.db.execute(
            select(func.count(func.distinct(UserGroupMap.user_id))).where(
                UserGroupMap.group_id == group.id,
                UserGroupMap.isbless.is_(False),
            )
        )
        return result.scalar_one()

    async def delete(self, group: Group, force: bool = False) -> None:
        """
        Delete a group, its memberships, grants and product controls.

        Raises:
            UserError: `group_not_deletable` for system groups,
                `group_has_members` when the group has members and not `force`
        """
        if group.name in SYSTEM_GROUPS:
            raise UserError("group_not_deletable", status_code=403, name=group.name)
        if not force and await self.member_count(group):
            raise UserError("group_has_members", status_code=409, name=group.name)

        group_id = group.id
        name = group.name
        affected = await self._mapped_user_ids()

        await self.db.execute(delete(UserGroupMap).where(UserGroupMap.group_id == group_id))
        await self.db.execute(
            delete(GroupGroupMap).where(
                or_(GroupGroupMap.member_id == group_id, GroupGroupMap.grantor_id == group_id)
            )
        )
        await self.db.execute(delete(GroupControlMap).where(GroupControlMap.group_id == group_id))
        self._audit(group, "__remove__", removed=name)
        await self.db.delete(group)
        await self.db.flush()

        await self.cache.clear(*(GroupCache.grant_type_key(t) for t in GRANT_TYPE_NAMES))
        await self.cache.clear(*(GroupCache.user_groups_key(uid) for uid in affected))

        log_data_modification(
            action="delete",
            resource="group",
            resource_id=group_id,
            user_id=self.actor_id,
            changes={"name": name},
        )

    async def rederive_regexp(self, group: Group) -> None:
        """Make the group's REGEXP memberships match its user regexp for every user."""
        result = await self.db.execute(
            select(User.id, User.login_name, UserGroupMap.id).outerjoin(
                UserGroupMap,
                (UserGroupMap.user_id == User.id)
                & (UserGroupMap.group_id == group.id)
                & UserGroupMap.isbless.is_(False)
                & (UserGroupMap.grant_type == GRANT_REGEXP),
            )
        )
        changed: list[int] = []
        for user_id, login, present in result.all():
            if login_matches_regexp(group.userregexp, login):
                if present is None:
                    self.db.add(
                        UserGroupMap(
                            user_id=user_id,
                            group_id=group.id,
                            isbless=False,
                            grant_type=GRANT_REGEXP,
                        )
                    )
                    changed.append(user_id)
            elif present is not None:
                await self.db.execute(delete(UserGroupMap).where(UserGroupMap.id == present))
                changed.append(user_id)
        await self.db.flush()
        await self.cache.clear(*(GroupCache.user_groups_key(uid) for uid in changed))

    # Grants

    async def _mapped_user_ids(self) -> list[int]:
        result = await self.db.execute(select(UserGroupMap.user_id).distinct())
        return list(result.scalars().all())

    async def _add_grant_row(self, member_id: int, grantor_id: int, grant_type: int) -> bool:
        existing = await self.db.execute(
            select(GroupGroupMap.id).where(
                GroupGroupMap.member_id == member_id,
                GroupGroupMap.grantor_id == grantor_id,
                GroupGroupMap.grant_type == grant_type,
            )
        )
        if existing.scalar_one_or_none() is not None:
            return False
        self.db.add(
            GroupGroupMap(member_id=member_id, grantor_id=grantor_id, grant_type=grant_type)
        )
        await self.db.flush()
        return True

    async def _grants_changed(self, grant_type: int) -> None:
        await self.cache.clear(GroupCache.grant_type_key(grant_type))
        if grant_type == GROUP_MEMBERSHIP:
            # Every membership closure may have changed.
            await self.cache.clear(
                *(GroupCache.user_groups_key(uid) for uid in await self._mapped_user_ids())
            )

    async def add_grant(self, grantor: Group, member: Group, grant_type: str = "membership") -> bool:
        """
        Grant `grant_type` rights on `grantor` to the members of `member`.

        Returns:
            False if the grant already existed
        """
        grant_type_id = GRANT_TYPES_BY_NAME[grant_type]
        if grant_type_id == GROUP_MEMBERSHIP and grantor.id == member.id:
            raise UserError("group_grant_to_self", name=grantor.name)

        added = await self._add_grant_row(member.id, grantor.id, grant_type_id)
        if added:
            self._audit(grantor, f"grant_{grant_type}", added=member.name)
            await self.db.flush()
            await self._grants_changed(grant_type_id)
        return added

    async def remove_grant(self, grantor: Group, member: Group, grant_type: str = "membership") -> None:
        """
        Raises:
            NotFoundError: If there is no such grant
        """
        grant_type_id = GRANT_TYPES_BY_NAME[grant_type]
        result = await self.db.execute(
            delete(GroupGroupMap).where(
                GroupGroupMap.member_id == member.id,
                GroupGroupMap.grantor_id == grantor.id,
                GroupGroupMap.grant_type == grant_type_id,
            )
        )
        if not result.rowcount:
            raise NotFoundError(resource="Grant")
        self._audit(grantor, f"grant_{grant_type}", removed=member.name)
        await self.db.flush()
        await self._grants_changed(grant_type_id)

    async def list_grants(self, group: Group) -> list[dict]:
        """Grants where the group is either the grantor or the member."""
        member = aliased(Group)
        grantor = aliased(Group)
        result = await self.db.execute(
            select(
                GroupGroupMap.member_id,
                member.name,
                GroupGroupMap.grantor_id,
                grantor.name,
                GroupGroupMap.grant_type,
            )
            .join(member, member.id == GroupGroupMap.member_id)
            .join(grantor, grantor.id == GroupGroupMap.grantor_id)
            .where(
                or_(GroupGroupMap.member_id == group.id, GroupGroupMap.grantor_id == group.id)
            )
            .order_by(GroupGroupMap.grant_type, grantor.name, member.name)
        )
        return [
            {
                "member_id": member_id,
                "member": member_name,
                "grantor_id": grantor_id,
                "grantor": grantor_name,
                "grant_type": GRANT_TYPE_NAMES[grant_type],
            }
            for member_id, member_name, grantor_id, grantor_name, grant_type in result.all()
        ]
