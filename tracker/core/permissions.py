"""Group-based permission system.

A user is a member of the groups they are directly mapped to (explicitly or
through a login regexp) plus every group those groups are granted membership
in, transitively. Bless rights and visibility are derived from the same
group graph using the BLESS and VISIBLE grant types.
"""

import re
from collections import deque
from typing import Iterable, Optional, Union

import redis.asyncio as redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.config import settings
from tracker.constants import (
    CONTROLMAPMANDATORY,
    GROUP_BLESS,
    GROUP_MEMBERSHIP,
    GROUP_VISIBLE,
    PER_PRODUCT_PRIVILEGES,
)
from tracker.core.exceptions import NotFoundError, UserError
from tracker.models.group import Group, GroupGroupMap, UserGroupMap
from tracker.models.product import GroupControlMap, Product
from tracker.models.user import User
from tracker.redis import GroupCache


def flatten_group_membership(
    seed_ids: Iterable[int],
    edges: dict[int, list[int]],
) -> list[int]:
    """
    Walk the group graph breadth-first from the seed groups.

    Args:
        seed_ids: Groups to start from; they are part of the result
        edges: Map of member group id to the grantor group ids it receives

    Returns:
        Seed ids plus every group reachable from them, in discovery order.
        Groups already visited are skipped, so cycles terminate.
    """
    queue = deque(seed_ids)
    checked: set[int] = set()
    result: list[int] = []

    while queue:
        member_id = queue.popleft()
        if member_id in checked:
            continue
        checked.add(member_id)
        result.append(member_id)
        queue.extend(g for g in edges.get(member_id, ()) if g not in checked)

    return result


async def group_grant_edges(
    db: AsyncSession,
    grant_type: int = GROUP_MEMBERSHIP,
    cache: Optional[GroupCache] = None,
) -> dict[int, list[int]]:
    """Load the member -> grantors adjacency map for one grant type."""
    rows = None
    key = GroupCache.grant_type_key(grant_type)
    if cache is not None:
        rows = await cache.get(key)

    if rows is None:
        result = await db.execute(
            select(GroupGroupMap.grantor_id, GroupGroupMap.member_id)
            .where(GroupGroupMap.grant_type == grant_type)
            .distinct()
        )
        rows = [[grantor_id, member_id] for grantor_id, member_id in result.all()]
        if cache is not None:
            await cache.set(key, rows)

    edges: dict[int, list[int]] = {}
    for grantor_id, member_id in rows:
        edges.setdefault(member_id, []).append(grantor_id)
    return edges


def login_matches_regexp(regexp: str, login: str) -> bool:
    """Case-insensitive search of a group's user regexp in a login."""
    if not regexp:
        return False
    try:
        return re.search(regexp, login, re.IGNORECASE) is not None
    except re.error:
        return False


class UserPermissions:
    """
    Authorization view of one user.

    Derived data (group closure, bless groups, visible groups, products) is
    computed on first use and kept for the life of the object, which is one
    request. Call `invalidate()` after changing the user's memberships.
    """

    def __init__(
        self,
        db: AsyncSession,
        user: Optional[User],
        redis_client: Optional[redis.Redis] = None,
    ):
        self.db = db
        self.user = user
        self.cache = GroupCache(redis_client)
        self._super_user = False
        self._memo: dict[str, object] = {}

    @classmethod
    def super_user(
        cls, db: AsyncSession, redis_client: Optional[redis.Redis] = None
    ) -> "UserPermissions":
        """A user in every group and able to bless every group; never persisted."""
        perms = cls(db, User(id=0, login_name="", realname=""), redis_client)
        perms._super_user = True
        return perms

    @property
    def is_super_user(self) -> bool:
        return self._super_user

    @property
    def user_id(self) -> int:
        return self.user.id if self.user is not None and self.user.id else 0

    def invalidate(self) -> None:
        self._memo.clear()

    async def _all_group_ids(self) -> list[int]:
        result = await self.db.execute(select(Group.id).order_by(Group.id))
        return list(result.scalars().all())

    async def _groups_from_ids(self, ids: Iterable[int]) -> list[Group]:
        ids = list(ids)
        if not ids:
            return []
        result = await self.db.execute(
            select(Group).where(Group.id.in_(ids)).order_by(Group.name)
        )
        return list(result.scalars().all())

    # Membership

    async def group_ids(self) -> list[int]:
        """Ids of all groups the user belongs to, directly or inherited."""
        if "group_ids" in self._memo:
            return self._memo["group_ids"]
        if self._super_user:
            ids = await self._all_group_ids()
        elif not self.user_id:
            ids = []
        else:
            key = GroupCache.user_groups_key(self.user_id)
            ids = await self.cache.get(key)
            if ids is None:
                result = await self.db.execute(
                    select(UserGroupMap.group_id)
                    .where(
                        UserGroupMap.user_id == self.user_id,
                        UserGroupMap.isbless.is_(False),
                    )
                    .distinct()
                )
                direct = sorted(result.scalars().all())
                edges = await group_grant_edges(self.db, GROUP_MEMBERSHIP, self.cache)
                ids = flatten_group_membership(direct, edges)
                await self.cache.set(key, ids)
        self._memo["group_ids"] = ids
        return ids

    async def groups(self) -> list[Group]:
        if "groups" not in self._memo:
            self._memo["groups"] = await self._groups_from_ids(await self.group_ids())
        return self._memo["groups"]

    async def group_names(self) -> set[str]:
        return {group.name for group in await self.groups()}

    async def in_group(self, group: Union[str, Group], product_id: Optional[int] = None) -> bool:
        """
        Check membership by group name.

        With a product id, per-product privileges (`editcomponents`,
        `editbugs`, `canconfirm`) are also granted by any of the user's
        groups that carries the privilege on that product.
        """
        name = group.name if isinstance(group, Group) else group
        if not name:
            return False
        if name in await self.group_names():
            return True
        if not product_id or name not in PER_PRODUCT_PRIVILEGES:
            return False

        memo_key = f"product_{product_id}_{name}"
        if memo_key not in self._memo:
            result = await self.db.execute(
                select(GroupControlMap.id)
                .where(
                    GroupControlMap.product_id == product_id,
                    getattr(GroupControlMap, name).is_(True),
                    GroupControlMap.group_id.in_(await self._ids_or_none()),
                )
                .limit(1)
            )
            self._memo[memo_key] = result.scalar_one_or_none() is not None
        return self._memo[memo_key]

    async def in_group_id(self, group_id: int) -> bool:
        return group_id in await self.group_ids()

    async def _ids_or_none(self) -> list[int]:
        # IN () is not portable; -1 never matches a group.
        return await self.group_ids() or [-1]

    async def groups_with_icon(self) -> list[Group]:
        return [group for group in await self.groups() if group.icon_url]

    async def groups_owned(self) -> list[Group]:
        if not self.user_id:
            return []
        result = await self.db.execute(
            select(Group).where(Group.owner_user_id == self.user_id).order_by(Group.name)
        )
        return list(result.scalars().all())

    # Bless rights

    async def bless_group_ids(self) -> list[int]:
        """Ids of groups the user may add other users to or remove them from."""
        if "bless_group_ids" in self._memo:
            return self._memo["bless_group_ids"]

        if self._super_user or (self.user_id and await self.in_group("admin")):
            ids = await self._all_group_ids()
        elif not self.user_id:
            ids = []
        else:
            visible: Optional[list[int]] = None
            if settings.usevisibilitygroups:
                visible = await self.visible_groups_inherited()

            if visible is not None and not visible:
                ids = []
            else:
                direct_query = select(UserGroupMap.group_id).where(
                    UserGroupMap.user_id == self.user_id,
                    UserGroupMap.isbless.is_(True),
                )
                if visible is not None:
                    direct_query = direct_query.where(UserGroupMap.group_id.in_(visible))
                found = set((await self.db.execute(direct_query)).scalars().all())

                member_ids = await self.group_ids()
                if member_ids:
                    inherited_query = select(GroupGroupMap.grantor_id).where(
                        GroupGroupMap.grant_type == GROUP_BLESS,
                        GroupGroupMap.member_id.in_(member_ids),
                    )
                    if visible is not None:
                        inherited_query = inherited_query.where(
                            GroupGroupMap.grantor_id.in_(visible)
                        )
                    found.update((await self.db.execute(inherited_query)).scalars().all())
                ids = sorted(found)

        self._memo["bless_group_ids"] = ids
        return ids

    async def bless_groups(self) -> list[Group]:
        if "bless_groups" not in self._memo:
            self._memo["bless_groups"] = await self._groups_from_ids(await self.bless_group_ids())
        return self._memo["bless_groups"]

    async def can_bless(self, group_id: Optional[int] = None) -> bool:
        """Whether the user can bless at all, or bless one group."""
        ids = await self.bless_group_ids()
        if group_id is None:
            return bool(ids)
        return group_id in ids

    # Visibility

    async def visible_groups_direct(self) -> list[int]:
        """Groups whose members this user may see, before inheritance."""
        if "visible_groups_direct" in self._memo:
            return self._memo["visible_groups_direct"]

        if not self._super_user and not self.user_id:
            ids = []
        elif settings.usevisibilitygroups and not self._super_user:
            result = await self.db.execute(
                select(GroupGroupMap.grantor_id)
                .where(
                    GroupGroupMap.member_id.in_(await self._ids_or_none()),
                    GroupGroupMap.grant_type == GROUP_VISIBLE,
                )
                .distinct()
            )
            ids = sorted(result.scalars().all())
        else:
            # All groups are visible when visibility groups are off.
            ids = await self._all_group_ids()

        self._memo["visible_groups_direct"] = ids
        return ids

    async def visible_groups_inherited(self) -> list[int]:
        """Groups whose members are visible, including groups those inherit."""
        if "visible_groups_inherited" not in self._memo:
            direct = await self.visible_groups_direct()
            edges = await group_grant_edges(self.db, GROUP_MEMBERSHIP, self.cache)
            self._memo["visible_groups_inherited"] = flatten_group_membership(direct, edges)
        return self._memo["visible_groups_inherited"]

    async def visible_groups(self) -> list[Group]:
        return await self._groups_from_ids(await self.visible_groups_inherited())

    async def can_see_user(self, other: User) -> bool:
        if not settings.usevisibilitygroups or self._super_user:
            return True
        if self.user_id and other.id == self.user_id:
            return True
        visible = await self.visible_groups_inherited()
        if not visible:
            return False
        result = await self.db.execute(
            select(UserGroupMap.id)
            .where(
                UserGroupMap.user_id == other.id,
                UserGroupMap.isbless.is_(False),
                UserGroupMap.group_id.in_(visible),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def queryshare_groups(self) -> list[int]:
        """Groups the user may share saved searches with."""
        if "queryshare_groups" in self._memo:
            return self._memo["queryshare_groups"]

        groups: list[int] = []
        if await self.in_group(settings.querysharegroup):
            if settings.usevisibilitygroups:
                member_ids = set(await self.group_ids())
                groups = [g for g in await self.visible_groups_inherited() if g in member_ids]
            else:
                groups = list(await self.group_ids())

        self._memo["queryshare_groups"] = groups
        return groups

    # Parameter-driven roles

    async def is_insider(self) -> bool:
        return bool(settings.insidergroup) and await self.in_group(settings.insidergroup)

    async def is_timetracker(self) -> bool:
        return bool(settings.timetrackinggroup) and await self.in_group(settings.timetrackinggroup)

    async def can_tag_comments(self) -> bool:
        group = settings.comment_taggers_group
        return bool(group) and await self.in_group(group)

    async def in_mfa_group(self) -> bool:
        return bool(settings.mfa_group) and await self.in_group(settings.mfa_group)

    def is_global_watcher(self) -> bool:
        return self.user is not None and self.user.login_name in settings.globalwatchers_list

    def is_silent_user(self) -> bool:
        return self.user is not None and self.user.login_name in settings.silent_users_list

    # Products

    async def get_selectable_products(self) -> list[Product]:
        """Products not restricted by a mandatory group the user is missing."""
        if "selectable_products" not in self._memo:
            blocked = select(GroupControlMap.product_id).where(
                GroupControlMap.membercontrol == CONTROLMAPMANDATORY,
                GroupControlMap.group_id.not_in(await self._ids_or_none()),
            )
            result = await self.db.execute(
                select(Product).where(Product.id.not_in(blocked)).order_by(Product.name)
            )
            self._memo["selectable_products"] = list(result.scalars().all())
        return self._memo["selectable_products"]

    async def can_see_product(self, name: str) -> bool:
        return any(p.name == name for p in await self.get_selectable_products())

    async def get_enterable_products(self) -> list[Product]:
        """Active products whose entry groups the user belongs to."""
        if "enterable_products" not in self._memo:
            blocked = select(GroupControlMap.product_id).where(
                GroupControlMap.entry.is_(True),
                GroupControlMap.group_id.not_in(await self._ids_or_none()),
            )
            result = await self.db.execute(
                select(Product)
                .where(Product.isactive.is_(True), Product.id.not_in(blocked))
                .order_by(Product.name)
            )
            self._memo["enterable_products"] = list(result.scalars().all())
        return self._memo["enterable_products"]

    async def can_enter_product(
        self, name: Optional[str], throw_error: bool = False
    ) -> Optional[Product]:
        """
        Return the product if the user may file bugs in it.

        With `throw_error`, explain the refusal with a UserError instead of
        returning None.
        """
        name = (name or "").strip()
        if not name:
            if throw_error:
                raise UserError("object_not_specified", message="No product specified")
            return None

        enterable = await self.get_enterable_products()
        if not enterable:
            if throw_error:
                raise UserError("no_products", status_code=403)
            return None

        for product in enterable:
            if product.name == name:
                return product
        if not throw_error:
            return None

        result = await self.db.execute(select(Product).where(Product.name == name))
        product = result.scalar_one_or_none()
        if product is None or not await self.can_see_product(product.name):
            raise UserError("entry_access_denied", status_code=403, product=name)
        # Only callers with entry rights learn that the product is closed.
        if not await self._has_entry_groups(product.id):
            raise UserError("entry_access_denied", status_code=403, product=name)
        raise UserError("product_disabled", product=product.name)

    async def _has_entry_groups(self, product_id: int) -> bool:
        result = await self.db.execute(
            select(GroupControlMap.id)
            .where(
                GroupControlMap.product_id == product_id,
                GroupControlMap.entry.is_(True),
                GroupControlMap.group_id.not_in(await self._ids_or_none()),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is None

    async def get_accessible_products(self) -> list[Product]:
        products = {p.id: p for p in await self.get_selectable_products()}
        products.update({p.id: p for p in await self.get_enterable_products()})
        return sorted(products.values(), key=lambda p: p.name)

    async def can_access_product(self, name: str) -> bool:
        return any(p.name == name for p in await self.get_accessible_products())

    async def can_edit_product(self, product_id: int) -> bool:
        """False when a `canedit` group the user is not in controls the product."""
        result = await self.db.execute(
            select(GroupControlMap.id)
            .where(
                GroupControlMap.product_id == product_id,
                GroupControlMap.canedit.is_(True),
                GroupControlMap.group_id.not_in(await self._ids_or_none()),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is None

    async def get_products_by_permission(self, privilege: str) -> list[Product]:
        """Visible products on which one of the user's groups has a privilege."""
        if privilege not in PER_PRODUCT_PRIVILEGES:
            return []
        result = await self.db.execute(
            select(GroupControlMap.product_id)
            .where(
                getattr(GroupControlMap, privilege).is_(True),
                GroupControlMap.group_id.in_(await self._ids_or_none()),
            )
            .distinct()
        )
        product_ids = set(result.scalars().all())
        if not product_ids:
            return []
        return [p for p in await self.get_selectable_products() if p.id in product_ids]

    async def check_can_admin_product(self, name: str) -> Product:
        result = await self.db.execute(select(Product).where(Product.name == name))
        product = result.scalar_one_or_none()
        if product is None:
            raise NotFoundError(resource="Product")
        if not (
            await self.in_group("editcomponents", product.id)
            and await self.can_see_product(product.name)
        ):
            raise UserError("product_admin_denied", status_code=403, product=product.name)
        return product
