"""Product service for product access checks."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.constants import PER_PRODUCT_PRIVILEGES
from tracker.core.exceptions import NotFoundError, UserError
from tracker.core.permissions import UserPermissions
from tracker.models.product import Product


class ProductService:
    """Service for product operations seen through one user's permissions."""

    def __init__(self, db: AsyncSession, permissions: UserPermissions):
        self.db = db
        self.permissions = permissions

    async def get_by_name(self, name: str) -> Optional[Product]:
        """Get product by name."""
        result = await self.db.execute(select(Product).where(Product.name == name))
        return result.scalar_one_or_none()

    async def get_visible_or_404(self, name: str) -> Product:
        """Products the user may not see are reported as missing."""
        product = await self.get_by_name(name)
        if product is None or not await self.permissions.can_see_product(product.name):
            raise NotFoundError(resource="Product")
        return product

    async def list_products(self, scope: str = "selectable") -> list[Product]:
        """
        List products for the user.

        Args:
            scope: `selectable` (may search), `enterable` (may file bugs)
                or `accessible` (either)
        """
        if scope == "enterable":
            return await self.permissions.get_enterable_products()
        if scope == "accessible":
            return await self.permissions.get_accessible_products()
        return await self.permissions.get_selectable_products()

    async def access(self, name: str) -> dict:
        """What the user may do with one product."""
        product = await self.get_visible_or_404(name)
        try:
            await self.permissions.check_can_admin_product(product.name)
            can_admin = True
        except UserError:
            can_admin = False

        privileges = [
            privilege
            for privilege in PER_PRODUCT_PRIVILEGES
            if await self.permissions.in_group(privilege, product.id)
        ]
        return {
            "product": product.name,
            "can_see": True,
            "can_enter": await self.permissions.can_enter_product(product.name) is not None,
            "can_edit": await self.permissions.can_edit_product(product.id),
            "can_admin": can_admin,
            "privileges": privileges,
        }
