"""Tests for product endpoints."""

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.constants import CONTROLMAPMANDATORY, CONTROLMAPSHOWN
from tracker.models.group import Group
from tracker.models.product import GroupControlMap, Product
from tracker.models.user import User
from tests.conftest import auth_header, token_for


@pytest_asyncio.fixture
async def staff(make_group) -> Group:
    return await make_group("staff")


@pytest_asyncio.fixture
async def products(db_session: AsyncSession, staff: Group) -> dict[str, Product]:
    """A public product, a staff-only product and a product only staff may file in."""
    products = {}
    for name, isactive in (("Public", True), ("Internal", True), ("Beta", True), ("Legacy", False)):
        product = Product(name=name, description=f"{name} product", isactive=isactive)
        db_session.add(product)
        products[name] = product
    await db_session.flush()
    db_session.add_all(
        [
            GroupControlMap(
                product_id=products["Internal"].id,
                group_id=staff.id,
                membercontrol=CONTROLMAPMANDATORY,
                othercontrol=CONTROLMAPMANDATORY,
                entry=True,
                editcomponents=True,
            ),
            GroupControlMap(
                product_id=products["Beta"].id,
                group_id=staff.id,
                membercontrol=CONTROLMAPSHOWN,
                entry=True,
                canedit=True,
            ),
        ]
    )
    await db_session.commit()
    return products


class TestListProducts:
    """Tests for listing products by scope."""

    @pytest.mark.asyncio
    async def test_anonymous_selectable(self, client: AsyncClient, products):
        response = await client.get("/api/products")

        assert response.status_code == 200
        assert [p["name"] for p in response.json()] == ["Beta", "Legacy", "Public"]

    @pytest.mark.asyncio
    async def test_outsider_enterable(self, client: AsyncClient, products, test_user: User, user_token: str):
        """Closed products and products with entry groups cannot be entered."""
        response = await client.get(
            "/api/products", params={"scope": "enterable"}, headers=auth_header(user_token)
        )

        assert [p["name"] for p in response.json()] == ["Public"]

    @pytest.mark.asyncio
    async def test_staff_scopes(self, client: AsyncClient, products, staff: Group, make_user):
        member = await make_user("dev@example.com", groups=(staff,))
        headers = auth_header(token_for(member))

        selectable = await client.get("/api/products", headers=headers)
        enterable = await client.get("/api/products", params={"scope": "enterable"}, headers=headers)

        assert [p["name"] for p in selectable.json()] == ["Beta", "Internal", "Legacy", "Public"]
        assert [p["name"] for p in enterable.json()] == ["Beta", "Internal", "Public"]

    @pytest.mark.asyncio
    async def test_accessible(self, client: AsyncClient, products, test_user: User, user_token: str):
        response = await client.get(
            "/api/products", params={"scope": "accessible"}, headers=auth_header(user_token)
        )

        assert [p["name"] for p in response.json()] == ["Beta", "Legacy", "Public"]

    @pytest.mark.asyncio
    async def test_unknown_scope(self, client: AsyncClient):
        response = await client.get("/api/products", params={"scope": "everything"})

        assert response.status_code == 422


class TestProductAccess:
    """Tests for the per-product rights of the caller."""

    @pytest.mark.asyncio
    async def test_outsider_access(self, client: AsyncClient, products, test_user: User, user_token: str):
        response = await client.get("/api/products/Beta/access", headers=auth_header(user_token))

        assert response.status_code == 200
        assert response.json() == {
            "product": "Beta",
            "can_see": True,
            "can_enter": False,
            "can_edit": False,
            "can_admin": False,
            "privileges": [],
        }

    @pytest.mark.asyncio
    async def test_hidden_product_not_found(
        self, client: AsyncClient, products, test_user: User, user_token: str
    ):
        response = await client.get("/api/products/Internal/access", headers=auth_header(user_token))

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_per_product_privilege(
        self, client: AsyncClient, products, staff: Group, make_user
    ):
        """Control groups carry privileges on their product only."""
        member = await make_user("dev@example.com", groups=(staff,))
        headers = auth_header(token_for(member))

        internal = await client.get("/api/products/Internal/access", headers=headers)
        public = await client.get("/api/products/Public/access", headers=headers)

        assert internal.json()["privileges"] == ["editcomponents"]
        assert internal.json()["can_admin"] is True
        assert internal.json()["can_enter"] is True
        assert public.json()["privileges"] == []
        assert public.json()["can_admin"] is False

    @pytest.mark.asyncio
    async def test_admin_access(self, client: AsyncClient, products, test_admin: User, admin_token: str):
        response = await client.get("/api/products/Public/access", headers=auth_header(admin_token))

        data = response.json()
        assert data["can_admin"] is True
        assert data["privileges"] == ["editcomponents", "editbugs", "canconfirm"]
