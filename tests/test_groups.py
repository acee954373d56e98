"""Tests for group administration endpoints."""

import pytest
from httpx import AsyncClient

from tracker.models.user import User
from tests.conftest import auth_header


class TestListGroups:
    """Tests for reading groups."""

    @pytest.mark.asyncio
    async def test_list_groups(
        self, client: AsyncClient, test_user: User, user_token: str, system_groups: dict
    ):
        response = await client.get("/api/groups", headers=auth_header(user_token))

        assert response.status_code == 200
        names = [g["name"] for g in response.json()]
        assert names == sorted(system_groups)

    @pytest.mark.asyncio
    async def test_filter_inactive(
        self, client: AsyncClient, test_user: User, user_token: str, make_group
    ):
        await make_group("retired", isactive=False)
        await make_group("current")

        response = await client.get(
            "/api/groups", params={"is_active": "false"}, headers=auth_header(user_token)
        )

        assert [g["name"] for g in response.json()] == ["retired"]

    @pytest.mark.asyncio
    async def test_get_by_id_or_name(
        self, client: AsyncClient, test_user: User, user_token: str, make_group
    ):
        group = await make_group("testers")

        by_id = await client.get(f"/api/groups/{group.id}", headers=auth_header(user_token))
        by_name = await client.get("/api/groups/testers", headers=auth_header(user_token))

        assert by_id.status_code == 200
        assert by_id.json() == by_name.json()
        assert by_id.json()["isbuggroup"] is True

    @pytest.mark.asyncio
    async def test_system_groups_are_not_bug_groups(
        self, client: AsyncClient, test_user: User, user_token: str, system_groups: dict
    ):
        response = await client.get("/api/groups/editusers", headers=auth_header(user_token))

        assert response.json()["isbuggroup"] is False

    @pytest.mark.asyncio
    async def test_get_unknown(self, client: AsyncClient, test_user: User, user_token: str):
        response = await client.get("/api/groups/nonexistent", headers=auth_header(user_token))

        assert response.status_code == 404


class TestCreateGroup:
    """Tests for group creation."""

    @pytest.mark.asyncio
    async def test_create_group(self, client: AsyncClient, test_admin: User, admin_token: str):
        """New groups are blessable and joined by admin members."""
        response = await client.post(
            "/api/groups",
            headers=auth_header(admin_token),
            json={"name": "testers", "description": "QA team"},
        )

        assert response.status_code == 201
        assert response.json()["name"] == "testers"

        response = await client.get("/api/groups/testers/grants", headers=auth_header(admin_token))
        grants = {(g["member"], g["grant_type"]) for g in response.json()}
        assert grants == {("admin", "membership"), ("admin", "bless")}

    @pytest.mark.asyncio
    async def test_create_duplicate(
        self, client: AsyncClient, test_admin: User, admin_token: str
    ):
        response = await client.post(
            "/api/groups",
            headers=auth_header(admin_token),
            json={"name": "editusers", "description": "Again"},
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "group_exists"

    @pytest.mark.asyncio
    async def test_create_invalid_regexp(
        self, client: AsyncClient, test_admin: User, admin_token: str
    ):
        response = await client.post(
            "/api/groups",
            headers=auth_header(admin_token),
            json={"name": "broken", "description": "Broken", "userregexp": "("},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_regexp"

    @pytest.mark.asyncio
    async def test_create_with_regexp_adds_members(
        self, client: AsyncClient, test_admin: User, admin_token: str, make_user
    ):
        staffer = await make_user("dev@staff.example.com")

        await client.post(
            "/api/groups",
            headers=auth_header(admin_token),
            json={"name": "staff", "description": "Staff", "userregexp": r"@staff\.example\.com$"},
        )

        response = await client.get(
            f"/api/users/{staffer.id}/permissions", headers=auth_header(admin_token)
        )
        assert response.json()["regexp_groups"] == ["staff"]

    @pytest.mark.asyncio
    async def test_plain_user_cannot_create(
        self, client: AsyncClient, test_user: User, user_token: str
    ):
        response = await client.post(
            "/api/groups",
            headers=auth_header(user_token),
            json={"name": "mine", "description": "Mine"},
        )

        assert response.status_code == 403


class TestUpdateGroup:
    """Tests for group updates."""

    @pytest.mark.asyncio
    async def test_update_description(
        self, client: AsyncClient, test_admin: User, admin_token: str, make_group
    ):
        await make_group("testers")

        response = await client.patch(
            "/api/groups/testers",
            headers=auth_header(admin_token),
            json={"description": "Quality assurance"},
        )

        assert response.status_code == 200
        assert response.json()["description"] == "Quality assurance"

    @pytest.mark.asyncio
    async def test_null_ignored_for_required_fields(
        self, client: AsyncClient, test_admin: User, admin_token: str, make_group
    ):
        """Null only clears the icon and the owner."""
        group = await make_group("testers", icon_url="https://example.com/t.png")

        response = await client.patch(
            f"/api/groups/{group.id}",
            headers=auth_header(admin_token),
            json={"isactive": None, "description": None, "icon_url": None},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["isactive"] is True
        assert data["description"] == "testers group"
        assert data["icon_url"] is None

    @pytest.mark.asyncio
    async def test_system_group_not_renamable(
        self, client: AsyncClient, test_admin: User, admin_token: str
    ):
        response = await client.patch(
            "/api/groups/editusers",
            headers=auth_header(admin_token),
            json={"name": "useradmins"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "group_not_renamable"

    @pytest.mark.asyncio
    async def test_regexp_change_rederives_members(
        self, client: AsyncClient, test_admin: User, admin_token: str, make_group, make_user
    ):
        await make_group("staff", userregexp=r"@staff\.example\.com$")
        outsider = await make_user("contractor@example.org")

        await client.patch(
            "/api/groups/staff",
            headers=auth_header(admin_token),
            json={"userregexp": r"@example\.org$"},
        )

        response = await client.get(
            f"/api/users/{outsider.id}/permissions", headers=auth_header(admin_token)
        )
        assert response.json()["regexp_groups"] == ["staff"]


class TestDeleteGroup:
    """Tests for group deletion."""

    @pytest.mark.asyncio
    async def test_delete_group(
        self, client: AsyncClient, test_admin: User, admin_token: str, make_group
    ):
        await make_group("retired")

        response = await client.delete("/api/groups/retired", headers=auth_header(admin_token))

        assert response.status_code == 200
        response = await client.get("/api/groups/retired", headers=auth_header(admin_token))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_system_group_not_deletable(
        self, client: AsyncClient, test_admin: User, admin_token: str
    ):
        response = await client.delete("/api/groups/admin", headers=auth_header(admin_token))

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "group_not_deletable"

    @pytest.mark.asyncio
    async def test_group_with_members_needs_force(
        self, client: AsyncClient, test_admin: User, admin_token: str, make_group, make_user
    ):
        group = await make_group("testers")
        await make_user("member@example.com", groups=(group,))

        response = await client.delete("/api/groups/testers", headers=auth_header(admin_token))
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "group_has_members"

        response = await client.delete(
            "/api/groups/testers", params={"force": "true"}, headers=auth_header(admin_token)
        )
        assert response.status_code == 200


class TestGrants:
    """Tests for group-to-group grants."""

    @pytest.mark.asyncio
    async def test_add_and_remove_grant(
        self, client: AsyncClient, test_admin: User, admin_token: str, make_group
    ):
        await make_group("testers")
        await make_group("developers")

        response = await client.post(
            "/api/groups/testers/grants",
            headers=auth_header(admin_token),
            json={"member": "developers", "grant_type": "membership"},
        )
        assert response.status_code == 201
        assert response.json()["message"] == "Granted membership on testers to developers"

        response = await client.get("/api/groups/developers/grants", headers=auth_header(admin_token))
        assert {
            "member": "developers",
            "grantor": "testers",
            "grant_type": "membership",
        }.items() <= response.json()[0].items()

        response = await client.delete(
            "/api/groups/testers/grants",
            params={"member": "developers"},
            headers=auth_header(admin_token),
        )
        assert response.status_code == 200

        response = await client.delete(
            "/api/groups/testers/grants",
            params={"member": "developers"},
            headers=auth_header(admin_token),
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_duplicate_grant(
        self, client: AsyncClient, test_admin: User, admin_token: str, make_group
    ):
        await make_group("testers")
        await make_group("developers")
        payload = {"member": "developers", "grant_type": "bless"}

        await client.post("/api/groups/testers/grants", headers=auth_header(admin_token), json=payload)
        response = await client.post(
            "/api/groups/testers/grants", headers=auth_header(admin_token), json=payload
        )

        assert response.json()["message"] == "Grant already exists"

    @pytest.mark.asyncio
    async def test_membership_grant_to_self(
        self, client: AsyncClient, test_admin: User, admin_token: str, make_group
    ):
        await make_group("testers")

        response = await client.post(
            "/api/groups/testers/grants",
            headers=auth_header(admin_token),
            json={"member": "testers"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "group_grant_to_self"

    @pytest.mark.asyncio
    async def test_bless_grant_to_self(
        self, client: AsyncClient, test_admin: User, admin_token: str, make_group
    ):
        """Members of a group may be allowed to bless it."""
        await make_group("testers")

        response = await client.post(
            "/api/groups/testers/grants",
            headers=auth_header(admin_token),
            json={"member": "testers", "grant_type": "bless"},
        )

        assert response.status_code == 201

    @pytest.mark.asyncio
    async def test_grant_gives_inherited_membership(
        self,
        client: AsyncClient,
        test_admin: User,
        admin_token: str,
        make_group,
        make_user,
        mock_redis,
    ):
        testers = await make_group("testers")
        developers = await make_group("developers")
        dev = await make_user("dev@example.com", groups=(developers,))

        await client.post(
            f"/api/groups/{testers.id}/grants",
            headers=auth_header(admin_token),
            json={"member": developers.id},
        )

        cleared = {key for call in mock_redis.delete.await_args_list for key in call.args}
        assert f"config:user_groups.{dev.id}" in cleared
        response = await client.get(f"/api/users/{dev.id}/permissions", headers=auth_header(admin_token))
        assert response.json()["groups"] == ["developers", "testers"]

    @pytest.mark.asyncio
    async def test_invalid_grant_type(
        self, client: AsyncClient, test_admin: User, admin_token: str, make_group
    ):
        await make_group("testers")

        response = await client.post(
            "/api/groups/testers/grants",
            headers=auth_header(admin_token),
            json={"member": "admin", "grant_type": "own"},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_plain_user_cannot_grant(
        self, client: AsyncClient, test_user: User, user_token: str, make_group
    ):
        await make_group("testers")

        response = await client.post(
            "/api/groups/testers/grants",
            headers=auth_header(user_token),
            json={"member": "testers", "grant_type": "bless"},
        )

        assert response.status_code == 403
