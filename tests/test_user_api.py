"""Tests for user administration endpoints."""

import pytest
from httpx import AsyncClient

from tracker.config import settings
from tracker.models.group import Group
from tracker.models.user import User
from tests.conftest import auth_header, token_for


@pytest.fixture
def testers(make_group):
    async def _testers() -> Group:
        return await make_group("testers")

    return _testers


class TestListUsers:
    """Tests for listing users."""

    @pytest.mark.asyncio
    async def test_admin_lists_users(
        self, client: AsyncClient, test_user: User, test_admin: User, admin_token: str
    ):
        response = await client.get("/api/users", headers=auth_header(admin_token))

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert data["page"] == 1
        assert {item["login"] for item in data["items"]} == {
            "test@example.com",
            "admin@example.com",
        }

    @pytest.mark.asyncio
    async def test_filter_by_substring(
        self, client: AsyncClient, test_user: User, test_admin: User, admin_token: str
    ):
        response = await client.get(
            "/api/users",
            params={"matchvalue": "realname", "matchstr": "test"},
            headers=auth_header(admin_token),
        )

        assert response.status_code == 200
        assert [item["login"] for item in response.json()["items"]] == ["test@example.com"]

    @pytest.mark.asyncio
    async def test_plain_user_forbidden(self, client: AsyncClient, test_user: User, user_token: str):
        """Users without editusers or bless rights cannot list accounts."""
        response = await client.get("/api/users", headers=auth_header(user_token))

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "auth_failure"

    @pytest.mark.asyncio
    async def test_blesser_may_list(self, client: AsyncClient, make_user, testers):
        group = await testers()
        blesser = await make_user("lead@example.com", bless=(group,))

        response = await client.get("/api/users", headers=auth_header(token_for(blesser)))

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client: AsyncClient):
        response = await client.get("/api/users")

        assert response.status_code == 401


class TestCreateUser:
    """Tests for account creation by administrators."""

    @pytest.mark.asyncio
    async def test_create_user(self, client: AsyncClient, test_admin: User, admin_token: str):
        response = await client.post(
            "/api/users",
            headers=auth_header(admin_token),
            json={
                "login": "new@example.com",
                "realname": "New Person",
                "password": "NewPerson1!",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["login"] == "new@example.com"
        assert data["email"] == "new@example.com"
        assert data["identity"] == "New Person <new@example.com>"
        assert data["is_enabled"] is True

    @pytest.mark.asyncio
    async def test_create_disabled_user(self, client: AsyncClient, test_admin: User, admin_token: str):
        response = await client.post(
            "/api/users",
            headers=auth_header(admin_token),
            json={"login": "gone@example.com", "password": "*", "disabledtext": "Left"},
        )

        assert response.status_code == 201
        assert response.json()["is_enabled"] is False

    @pytest.mark.asyncio
    async def test_create_duplicate(
        self, client: AsyncClient, test_user: User, test_admin: User, admin_token: str
    ):
        response = await client.post(
            "/api/users",
            headers=auth_header(admin_token),
            json={"login": "TEST@example.com", "password": "NewPerson1!"},
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "account_exists"

    @pytest.mark.asyncio
    async def test_create_weak_password(self, client: AsyncClient, test_admin: User, admin_token: str):
        response = await client.post(
            "/api/users",
            headers=auth_header(admin_token),
            json={"login": "new@example.com", "password": "short"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "password_too_short"

    @pytest.mark.asyncio
    async def test_plain_user_cannot_create(self, client: AsyncClient, test_user: User, user_token: str):
        response = await client.post(
            "/api/users",
            headers=auth_header(user_token),
            json={"login": "new@example.com", "password": "NewPerson1!"},
        )

        assert response.status_code == 403


class TestGetUser:
    """Tests for fetching single users."""

    @pytest.mark.asyncio
    async def test_get_user(self, client: AsyncClient, test_user: User, user_token: str):
        response = await client.get(f"/api/users/{test_user.id}", headers=auth_header(user_token))

        assert response.status_code == 200
        assert response.json()["login"] == test_user.login_name

    @pytest.mark.asyncio
    async def test_get_unknown_user(self, client: AsyncClient, test_user: User, user_token: str):
        response = await client.get("/api/users/99999", headers=auth_header(user_token))

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_invisible_user_not_found(
        self, client: AsyncClient, test_user: User, make_user, make_group, monkeypatch
    ):
        """With visibility groups on, users outside them do not exist for the caller."""
        monkeypatch.setattr(settings, "usevisibilitygroups", True)
        hidden = await make_group("hidden")
        other = await make_user("other@example.com", groups=(hidden,))

        response = await client.get(
            f"/api/users/{other.id}", headers=auth_header(token_for(test_user))
        )

        assert response.status_code == 404


class TestUpdateUser:
    """Tests for account updates."""

    @pytest.mark.asyncio
    async def test_admin_updates_profile(
        self, client: AsyncClient, test_user: User, test_admin: User, admin_token: str
    ):
        response = await client.patch(
            f"/api/users/{test_user.id}",
            headers=auth_header(admin_token),
            json={"realname": "Renamed User", "disabledtext": "On leave"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["realname"] == "Renamed User"
        assert data["user"]["is_enabled"] is False
        assert data["changes"]["realname"] == ["Test User", "Renamed User"]
        assert data["changes"]["is_enabled"] == [True, False]

    @pytest.mark.asyncio
    async def test_no_changes(
        self, client: AsyncClient, test_user: User, test_admin: User, admin_token: str
    ):
        response = await client.patch(
            f"/api/users/{test_user.id}",
            headers=auth_header(admin_token),
            json={"realname": "Test User"},
        )

        assert response.status_code == 200
        assert response.json()["changes"] == {}

    @pytest.mark.asyncio
    async def test_admin_adds_group(
        self, client: AsyncClient, test_user: User, test_admin: User, admin_token: str, testers
    ):
        await testers()

        response = await client.patch(
            f"/api/users/{test_user.id}",
            headers=auth_header(admin_token),
            json={"groups": {"add": ["testers"]}},
        )

        assert response.status_code == 200
        assert response.json()["changes"]["groups"] == [[], ["testers"]]

        response = await client.get(
            f"/api/users/{test_user.id}/permissions", headers=auth_header(admin_token)
        )
        assert "testers" in response.json()["direct_groups"]

    @pytest.mark.asyncio
    async def test_set_names_group_twice(
        self, client: AsyncClient, test_user: User, test_admin: User, admin_token: str, testers
    ):
        """A group given by id and by name is granted once."""
        group = await testers()

        response = await client.patch(
            f"/api/users/{test_user.id}",
            headers=auth_header(admin_token),
            json={"groups": {"set": [group.id, "testers"]}},
        )

        assert response.status_code == 200
        assert response.json()["changes"]["groups"] == [[], ["testers"]]

        response = await client.get(
            f"/api/users/{test_user.id}/permissions", headers=auth_header(admin_token)
        )
        assert response.json()["direct_groups"] == ["testers"]

    @pytest.mark.asyncio
    async def test_mfa_required_date(
        self, client: AsyncClient, test_user: User, test_admin: User, admin_token: str
    ):
        response = await client.patch(
            f"/api/users/{test_user.id}",
            headers=auth_header(admin_token),
            json={"mfa_required_date": "2027-01-01T00:00:00Z"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["mfa_required_date"].startswith("2027-01-01T00:00:00")
        assert data["changes"]["mfa_required_date"][0] is None

        response = await client.patch(
            f"/api/users/{test_user.id}",
            headers=auth_header(admin_token),
            json={"mfa_required_date": None},
        )

        assert response.json()["user"]["mfa_required_date"] is None

    @pytest.mark.asyncio
    async def test_mfa_required_date_needs_editusers(
        self, client: AsyncClient, test_user: User, user_token: str
    ):
        response = await client.patch(
            f"/api/users/{test_user.id}",
            headers=auth_header(user_token),
            json={"mfa_required_date": "2027-01-01T00:00:00Z"},
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_set_and_add_rejected(
        self, client: AsyncClient, test_user: User, test_admin: User, admin_token: str
    ):
        response = await client.patch(
            f"/api/users/{test_user.id}",
            headers=auth_header(admin_token),
            json={"groups": {"set": ["testers"], "add": ["testers"]}},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_blesser_changes_blessable_group(
        self, client: AsyncClient, test_user: User, make_user, testers
    ):
        group = await testers()
        blesser = await make_user("lead@example.com", bless=(group,))

        response = await client.patch(
            f"/api/users/{test_user.id}",
            headers=auth_header(token_for(blesser)),
            json={"groups": {"add": [group.id]}},
        )

        assert response.status_code == 200
        assert response.json()["changes"]["groups"] == [[], ["testers"]]

    @pytest.mark.asyncio
    async def test_blesser_cannot_change_profile(
        self, client: AsyncClient, test_user: User, make_user, testers
    ):
        group = await testers()
        blesser = await make_user("lead@example.com", bless=(group,))

        response = await client.patch(
            f"/api/users/{test_user.id}",
            headers=auth_header(token_for(blesser)),
            json={"realname": "Hijacked"},
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "auth_failure"

    @pytest.mark.asyncio
    async def test_blesser_cannot_add_other_group(
        self, client: AsyncClient, test_user: User, make_user, make_group, testers
    ):
        group = await testers()
        await make_group("secret")
        blesser = await make_user("lead@example.com", bless=(group,))

        response = await client.patch(
            f"/api/users/{test_user.id}",
            headers=auth_header(token_for(blesser)),
            json={"groups": {"add": ["secret"]}},
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "auth_failure"

    @pytest.mark.asyncio
    async def test_unknown_group(
        self, client: AsyncClient, test_user: User, test_admin: User, admin_token: str
    ):
        """Unknown groups are indistinguishable from unblessable ones."""
        response = await client.patch(
            f"/api/users/{test_user.id}",
            headers=auth_header(admin_token),
            json={"groups": {"add": ["nonexistent"]}},
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_activity_records_changes(
        self, client: AsyncClient, test_user: User, test_admin: User, admin_token: str, testers
    ):
        await testers()
        await client.patch(
            f"/api/users/{test_user.id}",
            headers=auth_header(admin_token),
            json={"groups": {"add": ["testers"]}},
        )

        response = await client.get(
            f"/api/users/{test_user.id}/activity", headers=auth_header(admin_token)
        )

        assert response.status_code == 200
        entries = response.json()
        assert len(entries) == 1
        assert entries[0]["who"] == test_admin.login_name
        assert entries[0]["added"] == "testers"


class TestUserPermissions:
    """Tests for the permissions view of a user."""

    @pytest.mark.asyncio
    async def test_own_permissions(self, client: AsyncClient, test_user: User, user_token: str):
        response = await client.get(
            f"/api/users/{test_user.id}/permissions", headers=auth_header(user_token)
        )

        assert response.status_code == 200
        data = response.json()
        assert data["groups"] == []
        assert data["bless_groups"] == []
        assert data["is_insider"] is False

    @pytest.mark.asyncio
    async def test_admin_permissions(self, client: AsyncClient, test_admin: User, admin_token: str):
        response = await client.get(
            f"/api/users/{test_admin.id}/permissions", headers=auth_header(admin_token)
        )

        data = response.json()
        assert data["direct_groups"] == ["admin"]
        assert "editusers" in data["groups"]
        assert "editusers" in data["bless_groups"]

    @pytest.mark.asyncio
    async def test_regexp_groups(
        self, client: AsyncClient, test_admin: User, admin_token: str, make_group
    ):
        """Accounts join groups whose user regexp matches their login."""
        await make_group("staff", userregexp=r"@staff\.example\.com$")
        response = await client.post(
            "/api/users",
            headers=auth_header(admin_token),
            json={"login": "dev@staff.example.com", "password": "DevPass123!"},
        )
        staffer_id = response.json()["id"]

        response = await client.get(
            f"/api/users/{staffer_id}/permissions", headers=auth_header(admin_token)
        )

        data = response.json()
        assert data["regexp_groups"] == ["staff"]
        assert data["direct_groups"] == []
        assert "staff" in data["groups"]

    @pytest.mark.asyncio
    async def test_other_users_permissions_forbidden(
        self, client: AsyncClient, test_user: User, make_user
    ):
        other = await make_user("other@example.com")

        response = await client.get(
            f"/api/users/{other.id}/permissions", headers=auth_header(token_for(test_user))
        )

        assert response.status_code == 403


class TestMatchUsers:
    """Tests for free-text user matching."""

    @pytest.mark.asyncio
    async def test_exact_login(self, client: AsyncClient, test_user: User):
        response = await client.get("/api/users/match", params={"q": "test@example.com"})

        assert response.status_code == 200
        assert [u["login"] for u in response.json()] == ["test@example.com"]

    @pytest.mark.asyncio
    async def test_substring_needs_login(self, client: AsyncClient, test_user: User, user_token: str):
        anonymous = await client.get("/api/users/match", params={"q": "Test Us"})
        logged_in = await client.get(
            "/api/users/match", params={"q": "Test Us"}, headers=auth_header(user_token)
        )

        assert anonymous.json() == []
        assert [u["login"] for u in logged_in.json()] == ["test@example.com"]

    @pytest.mark.asyncio
    async def test_wildcard(self, client: AsyncClient, test_user: User, make_user, user_token: str):
        await make_user("tester2@example.com")

        response = await client.get(
            "/api/users/match", params={"q": "test*"}, headers=auth_header(user_token)
        )

        assert sorted(u["login"] for u in response.json()) == [
            "test@example.com",
            "tester2@example.com",
        ]

    @pytest.mark.asyncio
    async def test_userlist(self, client: AsyncClient, test_user: User, make_user, user_token: str):
        await make_user("gone@example.com", disabledtext="Gone", is_enabled=False)

        response = await client.get("/api/users/userlist", headers=auth_header(user_token))

        assert response.status_code == 200
        assert response.json() == [
            {"login": "test@example.com", "identity": "Test User <test@example.com>", "visible": True}
        ]


class TestDeleteUser:
    """Tests for account deletion."""

    @pytest.mark.asyncio
    async def test_deletion_disabled(
        self, client: AsyncClient, test_user: User, test_admin: User, admin_token: str, monkeypatch
    ):
        monkeypatch.setattr(settings, "allowuserdeletion", False)

        response = await client.delete(f"/api/users/{test_user.id}", headers=auth_header(admin_token))

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "user_deletion_disabled"

    @pytest.mark.asyncio
    async def test_delete_user(
        self, client: AsyncClient, test_user: User, test_admin: User, admin_token: str, monkeypatch
    ):
        monkeypatch.setattr(settings, "allowuserdeletion", True)

        response = await client.delete(f"/api/users/{test_user.id}", headers=auth_header(admin_token))

        assert response.status_code == 200
        response = await client.get(f"/api/users/{test_user.id}", headers=auth_header(admin_token))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_plain_user_cannot_delete(
        self, client: AsyncClient, test_user: User, make_user, user_token: str, monkeypatch
    ):
        monkeypatch.setattr(settings, "allowuserdeletion", True)
        other = await make_user("other@example.com")

        response = await client.delete(f"/api/users/{other.id}", headers=auth_header(user_token))

        assert response.status_code == 403
