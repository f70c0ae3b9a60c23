"""
Tests for organizations, members and tenant headers
"""

import pytest
from sqlalchemy import text

from conftest import add_member, auth_headers, create_org


class TestOrganizations:
    """Tests for organization endpoints"""

    async def test_create_organization(self, client):
        """Creator becomes the owner and the slug comes from the name"""
        response = await client.post(
            "/api/v1/organizations/",
            json={"name": "Corner Store", "owner_name": "Ann", "owner_email": "ann@example.com"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["organization"]["slug"] == "corner-store"
        assert data["organization"]["inventory_policy"] == "fefo"
        assert data["owner_member_id"] > 0

    async def test_duplicate_slug(self, client, org):
        response = await client.post(
            "/api/v1/organizations/",
            json={"name": "Acme Retail", "owner_name": "Bob", "owner_email": "bob@example.com"},
        )
        assert response.status_code == 409

    async def test_get_current(self, client, org):
        response = await client.get("/api/v1/organizations/current", headers=org["headers"])
        assert response.status_code == 200
        assert response.json()["id"] == org["org_id"]

    async def test_update_settings(self, client, org):
        response = await client.put(
            "/api/v1/organizations/current/settings",
            json={"inventory_policy": "fifo", "expense_approval_required": True, "expense_approval_threshold": "250"},
            headers=org["headers"],
        )
        assert response.status_code == 200
        data = response.json()
        assert data["inventory_policy"] == "fifo"
        assert data["expense_approval_required"] is True

    async def test_settings_require_admin(self, client, org):
        cashier = await add_member(client, org, "cash@example.com", "cashier")
        response = await client.put(
            "/api/v1/organizations/current/settings",
            json={"inventory_policy": "lifo"},
            headers=cashier["headers"],
        )
        assert response.status_code == 403

    async def test_unknown_workflow_rejected(self, client, org):
        response = await client.put(
            "/api/v1/organizations/current/settings",
            json={"active_expense_workflow_id": 999},
            headers=org["headers"],
        )
        assert response.status_code == 400

    async def test_active_workflow_is_foreign_key(self, db_session):
        rows = (await db_session.execute(text("PRAGMA foreign_key_list(organizations)"))).all()
        workflow_keys = [row for row in rows if row[2] == "approval_workflows"]
        assert len(workflow_keys) == 1
        assert workflow_keys[0][3] == "active_expense_workflow_id"
        assert workflow_keys[0][6] == "SET NULL"


class TestTenantHeaders:
    """Tests for membership resolution from request headers"""

    async def test_missing_headers(self, client, org):
        response = await client.get("/api/v1/members/")
        assert response.status_code == 401

    async def test_member_of_other_org(self, client, org):
        """A member id from another organization is refused"""
        other = await create_org(client, name="Other Shop", email="other@example.com")
        response = await client.get("/api/v1/members/", headers=auth_headers(org["org_id"], other["owner_id"]))
        assert response.status_code == 403

    async def test_inactive_member(self, client, org):
        clerk = await add_member(client, org, "clerk@example.com", "employee")
        await client.put(f"/api/v1/members/{clerk['id']}", json={"is_active": False}, headers=org["headers"])
        response = await client.get("/api/v1/members/", headers=clerk["headers"])
        assert response.status_code == 403


class TestMembers:
    """Tests for member management"""

    async def test_add_and_list(self, client, org):
        await add_member(client, org, "mgr@example.com", "manager", name="Mia")
        response = await client.get("/api/v1/members/", headers=org["headers"])
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert {m["role"] for m in data["data"]} == {"owner", "manager"}

    async def test_duplicate_member(self, client, org):
        await add_member(client, org, "mgr@example.com", "manager")
        response = await client.post(
            "/api/v1/members/",
            json={"email": "mgr@example.com", "name": "Again", "role": "employee"},
            headers=org["headers"],
        )
        assert response.status_code == 409

    async def test_user_in_two_orgs(self, client, org):
        """The same email can belong to several organizations"""
        other = await create_org(client, name="Other Shop", email="other@example.com")
        await add_member(client, org, "shared@example.com", "employee")
        await add_member(client, other, "shared@example.com", "cashier")

    async def test_admin_cannot_add_owner(self, client, org):
        admin = await add_member(client, org, "admin@example.com", "admin")
        response = await client.post(
            "/api/v1/members/",
            json={"email": "new@example.com", "name": "New", "role": "owner"},
            headers=admin["headers"],
        )
        assert response.status_code == 403

    async def test_last_owner_cannot_be_demoted(self, client, org):
        response = await client.put(
            f"/api/v1/members/{org['owner_id']}", json={"role": "admin"}, headers=org["headers"]
        )
        assert response.status_code == 400

    @pytest.mark.parametrize("role", ["manager", "cashier"])
    async def test_non_admin_cannot_manage_members(self, client, org, role):
        member = await add_member(client, org, f"{role}@example.com", role)
        response = await client.post(
            "/api/v1/members/",
            json={"email": "x@example.com", "name": "X"},
            headers=member["headers"],
        )
        assert response.status_code == 403
