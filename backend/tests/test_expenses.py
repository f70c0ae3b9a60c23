"""
Tests for expense submission, approval and payment
"""

from decimal import Decimal

import pytest
from sqlalchemy import text

from conftest import add_member


@pytest.fixture
async def category(client, org):
    response = await client.post("/api/v1/expense-categories/", json={"name": "Rent"}, headers=org["headers"])
    assert response.status_code == 200, response.text
    return response.json()


@pytest.fixture
async def employee(client, org):
    return await add_member(client, org, "emp@example.com", "employee", name="Eve")


@pytest.fixture
async def admin(client, org):
    return await add_member(client, org, "admin@example.com", "admin", name="Ada")


@pytest.fixture
async def manager(client, org):
    return await add_member(client, org, "mgr@example.com", "manager", name="Max")


async def require_approval_over(client, org, threshold):
    response = await client.put(
        "/api/v1/organizations/current/settings",
        json={"expense_approval_required": True, "expense_approval_threshold": str(threshold)},
        headers=org["headers"],
    )
    assert response.status_code == 200, response.text


async def submit(client, headers, category, amount, **extra):
    payload = {
        "description": "Shop supplies",
        "amount": str(amount),
        "expense_date": "2024-05-10",
        "category_id": category["id"],
    }
    payload.update(extra)
    return await client.post("/api/v1/expenses/", json=payload, headers=headers)


async def notification_types(client, headers):
    response = await client.get("/api/v1/notifications/", headers=headers)
    return [n["notification_type"] for n in response.json()["data"]]


class TestSubmission:
    """Tests for expense submission"""

    async def test_auto_approved_without_rules(self, client, category, employee):
        response = await submit(client, employee["headers"], category, 500)
        assert response.status_code == 200, response.text
        expense = response.json()
        assert expense["status"] == "approved"
        assert expense["approved_by_id"] == employee["id"]
        assert expense["expense_number"].startswith("EXP-")

    async def test_under_threshold_auto_approved(self, client, org, category, employee):
        await require_approval_over(client, org, 100)
        expense = (await submit(client, employee["headers"], category, 100)).json()
        assert expense["status"] == "approved"

    async def test_over_threshold_pending(self, client, org, category, employee, admin):
        await require_approval_over(client, org, 100)
        expense = (await submit(client, employee["headers"], category, 150)).json()
        assert expense["status"] == "pending"
        assert "expense_submitted" in await notification_types(client, org["headers"])
        assert "expense_submitted" in await notification_types(client, admin["headers"])

    async def test_receipt_required(self, client, org, category, employee):
        await client.put(
            "/api/v1/organizations/current/settings",
            json={"expense_receipt_required": True, "expense_receipt_threshold": "50"},
            headers=org["headers"],
        )
        response = await submit(client, employee["headers"], category, 60)
        assert response.status_code == 400
        response = await submit(client, employee["headers"], category, 60, receipt_url="https://files.example.com/r.png")
        assert response.status_code == 200

    async def test_inactive_category(self, client, org, category, employee):
        await client.put(
            f"/api/v1/expense-categories/{category['id']}", json={"is_active": False}, headers=org["headers"]
        )
        response = await submit(client, employee["headers"], category, 10)
        assert response.status_code == 400


class TestApproval:
    """Tests for approving and rejecting expenses"""

    @pytest.fixture
    async def pending(self, client, org, category, employee):
        await require_approval_over(client, org, 100)
        return (await submit(client, employee["headers"], category, 250, is_reimbursable=True)).json()

    async def test_owner_approves(self, client, org, employee, pending):
        response = await client.post(f"/api/v1/expenses/{pending['id']}/approve", json={}, headers=org["headers"])
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "approved"
        assert data["approved_by_id"] == org["owner_id"]
        assert len(data["approvals"]) == 1
        assert "expense_approval" in await notification_types(client, employee["headers"])

    async def test_submitter_cannot_approve(self, client, employee, pending):
        response = await client.post(f"/api/v1/expenses/{pending['id']}/approve", json={}, headers=employee["headers"])
        assert response.status_code == 403

    async def test_manager_not_default_approver(self, client, manager, pending):
        response = await client.post(f"/api/v1/expenses/{pending['id']}/approve", json={}, headers=manager["headers"])
        assert response.status_code == 403

    async def test_cannot_approve_twice(self, client, org, pending):
        await client.post(f"/api/v1/expenses/{pending['id']}/approve", json={}, headers=org["headers"])
        response = await client.post(f"/api/v1/expenses/{pending['id']}/approve", json={}, headers=org["headers"])
        assert response.status_code == 400

    async def test_reject(self, client, org, employee, pending):
        response = await client.post(
            f"/api/v1/expenses/{pending['id']}/reject",
            json={"comments": "Missing invoice"},
            headers=org["headers"],
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "rejected"
        assert "REJECTED: Missing invoice" in data["notes"]
        assert "expense_rejected" in await notification_types(client, employee["headers"])

    async def test_reject_requires_comments(self, client, org, pending):
        response = await client.post(f"/api/v1/expenses/{pending['id']}/reject", json={}, headers=org["headers"])
        assert response.status_code == 422

    async def test_pending_approvals_list(self, client, org, manager, pending):
        mine = await client.get("/api/v1/expenses/pending-approvals", headers=org["headers"])
        assert [e["id"] for e in mine.json()] == [pending["id"]]
        theirs = await client.get("/api/v1/expenses/pending-approvals", headers=manager["headers"])
        assert theirs.json() == []

    async def test_approval_requirements(self, client, org, admin, pending):
        response = await client.get(f"/api/v1/expenses/{pending['id']}/approval-requirements", headers=org["headers"])
        data = response.json()
        assert data["requires_approval"] is True
        assert {a["member_id"] for a in data["eligible_approvers"]} == {org["owner_id"], admin["id"]}


class TestPayment:
    """Tests for marking expenses paid"""

    async def test_paid(self, client, org, category, employee):
        expense = (await submit(client, employee["headers"], category, 40)).json()
        response = await client.post(f"/api/v1/expenses/{expense['id']}/pay", headers=org["headers"])
        assert response.status_code == 200
        assert response.json()["status"] == "paid"
        assert response.json()["paid_date"] is not None
        assert "expense_paid" in await notification_types(client, employee["headers"])

    async def test_reimbursed(self, client, org, category, employee):
        expense = (await submit(client, employee["headers"], category, 40, is_reimbursable=True)).json()
        response = await client.post(f"/api/v1/expenses/{expense['id']}/pay", headers=org["headers"])
        assert response.json()["status"] == "reimbursed"

    async def test_pending_cannot_be_paid(self, client, org, category, employee):
        await require_approval_over(client, org, 10)
        expense = (await submit(client, employee["headers"], category, 40)).json()
        response = await client.post(f"/api/v1/expenses/{expense['id']}/pay", headers=org["headers"])
        assert response.status_code == 400

    async def test_employee_cannot_pay(self, client, category, employee):
        expense = (await submit(client, employee["headers"], category, 40)).json()
        response = await client.post(f"/api/v1/expenses/{expense['id']}/pay", headers=employee["headers"])
        assert response.status_code == 403


class TestExpenseCategories:
    """Tests for expense categories"""

    async def test_duplicate(self, client, org, category):
        response = await client.post("/api/v1/expense-categories/", json={"name": "Rent"}, headers=org["headers"])
        assert response.status_code == 409

    async def test_delete_in_use(self, client, org, category, employee):
        await submit(client, employee["headers"], category, 10)
        response = await client.delete(f"/api/v1/expense-categories/{category['id']}", headers=org["headers"])
        assert response.status_code == 400

    async def test_delete_used_by_recurring_expense(self, client, org, category):
        response = await client.post(
            "/api/v1/recurring-expenses/",
            json={
                "description": "Shop rent",
                "amount": "1200",
                "category_id": category["id"],
                "frequency": "monthly",
                "start_date": "2024-01-31",
            },
            headers=org["headers"],
        )
        assert response.status_code == 200, response.text

        response = await client.delete(f"/api/v1/expense-categories/{category['id']}", headers=org["headers"])
        assert response.status_code == 400
        listed = await client.get("/api/v1/expense-categories/", headers=org["headers"])
        assert [c["name"] for c in listed.json()] == ["Rent"]

    async def test_delete_used_by_workflow_condition(self, client, org, category):
        step = {
            "step_number": 1,
            "conditions": [{"condition_type": "expense_category", "expense_category_id": category["id"]}],
            "actions": [{"action_type": "role", "approver_role": "admin"}],
        }
        response = await client.post(
            "/api/v1/approval-workflows/", json={"name": "Rent review", "steps": [step]}, headers=org["headers"]
        )
        assert response.status_code == 200, response.text

        response = await client.delete(f"/api/v1/expense-categories/{category['id']}", headers=org["headers"])
        assert response.status_code == 400

    async def test_foreign_keys_enforced(self, db_session):
        result = await db_session.execute(text("PRAGMA foreign_keys"))
        assert result.scalar() == 1

    async def test_summary(self, client, org, category, employee):
        await submit(client, employee["headers"], category, 10)
        await submit(client, employee["headers"], category, "15.50")
        response = await client.get("/api/v1/expenses/summary", headers=org["headers"])
        data = response.json()
        assert data["count"] == 2
        assert Decimal(data["total_amount"]) == Decimal("25.50")
        assert Decimal(data["by_category"]["Rent"]) == Decimal("25.50")
