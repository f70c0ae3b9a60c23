"""
Tests for approval workflows and workflow-driven expense approval
"""

import pytest
from sqlalchemy import func, select

from conftest import add_member
from retailhub.models.approval_workflow import ApprovalStepAction, ApprovalStepCondition, ApprovalWorkflowStep


@pytest.fixture
async def category(client, org):
    response = await client.post("/api/v1/expense-categories/", json={"name": "Travel"}, headers=org["headers"])
    return response.json()


@pytest.fixture
async def employee(client, org):
    return await add_member(client, org, "emp@example.com", "employee", name="Eve")


def amount_step(number, min_amount=None, max_amount=None, role="manager", mode="any_one"):
    condition = {"condition_type": "amount_range"}
    if min_amount is not None:
        condition["min_amount"] = str(min_amount)
    if max_amount is not None:
        condition["max_amount"] = str(max_amount)
    return {
        "step_number": number,
        "conditions": [condition],
        "actions": [{"action_type": "role", "approver_role": role, "approval_mode": mode}],
    }


async def create_workflow(client, org, name, steps, activate=True):
    response = await client.post(
        "/api/v1/approval-workflows/", json={"name": name, "steps": steps}, headers=org["headers"]
    )
    assert response.status_code == 200, response.text
    workflow = response.json()
    if activate:
        activated = await client.post(
            "/api/v1/approval-workflows/active", json={"workflow_id": workflow["id"]}, headers=org["headers"]
        )
        assert activated.status_code == 200, activated.text
    return workflow


async def step_row_counts(session_factory):
    """Remaining step, condition and action rows"""
    async with session_factory() as session:
        return [
            (await session.execute(select(func.count(model.id)))).scalar()
            for model in (ApprovalWorkflowStep, ApprovalStepCondition, ApprovalStepAction)
        ]


async def submit(client, headers, category, amount, **extra):
    payload = {
        "description": "Client visit",
        "amount": str(amount),
        "expense_date": "2024-05-10",
        "category_id": category["id"],
    }
    payload.update(extra)
    response = await client.post("/api/v1/expenses/", json=payload, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


class TestWorkflowManagement:
    """Tests for workflow CRUD"""

    async def test_create_orders_steps(self, client, org):
        workflow = await create_workflow(
            client, org, "Tiers", [amount_step(2, min_amount=1000, role="admin"), amount_step(1, 100, 1000)],
            activate=False,
        )
        assert [s["step_number"] for s in workflow["steps"]] == [1, 2]
        assert workflow["is_org_active"] is False

    async def test_duplicate_name(self, client, org):
        await create_workflow(client, org, "Tiers", [amount_step(1, min_amount=0)], activate=False)
        response = await client.post(
            "/api/v1/approval-workflows/",
            json={"name": "Tiers", "steps": [amount_step(1, min_amount=0)]},
            headers=org["headers"],
        )
        assert response.status_code == 409

    async def test_duplicate_step_numbers(self, client, org):
        response = await client.post(
            "/api/v1/approval-workflows/",
            json={"name": "Bad", "steps": [amount_step(1, min_amount=0), amount_step(1, min_amount=10)]},
            headers=org["headers"],
        )
        assert response.status_code == 422

    async def test_invalid_amount_range(self, client, org):
        response = await client.post(
            "/api/v1/approval-workflows/",
            json={"name": "Bad", "steps": [amount_step(1, 500, 100)]},
            headers=org["headers"],
        )
        assert response.status_code == 422

    async def test_unknown_member_action(self, client, org):
        step = {
            "step_number": 1,
            "conditions": [{"condition_type": "amount_range", "min_amount": "0"}],
            "actions": [{"action_type": "specific_member", "specific_member_id": 999}],
        }
        response = await client.post(
            "/api/v1/approval-workflows/", json={"name": "Bad", "steps": [step]}, headers=org["headers"]
        )
        assert response.status_code == 400

    async def test_activate_and_settings(self, client, org):
        workflow = await create_workflow(client, org, "Main", [amount_step(1, min_amount=0)])
        current = await client.get("/api/v1/organizations/current", headers=org["headers"])
        assert current.json()["active_expense_workflow_id"] == workflow["id"]
        fetched = await client.get(f"/api/v1/approval-workflows/{workflow['id']}", headers=org["headers"])
        assert fetched.json()["is_org_active"] is True

    async def test_clear_active(self, client, org):
        await create_workflow(client, org, "Main", [amount_step(1, min_amount=0)])
        response = await client.post("/api/v1/approval-workflows/active", json={"workflow_id": None}, headers=org["headers"])
        assert response.status_code == 200
        current = await client.get("/api/v1/organizations/current", headers=org["headers"])
        assert current.json()["active_expense_workflow_id"] is None

    async def test_delete_removes_steps(self, client, org, session_factory):
        workflow = await create_workflow(
            client, org, "Main", [amount_step(1, 0, 500), amount_step(2, min_amount=500, role="admin")]
        )
        assert await step_row_counts(session_factory) == [2, 2, 2]

        response = await client.delete(f"/api/v1/approval-workflows/{workflow['id']}", headers=org["headers"])
        assert response.status_code == 200
        assert await step_row_counts(session_factory) == [0, 0, 0]

    async def test_replace_removes_old_steps(self, client, org, session_factory):
        workflow = await create_workflow(
            client, org, "Main", [amount_step(1, 0, 500), amount_step(2, min_amount=500, role="admin")]
        )
        response = await client.put(
            f"/api/v1/approval-workflows/{workflow['id']}",
            json={"name": "Main", "steps": [amount_step(1, min_amount=0)]},
            headers=org["headers"],
        )
        assert response.status_code == 200, response.text
        assert await step_row_counts(session_factory) == [1, 1, 1]

    async def test_cannot_deactivate_active(self, client, org):
        workflow = await create_workflow(client, org, "Main", [amount_step(1, min_amount=0)])
        response = await client.patch(
            f"/api/v1/approval-workflows/{workflow['id']}", json={"is_active": False}, headers=org["headers"]
        )
        assert response.status_code == 400

    async def test_inactive_cannot_be_activated(self, client, org):
        response = await client.post(
            "/api/v1/approval-workflows/",
            json={"name": "Off", "is_active": False, "steps": [amount_step(1, min_amount=0)]},
            headers=org["headers"],
        )
        workflow = response.json()
        activated = await client.post(
            "/api/v1/approval-workflows/active", json={"workflow_id": workflow["id"]}, headers=org["headers"]
        )
        assert activated.status_code == 400

    async def test_replace_steps(self, client, org):
        workflow = await create_workflow(client, org, "Main", [amount_step(1, min_amount=0)])
        response = await client.put(
            f"/api/v1/approval-workflows/{workflow['id']}",
            json={"name": "Main", "steps": [amount_step(1, 0, 500), amount_step(2, min_amount=500, role="admin")]},
            headers=org["headers"],
        )
        assert response.status_code == 200, response.text
        assert len(response.json()["steps"]) == 2

    async def test_delete_clears_active(self, client, org):
        workflow = await create_workflow(client, org, "Main", [amount_step(1, min_amount=0)])
        response = await client.delete(f"/api/v1/approval-workflows/{workflow['id']}", headers=org["headers"])
        assert response.status_code == 200
        current = await client.get("/api/v1/organizations/current", headers=org["headers"])
        assert current.json()["active_expense_workflow_id"] is None

    async def test_manager_cannot_manage(self, client, org):
        manager = await add_member(client, org, "mgr@example.com", "manager")
        response = await client.post(
            "/api/v1/approval-workflows/",
            json={"name": "Main", "steps": [amount_step(1, min_amount=0)]},
            headers=manager["headers"],
        )
        assert response.status_code == 403


class TestTemplates:
    """Tests for built-in templates"""

    async def test_list(self, client, org):
        response = await client.get("/api/v1/approval-workflows/templates", headers=org["headers"])
        assert {t["key"] for t in response.json()} == {"low_value", "tiered", "branch_office"}

    async def test_apply_tiered(self, client, org):
        response = await client.post("/api/v1/approval-workflows/templates/tiered", json={}, headers=org["headers"])
        assert response.status_code == 200
        steps = response.json()["steps"]
        assert [s["actions"][0]["approver_role"] for s in steps] == ["manager", "admin"]

    async def test_unknown_template(self, client, org):
        response = await client.post("/api/v1/approval-workflows/templates/nope", json={}, headers=org["headers"])
        assert response.status_code == 404

    async def test_branch_needs_location(self, client, org):
        response = await client.post(
            "/api/v1/approval-workflows/templates/branch_office", json={}, headers=org["headers"]
        )
        assert response.status_code == 400


class TestWorkflowApproval:
    """Tests for expense approval driven by the active workflow"""

    async def test_unmatched_expense_auto_approved(self, client, org, category, employee):
        await create_workflow(client, org, "Big", [amount_step(1, min_amount=500)])
        expense = await submit(client, employee["headers"], category, 200)
        assert expense["status"] == "approved"

    async def test_step_role_approves(self, client, org, category, employee):
        manager = await add_member(client, org, "mgr@example.com", "manager")
        await create_workflow(client, org, "Big", [amount_step(1, min_amount=100)])
        expense = await submit(client, employee["headers"], category, 200)
        assert expense["status"] == "pending"
        assert expense["workflow_step_id"] is not None

        owner_try = await client.post(f"/api/v1/expenses/{expense['id']}/approve", json={}, headers=org["headers"])
        assert owner_try.status_code == 403

        response = await client.post(f"/api/v1/expenses/{expense['id']}/approve", json={}, headers=manager["headers"])
        assert response.json()["status"] == "approved"

    async def test_all_mode_waits_for_everyone(self, client, org, category, employee):
        first = await add_member(client, org, "m1@example.com", "manager")
        second = await add_member(client, org, "m2@example.com", "manager")
        await create_workflow(client, org, "Joint", [amount_step(1, min_amount=0, mode="all")])
        expense = await submit(client, employee["headers"], category, 50)

        response = await client.post(f"/api/v1/expenses/{expense['id']}/approve", json={}, headers=first["headers"])
        assert response.json()["status"] == "pending"
        response = await client.post(f"/api/v1/expenses/{expense['id']}/approve", json={}, headers=second["headers"])
        assert response.json()["status"] == "approved"

    async def test_tiered_routes_by_amount(self, client, org, category, employee):
        manager = await add_member(client, org, "mgr@example.com", "manager")
        admin = await add_member(client, org, "admin@example.com", "admin")
        workflow = (await client.post(
            "/api/v1/approval-workflows/templates/tiered", json={}, headers=org["headers"]
        )).json()
        await client.post("/api/v1/approval-workflows/active", json={"workflow_id": workflow["id"]}, headers=org["headers"])

        small = await submit(client, employee["headers"], category, 50)
        assert small["status"] == "approved"

        large = await submit(client, employee["headers"], category, 5000)
        denied = await client.post(f"/api/v1/expenses/{large['id']}/approve", json={}, headers=manager["headers"])
        assert denied.status_code == 403
        approved = await client.post(f"/api/v1/expenses/{large['id']}/approve", json={}, headers=admin["headers"])
        assert approved.json()["status"] == "approved"

    async def test_branch_manager_approves(self, client, org, category, employee):
        manager = await add_member(client, org, "mgr@example.com", "manager")
        other = await add_member(client, org, "mgr2@example.com", "manager")
        branch = (await client.post(
            "/api/v1/locations/", json={"name": "Branch", "manager_id": manager["id"]}, headers=org["headers"]
        )).json()
        workflow = (await client.post(
            "/api/v1/approval-workflows/templates/branch_office",
            json={"location_id": branch["id"]},
            headers=org["headers"],
        )).json()
        await client.post("/api/v1/approval-workflows/active", json={"workflow_id": workflow["id"]}, headers=org["headers"])

        expense = await submit(client, employee["headers"], category, 80, location_id=branch["id"])
        assert expense["status"] == "pending"
        denied = await client.post(f"/api/v1/expenses/{expense['id']}/approve", json={}, headers=other["headers"])
        assert denied.status_code == 403
        approved = await client.post(f"/api/v1/expenses/{expense['id']}/approve", json={}, headers=manager["headers"])
        assert approved.json()["status"] == "approved"

    async def test_deleted_step_falls_back_to_admins(self, client, org, category, employee):
        manager = await add_member(client, org, "mgr@example.com", "manager")
        workflow = await create_workflow(client, org, "Big", [amount_step(1, min_amount=100)])
        expense = await submit(client, employee["headers"], category, 200)
        await client.delete(f"/api/v1/approval-workflows/{workflow['id']}", headers=org["headers"])

        fetched = await client.get(f"/api/v1/expenses/{expense['id']}", headers=org["headers"])
        assert fetched.json()["workflow_step_id"] is None
        denied = await client.post(f"/api/v1/expenses/{expense['id']}/approve", json={}, headers=manager["headers"])
        assert denied.status_code == 403
        approved = await client.post(f"/api/v1/expenses/{expense['id']}/approve", json={}, headers=org["headers"])
        assert approved.json()["status"] == "approved"
