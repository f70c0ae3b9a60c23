"""
Tests for recurring expense templates and generation
"""

import pytest

from conftest import add_member, create_org


@pytest.fixture
async def category(client, org):
    response = await client.post("/api/v1/expense-categories/", json={"name": "Rent"}, headers=org["headers"])
    return response.json()


async def create_recurring(client, org, category, **overrides):
    payload = {
        "description": "Shop rent",
        "amount": "1200",
        "category_id": category["id"],
        "frequency": "monthly",
        "start_date": "2024-01-31",
    }
    payload.update(overrides)
    response = await client.post("/api/v1/recurring-expenses/", json=payload, headers=org["headers"])
    assert response.status_code == 200, response.text
    return response.json()


async def generate(client, org, today):
    response = await client.post(
        "/api/v1/recurring-expenses/generate", params={"today": today}, headers=org["headers"]
    )
    assert response.status_code == 200, response.text
    return response.json()


class TestRecurringTemplates:
    """Tests for recurring expense CRUD"""

    async def test_create_sets_next_due(self, client, org, category):
        rec = await create_recurring(client, org, category)
        assert rec["next_due_date"] == "2024-01-31"
        assert rec["is_active"] is True

    async def test_end_before_start(self, client, org, category):
        response = await client.post(
            "/api/v1/recurring-expenses/",
            json={
                "description": "Bad",
                "amount": "10",
                "category_id": category["id"],
                "frequency": "weekly",
                "start_date": "2024-03-01",
                "end_date": "2024-02-01",
            },
            headers=org["headers"],
        )
        assert response.status_code == 422

    async def test_update_end_before_start(self, client, org, category):
        rec = await create_recurring(client, org, category)
        response = await client.put(
            f"/api/v1/recurring-expenses/{rec['id']}", json={"end_date": "2023-12-31"}, headers=org["headers"]
        )
        assert response.status_code == 400

    async def test_delete_deactivates(self, client, org, category):
        rec = await create_recurring(client, org, category)
        await client.delete(f"/api/v1/recurring-expenses/{rec['id']}", headers=org["headers"])
        fetched = await client.get(f"/api/v1/recurring-expenses/{rec['id']}", headers=org["headers"])
        assert fetched.json()["is_active"] is False

    async def test_employee_forbidden(self, client, org, category):
        employee = await add_member(client, org, "emp@example.com", "employee")
        response = await client.post(
            "/api/v1/recurring-expenses/",
            json={
                "description": "Rent",
                "amount": "10",
                "category_id": category["id"],
                "frequency": "weekly",
                "start_date": "2024-03-01",
            },
            headers=employee["headers"],
        )
        assert response.status_code == 403


class TestGeneration:
    """Tests for generating due expenses"""

    async def test_catch_up_keeps_month_end(self, client, org, category):
        """Missed periods are generated and month end dates do not drift"""
        rec = await create_recurring(client, org, category)
        result = await generate(client, org, "2024-04-15")
        assert result["generated"] == 3

        expenses = (await client.get("/api/v1/expenses/", headers=org["headers"])).json()["data"]
        assert sorted(e["expense_date"] for e in expenses) == ["2024-01-31", "2024-02-29", "2024-03-31"]
        assert all(e["recurring_expense_id"] == rec["id"] for e in expenses)
        assert all(e["tags"] == ["recurring"] for e in expenses)

        fetched = (await client.get(f"/api/v1/recurring-expenses/{rec['id']}", headers=org["headers"])).json()
        assert fetched["next_due_date"] == "2024-04-30"
        assert fetched["last_generated_date"] == "2024-03-31"

    async def test_generation_is_idempotent(self, client, org, category):
        await create_recurring(client, org, category)
        await generate(client, org, "2024-02-01")
        again = await generate(client, org, "2024-02-01")
        assert again["generated"] == 0

    async def test_not_yet_due(self, client, org, category):
        await create_recurring(client, org, category)
        result = await generate(client, org, "2024-01-30")
        assert result["generated"] == 0

    async def test_deactivates_after_end_date(self, client, org, category):
        rec = await create_recurring(
            client, org, category, frequency="weekly", start_date="2024-01-01", end_date="2024-01-10"
        )
        result = await generate(client, org, "2024-02-01")
        assert result["generated"] == 2
        assert result["deactivated"] == 1
        fetched = (await client.get(f"/api/v1/recurring-expenses/{rec['id']}", headers=org["headers"])).json()
        assert fetched["is_active"] is False

    async def test_generated_expenses_follow_approval_rules(self, client, org, category):
        await client.put(
            "/api/v1/organizations/current/settings",
            json={"expense_approval_required": True, "expense_approval_threshold": "500"},
            headers=org["headers"],
        )
        await create_recurring(client, org, category)
        await generate(client, org, "2024-01-31")
        expenses = (await client.get("/api/v1/expenses/", headers=org["headers"])).json()["data"]
        assert [e["status"] for e in expenses] == ["pending"]

    async def test_scoped_to_organization(self, client, org, category):
        await create_recurring(client, org, category)
        other = await create_org(client, name="Other Shop", email="other@example.com")
        result = await generate(client, other, "2024-04-15")
        assert result["generated"] == 0
