"""
Tests for sales, expense and inventory reports
"""

from decimal import Decimal

import pytest

from conftest import add_member


@pytest.fixture
async def stocked(client, org, shop, product):
    response = await client.post(
        "/api/v1/stocks/receive",
        json={"product_id": product["id"], "location_id": shop["id"], "quantity": "10", "purchase_price": "40"},
        headers=org["headers"],
    )
    assert response.status_code == 200, response.text


async def sell(client, org, shop, product, quantity, **extra):
    payload = {"location_id": shop["id"], "items": [{"product_id": product["id"], "quantity": str(quantity)}]}
    payload.update(extra)
    response = await client.post("/api/v1/sales/", json=payload, headers=org["headers"])
    assert response.status_code == 200, response.text
    return response.json()


class TestSalesSummary:
    """Tests for the sales summary report"""

    async def test_totals_and_profit(self, client, org, shop, product, stocked):
        await sell(client, org, shop, product, 2, tax_rate="0.10")
        await sell(client, org, shop, product, 1, payment_method="credit_card")
        response = await client.get("/api/v1/reports/sales-summary", headers=org["headers"])
        assert response.status_code == 200
        data = response.json()
        assert data["sale_count"] == 2
        assert Decimal(data["gross_sales"]) == Decimal("300")
        assert Decimal(data["total_tax"]) == Decimal("20")
        assert Decimal(data["net_sales"]) == Decimal("300")
        assert Decimal(data["total_cost"]) == Decimal("120")
        assert Decimal(data["gross_profit"]) == Decimal("180")
        assert Decimal(data["by_payment_method"]["cash"]) == Decimal("220")
        assert Decimal(data["by_payment_method"]["credit_card"]) == Decimal("100")

    async def test_voided_excluded(self, client, org, shop, product, stocked):
        sale = await sell(client, org, shop, product, 2)
        await client.post(f"/api/v1/sales/{sale['id']}/void", headers=org["headers"])
        data = (await client.get("/api/v1/reports/sales-summary", headers=org["headers"])).json()
        assert data["sale_count"] == 0
        assert Decimal(data["gross_profit"]) == Decimal("0")

    async def test_reporter_allowed_cashier_forbidden(self, client, org):
        reporter = await add_member(client, org, "rep@example.com", "reporter")
        cashier = await add_member(client, org, "cash@example.com", "cashier")
        assert (await client.get("/api/v1/reports/sales-summary", headers=reporter["headers"])).status_code == 200
        assert (await client.get("/api/v1/reports/sales-summary", headers=cashier["headers"])).status_code == 403


class TestInventoryValuation:
    """Tests for inventory valuation"""

    async def test_value_after_sale(self, client, org, shop, product, stocked):
        await sell(client, org, shop, product, 4)
        data = (await client.get("/api/v1/reports/inventory-valuation", headers=org["headers"])).json()
        assert Decimal(data["total_quantity"]) == Decimal("6")
        assert Decimal(data["total_value"]) == Decimal("240")
        assert data["products"][0]["sku"] == "COF-001"


class TestExpenseReport:
    """Tests for the expense report"""

    async def test_by_status(self, client, org):
        category = (await client.post(
            "/api/v1/expense-categories/", json={"name": "Utilities"}, headers=org["headers"]
        )).json()
        await client.post(
            "/api/v1/expenses/",
            json={"description": "Power", "amount": "80", "expense_date": "2024-05-01", "category_id": category["id"]},
            headers=org["headers"],
        )
        data = (await client.get("/api/v1/reports/expense-summary", headers=org["headers"])).json()
        assert data["expense_count"] == 1
        assert Decimal(data["by_status"]["approved"]) == Decimal("80")

    async def test_date_filter(self, client, org):
        category = (await client.post(
            "/api/v1/expense-categories/", json={"name": "Utilities"}, headers=org["headers"]
        )).json()
        await client.post(
            "/api/v1/expenses/",
            json={"description": "Power", "amount": "80", "expense_date": "2024-05-01", "category_id": category["id"]},
            headers=org["headers"],
        )
        data = (await client.get(
            "/api/v1/reports/expense-summary", params={"start_date": "2024-06-01"}, headers=org["headers"]
        )).json()
        assert data["expense_count"] == 0
