"""
Tests for suppliers and purchase orders
"""

from decimal import Decimal

import pytest


@pytest.fixture
async def supplier(client, org):
    response = await client.post(
        "/api/v1/suppliers/",
        json={"name": "Highland Roasters", "email": "sales@example.com"},
        headers=org["headers"],
    )
    assert response.status_code == 200, response.text
    return response.json()


@pytest.fixture
async def purchase(client, org, supplier, shop, product):
    response = await client.post(
        "/api/v1/purchases/",
        json={
            "supplier_id": supplier["id"],
            "location_id": shop["id"],
            "items": [{"product_id": product["id"], "quantity": "10", "unit_cost": "45.50"}],
        },
        headers=org["headers"],
    )
    assert response.status_code == 200, response.text
    return response.json()


class TestSuppliers:
    """Tests for supplier endpoints"""

    async def test_duplicate_name(self, client, org, supplier):
        response = await client.post(
            "/api/v1/suppliers/", json={"name": "Highland Roasters"}, headers=org["headers"]
        )
        assert response.status_code == 409

    async def test_search(self, client, org, supplier):
        response = await client.get("/api/v1/suppliers/", params={"search": "highland"}, headers=org["headers"])
        assert response.json()["total"] == 1

    async def test_delete_unused(self, client, org, supplier):
        response = await client.delete(f"/api/v1/suppliers/{supplier['id']}", headers=org["headers"])
        assert response.status_code == 200

    async def test_delete_with_purchases(self, client, org, supplier, purchase):
        response = await client.delete(f"/api/v1/suppliers/{supplier['id']}", headers=org["headers"])
        assert response.status_code == 400

    async def test_delete_referenced_by_expense(self, client, org, supplier):
        category = await client.post("/api/v1/expense-categories/", json={"name": "Stock"}, headers=org["headers"])
        response = await client.post(
            "/api/v1/expenses/",
            json={
                "description": "Sample beans",
                "amount": "30",
                "expense_date": "2024-05-10",
                "category_id": category.json()["id"],
                "supplier_id": supplier["id"],
            },
            headers=org["headers"],
        )
        assert response.status_code == 200, response.text

        response = await client.delete(f"/api/v1/suppliers/{supplier['id']}", headers=org["headers"])
        assert response.status_code == 400
        response = await client.get(f"/api/v1/suppliers/{supplier['id']}", headers=org["headers"])
        assert response.status_code == 200

    async def test_delete_referenced_by_recurring_expense(self, client, org, supplier):
        category = await client.post("/api/v1/expense-categories/", json={"name": "Stock"}, headers=org["headers"])
        response = await client.post(
            "/api/v1/recurring-expenses/",
            json={
                "description": "Weekly beans",
                "amount": "80",
                "category_id": category.json()["id"],
                "supplier_id": supplier["id"],
                "frequency": "weekly",
                "start_date": "2024-05-06",
            },
            headers=org["headers"],
        )
        assert response.status_code == 200, response.text

        response = await client.delete(f"/api/v1/suppliers/{supplier['id']}", headers=org["headers"])
        assert response.status_code == 400

    async def test_inactive_supplier_cannot_order(self, client, org, supplier, shop, product):
        await client.put(f"/api/v1/suppliers/{supplier['id']}", json={"is_active": False}, headers=org["headers"])
        response = await client.post(
            "/api/v1/purchases/",
            json={
                "supplier_id": supplier["id"],
                "location_id": shop["id"],
                "items": [{"product_id": product["id"], "quantity": "1", "unit_cost": "1"}],
            },
            headers=org["headers"],
        )
        assert response.status_code == 400


class TestPurchaseOrders:
    """Tests for purchase order lifecycle"""

    async def test_create(self, purchase):
        assert purchase["status"] == "ordered"
        assert purchase["purchase_number"].startswith("PO")
        assert Decimal(purchase["total_amount"]) == Decimal("455")
        assert Decimal(purchase["items"][0]["outstanding_quantity"]) == Decimal("10")

    async def test_partial_then_full_receipt(self, client, org, purchase, shop, product):
        item_id = purchase["items"][0]["id"]
        partial = await client.post(
            f"/api/v1/purchases/{purchase['id']}/receive",
            json={"items": [{"item_id": item_id, "quantity": "4"}]},
            headers=org["headers"],
        )
        assert partial.status_code == 200
        assert partial.json()["status"] == "partially_received"

        full = await client.post(
            f"/api/v1/purchases/{purchase['id']}/receive",
            json={"items": [{"item_id": item_id, "quantity": "6"}]},
            headers=org["headers"],
        )
        assert full.status_code == 200
        assert full.json()["status"] == "received"
        assert full.json()["received_date"] is not None

        batches = await client.get(
            "/api/v1/batches/", params={"product_id": product["id"]}, headers=org["headers"]
        )
        data = batches.json()["data"]
        assert len(data) == 2
        assert all(Decimal(b["purchase_price"]) == Decimal("45.50") for b in data)
        assert all(b["purchase_item_id"] == item_id for b in data)

        movements = await client.get(
            "/api/v1/stocks/movements",
            params={"reference_type": "purchase", "reference_id": purchase["id"]},
            headers=org["headers"],
        )
        assert movements.json()["total"] == 2

    async def test_over_receipt(self, client, org, purchase):
        item_id = purchase["items"][0]["id"]
        response = await client.post(
            f"/api/v1/purchases/{purchase['id']}/receive",
            json={"items": [{"item_id": item_id, "quantity": "11"}]},
            headers=org["headers"],
        )
        assert response.status_code == 400

    async def test_unknown_item(self, client, org, purchase):
        response = await client.post(
            f"/api/v1/purchases/{purchase['id']}/receive",
            json={"items": [{"item_id": 999, "quantity": "1"}]},
            headers=org["headers"],
        )
        assert response.status_code == 400

    async def test_cancel(self, client, org, purchase):
        response = await client.post(f"/api/v1/purchases/{purchase['id']}/cancel", headers=org["headers"])
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        again = await client.post(
            f"/api/v1/purchases/{purchase['id']}/receive",
            json={"items": [{"item_id": purchase["items"][0]["id"], "quantity": "1"}]},
            headers=org["headers"],
        )
        assert again.status_code == 400

    async def test_cannot_cancel_after_receipt(self, client, org, purchase):
        await client.post(
            f"/api/v1/purchases/{purchase['id']}/receive",
            json={"items": [{"item_id": purchase["items"][0]["id"], "quantity": "2"}]},
            headers=org["headers"],
        )
        response = await client.post(f"/api/v1/purchases/{purchase['id']}/cancel", headers=org["headers"])
        assert response.status_code == 400

    async def test_filter_by_status(self, client, org, purchase):
        response = await client.get("/api/v1/purchases/", params={"status": "ordered"}, headers=org["headers"])
        assert response.json()["total"] == 1
        response = await client.get("/api/v1/purchases/", params={"status": "received"}, headers=org["headers"])
        assert response.json()["total"] == 0


class TestDraftPurchases:
    """Tests for draft purchase orders"""

    @pytest.fixture
    async def draft(self, client, org, supplier, shop, product):
        response = await client.post(
            "/api/v1/purchases/",
            json={
                "supplier_id": supplier["id"],
                "location_id": shop["id"],
                "as_draft": True,
                "items": [{"product_id": product["id"], "quantity": "5", "unit_cost": "20"}],
            },
            headers=org["headers"],
        )
        assert response.status_code == 200, response.text
        return response.json()

    async def test_draft_cannot_be_received(self, client, org, draft):
        assert draft["status"] == "draft"
        response = await client.post(
            f"/api/v1/purchases/{draft['id']}/receive",
            json={"items": [{"item_id": draft["items"][0]["id"], "quantity": "1"}]},
            headers=org["headers"],
        )
        assert response.status_code == 400

    async def test_submit_then_receive(self, client, org, draft):
        response = await client.post(f"/api/v1/purchases/{draft['id']}/submit", headers=org["headers"])
        assert response.status_code == 200
        assert response.json()["status"] == "ordered"

        again = await client.post(f"/api/v1/purchases/{draft['id']}/submit", headers=org["headers"])
        assert again.status_code == 400

        received = await client.post(
            f"/api/v1/purchases/{draft['id']}/receive",
            json={"items": [{"item_id": draft["items"][0]["id"], "quantity": "5"}]},
            headers=org["headers"],
        )
        assert received.json()["status"] == "received"

    async def test_cancel_draft(self, client, org, draft):
        response = await client.post(f"/api/v1/purchases/{draft['id']}/cancel", headers=org["headers"])
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
