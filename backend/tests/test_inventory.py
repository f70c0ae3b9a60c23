"""
Tests for stock receipt, adjustment, transfer and low stock alerts
"""

from decimal import Decimal

import pytest

from conftest import add_member


async def receive(client, org, product_id, location_id, quantity, price="40", expiry=None):
    payload = {
        "product_id": product_id,
        "location_id": location_id,
        "quantity": str(quantity),
        "purchase_price": price,
    }
    if expiry:
        payload["expiry_date"] = expiry
    response = await client.post("/api/v1/stocks/receive", json=payload, headers=org["headers"])
    assert response.status_code == 200, response.text
    return response.json()


async def stock_level(client, org, product_id, location_id):
    response = await client.get(
        "/api/v1/stocks/",
        params={"product_id": product_id, "location_id": location_id},
        headers=org["headers"],
    )
    assert response.status_code == 200
    rows = response.json()["data"]
    return Decimal(rows[0]["current_stock"]) if rows else Decimal("0")


@pytest.fixture
async def warehouse(client, org):
    response = await client.post(
        "/api/v1/locations/",
        json={"name": "Warehouse", "location_type": "warehouse"},
        headers=org["headers"],
    )
    assert response.status_code == 200
    return response.json()


class TestReceive:
    """Tests for direct stock receipt"""

    async def test_creates_batch_and_aggregate(self, client, org, shop, product):
        batch = await receive(client, org, product["id"], shop["id"], 10)
        assert batch["batch_number"].startswith("B")
        assert Decimal(batch["current_quantity"]) == Decimal("10")
        assert Decimal(batch["stock_value"]) == Decimal("400")
        assert await stock_level(client, org, product["id"], shop["id"]) == Decimal("10")

    async def test_records_initial_stock_movement(self, client, org, shop, product):
        batch = await receive(client, org, product["id"], shop["id"], 5)
        response = await client.get(
            "/api/v1/stocks/movements", params={"product_id": product["id"]}, headers=org["headers"]
        )
        movements = response.json()["data"]
        assert len(movements) == 1
        assert movements[0]["movement_type"] == "initial_stock"
        assert movements[0]["stock_batch_id"] == batch["id"]

    async def test_batch_numbers_increment(self, client, org, shop, product):
        first = await receive(client, org, product["id"], shop["id"], 1)
        second = await receive(client, org, product["id"], shop["id"], 1)
        assert first["batch_number"] != second["batch_number"]
        assert second["batch_number"].endswith("-002")

    async def test_unknown_product(self, client, org, shop):
        response = await client.post(
            "/api/v1/stocks/receive",
            json={"product_id": 999, "location_id": shop["id"], "quantity": "1"},
            headers=org["headers"],
        )
        assert response.status_code == 400

    async def test_cashier_forbidden(self, client, org, shop, product):
        cashier = await add_member(client, org, "cash@example.com", "cashier")
        response = await client.post(
            "/api/v1/stocks/receive",
            json={"product_id": product["id"], "location_id": shop["id"], "quantity": "1"},
            headers=cashier["headers"],
        )
        assert response.status_code == 403


class TestAdjust:
    """Tests for batch count adjustments"""

    async def test_adjust_down(self, client, org, shop, product):
        batch = await receive(client, org, product["id"], shop["id"], 10)
        response = await client.post(
            "/api/v1/stocks/adjust",
            json={"batch_id": batch["id"], "new_quantity": "7", "reason": "broken bags"},
            headers=org["headers"],
        )
        assert response.status_code == 200
        assert Decimal(response.json()["current_quantity"]) == Decimal("7")
        assert await stock_level(client, org, product["id"], shop["id"]) == Decimal("7")

        movements = (await client.get(
            "/api/v1/stocks/movements",
            params={"movement_type": "adjustment_out"},
            headers=org["headers"],
        )).json()["data"]
        assert [Decimal(m["quantity"]) for m in movements] == [Decimal("-3")]

    async def test_adjust_up(self, client, org, shop, product):
        batch = await receive(client, org, product["id"], shop["id"], 10)
        response = await client.post(
            "/api/v1/stocks/adjust",
            json={"batch_id": batch["id"], "new_quantity": "12", "reason": "found stock"},
            headers=org["headers"],
        )
        assert response.status_code == 200
        assert await stock_level(client, org, product["id"], shop["id"]) == Decimal("12")

    async def test_unchanged_quantity(self, client, org, shop, product):
        batch = await receive(client, org, product["id"], shop["id"], 10)
        response = await client.post(
            "/api/v1/stocks/adjust",
            json={"batch_id": batch["id"], "new_quantity": "10", "reason": "recount"},
            headers=org["headers"],
        )
        assert response.status_code == 400


class TestTransfer:
    """Tests for transfers between locations"""

    async def test_transfer_moves_quantity(self, client, org, shop, warehouse, product):
        await receive(client, org, product["id"], shop["id"], 10, price="35")
        response = await client.post(
            "/api/v1/stocks/transfer",
            json={
                "product_id": product["id"],
                "from_location_id": shop["id"],
                "to_location_id": warehouse["id"],
                "quantity": "4",
            },
            headers=org["headers"],
        )
        assert response.status_code == 200, response.text
        new_batches = response.json()
        assert len(new_batches) == 1
        assert new_batches[0]["location_id"] == warehouse["id"]
        assert Decimal(new_batches[0]["purchase_price"]) == Decimal("35")
        assert await stock_level(client, org, product["id"], shop["id"]) == Decimal("6")
        assert await stock_level(client, org, product["id"], warehouse["id"]) == Decimal("4")

    async def test_transfer_follows_fefo(self, client, org, shop, warehouse, product):
        """The batch expiring first is moved first and keeps its expiry date"""
        await receive(client, org, product["id"], shop["id"], 5, expiry="2030-06-01T00:00:00")
        await receive(client, org, product["id"], shop["id"], 5, expiry="2030-01-01T00:00:00")
        response = await client.post(
            "/api/v1/stocks/transfer",
            json={
                "product_id": product["id"],
                "from_location_id": shop["id"],
                "to_location_id": warehouse["id"],
                "quantity": "3",
            },
            headers=org["headers"],
        )
        assert response.status_code == 200
        assert response.json()[0]["expiry_date"].startswith("2030-01-01")

    async def test_transfer_spanning_batches(self, client, org, shop, warehouse, product):
        await receive(client, org, product["id"], shop["id"], 2)
        await receive(client, org, product["id"], shop["id"], 2)
        response = await client.post(
            "/api/v1/stocks/transfer",
            json={
                "product_id": product["id"],
                "from_location_id": shop["id"],
                "to_location_id": warehouse["id"],
                "quantity": "3",
            },
            headers=org["headers"],
        )
        assert response.status_code == 200
        assert sum(Decimal(b["current_quantity"]) for b in response.json()) == Decimal("3")

    async def test_insufficient_stock(self, client, org, shop, warehouse, product):
        await receive(client, org, product["id"], shop["id"], 2)
        response = await client.post(
            "/api/v1/stocks/transfer",
            json={
                "product_id": product["id"],
                "from_location_id": shop["id"],
                "to_location_id": warehouse["id"],
                "quantity": "5",
            },
            headers=org["headers"],
        )
        assert response.status_code == 400
        assert await stock_level(client, org, product["id"], shop["id"]) == Decimal("2")

    async def test_same_location(self, client, org, shop, product):
        response = await client.post(
            "/api/v1/stocks/transfer",
            json={
                "product_id": product["id"],
                "from_location_id": shop["id"],
                "to_location_id": shop["id"],
                "quantity": "1",
            },
            headers=org["headers"],
        )
        assert response.status_code == 400


class TestLowStock:
    """Tests for low stock notifications"""

    async def test_crossing_reorder_point_notifies_owner(self, client, org, shop, product):
        batch = await receive(client, org, product["id"], shop["id"], 5)
        await client.post(
            "/api/v1/stocks/adjust",
            json={"batch_id": batch["id"], "new_quantity": "2", "reason": "shrinkage"},
            headers=org["headers"],
        )
        response = await client.get(
            "/api/v1/notifications/", params={"notification_type": "low_stock"}, headers=org["headers"]
        )
        assert response.json()["total"] == 1

        low = await client.get("/api/v1/stocks/", params={"low_stock_only": True}, headers=org["headers"])
        assert low.json()["total"] == 1

    async def test_location_manager_notified(self, client, org, product):
        manager = await add_member(client, org, "mgr@example.com", "manager")
        branch = (await client.post(
            "/api/v1/locations/",
            json={"name": "Branch", "manager_id": manager["id"]},
            headers=org["headers"],
        )).json()
        batch = await receive(client, org, product["id"], branch["id"], 3)
        await client.post(
            "/api/v1/stocks/adjust",
            json={"batch_id": batch["id"], "new_quantity": "1", "reason": "shrinkage"},
            headers=org["headers"],
        )
        mine = await client.get("/api/v1/notifications/", headers=manager["headers"])
        assert mine.json()["total"] == 1
        owners = await client.get("/api/v1/notifications/", headers=org["headers"])
        assert owners.json()["total"] == 0

    async def test_no_alert_while_above_point(self, client, org, shop, product):
        batch = await receive(client, org, product["id"], shop["id"], 10)
        await client.post(
            "/api/v1/stocks/adjust",
            json={"batch_id": batch["id"], "new_quantity": "5", "reason": "shrinkage"},
            headers=org["headers"],
        )
        response = await client.get("/api/v1/notifications/", headers=org["headers"])
        assert response.json()["total"] == 0
