"""
Tests for notifications and audit logs
"""

from conftest import add_member


async def low_stock_alert(client, org, shop, product):
    """Receive and shrink stock so the owner gets one low stock notification"""
    batch = (await client.post(
        "/api/v1/stocks/receive",
        json={"product_id": product["id"], "location_id": shop["id"], "quantity": "5"},
        headers=org["headers"],
    )).json()
    await client.post(
        "/api/v1/stocks/adjust",
        json={"batch_id": batch["id"], "new_quantity": "1", "reason": "shrinkage"},
        headers=org["headers"],
    )


class TestNotifications:
    """Tests for the notification inbox"""

    async def test_mark_read(self, client, org, shop, product):
        await low_stock_alert(client, org, shop, product)
        inbox = (await client.get("/api/v1/notifications/", headers=org["headers"])).json()
        assert inbox["unread"] == 1
        notification_id = inbox["data"][0]["id"]

        response = await client.post(f"/api/v1/notifications/{notification_id}/read", headers=org["headers"])
        assert response.json()["read"] is True
        count = await client.get("/api/v1/notifications/unread-count", headers=org["headers"])
        assert count.json()["unread"] == 0

    async def test_read_all(self, client, org, shop, product):
        await low_stock_alert(client, org, shop, product)
        response = await client.post("/api/v1/notifications/read-all", headers=org["headers"])
        assert response.json()["updated"] == 1
        unread = await client.get("/api/v1/notifications/", params={"unread_only": True}, headers=org["headers"])
        assert unread.json()["total"] == 0

    async def test_cannot_touch_others(self, client, org, shop, product):
        await low_stock_alert(client, org, shop, product)
        notification_id = (await client.get("/api/v1/notifications/", headers=org["headers"])).json()["data"][0]["id"]
        clerk = await add_member(client, org, "clerk@example.com", "employee")
        response = await client.delete(f"/api/v1/notifications/{notification_id}", headers=clerk["headers"])
        assert response.status_code == 404

    async def test_delete(self, client, org, shop, product):
        await low_stock_alert(client, org, shop, product)
        notification_id = (await client.get("/api/v1/notifications/", headers=org["headers"])).json()["data"][0]["id"]
        response = await client.delete(f"/api/v1/notifications/{notification_id}", headers=org["headers"])
        assert response.status_code == 200
        assert (await client.get("/api/v1/notifications/", headers=org["headers"])).json()["total"] == 0


class TestAuditLogs:
    """Tests for the audit trail"""

    async def test_actions_recorded(self, client, org, product):
        response = await client.get(
            "/api/v1/audit-logs/", params={"resource_type": "product"}, headers=org["headers"]
        )
        assert response.status_code == 200
        logs = response.json()["data"]
        assert len(logs) == 1
        assert logs[0]["action"] == "create"
        assert logs[0]["resource_id"] == product["id"]

    async def test_organization_creation_logged(self, client, org):
        response = await client.get(
            "/api/v1/audit-logs/", params={"resource_type": "organization"}, headers=org["headers"]
        )
        assert response.json()["total"] == 1

    async def test_employee_forbidden(self, client, org):
        employee = await add_member(client, org, "emp@example.com", "employee")
        response = await client.get("/api/v1/audit-logs/", headers=employee["headers"])
        assert response.status_code == 403
