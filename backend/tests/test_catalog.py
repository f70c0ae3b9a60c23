"""
Tests for categories, products, variants and locations
"""

from conftest import add_member, create_org


class TestCategories:
    """Tests for product categories"""

    async def test_create_and_nest(self, client, org):
        parent = await client.post("/api/v1/categories/", json={"name": "Drinks"}, headers=org["headers"])
        assert parent.status_code == 200
        child = await client.post(
            "/api/v1/categories/",
            json={"name": "Coffee", "parent_id": parent.json()["id"]},
            headers=org["headers"],
        )
        assert child.status_code == 200
        assert child.json()["parent_name"] == "Drinks"

    async def test_duplicate_name(self, client, org):
        await client.post("/api/v1/categories/", json={"name": "Drinks"}, headers=org["headers"])
        response = await client.post("/api/v1/categories/", json={"name": "Drinks"}, headers=org["headers"])
        assert response.status_code == 409

    async def test_delete_with_products(self, client, org):
        cat = (await client.post("/api/v1/categories/", json={"name": "Snacks"}, headers=org["headers"])).json()
        await client.post(
            "/api/v1/products/",
            json={"name": "Chips", "sku": "CH-1", "category_id": cat["id"]},
            headers=org["headers"],
        )
        response = await client.delete(f"/api/v1/categories/{cat['id']}", headers=org["headers"])
        assert response.status_code == 400

    async def test_delete_empty(self, client, org):
        cat = (await client.post("/api/v1/categories/", json={"name": "Misc"}, headers=org["headers"])).json()
        response = await client.delete(f"/api/v1/categories/{cat['id']}", headers=org["headers"])
        assert response.status_code == 200

    async def test_cashier_cannot_create(self, client, org):
        cashier = await add_member(client, org, "cash@example.com", "cashier")
        response = await client.post("/api/v1/categories/", json={"name": "X"}, headers=cashier["headers"])
        assert response.status_code == 403


class TestProducts:
    """Tests for products and variants"""

    async def test_create_with_variants(self, client, org):
        response = await client.post(
            "/api/v1/products/",
            json={
                "name": "T-Shirt",
                "sku": "TS",
                "base_price": "20.00",
                "variants": [
                    {"name": "Small", "sku": "TS-S"},
                    {"name": "XL", "sku": "TS-XL", "price_modifier": "2.50"},
                ],
            },
            headers=org["headers"],
        )
        assert response.status_code == 200
        prices = {v["sku"]: v["unit_price"] for v in response.json()["variants"]}
        assert float(prices["TS-S"]) == 20.0
        assert float(prices["TS-XL"]) == 22.5

    async def test_duplicate_sku(self, client, org, product):
        response = await client.post(
            "/api/v1/products/", json={"name": "Other", "sku": "COF-001"}, headers=org["headers"]
        )
        assert response.status_code == 409

    async def test_sku_scoped_to_organization(self, client, org, product):
        other = await create_org(client, name="Other Shop", email="other@example.com")
        response = await client.post(
            "/api/v1/products/", json={"name": "Beans", "sku": "COF-001"}, headers=other["headers"]
        )
        assert response.status_code == 200

    async def test_other_org_cannot_read(self, client, org, product):
        other = await create_org(client, name="Other Shop", email="other@example.com")
        response = await client.get(f"/api/v1/products/{product['id']}", headers=other["headers"])
        assert response.status_code == 404

    async def test_deactivate(self, client, org, product):
        response = await client.delete(f"/api/v1/products/{product['id']}", headers=org["headers"])
        assert response.status_code == 200
        fetched = await client.get(f"/api/v1/products/{product['id']}", headers=org["headers"])
        assert fetched.json()["is_active"] is False

    async def test_add_variant(self, client, org, product):
        response = await client.post(
            f"/api/v1/products/{product['id']}/variants",
            json={"name": "1kg", "sku": "COF-001-1KG", "price_modifier": "80"},
            headers=org["headers"],
        )
        assert response.status_code == 200
        assert float(response.json()["unit_price"]) == 180.0


class TestLocations:
    """Tests for inventory locations"""

    async def test_single_default(self, client, org, shop):
        """Creating a new default clears the previous one"""
        response = await client.post(
            "/api/v1/locations/",
            json={"name": "Warehouse", "location_type": "warehouse", "is_default": True},
            headers=org["headers"],
        )
        assert response.status_code == 200
        locations = (await client.get("/api/v1/locations/", headers=org["headers"])).json()
        defaults = [loc["name"] for loc in locations if loc["is_default"]]
        assert defaults == ["Warehouse"]

    async def test_duplicate_name(self, client, org, shop):
        response = await client.post("/api/v1/locations/", json={"name": "Main Shop"}, headers=org["headers"])
        assert response.status_code == 409

    async def test_manager_must_be_member(self, client, org):
        response = await client.post(
            "/api/v1/locations/", json={"name": "Branch", "manager_id": 999}, headers=org["headers"]
        )
        assert response.status_code == 400

    async def test_manager_name(self, client, org):
        mgr = await add_member(client, org, "mgr@example.com", "manager", name="Mia")
        response = await client.post(
            "/api/v1/locations/", json={"name": "Branch", "manager_id": mgr["id"]}, headers=org["headers"]
        )
        assert response.status_code == 200
        assert response.json()["manager_name"] == "Mia"

    async def test_deactivate(self, client, org, shop):
        response = await client.delete(f"/api/v1/locations/{shop['id']}", headers=org["headers"])
        assert response.status_code == 200
        fetched = (await client.get(f"/api/v1/locations/{shop['id']}", headers=org["headers"])).json()
        assert fetched["is_active"] is False
        assert fetched["is_default"] is False

    async def test_deactivate_with_stock(self, client, org, shop, product):
        received = await client.post(
            "/api/v1/stocks/receive",
            json={"product_id": product["id"], "location_id": shop["id"], "quantity": "3", "purchase_price": "40"},
            headers=org["headers"],
        )
        assert received.status_code == 200, received.text
        response = await client.delete(f"/api/v1/locations/{shop['id']}", headers=org["headers"])
        assert response.status_code == 400
