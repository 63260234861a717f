"""
Customers, suppliers, products, orders and shipments through the HTTP API.
"""

import pytest
from httpx import AsyncClient


async def _create(client: AsyncClient, headers: dict, path: str, payload: dict) -> dict:
    response = await client.post(path, json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_customer_crud_and_search(client: AsyncClient, auth_headers):
    acme = await _create(client, auth_headers, "/api/customers", {"name": "Acme", "company": "Acme Holding"})
    await _create(client, auth_headers, "/api/customers", {"name": "Beta Plastics"})

    page = (await client.get("/api/customers", params={"search": "holding"}, headers=auth_headers)).json()
    assert page["total"] == 1
    assert page["data"][0]["id"] == acme["id"]
    assert page["totalPages"] == 1

    updated = await client.put(
        f"/api/customers/{acme['id']}",
        json={"name": "Acme BV", "email": "ops@acme.example"},
        headers=auth_headers,
    )
    assert updated.status_code == 200
    assert updated.json()["name"] == "Acme BV"

    deleted = await client.delete(f"/api/customers/{acme['id']}", headers=auth_headers)
    assert deleted.json() == {"message": "Customer deleted"}

    missing = await client.get(f"/api/customers/{acme['id']}", headers=auth_headers)
    assert missing.status_code == 404
    assert missing.json() == {"error": {"code": "NOT_FOUND", "message": "Customer not found"}}


@pytest.mark.asyncio
async def test_pagination_bounds(client: AsyncClient, auth_headers):
    for i in range(3):
        await _create(client, auth_headers, "/api/customers", {"name": f"C{i}"})

    page = (await client.get("/api/customers", params={"page": 2, "limit": 2}, headers=auth_headers)).json()
    assert page["total"] == 3
    assert page["totalPages"] == 2
    assert len(page["data"]) == 1

    too_big = await client.get("/api/customers", params={"limit": 101}, headers=auth_headers)
    assert too_big.status_code == 422
    assert too_big.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_supplier_category_filter(client: AsyncClient, auth_headers):
    await _create(client, auth_headers, "/api/suppliers", {"name": "Ship Co", "category": "shipping"})
    await _create(client, auth_headers, "/api/suppliers", {"name": "Blend Co", "category": "blenders"})

    page = (await client.get("/api/suppliers", params={"category": "blenders"}, headers=auth_headers)).json()
    assert [s["name"] for s in page["data"]] == ["Blend Co"]

    bad = await client.post("/api/suppliers", json={"name": "X", "category": "magic"}, headers=auth_headers)
    assert bad.status_code == 422


@pytest.mark.asyncio
async def test_product_sku_conflict(client: AsyncClient, auth_headers):
    first = await _create(client, auth_headers, "/api/products", {"name": "rPET", "sku": "RPET-1"})
    dup = await client.post("/api/products", json={"name": "Other", "sku": "RPET-1"}, headers=auth_headers)
    assert dup.status_code == 409
    assert dup.json()["error"]["message"] == "A product with this SKU already exists"

    other = await _create(client, auth_headers, "/api/products", {"name": "rPP", "sku": "RPP-1"})
    clash = await client.put(f"/api/products/{other['id']}", json={"sku": "RPET-1"}, headers=auth_headers)
    assert clash.status_code == 409

    same = await client.put(f"/api/products/{first['id']}", json={"sku": "RPET-1"}, headers=auth_headers)
    assert same.status_code == 200


@pytest.mark.asyncio
async def test_order_lifecycle(client: AsyncClient, auth_headers):
    customer = await _create(client, auth_headers, "/api/customers", {"name": "Acme"})
    product = await _create(client, auth_headers, "/api/products", {"name": "rPET", "sku": "RPET-1"})

    order = await _create(
        client,
        auth_headers,
        "/api/orders",
        {
            "order_number": "SO-001",
            "type": "customer",
            "customer_id": customer["id"],
            "items": [
                {"description": "rPET flakes", "product_id": product["id"], "quantity": 20, "unit_price": 600},
                {"description": "Bags", "quantity": 2, "unit_price": 25.5},
            ],
        },
    )
    assert order["total_amount"] == pytest.approx(12051.0)
    assert order["customer_name"] == "Acme"
    assert order["status"] == "order_placed"

    dup = await client.post(
        "/api/orders",
        json={"order_number": "SO-001", "type": "customer", "customer_id": customer["id"]},
        headers=auth_headers,
    )
    assert dup.status_code == 409

    changed = await client.patch(
        f"/api/orders/{order['id']}/status",
        json={"status": "confirmed", "notes": "deposit received"},
        headers=auth_headers,
    )
    assert changed.json()["status"] == "confirmed"
    # same status again records nothing
    await client.patch(f"/api/orders/{order['id']}/status", json={"status": "confirmed"}, headers=auth_headers)

    detail = (await client.get(f"/api/orders/{order['id']}", headers=auth_headers)).json()
    assert [i["total"] for i in detail["items"]] == [12000.0, 51.0]
    history = detail["status_history"]
    assert [(h["old_status"], h["new_status"]) for h in history] == [
        ("order_placed", "confirmed"),
        (None, "order_placed"),
    ]
    assert history[0]["notes"] == "deposit received"
    assert history[0]["changed_by_name"] == "Administrator"

    replaced = await client.put(
        f"/api/orders/{order['id']}",
        json={"items": [{"description": "Spot lot", "quantity": 1, "unit_price": 100}]},
        headers=auth_headers,
    )
    assert replaced.json()["total_amount"] == 100

    listed = (await client.get(f"/api/customers/{customer['id']}/orders", headers=auth_headers)).json()
    assert [o["order_number"] for o in listed] == ["SO-001"]


@pytest.mark.asyncio
async def test_order_party_validation(client: AsyncClient, auth_headers):
    no_party = await client.post(
        "/api/orders", json={"order_number": "SO-2", "type": "customer"}, headers=auth_headers
    )
    assert no_party.status_code == 422

    unknown = await client.post(
        "/api/orders",
        json={"order_number": "SO-3", "type": "supplier", "supplier_id": 999},
        headers=auth_headers,
    )
    assert unknown.status_code == 400


@pytest.mark.asyncio
async def test_scan_not_configured(client: AsyncClient, auth_headers):
    response = await client.post(
        "/api/orders/scan",
        files={"file": ("po.png", b"\x89PNG", "image/png")},
        headers=auth_headers,
    )
    assert response.status_code == 501
    assert response.json()["error"]["code"] == "NOT_IMPLEMENTED"


@pytest.mark.asyncio
async def test_shipment_history_and_names(client: AsyncClient, auth_headers):
    supplier = await _create(client, auth_headers, "/api/suppliers", {"name": "Ship Co", "category": "shipping"})
    shipment = await _create(
        client,
        auth_headers,
        "/api/shipments",
        {"type": "supplier", "supplier_id": supplier["id"], "tracking_number": "TRK-1", "carrier": "DHL"},
    )
    assert shipment["supplier_name"] == "Ship Co"
    assert shipment["status"] == "pending"

    await client.patch(
        f"/api/shipments/{shipment['id']}/status", json={"status": "in_transit"}, headers=auth_headers
    )
    detail = (await client.get(f"/api/shipments/{shipment['id']}", headers=auth_headers)).json()
    assert detail["status"] == "in_transit"
    assert [h["new_status"] for h in detail["status_history"]] == ["in_transit", "pending"]

    found = (await client.get("/api/shipments", params={"search": "dhl"}, headers=auth_headers)).json()
    assert found["total"] == 1

    listed = (await client.get(f"/api/suppliers/{supplier['id']}/shipments", headers=auth_headers)).json()
    assert len(listed) == 1
