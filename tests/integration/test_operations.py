"""
Production batches, inventory and warehouse stock through the HTTP API.
"""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_production_batch_lifecycle(client: AsyncClient, auth_headers):
    customer = (await client.post("/api/customers", json={"name": "Acme"}, headers=auth_headers)).json()
    toller = (
        await client.post("/api/suppliers", json={"name": "Blendworks", "category": "blenders"}, headers=auth_headers)
    ).json()

    created = await client.post(
        "/api/production",
        json={
            "lot_number": "LOT-2024-01",
            "product_name": "Compound A",
            "customer_id": customer["id"],
            "toller_supplier_id": toller["id"],
            "quantity": 500,
        },
        headers=auth_headers,
    )
    assert created.status_code == 201, created.text
    batch = created.json()
    assert batch["status"] == "new_order"
    assert batch["customer_name"] == "Acme"
    assert batch["toller_name"] == "Blendworks"
    assert batch["unit"] == "kg"

    dup = await client.post(
        "/api/production",
        json={"lot_number": "LOT-2024-01", "product_name": "Other"},
        headers=auth_headers,
    )
    assert dup.status_code == 409
    assert dup.json()["error"]["message"] == "Lot number already exists"

    await client.patch(
        f"/api/production/{batch['id']}/status", json={"status": "in_production"}, headers=auth_headers
    )
    detail = (await client.get(f"/api/production/{batch['id']}", headers=auth_headers)).json()
    assert [h["new_status"] for h in detail["status_history"]] == ["in_production", "new_order"]

    found = (await client.get("/api/production", params={"search": "acme"}, headers=auth_headers)).json()
    assert found["total"] == 1
    none = (await client.get("/api/production", params={"status": "delivered"}, headers=auth_headers)).json()
    assert none["total"] == 0

    updated = await client.put(
        f"/api/production/{batch['id']}", json={"ingredients_at_toller": True}, headers=auth_headers
    )
    assert updated.json()["ingredients_at_toller"] is True

    deleted = await client.delete(f"/api/production/{batch['id']}", headers=auth_headers)
    assert deleted.status_code == 200
    assert (await client.get(f"/api/production/{batch['id']}", headers=auth_headers)).status_code == 404


@pytest.mark.asyncio
async def test_inventory_adjustments(client: AsyncClient, auth_headers):
    created = await client.post(
        "/api/inventory",
        json={"name": "Big bags", "sku": "PKG-BB", "category": "packaging", "quantity": 10, "unit": "pcs"},
        headers=auth_headers,
    )
    assert created.status_code == 201, created.text
    item = created.json()

    dup = await client.post(
        "/api/inventory",
        json={"name": "Other", "sku": "PKG-BB", "category": "packaging"},
        headers=auth_headers,
    )
    assert dup.status_code == 409

    added = await client.patch(
        f"/api/inventory/{item['id']}/adjust", json={"adjustment": 5, "reason": "delivery"}, headers=auth_headers
    )
    assert added.json()["quantity"] == 15

    too_many = await client.patch(
        f"/api/inventory/{item['id']}/adjust", json={"adjustment": -16}, headers=auth_headers
    )
    assert too_many.status_code == 400
    assert too_many.json()["error"]["message"] == "Stock cannot go below zero"

    emptied = await client.patch(
        f"/api/inventory/{item['id']}/adjust", json={"adjustment": -15}, headers=auth_headers
    )
    assert emptied.json()["quantity"] == 0

    listed = (await client.get("/api/inventory", params={"category": "packaging"}, headers=auth_headers)).json()
    assert [i["sku"] for i in listed["data"]] == ["PKG-BB"]

    missing = await client.delete("/api/inventory/9999", headers=auth_headers)
    assert missing.status_code == 404
    assert missing.json()["error"]["message"] == "Item not found"


@pytest.mark.asyncio
async def test_warehouse_stock_upload(client: AsyncClient, auth_headers):
    csv_body = b"WHS;Location;Article;Stock\nA1;L1;SKU123;50\n"
    response = await client.post(
        "/api/warehouse-stock/upload",
        files={"file": ("stock.csv", csv_body, "text/csv")},
        headers=auth_headers,
    )
    assert response.status_code == 200, response.text
    result = response.json()
    assert result["inserted"] == 1
    assert result["message"] == "Imported 1 rows"

    overview = (await client.get("/api/warehouse-stock", headers=auth_headers)).json()
    assert overview["data"][0]["article"] == "SKU123"
    assert overview["data"][0]["stock"] == 50
    history = overview["history"][0]
    assert history["rows_imported"] == 1
    assert history["filename"] == "stock.csv"
    assert history["uploaded_by"] == "Administrator"
    assert history["source"] == "manual"


@pytest.mark.asyncio
async def test_warehouse_stock_aggregates_per_article_and_pc(client: AsyncClient, auth_headers):
    csv_body = (
        "Article;Description;PC;Stock;Gross weight\n"
        "A-1;Flakes;PAL;10;100\n"
        "A-1;Flakes;PAL;5;50\n"
        "A-1;Flakes;BAG;2;0\n"
    ).encode()
    await client.post(
        "/api/warehouse-stock/upload", files={"file": ("s.csv", csv_body, "text/csv")}, headers=auth_headers
    )
    data = (await client.get("/api/warehouse-stock", headers=auth_headers)).json()["data"]
    by_pc = {row["pc"]: row for row in data}
    assert by_pc["PAL"]["stock"] == 15
    assert by_pc["PAL"]["gross_weight"] == 150
    assert by_pc["BAG"]["gross_weight"] is None


@pytest.mark.asyncio
async def test_rejected_upload_keeps_previous_snapshot(client: AsyncClient, auth_headers):
    await client.post(
        "/api/warehouse-stock/upload",
        files={"file": ("ok.csv", b"Article;Stock\nKEEP;1\n", "text/csv")},
        headers=auth_headers,
    )
    bad = await client.post(
        "/api/warehouse-stock/upload",
        files={"file": ("bad.csv", b"WHS;Stock\nA1;5\n", "text/csv")},
        headers=auth_headers,
    )
    assert bad.status_code == 400
    assert "article" in bad.json()["error"]["message"]

    empty = await client.post(
        "/api/warehouse-stock/upload",
        files={"file": ("empty.csv", b"", "text/csv")},
        headers=auth_headers,
    )
    assert empty.status_code == 400

    overview = (await client.get("/api/warehouse-stock", headers=auth_headers)).json()
    assert [row["article"] for row in overview["data"]] == ["KEEP"]
    assert len(overview["history"]) == 1


@pytest.mark.asyncio
async def test_upload_replaces_snapshot(client: AsyncClient, auth_headers):
    for body in (b"Article;Stock\nOLD;1\n", b"Article;Stock\nNEW;2\n"):
        await client.post(
            "/api/warehouse-stock/upload", files={"file": ("s.csv", body, "text/csv")}, headers=auth_headers
        )
    overview = (await client.get("/api/warehouse-stock", headers=auth_headers)).json()
    assert [row["article"] for row in overview["data"]] == ["NEW"]
    assert len(overview["history"]) == 2
