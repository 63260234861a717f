"""
Dashboard aggregates over the back-office entities.
"""

import pytest
from httpx import AsyncClient


async def _create(client: AsyncClient, headers: dict, path: str, payload: dict) -> dict:
    response = await client.post(path, json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def _invoice(client: AsyncClient, headers: dict, customer_id: int, number: str, amount: str, status: str) -> dict:
    response = await client.post(
        "/api/invoices",
        data={
            "invoice_number": number,
            "type": "customer",
            "customer_id": str(customer_id),
            "amount": amount,
            "currency": "EUR",
            "status": status,
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_empty_dashboard(client: AsyncClient, auth_headers):
    stats = (await client.get("/api/dashboard/stats", headers=auth_headers)).json()
    assert stats == {
        "customers": 0,
        "suppliers": 0,
        "totalOrders": 0,
        "activeOrders": 0,
        "totalInvoices": 0,
        "pendingInvoiceAmount": 0,
        "paidInvoiceAmount": 0,
        "totalPayments": 0,
        "activeShipments": 0,
    }
    assert (await client.get("/api/dashboard/recent-orders", headers=auth_headers)).json() == []


@pytest.mark.asyncio
async def test_dashboard_aggregates(client: AsyncClient, auth_headers):
    customer = await _create(client, auth_headers, "/api/customers", {"name": "Acme"})
    supplier = await _create(client, auth_headers, "/api/suppliers", {"name": "Ship Co", "category": "shipping"})

    open_order = await _create(
        client, auth_headers, "/api/orders",
        {"order_number": "SO-1", "type": "customer", "customer_id": customer["id"]},
    )
    done_order = await _create(
        client, auth_headers, "/api/orders",
        {"order_number": "SO-2", "type": "customer", "customer_id": customer["id"]},
    )
    await client.patch(f"/api/orders/{done_order['id']}/status", json={"status": "completed"}, headers=auth_headers)

    sent = await _invoice(client, auth_headers, customer["id"], "INV-1", "100", "sent")
    await _invoice(client, auth_headers, customer["id"], "INV-2", "50.5", "overdue")
    await _invoice(client, auth_headers, customer["id"], "INV-3", "400", "paid")
    await _invoice(client, auth_headers, customer["id"], "INV-4", "999", "cancelled")

    await client.post(
        "/api/payments",
        data={"invoice_id": str(sent["id"]), "amount": "25", "payment_date": "2024-05-02", "payment_method": "bank_transfer"},
        headers=auth_headers,
    )

    moving = await _create(
        client, auth_headers, "/api/shipments",
        {"type": "supplier", "supplier_id": supplier["id"], "order_id": open_order["id"], "carrier": "DHL"},
    )
    arrived = await _create(
        client, auth_headers, "/api/shipments", {"type": "supplier", "supplier_id": supplier["id"]}
    )
    await client.patch(f"/api/shipments/{arrived['id']}/status", json={"status": "delivered"}, headers=auth_headers)

    stats = (await client.get("/api/dashboard/stats", headers=auth_headers)).json()
    assert stats["customers"] == 1
    assert stats["suppliers"] == 1
    assert stats["totalOrders"] == 2
    assert stats["activeOrders"] == 1
    assert stats["totalInvoices"] == 4
    assert stats["pendingInvoiceAmount"] == pytest.approx(150.5)
    assert stats["paidInvoiceAmount"] == pytest.approx(400)
    assert stats["totalPayments"] == pytest.approx(25)
    assert stats["activeShipments"] == 1

    recent = (await client.get("/api/dashboard/recent-orders", headers=auth_headers)).json()
    assert {o["order_number"] for o in recent} == {"SO-1", "SO-2"}
    assert recent[0]["customer_name"] == "Acme"

    pending = (await client.get("/api/dashboard/pending-invoices", headers=auth_headers)).json()
    assert {i["invoice_number"] for i in pending} == {"INV-1", "INV-2"}

    shipping = (await client.get("/api/dashboard/shipping-overview", headers=auth_headers)).json()
    assert [s["id"] for s in shipping] == [moving["id"]]
    assert shipping[0]["order_number"] == "SO-1"
    assert shipping[0]["supplier_name"] == "Ship Co"


@pytest.mark.asyncio
async def test_dashboard_requires_auth(client: AsyncClient):
    assert (await client.get("/api/dashboard/stats")).status_code == 401
