"""
Invoices, payments and wire transfers through the HTTP API.

Invoices use EUR so that wire transfers never need a live FX lookup.
"""

import pytest
from httpx import AsyncClient


@pytest.fixture
async def customer(client: AsyncClient, auth_headers) -> dict:
    response = await client.post("/api/customers", json={"name": "Acme"}, headers=auth_headers)
    return response.json()


async def _create_invoice(client: AsyncClient, headers: dict, customer_id: int, **fields) -> dict:
    data = {
        "invoice_number": "INV-001",
        "type": "customer",
        "customer_id": str(customer_id),
        "amount": "1500.50",
        "currency": "EUR",
        "status": "sent",
    }
    data.update(fields)
    response = await client.post("/api/invoices", data=data, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_invoice_with_attachment(client: AsyncClient, auth_headers, customer):
    response = await client.post(
        "/api/invoices",
        data={
            "invoice_number": "INV-100",
            "type": "customer",
            "customer_id": str(customer["id"]),
            "amount": "99.90",
            "invoice_date": "2024-04-01",
        },
        files={"file": ("scan.pdf", b"%PDF-1.4 test", "application/pdf")},
        headers=auth_headers,
    )
    assert response.status_code == 201
    invoice = response.json()
    assert invoice["status"] == "draft"
    assert invoice["currency"] == "USD"
    assert invoice["customer_name"] == "Acme"
    assert invoice["file_name"] == "scan.pdf"

    stored = await client.get(f"/api/files/invoices/{invoice['file_path']}", headers=auth_headers)
    assert stored.status_code == 200
    assert stored.content == b"%PDF-1.4 test"

    await client.delete(f"/api/invoices/{invoice['id']}", headers=auth_headers)
    gone = await client.get(f"/api/files/invoices/{invoice['file_path']}", headers=auth_headers)
    assert gone.status_code == 404


@pytest.mark.asyncio
async def test_invoice_validation(client: AsyncClient, auth_headers, customer):
    await _create_invoice(client, auth_headers, customer["id"])

    dup = await client.post(
        "/api/invoices",
        data={"invoice_number": "INV-001", "type": "customer", "customer_id": str(customer["id"]), "amount": "1"},
        headers=auth_headers,
    )
    assert dup.status_code == 409
    assert dup.json()["error"]["message"] == "Invoice number already exists"

    no_party = await client.post(
        "/api/invoices",
        data={"invoice_number": "INV-002", "type": "customer", "amount": "1"},
        headers=auth_headers,
    )
    assert no_party.status_code == 422

    bad_type = await client.post(
        "/api/invoices",
        data={"invoice_number": "INV-003", "type": "customer", "customer_id": str(customer["id"]), "amount": "1"},
        files={"file": ("run.exe", b"MZ", "application/octet-stream")},
        headers=auth_headers,
    )
    assert bad_type.status_code == 400


@pytest.mark.asyncio
async def test_invoice_list_filters(client: AsyncClient, auth_headers, customer):
    await _create_invoice(client, auth_headers, customer["id"])
    await _create_invoice(client, auth_headers, customer["id"], invoice_number="INV-002", status="draft")

    drafts = (await client.get("/api/invoices", params={"status": "draft"}, headers=auth_headers)).json()
    assert [i["invoice_number"] for i in drafts["data"]] == ["INV-002"]

    by_name = (await client.get("/api/invoices", params={"search": "acme"}, headers=auth_headers)).json()
    assert by_name["total"] == 2

    mine = (await client.get(f"/api/customers/{customer['id']}/invoices", headers=auth_headers)).json()
    assert len(mine) == 2


@pytest.mark.asyncio
async def test_update_invoice_multipart(client: AsyncClient, auth_headers, customer):
    invoice = await _create_invoice(client, auth_headers, customer["id"])
    response = await client.put(
        f"/api/invoices/{invoice['id']}",
        data={"amount": "2000", "notes": "revised"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["amount"] == 2000
    assert body["notes"] == "revised"
    assert body["invoice_number"] == "INV-001"


@pytest.mark.asyncio
async def test_payments(client: AsyncClient, auth_headers, customer):
    invoice = await _create_invoice(client, auth_headers, customer["id"])
    created = await client.post(
        "/api/payments",
        data={
            "invoice_id": str(invoice["id"]),
            "amount": "500",
            "payment_date": "2024-05-02",
            "payment_method": "bank_transfer",
        },
        headers=auth_headers,
    )
    assert created.status_code == 201, created.text
    payment = created.json()
    assert payment["invoice_number"] == "INV-001"

    listed = (await client.get("/api/payments", params={"invoice_id": invoice["id"]}, headers=auth_headers)).json()
    assert listed["total"] == 1

    detail = (await client.get(f"/api/invoices/{invoice['id']}", headers=auth_headers)).json()
    assert [p["id"] for p in detail["payments"]] == [payment["id"]]

    # deleting the invoice takes its payments with it
    await client.delete(f"/api/invoices/{invoice['id']}", headers=auth_headers)
    assert (await client.get(f"/api/payments/{payment['id']}", headers=auth_headers)).status_code == 404


@pytest.mark.asyncio
async def test_wire_transfer_approval_marks_invoice_paid(client: AsyncClient, auth_headers, customer):
    invoice = await _create_invoice(client, auth_headers, customer["id"])
    base = f"/api/invoices/{invoice['id']}/wire-transfers"

    created = await client.post(
        base,
        data={"transfer_date": "2024-05-03", "bank_reference": "REF-9"},
        headers=auth_headers,
    )
    assert created.status_code == 201, created.text
    transfer = created.json()
    assert transfer["status"] == "pending"
    assert transfer["amount"] == pytest.approx(1500.50)
    assert transfer["fx_rate"] == 1.0
    assert transfer["eur_amount"] == pytest.approx(1500.50)

    approved = await client.post(f"{base}/{transfer['id']}/approve", headers=auth_headers)
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"
    assert approved.json()["approved_by_name"] == "Administrator"

    again = await client.post(f"{base}/{transfer['id']}/approve", headers=auth_headers)
    assert again.status_code == 400

    detail = (await client.get(f"/api/invoices/{invoice['id']}", headers=auth_headers)).json()
    assert detail["status"] == "paid"
    assert detail["payment_date"] == "2024-05-03"
    assert detail["status_history"][0]["old_status"] == "sent"
    assert detail["status_history"][0]["new_status"] == "paid"
    assert len(detail["wire_transfers"]) == 1

    deleted = await client.delete(f"{base}/{transfer['id']}", headers=auth_headers)
    assert deleted.status_code == 200
    reopened = (await client.get(f"/api/invoices/{invoice['id']}", headers=auth_headers)).json()
    assert reopened["status"] == "sent"
    assert reopened["wire_transfers"] == []


@pytest.mark.asyncio
async def test_wire_transfer_rejection_leaves_invoice(client: AsyncClient, auth_headers, customer):
    invoice = await _create_invoice(client, auth_headers, customer["id"])
    base = f"/api/invoices/{invoice['id']}/wire-transfers"
    transfer = (
        await client.post(base, data={"transfer_date": "2024-05-03", "amount": "100"}, headers=auth_headers)
    ).json()

    rejected = await client.post(
        f"{base}/{transfer['id']}/reject", json={"reason": "wrong payer"}, headers=auth_headers
    )
    assert rejected.json()["status"] == "rejected"
    assert rejected.json()["rejection_reason"] == "wrong payer"

    invoice_now = (await client.get(f"/api/invoices/{invoice['id']}", headers=auth_headers)).json()
    assert invoice_now["status"] == "sent"

    other = await client.post(f"/api/invoices/{invoice['id'] + 1}/wire-transfers/{transfer['id']}/approve", headers=auth_headers)
    assert other.status_code == 404


@pytest.mark.asyncio
async def test_invoice_status_patch_records_history(client: AsyncClient, auth_headers, customer):
    invoice = await _create_invoice(client, auth_headers, customer["id"], status="draft")
    response = await client.patch(
        f"/api/invoices/{invoice['id']}/status", json={"status": "sent"}, headers=auth_headers
    )
    assert response.json()["status"] == "sent"

    invalid = await client.patch(
        f"/api/invoices/{invoice['id']}/status", json={"status": "lost"}, headers=auth_headers
    )
    assert invalid.status_code == 422

    detail = (await client.get(f"/api/invoices/{invoice['id']}", headers=auth_headers)).json()
    assert [h["new_status"] for h in detail["status_history"]] == ["sent", "draft"]
