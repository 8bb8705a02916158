# NG-HEADER: Nombre de archivo: test_invoices_api.py
# NG-HEADER: Ubicación: tests/test_invoices_api.py
# NG-HEADER: Descripción: Tests HTTP de clientes, facturas y liquidación.
# NG-HEADER: Lineamientos: Ver AGENTS.md
from datetime import datetime

import pytest

from services.alerts import engine as alerts_engine
from services.errors import StorageError


async def _client_id(client) -> int:
    r = await client.post("/clients", json={"name": "SARL Dupont", "email": "contact@dupont.fr"})
    assert r.status_code == 201, r.text
    return r.json()["id"]


@pytest.mark.asyncio
async def test_create_and_settle_invoice(client, user, make_product):
    p = await make_product(user, name="Ciment", stock=12, alert_stock=5)
    cid = await _client_id(client)

    r = await client.post(
        "/invoices",
        json={
            "clientId": cid,
            "tvaRate": 18,
            "items": [
                {"productId": p.id, "quantity": 10, "priceHt": 12.5},
                {"productName": "Transport", "quantity": 1, "priceHt": 25},
            ],
        },
    )
    assert r.status_code == 201, r.text
    inv = r.json()
    assert inv["number"] == f"FAC-{datetime.utcnow().year}-0001"
    assert inv["clientName"] == "SARL Dupont"
    assert inv["totalHt"] == 150.0
    assert inv["totalTva"] == 27.0
    assert inv["totalTtc"] == 177.0
    assert inv["status"] == "en_attente"

    r = await client.post(f"/invoices/{inv['id']}/settle")
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "payee"
    assert r.json()["paidAt"] is not None
    assert (await client.get(f"/products/{p.id}")).json()["stock"] == 2

    # El descuento dejó el producto bajo el umbral: alerta automática
    alerts = (await client.get("/alerts", params={"type": "low_stock"})).json()
    assert alerts["total"] == 1
    assert alerts["items"][0]["metadata"]["currentStock"] == 2


@pytest.mark.asyncio
async def test_settle_with_insufficient_stock_is_409(client, user, make_product, make_invoice):
    p = await make_product(user, stock=1)
    inv = await make_invoice(user, [(p, 3)])

    r = await client.post(f"/invoices/{inv.id}/settle")

    assert r.status_code == 409
    body = r.json()
    assert body["code"] == "insufficient_stock"
    assert body["productId"] == p.id
    assert body["requested"] == 3
    assert body["available"] == 1
    assert (await client.get(f"/products/{p.id}")).json()["stock"] == 1
    assert (await client.get(f"/invoices/{inv.id}")).json()["status"] == "en_attente"


@pytest.mark.asyncio
async def test_settle_survives_failed_alert_refresh(client, user, make_product, make_invoice, monkeypatch):
    p = await make_product(user, stock=5, alert_stock=10)
    inv = await make_invoice(user, [(p, 2)], number="FAC-TEST-0042")
    pid, inv_id = p.id, inv.id

    async def _boom(db, **kwargs):
        # Igual que el almacén real: revierte la sesión antes de propagar
        await db.rollback()
        raise StorageError("Erreur lors de l'enregistrement de l'alerte")

    monkeypatch.setattr(alerts_engine, "upsert_alert", _boom)

    r = await client.post(f"/invoices/{inv_id}/settle")

    assert r.status_code == 200, r.text
    assert r.json()["status"] == "payee"
    assert r.json()["number"] == "FAC-TEST-0042"
    assert (await client.get(f"/products/{pid}")).json()["stock"] == 3


@pytest.mark.asyncio
async def test_status_patch_settles_and_paid_is_terminal(client, user, make_product, make_invoice):
    p = await make_product(user, stock=20)
    inv = await make_invoice(user, [(p, 4)])

    r = await client.patch(f"/invoices/{inv.id}/status", json={"status": "partiellement_reglee"})
    assert r.json()["status"] == "partiellement_reglee"
    assert (await client.get(f"/products/{p.id}")).json()["stock"] == 20

    r = await client.patch(f"/invoices/{inv.id}/status", json={"status": "payee"})
    assert r.json()["status"] == "payee"
    assert (await client.get(f"/products/{p.id}")).json()["stock"] == 16

    r = await client.post(f"/invoices/{inv.id}/settle")
    assert r.status_code == 200
    assert (await client.get(f"/products/{p.id}")).json()["stock"] == 16

    r = await client.patch(f"/invoices/{inv.id}/status", json={"status": "en_attente"})
    assert r.status_code == 409
    assert r.json()["code"] == "invalid_transition"


@pytest.mark.asyncio
async def test_invoice_validation_errors(client):
    cid = await _client_id(client)

    r = await client.post("/invoices", json={"clientId": cid, "tvaRate": 7, "items": [{"productName": "x", "quantity": 1, "priceHt": 1}]})
    assert r.status_code == 422
    assert r.json()["code"] == "validation_error"

    r = await client.post("/invoices", json={"clientId": cid, "items": []})
    assert r.status_code == 422

    r = await client.post("/invoices", json={"clientId": 4242, "items": [{"productName": "x", "quantity": 1, "priceHt": 1}]})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_list_invoices_and_clients(client, user, make_invoice):
    await make_invoice(user, [(None, 1)], number="FAC-A")
    await make_invoice(user, [(None, 1)], status="payee", number="FAC-B")

    all_numbers = {i["number"] for i in (await client.get("/invoices")).json()}
    assert all_numbers == {"FAC-A", "FAC-B"}
    paid = (await client.get("/invoices", params={"status": "payee"})).json()
    assert [i["number"] for i in paid] == ["FAC-B"]

    clients = (await client.get("/clients", params={"q": "dupont"})).json()
    assert len(clients) == 2
