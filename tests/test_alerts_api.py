# NG-HEADER: Nombre de archivo: test_alerts_api.py
# NG-HEADER: Ubicación: tests/test_alerts_api.py
# NG-HEADER: Descripción: Tests HTTP del router de alertas (consulta, ciclo de vida y generación).
# NG-HEADER: Lineamientos: Ver AGENTS.md
from datetime import datetime, timedelta

import pytest


@pytest.mark.asyncio
async def test_generate_stock_is_idempotent_over_http(client, user, make_product):
    await make_product(user, name="Ciment", stock=0)

    first = await client.post("/alerts/generate/stock")
    second = await client.post("/alerts/generate/stock")

    assert first.status_code == 200
    assert first.json() == {"message": "1 alerte(s) de stock générée(s)", "count": 1, "existing": 0, "resolved": 0}
    assert second.json()["count"] == 0
    assert second.json()["existing"] == 1

    body = (await client.get("/alerts")).json()
    assert body["total"] == 1
    assert body["totalPages"] == 1
    alert = body["items"][0]
    assert alert["type"] == "critical_stock"
    assert alert["severity"] == "critical"
    assert alert["entityType"] == "product"
    assert alert["isRead"] is False
    assert alert["metadata"]["productName"] == "Ciment"


@pytest.mark.asyncio
async def test_alert_lifecycle(client, user, make_product):
    await make_product(user, stock=0)
    await client.post("/alerts/generate/stock")
    alert_id = (await client.get("/alerts")).json()["items"][0]["id"]

    r = await client.patch(f"/alerts/{alert_id}/read")
    assert r.status_code == 200
    assert r.json()["isRead"] is True
    assert r.json()["isResolved"] is False
    assert (await client.get("/alerts", params={"unreadOnly": "true"})).json()["total"] == 0

    r = await client.patch(f"/alerts/{alert_id}/resolve")
    assert r.json()["isResolved"] is True

    r = await client.delete(f"/alerts/{alert_id}")
    assert r.status_code == 204

    r = await client.get(f"/alerts/{alert_id}")
    assert r.status_code == 404
    assert r.json()["code"] == "not_found"


@pytest.mark.asyncio
async def test_resolve_marks_read(client, user, make_product):
    await make_product(user, stock=0)
    await client.post("/alerts/generate/stock")
    alert_id = (await client.get("/alerts")).json()["items"][0]["id"]

    body = (await client.patch(f"/alerts/{alert_id}/resolve")).json()

    assert body["isResolved"] is True
    assert body["isRead"] is True


@pytest.mark.asyncio
async def test_mark_all_read_and_stats(client, user, make_product):
    await make_product(user, name="A", stock=0)
    await make_product(user, name="B", stock=1)
    await make_product(user, name="C", stock=2)
    await client.post("/alerts/generate/stock")

    stats = (await client.get("/alerts/stats")).json()
    assert stats["total"] == 3
    assert stats["unread"] == 3
    assert stats["critical"] == 1
    assert stats["byType"]["low_stock"] == 2
    assert stats["byType"]["overdue_invoice"] == 0

    r = await client.patch("/alerts/mark-all-read")
    assert r.json() == {"message": "3 alerte(s) marquée(s) comme lue(s)", "count": 3}
    assert (await client.get("/alerts/stats")).json()["unread"] == 0


@pytest.mark.asyncio
async def test_cleanup_only_touches_resolved(client, user, make_product):
    await make_product(user, name="A", stock=0)
    await make_product(user, name="B", stock=1)
    await client.post("/alerts/generate/stock")
    items = (await client.get("/alerts")).json()["items"]
    await client.patch(f"/alerts/{items[0]['id']}/resolve")

    kept = await client.delete("/alerts/cleanup")
    assert kept.json()["count"] == 0

    r = await client.delete("/alerts/cleanup", params={"days": 0})
    assert r.json() == {"message": "1 alerte(s) supprimée(s)", "count": 1}
    remaining = (await client.get("/alerts")).json()
    assert remaining["total"] == 1
    assert remaining["items"][0]["isResolved"] is False


@pytest.mark.asyncio
async def test_filters_and_pagination(client, user, make_product):
    for i in range(3):
        await make_product(user, name=f"P{i}", stock=0)
    await make_product(user, name="Q", stock=4)
    await client.post("/alerts/generate/stock")

    page = (await client.get("/alerts", params={"pageSize": 2, "page": 2})).json()
    assert page["total"] == 4
    assert page["totalPages"] == 2
    assert len(page["items"]) == 2

    low = (await client.get("/alerts", params={"type": "low_stock"})).json()
    assert low["total"] == 1
    critical = (await client.get("/alerts", params={"severity": "critical"})).json()
    assert critical["total"] == 3

    assert (await client.get("/alerts", params={"type": "bogus"})).status_code == 422


@pytest.mark.asyncio
async def test_manual_alert_validates_metadata(client, user, make_product):
    p = await make_product(user, stock=2)
    payload = {
        "type": "low_stock",
        "severity": "high",
        "title": "Stock faible",
        "message": "À surveiller",
        "entityType": "product",
        "entityId": p.id,
        "metadata": {"productName": "Ciment", "currentStock": 2},
    }

    r = await client.post("/alerts", json=payload)
    assert r.status_code == 201, r.text
    assert r.json()["metadata"] == {"productName": "Ciment", "currentStock": 2}

    again = await client.post("/alerts", json=payload)
    assert again.json()["id"] == r.json()["id"]

    bad = await client.post("/alerts", json={**payload, "metadata": {"productName": "Ciment"}})
    assert bad.status_code == 422
    assert bad.json()["code"] == "validation_error"


@pytest.mark.asyncio
async def test_generate_all_counts_every_pass(client, user, make_product, make_invoice):
    await make_product(user, stock=0)
    await make_invoice(user, [(None, 1)], due_date=datetime.utcnow() - timedelta(days=12))

    r = await client.post("/alerts/generate")

    assert r.status_code == 200
    assert r.json()["count"] == 2
    overdue = (await client.get("/alerts", params={"type": "overdue_invoice"})).json()["items"][0]
    assert overdue["severity"] == "high"
    assert overdue["metadata"]["daysPastDue"] == 12
    assert overdue["metadata"]["clientName"] == "SARL Dupont"
