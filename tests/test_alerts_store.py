# NG-HEADER: Nombre de archivo: test_alerts_store.py
# NG-HEADER: Ubicación: tests/test_alerts_store.py
# NG-HEADER: Descripción: Tests del almacén de alertas (upsert, ciclo de vida, limpieza y estadísticas).
# NG-HEADER: Lineamientos: Ver AGENTS.md
from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from db.models import BusinessAlert
from services.alerts import store
from services.errors import NotFound, ValidationError


def _stock_alert(user_id, entity_id, **over):
    data = dict(
        user_id=user_id,
        type="low_stock",
        severity="medium",
        title="Stock faible",
        message="Le produit a un stock faible",
        entity_type="product",
        entity_id=entity_id,
        meta={"productName": "Ciment", "currentStock": 3},
    )
    data.update(over)
    return data


async def _count(db) -> int:
    return int(await db.scalar(select(func.count()).select_from(BusinessAlert)) or 0)


@pytest.mark.asyncio
async def test_upsert_refreshes_open_alert_in_place(db_session, user):
    first, created = await store.upsert_alert(db_session, **_stock_alert(user.id, 1))
    again, created_again = await store.upsert_alert(
        db_session, **_stock_alert(user.id, 1, severity="high", meta={"productName": "Ciment", "currentStock": 1})
    )

    assert created is True
    assert created_again is False
    assert again.id == first.id
    assert again.severity == "high"
    assert again.meta["currentStock"] == 1
    assert await _count(db_session) == 1


@pytest.mark.asyncio
async def test_resolved_alert_does_not_block_a_new_one(db_session, user):
    first, _ = await store.upsert_alert(db_session, **_stock_alert(user.id, 1))
    await store.resolve_alert(db_session, user_id=user.id, alert_id=first.id)

    second, created = await store.upsert_alert(db_session, **_stock_alert(user.id, 1))

    assert created is True
    assert second.id != first.id


@pytest.mark.asyncio
async def test_upsert_rejects_unknown_type_or_severity(db_session, user):
    with pytest.raises(ValidationError):
        await store.upsert_alert(db_session, **_stock_alert(user.id, 1, type="unknown"))
    with pytest.raises(ValidationError):
        await store.upsert_alert(db_session, **_stock_alert(user.id, 1, severity="urgent"))


@pytest.mark.asyncio
async def test_concurrent_insert_returns_existing_winner(db_session, user, monkeypatch):
    winner, _ = await store.upsert_alert(db_session, **_stock_alert(user.id, 7))
    uid, winner_id = user.id, winner.id
    real_find = store.find_open_alert
    calls = []

    async def _stale_find(*args, **kwargs):
        # La primera búsqueda no ve la fila del "otro" proceso
        calls.append(kwargs)
        if len(calls) == 1:
            return None
        return await real_find(*args, **kwargs)

    monkeypatch.setattr(store, "find_open_alert", _stale_find)

    alert, created = await store.upsert_alert(db_session, **_stock_alert(uid, 7))

    assert created is False
    assert alert.id == winner_id
    assert len(calls) == 2
    assert await _count(db_session) == 1


@pytest.mark.asyncio
async def test_resolve_implies_read_and_delete_removes(db_session, user):
    alert, _ = await store.upsert_alert(db_session, **_stock_alert(user.id, 1))

    resolved = await store.resolve_alert(db_session, user_id=user.id, alert_id=alert.id)
    assert (resolved.is_resolved, resolved.is_read) == (True, True)

    await store.delete_alert(db_session, user_id=user.id, alert_id=alert.id)
    items, total = await store.list_alerts(db_session, user_id=user.id)
    assert (items, total) == ([], 0)
    with pytest.raises(NotFound):
        await store.get_alert(db_session, user_id=user.id, alert_id=alert.id)


@pytest.mark.asyncio
async def test_other_users_alert_is_not_found(db_session, user, other_user):
    alert, _ = await store.upsert_alert(db_session, **_stock_alert(other_user.id, 1))

    with pytest.raises(NotFound):
        await store.mark_read(db_session, user_id=user.id, alert_id=alert.id)
    with pytest.raises(NotFound):
        await store.delete_alert(db_session, user_id=user.id, alert_id=alert.id)


@pytest.mark.asyncio
async def test_mark_all_read_counts_only_unread(db_session, user, other_user):
    a, _ = await store.upsert_alert(db_session, **_stock_alert(user.id, 1))
    await store.upsert_alert(db_session, **_stock_alert(user.id, 2))
    await store.upsert_alert(db_session, **_stock_alert(other_user.id, 3))
    await store.mark_read(db_session, user_id=user.id, alert_id=a.id)

    assert await store.mark_all_read(db_session, user_id=user.id) == 1
    assert await store.mark_all_read(db_session, user_id=user.id) == 0
    _, unread = await store.list_alerts(db_session, user_id=other_user.id, unread_only=True)
    assert unread == 1


@pytest.mark.asyncio
async def test_cleanup_respects_age_and_open_alerts(db_session, user):
    old, _ = await store.upsert_alert(db_session, **_stock_alert(user.id, 1))
    recent, _ = await store.upsert_alert(db_session, **_stock_alert(user.id, 2))
    await store.upsert_alert(db_session, **_stock_alert(user.id, 3))
    await store.resolve_alert(db_session, user_id=user.id, alert_id=old.id)
    await store.resolve_alert(db_session, user_id=user.id, alert_id=recent.id)
    later = datetime.utcnow() + timedelta(days=10)

    assert await store.cleanup_alerts(db_session, user_id=user.id, days=30, now=later) == 0
    assert await store.cleanup_alerts(db_session, user_id=user.id, days=5, now=later) == 2
    assert await _count(db_session) == 1


@pytest.mark.asyncio
async def test_cleanup_zero_days_and_negative(db_session, user):
    a, _ = await store.upsert_alert(db_session, **_stock_alert(user.id, 1))
    await store.resolve_alert(db_session, user_id=user.id, alert_id=a.id)

    with pytest.raises(ValidationError):
        await store.cleanup_alerts(db_session, user_id=user.id, days=-1)
    assert await store.cleanup_alerts(db_session, user_id=user.id, days=0) == 1


@pytest.mark.asyncio
async def test_statistics(db_session, user):
    await store.upsert_alert(db_session, **_stock_alert(user.id, 1))
    crit, _ = await store.upsert_alert(db_session, **_stock_alert(user.id, 2, type="critical_stock", severity="critical"))
    await store.upsert_alert(
        db_session,
        **_stock_alert(user.id, 9, type="overdue_invoice", severity="critical", entity_type="invoice", meta=None),
    )
    await store.resolve_alert(db_session, user_id=user.id, alert_id=crit.id)

    stats = await store.get_alert_statistics(db_session, user_id=user.id)

    assert stats["total"] == 3
    assert stats["unread"] == 2
    assert stats["unresolved"] == 2
    assert stats["critical"] == 1
    assert stats["by_type"] == {"low_stock": 1, "critical_stock": 0, "overdue_invoice": 1, "payment_due": 0}
