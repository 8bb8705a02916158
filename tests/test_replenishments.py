# NG-HEADER: Nombre de archivo: test_replenishments.py
# NG-HEADER: Ubicación: tests/test_replenishments.py
# NG-HEADER: Descripción: Tests del registro de reposiciones (costos, validación y atomicidad).
# NG-HEADER: Lineamientos: Ver AGENTS.md
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from db.models import StockMovement, StockReplenishment
from services.errors import NotFound, StorageError, ValidationError
from services.inventory import replenishments as rep_mod
from services.inventory.replenishments import list_replenishments, record_replenishment


async def _count_reps(db) -> int:
    return int(await db.scalar(select(func.count()).select_from(StockReplenishment)) or 0)


@pytest.mark.asyncio
async def test_replenishment_with_cost_computes_total_and_adds_stock(db_session, user, make_product):
    p = await make_product(user, stock=7)

    rep = await record_replenishment(
        db_session, user_id=user.id, product_id=p.id, quantity=50, cost_per_unit=200, supplier="Lafarge"
    )

    assert rep.id is not None
    assert rep.total_cost == Decimal("10000.00")
    assert rep.quantity == 50
    await db_session.refresh(p)
    assert p.stock == 57
    assert await _count_reps(db_session) == 1
    mv = (await db_session.execute(select(StockMovement))).scalar_one()
    assert mv.source_id == rep.id and mv.delta == 50 and mv.balance_after == 57


@pytest.mark.asyncio
async def test_replenishment_without_cost_leaves_total_unset(db_session, user, make_product):
    p = await make_product(user, stock=0)

    rep = await record_replenishment(db_session, user_id=user.id, product_id=p.id, quantity=3)

    assert rep.cost_per_unit is None
    assert rep.total_cost is None
    await db_session.refresh(p)
    assert p.stock == 3


@pytest.mark.asyncio
async def test_fractional_cost_is_rounded_to_cents(db_session, user, make_product):
    p = await make_product(user)

    rep = await record_replenishment(db_session, user_id=user.id, product_id=p.id, quantity=3, cost_per_unit="0.335")

    assert rep.total_cost == Decimal("1.01")


@pytest.mark.asyncio
@pytest.mark.parametrize("qty", [0, -4])
async def test_non_positive_quantity_fails_and_leaves_stock(db_session, user, make_product, qty):
    p = await make_product(user, stock=5)

    with pytest.raises(ValidationError):
        await record_replenishment(db_session, user_id=user.id, product_id=p.id, quantity=qty)

    await db_session.refresh(p)
    assert p.stock == 5
    assert await _count_reps(db_session) == 0


@pytest.mark.asyncio
async def test_negative_cost_is_rejected(db_session, user, make_product):
    p = await make_product(user, stock=5)

    with pytest.raises(ValidationError):
        await record_replenishment(db_session, user_id=user.id, product_id=p.id, quantity=1, cost_per_unit=-1)


@pytest.mark.asyncio
async def test_unknown_or_foreign_product_is_not_found(db_session, user, other_user, make_product):
    foreign = await make_product(other_user, stock=1)

    with pytest.raises(NotFound):
        await record_replenishment(db_session, user_id=user.id, product_id=424242, quantity=1)
    with pytest.raises(NotFound):
        await record_replenishment(db_session, user_id=user.id, product_id=foreign.id, quantity=1)

    await db_session.refresh(foreign)
    assert foreign.stock == 1
    assert await _count_reps(db_session) == 0


@pytest.mark.asyncio
async def test_storage_failure_rolls_back_row_and_stock(db_session, user, make_product, monkeypatch):
    p = await make_product(user, stock=5)

    async def _boom(*args, **kwargs):
        raise OperationalError("UPDATE products", {}, Exception("disk I/O error"))

    monkeypatch.setattr(rep_mod, "increase_stock", _boom)

    with pytest.raises(StorageError) as exc:
        await record_replenishment(db_session, user_id=user.id, product_id=p.id, quantity=10)

    assert isinstance(exc.value.__cause__, OperationalError)
    await db_session.refresh(p)
    assert p.stock == 5
    assert await _count_reps(db_session) == 0


@pytest.mark.asyncio
async def test_list_replenishments_is_scoped_and_newest_first(db_session, user, other_user, make_product):
    mine = await make_product(user, name="Sable")
    theirs = await make_product(other_user, name="Gravier")
    first = await record_replenishment(db_session, user_id=user.id, product_id=mine.id, quantity=1)
    second = await record_replenishment(db_session, user_id=user.id, product_id=mine.id, quantity=2)
    await record_replenishment(db_session, user_id=other_user.id, product_id=theirs.id, quantity=9)

    rows = await list_replenishments(db_session, user_id=user.id)

    assert [r.id for r, _ in rows] == [second.id, first.id]
    assert {name for _, name in rows} == {"Sable"}
