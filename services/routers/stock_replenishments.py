# NG-HEADER: Nombre de archivo: stock_replenishments.py
# NG-HEADER: Ubicación: services/routers/stock_replenishments.py
# NG-HEADER: Descripción: Endpoints de reposiciones de stock (alta y listado).
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Endpoints para reposiciones de stock.

Las reposiciones son inmutables: no hay edición ni borrado.
"""
from __future__ import annotations

import math

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Product
from db.session import get_session
from services.alerts.engine import refresh_stock_alerts
from services.auth import SessionData, require_csrf, require_user
from services.inventory.replenishments import (
    count_replenishments,
    list_replenishments,
    record_replenishment,
)
from services.schemas import ReplenishmentIn, ReplenishmentListOut, ReplenishmentOut

router = APIRouter(prefix="/stock-replenishments", tags=["stock"])


@router.post("", response_model=ReplenishmentOut, status_code=201, dependencies=[Depends(require_csrf)])
async def create_replenishment(
    payload: ReplenishmentIn,
    request: Request,
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Registra una reposición y suma el stock del producto.

    Tras confirmar, refresca las alertas de stock del usuario (si
    ``ALERTS_AUTO_REFRESH`` está activo).
    """
    cid = getattr(request.state, "correlation_id", None)
    rep = await record_replenishment(
        db,
        user_id=sess.user_id,
        product_id=payload.product_id,
        quantity=payload.quantity,
        cost_per_unit=payload.cost_per_unit,
        supplier=payload.supplier,
        reference=payload.reference,
        notes=payload.notes,
        correlation_id=cid,
    )
    # Respuesta armada antes del refresco: un fallo ahí revierte y expira la sesión
    out = ReplenishmentOut.model_validate(rep)
    out.product_name = await db.scalar(select(Product.name).where(Product.id == rep.product_id))
    await refresh_stock_alerts(db, user_id=sess.user_id, correlation_id=cid)
    return out


@router.get("", response_model=ReplenishmentListOut)
async def list_all(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200, alias="pageSize"),
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    rows = await list_replenishments(
        db, user_id=sess.user_id, limit=page_size, offset=(page - 1) * page_size
    )
    total = await count_replenishments(db, user_id=sess.user_id)
    items = []
    for rep, name in rows:
        item = ReplenishmentOut.model_validate(rep)
        item.product_name = name
        items.append(item)
    return ReplenishmentListOut(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total else 0,
    )
