# NG-HEADER: Nombre de archivo: products.py
# NG-HEADER: Ubicación: services/routers/products.py
# NG-HEADER: Descripción: Endpoints de productos, reposiciones por producto e historial de stock.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Endpoints de productos.

El stock no se edita por CRUD: solo cambia con reposiciones y liquidaciones.
"""
from __future__ import annotations

import logging
import math

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from db.models import Category, Product, StockMovement
from db.session import get_session
from services.alerts.engine import refresh_stock_alerts
from services.auth import SessionData, require_csrf, require_user
from services.errors import DomainError, NotFound, StorageError
from services.inventory.replenishments import list_product_replenishments, record_replenishment
from services.logging.ctx_logger import log_event
from services.schemas import (
    ProductIn,
    ProductOut,
    ProductPatch,
    ReplenishmentOut,
    StockHistoryOut,
    StockMovementOut,
)

router = APIRouter(prefix="/products", tags=["products"])
logger = logging.getLogger("gestio.products")

OPENING_REFERENCE = "STOCK-INITIAL"


async def _get_owned(db: AsyncSession, user_id: int, product_id: int) -> Product:
    prod = await db.scalar(
        select(Product)
        .where(Product.id == product_id, Product.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    if prod is None:
        raise NotFound(f"Produit {product_id} introuvable")
    return prod


async def _check_category(db: AsyncSession, user_id: int, category_id: int | None) -> None:
    if category_id is None:
        return
    found = await db.scalar(
        select(Category.id).where(Category.id == category_id, Category.user_id == user_id)
    )
    if found is None:
        raise NotFound(f"Catégorie {category_id} introuvable")


@router.post("", response_model=ProductOut, status_code=201, dependencies=[Depends(require_csrf)])
async def create_product(
    payload: ProductIn,
    request: Request,
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    await _check_category(db, sess.user_id, payload.category_id)
    prod = Product(
        name=payload.name,
        description=payload.description,
        price_ht=payload.price_ht,
        stock=0,
        alert_stock=payload.alert_stock or settings.default_alert_stock,
        category_id=payload.category_id,
        user_id=sess.user_id,
    )
    cid = getattr(request.state, "correlation_id", None)
    # Alta y stock de apertura en una sola transacción: o quedan ambos o ninguno
    try:
        db.add(prod)
        await db.flush()
        if payload.initial_stock > 0:
            # El stock de apertura queda auditado como una reposición más
            await record_replenishment(
                db,
                user_id=sess.user_id,
                product_id=prod.id,
                quantity=payload.initial_stock,
                reference=OPENING_REFERENCE,
                correlation_id=cid,
                commit=False,
            )
        await db.commit()
    except DomainError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Fallo creando producto %r: %s", payload.name, e)
        raise StorageError("Erreur lors de la création du produit") from e
    product_id = prod.id
    log_event(
        "product:created",
        correlation_id=cid,
        user_id=sess.user_id,
        product_id=product_id,
        opening_stock=payload.initial_stock,
    )
    out = ProductOut.model_validate(await _get_owned(db, sess.user_id, product_id))
    await refresh_stock_alerts(db, user_id=sess.user_id, correlation_id=cid)
    return out


@router.get("", response_model=list[ProductOut])
async def list_products(
    low_stock_only: bool = Query(False, alias="lowStockOnly"),
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    stmt = (
        select(Product)
        .where(Product.user_id == sess.user_id)
        .order_by(Product.name, Product.id)
        .execution_options(populate_existing=True)
    )
    if low_stock_only:
        stmt = stmt.where(Product.stock <= Product.alert_stock)
    rows = (await db.execute(stmt)).scalars().all()
    return [ProductOut.model_validate(p) for p in rows]


@router.get("/{product_id}", response_model=ProductOut)
async def get_product(
    product_id: int,
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    return ProductOut.model_validate(await _get_owned(db, sess.user_id, product_id))


@router.patch("/{product_id}", response_model=ProductOut, dependencies=[Depends(require_csrf)])
async def update_product(
    product_id: int,
    payload: ProductPatch,
    request: Request,
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    prod = await _get_owned(db, sess.user_id, product_id)
    changes = payload.model_dump(exclude_unset=True)
    if "category_id" in changes:
        await _check_category(db, sess.user_id, changes["category_id"])
    for field in ("name", "description", "price_ht", "alert_stock", "category_id"):
        if field in changes and (changes[field] is not None or field in ("description", "category_id")):
            setattr(prod, field, changes[field])
    await db.commit()
    out = ProductOut.model_validate(await _get_owned(db, sess.user_id, product_id))
    if "alert_stock" in changes:
        # Cambiar el umbral puede crear o resolver alertas de stock
        await refresh_stock_alerts(
            db, user_id=sess.user_id, correlation_id=getattr(request.state, "correlation_id", None)
        )
    return out


@router.get("/{product_id}/replenishments", response_model=list[ReplenishmentOut])
async def product_replenishments(
    product_id: int,
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    prod = await _get_owned(db, sess.user_id, product_id)
    rows = await list_product_replenishments(db, user_id=sess.user_id, product_id=product_id)
    out = []
    for r in rows:
        item = ReplenishmentOut.model_validate(r)
        item.product_name = prod.name
        out.append(item)
    return out


@router.get("/{product_id}/stock/history", response_model=StockHistoryOut)
async def product_stock_history(
    product_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200, alias="pageSize"),
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    """Historial de movimientos de stock del producto.

    Orden: descendente por created_at (desempate por id). Paginado simple.
    """
    await _get_owned(db, sess.user_id, product_id)
    total = int(
        await db.scalar(
            select(func.count()).select_from(StockMovement).where(StockMovement.product_id == product_id)
        )
        or 0
    )
    q = (
        select(StockMovement)
        .where(StockMovement.product_id == product_id)
        .order_by(desc(StockMovement.created_at), desc(StockMovement.id))
        .limit(page_size)
        .offset((page - 1) * page_size)
    )
    rows = (await db.execute(q)).scalars().all()
    return StockHistoryOut(
        product_id=product_id,
        items=[StockMovementOut.model_validate(r) for r in rows],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total else 0,
    )
