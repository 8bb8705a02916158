# NG-HEADER: Nombre de archivo: replenishments.py
# NG-HEADER: Ubicación: services/inventory/replenishments.py
# NG-HEADER: Descripción: Registro y consulta de reposiciones de stock.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Reposiciones de stock.

``record_replenishment`` persiste la fila de auditoría y suma el stock en una
misma transacción: o quedan ambos cambios o ninguno.
"""
from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Product, StockReplenishment
from services.errors import DomainError, NotFound, StorageError, ValidationError
from services.inventory.ledger import increase_stock
from services.logging.ctx_logger import log_event

logger = logging.getLogger("gestio.inventory")

CENT = Decimal("0.01")


def _to_cost(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        cost = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("Coût unitaire invalide")
    if not cost.is_finite() or cost < 0:
        raise ValidationError("Le coût unitaire doit être positif ou nul")
    return cost


async def record_replenishment(
    db: AsyncSession,
    *,
    user_id: int,
    product_id: int,
    quantity: int,
    cost_per_unit: Any = None,
    supplier: Optional[str] = None,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
    correlation_id: Optional[str] = None,
    commit: bool = True,
) -> StockReplenishment:
    """Registra una reposición y aumenta el stock del producto.

    Errores: ``ValidationError`` (cantidad/costo), ``NotFound`` (producto ajeno
    o inexistente), ``StorageError`` (fallo de base; sin efectos parciales).

    Con ``commit=False`` sólo hace flush: el llamador confirma o revierte la
    unidad de trabajo completa y el evento no se emite.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("La quantité doit être supérieure à 0")
    cost = _to_cost(cost_per_unit)

    product = await db.scalar(
        select(Product).where(Product.id == product_id, Product.user_id == user_id)
    )
    if product is None:
        raise NotFound(f"Produit {product_id} introuvable")

    total_cost = (Decimal(quantity) * cost).quantize(CENT, rounding=ROUND_HALF_UP) if cost is not None else None
    rep = StockReplenishment(
        product_id=product_id,
        quantity=quantity,
        cost_per_unit=cost,
        total_cost=total_cost,
        supplier=supplier,
        reference=reference,
        notes=notes,
        user_id=user_id,
    )
    try:
        db.add(rep)
        await db.flush()
        balance = await increase_stock(
            db,
            product_id,
            quantity,
            user_id=user_id,
            source_type="replenishment",
            source_id=rep.id,
            meta={"reference": reference, "supplier": supplier},
        )
        if commit:
            await db.commit()
    except DomainError:
        if commit:
            await db.rollback()
        raise
    except SQLAlchemyError as e:
        if commit:
            await db.rollback()
        logger.error("Fallo registrando reposición product_id=%s qty=%s: %s", product_id, quantity, e)
        raise StorageError("Erreur lors de l'enregistrement du réapprovisionnement") from e

    if not commit:
        return rep
    log_event(
        "replenishment:recorded",
        correlation_id=correlation_id,
        user_id=user_id,
        product_id=product_id,
        replenishment_id=rep.id,
        quantity=quantity,
        balance_after=balance,
    )
    return rep


async def list_replenishments(
    db: AsyncSession, *, user_id: int, limit: int = 100, offset: int = 0
) -> list[tuple[StockReplenishment, str]]:
    """Reposiciones del usuario (más recientes primero) con el nombre del producto."""
    stmt = (
        select(StockReplenishment, Product.name)
        .join(Product, Product.id == StockReplenishment.product_id)
        .where(StockReplenishment.user_id == user_id)
        .order_by(StockReplenishment.created_at.desc(), StockReplenishment.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return [(r, name) for r, name in (await db.execute(stmt)).all()]


async def count_replenishments(db: AsyncSession, *, user_id: int) -> int:
    return int(
        await db.scalar(
            select(func.count()).select_from(StockReplenishment).where(StockReplenishment.user_id == user_id)
        )
        or 0
    )


async def list_product_replenishments(
    db: AsyncSession, *, user_id: int, product_id: int
) -> list[StockReplenishment]:
    product = await db.scalar(
        select(Product.id).where(Product.id == product_id, Product.user_id == user_id)
    )
    if product is None:
        raise NotFound(f"Produit {product_id} introuvable")
    stmt = (
        select(StockReplenishment)
        .where(StockReplenishment.product_id == product_id, StockReplenishment.user_id == user_id)
        .order_by(StockReplenishment.created_at.desc(), StockReplenishment.id.desc())
    )
    return list((await db.execute(stmt)).scalars())
