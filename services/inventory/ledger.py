# NG-HEADER: Nombre de archivo: ledger.py
# NG-HEADER: Ubicación: services/inventory/ledger.py
# NG-HEADER: Descripción: Movimientos atómicos de stock con registro en el libro.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Libro de stock por producto.

Única vía para mutar ``Product.stock``. Cada cambio se aplica con un
``UPDATE`` condicional (nunca leer-modificar-escribir) y deja un
``StockMovement`` con el saldo resultante. No hace commit: el llamador define
la unidad de trabajo.
"""
from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Product, StockMovement
from services.errors import InsufficientStock, NotFound, ValidationError


def _check_quantity(quantity: Any) -> int:
    # bool es subclase de int: se rechaza explícitamente
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("La quantité doit être un entier positif")
    if quantity <= 0:
        raise ValidationError("La quantité doit être supérieure à 0")
    return quantity


async def _balance(db: AsyncSession, product_id: int) -> int:
    return int((await db.execute(select(Product.stock).where(Product.id == product_id))).scalar_one())


async def increase_stock(
    db: AsyncSession,
    product_id: int,
    quantity: int,
    *,
    user_id: int,
    source_type: str = "replenishment",
    source_id: Optional[int] = None,
    meta: Optional[dict] = None,
) -> int:
    """Suma ``quantity`` al stock y devuelve el nuevo saldo."""
    qty = _check_quantity(quantity)
    res = await db.execute(
        update(Product)
        .where(Product.id == product_id, Product.user_id == user_id)
        .values(stock=Product.stock + qty)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise NotFound(f"Produit {product_id} introuvable")
    balance = await _balance(db, product_id)
    db.add(
        StockMovement(
            product_id=product_id,
            source_type=source_type,
            source_id=source_id,
            delta=qty,
            balance_after=balance,
            meta=meta,
        )
    )
    return balance


async def decrease_stock(
    db: AsyncSession,
    product_id: int,
    quantity: int,
    *,
    user_id: int,
    source_type: str = "invoice",
    source_id: Optional[int] = None,
    meta: Optional[dict] = None,
) -> int:
    """Resta ``quantity`` del stock; falla con ``InsufficientStock`` si no alcanza."""
    qty = _check_quantity(quantity)
    res = await db.execute(
        update(Product)
        .where(Product.id == product_id, Product.user_id == user_id, Product.stock >= qty)
        .values(stock=Product.stock - qty)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        available = (
            await db.execute(
                select(Product.stock).where(Product.id == product_id, Product.user_id == user_id)
            )
        ).scalar_one_or_none()
        if available is None:
            raise NotFound(f"Produit {product_id} introuvable")
        raise InsufficientStock(product_id, qty, int(available))
    balance = await _balance(db, product_id)
    db.add(
        StockMovement(
            product_id=product_id,
            source_type=source_type,
            source_id=source_id,
            delta=-qty,
            balance_after=balance,
            meta=meta,
        )
    )
    return balance
