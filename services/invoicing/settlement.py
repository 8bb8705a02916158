# NG-HEADER: Nombre de archivo: settlement.py
# NG-HEADER: Ubicación: services/invoicing/settlement.py
# NG-HEADER: Descripción: Alta de facturas, cambios de estado y liquidación con descuento de stock.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Facturación.

Estados: ``en_attente`` y ``partiellement_reglee`` se intercambian libremente;
``payee`` es terminal y dispara la liquidación (descuento de stock, ventas y
resolución de alertas de cobro), todo en una sola transacción.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db.models import Client, Invoice, InvoiceItem, Product, Sale
from services.alerts.store import resolve_entity_alerts
from services.errors import DomainError, InvalidTransition, NotFound, StorageError, ValidationError
from services.inventory.ledger import decrease_stock
from services.logging.ctx_logger import log_event

logger = logging.getLogger("gestio.invoicing")

CENT = Decimal("0.01")
TAX_RATES = (0, 3, 5, 10, 15, 18, 21)
INVOICE_STATUSES = ("en_attente", "payee", "partiellement_reglee")
PAID = "payee"
PAYMENT_ALERT_TYPES = ("overdue_invoice", "payment_due")


@dataclass
class LineInput:
    quantity: int
    price_ht: Any
    product_id: Optional[int] = None
    product_name: Optional[str] = None


def _money(value: Any, field: str) -> Decimal:
    try:
        d = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Montant invalide: {field}")
    if not d.is_finite() or d < 0:
        raise ValidationError(f"Montant invalide: {field}")
    return d


def compute_totals(lines: Iterable[tuple[int, Decimal]], tva_rate: Decimal) -> tuple[Decimal, Decimal, Decimal]:
    """HT = Σ qty×prix ; TVA = HT×taux/100 arrondie au centime ; TTC = HT + TVA."""
    total_ht = sum((Decimal(q) * p for q, p in lines), Decimal("0")).quantize(CENT, rounding=ROUND_HALF_UP)
    total_tva = (total_ht * tva_rate / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)
    return total_ht, total_tva, total_ht + total_tva


async def next_invoice_number(db: AsyncSession, *, user_id: int, now: Optional[datetime] = None) -> str:
    year = (now or datetime.utcnow()).year
    prefix = f"FAC-{year}-"
    count = await db.scalar(
        select(func.count())
        .select_from(Invoice)
        .where(Invoice.user_id == user_id, Invoice.number.like(f"{prefix}%"))
    )
    return f"{prefix}{int(count or 0) + 1:04d}"


async def create_invoice(
    db: AsyncSession,
    *,
    user_id: int,
    client_id: int,
    items: list[LineInput],
    tva_rate: Any = 0,
    number: Optional[str] = None,
    payment_method: str = "cash",
    due_date: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> Invoice:
    if not items:
        raise ValidationError("La facture doit contenir au moins une ligne")
    rate = _money(tva_rate, "tvaRate")
    if rate not in {Decimal(r) for r in TAX_RATES}:
        raise ValidationError(f"Taux de TVA non autorisé: {tva_rate}")
    client = await db.scalar(select(Client).where(Client.id == client_id, Client.user_id == user_id))
    if client is None:
        raise NotFound(f"Client {client_id} introuvable")

    rows: list[InvoiceItem] = []
    for idx, line in enumerate(items, start=1):
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
            raise ValidationError(f"Ligne {idx}: la quantité doit être supérieure à 0")
        price = _money(line.price_ht, f"ligne {idx} prixHT")
        name = line.product_name
        if line.product_id is not None:
            product = await db.scalar(
                select(Product).where(Product.id == line.product_id, Product.user_id == user_id)
            )
            if product is None:
                raise NotFound(f"Produit {line.product_id} introuvable")
            name = name or product.name
        if not name:
            raise ValidationError(f"Ligne {idx}: désignation requise")
        rows.append(
            InvoiceItem(
                product_id=line.product_id,
                product_name=name,
                quantity=line.quantity,
                price_ht=price,
                total_ht=(Decimal(line.quantity) * price).quantize(CENT, rounding=ROUND_HALF_UP),
            )
        )

    total_ht, total_tva, total_ttc = compute_totals(((r.quantity, r.price_ht) for r in rows), rate)
    inv = Invoice(
        number=number or await next_invoice_number(db, user_id=user_id),
        client_id=client_id,
        status="en_attente",
        tva_rate=rate,
        total_ht=total_ht,
        total_tva=total_tva,
        total_ttc=total_ttc,
        payment_method=payment_method,
        due_date=due_date,
        notes=notes,
        user_id=user_id,
        items=rows,
    )
    try:
        db.add(inv)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise StorageError("Erreur lors de la création de la facture") from e
    log_event("invoice:created", user_id=user_id, invoice_id=inv.id, number=inv.number, total_ttc=str(total_ttc))
    return await get_invoice(db, user_id=user_id, invoice_id=inv.id)


async def get_invoice(db: AsyncSession, *, user_id: int, invoice_id: int) -> Invoice:
    inv = await db.scalar(
        select(Invoice)
        .options(selectinload(Invoice.items), selectinload(Invoice.client))
        .where(Invoice.id == invoice_id, Invoice.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    if inv is None:
        raise NotFound(f"Facture {invoice_id} introuvable")
    return inv


async def list_invoices(
    db: AsyncSession, *, user_id: int, status: Optional[str] = None
) -> list[Invoice]:
    stmt = (
        select(Invoice)
        .options(selectinload(Invoice.items), selectinload(Invoice.client))
        .where(Invoice.user_id == user_id)
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
    )
    if status:
        stmt = stmt.where(Invoice.status == status)
    return list((await db.execute(stmt)).scalars())


async def settle_invoice(
    db: AsyncSession,
    *,
    user_id: int,
    invoice_id: int,
    correlation_id: Optional[str] = None,
) -> tuple[Invoice, bool]:
    """Liquida una factura: descuenta stock por línea y la marca ``payee``.

    Devuelve ``(factura, liquidada_ahora)``. Si ya estaba pagada no hace nada.
    Ante ``InsufficientStock`` en cualquier línea se revierte todo.

    El paso a ``payee`` se reclama con un UPDATE condicional antes de tocar
    stock: de dos liquidaciones concurrentes sólo una ve ``rowcount == 1``.
    """
    inv = await get_invoice(db, user_id=user_id, invoice_id=invoice_id)
    if inv.status == PAID:
        return inv, False

    number = inv.number
    lines = [(it.id, it.product_id, it.quantity, it.price_ht, it.total_ht) for it in inv.items]
    now = datetime.utcnow()
    deltas: list[dict[str, int]] = []
    try:
        claimed = await db.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.user_id == user_id, Invoice.status != PAID)
            .values(status=PAID, paid_at=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            logger.info("Factura %s ya liquidada por otra transacción", invoice_id)
            return await get_invoice(db, user_id=user_id, invoice_id=invoice_id), False
        for item_id, product_id, quantity, price_ht, total_ht in lines:
            if product_id is None:
                continue
            balance = await decrease_stock(
                db,
                product_id,
                quantity,
                user_id=user_id,
                source_type="invoice",
                source_id=invoice_id,
                meta={"invoice_number": number, "item_id": item_id},
            )
            db.add(
                Sale(
                    invoice_id=invoice_id,
                    product_id=product_id,
                    quantity=quantity,
                    unit_price=price_ht,
                    total=total_ht,
                    user_id=user_id,
                )
            )
            deltas.append({"product_id": product_id, "delta": -quantity, "new": balance})
        resolved = await resolve_entity_alerts(
            db, user_id=user_id, entity_type="invoice", entity_id=invoice_id, types=PAYMENT_ALERT_TYPES
        )
        await db.commit()
    except DomainError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Fallo liquidando factura %s: %s", invoice_id, e)
        raise StorageError("Erreur lors du règlement de la facture") from e

    log_event(
        "invoice:settled",
        correlation_id=correlation_id,
        user_id=user_id,
        invoice_id=invoice_id,
        stock_deltas=deltas,
        alerts_resolved=resolved,
    )
    return await get_invoice(db, user_id=user_id, invoice_id=invoice_id), True


async def update_invoice_status(
    db: AsyncSession,
    *,
    user_id: int,
    invoice_id: int,
    status: str,
    correlation_id: Optional[str] = None,
) -> tuple[Invoice, bool]:
    """Cambia el estado. ``payee`` liquida; salir de ``payee`` no está permitido."""
    if status not in INVOICE_STATUSES:
        raise ValidationError(f"Statut inconnu: {status}")
    inv = await get_invoice(db, user_id=user_id, invoice_id=invoice_id)
    if status == PAID:
        return await settle_invoice(db, user_id=user_id, invoice_id=invoice_id, correlation_id=correlation_id)
    if inv.status == PAID:
        raise InvalidTransition("Une facture payée ne peut pas changer de statut")
    if inv.status != status:
        inv.status = status
        await db.commit()
    return inv, False
