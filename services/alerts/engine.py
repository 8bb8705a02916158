# NG-HEADER: Nombre de archivo: engine.py
# NG-HEADER: Ubicación: services/alerts/engine.py
# NG-HEADER: Descripción: Derivación de alertas de stock y de cobro a partir de datos vivos.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""
Motor de alertas de negocio.

Cada pasada recorre los datos del usuario, crea las alertas que faltan
(upsert por entidad: nunca dos alertas abiertas del mismo tipo para la misma
entidad) y resuelve las abiertas cuya condición ya no se cumple.

Pasadas:
- stock: ``stock == 0`` -> critical_stock; ``stock <= alert_stock`` -> low_stock
- overdue: facturas impagas con vencimiento pasado -> overdue_invoice
- payment_due: facturas impagas que vencen dentro de ``PAYMENT_DUE_DAYS`` días
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from db.models import BusinessAlert, Client, Invoice, Product
from services.alerts.metadata import InvoiceAlertMetadata, PaymentDueMetadata, StockAlertMetadata
from services.alerts.store import resolve_open_alerts, upsert_alert
from services.errors import StorageError
from services.logging.ctx_logger import log_step

logger = logging.getLogger("gestio.alerts")

STOCK_TYPES = ("low_stock", "critical_stock")
PAID = "payee"


@dataclass
class GenerationResult:
    created: int = 0
    existing: int = 0
    resolved: int = 0

    def __add__(self, other: "GenerationResult") -> "GenerationResult":
        return GenerationResult(
            self.created + other.created,
            self.existing + other.existing,
            self.resolved + other.resolved,
        )

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


# ==================== CLASIFICACIÓN ====================

def classify_stock(stock: int, alert_stock: int) -> Optional[tuple[str, str]]:
    """Devuelve ``(tipo, severidad)`` o ``None`` si el stock está sano."""
    if stock <= 0:
        return "critical_stock", "critical"
    if stock <= alert_stock:
        return "low_stock", "medium"
    return None


def overdue_severity(days_past_due: int) -> str:
    if days_past_due > 30:
        return "critical"
    elif days_past_due > 7:
        return "high"
    return "medium"


def days_between(later: datetime, earlier: datetime) -> int:
    # timedelta.days ya es floor para valores positivos
    return (later - earlier).days


# ==================== PASADAS ====================

async def _open_alerts(db: AsyncSession, user_id: int, types: tuple[str, ...]) -> list[BusinessAlert]:
    stmt = select(BusinessAlert).where(
        BusinessAlert.user_id == user_id,
        BusinessAlert.type.in_(types),
        BusinessAlert.is_resolved == False,  # noqa: E712
    )
    return list((await db.execute(stmt.execution_options(populate_existing=True))).scalars())


async def _resolve_stale(db: AsyncSession, stale: list[BusinessAlert]) -> int:
    if not stale:
        return 0
    try:
        n = await resolve_open_alerts(db, stale)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise StorageError("Erreur lors de la résolution des alertes obsolètes") from e
    return n


@log_step("alerts:stock")
async def generate_stock_alerts(
    db: AsyncSession,
    *,
    user_id: int,
    correlation_id: Optional[str] = None,
) -> GenerationResult:
    """Genera alertas ``low_stock``/``critical_stock`` para los productos del usuario."""
    result = GenerationResult()
    # Filas planas: un rollback dentro de upsert_alert no debe expirar lo que se recorre
    products = (
        await db.execute(
            select(Product.id, Product.name, Product.stock, Product.alert_stock)
            .where(Product.user_id == user_id)
            .order_by(Product.id)
        )
    ).all()
    wanted: dict[int, tuple[str, str]] = {}
    for p in products:
        cls = classify_stock(int(p.stock or 0), int(p.alert_stock or settings.default_alert_stock))
        if cls is not None:
            wanted[p.id] = cls

    stale = [
        a for a in await _open_alerts(db, user_id, STOCK_TYPES)
        if a.entity_type != "product" or wanted.get(a.entity_id, (None,))[0] != a.type
    ]
    result.resolved = await _resolve_stale(db, stale)

    for p in products:
        if p.id not in wanted:
            continue
        alert_type, severity = wanted[p.id]
        stock = int(p.stock or 0)
        if alert_type == "critical_stock":
            title = "Rupture de stock"
            message = f'Le produit "{p.name}" est en rupture de stock'
        else:
            title = "Stock faible"
            message = f'Le produit "{p.name}" a un stock faible ({stock} unités restantes)'
        meta = StockAlertMetadata(
            product_name=p.name, current_stock=stock, alert_threshold=p.alert_stock
        ).dump()
        _, created = await upsert_alert(
            db,
            user_id=user_id,
            type=alert_type,
            severity=severity,
            title=title,
            message=message,
            entity_type="product",
            entity_id=p.id,
            meta=meta,
        )
        if created:
            result.created += 1
        else:
            result.existing += 1

    logger.info(
        "[ALERT] Pasada stock usuario %s: %s creada(s), %s existente(s), %s resuelta(s)",
        user_id, result.created, result.existing, result.resolved,
    )
    return result


async def _unpaid_invoices(db: AsyncSession, user_id: int) -> list:
    """Facturas impagas con vencimiento, como filas planas junto al nombre del cliente."""
    stmt = (
        select(
            Invoice.id, Invoice.number, Invoice.due_date, Invoice.total_ttc, Client.name.label("client_name")
        )
        .join(Client, Client.id == Invoice.client_id)
        .where(
            Invoice.user_id == user_id,
            Invoice.status != PAID,
            Invoice.due_date.is_not(None),
        )
        .order_by(Invoice.id)
    )
    return list((await db.execute(stmt)).all())


@log_step("alerts:overdue")
async def generate_overdue_invoice_alerts(
    db: AsyncSession,
    *,
    user_id: int,
    now: Optional[datetime] = None,
    correlation_id: Optional[str] = None,
) -> GenerationResult:
    """Genera alertas ``overdue_invoice`` para facturas impagas vencidas."""
    now = now or datetime.utcnow()
    result = GenerationResult()
    overdue = [inv for inv in await _unpaid_invoices(db, user_id) if inv.due_date < now]
    overdue_ids = {inv.id for inv in overdue}

    stale = [
        a for a in await _open_alerts(db, user_id, ("overdue_invoice",))
        if a.entity_type != "invoice" or a.entity_id not in overdue_ids
    ]
    result.resolved = await _resolve_stale(db, stale)

    for inv in overdue:
        days = days_between(now, inv.due_date)
        meta = InvoiceAlertMetadata(
            invoice_number=inv.number,
            client_name=inv.client_name,
            days_past_due=days,
            amount=float(inv.total_ttc or 0),
            due_date=inv.due_date,
        ).dump()
        _, created = await upsert_alert(
            db,
            user_id=user_id,
            type="overdue_invoice",
            severity=overdue_severity(days),
            title="Facture échue",
            message=f"La facture {inv.number} de {inv.client_name} est échue depuis {days} jour(s)",
            entity_type="invoice",
            entity_id=inv.id,
            meta=meta,
        )
        if created:
            result.created += 1
        else:
            result.existing += 1

    logger.info(
        "[ALERT] Pasada vencidas usuario %s: %s creada(s), %s existente(s), %s resuelta(s)",
        user_id, result.created, result.existing, result.resolved,
    )
    return result


@log_step("alerts:payment_due")
async def generate_payment_due_alerts(
    db: AsyncSession,
    *,
    user_id: int,
    now: Optional[datetime] = None,
    window_days: Optional[int] = None,
    correlation_id: Optional[str] = None,
) -> GenerationResult:
    """Genera alertas ``payment_due`` para facturas que vencen pronto."""
    now = now or datetime.utcnow()
    horizon = now + timedelta(days=settings.payment_due_days if window_days is None else window_days)
    result = GenerationResult()
    due_soon = [
        inv for inv in await _unpaid_invoices(db, user_id) if now <= inv.due_date <= horizon
    ]
    due_ids = {inv.id for inv in due_soon}

    stale = [
        a for a in await _open_alerts(db, user_id, ("payment_due",))
        if a.entity_type != "invoice" or a.entity_id not in due_ids
    ]
    result.resolved = await _resolve_stale(db, stale)

    for inv in due_soon:
        days = days_between(inv.due_date, now)
        meta = PaymentDueMetadata(
            invoice_number=inv.number,
            client_name=inv.client_name,
            days_until_due=days,
            amount=float(inv.total_ttc or 0),
            due_date=inv.due_date,
        ).dump()
        _, created = await upsert_alert(
            db,
            user_id=user_id,
            type="payment_due",
            severity="medium",
            title="Échéance proche",
            message=f"La facture {inv.number} de {inv.client_name} arrive à échéance dans {days} jour(s)",
            entity_type="invoice",
            entity_id=inv.id,
            meta=meta,
        )
        if created:
            result.created += 1
        else:
            result.existing += 1
    return result


async def generate_all_alerts(
    db: AsyncSession,
    *,
    user_id: int,
    now: Optional[datetime] = None,
    correlation_id: Optional[str] = None,
) -> dict[str, GenerationResult]:
    return {
        "stock": await generate_stock_alerts(db, user_id=user_id, correlation_id=correlation_id),
        "overdue": await generate_overdue_invoice_alerts(
            db, user_id=user_id, now=now, correlation_id=correlation_id
        ),
        "payment_due": await generate_payment_due_alerts(
            db, user_id=user_id, now=now, correlation_id=correlation_id
        ),
    }


async def refresh_stock_alerts(
    db: AsyncSession,
    *,
    user_id: int,
    correlation_id: Optional[str] = None,
) -> Optional[GenerationResult]:
    """Pasada de stock posterior a un movimiento ya confirmado.

    Respeta ``ALERTS_AUTO_REFRESH``. Un fallo aquí no revierte el movimiento:
    se registra con traceback y la alerta se regenerará en la próxima pasada.
    """
    if not settings.alerts_auto_refresh:
        return None
    try:
        return await generate_stock_alerts(db, user_id=user_id, correlation_id=correlation_id)
    except (StorageError, SQLAlchemyError):
        logger.exception("[ALERT] Falló el refresco automático de alertas de stock (usuario %s)", user_id)
        return None
