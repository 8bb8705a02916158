# NG-HEADER: Nombre de archivo: store.py
# NG-HEADER: Ubicación: services/alerts/store.py
# NG-HEADER: Descripción: Persistencia y ciclo de vida de alertas de negocio.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Almacén de alertas de negocio.

Todas las consultas filtran por ``user_id``: una alerta de otro usuario se
trata como inexistente.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import BusinessAlert
from services.errors import NotFound, StorageError, ValidationError

logger = logging.getLogger("gestio.alerts")

ALERT_TYPES = ("low_stock", "critical_stock", "overdue_invoice", "payment_due")
SEVERITIES = ("low", "medium", "high", "critical")


def _owned(user_id: int):
    return BusinessAlert.user_id == user_id


async def list_alerts(
    db: AsyncSession,
    *,
    user_id: int,
    unread_only: bool = False,
    type: Optional[str] = None,
    severity: Optional[str] = None,
    resolved: Optional[bool] = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[BusinessAlert], int]:
    """Lista paginada, más recientes primero. Devuelve ``(items, total)``."""
    conditions = [_owned(user_id)]
    if unread_only:
        conditions.append(BusinessAlert.is_read == False)  # noqa: E712
    if type:
        conditions.append(BusinessAlert.type == type)
    if severity:
        conditions.append(BusinessAlert.severity == severity)
    if resolved is not None:
        conditions.append(BusinessAlert.is_resolved == resolved)

    total = int(
        await db.scalar(select(func.count()).select_from(BusinessAlert).where(and_(*conditions))) or 0
    )
    stmt = (
        select(BusinessAlert)
        .where(and_(*conditions))
        .order_by(BusinessAlert.created_at.desc(), BusinessAlert.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .execution_options(populate_existing=True)
    )
    return list((await db.execute(stmt)).scalars()), total


async def get_alert(db: AsyncSession, *, user_id: int, alert_id: int) -> BusinessAlert:
    alert = await db.scalar(
        select(BusinessAlert)
        .where(BusinessAlert.id == alert_id, _owned(user_id))
        .execution_options(populate_existing=True)
    )
    if alert is None:
        raise NotFound(f"Alerte {alert_id} introuvable")
    return alert


async def find_open_alert(
    db: AsyncSession,
    *,
    user_id: int,
    type: str,
    entity_type: Optional[str],
    entity_id: Optional[int],
) -> Optional[BusinessAlert]:
    stmt = select(BusinessAlert).where(
        _owned(user_id),
        BusinessAlert.type == type,
        BusinessAlert.is_resolved == False,  # noqa: E712
    )
    stmt = stmt.where(
        BusinessAlert.entity_type.is_(None) if entity_type is None else BusinessAlert.entity_type == entity_type
    )
    stmt = stmt.where(
        BusinessAlert.entity_id.is_(None) if entity_id is None else BusinessAlert.entity_id == entity_id
    )
    return await db.scalar(
        stmt.order_by(BusinessAlert.id).limit(1).execution_options(populate_existing=True)
    )


async def upsert_alert(
    db: AsyncSession,
    *,
    user_id: int,
    type: str,
    severity: str,
    title: str,
    message: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    meta: Optional[dict[str, Any]] = None,
) -> tuple[BusinessAlert, bool]:
    """Crea la alerta salvo que ya exista una abierta para la misma entidad.

    Si existe, refresca severidad/título/mensaje/metadata en el lugar.
    Devuelve ``(alerta, creada)``.
    """
    if type not in ALERT_TYPES:
        raise ValidationError(f"Type d'alerte inconnu: {type}")
    if severity not in SEVERITIES:
        raise ValidationError(f"Sévérité inconnue: {severity}")

    existing = await find_open_alert(
        db, user_id=user_id, type=type, entity_type=entity_type, entity_id=entity_id
    )
    try:
        if existing is not None:
            if (existing.severity, existing.title, existing.message, existing.meta) != (severity, title, message, meta):
                existing.severity = severity
                existing.title = title
                existing.message = message
                existing.meta = meta
                await db.commit()
            return existing, False

        alert = BusinessAlert(
            user_id=user_id,
            type=type,
            severity=severity,
            title=title,
            message=message,
            entity_type=entity_type,
            entity_id=entity_id,
            meta=meta,
            is_read=False,
            is_resolved=False,
        )
        db.add(alert)
        await db.commit()
    except IntegrityError:
        # Otra transacción insertó la misma alerta abierta primero
        await db.rollback()
        winner = await find_open_alert(
            db, user_id=user_id, type=type, entity_type=entity_type, entity_id=entity_id
        )
        if winner is None:
            raise
        logger.info("[ALERT] Inserción concurrente descartada: %s %s#%s", type, entity_type, entity_id)
        return winner, False
    except SQLAlchemyError as e:
        await db.rollback()
        raise StorageError("Erreur lors de l'enregistrement de l'alerte") from e

    logger.info("[ALERT] Creada alerta %s para %s#%s (severidad %s)", type, entity_type, entity_id, severity)
    return alert, True


async def mark_read(db: AsyncSession, *, user_id: int, alert_id: int) -> BusinessAlert:
    alert = await get_alert(db, user_id=user_id, alert_id=alert_id)
    if not alert.is_read:
        alert.is_read = True
        await db.commit()
    return alert


async def resolve_alert(db: AsyncSession, *, user_id: int, alert_id: int) -> BusinessAlert:
    """Marca la alerta como resuelta (y leída)."""
    alert = await get_alert(db, user_id=user_id, alert_id=alert_id)
    if not (alert.is_resolved and alert.is_read):
        alert.is_resolved = True
        alert.is_read = True
        await db.commit()
        logger.info("[ALERT] Alerta %s resuelta por usuario %s", alert_id, user_id)
    return alert


async def delete_alert(db: AsyncSession, *, user_id: int, alert_id: int) -> None:
    alert = await get_alert(db, user_id=user_id, alert_id=alert_id)
    await db.delete(alert)
    await db.commit()


async def mark_all_read(db: AsyncSession, *, user_id: int) -> int:
    res = await db.execute(
        update(BusinessAlert)
        .where(_owned(user_id), BusinessAlert.is_read == False)  # noqa: E712
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return int(res.rowcount or 0)


async def resolve_open_alerts(db: AsyncSession, alerts: Iterable[BusinessAlert]) -> int:
    """Resuelve (y marca leídas) las alertas dadas. No hace commit."""
    n = 0
    for alert in alerts:
        alert.is_resolved = True
        alert.is_read = True
        n += 1
    if n:
        await db.flush()
    return n


async def resolve_entity_alerts(
    db: AsyncSession,
    *,
    user_id: int,
    entity_type: str,
    entity_id: int,
    types: Iterable[str],
) -> int:
    """Resuelve las alertas abiertas de una entidad. No hace commit."""
    stmt = select(BusinessAlert).where(
        _owned(user_id),
        BusinessAlert.entity_type == entity_type,
        BusinessAlert.entity_id == entity_id,
        BusinessAlert.type.in_(list(types)),
        BusinessAlert.is_resolved == False,  # noqa: E712
    )
    return await resolve_open_alerts(db, (await db.execute(stmt)).scalars().all())


async def cleanup_alerts(
    db: AsyncSession,
    *,
    user_id: int,
    days: int,
    now: Optional[datetime] = None,
) -> int:
    """Borra alertas resueltas cuya última actualización supera ``days`` días.

    ``days=0`` borra todas las resueltas. Las no resueltas nunca se tocan.
    """
    if days < 0:
        raise ValidationError("Le nombre de jours doit être positif ou nul")
    conditions = [_owned(user_id), BusinessAlert.is_resolved == True]  # noqa: E712
    if days > 0:
        cutoff = (now or datetime.utcnow()) - timedelta(days=days)
        conditions.append(BusinessAlert.updated_at < cutoff)
    res = await db.execute(
        delete(BusinessAlert).where(and_(*conditions)).execution_options(synchronize_session=False)
    )
    await db.commit()
    deleted = int(res.rowcount or 0)
    if deleted:
        logger.info("[ALERT] Limpieza: %s alerta(s) resuelta(s) eliminada(s) (usuario %s)", deleted, user_id)
    return deleted


async def get_alert_statistics(db: AsyncSession, *, user_id: int) -> dict[str, Any]:
    base = select(func.count()).select_from(BusinessAlert).where(_owned(user_id))
    total = await db.scalar(base) or 0
    unread = await db.scalar(base.where(BusinessAlert.is_read == False)) or 0  # noqa: E712
    unresolved = await db.scalar(base.where(BusinessAlert.is_resolved == False)) or 0  # noqa: E712
    critical = await db.scalar(
        base.where(BusinessAlert.is_resolved == False, BusinessAlert.severity == "critical")  # noqa: E712
    ) or 0
    rows = (
        await db.execute(
            select(BusinessAlert.type, func.count())
            .where(_owned(user_id), BusinessAlert.is_resolved == False)  # noqa: E712
            .group_by(BusinessAlert.type)
        )
    ).all()
    by_type = {t: 0 for t in ALERT_TYPES}
    by_type.update({t: int(c) for t, c in rows})
    return {
        "total": int(total),
        "unread": int(unread),
        "unresolved": int(unresolved),
        "critical": int(critical),
        "by_type": by_type,
    }
