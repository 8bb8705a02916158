# NG-HEADER: Nombre de archivo: alerts.py
# NG-HEADER: Ubicación: services/routers/alerts.py
# NG-HEADER: Descripción: Router API de alertas de negocio (stock y cobros)
# NG-HEADER: Lineamientos: Ver AGENTS.md

"""
Router para alertas de negocio.

Endpoints:
- GET /alerts - Listar alertas con filtros y paginación
- GET /alerts/stats - Estadísticas
- POST /alerts - Alta manual (mismo upsert por entidad)
- PATCH /alerts/mark-all-read - Marcar todas como leídas
- DELETE /alerts/cleanup - Borrar resueltas antiguas
- POST /alerts/generate[/stock|/overdue|/payment-due] - Pasadas del motor
- GET /alerts/{id} - Detalle
- PATCH /alerts/{id}/read, PATCH /alerts/{id}/resolve, DELETE /alerts/{id}
"""

from __future__ import annotations

import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from db.session import get_session
from services.alerts import engine, store
from services.alerts.metadata import normalize_metadata
from services.auth import SessionData, require_csrf, require_user
from services.errors import ValidationError
from services.schemas import (
    AlertIn,
    AlertListOut,
    AlertOut,
    AlertStatsOut,
    AlertType,
    CountOut,
    GenerationOut,
    Severity,
)

router = APIRouter(prefix="/alerts", tags=["alerts"])


def _cid(request: Request) -> Optional[str]:
    return getattr(request.state, "correlation_id", None)


# ==================== CONSULTAS ====================

@router.get("", response_model=AlertListOut, summary="Listar alertas")
async def list_alerts(
    unread_only: bool = Query(False, alias="unreadOnly"),
    type: Optional[AlertType] = Query(None),
    severity: Optional[Severity] = Query(None),
    resolved: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200, alias="pageSize"),
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    items, total = await store.list_alerts(
        db,
        user_id=sess.user_id,
        unread_only=unread_only,
        type=type,
        severity=severity,
        resolved=resolved,
        page=page,
        page_size=page_size,
    )
    return AlertListOut(
        items=[AlertOut.model_validate(a) for a in items],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total else 0,
    )


@router.get("/stats", response_model=AlertStatsOut, summary="Estadísticas de alertas")
async def alert_stats(
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    return AlertStatsOut(**await store.get_alert_statistics(db, user_id=sess.user_id))


# ==================== OPERACIONES EN LOTE ====================
# Declaradas antes de /{alert_id} para que no las capture la ruta dinámica

@router.patch("/mark-all-read", response_model=CountOut, dependencies=[Depends(require_csrf)])
async def mark_all_read(
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    n = await store.mark_all_read(db, user_id=sess.user_id)
    return CountOut(message=f"{n} alerte(s) marquée(s) comme lue(s)", count=n)


@router.delete("/cleanup", response_model=CountOut, dependencies=[Depends(require_csrf)])
async def cleanup_alerts(
    days: Optional[int] = Query(None, ge=0),
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    retention = settings.alert_retention_days if days is None else days
    n = await store.cleanup_alerts(db, user_id=sess.user_id, days=retention)
    return CountOut(message=f"{n} alerte(s) supprimée(s)", count=n)


@router.post("", response_model=AlertOut, status_code=201, dependencies=[Depends(require_csrf)])
async def create_alert(
    payload: AlertIn,
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    try:
        meta = normalize_metadata(payload.type, payload.metadata)
    except PydanticValidationError as e:
        raise ValidationError(f"Métadonnées invalides pour {payload.type}: {e.error_count()} erreur(s)")
    alert, _ = await store.upsert_alert(
        db,
        user_id=sess.user_id,
        type=payload.type,
        severity=payload.severity,
        title=payload.title,
        message=payload.message,
        entity_type=payload.entity_type,
        entity_id=payload.entity_id,
        meta=meta,
    )
    return AlertOut.model_validate(alert)


# ==================== MOTOR ====================

@router.post("/generate/stock", response_model=GenerationOut, dependencies=[Depends(require_csrf)])
async def generate_stock(
    request: Request,
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    res = await engine.generate_stock_alerts(db, user_id=sess.user_id, correlation_id=_cid(request))
    return GenerationOut(
        message=f"{res.created} alerte(s) de stock générée(s)",
        count=res.created,
        existing=res.existing,
        resolved=res.resolved,
    )


@router.post("/generate/overdue", response_model=GenerationOut, dependencies=[Depends(require_csrf)])
async def generate_overdue(
    request: Request,
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    res = await engine.generate_overdue_invoice_alerts(db, user_id=sess.user_id, correlation_id=_cid(request))
    return GenerationOut(
        message=f"{res.created} alerte(s) de facture échue générée(s)",
        count=res.created,
        existing=res.existing,
        resolved=res.resolved,
    )


@router.post("/generate/payment-due", response_model=GenerationOut, dependencies=[Depends(require_csrf)])
async def generate_payment_due(
    request: Request,
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    res = await engine.generate_payment_due_alerts(db, user_id=sess.user_id, correlation_id=_cid(request))
    return GenerationOut(
        message=f"{res.created} alerte(s) d'échéance générée(s)",
        count=res.created,
        existing=res.existing,
        resolved=res.resolved,
    )


@router.post("/generate", response_model=GenerationOut, dependencies=[Depends(require_csrf)])
async def generate_all(
    request: Request,
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    results = await engine.generate_all_alerts(db, user_id=sess.user_id, correlation_id=_cid(request))
    total = sum(results.values(), engine.GenerationResult())
    return GenerationOut(
        message=f"{total.created} alerte(s) générée(s)",
        count=total.created,
        existing=total.existing,
        resolved=total.resolved,
    )


# ==================== ALERTA INDIVIDUAL ====================

@router.get("/{alert_id}", response_model=AlertOut)
async def get_alert(
    alert_id: int,
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    return AlertOut.model_validate(await store.get_alert(db, user_id=sess.user_id, alert_id=alert_id))


@router.patch("/{alert_id}/read", response_model=AlertOut, dependencies=[Depends(require_csrf)])
async def mark_read(
    alert_id: int,
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    return AlertOut.model_validate(await store.mark_read(db, user_id=sess.user_id, alert_id=alert_id))


@router.patch("/{alert_id}/resolve", response_model=AlertOut, dependencies=[Depends(require_csrf)])
async def resolve_alert(
    alert_id: int,
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    return AlertOut.model_validate(await store.resolve_alert(db, user_id=sess.user_id, alert_id=alert_id))


@router.delete("/{alert_id}", status_code=204, dependencies=[Depends(require_csrf)])
async def delete_alert(
    alert_id: int,
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    await store.delete_alert(db, user_id=sess.user_id, alert_id=alert_id)
