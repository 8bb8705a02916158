# NG-HEADER: Nombre de archivo: invoices.py
# NG-HEADER: Ubicación: services/routers/invoices.py
# NG-HEADER: Descripción: Endpoints de facturas: alta, consulta, cambio de estado y liquidación.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Endpoints de facturas.

Pasar una factura a ``payee`` (por PATCH de estado o por ``/settle``) descuenta
el stock de sus líneas en una única transacción.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Invoice
from db.session import get_session
from services.alerts.engine import refresh_stock_alerts
from services.auth import SessionData, require_csrf, require_user
from services.invoicing import settlement
from services.schemas import InvoiceIn, InvoiceOut, InvoiceStatus, InvoiceStatusIn

router = APIRouter(prefix="/invoices", tags=["invoices"])


def _out(inv: Invoice) -> InvoiceOut:
    out = InvoiceOut.model_validate(inv)
    out.client_name = inv.client.name if inv.client else None
    return out


@router.post("", response_model=InvoiceOut, status_code=201, dependencies=[Depends(require_csrf)])
async def create_invoice(
    payload: InvoiceIn,
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    inv = await settlement.create_invoice(
        db,
        user_id=sess.user_id,
        client_id=payload.client_id,
        items=[
            settlement.LineInput(
                quantity=it.quantity,
                price_ht=it.price_ht,
                product_id=it.product_id,
                product_name=it.product_name,
            )
            for it in payload.items
        ],
        tva_rate=payload.tva_rate,
        number=payload.number,
        payment_method=payload.payment_method,
        due_date=payload.due_date,
        notes=payload.notes,
    )
    return _out(inv)


@router.get("", response_model=list[InvoiceOut])
async def list_invoices(
    status: Optional[InvoiceStatus] = Query(None),
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    return [_out(i) for i in await settlement.list_invoices(db, user_id=sess.user_id, status=status)]


@router.get("/{invoice_id}", response_model=InvoiceOut)
async def get_invoice(
    invoice_id: int,
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    return _out(await settlement.get_invoice(db, user_id=sess.user_id, invoice_id=invoice_id))


async def _after_settlement(db: AsyncSession, user_id: int, settled: bool, cid: Optional[str]) -> None:
    if settled:
        await refresh_stock_alerts(db, user_id=user_id, correlation_id=cid)


@router.patch("/{invoice_id}/status", response_model=InvoiceOut, dependencies=[Depends(require_csrf)])
async def update_status(
    invoice_id: int,
    payload: InvoiceStatusIn,
    request: Request,
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    cid = getattr(request.state, "correlation_id", None)
    inv, settled = await settlement.update_invoice_status(
        db, user_id=sess.user_id, invoice_id=invoice_id, status=payload.status, correlation_id=cid
    )
    out = _out(inv)
    await _after_settlement(db, sess.user_id, settled, cid)
    return out


@router.post("/{invoice_id}/settle", response_model=InvoiceOut, dependencies=[Depends(require_csrf)])
async def settle(
    invoice_id: int,
    request: Request,
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    cid = getattr(request.state, "correlation_id", None)
    inv, settled = await settlement.settle_invoice(
        db, user_id=sess.user_id, invoice_id=invoice_id, correlation_id=cid
    )
    out = _out(inv)
    await _after_settlement(db, sess.user_id, settled, cid)
    return out
