# NG-HEADER: Nombre de archivo: clients.py
# NG-HEADER: Ubicación: services/routers/clients.py
# NG-HEADER: Descripción: Endpoints de clientes (alta y listado).
# NG-HEADER: Lineamientos: Ver AGENTS.md
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Client
from db.session import get_session
from services.auth import SessionData, require_csrf, require_user
from services.schemas import ClientIn, ClientOut

router = APIRouter(prefix="/clients", tags=["clients"])


@router.post("", response_model=ClientOut, status_code=201, dependencies=[Depends(require_csrf)])
async def create_client(
    payload: ClientIn,
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    client = Client(**payload.model_dump(), user_id=sess.user_id)
    db.add(client)
    await db.commit()
    return ClientOut.model_validate(client)


@router.get("", response_model=list[ClientOut])
async def list_clients(
    q: Optional[str] = Query(None, max_length=100),
    sess: SessionData = Depends(require_user),
    db: AsyncSession = Depends(get_session),
):
    stmt = select(Client).where(Client.user_id == sess.user_id).order_by(Client.name, Client.id)
    if q:
        like = f"%{q}%"
        stmt = stmt.where(or_(Client.name.ilike(like), Client.email.ilike(like), Client.company.ilike(like)))
    return [ClientOut.model_validate(c) for c in (await db.execute(stmt)).scalars().all()]
