# NG-HEADER: Nombre de archivo: health.py
# NG-HEADER: Ubicación: services/routers/health.py
# NG-HEADER: Descripción: Endpoints de healthcheck del backend y la base de datos.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Endpoints de health.

- Liveness básico (`/health`)
- Conectividad DB (`/health/db`)
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db.session import get_db

router = APIRouter(prefix="/health", tags=["health"])
logger = logging.getLogger("gestio.health")
START_TIME = time.monotonic()


@router.get("")
async def health_root() -> Dict[str, Any]:
    """Liveness simple del backend (si responde, está vivo)."""
    return {"status": "ok", "uptime_s": round(time.monotonic() - START_TIME, 1)}


@router.get("/db")
async def health_db(db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    t0 = time.perf_counter()
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("Healthcheck DB falló: %s", e)
        return {"ok": False, "detail": str(e)}
    return {"ok": True, "latency_ms": round((time.perf_counter() - t0) * 1000, 2)}
