# NG-HEADER: Nombre de archivo: ctx_logger.py
# NG-HEADER: Ubicación: services/logging/ctx_logger.py
# NG-HEADER: Descripción: Eventos de dominio estructurados y decorador de pasos.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Helpers de logging estructurado.

Provee:
- make_correlation_id: id corto para seguir una operación de punta a punta
- log_event: una línea JSON por evento de dominio en el logger ``gestio.events``
  (y opcionalmente en un archivo NDJSON, ver ``EVENTS_NDJSON_PATH``)
- log_step: decorador async que registra inicio/fin/error con duración
"""
from __future__ import annotations

import functools
import json
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Coroutine, Dict, Optional

from core.config import settings

logger = logging.getLogger("gestio.events")


def make_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


def _now_iso() -> str:
    return datetime.utcnow().isoformat() + "Z"


def _append_ndjson(line: str) -> None:
    path = settings.events_ndjson_path
    if not path:
        return
    try:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        with open(p, "a", encoding="utf-8") as f:
            f.write(line + "\n")
    except OSError:
        logger.warning("No se pudo escribir el evento en %s", path, exc_info=True)


def log_event(
    step: str,
    *,
    level: str = "INFO",
    correlation_id: Optional[str] = None,
    user_id: Optional[int] = None,
    message: Optional[str] = None,
    **fields: Any,
) -> None:
    obj: Dict[str, Any] = {
        "created_at": _now_iso(),
        "correlation_id": correlation_id,
        "user_id": user_id,
        "step": step,
        "level": level,
        "message": message,
    }
    obj.update(fields or {})
    line = json.dumps(obj, ensure_ascii=False, default=str)
    logger.log(getattr(logging, level.upper(), logging.INFO), line)
    _append_ndjson(line)


def log_step(step: str) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Coroutine[Any, Any, Any]]]:
    def decorator(func: Callable[..., Awaitable[Any]]):
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            cid: str = kwargs.get("correlation_id") or make_correlation_id()
            user_id: Optional[int] = kwargs.get("user_id")
            t0 = datetime.utcnow()
            log_event(f"{step}:start", correlation_id=cid, user_id=user_id)
            try:
                res = await func(*args, **kwargs)
                dur = (datetime.utcnow() - t0).total_seconds() * 1000.0
                log_event(f"{step}:end", correlation_id=cid, user_id=user_id, duration_ms=round(dur, 2))
                return res
            except Exception as e:
                dur = (datetime.utcnow() - t0).total_seconds() * 1000.0
                log_event(
                    f"{step}:error",
                    level="ERROR",
                    correlation_id=cid,
                    user_id=user_id,
                    duration_ms=round(dur, 2),
                    error=str(e),
                )
                raise

        return wrapper

    return decorator
