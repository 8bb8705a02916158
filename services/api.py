# NG-HEADER: Nombre de archivo: api.py
# NG-HEADER: Ubicación: services/api.py
# NG-HEADER: Descripción: Aplicación FastAPI principal: logging, middleware, handlers y routers.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Aplicación FastAPI principal de Gestio."""

# --- Windows psycopg async fix (no-op en otros SO) ---
import sys, asyncio
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
# --- end fix ---

import logging
from logging.handlers import RotatingFileHandler
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi import HTTPException as FastHTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from core.config import settings
from db.session import engine, is_memory_url
from db.base import Base
import db.models  # noqa: F401  (puebla la metadata)
from services.auth import require_csrf  # para override condicional en dev
from services.errors import DomainError
from services.logging.ctx_logger import make_correlation_id
from .routers import alerts, auth, clients, health, invoices, products, stock_replenishments

level_name = (settings.log_level or "INFO").strip().upper()
if level_name not in logging._nameToLevel:
    level_name = "INFO"
logger = logging.getLogger("gestio")
logger.setLevel(level_name)
LOG_DIR = Path(__file__).resolve().parents[1] / "logs"
fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
stream_handler = logging.StreamHandler()
stream_handler.setFormatter(fmt)

file_handler = None
try:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    # delay=True evita abrir el archivo hasta el primer log
    file_handler = RotatingFileHandler(
        str(LOG_DIR / "backend.log"), maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8", delay=True
    )
    file_handler.setFormatter(fmt)
    logger.addHandler(file_handler)
except OSError:
    # Sin permisos: continuar solo con consola
    file_handler = None

logger.addHandler(stream_handler)

handlers = [h for h in (file_handler, stream_handler) if h is not None]
for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
    logging.getLogger(name).handlers = handlers
    logging.getLogger(name).setLevel(level_name)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Auto-crea el esquema cuando usamos SQLite en memoria (tests)."""
    if is_memory_url(str(engine.url)):
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Esquema en memoria inicializado")
    yield


# `redirect_slashes=False` evita redirecciones 307 entre `/ruta` y `/ruta/`,
# lo que rompe las solicitudes *preflight* de CORS.
app = FastAPI(title="Gestio", redirect_slashes=False, lifespan=lifespan)

logger.info("DB effective URL: %s", engine.url.render_as_string(hide_password=True))


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Registra cada solicitud y captura excepciones con un correlation-id."""
    start = time.perf_counter()
    corr = request.headers.get("x-correlation-id") or request.headers.get("x-request-id") or make_correlation_id()
    request.state.correlation_id = corr
    try:
        resp = await call_next(request)
    except (FastHTTPException, StarletteHTTPException):
        # Deja que FastAPI maneje HTTPException (403/404/400, etc.)
        raise
    except Exception:
        dur = (time.perf_counter() - start) * 1000
        logger.exception("EXC %s %s cid=%s (%.2fms)", request.method, request.url.path, corr, dur)
        return JSONResponse(
            {"detail": "Erreur interne du serveur", "correlation_id": corr},
            status_code=500,
            headers={"X-Correlation-Id": corr},
        )
    dur = (time.perf_counter() - start) * 1000
    resp.headers["X-Correlation-Id"] = corr
    logger.info("%s %s -> %s cid=%s (%.2fms)", request.method, request.url.path, resp.status_code, corr, dur)
    return resp


# --- Exception Handlers ---
@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):  # type: ignore[override]
    """Traduce errores de dominio a JSON ``{"detail", "code", ...}``."""
    log = logger.warning if exc.status_code >= 500 else logger.info
    log("%s %s -> %s %s: %s", request.method, request.url.path, exc.status_code, exc.code, exc.message)
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):  # type: ignore[override]
    """409 genérico sin filtrar detalles del motor."""
    logger.warning("IntegrityError %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse({"detail": "conflict", "code": "conflict"}, status_code=409)


# Handler para errores de validación (422) sin cambiar el contrato
@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
    """Registra detalles de validación por campo y devuelve el formato por defecto."""
    flat = [
        {"loc": ".".join(str(p) for p in e.get("loc", [])), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in exc.errors()
    ]
    logger.warning("Validación fallida 422 %s %s: %s", request.method, request.url.path, flat)
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(health.router)
app.include_router(clients.router)
app.include_router(products.router)
app.include_router(stock_replenishments.router)
app.include_router(invoices.router)
app.include_router(alerts.router)

# Override CSRF en entorno de desarrollo para simplificar pruebas manuales
if settings.env == "dev":
    app.dependency_overrides[require_csrf] = lambda: None
