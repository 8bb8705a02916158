# NG-HEADER: Nombre de archivo: conftest.py
# NG-HEADER: Ubicación: tests/conftest.py
# NG-HEADER: Descripción: Fixtures y configuración compartida de Pytest.
# NG-HEADER: Lineamientos: Ver AGENTS.md
import os
import sys
from decimal import Decimal
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio

# Asegurar path del proyecto antes de importar módulos internos
project_root = Path(__file__).resolve().parents[1]
if str(project_root) not in sys.path:
    sys.path.append(str(project_root))

# -------- Entorno base de tests --------
# DB en memoria compartida; ENV=dev evita exigir secretos de producción
os.environ["DB_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENV"] = "dev"
os.environ.setdefault("ALERTS_AUTO_REFRESH", "true")
os.environ.setdefault("EVENTS_NDJSON_PATH", "")

import db.session as _session  # noqa: E402
import db.base as _base  # noqa: E402
import db.models  # noqa: F401,E402
from db.models import Client, Invoice, InvoiceItem, Product, User  # noqa: E402

from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

Base = _base.Base


@pytest_asyncio.fixture(scope="function", autouse=True)
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """DB limpia por test (SQLite memoria compartida). Retorna sesión para usar en fixtures/tests."""
    engine = _session.engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with _session.SessionLocal() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


# -------- Usuarios y datos de ejemplo --------
@pytest_asyncio.fixture
async def user(db_session: AsyncSession) -> User:
    u = User(identifier="marie", email="marie@example.com", name="Marie", password_hash="x", role="user")
    db_session.add(u)
    await db_session.commit()
    return u


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    u = User(identifier="paul", email="paul@example.com", name="Paul", password_hash="x", role="user")
    db_session.add(u)
    await db_session.commit()
    return u


@pytest.fixture
def make_product(db_session: AsyncSession):
    """Factory: crea un producto ya confirmado en la base."""

    async def _make(owner: User, *, name: str = "Ciment 25kg", stock: int = 0, alert_stock: int = 10) -> Product:
        p = Product(
            name=name,
            price_ht=Decimal("12.50"),
            stock=stock,
            alert_stock=alert_stock,
            user_id=owner.id,
        )
        db_session.add(p)
        await db_session.commit()
        return p

    return _make


@pytest.fixture
def make_invoice(db_session: AsyncSession):
    """Factory: cliente + factura con líneas ``[(producto|None, cantidad)]``."""

    async def _make(owner: User, lines, *, status: str = "en_attente", due_date=None, number: str = "FAC-TEST-0001") -> Invoice:
        client = Client(name="SARL Dupont", user_id=owner.id)
        db_session.add(client)
        await db_session.flush()
        items = [
            InvoiceItem(
                product_id=p.id if p is not None else None,
                product_name=p.name if p is not None else "Main d'oeuvre",
                quantity=q,
                price_ht=Decimal("10.00"),
                total_ht=Decimal("10.00") * q,
            )
            for p, q in lines
        ]
        total = sum((i.total_ht for i in items), Decimal("0"))
        inv = Invoice(
            number=number,
            client_id=client.id,
            status=status,
            tva_rate=Decimal("0"),
            total_ht=total,
            total_tva=Decimal("0"),
            total_ttc=total,
            due_date=due_date,
            user_id=owner.id,
            items=items,
        )
        db_session.add(inv)
        await db_session.commit()
        return inv

    return _make


# -------- Overrides de auth/CSRF --------
from services.api import app  # noqa: E402
from services.auth import SessionData, current_session, require_csrf  # noqa: E402


def _as(u: User):
    return lambda: SessionData(None, u, u.role)


@pytest_asyncio.fixture
async def client(user: User) -> AsyncGenerator[AsyncClient, None]:
    """Cliente HTTP async autenticado como ``user``."""
    app.dependency_overrides[current_session] = _as(user)
    app.dependency_overrides[require_csrf] = lambda: None
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.pop(current_session, None)


@pytest_asyncio.fixture
async def other_client(other_user: User) -> AsyncGenerator[AsyncClient, None]:
    """Cliente HTTP async autenticado como ``other_user``.

    No combinar con ``client`` en el mismo test: ambos pisan el mismo override.
    """
    app.dependency_overrides[current_session] = _as(other_user)
    app.dependency_overrides[require_csrf] = lambda: None
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.pop(current_session, None)


@pytest_asyncio.fixture
async def anon_client() -> AsyncGenerator[AsyncClient, None]:
    """Cliente sin sesión (auth real: invitado)."""
    app.dependency_overrides.pop(current_session, None)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
