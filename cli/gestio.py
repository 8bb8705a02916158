# NG-HEADER: Nombre de archivo: gestio.py
# NG-HEADER: Ubicación: cli/gestio.py
# NG-HEADER: Descripción: CLI de administración: migraciones, usuarios y alertas.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""CLI principal de Gestio usando Typer."""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from sqlalchemy import select

from core.config import settings
from db.models import User
from db.session import SessionLocal

app = typer.Typer(help="Herramientas de línea de comandos para Gestio")

ROOT = Path(__file__).resolve().parents[1]


@app.command()
def db_init(create_all: bool = typer.Option(False, help="Crear tablas sin Alembic (solo SQLite local)")) -> None:
    """Inicializa la base de datos ejecutando las migraciones."""
    if create_all:
        from db.base import Base
        from db.session import engine
        import db.models  # noqa: F401

        async def _run() -> None:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

        asyncio.run(_run())
        typer.echo("Esquema creado (create_all)")
        return

    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "db" / "migrations"))
    command.upgrade(cfg, "head")
    typer.echo("Migraciones aplicadas")


@app.command()
def create_user(
    identifier: str,
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
    email: Optional[str] = None,
    name: Optional[str] = None,
    admin: bool = False,
) -> None:
    """Crea un usuario (rol ``user`` o ``admin``)."""
    from services.auth import hash_pw

    async def _run() -> int:
        async with SessionLocal() as session:
            exists = await session.scalar(select(User.id).where(User.identifier == identifier))
            if exists is not None:
                typer.echo(f"El usuario '{identifier}' ya existe (id={exists})")
                raise typer.Exit(code=1)
            user = User(
                identifier=identifier,
                email=email,
                name=name,
                password_hash=hash_pw(password),
                role="admin" if admin else "user",
            )
            session.add(user)
            await session.commit()
            return user.id

    uid = asyncio.run(_run())
    typer.echo(f"Usuario creado id={uid}")


async def _user_ids(session, user_id: Optional[int]) -> list[int]:
    if user_id is not None:
        return [user_id]
    return list((await session.execute(select(User.id).order_by(User.id))).scalars())


@app.command()
def generate_alerts(
    user_id: Optional[int] = typer.Option(None, help="Usuario a procesar (por defecto todos)"),
) -> None:
    """Ejecuta las pasadas de stock, vencidas y vencimientos próximos."""
    from services.alerts.engine import generate_all_alerts
    from services.logging.ctx_logger import make_correlation_id

    async def _run() -> None:
        async with SessionLocal() as session:
            for uid in await _user_ids(session, user_id):
                results = await generate_all_alerts(session, user_id=uid, correlation_id=make_correlation_id())
                summary = ", ".join(f"{k}: +{r.created}/-{r.resolved}" for k, r in results.items())
                typer.echo(f"usuario {uid}: {summary}")

    asyncio.run(_run())


@app.command()
def cleanup_alerts(
    days: int = typer.Option(settings.alert_retention_days, min=0, help="Antigüedad mínima en días"),
    user_id: Optional[int] = typer.Option(None, help="Usuario a procesar (por defecto todos)"),
) -> None:
    """Elimina alertas resueltas más antiguas que ``days``."""
    from services.alerts.store import cleanup_alerts as _cleanup

    async def _run() -> int:
        total = 0
        async with SessionLocal() as session:
            for uid in await _user_ids(session, user_id):
                total += await _cleanup(session, user_id=uid, days=days)
        return total

    typer.echo(f"{asyncio.run(_run())} alerta(s) eliminada(s)")


if __name__ == "__main__":
    app()
