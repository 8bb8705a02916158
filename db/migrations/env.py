# NG-HEADER: Nombre de archivo: env.py
# NG-HEADER: Ubicación: db/migrations/env.py
# NG-HEADER: Descripción: Script de entorno Alembic: carga .env, prepara logging y ejecuta migraciones
# NG-HEADER: Lineamientos: Ver AGENTS.md
import os
import logging
from pathlib import Path
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config
from sqlalchemy.engine import make_url
from sqlalchemy.pool import NullPool
from dotenv import load_dotenv

# Logger estandar para todas las operaciones del módulo
logger = logging.getLogger("alembic.env")

# Config Alembic
config = context.config

# Logging (si alembic.ini tiene secciones de logging)
if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

# === Cargar variables desde .env ===
REPO_ROOT = Path(__file__).resolve().parents[2]
dotenv_path = REPO_ROOT / ".env"
load_dotenv(dotenv_path)
logger.info("Archivo .env: %s (exists=%s)", dotenv_path, dotenv_path.exists())


def _sync_url() -> str:
    """URL de DB_URL (o la de settings) convertida a driver síncrono."""
    raw = os.getenv("DB_URL")
    if not raw:
        from core.config import settings

        raw = settings.db_url
    url = make_url(raw)
    if url.drivername == "sqlite+aiosqlite":
        url = url.set(drivername="sqlite")
    return url.render_as_string(hide_password=False)


db_url = _sync_url()
logger.info("DB_URL: %s", make_url(db_url).render_as_string(hide_password=True))

# === Importar metadatos del proyecto ===
from db.base import Base  # noqa: E402
import db.models  # noqa: F401,E402

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    context.configure(
        url=db_url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        render_as_batch=db_url.startswith("sqlite"),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = db_url
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=NullPool)
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        try:
            with context.begin_transaction():
                context.run_migrations()
            logger.info("Migraciones aplicadas con éxito")
        except Exception:
            logger.exception("Error al ejecutar migraciones")
            raise


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
