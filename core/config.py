# NG-HEADER: Nombre de archivo: config.py
# NG-HEADER: Ubicación: core/config.py
# NG-HEADER: Descripción: Constantes y configuración central de la aplicación.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Configuración central de Gestio."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from dotenv import load_dotenv

# Marcadores que deben sustituirse en producción
SECRET_KEY_PLACEHOLDER = "REEMPLAZAR_SECRET_KEY"
ADMIN_PASS_PLACEHOLDER = "REEMPLAZAR_ADMIN_PASS"

# Carga automática de variables definidas en .env
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _expand_local(origins: list[str]) -> list[str]:
    """Duplica ``localhost``/``127.0.0.1`` para evitar errores de CORS en desarrollo."""
    out: set[str] = set()
    for o in origins:
        o = o.strip()
        if not o:
            continue
        out.add(o)
        if o.startswith("http://localhost:"):
            out.add(o.replace("http://localhost:", "http://127.0.0.1:"))
        if o.startswith("http://127.0.0.1:"):
            out.add(o.replace("http://127.0.0.1:", "http://localhost:"))
    return sorted(out)


@dataclass
class Settings:
    """Parámetros de configuración leídos de variables de entorno."""

    env: str = os.getenv("ENV", "dev")
    db_url: str = os.getenv("DB_URL", "")
    # Soporte para componer la URL si no se pasa DB_URL directamente
    db_host: str = os.getenv("DB_HOST", "localhost")
    db_port: str = os.getenv("DB_PORT", "5432")
    db_name: str = os.getenv("DB_NAME", "gestio")
    db_user: str = os.getenv("DB_USER", "")
    db_pass: str = os.getenv("DB_PASS", "")
    secret_key: str = os.getenv("SECRET_KEY", SECRET_KEY_PLACEHOLDER)
    admin_user: str = os.getenv("ADMIN_USER", "admin")
    admin_pass: str = os.getenv("ADMIN_PASS", ADMIN_PASS_PLACEHOLDER)
    session_expire_minutes: int = int(
        os.getenv("SESSION_EXPIRE_MINUTES", "1440")
    )  # duración de la sesión en minutos (1 día por defecto)
    cookie_secure: bool = _env_bool("COOKIE_SECURE", "false")
    cookie_domain: str | None = os.getenv("COOKIE_DOMAIN") or None
    allowed_origins: list[str] = field(default_factory=list)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    # Archivo NDJSON opcional para eventos de dominio (vacío = solo logger)
    events_ndjson_path: str = os.getenv("EVENTS_NDJSON_PATH", "")

    # Alertas de negocio
    alert_retention_days: int = int(os.getenv("ALERT_RETENTION_DAYS", "30"))
    payment_due_days: int = int(os.getenv("PAYMENT_DUE_DAYS", "3"))
    default_alert_stock: int = int(os.getenv("DEFAULT_ALERT_STOCK", "10"))
    alerts_auto_refresh: bool = _env_bool("ALERTS_AUTO_REFRESH", "true")

    def __post_init__(self) -> None:
        if not self.db_url:
            # Intentar construir desde variables sueltas
            if self.db_pass:
                from urllib.parse import quote_plus as _qp
                pw_enc = _qp(self.db_pass)
            else:
                pw_enc = ""
            if self.db_user and pw_enc:
                self.db_url = f"postgresql+psycopg://{self.db_user}:{pw_enc}@{self.db_host}:{self.db_port}/{self.db_name}"
            elif self.db_user:
                self.db_url = f"postgresql+psycopg://{self.db_user}@{self.db_host}:{self.db_port}/{self.db_name}"
        if not self.db_url:
            if self.env == "dev":
                # Fallback amigable para no bloquear el arranque local sin Postgres
                self.db_url = "sqlite+aiosqlite:///./dev.db"
            else:
                raise RuntimeError("DB_URL debe definirse en el entorno")
        if self.secret_key == SECRET_KEY_PLACEHOLDER:
            if self.env == "dev":
                self.secret_key = "dev-secret-key"
            else:
                raise RuntimeError(
                    "SECRET_KEY debe sobrescribirse; reemplace el placeholder 'REEMPLAZAR_SECRET_KEY'"
                )
        if self.admin_pass == ADMIN_PASS_PLACEHOLDER:
            if self.env == "dev":
                # Fallback de desarrollo (NO usar en producción)
                self.admin_pass = "admin1234"
            else:
                raise RuntimeError(
                    "ADMIN_PASS debe sobrescribirse; reemplace el placeholder 'REEMPLAZAR_ADMIN_PASS'"
                )
        if self.default_alert_stock < 1:
            logging.getLogger("gestio.config").warning(
                "DEFAULT_ALERT_STOCK=%s inválido; se usa 10", self.default_alert_stock
            )
            self.default_alert_stock = 10

        raw = os.getenv("ALLOWED_ORIGINS", "").split(",")
        origins = [o.strip() for o in raw if o.strip()]
        if self.env == "dev":
            if not origins:
                origins = ["http://localhost:5173"]
            origins = _expand_local(origins)
        elif not origins:
            raise RuntimeError(
                "En producción, ALLOWED_ORIGINS debe definir al menos un origen"
            )
        self.allowed_origins = origins


settings = Settings()
