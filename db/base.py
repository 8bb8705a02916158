# NG-HEADER: Nombre de archivo: base.py
# NG-HEADER: Ubicación: db/base.py
# NG-HEADER: Descripción: Declaración base de SQLAlchemy para los modelos ORM.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Declarative base para los modelos.

Los CHECK llevan nombre explícito en cada modelo; el resto de restricciones
e índices sin nombre siguen esta convención (estable entre SQLite y Postgres).
"""
from sqlalchemy import MetaData
from sqlalchemy.orm import declarative_base

NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

Base = declarative_base(metadata=MetaData(naming_convention=NAMING_CONVENTION))
