# NG-HEADER: Nombre de archivo: models.py
# NG-HEADER: Ubicación: db/models.py
# NG-HEADER: Descripción: Modelos ORM de usuarios, catálogo, facturación, stock y alertas.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Modelos principales de la base de datos."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


# --- Usuarios y sesiones ---

class User(Base):
    """Usuario del sistema; dueño de todos los datos de negocio."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    identifier: Mapped[Optional[str]] = mapped_column(
        String(64), unique=True, index=True, nullable=True
    )
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(100))
    company: Mapped[Optional[str]] = mapped_column(String(255))
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        CheckConstraint("role IN ('user','admin')", name="ck_users_role"),
    )


class Session(Base):
    """Sesiones persistidas para autenticación mediante cookies."""

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    csrf_token: Mapped[str] = mapped_column(String(100), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    ip: Mapped[Optional[str]] = mapped_column(String(100))
    user_agent: Mapped[Optional[str]] = mapped_column(String(200))

    __table_args__ = (
        CheckConstraint("role IN ('guest','user','admin')", name="ck_sessions_role"),
    )

    user: Mapped[Optional["User"]] = relationship()


# --- Catálogo ---

class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    company: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)

    invoices: Mapped[list["Invoice"]] = relationship(back_populates="client")


class Product(Base):
    """Producto con su stock actual y umbral de alerta.

    ``stock`` solo cambia a través del libro de stock (reposiciones y
    liquidación de facturas); nunca puede quedar negativo.
    """

    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("alert_stock >= 1", name="ck_products_alert_stock_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text)
    price_ht: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=0)
    stock: Mapped[int] = mapped_column(Integer, default=0)
    alert_stock: Mapped[int] = mapped_column(Integer, default=10)
    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)

    category: Mapped[Optional["Category"]] = relationship()
    replenishments: Mapped[list["StockReplenishment"]] = relationship(back_populates="product")


# --- Stock ---

class StockReplenishment(Base):
    """Reposición de stock (auditoría inmutable: nunca se edita ni se borra)."""

    __tablename__ = "stock_replenishments"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_replenishments_quantity"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), index=True)
    quantity: Mapped[int] = mapped_column(Integer)
    cost_per_unit: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2), nullable=True)
    total_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2), nullable=True)
    supplier: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)

    product: Mapped["Product"] = relationship(back_populates="replenishments")


class StockMovement(Base):
    """Libro de movimientos de stock (delta y saldo resultante por producto)."""

    __tablename__ = "stock_movements"
    __table_args__ = (
        CheckConstraint(
            "source_type IN ('replenishment','invoice')",
            name="ck_stock_movements_source_type",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), index=True)
    source_type: Mapped[str] = mapped_column(String(20))
    source_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    delta: Mapped[int] = mapped_column(Integer)
    balance_after: Mapped[int] = mapped_column(Integer)
    meta: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)


# --- Facturación ---

class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (
        CheckConstraint(
            "status IN ('en_attente','payee','partiellement_reglee')",
            name="ck_invoices_status",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    number: Mapped[str] = mapped_column(String(50))
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id"))
    status: Mapped[str] = mapped_column(String(30), default="en_attente")
    tva_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=0)
    total_ht: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=0)
    total_tva: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=0)
    total_ttc: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=0)
    payment_method: Mapped[str] = mapped_column(String(50), default="cash")
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)

    client: Mapped["Client"] = relationship(back_populates="invoices")
    items: Mapped[list["InvoiceItem"]] = relationship(
        back_populates="invoice", cascade="all, delete-orphan"
    )


class InvoiceItem(Base):
    __tablename__ = "invoice_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_invoice_items_quantity"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id", ondelete="CASCADE"), index=True)
    # Línea libre (sin producto) permitida: no afecta stock
    product_id: Mapped[Optional[int]] = mapped_column(ForeignKey("products.id"), nullable=True)
    product_name: Mapped[str] = mapped_column(String(255))
    quantity: Mapped[int] = mapped_column(Integer)
    price_ht: Mapped[Decimal] = mapped_column(Numeric(15, 2))
    total_ht: Mapped[Decimal] = mapped_column(Numeric(15, 2))

    invoice: Mapped["Invoice"] = relationship(back_populates="items")


class Sale(Base):
    """Venta generada al liquidar una línea de factura con producto."""

    __tablename__ = "sales"

    id: Mapped[int] = mapped_column(primary_key=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id", ondelete="CASCADE"), index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"))
    quantity: Mapped[int] = mapped_column(Integer)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(15, 2))
    total: Mapped[Decimal] = mapped_column(Numeric(15, 2))
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)


# --- Alertas de negocio ---

class BusinessAlert(Base):
    __tablename__ = "business_alerts"
    __table_args__ = (
        CheckConstraint(
            "type IN ('low_stock','critical_stock','overdue_invoice','payment_due')",
            name="ck_business_alerts_type",
        ),
        CheckConstraint(
            "severity IN ('low','medium','high','critical')",
            name="ck_business_alerts_severity",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    type: Mapped[str] = mapped_column(String(50))
    severity: Mapped[str] = mapped_column(String(20), default="medium")
    title: Mapped[str] = mapped_column(String(255))
    message: Mapped[str] = mapped_column(Text)
    # 'product' | 'invoice' | 'client' (referencia polimórfica)
    entity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # Nota: 'metadata' es un nombre reservado en SQLAlchemy; usamos 'meta' como atributo
    # pero conservamos el nombre de columna 'metadata' a nivel de base de datos.
    meta: Mapped[Optional[dict]] = mapped_column(JSON, name="metadata", nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    is_resolved: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)


# Una sola alerta abierta por (usuario, tipo, entidad)
Index(
    "ux_business_alerts_open_entity",
    BusinessAlert.user_id,
    BusinessAlert.type,
    BusinessAlert.entity_type,
    BusinessAlert.entity_id,
    unique=True,
    sqlite_where=BusinessAlert.is_resolved == false(),
    postgresql_where=BusinessAlert.is_resolved == false(),
)
