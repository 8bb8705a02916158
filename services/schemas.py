# NG-HEADER: Nombre de archivo: schemas.py
# NG-HEADER: Ubicación: services/schemas.py
# NG-HEADER: Descripción: Modelos Pydantic de entrada/salida de la API (camelCase).
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Esquemas de la API.

La API externa habla camelCase; los cuerpos aceptan también snake_case.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


AlertType = Literal["low_stock", "critical_stock", "overdue_invoice", "payment_due"]
Severity = Literal["low", "medium", "high", "critical"]
InvoiceStatus = Literal["en_attente", "payee", "partiellement_reglee"]


# --- Clientes ---

class ClientIn(ApiModel):
    name: str = Field(min_length=1, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    company: Optional[str] = None


class ClientOut(ApiModel):
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    company: Optional[str] = None
    created_at: datetime


# --- Productos ---

class ProductIn(ApiModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    price_ht: Decimal = Field(default=Decimal("0"), ge=0)
    alert_stock: Optional[int] = Field(default=None, ge=1)
    category_id: Optional[int] = None
    initial_stock: int = Field(default=0, ge=0)


class ProductPatch(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    price_ht: Optional[Decimal] = Field(default=None, ge=0)
    alert_stock: Optional[int] = Field(default=None, ge=1)
    category_id: Optional[int] = None


class ProductOut(ApiModel):
    id: int
    name: str
    description: Optional[str] = None
    price_ht: Decimal
    stock: int
    alert_stock: int
    category_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    @field_serializer("price_ht")
    def _money(self, v: Decimal) -> float:
        return float(v)


class StockMovementOut(ApiModel):
    id: int
    source_type: str
    source_id: Optional[int] = None
    delta: int
    balance_after: int
    meta: Optional[Dict[str, Any]] = None
    created_at: datetime


class StockHistoryOut(ApiModel):
    product_id: int
    items: List[StockMovementOut]
    total: int
    page: int
    page_size: int
    total_pages: int


# --- Reposiciones ---

class ReplenishmentIn(ApiModel):
    # Validación de dominio en el servicio (ValidationError -> 422 con código propio)
    product_id: int
    quantity: int
    cost_per_unit: Optional[Decimal] = None
    supplier: Optional[str] = Field(default=None, max_length=255)
    reference: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None


class ReplenishmentOut(ApiModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    quantity: int
    cost_per_unit: Optional[Decimal] = None
    total_cost: Optional[Decimal] = None
    supplier: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    @field_serializer("cost_per_unit", "total_cost")
    def _money(self, v: Optional[Decimal]) -> Optional[float]:
        return float(v) if v is not None else None


class ReplenishmentListOut(ApiModel):
    items: List[ReplenishmentOut]
    total: int
    page: int
    page_size: int
    total_pages: int


# --- Facturas ---

class InvoiceItemIn(ApiModel):
    product_id: Optional[int] = None
    product_name: Optional[str] = None
    quantity: int = Field(gt=0)
    price_ht: Decimal = Field(ge=0)


class InvoiceIn(ApiModel):
    client_id: int
    number: Optional[str] = Field(default=None, max_length=50)
    tva_rate: Decimal = Decimal("0")
    payment_method: str = "cash"
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    items: List[InvoiceItemIn] = Field(min_length=1)


class InvoiceStatusIn(ApiModel):
    status: InvoiceStatus


class InvoiceItemOut(ApiModel):
    id: int
    product_id: Optional[int] = None
    product_name: str
    quantity: int
    price_ht: Decimal
    total_ht: Decimal

    @field_serializer("price_ht", "total_ht")
    def _money(self, v: Decimal) -> float:
        return float(v)


class InvoiceOut(ApiModel):
    id: int
    number: str
    client_id: int
    client_name: Optional[str] = None
    status: InvoiceStatus
    tva_rate: Decimal
    total_ht: Decimal
    total_tva: Decimal
    total_ttc: Decimal
    payment_method: str
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime
    items: List[InvoiceItemOut] = []

    @field_serializer("tva_rate", "total_ht", "total_tva", "total_ttc")
    def _money(self, v: Decimal) -> float:
        return float(v)


# --- Alertas ---

class AlertIn(ApiModel):
    type: AlertType
    severity: Severity = "medium"
    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1)
    entity_type: Optional[Literal["product", "invoice", "client"]] = None
    entity_id: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None


class AlertOut(ApiModel):
    id: int
    type: AlertType
    severity: Severity
    title: str
    message: str
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias="meta")
    is_read: bool
    is_resolved: bool
    created_at: datetime
    updated_at: datetime


class AlertListOut(ApiModel):
    items: List[AlertOut]
    total: int
    page: int
    page_size: int
    total_pages: int


class AlertStatsOut(ApiModel):
    total: int
    unread: int
    unresolved: int
    critical: int
    by_type: Dict[str, int]


class GenerationOut(ApiModel):
    message: str
    count: int
    existing: int = 0
    resolved: int = 0


class CountOut(ApiModel):
    message: str
    count: int
