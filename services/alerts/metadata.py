# NG-HEADER: Nombre de archivo: metadata.py
# NG-HEADER: Ubicación: services/alerts/metadata.py
# NG-HEADER: Descripción: Variantes tipadas del campo metadata de las alertas.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Metadata tipada por tipo de alerta (se persiste con claves camelCase)."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _AlertMetadata(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class StockAlertMetadata(_AlertMetadata):
    product_name: str
    current_stock: int
    alert_threshold: Optional[int] = None


class InvoiceAlertMetadata(_AlertMetadata):
    invoice_number: str
    client_name: str
    days_past_due: int
    amount: Optional[float] = None
    due_date: Optional[datetime] = None


class PaymentDueMetadata(_AlertMetadata):
    invoice_number: str
    client_name: str
    days_until_due: int
    amount: Optional[float] = None
    due_date: Optional[datetime] = None


AlertMetadata = Union[StockAlertMetadata, InvoiceAlertMetadata, PaymentDueMetadata]

_BY_TYPE: dict[str, type[_AlertMetadata]] = {
    "low_stock": StockAlertMetadata,
    "critical_stock": StockAlertMetadata,
    "overdue_invoice": InvoiceAlertMetadata,
    "payment_due": PaymentDueMetadata,
}


def normalize_metadata(alert_type: str, raw: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Valida ``raw`` contra la variante del tipo; lanza ``pydantic.ValidationError``."""
    if raw is None:
        return None
    model = _BY_TYPE.get(alert_type)
    if model is None:
        return dict(raw)
    return model.model_validate(raw).dump()
