# NG-HEADER: Nombre de archivo: errors.py
# NG-HEADER: Ubicación: services/errors.py
# NG-HEADER: Descripción: Jerarquía de errores de dominio y su mapeo HTTP.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Errores de dominio.

Los servicios lanzan estas excepciones; ``services.api`` las traduce a JSON
``{"detail": mensaje, "code": codigo, ...extra}`` con el ``status_code`` de
cada clase.
"""
from __future__ import annotations

from typing import Any, Optional


class DomainError(Exception):
    status_code: int = 400
    code: str = "domain_error"

    def __init__(self, message: str, *, extra: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.extra: dict[str, Any] = dict(extra or {})

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": self.message, "code": self.code}
        payload.update(self.extra)
        return payload


class ValidationError(DomainError):
    status_code = 422
    code = "validation_error"


class NotFound(DomainError):
    status_code = 404
    code = "not_found"


class InsufficientStock(DomainError):
    status_code = 409
    code = "insufficient_stock"

    def __init__(self, product_id: int, requested: int, available: int) -> None:
        super().__init__(
            f"Stock insuffisant pour le produit {product_id}: demandé {requested}, disponible {available}",
            extra={"productId": product_id, "requested": requested, "available": available},
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class InvalidTransition(ValidationError):
    status_code = 409
    code = "invalid_transition"


class StorageError(DomainError):
    status_code = 503
    code = "storage_error"
