"""
Taxonomía de errores de facturación.

Cada error lleva un `kind` discriminado que los llamadores evalúan
explícitamente, y una `category` que determina el código HTTP:

- validation -> 400
- not_found  -> 404
- conflict   -> 409
- internal   -> 500
"""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INTERNAL = "internal"


class ErrorKind(str, Enum):
    VALIDATION_ERROR = "validation_error"
    INVALID_LINE_ITEM = "invalid_line_item"
    EMPTY_INVOICE = "empty_invoice"
    INVALID_PAYMENT = "invalid_payment"
    PRODUCT_NOT_FOUND = "product_not_found"
    CLIENT_NOT_FOUND = "client_not_found"
    SERIES_NOT_FOUND = "series_not_found"
    INVOICE_NOT_FOUND = "invoice_not_found"
    PAYMENT_TYPE_NOT_FOUND = "payment_type_not_found"
    INSUFFICIENT_STOCK = "insufficient_stock"
    PAYMENT_MISMATCH = "payment_mismatch"
    ALREADY_VOIDED = "already_voided"
    DUPLICATE_INVOICE_NUMBER = "duplicate_invoice_number"
    STORAGE_ERROR = "storage_error"


STATUS_BY_CATEGORY = {
    ErrorCategory.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorCategory.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCategory.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCategory.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class InvoicingError(Exception):
    kind: ErrorKind = ErrorKind.STORAGE_ERROR
    category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    @property
    def status_code(self) -> int:
        return STATUS_BY_CATEGORY[self.category]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "kind": self.kind.value,
            # Montos como texto exacto ("201.60"), nunca float
            "context": jsonable_encoder(self.context, custom_encoder={Decimal: str}),
        }


# ===== Validación (400) =====

class InvalidRequest(InvoicingError):
    kind = ErrorKind.VALIDATION_ERROR
    category = ErrorCategory.VALIDATION


class InvalidLineItem(InvoicingError):
    kind = ErrorKind.INVALID_LINE_ITEM
    category = ErrorCategory.VALIDATION

    def __init__(self, message: str, product_id: Optional[int] = None, field: Optional[str] = None):
        super().__init__(message, {"id_producto": product_id, "campo": field})
        self.product_id = product_id
        self.field = field


class EmptyInvoice(InvoicingError):
    kind = ErrorKind.EMPTY_INVOICE
    category = ErrorCategory.VALIDATION

    def __init__(self):
        super().__init__("La factura debe incluir al menos un producto")


class InvalidPayment(InvoicingError):
    kind = ErrorKind.INVALID_PAYMENT
    category = ErrorCategory.VALIDATION


# ===== No encontrado (404) =====

class ProductNotFound(InvoicingError):
    kind = ErrorKind.PRODUCT_NOT_FOUND
    category = ErrorCategory.NOT_FOUND

    def __init__(self, product_ids: List[int]):
        ids = ", ".join(str(p) for p in product_ids)
        super().__init__(f"Producto(s) no encontrado(s): {ids}", {"productos": product_ids})
        self.product_ids = product_ids


class ClientNotFound(InvoicingError):
    kind = ErrorKind.CLIENT_NOT_FOUND
    category = ErrorCategory.NOT_FOUND

    def __init__(self, client_id: int):
        super().__init__("Cliente no encontrado", {"id_cliente": client_id})


class SeriesNotFound(InvoicingError):
    kind = ErrorKind.SERIES_NOT_FOUND
    category = ErrorCategory.NOT_FOUND

    def __init__(self, series_id: int):
        super().__init__("Serie de factura no válida", {"id_serie": series_id})
        self.series_id = series_id


class InvoiceNotFound(InvoicingError):
    kind = ErrorKind.INVOICE_NOT_FOUND
    category = ErrorCategory.NOT_FOUND

    def __init__(self, invoice_ref: Any):
        super().__init__("Factura no encontrada", {"factura": invoice_ref})


class PaymentTypeNotFound(InvoicingError):
    kind = ErrorKind.PAYMENT_TYPE_NOT_FOUND
    category = ErrorCategory.NOT_FOUND

    def __init__(self, payment_type_ids: List[int]):
        super().__init__("Tipo de pago no válido", {"tipos_pago": payment_type_ids})


# ===== Conflicto (409) =====

class InsufficientStock(InvoicingError):
    kind = ErrorKind.INSUFFICIENT_STOCK
    category = ErrorCategory.CONFLICT

    def __init__(self, items: List[Dict[str, Any]]):
        ids = [item["id_producto"] for item in items]
        super().__init__(
            f"Stock insuficiente para producto(s): {', '.join(str(i) for i in ids)}",
            {"productos": items}
        )
        self.product_ids = ids


class PaymentMismatch(InvoicingError):
    kind = ErrorKind.PAYMENT_MISMATCH
    category = ErrorCategory.CONFLICT

    def __init__(self, expected: Decimal, actual: Decimal):
        super().__init__(
            f"El total de pagos ({actual:.2f}) no coincide con el total de la factura ({expected:.2f})",
            {"esperado": expected, "recibido": actual}
        )
        self.expected = expected
        self.actual = actual


class AlreadyVoided(InvoicingError):
    kind = ErrorKind.ALREADY_VOIDED
    category = ErrorCategory.CONFLICT

    def __init__(self, invoice_id: int):
        super().__init__("La factura ya está anulada", {"id_factura": invoice_id})


class DuplicateInvoiceNumber(InvoicingError):
    kind = ErrorKind.DUPLICATE_INVOICE_NUMBER
    category = ErrorCategory.CONFLICT

    def __init__(self, series_id: int):
        super().__init__("El número de factura ya fue asignado en esta serie", {"id_serie": series_id})


# ===== Interno (500) =====

class StorageError(InvoicingError):
    kind = ErrorKind.STORAGE_ERROR
    category = ErrorCategory.INTERNAL


# ===== Handlers =====

def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


async def invoicing_error_handler(request: Request, exc: InvoicingError) -> JSONResponse:
    if exc.category == ErrorCategory.INTERNAL:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind.value} - {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.kind.value} - {exc.message}")
    body = exc.to_dict()
    body["timestamp"] = _timestamp()
    return JSONResponse(status_code=exc.status_code, content=body)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"campo": ".".join(str(loc) for loc in err.get("loc", ())), "mensaje": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": "Datos de entrada inválidos",
            "kind": ErrorKind.VALIDATION_ERROR.value,
            "context": {"errores": errors},
            "timestamp": _timestamp(),
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(InvoicingError, invoicing_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
