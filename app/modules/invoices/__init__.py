"""
Módulo de Facturación

Núcleo transaccional de facturación de ventas:

- Motor de precios (pricing.py): descuentos, impuesto y totales en Decimal
- Validación de stock (stock.py): disponibilidad por línea, sin efectos
- Asignación de números (sequence.py): correlativo por serie, atómico
- Conciliación de pagos (payments.py): suma de pagos contra el total
- Construcción de facturas (service.py): validar, asignar número,
  persistir y descontar inventario en una sola transacción
- Anulación: Activa -> Anulada, sin restaurar inventario

Tablas principales:
- facturas: Encabezado de factura
- detalle_facturas: Líneas con snapshot del producto
- medios_pago_factura: Pagos aplicados a la factura
- series_facturas: Prefijo y correlativo por serie
- tipos_pago: Catálogo de medios de pago
"""

from .models import Invoice, InvoiceLine, PaymentAllocation, InvoiceSeries, PaymentType, InvoiceStatus
from .schemas import InvoiceCreate, InvoiceOut, InvoiceDetail, InvoiceVoidRequest
from .service import InvoiceService
from .router import router

__all__ = [
    "Invoice", "InvoiceLine", "PaymentAllocation", "InvoiceSeries", "PaymentType", "InvoiceStatus",
    "InvoiceCreate", "InvoiceOut", "InvoiceDetail", "InvoiceVoidRequest",
    "InvoiceService",
    "router"
]
