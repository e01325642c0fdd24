from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List
from datetime import date, datetime

from app.modules.invoices.models import InvoiceStatus


# ===== Validación de stock =====

class StockCheckItem(BaseModel):
    id_producto: int
    cantidad: Decimal = Field(..., gt=0, max_digits=12, decimal_places=3,
                              description="Cantidad solicitada, mayor a 0")


class StockCheckRequest(BaseModel):
    productos: List[StockCheckItem] = Field(..., min_length=1, description="Lista de productos a validar")
    id_sucursal: Optional[int] = Field(None, description="Sucursal a consultar; sin ella se suma el stock de todas")


class StockCheckLine(BaseModel):
    """Resultado de validación de stock por producto"""
    id_producto: int
    nombre: Optional[str] = None
    encontrado: bool = True
    disponible: bool
    stock_actual: Decimal
    cantidad_requerida: Decimal


class StockCheckResponse(BaseModel):
    es_valido: bool
    productos: List[StockCheckLine]


# ===== Creación de factura =====

class InvoiceLineCreate(BaseModel):
    id_producto: int
    # Escalas iguales a las columnas de InvoiceLine y PaymentAllocation
    cantidad: Decimal = Field(..., gt=0, max_digits=12, decimal_places=3,
                              description="Cantidad debe ser mayor a 0")
    precio_unitario: Optional[Decimal] = Field(None, ge=0, max_digits=15, decimal_places=2,
                                               description="Si se omite se usa el precio actual del producto")
    descuento_porcentaje: Optional[Decimal] = Field(None, ge=0, le=100, decimal_places=2,
                                                    description="Descuento entre 0 y 100")


class PaymentAllocationCreate(BaseModel):
    id_tipo_pago: int
    monto: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2,
                           description="Monto debe ser mayor a 0")
    numero_referencia: Optional[str] = Field(None, max_length=100)


class InvoiceCreate(BaseModel):
    id_cliente: int
    id_serie: int
    productos: List[InvoiceLineCreate]
    medios_pago: List[PaymentAllocationCreate] = Field(default_factory=list, alias="mediosPago")
    observaciones: Optional[str] = Field(None, max_length=1000)

    class Config:
        populate_by_name = True


class InvoiceVoidRequest(BaseModel):
    motivo: str = Field(..., min_length=1, max_length=500)

    @field_validator('motivo')
    @classmethod
    def validate_motivo(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Motivo de anulación requerido')
        return v


# ===== Respuestas =====

class InvoiceOut(BaseModel):
    id_factura: int = Field(validation_alias="id")
    numero_factura: str
    fecha_emision: datetime
    subtotal: Decimal
    descuento_total: Decimal
    impuesto: Decimal
    total: Decimal
    estado: InvoiceStatus

    class Config:
        from_attributes = True
        populate_by_name = True


class InvoiceLineOut(BaseModel):
    id_detalle: int = Field(validation_alias="id")
    id_producto: int
    codigo: str
    nombre: str
    unidad: str
    cantidad: Decimal
    precio_unitario: Decimal
    descuento_porcentaje: Decimal
    descuento_monto: Decimal
    subtotal: Decimal

    class Config:
        from_attributes = True
        populate_by_name = True


class PaymentAllocationOut(BaseModel):
    id_medio_pago: int = Field(validation_alias="id")
    id_tipo_pago: int
    tipo_pago: str = Field(validation_alias="nombre_tipo_pago")
    monto: Decimal
    numero_referencia: Optional[str] = None

    class Config:
        from_attributes = True
        populate_by_name = True


class ClientSummary(BaseModel):
    id_cliente: int = Field(validation_alias="id")
    nombre_completo: str
    nit: str
    telefono: Optional[str] = None
    email: Optional[str] = None
    direccion: Optional[str] = None

    class Config:
        from_attributes = True
        populate_by_name = True


class InvoiceDetail(InvoiceOut):
    """Esquema detallado que incluye cliente, líneas y medios de pago"""
    id_serie: int
    id_sucursal: int
    id_empleado: int
    empleado: str = Field(validation_alias="nombre_empleado")
    moneda: str
    tasa_impuesto: Decimal
    observaciones: Optional[str] = None
    motivo_anulacion: Optional[str] = None
    fecha_anulacion: Optional[datetime] = None
    id_empleado_anulo: Optional[int] = None
    cliente: ClientSummary
    detalles: List[InvoiceLineOut]
    medios_pago: List[PaymentAllocationOut]

    class Config:
        from_attributes = True
        populate_by_name = True


class InvoicePrintBranch(BaseModel):
    nombre: str
    direccion: Optional[str] = None
    telefono: Optional[str] = None

    class Config:
        from_attributes = True


class InvoicePrint(InvoiceDetail):
    """Detalle completo para impresión (sin layout PDF)"""
    sucursal: InvoicePrintBranch


class InvoiceListItem(BaseModel):
    id_factura: int = Field(validation_alias="id")
    numero_factura: str
    fecha_emision: datetime
    total: Decimal
    estado: InvoiceStatus
    cliente: str = Field(validation_alias="nombre_cliente")
    nit: str = Field(validation_alias="nit_cliente")
    empleado: str = Field(validation_alias="nombre_empleado")

    class Config:
        from_attributes = True
        populate_by_name = True


class Pagination(BaseModel):
    current_page: int = Field(alias="currentPage")
    total_pages: int = Field(alias="totalPages")
    total_items: int = Field(alias="totalItems")
    items_per_page: int = Field(alias="itemsPerPage")

    class Config:
        populate_by_name = True


class InvoiceList(BaseModel):
    facturas: List[InvoiceListItem]
    pagination: Pagination


class InvoiceFilters(BaseModel):
    """Filtros para búsqueda de facturas"""
    search: Optional[str] = Field(None, description="Buscar en número, nombre del cliente o NIT")
    fecha_inicio: Optional[date] = None
    fecha_fin: Optional[date] = None
    id_empleado: Optional[int] = None
    id_serie: Optional[int] = None
    estado: Optional[InvoiceStatus] = None


class NextInvoiceNumber(BaseModel):
    id_serie: int
    prefijo: str
    numero_actual: int
    proximo_numero: str


class PaymentTypeOut(BaseModel):
    id_tipo_pago: int = Field(validation_alias="id")
    nombre: str
    descripcion: Optional[str] = None

    class Config:
        from_attributes = True
        populate_by_name = True


class InvoiceSeriesOut(BaseModel):
    id_serie: int = Field(validation_alias="id")
    id_sucursal: int
    prefijo: str
    numero_actual: int
    descripcion: Optional[str] = None

    class Config:
        from_attributes = True
        populate_by_name = True
