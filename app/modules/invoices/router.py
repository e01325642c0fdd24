from fastapi import APIRouter, Query, status
from typing import List, Optional
from datetime import date

from app.dependencies.dbDependecies import db_dependency
from app.dependencies.userDependencies import employee_dependency
from app.modules.invoices.service import InvoiceService
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceOut, InvoiceDetail, InvoicePrint, InvoiceList,
    InvoiceFilters, InvoiceVoidRequest, StockCheckRequest, StockCheckResponse,
    NextInvoiceNumber, PaymentTypeOut, InvoiceSeriesOut
)
from app.modules.invoices.models import InvoiceStatus
from app.core.config import settings

# Router principal del módulo de facturas
router = APIRouter(prefix="/facturas", tags=["Facturas"])


@router.post("/validar-stock", response_model=StockCheckResponse)
def validate_stock(
    request: StockCheckRequest,
    db: db_dependency,
    employee: employee_dependency
):
    """
    Validar disponibilidad de stock antes de facturar

    No modifica inventario. Sin `id_sucursal` se considera el stock de
    todas las sucursales.
    """
    return InvoiceService(db).validate_stock(request)


@router.get("/tipos-pago", response_model=List[PaymentTypeOut])
def list_payment_types(db: db_dependency, employee: employee_dependency):
    """Listar medios de pago activos"""
    return InvoiceService(db).get_payment_types()


@router.get("/series", response_model=List[InvoiceSeriesOut])
def list_series(
    db: db_dependency,
    employee: employee_dependency,
    id_sucursal: Optional[int] = Query(None, description="Filtrar por sucursal")
):
    """Listar series de facturación activas"""
    return InvoiceService(db).get_series(id_sucursal)


@router.get("/serie/{id_serie}/proximo-numero", response_model=NextInvoiceNumber)
def get_next_invoice_number(id_serie: int, db: db_dependency, employee: employee_dependency):
    """
    Consultar el próximo número de la serie

    Solo informativo: no reserva el número. El número definitivo se asigna
    al crear la factura.
    """
    return InvoiceService(db).get_next_invoice_number(id_serie)


@router.get("/numero/{numero_factura}", response_model=InvoiceDetail)
def get_invoice_by_number(numero_factura: str, db: db_dependency, employee: employee_dependency):
    return InvoiceService(db).get_invoice_by_number(numero_factura)


@router.get("", response_model=InvoiceList)
def list_invoices(
    db: db_dependency,
    employee: employee_dependency,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    search: Optional[str] = Query(None, description="Buscar por número, cliente o NIT"),
    fecha_inicio: Optional[date] = Query(None, description="Fecha inicial (YYYY-MM-DD)"),
    fecha_fin: Optional[date] = Query(None, description="Fecha final (YYYY-MM-DD)"),
    id_empleado: Optional[int] = Query(None, description="Filtrar por empleado"),
    id_serie: Optional[int] = Query(None, description="Filtrar por serie"),
    estado: Optional[InvoiceStatus] = Query(None, description="Estado de la factura")
):
    """
    Listar facturas con filtros y paginación

    Ordenadas de la más reciente a la más antigua.
    """
    filters = InvoiceFilters(
        search=search,
        fecha_inicio=fecha_inicio,
        fecha_fin=fecha_fin,
        id_empleado=id_empleado,
        id_serie=id_serie,
        estado=estado
    )
    return InvoiceService(db).get_invoices(filters, page, limit)


@router.post("", response_model=InvoiceOut, status_code=status.HTTP_201_CREATED)
def create_invoice(
    invoice_data: InvoiceCreate,
    db: db_dependency,
    employee: employee_dependency
):
    """
    Crear una nueva factura de venta

    Valida stock y pagos, calcula totales, asigna el número de la serie y
    descuenta inventario en una sola transacción.
    """
    return InvoiceService(db).create_invoice(invoice_data, employee.id)


@router.get("/{id_factura}", response_model=InvoiceDetail)
def get_invoice(id_factura: int, db: db_dependency, employee: employee_dependency):
    """
    Obtener detalles completos de una factura
    """
    return InvoiceService(db).get_invoice_by_id(id_factura)


@router.get("/{id_factura}/imprimir", response_model=InvoicePrint)
def get_invoice_for_print(id_factura: int, db: db_dependency, employee: employee_dependency):
    """Datos completos de la factura para impresión"""
    return InvoiceService(db).get_invoice_by_id(id_factura)


@router.put("/{id_factura}/anular", response_model=InvoiceDetail)
def void_invoice(
    id_factura: int,
    void_request: InvoiceVoidRequest,
    db: db_dependency,
    employee: employee_dependency
):
    """
    Anular una factura activa

    Registra motivo, fecha y empleado. No restaura inventario.
    """
    service = InvoiceService(db)
    service.void_invoice(id_factura, void_request.motivo, employee.id)
    return service.get_invoice_by_id(id_factura)
