from sqlalchemy.orm import Session, selectinload
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy import or_, desc
from decimal import Decimal
from typing import List, Optional, Dict, Any
from datetime import datetime, time, timedelta
from enum import Enum
import logging
import math

from app.common.exceptions import (
    InvoicingError, InvalidRequest, EmptyInvoice, ClientNotFound, ProductNotFound,
    PaymentTypeNotFound, InsufficientStock, InvoiceNotFound, AlreadyVoided,
    DuplicateInvoiceNumber, StorageError
)
from app.common.repository import BaseRepository
from app.core.config import settings
from app.database.database import run_in_transaction
from app.modules.clients.models import Client
from app.modules.invoices.models import (
    Invoice, InvoiceLine, PaymentAllocation, PaymentType, InvoiceSeries, InvoiceStatus, utcnow
)
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceFilters, InvoiceList, InvoiceListItem, Pagination,
    StockCheckRequest, StockCheckResponse, NextInvoiceNumber
)
from app.modules.invoices.payments import reconcile_payments
from app.modules.invoices.pricing import PricingLine, PricingResult, calculate_totals
from app.modules.invoices.sequence import SequenceAllocator
from app.modules.invoices.stock import StockValidator
from app.modules.products.service import ProductCatalog

logger = logging.getLogger(__name__)


class BuildState(str, Enum):
    DRAFT = "draft"
    VALIDATED = "validated"
    COMMITTED = "committed"
    ABORTED = "aborted"


ALLOWED_TRANSITIONS = {
    BuildState.DRAFT: {BuildState.VALIDATED, BuildState.ABORTED},
    BuildState.VALIDATED: {BuildState.COMMITTED, BuildState.ABORTED},
    BuildState.COMMITTED: set(),
    BuildState.ABORTED: set(),
}


class InvoiceBuild:
    """
    Estado de una solicitud de creación de factura.

    Draft -> Validated -> Committed, o Draft/Validated -> Aborted ante
    cualquier falla. Los estados Committed y Aborted son terminales.
    """

    def __init__(self, series_id: int, employee_id: int):
        self.series_id = series_id
        self.employee_id = employee_id
        self.state = BuildState.DRAFT
        self.error: Optional[Exception] = None
        self.invoice_number: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self.state]

    def _transition(self, new_state: BuildState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Transición inválida de {self.state.value} a {new_state.value}")
        logger.debug(f"Invoice build series={self.series_id}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def validated(self) -> None:
        self._transition(BuildState.VALIDATED)

    def committed(self, invoice_number: str) -> None:
        self._transition(BuildState.COMMITTED)
        self.invoice_number = invoice_number

    def abort(self, error: Exception) -> None:
        if self.is_terminal:
            return
        self._transition(BuildState.ABORTED)
        self.error = error
        kind = getattr(error, "kind", None)
        logger.info(f"Invoice build aborted (series={self.series_id}): {kind.value if kind else type(error).__name__}")


class InvoiceService:
    def __init__(self, db: Session, tax_rate: Optional[Decimal] = None, tolerance: Optional[Decimal] = None):
        self.db = db
        self.tax_rate = settings.TAX_RATE if tax_rate is None else tax_rate
        self.tolerance = settings.PAYMENT_TOLERANCE if tolerance is None else tolerance
        self.catalog = ProductCatalog(db)
        self.sequence = SequenceAllocator(db)
        self.last_build: Optional[InvoiceBuild] = None

    # ===== Validación de stock =====

    def validate_stock(self, request: StockCheckRequest) -> StockCheckResponse:
        """Validar existencia de productos sin modificar inventario"""
        lines = StockValidator(self.db).check(request.productos, request.id_sucursal)
        return StockCheckResponse(
            es_valido=all(line.disponible for line in lines),
            productos=lines
        )

    # ===== Creación de factura =====

    def create_invoice(self, invoice_data: InvoiceCreate, employee_id: int) -> Invoice:
        """
        Crear factura en una sola transacción.

        Valida cliente, serie, productos, stock y pagos; calcula totales;
        asigna el número de la serie; persiste encabezado, líneas y pagos, y
        descuenta inventario. Cualquier falla revierte todo, incluido el
        incremento del correlativo. Si el almacenamiento reporta un conflicto
        transitorio, la unidad de trabajo se repite una vez desde cero.
        """
        builds: List[InvoiceBuild] = []

        def work(db: Session) -> Invoice:
            build = InvoiceBuild(invoice_data.id_serie, employee_id)
            builds.append(build)
            self.last_build = build
            try:
                return self._build_invoice(build, invoice_data, employee_id)
            except Exception as e:
                build.abort(e)
                raise

        try:
            invoice = run_in_transaction(self.db, work)
        except InvoicingError:
            raise
        except IntegrityError as e:
            self._abort_pending(builds, e)
            logger.error(f"Integrity error creating invoice (series={invoice_data.id_serie}): {e}")
            raise DuplicateInvoiceNumber(invoice_data.id_serie)
        except SQLAlchemyError as e:
            self._abort_pending(builds, e)
            logger.error(f"Storage error creating invoice (series={invoice_data.id_serie}): {e}", exc_info=True)
            raise StorageError("Error al crear la factura", {"id_serie": invoice_data.id_serie})

        builds[-1].committed(invoice.numero_factura)
        logger.info(f"Invoice {invoice.numero_factura} created: total={invoice.total} employee={employee_id}")
        return invoice

    @staticmethod
    def _abort_pending(builds: List[InvoiceBuild], error: Exception) -> None:
        if builds:
            builds[-1].abort(error)

    def _build_invoice(self, build: InvoiceBuild, invoice_data: InvoiceCreate, employee_id: int) -> Invoice:
        if not invoice_data.productos:
            raise EmptyInvoice()

        if BaseRepository(self.db, Client).find(invoice_data.id_cliente) is None:
            raise ClientNotFound(invoice_data.id_cliente)

        series = self.sequence.get_series(invoice_data.id_serie)
        branch_id = series.id_sucursal

        products = self.catalog.find_products(line.id_producto for line in invoice_data.productos)
        missing = sorted({line.id_producto for line in invoice_data.productos} - set(products))
        if missing:
            raise ProductNotFound(missing)

        stock_lines = StockValidator(self.db).check(invoice_data.productos, branch_id)
        unavailable = [line for line in stock_lines if not line.disponible]
        if unavailable:
            raise InsufficientStock([
                {
                    "id_producto": line.id_producto,
                    "stock_actual": line.stock_actual,
                    "cantidad_requerida": line.cantidad_requerida
                }
                for line in unavailable
            ])

        pricing = calculate_totals(
            [
                PricingLine(
                    product_id=line.id_producto,
                    quantity=line.cantidad,
                    unit_price=(line.precio_unitario if line.precio_unitario is not None
                                else products[line.id_producto].precio_venta),
                    discount_pct=(line.descuento_porcentaje if line.descuento_porcentaje is not None
                                  else products[line.id_producto].porcentaje_descuento or Decimal("0"))
                )
                for line in invoice_data.productos
            ],
            self.tax_rate
        )

        payment_type_ids = {payment.id_tipo_pago for payment in invoice_data.medios_pago}
        payment_types = BaseRepository(self.db, PaymentType).find_many(payment_type_ids)
        missing_types = sorted(payment_type_ids - set(payment_types))
        if missing_types:
            raise PaymentTypeNotFound(missing_types)

        reconcile_payments(pricing.grand_total, invoice_data.medios_pago, self.tolerance)

        build.validated()

        return self._persist(invoice_data, pricing, products, employee_id)

    def _persist(self, invoice_data: InvoiceCreate, pricing: PricingResult,
                 products: Dict[int, Any], employee_id: int) -> Invoice:
        allocated = self.sequence.next_number(invoice_data.id_serie)

        invoice = Invoice(
            id_serie=allocated.series_id,
            correlativo=allocated.correlative,
            numero_factura=allocated.number,
            id_sucursal=allocated.branch_id,
            id_empleado=employee_id,
            id_cliente=invoice_data.id_cliente,
            fecha_emision=utcnow(),
            moneda=settings.CURRENCY,
            subtotal=pricing.subtotal,
            descuento_total=pricing.discount_total,
            impuesto=pricing.tax_total,
            tasa_impuesto=pricing.tax_rate,
            total=pricing.grand_total,
            estado=InvoiceStatus.ACTIVE,
            observaciones=invoice_data.observaciones
        )

        for priced in pricing.lines:
            product = products[priced.product_id]
            invoice.detalles.append(InvoiceLine(
                id_producto=priced.product_id,
                codigo=product.codigo,
                nombre=product.nombre,
                unidad=product.unidad,
                cantidad=priced.quantity,
                precio_unitario=priced.unit_price,
                descuento_porcentaje=priced.discount_pct,
                descuento_monto=priced.discount_amount,
                subtotal=priced.line_subtotal
            ))

        for payment in invoice_data.medios_pago:
            invoice.medios_pago.append(PaymentAllocation(
                id_tipo_pago=payment.id_tipo_pago,
                monto=payment.monto,
                numero_referencia=payment.numero_referencia
            ))

        self.db.add(invoice)
        self.db.flush()

        reason = f"Venta - Factura {allocated.number}"
        for priced in pricing.lines:
            if not self.catalog.decrement_stock(priced.product_id, allocated.branch_id, priced.quantity,
                                                employee_id, reason):
                raise InsufficientStock([{
                    "id_producto": priced.product_id,
                    "cantidad_requerida": priced.quantity
                }])

        self.db.flush()
        return invoice

    # ===== Anulación =====

    def void_invoice(self, invoice_id: int, reason: str, employee_id: int) -> Invoice:
        """
        Anular factura activa.

        Registra motivo, fecha y empleado que anula. No restaura inventario
        ni libera el número asignado.
        """
        reason = (reason or "").strip()
        if not reason:
            raise InvalidRequest("Motivo de anulación requerido", {"campo": "motivo"})

        def work(db: Session) -> Invoice:
            invoice = db.query(Invoice).filter(Invoice.id == invoice_id).with_for_update().first()
            if invoice is None:
                raise InvoiceNotFound(invoice_id)
            if invoice.is_voided:
                raise AlreadyVoided(invoice_id)

            invoice.estado = InvoiceStatus.VOIDED
            invoice.motivo_anulacion = reason
            invoice.fecha_anulacion = utcnow()
            invoice.id_empleado_anulo = employee_id
            db.flush()
            return invoice

        try:
            invoice = run_in_transaction(self.db, work)
        except InvoicingError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Storage error voiding invoice {invoice_id}: {e}", exc_info=True)
            raise StorageError("Error al anular la factura", {"id_factura": invoice_id})

        logger.info(f"Invoice {invoice.numero_factura} voided by employee {employee_id}: {reason}")
        return invoice

    # ===== Consultas =====

    def _detail_query(self):
        return self.db.query(Invoice).options(
            selectinload(Invoice.cliente),
            selectinload(Invoice.empleado),
            selectinload(Invoice.sucursal),
            selectinload(Invoice.detalles),
            selectinload(Invoice.medios_pago).selectinload(PaymentAllocation.tipo_pago)
        )

    def get_invoice_by_id(self, invoice_id: int) -> Invoice:
        """Obtener factura por ID con detalles completos"""
        invoice = self._detail_query().filter(Invoice.id == invoice_id).first()
        if not invoice:
            raise InvoiceNotFound(invoice_id)
        return invoice

    def get_invoice_by_number(self, invoice_number: str) -> Invoice:
        invoice = self._detail_query().filter(Invoice.numero_factura == invoice_number).first()
        if not invoice:
            raise InvoiceNotFound(invoice_number)
        return invoice

    def get_invoices(self, filters: InvoiceFilters, page: int = 1, limit: Optional[int] = None) -> InvoiceList:
        """Obtener lista paginada de facturas con filtros"""
        if limit is None:
            limit = settings.DEFAULT_PAGE_SIZE
        if limit < 1:
            raise InvalidRequest("El límite por página debe ser mayor a 0", {"limit": limit})
        limit = min(limit, settings.MAX_PAGE_SIZE)
        page = max(page, 1)

        query = self.db.query(Invoice).join(Client, Invoice.id_cliente == Client.id).options(
            selectinload(Invoice.cliente),
            selectinload(Invoice.empleado)
        )

        if filters.search:
            term = f"%{filters.search.strip()}%"
            query = query.filter(or_(
                Invoice.numero_factura.ilike(term),
                Client.nombres.ilike(term),
                Client.apellidos.ilike(term),
                Client.nit.ilike(term)
            ))

        if filters.fecha_inicio:
            query = query.filter(Invoice.fecha_emision >= datetime.combine(filters.fecha_inicio, time.min))

        if filters.fecha_fin:
            next_day = filters.fecha_fin + timedelta(days=1)
            query = query.filter(Invoice.fecha_emision < datetime.combine(next_day, time.min))

        if filters.id_empleado:
            query = query.filter(Invoice.id_empleado == filters.id_empleado)

        if filters.id_serie:
            query = query.filter(Invoice.id_serie == filters.id_serie)

        if filters.estado:
            query = query.filter(Invoice.estado == filters.estado)

        total = query.count()
        invoices = (
            query.order_by(desc(Invoice.fecha_emision), desc(Invoice.id))
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        return InvoiceList(
            facturas=[InvoiceListItem.model_validate(invoice) for invoice in invoices],
            pagination=Pagination(
                current_page=page,
                total_pages=math.ceil(total / limit) if total else 0,
                total_items=total,
                items_per_page=limit
            )
        )

    def get_next_invoice_number(self, series_id: int) -> NextInvoiceNumber:
        return self.sequence.preview(series_id)

    def get_payment_types(self) -> List[PaymentType]:
        return BaseRepository(self.db, PaymentType).find_all()

    def get_series(self, branch_id: Optional[int] = None) -> List[InvoiceSeries]:
        return BaseRepository(self.db, InvoiceSeries).find_all(id_sucursal=branch_id)
