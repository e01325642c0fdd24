"""
Tests para el módulo de Facturación

Cubren:
- Motor de precios (Decimal, redondeo, rangos de línea)
- Conciliación de pagos y tolerancia
- Validación de stock por sucursal
- Asignación de números por serie (atómica, sin huecos en éxito)
- Creación de facturas: rollback completo ante cualquier falla
- Anulación y consultas
- Endpoints REST con códigos de error por categoría
"""

import threading
import pytest
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.main import app
from app.common.exceptions import (
    InvalidLineItem, InvalidPayment, InvalidRequest, EmptyInvoice, ProductNotFound, ClientNotFound,
    SeriesNotFound, InvoiceNotFound, PaymentTypeNotFound, InsufficientStock, PaymentMismatch,
    AlreadyVoided, StorageError
)
from app.database.database import SessionLocal
from app.modules.auth.utils import create_access_token
from app.modules.invoices.models import Invoice, InvoiceSeries, InvoiceStatus
from app.modules.invoices.payments import reconcile_payments
from app.modules.invoices.pricing import PricingLine, calculate_totals, price_line
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceLineCreate, PaymentAllocationCreate, InvoiceFilters,
    StockCheckItem, StockCheckRequest
)
from app.modules.invoices.sequence import SequenceAllocator, format_invoice_number
from app.modules.invoices.service import InvoiceService, BuildState
from app.modules.invoices.stock import StockValidator
from app.modules.products.models import Stock, InventoryMovement
from app.modules.products.service import ProductCatalog


client = TestClient(app)


# ===== HELPERS =====

def make_invoice(client_id, series_id, lines, payments, observaciones=None) -> InvoiceCreate:
    return InvoiceCreate(
        id_cliente=client_id,
        id_serie=series_id,
        productos=[InvoiceLineCreate(**line) for line in lines],
        medios_pago=[PaymentAllocationCreate(**payment) for payment in payments],
        observaciones=observaciones
    )


def stock_of(db: Session, product_id: int, branch_id: int) -> Decimal:
    db.expire_all()
    row = db.query(Stock).filter(Stock.id_producto == product_id, Stock.id_sucursal == branch_id).one()
    return Decimal(str(row.cantidad))


def counter_of(db: Session, series_id: int) -> int:
    db.expire_all()
    return db.get(InvoiceSeries, series_id).numero_actual


@pytest.fixture
def scenario_invoice(sample_client, sample_series, sample_stock, payment_types):
    """2 galones a 100.00 con 10% de descuento, pagado exacto en efectivo"""
    paint, _ = sample_stock
    cash, _ = payment_types
    return make_invoice(
        sample_client.id,
        sample_series.id,
        [{"id_producto": paint.id, "cantidad": Decimal("2"), "precio_unitario": Decimal("100.00"),
          "descuento_porcentaje": Decimal("10")}],
        [{"id_tipo_pago": cash.id, "monto": Decimal("201.60")}]
    )


# ===== MOTOR DE PRECIOS =====

class TestPricingEngine:
    """Tests para el cálculo de totales"""

    def test_discounted_line_with_tax(self):
        """2 x 100.00 con 10% y 12% de impuesto -> 201.60"""
        result = calculate_totals(
            [PricingLine(product_id=1, quantity=Decimal("2"), unit_price=Decimal("100.00"),
                         discount_pct=Decimal("10"))],
            Decimal("0.12")
        )

        assert result.lines[0].discount_amount == Decimal("20.00")
        assert result.lines[0].line_subtotal == Decimal("180.00")
        assert result.subtotal == Decimal("200.00")
        assert result.discount_total == Decimal("20.00")
        assert result.tax_total == Decimal("21.60")
        assert result.grand_total == Decimal("201.60")

    def test_rounding_half_up_to_cents(self):
        result = calculate_totals(
            [PricingLine(product_id=1, quantity=Decimal("1.5"), unit_price=Decimal("10.99"))],
            Decimal("0.12")
        )

        assert result.subtotal == Decimal("16.49")
        assert result.tax_total == Decimal("1.98")
        assert result.grand_total == Decimal("18.47")

    def test_grand_total_matches_components(self):
        result = calculate_totals(
            [
                PricingLine(product_id=1, quantity=Decimal("3"), unit_price=Decimal("33.33"),
                            discount_pct=Decimal("7.5")),
                PricingLine(product_id=2, quantity=Decimal("1"), unit_price=Decimal("0")),
                PricingLine(product_id=3, quantity=Decimal("4"), unit_price=Decimal("12.45"),
                            discount_pct=Decimal("100")),
            ],
            Decimal("0.12")
        )

        assert result.grand_total == result.subtotal - result.discount_total + result.tax_total
        assert result.lines[2].line_subtotal == Decimal("0.00")

    def test_accepts_floats_without_binary_drift(self):
        line = price_line(PricingLine(product_id=1, quantity=3, unit_price=0.1))
        assert line.gross_amount == Decimal("0.30")

    @pytest.mark.parametrize("quantity, price, discount, field", [
        (Decimal("0"), Decimal("10"), Decimal("0"), "cantidad"),
        (Decimal("-1"), Decimal("10"), Decimal("0"), "cantidad"),
        (Decimal("1"), Decimal("-0.01"), Decimal("0"), "precio_unitario"),
        (Decimal("1"), Decimal("10"), Decimal("-1"), "descuento_porcentaje"),
        (Decimal("1"), Decimal("10"), Decimal("100.01"), "descuento_porcentaje"),
        ("abc", Decimal("10"), Decimal("0"), "cantidad"),
    ])
    def test_invalid_line_item(self, quantity, price, discount, field):
        with pytest.raises(InvalidLineItem) as exc:
            calculate_totals([PricingLine(product_id=7, quantity=quantity, unit_price=price,
                                          discount_pct=discount)], Decimal("0.12"))

        assert exc.value.product_id == 7
        assert exc.value.field == field
        assert exc.value.status_code == 400

    def test_invalid_tax_rate(self):
        with pytest.raises(ValueError):
            calculate_totals([PricingLine(product_id=1, quantity=1, unit_price=1)], Decimal("12"))


# ===== CONCILIACIÓN DE PAGOS =====

class TestPaymentReconciliation:
    """Tests para la verificación de pagos contra el total"""

    def test_exact_payment(self):
        paid = reconcile_payments(Decimal("201.60"), [SimpleNamespace(monto=Decimal("201.60"))])
        assert paid == Decimal("201.60")

    def test_split_payment(self):
        payments = [SimpleNamespace(monto=Decimal("100.00")), SimpleNamespace(monto=Decimal("101.60"))]
        assert reconcile_payments(Decimal("201.60"), payments) == Decimal("201.60")

    def test_difference_within_tolerance(self):
        reconcile_payments(Decimal("201.60"), [SimpleNamespace(monto=Decimal("201.59"))], Decimal("0.01"))
        reconcile_payments(Decimal("201.60"), [SimpleNamespace(monto=Decimal("201.61"))], Decimal("0.01"))

    def test_difference_beyond_tolerance(self):
        with pytest.raises(PaymentMismatch) as exc:
            reconcile_payments(Decimal("201.60"), [SimpleNamespace(monto=Decimal("200.00"))], Decimal("0.01"))

        assert exc.value.expected == Decimal("201.60")
        assert exc.value.actual == Decimal("200.00")
        assert exc.value.status_code == 409
        assert exc.value.to_dict()["context"] == {"esperado": "201.60", "recibido": "200.00"}

    def test_empty_payments_with_positive_total(self):
        with pytest.raises(InvalidPayment):
            reconcile_payments(Decimal("10.00"), [])

    def test_empty_payments_with_zero_total(self):
        assert reconcile_payments(Decimal("0.00"), []) == Decimal("0.00")

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5.00")])
    def test_non_positive_amount(self, amount):
        payments = [SimpleNamespace(monto=Decimal("10.00")), SimpleNamespace(monto=amount)]
        with pytest.raises(InvalidPayment) as exc:
            reconcile_payments(Decimal("10.00"), payments)

        assert exc.value.context["indice"] == 1


# ===== VALIDACIÓN DE STOCK =====

class TestStockValidator:
    """Tests para la validación de existencias"""

    def test_reports_each_line(self, db_session: Session, sample_stock, sample_branch):
        paint, brush = sample_stock
        items = [
            StockCheckItem(id_producto=paint.id, cantidad=Decimal("4")),
            StockCheckItem(id_producto=brush.id, cantidad=Decimal("6")),
            StockCheckItem(id_producto=9999, cantidad=Decimal("1")),
        ]

        lines = StockValidator(db_session).check(items, sample_branch.id)

        assert [line.disponible for line in lines] == [True, False, False]
        assert lines[0].stock_actual == Decimal("10")
        assert lines[0].cantidad_requerida == Decimal("4")
        assert lines[1].stock_actual == Decimal("5")
        assert lines[2].encontrado is False
        assert lines[2].stock_actual == Decimal("0")

    def test_all_branches_when_branch_omitted(self, db_session: Session, sample_stock):
        paint, _ = sample_stock
        lines = StockValidator(db_session).check([StockCheckItem(id_producto=paint.id, cantidad=Decimal("15"))])

        assert lines[0].stock_actual == Decimal("17")
        assert lines[0].disponible is True

    def test_repeated_product_uses_total_requested(self, db_session: Session, sample_stock, sample_branch):
        paint, _ = sample_stock
        items = [
            StockCheckItem(id_producto=paint.id, cantidad=Decimal("6")),
            StockCheckItem(id_producto=paint.id, cantidad=Decimal("6")),
        ]

        lines = StockValidator(db_session).check(items, sample_branch.id)

        assert [line.disponible for line in lines] == [False, False]

    def test_does_not_modify_stock(self, db_session: Session, sample_stock, sample_branch):
        paint, _ = sample_stock
        StockValidator(db_session).check([StockCheckItem(id_producto=paint.id, cantidad=Decimal("3"))],
                                         sample_branch.id)

        assert stock_of(db_session, paint.id, sample_branch.id) == Decimal("10")

    def test_service_summary(self, db_session: Session, sample_stock):
        paint, brush = sample_stock
        request = StockCheckRequest(productos=[
            StockCheckItem(id_producto=paint.id, cantidad=Decimal("1")),
            StockCheckItem(id_producto=brush.id, cantidad=Decimal("1")),
        ])

        response = InvoiceService(db_session).validate_stock(request)

        assert response.es_valido is True
        assert len(response.productos) == 2


# ===== ASIGNACIÓN DE NÚMEROS =====

class TestSequenceAllocator:
    """Tests para la numeración por serie"""

    def test_format(self):
        assert format_invoice_number("A-", 6) == "A-00000006"
        assert format_invoice_number("FAC-", 123, padding=4) == "FAC-0123"

    def test_consecutive_numbers(self, db_session: Session, sample_series):
        sample_series.numero_actual = 5
        db_session.commit()
        allocator = SequenceAllocator(db_session)

        first = allocator.next_number(sample_series.id)
        db_session.commit()
        second = allocator.next_number(sample_series.id)
        db_session.commit()

        assert first.number == "A-00000006"
        assert second.number == "A-00000007"
        assert second.branch_id == sample_series.id_sucursal
        assert counter_of(db_session, sample_series.id) == 7

    def test_stale_session_never_reuses_number(self, db_session: Session, sample_series):
        """Una sesión que leyó el contador antes que otra asignara no repite el número"""
        sample_series.numero_actual = 5
        db_session.commit()
        assert db_session.get(InvoiceSeries, sample_series.id).numero_actual == 5

        other = SessionLocal()
        try:
            allocated_elsewhere = SequenceAllocator(other).next_number(sample_series.id)
            other.commit()
        finally:
            other.close()

        allocated_here = SequenceAllocator(db_session).next_number(sample_series.id)
        db_session.commit()

        assert allocated_elsewhere.number == "A-00000006"
        assert allocated_here.number == "A-00000007"

    def test_rollback_does_not_advance_counter(self, db_session: Session, sample_series):
        SequenceAllocator(db_session).next_number(sample_series.id)
        db_session.rollback()

        assert counter_of(db_session, sample_series.id) == 0

    def test_preview_does_not_allocate(self, db_session: Session, sample_series):
        allocator = SequenceAllocator(db_session)

        first = allocator.preview(sample_series.id)
        second = allocator.preview(sample_series.id)

        assert first.proximo_numero == "A-00000001"
        assert second.proximo_numero == "A-00000001"
        assert counter_of(db_session, sample_series.id) == 0

    def test_unknown_series(self, db_session: Session):
        with pytest.raises(SeriesNotFound):
            SequenceAllocator(db_session).next_number(404)
        with pytest.raises(SeriesNotFound):
            SequenceAllocator(db_session).preview(404)

    def test_inactive_series(self, db_session: Session, sample_series):
        sample_series.soft_delete()
        db_session.commit()

        with pytest.raises(SeriesNotFound):
            SequenceAllocator(db_session).next_number(sample_series.id)


# ===== CREACIÓN DE FACTURAS =====

class TestInvoiceCreation:
    """Tests para la construcción transaccional de facturas"""

    def test_create_invoice_success(self, db_session: Session, scenario_invoice, sample_employee,
                                    sample_branch, sample_series, sample_stock):
        paint, _ = sample_stock
        service = InvoiceService(db_session, tax_rate=Decimal("0.12"))

        invoice = service.create_invoice(scenario_invoice, sample_employee.id)

        assert invoice.numero_factura == "A-00000001"
        assert invoice.correlativo == 1
        assert invoice.estado == InvoiceStatus.ACTIVE
        assert invoice.subtotal == Decimal("200.00")
        assert invoice.descuento_total == Decimal("20.00")
        assert invoice.impuesto == Decimal("21.60")
        assert invoice.total == Decimal("201.60")
        assert invoice.id_sucursal == sample_branch.id
        assert invoice.id_empleado == sample_employee.id
        assert len(invoice.detalles) == 1
        assert invoice.detalles[0].codigo == "PL-001"
        assert invoice.detalles[0].descuento_monto == Decimal("20.00")
        assert invoice.total_pagado == Decimal("201.60")
        assert service.last_build.state == BuildState.COMMITTED
        assert service.last_build.invoice_number == "A-00000001"

        assert stock_of(db_session, paint.id, sample_branch.id) == Decimal("8")
        assert counter_of(db_session, sample_series.id) == 1

        movement = db_session.query(InventoryMovement).one()
        assert movement.tipo_movimiento == "OUT"
        assert Decimal(str(movement.cantidad)) == Decimal("-2")
        assert movement.motivo == "Venta - Factura A-00000001"

    def test_payment_mismatch_persists_nothing(self, db_session: Session, scenario_invoice, sample_employee,
                                               sample_branch, sample_series, sample_stock):
        paint, _ = sample_stock
        scenario_invoice.medios_pago[0].monto = Decimal("200.00")
        service = InvoiceService(db_session, tax_rate=Decimal("0.12"))

        with pytest.raises(PaymentMismatch) as exc:
            service.create_invoice(scenario_invoice, sample_employee.id)

        assert exc.value.expected == Decimal("201.60")
        assert exc.value.actual == Decimal("200.00")
        assert service.last_build.state == BuildState.ABORTED
        assert db_session.query(Invoice).count() == 0
        assert counter_of(db_session, sample_series.id) == 0
        assert stock_of(db_session, paint.id, sample_branch.id) == Decimal("10")

    def test_insufficient_stock_then_retry(self, db_session: Session, sample_client, sample_series,
                                           sample_stock, payment_types, sample_employee, sample_branch):
        paint, _ = sample_stock
        cash, _ = payment_types
        service = InvoiceService(db_session, tax_rate=Decimal("0.12"))
        too_many = make_invoice(
            sample_client.id, sample_series.id,
            [{"id_producto": paint.id, "cantidad": Decimal("11"), "precio_unitario": Decimal("100.00")}],
            [{"id_tipo_pago": cash.id, "monto": Decimal("1232.00")}]
        )

        with pytest.raises(InsufficientStock) as exc:
            service.create_invoice(too_many, sample_employee.id)

        assert exc.value.product_ids == [paint.id]
        assert db_session.query(Invoice).count() == 0
        assert counter_of(db_session, sample_series.id) == 0

        enough = make_invoice(
            sample_client.id, sample_series.id,
            [{"id_producto": paint.id, "cantidad": Decimal("10"), "precio_unitario": Decimal("100.00")}],
            [{"id_tipo_pago": cash.id, "monto": Decimal("1120.00")}]
        )
        invoice = service.create_invoice(enough, sample_employee.id)

        assert invoice.numero_factura == "A-00000001"
        assert stock_of(db_session, paint.id, sample_branch.id) == Decimal("0")

    def test_stock_checked_at_series_branch(self, db_session: Session, sample_client, sample_stock,
                                            payment_types, sample_employee, second_branch):
        """Zona 10 tiene 7 galones aunque en total haya 17"""
        paint, _ = sample_stock
        cash, _ = payment_types
        series_b = InvoiceSeries(id_sucursal=second_branch.id, prefijo="B-", numero_actual=0)
        db_session.add(series_b)
        db_session.commit()

        data = make_invoice(
            sample_client.id, series_b.id,
            [{"id_producto": paint.id, "cantidad": Decimal("9"), "precio_unitario": Decimal("100.00")}],
            [{"id_tipo_pago": cash.id, "monto": Decimal("1008.00")}]
        )

        with pytest.raises(InsufficientStock):
            InvoiceService(db_session, tax_rate=Decimal("0.12")).create_invoice(data, sample_employee.id)

    def test_product_defaults(self, db_session: Session, sample_client, sample_series, sample_stock,
                              payment_types, sample_employee):
        """Sin precio ni descuento se usan los del producto (50.00, 10%)"""
        _, brush = sample_stock
        _, card = payment_types
        data = make_invoice(
            sample_client.id, sample_series.id,
            [{"id_producto": brush.id, "cantidad": Decimal("1")}],
            [{"id_tipo_pago": card.id, "monto": Decimal("50.40"), "numero_referencia": "VOUCHER-77"}]
        )

        invoice = InvoiceService(db_session, tax_rate=Decimal("0.12")).create_invoice(data, sample_employee.id)

        assert invoice.detalles[0].precio_unitario == Decimal("50.00")
        assert invoice.detalles[0].descuento_porcentaje == Decimal("10")
        assert invoice.total == Decimal("50.40")
        assert invoice.medios_pago[0].numero_referencia == "VOUCHER-77"
        assert invoice.medios_pago[0].nombre_tipo_pago == "Tarjeta"

    def test_numbers_are_consecutive(self, db_session: Session, scenario_invoice, sample_employee):
        service = InvoiceService(db_session, tax_rate=Decimal("0.12"))

        first = service.create_invoice(scenario_invoice, sample_employee.id)
        second = service.create_invoice(scenario_invoice, sample_employee.id)

        assert [first.numero_factura, second.numero_factura] == ["A-00000001", "A-00000002"]

    def test_concurrent_creations_get_distinct_numbers(self, db_session: Session, scenario_invoice,
                                                       sample_employee, sample_series, sample_branch,
                                                       sample_stock):
        """Dos ventas simultáneas en la misma serie reciben 6 y 7, nunca ambas 6"""
        paint, _ = sample_stock
        sample_series.numero_actual = 5
        db_session.commit()
        employee_id = sample_employee.id
        barrier = threading.Barrier(2)

        def sell():
            session = SessionLocal()
            try:
                barrier.wait(timeout=10)
                invoice = InvoiceService(session, tax_rate=Decimal("0.12")).create_invoice(
                    scenario_invoice, employee_id
                )
                return invoice.numero_factura
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [pool.submit(sell) for _ in range(2)]
            numbers = {future.result(timeout=30) for future in futures}

        assert numbers == {"A-00000006", "A-00000007"}
        assert counter_of(db_session, sample_series.id) == 7
        assert stock_of(db_session, paint.id, sample_branch.id) == Decimal("6")
        assert db_session.query(Invoice).count() == 2

    def test_empty_invoice(self, db_session: Session, scenario_invoice, sample_employee):
        scenario_invoice.productos = []

        with pytest.raises(EmptyInvoice):
            InvoiceService(db_session).create_invoice(scenario_invoice, sample_employee.id)

    def test_unknown_client(self, db_session: Session, scenario_invoice, sample_employee):
        scenario_invoice.id_cliente = 404

        with pytest.raises(ClientNotFound):
            InvoiceService(db_session).create_invoice(scenario_invoice, sample_employee.id)

    def test_unknown_series(self, db_session: Session, scenario_invoice, sample_employee):
        scenario_invoice.id_serie = 404

        with pytest.raises(SeriesNotFound):
            InvoiceService(db_session).create_invoice(scenario_invoice, sample_employee.id)

    def test_unknown_product(self, db_session: Session, scenario_invoice, sample_employee):
        scenario_invoice.productos.append(InvoiceLineCreate(id_producto=9999, cantidad=Decimal("1")))

        with pytest.raises(ProductNotFound) as exc:
            InvoiceService(db_session).create_invoice(scenario_invoice, sample_employee.id)

        assert exc.value.product_ids == [9999]

    def test_unknown_payment_type(self, db_session: Session, scenario_invoice, sample_employee, sample_series):
        scenario_invoice.medios_pago[0].id_tipo_pago = 404

        with pytest.raises(PaymentTypeNotFound):
            InvoiceService(db_session, tax_rate=Decimal("0.12")).create_invoice(scenario_invoice, sample_employee.id)

        assert counter_of(db_session, sample_series.id) == 0

    def test_failed_stock_decrement_rolls_back_everything(self, db_session: Session, scenario_invoice,
                                                          sample_employee, sample_series, monkeypatch):
        """Si otra venta consumió el stock entre la validación y el descuento, no queda nada escrito"""
        monkeypatch.setattr(ProductCatalog, "decrement_stock", lambda self, *args, **kwargs: False)
        service = InvoiceService(db_session, tax_rate=Decimal("0.12"))

        with pytest.raises(InsufficientStock):
            service.create_invoice(scenario_invoice, sample_employee.id)

        assert service.last_build.state == BuildState.ABORTED
        assert db_session.query(Invoice).count() == 0
        assert counter_of(db_session, sample_series.id) == 0

    def test_transient_storage_error_retried_once(self, db_session: Session, scenario_invoice,
                                                  sample_employee, monkeypatch):
        original = SequenceAllocator.next_number
        calls = []

        def flaky_next_number(self, series_id):
            calls.append(series_id)
            if len(calls) == 1:
                raise OperationalError("UPDATE series_facturas", {}, Exception("database is locked"))
            return original(self, series_id)

        monkeypatch.setattr(SequenceAllocator, "next_number", flaky_next_number)

        invoice = InvoiceService(db_session, tax_rate=Decimal("0.12")).create_invoice(
            scenario_invoice, sample_employee.id)

        assert len(calls) == 2
        assert invoice.numero_factura == "A-00000001"

    def test_storage_error(self, db_session: Session, scenario_invoice, sample_employee, monkeypatch):
        def broken_next_number(self, series_id):
            raise OperationalError("UPDATE series_facturas", {}, Exception("disk I/O error"))

        monkeypatch.setattr(SequenceAllocator, "next_number", broken_next_number)
        service = InvoiceService(db_session, tax_rate=Decimal("0.12"))

        with pytest.raises(StorageError) as exc:
            service.create_invoice(scenario_invoice, sample_employee.id)

        assert exc.value.status_code == 500
        assert service.last_build.state == BuildState.ABORTED


# ===== ANULACIÓN =====

class TestInvoiceVoid:
    """Tests para la anulación de facturas"""

    def test_void_invoice(self, db_session: Session, scenario_invoice, sample_employee, sample_branch,
                          sample_stock):
        paint, _ = sample_stock
        service = InvoiceService(db_session, tax_rate=Decimal("0.12"))
        invoice = service.create_invoice(scenario_invoice, sample_employee.id)

        voided = service.void_invoice(invoice.id, "  Cliente devolvió producto ", sample_employee.id)

        assert voided.estado == InvoiceStatus.VOIDED
        assert voided.motivo_anulacion == "Cliente devolvió producto"
        assert voided.fecha_anulacion is not None
        assert voided.id_empleado_anulo == sample_employee.id
        assert voided.numero_factura == "A-00000001"
        # La anulación no restaura inventario
        assert stock_of(db_session, paint.id, sample_branch.id) == Decimal("8")

    def test_void_twice_leaves_state_unchanged(self, db_session: Session, scenario_invoice, sample_employee):
        service = InvoiceService(db_session, tax_rate=Decimal("0.12"))
        invoice = service.create_invoice(scenario_invoice, sample_employee.id)
        service.void_invoice(invoice.id, "Primer motivo", sample_employee.id)

        with pytest.raises(AlreadyVoided):
            service.void_invoice(invoice.id, "Segundo motivo", sample_employee.id)

        db_session.expire_all()
        stored = service.get_invoice_by_id(invoice.id)
        assert stored.estado == InvoiceStatus.VOIDED
        assert stored.motivo_anulacion == "Primer motivo"

    def test_void_unknown_invoice(self, db_session: Session, sample_employee):
        with pytest.raises(InvoiceNotFound):
            InvoiceService(db_session).void_invoice(404, "motivo", sample_employee.id)

    def test_void_requires_reason(self, db_session: Session, sample_employee):
        with pytest.raises(InvalidRequest):
            InvoiceService(db_session).void_invoice(1, "   ", sample_employee.id)


# ===== CONSULTAS =====

class TestInvoiceQueries:
    """Tests para búsqueda y paginación"""

    def test_filters_and_pagination(self, db_session: Session, scenario_invoice, sample_employee, sample_series):
        service = InvoiceService(db_session, tax_rate=Decimal("0.12"))
        first = service.create_invoice(scenario_invoice, sample_employee.id)
        service.create_invoice(scenario_invoice, sample_employee.id)
        service.void_invoice(first.id, "Duplicada", sample_employee.id)

        page = service.get_invoices(InvoiceFilters(), page=1, limit=1)
        assert page.pagination.total_items == 2
        assert page.pagination.total_pages == 2
        assert page.facturas[0].numero_factura == "A-00000002"

        voided = service.get_invoices(InvoiceFilters(estado=InvoiceStatus.VOIDED))
        assert [item.numero_factura for item in voided.facturas] == ["A-00000001"]

        by_nit = service.get_invoices(InvoiceFilters(search="1234567"))
        assert by_nit.pagination.total_items == 2
        assert by_nit.facturas[0].nit == "1234567-8"
        assert by_nit.facturas[0].cliente == "Juan Pérez"
        assert by_nit.facturas[0].empleado == "Carla Méndez"

        by_series = service.get_invoices(InvoiceFilters(id_serie=sample_series.id + 1))
        assert by_series.pagination.total_items == 0

        future = date.today() + timedelta(days=3)
        assert service.get_invoices(InvoiceFilters(fecha_inicio=future)).pagination.total_items == 0

    def test_page_size_defaults_and_bounds(self, db_session: Session):
        service = InvoiceService(db_session)

        assert service.get_invoices(InvoiceFilters()).pagination.items_per_page == 10
        assert service.get_invoices(InvoiceFilters(), limit=500).pagination.items_per_page == 100
        with pytest.raises(InvalidRequest):
            service.get_invoices(InvoiceFilters(), limit=0)
        with pytest.raises(InvalidRequest):
            service.get_invoices(InvoiceFilters(), limit=-5)

    def test_get_by_number(self, db_session: Session, scenario_invoice, sample_employee):
        service = InvoiceService(db_session, tax_rate=Decimal("0.12"))
        created = service.create_invoice(scenario_invoice, sample_employee.id)

        assert service.get_invoice_by_number("A-00000001").id == created.id
        with pytest.raises(InvoiceNotFound):
            service.get_invoice_by_number("A-99999999")

    def test_catalogs(self, db_session: Session, sample_series, payment_types):
        service = InvoiceService(db_session)

        assert [t.nombre for t in service.get_payment_types()] == ["Efectivo", "Tarjeta"]
        assert [s.prefijo for s in service.get_series(sample_series.id_sucursal)] == ["A-"]
        assert service.get_next_invoice_number(sample_series.id).proximo_numero == "A-00000001"


# ===== API =====

class TestInvoiceAPI:
    """Tests para los endpoints de facturas"""

    @staticmethod
    def payload(paint_id, payment_type_id, monto="201.60"):
        return {
            "id_cliente": None,
            "id_serie": None,
            "productos": [{"id_producto": paint_id, "cantidad": 2, "precio_unitario": "100.00",
                           "descuento_porcentaje": 10}],
            "mediosPago": [{"id_tipo_pago": payment_type_id, "monto": monto}],
            "observaciones": "Entrega en mostrador"
        }

    @pytest.fixture
    def invoice_payload(self, sample_client, sample_series, sample_stock, payment_types):
        paint, _ = sample_stock
        cash, _ = payment_types
        data = self.payload(paint.id, cash.id)
        data["id_cliente"] = sample_client.id
        data["id_serie"] = sample_series.id
        return data

    def test_health(self):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_requires_token(self, invoice_payload):
        response = client.post("/facturas", json=invoice_payload)
        assert response.status_code == 401

    def test_rejects_invalid_token(self, invoice_payload):
        response = client.post("/facturas", json=invoice_payload, headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Token inválido"

    def test_rejects_expired_token(self, invoice_payload, sample_employee):
        token = create_access_token({"sub": sample_employee.id}, expires_delta=timedelta(minutes=-1))

        response = client.post("/facturas", json=invoice_payload, headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Token expirado"

    def test_rejects_token_without_employee(self, invoice_payload):
        token = create_access_token({"rol": "cajero"})

        response = client.post("/facturas", json=invoice_payload, headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_create_invoice_endpoint(self, auth_headers, invoice_payload):
        response = client.post("/facturas", json=invoice_payload, headers=auth_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["numero_factura"] == "A-00000001"
        assert Decimal(data["subtotal"]) == Decimal("200.00")
        assert Decimal(data["total"]) == Decimal("201.60")
        assert data["estado"] == "Activa"
        assert "id_factura" in data and "fecha_emision" in data

    def test_payment_mismatch_endpoint(self, auth_headers, invoice_payload, db_session: Session, sample_series):
        invoice_payload["mediosPago"][0]["monto"] = "200.00"

        response = client.post("/facturas", json=invoice_payload, headers=auth_headers)

        assert response.status_code == 409
        body = response.json()
        assert body["kind"] == "payment_mismatch"
        assert Decimal(body["context"]["esperado"]) == Decimal("201.60")
        assert counter_of(db_session, sample_series.id) == 0

    def test_insufficient_stock_endpoint(self, auth_headers, invoice_payload, sample_stock):
        invoice_payload["productos"][0]["cantidad"] = 50

        response = client.post("/facturas", json=invoice_payload, headers=auth_headers)

        assert response.status_code == 409
        assert response.json()["kind"] == "insufficient_stock"
        assert response.json()["context"]["productos"][0]["id_producto"] == sample_stock[0].id

    def test_empty_invoice_endpoint(self, auth_headers, invoice_payload):
        invoice_payload["productos"] = []

        response = client.post("/facturas", json=invoice_payload, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["kind"] == "empty_invoice"

    def test_malformed_body_endpoint(self, auth_headers, invoice_payload):
        invoice_payload["productos"][0]["cantidad"] = 0

        response = client.post("/facturas", json=invoice_payload, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["kind"] == "validation_error"

    @pytest.mark.parametrize("section, field, value", [
        ("productos", "cantidad", "1.2345"),
        ("productos", "precio_unitario", "100.005"),
        ("productos", "descuento_porcentaje", "12.345"),
        ("mediosPago", "monto", "201.605"),
    ])
    def test_rejects_more_decimals_than_stored(self, auth_headers, invoice_payload, db_session: Session,
                                               sample_series, section, field, value):
        """Valores con más decimales que su columna se rechazan antes de calcular"""
        invoice_payload[section][0][field] = value

        response = client.post("/facturas", json=invoice_payload, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["kind"] == "validation_error"
        assert counter_of(db_session, sample_series.id) == 0
        assert db_session.query(Invoice).count() == 0

    def test_stock_check_rejects_more_decimals_than_stored(self, auth_headers, sample_stock):
        paint, _ = sample_stock
        body = {"productos": [{"id_producto": paint.id, "cantidad": "1.0005"}]}

        response = client.post("/facturas/validar-stock", json=body, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["kind"] == "validation_error"

    def test_stored_line_matches_its_subtotal(self, auth_headers, invoice_payload):
        """La línea guardada reproduce su subtotal con los valores almacenados"""
        invoice_payload["productos"][0].update(
            {"cantidad": 1, "precio_unitario": "1000.00", "descuento_porcentaje": "12.35"}
        )
        invoice_payload["mediosPago"][0]["monto"] = "981.68"

        created = client.post("/facturas", json=invoice_payload, headers=auth_headers)
        assert created.status_code == 201

        detail = client.get(f"/facturas/{created.json()['id_factura']}", headers=auth_headers).json()
        line = detail["detalles"][0]
        gross = Decimal(line["cantidad"]) * Decimal(line["precio_unitario"])
        discount = (gross * Decimal(line["descuento_porcentaje"]) / 100).quantize(Decimal("0.01"))
        assert Decimal(line["descuento_monto"]) == discount == Decimal("123.50")
        assert Decimal(line["subtotal"]) == gross - discount == Decimal("876.50")
        assert sum(Decimal(p["monto"]) for p in detail["medios_pago"]) == Decimal(detail["total"])

    def test_unknown_client_endpoint(self, auth_headers, invoice_payload):
        invoice_payload["id_cliente"] = 404

        response = client.post("/facturas", json=invoice_payload, headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["kind"] == "client_not_found"

    def test_validate_stock_endpoint(self, auth_headers, sample_stock, sample_branch):
        paint, brush = sample_stock
        body = {
            "productos": [{"id_producto": paint.id, "cantidad": 3}, {"id_producto": brush.id, "cantidad": 9}],
            "id_sucursal": sample_branch.id
        }

        response = client.post("/facturas/validar-stock", json=body, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["es_valido"] is False
        assert [line["disponible"] for line in data["productos"]] == [True, False]
        assert Decimal(data["productos"][1]["stock_actual"]) == Decimal("5")
        assert Decimal(data["productos"][1]["cantidad_requerida"]) == Decimal("9")

    def test_next_number_endpoint(self, auth_headers, sample_series):
        url = f"/facturas/serie/{sample_series.id}/proximo-numero"

        first = client.get(url, headers=auth_headers)
        second = client.get(url, headers=auth_headers)

        assert first.status_code == 200
        assert first.json()["proximo_numero"] == "A-00000001"
        assert second.json() == first.json()
        assert client.get("/facturas/serie/404/proximo-numero", headers=auth_headers).status_code == 404

    def test_void_endpoint(self, auth_headers, invoice_payload, sample_employee):
        created = client.post("/facturas", json=invoice_payload, headers=auth_headers).json()
        url = f"/facturas/{created['id_factura']}/anular"

        response = client.put(url, json={"motivo": "Error en NIT"}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["estado"] == "Anulada"
        assert data["motivo_anulacion"] == "Error en NIT"
        assert data["id_empleado_anulo"] == sample_employee.id

        again = client.put(url, json={"motivo": "Otra vez"}, headers=auth_headers)
        assert again.status_code == 409
        assert again.json()["kind"] == "already_voided"

        missing = client.put("/facturas/404/anular", json={"motivo": "x"}, headers=auth_headers)
        assert missing.status_code == 404
        assert missing.json()["kind"] == "invoice_not_found"

        blank = client.put(url, json={"motivo": "   "}, headers=auth_headers)
        assert blank.status_code == 400

    def test_detail_endpoints(self, auth_headers, invoice_payload):
        created = client.post("/facturas", json=invoice_payload, headers=auth_headers).json()

        detail = client.get(f"/facturas/{created['id_factura']}", headers=auth_headers)
        assert detail.status_code == 200
        data = detail.json()
        assert data["cliente"]["nit"] == "1234567-8"
        assert data["empleado"] == "Carla Méndez"
        assert data["detalles"][0]["nombre"] == "Pintura látex blanco"
        assert data["medios_pago"][0]["tipo_pago"] == "Efectivo"
        assert data["observaciones"] == "Entrega en mostrador"

        printed = client.get(f"/facturas/{created['id_factura']}/imprimir", headers=auth_headers)
        assert printed.json()["sucursal"]["nombre"] == "Central"

        by_number = client.get("/facturas/numero/A-00000001", headers=auth_headers)
        assert by_number.json()["id_factura"] == created["id_factura"]

        assert client.get("/facturas/404", headers=auth_headers).status_code == 404

    def test_list_endpoint(self, auth_headers, invoice_payload):
        client.post("/facturas", json=invoice_payload, headers=auth_headers)
        client.post("/facturas", json=invoice_payload, headers=auth_headers)

        response = client.get("/facturas", params={"page": 1, "limit": 1, "estado": "Activa"},
                              headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["pagination"] == {"currentPage": 1, "totalPages": 2, "totalItems": 2, "itemsPerPage": 1}
        assert data["facturas"][0]["numero_factura"] == "A-00000002"

    def test_catalog_endpoints(self, auth_headers, sample_series, payment_types):
        types = client.get("/facturas/tipos-pago", headers=auth_headers)
        series = client.get("/facturas/series", headers=auth_headers)

        assert [t["nombre"] for t in types.json()] == ["Efectivo", "Tarjeta"]
        assert series.json()[0]["prefijo"] == "A-"
        assert series.json()[0]["id_serie"] == sample_series.id
