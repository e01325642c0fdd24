from app.database.database import Base
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, Numeric, Enum, Text
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from decimal import Decimal
from app.common.mixins import CatalogMixin, TimestampMixin
import enum


class InvoiceStatus(str, enum.Enum):
    ACTIVE = "Activa"    # Emitida, afecta inventario
    VOIDED = "Anulada"   # Anulada, estado terminal


def utcnow():
    return datetime.now(timezone.utc)


class InvoiceSeries(Base, CatalogMixin):
    """
    Serie de numeración de facturas (una o más por sucursal).

    `numero_actual` es el último correlativo asignado. Solo se incrementa
    dentro de la misma transacción que persiste la factura.
    """
    __tablename__ = "series_facturas"

    id = Column(Integer, primary_key=True, autoincrement=True)
    id_sucursal = Column(Integer, ForeignKey("sucursales.id"), nullable=False, index=True)
    prefijo = Column(String(10), nullable=False)  # Ej: "A-", "FAC-"
    numero_actual = Column(Integer, nullable=False, default=0)
    descripcion = Column(String(100), nullable=True)

    # Relationships
    sucursal = relationship("Branch", back_populates="series")

    __table_args__ = (
        UniqueConstraint("prefijo", name="uq_serie_prefijo"),
    )


class PaymentType(Base, CatalogMixin):
    __tablename__ = "tipos_pago"

    id = Column(Integer, primary_key=True, autoincrement=True)
    nombre = Column(String(50), nullable=False)  # Efectivo, Tarjeta, Transferencia...
    descripcion = Column(String(255), nullable=True)


class Invoice(Base, TimestampMixin):
    __tablename__ = "facturas"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Numeración
    id_serie = Column(Integer, ForeignKey("series_facturas.id"), nullable=False)
    correlativo = Column(Integer, nullable=False)
    numero_factura = Column(String(30), nullable=False, unique=True)  # prefijo + correlativo

    # References
    id_sucursal = Column(Integer, ForeignKey("sucursales.id"), nullable=False, index=True)
    id_empleado = Column(Integer, ForeignKey("empleados.id"), nullable=False, index=True)
    id_cliente = Column(Integer, ForeignKey("clientes.id"), nullable=False, index=True)

    fecha_emision = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    moneda = Column(String(3), nullable=False, default="GTQ")

    # Totals (calculated, never client-supplied)
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    descuento_total = Column(Numeric(15, 2), nullable=False, default=0)
    impuesto = Column(Numeric(15, 2), nullable=False, default=0)
    tasa_impuesto = Column(Numeric(5, 4), nullable=False)  # Tasa aplicada al emitir
    total = Column(Numeric(15, 2), nullable=False, default=0)

    estado = Column(Enum(InvoiceStatus, name="estado_factura"), nullable=False, default=InvoiceStatus.ACTIVE)
    observaciones = Column(Text, nullable=True)

    # Anulación
    motivo_anulacion = Column(String(500), nullable=True)
    fecha_anulacion = Column(DateTime(timezone=True), nullable=True)
    id_empleado_anulo = Column(Integer, ForeignKey("empleados.id"), nullable=True)

    # Relationships
    serie = relationship("InvoiceSeries")
    sucursal = relationship("Branch")
    cliente = relationship("Client")
    empleado = relationship("Employee", foreign_keys=[id_empleado])
    empleado_anulo = relationship("Employee", foreign_keys=[id_empleado_anulo])
    detalles = relationship(
        "InvoiceLine", back_populates="factura", cascade="all, delete-orphan", order_by="InvoiceLine.id"
    )
    medios_pago = relationship(
        "PaymentAllocation", back_populates="factura", cascade="all, delete-orphan", order_by="PaymentAllocation.id"
    )

    __table_args__ = (
        UniqueConstraint("id_serie", "correlativo", name="uq_factura_serie_correlativo"),
    )

    @property
    def total_pagado(self) -> Decimal:
        return sum((pago.monto for pago in self.medios_pago), Decimal("0.00"))

    @property
    def is_voided(self) -> bool:
        return self.estado == InvoiceStatus.VOIDED

    @property
    def nombre_cliente(self) -> str:
        return self.cliente.nombre_completo if self.cliente else ""

    @property
    def nit_cliente(self) -> str:
        return self.cliente.nit if self.cliente else ""

    @property
    def nombre_empleado(self) -> str:
        return self.empleado.nombre_completo if self.empleado else ""


class InvoiceLine(Base):
    __tablename__ = "detalle_facturas"

    id = Column(Integer, primary_key=True, autoincrement=True)
    id_factura = Column(Integer, ForeignKey("facturas.id"), nullable=False, index=True)
    id_producto = Column(Integer, ForeignKey("productos.id"), nullable=False)

    # Snapshot del producto al momento de la venta
    codigo = Column(String(50), nullable=False)
    nombre = Column(String(150), nullable=False)
    unidad = Column(String(30), nullable=False)

    # Line calculations
    cantidad = Column(Numeric(12, 3), nullable=False)
    precio_unitario = Column(Numeric(15, 2), nullable=False)  # Precio capturado en la venta
    descuento_porcentaje = Column(Numeric(5, 2), nullable=False, default=0)
    descuento_monto = Column(Numeric(15, 2), nullable=False, default=0)
    subtotal = Column(Numeric(15, 2), nullable=False)  # cantidad * precio - descuento

    # Relationships
    factura = relationship("Invoice", back_populates="detalles")
    producto = relationship("Product")


class PaymentAllocation(Base):
    __tablename__ = "medios_pago_factura"

    id = Column(Integer, primary_key=True, autoincrement=True)
    id_factura = Column(Integer, ForeignKey("facturas.id"), nullable=False, index=True)
    id_tipo_pago = Column(Integer, ForeignKey("tipos_pago.id"), nullable=False)

    monto = Column(Numeric(15, 2), nullable=False)
    numero_referencia = Column(String(100), nullable=True)  # Voucher, transferencia, cheque

    # Relationships
    factura = relationship("Invoice", back_populates="medios_pago")
    tipo_pago = relationship("PaymentType")

    @property
    def nombre_tipo_pago(self) -> str:
        return self.tipo_pago.nombre if self.tipo_pago else ""
