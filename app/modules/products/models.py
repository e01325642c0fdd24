from app.database.database import Base
from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint, Numeric
from sqlalchemy.orm import relationship
from app.common.mixins import CatalogMixin, TimestampMixin


class Product(Base, CatalogMixin):
    __tablename__ = "productos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    codigo = Column(String(50), nullable=False, unique=True)
    nombre = Column(String(150), nullable=False)
    descripcion = Column(String(255), nullable=True)
    unidad = Column(String(30), nullable=False, default="Unidad")  # Unidad de medida
    precio_venta = Column(Numeric(15, 2), nullable=False, default=0)  # Precio actual de venta
    porcentaje_descuento = Column(Numeric(5, 2), nullable=False, default=0)  # Descuento por defecto

    # Relationships
    stocks = relationship("Stock", back_populates="producto", cascade="all, delete-orphan")
    movimientos = relationship("InventoryMovement", back_populates="producto")


class Stock(Base, TimestampMixin):
    """Existencia de un producto en una sucursal"""
    __tablename__ = "stock_sucursal"

    id = Column(Integer, primary_key=True, autoincrement=True)
    id_producto = Column(Integer, ForeignKey("productos.id"), nullable=False, index=True)
    id_sucursal = Column(Integer, ForeignKey("sucursales.id"), nullable=False, index=True)
    cantidad = Column(Numeric(12, 3), nullable=False, default=0)
    cantidad_minima = Column(Numeric(12, 3), nullable=False, default=0)  # Para alertas

    # Relationships
    producto = relationship("Product", back_populates="stocks")
    sucursal = relationship("Branch")

    __table_args__ = (
        UniqueConstraint("id_producto", "id_sucursal", name="uq_stock_producto_sucursal"),
    )


class InventoryMovement(Base, TimestampMixin):
    __tablename__ = "movimientos_inventario"

    id = Column(Integer, primary_key=True, autoincrement=True)
    id_producto = Column(Integer, ForeignKey("productos.id"), nullable=False, index=True)
    id_sucursal = Column(Integer, ForeignKey("sucursales.id"), nullable=False)
    id_empleado = Column(Integer, ForeignKey("empleados.id"), nullable=False)

    tipo_movimiento = Column(String(20), nullable=False)  # IN, OUT, ADJ
    cantidad = Column(Numeric(12, 3), nullable=False)  # Positiva o negativa
    motivo = Column(String(255), nullable=True)  # Ej. "Venta - Factura A-00000001"

    # Relationships
    producto = relationship("Product", back_populates="movimientos")
    sucursal = relationship("Branch")
    empleado = relationship("Employee")
