from app.database.database import Base
from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship
from app.common.mixins import CatalogMixin


class Branch(Base, CatalogMixin):
    """Sucursal: emite facturas a través de sus series y mantiene su propio stock"""
    __tablename__ = "sucursales"

    id = Column(Integer, primary_key=True, autoincrement=True)
    nombre = Column(String(100), nullable=False)
    direccion = Column(String(255), nullable=True)
    telefono = Column(String(30), nullable=True)

    # Relationships
    empleados = relationship("Employee", back_populates="sucursal")
    series = relationship("InvoiceSeries", back_populates="sucursal")
