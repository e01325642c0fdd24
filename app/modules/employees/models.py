from app.database.database import Base
from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship
from app.common.mixins import CatalogMixin


class Employee(Base, CatalogMixin):
    __tablename__ = "empleados"

    id = Column(Integer, primary_key=True, autoincrement=True)
    id_sucursal = Column(Integer, ForeignKey("sucursales.id"), nullable=False, index=True)
    nombres = Column(String(100), nullable=False)
    apellidos = Column(String(100), nullable=False)
    email = Column(String(100), nullable=True)

    # Relationships
    sucursal = relationship("Branch", back_populates="empleados")

    @property
    def nombre_completo(self) -> str:
        return f"{self.nombres} {self.apellidos}"
