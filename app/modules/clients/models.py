from app.database.database import Base
from sqlalchemy import Column, Integer, String
from app.common.mixins import CatalogMixin


class Client(Base, CatalogMixin):
    __tablename__ = "clientes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    nombres = Column(String(100), nullable=False)
    apellidos = Column(String(100), nullable=True)
    nit = Column(String(20), nullable=False, default="CF", index=True)  # CF = consumidor final
    telefono = Column(String(30), nullable=True)
    email = Column(String(100), nullable=True)
    direccion = Column(String(255), nullable=True)

    @property
    def nombre_completo(self) -> str:
        return f"{self.nombres} {self.apellidos or ''}".strip()
