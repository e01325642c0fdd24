"""
Fixtures compartidas para los tests.

La base de datos de pruebas es un archivo SQLite temporal; el esquema se
recrea antes de cada test. Las variables de entorno se fijan antes de
importar la aplicación para que `settings` y el engine las tomen.
"""
import os
import tempfile
from decimal import Decimal

_test_dir = tempfile.mkdtemp(prefix="facturacion-tests-")
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_test_dir, 'test.db')}"

import pytest
from sqlalchemy.orm import Session

from app.main import app  # noqa: F401  registra modelos y rutas
from app.database.database import Base, SessionLocal, sync_engine
from app.modules.auth.utils import create_access_token
from app.modules.branches.models import Branch
from app.modules.clients.models import Client
from app.modules.employees.models import Employee
from app.modules.products.models import Product, Stock
from app.modules.invoices.models import InvoiceSeries, PaymentType


@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.drop_all(bind=sync_engine)
    Base.metadata.create_all(bind=sync_engine)
    yield


@pytest.fixture
def db_session() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def sample_branch(db_session: Session) -> Branch:
    branch = Branch(nombre="Central", direccion="6a Avenida 10-20", telefono="2222-1111")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture
def second_branch(db_session: Session) -> Branch:
    branch = Branch(nombre="Zona 10", direccion="Boulevard Los Próceres", telefono="2222-2222")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture
def sample_series(db_session: Session, sample_branch: Branch) -> InvoiceSeries:
    series = InvoiceSeries(id_sucursal=sample_branch.id, prefijo="A-", numero_actual=0, descripcion="Serie A")
    db_session.add(series)
    db_session.commit()
    return series


@pytest.fixture
def sample_employee(db_session: Session, sample_branch: Branch) -> Employee:
    employee = Employee(id_sucursal=sample_branch.id, nombres="Carla", apellidos="Méndez", email="carla@demo.local")
    db_session.add(employee)
    db_session.commit()
    return employee


@pytest.fixture
def sample_client(db_session: Session) -> Client:
    client = Client(nombres="Juan", apellidos="Pérez", nit="1234567-8", telefono="5555-0000")
    db_session.add(client)
    db_session.commit()
    return client


@pytest.fixture
def payment_types(db_session: Session):
    cash = PaymentType(nombre="Efectivo")
    card = PaymentType(nombre="Tarjeta")
    db_session.add_all([cash, card])
    db_session.commit()
    return cash, card


@pytest.fixture
def sample_products(db_session: Session):
    paint = Product(codigo="PL-001", nombre="Pintura látex blanco", unidad="Galón",
                    precio_venta=Decimal("100.00"), porcentaje_descuento=Decimal("0"))
    brush = Product(codigo="BR-002", nombre="Brocha 3 pulgadas", unidad="Unidad",
                    precio_venta=Decimal("50.00"), porcentaje_descuento=Decimal("10"))
    db_session.add_all([paint, brush])
    db_session.commit()
    return paint, brush


@pytest.fixture
def sample_stock(db_session: Session, sample_products, sample_branch: Branch, second_branch: Branch):
    """Central: 10 galones y 5 brochas; Zona 10: 7 galones"""
    paint, brush = sample_products
    db_session.add_all([
        Stock(id_producto=paint.id, id_sucursal=sample_branch.id, cantidad=Decimal("10")),
        Stock(id_producto=brush.id, id_sucursal=sample_branch.id, cantidad=Decimal("5")),
        Stock(id_producto=paint.id, id_sucursal=second_branch.id, cantidad=Decimal("7")),
    ])
    db_session.commit()
    return sample_products


@pytest.fixture
def auth_headers(sample_employee: Employee):
    token = create_access_token({"sub": sample_employee.id})
    return {"Authorization": f"Bearer {token}"}
