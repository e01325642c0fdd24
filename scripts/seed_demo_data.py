"""
Seed script: datos de demostración para el núcleo de facturación.

Qué crea:
- Sucursales (2) con una serie de facturación cada una.
- Empleados (1 por sucursal) y un token de acceso para probar la API.
- Tipos de pago: Efectivo, Tarjeta, Transferencia, Cheque.
- Clientes (consumidor final + N aleatorios).
- Productos con precio, descuento por defecto y stock inicial por sucursal.
- Facturas de venta creadas con InvoiceService (afectan inventario).

Uso:
    python scripts/seed_demo_data.py --products 60 --clients 40 --invoices 120

Solo para entornos de desarrollo.
"""

# Add project root to sys.path so `app.*` imports work even if CWD changes
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import logging
import random
from decimal import Decimal

from app.common.exceptions import InvoicingError
from app.database.database import SessionLocal, sync_engine, Base
from app.modules.auth.utils import create_access_token
from app.modules.branches.models import Branch
from app.modules.clients.models import Client
from app.modules.employees.models import Employee
from app.modules.products.models import Product, Stock
from app.modules.invoices.models import InvoiceSeries, PaymentType
from app.modules.invoices.schemas import InvoiceCreate, InvoiceLineCreate, PaymentAllocationCreate
from app.modules.invoices.service import InvoiceService

logger = logging.getLogger("seed")

BRANCHES = [("Central", "A-"), ("Zona 10", "B-")]
PAYMENT_TYPES = ["Efectivo", "Tarjeta", "Transferencia", "Cheque"]
PRODUCT_LINES = [
    ("Pintura látex", "Galón", Decimal("145.00")),
    ("Pintura esmalte", "Galón", Decimal("210.00")),
    ("Barniz", "Litro", Decimal("95.50")),
    ("Sellador", "Cubeta", Decimal("480.00")),
    ("Thinner", "Litro", Decimal("32.75")),
    ("Brocha", "Unidad", Decimal("18.00")),
    ("Rodillo", "Unidad", Decimal("42.00")),
]
COLORS = ["Blanco", "Negro", "Gris", "Azul", "Rojo", "Verde", "Amarillo", "Beige"]
FIRST_NAMES = ["Ana", "Luis", "María", "Carlos", "Sofía", "Jorge", "Lucía", "Pedro"]
LAST_NAMES = ["López", "García", "Pérez", "Morales", "Castillo", "Herrera", "Ramírez"]


def pick(seq):
    return random.choice(seq)


def create_branches(db):
    branches = []
    for name, prefix in BRANCHES:
        branch = db.query(Branch).filter(Branch.nombre == name).first()
        if branch is None:
            branch = Branch(nombre=name, direccion=f"Sucursal {name}", telefono="2222-0000")
            db.add(branch)
            db.flush()
            db.add(InvoiceSeries(id_sucursal=branch.id, prefijo=prefix, numero_actual=0,
                                 descripcion=f"Serie {prefix} {name}"))
        branches.append(branch)
    db.commit()
    return branches


def create_employees(db, branches):
    employees = []
    for branch in branches:
        email = f"caja.{branch.id}@demo.local"
        employee = db.query(Employee).filter(Employee.email == email).first()
        if employee is None:
            employee = Employee(id_sucursal=branch.id, nombres="Cajero", apellidos=branch.nombre, email=email)
            db.add(employee)
        employees.append(employee)
    db.commit()
    return employees


def create_payment_types(db):
    types = []
    for name in PAYMENT_TYPES:
        payment_type = db.query(PaymentType).filter(PaymentType.nombre == name).first()
        if payment_type is None:
            payment_type = PaymentType(nombre=name)
            db.add(payment_type)
        types.append(payment_type)
    db.commit()
    return types


def create_clients(db, count: int):
    clients = [db.query(Client).filter(Client.nit == "CF").first() or Client(nombres="Consumidor", apellidos="Final")]
    db.add(clients[0])
    for _ in range(count):
        client = Client(
            nombres=pick(FIRST_NAMES),
            apellidos=pick(LAST_NAMES),
            nit=str(random.randint(1000000, 9999999)),
            telefono=f"5{random.randint(1000000, 9999999)}"
        )
        db.add(client)
        clients.append(client)
    db.commit()
    return clients


def create_products(db, branches, count: int):
    products = []
    for i in range(count):
        name, unit, price = PRODUCT_LINES[i % len(PRODUCT_LINES)]
        code = f"P-{i + 1:05d}"
        product = db.query(Product).filter(Product.codigo == code).first()
        if product is None:
            product = Product(
                codigo=code,
                nombre=f"{name} {pick(COLORS)}",
                unidad=unit,
                precio_venta=price,
                porcentaje_descuento=pick([Decimal("0"), Decimal("0"), Decimal("5"), Decimal("10")])
            )
            db.add(product)
            db.flush()
            for branch in branches:
                db.add(Stock(id_producto=product.id, id_sucursal=branch.id,
                             cantidad=Decimal(random.randint(20, 200)), cantidad_minima=Decimal("5")))
        products.append(product)
    db.commit()
    return products


def create_invoices(db, series, employees, clients, products, payment_types, count: int):
    service = InvoiceService(db)
    created = 0
    for i in range(count):
        serie = pick(series)
        employee = next(e for e in employees if e.id_sucursal == serie.id_sucursal)
        lines = [
            InvoiceLineCreate(id_producto=pick(products).id, cantidad=Decimal(random.randint(1, 4)))
            for _ in range(random.randint(1, 5))
        ]
        draft = InvoiceCreate(id_cliente=pick(clients).id, id_serie=serie.id, productos=lines)
        try:
            # El total lo calcula el servicio; se calcula aparte para pagar exacto
            preview = _priced_total(service, draft)
            draft.medios_pago = [PaymentAllocationCreate(id_tipo_pago=pick(payment_types).id, monto=preview)]
            invoice = service.create_invoice(draft, employee.id)
            created += 1
            if random.random() < 0.05:
                service.void_invoice(invoice.id, "Error de digitación", employee.id)
        except InvoicingError as e:
            logger.info(f"Invoice {i} skipped: {e.kind.value}")
            continue
        if created % 50 == 0:
            print(f"  Invoices created: {created}")
    return created


def _priced_total(service: InvoiceService, draft: InvoiceCreate) -> Decimal:
    from app.modules.invoices.pricing import PricingLine, calculate_totals

    products = service.catalog.find_products(line.id_producto for line in draft.productos)
    result = calculate_totals(
        [
            PricingLine(
                product_id=line.id_producto,
                quantity=line.cantidad,
                unit_price=products[line.id_producto].precio_venta,
                discount_pct=products[line.id_producto].porcentaje_descuento
            )
            for line in draft.productos
        ],
        service.tax_rate
    )
    return result.grand_total


def main():
    parser = argparse.ArgumentParser(description="Seed demo invoicing data")
    parser.add_argument("--products", type=int, default=60)
    parser.add_argument("--clients", type=int, default=40)
    parser.add_argument("--invoices", type=int, default=120)
    parser.add_argument("--create-tables", action="store_true", help="Crear tablas sin Alembic")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if args.create_tables:
        Base.metadata.create_all(bind=sync_engine)

    db = SessionLocal()
    try:
        branches = create_branches(db)
        series = db.query(InvoiceSeries).all()
        employees = create_employees(db, branches)
        payment_types = create_payment_types(db)

        print("Creating clients...")
        clients = create_clients(db, args.clients)

        print("Creating products...")
        products = create_products(db, branches, args.products)
        print(f"Products: {len(products)}")

        print("Creating sales invoices (affect inventory)...")
        invoices_created = create_invoices(db, series, employees, clients, products, payment_types, args.invoices)
        print(f"Invoices created: {invoices_created}")

        print("\nSeed completed.")
        for employee in employees:
            token = create_access_token({"sub": employee.id})
            print(f"  Employee {employee.id} ({employee.nombre_completo}): Authorization: Bearer {token}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
