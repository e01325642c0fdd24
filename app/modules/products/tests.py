"""
Tests para el catálogo de productos y existencias por sucursal
"""

import pytest
from decimal import Decimal
from sqlalchemy.orm import Session

from app.common.repository import BaseRepository
from app.modules.products.models import Product, Stock, InventoryMovement
from app.modules.products.service import ProductCatalog


class TestProductCatalog:
    """Tests para consultas y descuento de stock"""

    def test_find_products_skips_missing_and_inactive(self, db_session: Session, sample_products):
        paint, brush = sample_products
        brush.soft_delete()
        db_session.commit()

        found = ProductCatalog(db_session).find_products([paint.id, brush.id, 9999])

        assert list(found) == [paint.id]

    def test_on_hand_by_branch_and_total(self, db_session: Session, sample_stock, sample_branch, second_branch):
        paint, brush = sample_stock
        catalog = ProductCatalog(db_session)

        assert catalog.on_hand([paint.id], sample_branch.id)[paint.id] == Decimal("10")
        assert catalog.on_hand([paint.id], second_branch.id)[paint.id] == Decimal("7")
        assert catalog.on_hand([paint.id, brush.id]) == {paint.id: Decimal("17"), brush.id: Decimal("5")}
        assert catalog.on_hand([brush.id], second_branch.id)[brush.id] == Decimal("0")
        assert catalog.on_hand([]) == {}

    def test_decrement_records_movement(self, db_session: Session, sample_stock, sample_branch, sample_employee):
        paint, _ = sample_stock
        catalog = ProductCatalog(db_session)

        assert catalog.decrement_stock(paint.id, sample_branch.id, Decimal("3"), sample_employee.id,
                                       "Venta - Factura A-00000009") is True
        db_session.commit()

        assert catalog.on_hand([paint.id], sample_branch.id)[paint.id] == Decimal("7")
        movement = db_session.query(InventoryMovement).one()
        assert movement.id_sucursal == sample_branch.id
        assert movement.motivo == "Venta - Factura A-00000009"

    def test_decrement_never_goes_negative(self, db_session: Session, sample_stock, sample_branch,
                                           sample_employee):
        _, brush = sample_stock
        catalog = ProductCatalog(db_session)

        assert catalog.decrement_stock(brush.id, sample_branch.id, Decimal("6"), sample_employee.id, "Venta") is False
        db_session.commit()

        assert catalog.on_hand([brush.id], sample_branch.id)[brush.id] == Decimal("5")
        assert db_session.query(InventoryMovement).count() == 0


class TestBaseRepository:
    """Tests para el repositorio genérico con soft delete"""

    def test_crud_cycle(self, db_session: Session):
        repo = BaseRepository(db_session, Product)

        product = repo.create({"codigo": "TH-010", "nombre": "Thinner", "precio_venta": Decimal("32.75")})
        db_session.commit()
        assert repo.find(product.id).nombre == "Thinner"

        repo.update(product.id, {"nombre": "Thinner industrial"})
        db_session.commit()
        assert repo.find(product.id).nombre == "Thinner industrial"

        assert repo.soft_delete(product.id) is True
        db_session.commit()
        assert repo.find(product.id) is None
        assert repo.find_all() == []
        assert db_session.get(Product, product.id).is_deleted is True

    def test_missing_records(self, db_session: Session):
        repo = BaseRepository(db_session, Product)

        assert repo.update(404, {"nombre": "x"}) is None
        assert repo.soft_delete(404) is False
        assert repo.find_many([]) == {}

    def test_find_all_filters(self, db_session: Session, sample_stock, sample_branch):
        repo = BaseRepository(db_session, Stock)

        rows = repo.find_all(id_sucursal=sample_branch.id)
        assert len(rows) == 2
        assert len(repo.find_all(limit=1)) == 1
