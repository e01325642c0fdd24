from typing import Dict, Iterable, Optional
from decimal import Decimal
from sqlalchemy.orm import Session
from sqlalchemy import func, update
import logging

from app.common.repository import BaseRepository
from app.modules.products.models import Product, Stock, InventoryMovement

logger = logging.getLogger(__name__)

MOVEMENT_OUT = "OUT"


class ProductCatalog:
    """Consultas de catálogo y existencias que consume la facturación."""

    def __init__(self, db: Session):
        self.db = db
        self.products = BaseRepository(db, Product)

    def find_products(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        """Productos activos indexados por id; los inexistentes no aparecen."""
        return self.products.find_many(product_ids)

    def on_hand(self, product_ids: Iterable[int], branch_id: Optional[int] = None) -> Dict[int, Decimal]:
        """
        Existencia por producto.

        Con `branch_id` se consulta solo esa sucursal; sin él se suma el
        stock de todas las sucursales. Productos sin registro de stock
        tienen existencia 0.
        """
        ids = list(set(product_ids))
        if not ids:
            return {}

        query = self.db.query(
            Stock.id_producto,
            func.coalesce(func.sum(Stock.cantidad), 0)
        ).filter(Stock.id_producto.in_(ids))

        if branch_id is not None:
            query = query.filter(Stock.id_sucursal == branch_id)

        totals = {product_id: Decimal("0") for product_id in ids}
        for product_id, quantity in query.group_by(Stock.id_producto).all():
            totals[product_id] = Decimal(str(quantity))
        return totals

    def decrement_stock(self, product_id: int, branch_id: int, quantity: Decimal,
                        employee_id: int, reason: str) -> bool:
        """
        Descontar stock de una sucursal y registrar el movimiento de salida.

        El descuento es un UPDATE condicional (cantidad >= solicitada), por lo
        que dos ventas simultáneas no pueden dejar el stock negativo. Retorna
        False si no había existencia suficiente al momento de escribir.
        """
        result = self.db.execute(
            update(Stock)
            .where(
                Stock.id_producto == product_id,
                Stock.id_sucursal == branch_id,
                Stock.cantidad >= quantity
            )
            .values(cantidad=Stock.cantidad - quantity, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            logger.warning(f"Stock decrement rejected: product={product_id} branch={branch_id} quantity={quantity}")
            return False

        self.db.add(InventoryMovement(
            id_producto=product_id,
            id_sucursal=branch_id,
            id_empleado=employee_id,
            tipo_movimiento=MOVEMENT_OUT,
            cantidad=-quantity,
            motivo=reason
        ))
        logger.debug(f"Stock decremented: product={product_id} branch={branch_id} quantity={quantity}")
        return True
