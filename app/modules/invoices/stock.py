"""
Validación de stock previa a la facturación.

Consulta la existencia de cada producto y reporta disponibilidad por
línea. No modifica inventario. Un producto inexistente se reporta en su
propia línea (encontrado=False) sin abortar el lote: el llamador decide.
"""
from collections import defaultdict
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
import logging

from sqlalchemy.orm import Session

from app.modules.invoices.schemas import StockCheckLine
from app.modules.products.service import ProductCatalog
from app.modules.invoices.pricing import to_decimal

logger = logging.getLogger(__name__)


class StockValidator:

    def __init__(self, db: Session):
        self.catalog = ProductCatalog(db)

    def check(self, items: Iterable[Any], branch_id: Optional[int] = None) -> List[StockCheckLine]:
        """
        Validar cantidades solicitadas contra la existencia.

        Args:
            items: objetos con `id_producto` y `cantidad`
            branch_id: sucursal a consultar (None = todas)

        Returns:
            Una entrada por línea con disponible, stock_actual y cantidad_requerida.
            Si un producto aparece en varias líneas, la disponibilidad se evalúa
            contra la suma solicitada de ese producto.
        """
        items = list(items)
        product_ids = [item.id_producto for item in items]
        products = self.catalog.find_products(product_ids)
        on_hand = self.catalog.on_hand(products.keys(), branch_id)

        requested_by_product: Dict[int, Decimal] = defaultdict(Decimal)
        for item in items:
            requested_by_product[item.id_producto] += to_decimal(item.cantidad)

        results = []
        for item in items:
            requested = to_decimal(item.cantidad)
            product = products.get(item.id_producto)

            if product is None:
                results.append(StockCheckLine(
                    id_producto=item.id_producto,
                    encontrado=False,
                    disponible=False,
                    stock_actual=Decimal("0"),
                    cantidad_requerida=requested
                ))
                continue

            current = on_hand.get(item.id_producto, Decimal("0"))
            results.append(StockCheckLine(
                id_producto=item.id_producto,
                nombre=product.nombre,
                encontrado=True,
                disponible=current >= requested_by_product[item.id_producto],
                stock_actual=current,
                cantidad_requerida=requested
            ))

        unavailable = [line.id_producto for line in results if not line.disponible]
        if unavailable:
            logger.info(f"Stock check branch={branch_id}: unavailable products {unavailable}")
        return results
