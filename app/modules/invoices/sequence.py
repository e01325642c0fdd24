"""
Asignación de números de factura por serie.

El número es `prefijo + correlativo` con el correlativo rellenado con
ceros. El incremento se hace en la base de datos con un UPDATE atómico
(numero_actual = numero_actual + 1 ... RETURNING), que toma el bloqueo de
fila de la serie hasta el commit: solicitudes concurrentes de la misma
serie se serializan aunque vengan de procesos distintos. Si la
transacción se revierte, el contador no avanza.
"""
from dataclasses import dataclass
from typing import Optional
import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.common.exceptions import SeriesNotFound
from app.core.config import settings
from app.modules.invoices.models import InvoiceSeries
from app.modules.invoices.schemas import NextInvoiceNumber

logger = logging.getLogger(__name__)


def format_invoice_number(prefix: str, correlative: int, padding: Optional[int] = None) -> str:
    width = settings.INVOICE_NUMBER_PADDING if padding is None else padding
    return f"{prefix}{correlative:0{width}d}"


@dataclass(frozen=True)
class AllocatedNumber:
    series_id: int
    branch_id: int
    prefix: str
    correlative: int
    number: str


class SequenceAllocator:

    def __init__(self, db: Session, padding: Optional[int] = None):
        self.db = db
        self.padding = padding

    def _active_series(self, series_id: int) -> Optional[InvoiceSeries]:
        return self.db.query(InvoiceSeries).filter(
            InvoiceSeries.id == series_id,
            InvoiceSeries.is_active.is_(True),
            InvoiceSeries.deleted_at.is_(None)
        ).first()

    def next_number(self, series_id: int) -> AllocatedNumber:
        """
        Asignar el siguiente número de la serie.

        No hace commit: debe ejecutarse dentro de la misma transacción que
        persiste la factura.
        """
        row = self.db.execute(
            update(InvoiceSeries)
            .where(
                InvoiceSeries.id == series_id,
                InvoiceSeries.is_active.is_(True),
                InvoiceSeries.deleted_at.is_(None)
            )
            .values(numero_actual=InvoiceSeries.numero_actual + 1)
            .returning(InvoiceSeries.numero_actual, InvoiceSeries.prefijo, InvoiceSeries.id_sucursal)
            .execution_options(synchronize_session=False)
        ).first()

        if row is None:
            raise SeriesNotFound(series_id)

        correlative, prefix, branch_id = row
        number = format_invoice_number(prefix, correlative, self.padding)
        logger.info(f"Allocated invoice number {number} (series={series_id})")

        return AllocatedNumber(
            series_id=series_id,
            branch_id=branch_id,
            prefix=prefix,
            correlative=correlative,
            number=number
        )

    def preview(self, series_id: int) -> NextInvoiceNumber:
        """Próximo número de la serie, sin asignarlo (solo informativo)."""
        series = self._active_series(series_id)
        if series is None:
            raise SeriesNotFound(series_id)

        # Leer el valor vigente aunque la sesión tenga la serie en caché
        self.db.refresh(series)

        return NextInvoiceNumber(
            id_serie=series.id,
            prefijo=series.prefijo,
            numero_actual=series.numero_actual,
            proximo_numero=format_invoice_number(series.prefijo, series.numero_actual + 1, self.padding)
        )

    def get_series(self, series_id: int) -> InvoiceSeries:
        series = self._active_series(series_id)
        if series is None:
            raise SeriesNotFound(series_id)
        return series
