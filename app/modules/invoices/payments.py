"""
Conciliación de medios de pago contra el total calculado de la factura.
"""
from decimal import Decimal
from typing import Any, Iterable, Optional

from app.common.exceptions import InvalidPayment, PaymentMismatch
from app.core.config import settings
from app.modules.invoices.pricing import ZERO, to_decimal, to_money


def reconcile_payments(grand_total: Decimal, payments: Iterable[Any],
                       tolerance: Optional[Decimal] = None) -> Decimal:
    """
    Verificar que la suma de los pagos coincide con el total.

    Cada pago debe exponer `monto`. Se rechaza la lista vacía cuando el
    total es mayor a 0 y cualquier monto menor o igual a 0. La diferencia
    absoluta entre la suma y el total no puede exceder `tolerance`.

    Returns:
        La suma de los pagos
    """
    if tolerance is None:
        tolerance = settings.PAYMENT_TOLERANCE
    tolerance = to_decimal(tolerance)

    items = list(payments)
    expected = to_money(grand_total)

    if not items:
        if expected > 0:
            raise InvalidPayment("Debe especificar al menos un medio de pago")
        return ZERO

    amounts = []
    for index, payment in enumerate(items):
        amount = to_decimal(payment.monto)
        if not amount.is_finite() or amount <= 0:
            raise InvalidPayment(
                "Datos de medio de pago inválidos: el monto debe ser mayor a 0",
                {"indice": index, "monto": str(payment.monto)}
            )
        amounts.append(amount)

    actual = sum(amounts, ZERO)
    if abs(actual - expected) > tolerance:
        raise PaymentMismatch(expected=expected, actual=to_money(actual))

    return actual
