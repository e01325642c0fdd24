"""
Motor de precios para facturación.

Calcula descuento y subtotal por línea, y los totales de la factura:

    descuento_linea = cantidad * precio * descuento% / 100
    subtotal_linea  = cantidad * precio - descuento_linea
    subtotal        = Σ cantidad * precio
    descuento_total = Σ descuento_linea
    impuesto        = (subtotal - descuento_total) * tasa
    total           = subtotal - descuento_total + impuesto

Toda la aritmética es Decimal redondeada a centavos (ROUND_HALF_UP),
nunca punto flotante. Es una función pura: no consulta la base de datos.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, List

from app.common.exceptions import InvalidLineItem

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0.00")


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_money(value: Any) -> Decimal:
    """Redondear a la unidad monetaria mínima (redondeo comercial)."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricingLine:
    product_id: int
    quantity: Decimal
    unit_price: Decimal
    discount_pct: Decimal = Decimal("0")


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    quantity: Decimal
    unit_price: Decimal
    discount_pct: Decimal
    gross_amount: Decimal
    discount_amount: Decimal
    line_subtotal: Decimal


@dataclass(frozen=True)
class PricingResult:
    lines: List[PricedLine]
    subtotal: Decimal
    discount_total: Decimal
    tax_rate: Decimal
    tax_total: Decimal
    grand_total: Decimal


def _checked(value: Any, product_id: int, field: str) -> Decimal:
    try:
        number = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidLineItem(f"Valor no numérico en '{field}' del producto {product_id}", product_id, field)
    if not number.is_finite():
        raise InvalidLineItem(f"Valor no numérico en '{field}' del producto {product_id}", product_id, field)
    return number


def price_line(line: PricingLine) -> PricedLine:
    """Calcular descuento y subtotal de una línea, validando sus rangos."""
    quantity = _checked(line.quantity, line.product_id, "cantidad")
    unit_price = _checked(line.unit_price, line.product_id, "precio_unitario")
    discount_pct = _checked(line.discount_pct, line.product_id, "descuento_porcentaje")

    if quantity <= 0:
        raise InvalidLineItem(f"La cantidad del producto {line.product_id} debe ser mayor a 0",
                              line.product_id, "cantidad")
    if unit_price < 0:
        raise InvalidLineItem(f"El precio unitario del producto {line.product_id} no puede ser negativo",
                              line.product_id, "precio_unitario")
    if discount_pct < 0 or discount_pct > HUNDRED:
        raise InvalidLineItem(f"El descuento del producto {line.product_id} debe estar entre 0 y 100",
                              line.product_id, "descuento_porcentaje")

    raw_gross = quantity * unit_price
    gross_amount = to_money(raw_gross)
    discount_amount = to_money(raw_gross * discount_pct / HUNDRED)

    return PricedLine(
        product_id=line.product_id,
        quantity=quantity,
        unit_price=unit_price,
        discount_pct=discount_pct,
        gross_amount=gross_amount,
        discount_amount=discount_amount,
        line_subtotal=gross_amount - discount_amount,
    )


def calculate_totals(lines: Iterable[PricingLine], tax_rate: Any) -> PricingResult:
    """
    Calcular los totales de una factura.

    Args:
        lines: Líneas (producto, cantidad, precio, descuento%)
        tax_rate: Tasa de impuesto como fracción (ej. 0.12)

    Returns:
        PricingResult con las líneas calculadas y los totales
    """
    rate = to_decimal(tax_rate)
    if not rate.is_finite() or rate < 0 or rate >= 1:
        raise ValueError(f"Tasa de impuesto inválida: {tax_rate}")

    priced = [price_line(line) for line in lines]

    subtotal = sum((line.gross_amount for line in priced), ZERO)
    discount_total = sum((line.discount_amount for line in priced), ZERO)
    tax_total = to_money((subtotal - discount_total) * rate)

    return PricingResult(
        lines=priced,
        subtotal=subtotal,
        discount_total=discount_total,
        tax_rate=rate,
        tax_total=tax_total,
        grand_total=subtotal - discount_total + tax_total,
    )
