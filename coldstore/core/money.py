"""
Fixed-point helpers for quantities, unit prices and amounts.

Quantities, weights and unit prices carry 6 fractional digits. Amounts are
rounded to cents once, when a line amount is computed; totals are sums of
already-rounded line amounts.
"""
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Iterable, Union

QUANTITY_PLACES = Decimal("0.000001")
MONEY_PLACES = Decimal("0.01")
ZERO = Decimal("0")
ZERO_MONEY = Decimal("0.00")

# 18 total digits on both operands; keep every digit of the product
_PRODUCT_PRECISION = 40

Number = Union[Decimal, int, str]


def to_quantity(value: Number) -> Decimal:
    """Quantize a quantity, weight or unit price to 6 fractional digits."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP)


def line_amount(quantity: Decimal, unit_price: Decimal) -> Decimal:
    """quantity x unit price, rounded half-up to cents."""
    with localcontext() as ctx:
        ctx.prec = _PRODUCT_PRECISION
        return (quantity * unit_price).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def sum_money(amounts: Iterable[Decimal]) -> Decimal:
    total = sum(amounts, ZERO_MONEY)
    return total.quantize(MONEY_PLACES)


def format_quantity(value: Decimal) -> str:
    """Render a quantity without trailing zeros ("40", "12.5")."""
    normalized = value.normalize()
    if normalized == normalized.to_integral_value():
        return f"{normalized.to_integral_value():f}"
    return f"{normalized:f}"


def format_fixed(value: Decimal, places: int = 2) -> str:
    """Render a quantity with a fixed number of decimals ("10000.00")."""
    return f"{value:.{places}f}"
