"""Money arithmetic for carts and orders.

Prices persist as integer cents and are handled as ``Decimal`` everywhere else;
nothing in here touches binary floating point.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .errors import CommerceError, ErrorKind

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_cents(amount: Decimal) -> int:
    return int((amount * Decimal("100")).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(value: int) -> Decimal:
    return (Decimal(value) / Decimal("100")).quantize(CENT)


def coerce_price(value: object, *, product_name: str) -> Decimal:
    """Interpret a stored or supplied price, failing instead of pricing at zero."""

    if value is None or isinstance(value, (bool, float)):
        raise CommerceError(ErrorKind.COMPUTATION_ERROR, f"Invalid price for product {product_name}")
    try:
        price = Decimal(value)  # type: ignore[arg-type]
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise CommerceError(ErrorKind.COMPUTATION_ERROR, f"Invalid price for product {product_name}") from exc
    if not price.is_finite():
        raise CommerceError(ErrorKind.COMPUTATION_ERROR, f"Invalid price for product {product_name}")
    return price


def product_price(price_cents: int | None, *, product_name: str) -> Decimal:
    """Unit price of a product row as a Decimal with two places."""

    cents = coerce_price(price_cents, product_name=product_name)
    return (cents / Decimal("100")).quantize(CENT)


def line_amount(price: Decimal, quantity: int) -> Decimal:
    return price * quantity


def cart_total(lines: Iterable[tuple[Decimal, int]]) -> Decimal:
    """Sum ``quantity x price`` over ``(price, quantity)`` pairs."""

    return sum((line_amount(price, quantity) for price, quantity in lines), ZERO).quantize(CENT)
