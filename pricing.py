"""Shared money arithmetic for the cart display and the sale commit.

All amounts are Decimal, rounded half-up to cents. Each line total is
rounded and the subtotal is their sum. Tax is rounded once on the subtotal,
and the total is built from the rounded parts so that
``total == max(0, subtotal + tax - discount)`` holds exactly.
"""
from decimal import Decimal, ROUND_HALF_UP

from models import Totals
from settings import TAX_RATE

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value):
    if not isinstance(value, Decimal):
        # str() first so floats like 0.1 do not leak binary noise
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(unit_price, quantity):
    return to_money(Decimal(unit_price) * quantity)


def clamp_discount(discount, ceiling):
    discount = to_money(discount or 0)
    if discount < ZERO:
        return ZERO
    return min(discount, ceiling)


def compute_totals(priced_lines, tax_rate=TAX_RATE, discount=ZERO):
    """Totals for an iterable of (unit_price, quantity) pairs.

    The discount is subtracted after tax and clamped to [0, subtotal + tax].
    """
    # printed line totals always add up to the subtotal
    subtotal = sum((line_total(price, qty) for price, qty in priced_lines), ZERO)
    tax = to_money(subtotal * Decimal(tax_rate))
    gross = subtotal + tax
    discount = clamp_discount(discount, gross)
    return Totals(subtotal=subtotal, tax=tax, total=gross - discount, discount=discount)
