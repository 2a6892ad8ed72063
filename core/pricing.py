# core/pricing.py
"""
Pricing engine: line totals, service fee and grand total.

Pure functions over (unit_price, quantity) pairs. Arithmetic is done in
Decimal and rounded half-up to MONEY_DECIMALS places, then handed back as
floats to match the Float money columns.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from core.config import SERVICE_FEE_RATE, MONEY_DECIMALS

SERVICE_FEE = Decimal(SERVICE_FEE_RATE)


@dataclass(frozen=True)
class Totals:
    subtotal: float
    delivery_fee: float
    service_fee: float
    total: float


def _money(value) -> Decimal:
    return Decimal(str(value or 0))


def _round(value: Decimal) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-MONEY_DECIMALS), rounding=ROUND_HALF_UP)


def _field(item, name):
    if isinstance(item, dict):
        return item[name]
    return getattr(item, name)


def line_total(unit_price, quantity: int) -> float:
    return float(_money(unit_price) * quantity)


def service_fee_for(subtotal) -> float:
    return float(_round(_money(subtotal) * SERVICE_FEE))


def compute_totals(line_items, delivery_fee) -> Totals:
    """
    Compute subtotal, service fee and total for a set of line items.

    `line_items` may be ORM rows or dicts exposing `unit_price` and `quantity`.
    An empty set yields subtotal 0, service fee 0 and total == delivery fee.

    Every field is rounded to MONEY_DECIMALS and the total is the exact
    Decimal sum of the other three. Compare parts against the total in
    Decimal (see `parts_add_up`): adding the float fields can drift in the
    last bit once MONEY_DECIMALS > 0.
    """
    subtotal = _round(sum(
        (_money(_field(item, "unit_price")) * _field(item, "quantity") for item in line_items),
        Decimal(0),
    ))
    fee = _round(_money(delivery_fee))
    service = _round(subtotal * SERVICE_FEE)
    return Totals(
        subtotal=float(subtotal),
        delivery_fee=float(fee),
        service_fee=float(service),
        total=float(subtotal + fee + service),
    )


def parts_add_up(totals: Totals) -> bool:
    """total == subtotal + delivery fee + service fee, checked in Decimal."""
    parts = _money(totals.subtotal) + _money(totals.delivery_fee) + _money(totals.service_fee)
    return _round(parts) == _round(_money(totals.total))
