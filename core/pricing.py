"""
Quote pricing engine.

All monetary math runs on decimal.Decimal. Values are rounded half-up to
cents at three boundaries, in this order: each line item, the subtotal,
and the deposit. Rounding is never deferred to the end, so the subtotal is
the sum of already-rounded line totals.

Inputs may be Decimal, int, float or numeric strings (psycopg2 returns
numeric columns as Decimal, forms deliver strings). Range checks on rate,
quantity and discount belong to the caller's validation layer.
"""

from collections.abc import Iterable, Mapping
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from pydantic import BaseModel

from core.exceptions import InvalidAmountError

_CENT = Decimal("0.01")
_ONE = Decimal("1")
_HUNDRED = Decimal("100")
_ZERO = Decimal("0")


class QuotePricing(BaseModel):
    """Computed totals for a quote. total equals subtotal; the deposit is a portion of it."""

    subtotal: Decimal
    line_item_totals: list[Decimal]
    deposit_amount: Decimal
    total: Decimal


def to_decimal(value: Any) -> Decimal:
    """
    Normalize a numeric input to Decimal without binary float error.

    Floats go through their shortest repr, so 33.33 becomes Decimal("33.33")
    rather than 33.3299999999999982946974341757595539093017578125.

    Raises:
        InvalidAmountError: value is not a finite number
    """
    if isinstance(value, bool):
        raise InvalidAmountError(value)

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise InvalidAmountError(value)
    else:
        raise InvalidAmountError(value)

    if not result.is_finite():
        raise InvalidAmountError(value)
    return result


def round_money(amount: Any) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    return to_decimal(amount).quantize(_CENT, rounding=ROUND_HALF_UP)


def line_item_total(rate: Any, quantity: Any, discount_percent: Any = 0) -> Decimal:
    """
    rate * quantity * (1 - discount/100), rounded to cents.

    >>> line_item_total("33.33", 3, 10)
    Decimal('89.99')
    """
    base = to_decimal(rate) * to_decimal(quantity)
    discount_amount = base * (to_decimal(discount_percent) / _HUNDRED)
    return round_money(base - discount_amount)


def _read_field(item: Any, key: str, default: Any = None) -> Any:
    if isinstance(item, Mapping):
        return item.get(key, default)
    return getattr(item, key, default)


def quote_pricing(line_items: Iterable[Any], deposit_percent: Any = 0) -> QuotePricing:
    """
    Price a quote from its line items.

    Items may be LineItem/TemplateItem models or mappings with
    rate, quantity and discount keys. Order is preserved in
    line_item_totals, so pass items already sorted by sort_order.
    """
    totals = [
        line_item_total(
            _read_field(item, "rate"),
            _read_field(item, "quantity"),
            _read_field(item, "discount", 0),
        )
        for item in line_items
    ]

    subtotal = round_money(sum(totals, _ZERO))
    deposit_percent = to_decimal(deposit_percent if deposit_percent is not None else 0)
    deposit_amount = round_money(subtotal * (deposit_percent / _HUNDRED))

    return QuotePricing(
        subtotal=subtotal,
        line_item_totals=totals,
        deposit_amount=deposit_amount,
        total=subtotal,
    )


def to_minor_units(amount: Any) -> int:
    """
    Convert a major-unit amount to integer minor units for the processor.

    Half a minor unit rounds up: 10.005 -> 1001.
    """
    return int((to_decimal(amount) * _HUNDRED).quantize(_ONE, rounding=ROUND_HALF_UP))
