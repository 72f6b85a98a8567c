"""Resolve what an accepted quote charges at checkout. Pure derivation, no state."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from core.exceptions import IllegalTransitionError, QuoteExpiredError
from core.lifecycle import QuoteAction, next_status
from core.models import LineItem, Quote
from core.pricing import quote_pricing, to_minor_units


class Charge(BaseModel):
    """Amount to collect for a quote, in both major and minor units."""

    amount: Decimal
    amount_minor: int
    currency: str
    is_deposit: bool
    label: str


def resolve_charge(quote: Quote, line_items: list[LineItem], at: datetime) -> Charge:
    """
    Deposit if the quote asks for one, otherwise the full subtotal.

    Raises:
        IllegalTransitionError: quote is not accepted, or has no line items
        QuoteExpiredError: valid_until has passed
    """
    next_status(quote.status, QuoteAction.MARK_PAID)

    if quote.is_expired(at):
        raise QuoteExpiredError()

    if not line_items:
        raise IllegalTransitionError("Quote has no line items", action=QuoteAction.MARK_PAID.value)

    pricing = quote_pricing(line_items, quote.deposit_percent)

    if quote.deposit_percent > 0:
        amount = pricing.deposit_amount
        label = f"{quote.title} - Deposit ({quote.deposit_percent}%)"
    else:
        amount = pricing.subtotal
        label = f"{quote.title} - Full Payment"

    return Charge(
        amount=amount,
        amount_minor=to_minor_units(amount),
        currency=quote.currency.lower(),
        is_deposit=quote.deposit_percent > 0,
        label=label,
    )
