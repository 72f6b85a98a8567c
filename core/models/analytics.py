"""Owner dashboard figures."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel


class DailyRevenue(BaseModel):
    day: date
    revenue: Decimal


class DailyQuoteCount(BaseModel):
    day: date
    quotes: int


class QuoteAnalytics(BaseModel):
    """
    Revenue and pipeline summary for one owner and session scope.

    Quote values are quote subtotals from the pricing engine. Revenue counts
    paid quotes by paid_at; accepted value counts accepted and paid quotes.
    """

    quote_count: int
    status_counts: dict[str, int]
    total_revenue: Decimal
    accepted_value: Decimal
    average_quote_value: Decimal
    this_month_revenue: Decimal
    last_month_revenue: Decimal
    revenue_change_percent: Decimal
    revenue_by_day: list[DailyRevenue]
    quotes_by_day: list[DailyQuoteCount]
