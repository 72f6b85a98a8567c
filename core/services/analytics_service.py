"""
Analytics service for the owner dashboard.

Read-only. Quote values come from the pricing engine (per-item rounding,
then subtotal), never from SQL arithmetic, so the dashboard agrees to the
cent with what the quote page and checkout show.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from clients.postgres_client import PostgresClient
from core.models import QuoteStatus
from core.models.analytics import DailyQuoteCount, DailyRevenue, QuoteAnalytics
from core.ownership import owner_scope
from core.pricing import quote_pricing, round_money
from utils.timezone import month_start, now_utc, to_utc

logger = logging.getLogger(__name__)

SERIES_DAYS = 30

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def _sum(values: list[Decimal]) -> Decimal:
    return round_money(sum(values, _ZERO))


def _revenue_change(this_month: Decimal, last_month: Decimal) -> Decimal:
    """Percent change month over month; 100 when there was nothing last month."""
    if last_month > 0:
        return round_money((this_month - last_month) / last_month * _HUNDRED)
    if this_month > 0:
        return _HUNDRED
    return _ZERO


class AnalyticsService:
    """Service for dashboard analytics."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def _load_quotes(self) -> list[dict[str, Any]]:
        """
        Caller's quotes with their line items, one dict per quote.

        Each dict carries id, status, created_at, paid_at and value.
        """
        clause, params = owner_scope("q")
        rows = self.postgres.execute(
            f"""
            SELECT q.id, q.status, q.created_at, q.paid_at,
                   li.rate, li.quantity, li.discount
            FROM quotes q
            LEFT JOIN line_items li ON li.quote_id = q.id
            WHERE {clause}
            ORDER BY q.created_at ASC, li.sort_order ASC
            """,
            params
        )

        quotes: dict[UUID, dict[str, Any]] = {}
        items: dict[UUID, list[dict[str, Any]]] = defaultdict(list)
        for row in rows:
            quotes.setdefault(row["id"], {
                "id": row["id"],
                "status": QuoteStatus(row["status"]),
                "created_at": row["created_at"],
                "paid_at": row["paid_at"],
            })
            # LEFT JOIN yields one all-NULL item row for quotes without items
            if row["rate"] is not None:
                items[row["id"]].append(row)

        for quote_id, quote in quotes.items():
            quote["value"] = quote_pricing(items[quote_id]).subtotal

        return list(quotes.values())

    def get_analytics(self, at: datetime | None = None) -> QuoteAnalytics:
        """
        Dashboard figures for the current caller.

        Args:
            at: Reference instant for month and series boundaries (default now)
        """
        now = at or now_utc()
        quotes = self._load_quotes()

        paid = [q for q in quotes if q["status"] == QuoteStatus.PAID]
        accepted = [q for q in quotes if q["status"] in (QuoteStatus.ACCEPTED, QuoteStatus.PAID)]

        this_month_start = month_start(now)
        last_month_start = month_start(now, months_back=1)

        this_month = _sum([
            q["value"] for q in paid
            if q["paid_at"] is not None and q["paid_at"] >= this_month_start
        ])
        last_month = _sum([
            q["value"] for q in paid
            if q["paid_at"] is not None and last_month_start <= q["paid_at"] < this_month_start
        ])

        average = _ZERO
        if quotes:
            average = round_money(sum((q["value"] for q in quotes), _ZERO) / len(quotes))

        status_counts = {status.value: 0 for status in QuoteStatus}
        for q in quotes:
            status_counts[q["status"].value] += 1

        return QuoteAnalytics(
            quote_count=len(quotes),
            status_counts=status_counts,
            total_revenue=_sum([q["value"] for q in paid]),
            accepted_value=_sum([q["value"] for q in accepted]),
            average_quote_value=average,
            this_month_revenue=this_month,
            last_month_revenue=last_month,
            revenue_change_percent=_revenue_change(this_month, last_month),
            revenue_by_day=self._revenue_series(paid, now),
            quotes_by_day=self._quote_series(quotes, now),
        )

    @staticmethod
    def _days(now: datetime) -> list[date]:
        today = to_utc(now).date()
        return [today - timedelta(days=offset) for offset in range(SERIES_DAYS - 1, -1, -1)]

    def _revenue_series(self, paid: list[dict[str, Any]], now: datetime) -> list[DailyRevenue]:
        """Paid revenue per UTC day for the last 30 days, zero-filled."""
        revenue = {day: _ZERO for day in self._days(now)}
        for q in paid:
            if q["paid_at"] is None:
                continue
            day = to_utc(q["paid_at"]).date()
            if day in revenue:
                revenue[day] += q["value"]
        return [DailyRevenue(day=day, revenue=round_money(value)) for day, value in revenue.items()]

    def _quote_series(self, quotes: list[dict[str, Any]], now: datetime) -> list[DailyQuoteCount]:
        """Quotes created per UTC day for the last 30 days, zero-filled."""
        counts = {day: 0 for day in self._days(now)}
        for q in quotes:
            day = to_utc(q["created_at"]).date()
            if day in counts:
                counts[day] += 1
        return [DailyQuoteCount(day=day, quotes=count) for day, count in counts.items()]
