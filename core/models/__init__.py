"""Core domain models."""

from core.models.quote import (
    Quote, QuoteCreate, QuoteUpdate, QuoteStatus,
    validate_share_token, SHARE_TOKEN_MAX_LENGTH,
)
from core.models.line_item import LineItem, LineItemCreate, LineItemUpdate, PricingType
from core.models.template import Template, TemplateCreate, TemplateUpdate, TemplateItem
from core.models.document import QuoteDocument
from core.models.analytics import QuoteAnalytics, DailyRevenue, DailyQuoteCount

__all__ = [
    # Quote
    "Quote", "QuoteCreate", "QuoteUpdate", "QuoteStatus",
    "validate_share_token", "SHARE_TOKEN_MAX_LENGTH",
    # LineItem
    "LineItem", "LineItemCreate", "LineItemUpdate", "PricingType",
    # Template
    "Template", "TemplateCreate", "TemplateUpdate", "TemplateItem",
    # Rendering input
    "QuoteDocument",
    # Dashboard
    "QuoteAnalytics", "DailyRevenue", "DailyQuoteCount",
]
