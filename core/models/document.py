"""Input handed to the document (PDF / print view) renderer."""

from pydantic import BaseModel

from core.models.line_item import LineItem
from core.models.quote import Quote
from core.pricing import QuotePricing, quote_pricing


class QuoteDocument(BaseModel):
    """
    A quote with its ordered line items and the pricing computed from them.

    business_name is the owner's display name for the document header;
    None leaves the header blank.
    """

    quote: Quote
    line_items: list[LineItem]
    pricing: QuotePricing
    business_name: str | None = None

    @classmethod
    def build(
        cls,
        quote: Quote,
        line_items: list[LineItem],
        business_name: str | None = None
    ) -> "QuoteDocument":
        return cls(
            quote=quote,
            line_items=line_items,
            pricing=quote_pricing(line_items, quote.deposit_percent),
            business_name=business_name,
        )
