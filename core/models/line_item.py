"""Line item domain models.

Rates and quantities are numeric(10,2) columns and travel as Decimal end to
end. Totals are never stored; LineItem.total is computed by core.pricing.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from core.pricing import line_item_total


class PricingType(str, Enum):
    """How a line item is priced."""

    HOURLY = "hourly"
    FIXED = "fixed"
    PER_UNIT = "per_unit"  # Quantity x rate, with a unit label


class LineItemCreate(BaseModel):
    """Data required to create a line item (also used for template items)."""

    description: str = Field(..., min_length=1, max_length=500)
    pricing_type: PricingType
    unit: str | None = Field(None, max_length=50)
    rate: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    quantity: Decimal = Field(Decimal("1"), gt=0, max_digits=10, decimal_places=2)
    discount: Decimal = Field(Decimal("0"), ge=0, le=100, max_digits=5, decimal_places=2)
    sort_order: int = Field(0, ge=0)

    @model_validator(mode="after")
    def validate_unit(self) -> "LineItemCreate":
        """Per-unit pricing needs a unit label; other types drop it."""
        if self.unit is not None and not self.unit.strip():
            self.unit = None
        if self.pricing_type == PricingType.PER_UNIT and self.unit is None:
            raise ValueError("Unit is required for per-unit pricing")
        if self.pricing_type != PricingType.PER_UNIT:
            self.unit = None
        return self


class LineItemUpdate(BaseModel):
    """
    Data that can be updated on a line item. All fields optional.

    The merged result is re-validated as a LineItemCreate, so switching to
    per_unit without a unit is rejected.
    """

    description: str | None = Field(None, min_length=1, max_length=500)
    pricing_type: PricingType | None = None
    unit: str | None = Field(None, max_length=50)
    rate: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)
    quantity: Decimal | None = Field(None, gt=0, max_digits=10, decimal_places=2)
    discount: Decimal | None = Field(None, ge=0, le=100, max_digits=5, decimal_places=2)
    sort_order: int | None = Field(None, ge=0)


class LineItem(BaseModel):
    """Full line item entity as stored."""

    id: UUID
    quote_id: UUID
    description: str
    pricing_type: PricingType
    unit: str | None
    rate: Decimal
    quantity: Decimal
    discount: Decimal
    sort_order: int
    created_at: datetime

    model_config = {"from_attributes": True}

    @property
    def total(self) -> Decimal:
        """Discounted line total, rounded to cents."""
        return line_item_total(self.rate, self.quantity, self.discount)
