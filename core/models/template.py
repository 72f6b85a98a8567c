"""Quote template models.

A template is a copy source only: it has no lifecycle and is never priced
for payment.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from core.models.line_item import PricingType


class TemplateCreate(BaseModel):
    """Data required to create a template."""

    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    default_title: str | None = Field(None, max_length=100)
    default_notes: str | None = Field(None, max_length=2000)
    default_valid_days: int | None = Field(None, ge=1, le=365)
    default_deposit_percent: int = Field(0, ge=0, le=100)

    @field_validator("description", "default_title", "default_notes", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class TemplateUpdate(TemplateCreate):
    """Template edits replace every field, as the edit form submits all of them."""


class Template(BaseModel):
    """Full template entity as stored."""

    id: UUID
    user_id: UUID
    session_scope: str | None = None
    name: str
    description: str | None
    default_title: str | None
    default_notes: str | None
    default_valid_days: int | None
    default_deposit_percent: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TemplateItem(BaseModel):
    """One blueprint line on a template."""

    id: UUID
    template_id: UUID
    description: str
    pricing_type: PricingType
    unit: str | None
    rate: Decimal
    quantity: Decimal
    discount: Decimal
    sort_order: int

    model_config = {"from_attributes": True}
