"""Quote domain models.

Money is never stored on the quote itself - totals are derived from line
items by core.pricing whenever they are needed.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from core.exceptions import InvalidShareTokenError

SHARE_TOKEN_MAX_LENGTH = 30
_SHARE_TOKEN_RE = re.compile(rf"^[A-Za-z0-9_-]{{1,{SHARE_TOKEN_MAX_LENGTH}}}$")


def validate_share_token(token: str) -> str:
    """
    Check share token format before it reaches a query.

    Raises:
        InvalidShareTokenError: empty, longer than SHARE_TOKEN_MAX_LENGTH, or outside [A-Za-z0-9_-]
    """
    if not isinstance(token, str) or not _SHARE_TOKEN_RE.fullmatch(token):
        raise InvalidShareTokenError()
    return token


class QuoteStatus(str, Enum):
    """Quote lifecycle status. Transitions live in core.lifecycle."""

    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    PAID = "paid"


class _QuoteFields(BaseModel):
    """Form fields shared by create and update payloads."""

    @field_validator("client_email", "notes", mode="before", check_fields=False)
    @classmethod
    def blank_to_none(cls, value):
        """Forms submit empty strings for untouched optional inputs."""
        if isinstance(value, str) and not value.strip():
            return None
        return value


class QuoteCreate(_QuoteFields):
    """Data required to create a quote."""

    title: str = Field(..., min_length=1, max_length=200)
    client_name: str = Field(..., min_length=1, max_length=200)
    client_email: EmailStr | None = None
    notes: str | None = Field(None, max_length=5000)
    currency: str | None = Field(None, pattern=r"^[A-Z]{3}$")  # None -> configured default
    valid_until: datetime | None = None
    deposit_percent: int = Field(0, ge=0, le=100)


class QuoteUpdate(_QuoteFields):
    """
    Fields an owner may change on a draft. All optional.

    Only fields explicitly present in the payload are written, so sending
    client_email=None clears it while omitting it leaves it untouched.
    """

    title: str | None = Field(None, min_length=1, max_length=200)
    client_name: str | None = Field(None, min_length=1, max_length=200)
    client_email: EmailStr | None = None
    notes: str | None = Field(None, max_length=5000)
    valid_until: datetime | None = None
    deposit_percent: int | None = Field(None, ge=0, le=100)

    @model_validator(mode="after")
    def required_columns_not_cleared(self) -> "QuoteUpdate":
        """title, client_name and deposit_percent can change but never become null."""
        for name in ("title", "client_name", "deposit_percent"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self


class Quote(BaseModel):
    """Full quote entity as stored."""

    id: UUID
    user_id: UUID
    session_scope: str | None = None
    quote_number: str
    share_token: str
    title: str
    client_name: str
    client_email: str | None
    notes: str | None
    currency: str
    status: QuoteStatus
    version: int
    deposit_percent: int
    valid_until: datetime | None
    stripe_session_id: str | None = None
    stripe_payment_intent_id: str | None = None
    paid_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    def is_expired(self, at: datetime) -> bool:
        """Whether valid_until has passed at the given instant. Naive values are UTC."""
        if self.valid_until is None:
            return False
        valid_until = self.valid_until
        if valid_until.tzinfo is None:
            valid_until = valid_until.replace(tzinfo=timezone.utc)
        return valid_until < at

    @property
    def is_editable(self) -> bool:
        """Content can only change while the quote is a draft."""
        return self.status == QuoteStatus.DRAFT
