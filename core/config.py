"""Quote domain configuration."""

from pydantic import BaseModel, Field


class QuoteConfig(BaseModel):
    """
    Tunables for quote numbering, defaults and checkout redirects.

    Secrets (database URL, Stripe keys) do not live here - they come from Vault.
    """

    quote_number_prefix: str = Field(
        default="QC",
        description="Prefix for permanent quote numbers (QC-2026-0001)",
        pattern=r"^[A-Z]{1,8}$",
    )
    demo_quote_number_prefix: str = Field(
        default="DEMO",
        description="Prefix for quote numbers created inside a demo session",
        pattern=r"^[A-Z]{1,8}$",
    )
    default_currency: str = Field(
        default="USD",
        description="Currency for new quotes when none is given",
        pattern=r"^[A-Z]{3}$",
    )
    quote_number_attempts: int = Field(
        default=3,
        description="Create attempts before giving up on quote number/share token collisions",
        ge=1,
        le=10,
    )
    app_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL for checkout success/cancel redirects",
    )
    business_name: str | None = Field(
        default=None,
        description="Owner display name printed on quote documents and the public quote page",
        max_length=200,
    )
