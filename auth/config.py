"""Authentication configuration."""

from uuid import UUID

from pydantic import BaseModel, Field


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    All durations are in their natural units (seconds for rate windows,
    hours for sessions) to make configuration intuitive.
    """

    # Session settings
    session_expiry_hours: int = Field(
        default=2160,  # 90 days
        description="Session lifetime in hours",
        ge=1,
        le=2160,
    )

    # Demo sessions
    demo_user_id: UUID | None = Field(
        default=None,
        description="Owner account demo sessions act as; demo login disabled when unset",
    )
    demo_session_hours: int = Field(
        default=1,
        description="Demo session lifetime in hours (no sliding extension)",
        ge=1,
        le=24,
    )

    # Rate limiting for public quote endpoints
    rate_limit_attempts: int = Field(
        default=30,
        description="Max requests per caller address per bucket per window",
        ge=1,
        le=1000,
    )
    rate_limit_window_seconds: int = Field(
        default=60,
        description="Rate limit window duration",
        ge=1,
        le=3600,
    )

    # Cookies
    secure_cookies: bool = Field(
        default=True,
        description="Set the Secure flag on the session cookie",
    )
