"""Pydantic models for auth domain."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class Session(BaseModel):
    """
    An active session.

    scope is set only for demo sessions. Quotes and templates created under
    a scope are visible to that scope alone.
    """

    token: str = Field(..., description="Session token (opaque string)")
    user_id: UUID
    scope: str | None = None
    created_at: datetime
    expires_at: datetime
    last_activity_at: datetime

    @property
    def is_demo(self) -> bool:
        return self.scope is not None
