"""Session token lifecycle management.

Sessions are stored in Valkey with TTL matching session expiry.
Token format is cryptographically random (secrets.token_urlsafe).
"""

import secrets
from datetime import timedelta
from uuid import UUID

from clients.valkey_client import ValkeyClient
from auth.config import AuthConfig
from auth.types import Session
from auth.exceptions import SessionExpiredError
from utils.timezone import now_utc, parse_iso


class SessionManager:
    """Session token lifecycle management.

    Regular sessions slide: every validated request pushes expiry out by
    session_expiry_hours. Demo sessions have a fixed lifetime and never
    extend, so their scoped data ages out on schedule.
    """

    KEY_PREFIX = "session:"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self._config = config

    def _key(self, token: str) -> str:
        """Generate Valkey key for session token."""
        return f"{self.KEY_PREFIX}{token}"

    def _store(self, session: Session) -> None:
        ttl_seconds = max(int((session.expires_at - now_utc()).total_seconds()), 1)
        self._valkey.set_json(
            self._key(session.token),
            {
                "user_id": str(session.user_id),
                "scope": session.scope,
                "created_at": session.created_at.isoformat(),
                "expires_at": session.expires_at.isoformat(),
                "last_activity_at": session.last_activity_at.isoformat(),
            },
            expire_seconds=ttl_seconds,
        )

    def create_session(self, user_id: UUID, scope: str | None = None) -> Session:
        """Create new session for user, optionally bound to a demo scope."""
        token = secrets.token_urlsafe(32)
        now = now_utc()
        hours = self._config.demo_session_hours if scope else self._config.session_expiry_hours

        session = Session(
            token=token,
            user_id=user_id,
            scope=scope,
            created_at=now,
            expires_at=now + timedelta(hours=hours),
            last_activity_at=now,
        )
        self._store(session)

        return session

    def create_demo_session(self, user_id: UUID) -> Session:
        """Create a demo session with a fresh random scope."""
        return self.create_session(user_id, scope=secrets.token_hex(8))

    def validate_session(self, token: str) -> Session:
        """Validate session token and return session.

        Raises SessionExpiredError if token invalid or expired.
        """
        data = self._valkey.get_json(self._key(token))

        if data is None:
            raise SessionExpiredError("Session not found or expired")

        session = Session(
            token=token,
            user_id=UUID(data["user_id"]),
            scope=data.get("scope"),
            created_at=parse_iso(data["created_at"]),
            expires_at=parse_iso(data["expires_at"]),
            last_activity_at=parse_iso(data["last_activity_at"]),
        )

        now = now_utc()

        # Check expiry (belt and suspenders - Valkey TTL should handle this)
        if now > session.expires_at:
            self._valkey.delete(self._key(token))
            raise SessionExpiredError("Session expired")

        if session.is_demo:
            return session

        return self._extend_session(session)

    def _extend_session(self, session: Session) -> Session:
        """Extend session expiry and update last_activity_at."""
        now = now_utc()

        updated = session.model_copy(update={
            "expires_at": now + timedelta(hours=self._config.session_expiry_hours),
            "last_activity_at": now,
        })
        self._store(updated)

        return updated

    def revoke_session(self, token: str) -> None:
        """Revoke session (logout).

        Safe to call with nonexistent token.
        """
        self._valkey.delete(self._key(token))
