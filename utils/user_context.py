"""Propagate caller identity (owner id + session scope) through the call stack using contextvars."""

from contextvars import ContextVar
from uuid import UUID
from contextlib import contextmanager

_current_user_id: ContextVar[UUID | None] = ContextVar("current_user_id", default=None)
_current_scope: ContextVar[str | None] = ContextVar("current_session_scope", default=None)


def get_current_user_id() -> UUID:
    """
    Get current owner ID from context.

    Raises RuntimeError if no user context is set.
    This is fail-fast behavior - if you're in a code path that
    requires user context and it's not set, that's a bug.
    """
    user_id = _current_user_id.get()
    if user_id is None:
        raise RuntimeError(
            "No user context set. This usually means you're calling "
            "owner-scoped code outside of an authenticated request."
        )
    return user_id


def get_current_scope() -> str | None:
    """
    Get the session scope of the current caller.

    None for permanent accounts. Demo sessions carry their own scope id
    and only ever see records tagged with it.
    """
    return _current_scope.get()


def set_current_user(user_id: UUID, scope: str | None = None) -> None:
    """
    Set current owner ID and session scope in context.

    Called by auth middleware after validating session.
    """
    _current_user_id.set(user_id)
    _current_scope.set(scope)


def clear_current_user() -> None:
    """
    Clear caller context.

    Called by auth middleware after request completes.
    Must be called in finally block to prevent context leakage.
    """
    _current_user_id.set(None)
    _current_scope.set(None)


@contextmanager
def user_context(user_id: UUID, scope: str | None = None):
    """
    Context manager for temporarily setting caller context.

    Useful for:
    - Tests
    - Background jobs that iterate over owners
    - Admin operations on behalf of an owner

    Example:
        with user_context(owner_id, scope="demo-a1b2c3"):
            quotes = quote_service.list_quotes()  # only that demo session's quotes
    """
    previous_user = _current_user_id.get()
    previous_scope = _current_scope.get()
    set_current_user(user_id, scope)
    try:
        yield
    finally:
        if previous_user is None:
            clear_current_user()
        else:
            set_current_user(previous_user, previous_scope)
