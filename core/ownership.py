"""
Owner and session-scope guard for SQL.

Every owner-facing query on quotes and templates appends owner_scope() to
its WHERE clause. A record is visible only when both the owner id and the
session scope match the caller: NULL scope matches only a caller without a
scope, and a demo session sees only rows tagged with its own scope id.

Records outside the guard behave exactly as if they did not exist.
"""

from uuid import UUID

from utils.user_context import get_current_user_id, get_current_scope


def scope_clause(user_id: UUID, scope: str | None, alias: str | None = None) -> tuple[str, tuple]:
    """Predicate + params for an explicit owner/scope pair."""
    prefix = f"{alias}." if alias else ""
    if scope is None:
        return f"{prefix}user_id = %s AND {prefix}session_scope IS NULL", (user_id,)
    return f"{prefix}user_id = %s AND {prefix}session_scope = %s", (user_id, scope)


def owner_scope(alias: str | None = None) -> tuple[str, tuple]:
    """
    Predicate + params for the current caller.

    Raises RuntimeError (via get_current_user_id) when called outside an
    authenticated request, so an unguarded owner query cannot run by accident.

    Usage:
        clause, params = owner_scope()
        postgres.execute_single(
            f"SELECT * FROM quotes WHERE id = %s AND {clause}",
            (quote_id, *params),
        )
    """
    return scope_clause(get_current_user_id(), get_current_scope(), alias)
