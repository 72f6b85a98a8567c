"""
Audit trail for quote, line item and template changes.

Every mutation is logged here, including status transitions made by the
public recipient and by the payment processor. The audit log is:
- Append-only (entries never modified or deleted)
- Owner-attributed (the owning account, even when the actor is the recipient)
- Scope-tagged (demo session rows are readable only from that session)
- Detailed (captures old and new values)
"""

from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from core.ownership import owner_scope
from utils.user_context import get_current_scope, get_current_user_id
from utils.timezone import now_utc


class AuditAction(Enum):
    """Type of change made to an entity."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    TRANSITION = "transition"


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Compute changes between two entity states.

    Args:
        old: Previous state of entity
        new: New state of entity
        exclude_fields: Fields to ignore (defaults to {"updated_at", "version"})

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
        Empty dict if no changes.
    """
    exclude = exclude_fields or {"updated_at", "version"}
    changes = {}

    all_keys = set(old.keys()) | set(new.keys())
    for key in all_keys:
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


class AuditLogger:
    """
    Audit trail writer.

    Always pass model_dump(mode="json") output so UUIDs, Decimals and
    datetimes are JSON-compatible.

    Usage:
        audit.log_change(
            entity_type="quote",
            entity_id=quote.id,
            action=AuditAction.TRANSITION,
            changes={"status": {"old": "sent", "new": "accepted"}},
            user_id=quote.user_id,  # recipient has no user context
            session_scope=quote.session_scope,
        )
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def log_change(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        changes: dict[str, Any],
        user_id: UUID | None = None,
        session_scope: str | None = None
    ) -> None:
        """
        Log an entity change.

        Args:
            entity_type: "quote", "line_item" or "template"
            entity_id: ID of the entity
            action: The action performed
            changes: The changes made (format depends on action)
            user_id: Owning account (defaults to current context)
            session_scope: Session scope of the entity. Only read when user_id
                is given; otherwise both come from the current context.

        Changes format by action:
        - CREATE: {"created": {full entity data}}
        - UPDATE / TRANSITION: {"field": {"old": old_val, "new": new_val}, ...}
        - DELETE: {"deleted": {full entity data at deletion}}
        """
        if user_id is None:
            user_id = get_current_user_id()
            session_scope = get_current_scope()

        self.postgres.execute(
            """
            INSERT INTO audit_log (id, user_id, session_scope, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                uuid4(),
                user_id,
                session_scope,
                entity_type,
                entity_id,
                action.value,
                Json(changes),
                now_utc()
            )
        )

    def get_entity_history(
        self,
        entity_type: str,
        entity_id: UUID
    ) -> list[dict[str, Any]]:
        """
        Get audit history for an entity owned by the current caller.

        Entries written under another session scope are not returned, same
        as the entity itself.

        Returns:
            List of audit entries, newest first.
        """
        clause, params = owner_scope()
        return self.postgres.execute(
            f"""
            SELECT id, user_id, entity_type, entity_id, action, changes, created_at
            FROM audit_log
            WHERE entity_type = %s AND entity_id = %s AND {clause}
            ORDER BY created_at DESC
            """,
            (entity_type, entity_id, *params)
        )
