"""
Quote service for owner operations.

Quotes start as drafts, get a per-owner quote number and an unguessable
share token, and move through the lifecycle in core.lifecycle. Every
status-changing write is conditional on the status the transition expects,
so concurrent requests cannot both win.
"""

import logging
import secrets
from typing import Any
from uuid import UUID, uuid4

from psycopg2 import errors as pg_errors

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import QuoteConfig
from core.exceptions import ConflictError, NotFoundError
from core.lifecycle import QuoteAction, next_status, rejection_message
from core.models import Quote, QuoteCreate, QuoteDocument, QuoteStatus, QuoteUpdate
from core.ownership import owner_scope, scope_clause
from core.quote_number import next_quote_number, quote_number_prefix
from core.services.line_item_service import insert_line_item, select_line_items
from utils.user_context import get_current_user_id, get_current_scope
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

# Fields that can be updated via update()
_UPDATABLE_COLUMNS = {
    "title", "client_name", "client_email", "notes",
    "valid_until", "deposit_percent"
}

_COPIED_COLUMNS = (
    "client_name", "client_email", "notes", "currency",
    "valid_until", "deposit_percent"
)


class QuoteService:
    """Service for quote operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger, config: QuoteConfig | None = None):
        self.postgres = postgres
        self.audit = audit
        self.config = config or QuoteConfig()

    def _generate_quote_number(self, user_id: UUID, scope: str | None) -> str:
        """
        Next quote number for an owner and session scope.

        Format: QC-YYYY-NNNN (DEMO-xxxxxx-YYYY-NNNN inside a demo session).
        """
        prefix = quote_number_prefix(
            self.config.quote_number_prefix,
            now_utc().year,
            scope,
            self.config.demo_quote_number_prefix,
        )
        clause, params = scope_clause(user_id, scope)

        # Longest first so 10000 sorts above 9999
        result = self.postgres.execute_single(
            f"""
            SELECT quote_number FROM quotes
            WHERE {clause} AND quote_number LIKE %s
            ORDER BY length(quote_number) DESC, quote_number DESC
            LIMIT 1
            """,
            (*params, f"{prefix}%")
        )

        return next_quote_number(prefix, result["quote_number"] if result else None)

    def _insert(self, fields: dict[str, Any], line_items: list[Any]) -> Quote:
        """
        Insert a draft quote and its line items in one transaction.

        Quote numbers and share tokens are picked optimistically. A unique
        violation rolls the whole unit back and the next attempt starts over
        with a fresh number and token.

        Raises:
            ConflictError: every attempt collided
        """
        user_id = get_current_user_id()
        scope = get_current_scope()
        attempts = self.config.quote_number_attempts

        for attempt in range(1, attempts + 1):
            quote_number = self._generate_quote_number(user_id, scope)
            share_token = secrets.token_urlsafe(16)
            now = now_utc()

            try:
                with self.postgres.transaction() as tx:
                    row = tx.execute_returning(
                        """
                        INSERT INTO quotes (
                            id, user_id, session_scope, quote_number, share_token,
                            title, client_name, client_email, notes, currency,
                            status, version, deposit_percent, valid_until,
                            created_at, updated_at
                        ) VALUES (
                            %s, %s, %s, %s, %s,
                            %s, %s, %s, %s, %s,
                            %s, %s, %s, %s,
                            %s, %s
                        )
                        RETURNING *
                        """,
                        (
                            uuid4(), user_id, scope, quote_number, share_token,
                            fields["title"], fields["client_name"], fields.get("client_email"),
                            fields.get("notes"), fields["currency"],
                            QuoteStatus.DRAFT.value, 1, fields.get("deposit_percent", 0),
                            fields.get("valid_until"),
                            now, now
                        )
                    )[0]
                    for item in line_items:
                        insert_line_item(tx, row["id"], item)
            except pg_errors.UniqueViolation:
                logger.info(
                    f"Quote number {quote_number} or share token taken "
                    f"(attempt {attempt}/{attempts}), retrying"
                )
                continue

            quote = Quote.model_validate(row)
            logger.info(f"Created quote {quote.quote_number} ({quote.id})")
            return quote

        logger.warning(f"Gave up allocating a quote number after {attempts} attempts")
        raise ConflictError("Could not allocate a unique quote number, please try again")

    def create(self, data: QuoteCreate) -> Quote:
        """
        Create a new draft quote.

        Args:
            data: Quote creation data

        Returns:
            Created quote with version 1 and no line items

        Raises:
            ConflictError: quote number could not be allocated
        """
        fields = data.model_dump()
        fields["currency"] = fields.get("currency") or self.config.default_currency

        quote = self._insert(fields, [])

        self.audit.log_change(
            entity_type="quote",
            entity_id=quote.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)}
        )

        return quote

    def create_with_items(self, fields: dict[str, Any], line_items: list[Any]) -> Quote:
        """
        Create a draft quote pre-filled with line items.

        Used by duplicate and by template instantiation. Items are anything
        exposing the line item fields (LineItem, TemplateItem, LineItemCreate).
        """
        fields = dict(fields)
        fields["currency"] = fields.get("currency") or self.config.default_currency

        quote = self._insert(fields, line_items)

        self.audit.log_change(
            entity_type="quote",
            entity_id=quote.id,
            action=AuditAction.CREATE,
            changes={"created": quote.model_dump(mode="json"), "line_item_count": len(line_items)}
        )

        return quote

    def get_by_id(self, quote_id: UUID) -> Quote | None:
        """
        Get a quote by ID.

        Returns:
            Quote if found in caller scope, None otherwise.
        """
        clause, params = owner_scope()
        result = self.postgres.execute_single(
            f"SELECT * FROM quotes WHERE id = %s AND {clause}",
            (quote_id, *params)
        )

        if result is None:
            return None

        return Quote.model_validate(result)

    def get_or_raise(self, quote_id: UUID) -> Quote:
        """
        Get a quote by ID.

        Raises:
            NotFoundError: quote missing or outside caller scope
        """
        quote = self.get_by_id(quote_id)
        if quote is None:
            raise NotFoundError(f"Quote {quote_id} not found")
        return quote

    def list_quotes(
        self,
        status: QuoteStatus | None = None,
        limit: int = 50,
        offset: int = 0
    ) -> list[Quote]:
        """
        List quotes, newest first.

        Args:
            status: Optional status filter
            limit: Max results
            offset: Pagination offset

        Returns:
            List of quotes
        """
        clause, params = owner_scope()
        conditions = [clause]
        values: list[Any] = list(params)

        if status is not None:
            conditions.append("status = %s")
            values.append(QuoteStatus(status).value)

        values.extend([limit, offset])

        results = self.postgres.execute(
            f"""
            SELECT * FROM quotes
            WHERE {" AND ".join(conditions)}
            ORDER BY created_at DESC
            LIMIT %s OFFSET %s
            """,
            tuple(values)
        )

        return [Quote.model_validate(row) for row in results]

    def update(self, quote_id: UUID, data: QuoteUpdate) -> Quote:
        """
        Update content fields of a draft quote.

        Only fields present in the payload are written. The write is
        conditional on status = 'draft', so an update racing a send fails
        cleanly instead of changing sent content.

        Returns:
            Updated quote (unchanged quote if nothing to update)

        Raises:
            NotFoundError: quote not found in caller scope
            IllegalTransitionError: quote is not a draft
            ConflictError: quote was sent during the update
        """
        current = self.get_or_raise(quote_id)
        next_status(current.status, QuoteAction.EDIT)

        updates = data.model_dump(exclude_unset=True)

        # Build SET clause from whitelisted columns only
        set_parts = []
        values = []
        for field, value in updates.items():
            if field not in _UPDATABLE_COLUMNS:
                logger.warning(f"Attempted to update unknown field '{field}' on quote {quote_id}")
                continue
            set_parts.append(f"{field} = %s")
            values.append(value)

        if not set_parts:
            return current

        set_parts.append("version = version + 1")
        set_parts.append("updated_at = %s")
        values.append(now_utc())

        clause, params = owner_scope()
        rows = self.postgres.execute_returning(
            f"""
            UPDATE quotes SET {", ".join(set_parts)}
            WHERE id = %s AND {clause} AND status = %s
            RETURNING *
            """,
            (*values, quote_id, *params, QuoteStatus.DRAFT.value)
        )

        if not rows:
            logger.info(f"Quote {quote_id} left draft before update was written")
            raise ConflictError(rejection_message(QuoteAction.EDIT))

        updated = Quote.model_validate(rows[0])

        changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json")
        )
        if changes:
            self.audit.log_change(
                entity_type="quote",
                entity_id=quote_id,
                action=AuditAction.UPDATE,
                changes=changes
            )

        return updated

    def send(self, quote_id: UUID) -> Quote:
        """
        Send a draft quote. Content is immutable from here on.

        Raises:
            NotFoundError: quote not found in caller scope
            IllegalTransitionError: quote is not a draft
            ConflictError: another request sent the quote first
        """
        current = self.get_or_raise(quote_id)
        target = next_status(current.status, QuoteAction.SEND)

        clause, params = owner_scope()
        rows = self.postgres.execute_returning(
            f"""
            UPDATE quotes
            SET status = %s, version = version + 1, updated_at = %s
            WHERE id = %s AND {clause} AND status = %s
            RETURNING *
            """,
            (target.value, now_utc(), quote_id, *params, QuoteStatus.DRAFT.value)
        )

        if not rows:
            logger.info(f"Quote {quote_id} was no longer a draft when sending")
            raise ConflictError(rejection_message(QuoteAction.SEND))

        quote = Quote.model_validate(rows[0])

        self.audit.log_change(
            entity_type="quote",
            entity_id=quote_id,
            action=AuditAction.TRANSITION,
            changes={"status": {"old": current.status.value, "new": quote.status.value}}
        )

        logger.info(f"Quote {quote_id} transitioned {current.status.value} -> {quote.status.value}")
        return quote

    def delete(self, quote_id: UUID) -> bool:
        """
        Hard delete a quote in any status. Line items cascade.

        Returns:
            True if deleted, False if not found in caller scope
        """
        clause, params = owner_scope()
        rows = self.postgres.execute_returning(
            f"DELETE FROM quotes WHERE id = %s AND {clause} RETURNING *",
            (quote_id, *params)
        )

        if not rows:
            return False

        deleted = Quote.model_validate(rows[0])

        self.audit.log_change(
            entity_type="quote",
            entity_id=quote_id,
            action=AuditAction.DELETE,
            changes={"deleted": deleted.model_dump(mode="json")}
        )

        return True

    def duplicate(self, quote_id: UUID) -> Quote:
        """
        Copy a quote and its line items into a new draft.

        Works from any status. The copy gets its own number and share token,
        and its title is suffixed " (Copy)".

        Raises:
            NotFoundError: quote not found in caller scope
        """
        source = self.get_or_raise(quote_id)
        line_items = select_line_items(self.postgres, quote_id)

        fields = {column: getattr(source, column) for column in _COPIED_COLUMNS}
        fields["title"] = f"{source.title} (Copy)"

        return self.create_with_items(fields, line_items)

    def document(self, quote_id: UUID) -> QuoteDocument:
        """
        Quote, ordered line items and computed pricing for the renderer.

        Raises:
            NotFoundError: quote not found in caller scope
        """
        quote = self.get_or_raise(quote_id)
        line_items = select_line_items(self.postgres, quote_id)
        return QuoteDocument.build(quote, line_items, self.config.business_name)
