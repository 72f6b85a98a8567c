"""
Line item service for draft quotes.

Line items can only change while their quote is a draft. Every add, edit
or removal runs in one transaction together with a conditional version
bump on the parent quote (WHERE status = 'draft'), so an edit racing a
send either lands before the send or not at all.
"""

import logging
from typing import Any
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient, Transaction
from core.audit import AuditLogger, AuditAction, compute_changes
from core.exceptions import ConflictError, NotFoundError
from core.lifecycle import QuoteAction, next_status, rejection_message
from core.models import LineItem, LineItemCreate, LineItemUpdate, PricingType, QuoteStatus
from core.ownership import owner_scope
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_ITEM_COLUMNS = {
    "description", "pricing_type", "unit", "rate",
    "quantity", "discount", "sort_order"
}


def select_line_items(db: PostgresClient | Transaction, quote_id: UUID) -> list[LineItem]:
    """
    Line items of a quote in calculation order.

    No ownership check - callers must have resolved the quote through a
    scoped or token-gated lookup first.
    """
    rows = db.execute(
        """
        SELECT * FROM line_items
        WHERE quote_id = %s
        ORDER BY sort_order ASC, created_at ASC
        """,
        (quote_id,)
    )
    return [LineItem.model_validate(row) for row in rows]


def insert_line_item(db: PostgresClient | Transaction, quote_id: UUID, item: Any) -> LineItem:
    """
    Insert one line item copied from anything with line item fields.

    Accepts LineItemCreate payloads as well as existing LineItem or
    TemplateItem rows (duplicate / from-template paths).
    """
    row = db.execute_returning(
        """
        INSERT INTO line_items (
            id, quote_id, description, pricing_type, unit,
            rate, quantity, discount, sort_order, created_at
        ) VALUES (
            %s, %s, %s, %s, %s,
            %s, %s, %s, %s, %s
        )
        RETURNING *
        """,
        (
            uuid4(), quote_id, item.description, PricingType(item.pricing_type).value, item.unit,
            item.rate, item.quantity, item.discount, item.sort_order, now_utc()
        )
    )[0]
    return LineItem.model_validate(row)


class LineItemService:
    """Service for line item operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def _get_editable_quote(self, quote_id: UUID) -> dict[str, Any]:
        """
        Scoped quote lookup plus the draft check.

        Raises:
            NotFoundError: quote missing or outside caller scope
            IllegalTransitionError: quote is not a draft
        """
        clause, params = owner_scope()
        quote = self.postgres.execute_single(
            f"SELECT id, user_id, status, version FROM quotes WHERE id = %s AND {clause}",
            (quote_id, *params)
        )
        if quote is None:
            raise NotFoundError(f"Quote {quote_id} not found")

        next_status(QuoteStatus(quote["status"]), QuoteAction.EDIT)
        return quote

    def _bump_version(self, tx: Transaction, quote_id: UUID) -> int:
        """
        Increment the parent quote version, only if it is still a draft.

        Raises:
            ConflictError: quote left draft between the read and this write
        """
        clause, params = owner_scope()
        rows = tx.execute_returning(
            f"""
            UPDATE quotes
            SET version = version + 1, updated_at = %s
            WHERE id = %s AND {clause} AND status = %s
            RETURNING id, version
            """,
            (now_utc(), quote_id, *params, QuoteStatus.DRAFT.value)
        )
        if not rows:
            logger.info(f"Quote {quote_id} left draft before line item write")
            raise ConflictError(rejection_message(QuoteAction.EDIT))
        return rows[0]["version"]

    def create(self, quote_id: UUID, data: LineItemCreate) -> LineItem:
        """
        Add a line item to a draft quote.

        Raises:
            NotFoundError: quote not found in caller scope
            IllegalTransitionError: quote is not a draft
            ConflictError: quote was sent while the item was being added
        """
        self._get_editable_quote(quote_id)

        with self.postgres.transaction() as tx:
            self._bump_version(tx, quote_id)
            line_item = insert_line_item(tx, quote_id, data)

        self.audit.log_change(
            entity_type="line_item",
            entity_id=line_item.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)}
        )

        return line_item

    def get_by_id(self, quote_id: UUID, line_item_id: UUID) -> LineItem | None:
        """
        Get a line item of a quote the caller owns.

        Returns:
            Line item if found in scope, None otherwise.
        """
        clause, params = owner_scope("q")
        row = self.postgres.execute_single(
            f"""
            SELECT li.* FROM line_items li
            JOIN quotes q ON q.id = li.quote_id
            WHERE li.id = %s AND li.quote_id = %s AND {clause}
            """,
            (line_item_id, quote_id, *params)
        )

        if row is None:
            return None

        return LineItem.model_validate(row)

    def update(self, quote_id: UUID, line_item_id: UUID, data: LineItemUpdate) -> LineItem:
        """
        Update line item fields on a draft quote.

        The merged item is re-validated, so the result always satisfies the
        same rules as a freshly created item.

        Raises:
            NotFoundError: quote or line item not found in caller scope
            IllegalTransitionError: quote is not a draft
            ConflictError: quote was sent while the item was being edited
            pydantic.ValidationError: merged item is invalid
        """
        self._get_editable_quote(quote_id)

        current = self.get_by_id(quote_id, line_item_id)
        if current is None:
            raise NotFoundError(f"Line item {line_item_id} not found")

        updates = data.model_dump(exclude_unset=True)
        for field in updates:
            if field not in _ITEM_COLUMNS:
                logger.warning(
                    f"Attempted to update unknown field '{field}' on line_item {line_item_id}"
                )
        updates = {k: v for k, v in updates.items() if k in _ITEM_COLUMNS}
        if not updates:
            return current

        merged = LineItemCreate.model_validate(
            {**current.model_dump(include=_ITEM_COLUMNS), **updates}
        )

        with self.postgres.transaction() as tx:
            self._bump_version(tx, quote_id)
            rows = tx.execute_returning(
                """
                UPDATE line_items
                SET description = %s, pricing_type = %s, unit = %s,
                    rate = %s, quantity = %s, discount = %s, sort_order = %s
                WHERE id = %s AND quote_id = %s
                RETURNING *
                """,
                (
                    merged.description, merged.pricing_type.value, merged.unit,
                    merged.rate, merged.quantity, merged.discount, merged.sort_order,
                    line_item_id, quote_id
                )
            )
            if not rows:
                raise NotFoundError(f"Line item {line_item_id} not found")

        updated = LineItem.model_validate(rows[0])

        changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json")
        )
        if changes:
            self.audit.log_change(
                entity_type="line_item",
                entity_id=line_item_id,
                action=AuditAction.UPDATE,
                changes=changes
            )

        return updated

    def delete(self, quote_id: UUID, line_item_id: UUID) -> bool:
        """
        Remove a line item from a draft quote.

        Returns:
            True if deleted, False if the item does not exist on this quote

        Raises:
            NotFoundError: quote not found in caller scope
            IllegalTransitionError: quote is not a draft
            ConflictError: quote was sent while the item was being removed
        """
        self._get_editable_quote(quote_id)

        current = self.get_by_id(quote_id, line_item_id)
        if current is None:
            return False

        with self.postgres.transaction() as tx:
            self._bump_version(tx, quote_id)
            rows = tx.execute_returning(
                "DELETE FROM line_items WHERE id = %s AND quote_id = %s RETURNING id",
                (line_item_id, quote_id)
            )
            if not rows:
                raise NotFoundError(f"Line item {line_item_id} not found")

        self.audit.log_change(
            entity_type="line_item",
            entity_id=line_item_id,
            action=AuditAction.DELETE,
            changes={"deleted": current.model_dump(mode="json")}
        )

        return True

    def list_for_quote(self, quote_id: UUID) -> list[LineItem]:
        """
        List line items of a quote the caller owns, in sort order.

        Raises:
            NotFoundError: quote not found in caller scope
        """
        clause, params = owner_scope()
        exists = self.postgres.execute_single(
            f"SELECT id FROM quotes WHERE id = %s AND {clause}",
            (quote_id, *params)
        )
        if exists is None:
            raise NotFoundError(f"Quote {quote_id} not found")

        return select_line_items(self.postgres, quote_id)
