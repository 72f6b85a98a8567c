"""
Template service.

Templates are copy sources for new quotes: a name, some defaults and a list
of blueprint line items. They have no lifecycle. Like quotes they are
guarded by owner and session scope.
"""

import logging
from typing import Any
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient, Transaction
from core.audit import AuditLogger, AuditAction, compute_changes
from core.exceptions import NotFoundError
from core.models import LineItemCreate, PricingType, Quote, Template, TemplateCreate, TemplateItem, TemplateUpdate
from core.ownership import owner_scope
from core.services.line_item_service import select_line_items
from core.services.quote_service import QuoteService
from utils.user_context import get_current_user_id, get_current_scope
from utils.timezone import days_from_now, now_utc

logger = logging.getLogger(__name__)

DEFAULT_QUOTE_TITLE = "Untitled Quote"


def _insert_template_items(tx: Transaction, template_id: UUID, items: list[Any]) -> list[TemplateItem]:
    """Insert items in list order; sort_order is the list index."""
    inserted = []
    for index, item in enumerate(items):
        row = tx.execute_returning(
            """
            INSERT INTO template_items (
                id, template_id, description, pricing_type, unit,
                rate, quantity, discount, sort_order
            ) VALUES (
                %s, %s, %s, %s, %s,
                %s, %s, %s, %s
            )
            RETURNING *
            """,
            (
                uuid4(), template_id, item.description, PricingType(item.pricing_type).value, item.unit,
                item.rate, item.quantity, item.discount, index
            )
        )[0]
        inserted.append(TemplateItem.model_validate(row))
    return inserted


class TemplateService:
    """Service for template operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger, quotes: QuoteService):
        self.postgres = postgres
        self.audit = audit
        self.quotes = quotes

    def _insert(self, data: TemplateCreate, items: list[Any]) -> Template:
        user_id = get_current_user_id()
        now = now_utc()

        with self.postgres.transaction() as tx:
            row = tx.execute_returning(
                """
                INSERT INTO templates (
                    id, user_id, session_scope, name, description,
                    default_title, default_notes, default_valid_days, default_deposit_percent,
                    created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s
                )
                RETURNING *
                """,
                (
                    uuid4(), user_id, get_current_scope(), data.name, data.description,
                    data.default_title, data.default_notes, data.default_valid_days,
                    data.default_deposit_percent,
                    now, now
                )
            )[0]
            _insert_template_items(tx, row["id"], items)

        template = Template.model_validate(row)

        self.audit.log_change(
            entity_type="template",
            entity_id=template.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True), "item_count": len(items)}
        )

        return template

    def create(self, data: TemplateCreate) -> Template:
        """Create an empty template."""
        return self._insert(data, [])

    def get_by_id(self, template_id: UUID) -> Template | None:
        """
        Get a template by ID.

        Returns:
            Template if found in caller scope, None otherwise.
        """
        clause, params = owner_scope()
        result = self.postgres.execute_single(
            f"SELECT * FROM templates WHERE id = %s AND {clause}",
            (template_id, *params)
        )

        if result is None:
            return None

        return Template.model_validate(result)

    def _get_or_raise(self, template_id: UUID) -> Template:
        template = self.get_by_id(template_id)
        if template is None:
            raise NotFoundError(f"Template {template_id} not found")
        return template

    def list_templates(self) -> list[Template]:
        """List templates, newest first."""
        clause, params = owner_scope()
        results = self.postgres.execute(
            f"SELECT * FROM templates WHERE {clause} ORDER BY created_at DESC",
            params
        )
        return [Template.model_validate(row) for row in results]

    def get_items(self, template_id: UUID) -> list[TemplateItem]:
        """
        Blueprint items of a template, in sort order.

        Raises:
            NotFoundError: template not found in caller scope
        """
        self._get_or_raise(template_id)
        rows = self.postgres.execute(
            "SELECT * FROM template_items WHERE template_id = %s ORDER BY sort_order ASC",
            (template_id,)
        )
        return [TemplateItem.model_validate(row) for row in rows]

    def update(self, template_id: UUID, data: TemplateUpdate) -> Template:
        """
        Replace a template's name, description and defaults.

        Raises:
            NotFoundError: template not found in caller scope
        """
        current = self._get_or_raise(template_id)

        clause, params = owner_scope()
        rows = self.postgres.execute_returning(
            f"""
            UPDATE templates
            SET name = %s, description = %s, default_title = %s, default_notes = %s,
                default_valid_days = %s, default_deposit_percent = %s, updated_at = %s
            WHERE id = %s AND {clause}
            RETURNING *
            """,
            (
                data.name, data.description, data.default_title, data.default_notes,
                data.default_valid_days, data.default_deposit_percent, now_utc(),
                template_id, *params
            )
        )
        if not rows:
            raise NotFoundError(f"Template {template_id} not found")

        updated = Template.model_validate(rows[0])

        changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json")
        )
        if changes:
            self.audit.log_change(
                entity_type="template",
                entity_id=template_id,
                action=AuditAction.UPDATE,
                changes=changes
            )

        return updated

    def delete(self, template_id: UUID) -> bool:
        """
        Delete a template. Its items cascade.

        Returns:
            True if deleted, False if not found in caller scope
        """
        clause, params = owner_scope()
        rows = self.postgres.execute_returning(
            f"DELETE FROM templates WHERE id = %s AND {clause} RETURNING *",
            (template_id, *params)
        )

        if not rows:
            return False

        self.audit.log_change(
            entity_type="template",
            entity_id=template_id,
            action=AuditAction.DELETE,
            changes={"deleted": Template.model_validate(rows[0]).model_dump(mode="json")}
        )

        return True

    def replace_items(self, template_id: UUID, items: list[LineItemCreate]) -> list[TemplateItem]:
        """
        Swap a template's items for a new list, all or nothing.

        A failure on any insert leaves the previous items intact.

        Raises:
            NotFoundError: template not found in caller scope
        """
        self._get_or_raise(template_id)

        with self.postgres.transaction() as tx:
            tx.execute("DELETE FROM template_items WHERE template_id = %s", (template_id,))
            inserted = _insert_template_items(tx, template_id, items)

        self.audit.log_change(
            entity_type="template",
            entity_id=template_id,
            action=AuditAction.UPDATE,
            changes={"items": {"old": None, "new": len(inserted)}}
        )

        return inserted

    def save_as_template(self, quote_id: UUID, data: TemplateCreate) -> Template:
        """
        Snapshot a quote's title, notes, deposit and line items as a template.

        Name, description and default_valid_days come from data; the other
        defaults are taken from the quote.

        Raises:
            NotFoundError: quote not found in caller scope
        """
        quote = self.quotes.get_or_raise(quote_id)
        line_items = select_line_items(self.postgres, quote_id)

        snapshot = TemplateCreate(
            name=data.name,
            description=data.description,
            default_title=quote.title[:100],
            default_notes=quote.notes[:2000] if quote.notes else None,
            default_valid_days=data.default_valid_days,
            default_deposit_percent=quote.deposit_percent,
        )

        template = self._insert(snapshot, line_items)
        logger.info(f"Saved quote {quote_id} as template {template.id}")
        return template

    def create_quote_from_template(self, template_id: UUID) -> Quote:
        """
        Start a new draft quote from a template.

        The client is left blank for the owner to fill in. valid_until is
        now + default_valid_days when the template sets one.

        Raises:
            NotFoundError: template not found in caller scope
        """
        template = self._get_or_raise(template_id)
        items = self.get_items(template_id)

        valid_until = None
        if template.default_valid_days:
            valid_until = days_from_now(template.default_valid_days)

        fields = {
            "title": template.default_title or DEFAULT_QUOTE_TITLE,
            "client_name": "",
            "client_email": None,
            "notes": template.default_notes,
            "valid_until": valid_until,
            "deposit_percent": template.default_deposit_percent or 0,
        }

        quote = self.quotes.create_with_items(fields, items)
        logger.info(f"Created quote {quote.id} from template {template_id}")
        return quote
