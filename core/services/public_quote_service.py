"""
Public quote access by share token.

No user context here: the share token is the only credential. Tokens are
format-checked before they reach a query. Accept and decline are atomic
conditional writes on status = 'sent'; the expiry check before the write is
advisory and evaluated at request time.
"""

import logging
from datetime import datetime

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction
from core.config import QuoteConfig
from core.exceptions import ConflictError, NotFoundError, QuoteExpiredError
from core.lifecycle import QuoteAction, REQUIRED_STATUS, next_status, rejection_message
from core.models import Quote, QuoteDocument, validate_share_token
from core.services.line_item_service import select_line_items
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def select_quote_by_token(postgres: PostgresClient, share_token: str) -> Quote:
    """
    Look up a quote by share token.

    Raises:
        InvalidShareTokenError: token format rejected, no query issued
        NotFoundError: no quote with this token
    """
    validate_share_token(share_token)

    row = postgres.execute_single(
        "SELECT * FROM quotes WHERE share_token = %s",
        (share_token,)
    )
    if row is None:
        raise NotFoundError("Quote not found")

    return Quote.model_validate(row)


class PublicQuoteService:
    """Token-gated view, accept and decline for quote recipients."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger, config: QuoteConfig | None = None):
        self.postgres = postgres
        self.audit = audit
        self.config = config or QuoteConfig()

    def get_by_token(self, share_token: str) -> QuoteDocument:
        """
        Quote, line items and pricing for the public page.

        Raises:
            InvalidShareTokenError: malformed token
            NotFoundError: unknown token
        """
        quote = select_quote_by_token(self.postgres, share_token)
        line_items = select_line_items(self.postgres, quote.id)
        return QuoteDocument.build(quote, line_items, self.config.business_name)

    def accept(self, share_token: str, at: datetime | None = None) -> Quote:
        """
        Accept a sent quote.

        Raises:
            InvalidShareTokenError: malformed token
            NotFoundError: unknown token
            IllegalTransitionError: quote is not sent
            QuoteExpiredError: valid_until has passed
            ConflictError: another response landed first
        """
        return self._respond(share_token, QuoteAction.ACCEPT, at)

    def decline(self, share_token: str, at: datetime | None = None) -> Quote:
        """
        Decline a sent quote. Same rules as accept().
        """
        return self._respond(share_token, QuoteAction.DECLINE, at)

    def _respond(self, share_token: str, action: QuoteAction, at: datetime | None) -> Quote:
        quote = select_quote_by_token(self.postgres, share_token)
        target = next_status(quote.status, action)

        now = at or now_utc()
        if quote.is_expired(now):
            raise QuoteExpiredError()

        expected = REQUIRED_STATUS[action]
        rows = self.postgres.execute_returning(
            """
            UPDATE quotes
            SET status = %s, version = version + 1, updated_at = %s
            WHERE id = %s AND status = %s
            RETURNING *
            """,
            (target.value, now_utc(), quote.id, expected.value)
        )

        if not rows:
            logger.info(f"Quote {quote.id} {action.value} lost the race, status no longer {expected.value}")
            raise ConflictError(rejection_message(action))

        updated = Quote.model_validate(rows[0])

        # Recipient has no user context; attribute to the owner
        self.audit.log_change(
            entity_type="quote",
            entity_id=quote.id,
            action=AuditAction.TRANSITION,
            changes={"status": {"old": expected.value, "new": updated.status.value}},
            user_id=quote.user_id,
            session_scope=quote.session_scope
        )

        logger.info(f"Quote {quote.id} transitioned {expected.value} -> {updated.status.value}")
        return updated
