"""
Payment service: checkout for accepted quotes, and the processor event
that marks them paid.

The accepted -> paid write is conditional on status = 'accepted', so a
webhook retry (or two deliveries racing) applies at most once. The second
delivery matches zero rows and is ignored.
"""

import logging
from typing import Any
from uuid import UUID

from clients.postgres_client import PostgresClient
from clients.stripe_client import StripeClient
from core.audit import AuditLogger, AuditAction
from core.checkout import Charge, resolve_charge
from core.config import QuoteConfig
from core.exceptions import InvalidInputError
from core.lifecycle import QuoteAction, REQUIRED_STATUS, next_status
from core.models import Quote
from core.services.line_item_service import select_line_items
from core.services.public_quote_service import select_quote_by_token
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"


class PaymentService:
    """Service for quote payments."""

    def __init__(
        self,
        postgres: PostgresClient,
        audit: AuditLogger,
        stripe: StripeClient,
        config: QuoteConfig | None = None
    ):
        self.postgres = postgres
        self.audit = audit
        self.stripe = stripe
        self.config = config or QuoteConfig()

    def create_checkout(self, share_token: str) -> dict[str, Any]:
        """
        Start a hosted checkout for an accepted quote.

        Charges the deposit when the quote asks for one, otherwise the
        full subtotal.

        Returns:
            {"url", "session_id", "amount", "currency", "is_deposit"}

        Raises:
            InvalidShareTokenError: malformed token
            NotFoundError: unknown token
            IllegalTransitionError: quote not accepted, or has no line items
            QuoteExpiredError: valid_until has passed
            PaymentUnavailableError: payment processor failed
        """
        quote = select_quote_by_token(self.postgres, share_token)
        line_items = select_line_items(self.postgres, quote.id)
        charge: Charge = resolve_charge(quote, line_items, now_utc())

        base_url = self.config.app_base_url.rstrip("/")
        session = self.stripe.create_checkout_session(
            amount_minor=charge.amount_minor,
            currency=charge.currency,
            label=charge.label,
            metadata={"quoteId": str(quote.id), "userId": str(quote.user_id)},
            success_url=f"{base_url}/q/{quote.share_token}/success",
            cancel_url=f"{base_url}/q/{quote.share_token}",
        )

        logger.info(
            f"Checkout session {session['id']} created for quote {quote.id} "
            f"({charge.amount_minor} {charge.currency})"
        )

        return {
            "url": session["url"],
            "session_id": session["id"],
            "amount": str(charge.amount),
            "currency": charge.currency,
            "is_deposit": charge.is_deposit,
        }

    def handle_event(self, event: dict[str, Any]) -> Quote | None:
        """
        React to a verified processor event.

        Only checkout.session.completed does anything; other event types
        are acknowledged and ignored.

        Returns:
            The paid quote, or None when nothing changed

        Raises:
            InvalidInputError: completed session without a usable quoteId
        """
        event_type = event.get("type")
        if event_type != CHECKOUT_COMPLETED:
            logger.debug(f"Ignoring Stripe event {event_type}")
            return None

        session = (event.get("data") or {}).get("object") or {}
        metadata = session.get("metadata") or {}
        raw_quote_id = metadata.get("quoteId")

        if not raw_quote_id:
            logger.error(f"No quoteId in metadata of checkout session {session.get('id')}")
            raise InvalidInputError("Missing metadata")

        try:
            quote_id = UUID(str(raw_quote_id))
        except ValueError as e:
            logger.error(f"Malformed quoteId in metadata of checkout session {session.get('id')}")
            raise InvalidInputError("Missing metadata") from e

        payment_intent = session.get("payment_intent")
        return self.complete_checkout(
            quote_id,
            session_id=session.get("id"),
            payment_intent_id=payment_intent if isinstance(payment_intent, str) else None,
        )

    def complete_checkout(
        self,
        quote_id: UUID,
        session_id: str | None,
        payment_intent_id: str | None
    ) -> Quote | None:
        """
        Mark an accepted quote paid and store the processor references.

        Returns:
            The paid quote, or None if the quote is unknown or not accepted
            (already paid by an earlier delivery, for instance)
        """
        expected = REQUIRED_STATUS[QuoteAction.MARK_PAID]
        target = next_status(expected, QuoteAction.MARK_PAID)
        now = now_utc()

        rows = self.postgres.execute_returning(
            """
            UPDATE quotes
            SET status = %s, stripe_session_id = %s, stripe_payment_intent_id = %s,
                paid_at = %s, version = version + 1, updated_at = %s
            WHERE id = %s AND status = %s
            RETURNING *
            """,
            (target.value, session_id, payment_intent_id, now, now, quote_id, expected.value)
        )

        if not rows:
            logger.info(f"Quote {quote_id} not found or not in accepted status, payment event ignored")
            return None

        quote = Quote.model_validate(rows[0])

        self.audit.log_change(
            entity_type="quote",
            entity_id=quote.id,
            action=AuditAction.TRANSITION,
            changes={
                "status": {"old": expected.value, "new": quote.status.value},
                "stripe_session_id": {"old": None, "new": session_id},
            },
            user_id=quote.user_id,
            session_scope=quote.session_scope
        )

        logger.info(f"Quote {quote.id} transitioned {expected.value} -> {quote.status.value}")
        return quote
