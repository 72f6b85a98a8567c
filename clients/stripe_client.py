"""
Stripe client for quote checkout.

Thin wrapper around the stripe SDK. Keys come from Vault and are passed
per request, so no module-level stripe.api_key is ever set.
Processor failures surface as PaymentUnavailableError; bad or stale webhook
signatures as InvalidInputError.
"""

import json
import logging
from typing import Any

import stripe

from core.exceptions import InvalidInputError, PaymentUnavailableError

logger = logging.getLogger(__name__)


class StripeClient:
    """
    Stripe checkout sessions and webhook verification.

    Usage:
        client = StripeClient(secret_key, webhook_secret)
        session = client.create_checkout_session(
            amount_minor=45000, currency="usd", label="Kitchen - Deposit (50%)",
            metadata={"quoteId": str(quote.id)},
            success_url=..., cancel_url=...,
        )
        redirect_to(session["url"])
    """

    def __init__(self, secret_key: str, webhook_secret: str):
        if not secret_key:
            raise ValueError("Stripe secret key is required")
        if not webhook_secret:
            raise ValueError("Stripe webhook secret is required")
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret

    def create_checkout_session(
        self,
        amount_minor: int,
        currency: str,
        label: str,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str
    ) -> dict[str, str]:
        """
        Create a one-line hosted checkout session.

        Args:
            amount_minor: Amount in minor units (cents)
            currency: Lowercase ISO currency code
            label: Product name shown on the checkout page
            metadata: Echoed back on checkout.session.completed
            success_url: Redirect after payment
            cancel_url: Redirect when the payer backs out

        Returns:
            {"id": session id, "url": hosted checkout URL}

        Raises:
            PaymentUnavailableError: Stripe rejected the request or is unreachable
        """
        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                line_items=[{
                    "price_data": {
                        "currency": currency,
                        "product_data": {"name": label},
                        "unit_amount": amount_minor,
                    },
                    "quantity": 1,
                }],
                metadata=metadata,
                success_url=success_url,
                cancel_url=cancel_url,
                api_key=self._secret_key,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout session failed: {e.__class__.__name__}: {e.user_message or e}")
            raise PaymentUnavailableError("Payment processor unavailable") from e

        return {"id": session.id, "url": session.url}

    def construct_event(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """
        Verify a webhook delivery and parse it.

        Returns the event as plain JSON (dict) so handlers never depend on
        StripeObject behaviour. Signatures older than the SDK default
        tolerance (five minutes) are rejected so a captured delivery cannot
        be replayed.

        Raises:
            InvalidInputError: missing, invalid or stale signature, or unparseable payload
        """
        if not signature:
            raise InvalidInputError("Missing stripe-signature header")

        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
            stripe.WebhookSignature.verify_header(
                body, signature, self._webhook_secret, tolerance=stripe.Webhook.DEFAULT_TOLERANCE
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
            logger.warning("Stripe webhook signature verification failed")
            raise InvalidInputError("Verification failed") from e

        try:
            event = json.loads(body)
        except json.JSONDecodeError as e:
            logger.warning("Stripe webhook payload could not be parsed")
            raise InvalidInputError("Verification failed") from e

        if not isinstance(event, dict):
            raise InvalidInputError("Verification failed")
        return event
