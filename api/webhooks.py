"""Payment processor webhooks."""

import logging

from fastapi import APIRouter, Request

from api.base import success_response
from clients.stripe_client import StripeClient

logger = logging.getLogger(__name__)


def create_webhooks_router(stripe_client: StripeClient, payment_service) -> APIRouter:
    """Create webhook router. Signature verification happens before anything is read."""
    router = APIRouter(tags=["webhooks"])

    @router.post("/webhooks/stripe")
    async def stripe_webhook(request: Request):
        payload = await request.body()
        event = stripe_client.construct_event(payload, request.headers.get("stripe-signature"))

        quote = payment_service.handle_event(event)

        return success_response(
            {"received": True, "quote_id": str(quote.id) if quote else None},
            getattr(request.state, "request_id", None),
        ).model_dump(mode="json")

    return router
