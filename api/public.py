"""Public quote routes, keyed by share token. No session required."""

import ipaddress

from fastapi import APIRouter, Depends, Request

from api.base import success_response
from auth.rate_limiter import RateLimiter
from core.models import Quote, QuoteDocument
from utils.timezone import now_utc


def caller_address(request: Request) -> str:
    """Caller IP for rate limiting; 'unknown' when the peer address is unusable."""
    if not request.client:
        return "unknown"
    host = request.client.host
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        return "unknown"


def _public_quote(quote: Quote) -> dict:
    """What a recipient may see. Owner ids, scope and payment references stay private."""
    return {
        "quote_number": quote.quote_number,
        "share_token": quote.share_token,
        "title": quote.title,
        "client_name": quote.client_name,
        "notes": quote.notes,
        "currency": quote.currency,
        "status": quote.status.value,
        "deposit_percent": quote.deposit_percent,
        "valid_until": quote.valid_until.isoformat() if quote.valid_until else None,
        "is_expired": quote.is_expired(now_utc()),
        "created_at": quote.created_at.isoformat(),
    }


def _public_document(document: QuoteDocument) -> dict:
    pricing = document.pricing.model_dump(mode="json")
    return {
        "quote": _public_quote(document.quote),
        "line_items": [
            li.model_dump(mode="json", exclude={"quote_id", "created_at"})
            for li in document.line_items
        ],
        "pricing": pricing,
        "business_name": document.business_name,
    }


def create_public_router(public_service, payment_service, rate_limiter: RateLimiter) -> APIRouter:
    """Create public quote router with injected services."""
    router = APIRouter(tags=["public"])

    def limit(bucket: str):
        def dependency(request: Request) -> None:
            rate_limiter.check_rate_limit(bucket, caller_address(request))
        return Depends(dependency)

    @router.get("/q/{share_token}", dependencies=[limit("quote_view")])
    async def view_quote(request: Request, share_token: str):
        document = public_service.get_by_token(share_token)
        return success_response(
            _public_document(document), getattr(request.state, "request_id", None)
        ).model_dump(mode="json")

    @router.post("/q/{share_token}/accept", dependencies=[limit("quote_respond")])
    async def accept_quote(request: Request, share_token: str):
        quote = public_service.accept(share_token)
        return success_response(
            _public_quote(quote), getattr(request.state, "request_id", None)
        ).model_dump(mode="json")

    @router.post("/q/{share_token}/decline", dependencies=[limit("quote_respond")])
    async def decline_quote(request: Request, share_token: str):
        quote = public_service.decline(share_token)
        return success_response(
            _public_quote(quote), getattr(request.state, "request_id", None)
        ).model_dump(mode="json")

    @router.post("/q/{share_token}/checkout", dependencies=[limit("quote_checkout")])
    async def checkout(request: Request, share_token: str):
        result = payment_service.create_checkout(share_token)
        return success_response(
            result, getattr(request.state, "request_id", None)
        ).model_dump(mode="json")

    return router
