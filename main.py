"""
Application entry point.

    uvicorn main:create_app --factory

Secrets (database, Valkey, Stripe) come from Vault; non-secret tunables
come from environment variables with the defaults in QuoteConfig/AuthConfig.
"""

import logging
import os

from fastapi import FastAPI, Request

from api.actions import create_actions_router
from api.base import success_response
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from api.public import create_public_router
from api.webhooks import create_webhooks_router
from auth.api import create_auth_router
from auth.config import AuthConfig
from auth.rate_limiter import RateLimiter
from auth.security_middleware import AuthMiddleware
from auth.session import SessionManager
from clients import (
    PostgresClient,
    StripeClient,
    ValkeyClient,
    get_database_url,
    get_stripe_config,
    get_valkey_url,
)
from core.audit import AuditLogger
from core.config import QuoteConfig
from core.services.analytics_service import AnalyticsService
from core.services.line_item_service import LineItemService
from core.services.payment_service import PaymentService
from core.services.public_quote_service import PublicQuoteService
from core.services.quote_service import QuoteService
from core.services.template_service import TemplateService

logger = logging.getLogger(__name__)


def build_services(
    postgres: PostgresClient,
    stripe_client: StripeClient,
    config: QuoteConfig,
) -> dict:
    """Wire domain services onto shared clients."""
    audit = AuditLogger(postgres)
    quotes = QuoteService(postgres, audit, config)

    return {
        "audit": audit,
        "quote": quotes,
        "line_item": LineItemService(postgres, audit),
        "template": TemplateService(postgres, audit, quotes),
        "analytics": AnalyticsService(postgres),
        "public": PublicQuoteService(postgres, audit, config),
        "payment": PaymentService(postgres, audit, stripe_client, config),
    }


def build_app(
    services: dict,
    session_manager: SessionManager,
    rate_limiter: RateLimiter,
    stripe_client: StripeClient,
    auth_config: AuthConfig,
) -> FastAPI:
    """Assemble routers, middleware and error handlers."""
    app = FastAPI(title="Quotes")

    # Added last runs first: request id must exist before auth responds
    app.add_middleware(AuthMiddleware, session_manager=session_manager)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(create_data_router(services), prefix="/api")
    app.include_router(create_actions_router(services), prefix="/api")
    app.include_router(
        create_public_router(services["public"], services["payment"], rate_limiter)
    )
    app.include_router(create_webhooks_router(stripe_client, services["payment"]))
    app.include_router(
        create_auth_router(session_manager, auth_config, rate_limiter),
        prefix="/auth",
    )

    @app.get("/health")
    async def health(request: Request):
        return success_response(
            {"status": "ok"},
            getattr(request.state, "request_id", None),
        ).model_dump(mode="json")

    return app


def create_app() -> FastAPI:
    """Build the production app from Vault secrets and environment settings."""
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    quote_config = QuoteConfig(
        app_base_url=os.environ.get("APP_BASE_URL", QuoteConfig().app_base_url),
        business_name=os.environ.get("BUSINESS_NAME") or None,
    )
    auth_config = AuthConfig(
        demo_user_id=os.environ.get("DEMO_USER_ID") or None,
        secure_cookies=os.environ.get("SECURE_COOKIES", "true").lower() != "false",
    )

    postgres = PostgresClient(get_database_url())
    valkey = ValkeyClient(get_valkey_url())
    stripe_config = get_stripe_config()
    stripe_client = StripeClient(
        stripe_config["secret_key"],
        stripe_config["webhook_secret"],
    )

    services = build_services(postgres, stripe_client, quote_config)
    session_manager = SessionManager(valkey, auth_config)
    rate_limiter = RateLimiter(valkey, auth_config)

    logger.info(f"Quote service starting (demo mode {'on' if auth_config.demo_user_id else 'off'})")

    app = build_app(services, session_manager, rate_limiter, stripe_client, auth_config)

    @app.on_event("shutdown")
    def close_clients():
        valkey.close()
        postgres.close()

    return app
