"""HTTP routes for session handling.

Identity itself comes from an external provider; this module only starts
demo sessions, ends sessions, and reports the current one.
"""

import logging

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from auth.config import AuthConfig
from auth.rate_limiter import RateLimiter
from auth.security_middleware import SESSION_COOKIE
from auth.session import SessionManager
from api.base import success_response, error_response, ErrorCodes
from api.public import caller_address

logger = logging.getLogger(__name__)


def create_auth_router(
    session_manager: SessionManager,
    config: AuthConfig,
    rate_limiter: RateLimiter,
) -> APIRouter:
    """Create auth router with injected session manager."""
    router = APIRouter(tags=["auth"])

    @router.post("/demo")
    async def start_demo(request: Request, response: Response):
        """Start a demo session with its own isolated session scope.

        Sets session_token cookie on success.
        """
        request_id = getattr(request.state, "request_id", None)

        if config.demo_user_id is None:
            return JSONResponse(
                status_code=503,
                content=error_response(
                    ErrorCodes.DEMO_UNAVAILABLE,
                    "Demo mode is not configured",
                    request_id,
                ).model_dump(mode="json"),
            )

        rate_limiter.check_rate_limit("demo_login", caller_address(request))

        session = session_manager.create_demo_session(config.demo_user_id)
        logger.info(f"Demo session started with scope {session.scope}")

        response.set_cookie(
            key=SESSION_COOKIE,
            value=session.token,
            httponly=True,
            secure=config.secure_cookies,
            samesite="lax",
            max_age=int((session.expires_at - session.created_at).total_seconds()),
        )

        return success_response({
            "user_id": str(session.user_id),
            "scope": session.scope,
            "expires_at": session.expires_at.isoformat(),
        }, request_id).model_dump(mode="json")

    @router.post("/logout")
    async def logout(request: Request, response: Response):
        """Logout - revoke session and clear cookie."""
        session_token = request.cookies.get(SESSION_COOKIE)

        if session_token:
            session_manager.revoke_session(session_token)

        response.delete_cookie(key=SESSION_COOKIE)

        return success_response(
            {"message": "Logged out successfully"},
            getattr(request.state, "request_id", None),
        ).model_dump(mode="json")

    @router.get("/session")
    async def current_session(request: Request):
        """Report the current session.

        Requires authentication (middleware sets user context).
        """
        session = getattr(request.state, "session", None)
        if session is None:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Authentication required",
                ).model_dump(mode="json"),
            )

        return success_response({
            "user_id": str(session.user_id),
            "scope": session.scope,
            "is_demo": session.is_demo,
            "expires_at": session.expires_at.isoformat(),
        }, getattr(request.state, "request_id", None)).model_dump(mode="json")

    return router
