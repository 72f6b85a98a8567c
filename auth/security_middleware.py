"""Security middleware for FastAPI - session validation and user context."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from auth.session import SessionManager
from auth.exceptions import SessionExpiredError
from core.exceptions import UpstreamError
from api.base import error_response, ErrorCodes
from utils.user_context import set_current_user, clear_current_user

SESSION_COOKIE = "session_token"


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware that validates session and sets user context.

    For protected routes:
    1. Extracts session token from 'session_token' cookie
    2. Validates session via SessionManager
    3. Sets user_id and session scope in request.state and user context
    4. Clears context after request completes

    Public paths (share-token routes, processor webhooks, demo login)
    bypass authentication entirely and never see a user context.
    """

    PUBLIC_PATHS = [
        "/q/",
        "/webhooks/",
        "/auth/demo",
        "/auth/logout",
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def __init__(self, app, session_manager: SessionManager):
        super().__init__(app)
        self._session_manager = session_manager

    def _is_public_path(self, path: str) -> bool:
        """Check if path is in public paths list."""
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        path = request.url.path

        # Skip auth for public paths
        if self._is_public_path(path):
            return await call_next(request)

        request_id = getattr(request.state, "request_id", None)
        session_token = request.cookies.get(SESSION_COOKIE)

        if not session_token:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Authentication required",
                    request_id,
                ).model_dump(mode="json"),
            )

        try:
            session = self._session_manager.validate_session(session_token)
        except SessionExpiredError:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.SESSION_EXPIRED,
                    "Session has expired",
                    request_id,
                ).model_dump(mode="json"),
            )
        except UpstreamError:
            return JSONResponse(
                status_code=502,
                content=error_response(
                    ErrorCodes.SERVICE_UNAVAILABLE,
                    "A required service is unavailable, please try again",
                    request_id,
                ).model_dump(mode="json"),
            )

        # Owner + scope for core.ownership guards
        set_current_user(session.user_id, session.scope)
        request.state.user_id = session.user_id
        request.state.session = session

        try:
            response = await call_next(request)
            return response
        finally:
            # Always clear context
            clear_current_user()
