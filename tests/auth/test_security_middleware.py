"""Tests for AuthMiddleware - cookie session validation and user context."""

from unittest.mock import Mock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from auth.exceptions import SessionExpiredError
from auth.security_middleware import AuthMiddleware, SESSION_COOKIE
from auth.session import SessionManager
from core.exceptions import UpstreamError
from utils.user_context import get_current_scope, get_current_user_id

from factories import TEST_USER_ID, TEST_SCOPE, make_session


@pytest.fixture
def session_manager():
    return Mock(spec=SessionManager)


@pytest.fixture
def client(session_manager):
    app = FastAPI()
    app.add_middleware(AuthMiddleware, session_manager=session_manager)

    @app.get("/api/whoami")
    async def whoami():
        return {"user_id": str(get_current_user_id()), "scope": get_current_scope()}

    @app.get("/q/{share_token}")
    async def public_quote(share_token: str):
        return {"token": share_token}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return TestClient(app)


class TestProtectedPaths:

    def test_missing_cookie(self, client, session_manager):
        response = client.get("/api/whoami")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "NOT_AUTHENTICATED"
        session_manager.validate_session.assert_not_called()

    def test_expired_session(self, client, session_manager):
        session_manager.validate_session.side_effect = SessionExpiredError("Session expired")

        response = client.get("/api/whoami", cookies={SESSION_COOKIE: "stale"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "SESSION_EXPIRED"

    def test_sets_user_context(self, client, session_manager):
        session_manager.validate_session.return_value = make_session()

        response = client.get("/api/whoami", cookies={SESSION_COOKIE: "tok"})

        assert response.status_code == 200
        assert response.json() == {"user_id": str(TEST_USER_ID), "scope": None}
        session_manager.validate_session.assert_called_once_with("tok")

    def test_session_store_down(self, client, session_manager):
        session_manager.validate_session.side_effect = UpstreamError("Session store unavailable")

        response = client.get("/api/whoami", cookies={SESSION_COOKIE: "tok"})

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "SERVICE_UNAVAILABLE"

    def test_demo_session_carries_scope(self, client, session_manager):
        session_manager.validate_session.return_value = make_session(scope=TEST_SCOPE)

        response = client.get("/api/whoami", cookies={SESSION_COOKIE: "tok"})

        assert response.json()["scope"] == TEST_SCOPE


class TestPublicPaths:

    def test_share_token_route_skips_auth(self, client, session_manager):
        response = client.get("/q/abcDEF123_-xyz")

        assert response.status_code == 200
        session_manager.validate_session.assert_not_called()

    def test_health_skips_auth(self, client):
        assert client.get("/health").json() == {"status": "ok"}
