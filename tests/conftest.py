"""Shared test fixtures for the quote service test suite."""

import pytest
from contextlib import nullcontext
from pathlib import Path
from unittest.mock import MagicMock
from uuid import UUID

from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from clients.postgres_client import PostgresClient, Transaction
from core.audit import AuditLogger
from utils.user_context import user_context, clear_current_user

from factories import TEST_USER_ID, TEST_USER_B_ID, TEST_SCOPE, FakeValkey


# =============================================================================
# USER CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_user_context():
    """Ensure clean user context before and after each test."""
    clear_current_user()
    yield
    clear_current_user()


@pytest.fixture
def test_user_id() -> UUID:
    """The primary test owner's ID."""
    return TEST_USER_ID


@pytest.fixture
def test_user_b_id() -> UUID:
    """The secondary test owner's ID (for isolation tests)."""
    return TEST_USER_B_ID


@pytest.fixture
def as_test_user(test_user_id):
    """Primary test owner context, no session scope."""
    with user_context(test_user_id):
        yield test_user_id


@pytest.fixture
def as_demo_user(test_user_id):
    """Primary test owner inside a demo session scope."""
    with user_context(test_user_id, TEST_SCOPE):
        yield test_user_id


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture
def tx():
    """Transaction handle yielded by db.transaction()."""
    return MagicMock(spec=Transaction)


@pytest.fixture
def db(tx):
    """
    PostgresClient stand-in.

    Tests script execute_* return values to model what the database
    answers, e.g. an empty RETURNING list for a conditional UPDATE that
    matched no rows.
    """
    mock = MagicMock(spec=PostgresClient)
    mock.transaction.side_effect = lambda: nullcontext(tx)
    return mock


@pytest.fixture
def audit():
    """AuditLogger stand-in; assert on log_change calls."""
    return MagicMock(spec=AuditLogger)


# =============================================================================
# VALKEY FIXTURES
# =============================================================================


@pytest.fixture
def valkey():
    """In-memory Valkey."""
    return FakeValkey()
