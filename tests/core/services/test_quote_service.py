"""Tests for QuoteService - owner quote operations."""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest
from psycopg2 import errors as pg_errors

from core.audit import AuditAction
from core.config import QuoteConfig
from core.exceptions import ConflictError, IllegalTransitionError, NotFoundError
from core.models import QuoteCreate, QuoteStatus, QuoteUpdate
from core.services.quote_service import QuoteService
from utils.user_context import user_context

from factories import (
    TEST_SCOPE,
    TEST_USER_B_ID,
    TEST_USER_ID,
    make_line_item_row,
    make_quote_row,
)

FIXED_NOW = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def quote_service(db, audit):
    return QuoteService(db, audit)


@pytest.fixture
def fixed_clock():
    with patch("core.services.quote_service.now_utc", return_value=FIXED_NOW):
        yield FIXED_NOW


def insert_params(tx, call_index=0):
    """Params of the nth tx.execute_returning call."""
    return tx.execute_returning.call_args_list[call_index].args[1]


# =============================================================================
# CREATE
# =============================================================================


class TestCreate:

    def test_creates_draft_with_first_number(self, quote_service, db, tx, audit, as_test_user, fixed_clock):
        db.execute_single.return_value = None
        tx.execute_returning.return_value = [make_quote_row(quote_number="QC-2026-0001")]

        quote = quote_service.create(QuoteCreate(title="Deck", client_name="Sam"))

        assert quote.status == QuoteStatus.DRAFT
        params = insert_params(tx)
        assert params[1] == TEST_USER_ID
        assert params[2] is None
        assert params[3] == "QC-2026-0001"
        assert params[9] == "USD"
        assert params[10] == "draft"
        assert params[11] == 1
        audit.log_change.assert_called_once()
        assert audit.log_change.call_args.kwargs["action"] == AuditAction.CREATE

    def test_share_token_is_url_safe(self, quote_service, db, tx, as_test_user):
        db.execute_single.return_value = None
        tx.execute_returning.return_value = [make_quote_row()]

        quote_service.create(QuoteCreate(title="Deck", client_name="Sam"))

        token = insert_params(tx)[4]
        assert 1 <= len(token) <= 30
        assert all(c.isalnum() or c in "-_" for c in token)

    def test_explicit_currency_kept(self, quote_service, db, tx, as_test_user):
        db.execute_single.return_value = None
        tx.execute_returning.return_value = [make_quote_row(currency="EUR")]

        quote_service.create(QuoteCreate(title="Deck", client_name="Sam", currency="EUR"))

        assert insert_params(tx)[9] == "EUR"

    def test_configured_default_currency(self, db, tx, audit, as_test_user):
        service = QuoteService(db, audit, QuoteConfig(default_currency="CAD"))
        db.execute_single.return_value = None
        tx.execute_returning.return_value = [make_quote_row(currency="CAD")]

        service.create(QuoteCreate(title="Deck", client_name="Sam"))

        assert insert_params(tx)[9] == "CAD"

    def test_requires_user_context(self, quote_service):
        with pytest.raises(RuntimeError):
            quote_service.create(QuoteCreate(title="Deck", client_name="Sam"))


class TestQuoteNumbering:

    def test_next_after_existing(self, quote_service, db, tx, as_test_user, fixed_clock):
        """Owner with QC-2026-0001..0004 gets QC-2026-0005."""
        db.execute_single.return_value = {"quote_number": "QC-2026-0004"}
        tx.execute_returning.return_value = [make_quote_row(quote_number="QC-2026-0005")]

        quote_service.create(QuoteCreate(title="Deck", client_name="Sam"))

        assert insert_params(tx)[3] == "QC-2026-0005"
        query, params = db.execute_single.call_args.args
        assert "ORDER BY length(quote_number) DESC" in query
        assert params == (TEST_USER_ID, "QC-2026-%")

    def test_other_owner_sequence_independent(self, quote_service, db, tx, fixed_clock):
        db.execute_single.return_value = None
        tx.execute_returning.return_value = [make_quote_row(user_id=TEST_USER_B_ID)]

        with user_context(TEST_USER_B_ID):
            quote_service.create(QuoteCreate(title="Deck", client_name="Sam"))

        assert insert_params(tx)[3] == "QC-2026-0001"
        _, params = db.execute_single.call_args.args
        assert params[0] == TEST_USER_B_ID

    def test_demo_scope_numbers(self, quote_service, db, tx, as_demo_user, fixed_clock):
        db.execute_single.return_value = None
        tx.execute_returning.return_value = [make_quote_row(session_scope=TEST_SCOPE)]

        quote_service.create(QuoteCreate(title="Deck", client_name="Sam"))

        params = insert_params(tx)
        assert params[2] == TEST_SCOPE
        assert params[3] == f"DEMO-{TEST_SCOPE[:6]}-2026-0001"
        query, lookup_params = db.execute_single.call_args.args
        assert "session_scope = %s" in query
        assert lookup_params == (TEST_USER_ID, TEST_SCOPE, f"DEMO-{TEST_SCOPE[:6]}-2026-%")

    def test_unique_violation_retries_with_fresh_number(self, quote_service, db, tx, as_test_user, fixed_clock):
        db.execute_single.side_effect = [
            {"quote_number": "QC-2026-0004"},
            {"quote_number": "QC-2026-0005"},
        ]
        tx.execute_returning.side_effect = [
            pg_errors.UniqueViolation("duplicate key"),
            [make_quote_row(quote_number="QC-2026-0006")],
        ]

        quote = quote_service.create(QuoteCreate(title="Deck", client_name="Sam"))

        assert quote.quote_number == "QC-2026-0006"
        assert insert_params(tx, 0)[3] == "QC-2026-0005"
        assert insert_params(tx, 1)[3] == "QC-2026-0006"
        assert insert_params(tx, 0)[4] != insert_params(tx, 1)[4]

    def test_gives_up_after_configured_attempts(self, db, tx, audit, as_test_user):
        service = QuoteService(db, audit, QuoteConfig(quote_number_attempts=2))
        db.execute_single.return_value = None
        tx.execute_returning.side_effect = pg_errors.UniqueViolation("duplicate key")

        with pytest.raises(ConflictError):
            service.create(QuoteCreate(title="Deck", client_name="Sam"))

        assert tx.execute_returning.call_count == 2
        audit.log_change.assert_not_called()


# =============================================================================
# READ
# =============================================================================


class ScopedQuotes:
    """execute_single stand-in that applies the owner/scope predicate to stored rows."""

    def __init__(self, *rows):
        self.rows = list(rows)

    def __call__(self, query, params):
        quote_id, user_id = params[0], params[1]
        if "session_scope IS NULL" in query:
            scope = None
        else:
            scope = params[2]
        for row in self.rows:
            if row["id"] == quote_id and row["user_id"] == user_id and row["session_scope"] == scope:
                return row
        return None


class TestGetById:

    def test_found(self, quote_service, db, as_test_user):
        row = make_quote_row()
        db.execute_single.return_value = row

        quote = quote_service.get_by_id(row["id"])

        assert quote.id == row["id"]
        query, params = db.execute_single.call_args.args
        assert "user_id = %s AND session_scope IS NULL" in query
        assert params == (row["id"], TEST_USER_ID)

    def test_not_found_returns_none(self, quote_service, db, as_test_user):
        db.execute_single.return_value = None
        assert quote_service.get_by_id(uuid4()) is None

    def test_get_or_raise(self, quote_service, db, as_test_user):
        db.execute_single.return_value = None
        with pytest.raises(NotFoundError):
            quote_service.get_or_raise(uuid4())


class TestSessionIsolation:
    """A quote is visible only under the owner and session scope it was created with."""

    def test_demo_quote_hidden_from_permanent_session(self, quote_service, db):
        row = make_quote_row(session_scope="scope-a")
        db.execute_single.side_effect = ScopedQuotes(row)

        with user_context(TEST_USER_ID, "scope-a"):
            assert quote_service.get_by_id(row["id"]) is not None
        with user_context(TEST_USER_ID, "scope-b"):
            assert quote_service.get_by_id(row["id"]) is None
        with user_context(TEST_USER_ID):
            assert quote_service.get_by_id(row["id"]) is None

    def test_permanent_quote_hidden_from_demo_session(self, quote_service, db):
        row = make_quote_row(session_scope=None)
        db.execute_single.side_effect = ScopedQuotes(row)

        with user_context(TEST_USER_ID):
            assert quote_service.get_by_id(row["id"]) is not None
        with user_context(TEST_USER_ID, "scope-a"):
            assert quote_service.get_by_id(row["id"]) is None

    def test_other_owner_cannot_see_quote(self, quote_service, db):
        row = make_quote_row()
        db.execute_single.side_effect = ScopedQuotes(row)

        with user_context(TEST_USER_B_ID):
            with pytest.raises(NotFoundError):
                quote_service.send(row["id"])


class TestListQuotes:

    def test_newest_first_with_paging(self, quote_service, db, as_test_user):
        db.execute.return_value = [make_quote_row(), make_quote_row()]

        quotes = quote_service.list_quotes(limit=10, offset=20)

        assert len(quotes) == 2
        query, params = db.execute.call_args.args
        assert "ORDER BY created_at DESC" in query
        assert params == (TEST_USER_ID, 10, 20)

    def test_status_filter(self, quote_service, db, as_test_user):
        db.execute.return_value = []

        quote_service.list_quotes(status=QuoteStatus.SENT)

        query, params = db.execute.call_args.args
        assert "status = %s" in query
        assert params == (TEST_USER_ID, "sent", 50, 0)


# =============================================================================
# UPDATE
# =============================================================================


class TestUpdate:

    def test_updates_draft_conditionally(self, quote_service, db, audit, as_test_user):
        row = make_quote_row()
        db.execute_single.return_value = row
        db.execute_returning.return_value = [{**row, "title": "New", "version": 2}]

        quote = quote_service.update(row["id"], QuoteUpdate(title="New"))

        assert quote.title == "New"
        assert quote.version == 2
        query, params = db.execute_returning.call_args.args
        assert "version = version + 1" in query
        assert "AND status = %s" in query
        assert params[0] == "New"
        assert params[-1] == "draft"
        assert audit.log_change.call_args.kwargs["changes"] == {"title": {"old": "Kitchen Remodel", "new": "New"}}

    def test_non_draft_rejected_without_write(self, quote_service, db, as_test_user):
        db.execute_single.return_value = make_quote_row(status="sent")

        with pytest.raises(IllegalTransitionError, match="Only draft quotes can be edited"):
            quote_service.update(uuid4(), QuoteUpdate(title="New"))

        db.execute_returning.assert_not_called()

    def test_sent_during_update_is_conflict(self, quote_service, db, audit, as_test_user):
        db.execute_single.return_value = make_quote_row()
        db.execute_returning.return_value = []

        with pytest.raises(ConflictError):
            quote_service.update(uuid4(), QuoteUpdate(title="New"))

        audit.log_change.assert_not_called()

    def test_empty_update_returns_current(self, quote_service, db, as_test_user):
        row = make_quote_row()
        db.execute_single.return_value = row

        quote = quote_service.update(row["id"], QuoteUpdate())

        assert quote.id == row["id"]
        db.execute_returning.assert_not_called()

    def test_missing_quote(self, quote_service, db, as_test_user):
        db.execute_single.return_value = None
        with pytest.raises(NotFoundError):
            quote_service.update(uuid4(), QuoteUpdate(title="New"))


# =============================================================================
# SEND / DELETE
# =============================================================================


class TestSend:

    def test_draft_becomes_sent(self, quote_service, db, audit, as_test_user):
        row = make_quote_row()
        db.execute_single.return_value = row
        db.execute_returning.return_value = [{**row, "status": "sent", "version": 2}]

        quote = quote_service.send(row["id"])

        assert quote.status == QuoteStatus.SENT
        query, params = db.execute_returning.call_args.args
        assert params[0] == "sent"
        assert params[-1] == "draft"
        kwargs = audit.log_change.call_args.kwargs
        assert kwargs["action"] == AuditAction.TRANSITION
        assert kwargs["changes"] == {"status": {"old": "draft", "new": "sent"}}

    @pytest.mark.parametrize("status", ["sent", "accepted", "declined", "paid"])
    def test_only_drafts_can_be_sent(self, quote_service, db, as_test_user, status):
        db.execute_single.return_value = make_quote_row(status=status)

        with pytest.raises(IllegalTransitionError, match="Only draft quotes can be sent"):
            quote_service.send(uuid4())

        db.execute_returning.assert_not_called()

    def test_concurrent_send_is_conflict(self, quote_service, db, as_test_user):
        db.execute_single.return_value = make_quote_row()
        db.execute_returning.return_value = []

        with pytest.raises(ConflictError):
            quote_service.send(uuid4())


class TestDelete:

    def test_deletes_in_any_status(self, quote_service, db, audit, as_test_user):
        row = make_quote_row(status="paid")
        db.execute_returning.return_value = [row]

        assert quote_service.delete(row["id"]) is True
        assert audit.log_change.call_args.kwargs["action"] == AuditAction.DELETE

    def test_missing_returns_false(self, quote_service, db, audit, as_test_user):
        db.execute_returning.return_value = []

        assert quote_service.delete(uuid4()) is False
        audit.log_change.assert_not_called()


# =============================================================================
# DUPLICATE / DOCUMENT
# =============================================================================


class TestDuplicate:

    def test_copies_content_and_items(self, quote_service, db, tx, as_test_user, fixed_clock):
        source = make_quote_row(status="paid", deposit_percent=25, notes="Bring tiles")
        item_rows = [
            make_line_item_row(source["id"], description="Demo", sort_order=0),
            make_line_item_row(source["id"], description="Install", sort_order=1, rate=Decimal("250.00")),
        ]
        db.execute_single.side_effect = [source, {"quote_number": "QC-2026-0001"}]
        db.execute.return_value = item_rows

        copy_row = make_quote_row(title="Kitchen Remodel (Copy)", quote_number="QC-2026-0002")
        tx.execute_returning.side_effect = [
            [copy_row],
            [make_line_item_row(copy_row["id"], description="Demo")],
            [make_line_item_row(copy_row["id"], description="Install")],
        ]

        quote = quote_service.duplicate(source["id"])

        assert quote.status == QuoteStatus.DRAFT
        params = insert_params(tx)
        assert params[3] == "QC-2026-0002"
        assert params[5] == "Kitchen Remodel (Copy)"
        assert params[8] == "Bring tiles"
        assert params[12] == 25
        assert insert_params(tx, 1)[1] == copy_row["id"]
        assert insert_params(tx, 1)[2] == "Demo"
        assert insert_params(tx, 2)[5] == Decimal("250.00")


class TestDocument:

    def test_includes_pricing(self, quote_service, db, as_test_user):
        row = make_quote_row(deposit_percent=50)
        db.execute_single.return_value = row
        db.execute.return_value = [
            make_line_item_row(row["id"], rate=Decimal("100.00"), sort_order=0),
            make_line_item_row(row["id"], rate=Decimal("200.00"), quantity=Decimal("2.00"), sort_order=1),
        ]

        document = quote_service.document(row["id"])

        assert document.pricing.subtotal == Decimal("500.00")
        assert document.pricing.line_item_totals == [Decimal("100.00"), Decimal("400.00")]
        assert document.pricing.deposit_amount == Decimal("250.00")
        assert document.business_name is None

    def test_carries_business_name(self, db, audit, as_test_user):
        service = QuoteService(db, audit, QuoteConfig(business_name="Harbor Carpentry"))
        row = make_quote_row()
        db.execute_single.return_value = row
        db.execute.return_value = []

        assert service.document(row["id"]).business_name == "Harbor Carpentry"
