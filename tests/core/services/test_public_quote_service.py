"""Tests for PublicQuoteService - token-gated view, accept and decline."""

from datetime import timedelta
from decimal import Decimal

import pytest

from core.audit import AuditAction
from core.config import QuoteConfig
from core.exceptions import (
    ConflictError,
    IllegalTransitionError,
    InvalidShareTokenError,
    NotFoundError,
    QuoteExpiredError,
)
from core.models import QuoteStatus
from core.services.public_quote_service import PublicQuoteService
from utils.timezone import now_utc

from factories import TEST_SCOPE, TEST_SHARE_TOKEN, TEST_USER_ID, make_line_item_row, make_quote_row


@pytest.fixture
def public_service(db, audit):
    return PublicQuoteService(db, audit)


class QuoteRow:
    """
    One quotes row whose conditional UPDATEs behave like PostgreSQL.

    Reads return the snapshot taken before any write, the way two
    requests that both read before either writes would see it.
    """

    def __init__(self, row):
        self.snapshot = dict(row)
        self.live = dict(row)
        self.updates = 0

    def read(self, query, params):
        return dict(self.snapshot)

    def conditional_update(self, query, params):
        target, _, quote_id, expected = params
        if quote_id != self.live["id"] or self.live["status"] != expected:
            return []
        self.live["status"] = target
        self.live["version"] += 1
        self.updates += 1
        return [dict(self.live)]


class TestView:

    def test_returns_document(self, public_service, db):
        row = make_quote_row(status="sent")
        db.execute_single.return_value = row
        db.execute.return_value = [make_line_item_row(row["id"], rate=Decimal("50.00"))]

        document = public_service.get_by_token(TEST_SHARE_TOKEN)

        assert document.quote.id == row["id"]
        assert document.pricing.subtotal == Decimal("50.00")
        assert db.execute_single.call_args.args[1] == (TEST_SHARE_TOKEN,)
        assert document.business_name is None

    def test_business_name_from_config(self, db, audit):
        service = PublicQuoteService(db, audit, QuoteConfig(business_name="Harbor Carpentry"))
        db.execute_single.return_value = make_quote_row(status="sent")
        db.execute.return_value = []

        assert service.get_by_token(TEST_SHARE_TOKEN).business_name == "Harbor Carpentry"

    def test_malformed_token_never_queried(self, public_service, db):
        with pytest.raises(InvalidShareTokenError):
            public_service.get_by_token("bad token;--")

        db.execute_single.assert_not_called()

    def test_overlong_token_never_queried(self, public_service, db):
        with pytest.raises(InvalidShareTokenError):
            public_service.get_by_token("a" * 31)

        db.execute_single.assert_not_called()

    def test_unknown_token(self, public_service, db):
        db.execute_single.return_value = None

        with pytest.raises(NotFoundError):
            public_service.get_by_token(TEST_SHARE_TOKEN)


class TestAcceptDecline:

    def test_accept(self, public_service, db, audit):
        row = make_quote_row(status="sent")
        db.execute_single.return_value = row
        db.execute_returning.return_value = [{**row, "status": "accepted", "version": 2}]

        quote = public_service.accept(TEST_SHARE_TOKEN)

        assert quote.status == QuoteStatus.ACCEPTED
        query, params = db.execute_returning.call_args.args
        assert "WHERE id = %s AND status = %s" in query
        assert params[0] == "accepted"
        assert params[2:] == (row["id"], "sent")
        kwargs = audit.log_change.call_args.kwargs
        assert kwargs["action"] == AuditAction.TRANSITION
        assert kwargs["user_id"] == TEST_USER_ID
        assert kwargs["changes"] == {"status": {"old": "sent", "new": "accepted"}}
        assert kwargs["session_scope"] is None

    def test_decline(self, public_service, db):
        row = make_quote_row(status="sent")
        db.execute_single.return_value = row
        db.execute_returning.return_value = [{**row, "status": "declined", "version": 2}]

        quote = public_service.decline(TEST_SHARE_TOKEN)

        assert quote.status == QuoteStatus.DECLINED
        assert db.execute_returning.call_args.args[1][0] == "declined"

    def test_needs_no_user_context(self, public_service, db):
        """Recipients are anonymous; the owner is taken from the row."""
        row = make_quote_row(status="sent")
        db.execute_single.return_value = row
        db.execute_returning.return_value = [{**row, "status": "accepted"}]

        public_service.accept(TEST_SHARE_TOKEN)

    def test_demo_quote_audited_under_its_scope(self, public_service, db, audit):
        row = make_quote_row(status="sent", session_scope=TEST_SCOPE)
        db.execute_single.return_value = row
        db.execute_returning.return_value = [{**row, "status": "accepted"}]

        public_service.accept(TEST_SHARE_TOKEN)

        assert audit.log_change.call_args.kwargs["session_scope"] == TEST_SCOPE

    @pytest.mark.parametrize("status", ["draft", "accepted", "declined", "paid"])
    def test_only_sent_quotes_respond(self, public_service, db, status):
        db.execute_single.return_value = make_quote_row(status=status)

        with pytest.raises(IllegalTransitionError) as exc_info:
            public_service.accept(TEST_SHARE_TOKEN)

        assert not isinstance(exc_info.value, QuoteExpiredError)
        db.execute_returning.assert_not_called()

    def test_concurrent_accepts_one_wins(self, public_service, db, audit):
        """Two accepts that both read 'sent': one transitions, the other conflicts."""
        table = QuoteRow(make_quote_row(status="sent", version=1))
        db.execute_single.side_effect = table.read
        db.execute_returning.side_effect = table.conditional_update

        first = public_service.accept(TEST_SHARE_TOKEN)
        with pytest.raises(ConflictError, match="no longer available"):
            public_service.accept(TEST_SHARE_TOKEN)

        assert first.status == QuoteStatus.ACCEPTED
        assert table.live["status"] == "accepted"
        assert table.live["version"] == 2
        assert table.updates == 1
        audit.log_change.assert_called_once()

    def test_accept_racing_decline(self, public_service, db):
        table = QuoteRow(make_quote_row(status="sent"))
        db.execute_single.side_effect = table.read
        db.execute_returning.side_effect = table.conditional_update

        public_service.decline(TEST_SHARE_TOKEN)
        with pytest.raises(ConflictError):
            public_service.accept(TEST_SHARE_TOKEN)

        assert table.live["status"] == "declined"


class TestExpiry:

    @pytest.fixture
    def expired_row(self):
        return make_quote_row(status="sent", valid_until=now_utc() - timedelta(hours=1))

    def test_accept_expired(self, public_service, db, expired_row):
        db.execute_single.return_value = expired_row

        with pytest.raises(QuoteExpiredError, match="expired"):
            public_service.accept(TEST_SHARE_TOKEN)

        db.execute_returning.assert_not_called()

    def test_decline_expired(self, public_service, db, expired_row):
        db.execute_single.return_value = expired_row

        with pytest.raises(QuoteExpiredError):
            public_service.decline(TEST_SHARE_TOKEN)

        db.execute_returning.assert_not_called()

    def test_evaluated_at_given_time(self, public_service, db):
        row = make_quote_row(status="sent", valid_until=now_utc() + timedelta(days=1))
        db.execute_single.return_value = row

        with pytest.raises(QuoteExpiredError):
            public_service.accept(TEST_SHARE_TOKEN, at=now_utc() + timedelta(days=2))

    def test_no_valid_until_never_expires(self, public_service, db):
        row = make_quote_row(status="sent", valid_until=None)
        db.execute_single.return_value = row
        db.execute_returning.return_value = [{**row, "status": "accepted"}]

        assert public_service.accept(TEST_SHARE_TOKEN).status == QuoteStatus.ACCEPTED
