"""Tests for the payment event ledger.

Covers:
- First insert vs duplicate lookup
- Concurrent duplicate (unique constraint violation) treated as not new
- mark_processed / record_failure bookkeeping
- Stale-event selection for the recovery sweep
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from enroll.extensions import db
from enroll.models.payment_event import PaymentEvent
from enroll.services import ledger_service


def _age(event_id, minutes):
    event = db.session.get(PaymentEvent, event_id)
    event.created_at = datetime.now(timezone.utc) - timedelta(minutes=minutes)
    db.session.commit()


class TestRecordIfNew:

    def test_first_delivery_is_new(self):
        result = ledger_service.record_if_new("mercadopago", "123", "payment", {"a": 1})
        assert result.is_new is True
        event = db.session.get(PaymentEvent, result.event_record_id)
        assert event.external_id == "123"
        assert event.payload == {"a": 1}
        assert event.processed_at is None
        assert event.attempts == 0

    def test_duplicate_is_not_new(self):
        first = ledger_service.record_if_new("mercadopago", "123", "payment", {})
        second = ledger_service.record_if_new("mercadopago", "123", "payment", {})
        assert second.is_new is False
        assert second.event_record_id == first.event_record_id
        assert PaymentEvent.query.count() == 1

    def test_numeric_event_id_normalized(self):
        ledger_service.record_if_new("mercadopago", 123, "payment", {})
        again = ledger_service.record_if_new("mercadopago", "123", "payment", {})
        assert again.is_new is False

    def test_same_id_other_provider_is_new(self):
        ledger_service.record_if_new("mercadopago", "123", "payment", {})
        other = ledger_service.record_if_new("otherpay", "123", "payment", {})
        assert other.is_new is True
        assert PaymentEvent.query.count() == 2

    def test_unique_constraint_enforced(self):
        db.session.add(PaymentEvent(provider="mercadopago", external_id="9", event_type="payment"))
        db.session.commit()
        db.session.add(PaymentEvent(provider="mercadopago", external_id="9", event_type="payment"))
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()

    def test_concurrent_duplicate_treated_as_existing(self):
        """Lookup misses (race), INSERT hits the unique constraint -> not new."""
        existing = PaymentEvent(provider="mercadopago", external_id="777", event_type="payment")
        db.session.add(existing)
        db.session.commit()
        existing_id = existing.id

        lookup = MagicMock()
        lookup.filter_by.return_value.first.side_effect = [None, existing]
        with patch.object(PaymentEvent, "query", lookup):
            result = ledger_service.record_if_new("mercadopago", "777", "payment", {})

        assert result.is_new is False
        assert result.event_record_id == existing_id
        assert PaymentEvent.query.filter_by(external_id="777").count() == 1


class TestMarkProcessed:

    def test_stamps_processed_and_submission(self, seed_data):
        result = ledger_service.record_if_new("mercadopago", "1", "payment", {})
        ledger_service.mark_processed(result.event_record_id, submission_id=seed_data["submission_id"])
        event = db.session.get(PaymentEvent, result.event_record_id)
        assert event.processed_at is not None
        assert event.submission_id == seed_data["submission_id"]
        assert event.last_error is None

    def test_records_terminal_error(self):
        result = ledger_service.record_if_new("mercadopago", "1", "payment", {})
        ledger_service.mark_processed(result.event_record_id, error="submission_not_found")
        event = db.session.get(PaymentEvent, result.event_record_id)
        assert event.processed_at is not None
        assert event.last_error == "submission_not_found"

    def test_unknown_row_and_none_are_noops(self):
        ledger_service.mark_processed(None)
        ledger_service.mark_processed("does-not-exist")

    def test_commit_failure_is_swallowed(self):
        result = ledger_service.record_if_new("mercadopago", "1", "payment", {})
        with patch.object(db.session, "commit", side_effect=RuntimeError("db down")):
            ledger_service.mark_processed(result.event_record_id)


class TestRecordFailure:

    def test_increments_attempts_and_keeps_unprocessed(self):
        result = ledger_service.record_if_new("mercadopago", "1", "payment", {})
        ledger_service.record_failure(result.event_record_id, "HTTP 500")
        ledger_service.record_failure(result.event_record_id, "HTTP 502")
        event = db.session.get(PaymentEvent, result.event_record_id)
        assert event.attempts == 2
        assert event.last_error == "HTTP 502"
        assert event.processed_at is None

    def test_error_truncated(self):
        result = ledger_service.record_if_new("mercadopago", "1", "payment", {})
        ledger_service.record_failure(result.event_record_id, "x" * 5000)
        event = db.session.get(PaymentEvent, result.event_record_id)
        assert len(event.last_error) == ledger_service.MAX_ERROR_LENGTH


class TestFindStaleEvents:

    def test_only_old_unprocessed_rows_under_attempt_cap(self):
        old = ledger_service.record_if_new("mercadopago", "old", "payment", {}).event_record_id
        fresh = ledger_service.record_if_new("mercadopago", "fresh", "payment", {}).event_record_id
        done = ledger_service.record_if_new("mercadopago", "done", "payment", {}).event_record_id
        exhausted = ledger_service.record_if_new("mercadopago", "exhausted", "payment", {}).event_record_id

        for event_id in (old, done, exhausted):
            _age(event_id, 60)
        ledger_service.mark_processed(done)
        for _ in range(5):
            ledger_service.record_failure(exhausted, "boom")

        stale = ledger_service.find_stale_events(older_than_minutes=10, max_attempts=5)
        assert [e.id for e in stale] == [old]
        assert fresh not in [e.id for e in stale]

    def test_limit(self):
        for i in range(3):
            event_id = ledger_service.record_if_new("mercadopago", str(i), "payment", {}).event_record_id
            _age(event_id, 60 - i)
        stale = ledger_service.find_stale_events(older_than_minutes=10, limit=2)
        assert len(stale) == 2
