"""Ledger service — idempotency records for inbound payment webhooks.

record_if_new() is called synchronously, before anything else happens to a
delivery. A duplicate (provider, event id) short-circuits the whole pipeline,
which is what keeps provider retries from sending notifications twice.

The unique constraint on payment_events is the real guard: when two
duplicate deliveries race past the lookup, the second INSERT fails with an
IntegrityError and is reported as "not new".
"""

import logging
from collections import namedtuple
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError

from enroll.extensions import db
from enroll.models.payment_event import PaymentEvent

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 1000

LedgerResult = namedtuple("LedgerResult", ["is_new", "event_record_id"])


def record_if_new(provider, event_id, event_type, raw_payload):
    """Insert a ledger row for (provider, event_id) unless one exists.

    Returns LedgerResult(is_new, event_record_id). Commits on insert.
    """
    event_id = str(event_id)

    existing = PaymentEvent.query.filter_by(
        provider=provider, external_id=event_id
    ).first()
    if existing:
        logger.info(f"Duplicate webhook event {provider}:{event_id}, skipping")
        return LedgerResult(False, existing.id)

    event = PaymentEvent(
        provider=provider,
        external_id=event_id,
        event_type=event_type,
        payload=raw_payload or {},
    )
    db.session.add(event)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        existing = PaymentEvent.query.filter_by(
            provider=provider, external_id=event_id
        ).first()
        logger.info(f"Concurrent duplicate webhook event {provider}:{event_id}, skipping")
        return LedgerResult(False, existing.id if existing else None)

    return LedgerResult(True, event.id)


def mark_processed(event_record_id, submission_id=None, error=None):
    """Stamp processed_at (and the resolved submission) on a ledger row.

    Best-effort: failures are logged, never raised.
    """
    if not event_record_id:
        return
    try:
        event = db.session.get(PaymentEvent, event_record_id)
        if event is None:
            logger.warning(f"mark_processed: ledger row {event_record_id} not found")
            return
        if submission_id:
            event.submission_id = submission_id
        if error:
            event.last_error = error[:MAX_ERROR_LENGTH]
        event.processed_at = datetime.now(timezone.utc)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to mark ledger row {event_record_id} processed: {e}")


def record_failure(event_record_id, error):
    """Count a failed processing attempt, leaving the row unprocessed.

    Best-effort: failures are logged, never raised.
    """
    if not event_record_id:
        return
    try:
        event = db.session.get(PaymentEvent, event_record_id)
        if event is None:
            return
        event.attempts = (event.attempts or 0) + 1
        event.last_error = str(error)[:MAX_ERROR_LENGTH]
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to record failure on ledger row {event_record_id}: {e}")


def find_stale_events(older_than_minutes=10, max_attempts=5, limit=50):
    """Unprocessed ledger rows older than the threshold, oldest first."""
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=older_than_minutes)
    return (
        PaymentEvent.query
        .filter(PaymentEvent.processed_at.is_(None))
        .filter(PaymentEvent.created_at < cutoff)
        .filter(PaymentEvent.attempts < max_attempts)
        .order_by(PaymentEvent.created_at.asc())
        .limit(limit)
        .all()
    )
