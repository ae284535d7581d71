"""Reconciliation service — applies Mercado Pago's authoritative payment state.

Responsible for:
- Fetching the payment by id (never trusting the webhook body)
- Mapping provider status to Submission.payment_status
- Updating the submission and merging provider metadata
- Triggering the notification fan-out for approved payments
- Closing the ledger row, or counting the failure for the recovery sweep

Also hosts the pull-based variants (status check / pending sweep) that find
the latest payment by external_reference instead of by payment id.
"""

import logging
from collections import namedtuple
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation

from flask import current_app

from enroll.extensions import db
from enroll.models.audit import AuditEvent
from enroll.models.payment_event import PaymentEvent
from enroll.models.submission import Submission
from enroll.services import ledger_service
from enroll.services.credential_service import CredentialsNotConfigured, resolve_access_token
from enroll.services.mercadopago_service import (
    PaymentProviderError,
    get_payment,
    search_latest_payment,
)
from enroll.services.notification_service import dispatch_payment_approved

logger = logging.getLogger(__name__)

# Outcomes
UPDATED = "updated"
UNCHANGED = "unchanged"
FETCH_FAILED = "fetch_failed"
SUBMISSION_NOT_FOUND = "submission_not_found"
CREDENTIALS_MISSING = "credentials_missing"

# Provider statuses that legitimately mean "still waiting".
KNOWN_PENDING_STATUSES = ("pending", "in_process", "authorized", "in_mediation")

ReconciliationResult = namedtuple(
    "ReconciliationResult",
    ["outcome", "submission_id", "payment_status", "provider_status"],
)


def map_provider_status(provider_status):
    """approved -> PAID; rejected/cancelled -> CANCELLED; anything else -> PENDING."""
    if provider_status == "approved":
        return Submission.PAID
    if provider_status in ("rejected", "cancelled"):
        return Submission.CANCELLED
    return Submission.PENDING


def _to_amount(value):
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _approved_at(payment):
    """Provider's date_approved as an aware datetime, else now."""
    raw = payment.get("date_approved")
    if raw:
        try:
            parsed = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
        except ValueError:
            logger.warning(f"Unparseable date_approved {raw!r} on payment {payment.get('id')}")
    return datetime.now(timezone.utc)


def _is_stale_attempt(submission, payment, new_status):
    """A non-approved payment that is not the one that paid this submission."""
    if submission.payment_status != Submission.PAID or new_status == Submission.PAID:
        return False
    paid_by = (submission.metadata_ or {}).get("mp_payment_id")
    return paid_by is not None and str(paid_by) != str(payment.get("id"))


def apply_payment(submission, payment):
    """Write the provider's payment state onto a submission. Flushes, does not commit.

    A PAID submission is never moved back by a different, older attempt;
    that payment is recorded under `mp_ignored_payment_id` and flagged for review.

    Returns (old_status, new_status).
    """
    provider_status = payment.get("status")
    new_status = map_provider_status(provider_status)
    old_status = submission.payment_status

    if _is_stale_attempt(submission, payment, new_status):
        logger.warning(
            f"Ignoring Mercado Pago payment {payment.get('id')} ({provider_status}) for "
            f"submission {submission.id}: already PAID by payment "
            f"{submission.metadata_.get('mp_payment_id')}"
        )
        submission.merge_metadata(
            needs_review=True,
            mp_ignored_payment_id=payment.get("id"),
            mp_ignored_status=provider_status,
        )
        db.session.flush()
        return old_status, old_status

    submission.payment_status = new_status
    if new_status != Submission.PAID:
        submission.payment_date = None
    elif old_status != Submission.PAID or submission.payment_date is None:
        submission.payment_date = _approved_at(payment)

    amount = _to_amount(payment.get("transaction_amount"))
    if amount is not None:
        submission.payment_amount = amount

    provider_meta = {
        "mp_payment_id": payment.get("id"),
        "mp_status": provider_status,
        "mp_status_detail": payment.get("status_detail"),
        "mp_payment_method": payment.get("payment_method_id"),
        "mp_payment_type": payment.get("payment_type_id"),
    }
    if (
        new_status == Submission.PENDING
        and provider_status not in KNOWN_PENDING_STATUSES
    ):
        # Unrecognized provider state: kept PENDING but surfaced for manual review.
        logger.warning(
            f"Unrecognized Mercado Pago status '{provider_status}' for submission "
            f"{submission.id}, leaving PENDING and flagging for review"
        )
        provider_meta["needs_review"] = True
    elif (submission.metadata_ or {}).get("needs_review") and not (
        submission.metadata_.get("mp_ignored_payment_id")
    ):
        provider_meta["needs_review"] = False

    submission.merge_metadata(**provider_meta)

    if old_status != new_status:
        db.session.add(AuditEvent(
            tenant_id=submission.tenant_id,
            action="submission.payment_status_changed",
            resource_type="submission",
            resource_id=submission.id,
            metadata_={
                "old_status": old_status,
                "new_status": new_status,
                "mp_payment_id": payment.get("id"),
                "mp_status": provider_status,
            },
        ))

    db.session.flush()
    return old_status, new_status


def fan_out_once(submission):
    """Run the post-payment fan-out unless it already ran for this submission.

    `metadata.fanout_at` is stamped after the channels finish, so a crash
    mid fan-out is retried by the ledger sweep (at-least-once).
    Returns True when the fan-out ran.
    """
    fanout_at = (submission.metadata_ or {}).get("fanout_at")
    if fanout_at:
        logger.info(f"Fan-out already done for submission {submission.id} at {fanout_at}, skipping")
        return False

    dispatch_payment_approved(submission)
    submission.merge_metadata(fanout_at=datetime.now(timezone.utc).isoformat())
    db.session.commit()
    return True


def reconcile(payment_id, event_record_id=None):
    """Reconcile one Mercado Pago payment (webhook path).

    Always re-fetches the payment by id. The ledger fences duplicate
    deliveries; `fan_out_once` fences the fan-out against the pull path.
    """
    payment_id = str(payment_id)

    # Tenant unknown until the payment is fetched: global -> env only.
    try:
        token = resolve_access_token()
    except CredentialsNotConfigured as e:
        logger.error(f"Cannot reconcile payment {payment_id}: {e}")
        ledger_service.record_failure(event_record_id, str(e))
        return ReconciliationResult(CREDENTIALS_MISSING, None, None, None)

    try:
        payment = get_payment(payment_id, token)
    except PaymentProviderError as e:
        # Not retried here: the provider's own webhook retries and the
        # ledger sweep cover transient failures.
        logger.error(f"Error fetching payment {payment_id} from Mercado Pago: {e} {e.detail or ''}")
        ledger_service.record_failure(event_record_id, str(e))
        return ReconciliationResult(FETCH_FAILED, None, None, None)

    provider_status = payment.get("status")
    external_reference = payment.get("external_reference")
    submission = db.session.get(Submission, str(external_reference)) if external_reference else None

    if submission is None:
        # Not transient: close the ledger row so the sweep leaves it alone.
        logger.error(
            f"Submission not found for payment {payment_id} "
            f"(external_reference={external_reference!r})"
        )
        ledger_service.mark_processed(event_record_id, error=SUBMISSION_NOT_FOUND)
        return ReconciliationResult(SUBMISSION_NOT_FOUND, None, None, provider_status)

    try:
        _, new_status = apply_payment(submission, payment)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error updating submission {submission.id} for payment {payment_id}: {e}", exc_info=True)
        ledger_service.record_failure(event_record_id, f"submission update failed: {e}")
        raise

    if new_status == Submission.PAID:
        # Fan-out failures are contained per channel and never undo the update.
        fan_out_once(submission)

    ledger_service.mark_processed(event_record_id, submission_id=submission.id)

    logger.info(
        f"Payment {payment_id} reconciled: submission {submission.id} -> {new_status} "
        f"(mp status {provider_status})"
    )
    return ReconciliationResult(UPDATED, submission.id, new_status, provider_status)


def process_payment_event(event_record_id, payment_id):
    """Background entry point for a freshly recorded webhook event."""
    return reconcile(payment_id, event_record_id=event_record_id)


def reconcile_submission(submission_id):
    """Pull the latest payment for a submission by external_reference.

    Not fenced by the ledger: repeated polls of a PAID submission rely on
    `fan_out_once` to keep the fan-out single.
    Raises CredentialsNotConfigured / PaymentProviderError.
    """
    submission = db.session.get(Submission, submission_id)
    if submission is None:
        return ReconciliationResult(SUBMISSION_NOT_FOUND, submission_id, None, None)

    token = resolve_access_token(submission.tenant_id)
    payment = search_latest_payment(submission.id, token)
    if payment is None:
        return ReconciliationResult(UNCHANGED, submission.id, submission.payment_status, None)

    _, new_status = apply_payment(submission, payment)
    db.session.commit()

    if new_status == Submission.PAID:
        fan_out_once(submission)

    return ReconciliationResult(UPDATED, submission.id, new_status, payment.get("status"))


def reconcile_pending_submissions(age_minutes=10, limit=25):
    """Re-check PENDING submissions older than `age_minutes`.

    Returns a summary dict (processed / updated / unchanged / failed / results).
    """
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=age_minutes)
    pending = (
        Submission.query
        .filter_by(payment_status=Submission.PENDING)
        .filter(Submission.created_at < cutoff)
        .order_by(Submission.created_at.asc())
        .limit(limit)
        .all()
    )

    summary = {"processed": len(pending), "updated": 0, "unchanged": 0, "failed": 0, "results": []}
    for submission in pending:
        submission_id = submission.id
        try:
            result = reconcile_submission(submission_id)
        except (CredentialsNotConfigured, PaymentProviderError) as e:
            db.session.rollback()
            summary["failed"] += 1
            summary["results"].append({"submission_id": submission_id, "error": str(e)})
            continue

        if result.outcome == UPDATED:
            summary["updated"] += 1
        else:
            summary["unchanged"] += 1
        summary["results"].append({"submission_id": submission_id, "status": result.payment_status})

    return summary


def sweep_unprocessed_events(older_than_minutes=None, limit=50, dry_run=False):
    """Re-run reconciliation for ledger rows that never finished.

    Covers crashes between ledger insert and fan-out completion.
    Returns the list of (event, result) pairs; result is None in dry-run.
    """
    cfg = current_app.config
    if older_than_minutes is None:
        older_than_minutes = cfg.get("EVENT_SWEEP_AGE_MINUTES", 10)

    events = ledger_service.find_stale_events(
        older_than_minutes=older_than_minutes,
        max_attempts=cfg.get("EVENT_MAX_ATTEMPTS", 5),
        limit=limit,
    )

    swept = []
    for event in events:
        if dry_run:
            swept.append((event, None))
            continue
        event_id, external_id = event.id, event.external_id
        try:
            result = reconcile(external_id, event_record_id=event_id)
        except Exception as e:
            db.session.rollback()
            logger.error(f"Sweep failed for ledger row {event_id}: {e}", exc_info=True)
            result = ReconciliationResult(FETCH_FAILED, None, None, None)
        swept.append((db.session.get(PaymentEvent, event_id), result))

    if swept and not dry_run:
        logger.info(f"Ledger sweep reprocessed {len(swept)} event(s)")
    return swept
