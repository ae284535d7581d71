"""Payments blueprint — /api/payments/*

Route Map:
  POST /api/payments/create-preference        — checkout for a PENDING submission
  GET  /api/payments/status/<submission_id>    — pull current state from Mercado Pago
  GET  /api/payments/reconcile                 — ops sweep (pending submissions + ledger)
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from enroll.decorators import ops_token_required
from enroll.extensions import db, limiter
from enroll.models.submission import Submission
from enroll.services.credential_service import CredentialsNotConfigured
from enroll.services.mercadopago_service import PaymentProviderError
from enroll.services.preference_service import PreferenceError, create_checkout_preference
from enroll.services.reconciliation_service import (
    reconcile_pending_submissions,
    reconcile_submission,
    sweep_unprocessed_events,
)

logger = logging.getLogger(__name__)

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")

MAX_RECONCILE_BATCH = 50


def _int_arg(name, default, minimum, maximum=None):
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        value = default
    value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


@payments_bp.route("/create-preference", methods=["POST"])
@limiter.limit("20 per minute")
def create_preference():
    """Create the Mercado Pago checkout for a submission.

    Body: {"submission_id": "..."}
    Returns: {success, preference_id, init_point, sandbox_init_point}
    """
    body = request.get_json(silent=True) or {}
    submission_id = body.get("submission_id")
    if not submission_id:
        return jsonify({
            "error": "submission_id é obrigatório",
            "reason": "MISSING_SUBMISSION_ID",
        }), 400

    try:
        result = create_checkout_preference(str(submission_id))
    except PreferenceError as e:
        payload = {"error": str(e), "reason": e.reason}
        if e.detail:
            payload["detail"] = e.detail
        return jsonify(payload), e.status_code

    return jsonify({"success": True, **result})


@payments_bp.route("/status/<submission_id>", methods=["GET"])
@limiter.limit("60 per minute")
def payment_status(submission_id):
    """Current payment status, refreshed from the provider when applicable."""
    submission = db.session.get(Submission, submission_id)
    if submission is None:
        return jsonify({"error": "submission_not_found"}), 404

    if submission.payment_status != Submission.NOT_APPLICABLE:
        try:
            reconcile_submission(submission.id)
        except CredentialsNotConfigured:
            return jsonify({"error": "mp_credentials_missing"}), 500
        except PaymentProviderError as e:
            db.session.rollback()
            logger.warning(f"Status refresh failed for submission {submission_id}: {e}")
            return jsonify({"error": "mp_unavailable"}), 502

    metadata = submission.metadata_ or {}
    mp = None
    if metadata.get("mp_payment_id"):
        mp = {
            "id": metadata.get("mp_payment_id"),
            "status": metadata.get("mp_status"),
            "status_detail": metadata.get("mp_status_detail"),
            "payment_method": metadata.get("mp_payment_method"),
            "payment_type": metadata.get("mp_payment_type"),
        }

    return jsonify({
        "submission_id": submission.id,
        "status": submission.payment_status,
        "mp": mp,
    })


@payments_bp.route("/reconcile", methods=["GET"])
@ops_token_required
def reconcile():
    """Sweep stale PENDING submissions and unfinished ledger rows.

    Query: ?max=25 (1..50) &age_minutes=10 (>= 1)
    """
    limit = _int_arg("max", 25, 1, MAX_RECONCILE_BATCH)
    age_minutes = _int_arg("age_minutes", 10, 1)

    summary = reconcile_pending_submissions(age_minutes=age_minutes, limit=limit)

    swept = sweep_unprocessed_events(
        older_than_minutes=current_app.config.get("EVENT_SWEEP_AGE_MINUTES", 10),
        limit=limit,
    )
    summary["ledger_events_swept"] = len(swept)

    return jsonify(summary)
