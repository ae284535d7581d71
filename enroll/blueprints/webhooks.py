"""Webhooks blueprint — /webhooks/<provider>

Receives payment provider notifications. Only "mercadopago" is wired.
Raw body is required for signature verification.

The handler acknowledges fast: verify, dedupe through the ledger, enqueue
reconciliation on the task queue, return 200. The provider retries anything
that isn't 2xx, and the ledger turns those retries into no-ops.
"""

import logging
from datetime import datetime, timezone

from flask import Blueprint, abort, current_app, jsonify, request

from enroll.extensions import limiter, task_queue
from enroll.services.credential_service import resolve_webhook_secret
from enroll.services.ledger_service import record_if_new
from enroll.services.reconciliation_service import process_payment_event
from enroll.services.signature_service import (
    REQUEST_ID_HEADERS,
    SIGNATURE_HEADERS,
    WebhookSignatureError,
    first_header,
    verify_signature,
)

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/webhooks")

SUPPORTED_PROVIDERS = ("mercadopago",)


def _payment_id(body):
    """data.id from the JSON body, falling back to the ?data.id= query arg."""
    data = body.get("data")
    if isinstance(data, dict) and data.get("id") not in (None, ""):
        return str(data["id"])
    return request.args.get("data.id") or None


@webhooks_bp.route("/<provider>", methods=["POST"])
@limiter.exempt
def receive(provider):
    """Receive a payment notification.

    1. Verify signature (skipped when no secret is configured)
    2. Parse JSON; ignore non-payment events
    3. Record (provider, payment id) in the ledger; duplicates stop here
    4. Enqueue reconciliation and acknowledge
    """
    if provider not in SUPPORTED_PROVIDERS:
        abort(404)

    raw_body = request.get_data(cache=True)
    request_id = first_header(request.headers, REQUEST_ID_HEADERS)

    # --- Verify signature ---
    try:
        verify_signature(
            raw_body,
            first_header(request.headers, SIGNATURE_HEADERS),
            resolve_webhook_secret(),
            request_id=request_id,
            window_seconds=current_app.config.get("WEBHOOK_REPLAY_WINDOW_SECONDS", 600),
        )
    except WebhookSignatureError as e:
        logger.warning(f"Webhook signature rejected (request_id={request_id}): {e}")
        return jsonify({"error": "unauthorized", "request_id": request_id}), 401

    try:
        body = request.get_json(force=True, silent=True)
        if not isinstance(body, dict):
            logger.warning(f"Webhook with unparseable body (request_id={request_id})")
            return jsonify({"error": "Invalid JSON body"}), 400

        event_type = body.get("type") or body.get("topic")
        if event_type != "payment":
            return jsonify({"received": True})

        payment_id = _payment_id(body)
        if not payment_id:
            return jsonify({"error": "Payment ID not found"}), 400

        # --- Idempotency ---
        result = record_if_new(provider, payment_id, event_type, body)
        if not result.is_new:
            return jsonify({"received": True, "message": "Already processed"})

        task_queue.enqueue(process_payment_event, result.event_record_id, payment_id)
    except Exception as e:
        logger.error(f"Webhook processing failed (request_id={request_id}): {e}", exc_info=True)
        return jsonify({"error": "Webhook processing failed"}), 500

    return jsonify({"received": True})


@webhooks_bp.route("/<provider>", methods=["GET"])
def liveness(provider):
    """Liveness probe used when registering the webhook URL."""
    if provider not in SUPPORTED_PROVIDERS:
        abort(404)
    return jsonify({
        "status": "active",
        "provider": provider,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })
