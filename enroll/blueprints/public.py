"""Public blueprint — /api/public/*

Unauthenticated endpoints hit by the enrollment form.

Route Map:
  POST    /api/public/submissions  — validate and store a form response
  OPTIONS /api/public/submissions  — CORS preflight
"""

import logging

from flask import Blueprint, jsonify, make_response, request

from enroll.extensions import limiter
from enroll.services.submission_service import (
    SubmissionValidationError,
    create_public_submission,
)
from enroll.services.submission_fields import format_amount

public_bp = Blueprint("public", __name__, url_prefix="/api/public")

logger = logging.getLogger(__name__)


def _cors_response(response):
    """Add CORS headers so forms embedded on other sites can post."""
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Methods"] = "POST, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type"
    return response


def _client_ip():
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("X-Real-Ip") or request.remote_addr


@public_bp.route("/submissions", methods=["OPTIONS"])
def submissions_preflight():
    return _cors_response(make_response("", 204))


@public_bp.route("/submissions", methods=["POST"])
@limiter.limit("10 per minute")
def create_submission():
    """
    Create a submission from a public form.

    Body: {"form_id": "...", "data": {...}, "tenant_id": "..."?}

    Returns: {success, submission_id, requires_payment, ...}
    """
    body = request.get_json(silent=True) or {}

    try:
        submission, form = create_public_submission(
            form_id=body.get("form_id"),
            data=body.get("data"),
            tenant_id=body.get("tenant_id"),
            ip_address=_client_ip(),
            user_agent=request.headers.get("User-Agent"),
        )
    except SubmissionValidationError as e:
        payload = {"error": str(e)}
        if e.missing_fields:
            payload["missing_fields"] = e.missing_fields
        return _cors_response(jsonify(payload)), e.status_code

    logger.info(f"Public submission {submission.id} created for form {form.id}")

    settings = form.settings or {}
    if form.requires_payment:
        response = jsonify({
            "success": True,
            "submission_id": submission.id,
            "requires_payment": True,
            "payment_amount": format_amount(submission.payment_amount),
            "message": "Submissão criada. Redirecionando para pagamento...",
        })
    else:
        response = jsonify({
            "success": True,
            "submission_id": submission.id,
            "requires_payment": False,
            "message": settings.get("success_message") or "Formulário enviado com sucesso!",
            "redirect_url": settings.get("redirect_url"),
        })
    return _cors_response(response)
