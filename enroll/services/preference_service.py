"""Checkout preference builder.

Turns a PENDING submission into a Mercado Pago hosted checkout. The amount is
always computed here from the submission or its form settings; clients never
send a price.
"""

import logging
from decimal import Decimal, InvalidOperation

from flask import current_app

from enroll.extensions import db
from enroll.models.submission import Submission
from enroll.services.credential_service import (
    AppUrlNotConfigured,
    CredentialsNotConfigured,
    resolve_access_token,
    resolve_app_url,
)
from enroll.services.mercadopago_service import PaymentProviderError, create_preference
from enroll.services.submission_fields import format_amount, get_email, get_name, get_phone

logger = logging.getLogger(__name__)

MAX_STATEMENT_DESCRIPTOR = 22


class PreferenceError(Exception):
    """Checkout could not be created. `reason` is a stable code for the client."""

    def __init__(self, reason, status_code, message=None, detail=None):
        super().__init__(message or reason)
        self.reason = reason
        self.status_code = status_code
        self.detail = detail


def resolve_amount(submission):
    """Server-side price: submission.payment_amount, else form settings.payment_amount."""
    raw = submission.payment_amount
    if raw is None and submission.form:
        raw = (submission.form.settings or {}).get("payment_amount")
    try:
        return Decimal(str(raw)) if raw is not None else Decimal("0")
    except (InvalidOperation, ValueError):
        return Decimal("0")


def idempotency_key(submission_id, amount):
    return f"pref-{submission_id}-{format_amount(amount)}"


def build_preference_payload(submission, amount, app_url):
    data = submission.data or {}
    phone = get_phone(data) or ""
    descriptor = current_app.config.get("MP_STATEMENT_DESCRIPTOR") or "IWE"

    payload = {
        "items": [
            {
                "title": submission.form.name if submission.form else "Inscrição",
                "description": "Inscrição",
                "quantity": 1,
                "unit_price": float(amount),
                "currency_id": "BRL",
            }
        ],
        "payer": {
            "name": get_name(data) or "Comprador",
            "email": get_email(data) or "sem-email@example.com",
            "phone": {"number": "".join(ch for ch in phone if ch.isdigit())},
        },
        "back_urls": {
            "success": f"{app_url}/form/pagamento/sucesso?submission_id={submission.id}",
            "failure": f"{app_url}/form/pagamento/falha?submission_id={submission.id}",
            "pending": f"{app_url}/form/pagamento/pendente?submission_id={submission.id}",
        },
        "external_reference": submission.id,
        "notification_url": f"{app_url}/webhooks/mercadopago",
        "statement_descriptor": descriptor[:MAX_STATEMENT_DESCRIPTOR],
        "binary_mode": True,
    }
    # Mercado Pago rejects auto_return with non-https back_urls (local dev).
    if app_url.startswith("https://"):
        payload["auto_return"] = "approved"
    return payload


def create_checkout_preference(submission_id):
    """Create (or reuse) the checkout preference for a submission.

    Returns {"preference_id", "init_point", "sandbox_init_point", "reused"}.
    Raises PreferenceError.
    """
    submission = db.session.get(Submission, submission_id) if submission_id else None
    if submission is None:
        raise PreferenceError("SUBMISSION_NOT_FOUND", 404, "Submissão não encontrada")

    if submission.payment_status != Submission.PENDING:
        raise PreferenceError(
            "NOT_PENDING", 400, "Esta submissão não está pendente de pagamento"
        )

    amount = resolve_amount(submission)
    if amount <= 0:
        raise PreferenceError("INVALID_AMOUNT", 400, "Valor do pagamento inválido")

    metadata = submission.metadata_ or {}
    if (
        submission.payment_reference
        and metadata.get("mp_init_point")
        and metadata.get("mp_preference_amount") == format_amount(amount)
    ):
        logger.info(f"Reusing preference {submission.payment_reference} for submission {submission.id}")
        return {
            "preference_id": submission.payment_reference,
            "init_point": metadata.get("mp_init_point"),
            "sandbox_init_point": metadata.get("mp_sandbox_init_point"),
            "reused": True,
        }

    try:
        token = resolve_access_token(submission.tenant_id)
    except CredentialsNotConfigured as e:
        raise PreferenceError("NO_MP_TOKEN", 500, "MP_ACCESS_TOKEN não configurado", detail=str(e))

    try:
        app_url = resolve_app_url()
    except AppUrlNotConfigured as e:
        raise PreferenceError(
            "APP_URL_NOT_CONFIGURED", 500,
            "APP_URL/PUBLIC_APP_URL não configurado", detail=str(e),
        )

    payload = build_preference_payload(submission, amount, app_url)

    try:
        preference = create_preference(
            payload, token, idempotency_key=idempotency_key(submission.id, amount)
        )
    except PaymentProviderError as e:
        logger.error(f"Mercado Pago preference error for submission {submission.id}: {e} {e.detail or ''}")
        raise PreferenceError(
            "MP_PREFERENCE_ERROR", 502,
            "Erro ao criar preferência de pagamento", detail=e.detail or str(e),
        )

    if submission.payment_amount is None:
        submission.payment_amount = amount
    submission.payment_reference = preference.get("id")
    submission.merge_metadata(
        mp_preference_id=preference.get("id"),
        mp_init_point=preference.get("init_point"),
        mp_sandbox_init_point=preference.get("sandbox_init_point"),
        mp_preference_amount=format_amount(amount),
    )
    db.session.commit()

    logger.info(f"Preference {preference.get('id')} created for submission {submission.id}")
    return {
        "preference_id": preference.get("id"),
        "init_point": preference.get("init_point"),
        "sandbox_init_point": preference.get("sandbox_init_point"),
        "reused": False,
    }
