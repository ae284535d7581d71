"""Mercado Pago REST client.

Thin wrappers over the three endpoints the payment pipeline uses:
- GET  /v1/payments/{id}           — authoritative payment state
- GET  /v1/payments/search         — latest payment for an external_reference
- POST /checkout/preferences       — hosted checkout for a submission

Every call is Bearer-authenticated with a token from credential_service and
carries a bounded timeout (PAYMENT_PROVIDER_TIMEOUT_SECONDS).
"""

import logging

import requests
from flask import current_app

logger = logging.getLogger(__name__)


class PaymentProviderError(Exception):
    """Mercado Pago returned non-2xx or could not be reached."""

    def __init__(self, message, status_code=None, detail=None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


def _base_url():
    return current_app.config.get("MP_API_BASE_URL", "https://api.mercadopago.com").rstrip("/")


def _timeout():
    return current_app.config.get("PAYMENT_PROVIDER_TIMEOUT_SECONDS", 15)


def _headers(access_token, idempotency_key=None):
    headers = {
        "Authorization": f"Bearer {access_token}",
        "Content-Type": "application/json",
    }
    if idempotency_key:
        headers["X-Idempotency-Key"] = idempotency_key
    return headers


def _response_detail(resp):
    try:
        return resp.json()
    except ValueError:
        return (resp.text or "")[:500]


def get_payment(payment_id, access_token):
    """Fetch a payment by id. Returns the payment dict.

    Raises PaymentProviderError on network errors or non-2xx responses.
    """
    url = f"{_base_url()}/v1/payments/{payment_id}"
    try:
        resp = requests.get(url, headers=_headers(access_token), timeout=_timeout())
    except requests.RequestException as e:
        raise PaymentProviderError(f"Failed to reach Mercado Pago for payment {payment_id}: {e}")

    if not resp.ok:
        raise PaymentProviderError(
            f"Failed to fetch payment {payment_id}: HTTP {resp.status_code}",
            status_code=resp.status_code,
            detail=_response_detail(resp),
        )
    return resp.json()


def search_latest_payment(external_reference, access_token):
    """Return the most recent payment for an external_reference, or None."""
    url = f"{_base_url()}/v1/payments/search"
    params = {
        "external_reference": str(external_reference),
        "sort": "id",
        "criteria": "desc",
    }
    try:
        resp = requests.get(
            url, headers=_headers(access_token), params=params, timeout=_timeout()
        )
    except requests.RequestException as e:
        raise PaymentProviderError(f"Failed to reach Mercado Pago search: {e}")

    if not resp.ok:
        raise PaymentProviderError(
            f"Payment search failed for {external_reference}: HTTP {resp.status_code}",
            status_code=resp.status_code,
            detail=_response_detail(resp),
        )

    results = resp.json().get("results") or []
    return results[0] if results else None


def create_preference(payload, access_token, idempotency_key=None):
    """Create a checkout preference. Returns the preference dict (id, init_point, ...)."""
    url = f"{_base_url()}/checkout/preferences"
    try:
        resp = requests.post(
            url,
            headers=_headers(access_token, idempotency_key),
            json=payload,
            timeout=_timeout(),
        )
    except requests.RequestException as e:
        raise PaymentProviderError(f"Failed to reach Mercado Pago preferences: {e}")

    if not resp.ok:
        raise PaymentProviderError(
            f"Preference creation failed: HTTP {resp.status_code}",
            status_code=resp.status_code,
            detail=_response_detail(resp),
        )
    return resp.json()
