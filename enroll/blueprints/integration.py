"""Integration blueprint — /api/integration/*

Read-only diagnostics for operators. Secrets are always masked.
"""

from flask import Blueprint, jsonify, request

from enroll.decorators import ops_token_required
from enroll.services import email_service
from enroll.services.credential_service import (
    AppUrlNotConfigured,
    describe_credentials,
    resolve_app_url,
)
from enroll.services.notification_service import (
    get_enrollment_webhook_config,
    get_whatsapp_config,
)

integration_bp = Blueprint("integration", __name__, url_prefix="/api/integration")


@integration_bp.route("/mercadopago/status", methods=["GET"])
@ops_token_required
def mercadopago_status():
    """Which Mercado Pago credentials and channels would be used right now.

    Query: ?tenant_id=... to include the tenant-scoped config in resolution.
    """
    tenant_id = request.args.get("tenant_id") or None
    credentials = describe_credentials(tenant_id)

    try:
        app_url = resolve_app_url()
        app_url_error = None
    except AppUrlNotConfigured as e:
        app_url = None
        app_url_error = str(e)

    return jsonify({
        "configured": credentials["source"] is not None,
        "credentials": credentials,
        "app_url": app_url,
        "app_url_error": app_url_error,
        "notification_url": f"{app_url}/webhooks/mercadopago" if app_url else None,
        "channels": {
            "whatsapp": get_whatsapp_config() is not None,
            "email": email_service.is_configured(),
            "enrollment": get_enrollment_webhook_config() is not None,
        },
    })
