"""Credential service — resolves Mercado Pago credentials and the app URL.

Priority for every payment credential:
    1. active global config   (mercadopago_global_configs, scope="global")
    2. active tenant config   (mercadopago_configs, only when a tenant is known)
    3. environment fallback   (MP_ACCESS_TOKEN / MP_WEBHOOK_SECRET)

Configs are operator-editable at runtime, so nothing here is cached:
every call re-reads the database.
"""

import logging

from flask import current_app

from enroll.models.integration import MercadoPagoGlobalConfig, MercadoPagoTenantConfig

logger = logging.getLogger(__name__)


class CredentialsNotConfigured(RuntimeError):
    """No active stored config and no environment fallback."""


class AppUrlNotConfigured(RuntimeError):
    """Neither APP_URL nor PUBLIC_APP_URL is set."""


def get_global_config():
    """Return the active global config row, or None."""
    return (
        MercadoPagoGlobalConfig.query
        .filter_by(scope="global", is_active=True)
        .first()
    )


def get_tenant_config(tenant_id):
    """Return the active config row for a tenant, or None."""
    if not tenant_id:
        return None
    return (
        MercadoPagoTenantConfig.query
        .filter_by(tenant_id=tenant_id, is_active=True)
        .first()
    )


def _resolve(tenant_id=None):
    """Return (source, config_row) for the first usable credential source."""
    cfg = get_global_config()
    if cfg and cfg.access_token:
        return "global", cfg

    cfg = get_tenant_config(tenant_id)
    if cfg and cfg.access_token:
        return "tenant", cfg

    if (current_app.config.get("MP_ACCESS_TOKEN") or "").strip():
        return "env", None

    return None, None


def resolve_access_token(tenant_id=None):
    """Return the access token to use for Mercado Pago API calls.

    Raises CredentialsNotConfigured if nothing resolves.
    """
    source, cfg = _resolve(tenant_id)
    if source is None:
        raise CredentialsNotConfigured(
            "Mercado Pago access token not configured "
            "(no active global/tenant config and MP_ACCESS_TOKEN is empty)"
        )
    if cfg is not None:
        return cfg.access_token
    return current_app.config["MP_ACCESS_TOKEN"].strip()


def resolve_webhook_secret():
    """Return the webhook signing secret, or None when none is configured.

    The tenant is unknown when a webhook arrives, so only the global config
    and the environment are consulted.
    """
    cfg = get_global_config()
    if cfg and cfg.webhook_secret:
        return cfg.webhook_secret
    return current_app.config.get("MP_WEBHOOK_SECRET") or None


def is_production(tenant_id=None):
    """True when the resolved stored config is flagged as production."""
    _, cfg = _resolve(tenant_id)
    return bool(cfg and cfg.is_production)


def resolve_app_url():
    """Public base URL of the app, without a trailing slash.

    Prefers APP_URL (server) and falls back to PUBLIC_APP_URL.
    Raises AppUrlNotConfigured with an actionable message.
    """
    url = current_app.config.get("APP_URL") or current_app.config.get("PUBLIC_APP_URL")
    if not url or not url.strip():
        raise AppUrlNotConfigured(
            "APP_URL/PUBLIC_APP_URL not configured. Set APP_URL to the public "
            "https base URL of this deployment (used for checkout back_urls "
            "and the webhook notification_url)."
        )
    return url.strip().rstrip("/")


def mask_token(token):
    """Mask a secret for display: first 6 chars + '***'."""
    if not token:
        return "**********"
    visible = 6
    if len(token) > visible:
        return f"{token[:visible]}***"
    return "**********"


def describe_credentials(tenant_id=None):
    """Masked, display-safe summary of the credentials that would be used."""
    source, cfg = _resolve(tenant_id)
    if cfg is not None:
        return {
            "source": source,
            "is_production": bool(cfg.is_production),
            "masked_access_token": mask_token(cfg.access_token),
            "masked_public_key": mask_token(cfg.public_key or ""),
            "masked_webhook_secret": mask_token(cfg.webhook_secret or ""),
        }
    return {
        "source": source,  # "env" or None
        "is_production": False,
        "masked_access_token": mask_token(current_app.config.get("MP_ACCESS_TOKEN") or ""),
        "masked_public_key": mask_token(""),
        "masked_webhook_secret": mask_token(current_app.config.get("MP_WEBHOOK_SECRET") or ""),
    }
