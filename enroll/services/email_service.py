"""
Transactional email via the Resend REST API.

Used by the payment-approved notification channel; reusable for any other
transactional email.

Usage:
    from enroll.services.email_service import send_email, render_email

    html = render_email("emails/payment_approved.html", {"nome": "Ana"})
    send_email(to="ana@example.com", subject="Pagamento confirmado", html=html)
"""

import logging

import requests
from flask import current_app, render_template

logger = logging.getLogger(__name__)


class EmailNotConfigured(RuntimeError):
    """RESEND_API_KEY or RESEND_FROM missing."""


class EmailDeliveryError(Exception):
    """Resend rejected the message or could not be reached."""


def is_configured():
    cfg = current_app.config
    return bool(cfg.get("RESEND_API_KEY") and cfg.get("RESEND_FROM"))


def render_email(template, context=None):
    """Render a Jinja2 HTML email template (relative to templates/)."""
    return render_template(template, **(context or {}))


def send_email(to, subject, html, reply_to=None, bcc=None):
    """
    Send an HTML email. Blocks until Resend answers.

    Args:
        to:        Recipient email address (str or list).
        subject:   Email subject line.
        html:      Rendered HTML body.
        reply_to:  Optional reply-to address (defaults to RESEND_REPLY_TO).
        bcc:       Optional list of BCC addresses.

    Returns the Resend message id (or None if the API omits it).
    Raises EmailNotConfigured / EmailDeliveryError.
    """
    cfg = current_app.config
    if not is_configured():
        raise EmailNotConfigured("Resend not configured (RESEND_API_KEY/RESEND_FROM)")

    body = {
        "from": cfg["RESEND_FROM"],
        "to": [to] if isinstance(to, str) else list(to),
        "subject": subject,
        "html": html,
    }
    reply_to = reply_to or cfg.get("RESEND_REPLY_TO")
    if reply_to:
        body["reply_to"] = reply_to
    if bcc:
        body["bcc"] = list(bcc)

    try:
        resp = requests.post(
            cfg.get("RESEND_API_URL", "https://api.resend.com/emails"),
            headers={
                "Authorization": f"Bearer {cfg['RESEND_API_KEY']}",
                "Content-Type": "application/json",
            },
            json=body,
            timeout=cfg.get("OUTBOUND_TIMEOUT_SECONDS", 10),
        )
    except requests.RequestException as e:
        raise EmailDeliveryError(f"Failed to reach Resend: {e}")

    if not resp.ok:
        raise EmailDeliveryError(f"Resend {resp.status_code}: {(resp.text or '')[:300]}")

    try:
        message_id = resp.json().get("id")
    except ValueError:
        message_id = None

    logger.info(f"Email sent — {subject} (resend id {message_id})")
    return message_id
