"""Notification service — post-payment fan-out.

When a submission becomes PAID, three independent channels run in order:

    whatsapp    — Evolution API sendText, template `payment_approved`
    email       — Resend, template `payment_approved_email` (default HTML if none)
    enrollment  — LMS webhook (n8n -> Moodle) with the student's form data

Each channel is best-effort and isolated: a missing config is a silent skip,
a gateway error is written to that channel's log table as FAILED, and an
exception in one channel never stops the next one.
"""

import logging
from datetime import datetime, timezone

import requests
from flask import current_app

from enroll.extensions import db
from enroll.models.enrollment_log import EnrollmentLog
from enroll.models.integration import OutboundWebhookGlobalConfig, WhatsAppGlobalConfig
from enroll.models.message import MessageLog
from enroll.services import email_service
from enroll.services.submission_fields import get_email, get_phone, normalize_phone
from enroll.services.template_service import (
    build_submission_variables,
    find_template,
    render_template_vars,
)

logger = logging.getLogger(__name__)

WHATSAPP_TEMPLATE_KEY = "payment_approved"
EMAIL_TEMPLATE_KEY = "payment_approved_email"
DEFAULT_EMAIL_TEMPLATE = "emails/payment_approved.html"

MAX_ERROR_LENGTH = 300

SENT = "sent"
FAILED = "failed"
SKIPPED = "skipped"


def _timeout():
    return current_app.config.get("OUTBOUND_TIMEOUT_SECONDS", 10)


def _truncate(text, limit=MAX_ERROR_LENGTH):
    return (text or "")[:limit]


def _log_message(submission, channel, recipient, content, status,
                 template=None, error=None):
    log = MessageLog(
        tenant_id=submission.tenant_id,
        submission_id=submission.id,
        template_id=template.id if template else None,
        channel=channel,
        recipient=recipient,
        message_content=content,
        status=status,
        error_message=error,
        sent_at=datetime.now(timezone.utc) if status == MessageLog.SENT else None,
    )
    db.session.add(log)
    db.session.commit()
    return log


# ──────────────────────────────────────────────
# Fan-out
# ──────────────────────────────────────────────

def dispatch_payment_approved(submission):
    """Run every post-payment channel for a PAID submission.

    Returns {channel: "sent" | "failed" | "skipped"}.
    """
    channels = [
        ("whatsapp", send_whatsapp_confirmation),
        ("email", send_email_confirmation),
        ("enrollment", send_enrollment_webhook),
    ]

    results = {}
    for name, channel in channels:
        try:
            results[name] = channel(submission)
        except Exception as e:
            db.session.rollback()
            logger.error(
                f"Notification channel {name} crashed for submission {submission.id}: {e}",
                exc_info=True,
            )
            results[name] = FAILED

    logger.info(f"Fan-out for submission {submission.id}: {results}")
    return results


# ──────────────────────────────────────────────
# WhatsApp (Evolution API)
# ──────────────────────────────────────────────

def get_whatsapp_config():
    return (
        WhatsAppGlobalConfig.query
        .filter_by(is_active=True)
        .order_by(WhatsAppGlobalConfig.updated_at.desc())
        .first()
    )


def send_whatsapp_confirmation(submission):
    """Send the payment confirmation over WhatsApp and log the attempt."""
    config = get_whatsapp_config()
    if not config:
        logger.info("WhatsApp not configured, skipping payment confirmation")
        return SKIPPED

    template = find_template(WHATSAPP_TEMPLATE_KEY, submission.form_definition_id)
    if not template:
        logger.info(f"No '{WHATSAPP_TEMPLATE_KEY}' template, skipping WhatsApp")
        return SKIPPED

    raw_phone = get_phone(submission.data)
    if not raw_phone:
        logger.info(f"No phone number in submission {submission.id}, skipping WhatsApp")
        return SKIPPED

    number = normalize_phone(raw_phone)
    message = render_template_vars(template.content, build_submission_variables(submission))
    url = f"{config.api_base_url.rstrip('/')}/message/sendText/{config.instance_id}"

    try:
        resp = requests.post(
            url,
            headers={"Content-Type": "application/json", "apikey": config.token},
            json={"number": number, "text": message},
            timeout=_timeout(),
        )
    except requests.RequestException as e:
        _log_message(
            submission, "whatsapp", number, message, MessageLog.FAILED,
            template=template, error=_truncate(f"Evolution API unreachable: {e}"),
        )
        logger.error(f"WhatsApp send failed for submission {submission.id}: {e}")
        return FAILED

    if not resp.ok:
        _log_message(
            submission, "whatsapp", number, message, MessageLog.FAILED,
            template=template,
            error=f"Evolution API {resp.status_code}: {_truncate(resp.text)}",
        )
        logger.warning(f"WhatsApp gateway returned {resp.status_code} for submission {submission.id}")
        return FAILED

    _log_message(submission, "whatsapp", number, message, MessageLog.SENT, template=template)
    logger.info(f"WhatsApp confirmation sent for submission {submission.id}")
    return SENT


# ──────────────────────────────────────────────
# Email (Resend)
# ──────────────────────────────────────────────

def send_email_confirmation(submission):
    """Send the payment confirmation email and log the attempt."""
    if not email_service.is_configured():
        logger.info("Email not configured (RESEND_API_KEY/RESEND_FROM), skipping")
        return SKIPPED

    recipient = get_email(submission.data)
    if not recipient:
        logger.info(f"No email address in submission {submission.id}, skipping email")
        return SKIPPED

    variables = build_submission_variables(submission)
    template = find_template(EMAIL_TEMPLATE_KEY, submission.form_definition_id)
    if template:
        html = render_template_vars(template.content, variables)
        subject = render_template_vars(template.title or "", variables) or "Pagamento confirmado"
    else:
        html = email_service.render_email(DEFAULT_EMAIL_TEMPLATE, variables)
        subject = f"Pagamento confirmado — {variables['curso']}" if variables["curso"] else "Pagamento confirmado"

    try:
        email_service.send_email(to=recipient, subject=subject, html=html)
    except (email_service.EmailDeliveryError, email_service.EmailNotConfigured) as e:
        _log_message(
            submission, "email", recipient, html, MessageLog.FAILED,
            template=template, error=_truncate(str(e)),
        )
        logger.error(f"Email send failed for submission {submission.id}: {e}")
        return FAILED

    _log_message(submission, "email", recipient, html, MessageLog.SENT, template=template)
    return SENT


# ──────────────────────────────────────────────
# LMS enrollment webhook
# ──────────────────────────────────────────────

def get_enrollment_webhook_config():
    return (
        OutboundWebhookGlobalConfig.query
        .filter_by(is_active=True)
        .order_by(OutboundWebhookGlobalConfig.updated_at.desc())
        .first()
    )


def build_enrollment_payload(submission):
    """Payload for the LMS webhook.

    The form data is sent twice: nested under `student_data` and flattened at
    the root for older consumers. Identifying fields win on key clashes.
    """
    data = submission.data or {}
    payload = dict(data)
    payload.update({
        "submission_id": submission.id,
        "tenant_id": submission.tenant_id,
        "tenant_name": submission.tenant.name if submission.tenant else None,
        "form_id": submission.form_definition_id,
        "form_title": submission.form.title if submission.form else None,
        "payment_amount": float(submission.payment_amount) if submission.payment_amount is not None else None,
        "payment_date": submission.payment_date.isoformat() if submission.payment_date else None,
        "student_data": data,
    })
    return payload


def send_enrollment_webhook(submission):
    """POST the enrollment payload to the LMS webhook and log the attempt."""
    config = get_enrollment_webhook_config()
    if not config:
        logger.info("Enrollment webhook not configured, skipping")
        return SKIPPED

    payload = build_enrollment_payload(submission)
    headers = {"Content-Type": "application/json"}
    if config.auth_token:
        headers["Authorization"] = f"Bearer {config.auth_token}"

    log = EnrollmentLog(
        tenant_id=submission.tenant_id,
        submission_id=submission.id,
        webhook_config_id=config.id,
        payload=payload,
        attempts=1,
    )

    try:
        resp = requests.post(
            config.webhook_url, headers=headers, json=payload, timeout=_timeout()
        )
    except requests.RequestException as e:
        log.status = EnrollmentLog.FAILED
        log.error_message = _truncate(f"LMS webhook unreachable: {e}")
        db.session.add(log)
        db.session.commit()
        logger.error(f"Enrollment webhook failed for submission {submission.id}: {e}")
        return FAILED

    log.response_status = resp.status_code
    log.response_body = resp.text
    if resp.ok:
        log.status = EnrollmentLog.DONE
        log.completed_at = datetime.now(timezone.utc)
    else:
        log.status = EnrollmentLog.FAILED
        log.error_message = f"LMS webhook {resp.status_code}: {_truncate(resp.text)}"

    db.session.add(log)
    db.session.commit()

    logger.info(f"Enrollment webhook for submission {submission.id}: {log.status}")
    return SENT if resp.ok else FAILED
