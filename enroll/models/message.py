"""Messaging models.

- MessageTemplate: content with {{var}} placeholders, selected by trigger key
  (`payment_approved`, `payment_approved_email`) and optionally by form.
- MessageLog: one row per attempted delivery on the WhatsApp and email
  channels. Write-only audit trail; nothing in the pipeline reads it back.
"""

import uuid

from enroll.extensions import db


class MessageTemplate(db.Model):
    __tablename__ = "message_templates"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id = db.Column(
        db.String(36), db.ForeignKey("tenants.id"), nullable=True
    )  # NULL = global template
    key = db.Column(db.String(100), nullable=False)  # trigger key
    form_id = db.Column(
        db.String(36), db.ForeignKey("form_definitions.id"), nullable=True
    )
    title = db.Column(db.String(255), nullable=True)  # email subject
    content = db.Column(db.Text, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __table_args__ = (
        db.Index("ix_message_templates_key", "key", "is_active"),
    )

    def __repr__(self):
        return f"<MessageTemplate {self.key} form={self.form_id}>"


class MessageLog(db.Model):
    __tablename__ = "message_logs"

    CHANNELS = ["whatsapp", "email"]
    SENT = "SENT"
    FAILED = "FAILED"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id = db.Column(
        db.String(36), db.ForeignKey("tenants.id"), nullable=True
    )
    submission_id = db.Column(
        db.String(36), db.ForeignKey("submissions.id"), nullable=True
    )
    template_id = db.Column(
        db.String(36), db.ForeignKey("message_templates.id"), nullable=True
    )
    channel = db.Column(db.String(20), nullable=False)  # whatsapp | email
    recipient = db.Column(db.String(255), nullable=False)  # phone or email, as found
    message_content = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False)  # SENT | FAILED
    error_message = db.Column(db.Text, nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    __table_args__ = (
        db.Index("ix_message_logs_submission", "submission_id"),
    )

    def __repr__(self):
        return f"<MessageLog {self.channel} {self.status}>"
