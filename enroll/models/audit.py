"""Audit event model.

Logs significant system actions (payment status changes driven by the
provider, recovery sweeps) for operators and debugging.
"""

import uuid

from enroll.extensions import db


class AuditEvent(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id = db.Column(
        db.String(36), db.ForeignKey("tenants.id"), nullable=True
    )
    action = db.Column(db.String(255), nullable=False)  # e.g. "submission.payment_status_changed"
    resource_type = db.Column(db.String(100), nullable=True)
    resource_id = db.Column(db.String(36), nullable=True)
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # extra context, named metadata_ to avoid the declarative attribute
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    __table_args__ = (
        db.Index("ix_audit_logs_resource", "resource_type", "resource_id"),
    )

    def __repr__(self):
        return f"<AuditEvent {self.action}>"
