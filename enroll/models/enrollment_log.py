"""Enrollment log model.

One row per LMS enrollment webhook attempt, with the exact request payload
and the response captured verbatim. attempts is always 1: there is no
automatic retry loop, operators re-trigger from this table.
"""

import uuid

from enroll.extensions import db


class EnrollmentLog(db.Model):
    __tablename__ = "enrollment_logs"

    DONE = "DONE"
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
    webhook_config_id = db.Column(
        db.String(36),
        db.ForeignKey("outbound_webhook_global_configs.id"),
        nullable=True,
    )
    payload = db.Column(db.JSON, nullable=True)
    response_status = db.Column(db.Integer, nullable=True)
    response_body = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False)  # DONE | FAILED
    attempts = db.Column(db.Integer, default=1, nullable=False)
    error_message = db.Column(db.Text, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<EnrollmentLog submission={self.submission_id} {self.status}>"
