"""Payment event model (idempotency ledger).

Every webhook delivery is recorded by (provider, external_id) before any
processing. The pair is enforced by a unique constraint, so two
near-simultaneous deliveries of the same event cannot both be inserted.

processed_at stays NULL until reconciliation + notification fan-out finish.
Rows left unprocessed (crash, provider outage) are retried by
`flask sweep-payment-events`; attempts / last_error record each failure.
"""

import uuid

from enroll.extensions import db


class PaymentEvent(db.Model):
    __tablename__ = "payment_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    provider = db.Column(db.String(50), nullable=False)  # e.g. "mercadopago"
    external_id = db.Column(db.String(255), nullable=False)  # provider payment id
    event_type = db.Column(db.String(100), nullable=False)  # e.g. "payment"
    payload = db.Column(db.JSON, default=dict)  # raw webhook body
    submission_id = db.Column(
        db.String(36), db.ForeignKey("submissions.id"), nullable=True
    )
    attempts = db.Column(db.Integer, default=0, nullable=False)
    last_error = db.Column(db.Text, nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    __table_args__ = (
        db.UniqueConstraint(
            "provider", "external_id",
            name="uq_payment_events_provider_external_id",
        ),
        db.Index("ix_payment_events_unprocessed", "processed_at", "created_at"),
    )

    # --- Relationships ---
    submission = db.relationship("Submission")

    def __repr__(self):
        return f"<PaymentEvent {self.provider}:{self.external_id} ({self.event_type})>"
