"""Submission model.

One applicant's response to a form. `data` is schema-less: field names vary
between tenants and forms, so readers go through the accessor helpers in
enroll.services.submission_fields instead of assuming keys.

payment_status is owned by the payment pipeline:
    PENDING         — waiting for the provider (set at creation)
    PAID            — provider reported "approved"
    CANCELLED       — provider reported "rejected" / "cancelled"
    REFUNDED        — set manually by operators
    NOT_APPLICABLE  — the form does not require payment
"""

import uuid

from enroll.extensions import db


class Submission(db.Model):
    __tablename__ = "submissions"

    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    NOT_APPLICABLE = "NOT_APPLICABLE"

    PAYMENT_STATUSES = [PENDING, PAID, CANCELLED, REFUNDED, NOT_APPLICABLE]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id = db.Column(
        db.String(36), db.ForeignKey("tenants.id"), nullable=False
    )
    form_definition_id = db.Column(
        db.String(36), db.ForeignKey("form_definitions.id"), nullable=False
    )
    data = db.Column(db.JSON, default=dict, nullable=False)
    payment_status = db.Column(
        db.String(20), nullable=False, default=NOT_APPLICABLE
    )
    payment_amount = db.Column(db.Numeric(10, 2), nullable=True)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_reference = db.Column(
        db.String(255), nullable=True, index=True
    )  # Mercado Pago preference id
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # provider ids/status, named metadata_ to avoid the declarative attribute
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __table_args__ = (
        db.Index("ix_submissions_status_created", "payment_status", "created_at"),
    )

    # --- Relationships ---
    tenant = db.relationship("Tenant", back_populates="submissions")
    form = db.relationship("FormDefinition")

    def merge_metadata(self, **values):
        """Merge keys into metadata without clobbering unrelated ones.

        Assigns a new dict so SQLAlchemy sees the JSON column as changed.
        """
        merged = dict(self.metadata_ or {})
        merged.update(values)
        self.metadata_ = merged

    def __repr__(self):
        return f"<Submission {self.id} ({self.payment_status})>"
