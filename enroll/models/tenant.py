"""Tenant model.

A tenant ("polo") is an isolated organizational unit that owns forms and
the submissions made through them. Managed by the admin UI; the payment
pipeline only reads it (name for templates and LMS payloads).
"""

import uuid

from enroll.extensions import db


class Tenant(db.Model):
    __tablename__ = "tenants"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    status = db.Column(db.Boolean, default=True, nullable=False)  # active flag
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    forms = db.relationship(
        "FormDefinition", back_populates="tenant", lazy="dynamic"
    )
    submissions = db.relationship(
        "Submission", back_populates="tenant", lazy="dynamic"
    )

    def __repr__(self):
        return f"<Tenant {self.slug}>"
