"""Form models.

- FormDefinition: a dynamic form. tenant_id NULL means a global form where
  the applicant picks the tenant at submission time.
- FormField: one field of a form, used for server-side validation of
  public submissions.

settings keys read by the backend:
    require_payment  (bool)   — submissions start PENDING instead of NOT_APPLICABLE
    payment_amount   (number) — server-side price, never taken from the client
    form_title, success_message, redirect_url
"""

import uuid

from enroll.extensions import db


class FormDefinition(db.Model):
    __tablename__ = "form_definitions"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id = db.Column(
        db.String(36), db.ForeignKey("tenants.id"), nullable=True
    )
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(150), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    settings = db.Column(db.JSON, default=dict)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    tenant = db.relationship("Tenant", back_populates="forms")
    fields = db.relationship(
        "FormField",
        back_populates="form",
        order_by="FormField.position",
        cascade="all, delete-orphan",
    )

    @property
    def requires_payment(self):
        return bool((self.settings or {}).get("require_payment"))

    @property
    def title(self):
        return (self.settings or {}).get("form_title") or self.name

    def __repr__(self):
        return f"<FormDefinition {self.slug}>"


class FormField(db.Model):
    __tablename__ = "form_fields"

    TYPES = [
        "text",
        "textarea",
        "email",
        "phone",
        "cpf",
        "cep",
        "number",
        "date",
        "select",
        "checkbox",
        "file",
    ]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    form_id = db.Column(
        db.String(36), db.ForeignKey("form_definitions.id"), nullable=False
    )
    name = db.Column(db.String(100), nullable=False)  # key inside submission.data
    label = db.Column(db.String(255), nullable=True)
    type = db.Column(db.String(30), nullable=False, default="text")
    required = db.Column(db.Boolean, default=False, nullable=False)
    validation_rules = db.Column(db.JSON, default=dict)  # min / max / minLength / maxLength
    position = db.Column(db.Integer, default=0, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("form_id", "name", name="uq_form_field_name"),
    )

    # --- Relationships ---
    form = db.relationship("FormDefinition", back_populates="fields")

    def __repr__(self):
        return f"<FormField {self.name} ({self.type})>"
