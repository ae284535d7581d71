"""Public submission intake.

Validates a form response against its FormDefinition/FormField rows,
resolves the tenant ("polo"), sanitizes string values and creates the
Submission. Forms with `require_payment` start PENDING, others NOT_APPLICABLE.

Functions commit; callers translate SubmissionValidationError into 4xx.
"""

import re
from datetime import datetime, timezone

import bleach

from enroll.extensions import db
from enroll.models.form import FormDefinition
from enroll.models.submission import Submission
from enroll.models.tenant import Tenant
from enroll.services.preference_service import resolve_amount

MAX_VALUE_LENGTH = 1000

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
CPF_RE = re.compile(r"^\d{3}\.\d{3}\.\d{3}-\d{2}$")
CEP_RE = re.compile(r"^\d{5}-\d{3}$")


class SubmissionValidationError(ValueError):
    """Rejected submission. `status_code` is 400 or 404."""

    def __init__(self, message, status_code=400, missing_fields=None):
        super().__init__(message)
        self.status_code = status_code
        self.missing_fields = missing_fields or []


def _sanitize(value):
    """Strip HTML from strings and cap their length; pass scalars through."""
    if isinstance(value, str):
        return bleach.clean(value, tags=[], strip=True).strip()[:MAX_VALUE_LENGTH]
    if isinstance(value, (bool, int, float)) or value is None:
        return value
    if isinstance(value, list):
        return [_sanitize(v) for v in value]
    if isinstance(value, dict):
        return sanitize_form_data(value)
    return str(value)


def sanitize_form_data(data):
    return {str(k): _sanitize(v) for k, v in (data or {}).items()}


def _is_blank(value):
    return value is None or value == "" or value is False


def _resolve_tenant(form, tenant_id):
    if form.tenant_id:
        if tenant_id and tenant_id != form.tenant_id:
            raise SubmissionValidationError(
                "Polo selecionado não corresponde ao polo do formulário"
            )
        tenant = db.session.get(Tenant, form.tenant_id)
        if tenant is None:
            raise SubmissionValidationError("Polo do formulário inválido")
        if not tenant.status:
            raise SubmissionValidationError("Polo do formulário está inativo")
        return tenant

    if not tenant_id:
        raise SubmissionValidationError(
            "tenant_id é obrigatório para este formulário. Selecione um polo."
        )
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise SubmissionValidationError("Polo inválido")
    if not tenant.status:
        raise SubmissionValidationError("Polo inativo. Escolha outro polo.")
    return tenant


def validate_field(field, value):
    """Type checks for one filled-in field. Raises SubmissionValidationError."""
    rules = field.validation_rules or {}

    if field.type == "email" and not EMAIL_RE.match(str(value)):
        raise SubmissionValidationError(f"Campo {field.name} deve ser um email válido")

    if field.type == "cpf" and not CPF_RE.match(str(value)):
        raise SubmissionValidationError(
            f"Campo {field.name} deve ser um CPF válido (000.000.000-00)"
        )

    if field.type == "cep" and not CEP_RE.match(str(value)):
        raise SubmissionValidationError(
            f"Campo {field.name} deve ser um CEP válido (00000-000)"
        )

    if field.type == "number":
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise SubmissionValidationError(f"Campo {field.name} deve ser um número")
        if rules.get("min") is not None and number < rules["min"]:
            raise SubmissionValidationError(
                f"Campo {field.name} deve ser no mínimo {rules['min']}"
            )
        if rules.get("max") is not None and number > rules["max"]:
            raise SubmissionValidationError(
                f"Campo {field.name} deve ser no máximo {rules['max']}"
            )

    if field.type in ("text", "textarea"):
        length = len(str(value))
        if rules.get("minLength") and length < rules["minLength"]:
            raise SubmissionValidationError(
                f"Campo {field.name} deve ter no mínimo {rules['minLength']} caracteres"
            )
        if rules.get("maxLength") and length > rules["maxLength"]:
            raise SubmissionValidationError(
                f"Campo {field.name} deve ter no máximo {rules['maxLength']} caracteres"
            )


def create_public_submission(form_id, data, tenant_id=None, ip_address=None, user_agent=None):
    """Validate and store a public form response.

    Returns (submission, form).
    Raises SubmissionValidationError.
    """
    if not form_id or not isinstance(data, dict) or not data:
        raise SubmissionValidationError("form_id e data são obrigatórios")

    form = db.session.get(FormDefinition, form_id)
    if form is None or not form.is_active:
        raise SubmissionValidationError("Formulário não encontrado ou inativo", status_code=404)

    tenant = _resolve_tenant(form, tenant_id)
    clean = sanitize_form_data(data)

    missing = [f.name for f in form.fields if f.required and _is_blank(clean.get(f.name))]
    if missing:
        raise SubmissionValidationError(
            "Campos obrigatórios não preenchidos", missing_fields=missing
        )

    for field in form.fields:
        value = clean.get(field.name)
        if _is_blank(value):
            continue
        validate_field(field, value)

    submission = Submission(
        tenant=tenant,
        form=form,
        data=clean,
        payment_status=Submission.PENDING if form.requires_payment else Submission.NOT_APPLICABLE,
        ip_address=(ip_address or "")[:64] or None,
        user_agent=(user_agent or "")[:512] or None,
        metadata_={
            "submitted_at": datetime.now(timezone.utc).isoformat(),
            "form_title": form.title,
            "polo": tenant.name,
        },
    )
    if form.requires_payment:
        amount = resolve_amount(submission)
        if amount > 0:
            submission.payment_amount = amount

    db.session.add(submission)
    db.session.commit()
    return submission, form
