"""Message template lookup and {{var}} rendering."""

import re

from sqlalchemy import or_

from enroll.models.message import MessageTemplate
from enroll.services.submission_fields import (
    format_amount,
    format_brl,
    get_course,
    get_name,
)

PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")


def render_template_vars(content, variables):
    """Substitute {{key}} placeholders. Unknown keys are left literally."""

    def _replace(match):
        key = match.group(1)
        if key in variables and variables[key] is not None:
            return str(variables[key])
        return match.group(0)

    return PLACEHOLDER_RE.sub(_replace, content or "")


def find_template(key, form_id=None):
    """Active global template for a trigger key.

    A template bound to `form_id` wins over a form-agnostic one.
    Returns None when neither exists.
    """
    query = (
        MessageTemplate.query
        .filter(MessageTemplate.tenant_id.is_(None))
        .filter_by(key=key, is_active=True)
    )

    if form_id:
        specific = query.filter_by(form_id=form_id).first()
        if specific:
            return specific

    return query.filter(
        or_(MessageTemplate.form_id.is_(None), MessageTemplate.form_id == "")
    ).first()


def build_submission_variables(submission):
    """Variable bag for payment templates: derived fields + raw form data."""
    data = submission.data or {}
    name = get_name(data) or "Aluno"
    tenant_name = submission.tenant.name if submission.tenant else ""
    form_title = submission.form.title if submission.form else ""

    variables = {
        "nome": name,
        "nome_completo": name,
        "name": name,
        "curso": get_course(data) or form_title,
        "polo": tenant_name,
        "tenant_name": tenant_name,
        "valor": format_amount(submission.payment_amount),
        "valor_formatado": format_brl(submission.payment_amount),
        "form_title": form_title,
        "submission_id": submission.id,
    }

    for k, v in data.items():
        if v is None or isinstance(v, (dict, list)):
            continue
        variables[str(k)] = v

    return variables
