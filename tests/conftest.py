"""Shared test fixtures for the enrollment payments test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, eager task queue)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: tenant, paid form, PENDING submission, channel configs, templates
- mock_response: factory for fake `requests` responses
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from enroll import create_app
from enroll.extensions import db as _db
from enroll.models.form import FormDefinition, FormField
from enroll.models.integration import OutboundWebhookGlobalConfig, WhatsAppGlobalConfig
from enroll.models.message import MessageTemplate
from enroll.models.submission import Submission
from enroll.models.tenant import Tenant


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def mock_response():
    """Build a stand-in for requests.Response."""

    def _make(status_code=200, json_data=None, text=None):
        resp = MagicMock()
        resp.status_code = status_code
        resp.ok = 200 <= status_code < 300
        resp.json.return_value = json_data if json_data is not None else {}
        resp.text = text if text is not None else ("" if json_data is None else str(json_data))
        return resp

    return _make


@pytest.fixture
def seed_data(app, db_session):
    """Seed a tenant with a paid form, one PENDING submission and all channel configs.

    Returns a dict of plain IDs (objects are detached once the seeding
    context closes).
    """
    with app.app_context():
        # --- Tenant ---
        tenant = Tenant(name="Polo Centro", slug="polo-centro", status=True)
        _db.session.add(tenant)
        _db.session.flush()

        # --- Paid form ---
        form = FormDefinition(
            tenant_id=tenant.id,
            name="Curso de Teologia",
            slug="curso-teologia",
            settings={
                "require_payment": True,
                "payment_amount": 150,
                "form_title": "Inscrição Teologia",
                "success_message": "Inscrição recebida!",
            },
        )
        _db.session.add(form)
        _db.session.flush()

        for position, (name, type_, required, rules) in enumerate([
            ("nome_completo", "text", True, {"minLength": 3, "maxLength": 80}),
            ("email", "email", True, {}),
            ("telefone", "phone", True, {}),
            ("cpf", "cpf", False, {}),
            ("cep", "cep", False, {}),
            ("idade", "number", False, {"min": 16, "max": 99}),
        ]):
            _db.session.add(FormField(
                form_id=form.id, name=name, type=type_, required=required,
                validation_rules=rules, position=position,
            ))

        # --- Free form (no payment) ---
        free_form = FormDefinition(
            tenant_id=None,
            name="Lista de Espera",
            slug="lista-espera",
            settings={"require_payment": False, "redirect_url": "https://iwe.test/obrigado"},
        )
        _db.session.add(free_form)
        _db.session.flush()
        _db.session.add(FormField(
            form_id=free_form.id, name="nome", type="text", required=True, position=0,
        ))

        # --- PENDING submission ---
        submission = Submission(
            tenant_id=tenant.id,
            form_definition_id=form.id,
            data={
                "nome_completo": "Maria Souza",
                "email": "maria@example.com",
                "telefone": "(11) 98765-4321",
                "curso": "Teologia",
            },
            payment_status=Submission.PENDING,
            payment_amount=Decimal("150.00"),
            metadata_={"origin": "public_form"},
        )
        _db.session.add(submission)

        # --- Channel configs ---
        whatsapp = WhatsAppGlobalConfig(
            api_base_url="https://evo.test/",
            instance_id="iwe-instance",
            token="evo-token",
        )
        lms = OutboundWebhookGlobalConfig(
            webhook_url="https://n8n.test/webhook/enroll",
            auth_token="lms-token",
        )
        _db.session.add_all([whatsapp, lms])

        # --- Global templates ---
        wa_template = MessageTemplate(
            key="payment_approved",
            content="Olá {{nome}}! Pagamento de {{valor_formatado}} confirmado para {{curso}} no {{polo}}.",
        )
        email_template = MessageTemplate(
            key="payment_approved_email",
            title="Pagamento confirmado — {{curso}}",
            content="<p>Olá {{nome}}, recebemos {{valor_formatado}}.</p>",
        )
        _db.session.add_all([wa_template, email_template])

        _db.session.commit()

        return {
            "tenant_id": tenant.id,
            "form_id": form.id,
            "free_form_id": free_form.id,
            "submission_id": submission.id,
            "whatsapp_config_id": whatsapp.id,
            "lms_config_id": lms.id,
            "wa_template_id": wa_template.id,
            "email_template_id": email_template.id,
        }


def approved_payment(submission_id, payment_id="1234567890", status="approved", amount=150.0):
    """Mercado Pago /v1/payments/{id} body."""
    return {
        "id": int(payment_id),
        "status": status,
        "status_detail": "accredited" if status == "approved" else status,
        "external_reference": submission_id,
        "transaction_amount": amount,
        "payment_method_id": "pix",
        "payment_type_id": "bank_transfer",
    }


@pytest.fixture
def payment_body():
    """Factory for provider payment bodies."""
    return approved_payment
