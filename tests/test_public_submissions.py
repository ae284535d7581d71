"""Tests for the public submission endpoint.

Covers:
- Paid forms start PENDING with a server-side amount
- Free global forms require a tenant and start NOT_APPLICABLE
- Tenant resolution errors
- Required fields and per-type validation
- HTML stripped from submitted values
- CORS preflight
"""

from decimal import Decimal

from enroll.extensions import db
from enroll.models.form import FormDefinition
from enroll.models.submission import Submission
from enroll.models.tenant import Tenant


def _valid_data(**overrides):
    data = {
        "nome_completo": "João da Silva",
        "email": "joao@example.com",
        "telefone": "(21) 99999-0000",
    }
    data.update(overrides)
    return data


def _post(client, form_id, data, headers=None, **extra):
    body = {"form_id": form_id, "data": data}
    body.update(extra)
    return client.post("/api/public/submissions", json=body, headers=headers)


class TestPaidFormSubmission:

    def test_creates_pending_submission(self, client, seed_data):
        resp = _post(client, seed_data["form_id"], _valid_data(),
                     headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        assert body["requires_payment"] is True
        assert body["payment_amount"] == "150.00"

        submission = db.session.get(Submission, body["submission_id"])
        assert submission.payment_status == Submission.PENDING
        assert submission.payment_amount == Decimal("150.00")
        assert submission.tenant_id == seed_data["tenant_id"]
        assert submission.ip_address == "203.0.113.7"
        assert submission.metadata_["form_title"] == "Inscrição Teologia"
        assert submission.metadata_["polo"] == "Polo Centro"
        assert "submitted_at" in submission.metadata_

    def test_client_price_is_ignored(self, client, seed_data):
        resp = _post(client, seed_data["form_id"], _valid_data(payment_amount="1.00"))

        assert resp.get_json()["payment_amount"] == "150.00"

    def test_html_is_stripped(self, client, seed_data):
        resp = _post(client, seed_data["form_id"],
                     _valid_data(nome_completo="<script>alert(1)</script>Ana <b>Lima</b>"))

        submission = db.session.get(Submission, resp.get_json()["submission_id"])
        assert "<" not in submission.data["nome_completo"]
        assert submission.data["nome_completo"].endswith("Ana Lima")

    def test_tenant_mismatch_rejected(self, client, seed_data):
        other = Tenant(name="Polo Norte", slug="polo-norte")
        db.session.add(other)
        db.session.commit()

        resp = _post(client, seed_data["form_id"], _valid_data(), tenant_id=other.id)

        assert resp.status_code == 400
        assert "não corresponde" in resp.get_json()["error"]

    def test_inactive_form_tenant_rejected(self, client, seed_data):
        db.session.get(Tenant, seed_data["tenant_id"]).status = False
        db.session.commit()

        resp = _post(client, seed_data["form_id"], _valid_data())

        assert resp.status_code == 400
        assert "inativo" in resp.get_json()["error"]


class TestFreeFormSubmission:

    def test_requires_tenant(self, client, seed_data):
        resp = _post(client, seed_data["free_form_id"], {"nome": "Ana"})

        assert resp.status_code == 400
        assert "tenant_id" in resp.get_json()["error"]

    def test_creates_not_applicable_submission(self, client, seed_data):
        resp = _post(client, seed_data["free_form_id"], {"nome": "Ana"},
                     tenant_id=seed_data["tenant_id"])

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["requires_payment"] is False
        assert body["redirect_url"] == "https://iwe.test/obrigado"
        assert body["message"] == "Formulário enviado com sucesso!"

        submission = db.session.get(Submission, body["submission_id"])
        assert submission.payment_status == Submission.NOT_APPLICABLE
        assert submission.payment_amount is None

    def test_unknown_tenant(self, client, seed_data):
        resp = _post(client, seed_data["free_form_id"], {"nome": "Ana"}, tenant_id="nope")

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Polo inválido"

    def test_inactive_tenant(self, client, seed_data):
        db.session.get(Tenant, seed_data["tenant_id"]).status = False
        db.session.commit()

        resp = _post(client, seed_data["free_form_id"], {"nome": "Ana"},
                     tenant_id=seed_data["tenant_id"])

        assert resp.status_code == 400
        assert "inativo" in resp.get_json()["error"]


class TestSubmissionValidation:

    def test_missing_body(self, client):
        resp = client.post("/api/public/submissions", json={})

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "form_id e data são obrigatórios"

    def test_unknown_form(self, client, seed_data):
        assert _post(client, "nope", _valid_data()).status_code == 404

    def test_inactive_form(self, client, seed_data):
        db.session.get(FormDefinition, seed_data["form_id"]).is_active = False
        db.session.commit()

        assert _post(client, seed_data["form_id"], _valid_data()).status_code == 404

    def test_missing_required_fields(self, client, seed_data):
        resp = _post(client, seed_data["form_id"], {"nome_completo": "João da Silva", "email": " "})

        assert resp.status_code == 400
        assert set(resp.get_json()["missing_fields"]) == {"email", "telefone"}
        assert Submission.query.count() == 1

    def test_invalid_email(self, client, seed_data):
        resp = _post(client, seed_data["form_id"], _valid_data(email="joao@"))

        assert resp.status_code == 400
        assert "email" in resp.get_json()["error"]

    def test_cpf_and_cep_formats(self, client, seed_data):
        bad_cpf = _post(client, seed_data["form_id"], _valid_data(cpf="12345678900"))
        bad_cep = _post(client, seed_data["form_id"], _valid_data(cep="01310100"))
        ok = _post(client, seed_data["form_id"], _valid_data(cpf="123.456.789-00", cep="01310-100"))

        assert bad_cpf.status_code == 400
        assert "CPF" in bad_cpf.get_json()["error"]
        assert bad_cep.status_code == 400
        assert "CEP" in bad_cep.get_json()["error"]
        assert ok.status_code == 200

    def test_number_bounds(self, client, seed_data):
        too_young = _post(client, seed_data["form_id"], _valid_data(idade=15))
        not_a_number = _post(client, seed_data["form_id"], _valid_data(idade="vinte"))
        ok = _post(client, seed_data["form_id"], _valid_data(idade="30"))

        assert too_young.status_code == 400
        assert "mínimo" in too_young.get_json()["error"]
        assert not_a_number.status_code == 400
        assert ok.status_code == 200

    def test_text_length(self, client, seed_data):
        short = _post(client, seed_data["form_id"], _valid_data(nome_completo="Jo"))
        long = _post(client, seed_data["form_id"], _valid_data(nome_completo="J" * 81))

        assert short.status_code == 400
        assert long.status_code == 400
        assert "máximo" in long.get_json()["error"]


class TestCors:

    def test_preflight(self, client):
        resp = client.options("/api/public/submissions")

        assert resp.status_code == 204
        assert resp.headers["Access-Control-Allow-Origin"] == "*"

    def test_error_responses_carry_cors(self, client):
        resp = client.post("/api/public/submissions", json={})
        assert resp.headers["Access-Control-Allow-Origin"] == "*"
