"""Tests for operator surfaces: reconcile endpoint, integration status and CLI.

Covers:
- Ops bearer token on /api/payments/reconcile and /api/integration/*
- Reconcile query clamping and summary shape
- Integration status masks secrets
- flask seed-demo / sweep-payment-events / reconcile-pending
- JSON error handlers
- Production config warning for a missing ops token
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from enroll.config import ProdConfig
from enroll.extensions import db
from enroll.models.form import FormDefinition
from enroll.models.integration import MercadoPagoGlobalConfig
from enroll.models.message import MessageTemplate
from enroll.models.payment_event import PaymentEvent
from enroll.models.submission import Submission
from enroll.models.tenant import Tenant
from enroll.services import ledger_service

OPS_HEADERS = {"Authorization": "Bearer ops-test-token"}


def _make_old(obj, minutes=60):
    obj.created_at = datetime.now(timezone.utc) - timedelta(minutes=minutes)
    db.session.commit()


class TestReconcileEndpoint:

    def test_requires_token(self, client):
        assert client.get("/api/payments/reconcile").status_code == 401

    def test_wrong_token(self, client):
        resp = client.get("/api/payments/reconcile", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401
        assert resp.get_json() == {"error": "unauthorized"}

    def test_token_not_configured_allows_access(self, client, app, monkeypatch):
        monkeypatch.setitem(app.config, "OPS_API_TOKEN", None)
        assert client.get("/api/payments/reconcile").status_code == 200

    @patch("enroll.services.reconciliation_service.dispatch_payment_approved")
    @patch("enroll.services.mercadopago_service.requests.get")
    def test_reconciles_stale_pending(self, mock_get, mock_dispatch, client, seed_data,
                                      mock_response, payment_body):
        sid = seed_data["submission_id"]
        _make_old(db.session.get(Submission, sid))
        mock_get.return_value = mock_response(200, {"results": [payment_body(sid)]})

        resp = client.get("/api/payments/reconcile", headers=OPS_HEADERS)

        assert resp.status_code == 200
        summary = resp.get_json()
        assert summary["processed"] == 1
        assert summary["updated"] == 1
        assert summary["failed"] == 0
        assert summary["ledger_events_swept"] == 0
        assert summary["results"] == [{"submission_id": sid, "status": Submission.PAID}]
        mock_dispatch.assert_called_once()

    @patch("enroll.blueprints.payments.reconcile_pending_submissions")
    def test_query_args_are_clamped(self, mock_reconcile, client):
        mock_reconcile.return_value = {"processed": 0, "updated": 0, "unchanged": 0,
                                       "failed": 0, "results": []}

        client.get("/api/payments/reconcile?max=500&age_minutes=0", headers=OPS_HEADERS)
        mock_reconcile.assert_called_with(age_minutes=1, limit=50)

        client.get("/api/payments/reconcile?max=abc", headers=OPS_HEADERS)
        mock_reconcile.assert_called_with(age_minutes=10, limit=25)

    @patch("enroll.services.mercadopago_service.requests.get")
    def test_provider_failure_counted(self, mock_get, client, seed_data, mock_response):
        _make_old(db.session.get(Submission, seed_data["submission_id"]))
        mock_get.return_value = mock_response(500, text="down")

        summary = client.get("/api/payments/reconcile", headers=OPS_HEADERS).get_json()

        assert summary["failed"] == 1
        assert "error" in summary["results"][0]
        assert db.session.get(Submission, seed_data["submission_id"]).payment_status == Submission.PENDING


class TestIntegrationStatus:

    def test_requires_token(self, client):
        assert client.get("/api/integration/mercadopago/status").status_code == 401

    def test_env_credentials_and_channels(self, client, seed_data):
        resp = client.get("/api/integration/mercadopago/status", headers=OPS_HEADERS)

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["configured"] is True
        assert data["credentials"]["source"] == "env"
        assert data["credentials"]["masked_access_token"] == "TEST-e***"
        assert data["notification_url"] == "https://inscricoes.test/webhooks/mercadopago"
        assert data["channels"] == {"whatsapp": True, "email": True, "enrollment": True}

    def test_global_token_masked(self, client):
        db.session.add(MercadoPagoGlobalConfig(access_token="APP_USR-very-secret-token", is_active=True))
        db.session.commit()

        resp = client.get("/api/integration/mercadopago/status", headers=OPS_HEADERS)

        assert resp.get_json()["credentials"]["source"] == "global"
        assert "very-secret" not in resp.get_data(as_text=True)

    def test_missing_app_url_reported(self, client, app, monkeypatch):
        monkeypatch.setitem(app.config, "APP_URL", None)
        monkeypatch.setitem(app.config, "PUBLIC_APP_URL", None)

        data = client.get("/api/integration/mercadopago/status", headers=OPS_HEADERS).get_json()

        assert data["app_url"] is None
        assert data["notification_url"] is None
        assert "APP_URL" in data["app_url_error"]

    def test_nothing_configured(self, client, app, monkeypatch):
        monkeypatch.setitem(app.config, "MP_ACCESS_TOKEN", None)
        monkeypatch.setitem(app.config, "RESEND_API_KEY", None)

        data = client.get("/api/integration/mercadopago/status", headers=OPS_HEADERS).get_json()

        assert data["configured"] is False
        assert data["channels"] == {"whatsapp": False, "email": False, "enrollment": False}


class TestCliCommands:

    def test_seed_demo_is_idempotent(self, app):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["seed-demo", "--amount", "99.90"])
        second = runner.invoke(args=["seed-demo"])

        assert first.exit_code == 0
        assert "Created tenant: polo-demo" in first.output
        assert "Created template: payment_approved" in first.output
        assert "Tenant already exists" in second.output
        assert Tenant.query.filter_by(slug="polo-demo").count() == 1
        form = FormDefinition.query.filter_by(slug="inscricao-demo").one()
        assert form.settings["payment_amount"] == 99.9
        assert MessageTemplate.query.filter_by(key="payment_approved_email").count() == 1

    def test_sweep_nothing_to_do(self, app):
        result = app.test_cli_runner().invoke(args=["sweep-payment-events"])

        assert result.exit_code == 0
        assert "No unprocessed payment events." in result.output

    def test_sweep_dry_run_lists_rows(self, app):
        record_id = ledger_service.record_if_new("mercadopago", "555", "payment", {}).event_record_id
        _make_old(db.session.get(PaymentEvent, record_id))

        with patch("enroll.services.reconciliation_service.reconcile") as mock_reconcile:
            result = app.test_cli_runner().invoke(args=["sweep-payment-events", "--dry-run"])

        assert result.exit_code == 0
        assert "[DRY RUN] mercadopago:555 attempts=0 -> pending" in result.output
        mock_reconcile.assert_not_called()

    @patch("enroll.services.reconciliation_service.dispatch_payment_approved")
    @patch("enroll.services.mercadopago_service.requests.get")
    def test_sweep_reprocesses(self, mock_get, mock_dispatch, app, seed_data, mock_response, payment_body):
        record_id = ledger_service.record_if_new("mercadopago", "1234567890", "payment", {}).event_record_id
        _make_old(db.session.get(PaymentEvent, record_id))
        mock_get.return_value = mock_response(200, payment_body(seed_data["submission_id"]))

        result = app.test_cli_runner().invoke(args=["sweep-payment-events"])

        assert result.exit_code == 0
        assert "mercadopago:1234567890 attempts=0 -> updated" in result.output
        assert db.session.get(PaymentEvent, record_id).processed_at is not None

    @patch("enroll.services.mercadopago_service.requests.get")
    def test_reconcile_pending_dry_run(self, mock_get, app, seed_data):
        _make_old(db.session.get(Submission, seed_data["submission_id"]))

        result = app.test_cli_runner().invoke(args=["reconcile-pending", "--dry-run"])

        assert result.exit_code == 0
        assert f"[DRY RUN] Would reconcile submission {seed_data['submission_id']}" in result.output
        mock_get.assert_not_called()

    @patch("enroll.services.reconciliation_service.dispatch_payment_approved")
    @patch("enroll.services.mercadopago_service.requests.get")
    def test_reconcile_pending(self, mock_get, mock_dispatch, app, seed_data, mock_response):
        _make_old(db.session.get(Submission, seed_data["submission_id"]))
        mock_get.return_value = mock_response(200, {"results": []})

        result = app.test_cli_runner().invoke(args=["reconcile-pending"])

        assert result.exit_code == 0
        assert "Processed 1: 0 updated, 1 unchanged, 0 failed." in result.output


class TestErrorHandlers:

    def test_json_404(self, client):
        resp = client.get("/does-not-exist")
        assert resp.status_code == 404
        assert resp.get_json() == {"error": "not_found"}

    def test_json_405(self, client):
        resp = client.delete("/api/payments/create-preference")
        assert resp.status_code == 405
        assert resp.get_json() == {"error": "method_not_allowed"}

    def test_index(self, client):
        assert client.get("/").get_json()["status"] == "ok"


class TestProductionConfig:

    def _required_env(self, monkeypatch):
        monkeypatch.setenv("SECRET_KEY", "s3cret")
        monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/enroll")
        monkeypatch.setenv("APP_URL", "https://inscricoes.example")

    def test_warns_without_ops_token(self, monkeypatch, caplog):
        self._required_env(monkeypatch)
        monkeypatch.delenv("OPS_API_TOKEN", raising=False)

        ProdConfig.validate()

        assert "OPS_API_TOKEN is not set" in caplog.text

    def test_quiet_with_ops_token(self, monkeypatch, caplog):
        self._required_env(monkeypatch)
        monkeypatch.setenv("OPS_API_TOKEN", "ops")

        ProdConfig.validate()

        assert "OPS_API_TOKEN" not in caplog.text

    def test_missing_required_still_raises(self, monkeypatch):
        monkeypatch.delenv("SECRET_KEY", raising=False)
        monkeypatch.delenv("DATABASE_URL", raising=False)

        with pytest.raises(RuntimeError):
            ProdConfig.validate()
