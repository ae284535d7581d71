import os
import logging

import click
from flask import Flask, jsonify

from enroll.config import config_by_name
from enroll.extensions import db, migrate, limiter, task_queue


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    task_queue.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from enroll import models  # noqa: F401

    # --- Register blueprints ---
    from enroll.blueprints.webhooks import webhooks_bp
    from enroll.blueprints.payments import payments_bp
    from enroll.blueprints.public import public_bp
    from enroll.blueprints.integration import integration_bp

    app.register_blueprint(webhooks_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(public_bp)
    app.register_blueprint(integration_bp)

    # --- Root route ---
    @app.route("/")
    def index():
        return jsonify({"service": "enroll-payments", "status": "ok"})

    # --- Error handlers (JSON API only) ---
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "not_found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "method_not_allowed"}), 405

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"error": "rate_limited", "detail": str(e.description)}), 429

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"error": "internal_error"}), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Control referrer information
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # JSON only: nothing to load, nothing to frame
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none';"
        )
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-demo")
    @click.option("--amount", default="150.00", help="Enrollment fee for the demo form")
    def seed_demo(amount):
        """Create a demo tenant, a paid form and the two payment templates.

        Usage:
            flask seed-demo
            flask seed-demo --amount 99.90
        """
        from enroll.models.tenant import Tenant
        from enroll.models.form import FormDefinition, FormField
        from enroll.models.message import MessageTemplate

        # --- 1. Tenant ---
        tenant = Tenant.query.filter_by(slug="polo-demo").first()
        if tenant:
            click.echo(f"Tenant already exists: {tenant.slug}")
        else:
            tenant = Tenant(name="Polo Demo", slug="polo-demo", status=True)
            db.session.add(tenant)
            db.session.flush()
            click.echo(f"Created tenant: {tenant.slug}")

        # --- 2. Paid form ---
        form = FormDefinition.query.filter_by(slug="inscricao-demo").first()
        if form:
            click.echo(f"Form already exists: {form.slug}")
        else:
            form = FormDefinition(
                tenant_id=tenant.id,
                name="Inscrição Demo",
                slug="inscricao-demo",
                settings={
                    "require_payment": True,
                    "payment_amount": float(amount),
                    "form_title": "Inscrição Demo",
                    "success_message": "Inscrição recebida!",
                },
            )
            db.session.add(form)
            db.session.flush()
            for position, (name, label, type_, required) in enumerate([
                ("nome", "Nome completo", "text", True),
                ("email", "E-mail", "email", True),
                ("telefone", "Telefone", "phone", True),
                ("cpf", "CPF", "cpf", False),
                ("curso", "Curso", "text", False),
            ]):
                db.session.add(FormField(
                    form_id=form.id, name=name, label=label, type=type_,
                    required=required, position=position,
                ))
            click.echo(f"Created form: {form.slug}")

        # --- 3. Global templates ---
        templates = {
            "payment_approved": (
                None,
                "Olá {{nome}}! Seu pagamento de {{valor_formatado}} para {{curso}} "
                "foi confirmado. Bem-vindo(a) ao {{polo}}!",
            ),
            "payment_approved_email": (
                "Pagamento confirmado — {{curso}}",
                "<p>Olá {{nome}},</p><p>Recebemos seu pagamento de "
                "{{valor_formatado}} para {{curso}}.</p>",
            ),
        }
        for key, (title, content) in templates.items():
            exists = MessageTemplate.query.filter_by(
                key=key, tenant_id=None, form_id=None
            ).first()
            if exists:
                continue
            db.session.add(MessageTemplate(key=key, title=title, content=content))
            click.echo(f"Created template: {key}")

        db.session.commit()

        click.echo("")
        click.echo("=" * 60)
        click.echo("Demo data ready")
        click.echo("=" * 60)
        click.echo(f"  Tenant:  {tenant.name} (id: {tenant.id})")
        click.echo(f"  Form:    {form.name} (id: {form.id})")
        click.echo("=" * 60)

    @app.cli.command("sweep-payment-events")
    @click.option("--older-than", "older_than", default=None, type=int,
                  help="Minutes a ledger row must be unprocessed (default EVENT_SWEEP_AGE_MINUTES).")
    @click.option("--limit", default=50, type=int, help="Max rows per run.")
    @click.option("--dry-run", is_flag=True, help="List the rows without reprocessing them.")
    def sweep_payment_events(older_than, limit, dry_run):
        """Re-run reconciliation for webhook events that never finished.

        Usage:
            flask sweep-payment-events
            flask sweep-payment-events --older-than 30 --dry-run
        """
        from enroll.services.reconciliation_service import sweep_unprocessed_events

        swept = sweep_unprocessed_events(
            older_than_minutes=older_than, limit=limit, dry_run=dry_run
        )

        if not swept:
            click.echo("No unprocessed payment events.")
            return

        prefix = "[DRY RUN] " if dry_run else ""
        for event, result in swept:
            outcome = result.outcome if result else "pending"
            click.echo(
                f"  {prefix}{event.provider}:{event.external_id} "
                f"attempts={event.attempts} -> {outcome}"
            )
        click.echo(f"\n{prefix}{len(swept)} event(s) swept.")

    @app.cli.command("reconcile-pending")
    @click.option("--age-minutes", default=10, type=int, help="Only submissions older than this.")
    @click.option("--limit", default=25, type=int, help="Max submissions per run.")
    @click.option("--dry-run", is_flag=True, help="List the submissions without calling Mercado Pago.")
    def reconcile_pending(age_minutes, limit, dry_run):
        """Pull Mercado Pago state for stale PENDING submissions.

        Usage:
            flask reconcile-pending
            flask reconcile-pending --age-minutes 60 --limit 50
        """
        from datetime import datetime, timedelta, timezone

        from enroll.models.submission import Submission
        from enroll.services.reconciliation_service import reconcile_pending_submissions

        if dry_run:
            cutoff = datetime.now(timezone.utc) - timedelta(minutes=age_minutes)
            pending = (
                Submission.query
                .filter_by(payment_status=Submission.PENDING)
                .filter(Submission.created_at < cutoff)
                .order_by(Submission.created_at.asc())
                .limit(limit)
                .all()
            )
            for submission in pending:
                click.echo(f"  [DRY RUN] Would reconcile submission {submission.id}")
            click.echo(f"\n[DRY RUN] {len(pending)} submission(s) pending.")
            return

        summary = reconcile_pending_submissions(age_minutes=age_minutes, limit=limit)
        for row in summary["results"]:
            if "error" in row:
                click.echo(f"  FAILED {row['submission_id']}: {row['error']}")
            else:
                click.echo(f"  {row['submission_id']} -> {row['status']}")
        click.echo(
            f"\nProcessed {summary['processed']}: {summary['updated']} updated, "
            f"{summary['unchanged']} unchanged, {summary['failed']} failed."
        )
