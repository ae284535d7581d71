"""Integration config models (written by the settings UI, read-only here).

- MercadoPagoGlobalConfig: deployment-wide credentials (single row, scope="global").
- MercadoPagoTenantConfig: per-tenant credentials, used when no global row is active.
- WhatsAppGlobalConfig: Evolution API gateway used for payment confirmations.
- OutboundWebhookGlobalConfig: LMS enrollment webhook (n8n -> Moodle).

is_active = False means "treat as absent" everywhere in the resolver.
"""

import uuid

from enroll.extensions import db


class MercadoPagoGlobalConfig(db.Model):
    __tablename__ = "mercadopago_global_configs"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    scope = db.Column(db.String(20), unique=True, nullable=False, default="global")
    access_token = db.Column(db.Text, nullable=False)
    public_key = db.Column(db.Text, nullable=True)
    webhook_secret = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_production = db.Column(db.Boolean, default=False, nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self):
        return f"<MercadoPagoGlobalConfig active={self.is_active} prod={self.is_production}>"


class MercadoPagoTenantConfig(db.Model):
    __tablename__ = "mercadopago_configs"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id = db.Column(
        db.String(36), db.ForeignKey("tenants.id"), unique=True, nullable=False
    )
    access_token = db.Column(db.Text, nullable=False)
    public_key = db.Column(db.Text, nullable=True)
    webhook_secret = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_production = db.Column(db.Boolean, default=False, nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    tenant = db.relationship("Tenant")

    def __repr__(self):
        return f"<MercadoPagoTenantConfig tenant={self.tenant_id} active={self.is_active}>"


class WhatsAppGlobalConfig(db.Model):
    __tablename__ = "whatsapp_global_configs"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    api_base_url = db.Column(db.String(500), nullable=False)  # e.g. https://evo.example.com
    instance_id = db.Column(db.String(255), nullable=False)
    token = db.Column(db.Text, nullable=False)  # sent as the `apikey` header
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self):
        return f"<WhatsAppGlobalConfig instance={self.instance_id} active={self.is_active}>"


class OutboundWebhookGlobalConfig(db.Model):
    __tablename__ = "outbound_webhook_global_configs"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    webhook_url = db.Column(db.String(1000), nullable=False)
    auth_token = db.Column(db.Text, nullable=True)  # optional Bearer token
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self):
        return f"<OutboundWebhookGlobalConfig active={self.is_active}>"
