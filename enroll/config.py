import logging
import os

logger = logging.getLogger(__name__)


def _env_flag(name, default=""):
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: some PaaS providers (Railway, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    # --- Public base URL (server value wins, public-client value is the fallback) ---
    APP_URL = os.environ.get("APP_URL")
    PUBLIC_APP_URL = os.environ.get("PUBLIC_APP_URL")

    # --- Mercado Pago ---
    # Environment fallback only: global / per-tenant configs stored in the
    # database take precedence (see credential_service).
    MP_ACCESS_TOKEN = os.environ.get("MP_ACCESS_TOKEN")
    MP_WEBHOOK_SECRET = os.environ.get("MP_WEBHOOK_SECRET")
    MP_API_BASE_URL = os.environ.get("MP_API_BASE_URL", "https://api.mercadopago.com")
    MP_STATEMENT_DESCRIPTOR = os.environ.get("MP_STATEMENT_DESCRIPTOR", "IWE")
    PAYMENT_PROVIDER_TIMEOUT_SECONDS = float(
        os.environ.get("PAYMENT_PROVIDER_TIMEOUT_SECONDS", 15)
    )

    # --- Webhook verification ---
    WEBHOOK_REPLAY_WINDOW_SECONDS = int(
        os.environ.get("WEBHOOK_REPLAY_WINDOW_SECONDS", 600)
    )

    # --- Email (Resend) ---
    RESEND_API_KEY = os.environ.get("RESEND_API_KEY")
    RESEND_FROM = os.environ.get("RESEND_FROM")             # e.g. "IWE <no-reply@iwe.edu.br>"
    RESEND_REPLY_TO = os.environ.get("RESEND_REPLY_TO")
    RESEND_API_URL = os.environ.get("RESEND_API_URL", "https://api.resend.com/emails")

    # --- Outbound notifications (WhatsApp gateway, LMS webhook, email) ---
    OUTBOUND_TIMEOUT_SECONDS = float(os.environ.get("OUTBOUND_TIMEOUT_SECONDS", 10))

    # --- Background tasks ---
    TASK_QUEUE_EAGER = _env_flag("TASK_QUEUE_EAGER")
    TASK_QUEUE_WORKERS = int(os.environ.get("TASK_QUEUE_WORKERS", 2))

    # --- Ledger recovery sweep ---
    EVENT_SWEEP_AGE_MINUTES = int(os.environ.get("EVENT_SWEEP_AGE_MINUTES", 10))
    EVENT_MAX_ATTEMPTS = int(os.environ.get("EVENT_MAX_ATTEMPTS", 5))

    # --- Ops endpoints (reconcile sweep, integration status) ---
    OPS_API_TOKEN = os.environ.get("OPS_API_TOKEN")

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if not (os.environ.get("APP_URL") or os.environ.get("PUBLIC_APP_URL")):
            missing.append("APP_URL")
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    # Run background work inline so local debugging sees every log line.
    TASK_QUEUE_EAGER = _env_flag("TASK_QUEUE_EAGER", "true")


class TestConfig(Config):
    """Testing — in-memory SQLite, tasks run inline, no rate limits."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    APP_URL = "https://inscricoes.test"
    PUBLIC_APP_URL = None
    MP_ACCESS_TOKEN = "TEST-env-access-token"
    MP_WEBHOOK_SECRET = None
    MP_API_BASE_URL = "https://api.mercadopago.test"
    RESEND_API_KEY = "re_test_fake"
    RESEND_FROM = "IWE <no-reply@inscricoes.test>"
    RESEND_REPLY_TO = None
    RESEND_API_URL = "https://api.resend.test/emails"
    OPS_API_TOKEN = "ops-test-token"
    TASK_QUEUE_EAGER = True
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    SERVER_NAME = "localhost"

    @staticmethod
    def validate():
        """Skip validation in test mode — everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False

    @staticmethod
    def validate():
        """Base checks, plus a warning when the ops endpoints would be open."""
        Config.validate()
        if not os.environ.get("OPS_API_TOKEN"):
            logger.warning(
                "OPS_API_TOKEN is not set: /api/payments/reconcile and "
                "/api/integration/* are reachable without a token"
            )


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
