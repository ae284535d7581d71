# Models package — import all models here so Alembic can discover them.

from enroll.models.tenant import Tenant  # noqa: F401
from enroll.models.form import FormDefinition, FormField  # noqa: F401
from enroll.models.submission import Submission  # noqa: F401
from enroll.models.payment_event import PaymentEvent  # noqa: F401
from enroll.models.integration import (  # noqa: F401
    MercadoPagoGlobalConfig,
    MercadoPagoTenantConfig,
    OutboundWebhookGlobalConfig,
    WhatsAppGlobalConfig,
)
from enroll.models.message import MessageLog, MessageTemplate  # noqa: F401
from enroll.models.enrollment_log import EnrollmentLog  # noqa: F401
from enroll.models.audit import AuditEvent  # noqa: F401
