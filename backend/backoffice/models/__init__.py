"""ORM models. Importing this package registers every table on ``Base.metadata``."""

from backoffice.models.chat_log import ChatLog
from backoffice.models.document import (
    Document,
    DocumentChunk,
    DocumentPhase,
    DocumentProcessingLog,
    DocumentStatus,
)
from backoffice.models.invoice import Invoice
from backoffice.models.tenant import AdminUser, CustomerRole, CustomerUser, Tenant, TenantProduct
from backoffice.models.test_run import TestQuestion, TestRun, TestRunPhase, TestRunStatus
from backoffice.models.test_template import TestTemplate

__all__ = [
    "AdminUser",
    "ChatLog",
    "CustomerRole",
    "CustomerUser",
    "Document",
    "DocumentChunk",
    "DocumentPhase",
    "DocumentProcessingLog",
    "DocumentStatus",
    "Invoice",
    "Tenant",
    "TenantProduct",
    "TestQuestion",
    "TestRun",
    "TestRunPhase",
    "TestRunStatus",
    "TestTemplate",
]
