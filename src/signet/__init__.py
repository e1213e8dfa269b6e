"""Signet: tamper-evident audit trails and signed webhooks for e-signatures.

Every lifecycle event on a document is appended to a per-document hash
chain, and subscribed endpoints are notified with HMAC-signed webhooks
that are retried on a fixed backoff schedule.

Quick Start:
    from signet.service import SignetService

    async with SignetService.create() as signet:
        await signet.record_event("doc_123", "sent", user_id="user_1")
        await signet.record_event("doc_123", "signed", recipient_id="rcp_1")

        trail = await signet.ledger.read_trail("doc_123")
        assert trail.is_valid

Components:
    - AuditLedger: Append-only hash chain per document
    - WebhookDispatcher: Signed fan-out, delivery records, retry queue
    - WebhookService: Subscription management with ownership checks
    - VerificationRegistry: Pluggable third-party verification providers
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    AuthorizationError,
    ChainConflictError,
    ChainIntegrityError,
    ConfigurationError,
    DeliveryError,
    NotFoundError,
    SignetError,
    StorageError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    log_context,
)

# Models
from .models import (
    AuditEntry,
    AuditTrail,
    DispatchSummary,
    RetrySummary,
    WebhookDeliveryRecord,
    WebhookRetryTask,
    WebhookSubscription,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "settings",
    # Exceptions
    "SignetError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "ChainConflictError",
    "ChainIntegrityError",
    "DeliveryError",
    "ConfigurationError",
    "AuthorizationError",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "log_context",
    # Models
    "AuditEntry",
    "AuditTrail",
    "DispatchSummary",
    "RetrySummary",
    "WebhookDeliveryRecord",
    "WebhookRetryTask",
    "WebhookSubscription",
]
