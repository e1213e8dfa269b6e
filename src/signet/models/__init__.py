"""Domain models for Signet.

Audit Ledger:
    - AuditEntry: One hash-linked lifecycle event on a document
    - AuditTrail: Ordered entries plus the chain verification verdict
    - AuditTrailExport, CompletionCertificate: Report-shaped views

Webhooks:
    - WebhookSubscription: Registered delivery target
    - WebhookEnvelope: Signed event body
    - WebhookDeliveryRecord: Outcome of one delivery attempt
    - WebhookRetryTask: Pending retry state
    - DispatchSummary, RetrySummary: Operation results

Verification:
    - VerificationRequest, VerificationResult: Provider capability I/O
"""

from .audit import (
    ALL_AUDIT_EVENT_TYPES,
    AuditEntry,
    AuditEventType,
    AuditExportEvent,
    AuditTrail,
    AuditTrailExport,
    CertificateRecipient,
    CertificateSigner,
    CompletionCertificate,
)
from .base import ensure_utc, generate_id, isoformat_millis, truncate_to_millis, utc_now
from .verification import VerificationCategory, VerificationRequest, VerificationResult
from .webhook import (
    ALL_EVENT_TYPES,
    DeliveryOutcome,
    DispatchSummary,
    RetryAction,
    RetryOutcome,
    RetrySummary,
    WebhookDeliveryRecord,
    WebhookEnvelope,
    WebhookEventType,
    WebhookRetryTask,
    WebhookSubscription,
    WebhookSubscriptionCreate,
    WebhookSubscriptionUpdate,
)

__all__ = [
    # Helpers
    "ensure_utc",
    "generate_id",
    "isoformat_millis",
    "truncate_to_millis",
    "utc_now",
    # Audit
    "ALL_AUDIT_EVENT_TYPES",
    "AuditEntry",
    "AuditEventType",
    "AuditExportEvent",
    "AuditTrail",
    "AuditTrailExport",
    "CertificateRecipient",
    "CertificateSigner",
    "CompletionCertificate",
    # Webhooks
    "ALL_EVENT_TYPES",
    "DeliveryOutcome",
    "DispatchSummary",
    "RetryAction",
    "RetryOutcome",
    "RetrySummary",
    "WebhookDeliveryRecord",
    "WebhookEnvelope",
    "WebhookEventType",
    "WebhookRetryTask",
    "WebhookSubscription",
    "WebhookSubscriptionCreate",
    "WebhookSubscriptionUpdate",
    # Verification
    "VerificationCategory",
    "VerificationRequest",
    "VerificationResult",
]
