"""Audit ledger models - hash-chained document event records."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .base import ensure_utc, generate_id, utc_now

# Audit event types for type safety
AuditEventType = Literal[
    "DOCUMENT_CREATED",
    "DOCUMENT_UPDATED",
    "DOCUMENT_SENT",
    "DOCUMENT_OPENED",
    "RECIPIENT_VIEWED",
    "FIELD_SIGNED",
    "COMPLETED_SIGNING",
    "DOCUMENT_COMPLETED",
    "DOCUMENT_DELETED",
    "FORM_SUBMITTED",
]

ALL_AUDIT_EVENT_TYPES: list[AuditEventType] = [
    "DOCUMENT_CREATED",
    "DOCUMENT_UPDATED",
    "DOCUMENT_SENT",
    "DOCUMENT_OPENED",
    "RECIPIENT_VIEWED",
    "FIELD_SIGNED",
    "COMPLETED_SIGNING",
    "DOCUMENT_COMPLETED",
    "DOCUMENT_DELETED",
    "FORM_SUBMITTED",
]


class AuditEntry(BaseModel):
    """One immutable record in a document's audit chain.

    Every lifecycle event on a document is appended here. Each entry
    commits to its predecessor through ``previous_hash`` so that any
    retroactive edit is detectable by recomputation.

    Attributes:
        id: Unique identifier for this entry.
        document_id: Document the event belongs to.
        user_id: Acting user (optional).
        recipient_id: Acting recipient (optional).
        event_type: Lifecycle event type.
        payload: Event-specific data (optional).
        timestamp: When the event was recorded (UTC, millisecond precision).
        ip: Client IP address (optional).
        user_agent: Client user agent (optional).
        entry_hash: SHA-256 over the canonical entry serialization.
        previous_hash: entry_hash of the preceding entry, "" for the first.
        sequence: 0-based position of this entry in the document's chain.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("aud"))
    document_id: str = Field(min_length=1, description="Document the event belongs to")
    user_id: str | None = Field(default=None, description="Acting user")
    recipient_id: str | None = Field(default=None, description="Acting recipient")
    event_type: AuditEventType = Field(description="Lifecycle event type")
    payload: dict[str, Any] | None = Field(default=None, description="Event-specific data")
    timestamp: datetime = Field(default_factory=utc_now, description="When the event occurred")
    ip: str | None = Field(default=None, description="Client IP address")
    user_agent: str | None = Field(default=None, description="Client user agent")
    entry_hash: str = Field(default="", description="Hash committing to this entry")
    previous_hash: str = Field(default="", description="Hash of the preceding entry")
    sequence: int = Field(default=0, ge=0, description="Position in the document chain")

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def __str__(self) -> str:
        """String representation showing event and document."""
        return f"AuditEntry({self.event_type} on {self.document_id} #{self.sequence})"


class AuditTrail(BaseModel):
    """Ordered audit entries for a document plus the verification verdict.

    Verification failure is informational: ``entries`` is always the full
    stored sequence, and consumers that need integrity must check
    ``is_valid`` themselves.
    """

    model_config = ConfigDict(extra="forbid")

    document_id: str
    entries: list[AuditEntry] = Field(default_factory=list)
    is_valid: bool = True
    broken_at: str | None = Field(
        default=None, description="ID of the first entry that failed verification"
    )

    @property
    def head_hash(self) -> str:
        """entry_hash of the latest entry, "" for an empty trail."""
        return self.entries[-1].entry_hash if self.entries else ""


class AuditExportEvent(BaseModel):
    """Flattened, display-ready view of a single audit entry."""

    model_config = ConfigDict(extra="forbid")

    timestamp: str
    event_type: AuditEventType
    user: str
    recipient: str
    ip: str
    user_agent: str
    data: dict[str, Any] | None = None


class AuditTrailExport(BaseModel):
    """Audit trail shaped for export to reports or PDF renderers."""

    model_config = ConfigDict(extra="forbid")

    document_id: str
    audit_trail_valid: bool
    head_hash: str
    events: list[AuditExportEvent] = Field(default_factory=list)


class CertificateRecipient(BaseModel):
    """A document recipient as supplied by the caller."""

    model_config = ConfigDict(extra="forbid")

    id: str
    email: str
    name: str | None = None


class CertificateSigner(BaseModel):
    """A recipient line on a completion certificate."""

    model_config = ConfigDict(extra="forbid")

    name: str
    email: str
    completed_at: str
    ip: str


class CompletionCertificate(BaseModel):
    """Data for a certificate of completion.

    Only produced from a trail that verified; the head hash pins the
    certificate to the exact chain it was generated from.
    """

    model_config = ConfigDict(extra="forbid")

    certificate_id: str
    document_id: str
    document_title: str
    completed_at: str
    head_hash: str
    recipients: list[CertificateSigner] = Field(default_factory=list)


__all__ = [
    "ALL_AUDIT_EVENT_TYPES",
    "AuditEntry",
    "AuditEventType",
    "AuditExportEvent",
    "AuditTrail",
    "AuditTrailExport",
    "CertificateRecipient",
    "CertificateSigner",
    "CompletionCertificate",
]
