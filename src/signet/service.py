"""Core Signet service layer.

This module provides SignetService, which ties the audit ledger and the
webhook dispatcher to document lifecycle events.

Example:
    ```python
    from signet.service import SignetService

    async with SignetService.create() as signet:
        recorded = await signet.record_event(
            "doc_123",
            "signed",
            recipient_id="rcp_1",
            ip="203.0.113.7",
        )
        print(recorded.entry.entry_hash, recorded.dispatch.count)

        trail = await signet.ledger.read_trail("doc_123")
        assert trail.is_valid
    ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from signet.audit import AuditLedger
from signet.config import Settings
from signet.exceptions import ValidationError
from signet.logging import get_logger, log_context
from signet.models import AuditEntry, AuditEventType, DispatchSummary, WebhookEventType
from signet.storage import SignetStorage
from signet.verification import VerificationRegistry
from signet.webhooks import WebhookDispatcher, WebhookService

logger = get_logger(__name__)

LifecycleEvent = Literal[
    "created",
    "updated",
    "sent",
    "viewed",
    "signed",
    "completed",
    "deleted",
    "form_submitted",
]

# Lifecycle event -> (audit event type, webhook event type)
LIFECYCLE_EVENTS: dict[str, tuple[AuditEventType, WebhookEventType]] = {
    "created": ("DOCUMENT_CREATED", "document.created"),
    "updated": ("DOCUMENT_UPDATED", "document.updated"),
    "sent": ("DOCUMENT_SENT", "document.sent"),
    "viewed": ("RECIPIENT_VIEWED", "recipient.viewed"),
    "signed": ("COMPLETED_SIGNING", "recipient.completed"),
    "completed": ("DOCUMENT_COMPLETED", "document.completed"),
    "deleted": ("DOCUMENT_DELETED", "document.deleted"),
    "form_submitted": ("FORM_SUBMITTED", "form.submitted"),
}


class RecordedEvent(BaseModel):
    """Result of recording a lifecycle event."""

    model_config = ConfigDict(extra="forbid")

    entry: AuditEntry
    dispatch: DispatchSummary


@dataclass
class SignetService:
    """High-level Signet service.

    This service provides:
    - record_event(): append a lifecycle event to the audit chain and notify subscribers
    - ledger: read, export and certify audit trails
    - webhooks: manage subscriptions
    - dispatcher: dispatch events and process the retry queue
    - verification: third-party verification providers

    Attributes:
        storage: Relational storage backend.
        settings: Configuration settings.
    """

    storage: SignetStorage
    settings: Settings
    ledger: AuditLedger = field(init=False)
    dispatcher: WebhookDispatcher = field(init=False)
    webhooks: WebhookService = field(init=False)
    verification: VerificationRegistry = field(default_factory=VerificationRegistry)

    def __post_init__(self) -> None:
        self.ledger = AuditLedger(
            self.storage,
            max_attempts=self.settings.audit_append_max_attempts,
        )
        self.dispatcher = WebhookDispatcher(
            self.storage,
            timeout_seconds=self.settings.webhook_timeout_seconds,
            max_concurrent=self.settings.webhook_max_concurrent,
            max_retries=self.settings.webhook_max_retries,
            batch_size=self.settings.webhook_retry_batch_size,
        )
        self.webhooks = WebhookService(self.storage)

    @classmethod
    def create(cls, settings: Settings | None = None) -> SignetService:
        """Create a SignetService with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.
        """
        if settings is None:
            settings = Settings()

        return cls(
            storage=SignetStorage(
                database_url=settings.database_url,
                echo=settings.database_echo,
            ),
            settings=settings,
        )

    async def initialize(self) -> None:
        """Initialize the service (engine, tables)."""
        await self.storage.initialize()

    async def close(self) -> None:
        """Release the database engine."""
        await self.storage.close()

    async def __aenter__(self) -> SignetService:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def record_event(
        self,
        document_id: str,
        event: LifecycleEvent,
        *,
        user_id: str | None = None,
        recipient_id: str | None = None,
        payload: dict[str, Any] | None = None,
        ip: str | None = None,
        user_agent: str | None = None,
        team_id: str | None = None,
    ) -> RecordedEvent:
        """Record a lifecycle event in the audit chain and notify subscribers.

        The audit append must succeed; its errors propagate. Dispatch
        failures are logged and reported on the returned summary.

        Raises:
            ValidationError: If ``event`` is not a known lifecycle event.
            StorageError: If the audit append fails.
        """
        if event not in LIFECYCLE_EVENTS:
            raise ValidationError("event", f"unknown lifecycle event {event!r}")
        audit_type, webhook_type = LIFECYCLE_EVENTS[event]

        with log_context(document_id=document_id, lifecycle_event=event):
            entry = await self.ledger.append(
                document_id,
                audit_type,
                user_id=user_id,
                recipient_id=recipient_id,
                payload=payload,
                ip=ip,
                user_agent=user_agent,
            )

            # Identity fields are set last so payload keys cannot override them
            data: dict[str, Any] = {**(payload or {}), "documentId": document_id}
            if user_id:
                data["userId"] = user_id
            if recipient_id:
                data["recipientId"] = recipient_id

            try:
                dispatch = await self.dispatcher.dispatch(webhook_type, data, team_id=team_id)
            except Exception as e:
                logger.exception("Webhook dispatch failed", event_type=webhook_type)
                dispatch = DispatchSummary(success=False, error=str(e))

            logger.info(
                "Recorded lifecycle event",
                event_type=audit_type,
                sequence=entry.sequence,
                webhooks=dispatch.count,
            )
        return RecordedEvent(entry=entry, dispatch=dispatch)


__all__ = ["LIFECYCLE_EVENTS", "LifecycleEvent", "RecordedEvent", "SignetService"]
