"""Append-only, hash-chained audit ledger per document.

Appends for one document are serialized twice over: an in-process lock
keeps local writers in line, and the store's conditional insert catches
writers in other processes. A writer that loses the race re-reads the
head and tries again.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import weakref
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from signet.exceptions import ChainConflictError, ChainIntegrityError
from signet.logging import log_context
from signet.models import (
    AuditEntry,
    AuditEventType,
    AuditExportEvent,
    AuditTrail,
    AuditTrailExport,
    CertificateRecipient,
    CertificateSigner,
    CompletionCertificate,
    isoformat_millis,
    truncate_to_millis,
    utc_now,
)

from .hashing import compute_entry_hash, normalize_payload, verify_chain

if TYPE_CHECKING:
    from signet.storage import SignetStorage

logger = logging.getLogger(__name__)

_ONE_MILLISECOND = timedelta(milliseconds=1)


class AuditLedger:
    """Tamper-evident audit trail for documents.

    Example:
        ```python
        ledger = AuditLedger(storage)

        await ledger.append("doc_1", "DOCUMENT_CREATED", user_id="user_1")
        await ledger.append("doc_1", "COMPLETED_SIGNING", recipient_id="rcp_1")

        trail = await ledger.read_trail("doc_1")
        assert trail.is_valid
        ```
    """

    def __init__(
        self,
        storage: SignetStorage,
        max_attempts: int = 5,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the ledger.

        Args:
            storage: SignetStorage instance holding the audit table.
            max_attempts: Attempts to claim a contended chain head.
            clock: Source of entry timestamps.
        """
        self._storage = storage
        self._max_attempts = max_attempts
        self._clock = clock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, document_id: str) -> asyncio.Lock:
        lock = self._locks.get(document_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[document_id] = lock
        return lock

    async def append(
        self,
        document_id: str,
        event_type: AuditEventType,
        *,
        user_id: str | None = None,
        recipient_id: str | None = None,
        payload: dict[str, Any] | None = None,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> AuditEntry:
        """Append an event to a document's chain.

        Args:
            document_id: Document the event belongs to.
            event_type: Lifecycle event type.
            user_id: Acting user (optional).
            recipient_id: Acting recipient (optional).
            payload: Event-specific data (optional).
            ip: Client IP (optional).
            user_agent: Client user agent (optional).

        Returns:
            The persisted AuditEntry.

        Raises:
            StorageError: If the store fails. Not retried here.
            ChainConflictError: If the head stayed contended for every attempt.
        """
        normalized = normalize_payload(payload)

        with log_context(document_id=document_id):
            async with self._lock_for(document_id):
                for attempt in range(1, self._max_attempts + 1):
                    head = await self._storage.get_chain_head(document_id)
                    entry = self._next_entry(
                        head,
                        document_id=document_id,
                        event_type=event_type,
                        user_id=user_id,
                        recipient_id=recipient_id,
                        payload=normalized,
                        ip=ip,
                        user_agent=user_agent,
                    )
                    try:
                        await self._storage.insert_audit_entry(entry)
                    except ChainConflictError:
                        logger.warning(
                            "Audit chain head moved during append (attempt %d/%d)",
                            attempt,
                            self._max_attempts,
                        )
                        continue

                    logger.debug("Appended %s at sequence %d", event_type, entry.sequence)
                    return entry

            raise ChainConflictError(document_id, attempts=self._max_attempts)

    def _next_entry(self, head: AuditEntry | None, **fields: Any) -> AuditEntry:
        """Build and hash the entry that extends ``head``.

        Timestamps are strictly increasing within a chain so that timestamp
        order and append order agree.
        """
        timestamp = truncate_to_millis(self._clock())
        if head is not None and timestamp <= head.timestamp:
            timestamp = head.timestamp + _ONE_MILLISECOND

        entry = AuditEntry(
            timestamp=timestamp,
            previous_hash=head.entry_hash if head is not None else "",
            sequence=head.sequence + 1 if head is not None else 0,
            **fields,
        )
        return entry.model_copy(update={"entry_hash": compute_entry_hash(entry)})

    async def read_trail(self, document_id: str) -> AuditTrail:
        """Load a document's trail and verify it.

        A broken chain is reported through ``is_valid``/``broken_at``; the
        full entry list is still returned.

        Raises:
            StorageError: If the store cannot be read.
        """
        entries = await self._storage.get_audit_trail(document_id)

        verification = verify_chain(entries)
        if not verification.is_valid:
            logger.warning(
                "Audit chain for %s failed %s check at entry %s",
                document_id,
                verification.reason,
                verification.broken_at,
            )

        return AuditTrail(
            document_id=document_id,
            entries=entries,
            is_valid=verification.is_valid,
            broken_at=verification.broken_at,
        )

    async def export_trail(self, document_id: str) -> AuditTrailExport:
        """Flatten a trail into display-ready events."""
        trail = await self.read_trail(document_id)
        return AuditTrailExport(
            document_id=document_id,
            audit_trail_valid=trail.is_valid,
            head_hash=trail.head_hash,
            events=[
                AuditExportEvent(
                    timestamp=isoformat_millis(entry.timestamp),
                    event_type=entry.event_type,
                    user=entry.user_id or "System",
                    recipient=entry.recipient_id or "N/A",
                    ip=entry.ip or "N/A",
                    user_agent=entry.user_agent or "N/A",
                    data=entry.payload,
                )
                for entry in trail.entries
            ],
        )

    async def generate_completion_certificate(
        self,
        document_id: str,
        document_title: str,
        recipients: Sequence[CertificateRecipient],
        completed_at: datetime | None = None,
    ) -> CompletionCertificate:
        """Build a certificate of completion from a verified trail.

        Args:
            document_id: Completed document.
            document_title: Title printed on the certificate.
            recipients: Recipients of the document.
            completed_at: Completion time. Defaults to the latest
                DOCUMENT_COMPLETED entry, then to now.

        Raises:
            ChainIntegrityError: If the trail does not verify.
        """
        trail = await self.read_trail(document_id)
        if not trail.is_valid:
            raise ChainIntegrityError(document_id, trail.broken_at)

        if completed_at is None:
            completed = [e for e in trail.entries if e.event_type == "DOCUMENT_COMPLETED"]
            completed_at = completed[-1].timestamp if completed else utc_now()
        completed_iso = isoformat_millis(completed_at)

        signings = {
            e.recipient_id: e
            for e in trail.entries
            if e.event_type == "COMPLETED_SIGNING" and e.recipient_id
        }

        signers = []
        for recipient in recipients:
            signing = signings.get(recipient.id)
            signers.append(
                CertificateSigner(
                    name=recipient.name or recipient.email,
                    email=recipient.email,
                    completed_at=isoformat_millis(signing.timestamp) if signing else "N/A",
                    ip=(signing.ip or "N/A") if signing else "N/A",
                )
            )

        certificate_id = hashlib.sha256(
            f"{document_id}-{document_title}-{completed_iso}".encode()
        ).hexdigest()[:16]

        return CompletionCertificate(
            certificate_id=certificate_id,
            document_id=document_id,
            document_title=document_title,
            completed_at=completed_iso,
            head_hash=trail.head_hash,
            recipients=signers,
        )


__all__ = ["AuditLedger"]
