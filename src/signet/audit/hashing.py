"""Canonical serialization and hash verification for audit chains.

The serialization is fixed so any implementation can recompute a hash
from stored fields:

- a JSON object with keys in the order documentId, userId, recipientId,
  eventType, data, timestamp, ip, userAgent, previousHash
- compact separators, non-ASCII kept as UTF-8
- every value a string; absent optional fields are ""
- data is the payload as compact JSON with sorted keys ("" when absent)
- timestamp is UTC ISO-8601 with milliseconds and a Z suffix
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from signet.models.base import isoformat_millis

if TYPE_CHECKING:
    from signet.models import AuditEntry


def canonical_payload(payload: dict[str, Any] | None) -> str:
    """Serialize an entry payload deterministically ("" when absent)."""
    if payload is None:
        return ""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def normalize_payload(payload: dict[str, Any] | None) -> dict[str, Any] | None:
    """Return the payload exactly as it will read back from storage.

    Non-JSON values (datetimes, UUIDs, ...) become strings so the stored
    payload re-serializes to the same canonical text.
    """
    if payload is None:
        return None
    normalized: dict[str, Any] = json.loads(canonical_payload(payload))
    return normalized


def canonical_entry(entry: AuditEntry) -> str:
    """Serialize the hashed fields of an entry."""
    fields = {
        "documentId": entry.document_id,
        "userId": entry.user_id or "",
        "recipientId": entry.recipient_id or "",
        "eventType": entry.event_type,
        "data": canonical_payload(entry.payload),
        "timestamp": isoformat_millis(entry.timestamp),
        "ip": entry.ip or "",
        "userAgent": entry.user_agent or "",
        "previousHash": entry.previous_hash,
    }
    return json.dumps(fields, separators=(",", ":"), ensure_ascii=False)


def compute_entry_hash(entry: AuditEntry) -> str:
    """SHA-256 hex digest of the canonical entry serialization."""
    return hashlib.sha256(canonical_entry(entry).encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ChainVerification:
    """Result of walking a chain.

    Attributes:
        is_valid: True if every hash and link checked out.
        broken_at: ID of the first failing entry, None when valid.
        reason: Which check failed ("hash" or "link").
        checked: Number of entries verified before stopping.
    """

    is_valid: bool
    broken_at: str | None = None
    reason: str | None = None
    checked: int = 0


def verify_chain(entries: Sequence[AuditEntry]) -> ChainVerification:
    """Recompute every hash and check every link, stopping at the first mismatch.

    Args:
        entries: A document's entries in chain order.

    Returns:
        ChainVerification. An empty chain is valid.
    """
    expected_previous = ""
    for index, entry in enumerate(entries):
        if entry.previous_hash != expected_previous:
            return ChainVerification(False, entry.id, "link", index)
        if compute_entry_hash(entry) != entry.entry_hash:
            return ChainVerification(False, entry.id, "hash", index)
        expected_previous = entry.entry_hash

    return ChainVerification(True, checked=len(entries))


__all__ = [
    "ChainVerification",
    "canonical_entry",
    "canonical_payload",
    "compute_entry_hash",
    "normalize_payload",
    "verify_chain",
]
