"""Tamper-evident audit ledger for Signet.

Example:
    ```python
    from signet.audit import AuditLedger

    ledger = AuditLedger(storage)
    await ledger.append("doc_1", "DOCUMENT_CREATED", user_id="user_1")
    trail = await ledger.read_trail("doc_1")
    ```
"""

from .hashing import (
    ChainVerification,
    canonical_entry,
    canonical_payload,
    compute_entry_hash,
    verify_chain,
)
from .ledger import AuditLedger

__all__ = [
    "AuditLedger",
    "ChainVerification",
    "canonical_entry",
    "canonical_payload",
    "compute_entry_hash",
    "verify_chain",
]
