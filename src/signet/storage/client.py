"""Relational storage client for Signet.

This module provides the main SignetStorage class that combines
all storage operations through mixins.

Example:
    ```python
    from signet.storage import SignetStorage

    async with SignetStorage("sqlite+aiosqlite:///./signet.db") as storage:
        head = await storage.get_chain_head("doc_123")
        subs = await storage.get_subscriptions_for_event("document.completed")
    ```
"""

from __future__ import annotations

from .audit import AuditMixin
from .base import StorageBase
from .webhook import WebhookMixin


class SignetStorage(AuditMixin, WebhookMixin, StorageBase):
    """Async SQLAlchemy storage client for Signet.

    This class combines functionality from multiple mixins:
    - AuditMixin: get_chain_head, insert_audit_entry, get_audit_trail
    - WebhookMixin: subscriptions, delivery records, retry tasks

    Example:
        ```python
        storage = SignetStorage()
        await storage.initialize()
        trail = await storage.get_audit_trail("doc_123")
        await storage.close()
        ```
    """

    async def __aenter__(self) -> SignetStorage:
        """Async context manager entry."""
        await self.initialize()
        return self


__all__ = ["SignetStorage"]
