"""Storage backends for Signet.

This module provides the storage layer for persisting audit chains and
webhook state to a relational database through SQLAlchemy's async engine.

Example:
    ```python
    from signet.storage import SignetStorage

    async with SignetStorage() as storage:
        entries = await storage.get_audit_trail("doc_123")
    ```
"""

from .client import SignetStorage
from .retry import db_retry
from .tables import Base

__all__ = [
    "Base",
    "SignetStorage",
    "db_retry",
]
