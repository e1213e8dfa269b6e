"""Audit chain operations for Signet storage.

Provides the chain-head lookup, the conditional insert used by appends,
and ordered trail reads. There is no update or delete.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from signet.exceptions import ChainConflictError, StorageError
from signet.storage.base import storage_errors
from signet.storage.retry import db_retry
from signet.storage.tables import AuditEntryRow

if TYPE_CHECKING:
    from signet.models import AuditEntry


class AuditMixin:
    """Mixin providing audit chain operations for SignetStorage.

    This mixin expects the following attributes/methods from the base class:
    - session() -> AsyncSession
    - _row_to_model(row, model_class) -> ModelT
    - _model_to_columns(model) -> dict
    """

    session: Any
    _row_to_model: Any
    _model_to_columns: Any

    async def get_chain_head(self, document_id: str) -> AuditEntry | None:
        """Get the latest entry of a document's chain.

        Not retried: it is the first half of an append.

        Args:
            document_id: Document to look up.

        Returns:
            The most recent AuditEntry, or None for an empty chain.

        Raises:
            StorageError: If the store cannot be queried.
        """
        from signet.models import AuditEntry

        stmt = (
            select(AuditEntryRow)
            .where(AuditEntryRow.document_id == document_id)
            .order_by(AuditEntryRow.timestamp.desc(), AuditEntryRow.sequence.desc())
            .limit(1)
        )
        try:
            async with self.session() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read audit chain head for {document_id}: {e}") from e

        if row is None:
            return None
        entry: AuditEntry = self._row_to_model(row, AuditEntry)
        return entry

    async def insert_audit_entry(self, entry: AuditEntry) -> str:
        """Insert an entry only if it still extends the current chain head.

        The unique constraints on (document_id, sequence) and
        (document_id, previous_hash) reject an entry whose predecessor has
        already been claimed by another writer.

        Args:
            entry: Fully hashed AuditEntry.

        Returns:
            The entry ID.

        Raises:
            ChainConflictError: If another entry already follows the same head.
            StorageError: If the store rejects the write for any other reason.
        """
        row = AuditEntryRow(**self._model_to_columns(entry))
        async with self.session() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ChainConflictError(entry.document_id) from e
            except SQLAlchemyError as e:
                await session.rollback()
                raise StorageError(f"Failed to append audit entry {entry.id}: {e}") from e

        return entry.id

    @storage_errors("load audit trail")
    @db_retry
    async def get_audit_trail(self, document_id: str) -> list[AuditEntry]:
        """Get every entry for a document in chain order.

        Args:
            document_id: Document to load.

        Returns:
            List of AuditEntry sorted by timestamp (oldest first).
        """
        from signet.models import AuditEntry

        stmt = (
            select(AuditEntryRow)
            .where(AuditEntryRow.document_id == document_id)
            .order_by(AuditEntryRow.timestamp.asc(), AuditEntryRow.sequence.asc())
        )
        async with self.session() as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [self._row_to_model(row, AuditEntry) for row in rows]
