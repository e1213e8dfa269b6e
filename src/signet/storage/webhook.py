"""Webhook storage operations for Signet.

Provides methods to store, retrieve, and manage subscriptions, delivery
records, and retry tasks. Every method raises StorageError when the
database fails.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, select

from signet.storage.base import storage_errors
from signet.storage.retry import db_retry
from signet.storage.tables import WebhookDeliveryRow, WebhookRetryRow, WebhookSubscriptionRow

if TYPE_CHECKING:
    from signet.models import (
        WebhookDeliveryRecord,
        WebhookEventType,
        WebhookRetryTask,
        WebhookSubscription,
    )


class WebhookMixin:
    """Mixin providing webhook operations for SignetStorage.

    This mixin expects the following attributes/methods from the base class:
    - session() -> AsyncSession
    - _row_to_model(row, model_class) -> ModelT
    - _model_to_columns(model) -> dict
    """

    session: Any
    _row_to_model: Any
    _model_to_columns: Any

    # Subscriptions

    @storage_errors("store webhook subscription")
    async def store_subscription(self, subscription: WebhookSubscription) -> str:
        """Insert or replace a subscription.

        Args:
            subscription: WebhookSubscription to store.

        Returns:
            The subscription ID.
        """
        async with self.session() as session:
            await session.merge(WebhookSubscriptionRow(**self._model_to_columns(subscription)))
            await session.commit()
        return subscription.id

    @storage_errors("load webhook subscription")
    @db_retry
    async def get_subscription(self, subscription_id: str) -> WebhookSubscription | None:
        """Get a subscription by ID.

        Returns:
            WebhookSubscription or None if not found.
        """
        from signet.models import WebhookSubscription

        async with self.session() as session:
            row = await session.get(WebhookSubscriptionRow, subscription_id)

        if row is None:
            return None
        subscription: WebhookSubscription = self._row_to_model(row, WebhookSubscription)
        return subscription

    @storage_errors("list webhook subscriptions")
    @db_retry
    async def list_subscriptions(
        self,
        user_id: str | None = None,
        team_id: str | None = None,
        active_only: bool = False,
        limit: int = 1000,
    ) -> list[WebhookSubscription]:
        """List subscriptions, newest first.

        Args:
            user_id: Optional owner filter.
            team_id: Optional team filter.
            active_only: If True, only return active subscriptions.
            limit: Maximum subscriptions to return.

        Returns:
            List of WebhookSubscription.
        """
        from signet.models import WebhookSubscription

        stmt = select(WebhookSubscriptionRow)
        if user_id is not None:
            stmt = stmt.where(WebhookSubscriptionRow.user_id == user_id)
        if team_id is not None:
            stmt = stmt.where(WebhookSubscriptionRow.team_id == team_id)
        if active_only:
            stmt = stmt.where(WebhookSubscriptionRow.is_active.is_(True))
        stmt = stmt.order_by(WebhookSubscriptionRow.created_at.desc()).limit(limit)

        async with self.session() as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [self._row_to_model(row, WebhookSubscription) for row in rows]

    async def get_subscriptions_for_event(
        self,
        event_type: WebhookEventType,
        team_id: str | None = None,
    ) -> list[WebhookSubscription]:
        """Get all active subscriptions that receive an event type.

        The events column is a JSON list, so membership is checked in
        Python to stay portable across SQLite and PostgreSQL.

        Args:
            event_type: The event type to filter for.
            team_id: Optional team scope.

        Returns:
            List of matching WebhookSubscription.
        """
        subscriptions = await self.list_subscriptions(team_id=team_id, active_only=True)
        return [s for s in subscriptions if s.subscribes_to(event_type)]

    @storage_errors("delete webhook subscription")
    async def delete_subscription(self, subscription_id: str) -> bool:
        """Delete a subscription and its pending retries.

        Delivery records are kept as history.

        Returns:
            True if deleted, False if not found.
        """
        async with self.session() as session:
            await session.execute(
                delete(WebhookRetryRow).where(WebhookRetryRow.subscription_id == subscription_id)
            )
            result = await session.execute(
                delete(WebhookSubscriptionRow).where(WebhookSubscriptionRow.id == subscription_id)
            )
            await session.commit()
        return bool(result.rowcount)

    # Delivery records

    @storage_errors("record webhook delivery")
    async def log_delivery(self, record: WebhookDeliveryRecord) -> str:
        """Record one delivery attempt.

        Returns:
            The record ID.
        """
        async with self.session() as session:
            session.add(WebhookDeliveryRow(**self._model_to_columns(record)))
            await session.commit()
        return record.id

    @storage_errors("load webhook deliveries")
    @db_retry
    async def get_delivery_logs(
        self,
        subscription_id: str,
        since: datetime | None = None,
        limit: int = 100,
    ) -> list[WebhookDeliveryRecord]:
        """Get delivery records for a subscription.

        Args:
            subscription_id: ID of the subscription.
            since: Optional timestamp to filter records after.
            limit: Maximum records to return.

        Returns:
            List of WebhookDeliveryRecord sorted by timestamp (newest first).
        """
        from signet.models import WebhookDeliveryRecord

        stmt = select(WebhookDeliveryRow).where(
            WebhookDeliveryRow.subscription_id == subscription_id
        )
        if since is not None:
            stmt = stmt.where(WebhookDeliveryRow.timestamp >= since)
        stmt = stmt.order_by(WebhookDeliveryRow.timestamp.desc()).limit(limit)

        async with self.session() as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [self._row_to_model(row, WebhookDeliveryRecord) for row in rows]

    @storage_errors("load webhook deliveries")
    @db_retry
    async def get_deliveries_by_correlation(self, delivery_id: str) -> list[WebhookDeliveryRecord]:
        """Get every attempt recorded for one logical event, oldest first."""
        from signet.models import WebhookDeliveryRecord

        stmt = (
            select(WebhookDeliveryRow)
            .where(WebhookDeliveryRow.delivery_id == delivery_id)
            .order_by(WebhookDeliveryRow.timestamp.asc())
        )
        async with self.session() as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [self._row_to_model(row, WebhookDeliveryRecord) for row in rows]

    # Retry tasks

    @storage_errors("enqueue webhook retry")
    async def enqueue_retry(self, task: WebhookRetryTask) -> str:
        """Insert a retry task.

        Returns:
            The task ID.
        """
        async with self.session() as session:
            session.add(WebhookRetryRow(**self._model_to_columns(task)))
            await session.commit()
        return task.id

    @storage_errors("update webhook retry")
    async def update_retry(self, task: WebhookRetryTask) -> None:
        """Persist a task's retry_count, next_retry_at and last_error."""
        async with self.session() as session:
            row = await session.get(WebhookRetryRow, task.id)
            if row is None:
                return
            row.retry_count = task.retry_count
            row.next_retry_at = task.next_retry_at
            row.last_error = task.last_error
            await session.commit()

    @storage_errors("delete webhook retry")
    async def delete_retry(self, task_id: str) -> bool:
        """Delete a retry task.

        Returns:
            True if deleted, False if it was already gone.
        """
        async with self.session() as session:
            result = await session.execute(delete(WebhookRetryRow).where(WebhookRetryRow.id == task_id))
            await session.commit()
        return bool(result.rowcount)

    @storage_errors("load webhook retry")
    @db_retry
    async def get_retry(self, task_id: str) -> WebhookRetryTask | None:
        """Get a retry task by ID."""
        from signet.models import WebhookRetryTask

        async with self.session() as session:
            row = await session.get(WebhookRetryRow, task_id)

        if row is None:
            return None
        task: WebhookRetryTask = self._row_to_model(row, WebhookRetryTask)
        return task

    @storage_errors("list webhook retries")
    @db_retry
    async def list_retries(self, subscription_id: str | None = None) -> list[WebhookRetryTask]:
        """List retry tasks, optionally for one subscription, soonest first."""
        from signet.models import WebhookRetryTask

        stmt = select(WebhookRetryRow)
        if subscription_id is not None:
            stmt = stmt.where(WebhookRetryRow.subscription_id == subscription_id)
        stmt = stmt.order_by(WebhookRetryRow.next_retry_at.asc())

        async with self.session() as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [self._row_to_model(row, WebhookRetryTask) for row in rows]

    @storage_errors("load webhook retry queue")
    @db_retry
    async def get_due_retries(
        self,
        now: datetime,
        max_retry_count: int,
        limit: int = 100,
    ) -> list[WebhookRetryTask]:
        """Get retry tasks whose next_retry_at has passed.

        Args:
            now: Cut-off time.
            max_retry_count: Only tasks with retry_count below this are returned.
            limit: Maximum tasks to return.

        Returns:
            List of WebhookRetryTask sorted by next_retry_at.
        """
        from signet.models import WebhookRetryTask

        stmt = (
            select(WebhookRetryRow)
            .where(
                WebhookRetryRow.next_retry_at <= now,
                WebhookRetryRow.retry_count < max_retry_count,
            )
            .order_by(WebhookRetryRow.next_retry_at.asc())
            .limit(limit)
        )
        async with self.session() as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [self._row_to_model(row, WebhookRetryTask) for row in rows]
