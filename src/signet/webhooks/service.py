"""Subscription management for webhook owners.

A caller may act on a subscription it owns, or on one scoped to a team
it administers. Subscriptions the caller cannot see are reported as not
found rather than forbidden.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from signet.exceptions import NotFoundError, ValidationError
from signet.models import (
    WebhookDeliveryRecord,
    WebhookSubscription,
    WebhookSubscriptionCreate,
    WebhookSubscriptionUpdate,
    utc_now,
)

from .signing import generate_secret

if TYPE_CHECKING:
    from signet.storage import SignetStorage

logger = logging.getLogger(__name__)

_REQUIRED_ON_UPDATE = ("url", "events", "is_active", "secret")


def _dedupe(events: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(events))


class WebhookService:
    """CRUD over webhook subscriptions with ownership checks.

    Example:
        ```python
        service = WebhookService(storage)
        sub = await service.create_subscription(
            "user_1",
            WebhookSubscriptionCreate(url="https://example.com/hook", events=["document.sent"]),
        )
        ```
    """

    def __init__(self, storage: SignetStorage) -> None:
        self._storage = storage

    async def create_subscription(
        self,
        user_id: str,
        data: WebhookSubscriptionCreate,
        team_id: str | None = None,
    ) -> WebhookSubscription:
        """Register a subscription, generating a secret when none is given."""
        if not user_id:
            raise ValidationError("user_id", "caller identity is required")

        subscription = WebhookSubscription(
            user_id=user_id,
            team_id=team_id,
            url=data.url,
            events=_dedupe(data.events),
            secret=data.secret or generate_secret(),
            is_active=data.is_active,
            description=data.description,
        )
        await self._storage.store_subscription(subscription)
        logger.info("Created webhook subscription %s for %s", subscription.id, user_id)
        return subscription

    async def list_subscriptions(
        self,
        user_id: str | None = None,
        team_id: str | None = None,
    ) -> list[WebhookSubscription]:
        """List subscriptions for an owner or a team, newest first."""
        return await self._storage.list_subscriptions(user_id=user_id, team_id=team_id)

    async def get_subscription(
        self,
        subscription_id: str,
        user_id: str,
        team_ids: Iterable[str] = (),
    ) -> WebhookSubscription:
        """Get a subscription visible to the caller.

        Raises:
            NotFoundError: If it does not exist or the caller may not see it.
        """
        subscription = await self._storage.get_subscription(subscription_id)
        if subscription is None or not self._can_access(subscription, user_id, team_ids):
            raise NotFoundError("webhook_subscription", subscription_id)
        return subscription

    async def update_subscription(
        self,
        subscription_id: str,
        user_id: str,
        data: WebhookSubscriptionUpdate,
        team_ids: Iterable[str] = (),
    ) -> WebhookSubscription:
        """Apply the fields set on ``data``; everything else is unchanged."""
        subscription = await self.get_subscription(subscription_id, user_id, team_ids)

        changes = data.model_dump(exclude_unset=True)
        for field in _REQUIRED_ON_UPDATE:
            if field in changes and changes[field] is None:
                raise ValidationError(field, "cannot be cleared")
        if "url" in changes:
            changes["url"] = data.url
        if "events" in changes:
            changes["events"] = _dedupe(changes["events"])
        changes["updated_at"] = utc_now()

        updated = subscription.model_copy(update=changes)
        await self._storage.store_subscription(updated)
        logger.info("Updated webhook subscription %s (%s)", subscription_id, ", ".join(sorted(changes)))
        return updated

    async def delete_subscription(
        self,
        subscription_id: str,
        user_id: str,
        team_ids: Iterable[str] = (),
    ) -> None:
        """Delete a subscription and its pending retries. Delivery records remain."""
        await self.get_subscription(subscription_id, user_id, team_ids)
        await self._storage.delete_subscription(subscription_id)
        logger.info("Deleted webhook subscription %s", subscription_id)

    async def list_deliveries(
        self,
        subscription_id: str,
        user_id: str,
        team_ids: Iterable[str] = (),
        limit: int = 100,
    ) -> list[WebhookDeliveryRecord]:
        """Delivery history for a subscription, newest first."""
        await self.get_subscription(subscription_id, user_id, team_ids)
        return await self._storage.get_delivery_logs(subscription_id, limit=limit)

    @staticmethod
    def _can_access(
        subscription: WebhookSubscription,
        user_id: str,
        team_ids: Iterable[str],
    ) -> bool:
        if subscription.user_id == user_id:
            return True
        return subscription.team_id is not None and subscription.team_id in set(team_ids)


__all__ = ["WebhookService"]
