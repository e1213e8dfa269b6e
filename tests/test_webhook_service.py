"""Tests for webhook subscription management."""

from __future__ import annotations

import re

import pytest
from pydantic import ValidationError as PydanticValidationError

from signet.exceptions import NotFoundError, StorageError, ValidationError
from signet.models import (
    WebhookDeliveryRecord,
    WebhookRetryTask,
    WebhookSubscriptionCreate,
    WebhookSubscriptionUpdate,
    utc_now,
)
from signet.storage import Base
from signet.webhooks import WebhookService


def create_request(**overrides: object) -> WebhookSubscriptionCreate:
    fields: dict[str, object] = {
        "url": "https://hooks.example.com/signet",
        "events": ["document.sent", "document.completed"],
    }
    fields.update(overrides)
    return WebhookSubscriptionCreate(**fields)  # type: ignore[arg-type]


class TestCreate:
    """Tests for WebhookService.create_subscription."""

    @pytest.mark.asyncio
    async def test_generates_secret_when_absent(self, storage):
        subscription = await WebhookService(storage).create_subscription("user_1", create_request())

        assert re.fullmatch(r"[0-9a-f]{64}", subscription.secret)
        stored = await storage.get_subscription(subscription.id)
        assert stored is not None
        assert stored.secret == subscription.secret
        assert stored.events == ["document.sent", "document.completed"]

    @pytest.mark.asyncio
    async def test_keeps_provided_secret_and_dedupes_events(self, storage):
        subscription = await WebhookService(storage).create_subscription(
            "user_1",
            create_request(secret="mine", events=["document.sent", "document.sent"]),
            team_id="team_1",
        )

        assert subscription.secret == "mine"
        assert subscription.events == ["document.sent"]
        assert subscription.team_id == "team_1"

    @pytest.mark.asyncio
    async def test_requires_user(self, storage):
        with pytest.raises(ValidationError) as exc_info:
            await WebhookService(storage).create_subscription("", create_request())
        assert exc_info.value.field == "user_id"

    def test_rejects_invalid_url_and_events(self):
        with pytest.raises(PydanticValidationError):
            create_request(url="ftp://example.com/hook")
        with pytest.raises(PydanticValidationError):
            create_request(events=[])
        with pytest.raises(PydanticValidationError):
            create_request(events=["document.exploded"])

    @pytest.mark.asyncio
    async def test_database_failure_raises_storage_error(self, storage):
        async with storage.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

        with pytest.raises(StorageError, match="store webhook subscription"):
            await WebhookService(storage).create_subscription("user_1", create_request())


class TestOwnership:
    """Tests for ownership and team access."""

    @pytest.mark.asyncio
    async def test_owner_can_read(self, storage):
        service = WebhookService(storage)
        created = await service.create_subscription("user_1", create_request())

        fetched = await service.get_subscription(created.id, "user_1")

        assert fetched.id == created.id

    @pytest.mark.asyncio
    async def test_other_user_gets_not_found(self, storage):
        service = WebhookService(storage)
        created = await service.create_subscription("user_1", create_request())

        with pytest.raises(NotFoundError):
            await service.get_subscription(created.id, "user_2")

    @pytest.mark.asyncio
    async def test_team_admin_can_read(self, storage):
        service = WebhookService(storage)
        created = await service.create_subscription("user_1", create_request(), team_id="team_1")

        fetched = await service.get_subscription(created.id, "user_2", team_ids=["team_1"])

        assert fetched.id == created.id

    @pytest.mark.asyncio
    async def test_admin_of_other_team_gets_not_found(self, storage):
        service = WebhookService(storage)
        created = await service.create_subscription("user_1", create_request(), team_id="team_1")

        with pytest.raises(NotFoundError):
            await service.get_subscription(created.id, "user_2", team_ids=["team_2"])

    @pytest.mark.asyncio
    async def test_missing_subscription(self, storage):
        with pytest.raises(NotFoundError) as exc_info:
            await WebhookService(storage).get_subscription("whk_missing", "user_1")
        assert exc_info.value.resource_id == "whk_missing"


class TestUpdate:
    """Tests for WebhookService.update_subscription."""

    @pytest.mark.asyncio
    async def test_only_provided_fields_change(self, storage):
        service = WebhookService(storage)
        created = await service.create_subscription(
            "user_1", create_request(description="original")
        )

        updated = await service.update_subscription(
            created.id, "user_1", WebhookSubscriptionUpdate(is_active=False)
        )

        assert updated.is_active is False
        assert updated.description == "original"
        assert updated.secret == created.secret
        assert updated.updated_at >= created.updated_at
        stored = await storage.get_subscription(created.id)
        assert stored is not None
        assert stored.is_active is False

    @pytest.mark.asyncio
    async def test_url_and_events_update(self, storage):
        service = WebhookService(storage)
        created = await service.create_subscription("user_1", create_request())

        updated = await service.update_subscription(
            created.id,
            "user_1",
            WebhookSubscriptionUpdate(url="https://new.example.com/", events=["form.submitted"]),
        )

        assert str(updated.url) == "https://new.example.com/"
        assert updated.events == ["form.submitted"]

    @pytest.mark.asyncio
    async def test_cannot_clear_required_field(self, storage):
        service = WebhookService(storage)
        created = await service.create_subscription("user_1", create_request())

        with pytest.raises(ValidationError) as exc_info:
            await service.update_subscription(
                created.id, "user_1", WebhookSubscriptionUpdate(is_active=None)
            )
        assert exc_info.value.field == "is_active"

    @pytest.mark.asyncio
    async def test_other_user_cannot_update(self, storage):
        service = WebhookService(storage)
        created = await service.create_subscription("user_1", create_request())

        with pytest.raises(NotFoundError):
            await service.update_subscription(
                created.id, "user_2", WebhookSubscriptionUpdate(is_active=False)
            )


class TestDeleteAndDeliveries:
    """Tests for deletion and delivery history."""

    @pytest.mark.asyncio
    async def test_delete_removes_retries_but_keeps_history(self, storage):
        service = WebhookService(storage)
        created = await service.create_subscription("user_1", create_request())
        await storage.log_delivery(
            WebhookDeliveryRecord(
                subscription_id=created.id,
                delivery_id="wh_1",
                success=False,
                status_code=503,
            )
        )
        await storage.enqueue_retry(
            WebhookRetryTask(subscription_id=created.id, payload="{}", next_retry_at=utc_now())
        )

        await service.delete_subscription(created.id, "user_1")

        assert await storage.get_subscription(created.id) is None
        assert await storage.list_retries(created.id) == []
        assert len(await storage.get_delivery_logs(created.id)) == 1

    @pytest.mark.asyncio
    async def test_delete_requires_access(self, storage):
        service = WebhookService(storage)
        created = await service.create_subscription("user_1", create_request())

        with pytest.raises(NotFoundError):
            await service.delete_subscription(created.id, "user_2")

        assert await storage.get_subscription(created.id) is not None

    @pytest.mark.asyncio
    async def test_list_deliveries_newest_first(self, storage):
        service = WebhookService(storage)
        created = await service.create_subscription("user_1", create_request())
        for status_code in (503, 200):
            await storage.log_delivery(
                WebhookDeliveryRecord(
                    subscription_id=created.id,
                    delivery_id="wh_1",
                    success=status_code == 200,
                    status_code=status_code,
                )
            )

        records = await service.list_deliveries(created.id, "user_1")

        assert [r.status_code for r in records] == [200, 503]

    @pytest.mark.asyncio
    async def test_list_subscriptions_by_owner_and_team(self, storage):
        service = WebhookService(storage)
        await service.create_subscription("user_1", create_request())
        await service.create_subscription("user_2", create_request(), team_id="team_1")

        assert len(await service.list_subscriptions(user_id="user_1")) == 1
        assert len(await service.list_subscriptions(team_id="team_1")) == 1
        assert len(await service.list_subscriptions()) == 2
