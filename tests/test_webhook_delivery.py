"""Tests for webhook dispatch and retry queue processing."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import httpx
import pytest

from signet.exceptions import StorageError
from signet.models import WebhookRetryTask, WebhookSubscription
from signet.webhooks import (
    DELIVERY_HEADER,
    EVENT_HEADER,
    RETRY_COUNT_HEADER,
    SIGNATURE_HEADER,
    WebhookDispatcher,
    compute_signature,
    dispatch_webhook_event,
)

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)


def make_dispatcher(storage, endpoint, **kwargs) -> WebhookDispatcher:
    return WebhookDispatcher(storage, transport=endpoint.transport, clock=lambda: NOW, **kwargs)


def make_task(subscription: WebhookSubscription, retry_count: int = 0) -> WebhookRetryTask:
    payload = json.dumps(
        {"id": "wh_" + "a" * 32, "event": "document.completed", "createdAt": "x", "data": {}},
        separators=(",", ":"),
    )
    return WebhookRetryTask(
        subscription_id=subscription.id,
        payload=payload,
        retry_count=retry_count,
        next_retry_at=NOW - timedelta(seconds=1),
    )


class TestWebhookDispatcher:
    """Tests for WebhookDispatcher construction."""

    def test_init_defaults(self):
        storage = AsyncMock()
        dispatcher = WebhookDispatcher(storage)
        assert dispatcher._storage is storage
        assert dispatcher._timeout == 10.0
        assert dispatcher._max_concurrent == 10
        assert dispatcher._max_retries == 5


class TestDispatch:
    """Tests for WebhookDispatcher.dispatch."""

    @pytest.mark.asyncio
    async def test_no_matching_subscriptions(self, storage, endpoint_factory, make_subscription):
        """Dispatch without subscribers succeeds with zero deliveries."""
        await storage.store_subscription(make_subscription(events=["document.sent"]))
        endpoint = endpoint_factory(200)

        summary = await make_dispatcher(storage, endpoint).dispatch(
            "document.completed", {"documentId": "doc_1"}
        )

        assert summary.success is True
        assert summary.count == 0
        assert summary.delivery_id is None
        assert endpoint.requests == []

    @pytest.mark.asyncio
    async def test_inactive_subscriptions_are_skipped(
        self, storage, endpoint_factory, make_subscription
    ):
        await storage.store_subscription(make_subscription(is_active=False))
        endpoint = endpoint_factory(200)

        summary = await make_dispatcher(storage, endpoint).dispatch("document.completed", {})

        assert summary.count == 0
        assert endpoint.requests == []

    @pytest.mark.asyncio
    async def test_successful_delivery_is_recorded(
        self, storage, endpoint_factory, make_subscription
    ):
        subscription = make_subscription()
        await storage.store_subscription(subscription)
        endpoint = endpoint_factory(200)

        summary = await make_dispatcher(storage, endpoint).dispatch(
            "document.completed", {"documentId": "doc_1"}
        )

        assert summary.count == 1
        assert summary.delivered == 1
        records = await storage.get_delivery_logs(subscription.id)
        assert len(records) == 1
        assert records[0].success is True
        assert records[0].status_code == 200
        assert records[0].retry_count is None
        assert records[0].delivery_id == summary.delivery_id
        assert await storage.list_retries() == []

    @pytest.mark.asyncio
    async def test_envelope_and_headers(self, storage, endpoint_factory, make_subscription):
        subscription = make_subscription()
        await storage.store_subscription(subscription)
        endpoint = endpoint_factory(200)

        summary = await make_dispatcher(storage, endpoint).dispatch(
            "document.completed", {"documentId": "doc_1"}
        )

        request = endpoint.requests[0]
        body = request.content.decode()
        assert json.loads(body) == {
            "id": summary.delivery_id,
            "event": "document.completed",
            "createdAt": "2024-05-01T12:00:00.000Z",
            "data": {"documentId": "doc_1"},
        }
        assert request.headers["content-type"] == "application/json"
        assert request.headers[SIGNATURE_HEADER] == compute_signature(body, "s3cret")
        assert request.headers[EVENT_HEADER] == "document.completed"
        assert request.headers[DELIVERY_HEADER] == summary.delivery_id
        assert RETRY_COUNT_HEADER not in request.headers
        assert str(request.url) == "https://hooks.example.com/signet"

    @pytest.mark.asyncio
    async def test_all_subscribers_share_body_and_correlation_id(
        self, storage, endpoint_factory, make_subscription
    ):
        for i in range(3):
            await storage.store_subscription(
                make_subscription(url=f"https://hooks{i}.example.com/", secret=f"secret-{i}")
            )
        endpoint = endpoint_factory(200)

        summary = await make_dispatcher(storage, endpoint).dispatch("document.completed", {})

        assert summary.count == 3
        assert len({r.content for r in endpoint.requests}) == 1
        assert {r.headers[DELIVERY_HEADER] for r in endpoint.requests} == {summary.delivery_id}
        assert len({r.headers[SIGNATURE_HEADER] for r in endpoint.requests}) == 3

    @pytest.mark.asyncio
    async def test_team_scope(self, storage, endpoint_factory, make_subscription):
        await storage.store_subscription(make_subscription(team_id="team_a"))
        await storage.store_subscription(make_subscription(team_id="team_b"))
        endpoint = endpoint_factory(200)

        summary = await make_dispatcher(storage, endpoint).dispatch(
            "document.completed", {}, team_id="team_a"
        )

        assert summary.count == 1

    @pytest.mark.asyncio
    async def test_server_error_schedules_retry(
        self, storage, endpoint_factory, make_subscription
    ):
        """A 503 yields one failed record and one retry task due in a minute."""
        subscription = make_subscription()
        await storage.store_subscription(subscription)
        endpoint = endpoint_factory(503)

        summary = await make_dispatcher(storage, endpoint).dispatch("document.completed", {})

        outcome = summary.deliveries[0]
        assert outcome.success is False
        assert outcome.status_code == 503
        assert outcome.retry_scheduled is True

        records = await storage.get_delivery_logs(subscription.id)
        assert [(r.success, r.status_code) for r in records] == [(False, 503)]

        tasks = await storage.list_retries()
        assert len(tasks) == 1
        assert tasks[0].retry_count == 0
        assert tasks[0].next_retry_at == NOW + timedelta(minutes=1)
        assert tasks[0].payload == endpoint.requests[0].content.decode()
        assert tasks[0].last_error is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [408, 429])
    async def test_throttling_statuses_schedule_retry(
        self, storage, endpoint_factory, make_subscription, status
    ):
        await storage.store_subscription(make_subscription())
        endpoint = endpoint_factory(status)

        summary = await make_dispatcher(storage, endpoint).dispatch("document.completed", {})

        assert summary.deliveries[0].retry_scheduled is True
        assert len(await storage.list_retries()) == 1

    @pytest.mark.asyncio
    async def test_client_error_is_terminal(self, storage, endpoint_factory, make_subscription):
        subscription = make_subscription()
        await storage.store_subscription(subscription)
        endpoint = endpoint_factory(404)

        summary = await make_dispatcher(storage, endpoint).dispatch("document.completed", {})

        assert summary.deliveries[0].retry_scheduled is False
        assert await storage.list_retries() == []
        records = await storage.get_delivery_logs(subscription.id)
        assert records[0].status_code == 404

    @pytest.mark.asyncio
    async def test_connection_error_records_status_zero(
        self, storage, endpoint_factory, make_subscription
    ):
        subscription = make_subscription()
        await storage.store_subscription(subscription)
        endpoint = endpoint_factory(httpx.ConnectError("connection refused"))

        summary = await make_dispatcher(storage, endpoint).dispatch("document.completed", {})

        assert summary.success is True
        assert summary.deliveries[0].status_code == 0
        assert summary.deliveries[0].retry_scheduled is True
        records = await storage.get_delivery_logs(subscription.id)
        assert records[0].status_code == 0
        assert "connection refused" in records[0].status_text

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self, storage, endpoint_factory, make_subscription):
        await storage.store_subscription(make_subscription())
        endpoint = endpoint_factory(httpx.ReadTimeout("timed out"))

        summary = await make_dispatcher(storage, endpoint).dispatch("document.completed", {})

        assert summary.deliveries[0].error == "Request timeout"
        assert summary.deliveries[0].retry_scheduled is True

    @pytest.mark.asyncio
    async def test_one_failure_does_not_affect_others(self, make_subscription, endpoint_factory):
        """A storage error for one subscriber is captured, the rest deliver."""
        subscriptions = [make_subscription(), make_subscription()]
        storage = AsyncMock()
        storage.get_subscriptions_for_event = AsyncMock(return_value=subscriptions)
        storage.log_delivery = AsyncMock(side_effect=[RuntimeError("disk full"), "dlv_ok"])
        endpoint = endpoint_factory(200)

        summary = await make_dispatcher(storage, endpoint).dispatch("document.completed", {})

        assert summary.success is True
        assert summary.count == 2
        assert sorted(d.success for d in summary.deliveries) == [False, True]
        assert any(d.error == "disk full" for d in summary.deliveries)


class TestProcessRetryQueue:
    """Tests for WebhookDispatcher.process_retry_queue."""

    @pytest.mark.asyncio
    async def test_empty_queue(self, storage, endpoint_factory):
        summary = await make_dispatcher(storage, endpoint_factory()).process_retry_queue(NOW)

        assert summary.success is True
        assert summary.count == 0

    @pytest.mark.asyncio
    async def test_successful_retry_deletes_task(
        self, storage, endpoint_factory, make_subscription
    ):
        subscription = make_subscription()
        await storage.store_subscription(subscription)
        task = make_task(subscription, retry_count=2)
        await storage.enqueue_retry(task)
        endpoint = endpoint_factory(200)

        summary = await make_dispatcher(storage, endpoint).process_retry_queue(NOW)

        assert summary.count == 1
        assert summary.results[0].action == "delivered"
        assert await storage.get_retry(task.id) is None
        request = endpoint.requests[0]
        assert request.content.decode() == task.payload
        assert request.headers[RETRY_COUNT_HEADER] == "2"
        records = await storage.get_delivery_logs(subscription.id)
        assert records[0].retry_count == 2
        assert records[0].delivery_id == "wh_" + "a" * 32

    @pytest.mark.asyncio
    async def test_failed_retry_is_rescheduled(
        self, storage, endpoint_factory, make_subscription
    ):
        subscription = make_subscription()
        await storage.store_subscription(subscription)
        task = make_task(subscription, retry_count=1)
        await storage.enqueue_retry(task)
        endpoint = endpoint_factory(500)

        summary = await make_dispatcher(storage, endpoint).process_retry_queue(NOW)

        assert summary.results[0].action == "rescheduled"
        assert summary.results[0].retry_count == 2
        updated = await storage.get_retry(task.id)
        assert updated is not None
        assert updated.retry_count == 2
        assert updated.next_retry_at == NOW + timedelta(minutes=15)
        assert updated.last_error == "HTTP 500: Internal Server Error"

    @pytest.mark.asyncio
    async def test_last_retry_failing_drops_task(
        self, storage, endpoint_factory, make_subscription
    ):
        """A failure at count 4 deletes the task; nothing runs afterwards."""
        subscription = make_subscription()
        await storage.store_subscription(subscription)
        task = make_task(subscription, retry_count=4)
        await storage.enqueue_retry(task)
        endpoint = endpoint_factory(503)
        dispatcher = make_dispatcher(storage, endpoint)

        summary = await dispatcher.process_retry_queue(NOW)

        assert summary.results[0].action == "dropped"
        assert await storage.get_retry(task.id) is None
        assert len(endpoint.requests) == 1

        later = await dispatcher.process_retry_queue(NOW + timedelta(days=1))
        assert later.count == 0
        assert len(endpoint.requests) == 1
        assert len(await storage.get_delivery_logs(subscription.id)) == 1

    @pytest.mark.asyncio
    async def test_non_retryable_failure_drops_task(
        self, storage, endpoint_factory, make_subscription
    ):
        subscription = make_subscription()
        await storage.store_subscription(subscription)
        task = make_task(subscription, retry_count=0)
        await storage.enqueue_retry(task)

        summary = await make_dispatcher(storage, endpoint_factory(410)).process_retry_queue(NOW)

        assert summary.results[0].action == "dropped"
        assert await storage.get_retry(task.id) is None

    @pytest.mark.asyncio
    async def test_inactive_subscription_drops_task_without_http(
        self, storage, endpoint_factory, make_subscription
    ):
        subscription = make_subscription(is_active=False)
        await storage.store_subscription(subscription)
        task = make_task(subscription)
        await storage.enqueue_retry(task)
        endpoint = endpoint_factory(200)

        summary = await make_dispatcher(storage, endpoint).process_retry_queue(NOW)

        assert summary.results[0].action == "skipped"
        assert endpoint.requests == []
        assert await storage.get_retry(task.id) is None
        assert await storage.get_delivery_logs(subscription.id) == []

    @pytest.mark.asyncio
    async def test_tasks_not_yet_due_are_left_alone(
        self, storage, endpoint_factory, make_subscription
    ):
        subscription = make_subscription()
        await storage.store_subscription(subscription)
        task = make_task(subscription).model_copy(
            update={"next_retry_at": NOW + timedelta(minutes=5)}
        )
        await storage.enqueue_retry(task)
        endpoint = endpoint_factory(200)

        summary = await make_dispatcher(storage, endpoint).process_retry_queue(NOW)

        assert summary.count == 0
        assert await storage.get_retry(task.id) is not None

    @pytest.mark.asyncio
    async def test_signature_on_retry_matches_stored_body(
        self, storage, endpoint_factory, make_subscription
    ):
        """Initial and retried deliveries carry the same valid signature."""
        subscription = make_subscription(secret="retry-secret")
        await storage.store_subscription(subscription)
        endpoint = endpoint_factory(503, 200)
        dispatcher = make_dispatcher(storage, endpoint)

        await dispatcher.dispatch("document.completed", {"documentId": "doc_1"})
        summary = await dispatcher.process_retry_queue(NOW + timedelta(minutes=1))

        assert summary.results[0].action == "delivered"
        first, retried = endpoint.requests
        assert first.content == retried.content
        for request in (first, retried):
            assert request.headers[SIGNATURE_HEADER] == compute_signature(
                request.content.decode(), "retry-secret"
            )
        assert retried.headers[RETRY_COUNT_HEADER] == "0"
        assert retried.headers[DELIVERY_HEADER] == first.headers[DELIVERY_HEADER]

        records = await storage.get_deliveries_by_correlation(first.headers[DELIVERY_HEADER])
        assert [r.success for r in records] == [False, True]

    @pytest.mark.asyncio
    async def test_one_task_error_is_isolated(self, make_subscription, endpoint_factory):
        subscription = make_subscription()
        tasks = [make_task(subscription), make_task(subscription)]
        storage = AsyncMock()
        storage.get_due_retries = AsyncMock(return_value=tasks)
        storage.get_subscription = AsyncMock(side_effect=[RuntimeError("boom"), subscription])
        endpoint = endpoint_factory(200)

        summary = await make_dispatcher(storage, endpoint).process_retry_queue(NOW)

        assert summary.success is True
        assert summary.count == 2
        assert sorted(r.action for r in summary.results) == ["delivered", "errored"]

    @pytest.mark.asyncio
    async def test_delivered_task_is_dequeued_when_record_write_fails(
        self, storage, endpoint_factory, make_subscription
    ):
        subscription = make_subscription()
        await storage.store_subscription(subscription)
        task = make_task(subscription, retry_count=1)
        await storage.enqueue_retry(task)
        storage.log_delivery = AsyncMock(side_effect=StorageError("disk full"))
        endpoint = endpoint_factory(200)
        dispatcher = make_dispatcher(storage, endpoint)

        first = await dispatcher.process_retry_queue(NOW)
        second = await dispatcher.process_retry_queue(NOW)

        assert first.results[0].action == "errored"
        assert await storage.get_retry(task.id) is None
        assert second.count == 0
        assert len(endpoint.requests) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", ["not json", "[1, 2]"])
    async def test_unreadable_payload_is_dropped_without_http(
        self, storage, endpoint_factory, make_subscription, payload
    ):
        subscription = make_subscription()
        await storage.store_subscription(subscription)
        task = WebhookRetryTask(
            subscription_id=subscription.id,
            payload=payload,
            next_retry_at=NOW - timedelta(seconds=1),
        )
        await storage.enqueue_retry(task)
        endpoint = endpoint_factory(200)

        summary = await make_dispatcher(storage, endpoint).process_retry_queue(NOW)

        result = summary.results[0]
        assert result.action == "errored"
        assert "unreadable payload" in (result.error or "")
        assert await storage.get_retry(task.id) is None
        assert endpoint.requests == []


class TestDispatchWebhookEvent:
    """Tests for the dispatch_webhook_event helper."""

    @pytest.mark.asyncio
    async def test_no_subscribers(self):
        storage = AsyncMock()
        storage.get_subscriptions_for_event = AsyncMock(return_value=[])

        summary = await dispatch_webhook_event(storage, "user.created", userId="user_1")

        assert summary.count == 0
        storage.get_subscriptions_for_event.assert_awaited_once_with(
            event_type="user.created", team_id=None
        )
