"""Webhook delivery with HMAC signatures and a persistent retry queue.

Every attempt, initial or retried, is recorded. Transient failures are
queued and re-sent byte-for-byte by ``process_retry_queue`` on the
backoff table in ``signet.webhooks.backoff``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

import httpx

from signet.exceptions import DeliveryError
from signet.logging import log_context
from signet.models import (
    DeliveryOutcome,
    DispatchSummary,
    RetryOutcome,
    RetrySummary,
    WebhookDeliveryRecord,
    WebhookEnvelope,
    WebhookRetryTask,
    ensure_utc,
    utc_now,
)

from .backoff import MAX_RETRY_ATTEMPTS, is_retryable, next_retry_at
from .signing import compute_signature, generate_delivery_id

if TYPE_CHECKING:
    from signet.models import WebhookEventType, WebhookSubscription
    from signet.storage import SignetStorage

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Signet-Signature"
EVENT_HEADER = "X-Signet-Event"
DELIVERY_HEADER = "X-Signet-Delivery"
RETRY_COUNT_HEADER = "X-Signet-Retry-Count"


@dataclass(frozen=True)
class _Attempt:
    """Result of a single HTTP POST."""

    success: bool
    status_code: int
    status_text: str
    error: str | None = None

    @property
    def retryable(self) -> bool:
        return not self.success and is_retryable(self.status_code)


class WebhookDispatcher:
    """Dispatches lifecycle events to subscribed endpoints.

    Handles:
    - Finding active subscriptions for an event type
    - Signing the body with each subscription's secret
    - Recording every attempt
    - Queuing and re-sending transient failures

    Example:
        ```python
        dispatcher = WebhookDispatcher(storage)

        summary = await dispatcher.dispatch("document.completed", {"documentId": "doc_1"})

        # Run periodically from a scheduler
        await dispatcher.process_retry_queue()
        ```
    """

    def __init__(
        self,
        storage: SignetStorage,
        timeout_seconds: float = 10.0,
        max_concurrent: int = 10,
        max_retries: int = MAX_RETRY_ATTEMPTS,
        batch_size: int = 100,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the webhook dispatcher.

        Args:
            storage: SignetStorage instance for subscription/delivery data.
            timeout_seconds: HTTP timeout per attempt.
            max_concurrent: Maximum concurrent deliveries.
            max_retries: Retry ceiling; tasks reaching it are dropped.
            batch_size: Maximum due retry tasks loaded per run.
            transport: Optional httpx transport (tests use MockTransport).
            clock: Source of the current time.
        """
        self._storage = storage
        self._timeout = timeout_seconds
        self._max_concurrent = max_concurrent
        self._max_retries = max_retries
        self._batch_size = batch_size
        self._transport = transport
        self._clock = clock
        self._semaphore = asyncio.Semaphore(max_concurrent)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def dispatch(
        self,
        event_type: WebhookEventType,
        data: dict[str, Any],
        team_id: str | None = None,
    ) -> DispatchSummary:
        """Deliver an event to every subscription that receives it.

        All subscribers get the same body and correlation id. Failures
        are recorded per subscription and never raised.

        Args:
            event_type: Event being published.
            data: Event payload.
            team_id: Restrict delivery to one team's subscriptions.

        Returns:
            DispatchSummary with one DeliveryOutcome per subscription.
        """
        subscriptions = await self._storage.get_subscriptions_for_event(
            event_type=event_type,
            team_id=team_id,
        )

        if not subscriptions:
            logger.debug("No webhooks subscribed to event %s", event_type)
            return DispatchSummary(count=0)

        envelope = WebhookEnvelope(
            id=generate_delivery_id(),
            event=event_type,
            created_at=self._clock(),
            data=data,
        )
        body = envelope.to_json()

        with log_context(delivery_id=envelope.id, event_type=event_type):
            async with self._client() as client:
                results = await asyncio.gather(
                    *(
                        self._deliver(client, subscription, envelope, body)
                        for subscription in subscriptions
                    ),
                    return_exceptions=True,
                )

        deliveries: list[DeliveryOutcome] = []
        for subscription, result in zip(subscriptions, results, strict=True):
            if isinstance(result, Exception):
                logger.error("Webhook delivery to %s failed: %s", subscription.id, result)
                deliveries.append(
                    DeliveryOutcome(subscription_id=subscription.id, success=False, error=str(result))
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                deliveries.append(result)

        return DispatchSummary(
            delivery_id=envelope.id,
            count=len(subscriptions),
            deliveries=deliveries,
        )

    async def _deliver(
        self,
        client: httpx.AsyncClient,
        subscription: WebhookSubscription,
        envelope: WebhookEnvelope,
        body: str,
    ) -> DeliveryOutcome:
        """Make the initial attempt for one subscription and queue a retry if needed."""
        async with self._semaphore:
            attempt = await self._post(
                client,
                subscription,
                body,
                event=envelope.event,
                delivery_id=envelope.id,
            )

        await self._storage.log_delivery(
            WebhookDeliveryRecord(
                subscription_id=subscription.id,
                delivery_id=envelope.id,
                success=attempt.success,
                status_code=attempt.status_code,
                status_text=attempt.status_text,
            )
        )

        if attempt.success:
            logger.info(
                "Webhook delivered: %s to %s (status %d)",
                envelope.event,
                subscription.url,
                attempt.status_code,
            )
            return DeliveryOutcome(
                subscription_id=subscription.id,
                success=True,
                status_code=attempt.status_code,
            )

        if not attempt.retryable:
            logger.warning(
                "Webhook rejected: %s to %s (status %d)",
                envelope.event,
                subscription.url,
                attempt.status_code,
            )
            return DeliveryOutcome(
                subscription_id=subscription.id,
                success=False,
                status_code=attempt.status_code,
                error=attempt.error,
            )

        task = WebhookRetryTask(
            subscription_id=subscription.id,
            payload=body,
            retry_count=0,
            next_retry_at=next_retry_at(0, self._clock()),
            last_error=attempt.error,
        )
        await self._storage.enqueue_retry(task)
        logger.info(
            "Webhook scheduled for retry: %s to %s at %s",
            envelope.event,
            subscription.url,
            task.next_retry_at.isoformat(),
        )
        return DeliveryOutcome(
            subscription_id=subscription.id,
            success=False,
            status_code=attempt.status_code,
            error=attempt.error,
            retry_scheduled=True,
        )

    async def _post(
        self,
        client: httpx.AsyncClient,
        subscription: WebhookSubscription,
        body: str,
        event: str,
        delivery_id: str,
        retry_count: int | None = None,
    ) -> _Attempt:
        """POST a signed body. Transport failures come back as status 0."""
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: compute_signature(body, subscription.secret),
            EVENT_HEADER: event,
            DELIVERY_HEADER: delivery_id,
        }
        if retry_count is not None:
            headers[RETRY_COUNT_HEADER] = str(retry_count)

        try:
            response = await client.post(
                str(subscription.url),
                content=body.encode("utf-8"),
                headers=headers,
            )
        except httpx.TimeoutException:
            return _Attempt(False, 0, "Request timeout", error="Request timeout")
        except httpx.RequestError as e:
            message = str(e) or type(e).__name__
            return _Attempt(False, 0, message, error=message)

        status_text = response.reason_phrase
        if 200 <= response.status_code < 300:
            return _Attempt(True, response.status_code, status_text)
        return _Attempt(
            False,
            response.status_code,
            status_text,
            error=f"HTTP {response.status_code}: {status_text}",
        )

    async def process_retry_queue(self, now: datetime | None = None) -> RetrySummary:
        """Re-send every due retry task.

        Tasks are processed concurrently and independently; one task's
        failure is reported in its RetryOutcome and does not affect the rest.

        Args:
            now: Cut-off for ``next_retry_at``. Defaults to the current time.

        Returns:
            RetrySummary with one RetryOutcome per loaded task.

        Raises:
            StorageError: If due tasks cannot be loaded.
        """
        now = ensure_utc(now) if now is not None else self._clock()

        tasks = await self._storage.get_due_retries(
            now=now,
            max_retry_count=self._max_retries,
            limit=self._batch_size,
        )

        if not tasks:
            return RetrySummary(count=0)

        async with self._client() as client:
            results = await asyncio.gather(
                *(self._retry(client, task, now) for task in tasks),
                return_exceptions=True,
            )

        outcomes: list[RetryOutcome] = []
        for task, result in zip(tasks, results, strict=True):
            if isinstance(result, Exception):
                logger.error("Webhook retry %s failed: %s", task.id, result)
                outcomes.append(
                    RetryOutcome(
                        task_id=task.id,
                        subscription_id=task.subscription_id,
                        success=False,
                        action="errored",
                        error=str(result),
                        retry_count=task.retry_count,
                    )
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes.append(result)

        logger.info(
            "Processed %d webhook retries (%d delivered)",
            len(tasks),
            sum(1 for o in outcomes if o.success),
        )
        return RetrySummary(count=len(tasks), results=outcomes)

    async def _retry(
        self,
        client: httpx.AsyncClient,
        task: WebhookRetryTask,
        now: datetime,
    ) -> RetryOutcome:
        """Process one retry task."""
        subscription = await self._storage.get_subscription(task.subscription_id)
        if subscription is None or not subscription.is_active:
            await self._storage.delete_retry(task.id)
            logger.info("Dropped retry %s: subscription missing or inactive", task.id)
            return RetryOutcome(
                task_id=task.id,
                subscription_id=task.subscription_id,
                success=False,
                action="skipped",
                error="Subscription not found or inactive",
                retry_count=task.retry_count,
            )

        try:
            envelope = task.envelope_fields()
        except ValueError as e:
            await self._storage.delete_retry(task.id)
            raise DeliveryError(f"Retry task {task.id} has an unreadable payload: {e}") from e
        delivery_id = str(envelope.get("id", ""))

        with log_context(delivery_id=delivery_id, retry_task_id=task.id):
            async with self._semaphore:
                attempt = await self._post(
                    client,
                    subscription,
                    task.payload,
                    event=str(envelope.get("event", "")),
                    delivery_id=delivery_id,
                    retry_count=task.retry_count,
                )

            record = WebhookDeliveryRecord(
                subscription_id=subscription.id,
                delivery_id=delivery_id,
                success=attempt.success,
                status_code=attempt.status_code,
                status_text=attempt.status_text,
                retry_count=task.retry_count,
            )
            if attempt.success:
                # Dequeue before logging: a delivered task must never be re-sent,
                # even if the delivery record cannot be written.
                await self._storage.delete_retry(task.id)
                await self._storage.log_delivery(record)
                return RetryOutcome(
                    task_id=task.id,
                    subscription_id=subscription.id,
                    success=True,
                    action="delivered",
                    status_code=attempt.status_code,
                    retry_count=task.retry_count,
                )

            await self._storage.log_delivery(record)
            return await self._after_failure(task, subscription, attempt, delivery_id, now)

    async def _after_failure(
        self,
        task: WebhookRetryTask,
        subscription: WebhookSubscription,
        attempt: _Attempt,
        delivery_id: str,
        now: datetime,
    ) -> RetryOutcome:
        """Drop or reschedule a task whose retry failed."""
        retry_count = task.retry_count + 1
        if not attempt.retryable or retry_count >= self._max_retries:
            await self._storage.delete_retry(task.id)
            logger.warning(
                "Webhook retry abandoned: %s to %s after %d retries (%s)",
                delivery_id,
                subscription.url,
                retry_count,
                attempt.error,
            )
            return RetryOutcome(
                task_id=task.id,
                subscription_id=subscription.id,
                success=False,
                action="dropped",
                status_code=attempt.status_code,
                error=attempt.error,
                retry_count=retry_count,
            )

        await self._storage.update_retry(
            task.model_copy(
                update={
                    "retry_count": retry_count,
                    "next_retry_at": next_retry_at(retry_count, now),
                    "last_error": attempt.error,
                }
            )
        )
        return RetryOutcome(
            task_id=task.id,
            subscription_id=subscription.id,
            success=False,
            action="rescheduled",
            status_code=attempt.status_code,
            error=attempt.error,
            retry_count=retry_count,
        )


async def dispatch_webhook_event(
    storage: SignetStorage,
    event_type: WebhookEventType,
    team_id: str | None = None,
    **data: object,
) -> DispatchSummary:
    """Convenience function to dispatch an event with default settings.

    Args:
        storage: SignetStorage instance.
        event_type: Type of event.
        team_id: Optional team scope.
        **data: Event payload.

    Returns:
        DispatchSummary for the dispatch.
    """
    from signet.config import settings

    dispatcher = WebhookDispatcher(
        storage,
        timeout_seconds=settings.webhook_timeout_seconds,
        max_concurrent=settings.webhook_max_concurrent,
        max_retries=settings.webhook_max_retries,
        batch_size=settings.webhook_retry_batch_size,
    )
    return await dispatcher.dispatch(event_type, dict(data), team_id=team_id)
