"""Webhook models for server-to-server event notifications.

Provides subscription registration, the signed event envelope, delivery
records and retry state for reliable notifications of document lifecycle
events.
"""

import json
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator

from .base import ensure_utc, generate_id, isoformat_millis, utc_now

# Event types that can trigger webhooks
WebhookEventType = Literal[
    "document.created",
    "document.updated",
    "document.sent",
    "document.signed",
    "document.completed",
    "document.deleted",
    "recipient.viewed",
    "recipient.completed",
    "form.submitted",
    "user.created",
    "user.updated",
]

# All available event types for subscription
ALL_EVENT_TYPES: list[WebhookEventType] = [
    "document.created",
    "document.updated",
    "document.sent",
    "document.signed",
    "document.completed",
    "document.deleted",
    "recipient.viewed",
    "recipient.completed",
    "form.submitted",
    "user.created",
    "user.updated",
]


class WebhookSubscription(BaseModel):
    """A registered webhook delivery target.

    Attributes:
        id: Unique identifier for this subscription.
        user_id: User who owns this subscription.
        team_id: Team the subscription is scoped to (optional).
        url: HTTP(S) endpoint that receives events.
        events: Event types this subscription receives.
        secret: Shared secret for HMAC-SHA256 signatures.
        is_active: Inactive subscriptions receive nothing, history is kept.
        description: Optional human-readable description.
        created_at: When the subscription was registered.
        updated_at: When the subscription was last modified.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whk"))
    user_id: str = Field(description="User who owns this subscription")
    team_id: str | None = Field(default=None, description="Team scope (optional)")
    url: HttpUrl = Field(description="Endpoint to receive events")
    events: list[WebhookEventType] = Field(min_length=1, description="Subscribed event types")
    secret: str = Field(min_length=1, description="Shared secret for HMAC-SHA256 signatures")
    is_active: bool = Field(default=True, description="Whether deliveries are sent")
    description: str | None = Field(default=None, description="Human-readable description")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _normalize_datetimes(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def subscribes_to(self, event_type: WebhookEventType) -> bool:
        """Check if this subscription is active and receives the given event type."""
        return self.is_active and event_type in self.events


class WebhookSubscriptionCreate(BaseModel):
    """Input for registering a subscription."""

    model_config = ConfigDict(extra="forbid")

    url: HttpUrl
    events: list[WebhookEventType] = Field(min_length=1)
    description: str | None = None
    is_active: bool = True
    secret: str | None = Field(default=None, min_length=1)


class WebhookSubscriptionUpdate(BaseModel):
    """Partial update for a subscription; unset fields are left unchanged."""

    model_config = ConfigDict(extra="forbid")

    url: HttpUrl | None = None
    events: list[WebhookEventType] | None = Field(default=None, min_length=1)
    description: str | None = None
    is_active: bool | None = None
    secret: str | None = Field(default=None, min_length=1)


class WebhookEnvelope(BaseModel):
    """Event body posted to subscribers.

    The same envelope (and correlation id) goes to every subscriber of a
    dispatch and is re-sent verbatim on retries.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(description="Correlation id shared by every delivery attempt")
    event: WebhookEventType
    created_at: datetime = Field(default_factory=utc_now)
    data: dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> str:
        """Serialize to the wire format ``{id, event, createdAt, data}``."""
        return json.dumps(
            {
                "id": self.id,
                "event": self.event,
                "createdAt": isoformat_millis(self.created_at),
                "data": self.data,
            },
            separators=(",", ":"),
            default=str,
        )


class WebhookDeliveryRecord(BaseModel):
    """Outcome of one delivery attempt. Never mutated once written.

    Attributes:
        id: Unique identifier for this record.
        subscription_id: Subscription the attempt targeted.
        delivery_id: Correlation id of the logical event.
        success: Whether the endpoint answered 2xx.
        status_code: HTTP status, 0 when no response was received.
        status_text: HTTP reason phrase or transport error message.
        retry_count: Retry count header sent, None for the initial attempt.
        timestamp: When the attempt finished.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    subscription_id: str
    delivery_id: str
    success: bool
    status_code: int = Field(ge=0)
    status_text: str = ""
    retry_count: int | None = Field(default=None, ge=0)
    timestamp: datetime = Field(default_factory=utc_now)


class WebhookRetryTask(BaseModel):
    """Pending retry of a failed delivery.

    Attributes:
        id: Unique identifier for this task.
        subscription_id: Subscription to re-deliver to.
        payload: Exact serialized envelope that was originally signed.
        retry_count: Retries already scheduled (0-based).
        next_retry_at: Earliest time the retry may run.
        last_error: Reason of the most recent failure.
        created_at: When the task was enqueued.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("rty"))
    subscription_id: str
    payload: str
    retry_count: int = Field(default=0, ge=0)
    next_retry_at: datetime
    last_error: str | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("next_retry_at", "created_at")
    @classmethod
    def _normalize_datetimes(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def envelope_fields(self) -> dict[str, Any]:
        """Decode the stored payload.

        Raises:
            ValueError: If the payload is not a JSON object.
        """
        decoded = json.loads(self.payload)
        if not isinstance(decoded, dict):
            raise ValueError(f"expected a JSON object, got {type(decoded).__name__}")
        return decoded


class DeliveryOutcome(BaseModel):
    """Per-subscription result of a dispatch."""

    model_config = ConfigDict(extra="forbid")

    subscription_id: str
    success: bool
    status_code: int = 0
    error: str | None = None
    retry_scheduled: bool = False


class DispatchSummary(BaseModel):
    """Result of fanning one event out to its subscribers.

    ``success`` reports that dispatch ran; individual failures live in
    ``deliveries``.
    """

    model_config = ConfigDict(extra="forbid")

    success: bool = True
    delivery_id: str | None = None
    count: int = 0
    deliveries: list[DeliveryOutcome] = Field(default_factory=list)
    error: str | None = None

    @property
    def delivered(self) -> int:
        """Number of subscriptions that accepted the event."""
        return sum(1 for d in self.deliveries if d.success)


RetryAction = Literal["delivered", "rescheduled", "dropped", "skipped", "errored"]


class RetryOutcome(BaseModel):
    """Result of processing a single retry task."""

    model_config = ConfigDict(extra="forbid")

    task_id: str
    subscription_id: str
    success: bool
    action: RetryAction
    status_code: int = 0
    error: str | None = None
    retry_count: int = 0


class RetrySummary(BaseModel):
    """Result of one retry-queue processing run."""

    model_config = ConfigDict(extra="forbid")

    success: bool = True
    count: int = 0
    results: list[RetryOutcome] = Field(default_factory=list)


__all__ = [
    "ALL_EVENT_TYPES",
    "DeliveryOutcome",
    "DispatchSummary",
    "RetryAction",
    "RetryOutcome",
    "RetrySummary",
    "WebhookDeliveryRecord",
    "WebhookEnvelope",
    "WebhookEventType",
    "WebhookRetryTask",
    "WebhookSubscription",
    "WebhookSubscriptionCreate",
    "WebhookSubscriptionUpdate",
]
