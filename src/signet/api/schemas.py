"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

from signet.models import (
    AuditEntry,
    CertificateRecipient,
    WebhookEventType,
    WebhookSubscription,
)


class HealthResponse(BaseModel):
    """Response for the health endpoint."""

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "unhealthy"]
    version: str
    storage_connected: bool


class SubscriptionCreateRequest(BaseModel):
    """Request body for registering a webhook subscription.

    Attributes:
        url: Endpoint that receives events.
        events: Event types to subscribe to.
        description: Optional description.
        is_active: Whether deliveries start immediately.
        secret: Signing secret. Generated when omitted.
        team_id: Team scope. The caller must administer this team.
    """

    model_config = ConfigDict(extra="forbid")

    url: HttpUrl
    events: list[WebhookEventType] = Field(min_length=1)
    description: str | None = None
    is_active: bool = True
    secret: str | None = Field(default=None, min_length=1)
    team_id: str | None = None


class SubscriptionResponse(BaseModel):
    """A subscription as returned by the API. The secret is never echoed."""

    model_config = ConfigDict(extra="forbid")

    id: str
    user_id: str
    team_id: str | None
    url: str
    events: list[str]
    is_active: bool
    description: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_subscription(cls, subscription: WebhookSubscription) -> SubscriptionResponse:
        return cls(
            id=subscription.id,
            user_id=subscription.user_id,
            team_id=subscription.team_id,
            url=str(subscription.url),
            events=list(subscription.events),
            is_active=subscription.is_active,
            description=subscription.description,
            created_at=subscription.created_at,
            updated_at=subscription.updated_at,
        )


class SubscriptionCreatedResponse(SubscriptionResponse):
    """Creation response; the only time the signing secret is returned."""

    secret: str

    @classmethod
    def from_subscription(cls, subscription: WebhookSubscription) -> SubscriptionCreatedResponse:
        base = SubscriptionResponse.from_subscription(subscription)
        return cls(**base.model_dump(), secret=subscription.secret)


class RecordEventRequest(BaseModel):
    """Request body for recording a document lifecycle event.

    The client IP and user agent are taken from the request itself.
    """

    model_config = ConfigDict(extra="forbid")

    event: Literal[
        "created",
        "updated",
        "sent",
        "viewed",
        "signed",
        "completed",
        "deleted",
        "form_submitted",
    ]
    user_id: str | None = None
    recipient_id: str | None = None
    payload: dict[str, Any] | None = None
    team_id: str | None = None


class AuditTrailResponse(BaseModel):
    """A document's audit trail with its verification verdict."""

    model_config = ConfigDict(extra="forbid")

    document_id: str
    is_valid: bool
    broken_at: str | None
    head_hash: str
    entries: list[AuditEntry]


class CertificateRequest(BaseModel):
    """Request body for generating a completion certificate."""

    model_config = ConfigDict(extra="forbid")

    document_title: str = Field(min_length=1)
    recipients: list[CertificateRecipient] = Field(default_factory=list)
    completed_at: datetime | None = None
