"""FastAPI router for Signet API endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from signet import __version__
from signet.exceptions import NotFoundError
from signet.models import (
    AuditTrailExport,
    CompletionCertificate,
    RetrySummary,
    WebhookDeliveryRecord,
    WebhookSubscriptionCreate,
    WebhookSubscriptionUpdate,
)
from signet.service import RecordedEvent, SignetService

from .auth import CallerDep
from .schemas import (
    AuditTrailResponse,
    CertificateRequest,
    HealthResponse,
    RecordEventRequest,
    SubscriptionCreatedResponse,
    SubscriptionCreateRequest,
    SubscriptionResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Service instance (set by app lifespan)
_service: SignetService | None = None


def set_service(service: SignetService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> SignetService:
    """Dependency to get the SignetService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[SignetService, Depends(get_service)]


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health."""
    if _service is not None:
        return HealthResponse(status="healthy", version=__version__, storage_connected=True)
    return HealthResponse(status="unhealthy", version=__version__, storage_connected=False)


# Webhook subscriptions


@router.post(
    "/webhooks",
    response_model=SubscriptionCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["webhooks"],
)
async def create_webhook(
    request: SubscriptionCreateRequest,
    caller: CallerDep,
    service: ServiceDep,
) -> SubscriptionCreatedResponse:
    """Register a webhook subscription.

    The signing secret is returned only in this response.
    """
    if request.team_id is not None and request.team_id not in caller.team_ids:
        raise NotFoundError("team", request.team_id)

    subscription = await service.webhooks.create_subscription(
        caller.user_id,
        WebhookSubscriptionCreate(
            url=request.url,
            events=request.events,
            description=request.description,
            is_active=request.is_active,
            secret=request.secret,
        ),
        team_id=request.team_id,
    )
    return SubscriptionCreatedResponse.from_subscription(subscription)


@router.get("/webhooks", response_model=list[SubscriptionResponse], tags=["webhooks"])
async def list_webhooks(
    caller: CallerDep,
    service: ServiceDep,
    team_id: Annotated[str | None, Query()] = None,
) -> list[SubscriptionResponse]:
    """List the caller's subscriptions, or a team's when ``team_id`` is given."""
    if team_id is not None:
        if team_id not in caller.team_ids:
            raise NotFoundError("team", team_id)
        subscriptions = await service.webhooks.list_subscriptions(team_id=team_id)
    else:
        subscriptions = await service.webhooks.list_subscriptions(user_id=caller.user_id)
    return [SubscriptionResponse.from_subscription(s) for s in subscriptions]


@router.post("/webhooks/retries/process", response_model=RetrySummary, tags=["webhooks"])
async def process_webhook_retries(
    caller: CallerDep,
    service: ServiceDep,
) -> RetrySummary:
    """Re-send every due retry task. Normally triggered by a scheduler."""
    logger.info("Retry queue processing requested by %s", caller.user_id)
    return await service.dispatcher.process_retry_queue()


@router.get(
    "/webhooks/{subscription_id}", response_model=SubscriptionResponse, tags=["webhooks"]
)
async def get_webhook(
    subscription_id: str,
    caller: CallerDep,
    service: ServiceDep,
) -> SubscriptionResponse:
    """Get a subscription."""
    subscription = await service.webhooks.get_subscription(
        subscription_id, caller.user_id, caller.team_ids
    )
    return SubscriptionResponse.from_subscription(subscription)


@router.patch(
    "/webhooks/{subscription_id}", response_model=SubscriptionResponse, tags=["webhooks"]
)
async def update_webhook(
    subscription_id: str,
    request: WebhookSubscriptionUpdate,
    caller: CallerDep,
    service: ServiceDep,
) -> SubscriptionResponse:
    """Update a subscription. Omitted fields are unchanged."""
    subscription = await service.webhooks.update_subscription(
        subscription_id, caller.user_id, request, caller.team_ids
    )
    return SubscriptionResponse.from_subscription(subscription)


@router.delete(
    "/webhooks/{subscription_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["webhooks"],
)
async def delete_webhook(
    subscription_id: str,
    caller: CallerDep,
    service: ServiceDep,
) -> None:
    """Delete a subscription and its pending retries."""
    await service.webhooks.delete_subscription(subscription_id, caller.user_id, caller.team_ids)


@router.get(
    "/webhooks/{subscription_id}/deliveries",
    response_model=list[WebhookDeliveryRecord],
    tags=["webhooks"],
)
async def list_webhook_deliveries(
    subscription_id: str,
    caller: CallerDep,
    service: ServiceDep,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> list[WebhookDeliveryRecord]:
    """Delivery history for a subscription, newest first."""
    return await service.webhooks.list_deliveries(
        subscription_id, caller.user_id, caller.team_ids, limit=limit
    )


# Documents


@router.post(
    "/documents/{document_id}/events",
    response_model=RecordedEvent,
    status_code=status.HTTP_201_CREATED,
    tags=["documents"],
)
async def record_document_event(
    document_id: str,
    body: RecordEventRequest,
    request: Request,
    caller: CallerDep,
    service: ServiceDep,
) -> RecordedEvent:
    """Record a lifecycle event in the audit chain and notify subscribers."""
    return await service.record_event(
        document_id,
        body.event,
        user_id=body.user_id or (None if body.recipient_id else caller.user_id),
        recipient_id=body.recipient_id,
        payload=body.payload,
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        team_id=body.team_id,
    )


@router.get(
    "/documents/{document_id}/audit-trail",
    response_model=AuditTrailResponse,
    tags=["documents"],
)
async def get_audit_trail(
    document_id: str,
    caller: CallerDep,
    service: ServiceDep,
) -> AuditTrailResponse:
    """Get a document's audit trail and whether its hash chain verifies."""
    trail = await service.ledger.read_trail(document_id)
    return AuditTrailResponse(
        document_id=trail.document_id,
        is_valid=trail.is_valid,
        broken_at=trail.broken_at,
        head_hash=trail.head_hash,
        entries=trail.entries,
    )


@router.get(
    "/documents/{document_id}/audit-trail/export",
    response_model=AuditTrailExport,
    tags=["documents"],
)
async def export_audit_trail(
    document_id: str,
    caller: CallerDep,
    service: ServiceDep,
) -> AuditTrailExport:
    """Export a document's audit trail as display-ready events."""
    return await service.ledger.export_trail(document_id)


@router.post(
    "/documents/{document_id}/certificate",
    response_model=CompletionCertificate,
    tags=["documents"],
)
async def generate_certificate(
    document_id: str,
    body: CertificateRequest,
    caller: CallerDep,
    service: ServiceDep,
) -> CompletionCertificate:
    """Generate a certificate of completion from a verified audit trail."""
    return await service.ledger.generate_completion_certificate(
        document_id,
        body.document_title,
        body.recipients,
        completed_at=body.completed_at,
    )
