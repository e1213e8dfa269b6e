"""Webhook delivery system for Signet.

Provides HMAC-signed webhook delivery with a persistent retry queue.

Example:
    ```python
    from signet.webhooks import WebhookDispatcher, dispatch_webhook_event

    # Using dispatcher directly
    dispatcher = WebhookDispatcher(storage)
    await dispatcher.dispatch("document.sent", {"documentId": "doc_1"})
    await dispatcher.process_retry_queue()

    # Using convenience function
    await dispatch_webhook_event(storage, "document.completed", documentId="doc_1")
    ```
"""

from .backoff import (
    MAX_RETRY_ATTEMPTS,
    RETRY_DELAYS_MINUTES,
    delay_minutes,
    is_retryable,
    next_retry_at,
)
from .delivery import (
    DELIVERY_HEADER,
    EVENT_HEADER,
    RETRY_COUNT_HEADER,
    SIGNATURE_HEADER,
    WebhookDispatcher,
    dispatch_webhook_event,
)
from .service import WebhookService
from .signing import compute_signature, generate_delivery_id, generate_secret, verify_signature

__all__ = [
    "DELIVERY_HEADER",
    "EVENT_HEADER",
    "MAX_RETRY_ATTEMPTS",
    "RETRY_COUNT_HEADER",
    "RETRY_DELAYS_MINUTES",
    "SIGNATURE_HEADER",
    "WebhookDispatcher",
    "WebhookService",
    "compute_signature",
    "delay_minutes",
    "dispatch_webhook_event",
    "generate_delivery_id",
    "generate_secret",
    "is_retryable",
    "next_retry_at",
    "verify_signature",
]
