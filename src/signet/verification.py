"""Pluggable identity and document verification providers.

SMS codes, ID documents, biometrics and AI analysis are performed by
third parties. Signet only defines the capability and routes requests to
whichever provider is registered for a category.

Example:
    ```python
    registry = VerificationRegistry()
    registry.register("sms", TwilioVerifier(...))

    result = await registry.verify(
        VerificationRequest(category="sms", recipient_id="rcp_1", data={"code": "123456"})
    )
    ```
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from signet.exceptions import NotFoundError
from signet.models import VerificationCategory, VerificationRequest, VerificationResult

logger = logging.getLogger(__name__)


@runtime_checkable
class VerificationProvider(Protocol):
    """A third-party verification capability."""

    name: str

    async def verify(self, request: VerificationRequest) -> VerificationResult:
        """Run the check and report the outcome.

        A failed check is a result with ``verified=False``, not an exception.
        """
        ...


class VerificationRegistry:
    """Maps verification categories to providers."""

    def __init__(self) -> None:
        self._providers: dict[VerificationCategory, VerificationProvider] = {}

    def register(self, category: VerificationCategory, provider: VerificationProvider) -> None:
        """Register (or replace) the provider for a category."""
        self._providers[category] = provider
        logger.debug("Registered %s verification provider: %s", category, provider.name)

    def unregister(self, category: VerificationCategory) -> None:
        self._providers.pop(category, None)

    def get(self, category: VerificationCategory) -> VerificationProvider:
        """Get the provider for a category.

        Raises:
            NotFoundError: If no provider is registered.
        """
        provider = self._providers.get(category)
        if provider is None:
            raise NotFoundError("verification_provider", category)
        return provider

    @property
    def categories(self) -> list[VerificationCategory]:
        return sorted(self._providers)

    async def verify(self, request: VerificationRequest) -> VerificationResult:
        """Route a request to its category's provider."""
        provider = self.get(request.category)
        result = await provider.verify(request)
        logger.info(
            "Verification %s (%s via %s): %s",
            request.id,
            request.category,
            provider.name,
            "passed" if result.verified else "failed",
        )
        return result


__all__ = ["VerificationProvider", "VerificationRegistry"]
