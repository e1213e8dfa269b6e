"""Verification provider request/result models."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utc_now

VerificationCategory = Literal["sms", "id_document", "biometric", "ai_analysis"]


class VerificationRequest(BaseModel):
    """Input handed to a verification provider."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("vrq"))
    category: VerificationCategory
    document_id: str | None = None
    recipient_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class VerificationResult(BaseModel):
    """Outcome reported by a verification provider."""

    model_config = ConfigDict(extra="forbid")

    request_id: str
    category: VerificationCategory
    verified: bool
    score: float | None = Field(default=None, ge=0.0, le=1.0)
    reason: str | None = None
    provider: str = ""
    checked_at: datetime = Field(default_factory=utc_now)


__all__ = ["VerificationCategory", "VerificationRequest", "VerificationResult"]
