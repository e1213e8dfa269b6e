"""Signet exception hierarchy.

Provides structured exceptions for error handling throughout the codebase.
All exceptions inherit from SignetError for easy catching.
"""

from __future__ import annotations


class SignetError(Exception):
    """Base exception for all Signet errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "signet_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(SignetError):
    """Invalid input provided.

    Attributes:
        field: The field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(SignetError):
    """Resource not found, or not visible to the caller.

    Attributes:
        resource_type: Type of resource (e.g., "webhook_subscription").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class StorageError(SignetError):
    """Storage operation failed.

    Raised when the relational store rejects or cannot complete an operation.
    """

    code: str = "storage_error"


class ChainConflictError(StorageError):
    """Another writer claimed the same chain head.

    Raised when an audit append loses the race for a document's latest
    entry and could not win it within the configured number of attempts.
    """

    code: str = "chain_conflict"

    def __init__(self, document_id: str, attempts: int = 1) -> None:
        self.document_id = document_id
        self.attempts = attempts
        super().__init__(
            f"Audit chain head for document {document_id} changed during append "
            f"({attempts} attempt{'s' if attempts != 1 else ''})"
        )


class ChainIntegrityError(SignetError):
    """An audit trail failed hash-chain verification.

    Attributes:
        document_id: Document whose trail is broken.
        broken_at: ID of the first entry that failed verification.
    """

    code: str = "chain_integrity_error"

    def __init__(self, document_id: str, broken_at: str | None = None) -> None:
        self.document_id = document_id
        self.broken_at = broken_at
        super().__init__(f"Audit trail integrity check failed for document {document_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "document_id": self.document_id,
                "broken_at": self.broken_at,
                "message": self.message,
            }
        }


class DeliveryError(SignetError):
    """Webhook delivery could not be attempted.

    HTTP outcomes are recorded rather than raised. This covers a queued
    retry whose stored body can no longer be read; the task is dropped
    and the error is reported on its RetryOutcome.
    """

    code: str = "delivery_error"


class ConfigurationError(SignetError):
    """Configuration error.

    Raised when required configuration is missing or invalid.
    """

    code: str = "configuration_error"


class AuthorizationError(SignetError):
    """Authorization failed.

    Raised when the caller identity is missing or lacks permission.
    """

    code: str = "authorization_error"
