"""Shophook exception hierarchy.

Provides structured exceptions for administrative operations and the
delivery pipeline. All exceptions inherit from ShophookError so callers
can catch everything raised by the package with a single except clause.

Delivery failures (timeouts, non-2xx responses) are never raised to event
producers; they are recorded on attempt logs instead.
"""

from __future__ import annotations


class ShophookError(Exception):
    """Base exception for all Shophook errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "shophook_error"

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


class ValidationError(ShophookError):
    """Invalid input provided to an administrative operation.

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


class NotFoundError(ShophookError):
    """Resource not found.

    Raised when an endpoint (or another resource) does not exist for the
    requesting tenant.

    Attributes:
        resource_type: Type of resource (e.g., "endpoint").
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


class DuplicateEndpointError(ShophookError):
    """An endpoint with the same URL already exists for the tenant.

    Attributes:
        url: The conflicting destination URL.
    """

    code: str = "duplicate_endpoint"

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"An endpoint with this URL already exists: {url}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "url": self.url,
                "message": self.message,
            }
        }


class InvalidTransitionError(ShophookError):
    """Attempt log status change not allowed by the state machine.

    Attributes:
        current: Status the log is in.
        target: Status that was requested.
    """

    code: str = "invalid_transition"

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition attempt log from {current} to {target}")


class SerializationError(ShophookError):
    """Event payload could not be encoded as JSON.

    Retrying reproduces the same error, so the attempt is abandoned.
    """

    code: str = "serialization_error"


class StorageError(ShophookError):
    """Storage operation failed.

    Raised when a Qdrant operation fails in a way callers must handle.
    """

    code: str = "storage_error"


class ConfigurationError(ShophookError):
    """Configuration error.

    Raised when required configuration is missing or invalid.
    """

    code: str = "configuration_error"
