"""Beacon exception hierarchy.

Every error raised by the management surface inherits from BeaconError,
so callers can catch all Beacon failures with a single except clause.
Delivery-layer failures (timeouts, refused connections, non-2xx answers)
are never raised; they are recorded as DeliveryAttempt rows instead.
"""

from __future__ import annotations


class BeaconError(Exception):
    """Base exception for all Beacon errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "beacon_error"

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


class ValidationError(BeaconError):
    """Invalid input provided.

    Raised for a bad URL scheme, an empty or unknown event set, an event
    type outside the taxonomy, or an update that supplies no fields.

    Attributes:
        field: The field that failed validation.
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


class NotFoundError(BeaconError):
    """Resource not found, or not owned by the requesting user.

    Attributes:
        resource_type: Type of resource (e.g., "webhook").
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


class LimitExceededError(BeaconError):
    """An owner already holds the maximum number of subscriptions.

    Attributes:
        limit: The per-owner subscription limit that was hit.
    """

    code: str = "limit_exceeded"

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"Maximum {limit} webhooks allowed per user")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "limit": self.limit,
                "message": self.message,
            }
        }


class StorageError(BeaconError):
    """Storage operation failed."""

    code: str = "storage_error"


class ConfigurationError(BeaconError):
    """Required configuration is missing or invalid."""

    code: str = "configuration_error"


class AuthenticationError(BeaconError):
    """Authentication credentials are invalid or missing."""

    code: str = "authentication_error"
