"""Beacon: signed webhooks for domain events.

External systems subscribe to events in the host application and receive
HMAC-signed HTTP callbacks, retried on a fixed backoff table and switched
off automatically after repeated terminal failures.

Quick Start:
    from beacon import Settings, WebhookService

    async with WebhookService.create(Settings(storage_backend="memory")) as beacon:
        created = await beacon.create_webhook(
            user_id="user_123",
            url="https://example.com/hooks",
            events=["mood.logged", "task.completed"],
        )
        print(created.secret)  # shown once

        beacon.start()
        await beacon.trigger_event("mood.logged", "user_123", {"mood": 4})

Receivers verify deliveries with beacon.webhooks.verify_signature.
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    AuthenticationError,
    BeaconError,
    ConfigurationError,
    LimitExceededError,
    NotFoundError,
    StorageError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)

# Models
from .models import (
    ALL_EVENT_TYPES,
    EVENT_CATEGORIES,
    CreatedWebhook,
    DeliveryAttempt,
    DeliveryJob,
    DeliveryResult,
    DomainEvent,
    JobState,
    SecretRotation,
    TriggerResult,
    WebhookSubscription,
)

# Service
from .service import WebhookService

# Signatures (for receivers)
from .webhooks import compute_signature, verify_signature

__all__ = [
    "__version__",
    # Configuration
    "Settings",
    "settings",
    # Exceptions
    "AuthenticationError",
    "BeaconError",
    "ConfigurationError",
    "LimitExceededError",
    "NotFoundError",
    "StorageError",
    "ValidationError",
    # Logging
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    # Models
    "ALL_EVENT_TYPES",
    "EVENT_CATEGORIES",
    "CreatedWebhook",
    "DeliveryAttempt",
    "DeliveryJob",
    "DeliveryResult",
    "DomainEvent",
    "JobState",
    "SecretRotation",
    "TriggerResult",
    "WebhookSubscription",
    # Service
    "WebhookService",
    # Signatures
    "compute_signature",
    "verify_signature",
]
