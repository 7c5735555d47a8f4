"""Shophook: outbound webhooks for repair shop backends.

Notifies tenant-registered HTTP endpoints about domain events (service
orders, customers, vehicles, payments, stock) with signed, retried,
at-least-once delivery and automatic suppression of failing endpoints.

Quick Start:
    from shophook import EventType, ShophookService

    async with ShophookService.create() as shophook:
        shophook.dispatch(
            "shop_1",
            EventType.OS_CRIADA,
            entity_id="os_42",
            entity_type="OrdemServico",
            data={"numero": 42, "cliente": "Maria"},
        )

Components:
    - WebhookDispatcher: Fan-out and first attempt, on a worker pool
    - RetryScheduler: Backoff retries of failed deliveries
    - WebhookAdmin: Endpoint management, logs, stats, test deliveries
    - WebhookStorage: Qdrant persistence of endpoints and attempt logs
"""

__version__ = "0.1.0"

# Configuration
from .config import WEBHOOK_FEATURE_CODE, Settings, settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    DuplicateEndpointError,
    InvalidTransitionError,
    NotFoundError,
    SerializationError,
    ShophookError,
    StorageError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    delivery_context,
    get_logger,
    unbind_context,
)

# Models
from .models import (
    AttemptLog,
    AttemptStatus,
    DeliveryOutcome,
    DeliveryStats,
    DeliveryTestResult,
    EndpointConfig,
    EndpointCreate,
    EndpointUpdate,
    EndpointView,
    EventEnvelope,
    EventType,
)

# Service
from .service import ShophookService

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "WEBHOOK_FEATURE_CODE",
    "settings",
    # Exceptions
    "ShophookError",
    "ValidationError",
    "NotFoundError",
    "DuplicateEndpointError",
    "InvalidTransitionError",
    "SerializationError",
    "StorageError",
    "ConfigurationError",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "delivery_context",
    "unbind_context",
    # Models
    "AttemptLog",
    "AttemptStatus",
    "DeliveryOutcome",
    "DeliveryStats",
    "DeliveryTestResult",
    "EndpointConfig",
    "EndpointCreate",
    "EndpointUpdate",
    "EndpointView",
    "EventEnvelope",
    "EventType",
    # Service
    "ShophookService",
]
