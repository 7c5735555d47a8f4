"""Data models for Shophook.

Endpoint Registry:
    - EndpointConfig: Destination, policy, subscriptions and health
    - EndpointCreate / EndpointUpdate: Administrative inputs
    - EndpointView: Secret-free representation for listings

Attempt Log:
    - AttemptLog: One logical delivery with its attempt history
    - AttemptStatus: Delivery state machine
    - DeliveryOutcome: Result of one HTTP attempt

Wire format:
    - EventEnvelope: JSON body sent to receivers
    - EventType: Catalogue of subscribable domain events
"""

from .attempt import (
    ALLOWED_TRANSITIONS,
    RETRY_DELAYS_MINUTES,
    AttemptLog,
    AttemptRecord,
    AttemptStatus,
    DeliveryOutcome,
    resolve_outcome,
    retry_delay,
    transition,
)
from .base import MAX_ERROR_CHARS, MAX_RESPONSE_BODY_CHARS, generate_id, utc_now
from .endpoint import (
    FAILURE_THRESHOLD,
    EndpointConfig,
    EndpointCreate,
    EndpointUpdate,
    EndpointView,
)
from .envelope import EventEnvelope
from .events import ALL_EVENT_TYPES, EventType, list_event_types
from .reports import DeliveryStats, DeliveryTestResult

__all__ = [
    # Helpers
    "MAX_ERROR_CHARS",
    "MAX_RESPONSE_BODY_CHARS",
    "generate_id",
    "utc_now",
    # Events
    "ALL_EVENT_TYPES",
    "EventType",
    "EventEnvelope",
    "list_event_types",
    # Endpoints
    "FAILURE_THRESHOLD",
    "EndpointConfig",
    "EndpointCreate",
    "EndpointUpdate",
    "EndpointView",
    # Attempts
    "ALLOWED_TRANSITIONS",
    "RETRY_DELAYS_MINUTES",
    "AttemptLog",
    "AttemptRecord",
    "AttemptStatus",
    "DeliveryOutcome",
    "resolve_outcome",
    "retry_delay",
    "transition",
    # Reports
    "DeliveryStats",
    "DeliveryTestResult",
]
