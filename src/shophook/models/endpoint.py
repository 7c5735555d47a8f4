"""Webhook endpoint models.

An endpoint is a tenant-registered HTTP destination plus its delivery
policy, its event subscriptions, and its health (circuit breaker) state.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from .base import generate_id, utc_now
from .events import EventType

# Consecutive failed deliveries (across all events) that disable an endpoint
FAILURE_THRESHOLD = 10

_http_url = TypeAdapter(HttpUrl)


def _validate_url(value: str) -> str:
    """Check the URL is absolute http(s), returning it unchanged."""
    try:
        _http_url.validate_python(value)
    except PydanticValidationError as e:
        raise ValueError(f"invalid endpoint URL: {value!r}") from e
    return value


class EndpointConfig(BaseModel):
    """Configuration and health of a registered webhook endpoint.

    Attributes:
        id: Unique identifier for this endpoint.
        tenant_id: Repair shop that owns this endpoint.
        name: Short human-readable name (e.g. "ERP integration").
        description: Optional purpose of the endpoint.
        url: Destination URL. Expected to be HTTPS in production.
        secret: Shared secret for HMAC-SHA256 signatures. No signature is
            sent when unset.
        headers: Custom headers injected into every request.
        events: Event types this endpoint subscribes to. Empty means the
            endpoint is never triggered.
        max_attempts: Delivery attempts per event before giving up.
        timeout_seconds: Per-attempt HTTP timeout.
        active: Whether deliveries are sent. Cleared by the circuit breaker.
        consecutive_failures: Failed attempts since the last success.
        last_success_at: When the last 2xx response was received.
        last_failure_at: When the last failed attempt happened.
        created_at: When the endpoint was registered.
        updated_at: When the endpoint was last modified.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whk"))
    tenant_id: str = Field(description="Tenant that owns this endpoint")
    name: str = Field(min_length=1, max_length=100, description="Endpoint name")
    description: str | None = Field(default=None, max_length=500)
    url: str = Field(max_length=500, description="Destination URL")
    secret: str | None = Field(default=None, max_length=200)
    headers: dict[str, str] = Field(default_factory=dict)
    events: set[EventType] = Field(default_factory=set)
    max_attempts: int = Field(default=3, ge=1, le=10)
    timeout_seconds: int = Field(default=30, ge=1, le=120)
    active: bool = Field(default=True)
    consecutive_failures: int = Field(default=0, ge=0)
    last_success_at: datetime | None = Field(default=None)
    last_failure_at: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return _validate_url(value)

    @property
    def has_secret(self) -> bool:
        """Whether outgoing requests are signed."""
        return bool(self.secret and self.secret.strip())

    def subscribes_to(self, event_type: EventType) -> bool:
        """Check if this endpoint should receive the given event."""
        return self.active and event_type in self.events

    def register_success(self, at: datetime | None = None) -> None:
        """Record a 2xx delivery.

        Resets the failure counter. Does not reactivate a disabled endpoint;
        that is an administrative action.
        """
        self.consecutive_failures = 0
        self.last_success_at = at or utc_now()

    def register_failure(self, at: datetime | None = None) -> bool:
        """Record a failed delivery.

        Returns:
            True if this failure disabled the endpoint.
        """
        self.consecutive_failures += 1
        self.last_failure_at = at or utc_now()

        if self.consecutive_failures >= FAILURE_THRESHOLD and self.active:
            self.active = False
            return True
        return False

    def reactivate(self) -> None:
        """Re-enable the endpoint and clear its failure counter."""
        self.active = True
        self.consecutive_failures = 0

    def to_view(self) -> EndpointView:
        """Public representation without the secret."""
        return EndpointView.model_validate(
            {**self.model_dump(exclude={"secret"}), "has_secret": self.has_secret}
        )


class EndpointView(BaseModel):
    """Endpoint as shown to administrators. Never carries the secret."""

    model_config = ConfigDict(extra="forbid")

    id: str
    tenant_id: str
    name: str
    description: str | None = None
    url: str
    has_secret: bool
    headers: dict[str, str]
    events: set[EventType]
    max_attempts: int
    timeout_seconds: int
    active: bool
    consecutive_failures: int
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class EndpointCreate(BaseModel):
    """Input for registering a new endpoint."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    url: str = Field(max_length=500)
    secret: str | None = Field(default=None, max_length=200)
    headers: dict[str, str] = Field(default_factory=dict)
    events: set[EventType] = Field(default_factory=set)
    max_attempts: int | None = Field(default=None, ge=1, le=10)
    timeout_seconds: int | None = Field(default=None, ge=1, le=120)

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return _validate_url(value)


class EndpointUpdate(BaseModel):
    """Partial update of an endpoint. Unset fields are left untouched."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    url: str | None = Field(default=None, max_length=500)
    secret: str | None = Field(default=None, max_length=200)
    remove_secret: bool = Field(default=False, description="Clear the signing secret")
    headers: dict[str, str] | None = None
    events: set[EventType] | None = None
    max_attempts: int | None = Field(default=None, ge=1, le=10)
    timeout_seconds: int | None = Field(default=None, ge=1, le=120)
    active: bool | None = None

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _validate_url(value)


__all__ = [
    "FAILURE_THRESHOLD",
    "EndpointConfig",
    "EndpointCreate",
    "EndpointUpdate",
    "EndpointView",
]
