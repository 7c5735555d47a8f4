"""Attempt log models and the delivery retry state machine.

One AttemptLog row tracks one logical delivery (one event sent to one
endpoint). The row is updated in place on every attempt and keeps an
append-only history, so the attempt numbers, timestamps and outcomes of
the whole sequence can always be reconstructed.

State machine::

    PENDING ──2xx──────────────────────────────▶ SUCCESS
       │
       └─fail─▶ FAILURE ─┬─▶ RETRY_SCHEDULED ──2xx──▶ SUCCESS
                         │        │
                         │        └─fail─▶ FAILURE ─▶ ...
                         └─▶ ATTEMPTS_EXHAUSTED

SUCCESS and ATTEMPTS_EXHAUSTED are terminal.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from shophook.exceptions import InvalidTransitionError

from .base import (
    MAX_ERROR_CHARS,
    MAX_RESPONSE_BODY_CHARS,
    generate_id,
    truncate,
    utc_now,
)
from .events import EventType

# Minutes to wait before retry N (the last value repeats)
RETRY_DELAYS_MINUTES: tuple[int, ...] = (1, 5, 15, 30, 60)


class AttemptStatus(str, Enum):
    """Status of a logical delivery."""

    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    RETRY_SCHEDULED = "RETRY_SCHEDULED"
    ATTEMPTS_EXHAUSTED = "ATTEMPTS_EXHAUSTED"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition is possible."""
        return not ALLOWED_TRANSITIONS[self]


ALLOWED_TRANSITIONS: dict[AttemptStatus, frozenset[AttemptStatus]] = {
    AttemptStatus.PENDING: frozenset(
        {AttemptStatus.SUCCESS, AttemptStatus.FAILURE, AttemptStatus.ATTEMPTS_EXHAUSTED}
    ),
    AttemptStatus.FAILURE: frozenset(
        {AttemptStatus.RETRY_SCHEDULED, AttemptStatus.ATTEMPTS_EXHAUSTED}
    ),
    AttemptStatus.RETRY_SCHEDULED: frozenset(
        {AttemptStatus.SUCCESS, AttemptStatus.FAILURE, AttemptStatus.ATTEMPTS_EXHAUSTED}
    ),
    AttemptStatus.SUCCESS: frozenset(),
    AttemptStatus.ATTEMPTS_EXHAUSTED: frozenset(),
}


def transition(current: AttemptStatus, target: AttemptStatus) -> AttemptStatus:
    """Validate a single status change.

    Raises:
        InvalidTransitionError: If the state machine does not allow it.
    """
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)
    return target


def resolve_outcome(
    current: AttemptStatus,
    succeeded: bool,
    attempt_number: int,
    max_attempts: int,
) -> list[AttemptStatus]:
    """Compute the states a log passes through after one attempt.

    Args:
        current: Status before the attempt (PENDING or RETRY_SCHEDULED).
        succeeded: Whether the attempt got a 2xx response.
        attempt_number: 1-based number of the attempt just made.
        max_attempts: Attempt budget of the endpoint.

    Returns:
        Visited states in order. The last one is the new status.
    """
    if succeeded:
        return [transition(current, AttemptStatus.SUCCESS)]

    failed = transition(current, AttemptStatus.FAILURE)
    if attempt_number >= max_attempts:
        return [failed, transition(failed, AttemptStatus.ATTEMPTS_EXHAUSTED)]
    return [failed, transition(failed, AttemptStatus.RETRY_SCHEDULED)]


def retry_delay(attempt_number: int) -> timedelta:
    """Backoff before the retry that follows attempt ``attempt_number``."""
    index = min(max(attempt_number, 1) - 1, len(RETRY_DELAYS_MINUTES) - 1)
    return timedelta(minutes=RETRY_DELAYS_MINUTES[index])


class DeliveryOutcome(BaseModel):
    """Result of a single HTTP delivery attempt.

    Attributes:
        http_status: Response status code. None on transport failure.
        response_body: Response body, truncated to 2000 characters.
        error: Diagnostic message when the attempt failed.
        latency_ms: Time from request start to response or error.
        attempted_at: When the request was started.
    """

    model_config = ConfigDict(extra="forbid")

    http_status: int | None = None
    response_body: str | None = None
    error: str | None = None
    latency_ms: int = Field(default=0, ge=0)
    attempted_at: datetime = Field(default_factory=utc_now)

    @property
    def succeeded(self) -> bool:
        """Whether the receiver answered with a 2xx status."""
        return self.http_status is not None and 200 <= self.http_status < 300


class AttemptRecord(BaseModel):
    """One entry of an attempt log's history."""

    model_config = ConfigDict(extra="forbid")

    attempt_number: int = Field(ge=1)
    attempted_at: datetime
    status: AttemptStatus
    http_status: int | None = None
    error_message: str | None = None
    latency_ms: int = 0
    next_retry_at: datetime | None = None


class AttemptLog(BaseModel):
    """Persisted record of a logical delivery and its attempts.

    URL and payload are captured when the delivery is created and never
    re-read from the endpoint, so every retry sends byte-identical content
    to the same destination.

    Attributes:
        id: Unique identifier of this delivery.
        endpoint_id: Endpoint the delivery belongs to.
        endpoint_name: Endpoint name at creation time (for listings).
        tenant_id: Tenant that owns the endpoint.
        event_type: Event that triggered the delivery.
        entity_id: Related domain entity, for traceability.
        entity_type: Kind of the related entity (e.g. "OrdemServico").
        url: Destination captured at first send.
        payload: Serialized envelope captured at first send.
        http_status: Status of the latest attempt.
        response_body: Body of the latest response (truncated).
        error_message: Diagnostic of the latest failure.
        latency_ms: Latency of the latest attempt.
        attempt_number: Number of the latest attempt (1-based).
        status: Current state machine status.
        next_retry_at: When the next attempt is due.
        lease_token: Claim marker set by a retry scheduler.
        lease_expires_at: When the claim lapses.
        created_at: When the delivery was created. Never changes.
        updated_at: When the row was last written.
        history: Every attempt made so far, oldest first.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    endpoint_id: str
    endpoint_name: str | None = None
    tenant_id: str
    event_type: EventType
    entity_id: str | None = None
    entity_type: str | None = None
    url: str
    payload: str
    http_status: int | None = None
    response_body: str | None = None
    error_message: str | None = None
    latency_ms: int | None = None
    attempt_number: int = Field(default=1, ge=1)
    status: AttemptStatus = AttemptStatus.PENDING
    next_retry_at: datetime | None = None
    lease_token: str | None = None
    lease_expires_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    history: list[AttemptRecord] = Field(default_factory=list)

    def begin_retry(self) -> int:
        """Advance the attempt counter before re-sending.

        Returns:
            The number of the attempt about to be made.
        """
        if self.status is not AttemptStatus.RETRY_SCHEDULED:
            raise InvalidTransitionError(self.status.value, "retry")
        self.attempt_number += 1
        return self.attempt_number

    def record_outcome(
        self,
        outcome: DeliveryOutcome,
        max_attempts: int,
        now: datetime | None = None,
    ) -> AttemptStatus:
        """Apply an attempt's outcome through the state machine.

        Args:
            outcome: Result of the attempt numbered ``attempt_number``.
            max_attempts: Attempt budget of the endpoint.
            now: Reference time for the retry schedule.

        Returns:
            The new status.
        """
        now = now or utc_now()
        path = resolve_outcome(self.status, outcome.succeeded, self.attempt_number, max_attempts)
        new_status = path[-1]

        self.status = new_status
        self.http_status = outcome.http_status
        self.response_body = truncate(outcome.response_body, MAX_RESPONSE_BODY_CHARS)
        self.error_message = truncate(outcome.error, MAX_ERROR_CHARS)
        self.latency_ms = outcome.latency_ms
        self.next_retry_at = (
            now + retry_delay(self.attempt_number)
            if new_status is AttemptStatus.RETRY_SCHEDULED
            else None
        )
        self.lease_token = None
        self.lease_expires_at = None
        self.updated_at = now

        self.history.append(
            AttemptRecord(
                attempt_number=self.attempt_number,
                attempted_at=outcome.attempted_at,
                status=new_status,
                http_status=outcome.http_status,
                error_message=self.error_message,
                latency_ms=outcome.latency_ms,
                next_retry_at=self.next_retry_at,
            )
        )
        return new_status

    def abandon(self, reason: str, now: datetime | None = None) -> None:
        """Close the delivery without another attempt.

        Used when the endpoint was disabled or deleted while a retry was
        pending. The attempt counter and last outcome are left as they were.
        """
        self.status = transition(self.status, AttemptStatus.ATTEMPTS_EXHAUSTED)
        self.error_message = truncate(reason, MAX_ERROR_CHARS)
        self.next_retry_at = None
        self.lease_token = None
        self.lease_expires_at = None
        self.updated_at = now or utc_now()


__all__ = [
    "ALLOWED_TRANSITIONS",
    "RETRY_DELAYS_MINUTES",
    "AttemptLog",
    "AttemptRecord",
    "AttemptStatus",
    "DeliveryOutcome",
    "resolve_outcome",
    "retry_delay",
    "transition",
]
