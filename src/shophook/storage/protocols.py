"""Storage interfaces consumed by the delivery engine.

The dispatcher, scheduler and admin operations depend on these protocols
rather than on WebhookStorage, so tests can pass in-memory fakes or mocks.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from shophook.models import AttemptLog, AttemptStatus, DeliveryStats, EndpointConfig, EventType


class EndpointConfigStore(Protocol):
    """Durable registry of webhook endpoints."""

    async def store_endpoint(self, endpoint: EndpointConfig) -> str: ...

    async def get_endpoint(self, endpoint_id: str, tenant_id: str) -> EndpointConfig | None: ...

    async def list_endpoints(
        self,
        tenant_id: str,
        active_only: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[EndpointConfig]: ...

    async def get_endpoints_for_event(
        self, event_type: EventType, tenant_id: str
    ) -> list[EndpointConfig]: ...

    async def find_endpoint_by_url(self, url: str, tenant_id: str) -> EndpointConfig | None: ...

    async def update_endpoint(
        self,
        endpoint_id: str,
        tenant_id: str,
        mutate: Callable[[EndpointConfig], None],
    ) -> EndpointConfig | None: ...

    async def delete_endpoint(self, endpoint_id: str, tenant_id: str) -> bool: ...

    async def record_endpoint_success(
        self, endpoint_id: str, tenant_id: str, at: datetime | None = None
    ) -> EndpointConfig | None: ...

    async def record_endpoint_failure(
        self, endpoint_id: str, tenant_id: str, at: datetime | None = None
    ) -> tuple[EndpointConfig | None, bool]: ...


class AttemptLogStore(Protocol):
    """Durable log of logical deliveries."""

    async def log_attempt(self, log: AttemptLog) -> str: ...

    async def update_attempt(self, log: AttemptLog) -> str: ...

    async def get_attempt(self, attempt_id: str, tenant_id: str) -> AttemptLog | None: ...

    async def list_attempts(
        self,
        tenant_id: str,
        endpoint_id: str | None = None,
        status: AttemptStatus | None = None,
        event_type: EventType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AttemptLog]: ...

    async def get_due_retries(
        self, now: datetime | None = None, limit: int = 100
    ) -> list[AttemptLog]: ...

    async def claim_retry(
        self, log: AttemptLog, lease_seconds: float, now: datetime | None = None
    ) -> AttemptLog | None: ...

    async def get_stranded_deliveries(
        self, before: datetime, now: datetime | None = None, limit: int = 100
    ) -> list[AttemptLog]: ...

    async def claim_stranded(
        self,
        log: AttemptLog,
        before: datetime,
        lease_seconds: float,
        now: datetime | None = None,
    ) -> AttemptLog | None: ...

    async def purge_attempts(self, before: datetime, tenant_id: str | None = None) -> int: ...


class WebhookStore(EndpointConfigStore, AttemptLogStore, Protocol):
    """Both stores plus the reporting query used by administrators."""

    async def get_delivery_stats(
        self, tenant_id: str, now: datetime | None = None
    ) -> DeliveryStats: ...
