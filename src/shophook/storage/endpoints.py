"""Endpoint registry storage operations.

Provides methods to store, retrieve, and manage webhook endpoints and
their health counters.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

from qdrant_client import models

from shophook.models import EndpointConfig, EventType, utc_now

from .retry import qdrant_retry

# Fields written by delivery outcomes; nothing else is touched by them
HEALTH_FIELDS = {"active", "consecutive_failures", "last_success_at", "last_failure_at"}


class EndpointMixin:
    """Mixin providing endpoint operations for WebhookStorage.

    This mixin expects the following attributes/methods from the base class:
    - _collection_name(kind) -> str
    - _point_id(record_id, tenant_id) -> str
    - _upsert(kind, record_id, tenant_id, record)
    - _retrieve_payload(kind, record_id, tenant_id) -> dict | None
    - _scroll_all(kind, filter, limit) -> list[dict]
    - _payload_to_record(payload, record_class) -> RecordT
    - _endpoint_lock(endpoint_id) -> async context manager
    - _forget_endpoint_lock(endpoint_id)
    - _match(key, value) -> FieldCondition
    - client: AsyncQdrantClient
    """

    _collection_name: Any
    _point_id: Any
    _upsert: Any
    _retrieve_payload: Any
    _scroll_all: Any
    _payload_to_record: Any
    _endpoint_lock: Any
    _forget_endpoint_lock: Any
    _match: Any
    client: Any

    @qdrant_retry
    async def store_endpoint(self, endpoint: EndpointConfig) -> str:
        """Store an endpoint configuration.

        Args:
            endpoint: EndpointConfig to store.

        Returns:
            The endpoint ID.
        """
        await self._upsert("endpoints", endpoint.id, endpoint.tenant_id, endpoint)
        return endpoint.id

    @qdrant_retry
    async def get_endpoint(self, endpoint_id: str, tenant_id: str) -> EndpointConfig | None:
        """Get an endpoint by ID.

        Args:
            endpoint_id: ID of the endpoint.
            tenant_id: Tenant that owns it.

        Returns:
            EndpointConfig or None if not found.
        """
        payload = await self._retrieve_payload("endpoints", endpoint_id, tenant_id)
        if payload is None:
            return None
        endpoint: EndpointConfig = self._payload_to_record(payload, EndpointConfig)
        return endpoint

    @qdrant_retry
    async def list_endpoints(
        self,
        tenant_id: str,
        active_only: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[EndpointConfig]:
        """List endpoints of a tenant, oldest first.

        Args:
            tenant_id: Tenant to list endpoints for.
            active_only: If True, only return active endpoints.
            limit: Maximum endpoints to return. None returns all.
            offset: Number of endpoints to skip.

        Returns:
            List of EndpointConfig.
        """
        filters = [self._match("tenant_id", tenant_id)]
        if active_only:
            filters.append(self._match("active", True))

        payloads = await self._scroll_all("endpoints", models.Filter(must=filters))
        endpoints: list[EndpointConfig] = [
            self._payload_to_record(p, EndpointConfig) for p in payloads
        ]
        endpoints.sort(key=lambda e: (e.created_at, e.id))

        end = None if limit is None else offset + limit
        return endpoints[offset:end]

    async def get_endpoints_for_event(
        self,
        event_type: EventType,
        tenant_id: str,
    ) -> list[EndpointConfig]:
        """Get all active endpoints of a tenant subscribed to an event type."""
        endpoints = await self.list_endpoints(tenant_id, active_only=True)
        return [e for e in endpoints if e.subscribes_to(event_type)]

    @qdrant_retry
    async def find_endpoint_by_url(self, url: str, tenant_id: str) -> EndpointConfig | None:
        """Get the tenant's endpoint registered for a URL, if any."""
        payloads = await self._scroll_all(
            "endpoints",
            models.Filter(must=[self._match("tenant_id", tenant_id), self._match("url", url)]),
            limit=1,
        )
        if not payloads:
            return None
        endpoint: EndpointConfig = self._payload_to_record(payloads[0], EndpointConfig)
        return endpoint

    @qdrant_retry
    async def count_endpoints(self, tenant_id: str, active: bool | None = None) -> int:
        """Count a tenant's endpoints, optionally by active flag."""
        filters = [self._match("tenant_id", tenant_id)]
        if active is not None:
            filters.append(self._match("active", active))

        result = await self.client.count(
            collection_name=self._collection_name("endpoints"),
            count_filter=models.Filter(must=filters),
            exact=True,
        )
        return int(result.count)

    async def update_endpoint(
        self,
        endpoint_id: str,
        tenant_id: str,
        mutate: Callable[[EndpointConfig], None],
    ) -> EndpointConfig | None:
        """Apply a change to an endpoint and persist it.

        The read, the change and the write happen under the endpoint's
        lock, so concurrent health updates are not lost.

        Args:
            endpoint_id: ID of the endpoint to update.
            tenant_id: Tenant that owns it.
            mutate: Callable modifying the loaded endpoint in place.

        Returns:
            Updated EndpointConfig or None if not found.
        """
        async with self._endpoint_lock(endpoint_id):
            endpoint = await self.get_endpoint(endpoint_id, tenant_id)
            if endpoint is None:
                return None

            mutate(endpoint)
            endpoint.updated_at = utc_now()

            await self.store_endpoint(endpoint)
            return endpoint

    @qdrant_retry
    async def delete_endpoint(self, endpoint_id: str, tenant_id: str) -> bool:
        """Delete an endpoint. Its attempt logs are kept.

        Returns:
            True if deleted, False if not found.
        """
        async with self._endpoint_lock(endpoint_id):
            if await self._retrieve_payload("endpoints", endpoint_id, tenant_id) is None:
                return False

            await self.client.delete(
                collection_name=self._collection_name("endpoints"),
                points_selector=models.PointIdsList(
                    points=[self._point_id(endpoint_id, tenant_id)],
                ),
            )

        self._forget_endpoint_lock(endpoint_id)
        return True

    async def record_endpoint_success(
        self,
        endpoint_id: str,
        tenant_id: str,
        at: datetime | None = None,
    ) -> EndpointConfig | None:
        """Reset the endpoint's failure counter after a 2xx delivery.

        Returns:
            The updated endpoint, or None if it no longer exists.
        """
        async with self._endpoint_lock(endpoint_id):
            endpoint = await self.get_endpoint(endpoint_id, tenant_id)
            if endpoint is None:
                return None

            endpoint.register_success(at)
            await self._write_health(endpoint)
            return endpoint

    async def record_endpoint_failure(
        self,
        endpoint_id: str,
        tenant_id: str,
        at: datetime | None = None,
    ) -> tuple[EndpointConfig | None, bool]:
        """Count a failed delivery against the endpoint.

        Returns:
            The updated endpoint (None if it no longer exists) and whether
            this failure tripped the circuit breaker.
        """
        async with self._endpoint_lock(endpoint_id):
            endpoint = await self.get_endpoint(endpoint_id, tenant_id)
            if endpoint is None:
                return None, False

            disabled = endpoint.register_failure(at)
            await self._write_health(endpoint)
            return endpoint, disabled

    @qdrant_retry
    async def _write_health(self, endpoint: EndpointConfig) -> None:
        """Persist only the health fields of an endpoint."""
        await self.client.set_payload(
            collection_name=self._collection_name("endpoints"),
            payload=endpoint.model_dump(mode="json", include=HEALTH_FIELDS),
            points=[self._point_id(endpoint.id, endpoint.tenant_id)],
        )
