"""Administrative operations on webhook endpoints and delivery logs.

Every call takes the tenant explicitly; a resource belonging to another
tenant is reported as not found.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from shophook.config import Settings, settings as default_settings
from shophook.exceptions import (
    DuplicateEndpointError,
    NotFoundError,
    SerializationError,
    ValidationError,
)
from shophook.models import (
    AttemptLog,
    AttemptStatus,
    DeliveryStats,
    DeliveryTestResult,
    EndpointConfig,
    EndpointCreate,
    EndpointUpdate,
    EndpointView,
    EventEnvelope,
    EventType,
    list_event_types,
    utc_now,
)
from shophook.storage import WebhookStore

from .client import DeliveryClient

logger = logging.getLogger(__name__)

TEST_ENTITY_TYPE = "Teste"
TEST_MESSAGE = "Este é um webhook de teste do Shophook"


class WebhookAdmin:
    """Endpoint management, log queries, statistics and test deliveries.

    Example:
        ```python
        admin = WebhookAdmin(storage)
        view = await admin.create_endpoint(
            "shop_1",
            EndpointCreate(name="ERP", url="https://erp.example.com/hook", events={EventType.OS_CRIADA}),
        )
        result = await admin.send_test("shop_1", view.id)
        ```
    """

    def __init__(
        self,
        store: WebhookStore,
        client: DeliveryClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._client = client or DeliveryClient()
        self._settings = settings or default_settings

    async def _require_endpoint(self, tenant_id: str, endpoint_id: str) -> EndpointConfig:
        endpoint = await self._store.get_endpoint(endpoint_id, tenant_id)
        if endpoint is None:
            raise NotFoundError("endpoint", endpoint_id)
        return endpoint

    async def _check_url_free(
        self, tenant_id: str, url: str, exclude_id: str | None = None
    ) -> None:
        existing = await self._store.find_endpoint_by_url(url, tenant_id)
        if existing is not None and existing.id != exclude_id:
            raise DuplicateEndpointError(url)

    async def create_endpoint(self, tenant_id: str, data: EndpointCreate) -> EndpointView:
        """Register a new endpoint.

        Raises:
            DuplicateEndpointError: If the tenant already has this URL.
            ValidationError: If the endpoint cannot be built from the input.
        """
        await self._check_url_free(tenant_id, data.url)

        try:
            endpoint = EndpointConfig(
                tenant_id=tenant_id,
                name=data.name,
                description=data.description,
                url=data.url,
                secret=data.secret or None,
                headers=data.headers,
                events=data.events,
                max_attempts=data.max_attempts or self._settings.default_max_attempts,
                timeout_seconds=data.timeout_seconds or self._settings.default_timeout_seconds,
            )
        except PydanticValidationError as e:
            raise _to_validation_error(e) from e

        await self._store.store_endpoint(endpoint)
        logger.info("Created webhook endpoint %s for tenant %s", endpoint.id, tenant_id)
        return endpoint.to_view()

    async def update_endpoint(
        self, tenant_id: str, endpoint_id: str, data: EndpointUpdate
    ) -> EndpointView:
        """Apply a partial update to an endpoint.

        Setting ``active`` to True also clears the failure counter, and
        ``remove_secret`` turns request signing off.

        Raises:
            NotFoundError: If the tenant has no such endpoint.
            DuplicateEndpointError: If the new URL is already registered.
        """
        current = await self._require_endpoint(tenant_id, endpoint_id)
        if data.url is not None and data.url != current.url:
            await self._check_url_free(tenant_id, data.url, exclude_id=endpoint_id)

        changes: dict[str, Any] = data.model_dump(
            exclude_unset=True, exclude={"remove_secret", "active"}
        )
        # Explicit nulls only clear optional fields
        changes = {
            k: v for k, v in changes.items() if v is not None or k in {"description", "secret"}
        }

        def mutate(endpoint: EndpointConfig) -> None:
            for key, value in changes.items():
                setattr(endpoint, key, value)
            if data.remove_secret or endpoint.secret == "":
                endpoint.secret = None
            if data.active is True:
                endpoint.reactivate()
            elif data.active is False:
                endpoint.active = False

        updated = await self._store.update_endpoint(endpoint_id, tenant_id, mutate)
        if updated is None:
            raise NotFoundError("endpoint", endpoint_id)

        logger.info("Updated webhook endpoint %s for tenant %s", endpoint_id, tenant_id)
        return updated.to_view()

    async def delete_endpoint(self, tenant_id: str, endpoint_id: str) -> None:
        """Delete an endpoint. Its attempt logs are kept for audit.

        Raises:
            NotFoundError: If the tenant has no such endpoint.
        """
        if not await self._store.delete_endpoint(endpoint_id, tenant_id):
            raise NotFoundError("endpoint", endpoint_id)
        logger.info("Deleted webhook endpoint %s for tenant %s", endpoint_id, tenant_id)

    async def reactivate_endpoint(self, tenant_id: str, endpoint_id: str) -> EndpointView:
        """Re-enable an endpoint disabled by the circuit breaker.

        Deliveries already exhausted are not resent.

        Raises:
            NotFoundError: If the tenant has no such endpoint.
        """
        updated = await self._store.update_endpoint(
            endpoint_id, tenant_id, lambda endpoint: endpoint.reactivate()
        )
        if updated is None:
            raise NotFoundError("endpoint", endpoint_id)

        logger.info("Reactivated webhook endpoint %s for tenant %s", endpoint_id, tenant_id)
        return updated.to_view()

    async def get_endpoint(self, tenant_id: str, endpoint_id: str) -> EndpointView:
        endpoint = await self._require_endpoint(tenant_id, endpoint_id)
        return endpoint.to_view()

    async def list_endpoints(
        self, tenant_id: str, limit: int = 50, offset: int = 0
    ) -> list[EndpointView]:
        _check_page(limit, offset)
        endpoints = await self._store.list_endpoints(tenant_id, limit=limit, offset=offset)
        return [e.to_view() for e in endpoints]

    async def list_logs(
        self,
        tenant_id: str,
        status: AttemptStatus | None = None,
        event_type: EventType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AttemptLog]:
        """List a tenant's delivery logs, newest first."""
        _check_page(limit, offset)
        return await self._store.list_attempts(
            tenant_id, status=status, event_type=event_type, limit=limit, offset=offset
        )

    async def list_endpoint_logs(
        self,
        tenant_id: str,
        endpoint_id: str,
        status: AttemptStatus | None = None,
        event_type: EventType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AttemptLog]:
        """List one endpoint's delivery logs, newest first.

        Raises:
            NotFoundError: If the tenant has no such endpoint.
        """
        _check_page(limit, offset)
        await self._require_endpoint(tenant_id, endpoint_id)
        return await self._store.list_attempts(
            tenant_id,
            endpoint_id=endpoint_id,
            status=status,
            event_type=event_type,
            limit=limit,
            offset=offset,
        )

    async def get_stats(self, tenant_id: str) -> DeliveryStats:
        return await self._store.get_delivery_stats(tenant_id)

    def list_event_types(self) -> list[dict[str, str]]:
        return list_event_types()

    async def purge_logs(
        self, older_than_days: int | None = None, tenant_id: str | None = None
    ) -> int:
        """Delete delivery logs created more than ``older_than_days`` ago.

        Args:
            older_than_days: Age cutoff. Defaults to log_retention_days.
            tenant_id: Only purge this tenant's logs. None purges every tenant.

        Returns:
            Number of logs deleted.
        """
        days = older_than_days if older_than_days is not None else self._settings.log_retention_days
        if days < 1:
            raise ValidationError("older_than_days", "must be at least 1")

        deleted = await self._store.purge_attempts(utc_now() - timedelta(days=days), tenant_id)
        logger.info("Purged %d webhook logs older than %d days", deleted, days)
        return deleted

    async def send_test(
        self,
        tenant_id: str,
        endpoint_id: str,
        event_type: EventType = EventType.OS_CRIADA,
    ) -> DeliveryTestResult:
        """Send a synthetic event to an endpoint and report the result.

        The request is built, signed and sent exactly like a production
        delivery, but no log row is written and endpoint health is left
        alone. Works for inactive endpoints too.

        Raises:
            NotFoundError: If the tenant has no such endpoint.
        """
        endpoint = await self._require_endpoint(tenant_id, endpoint_id)

        envelope = EventEnvelope(
            event=event_type,
            event_name=event_type.display_name,
            test=True,
            entity_id=str(uuid4()),
            entity_type=TEST_ENTITY_TYPE,
            data={"mensagem": TEST_MESSAGE, "oficinaId": tenant_id},
        )
        try:
            payload = envelope.to_json()
        except SerializationError as e:
            return DeliveryTestResult(succeeded=False, error=e.message)

        outcome = await self._client.attempt_delivery(endpoint, payload)
        logger.info(
            "Test webhook to endpoint %s: %s",
            endpoint_id,
            "delivered" if outcome.succeeded else outcome.error,
        )
        return DeliveryTestResult(
            succeeded=outcome.succeeded,
            http_status=outcome.http_status,
            response_body=outcome.response_body,
            error=outcome.error,
            latency_ms=outcome.latency_ms,
            payload_sent=payload,
        )


def _check_page(limit: int, offset: int) -> None:
    if limit < 1:
        raise ValidationError("limit", "must be at least 1")
    if offset < 0:
        raise ValidationError("offset", "must not be negative")


def _to_validation_error(error: PydanticValidationError) -> ValidationError:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "endpoint"
    return ValidationError(field, first.get("msg", str(error)))
