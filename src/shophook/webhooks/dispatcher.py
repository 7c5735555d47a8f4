"""Fan-out of domain events to subscribed webhook endpoints.

Implements the first delivery attempt of every logical delivery:
- Feature flag gating per tenant
- Selecting the tenant's active endpoints subscribed to the event
- Serializing the envelope once and capturing it on the attempt log
- Applying the outcome to the log and the endpoint's circuit breaker
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

from shophook.config import WEBHOOK_FEATURE_CODE, Settings, settings as default_settings
from shophook.exceptions import SerializationError
from shophook.logging import delivery_context
from shophook.models import (
    AttemptLog,
    AttemptStatus,
    DeliveryOutcome,
    EndpointConfig,
    EventEnvelope,
    EventType,
)
from shophook.storage import AttemptLogStore, EndpointConfigStore

from .client import DeliveryClient
from .flags import FeatureFlags, SettingsFeatureFlags
from .pool import DeliveryWorkerPool

logger = logging.getLogger(__name__)


class WebhookDispatcher:
    """Dispatches domain events to registered endpoints.

    Example:
        ```python
        dispatcher = WebhookDispatcher(storage, storage, pool=pool)

        # Producers: fire and forget
        dispatcher.dispatch("shop_1", EventType.OS_CRIADA, "os_42", "OrdemServico", data)

        # Background contexts: run inline and get the attempt log ids
        ids = await dispatcher.dispatch_now("shop_1", EventType.OS_CRIADA, "os_42")
        ```
    """

    def __init__(
        self,
        endpoints: EndpointConfigStore,
        attempts: AttemptLogStore,
        client: DeliveryClient | None = None,
        flags: FeatureFlags | None = None,
        pool: DeliveryWorkerPool | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the webhook dispatcher.

        Args:
            endpoints: Endpoint registry.
            attempts: Attempt log store.
            client: HTTP delivery client.
            flags: Feature flag lookup. Defaults to SettingsFeatureFlags.
            pool: Worker pool running dispatch() jobs. It must be started
                by the owner for queued jobs to run.
            settings: Configuration. Defaults to the global settings.
        """
        cfg = settings or default_settings
        self._endpoints = endpoints
        self._attempts = attempts
        self._client = client or DeliveryClient()
        self._flags = flags or SettingsFeatureFlags(cfg)
        self._pool = pool or DeliveryWorkerPool(
            workers=cfg.delivery_workers,
            queue_size=cfg.delivery_queue_size,
        )

    @property
    def pool(self) -> DeliveryWorkerPool:
        return self._pool

    @property
    def client(self) -> DeliveryClient:
        return self._client

    def dispatch(
        self,
        tenant_id: str,
        event_type: EventType | str,
        entity_id: str | None = None,
        entity_type: str | None = None,
        data: Any = None,
    ) -> bool:
        """Queue an event for delivery and return immediately.

        Never raises on delivery problems. An unknown event type or a full
        queue is logged and reported through the return value.

        Returns:
            True if the job was queued.
        """
        try:
            event = EventType(event_type)
        except ValueError:
            logger.error("Ignoring unknown webhook event type %r for tenant %s", event_type, tenant_id)
            return False

        async def job() -> None:
            await self.dispatch_now(tenant_id, event, entity_id, entity_type, data)

        accepted = self._pool.submit(job)
        if not accepted:
            logger.warning(
                "Dropped webhook event %s for tenant %s: delivery queue full",
                event.value,
                tenant_id,
            )
        return accepted

    async def dispatch_now(
        self,
        tenant_id: str,
        event_type: EventType,
        entity_id: str | None = None,
        entity_type: str | None = None,
        data: Any = None,
    ) -> list[str]:
        """Deliver an event to every subscribed endpoint of a tenant.

        Each endpoint is handled independently; a failure for one never
        affects the others.

        Returns:
            IDs of the attempt logs created.
        """
        if not await self._flags.is_enabled(WEBHOOK_FEATURE_CODE, tenant_id):
            logger.debug("Webhooks disabled for tenant %s, skipping %s", tenant_id, event_type.value)
            return []

        endpoints = await self._endpoints.get_endpoints_for_event(event_type, tenant_id)
        if not endpoints:
            logger.debug(
                "No webhooks subscribed to event %s for tenant %s", event_type.value, tenant_id
            )
            return []

        results = await asyncio.gather(
            *(
                self._deliver_first(endpoint, event_type, entity_id, entity_type, data)
                for endpoint in endpoints
            ),
            return_exceptions=True,
        )

        log_ids: list[str] = []
        for endpoint, result in zip(endpoints, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Webhook delivery to endpoint %s failed: %s",
                    endpoint.id,
                    result,
                    exc_info=result,
                )
            elif result is not None:
                log_ids.append(result)

        return log_ids

    async def _deliver_first(
        self,
        endpoint: EndpointConfig,
        event_type: EventType,
        entity_id: str | None,
        entity_type: str | None,
        data: Any,
    ) -> str | None:
        """Create the attempt log for one endpoint and make attempt 1.

        Returns:
            Attempt log ID, or None if the payload could not be serialized.
        """
        envelope = EventEnvelope.for_event(event_type, entity_id, entity_type, data)
        try:
            payload = envelope.to_json()
        except SerializationError as e:
            logger.error("Not delivering %s to endpoint %s: %s", event_type.value, endpoint.id, e)
            return None

        log = AttemptLog(
            endpoint_id=endpoint.id,
            endpoint_name=endpoint.name,
            tenant_id=endpoint.tenant_id,
            event_type=event_type,
            entity_id=entity_id,
            entity_type=entity_type,
            url=endpoint.url,
            payload=payload,
        )
        with delivery_context(log.tenant_id, log.endpoint_id, log.id):
            await self._attempts.log_attempt(log)

            outcome = await self._client.attempt_delivery(endpoint, log.payload, url=log.url)
            await self.apply_outcome(log, endpoint, outcome)

        return log.id

    async def apply_outcome(
        self,
        log: AttemptLog,
        endpoint: EndpointConfig,
        outcome: DeliveryOutcome,
        now: datetime | None = None,
    ) -> AttemptStatus:
        """Record an attempt's outcome on its log and on the endpoint.

        Args:
            log: Attempt log whose ``attempt_number`` is the attempt just made.
            endpoint: Endpoint the attempt was made against.
            outcome: What the delivery client observed.
            now: Reference time for the retry schedule.

        Returns:
            The log's new status.
        """
        status = log.record_outcome(outcome, endpoint.max_attempts, now)
        await self._attempts.update_attempt(log)

        if outcome.succeeded:
            await self._endpoints.record_endpoint_success(
                endpoint.id, endpoint.tenant_id, outcome.attempted_at
            )
            logger.info(
                "Webhook delivered: %s to %s (status %d, attempt %d)",
                log.event_type.value,
                log.url,
                outcome.http_status,
                log.attempt_number,
            )
            return status

        _, disabled = await self._endpoints.record_endpoint_failure(
            endpoint.id, endpoint.tenant_id, outcome.attempted_at
        )
        if disabled:
            logger.warning(
                "Webhook endpoint %s (%s) disabled after repeated failures",
                endpoint.id,
                endpoint.name,
            )

        if status is AttemptStatus.RETRY_SCHEDULED:
            logger.info(
                "Webhook scheduled for retry: %s to %s (attempt %d failed: %s, next at %s)",
                log.event_type.value,
                log.url,
                log.attempt_number,
                outcome.error,
                log.next_retry_at.isoformat() if log.next_retry_at else None,
            )
        else:
            logger.warning(
                "Webhook attempts exhausted: %s to %s after %d attempts (%s)",
                log.event_type.value,
                log.url,
                log.attempt_number,
                outcome.error,
            )
        return status
