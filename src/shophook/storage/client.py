"""Qdrant storage client for Shophook.

This module provides the main WebhookStorage class that combines
all storage operations through mixins.

Example:
    ```python
    from shophook.storage import WebhookStorage

    async with WebhookStorage() as storage:
        await storage.store_endpoint(endpoint)
        matches = await storage.get_endpoints_for_event(EventType.OS_CRIADA, "shop_1")
    ```
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from shophook.models import AttemptStatus, DeliveryStats, utc_now

from .attempts import AttemptMixin
from .base import StorageBase
from .endpoints import EndpointMixin

STATS_WINDOW = timedelta(hours=24)


class WebhookStorage(EndpointMixin, AttemptMixin, StorageBase):
    """Async Qdrant storage for webhook endpoints and attempt logs.

    Handles collection management, tenant isolation, and CRUD operations
    for both record kinds. Uses async Qdrant client for non-blocking I/O.

    This class combines functionality from multiple mixins:
    - EndpointMixin: store_endpoint, get_endpoint, list_endpoints,
      get_endpoints_for_event, update_endpoint, record_endpoint_success, etc.
    - AttemptMixin: log_attempt, list_attempts, get_due_retries,
      claim_retry, get_stranded_deliveries, claim_stranded, purge_attempts, etc.

    Attributes:
        client: Async Qdrant client instance.
    """

    async def __aenter__(self) -> WebhookStorage:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def get_delivery_stats(
        self,
        tenant_id: str,
        now: datetime | None = None,
    ) -> DeliveryStats:
        """Get webhook health statistics for a tenant.

        Args:
            tenant_id: Tenant to get stats for.
            now: End of the 24 hour window. Defaults to the current time.

        Returns:
            DeliveryStats with endpoint counts and recent delivery figures.
        """
        since = (now or utc_now()) - STATS_WINDOW

        total = await self.count_endpoints(tenant_id)
        active = await self.count_endpoints(tenant_id, active=True)

        successes = await self.count_attempts(tenant_id, [AttemptStatus.SUCCESS], since=since)
        failures = await self.count_attempts(
            tenant_id,
            [AttemptStatus.FAILURE, AttemptStatus.ATTEMPTS_EXHAUSTED],
            since=since,
        )
        pending = await self.count_attempts(tenant_id, [AttemptStatus.RETRY_SCHEDULED])

        avg_latency = None
        if successes > 0:
            avg_latency = await self.average_success_latency(tenant_id, since)

        return DeliveryStats(
            total_endpoints=total,
            active_endpoints=active,
            inactive_endpoints=total - active,
            successes_24h=successes,
            failures_24h=failures,
            avg_latency_ms_24h=avg_latency,
            pending_retries=pending,
        )
