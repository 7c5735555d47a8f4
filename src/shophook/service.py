"""Shophook service wiring.

This module provides ShophookService, which assembles storage, the
dispatcher with its worker pool, the retry scheduler and the admin
operations, and manages their lifecycle.

Example:
    ```python
    from shophook.service import ShophookService

    async with ShophookService.create() as shophook:
        # Domain code: fire and forget
        shophook.dispatch(
            "shop_1",
            EventType.OS_FINALIZADA,
            entity_id="os_42",
            entity_type="OrdemServico",
            data={"numero": 42, "valorTotal": 830.5},
        )

        # Back office
        stats = await shophook.admin.get_stats("shop_1")
    ```
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from shophook.config import Settings
from shophook.exceptions import ConfigurationError
from shophook.logging import configure_logging, get_logger
from shophook.models import EventType
from shophook.storage import WebhookStorage
from shophook.webhooks import (
    DeliveryClient,
    DeliveryWorkerPool,
    FeatureFlags,
    RetryScheduler,
    SettingsFeatureFlags,
    WebhookAdmin,
    WebhookDispatcher,
)

logger = get_logger(__name__)


@dataclass
class ShophookService:
    """Webhook delivery engine for a multi-tenant repair shop backend.

    Attributes:
        storage: Qdrant storage for endpoints and attempt logs.
        dispatcher: Fans events out to subscribed endpoints.
        scheduler: Periodically retries failed deliveries.
        admin: Endpoint management, log queries and test deliveries.
        settings: Configuration settings.
    """

    storage: WebhookStorage
    dispatcher: WebhookDispatcher
    scheduler: RetryScheduler
    admin: WebhookAdmin
    settings: Settings

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        flags: FeatureFlags | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ShophookService:
        """Create a ShophookService with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.
            flags: Feature flag lookup. Defaults to SettingsFeatureFlags.
            transport: Optional httpx transport for outbound requests.

        Returns:
            Configured ShophookService instance.

        Raises:
            ConfigurationError: If no Qdrant URL is configured.
        """
        if settings is None:
            settings = Settings()
        if not settings.qdrant_url:
            raise ConfigurationError("qdrant_url must be set")

        storage = WebhookStorage(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key,
            prefix=settings.collection_prefix,
        )
        client = DeliveryClient(transport=transport)
        dispatcher = WebhookDispatcher(
            storage,
            storage,
            client=client,
            flags=flags or SettingsFeatureFlags(settings),
            pool=DeliveryWorkerPool(
                workers=settings.delivery_workers,
                queue_size=settings.delivery_queue_size,
            ),
            settings=settings,
        )
        return cls(
            storage=storage,
            dispatcher=dispatcher,
            scheduler=RetryScheduler(dispatcher, storage, storage, settings=settings),
            admin=WebhookAdmin(storage, client=client, settings=settings),
            settings=settings,
        )

    async def initialize(self) -> None:
        """Configure logging, initialize storage and start background workers."""
        configure_logging(level=self.settings.log_level, format=self.settings.log_format)
        logger.info(
            "Starting Shophook",
            qdrant_url=self.settings.qdrant_url,
            workers=self.settings.delivery_workers,
            retry_interval_seconds=self.settings.retry_interval_seconds,
        )

        await self.storage.initialize()
        await self.start()

    async def start(self) -> None:
        """Start the worker pool and the retry scheduler."""
        await self.dispatcher.pool.start()
        await self.scheduler.start()

    async def stop(self) -> None:
        """Stop the scheduler and drain queued dispatch jobs."""
        await self.scheduler.stop()
        await self.dispatcher.pool.stop(drain=True)

    async def close(self) -> None:
        """Stop background work and close storage."""
        await self.stop()
        await self.storage.close()
        logger.info("Stopped Shophook")

    async def __aenter__(self) -> ShophookService:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    def dispatch(
        self,
        tenant_id: str,
        event_type: EventType | str,
        entity_id: str | None = None,
        entity_type: str | None = None,
        data: Any = None,
    ) -> bool:
        """Queue a domain event for delivery. See WebhookDispatcher.dispatch."""
        return self.dispatcher.dispatch(tenant_id, event_type, entity_id, entity_type, data)


__all__ = ["ShophookService"]
