"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import httpx
import pytest
from qdrant_client import AsyncQdrantClient

from shophook.config import WEBHOOK_FEATURE_CODE, Settings
from shophook.models import EndpointConfig, EventType
from shophook.storage import WebhookStorage
from shophook.webhooks import (
    DeliveryClient,
    RetryScheduler,
    StaticFeatureFlags,
    WebhookAdmin,
    WebhookDispatcher,
)

TENANT = "shop_1"
OTHER_TENANT = "shop_2"


class Receiver:
    """Scripted webhook receiver served through httpx.MockTransport.

    Answers with the queued status codes in order; the last one repeats.
    Setting ``error`` makes every request raise it instead. Every request
    is recorded.
    """

    def __init__(self, statuses: Iterable[int] = (200,)) -> None:
        self.statuses = list(statuses)
        self.error: Exception | None = None
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return httpx.Response(status, text="ok" if status < 300 else "boom")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def bodies(self) -> list[bytes]:
        return [r.content for r in self.requests]


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment's .env file."""
    return Settings(_env_file=None, collection_prefix="test")


@pytest.fixture
async def storage():
    """Create an in-memory storage instance for testing.

    Uses qdrant-client's local mode with in-memory storage.
    """
    store = WebhookStorage(prefix="test")
    # Override with in-memory client
    store._client = AsyncQdrantClient(location=":memory:")
    await store._ensure_collections()
    store._collections_initialized = True

    yield store

    await store.close()


@pytest.fixture
def receiver() -> Receiver:
    return Receiver()


@pytest.fixture
def client(receiver: Receiver) -> DeliveryClient:
    return DeliveryClient(transport=receiver.transport)


@pytest.fixture
def flags() -> StaticFeatureFlags:
    """Webhooks enabled for TENANT and OTHER_TENANT."""
    return StaticFeatureFlags(
        {(WEBHOOK_FEATURE_CODE, TENANT), (WEBHOOK_FEATURE_CODE, OTHER_TENANT)}
    )


@pytest.fixture
def dispatcher(
    storage: WebhookStorage,
    client: DeliveryClient,
    flags: StaticFeatureFlags,
    settings: Settings,
) -> WebhookDispatcher:
    return WebhookDispatcher(storage, storage, client=client, flags=flags, settings=settings)


@pytest.fixture
def scheduler(
    dispatcher: WebhookDispatcher, storage: WebhookStorage, settings: Settings
) -> RetryScheduler:
    return RetryScheduler(dispatcher, storage, storage, settings=settings)


@pytest.fixture
def admin(storage: WebhookStorage, client: DeliveryClient, settings: Settings) -> WebhookAdmin:
    return WebhookAdmin(storage, client=client, settings=settings)


@pytest.fixture
def make_endpoint(
    storage: WebhookStorage,
) -> Callable[..., Awaitable[EndpointConfig]]:
    """Factory storing an endpoint subscribed to OS_CRIADA by default."""
    counter = 0

    async def _make(**overrides: Any) -> EndpointConfig:
        nonlocal counter
        counter += 1
        fields: dict[str, Any] = {
            "tenant_id": TENANT,
            "name": f"Endpoint {counter}",
            "url": f"https://receiver{counter}.example.com/hook",
            "events": {EventType.OS_CRIADA},
        }
        fields.update(overrides)
        endpoint = EndpointConfig(**fields)
        await storage.store_endpoint(endpoint)
        return endpoint

    return _make
