"""Storage backends for Shophook.

This module provides the storage layer for persisting webhook endpoints
and attempt logs to Qdrant with per-tenant isolation.

Example:
    ```python
    from shophook.storage import WebhookStorage

    async with WebhookStorage() as storage:
        await storage.store_endpoint(endpoint)
        due = await storage.get_due_retries(limit=50)
    ```
"""

from .base import COLLECTION_NAMES
from .client import WebhookStorage
from .protocols import AttemptLogStore, EndpointConfigStore, WebhookStore

__all__ = [
    "WebhookStorage",
    "AttemptLogStore",
    "EndpointConfigStore",
    "WebhookStore",
    "COLLECTION_NAMES",
]
