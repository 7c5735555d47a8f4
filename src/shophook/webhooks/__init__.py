"""Webhook delivery system for Shophook.

Provides HMAC-signed, retried delivery of domain events to tenant
endpoints, plus the administrative operations around it.

Example:
    ```python
    from shophook.webhooks import WebhookDispatcher, RetryScheduler

    dispatcher = WebhookDispatcher(storage, storage)
    await dispatcher.pool.start()
    dispatcher.dispatch("shop_1", EventType.PAGAMENTO_RECEBIDO, "pay_9", "Pagamento", {"valor": 150})

    scheduler = RetryScheduler(dispatcher, storage, storage)
    await scheduler.run_once()
    ```
"""

from .admin import WebhookAdmin
from .client import DeliveryClient
from .dispatcher import WebhookDispatcher
from .flags import FeatureFlags, SettingsFeatureFlags, StaticFeatureFlags
from .pool import DeliveryWorkerPool
from .scheduler import RetryScheduler
from .signing import (
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    compute_signature,
    signature_headers,
    verify_signature,
)

__all__ = [
    "DeliveryClient",
    "DeliveryWorkerPool",
    "FeatureFlags",
    "RetryScheduler",
    "SettingsFeatureFlags",
    "StaticFeatureFlags",
    "WebhookAdmin",
    "WebhookDispatcher",
    "SIGNATURE_HEADER",
    "TIMESTAMP_HEADER",
    "compute_signature",
    "signature_headers",
    "verify_signature",
]
