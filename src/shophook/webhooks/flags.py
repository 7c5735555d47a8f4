"""Per-tenant feature flag lookup.

Webhook delivery only runs for tenants whose plan enables the
``WEBHOOK_NOTIFICATIONS`` feature. The lookup itself belongs to the
host application; SettingsFeatureFlags is a configuration-driven default.
"""

from __future__ import annotations

from typing import Protocol

from shophook.config import WEBHOOK_FEATURE_CODE, Settings


class FeatureFlags(Protocol):
    """Answers whether a feature is enabled for a tenant."""

    async def is_enabled(self, feature_code: str, tenant_id: str) -> bool: ...


class SettingsFeatureFlags:
    """Feature flags driven by Settings.

    Webhook notifications are on for every tenant unless switched off
    globally with ``webhooks_enabled`` or per tenant through
    ``webhooks_disabled_tenants``. Other feature codes are always on.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def is_enabled(self, feature_code: str, tenant_id: str) -> bool:
        if feature_code != WEBHOOK_FEATURE_CODE:
            return True
        if not self._settings.webhooks_enabled:
            return False
        return tenant_id not in self._settings.webhooks_disabled_tenants


class StaticFeatureFlags:
    """Feature flags from an explicit set of enabled (code, tenant) pairs."""

    def __init__(self, enabled: set[tuple[str, str]] | None = None) -> None:
        self._enabled = set(enabled or ())

    def enable(self, feature_code: str, tenant_id: str) -> None:
        self._enabled.add((feature_code, tenant_id))

    def disable(self, feature_code: str, tenant_id: str) -> None:
        self._enabled.discard((feature_code, tenant_id))

    async def is_enabled(self, feature_code: str, tenant_id: str) -> bool:
        return (feature_code, tenant_id) in self._enabled
