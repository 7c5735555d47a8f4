"""Read models returned by administrative operations."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class DeliveryStats(BaseModel):
    """Webhook health summary for one tenant.

    Success and failure counts cover deliveries last written in the
    trailing 24 hours.
    """

    model_config = ConfigDict(extra="forbid")

    total_endpoints: int = Field(default=0, ge=0)
    active_endpoints: int = Field(default=0, ge=0)
    inactive_endpoints: int = Field(default=0, ge=0)
    successes_24h: int = Field(default=0, ge=0)
    failures_24h: int = Field(default=0, ge=0)
    avg_latency_ms_24h: float | None = Field(
        default=None, description="Mean latency of successful deliveries"
    )
    pending_retries: int = Field(default=0, ge=0)


class DeliveryTestResult(BaseModel):
    """Outcome of a synchronous test delivery."""

    model_config = ConfigDict(extra="forbid")

    succeeded: bool
    http_status: int | None = None
    response_body: str | None = None
    error: str | None = None
    latency_ms: int | None = None
    payload_sent: str | None = None


__all__ = ["DeliveryStats", "DeliveryTestResult"]
