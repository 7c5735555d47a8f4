"""HTTP delivery of a single webhook attempt.

The client performs one POST and reports what happened. It never touches
attempt logs or endpoint health; callers apply the outcome.
"""

from __future__ import annotations

import asyncio
import logging
import time

import httpx

from shophook.models import (
    MAX_RESPONSE_BODY_CHARS,
    DeliveryOutcome,
    EndpointConfig,
    utc_now,
)

from .signing import signature_headers

logger = logging.getLogger(__name__)


class DeliveryClient:
    """Sends webhook payloads over HTTP.

    Example:
        ```python
        client = DeliveryClient()
        outcome = await client.attempt_delivery(endpoint, payload)
        if not outcome.succeeded:
            print(outcome.error)
        ```
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Initialize the delivery client.

        Args:
            transport: Optional httpx transport, e.g. httpx.MockTransport in tests.
        """
        self._transport = transport

    def build_headers(self, config: EndpointConfig, payload: str) -> dict[str, str]:
        """Request headers for a payload sent to an endpoint."""
        headers = {"Content-Type": "application/json"}
        headers.update(config.headers)
        headers.update(signature_headers(payload, config.secret))
        return headers

    async def attempt_delivery(
        self,
        config: EndpointConfig,
        payload: str,
        url: str | None = None,
    ) -> DeliveryOutcome:
        """POST a payload to an endpoint once.

        ``config.timeout_seconds`` bounds the whole attempt, from connecting
        until the response body is read.

        Args:
            config: Endpoint supplying headers, secret and timeout.
            payload: Serialized envelope, sent byte for byte.
            url: Destination override. Retries pass the URL captured at
                first send; defaults to config.url.

        Returns:
            DeliveryOutcome describing the response or the failure.
        """
        target = url or config.url
        attempted_at = utc_now()
        start = time.perf_counter()

        def elapsed_ms() -> int:
            return int((time.perf_counter() - start) * 1000)

        try:
            status_code, body = await asyncio.wait_for(
                self._post(config, target, payload),
                timeout=config.timeout_seconds,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            error = f"Timeout after {config.timeout_seconds}s"
        except httpx.ConnectError as e:
            error = f"Connection error: {e}"
        except httpx.RequestError as e:
            error = f"Request error: {e}"
        except (httpx.InvalidURL, ValueError, TypeError) as e:
            error = f"Invalid request: {e}"
        else:
            succeeded = 200 <= status_code < 300
            outcome = DeliveryOutcome(
                http_status=status_code,
                response_body=body,
                error=None if succeeded else f"HTTP {status_code}",
                latency_ms=elapsed_ms(),
                attempted_at=attempted_at,
            )
            logger.debug(
                "Webhook POST to %s answered %d in %dms",
                target,
                status_code,
                outcome.latency_ms,
            )
            return outcome

        logger.debug("Webhook POST to %s failed: %s", target, error)
        return DeliveryOutcome(error=error, latency_ms=elapsed_ms(), attempted_at=attempted_at)

    async def _post(
        self, config: EndpointConfig, target: str, payload: str
    ) -> tuple[int, str | None]:
        """Send the request and read at most MAX_RESPONSE_BODY_CHARS of the body."""
        headers = self.build_headers(config, payload)
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout_seconds),
            transport=self._transport,
        ) as client:
            async with client.stream(
                "POST",
                target,
                content=payload.encode("utf-8"),
                headers=headers,
            ) as response:
                chunks: list[str] = []
                size = 0
                async for chunk in response.aiter_text():
                    chunks.append(chunk)
                    size += len(chunk)
                    if size >= MAX_RESPONSE_BODY_CHARS:
                        break
                body = "".join(chunks)[:MAX_RESPONSE_BODY_CHARS]
                return response.status_code, body or None
