#!/usr/bin/env python3
"""Quickstart demo - register an endpoint, dispatch events, inspect logs.

Demonstrates:
- create_endpoint(): Register a signed endpoint for a tenant
- dispatch(): Fire-and-forget delivery from domain code
- Retry scheduling when the receiver fails
- send_test(): Synthetic delivery without touching logs or health
- get_stats(): Per-tenant delivery summary

The receiver is simulated in-process with httpx.MockTransport, so no
network access is needed beyond Qdrant.

Prerequisites:
    - Qdrant running: docker run -p 6333:6333 qdrant/qdrant

Usage:
    python examples/quickstart.py
"""

import asyncio

import httpx

from shophook import EndpointCreate, EventType, Settings
from shophook.service import ShophookService
from shophook.webhooks import verify_signature

SECRET = "quickstart-secret"
TENANT = "oficina_demo"


class DemoReceiver:
    """Accepts the first request, then answers 503 to show retries."""

    def __init__(self) -> None:
        self.calls = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        body = request.content.decode("utf-8")
        valid = verify_signature(body, SECRET, request.headers.get("X-Webhook-Signature", ""))
        print(f"  <- receiver got {request.url} (signature valid: {valid})")
        return httpx.Response(200 if self.calls == 1 else 503)


async def main() -> None:
    print("=" * 70)
    print("Shophook Quickstart Demo")
    print("=" * 70)

    receiver = DemoReceiver()
    settings = Settings(collection_prefix="shophook_demo", log_format="text")

    async with ShophookService.create(
        settings, transport=httpx.MockTransport(receiver.handler)
    ) as shophook:
        # =====================================================================
        # 1. REGISTER: One endpoint subscribed to service order events
        # =====================================================================
        print("\n1. REGISTERING ENDPOINT")
        print("-" * 70)
        endpoint = await shophook.admin.create_endpoint(
            TENANT,
            EndpointCreate(
                name="ERP",
                url="https://erp.example.com/webhooks/shophook",
                secret=SECRET,
                events={EventType.OS_CRIADA, EventType.OS_FINALIZADA},
                max_attempts=5,
            ),
        )
        print(f"  Registered {endpoint.id} -> {endpoint.url}")

        # =====================================================================
        # 2. DISPATCH: Domain code fires events and moves on
        # =====================================================================
        print("\n2. DISPATCHING EVENTS")
        print("-" * 70)
        shophook.dispatch(TENANT, EventType.OS_CRIADA, "os_1001", "OrdemServico", {"numero": 1001})
        shophook.dispatch(
            TENANT,
            EventType.OS_FINALIZADA,
            "os_1001",
            "OrdemServico",
            {"numero": 1001, "valorTotal": 830.5},
        )
        # Not subscribed: no request, no log
        shophook.dispatch(TENANT, EventType.ESTOQUE_BAIXO, "peca_77", "Peca", {"quantidade": 1})
        await shophook.dispatcher.pool.join()

        # =====================================================================
        # 3. LOGS: The second delivery failed and awaits a retry
        # =====================================================================
        print("\n3. DELIVERY LOGS")
        print("-" * 70)
        for log in await shophook.admin.list_endpoint_logs(TENANT, endpoint.id):
            print(
                f"  {log.event_type.value:<15} {log.status.value:<18} "
                f"attempt {log.attempt_number}  next retry: {log.next_retry_at}"
            )

        # =====================================================================
        # 4. TEST DELIVERY and STATS
        # =====================================================================
        print("\n4. TEST DELIVERY AND STATS")
        print("-" * 70)
        result = await shophook.admin.send_test(TENANT, endpoint.id)
        print(f"  Test delivery succeeded: {result.succeeded} ({result.error or 'ok'})")

        stats = await shophook.admin.get_stats(TENANT)
        print(f"  Successes (24h): {stats.successes_24h}")
        print(f"  Failures (24h):  {stats.failures_24h}")
        print(f"  Pending retries: {stats.pending_retries}")

        # Logs are kept after the endpoint is deleted
        await shophook.admin.delete_endpoint(TENANT, endpoint.id)

    print("\n" + "=" * 70)
    print("Demo complete!")
    print("=" * 70)


if __name__ == "__main__":
    asyncio.run(main())
