"""Tests for the retry scheduler."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import patch

from shophook.config import Settings
from shophook.models import AttemptLog, AttemptStatus, EndpointConfig, EventType, utc_now
from shophook.webhooks import RetryScheduler, verify_signature
from shophook.webhooks.scheduler import INTERRUPTED_ERROR

TENANT = "shop_1"


async def first_delivery(dispatcher, storage) -> AttemptLog:
    """Dispatch OS_CRIADA and return the resulting attempt log."""
    ids = await dispatcher.dispatch_now(TENANT, EventType.OS_CRIADA, "os_1", "OrdemServico", {})
    assert len(ids) == 1
    return await storage.get_attempt(ids[0], TENANT)


class TestRunOnce:
    """Tests for a single scheduler pass."""

    async def test_backoff_schedule_until_exhausted(
        self, dispatcher, scheduler, storage, receiver, make_endpoint
    ):
        """Retries follow 1, 5, 15, 30 minutes, then the budget runs out."""
        await make_endpoint(max_attempts=5)
        receiver.statuses = [500]

        log = await first_delivery(dispatcher, storage)
        assert log.status is AttemptStatus.RETRY_SCHEDULED

        for expected_minutes in (5, 15, 30):
            now = log.next_retry_at
            assert await scheduler.run_once(now=now) == 1

            log = await storage.get_attempt(log.id, TENANT)
            assert log.status is AttemptStatus.RETRY_SCHEDULED
            assert log.next_retry_at - now == timedelta(minutes=expected_minutes)

        assert await scheduler.run_once(now=log.next_retry_at) == 1

        log = await storage.get_attempt(log.id, TENANT)
        assert log.status is AttemptStatus.ATTEMPTS_EXHAUSTED
        assert log.attempt_number == 5
        assert log.next_retry_at is None
        assert [r.attempt_number for r in log.history] == [1, 2, 3, 4, 5]
        assert len(receiver.requests) == 5

        # Nothing left to do
        assert await scheduler.run_once(now=utc_now() + timedelta(days=1)) == 0
        assert len(receiver.requests) == 5

    async def test_retries_send_identical_bytes(
        self, dispatcher, scheduler, storage, receiver, make_endpoint
    ):
        await make_endpoint(secret="s3cr3t")
        receiver.statuses = [500, 500, 200]

        log = await first_delivery(dispatcher, storage)
        await scheduler.run_once(now=log.next_retry_at)
        log = await storage.get_attempt(log.id, TENANT)
        await scheduler.run_once(now=log.next_retry_at)

        assert len(receiver.requests) == 3
        assert len(set(receiver.bodies)) == 1
        assert len({r.headers["X-Webhook-Signature"] for r in receiver.requests}) == 1

    async def test_not_due_yet(self, dispatcher, scheduler, storage, receiver, make_endpoint):
        await make_endpoint()
        receiver.statuses = [500]

        log = await first_delivery(dispatcher, storage)

        assert await scheduler.run_once(now=log.next_retry_at - timedelta(seconds=1)) == 0
        assert len(receiver.requests) == 1

    async def test_success_on_retry(
        self, dispatcher, scheduler, storage, receiver, make_endpoint
    ):
        endpoint = await make_endpoint()
        receiver.statuses = [500, 200]

        log = await first_delivery(dispatcher, storage)
        assert (await storage.get_endpoint(endpoint.id, TENANT)).consecutive_failures == 1

        assert await scheduler.run_once(now=log.next_retry_at) == 1

        log = await storage.get_attempt(log.id, TENANT)
        assert log.status is AttemptStatus.SUCCESS
        assert log.attempt_number == 2
        assert log.http_status == 200
        assert log.error_message is None
        assert log.lease_token is None

        stored = await storage.get_endpoint(endpoint.id, TENANT)
        assert stored.consecutive_failures == 0

    async def test_default_budget_exhausts_after_three(
        self, dispatcher, scheduler, storage, receiver, make_endpoint
    ):
        await make_endpoint()
        receiver.statuses = [500]

        log = await first_delivery(dispatcher, storage)
        await scheduler.run_once(now=log.next_retry_at)
        log = await storage.get_attempt(log.id, TENANT)
        await scheduler.run_once(now=log.next_retry_at)

        log = await storage.get_attempt(log.id, TENANT)
        assert log.status is AttemptStatus.ATTEMPTS_EXHAUSTED
        assert log.attempt_number == 3

    async def test_retry_uses_captured_url_and_current_secret(
        self, dispatcher, scheduler, storage, receiver, make_endpoint
    ):
        """URL and payload are frozen; headers and secret are read live."""
        endpoint = await make_endpoint(secret="old")
        receiver.statuses = [500, 200]
        log = await first_delivery(dispatcher, storage)

        def rotate(e: EndpointConfig) -> None:
            e.url = "https://moved.example.com/hook"
            e.secret = "new"
            e.headers = {"X-Shop": "1"}

        await storage.update_endpoint(endpoint.id, TENANT, rotate)
        await scheduler.run_once(now=log.next_retry_at)

        retry = receiver.requests[1]
        assert str(retry.url) == endpoint.url
        assert retry.content == receiver.requests[0].content
        assert retry.headers["X-Shop"] == "1"
        assert verify_signature(log.payload, "new", retry.headers["X-Webhook-Signature"])

    async def test_disabled_endpoint_abandons_retry(
        self, dispatcher, scheduler, storage, receiver, make_endpoint
    ):
        endpoint = await make_endpoint()
        receiver.statuses = [500]
        log = await first_delivery(dispatcher, storage)

        def disable(e: EndpointConfig) -> None:
            e.active = False

        await storage.update_endpoint(endpoint.id, TENANT, disable)

        assert await scheduler.run_once(now=log.next_retry_at) == 1

        log = await storage.get_attempt(log.id, TENANT)
        assert log.status is AttemptStatus.ATTEMPTS_EXHAUSTED
        assert log.error_message == "Endpoint disabled"
        assert log.attempt_number == 1
        assert log.next_retry_at is None
        assert len(receiver.requests) == 1

    async def test_deleted_endpoint_abandons_retry(
        self, dispatcher, scheduler, storage, receiver, make_endpoint
    ):
        endpoint = await make_endpoint()
        receiver.statuses = [500]
        log = await first_delivery(dispatcher, storage)

        await storage.delete_endpoint(endpoint.id, TENANT)

        assert await scheduler.run_once(now=log.next_retry_at) == 1

        log = await storage.get_attempt(log.id, TENANT)
        assert log.status is AttemptStatus.ATTEMPTS_EXHAUSTED
        assert log.error_message == "Endpoint deleted"
        assert len(receiver.requests) == 1

    async def test_leased_row_is_skipped(
        self, dispatcher, scheduler, storage, receiver, make_endpoint
    ):
        """A row claimed by another scheduler is left alone until the lease lapses."""
        await make_endpoint()
        receiver.statuses = [500]
        log = await first_delivery(dispatcher, storage)
        now = log.next_retry_at

        assert await storage.claim_retry(log, 300, now) is not None

        assert await scheduler.run_once(now=now) == 0
        assert len(receiver.requests) == 1

        assert await scheduler.run_once(now=now + timedelta(seconds=301)) == 1
        assert len(receiver.requests) == 2

    async def test_concurrent_schedulers_send_once(
        self, dispatcher, storage, receiver, settings, make_endpoint
    ):
        await make_endpoint()
        receiver.statuses = [500]
        log = await first_delivery(dispatcher, storage)

        first = RetryScheduler(dispatcher, storage, storage, settings=settings)
        second = RetryScheduler(dispatcher, storage, storage, settings=settings)
        results = await asyncio.gather(
            first.run_once(now=log.next_retry_at),
            second.run_once(now=log.next_retry_at),
        )

        assert sorted(results) == [0, 1]
        assert len(receiver.requests) == 2

    async def test_row_error_does_not_stop_batch(
        self, dispatcher, scheduler, storage, receiver, make_endpoint
    ):
        await make_endpoint()
        await make_endpoint()
        receiver.statuses = [500]
        await dispatcher.dispatch_now(TENANT, EventType.OS_CRIADA, "os_1")
        now = utc_now() + timedelta(minutes=2)

        with patch.object(
            scheduler, "_process", side_effect=[RuntimeError("boom"), True]
        ) as process:
            processed = await scheduler.run_once(now=now)

        assert process.call_count == 2
        assert processed == 1

    async def test_batch_size_limits_run(
        self, dispatcher, storage, receiver, make_endpoint
    ):
        for _ in range(3):
            await make_endpoint()
        receiver.statuses = [500]
        await dispatcher.dispatch_now(TENANT, EventType.OS_CRIADA, "os_1")

        cfg = Settings(_env_file=None, retry_batch_size=2)
        scheduler = RetryScheduler(dispatcher, storage, storage, settings=cfg)

        assert await scheduler.run_once(now=utc_now() + timedelta(minutes=2)) == 2


class TestStrandedDeliveries:
    """Tests for rows whose first attempt never recorded an outcome."""

    async def stranded(self, storage, endpoint, minutes_ago: int = 10) -> AttemptLog:
        written = utc_now() - timedelta(minutes=minutes_ago)
        log = AttemptLog(
            endpoint_id=endpoint.id,
            tenant_id=TENANT,
            event_type=EventType.OS_CRIADA,
            url=endpoint.url,
            payload='{"evento":"OS_CRIADA"}',
            created_at=written,
            updated_at=written,
        )
        await storage.log_attempt(log)
        return log

    async def test_stranded_row_joins_retry_schedule(
        self, scheduler, storage, receiver, make_endpoint
    ):
        endpoint = await make_endpoint()
        log = await self.stranded(storage, endpoint)
        now = utc_now()

        assert await scheduler.run_once(now=now) == 1

        recovered = await storage.get_attempt(log.id, TENANT)
        assert recovered.status is AttemptStatus.RETRY_SCHEDULED
        assert recovered.attempt_number == 1
        assert recovered.error_message == INTERRUPTED_ERROR
        assert recovered.next_retry_at == now + timedelta(minutes=1)
        assert [r.status for r in recovered.history] == [AttemptStatus.RETRY_SCHEDULED]
        assert receiver.requests == []
        # Nothing is known about the receiver, so health is unchanged
        assert (await storage.get_endpoint(endpoint.id, TENANT)).consecutive_failures == 0

        assert await scheduler.run_once(now=recovered.next_retry_at) == 1
        delivered = await storage.get_attempt(log.id, TENANT)
        assert delivered.status is AttemptStatus.SUCCESS
        assert delivered.attempt_number == 2
        assert receiver.bodies == [log.payload.encode("utf-8")]

    async def test_recent_pending_row_left_alone(self, scheduler, storage, make_endpoint):
        """A first attempt still within its lease may be in flight."""
        endpoint = await make_endpoint()
        log = await self.stranded(storage, endpoint, minutes_ago=1)

        assert await scheduler.run_once() == 0
        assert (await storage.get_attempt(log.id, TENANT)).status is AttemptStatus.PENDING

    async def test_single_attempt_budget_exhausts(self, scheduler, storage, make_endpoint):
        endpoint = await make_endpoint(max_attempts=1)
        log = await self.stranded(storage, endpoint)

        await scheduler.run_once()

        recovered = await storage.get_attempt(log.id, TENANT)
        assert recovered.status is AttemptStatus.ATTEMPTS_EXHAUSTED
        assert recovered.next_retry_at is None

    async def test_stranded_row_of_deleted_endpoint_abandoned(
        self, scheduler, storage, make_endpoint
    ):
        endpoint = await make_endpoint()
        log = await self.stranded(storage, endpoint)
        await storage.delete_endpoint(endpoint.id, TENANT)

        assert await scheduler.run_once() == 1

        recovered = await storage.get_attempt(log.id, TENANT)
        assert recovered.status is AttemptStatus.ATTEMPTS_EXHAUSTED
        assert recovered.error_message == "Endpoint deleted"

    async def test_concurrent_schedulers_recover_once(
        self, dispatcher, storage, settings, make_endpoint
    ):
        endpoint = await make_endpoint()
        log = await self.stranded(storage, endpoint)
        now = utc_now()

        first = RetryScheduler(dispatcher, storage, storage, settings=settings)
        second = RetryScheduler(dispatcher, storage, storage, settings=settings)
        results = await asyncio.gather(first.run_once(now=now), second.run_once(now=now))

        assert sorted(results) == [0, 1]
        recovered = await storage.get_attempt(log.id, TENANT)
        assert len(recovered.history) == 1


class TestSchedulerLifecycle:
    """Tests for the periodic timer task."""

    async def test_start_runs_periodically(self, dispatcher, storage, receiver, make_endpoint):
        endpoint = await make_endpoint()
        past = utc_now() - timedelta(minutes=1)
        await storage.log_attempt(
            AttemptLog(
                endpoint_id=endpoint.id,
                tenant_id=TENANT,
                event_type=EventType.OS_CRIADA,
                url=endpoint.url,
                payload="{}",
                status=AttemptStatus.RETRY_SCHEDULED,
                next_retry_at=past,
                created_at=past,
            )
        )
        cfg = Settings(_env_file=None, retry_interval_seconds=0.01)
        scheduler = RetryScheduler(dispatcher, storage, storage, settings=cfg)

        await scheduler.start()
        assert scheduler.running
        for _ in range(100):
            if receiver.requests:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert not scheduler.running
        assert len(receiver.requests) == 1
        logs = await storage.list_attempts(TENANT)
        assert logs[0].status is AttemptStatus.SUCCESS
        assert logs[0].attempt_number == 2

    async def test_start_twice_is_noop(self, scheduler):
        await scheduler.start()
        task = scheduler._task
        await scheduler.start()

        assert scheduler._task is task
        await scheduler.stop()

    async def test_stop_without_start(self, scheduler):
        await scheduler.stop()
        assert not scheduler.running
