"""Periodic processing of scheduled webhook retries.

Each run finds rows awaiting a retry whose time has come, leases them one
by one, and re-sends the captured URL and payload with the endpoint's
current headers, secret and timeout. Rows left PENDING by a first attempt
that never recorded its outcome are moved onto the retry schedule.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime, timedelta

from shophook.config import Settings, settings as default_settings
from shophook.logging import delivery_context
from shophook.models import AttemptLog, DeliveryOutcome, EndpointConfig, utc_now
from shophook.storage import AttemptLogStore, EndpointConfigStore

from .dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)

# Recorded as the first attempt's error when its outcome was never written
INTERRUPTED_ERROR = "Delivery interrupted before its outcome was recorded"


class RetryScheduler:
    """Re-attempts failed deliveries on their backoff schedule.

    Example:
        ```python
        scheduler = RetryScheduler(dispatcher, storage, storage)
        await scheduler.start()  # runs every retry_interval_seconds
        ...
        await scheduler.stop()

        # Or drive it manually
        processed = await scheduler.run_once()
        ```
    """

    def __init__(
        self,
        dispatcher: WebhookDispatcher,
        endpoints: EndpointConfigStore,
        attempts: AttemptLogStore,
        settings: Settings | None = None,
    ) -> None:
        cfg = settings or default_settings
        self._dispatcher = dispatcher
        self._endpoints = endpoints
        self._attempts = attempts
        self._interval = cfg.retry_interval_seconds
        self._batch_size = cfg.retry_batch_size
        self._lease_seconds = cfg.retry_lease_seconds
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self, now: datetime | None = None) -> int:
        """Process the retries that are due.

        Also recovers stranded deliveries: rows left PENDING for longer
        than a lease, whose first attempt never got its outcome recorded.
        A failure processing one row is logged and does not stop the batch.

        Args:
            now: Reference time. Defaults to the current time.

        Returns:
            Number of rows processed (retried, recovered or abandoned).
        """
        current = now or utc_now()
        processed = 0

        due = await self._attempts.get_due_retries(now=current, limit=self._batch_size)
        if due:
            logger.debug("Found %d due webhook retries", len(due))
        for log in due:
            try:
                if await self._process(log, current, now):
                    processed += 1
            except Exception:
                logger.exception("Failed to process webhook retry %s", log.id)

        cutoff = current - timedelta(seconds=self._lease_seconds)
        stranded = await self._attempts.get_stranded_deliveries(
            before=cutoff, now=current, limit=self._batch_size
        )
        for log in stranded:
            try:
                if await self._recover(log, cutoff, current, now):
                    processed += 1
            except Exception:
                logger.exception("Failed to recover webhook delivery %s", log.id)

        if processed:
            logger.info("Processed %d webhook retries", processed)
        return processed

    async def _process(
        self, log: AttemptLog, current: datetime, now: datetime | None
    ) -> bool:
        """Claim and handle one due row.

        ``now`` is the caller-supplied reference time, if any; retry
        schedules are computed from it, otherwise from the clock.

        Returns:
            False if another worker holds the row.
        """
        claimed = await self._attempts.claim_retry(log, self._lease_seconds, current)
        if claimed is None:
            logger.debug("Webhook retry %s already claimed", log.id)
            return False

        with delivery_context(claimed.tenant_id, claimed.endpoint_id, claimed.id):
            endpoint = await self._usable_endpoint(claimed, current)
            if endpoint is None:
                return True

            claimed.begin_retry()
            outcome = await self._dispatcher.client.attempt_delivery(
                endpoint, claimed.payload, url=claimed.url
            )
            await self._dispatcher.apply_outcome(claimed, endpoint, outcome, now)
        return True

    async def _recover(
        self, log: AttemptLog, cutoff: datetime, current: datetime, now: datetime | None
    ) -> bool:
        """Claim a stranded PENDING row and count its first attempt as failed.

        Whether the receiver got the request is unknown, so the row joins
        the normal retry schedule. Endpoint health is left untouched.

        Returns:
            False if another worker holds the row.
        """
        claimed = await self._attempts.claim_stranded(log, cutoff, self._lease_seconds, current)
        if claimed is None:
            logger.debug("Stranded webhook delivery %s already claimed", log.id)
            return False

        with delivery_context(claimed.tenant_id, claimed.endpoint_id, claimed.id):
            endpoint = await self._usable_endpoint(claimed, current)
            if endpoint is None:
                return True

            outcome = DeliveryOutcome(error=INTERRUPTED_ERROR, attempted_at=claimed.updated_at)
            status = claimed.record_outcome(outcome, endpoint.max_attempts, now)
            await self._attempts.update_attempt(claimed)
            logger.warning(
                "Recovered interrupted webhook delivery %s to %s: %s",
                claimed.id,
                claimed.url,
                status.value,
            )
        return True

    async def _usable_endpoint(
        self, claimed: AttemptLog, current: datetime
    ) -> EndpointConfig | None:
        """Load the row's endpoint, abandoning the row if it is gone or disabled."""
        endpoint = await self._endpoints.get_endpoint(claimed.endpoint_id, claimed.tenant_id)
        if endpoint is not None and endpoint.active:
            return endpoint

        reason = "Endpoint deleted" if endpoint is None else "Endpoint disabled"
        claimed.abandon(reason, current)
        await self._attempts.update_attempt(claimed)
        logger.info(
            "Abandoned webhook retry %s for endpoint %s: %s",
            claimed.id,
            claimed.endpoint_id,
            reason,
        )
        return None

    async def start(self) -> None:
        """Start the periodic timer task. Calling twice is a no-op."""
        if self.running:
            return

        self._stopping.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info("Started webhook retry scheduler (every %.0fs)", self._interval)

    async def stop(self) -> None:
        """Stop the timer task, letting a run in progress finish."""
        if self._task is None:
            return

        self._stopping.set()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Stopped webhook retry scheduler")

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("Webhook retry run failed")

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), timeout=self._interval)
