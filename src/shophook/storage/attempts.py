"""Attempt log storage operations.

Provides methods to record deliveries, list them for administrators, and
find and claim rows that are due for a retry.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from qdrant_client import models

from shophook.models import AttemptLog, AttemptStatus, EventType, utc_now

from .retry import qdrant_retry


class AttemptMixin:
    """Mixin providing attempt log operations for WebhookStorage.

    This mixin expects the following attributes/methods from the base class:
    - _collection_name(kind) -> str
    - _point_id(record_id, tenant_id) -> str
    - _upsert(kind, record_id, tenant_id, record)
    - _retrieve_payload(kind, record_id, tenant_id) -> dict | None
    - _scroll_all(kind, filter, limit) -> list[dict]
    - _scroll_ordered(kind, filter, order_by, limit) -> list[dict]
    - _payload_to_record(payload, record_class) -> RecordT
    - _match(key, value) -> FieldCondition
    - client: AsyncQdrantClient
    """

    _collection_name: Any
    _point_id: Any
    _upsert: Any
    _retrieve_payload: Any
    _scroll_all: Any
    _scroll_ordered: Any
    _payload_to_record: Any
    _match: Any
    client: Any

    @qdrant_retry
    async def log_attempt(self, log: AttemptLog) -> str:
        """Store an attempt log row.

        Args:
            log: AttemptLog to store.

        Returns:
            The attempt log ID.
        """
        await self._upsert("attempts", log.id, log.tenant_id, log)
        return log.id

    async def update_attempt(self, log: AttemptLog) -> str:
        """Update an existing attempt log row.

        Args:
            log: AttemptLog with updated fields.

        Returns:
            The attempt log ID.
        """
        return await self.log_attempt(log)

    @qdrant_retry
    async def get_attempt(self, attempt_id: str, tenant_id: str) -> AttemptLog | None:
        """Get an attempt log row by ID."""
        payload = await self._retrieve_payload("attempts", attempt_id, tenant_id)
        if payload is None:
            return None
        log: AttemptLog = self._payload_to_record(payload, AttemptLog)
        return log

    @qdrant_retry
    async def list_attempts(
        self,
        tenant_id: str,
        endpoint_id: str | None = None,
        status: AttemptStatus | None = None,
        event_type: EventType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AttemptLog]:
        """List attempt logs of a tenant.

        Args:
            tenant_id: Tenant to list logs for.
            endpoint_id: Optional endpoint filter.
            status: Optional status filter.
            event_type: Optional event type filter.
            limit: Maximum entries to return.
            offset: Number of entries to skip.

        Returns:
            List of AttemptLog sorted by creation time (newest first).
        """
        filters = [self._match("tenant_id", tenant_id)]
        if endpoint_id is not None:
            filters.append(self._match("endpoint_id", endpoint_id))
        if status is not None:
            filters.append(self._match("status", status.value))
        if event_type is not None:
            filters.append(self._match("event_type", event_type.value))

        payloads = await self._scroll_ordered(
            "attempts",
            models.Filter(must=filters),
            models.OrderBy(key="created_ts", direction=models.Direction.DESC),
            limit=offset + limit,
        )
        logs: list[AttemptLog] = [self._payload_to_record(p, AttemptLog) for p in payloads]
        return logs[offset:]

    @qdrant_retry
    async def get_due_retries(
        self,
        now: datetime | None = None,
        limit: int = 100,
    ) -> list[AttemptLog]:
        """Get rows awaiting a retry whose time has come.

        Rows currently leased by a scheduler are skipped until their lease
        expires.

        Args:
            now: Reference time. Defaults to the current time.
            limit: Maximum entries to return.

        Returns:
            List of AttemptLog ordered by next_retry_at (oldest first).
        """
        now_ts = (now or utc_now()).timestamp()

        due_filter = models.Filter(
            must=[
                self._match("status", AttemptStatus.RETRY_SCHEDULED.value),
                models.FieldCondition(key="next_retry_ts", range=models.Range(lte=now_ts)),
                models.FieldCondition(key="lease_expires_ts", range=models.Range(lt=now_ts)),
            ]
        )

        payloads = await self._scroll_ordered(
            "attempts",
            due_filter,
            models.OrderBy(key="next_retry_ts", direction=models.Direction.ASC),
            limit=limit,
        )
        return [self._payload_to_record(p, AttemptLog) for p in payloads]

    @qdrant_retry
    async def claim_retry(
        self,
        log: AttemptLog,
        lease_seconds: float,
        now: datetime | None = None,
    ) -> AttemptLog | None:
        """Lease a due row so only this caller retries it.

        The lease is written by a conditional update that only matches the
        row while its retry is due and it holds no live lease. Reading the
        token back tells whether this caller won.

        Args:
            log: Row returned by get_due_retries.
            lease_seconds: How long the claim lasts.
            now: Reference time. Defaults to the current time.

        Returns:
            The freshly read row if claimed, None if another worker has it
            or the row is no longer awaiting a retry.
        """
        now = now or utc_now()
        return await self._claim_lease(
            log,
            [
                self._match("status", AttemptStatus.RETRY_SCHEDULED.value),
                models.FieldCondition(
                    key="next_retry_ts",
                    range=models.Range(lte=now.timestamp()),
                ),
            ],
            lease_seconds,
            now,
        )

    @qdrant_retry
    async def get_stranded_deliveries(
        self,
        before: datetime,
        now: datetime | None = None,
        limit: int = 100,
    ) -> list[AttemptLog]:
        """Get PENDING rows last written before a cutoff.

        A first attempt writes its row as PENDING before sending. A row
        still PENDING long after that belongs to a process that died or
        lost its storage connection before recording the outcome.

        Args:
            before: Rows written strictly before this time are stranded.
            now: Reference time for lease checks. Defaults to the current time.
            limit: Maximum entries to return.

        Returns:
            List of AttemptLog ordered by updated_at (oldest first).
        """
        now_ts = (now or utc_now()).timestamp()
        stranded_filter = models.Filter(
            must=[
                self._match("status", AttemptStatus.PENDING.value),
                models.FieldCondition(key="updated_ts", range=models.Range(lt=before.timestamp())),
                models.FieldCondition(key="lease_expires_ts", range=models.Range(lt=now_ts)),
            ]
        )
        payloads = await self._scroll_ordered(
            "attempts",
            stranded_filter,
            models.OrderBy(key="updated_ts", direction=models.Direction.ASC),
            limit=limit,
        )
        return [self._payload_to_record(p, AttemptLog) for p in payloads]

    @qdrant_retry
    async def claim_stranded(
        self,
        log: AttemptLog,
        before: datetime,
        lease_seconds: float,
        now: datetime | None = None,
    ) -> AttemptLog | None:
        """Lease a stranded PENDING row so only this caller recovers it.

        Returns:
            The freshly read row if claimed, None if another worker has it
            or the row has moved on.
        """
        return await self._claim_lease(
            log,
            [
                self._match("status", AttemptStatus.PENDING.value),
                models.FieldCondition(key="updated_ts", range=models.Range(lt=before.timestamp())),
            ],
            lease_seconds,
            now or utc_now(),
        )

    async def _claim_lease(
        self,
        log: AttemptLog,
        conditions: list[models.Condition],
        lease_seconds: float,
        now: datetime,
    ) -> AttemptLog | None:
        token = uuid4().hex
        expires_at = now + timedelta(seconds=lease_seconds)
        point_id = self._point_id(log.id, log.tenant_id)

        await self.client.set_payload(
            collection_name=self._collection_name("attempts"),
            payload={
                "lease_token": token,
                "lease_expires_at": expires_at.isoformat(),
                "lease_expires_ts": expires_at.timestamp(),
            },
            points=models.FilterSelector(
                filter=models.Filter(
                    must=[
                        models.HasIdCondition(has_id=[point_id]),
                        *conditions,
                        models.FieldCondition(
                            key="lease_expires_ts",
                            range=models.Range(lt=now.timestamp()),
                        ),
                    ]
                )
            ),
        )

        payload = await self._retrieve_payload("attempts", log.id, log.tenant_id)
        if payload is None or payload.get("lease_token") != token:
            return None

        claimed: AttemptLog = self._payload_to_record(payload, AttemptLog)
        return claimed

    @qdrant_retry
    async def count_attempts(
        self,
        tenant_id: str,
        statuses: Sequence[AttemptStatus],
        since: datetime | None = None,
    ) -> int:
        """Count a tenant's rows in the given statuses.

        Args:
            tenant_id: Tenant to count rows for.
            statuses: Statuses to include.
            since: Only count rows last written at or after this time.
        """
        filters: list[models.Condition] = [
            self._match("tenant_id", tenant_id),
            models.FieldCondition(
                key="status",
                match=models.MatchAny(any=[s.value for s in statuses]),
            ),
        ]
        if since is not None:
            filters.append(
                models.FieldCondition(key="updated_ts", range=models.Range(gte=since.timestamp()))
            )

        result = await self.client.count(
            collection_name=self._collection_name("attempts"),
            count_filter=models.Filter(must=filters),
            exact=True,
        )
        return int(result.count)

    @qdrant_retry
    async def average_success_latency(self, tenant_id: str, since: datetime) -> float | None:
        """Mean latency of successful deliveries written since a time."""
        payloads = await self._scroll_all(
            "attempts",
            models.Filter(
                must=[
                    self._match("tenant_id", tenant_id),
                    self._match("status", AttemptStatus.SUCCESS.value),
                    models.FieldCondition(
                        key="updated_ts", range=models.Range(gte=since.timestamp())
                    ),
                ]
            ),
        )
        latencies = [p["latency_ms"] for p in payloads if p.get("latency_ms") is not None]
        if not latencies:
            return None
        return sum(latencies) / len(latencies)

    @qdrant_retry
    async def purge_attempts(self, before: datetime, tenant_id: str | None = None) -> int:
        """Delete rows created before a cutoff.

        Args:
            before: Rows created strictly before this time are deleted.
            tenant_id: Restrict the purge to one tenant. None purges all.

        Returns:
            Number of rows deleted.
        """
        filters: list[models.Condition] = [
            models.FieldCondition(key="created_ts", range=models.Range(lt=before.timestamp()))
        ]
        if tenant_id is not None:
            filters.append(self._match("tenant_id", tenant_id))
        purge_filter = models.Filter(must=filters)

        collection = self._collection_name("attempts")
        result = await self.client.count(
            collection_name=collection,
            count_filter=purge_filter,
            exact=True,
        )
        if result.count == 0:
            return 0

        await self.client.delete(
            collection_name=collection,
            points_selector=models.FilterSelector(filter=purge_filter),
        )
        return int(result.count)
