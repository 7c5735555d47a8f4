"""Base storage class and helpers.

Contains client lifecycle, collection management, tenant-scoped key
building and payload (de)serialization shared by the storage mixins.
"""

from __future__ import annotations

import asyncio
import hashlib
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, TypeVar

import httpx
from pydantic import BaseModel
from qdrant_client import AsyncQdrantClient, models
from qdrant_client.http.exceptions import UnexpectedResponse

from shophook.config import settings
from shophook.exceptions import StorageError
from shophook.models import AttemptLog, EndpointConfig

RecordT = TypeVar("RecordT", EndpointConfig, AttemptLog)

# Collection names by record kind
COLLECTION_NAMES = {
    "endpoints": "endpoints",
    "attempts": "attempts",
}

# Records are looked up by payload only; every point carries this vector
PLACEHOLDER_VECTOR = [1.0]

# Datetime fields mirrored as epoch seconds so Qdrant can range-filter them
TIMESTAMP_MIRRORS = {
    "next_retry_at": "next_retry_ts",
    "lease_expires_at": "lease_expires_ts",
    "created_at": "created_ts",
    "updated_at": "updated_ts",
}

SCROLL_PAGE_SIZE = 256


def to_timestamp(value: datetime | None) -> float | None:
    """Epoch seconds for a datetime, passing None through."""
    return value.timestamp() if value is not None else None


class StorageBase:
    """Base class for Shophook storage with initialization and helpers.

    Provides:
    - Client initialization and lifecycle management
    - Collection creation and indexing
    - Key building and point ID conversion
    - Payload serialization/deserialization
    - Per-endpoint locks serializing read-modify-write updates
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
    ) -> None:
        """Initialize storage client.

        Args:
            url: Qdrant server URL. Defaults to settings.qdrant_url.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._client: AsyncQdrantClient | None = None
        self._collections_initialized = False
        self._endpoint_locks: dict[str, asyncio.Lock] = {}

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._client

    async def initialize(self) -> None:
        """Initialize the storage client and ensure collections exist.

        Raises:
            StorageError: If Qdrant cannot be reached or rejects the setup.
        """
        self._client = AsyncQdrantClient(
            url=self._url,
            api_key=self._api_key,
        )
        try:
            await self._ensure_collections()
        except (httpx.HTTPError, UnexpectedResponse) as e:
            raise StorageError(f"Cannot prepare Qdrant collections at {self._url}: {e}") from e
        self._collections_initialized = True

    async def close(self) -> None:
        """Close the storage client connection."""
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._collections_initialized = False

    def _collection_name(self, kind: str) -> str:
        """Get full collection name with prefix."""
        suffix = COLLECTION_NAMES.get(kind, kind)
        return f"{self._prefix}_{suffix}"

    @staticmethod
    def _build_key(record_id: str, tenant_id: str) -> str:
        """Build a tenant-isolated storage key: {tenant_id}/{record_id}."""
        return f"{tenant_id}/{record_id}"

    @staticmethod
    def _key_to_point_id(key: str) -> str:
        """Convert a storage key to a valid Qdrant point ID.

        Qdrant requires point IDs to be UUIDs or unsigned integers.
        We hash the key to create a deterministic UUID-format string.
        """
        h = hashlib.sha256(key.encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    def _point_id(self, record_id: str, tenant_id: str) -> str:
        return self._key_to_point_id(self._build_key(record_id, tenant_id))

    async def _ensure_collections(self) -> None:
        """Ensure all required collections exist."""
        collections = await self.client.get_collections()
        existing = {c.name for c in collections.collections}

        for kind in COLLECTION_NAMES:
            collection_name = self._collection_name(kind)
            if collection_name in existing:
                continue
            await self.client.create_collection(
                collection_name=collection_name,
                vectors_config=models.VectorParams(
                    size=len(PLACEHOLDER_VECTOR),
                    distance=models.Distance.DOT,
                ),
            )
            await self._create_indexes(kind, collection_name)

    async def _create_indexes(self, kind: str, collection_name: str) -> None:
        """Create payload indexes for efficient filtering."""
        keyword_fields = ["tenant_id", "id"]
        float_fields = ["created_ts", "updated_ts"]
        if kind == "endpoints":
            keyword_fields += ["url"]
        else:
            keyword_fields += ["endpoint_id", "status", "event_type"]
            float_fields += ["next_retry_ts", "lease_expires_ts"]

        for field_name in keyword_fields:
            await self.client.create_payload_index(
                collection_name=collection_name,
                field_name=field_name,
                field_schema=models.PayloadSchemaType.KEYWORD,
            )
        for field_name in float_fields:
            await self.client.create_payload_index(
                collection_name=collection_name,
                field_name=field_name,
                field_schema=models.PayloadSchemaType.FLOAT,
            )

    def _record_to_payload(self, record: BaseModel) -> dict[str, Any]:
        """Convert a record model to Qdrant payload."""
        data = record.model_dump(mode="json")
        for field_name, mirror in TIMESTAMP_MIRRORS.items():
            if field_name not in data:
                continue
            ts = to_timestamp(getattr(record, field_name))
            # An unleased row must match "lease expired" range filters
            if ts is None and mirror == "lease_expires_ts":
                ts = 0.0
            if ts is not None:
                data[mirror] = ts
        return data

    def _payload_to_record(self, payload: dict[str, Any], record_class: type[RecordT]) -> RecordT:
        """Convert Qdrant payload back to a record model."""
        data = {k: v for k, v in payload.items() if k not in TIMESTAMP_MIRRORS.values()}
        return record_class.model_validate(data)

    async def _upsert(self, kind: str, record_id: str, tenant_id: str, record: BaseModel) -> None:
        await self.client.upsert(
            collection_name=self._collection_name(kind),
            points=[
                models.PointStruct(
                    id=self._point_id(record_id, tenant_id),
                    vector=PLACEHOLDER_VECTOR,
                    payload=self._record_to_payload(record),
                )
            ],
        )

    async def _retrieve_payload(
        self, kind: str, record_id: str, tenant_id: str
    ) -> dict[str, Any] | None:
        results = await self.client.retrieve(
            collection_name=self._collection_name(kind),
            ids=[self._point_id(record_id, tenant_id)],
            with_payload=True,
        )
        if not results:
            return None
        return results[0].payload

    async def _scroll_all(
        self,
        kind: str,
        scroll_filter: models.Filter | None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Collect payloads of every point matching a filter.

        Args:
            kind: Collection kind ("endpoints" or "attempts").
            scroll_filter: Qdrant filter to apply.
            limit: Stop after this many payloads. None means no limit.
        """
        payloads: list[dict[str, Any]] = []
        offset: Any = None

        while True:
            page_size = SCROLL_PAGE_SIZE
            if limit is not None:
                page_size = min(page_size, limit - len(payloads))
            results, offset = await self.client.scroll(
                collection_name=self._collection_name(kind),
                scroll_filter=scroll_filter,
                limit=page_size,
                offset=offset,
                with_payload=True,
            )
            payloads.extend(r.payload for r in results if r.payload is not None)
            if offset is None or (limit is not None and len(payloads) >= limit):
                break

        return payloads

    async def _scroll_ordered(
        self,
        kind: str,
        scroll_filter: models.Filter | None,
        order_by: models.OrderBy,
        limit: int,
    ) -> list[dict[str, Any]]:
        """Collect at most ``limit`` payloads, ordered by Qdrant.

        The order key must be a range-indexed payload field.
        """
        if limit <= 0:
            return []
        results, _ = await self.client.scroll(
            collection_name=self._collection_name(kind),
            scroll_filter=scroll_filter,
            limit=limit,
            order_by=order_by,
            with_payload=True,
        )
        return [r.payload for r in results if r.payload is not None]

    @asynccontextmanager
    async def _endpoint_lock(self, endpoint_id: str) -> AsyncIterator[None]:
        """Serialize read-modify-write updates of one endpoint."""
        lock = self._endpoint_locks.setdefault(endpoint_id, asyncio.Lock())
        async with lock:
            yield

    def _forget_endpoint_lock(self, endpoint_id: str) -> None:
        """Drop the lock of a deleted endpoint."""
        self._endpoint_locks.pop(endpoint_id, None)

    @staticmethod
    def _match(key: str, value: Any) -> models.FieldCondition:
        return models.FieldCondition(key=key, match=models.MatchValue(value=value))
