"""In-process blob storage for local development and tests."""

import asyncio
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from src.commons.infrastructure.blob.base import (
    BlobMetadata,
    BlobNotFoundError,
    BlobStorageBase,
    HealthStatus,
)


@dataclass
class _StoredBlob:
    data: bytes
    content_type: str
    created_at: datetime


class InMemoryBlobStorage(BlobStorageBase):
    """Dictionary-backed blob store.

    Buckets are created implicitly on first upload so tests don't need a
    bootstrap step.
    """

    def __init__(self) -> None:
        self._buckets: dict[str, dict[str, _StoredBlob]] = {}
        self._lock = asyncio.Lock()

    def keys(self, bucket: str) -> list[str]:
        """Keys currently stored in a bucket (test helper)."""
        return sorted(self._buckets.get(bucket, {}))

    def total_blobs(self) -> int:
        """Number of blobs across every bucket (test helper)."""
        return sum(len(blobs) for blobs in self._buckets.values())

    async def upload(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> BlobMetadata:
        blob = _StoredBlob(
            data=bytes(data),
            content_type=content_type,
            created_at=datetime.now(UTC),
        )
        async with self._lock:
            self._buckets.setdefault(bucket, {})[key] = blob
        return BlobMetadata(
            bucket=bucket,
            key=key,
            size_bytes=len(blob.data),
            content_type=content_type,
            created_at=blob.created_at,
        )

    async def upload_file(
        self,
        bucket: str,
        key: str,
        local_path: Path,
        content_type: str = "application/octet-stream",
    ) -> BlobMetadata:
        data = await asyncio.to_thread(Path(local_path).read_bytes)
        return await self.upload(bucket, key, data, content_type)

    async def download(self, bucket: str, key: str) -> bytes:
        blob = self._buckets.get(bucket, {}).get(key)
        if blob is None:
            raise BlobNotFoundError(bucket, key)
        return blob.data

    async def delete(self, bucket: str, key: str) -> bool:
        async with self._lock:
            return self._buckets.get(bucket, {}).pop(key, None) is not None

    async def exists(self, bucket: str, key: str) -> bool:
        return key in self._buckets.get(bucket, {})

    async def create_bucket(self, bucket: str) -> bool:
        if bucket in self._buckets:
            return False
        self._buckets[bucket] = {}
        return True

    async def bucket_exists(self, bucket: str) -> bool:
        return bucket in self._buckets

    async def health_check(self) -> HealthStatus:
        start = time.perf_counter()
        return HealthStatus(
            healthy=True,
            latency_ms=(time.perf_counter() - start) * 1000,
            message="In-memory blob storage",
            details={"buckets": str(len(self._buckets))},
        )
