"""MinIO implementation of blob storage."""

import asyncio
import io
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import TypeVar

from minio import Minio
from minio.error import S3Error

from src.commons.infrastructure.blob.base import (
    BlobMetadata,
    BlobNotFoundError,
    BlobStorageBase,
    HealthStatus,
)

T = TypeVar("T")

_MISSING_CODES = frozenset({"NoSuchKey", "NoSuchObject", "NoSuchBucket"})


class MinioBlobStorage(BlobStorageBase):
    """MinIO implementation of blob storage.

    Works with both MinIO (local development) and AWS S3 (production).
    The SDK is synchronous, so every call runs in the default executor.
    """

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        secure: bool = False,
        region: str | None = None,
    ) -> None:
        self._client = Minio(
            endpoint=endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
            region=region,
        )
        self._endpoint = endpoint

    async def _run(self, fn: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn)

    async def upload(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> BlobMetadata:
        await self._run(
            lambda: self._client.put_object(
                bucket_name=bucket,
                object_name=key,
                data=io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        )
        return await self._stat(bucket, key)

    async def upload_file(
        self,
        bucket: str,
        key: str,
        local_path: Path,
        content_type: str = "application/octet-stream",
    ) -> BlobMetadata:
        await self._run(
            lambda: self._client.fput_object(
                bucket_name=bucket,
                object_name=key,
                file_path=str(local_path),
                content_type=content_type,
            )
        )
        return await self._stat(bucket, key)

    async def download(self, bucket: str, key: str) -> bytes:
        def _download() -> bytes:
            try:
                response = self._client.get_object(bucket, key)
            except S3Error as e:
                if e.code in _MISSING_CODES:
                    raise BlobNotFoundError(bucket, key) from e
                raise
            try:
                return bytes(response.read())
            finally:
                response.close()
                response.release_conn()

        return await self._run(_download)

    async def delete(self, bucket: str, key: str) -> bool:
        if not await self.exists(bucket, key):
            return False
        await self._run(lambda: self._client.remove_object(bucket, key))
        return True

    async def exists(self, bucket: str, key: str) -> bool:
        def _exists() -> bool:
            try:
                self._client.stat_object(bucket, key)
                return True
            except S3Error as e:
                if e.code in _MISSING_CODES:
                    return False
                raise

        return await self._run(_exists)

    async def _stat(self, bucket: str, key: str) -> BlobMetadata:
        def _do_stat() -> BlobMetadata:
            try:
                stat = self._client.stat_object(bucket, key)
            except S3Error as e:
                if e.code in _MISSING_CODES:
                    raise BlobNotFoundError(bucket, key) from e
                raise
            return BlobMetadata(
                bucket=bucket,
                key=key,
                size_bytes=stat.size or 0,
                content_type=stat.content_type or "application/octet-stream",
                created_at=stat.last_modified or datetime.now(UTC),
            )

        return await self._run(_do_stat)

    async def create_bucket(self, bucket: str) -> bool:
        def _create() -> bool:
            if self._client.bucket_exists(bucket):
                return False
            self._client.make_bucket(bucket)
            return True

        return await self._run(_create)

    async def bucket_exists(self, bucket: str) -> bool:
        return await self._run(lambda: self._client.bucket_exists(bucket))

    async def health_check(self) -> HealthStatus:
        start = time.perf_counter()
        try:
            await self._run(self._client.list_buckets)
        except Exception as e:
            return HealthStatus(
                healthy=False,
                latency_ms=(time.perf_counter() - start) * 1000,
                message=f"MinIO health check failed: {e}",
                details={"endpoint": self._endpoint, "error": str(e)},
            )
        return HealthStatus(
            healthy=True,
            latency_ms=(time.perf_counter() - start) * 1000,
            message="MinIO is healthy",
            details={"endpoint": self._endpoint},
        )
