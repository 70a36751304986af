"""Abstract base class for blob storage operations."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path


@dataclass
class BlobMetadata:
    """Metadata for a stored blob."""

    bucket: str
    key: str
    size_bytes: int
    content_type: str
    created_at: datetime


@dataclass
class HealthStatus:
    """Health check result."""

    healthy: bool
    latency_ms: float
    message: str | None = None
    details: dict[str, str] | None = None


class BlobNotFoundError(Exception):
    """Raised when a blob is not found."""

    def __init__(self, bucket: str, key: str) -> None:
        self.bucket = bucket
        self.key = key
        super().__init__(f"Blob not found: {bucket}/{key}")


class BlobStorageBase(ABC):
    """Keyed byte storage for playable videos and thumbnails.

    Keys are opaque strings chosen by the caller; the store never derives
    them. Every implementation must make `delete` idempotent so that
    compensating cleanup can be replayed safely.
    """

    @abstractmethod
    async def upload(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> BlobMetadata:
        """Store in-memory bytes under a key.

        Args:
            bucket: Target bucket name.
            key: Object key within the bucket.
            data: Content to store.
            content_type: MIME type of the content.

        Returns:
            Metadata of the stored blob.
        """

    @abstractmethod
    async def upload_file(
        self,
        bucket: str,
        key: str,
        local_path: Path,
        content_type: str = "application/octet-stream",
    ) -> BlobMetadata:
        """Store a local file under a key without loading it into memory.

        Args:
            bucket: Target bucket name.
            key: Object key within the bucket.
            local_path: File to read.
            content_type: MIME type of the content.

        Returns:
            Metadata of the stored blob.
        """

    @abstractmethod
    async def download(self, bucket: str, key: str) -> bytes:
        """Read a blob's content.

        Raises:
            BlobNotFoundError: If blob doesn't exist.
        """

    @abstractmethod
    async def delete(self, bucket: str, key: str) -> bool:
        """Delete a blob.

        Returns:
            True if deleted, False if it didn't exist.
        """

    @abstractmethod
    async def exists(self, bucket: str, key: str) -> bool:
        """Check if a blob exists."""

    @abstractmethod
    async def create_bucket(self, bucket: str) -> bool:
        """Create a bucket.

        Returns:
            True if created, False if it already existed.
        """

    @abstractmethod
    async def bucket_exists(self, bucket: str) -> bool:
        """Check if a bucket exists."""

    @abstractmethod
    async def health_check(self) -> HealthStatus:
        """Check service health."""
