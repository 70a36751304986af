"""Infrastructure factory for creating service instances from configuration."""

from typing import Any, cast

from src.commons.infrastructure.blob import (
    BlobStorageBase,
    InMemoryBlobStorage,
    MinioBlobStorage,
)
from src.commons.infrastructure.documentdb import (
    DocumentDBBase,
    InMemoryDocumentDB,
    MongoDBDocumentDB,
)
from src.commons.settings.models import DocumentDBSettings, Settings
from src.commons.telemetry import get_logger
from src.infrastructure.video import FFmpegTranscoder, TranscoderBase

logger = get_logger(__name__)


def build_mongo_uri(settings: DocumentDBSettings) -> str:
    """Build a connection string from discrete settings."""
    if settings.username and settings.password:
        return (
            f"mongodb://{settings.username}:{settings.password}"
            f"@{settings.host}:{settings.port}"
            f"/?authSource={settings.auth_source}"
        )
    return f"mongodb://{settings.host}:{settings.port}"


class InfrastructureFactory:
    """Factory for creating infrastructure service instances.

    Each provider is created once per factory and shared by every request.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._instances: dict[str, Any] = {}

    @property
    def settings(self) -> Settings:
        return self._settings

    def get_blob_storage(self) -> BlobStorageBase:
        """Get blob storage instance.

        Raises:
            ValueError: If provider is not supported.
        """
        if "blob_storage" not in self._instances:
            blob_settings = self._settings.blob_storage
            if blob_settings.provider == "minio":
                self._instances["blob_storage"] = MinioBlobStorage(
                    endpoint=blob_settings.endpoint,
                    access_key=blob_settings.access_key,
                    secret_key=blob_settings.secret_key,
                    secure=blob_settings.use_ssl,
                    region=blob_settings.region,
                )
            elif blob_settings.provider == "memory":
                self._instances["blob_storage"] = InMemoryBlobStorage()
            else:
                raise ValueError(
                    f"Unsupported blob storage provider: {blob_settings.provider}"
                )
        return cast("BlobStorageBase", self._instances["blob_storage"])

    def get_document_db(self) -> DocumentDBBase:
        """Get document database instance.

        Raises:
            ValueError: If provider is not supported.
        """
        if "document_db" not in self._instances:
            doc_settings = self._settings.document_db
            if doc_settings.provider == "mongodb":
                self._instances["document_db"] = MongoDBDocumentDB(
                    connection_string=build_mongo_uri(doc_settings),
                    database_name=doc_settings.database,
                )
            elif doc_settings.provider == "memory":
                self._instances["document_db"] = InMemoryDocumentDB()
            else:
                raise ValueError(
                    f"Unsupported document DB provider: {doc_settings.provider}"
                )
        return cast("DocumentDBBase", self._instances["document_db"])

    def get_transcoder(self) -> TranscoderBase:
        """Get the transcoder, sized by the transcoding settings."""
        if "transcoder" not in self._instances:
            self._instances["transcoder"] = FFmpegTranscoder(
                self._settings.transcoding
            )
        return cast("TranscoderBase", self._instances["transcoder"])

    async def close_all(self) -> None:
        """Close all service connections."""
        for name, instance in self._instances.items():
            close = getattr(instance, "close", None)
            if close is None:
                continue
            try:
                result = close()
                if hasattr(result, "__await__"):
                    await result
            except Exception as e:
                logger.warning(
                    "Failed to close provider",
                    extra={"provider": name, "error": str(e)},
                )

        self._instances.clear()


class _FactoryHolder:
    """Holder for the factory singleton to avoid global statements."""

    instance: InfrastructureFactory | None = None


def get_factory(settings: Settings | None = None) -> InfrastructureFactory:
    """Get or create the infrastructure factory singleton.

    Args:
        settings: Settings to use. Required on first call.

    Raises:
        ValueError: If settings not provided on first call.
    """
    if _FactoryHolder.instance is None:
        if settings is None:
            raise ValueError("Settings required to initialize factory")
        _FactoryHolder.instance = InfrastructureFactory(settings)

    return _FactoryHolder.instance


def reset_factory() -> None:
    """Reset the factory singleton (for testing)."""
    _FactoryHolder.instance = None
