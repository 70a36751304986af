"""FastAPI dependency injection for services and settings."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from src.application.dtos.ingestion import Uploader
from src.application.services.catalog import VideoCatalogService
from src.application.services.ingestion import VideoIngestionService
from src.application.services.query import VideoQueryService
from src.commons.settings.loader import get_settings as _load_settings
from src.commons.settings.models import Settings
from src.commons.telemetry import get_logger
from src.infrastructure.factory import (
    InfrastructureFactory,
    get_factory,
    reset_factory,
)

logger = get_logger(__name__)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Application settings loaded from config files and environment.
    """
    return _load_settings()


def get_infrastructure_factory(
    settings: Annotated[Settings, Depends(get_settings)],
) -> InfrastructureFactory:
    return get_factory(settings)


def get_ingestion_service(
    factory: Annotated[InfrastructureFactory, Depends(get_infrastructure_factory)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> VideoIngestionService:
    """Get the upload pipeline wired to the shared providers.

    Args:
        factory: Infrastructure factory.
        settings: Application settings.

    Returns:
        Configured video ingestion service.
    """
    return VideoIngestionService(
        transcoder=factory.get_transcoder(),
        blob_storage=factory.get_blob_storage(),
        document_db=factory.get_document_db(),
        settings=settings,
    )


def get_query_service(
    factory: Annotated[InfrastructureFactory, Depends(get_infrastructure_factory)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> VideoQueryService:
    return VideoQueryService(
        document_db=factory.get_document_db(),
        settings=settings,
    )


def get_catalog_service(
    factory: Annotated[InfrastructureFactory, Depends(get_infrastructure_factory)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> VideoCatalogService:
    return VideoCatalogService(
        blob_storage=factory.get_blob_storage(),
        document_db=factory.get_document_db(),
        settings=settings,
    )


def get_current_user(
    x_user_id: Annotated[str | None, Header()] = None,
    x_channel_id: Annotated[str | None, Header()] = None,
) -> Uploader:
    """Identity asserted by the upstream gateway.

    Raises:
        HTTPException: 401 if the user header is missing.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-ID header",
        )
    # channel defaults to the user's own for gateways that only send one id
    return Uploader(user_id=x_user_id, channel_id=x_channel_id or x_user_id)


def get_maintainer(
    user: Annotated[Uploader, Depends(get_current_user)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> Uploader:
    """Caller listed in `server.maintainer_ids`.

    Raises:
        HTTPException: 403 for any other user.
    """
    if user.user_id not in settings.server.maintainer_ids:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Maintenance endpoints are restricted",
        )
    return user


# Type aliases for cleaner route signatures
SettingsDep = Annotated[Settings, Depends(get_settings)]
FactoryDep = Annotated[InfrastructureFactory, Depends(get_infrastructure_factory)]
IngestionServiceDep = Annotated[VideoIngestionService, Depends(get_ingestion_service)]
QueryServiceDep = Annotated[VideoQueryService, Depends(get_query_service)]
CatalogServiceDep = Annotated[VideoCatalogService, Depends(get_catalog_service)]
CurrentUserDep = Annotated[Uploader, Depends(get_current_user)]
MaintainerDep = Annotated[Uploader, Depends(get_maintainer)]


async def init_services(settings: Settings) -> None:
    """Initialize infrastructure on startup and fail fast if it is unusable.

    Args:
        settings: Application settings.
    """
    factory = get_factory(settings)

    blob_storage = factory.get_blob_storage()
    factory.get_document_db()
    factory.get_transcoder()

    for bucket in (
        settings.blob_storage.buckets.videos,
        settings.blob_storage.buckets.thumbnails,
    ):
        if await blob_storage.create_bucket(bucket):
            logger.info("Created bucket", extra={"bucket": bucket})


async def shutdown_services() -> None:
    """Shutdown all infrastructure services."""
    try:
        factory = get_factory()
        await factory.close_all()
    except ValueError:
        pass  # Factory not initialized
    finally:
        reset_factory()
        get_settings.cache_clear()
