"""Application layer - use cases and orchestration.

This layer contains:
- Services: upload pipeline, list engine, catalog operations
- DTOs: Data transfer objects for API boundaries
"""

from src.application.dtos import (
    IngestionProgress,
    IngestVideoRequest,
    QuerySpec,
    UploadedFile,
    Uploader,
    VideoPage,
    VideoResponse,
)
from src.application.services import (
    VideoCatalogService,
    VideoIngestionService,
    VideoQueryService,
    parse_query_spec,
)

__all__ = [
    # DTOs
    "IngestVideoRequest",
    "IngestionProgress",
    "UploadedFile",
    "Uploader",
    "QuerySpec",
    "VideoPage",
    "VideoResponse",
    # Services
    "VideoCatalogService",
    "VideoIngestionService",
    "VideoQueryService",
    "parse_query_spec",
]
