"""Application services for video upload and catalog access."""

from src.application.services.catalog import VideoCatalogService
from src.application.services.ingestion import VideoIngestionService
from src.application.services.query import VideoQueryService, parse_query_spec

__all__ = [
    "VideoCatalogService",
    "VideoIngestionService",
    "VideoQueryService",
    "parse_query_spec",
]
