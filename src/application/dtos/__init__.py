"""Data Transfer Objects for application layer."""

from src.application.dtos.ingestion import (
    IngestionProgress,
    IngestVideoRequest,
    UploadedFile,
    Uploader,
)
from src.application.dtos.query import QuerySpec, SuggestionItem, VideoPage
from src.application.dtos.video import (
    ReactionResponse,
    SyncChannelsResponse,
    UpdateVideoRequest,
    VideoResponse,
)

__all__ = [
    # Ingestion DTOs
    "IngestVideoRequest",
    "IngestionProgress",
    "UploadedFile",
    "Uploader",
    # Query DTOs
    "QuerySpec",
    "VideoPage",
    "SuggestionItem",
    # Video DTOs
    "VideoResponse",
    "UpdateVideoRequest",
    "ReactionResponse",
    "SyncChannelsResponse",
]
