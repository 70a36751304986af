"""Domain models."""

from src.domain.models.channel import Channel
from src.domain.models.upload_job import UploadJob, UploadStage, WrittenBlob
from src.domain.models.video import (
    DESCRIPTION_MAX_LENGTH,
    MAX_TAGS,
    TITLE_MAX_LENGTH,
    TITLE_MIN_LENGTH,
    ReactionKind,
    VideoAsset,
    VideoTag,
    validate_video_metadata,
)

__all__ = [
    # Video
    "VideoAsset",
    "VideoTag",
    "ReactionKind",
    "validate_video_metadata",
    "TITLE_MIN_LENGTH",
    "TITLE_MAX_LENGTH",
    "DESCRIPTION_MAX_LENGTH",
    "MAX_TAGS",
    # Channel
    "Channel",
    # Upload pipeline
    "UploadJob",
    "UploadStage",
    "WrittenBlob",
]
