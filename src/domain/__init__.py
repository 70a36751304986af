"""Domain layer - business models and logic."""

from src.domain.exceptions import (
    ChannelNotFoundException,
    ConcurrentModificationError,
    DomainException,
    IngestionError,
    InvalidParameterError,
    NotChannelOwnerException,
    PartialCommitError,
    PersistenceError,
    TranscodeError,
    ValidationError,
    VideoNotFoundException,
)
from src.domain.models import (
    Channel,
    ReactionKind,
    UploadJob,
    UploadStage,
    VideoAsset,
    VideoTag,
    WrittenBlob,
    validate_video_metadata,
)

__all__ = [
    # Exceptions
    "DomainException",
    "IngestionError",
    "ValidationError",
    "TranscodeError",
    "PersistenceError",
    "PartialCommitError",
    "InvalidParameterError",
    "VideoNotFoundException",
    "ChannelNotFoundException",
    "NotChannelOwnerException",
    "ConcurrentModificationError",
    # Models
    "VideoAsset",
    "VideoTag",
    "ReactionKind",
    "validate_video_metadata",
    "Channel",
    "UploadJob",
    "UploadStage",
    "WrittenBlob",
]
