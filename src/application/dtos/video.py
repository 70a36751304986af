"""DTOs for single-video catalog operations."""

from datetime import datetime
from typing import Self

from pydantic import BaseModel, Field

from src.domain.models.video import ReactionKind, VideoAsset


class VideoResponse(BaseModel):
    """Public view of a catalog record."""

    id: str
    title: str
    description: str
    tags: list[str]
    channel_id: str
    file_key: str
    thumbnail_key: str
    duration_seconds: float
    views: int
    likes: list[str]
    dislikes: list[str]
    like_count: int
    dislike_count: int
    created_at: datetime

    @classmethod
    def from_asset(cls, video: VideoAsset) -> Self:
        return cls.model_validate(video.model_dump(exclude={"revision", "content_sha256"}))


class UpdateVideoRequest(BaseModel):
    """Owner edit of a video's metadata. Omitted fields stay unchanged."""

    title: str | None = Field(default=None, description="New title")
    description: str | None = Field(default=None, description="New description")
    tags: list[str] | None = Field(default=None, description="Replacement tag list")


class ReactionResponse(BaseModel):
    """State of a viewer's reaction after a toggle."""

    video_id: str
    reaction: ReactionKind | None = Field(
        description="The user's reaction after the toggle, None if cleared"
    )
    like_count: int
    dislike_count: int


class SyncChannelsResponse(BaseModel):
    """Outcome of re-linking videos to their channels."""

    videos_scanned: int
    links_added: int
    missing_channels: list[str] = Field(default_factory=list)
