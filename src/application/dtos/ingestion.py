"""DTOs for video upload operations."""

from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO

from pydantic import BaseModel, Field

from src.domain.models.upload_job import UploadStage


@dataclass
class UploadedFile:
    """An upload as received from the transport.

    ``stream`` is a blocking, readable file object (for example the spooled
    file behind a multipart part). ``size_bytes`` is the declared size when
    the transport knows it.
    """

    filename: str
    content_type: str
    stream: BinaryIO
    size_bytes: int | None = None


class Uploader(BaseModel):
    """Authenticated identity supplied by the upstream gateway."""

    user_id: str = Field(min_length=1, description="Authenticated user ID")
    channel_id: str = Field(min_length=1, description="Channel the user acts as")


class IngestVideoRequest(BaseModel):
    """Metadata submitted alongside the video file."""

    title: str = Field(description="Video title, 10-50 characters")
    description: str = Field(default="", description="Up to 500 characters")
    tags: list[str] = Field(
        default_factory=list,
        description="Up to 5 tags from the closed vocabulary",
    )


class IngestionProgress(BaseModel):
    """Progress information for an ongoing upload."""

    job_name: str = Field(description="Unique name of the upload job")
    stage: UploadStage = Field(description="Current pipeline stage")
    overall_progress: float = Field(
        ge=0.0,
        le=1.0,
        description="Overall progress (0.0 to 1.0)",
    )
    message: str = Field(description="Human-readable progress message")
    started_at: datetime = Field(description="When the upload was accepted")
