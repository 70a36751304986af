"""Ephemeral upload job tracked by the ingestion pipeline."""

import time
from enum import Enum
from pathlib import Path
from typing import Self
from uuid import uuid4

from pydantic import BaseModel, Field


class UploadStage(str, Enum):
    """Pipeline stages, in order. COMMITTED and FAILED are terminal."""

    STAGED = "staged"
    TRANSCODING = "transcoding"
    THUMBNAIL_EXTRACTION = "thumbnail_extraction"
    PERSISTING = "persisting"
    COMMITTED = "committed"
    FAILED = "failed"


_ORDER = list(UploadStage)


class WrittenBlob(BaseModel):
    """A blob persisted by this job, kept for compensating deletes."""

    bucket: str
    key: str


def make_job_name(uploader_id: str) -> str:
    """Build a collision-free job name.

    The random suffix keeps two uploads from the same uploader within the
    same millisecond apart.
    """
    epoch_ms = time.time_ns() // 1_000_000
    return f"{uploader_id}-{epoch_ms}-{uuid4().hex[:8]}"


class UploadJob(BaseModel):
    """State of one upload as it moves through the pipeline.

    Never persisted. The staging directory belongs to the job and is
    removed when the pipeline exits, whatever the outcome.
    """

    job_name: str
    uploader_id: str
    channel_id: str
    staging_dir: Path
    original_filename: str
    stage: UploadStage = UploadStage.STAGED
    written: list[WrittenBlob] = Field(default_factory=list)
    video_id: str | None = None
    error: str | None = None

    @classmethod
    def create(
        cls,
        uploader_id: str,
        channel_id: str,
        staging_dir: Path,
        original_filename: str,
    ) -> Self:
        return cls(
            job_name=make_job_name(uploader_id),
            uploader_id=uploader_id,
            channel_id=channel_id,
            staging_dir=staging_dir,
            original_filename=original_filename,
        )

    @property
    def staged_path(self) -> Path:
        suffix = Path(self.original_filename).suffix.lower() or ".bin"
        return self.staging_dir / f"{self.job_name}.source{suffix}"

    @property
    def output_dir(self) -> Path:
        return self.staging_dir / "out"

    @property
    def is_terminal(self) -> bool:
        return self.stage in (UploadStage.COMMITTED, UploadStage.FAILED)

    def blob_key(self, extension: str) -> str:
        """Deterministic blob key for an artifact of this job."""
        return f"{self.channel_id}/{self.job_name}.{extension}"

    def transition_to(self, stage: UploadStage) -> Self:
        """Move forward to a later stage (or to FAILED from anywhere).

        Raises:
            ValueError: On a backwards move or a move out of a terminal stage.
        """
        if self.is_terminal:
            raise ValueError(f"Job {self.job_name} already {self.stage.value}")
        if stage != UploadStage.FAILED and _ORDER.index(stage) <= _ORDER.index(
            self.stage
        ):
            raise ValueError(
                f"Cannot move job from {self.stage.value} to {stage.value}"
            )
        return self.model_copy(update={"stage": stage})

    def mark_failed(self, error: str) -> Self:
        failed = self.transition_to(UploadStage.FAILED)
        return failed.model_copy(update={"error": error})

    def record_write(self, bucket: str, key: str) -> Self:
        return self.model_copy(
            update={"written": [*self.written, WrittenBlob(bucket=bucket, key=key)]}
        )
