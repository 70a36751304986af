"""Video upload ingestion pipeline."""

import asyncio
import hashlib
import tempfile
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from src.application.dtos.ingestion import (
    IngestionProgress,
    IngestVideoRequest,
    UploadedFile,
    Uploader,
)
from src.commons.infrastructure.blob.base import BlobStorageBase
from src.commons.infrastructure.documentdb.base import DocumentDBBase
from src.commons.infrastructure.documentdb.predicates import eq
from src.commons.settings.models import Settings
from src.commons.telemetry import LogContext, get_logger
from src.domain.exceptions import (
    IngestionError,
    NotChannelOwnerException,
    PartialCommitError,
    PersistenceError,
    TranscodeError,
    ValidationError,
)
from src.domain.models.channel import Channel
from src.domain.models.upload_job import UploadJob, UploadStage
from src.domain.models.video import VideoAsset, validate_video_metadata
from src.infrastructure.video.base import TranscoderBase, TranscodeResult

_MB = 1024 * 1024

_STAGE_PROGRESS = {
    UploadStage.STAGED: 0.1,
    UploadStage.TRANSCODING: 0.2,
    UploadStage.THUMBNAIL_EXTRACTION: 0.6,
    UploadStage.PERSISTING: 0.75,
    UploadStage.COMMITTED: 1.0,
}


class VideoIngestionService:
    """Orchestrates the upload pipeline.

    Pipeline steps:
    1. Validate metadata, file type, size and channel ownership (no I/O)
    2. Stage the upload into a per-job temporary directory
    3. Transcode to the playback profile, then extract the thumbnail
    4. Persist both artifacts to blob storage
    5. Insert the catalog record
    6. Link the record to its channel (retried)

    A failure before step 5 deletes every blob the run wrote. The staging
    directory is removed on every exit path, including cancellation.
    Resubmitting after a PartialCommitError creates a duplicate record.
    """

    def __init__(
        self,
        transcoder: TranscoderBase,
        blob_storage: BlobStorageBase,
        document_db: DocumentDBBase,
        settings: Settings,
    ) -> None:
        """Initialize ingestion service with dependencies.

        Args:
            transcoder: Produces the playable video and thumbnail.
            blob_storage: Blob storage for media files.
            document_db: Document database for catalog records.
            settings: Application settings.
        """
        self._transcoder = transcoder
        self._blob = blob_storage
        self._document_db = document_db
        self._uploads = settings.uploads
        self._processing = settings.processing
        self._logger = get_logger(__name__)

        self._videos_collection = settings.document_db.collections.videos
        self._channels_collection = settings.document_db.collections.channels
        self._videos_bucket = settings.blob_storage.buckets.videos
        self._thumbnails_bucket = settings.blob_storage.buckets.thumbnails

    # =========================================================================
    # Entry point
    # =========================================================================

    async def ingest(
        self,
        uploader: Uploader,
        upload: UploadedFile,
        request: IngestVideoRequest,
        progress_callback: Callable[[IngestionProgress], None] | None = None,
    ) -> VideoAsset:
        """Run an upload through the whole pipeline.

        Args:
            uploader: Authenticated user and the channel they publish to.
            upload: The received file.
            request: Title, description and tags.
            progress_callback: Optional callback for stage updates.

        Returns:
            The committed video, or the earlier identical one when
            content de-duplication is enabled.

        Raises:
            ValidationError: Rejected before any I/O. Safe to retry once fixed.
            NotChannelOwnerException: Uploader does not own the channel.
            TranscodeError: Encoder failure. Nothing was persisted.
            PersistenceError: Storage failure. Written blobs were removed.
            PartialCommitError: Record saved but not linked. Do not retry.
        """
        started_at = datetime.now(UTC)
        title, description, tags = self._validate(upload, request)
        channel = await self._load_channel(uploader)

        staging_root = Path(self._uploads.temp_dir) if self._uploads.temp_dir else None
        if staging_root is not None:
            staging_root.mkdir(parents=True, exist_ok=True)

        with tempfile.TemporaryDirectory(prefix="upload-", dir=staging_root) as tmp:
            job = UploadJob.create(
                uploader_id=uploader.user_id,
                channel_id=channel.id,
                staging_dir=Path(tmp),
                original_filename=upload.filename,
            )

            def report_progress(current: UploadJob, message: str) -> None:
                self._logger.info(
                    "Upload stage changed",
                    extra={"stage": current.stage.value, "progress_message": message},
                )
                if progress_callback:
                    progress_callback(
                        IngestionProgress(
                            job_name=current.job_name,
                            stage=current.stage,
                            overall_progress=_STAGE_PROGRESS.get(current.stage, 0.0),
                            message=message,
                            started_at=started_at,
                        )
                    )

            async with LogContext(job_name=job.job_name, channel_id=channel.id):
                self._logger.info(
                    "Starting video ingestion",
                    extra={
                        "uploader_id": uploader.user_id,
                        "upload_filename": upload.filename,
                        "content_type": upload.content_type,
                        "tags": tags,
                    },
                )
                return await self._run(
                    job, upload, title, description, tags, report_progress
                )

    # =========================================================================
    # Validation
    # =========================================================================

    def _validate(
        self,
        upload: UploadedFile,
        request: IngestVideoRequest,
    ) -> tuple[str, str, list[str]]:
        if not (upload.content_type or "").startswith("video/"):
            raise ValidationError(
                f"Only video files are accepted, got '{upload.content_type}'",
                field="video",
            )
        limit = self._uploads.max_video_size_mb * _MB
        if upload.size_bytes is not None and upload.size_bytes > limit:
            raise ValidationError(
                f"File too large: maximum size is {self._uploads.max_video_size_mb}MB",
                field="video",
                details={"size_bytes": upload.size_bytes, "limit_bytes": limit},
            )
        return validate_video_metadata(request.title, request.description, request.tags)

    async def _load_channel(self, uploader: Uploader) -> Channel:
        doc = await self._document_db.find_by_id(
            self._channels_collection, uploader.channel_id
        )
        if doc is None:
            raise ValidationError(
                f"Channel not found: {uploader.channel_id}",
                field="channel_id",
            )
        channel = Channel.from_document(doc)
        if not channel.is_owned_by(uploader.user_id):
            raise NotChannelOwnerException(uploader.user_id, channel.id)
        return channel

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def _run(  # noqa: PLR0913
        self,
        job: UploadJob,
        upload: UploadedFile,
        title: str,
        description: str,
        tags: list[str],
        report_progress: Callable[[UploadJob, str], None],
    ) -> VideoAsset:
        video: VideoAsset | None = None
        try:
            size_bytes, digest = await self._stage(upload, job.staged_path)
            report_progress(job, f"Upload staged ({size_bytes} bytes)")

            if self._uploads.deduplicate_by_content_hash:
                existing = await self._find_duplicate(job.channel_id, digest)
                if existing is not None:
                    self._logger.info(
                        "Identical upload already in catalog",
                        extra={"video_id": existing.id},
                    )
                    return existing

            job = job.transition_to(UploadStage.TRANSCODING)
            report_progress(job, "Transcoding video")

            async def on_normalized() -> None:
                nonlocal job
                job = job.transition_to(UploadStage.THUMBNAIL_EXTRACTION)
                report_progress(job, "Extracting thumbnail")

            result = await self._transcoder.transcode(
                job.staged_path, job.output_dir, on_normalized=on_normalized
            )

            job = job.transition_to(UploadStage.PERSISTING)
            report_progress(job, "Storing video")
            for bucket, key, path, content_type in self._artifacts(job, result):
                # Recorded before the write so a half-written object is cleaned up too
                job = job.record_write(bucket, key)
                await self._store(bucket, key, path, content_type)

            video = VideoAsset(
                title=title,
                description=description,
                tags=tags,
                channel_id=job.channel_id,
                file_key=job.blob_key("mp4"),
                thumbnail_key=job.blob_key("jpg"),
                duration_seconds=result.duration_seconds,
                content_sha256=digest,
            )
            await self._insert_record(video)
            job = job.model_copy(update={"video_id": video.id})

            await self._link_to_channel(video)

            job = job.transition_to(UploadStage.COMMITTED)
            report_progress(job, "Upload committed")
            return video

        except PartialCommitError as e:
            job = job.mark_failed(str(e))
            self._logger.error(
                "Video saved without channel link",
                extra={
                    "video_id": e.video_id,
                    "stage": job.stage.value,
                    "error": e.reason,
                },
            )
            raise
        except IngestionError as e:
            if job.video_id is None:
                await self._compensate(job)
            job = job.mark_failed(str(e))
            self._logger.warning(
                "Ingestion failed",
                extra={"failed_stage": e.stage, "error_code": e.code, "error": str(e)},
            )
            raise
        except asyncio.CancelledError:
            if (
                job.video_id is None
                and video is not None
                and await self._insert_landed(video.id)
            ):
                # Record is visible; sync_channel_videos links it later
                job = job.model_copy(update={"video_id": video.id})
            if job.video_id is None:
                await self._compensate(job)
            self._logger.warning(
                "Ingestion cancelled",
                extra={"stage": job.stage.value, "video_id": job.video_id},
            )
            raise
        except Exception as e:
            if job.video_id is None:
                await self._compensate(job)
            self._logger.exception(
                "Unexpected ingestion failure",
                extra={"stage": job.stage.value},
            )
            raise self._wrap_unexpected(job, e) from e

    async def _stage(self, upload: UploadedFile, destination: Path) -> tuple[int, str]:
        """Copy the upload to disk, enforcing the size limit while copying."""
        limit = self._uploads.max_video_size_mb * _MB
        chunk_size = self._uploads.chunk_size_bytes

        def _copy() -> tuple[int, str]:
            digest = hashlib.sha256()
            written = 0
            with destination.open("wb") as out:
                while chunk := upload.stream.read(chunk_size):
                    written += len(chunk)
                    if written > limit:
                        raise ValidationError(
                            "File too large: maximum size is "
                            f"{self._uploads.max_video_size_mb}MB",
                            field="video",
                            details={"limit_bytes": limit},
                        )
                    digest.update(chunk)
                    out.write(chunk)
            if written == 0:
                raise ValidationError("Uploaded file is empty", field="video")
            return written, digest.hexdigest()

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _copy)

    async def _find_duplicate(self, channel_id: str, digest: str) -> VideoAsset | None:
        matches = await self._document_db.find(
            self._videos_collection,
            [eq("channel_id", channel_id), eq("content_sha256", digest)],
            limit=1,
        )
        return VideoAsset.from_document(matches[0]) if matches else None

    def _artifacts(
        self,
        job: UploadJob,
        result: TranscodeResult,
    ) -> tuple[tuple[str, str, Path, str], ...]:
        """(bucket, key, local path, content type) of each output to store."""
        return (
            (self._videos_bucket, job.blob_key("mp4"), result.video_path, "video/mp4"),
            (
                self._thumbnails_bucket,
                job.blob_key("jpg"),
                result.thumbnail_path,
                "image/jpeg",
            ),
        )

    async def _store(
        self,
        bucket: str,
        key: str,
        path: Path,
        content_type: str,
    ) -> None:
        try:
            await self._blob.upload_file(bucket, key, path, content_type)
        except Exception as e:
            raise PersistenceError(
                f"Could not store {key}: {e}",
                details={"bucket": bucket, "key": key},
            ) from e
        self._logger.debug(
            "Artifact stored",
            extra={"bucket": bucket, "key": key},
        )

    async def _insert_record(self, video: VideoAsset) -> None:
        try:
            await self._document_db.insert(self._videos_collection, video.to_document())
        except Exception as e:
            if not await self._insert_landed(video.id):
                raise PersistenceError(f"Could not save video record: {e}") from e
            self._logger.warning(
                "Insert reported an error but the record was written",
                extra={"video_id": video.id, "error": str(e)},
            )
            return
        self._logger.info(
            "Video record created",
            extra={"video_id": video.id, "file_key": video.file_key},
        )

    async def _insert_landed(self, video_id: str) -> bool:
        """Whether an insert that failed or was interrupted was applied anyway."""
        try:
            doc = await self._document_db.find_by_id(self._videos_collection, video_id)
        except Exception as e:
            self._logger.error(
                "Could not check for video record",
                extra={"video_id": video_id, "error": str(e)},
            )
            return False
        return doc is not None

    async def _link_to_channel(self, video: VideoAsset) -> None:
        attempts = self._processing.channel_link_retry_attempts
        reason = "unknown error"
        for attempt in range(1, attempts + 1):
            try:
                if await self._document_db.add_to_set(
                    self._channels_collection, video.channel_id, "videos", video.id
                ):
                    return
                reason = "channel no longer exists"
                break
            except Exception as e:
                reason = str(e)
                self._logger.warning(
                    "Channel link attempt failed",
                    extra={"video_id": video.id, "attempt": attempt, "error": reason},
                )
            if attempt < attempts:
                await asyncio.sleep(self._processing.retry_delay_seconds)

        raise PartialCommitError(video.id, video.channel_id, reason)

    async def _compensate(self, job: UploadJob) -> None:
        """Delete every blob this job wrote. Failures are logged, not raised."""
        for blob in reversed(job.written):
            try:
                await self._blob.delete(blob.bucket, blob.key)
            except Exception as e:
                self._logger.error(
                    "Compensating delete failed; blob orphaned",
                    extra={"bucket": blob.bucket, "key": blob.key, "error": str(e)},
                )
        if job.written:
            self._logger.info(
                "Compensating cleanup finished",
                extra={"blobs": [b.key for b in job.written]},
            )

    @staticmethod
    def _wrap_unexpected(job: UploadJob, error: Exception) -> IngestionError:
        if job.stage in (UploadStage.TRANSCODING, UploadStage.THUMBNAIL_EXTRACTION):
            return TranscodeError(str(error), stage=job.stage.value)
        return PersistenceError(str(error), stage=job.stage.value)
