"""Unit tests for VideoIngestionService."""

import asyncio
import io
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from src.application.dtos.ingestion import (
    IngestionProgress,
    IngestVideoRequest,
    UploadedFile,
    Uploader,
)
from src.application.services.ingestion import VideoIngestionService
from src.commons.infrastructure.blob import InMemoryBlobStorage
from src.commons.infrastructure.documentdb import InMemoryDocumentDB
from src.commons.settings.models import ProcessingSettings, Settings, UploadSettings
from src.domain.exceptions import (
    NotChannelOwnerException,
    PartialCommitError,
    PersistenceError,
    TranscodeError,
    ValidationError,
)
from src.domain.models.channel import Channel
from src.domain.models.upload_job import UploadStage
from src.infrastructure.video.base import TranscoderBase

VIDEOS = "streamline-videos"
THUMBNAILS = "streamline-thumbnails"


class FakeTranscoder(TranscoderBase):
    """Writes placeholder outputs instead of running an encoder."""

    def __init__(self, fail_with: BaseException | None = None) -> None:
        self.fail_with = fail_with
        self.calls = 0

    async def normalize(self, input_path: Path, output_path: Path) -> None:
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        output_path.write_bytes(b"mp4:" + input_path.read_bytes())

    async def extract_thumbnail(
        self, input_path: Path, output_path: Path
    ) -> tuple[int, int]:
        output_path.write_bytes(b"jpeg")
        return (320, 180)

    async def probe_duration(self, video_path: Path) -> float:
        return 42.0


class FailingThumbnailStorage(InMemoryBlobStorage):
    """Accepts the video, then fails on the thumbnail."""

    def __init__(self, error: BaseException) -> None:
        super().__init__()
        self.error = error

    async def upload_file(
        self, bucket, key, local_path, content_type="application/octet-stream"
    ):
        if bucket == THUMBNAILS:
            raise self.error
        return await super().upload_file(bucket, key, local_path, content_type)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def staging_root(tmp_path):
    return tmp_path / "staging"


@pytest.fixture
def settings(staging_root):
    return Settings(
        uploads=UploadSettings(temp_dir=str(staging_root)),
        processing=ProcessingSettings(retry_delay_seconds=0),
    )


@pytest.fixture
def blobs():
    return InMemoryBlobStorage()


@pytest.fixture
async def db():
    store = InMemoryDocumentDB()
    await store.insert(
        "channels",
        Channel(id="c1", name="Main channel", owner_id="u1").to_document(),
    )
    return store


@pytest.fixture
def transcoder():
    return FakeTranscoder()


@pytest.fixture
def service(transcoder, blobs, db, settings):
    return VideoIngestionService(
        transcoder=transcoder,
        blob_storage=blobs,
        document_db=db,
        settings=settings,
    )


@pytest.fixture
def uploader():
    return Uploader(user_id="u1", channel_id="c1")


@pytest.fixture
def request_body():
    return IngestVideoRequest(
        title="My first upload",
        description="  Holiday footage  ",
        tags=["Music", "Comedy"],
    )


def _upload(
    data: bytes = b"raw movie bytes",
    content_type: str = "video/quicktime",
    size_bytes: int | None = None,
) -> UploadedFile:
    return UploadedFile(
        filename="clip.MOV",
        content_type=content_type,
        stream=io.BytesIO(data),
        size_bytes=size_bytes,
    )


# =============================================================================
# Validation
# =============================================================================


class TestValidation:
    """Uploads rejected before any storage is touched."""

    async def test_rejects_non_video_type(self, service, uploader, request_body, blobs):
        with pytest.raises(ValidationError) as exc:
            await service.ingest(uploader, _upload(content_type="image/png"), request_body)

        assert exc.value.field == "video"
        assert exc.value.stage == "validation"
        assert exc.value.retry_safe is True
        assert blobs.total_blobs() == 0

    async def test_rejects_declared_size_over_limit(
        self, service, uploader, request_body, transcoder
    ):
        too_big = 50 * 1024 * 1024 + 1
        with pytest.raises(ValidationError, match="File too large"):
            await service.ingest(uploader, _upload(size_bytes=too_big), request_body)
        assert transcoder.calls == 0

    async def test_rejects_bad_metadata(self, service, uploader):
        with pytest.raises(ValidationError) as exc:
            await service.ingest(
                uploader, _upload(), IngestVideoRequest(title="short")
            )
        assert exc.value.field == "title"

    async def test_rejects_unknown_tag(self, service, uploader):
        request = IngestVideoRequest(title="A perfectly fine title", tags=["music"])
        with pytest.raises(ValidationError) as exc:
            await service.ingest(uploader, _upload(), request)
        assert exc.value.field == "tags"

    async def test_missing_channel(self, service, request_body):
        with pytest.raises(ValidationError) as exc:
            await service.ingest(
                Uploader(user_id="u1", channel_id="nope"), _upload(), request_body
            )
        assert exc.value.field == "channel_id"

    async def test_not_channel_owner(self, service, request_body, db):
        with pytest.raises(NotChannelOwnerException):
            await service.ingest(
                Uploader(user_id="intruder", channel_id="c1"), _upload(), request_body
            )
        assert await db.count("videos") == 0

    async def test_empty_file(self, service, uploader, request_body, staging_root):
        with pytest.raises(ValidationError, match="empty"):
            await service.ingest(uploader, _upload(data=b""), request_body)
        assert list(staging_root.iterdir()) == []

    async def test_size_limit_enforced_while_streaming(
        self, uploader, request_body, blobs, db, transcoder, staging_root
    ):
        settings = Settings(
            uploads=UploadSettings(
                temp_dir=str(staging_root),
                max_video_size_mb=1,
                chunk_size_bytes=256 * 1024,
            )
        )
        service = VideoIngestionService(transcoder, blobs, db, settings)
        data = b"x" * (1024 * 1024 + 1)

        # no declared size, so only the copy loop can catch it
        with pytest.raises(ValidationError, match="File too large"):
            await service.ingest(uploader, _upload(data=data), request_body)

        assert transcoder.calls == 0
        assert list(staging_root.iterdir()) == []


# =============================================================================
# Successful commits
# =============================================================================


class TestSuccessfulIngestion:
    """Tests for the happy path."""

    async def test_commit(self, service, uploader, request_body, blobs, db):
        video = await service.ingest(uploader, _upload(), request_body)

        assert video.title == "My first upload"
        assert video.description == "Holiday footage"
        assert video.tags == ["Music", "Comedy"]
        assert video.channel_id == "c1"
        assert video.duration_seconds == 42.0
        assert video.views == 0
        assert video.likes == []

        stored = await db.find_by_id("videos", video.id)
        assert stored["file_key"] == video.file_key

        channel = await db.find_by_id("channels", "c1")
        assert channel["videos"] == [video.id]

    async def test_blob_keys_follow_job_name(self, service, uploader, request_body, blobs):
        video = await service.ingest(uploader, _upload(), request_body)

        assert blobs.keys(VIDEOS) == [video.file_key]
        assert blobs.keys(THUMBNAILS) == [video.thumbnail_key]
        assert video.file_key.startswith("c1/u1-")
        assert video.file_key.endswith(".mp4")
        assert video.thumbnail_key == video.file_key[: -len(".mp4")] + ".jpg"
        assert await blobs.download(VIDEOS, video.file_key) == b"mp4:raw movie bytes"

    async def test_progress_reports_every_stage(self, service, uploader, request_body):
        updates: list[IngestionProgress] = []

        await service.ingest(uploader, _upload(), request_body, updates.append)

        assert [u.stage for u in updates] == [
            UploadStage.STAGED,
            UploadStage.TRANSCODING,
            UploadStage.THUMBNAIL_EXTRACTION,
            UploadStage.PERSISTING,
            UploadStage.COMMITTED,
        ]
        progress = [u.overall_progress for u in updates]
        assert progress == sorted(progress)
        assert progress[-1] == 1.0
        assert len({u.job_name for u in updates}) == 1

    async def test_staging_directory_removed(
        self, service, uploader, request_body, staging_root
    ):
        await service.ingest(uploader, _upload(), request_body)
        assert list(staging_root.iterdir()) == []

    async def test_identical_uploads_make_two_records_by_default(
        self, service, uploader, request_body, db
    ):
        first = await service.ingest(uploader, _upload(), request_body)
        second = await service.ingest(uploader, _upload(), request_body)

        assert first.id != second.id
        assert first.file_key != second.file_key
        assert await db.count("videos") == 2

    async def test_content_deduplication_opt_in(
        self, uploader, request_body, blobs, db, transcoder, staging_root
    ):
        settings = Settings(
            uploads=UploadSettings(
                temp_dir=str(staging_root), deduplicate_by_content_hash=True
            )
        )
        service = VideoIngestionService(transcoder, blobs, db, settings)

        first = await service.ingest(uploader, _upload(), request_body)
        second = await service.ingest(uploader, _upload(), request_body)

        assert second.id == first.id
        assert transcoder.calls == 1
        assert blobs.total_blobs() == 2
        assert await db.count("videos") == 1

    async def test_channel_link_retried(self, service, uploader, request_body, db):
        real_add = db.add_to_set
        attempts = []

        async def flaky(*args):
            attempts.append(args)
            if len(attempts) == 1:
                raise ConnectionError("primary stepped down")
            return await real_add(*args)

        with patch.object(db, "add_to_set", side_effect=flaky):
            video = await service.ingest(uploader, _upload(), request_body)

        assert len(attempts) == 2
        assert (await db.find_by_id("channels", "c1"))["videos"] == [video.id]

    async def test_same_millisecond_uploads_commit_separately(
        self, service, uploader, request_body, blobs, db
    ):
        with patch(
            "src.domain.models.upload_job.time.time_ns",
            return_value=1_700_000_000_000_000_000,
        ):
            first, second = await asyncio.gather(
                service.ingest(uploader, _upload(b"first take"), request_body),
                service.ingest(uploader, _upload(b"second take"), request_body),
            )

        assert first.id != second.id
        assert first.file_key != second.file_key
        assert first.file_key.startswith("c1/u1-1700000000000-")
        assert second.file_key.startswith("c1/u1-1700000000000-")
        assert blobs.total_blobs() == 4
        assert await db.count("videos") == 2
        channel = await db.find_by_id("channels", "c1")
        assert sorted(channel["videos"]) == sorted([first.id, second.id])

    async def test_insert_error_after_write_keeps_going(
        self, service, uploader, request_body, blobs, db
    ):
        real_insert = db.insert

        async def written_then_timeout(*args, **kwargs):
            await real_insert(*args, **kwargs)
            raise TimeoutError("no reply from primary")

        with patch.object(db, "insert", side_effect=written_then_timeout):
            video = await service.ingest(uploader, _upload(), request_body)

        assert await db.find_by_id("videos", video.id) is not None
        assert blobs.total_blobs() == 2
        assert (await db.find_by_id("channels", "c1"))["videos"] == [video.id]


# =============================================================================
# Failures and compensation
# =============================================================================


class TestFailureCompensation:
    """Tests for cleanup when a stage fails."""

    async def test_transcode_failure_writes_nothing(
        self, uploader, request_body, blobs, db, settings, staging_root
    ):
        transcoder = FakeTranscoder(
            fail_with=TranscodeError("encoder crashed", return_code=1)
        )
        service = VideoIngestionService(transcoder, blobs, db, settings)

        with pytest.raises(TranscodeError) as exc:
            await service.ingest(uploader, _upload(), request_body)

        assert exc.value.retry_safe is True
        assert blobs.total_blobs() == 0
        assert await db.count("videos") == 0
        assert list(staging_root.iterdir()) == []

    async def test_unexpected_transcoder_error_is_wrapped(
        self, uploader, request_body, blobs, db, settings
    ):
        transcoder = FakeTranscoder(fail_with=RuntimeError("segfault"))
        service = VideoIngestionService(transcoder, blobs, db, settings)

        with pytest.raises(TranscodeError) as exc:
            await service.ingest(uploader, _upload(), request_body)

        assert exc.value.stage == "transcoding"
        assert isinstance(exc.value.__cause__, RuntimeError)

    async def test_second_blob_failure_removes_first(
        self, uploader, request_body, db, settings, transcoder
    ):
        blobs = FailingThumbnailStorage(ConnectionError("minio unreachable"))
        service = VideoIngestionService(transcoder, blobs, db, settings)

        with pytest.raises(PersistenceError) as exc:
            await service.ingest(uploader, _upload(), request_body)

        assert exc.value.details["bucket"] == THUMBNAILS
        assert blobs.total_blobs() == 0
        assert await db.count("videos") == 0

    async def test_insert_failure_removes_blobs(
        self, service, uploader, request_body, blobs, db
    ):
        with (
            patch.object(db, "insert", AsyncMock(side_effect=RuntimeError("disk full"))),
            pytest.raises(PersistenceError, match="Could not save video record"),
        ):
            await service.ingest(uploader, _upload(), request_body)

        assert blobs.total_blobs() == 0
        assert (await db.find_by_id("channels", "c1"))["videos"] == []

    async def test_link_failure_is_partial_commit(
        self, service, uploader, request_body, blobs, db
    ):
        failing = AsyncMock(side_effect=ConnectionError("timeout"))

        with (
            patch.object(db, "add_to_set", failing),
            pytest.raises(PartialCommitError) as exc,
        ):
            await service.ingest(uploader, _upload(), request_body)

        assert exc.value.retry_safe is False
        assert exc.value.reason == "timeout"
        assert failing.await_count == 3
        # the record and its blobs stay
        assert await db.find_by_id("videos", exc.value.video_id) is not None
        assert blobs.total_blobs() == 2

    async def test_channel_deleted_mid_upload(
        self, service, uploader, request_body, db
    ):
        with (
            patch.object(db, "add_to_set", AsyncMock(return_value=False)),
            pytest.raises(PartialCommitError, match="channel no longer exists"),
        ):
            await service.ingest(uploader, _upload(), request_body)

    async def test_cancellation_cleans_up(
        self, uploader, request_body, db, settings, transcoder, staging_root
    ):
        blobs = FailingThumbnailStorage(asyncio.CancelledError())
        service = VideoIngestionService(transcoder, blobs, db, settings)

        with pytest.raises(asyncio.CancelledError):
            await service.ingest(uploader, _upload(), request_body)

        assert blobs.total_blobs() == 0
        assert await db.count("videos") == 0
        assert list(staging_root.iterdir()) == []

    async def test_cancelled_after_insert_keeps_blobs(
        self, service, uploader, request_body, blobs, db
    ):
        real_insert = db.insert

        async def written_then_cancelled(*args, **kwargs):
            await real_insert(*args, **kwargs)
            raise asyncio.CancelledError

        with (
            patch.object(db, "insert", side_effect=written_then_cancelled),
            pytest.raises(asyncio.CancelledError),
        ):
            await service.ingest(uploader, _upload(), request_body)

        (stored,) = await db.find("videos", [])
        assert blobs.keys(VIDEOS) == [stored["file_key"]]
        assert blobs.keys(THUMBNAILS) == [stored["thumbnail_key"]]

    async def test_failed_compensation_still_raises_original(
        self, uploader, request_body, db, settings, transcoder
    ):
        blobs = FailingThumbnailStorage(ConnectionError("minio unreachable"))
        service = VideoIngestionService(transcoder, blobs, db, settings)

        with (
            patch.object(blobs, "delete", AsyncMock(side_effect=OSError("gone"))),
            pytest.raises(PersistenceError),
        ):
            await service.ingest(uploader, _upload(), request_body)
