"""Unit tests for API routes."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from src.api.main import create_app
from src.application.dtos.query import SuggestionItem, VideoPage
from src.application.dtos.video import ReactionResponse, SyncChannelsResponse
from src.commons.infrastructure.blob.base import HealthStatus
from src.commons.settings.models import Settings
from src.domain.exceptions import (
    ConcurrentModificationError,
    InvalidParameterError,
    NotChannelOwnerException,
    PartialCommitError,
    PersistenceError,
    TranscodeError,
    ValidationError,
    VideoNotFoundException,
)
from src.domain.models.video import ReactionKind, VideoAsset

OWNER = {"X-User-ID": "u1", "X-Channel-ID": "c1"}


def _asset(**overrides) -> VideoAsset:
    fields = {
        "id": "v1",
        "title": "Guitar lesson one",
        "channel_id": "c1",
        "file_key": "c1/u1-1-abcd.mp4",
        "thumbnail_key": "c1/u1-1-abcd.jpg",
        "tags": ["Music"],
        "duration_seconds": 12.5,
    }
    fields.update(overrides)
    return VideoAsset(**fields)


def _probe(healthy: bool) -> MagicMock:
    provider = MagicMock()
    provider.health_check = AsyncMock(
        return_value=HealthStatus(healthy=healthy, latency_ms=1.5, message="probe")
    )
    return provider


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def mock_factory():
    """Create mock infrastructure factory with healthy providers."""
    factory = MagicMock()
    factory.get_blob_storage.return_value = _probe(True)
    factory.get_document_db.return_value = _probe(True)
    return factory


@pytest.fixture
def mock_ingestion_service():
    return AsyncMock()


@pytest.fixture
def mock_query_service():
    return AsyncMock()


@pytest.fixture
def mock_catalog_service():
    return AsyncMock()


@pytest.fixture
def client(
    settings,
    mock_factory,
    mock_ingestion_service,
    mock_query_service,
    mock_catalog_service,
):
    """Create test client with mocked dependencies."""
    from src.api.dependencies import (
        get_catalog_service,
        get_infrastructure_factory,
        get_ingestion_service,
        get_query_service,
        get_settings,
    )

    with (
        patch("src.api.main.get_settings", return_value=settings),
        patch("src.api.main.init_services", new_callable=AsyncMock),
        patch("src.api.main.shutdown_services", new_callable=AsyncMock),
    ):
        app = create_app()
        app.dependency_overrides[get_settings] = lambda: settings
        app.dependency_overrides[get_infrastructure_factory] = lambda: mock_factory
        app.dependency_overrides[get_ingestion_service] = lambda: mock_ingestion_service
        app.dependency_overrides[get_query_service] = lambda: mock_query_service
        app.dependency_overrides[get_catalog_service] = lambda: mock_catalog_service
        yield TestClient(app, raise_server_exceptions=False)


# =============================================================================
# Health
# =============================================================================


class TestHealthRoutes:
    """Tests for health check endpoints."""

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert {c["name"] for c in data["components"]} == {"blob_storage", "document_db"}

    def test_degraded(self, client, mock_factory):
        mock_factory.get_document_db.return_value = _probe(False)

        data = client.get("/health").json()

        assert data["status"] == "degraded"

    def test_probe_exception_is_unhealthy(self, client, mock_factory):
        for getter in (mock_factory.get_blob_storage, mock_factory.get_document_db):
            getter.return_value.health_check = AsyncMock(
                side_effect=ConnectionError("refused")
            )

        data = client.get("/health").json()

        assert data["status"] == "unhealthy"
        assert data["components"][0]["message"] == "refused"

    def test_liveness_check(self, client):
        response = client.get("/health/live")
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "ok"}

    def test_ready(self, client):
        response = client.get("/health/ready")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["ready"] is True

    def test_not_ready(self, client, mock_factory):
        mock_factory.get_blob_storage.return_value = _probe(False)

        response = client.get("/health/ready")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["checks"] == {
            "blob_storage": False,
            "document_db": True,
        }


# =============================================================================
# Upload
# =============================================================================


class TestUploadRoute:
    """Tests for the multipart upload endpoint."""

    def _post(self, client, headers=OWNER, **form):
        data = {"title": "Guitar lesson one", "description": "Chords", **form}
        return client.post(
            "/v1/videos",
            files={"video": ("lesson.mov", b"raw bytes", "video/quicktime")},
            data=data,
            headers=headers,
        )

    def test_upload_success(self, client, mock_ingestion_service):
        mock_ingestion_service.ingest.return_value = _asset()

        response = self._post(client, tags="Music, Education")

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["id"] == "v1"
        assert body["file_key"] == "c1/u1-1-abcd.mp4"
        assert "revision" not in body
        assert "content_sha256" not in body

        kwargs = mock_ingestion_service.ingest.call_args.kwargs
        assert kwargs["uploader"].user_id == "u1"
        assert kwargs["uploader"].channel_id == "c1"
        assert kwargs["upload"].filename == "lesson.mov"
        assert kwargs["upload"].content_type == "video/quicktime"
        assert kwargs["request"].title == "Guitar lesson one"
        assert kwargs["request"].tags == ["Music", "Education"]

    def test_channel_defaults_to_user(self, client, mock_ingestion_service):
        mock_ingestion_service.ingest.return_value = _asset()

        self._post(client, headers={"X-User-ID": "u1"})

        uploader = mock_ingestion_service.ingest.call_args.kwargs["uploader"]
        assert uploader.channel_id == "u1"

    def test_requires_user(self, client, mock_ingestion_service):
        response = self._post(client, headers={})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        mock_ingestion_service.ingest.assert_not_called()

    def test_request_too_large(self, client, settings, mock_ingestion_service):
        settings.uploads.max_request_size_mb = 0

        response = self._post(client)

        assert response.status_code == status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
        assert response.json()["error"]["code"] == "REQUEST_TOO_LARGE"
        mock_ingestion_service.ingest.assert_not_called()

    def test_missing_title(self, client):
        response = client.post(
            "/v1/videos",
            files={"video": ("lesson.mov", b"raw", "video/quicktime")},
            headers=OWNER,
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_validation_error(self, client, mock_ingestion_service):
        mock_ingestion_service.ingest.side_effect = ValidationError(
            "Title must be between 10 and 50 characters, got 5", field="title"
        )

        response = self._post(client)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["field"] == "title"
        assert error["details"]["stage"] == "validation"
        assert error["details"]["retry_safe"] is True

    def test_transcode_error(self, client, mock_ingestion_service):
        mock_ingestion_service.ingest.side_effect = TranscodeError(
            "ffmpeg exited with status 1", stderr="Invalid data found", return_code=1
        )

        response = self._post(client)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        error = response.json()["error"]
        assert error["code"] == "TRANSCODE_ERROR"
        assert error["details"]["tool_output"] == "Invalid data found"

    def test_persistence_error(self, client, mock_ingestion_service):
        mock_ingestion_service.ingest.side_effect = PersistenceError("minio down")

        response = self._post(client)

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["error"]["details"]["stage"] == "persisting"

    def test_partial_commit(self, client, mock_ingestion_service):
        mock_ingestion_service.ingest.side_effect = PartialCommitError(
            "v1", "c1", "timeout"
        )

        response = self._post(client)

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        error = response.json()["error"]
        assert error["code"] == "PARTIAL_COMMIT"
        assert error["details"]["retry_safe"] is False
        assert error["details"]["video_id"] == "v1"

    def test_not_owner(self, client, mock_ingestion_service):
        mock_ingestion_service.ingest.side_effect = NotChannelOwnerException("u1", "c9")

        response = self._post(client)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["error"]["code"] == "NOT_CHANNEL_OWNER"


# =============================================================================
# Listing
# =============================================================================


class TestListRoutes:
    """Tests for catalog listing endpoints."""

    def test_list_passes_raw_params(self, client, mock_query_service):
        mock_query_service.build_page.return_value = VideoPage(
            items=[{"id": "v1", "title": "Guitar lesson one"}],
            total=13,
            page=2,
            page_size=12,
            total_pages=2,
        )

        response = client.get("/v1/videos?tags=Music&tags=News&page=2&views[gte]=5")

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["total"] == 13
        assert body["pageSize"] == 12
        assert body["totalPages"] == 2
        mock_query_service.build_page.assert_awaited_once_with(
            {"tags": ["Music", "News"], "page": "2", "views[gte]": "5"}
        )

    def test_invalid_parameter(self, client, mock_query_service):
        mock_query_service.build_page.side_effect = InvalidParameterError(
            "sort", "-secret", "cannot sort by '-secret'"
        )

        response = client.get("/v1/videos?sort=-secret")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        error = response.json()["error"]
        assert error["code"] == "INVALID_PARAMETER"
        assert error["details"] == {
            "parameter": "sort",
            "reason": "cannot sort by '-secret'",
        }

    def test_trending(self, client, mock_query_service):
        mock_query_service.trending.return_value = VideoPage(
            items=[], total=0, page=1, page_size=10, total_pages=0
        )
        response = client.get("/v1/videos/trending")
        assert response.status_code == status.HTTP_200_OK
        mock_query_service.trending.assert_awaited_once()

    def test_suggestions(self, client, mock_catalog_service):
        mock_catalog_service.suggestions.return_value = [
            SuggestionItem(id="v1", title="Guitar lesson one", views=3)
        ]

        response = client.get("/v1/videos/suggestions?search=gui&limit=3")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()[0]["id"] == "v1"
        mock_catalog_service.suggestions.assert_awaited_once_with("gui", 3)

    def test_suggestions_limit_bounds(self, client):
        response = client.get("/v1/videos/suggestions?search=gui&limit=500")
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_by_tag(self, client, mock_query_service):
        mock_query_service.by_tag.return_value = VideoPage(
            items=[], total=0, page=2, page_size=5, total_pages=0
        )

        response = client.get("/v1/videos/tags/Music?page=2&limit=5")

        assert response.status_code == status.HTTP_200_OK
        mock_query_service.by_tag.assert_awaited_once_with("Music", page=2, limit=5)


# =============================================================================
# Single video
# =============================================================================


class TestVideoRoutes:
    """Tests for single-video endpoints."""

    def test_get_video(self, client, mock_catalog_service):
        mock_catalog_service.get_video.return_value = _asset(views=7)

        response = client.get("/v1/videos/v1")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["views"] == 7

    def test_get_missing_video(self, client, mock_catalog_service):
        mock_catalog_service.get_video.side_effect = VideoNotFoundException("nope")

        response = client.get("/v1/videos/nope")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        error = response.json()["error"]
        assert error["code"] == "VIDEO_NOT_FOUND"
        assert error["details"] == {"video_id": "nope"}

    def test_update(self, client, mock_catalog_service):
        mock_catalog_service.update_video.return_value = _asset(title="New and improved")

        response = client.patch(
            "/v1/videos/v1", json={"title": "New and improved"}, headers=OWNER
        )

        assert response.status_code == status.HTTP_200_OK
        mock_catalog_service.update_video.assert_awaited_once_with(
            "v1", "u1", title="New and improved", description=None, tags=None
        )

    def test_update_conflict(self, client, mock_catalog_service):
        mock_catalog_service.update_video.side_effect = ConcurrentModificationError(
            "v1", 3
        )

        response = client.patch("/v1/videos/v1", json={"tags": []}, headers=OWNER)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error"]["details"]["attempts"] == 3

    def test_delete(self, client, mock_catalog_service):
        response = client.delete("/v1/videos/v1", headers=OWNER)

        assert response.status_code == status.HTTP_204_NO_CONTENT
        mock_catalog_service.delete_video.assert_awaited_once_with("v1", "u1")

    def test_delete_not_owner(self, client, mock_catalog_service):
        mock_catalog_service.delete_video.side_effect = NotChannelOwnerException(
            "u2", "c1"
        )

        response = client.delete("/v1/videos/v1", headers={"X-User-ID": "u2"})

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_like(self, client, mock_catalog_service):
        mock_catalog_service.toggle_reaction.return_value = ReactionResponse(
            video_id="v1", reaction=ReactionKind.LIKE, like_count=1, dislike_count=0
        )

        response = client.post("/v1/videos/v1/like", headers=OWNER)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["reaction"] == "like"
        mock_catalog_service.toggle_reaction.assert_awaited_once_with(
            "v1", "u1", ReactionKind.LIKE
        )

    def test_dislike_requires_user(self, client, mock_catalog_service):
        response = client.post("/v1/videos/v1/dislike")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        mock_catalog_service.toggle_reaction.assert_not_called()

    def test_sync_channels(self, client, settings, mock_catalog_service):
        settings.server.maintainer_ids = ["ops"]
        mock_catalog_service.sync_channel_videos.return_value = SyncChannelsResponse(
            videos_scanned=4, links_added=1
        )

        response = client.post(
            "/v1/videos/sync-channels", headers={"X-User-ID": "ops"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["links_added"] == 1

    def test_sync_channels_restricted(self, client, mock_catalog_service):
        response = client.post("/v1/videos/sync-channels", headers=OWNER)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        mock_catalog_service.sync_channel_videos.assert_not_called()


# =============================================================================
# Middleware
# =============================================================================


class TestMiddleware:
    """Tests for request IDs and error shaping."""

    def test_request_id_echoed(self, client):
        response = client.get("/health/live", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_request_id_generated(self, client):
        response = client.get("/health/live")
        assert response.headers["X-Request-ID"]

    def test_error_body_carries_request_id(self, client, mock_catalog_service):
        mock_catalog_service.get_video.side_effect = VideoNotFoundException("v9")

        response = client.get("/v1/videos/v9", headers={"X-Request-ID": "req-404"})

        assert response.json()["error"]["request_id"] == "req-404"

    def test_unexpected_error(self, client, mock_catalog_service):
        mock_catalog_service.get_video.side_effect = RuntimeError("boom")

        response = client.get("/v1/videos/v1")

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        error = response.json()["error"]
        assert error["code"] == "INTERNAL_ERROR"
        assert "boom" not in error["message"]
