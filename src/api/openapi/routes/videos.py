"""Video catalog endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, File, Form, Query, Request, UploadFile, status

from src.api.dependencies import (
    CatalogServiceDep,
    CurrentUserDep,
    IngestionServiceDep,
    MaintainerDep,
    QueryServiceDep,
    SettingsDep,
)
from src.api.middleware.error_handler import APIError
from src.application.dtos.ingestion import IngestVideoRequest, UploadedFile
from src.application.dtos.query import SuggestionItem, VideoPage
from src.application.dtos.video import (
    ReactionResponse,
    SyncChannelsResponse,
    UpdateVideoRequest,
    VideoResponse,
)
from src.domain.models.video import ReactionKind

router = APIRouter()

_MB = 1024 * 1024


def _declared_length(request: Request) -> int | None:
    raw = request.headers.get("content-length")
    if raw is None or not raw.isdigit():
        return None
    return int(raw)


def _flatten_params(request: Request) -> dict[str, Any]:
    """Query string as a flat dict; repeated keys keep every value."""
    params: dict[str, Any] = {}
    for key in request.query_params:
        values = request.query_params.getlist(key)
        params[key] = values if len(values) > 1 else values[0]
    return params


# =============================================================================
# Upload
# =============================================================================


@router.post(
    "/videos",
    response_model=VideoResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a video",
    description=(
        "Upload a video file with its metadata. The file is transcoded to the "
        "playback profile and a thumbnail is extracted before the record is "
        "published to the uploader's channel."
    ),
    responses={
        403: {"description": "Uploader does not own the channel"},
        413: {"description": "Request body too large"},
        422: {"description": "Invalid metadata or unprocessable media"},
    },
)
async def upload_video(
    request: Request,
    uploader: CurrentUserDep,
    service: IngestionServiceDep,
    settings: SettingsDep,
    video: Annotated[UploadFile, File(description="Video file")],
    title: Annotated[str, Form(description="10-50 characters")],
    description: Annotated[str, Form(description="Up to 500 characters")] = "",
    tags: Annotated[list[str] | None, Form(description="Up to 5 tags")] = None,
) -> VideoResponse:
    """Run an upload through the ingestion pipeline."""
    max_bytes = settings.uploads.max_request_size_mb * _MB
    declared = _declared_length(request)
    if (declared is not None and declared > max_bytes) or (
        video.size is not None and video.size > max_bytes
    ):
        raise APIError(
            code="REQUEST_TOO_LARGE",
            message=f"Request exceeds {settings.uploads.max_request_size_mb} MB",
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            details={"max_request_size_mb": settings.uploads.max_request_size_mb},
        )

    upload = UploadedFile(
        filename=video.filename or "upload",
        content_type=video.content_type or "application/octet-stream",
        stream=video.file,
        size_bytes=video.size,
    )
    try:
        asset = await service.ingest(
            uploader=uploader,
            upload=upload,
            request=IngestVideoRequest(
                title=title,
                description=description,
                tags=[
                    t.strip() for tag in tags or [] for t in tag.split(",") if t.strip()
                ],
            ),
        )
    finally:
        await video.close()

    return VideoResponse.from_asset(asset)


# =============================================================================
# Listing
# =============================================================================


@router.get(
    "/videos",
    response_model=VideoPage,
    summary="List videos",
    description=(
        "Filter, search, sort, project and paginate the catalog. Supports "
        "tags, search, dateRange, viewsRange, sort, fields, page, limit and "
        "field[gte|lte|eq] filters."
    ),
)
async def list_videos(
    request: Request,
    service: QueryServiceDep,
) -> VideoPage:
    return await service.build_page(_flatten_params(request))


@router.get(
    "/videos/trending",
    response_model=VideoPage,
    summary="Trending videos",
    description="Most viewed videos.",
)
async def trending_videos(service: QueryServiceDep) -> VideoPage:
    return await service.trending()


@router.get(
    "/videos/suggestions",
    response_model=list[SuggestionItem],
    summary="Title suggestions",
    description="Most viewed videos whose title contains the search term.",
)
async def suggest_videos(
    service: CatalogServiceDep,
    search: Annotated[str, Query(description="Search term")] = "",
    limit: Annotated[int | None, Query(ge=1, le=50)] = None,
) -> list[SuggestionItem]:
    return await service.suggestions(search, limit)


@router.get(
    "/videos/tags/{tag}",
    response_model=VideoPage,
    summary="Videos by tag",
)
async def videos_by_tag(
    tag: str,
    service: QueryServiceDep,
    page: Annotated[int, Query(ge=1, description="Page number")] = 1,
    limit: Annotated[int | None, Query(ge=1, description="Items per page")] = None,
) -> VideoPage:
    return await service.by_tag(tag, page=page, limit=limit)


@router.post(
    "/videos/sync-channels",
    response_model=SyncChannelsResponse,
    summary="Repair channel links",
    description=(
        "Re-add every video to its channel's video list. "
        "Restricted to `server.maintainer_ids`."
    ),
)
async def sync_channels(
    _maintainer: MaintainerDep,
    service: CatalogServiceDep,
) -> SyncChannelsResponse:
    return await service.sync_channel_videos()


# =============================================================================
# Single video
# =============================================================================


@router.get(
    "/videos/{video_id}",
    response_model=VideoResponse,
    summary="Get video details",
    description="Fetch a video. Each call counts one view.",
)
async def get_video(
    video_id: str,
    service: CatalogServiceDep,
) -> VideoResponse:
    return VideoResponse.from_asset(await service.get_video(video_id))


@router.patch(
    "/videos/{video_id}",
    response_model=VideoResponse,
    summary="Edit video metadata",
)
async def update_video(
    video_id: str,
    body: UpdateVideoRequest,
    user: CurrentUserDep,
    service: CatalogServiceDep,
) -> VideoResponse:
    updated = await service.update_video(
        video_id,
        user.user_id,
        title=body.title,
        description=body.description,
        tags=body.tags,
    )
    return VideoResponse.from_asset(updated)


@router.delete(
    "/videos/{video_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete video",
    description="Delete a video, its channel link and its stored files.",
)
async def delete_video(
    video_id: str,
    user: CurrentUserDep,
    service: CatalogServiceDep,
) -> None:
    await service.delete_video(video_id, user.user_id)


@router.post(
    "/videos/{video_id}/like",
    response_model=ReactionResponse,
    summary="Toggle like",
)
async def like_video(
    video_id: str,
    user: CurrentUserDep,
    service: CatalogServiceDep,
) -> ReactionResponse:
    return await service.toggle_reaction(video_id, user.user_id, ReactionKind.LIKE)


@router.post(
    "/videos/{video_id}/dislike",
    response_model=ReactionResponse,
    summary="Toggle dislike",
)
async def dislike_video(
    video_id: str,
    user: CurrentUserDep,
    service: CatalogServiceDep,
) -> ReactionResponse:
    return await service.toggle_reaction(video_id, user.user_id, ReactionKind.DISLIKE)
