"""Catalog operations on individual videos."""

import asyncio
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from src.application.dtos.query import SuggestionItem
from src.application.dtos.video import ReactionResponse, SyncChannelsResponse
from src.commons.infrastructure.blob.base import BlobStorageBase
from src.commons.infrastructure.documentdb.base import DocumentDBBase
from src.commons.infrastructure.documentdb.predicates import SortField, contains
from src.commons.settings.models import Settings
from src.commons.telemetry import get_logger
from src.domain.exceptions import (
    ChannelNotFoundException,
    ConcurrentModificationError,
    NotChannelOwnerException,
    VideoNotFoundException,
)
from src.domain.models.channel import Channel
from src.domain.models.video import ReactionKind, VideoAsset, validate_video_metadata

_SYNC_BATCH_SIZE = 500


class VideoCatalogService:
    """Reads and mutates catalog records outside the upload pipeline.

    Handles:
    - Reads that count a view
    - Owner edits and deletes (keeping the channel list in step)
    - Like/dislike toggles under optimistic concurrency
    - Title suggestions
    - Repair of missing channel links
    """

    def __init__(
        self,
        blob_storage: BlobStorageBase,
        document_db: DocumentDBBase,
        settings: Settings,
    ) -> None:
        self._blob = blob_storage
        self._doc_db = document_db
        self._logger = get_logger(__name__)

        self._retry_attempts = settings.processing.retry_attempts
        self._suggestion_limit = settings.query.suggestion_limit

        self._videos_collection = settings.document_db.collections.videos
        self._channels_collection = settings.document_db.collections.channels
        self._videos_bucket = settings.blob_storage.buckets.videos
        self._thumbnails_bucket = settings.blob_storage.buckets.thumbnails

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_video(self, video_id: str, *, count_view: bool = True) -> VideoAsset:
        """Fetch a video, atomically counting one view.

        Raises:
            VideoNotFoundException: If the video doesn't exist.
        """
        if count_view:
            doc = await self._doc_db.increment(
                self._videos_collection, video_id, "views", 1
            )
        else:
            doc = await self._doc_db.find_by_id(self._videos_collection, video_id)
        if doc is None:
            raise VideoNotFoundException(video_id)
        return VideoAsset.from_document(doc)

    async def suggestions(
        self,
        search: str,
        limit: int | None = None,
    ) -> list[SuggestionItem]:
        """Most viewed videos whose title contains the term."""
        term = search.strip()
        if not term:
            return []
        docs = await self._doc_db.find(
            self._videos_collection,
            [contains("title", term)],
            limit=limit or self._suggestion_limit,
            sort=[SortField("views", descending=True)],
            fields=["title", "thumbnail_key", "views"],
        )
        return [SuggestionItem.model_validate(doc) for doc in docs]

    # =========================================================================
    # Owner operations
    # =========================================================================

    async def update_video(
        self,
        video_id: str,
        user_id: str,
        *,
        title: str | None = None,
        description: str | None = None,
        tags: list[str] | None = None,
    ) -> VideoAsset:
        """Edit title, description or tags of a video the user owns.

        Raises:
            VideoNotFoundException: If the video doesn't exist.
            NotChannelOwnerException: If the user doesn't own its channel.
            ValidationError: If the merged metadata is invalid.
            ConcurrentModificationError: If concurrent writers keep winning.
        """
        video = await self.get_video(video_id, count_view=False)
        await self._require_owner(video, user_id)

        def mutate(current: VideoAsset) -> dict[str, Any]:
            new_title, new_description, new_tags = validate_video_metadata(
                title if title is not None else current.title,
                description if description is not None else current.description,
                tags if tags is not None else current.tags,
            )
            return {
                "title": new_title,
                "description": new_description,
                "tags": new_tags,
            }

        updated = await self._write_with_revision(video_id, mutate)
        self._logger.info(
            "Video metadata updated",
            extra={"video_id": video_id, "user_id": user_id},
        )
        return updated

    async def delete_video(self, video_id: str, user_id: str) -> None:
        """Delete a video the user owns, its channel link and its blobs.

        The channel link is removed before the record, so a failure part way
        leaves at most an unlinked video, which `sync_channel_videos`
        relinks. Blob deletion is best effort; failures are logged and leave
        the catalog consistent.

        Raises:
            VideoNotFoundException: If the video doesn't exist.
            NotChannelOwnerException: If the user doesn't own its channel.
        """
        video = await self.get_video(video_id, count_view=False)
        await self._require_owner(video, user_id)

        await self._doc_db.pull(
            self._channels_collection, video.channel_id, "videos", video_id
        )
        if not await self._doc_db.delete(self._videos_collection, video_id):
            raise VideoNotFoundException(video_id)

        for bucket, key in (
            (self._videos_bucket, video.file_key),
            (self._thumbnails_bucket, video.thumbnail_key),
        ):
            try:
                await self._blob.delete(bucket, key)
            except Exception as e:
                self._logger.warning(
                    "Failed to delete blob of removed video",
                    extra={"video_id": video_id, "key": key, "error": str(e)},
                )

        self._logger.info(
            "Video deleted",
            extra={"video_id": video_id, "channel_id": video.channel_id},
        )

    # =========================================================================
    # Reactions
    # =========================================================================

    async def toggle_reaction(
        self,
        video_id: str,
        user_id: str,
        reaction: ReactionKind,
    ) -> ReactionResponse:
        """Toggle a like or dislike.

        A user is never in both sets: liking removes a dislike and vice
        versa; repeating the same reaction clears it.

        Raises:
            VideoNotFoundException: If the video doesn't exist.
            ConcurrentModificationError: If concurrent writers keep winning.
        """

        def mutate(current: VideoAsset) -> dict[str, Any]:
            toggled = current.with_reaction(user_id, reaction)
            return {
                "likes": toggled.likes,
                "dislikes": toggled.dislikes,
                "like_count": toggled.like_count,
                "dislike_count": toggled.dislike_count,
            }

        updated = await self._write_with_revision(video_id, mutate)
        return ReactionResponse(
            video_id=video_id,
            reaction=updated.reaction_of(user_id),
            like_count=updated.like_count,
            dislike_count=updated.dislike_count,
        )

    # =========================================================================
    # Maintenance
    # =========================================================================

    async def sync_channel_videos(self) -> SyncChannelsResponse:
        """Re-add every video to its channel's list.

        Repairs records left unlinked by a PartialCommitError. Safe to run
        repeatedly.
        """
        by_channel: dict[str, list[str]] = defaultdict(list)
        scanned = 0
        skip = 0
        while True:
            batch = await self._doc_db.find(
                self._videos_collection,
                skip=skip,
                limit=_SYNC_BATCH_SIZE,
                sort=[SortField("id")],
                fields=["channel_id"],
            )
            for doc in batch:
                by_channel[doc["channel_id"]].append(doc["id"])
            scanned += len(batch)
            if len(batch) < _SYNC_BATCH_SIZE:
                break
            skip += _SYNC_BATCH_SIZE

        added = 0
        missing: list[str] = []
        for channel_id, video_ids in by_channel.items():
            doc = await self._doc_db.find_by_id(self._channels_collection, channel_id)
            if doc is None:
                missing.append(channel_id)
                continue
            channel = Channel.from_document(doc)
            for video_id in video_ids:
                if channel.lists(video_id):
                    continue
                await self._doc_db.add_to_set(
                    self._channels_collection, channel_id, "videos", video_id
                )
                added += 1

        if missing:
            self._logger.warning(
                "Videos reference missing channels",
                extra={"channel_ids": missing},
            )
        self._logger.info(
            "Channel links synchronized",
            extra={"videos_scanned": scanned, "links_added": added},
        )
        return SyncChannelsResponse(
            videos_scanned=scanned,
            links_added=added,
            missing_channels=missing,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _require_owner(self, video: VideoAsset, user_id: str) -> Channel:
        doc = await self._doc_db.find_by_id(self._channels_collection, video.channel_id)
        if doc is None:
            raise ChannelNotFoundException(video.channel_id)
        channel = Channel.from_document(doc)
        if not channel.is_owned_by(user_id):
            raise NotChannelOwnerException(user_id, channel.id)
        return channel

    async def _write_with_revision(
        self,
        video_id: str,
        mutate: Callable[[VideoAsset], dict[str, Any]],
    ) -> VideoAsset:
        """Read-modify-write guarded by the record's revision counter."""
        for attempt in range(1, self._retry_attempts + 1):
            current = await self.get_video(video_id, count_view=False)
            changes = mutate(current)
            if await self._doc_db.update(
                self._videos_collection,
                video_id,
                changes,
                expected_revision=current.revision,
            ):
                return current.model_copy(
                    update={**changes, "revision": current.revision + 1}
                )
            self._logger.debug(
                "Revision conflict, retrying",
                extra={"video_id": video_id, "attempt": attempt},
            )
            # yield so the competing writer can finish
            await asyncio.sleep(0)

        raise ConcurrentModificationError(video_id, self._retry_attempts)
