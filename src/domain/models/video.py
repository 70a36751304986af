"""Video catalog domain model."""

from collections.abc import Iterable
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Self
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.domain.exceptions import ValidationError

TITLE_MIN_LENGTH = 10
TITLE_MAX_LENGTH = 50
DESCRIPTION_MAX_LENGTH = 500
MAX_TAGS = 5


class VideoTag(str, Enum):
    """Closed tag vocabulary. Values are case-sensitive."""

    TECHNOLOGY = "Technology"
    EDUCATION = "Education"
    ENTERTAINMENT = "Entertainment"
    MUSIC = "Music"
    GAMING = "Gaming"
    NEWS = "News"
    SPORTS = "Sports"
    COMEDY = "Comedy"
    FILM = "Film"
    SCIENCE = "Science"

    @classmethod
    def values(cls) -> list[str]:
        return [tag.value for tag in cls]


class ReactionKind(str, Enum):
    """Viewer reaction on a video."""

    LIKE = "like"
    DISLIKE = "dislike"


def _normalize_title(title: str) -> str:
    title = title.strip()
    if not TITLE_MIN_LENGTH <= len(title) <= TITLE_MAX_LENGTH:
        raise ValueError(
            f"Title must be between {TITLE_MIN_LENGTH} and {TITLE_MAX_LENGTH} "
            f"characters, got {len(title)}"
        )
    return title


def _normalize_description(description: str) -> str:
    description = description.strip()
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValueError(
            f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters, "
            f"got {len(description)}"
        )
    return description


def _normalize_tags(tags: Iterable[str]) -> list[str]:
    tags = [t.value if isinstance(t, VideoTag) else str(t).strip() for t in tags]
    unknown = [t for t in tags if t not in VideoTag.values()]
    if unknown:
        raise ValueError(
            f"Unknown tags {unknown}; allowed: {', '.join(VideoTag.values())}"
        )
    if len(set(tags)) != len(tags):
        raise ValueError("Tags must not repeat")
    if len(tags) > MAX_TAGS:
        raise ValueError(f"At most {MAX_TAGS} tags are allowed, got {len(tags)}")
    return tags


def validate_video_metadata(
    title: str,
    description: str | None,
    tags: Iterable[str] | None,
) -> tuple[str, str, list[str]]:
    """Check upload metadata without touching any storage.

    Returns:
        The normalized (title, description, tags).

    Raises:
        ValidationError: Naming the first offending field.
    """
    try:
        clean_title = _normalize_title(title or "")
    except ValueError as e:
        raise ValidationError(str(e), field="title") from e
    try:
        clean_description = _normalize_description(description or "")
    except ValueError as e:
        raise ValidationError(str(e), field="description") from e
    try:
        clean_tags = _normalize_tags(tags or [])
    except ValueError as e:
        raise ValidationError(
            str(e), field="tags", details={"allowed": VideoTag.values()}
        ) from e
    return clean_title, clean_description, clean_tags


class VideoAsset(BaseModel):
    """Catalog record for one uploaded, transcoded video.

    ``likes`` and ``dislikes`` are user-id sets stored as lists; the model
    refuses any state where a user appears in both. ``like_count`` and
    ``dislike_count`` mirror their sizes so the catalog can sort on them.
    """

    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Opaque video identifier",
    )
    title: str = Field(description="Display title, 10-50 characters")
    description: str = Field(default="", description="Up to 500 characters")
    tags: list[VideoTag] = Field(
        default_factory=list,
        description="Up to 5 tags from the closed vocabulary",
    )
    channel_id: str = Field(description="Owning channel")
    file_key: str = Field(description="Blob key of the playable video")
    thumbnail_key: str = Field(description="Blob key of the thumbnail image")
    duration_seconds: float = Field(default=0.0, ge=0)
    content_sha256: str | None = Field(
        default=None,
        description="Digest of the original upload",
    )
    views: int = Field(default=0, ge=0)
    likes: list[str] = Field(default_factory=list)
    dislikes: list[str] = Field(default_factory=list)
    like_count: int = Field(default=0, ge=0)
    dislike_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    revision: int = Field(default=0, ge=0, description="Optimistic lock counter")

    @field_validator("title")
    @classmethod
    def _check_title(cls, value: str) -> str:
        return _normalize_title(value)

    @field_validator("description")
    @classmethod
    def _check_description(cls, value: str) -> str:
        return _normalize_description(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _check_tags(cls, value: Any) -> Any:
        if isinstance(value, list | tuple):
            return _normalize_tags(value)
        return value

    @model_validator(mode="after")
    def _check_reactions(self) -> Self:
        likes = list(dict.fromkeys(self.likes))
        dislikes = list(dict.fromkeys(self.dislikes))
        overlap = set(likes) & set(dislikes)
        if overlap:
            raise ValueError(f"Users both like and dislike: {sorted(overlap)}")
        self.likes = likes
        self.dislikes = dislikes
        self.like_count = len(likes)
        self.dislike_count = len(dislikes)
        return self

    def with_reaction(self, user_id: str, reaction: ReactionKind) -> Self:
        """Toggle a user's reaction.

        Reacting the same way twice removes the reaction; switching moves
        the user from one set to the other.

        Returns:
            A new VideoAsset with updated sets and counts.
        """
        likes = [u for u in self.likes if u != user_id]
        dislikes = [u for u in self.dislikes if u != user_id]

        if reaction == ReactionKind.LIKE and user_id not in self.likes:
            likes.append(user_id)
        elif reaction == ReactionKind.DISLIKE and user_id not in self.dislikes:
            dislikes.append(user_id)

        return self.model_copy(
            update={
                "likes": likes,
                "dislikes": dislikes,
                "like_count": len(likes),
                "dislike_count": len(dislikes),
            }
        )

    def reaction_of(self, user_id: str) -> ReactionKind | None:
        if user_id in self.likes:
            return ReactionKind.LIKE
        if user_id in self.dislikes:
            return ReactionKind.DISLIKE
        return None

    def to_document(self) -> dict[str, Any]:
        """Serialize for the document store, keeping native datetimes."""
        return self.model_dump()

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> Self:
        doc = {k: v for k, v in document.items() if k != "_id"}
        return cls.model_validate(doc)
