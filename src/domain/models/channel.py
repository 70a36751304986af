"""Channel domain model."""

from datetime import UTC, datetime
from typing import Any, Self
from uuid import uuid4

from pydantic import BaseModel, Field


class Channel(BaseModel):
    """A user's channel, the exclusive owner of its videos.

    Channels are created elsewhere; the catalog only reads them and keeps
    the ``videos`` back-reference list in step with video records.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(description="Display name")
    owner_id: str = Field(description="User who owns the channel")
    description: str = ""
    videos: list[str] = Field(
        default_factory=list,
        description="IDs of videos published on this channel",
    )
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def is_owned_by(self, user_id: str) -> bool:
        return self.owner_id == user_id

    def lists(self, video_id: str) -> bool:
        return video_id in self.videos

    def to_document(self) -> dict[str, Any]:
        return self.model_dump()

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> Self:
        return cls.model_validate(document)
