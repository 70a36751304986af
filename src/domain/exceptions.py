"""Domain exceptions for the video catalog."""

from __future__ import annotations

from typing import Any


class DomainException(Exception):
    """Base exception for domain errors."""


# =============================================================================
# Ingestion
# =============================================================================


class IngestionError(DomainException):
    """Base class for upload pipeline failures.

    Attributes:
        code: Stable machine-readable error kind.
        stage: Pipeline stage that failed (an UploadStage value or "validation").
        retry_safe: Whether the caller may resubmit the same upload without
            risking a duplicate catalog record.
    """

    code = "INGESTION_ERROR"
    retry_safe = True

    def __init__(
        self,
        message: str,
        *,
        stage: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.stage = stage
        self.details = details or {}
        super().__init__(message)


class ValidationError(IngestionError):
    """Upload rejected before any I/O (metadata, file type or size)."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.field = field
        merged = dict(details or {})
        if field:
            merged.setdefault("field", field)
        super().__init__(message, stage="validation", details=merged)


class TranscodeError(IngestionError):
    """The external encoder failed; no catalog write happened."""

    code = "TRANSCODE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        stage: str = "transcoding",
        stderr: str | None = None,
        return_code: int | None = None,
    ) -> None:
        self.stderr = stderr
        self.return_code = return_code
        details: dict[str, Any] = {}
        if return_code is not None:
            details["return_code"] = return_code
        if stderr:
            # Encoder logs are long; the tail carries the actual error
            details["tool_output"] = stderr[-2000:]
        super().__init__(message, stage=stage, details=details)


class PersistenceError(IngestionError):
    """Blob or catalog write failed after a successful transcode.

    Already-written artifacts have been deleted when this is raised.
    """

    code = "PERSISTENCE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        stage: str = "persisting",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, stage=stage, details=details)


class PartialCommitError(IngestionError):
    """Catalog record created but the channel back-reference is missing.

    The record is visible to readers. Resubmitting the upload would create
    a duplicate; repair the link instead.
    """

    code = "PARTIAL_COMMIT"
    retry_safe = False

    def __init__(self, video_id: str, channel_id: str, reason: str) -> None:
        self.video_id = video_id
        self.channel_id = channel_id
        self.reason = reason
        super().__init__(
            f"Video {video_id} was saved but could not be linked to "
            f"channel {channel_id}: {reason}",
            stage="linking",
            details={"video_id": video_id, "channel_id": channel_id},
        )


# =============================================================================
# Catalog
# =============================================================================


class InvalidParameterError(DomainException):
    """A list/query parameter could not be parsed."""

    def __init__(self, parameter: str, value: Any, reason: str) -> None:
        self.parameter = parameter
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid value for '{parameter}': {reason}")


class VideoNotFoundException(DomainException):
    """Raised when a requested video is not found."""

    def __init__(self, video_id: str) -> None:
        self.video_id = video_id
        super().__init__(f"Video not found: {video_id}")


class ChannelNotFoundException(DomainException):
    """Raised when a referenced channel does not exist."""

    def __init__(self, channel_id: str) -> None:
        self.channel_id = channel_id
        super().__init__(f"Channel not found: {channel_id}")


class NotChannelOwnerException(DomainException):
    """Raised when a user acts on a channel they don't own."""

    def __init__(self, user_id: str, channel_id: str) -> None:
        self.user_id = user_id
        self.channel_id = channel_id
        super().__init__(f"User {user_id} does not own channel {channel_id}")


class ConcurrentModificationError(DomainException):
    """Optimistic write lost against concurrent writers too many times."""

    def __init__(self, video_id: str, attempts: int) -> None:
        self.video_id = video_id
        self.attempts = attempts
        super().__init__(
            f"Video {video_id} changed concurrently; gave up after {attempts} attempts"
        )
