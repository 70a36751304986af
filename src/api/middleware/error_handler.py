"""Error handling middleware and exception handlers."""

from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import RequestResponseEndpoint
from starlette.responses import Response

from src.commons.telemetry.logger import get_logger
from src.domain.exceptions import (
    ChannelNotFoundException,
    ConcurrentModificationError,
    DomainException,
    IngestionError,
    InvalidParameterError,
    NotChannelOwnerException,
    PartialCommitError,
    PersistenceError,
    TranscodeError,
    ValidationError,
    VideoNotFoundException,
)

logger = get_logger(__name__)

# Most specific first; the first isinstance match wins
_INGESTION_STATUS: tuple[tuple[type[IngestionError], int], ...] = (
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (TranscodeError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (PersistenceError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (PartialCommitError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


class APIError(Exception):
    """Base API error with code and details."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize API error.

        Args:
            code: Error code for clients.
            message: Human-readable error message.
            status_code: HTTP status code.
            details: Additional error details.
        """
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


def _build_error_response(
    request: Request,
    code: str,
    message: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Build standardized error response."""
    request_id = getattr(request.state, "request_id", "unknown")

    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "details": details or {},
                "request_id": request_id,
            }
        },
    )


def _handle_ingestion_error(request: Request, exc: IngestionError) -> JSONResponse:
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, mapped in _INGESTION_STATUS:
        if isinstance(exc, error_type):
            status_code = mapped
            break

    details = {**exc.details, "stage": exc.stage, "retry_safe": exc.retry_safe}
    extra = {"error_code": exc.code, "stage": exc.stage, "retry_safe": exc.retry_safe}
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(f"Upload failed: {exc}", extra=extra)
    else:
        logger.warning(f"Upload rejected: {exc}", extra=extra)

    return _build_error_response(
        request=request,
        code=exc.code,
        message=exc.message,
        status_code=status_code,
        details=details,
    )


def _handle_exception(  # noqa: PLR0911
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle exception and return appropriate error response.

    Args:
        request: HTTP request.
        exc: Exception to handle.

    Returns:
        JSON error response.
    """
    if isinstance(exc, APIError):
        logger.warning(
            f"API error: {exc.code}",
            extra={
                "error_code": exc.code,
                "error_message": exc.message,
                "details": exc.details,
            },
        )
        return _build_error_response(
            request=request,
            code=exc.code,
            message=exc.message,
            status_code=exc.status_code,
            details=exc.details,
        )

    if isinstance(exc, IngestionError):
        return _handle_ingestion_error(request, exc)

    if isinstance(exc, InvalidParameterError):
        logger.warning(f"Invalid parameter: {exc}")
        return _build_error_response(
            request=request,
            code="INVALID_PARAMETER",
            message=str(exc),
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"parameter": exc.parameter, "reason": exc.reason},
        )

    if isinstance(exc, NotChannelOwnerException):
        logger.warning(f"Ownership check failed: {exc}")
        return _build_error_response(
            request=request,
            code="NOT_CHANNEL_OWNER",
            message=str(exc),
            status_code=status.HTTP_403_FORBIDDEN,
            details={"channel_id": exc.channel_id},
        )

    if isinstance(exc, VideoNotFoundException):
        logger.warning(f"Video not found: {exc}")
        return _build_error_response(
            request=request,
            code="VIDEO_NOT_FOUND",
            message=str(exc),
            status_code=status.HTTP_404_NOT_FOUND,
            details={"video_id": exc.video_id},
        )

    if isinstance(exc, ChannelNotFoundException):
        logger.warning(f"Channel not found: {exc}")
        return _build_error_response(
            request=request,
            code="CHANNEL_NOT_FOUND",
            message=str(exc),
            status_code=status.HTTP_404_NOT_FOUND,
            details={"channel_id": exc.channel_id},
        )

    if isinstance(exc, ConcurrentModificationError):
        logger.warning(f"Write conflict: {exc}")
        return _build_error_response(
            request=request,
            code="CONCURRENT_MODIFICATION",
            message=str(exc),
            status_code=status.HTTP_409_CONFLICT,
            details={"video_id": exc.video_id, "attempts": exc.attempts},
        )

    if isinstance(exc, DomainException):
        logger.warning(f"Domain error: {exc}")
        return _build_error_response(
            request=request,
            code="DOMAIN_ERROR",
            message=str(exc),
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    # Catch-all for unexpected errors
    logger.exception(f"Unexpected error: {exc}")
    return _build_error_response(
        request=request,
        code="INTERNAL_ERROR",
        message="An unexpected error occurred",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


async def error_handler_middleware(
    request: Request,
    call_next: RequestResponseEndpoint,
) -> Response:
    """Middleware to catch and format all exceptions."""
    try:
        return await call_next(request)
    except Exception as exc:
        return _handle_exception(request, exc)
