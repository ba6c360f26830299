from datetime import UTC, datetime
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse

from imgjobs.config.logging import get_logger

logger = get_logger(__name__)


class ImgJobsError(Exception):
    """Base exception for the image job worker."""

    retriable: bool = True

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class MalformedMessageError(ImgJobsError):
    """Raised when a queue message cannot be turned into a job.

    Never retried: the message is deleted at intake so it cannot loop forever.
    """

    retriable = False


class QueueError(ImgJobsError):
    """Raised when the message queue cannot be reached or rejects a call."""


class StorageError(ImgJobsError):
    """Raised when a blob store call fails."""


class ObjectNotFoundError(StorageError):
    """Raised when the requested object does not exist in the bucket."""


class MetadataError(ImgJobsError):
    """Raised when the metadata store cannot be queried or updated."""


class EncoderError(ImgJobsError):
    """Raised when source bytes cannot be decoded or re-encoded as an image."""


class CleanupFailureError(ImgJobsError):
    """Raised when aborting a job fails to remove its source or its message.

    Fatal: the worker halts instead of letting the job be redelivered forever.
    """

    retriable = False


def create_error_response(
    status_code: int,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Create standardized error response envelope."""
    return {
        "ok": False,
        "error": {
            "message": message,
            "code": status_code,
            "details": details or {},
        },
        "timestamp": datetime.now(UTC).isoformat(),
    }


def create_success_response(data: Any, message: str | None = None) -> dict[str, Any]:
    """Create standardized success response envelope."""
    return {
        "ok": True,
        "data": data,
        "message": message,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "Unhandled exception",
        exception=exc.__class__.__name__,
        message=str(exc),
        path=request.url.path,
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=create_error_response(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message="Internal server error",
        ),
    )
