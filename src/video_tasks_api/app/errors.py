"""Error taxonomy shared by the registry, stores, ingestor, and delivery path.

Every domain error carries:
- status_code: HTTP status used when the error reaches the API boundary.
- code: short machine-readable identifier rendered as `error` in the body.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class VideoTaskError(Exception):
    """Base class for errors that map onto one HTTP response."""

    status_code = 500
    code = "internal_error"

    def __init__(self, detail: str, *, headers: dict[str, str] | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.headers = headers or {}


class InvalidRequestError(VideoTaskError):
    status_code = 400
    code = "invalid_request"


class NotFoundError(VideoTaskError):
    status_code = 404
    code = "not_found"


class TaskNotFoundError(NotFoundError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class ArtifactMissingError(NotFoundError):
    """Metadata references a blob that is no longer in content storage."""

    code = "artifact_missing"


class UnsupportedMediaTypeError(VideoTaskError):
    status_code = 415
    code = "unsupported_media_type"


class ArtifactTooLargeError(VideoTaskError):
    status_code = 413
    code = "artifact_too_large"


class InvalidRangeError(VideoTaskError):
    status_code = 416
    code = "invalid_range"

    def __init__(self, detail: str, *, size: int) -> None:
        super().__init__(detail, headers={"Content-Range": f"bytes */{size}"})
        self.size = size


class StorageFailureError(VideoTaskError):
    status_code = 500
    code = "storage_failure"


class UploadLimitExceededError(HTTPException):
    """Raised from the body receive channel once a request body passes its cap.

    An HTTPException subclass, because FastAPI re-raises those from body
    parsing instead of turning them into a generic 400.
    """

    code = ArtifactTooLargeError.code

    def __init__(self, max_bytes: int) -> None:
        super().__init__(
            status_code=ArtifactTooLargeError.status_code,
            detail=f"Artifact exceeds the {max_bytes} byte limit",
        )
        self.max_bytes = max_bytes


def error_body(code: str, detail: str) -> dict[str, str]:
    return {"error": code, "detail": detail}


def register_error_handlers(app: FastAPI) -> None:
    """Render domain errors and request validation errors as JSON bodies."""

    @app.exception_handler(VideoTaskError)
    def handle_video_task_error(request: Request, exc: VideoTaskError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "request_failed method=%s path=%s code=%s detail=%s",
                request.method,
                request.url.path,
                exc.code,
                exc.detail,
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.code, exc.detail),
            headers=exc.headers,
        )

    @app.exception_handler(UploadLimitExceededError)
    def handle_upload_limit(request: Request, exc: UploadLimitExceededError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.code, exc.detail))

    # Body/form validation failures are client errors under the same contract.
    @app.exception_handler(RequestValidationError)
    def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        messages = []
        for item in exc.errors():
            location = ".".join(str(part) for part in item.get("loc", ()) if part != "body")
            messages.append(f"{location}: {item.get('msg', 'invalid value')}")
        return JSONResponse(
            status_code=InvalidRequestError.status_code,
            content=error_body(InvalidRequestError.code, "; ".join(messages) or "Invalid request"),
        )
