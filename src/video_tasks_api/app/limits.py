"""Request body size cap for the callback upload path.

Starlette spools multipart uploads to temporary files before a route runs, so
the cap has to be applied to the raw ASGI receive channel. A declared
Content-Length over the cap is rejected up front; chunked bodies are counted
as they arrive.
"""

from __future__ import annotations

import logging

from fastapi.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .errors import UploadLimitExceededError, error_body

logger = logging.getLogger(__name__)


def _declared_length(scope: Scope) -> int | None:
    for name, value in scope.get("headers", ()):
        if name == b"content-length":
            text = value.decode("latin-1").strip()
            return int(text) if text.isdigit() else None
    return None


class BodySizeLimitMiddleware:
    """Cap POST bodies sent to `path` at `max_upload_bytes + overhead_bytes`."""

    def __init__(
        self, app: ASGIApp, *, path: str, max_upload_bytes: int, overhead_bytes: int = 0
    ) -> None:
        self.app = app
        self.path = path
        self.max_upload_bytes = max_upload_bytes
        self.limit = max_upload_bytes + overhead_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] != "POST" or scope["path"] != self.path:
            await self.app(scope, receive, send)
            return

        declared = _declared_length(scope)
        if declared is not None and declared > self.limit:
            logger.warning("callback event=rejected reason=too_large content_length=%s", declared)
            await self._reject(scope, receive, send)
            return

        received = 0
        response_started = False

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.limit:
                    logger.warning(
                        "callback event=rejected reason=too_large received_bytes=%s", received
                    )
                    raise UploadLimitExceededError(self.max_upload_bytes)
            return message

        async def tracked_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, tracked_send)
        except UploadLimitExceededError:
            # Normally rendered by the app's handler; this covers reads outside a route.
            if response_started:
                raise
            await self._reject(scope, receive, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send) -> None:
        error = UploadLimitExceededError(self.max_upload_bytes)
        response = JSONResponse(
            status_code=error.status_code,
            content=error_body(error.code, error.detail),
            headers={"Connection": "close"},
        )
        await response(scope, receive, send)
