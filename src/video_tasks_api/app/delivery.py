"""Artifact delivery with single byte-range support.

Supported Range forms (one range per request):
- `bytes=<start>-<end>`  inclusive window; `end` is clamped to size - 1
- `bytes=<start>-`       from `start` to the end of the file
- `bytes=-<n>`           the last `n` bytes
Anything else, or a window that does not overlap the file, is rejected with
InvalidRangeError (416) instead of serving the wrong bytes.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import BinaryIO

from video_tasks_api.storage.base import MetadataStore

from .content import ContentStore
from .errors import ArtifactMissingError, InvalidRangeError, NotFoundError, StorageFailureError

logger = logging.getLogger(__name__)

_RANGE_SPEC = re.compile(r"bytes=(\d*)-(\d*)", re.IGNORECASE)


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, size: int) -> str:
        return f"bytes {self.start}-{self.end}/{size}"


def parse_range(header: str, size: int) -> ByteRange:
    """Resolve a Range header value against a file of `size` bytes."""
    match = _RANGE_SPEC.fullmatch(header.strip().replace(" ", ""))
    if match is None:
        raise InvalidRangeError(f"Malformed or unsupported range: {header!r}", size=size)
    first, last = match.groups()
    if not first and not last:
        raise InvalidRangeError(f"Malformed range: {header!r}", size=size)

    if not first:
        suffix = int(last)
        if suffix == 0 or size == 0:
            raise InvalidRangeError(f"Unsatisfiable range: {header!r}", size=size)
        return ByteRange(start=max(size - suffix, 0), end=size - 1)

    start = int(first)
    end = int(last) if last else size - 1
    if start >= size:
        raise InvalidRangeError(f"Range start {start} is beyond size {size}", size=size)
    if end < start:
        raise InvalidRangeError(f"Range end {end} is before start {start}", size=size)
    return ByteRange(start=start, end=min(end, size - 1))


def iter_window(
    handle: BinaryIO, start: int, length: int, chunk_size: int, *, task_id: str = ""
) -> Iterator[bytes]:
    """Yield `length` bytes from `handle` starting at `start`; closes the handle."""
    try:
        handle.seek(start)
        remaining = length
        while remaining > 0:
            chunk = handle.read(min(chunk_size, remaining))
            if not chunk:
                # File shrank underneath us; stop rather than pad the body.
                logger.error(
                    "delivery event=short_read task_id=%s missing_bytes=%s", task_id, remaining
                )
                break
            remaining -= len(chunk)
            yield chunk
    except OSError as exc:
        logger.error("delivery event=read_failed task_id=%s error=%s", task_id, exc)
        raise
    finally:
        handle.close()


@dataclass
class PreparedDelivery:
    """Everything the HTTP layer needs to stream one response."""

    task_id: str
    handle: BinaryIO
    size: int
    media_type: str
    window: ByteRange | None
    extension: str = ".mp4"

    @property
    def start(self) -> int:
        return self.window.start if self.window else 0

    @property
    def length(self) -> int:
        return self.window.length if self.window else self.size

    @property
    def download_filename(self) -> str:
        return f"generated_video_{self.task_id}{self.extension}"

    def headers(self) -> dict[str, str]:
        headers = {
            "Accept-Ranges": "bytes",
            "Content-Length": str(self.length),
        }
        if self.window is not None:
            headers["Content-Range"] = self.window.content_range(self.size)
        else:
            headers["Content-Disposition"] = f'attachment; filename="{self.download_filename}"'
        return headers

    def body(self, chunk_size: int) -> Iterator[bytes]:
        return iter_window(self.handle, self.start, self.length, chunk_size, task_id=self.task_id)


class DeliveryService:
    def __init__(
        self, *, content: ContentStore, metadata: MetadataStore, extension: str = ".mp4"
    ) -> None:
        self.content = content
        self.metadata = metadata
        self.extension = extension

    def prepare(self, task_id: str, range_header: str | None = None) -> PreparedDelivery:
        record = self.metadata.get(task_id)
        if record is None:
            raise NotFoundError("Video not found")

        try:
            handle, size = self.content.open(record.stored_path)
        except FileNotFoundError as exc:
            logger.error(
                "delivery event=integrity_anomaly task_id=%s reason=blob_missing path=%s",
                task_id,
                record.stored_path,
            )
            raise ArtifactMissingError("Video file not found") from exc
        except OSError as exc:
            raise StorageFailureError(f"Failed to open artifact for task {task_id}") from exc

        window: ByteRange | None = None
        if range_header:
            try:
                window = parse_range(range_header, size)
            except InvalidRangeError:
                handle.close()
                logger.info(
                    "delivery event=range_rejected task_id=%s range=%s size=%s",
                    task_id,
                    range_header,
                    size,
                )
                raise

        logger.info(
            "delivery event=start task_id=%s size=%s start=%s length=%s partial=%s",
            task_id,
            size,
            window.start if window else 0,
            window.length if window else size,
            window is not None,
        )
        return PreparedDelivery(
            task_id=task_id,
            handle=handle,
            size=size,
            media_type=record.media_type,
            window=window,
            extension=self.extension,
        )
