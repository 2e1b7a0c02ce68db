"""FastAPI application wiring for the video task service.

Beginner terms used in this file:
- FastAPI app: the main web application object.
- Route/path operation: a function exposed over HTTP (for example, GET /health).
- Sync route: a plain `def` handler; FastAPI runs it in a worker thread, so a
  slow upload or download only occupies that thread.
- app.state: a place to store shared runtime objects (registry, stores, services).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, File, Form, Header, UploadFile
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from .app.content import ContentStore
from .app.delivery import DeliveryService
from .app.errors import TaskNotFoundError, register_error_handlers
from .app.ingest import CallbackIngestor, CallbackUpload
from .app.limits import BodySizeLimitMiddleware
from .app.models import CallbackResponse, CreateTaskRequest, Task, VideoStatus
from .app.registry import TaskRegistry
from .app.status import video_status
from .config.settings import Settings, get_settings
from .storage.base import MetadataStore
from .storage.files import FileMetadataStore
from .storage.postgres import PostgresMetadataStore

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/api/video-callback"
# Multipart framing and text fields on top of the artifact itself.
MULTIPART_OVERHEAD_BYTES = 64 * 1024


def build_metadata_store(settings: Settings) -> MetadataStore:
    """Pick the metadata backend named by settings; fail fast on missing config."""
    if settings.metadata_backend == "postgres":
        database_url = settings.resolved_database_url()
        if not database_url:
            raise RuntimeError(
                "Missing database URL. Set VIDEO_TASKS_DATABASE_URL or DATABASE_URL "
                "when VIDEO_TASKS_METADATA_BACKEND=postgres."
            )
        return PostgresMetadataStore(database_url)
    return FileMetadataStore(settings.metadata_root)


def create_app(
    *,
    metadata_store: MetadataStore | None = None,
    settings_override: Settings | None = None,
) -> FastAPI:
    """Application factory.

    Each call builds a fresh registry and fresh services, which keeps tests
    isolated from each other.
    """
    settings = settings_override or get_settings()
    metadata = metadata_store or build_metadata_store(settings)
    content = ContentStore(
        settings.content_root,
        max_bytes=settings.max_upload_bytes,
        chunk_size=settings.chunk_size,
        extension=settings.artifact_extension,
    )
    registry = TaskRegistry()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.getLogger("video_tasks_api").setLevel(settings.log_level.upper())
        # Ensure directories/tables exist before serving requests.
        app.state.metadata.migrate()
        app.state.content.migrate()
        logger.info(
            "startup app=%s metadata_backend=%s content_root=%s",
            settings.app_name,
            type(app.state.metadata).__name__,
            content.root,
        )
        yield

    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
    register_error_handlers(app)

    # Shared objects live in app.state so route handlers and tests can reach them.
    app.state.settings = settings
    app.state.registry = registry
    app.state.metadata = metadata
    app.state.content = content
    app.state.ingestor = CallbackIngestor(
        content=content,
        metadata=metadata,
        registry=registry,
        media_type=settings.artifact_media_type,
    )
    app.state.delivery = DeliveryService(
        content=content, metadata=metadata, extension=settings.artifact_extension
    )

    # Applied to the raw body stream, so chunked uploads are capped too.
    app.add_middleware(
        BodySizeLimitMiddleware,
        path=CALLBACK_PATH,
        max_upload_bytes=settings.max_upload_bytes,
        overhead_bytes=MULTIPART_OVERHEAD_BYTES,
    )

    @app.get("/health")
    @app.get("/healthz")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.post("/tasks", response_model=Task, status_code=201)
    def create_task(payload: CreateTaskRequest) -> Task:
        # Completion arrives later through the callback endpoint.
        return app.state.registry.create(payload.script, payload.search_query)

    @app.get("/tasks/{task_id}", response_model=Task)
    def get_task(task_id: str) -> Task:
        task = app.state.registry.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    @app.post(CALLBACK_PATH, response_model=CallbackResponse)
    def video_callback(
        video: list[UploadFile] | None = File(default=None),
        task_id: str | None = Form(default=None),
        status: str | None = Form(default=None),
        duration: str | None = Form(default=None),
        message: str | None = Form(default=None),
    ) -> CallbackResponse:
        uploads = [
            CallbackUpload(stream=item.file, media_type=item.content_type, filename=item.filename)
            for item in (video or [])
        ]
        record = app.state.ingestor.ingest(
            uploads=uploads,
            task_id=task_id,
            status=status,
            duration=duration,
            message=message,
        )
        return CallbackResponse(
            success=True,
            message="Video received and stored successfully",
            download_url=record.download_url,
        )

    @app.get("/api/video/{task_id}")
    def get_video(
        task_id: str,
        range_header: str | None = Header(default=None, alias="range"),
    ) -> StreamingResponse:
        delivery = app.state.delivery.prepare(task_id, range_header)
        return StreamingResponse(
            delivery.body(settings.chunk_size),
            status_code=206 if delivery.window is not None else 200,
            media_type=delivery.media_type,
            headers=delivery.headers(),
            # Runs after the body is sent or the client goes away.
            background=BackgroundTask(delivery.handle.close),
        )

    @app.get("/api/video-status/{task_id}", response_model=VideoStatus)
    def get_video_status(task_id: str) -> VideoStatus:
        return video_status(task_id, registry=app.state.registry, metadata=app.state.metadata)

    return app


# Module-level app for `uvicorn video_tasks_api.main:app`.
app = create_app()
