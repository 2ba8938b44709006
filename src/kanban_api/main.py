"""FastAPI application wiring for the kanban board.

Beginner terms used in this file:
- FastAPI app: the main web application object.
- Lifespan: code run once at startup (before serving) and once at shutdown.
- app.state: a place to store shared runtime objects (repositories, service).
- Exception handler: turns a core error kind into an HTTP status code.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .app.blobs import BlobStore, LocalBlobStore
from .app.board import BoardService
from .app.errors import BoardError, InvalidReference, NotFound, StorageError, ValidationError
from .app.memory import InMemoryColumnRepository, InMemoryTaskRepository
from .app.models import (
    Column,
    ColumnCreatedResponse,
    CreateColumnRequest,
    CreateTaskRequest,
    TaskListItem,
    TaskMessageResponse,
    TaskMetadata,
    TaskResponse,
    UploadedFile,
)
from .app.settings import Settings, get_settings
from .app.storage import (
    ColumnRepository,
    PostgresColumnRepository,
    PostgresDatabase,
    PostgresTaskRepository,
    TaskRepository,
)

logger = logging.getLogger(__name__)

UPLOADS_MOUNT = "uploads"

_STATUS_BY_ERROR: dict[type[BoardError], int] = {
    ValidationError: 400,
    InvalidReference: 400,
    NotFound: 404,
    StorageError: 500,
}

_METADATA_FIELDS = set(TaskMetadata.model_fields)


def create_app(
    *,
    columns: ColumnRepository | None = None,
    tasks: TaskRepository | None = None,
    blobs: BlobStore | None = None,
    settings_override: Settings | None = None,
) -> FastAPI:
    """Application factory.

    Repositories and the blob store can be injected (tests do this); anything
    not injected is built from settings when the app starts.
    """
    settings = settings_override or get_settings()
    _configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure_runtime_state(app, settings=settings, columns=columns, tasks=tasks, blobs=blobs)
        logger.info("app event=startup backend=%s", settings.storage_backend)
        yield
        database = getattr(app.state, "database", None)
        if database is not None:
            database.close()
        logger.info("app event=shutdown")

    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    request_logger = logging.getLogger("kanban_api.http")

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.time()
        status = "ERR"
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        except Exception:
            request_logger.exception(
                "request_failed method=%s path=%s", request.method, request.url.path
            )
            raise
        finally:
            request_logger.info(
                "request method=%s path=%s status=%s duration_ms=%s",
                request.method,
                request.url.path,
                status,
                int((time.time() - start) * 1000),
            )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BoardError)
    async def board_error_handler(request: Request, exc: BoardError) -> JSONResponse:
        status_code = _status_for(exc)
        logger.info(
            "board_error kind=%s status=%s path=%s detail=%s",
            type(exc).__name__,
            status_code,
            request.url.path,
            exc,
        )
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    # The directory may not exist yet at import time; startup creates it.
    app.mount(
        f"/{UPLOADS_MOUNT}",
        StaticFiles(directory=settings.upload_dir, check_dir=False),
        name=UPLOADS_MOUNT,
    )

    def _get_board(request: Request) -> BoardService:
        if not hasattr(request.app.state, "board"):
            _ensure_runtime_state(
                request.app, settings=settings, columns=columns, tasks=tasks, blobs=blobs
            )
        return request.app.state.board

    # Multiple health endpoints map to the same function for compatibility with
    # different probes/load balancers.
    @app.get("/health")
    @app.get("/healthz")
    @app.get("/live")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/columns", status_code=201, response_model=ColumnCreatedResponse)
    def create_column(payload: CreateColumnRequest, request: Request) -> ColumnCreatedResponse:
        column = _get_board(request).create_column(payload.name, payload.color)
        return ColumnCreatedResponse(message="Column created successfully", column=column)

    @app.get("/api/columns", response_model=list[Column])
    def list_columns(request: Request) -> list[Column]:
        return _get_board(request).list_columns()

    @app.post("/api/tasks", status_code=201, response_model=TaskMessageResponse)
    def create_task(payload: CreateTaskRequest, request: Request) -> TaskMessageResponse:
        metadata = TaskMetadata.model_validate(payload.model_dump(include=_METADATA_FIELDS))
        task = _get_board(request).create_task(payload.column_id, payload.content, metadata)
        return TaskMessageResponse(message="Task created successfully", task=task)

    @app.get("/api/tasks", response_model=list[TaskListItem])
    def list_tasks(request: Request) -> list[TaskListItem]:
        return [
            TaskListItem(
                **task.model_dump(exclude={"created_at"}),
                created_at=format_list_date(task.created_at),
            )
            for task in _get_board(request).list_tasks()
        ]

    @app.get("/api/tasks/{task_id}", response_model=TaskResponse)
    def get_task(task_id: str, request: Request) -> TaskResponse:
        return TaskResponse(task=_get_board(request).get_task(task_id))

    @app.put("/api/tasks/{task_id}/column/{column_id}", response_model=TaskMessageResponse)
    def move_task(task_id: str, column_id: str, request: Request) -> TaskMessageResponse:
        task = _get_board(request).move_task(task_id, column_id)
        return TaskMessageResponse(message="Task column updated successfully", task=task)

    @app.post("/api/tasks/{task_id}/upload", response_model=TaskMessageResponse)
    def upload_files(
        task_id: str,
        request: Request,
        files: list[UploadFile] | None = File(default=None),
    ) -> TaskMessageResponse:
        uploads = [
            UploadedFile(
                data=read_upload_bytes(upload, settings.max_upload_bytes),
                original_name=upload.filename or "file",
                mime_type=upload.content_type or "application/octet-stream",
            )
            for upload in files or []
        ]
        task = _get_board(request).upload_files(task_id, uploads)
        return TaskMessageResponse(message="Files uploaded successfully", task=task)

    @app.delete(
        "/api/tasks/{task_id}/file/{file_id}/{file_name}",
        response_model=TaskMessageResponse,
    )
    def delete_file(
        task_id: str, file_id: str, file_name: str, request: Request
    ) -> TaskMessageResponse:
        task = _get_board(request).delete_file(task_id, file_id, file_name)
        return TaskMessageResponse(message="File deleted successfully", task=task)

    return app


def read_upload_bytes(upload: UploadFile, limit: int) -> bytes:
    """Read an upload body, stopping one byte past `limit` (0 reads everything).

    The extra byte is enough for the board to reject an oversized file.
    """
    if limit:
        return upload.file.read(limit + 1)
    return upload.file.read()


def format_list_date(value: datetime) -> str:
    """Render a timestamp like JavaScript's `toLocaleDateString("en-US")`.

    Timestamps are stored in UTC and shown in the server's local timezone.
    """
    local = value.astimezone()
    return f"{local.month}/{local.day}/{local.year}"


def _status_for(exc: BoardError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    columns: ColumnRepository | None,
    tasks: TaskRepository | None,
    blobs: BlobStore | None,
) -> None:
    """Build repositories, blob store and service once, before first use."""
    if hasattr(app.state, "board"):
        return

    if columns is None or tasks is None:
        if settings.storage_backend == "memory":
            columns = columns or InMemoryColumnRepository()
            tasks = tasks or InMemoryTaskRepository()
        else:
            database_url = settings.resolved_database_url()
            if not database_url:
                raise RuntimeError(
                    "Missing database URL. Set KANBAN_DATABASE_URL "
                    "or DATABASE_URL before starting the app."
                )
            database = PostgresDatabase(database_url)
            # Ensure schema exists before serving requests.
            database.migrate()
            app.state.database = database
            columns = columns or PostgresColumnRepository(database)
            tasks = tasks or PostgresTaskRepository(database)

    if blobs is None:
        local_store = LocalBlobStore(settings.upload_dir, url_prefix=UPLOADS_MOUNT)
        local_store.ensure_root()
        blobs = local_store
    else:
        # StaticFiles serves from upload_dir even when blobs are injected.
        settings.upload_dir.mkdir(parents=True, exist_ok=True)

    app.state.columns = columns
    app.state.tasks = tasks
    app.state.blobs = blobs
    app.state.board = BoardService(
        columns=columns,
        tasks=tasks,
        blobs=blobs,
        max_upload_bytes=settings.max_upload_bytes,
    )


def _configure_logging(settings: Settings) -> None:
    """Configure root logging once; later calls leave existing handlers alone."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


# Module-level app for `uvicorn kanban_api.main:app`.
app = create_app()
