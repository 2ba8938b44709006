"""Pydantic models shared across the API, the board service and storage.

Core records (Column, Task, Attachment) are what repositories return. The
request/response models at the bottom only shape the HTTP boundary.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field


class Column(BaseModel):
    """A named, coloured bucket that groups tasks."""

    id: str
    name: str
    color: str | None = None


class Attachment(BaseModel):
    """Metadata for one uploaded file; the bytes live in the blob store."""

    id: str
    task_id: str
    # Path under which the blob store keeps (and the API serves) the bytes.
    storage_path: str
    mime_type: str
    size_bytes: int
    original_name: str


class TaskMetadata(BaseModel):
    """Optional participant fields carried by a task."""

    client_photo: str | None = None
    client_name: str | None = None
    assignee_photo: str | None = None
    assignee_name: str | None = None


class Task(TaskMetadata):
    """Canonical task record returned by repositories and the API."""

    id: str
    column_id: str
    content: str
    created_at: datetime
    files: list[Attachment] = Field(default_factory=list)


class UploadedFile(BaseModel):
    """Raw upload handed to the board service by the HTTP layer."""

    data: bytes
    original_name: str
    mime_type: str = "application/octet-stream"


class CreateColumnRequest(BaseModel):
    """Request body for POST /api/columns.

    Fields are optional here so the board service, not the parser, reports a
    missing name.
    """

    name: str | None = None
    color: str | None = None


class CreateTaskRequest(TaskMetadata):
    """Request body for POST /api/tasks."""

    # `column` is what the original web client sends.
    column_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("column_id", "column"),
    )
    content: str | None = None


class ColumnCreatedResponse(BaseModel):
    message: str
    column: Column


class TaskResponse(BaseModel):
    task: Task


class TaskMessageResponse(BaseModel):
    message: str
    task: Task


class TaskListItem(TaskMetadata):
    """Task as rendered by GET /api/tasks, with a display date."""

    id: str
    column_id: str
    content: str
    created_at: str
    files: list[Attachment] = Field(default_factory=list)
