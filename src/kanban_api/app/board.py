"""Board service: cross-entity validation and the attachment lifecycle.

Beginner terms used in this file:
- Reference check: making sure an id a task points at (its column) exists.
- Compensation: undoing blob writes already done when a later step fails.
- Release hook: a function the task repository calls, under the task's lock,
  right before it drops an attachment record. Here it deletes the blob, so a
  record is never removed unless its blob is gone first.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from pathlib import PurePosixPath

from .blobs import BlobStore
from .errors import InvalidReference, NotFound, StorageError, ValidationError
from .models import Attachment, Column, Task, TaskMetadata, UploadedFile
from .storage import ColumnRepository, TaskRepository

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


class BoardService:
    """Columns, tasks and attachments with their consistency rules."""

    def __init__(
        self,
        *,
        columns: ColumnRepository,
        tasks: TaskRepository,
        blobs: BlobStore,
        max_upload_bytes: int = 0,
    ) -> None:
        self.columns = columns
        self.tasks = tasks
        self.blobs = blobs
        self.max_upload_bytes = max_upload_bytes

    # ---- columns -------------------------------------------------------

    def create_column(self, name: str | None, color: str | None = None) -> Column:
        if not name or not name.strip():
            raise ValidationError("Name is required for a column")
        column = self.columns.create_column(name=name, color=color)
        logger.info("board event=column_created column_id=%s", column.id)
        return column

    def list_columns(self) -> list[Column]:
        return self.columns.list_columns()

    # ---- tasks ---------------------------------------------------------

    def create_task(
        self,
        column_id: str | None,
        content: str | None,
        metadata: TaskMetadata | None = None,
    ) -> Task:
        column_key = parse_id(column_id, label="column")
        self._require_column(column_key)
        if not content or not content.strip():
            raise ValidationError("Content is required for a task")

        task = self.tasks.create_task(
            column_id=column_key,
            content=content,
            metadata=metadata or TaskMetadata(),
        )
        logger.info("board event=task_created task_id=%s column_id=%s", task.id, column_key)
        return task

    def list_tasks(self) -> list[Task]:
        return self.tasks.list_tasks()

    def get_task(self, task_id: str | None) -> Task:
        return self._require_task(parse_id(task_id, label="task"))

    def move_task(self, task_id: str | None, column_id: str | None) -> Task:
        """Reassign a task to another existing column; nothing else changes."""
        try:
            task_key = parse_id(task_id, label="task")
            column_key = parse_id(column_id, label="column")
        except InvalidReference as exc:
            raise InvalidReference("Invalid task or column ID") from exc

        self._require_task(task_key)
        self._require_column(column_key)
        try:
            task = self.tasks.set_column(task_key, column_key)
        except KeyError as exc:
            raise NotFound("Task not found") from exc
        logger.info("board event=task_moved task_id=%s column_id=%s", task_key, column_key)
        return task

    # ---- attachments ---------------------------------------------------

    def upload_files(self, task_id: str | None, files: Sequence[UploadedFile]) -> Task:
        """Store every file and append all records, or change nothing.

        Blobs written before a failure are deleted again before the error is
        re-raised, so the task never gains a partial batch and no blob is
        left without a record.
        """
        task_key = parse_id(task_id, label="task")
        task = self._require_task(task_key)
        if not files:
            return task
        for item in files:
            if self.max_upload_bytes and len(item.data) > self.max_upload_bytes:
                raise ValidationError(
                    f"File {item.original_name!r} exceeds the "
                    f"{self.max_upload_bytes} byte upload limit"
                )

        written: list[str] = []
        try:
            attachments: list[Attachment] = []
            for item in files:
                storage_path = self.blobs.put(item.data, item.original_name)
                written.append(storage_path)
                attachments.append(
                    Attachment(
                        id=str(uuid.uuid4()),
                        task_id=task_key,
                        storage_path=storage_path,
                        mime_type=item.mime_type or DEFAULT_MIME_TYPE,
                        size_bytes=len(item.data),
                        original_name=item.original_name,
                    )
                )
            task = self.tasks.append_files(task_key, attachments)
        except KeyError as exc:
            self._discard_blobs(written)
            raise NotFound("Task not found") from exc
        except Exception:
            self._discard_blobs(written)
            raise

        logger.info("board event=files_uploaded task_id=%s count=%s", task_key, len(attachments))
        return task

    def delete_file(self, task_id: str | None, file_id: str | None, file_name: str | None) -> Task:
        """Delete the blob first, then the record; a failed blob delete keeps both."""
        task_key = parse_id(task_id, label="task")
        file_key = parse_id(file_id, label="file")
        self._require_task(task_key)

        def release(attachment: Attachment) -> None:
            blob_name = PurePosixPath(attachment.storage_path).name
            if file_name not in (attachment.original_name, blob_name):
                raise NotFound("File not found")
            self.blobs.delete(attachment.storage_path)

        try:
            task = self.tasks.remove_file(task_key, file_key, release=release)
        except KeyError as exc:
            raise NotFound("File not found") from exc
        logger.info("board event=file_deleted task_id=%s file_id=%s", task_key, file_key)
        return task

    # ---- helpers -------------------------------------------------------

    def _require_column(self, column_id: str) -> Column:
        column = self.columns.get_column(column_id)
        if column is None:
            raise NotFound("Column not found")
        return column

    def _require_task(self, task_id: str) -> Task:
        task = self.tasks.get_task(task_id)
        if task is None:
            raise NotFound("Task not found")
        return task

    def _discard_blobs(self, storage_paths: list[str]) -> None:
        for storage_path in storage_paths:
            try:
                self.blobs.delete(storage_path)
            except StorageError:
                # Logged only; the caller still sees the original failure.
                logger.warning("board event=compensation_failed path=%s", storage_path)


def parse_id(value: str | None, *, label: str) -> str:
    """Return the canonical form of an id, or raise InvalidReference."""
    if not value:
        raise InvalidReference(f"Invalid {label} ID")
    try:
        return str(uuid.UUID(value))
    except (ValueError, TypeError, AttributeError) as exc:
        raise InvalidReference(f"Invalid {label} ID") from exc
