"""In-memory repositories for tests and local demos."""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from uuid import uuid4

from .models import Attachment, Column, Task, TaskMetadata
from .storage import ReleaseHook


class InMemoryColumnRepository:
    """Columns kept in a dict; insertion order is listing order."""

    def __init__(self) -> None:
        self._columns: dict[str, Column] = {}
        self._lock = threading.Lock()

    def create_column(self, name: str, color: str | None) -> Column:
        column = Column(id=str(uuid4()), name=name, color=color)
        with self._lock:
            self._columns[column.id] = column
        return column.model_copy()

    def get_column(self, column_id: str) -> Column | None:
        with self._lock:
            column = self._columns.get(column_id)
        return column.model_copy() if column else None

    def list_columns(self) -> list[Column]:
        with self._lock:
            return [column.model_copy() for column in self._columns.values()]


class InMemoryTaskRepository:
    """Tasks kept in a dict.

    `_lock` guards the dict itself. A per-task lock additionally serializes
    attachment removal so a release hook never runs twice for one record.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._lock = threading.Lock()
        self._task_locks: dict[str, threading.Lock] = {}

    def create_task(self, *, column_id: str, content: str, metadata: TaskMetadata) -> Task:
        task = Task(
            id=str(uuid4()),
            column_id=column_id,
            content=content,
            created_at=datetime.now(UTC),
            files=[],
            **metadata.model_dump(),
        )
        with self._lock:
            self._tasks[task.id] = task
            self._task_locks[task.id] = threading.Lock()
        return task.model_copy(deep=True)

    def get_task(self, task_id: str) -> Task | None:
        with self._lock:
            task = self._tasks.get(task_id)
            return task.model_copy(deep=True) if task else None

    def list_tasks(self) -> list[Task]:
        with self._lock:
            return [task.model_copy(deep=True) for task in self._tasks.values()]

    def set_column(self, task_id: str, column_id: str) -> Task:
        return self._replace(task_id, column_id=column_id)

    def append_files(self, task_id: str, attachments: list[Attachment]) -> Task:
        with self._lock:
            current = self._require(task_id)
            updated = current.model_copy(
                update={"files": [*current.files, *attachments]},
                deep=True,
            )
            self._tasks[task_id] = updated
            return updated.model_copy(deep=True)

    def remove_file(self, task_id: str, file_id: str, *, release: ReleaseHook) -> Task:
        with self._lock:
            task_lock = self._task_locks.get(task_id)
        if task_lock is None:
            raise KeyError(f"Task {task_id} does not exist")

        with task_lock:
            current = self.get_task(task_id)
            if current is None:
                raise KeyError(f"Task {task_id} does not exist")
            target = next((item for item in current.files if item.id == file_id), None)
            if target is None:
                raise KeyError(f"File {file_id} does not exist on task {task_id}")

            release(target)

            # Re-read under the dict lock so appends made meanwhile survive.
            with self._lock:
                latest = self._require(task_id)
                updated = latest.model_copy(
                    update={"files": [item for item in latest.files if item.id != file_id]},
                    deep=True,
                )
                self._tasks[task_id] = updated
                return updated.model_copy(deep=True)

    def _replace(self, task_id: str, **changes: object) -> Task:
        with self._lock:
            current = self._require(task_id)
            updated = current.model_copy(update=changes, deep=True)
            self._tasks[task_id] = updated
            return updated.model_copy(deep=True)

    def _require(self, task_id: str) -> Task:
        current = self._tasks.get(task_id)
        if current is None:
            raise KeyError(f"Task {task_id} does not exist")
        return current
