"""Repository interfaces and the PostgreSQL backend for columns and tasks.

Beginner terms:
- Repository: an object that persists one kind of entity (columns or tasks).
- Database handle: one object owning the connection settings and the lock;
  both repositories receive the same handle.
- JSONB: PostgreSQL JSON type; task attachments are stored as a JSONB array.
- FOR UPDATE: row lock held until the transaction ends, used to serialize
  attachment deletions on one task across processes.
"""

from __future__ import annotations

import json
import threading
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, Protocol

from .models import Attachment, Column, Task, TaskMetadata

# Called with the attachment about to be removed; raising aborts the removal.
ReleaseHook = Callable[[Attachment], None]


class ColumnRepository(Protocol):
    def create_column(self, name: str, color: str | None) -> Column: ...

    def get_column(self, column_id: str) -> Column | None: ...

    def list_columns(self) -> list[Column]: ...


class TaskRepository(Protocol):
    def create_task(self, *, column_id: str, content: str, metadata: TaskMetadata) -> Task: ...

    def get_task(self, task_id: str) -> Task | None: ...

    def list_tasks(self) -> list[Task]: ...

    def set_column(self, task_id: str, column_id: str) -> Task: ...

    def append_files(self, task_id: str, attachments: list[Attachment]) -> Task: ...

    def remove_file(self, task_id: str, file_id: str, *, release: ReleaseHook) -> Task: ...


class PostgresDatabase:
    """Shared PostgreSQL handle: connection settings, lock and schema setup."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("database_url is required")
        self.database_url = database_url
        # Lock guards DB operations done through this handle.
        self._lock = threading.Lock()
        self._closed = False
        # Lazy import helper keeps error message clear if psycopg is missing.
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    @contextmanager
    def session(self) -> Iterator[Any]:
        """Hold the handle lock and yield a connection that commits on exit."""
        with self._lock:
            if self._closed:
                raise RuntimeError("Database handle is closed")
            with self._connect() as conn:
                yield conn

    def json(self, value: Any) -> Any:
        return self._json_wrapper(value)

    def migrate(self) -> None:
        """Create required tables and indexes if they do not already exist."""
        with self.session() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS board_columns (
                    id UUID PRIMARY KEY,
                    name TEXT NOT NULL,
                    color TEXT,
                    created_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id UUID PRIMARY KEY,
                    column_id UUID NOT NULL REFERENCES board_columns(id),
                    content TEXT NOT NULL,
                    client_photo TEXT,
                    client_name TEXT,
                    assignee_photo TEXT,
                    assignee_name TEXT,
                    created_at TIMESTAMPTZ NOT NULL,
                    files JSONB NOT NULL DEFAULT '[]'::jsonb
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_tasks_column_id
                ON tasks(column_id)
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_tasks_created_at
                ON tasks(created_at)
                """)
            conn.commit()

    def close(self) -> None:
        """Refuse further sessions; connections are per call so none stay open."""
        with self._lock:
            self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def _connect(self) -> Any:
        """Open a psycopg connection that yields dict-like rows."""
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        """Import psycopg and helpers with a friendly install hint on failure."""
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover - exercised only without dependency
            raise RuntimeError(
                "PostgreSQL backend requires psycopg. Install with: "
                'python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Json


class PostgresColumnRepository:
    """Columns stored in the `board_columns` table."""

    def __init__(self, database: PostgresDatabase) -> None:
        self.database = database

    def create_column(self, name: str, color: str | None) -> Column:
        column_id = uuid.uuid4()
        now = datetime.now(tz=UTC)
        with self.database.session() as conn:
            conn.execute(
                """
                INSERT INTO board_columns (id, name, color, created_at)
                VALUES (%s, %s, %s, %s)
                """,
                (column_id, name, color, now),
            )
            conn.commit()
        return Column(id=str(column_id), name=name, color=color)

    def get_column(self, column_id: str) -> Column | None:
        with self.database.session() as conn:
            row = conn.execute(
                "SELECT id, name, color FROM board_columns WHERE id = %s::uuid",
                (column_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_column(row)

    def list_columns(self) -> list[Column]:
        with self.database.session() as conn:
            rows = conn.execute(
                "SELECT id, name, color FROM board_columns ORDER BY created_at, id"
            ).fetchall()
        return [self._row_to_column(row) for row in rows]

    @staticmethod
    def _row_to_column(row: Any) -> Column:
        return Column(id=str(row["id"]), name=row["name"], color=row["color"])


class PostgresTaskRepository:
    """Tasks stored in the `tasks` table with attachments embedded as JSONB."""

    def __init__(self, database: PostgresDatabase) -> None:
        self.database = database

    def create_task(self, *, column_id: str, content: str, metadata: TaskMetadata) -> Task:
        task_id = uuid.uuid4()
        now = datetime.now(tz=UTC)
        with self.database.session() as conn:
            row = conn.execute(
                """
                INSERT INTO tasks (
                    id,
                    column_id,
                    content,
                    client_photo,
                    client_name,
                    assignee_photo,
                    assignee_name,
                    created_at,
                    files
                ) VALUES (%s, %s::uuid, %s, %s, %s, %s, %s, %s, '[]'::jsonb)
                RETURNING *
                """,
                (
                    task_id,
                    column_id,
                    content,
                    metadata.client_photo,
                    metadata.client_name,
                    metadata.assignee_photo,
                    metadata.assignee_name,
                    now,
                ),
            ).fetchone()
            conn.commit()
        if row is None:
            raise RuntimeError("Failed to load created task")
        return self._row_to_task(row)

    def get_task(self, task_id: str) -> Task | None:
        with self.database.session() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = %s::uuid",
                (task_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def list_tasks(self) -> list[Task]:
        with self.database.session() as conn:
            rows = conn.execute("SELECT * FROM tasks ORDER BY created_at, id").fetchall()
        return [self._row_to_task(row) for row in rows]

    def set_column(self, task_id: str, column_id: str) -> Task:
        with self.database.session() as conn:
            row = conn.execute(
                """
                UPDATE tasks
                SET column_id = %s::uuid
                WHERE id = %s::uuid
                RETURNING *
                """,
                (column_id, task_id),
            ).fetchone()
            conn.commit()
        if row is None:
            raise KeyError(f"Task {task_id} does not exist")
        return self._row_to_task(row)

    def append_files(self, task_id: str, attachments: list[Attachment]) -> Task:
        """Append records in one statement so concurrent appends never lose each other."""
        payload = [attachment.model_dump(mode="json") for attachment in attachments]
        with self.database.session() as conn:
            row = conn.execute(
                """
                UPDATE tasks
                SET files = files || %s::jsonb
                WHERE id = %s::uuid
                RETURNING *
                """,
                (self.database.json(payload), task_id),
            ).fetchone()
            conn.commit()
        if row is None:
            raise KeyError(f"Task {task_id} does not exist")
        return self._row_to_task(row)

    def remove_file(self, task_id: str, file_id: str, *, release: ReleaseHook) -> Task:
        """Remove one attachment record after `release` succeeds for it.

        The task row stays locked from the read until the rewritten list is
        committed. If `release` raises, the transaction rolls back and the
        stored list is untouched.
        """
        with self.database.session() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = %s::uuid FOR UPDATE",
                (task_id,),
            ).fetchone()
            if row is None:
                raise KeyError(f"Task {task_id} does not exist")
            task = self._row_to_task(row)
            target = next((item for item in task.files if item.id == file_id), None)
            if target is None:
                raise KeyError(f"File {file_id} does not exist on task {task_id}")

            release(target)

            remaining = [
                item.model_dump(mode="json") for item in task.files if item.id != file_id
            ]
            updated = conn.execute(
                """
                UPDATE tasks
                SET files = %s
                WHERE id = %s::uuid
                RETURNING *
                """,
                (self.database.json(remaining), task_id),
            ).fetchone()
            conn.commit()
        if updated is None:
            raise KeyError(f"Task {task_id} no longer exists")
        return self._row_to_task(updated)

    @staticmethod
    def _parse_json_list(raw: Any) -> list[dict[str, Any]]:
        """Parse a JSON-like array of objects; fall back to an empty list."""
        if raw is None:
            return []
        parsed = json.loads(raw) if isinstance(raw, str) else raw
        if not isinstance(parsed, list):
            return []
        return [item for item in parsed if isinstance(item, dict)]

    @staticmethod
    def _parse_datetime(raw: Any) -> datetime:
        """Parse datetime value from database driver output."""
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, str):
            return datetime.fromisoformat(raw)
        raise TypeError(f"Unsupported datetime value: {type(raw)!r}")

    @classmethod
    def _row_to_task(cls, row: Any) -> Task:
        """Map one DB row to the canonical Task model."""
        return Task(
            id=str(row["id"]),
            column_id=str(row["column_id"]),
            content=row["content"],
            client_photo=row["client_photo"],
            client_name=row["client_name"],
            assignee_photo=row["assignee_photo"],
            assignee_name=row["assignee_name"],
            created_at=cls._parse_datetime(row["created_at"]),
            files=[Attachment.model_validate(item) for item in cls._parse_json_list(row["files"])],
        )
