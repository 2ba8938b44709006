from __future__ import annotations

import os
import time
import uuid
from pathlib import Path

from find_orphan_blobs import audit_blobs, delete_orphans
from kanban_api.app.blobs import LocalBlobStore
from kanban_api.app.board import BoardService
from kanban_api.app.memory import InMemoryColumnRepository, InMemoryTaskRepository
from kanban_api.app.models import Attachment, TaskMetadata, UploadedFile


def test_audit_reports_orphans_and_missing_blobs(tmp_path: Path) -> None:
    blobs = LocalBlobStore(tmp_path / "uploads")
    tasks = InMemoryTaskRepository()
    task = tasks.create_task(column_id=str(uuid.uuid4()), content="x", metadata=TaskMetadata())

    kept = blobs.put(b"kept", "kept.txt")
    orphan = blobs.put(b"orphan", "orphan.txt")
    missing = "uploads/0000-missing.txt"
    tasks.append_files(
        task.id,
        [
            Attachment(
                id=str(uuid.uuid4()),
                task_id=task.id,
                storage_path=path,
                mime_type="text/plain",
                size_bytes=4,
                original_name=Path(path).name,
            )
            for path in (kept, missing)
        ],
    )

    audit = audit_blobs(tasks, blobs)

    assert audit.orphans == [orphan]
    assert audit.dangling == [(task.id, missing)]

    assert delete_orphans(audit, blobs) == 1
    assert blobs.list_paths() == [kept]


def test_audit_skips_blobs_younger_than_min_age(tmp_path: Path) -> None:
    blobs = LocalBlobStore(tmp_path / "uploads")
    tasks = InMemoryTaskRepository()

    stale = blobs.put(b"stale", "stale.txt")
    fresh = blobs.put(b"fresh", "fresh.txt")
    hour_ago = time.time() - 3600
    os.utime(blobs.root / Path(stale).name, (hour_ago, hour_ago))

    audit = audit_blobs(tasks, blobs, min_age_seconds=600)

    assert audit.orphans == [stale]
    assert delete_orphans(audit, blobs) == 1
    assert blobs.list_paths() == [fresh]


class AuditingTaskRepository(InMemoryTaskRepository):
    """Runs an orphan sweep after the blobs are written but before the append."""

    def __init__(self, blobs: LocalBlobStore) -> None:
        super().__init__()
        self.blobs = blobs
        self.deleted: int | None = None

    def append_files(self, task_id, attachments):
        audit = audit_blobs(self, self.blobs, min_age_seconds=60)
        self.deleted = delete_orphans(audit, self.blobs)
        return super().append_files(task_id, attachments)


def test_sweep_during_upload_keeps_in_flight_blob(tmp_path: Path) -> None:
    blobs = LocalBlobStore(tmp_path / "uploads")
    tasks = AuditingTaskRepository(blobs)
    board = BoardService(columns=InMemoryColumnRepository(), tasks=tasks, blobs=blobs)
    column = board.create_column("Todo", "#fff")
    task = board.create_task(column.id, "write spec")

    task = board.upload_files(
        task.id, [UploadedFile(data=b"hello", original_name="a.txt", mime_type="text/plain")]
    )

    assert tasks.deleted == 0
    [attachment] = task.files
    assert blobs.exists(attachment.storage_path)
