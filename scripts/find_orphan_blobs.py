from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from pathlib import Path

from kanban_api.app.blobs import LocalBlobStore
from kanban_api.app.storage import PostgresDatabase, PostgresTaskRepository, TaskRepository

DEFAULT_MIN_AGE_SECONDS = 3600.0


@dataclass
class BlobAudit:
    # Blobs on disk that no attachment record points at.
    orphans: list[str] = field(default_factory=list)
    # Attachment records whose blob is missing, as (task_id, storage_path).
    dangling: list[tuple[str, str]] = field(default_factory=list)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Compare task attachment records with the blobs in the upload directory."
    )
    parser.add_argument(
        "--database-url",
        type=str,
        required=True,
        help="PostgreSQL connection URL.",
    )
    parser.add_argument(
        "--upload-dir",
        type=Path,
        default=Path("uploads"),
        help="Directory holding uploaded blobs (default: uploads).",
    )
    parser.add_argument(
        "--delete-orphans",
        action="store_true",
        help="Delete blobs that no attachment record references.",
    )
    parser.add_argument(
        "--min-age-seconds",
        type=float,
        default=DEFAULT_MIN_AGE_SECONDS,
        help=(
            "Only treat blobs older than this as orphans; younger ones may belong to "
            f"an upload still in progress (default: {DEFAULT_MIN_AGE_SECONDS:.0f})."
        ),
    )
    return parser.parse_args()


def audit_blobs(
    tasks: TaskRepository, blobs: LocalBlobStore, *, min_age_seconds: float = 0
) -> BlobAudit:
    # Blobs are listed before tasks so a record appended in between still counts.
    candidates = blobs.list_paths(min_age_seconds=min_age_seconds)
    referenced: set[str] = set()
    audit = BlobAudit()
    for task in tasks.list_tasks():
        for attachment in task.files:
            referenced.add(attachment.storage_path)
            if not blobs.exists(attachment.storage_path):
                audit.dangling.append((task.id, attachment.storage_path))
    audit.orphans = [path for path in candidates if path not in referenced]
    return audit


def delete_orphans(audit: BlobAudit, blobs: LocalBlobStore) -> int:
    for storage_path in audit.orphans:
        blobs.delete(storage_path)
    return len(audit.orphans)


def main() -> None:
    args = _parse_args()
    database = PostgresDatabase(args.database_url)
    blobs = LocalBlobStore(args.upload_dir)
    try:
        audit = audit_blobs(
            PostgresTaskRepository(database), blobs, min_age_seconds=args.min_age_seconds
        )
    finally:
        database.close()

    for storage_path in audit.orphans:
        print(f"orphan blob: {storage_path}")
    for task_id, storage_path in audit.dangling:
        print(f"missing blob: {storage_path} (task {task_id})")
    print(f"{len(audit.orphans)} orphan blob(s), {len(audit.dangling)} missing blob(s).")

    if args.delete_orphans and audit.orphans:
        removed = delete_orphans(audit, blobs)
        print(f"Deleted {removed} orphan blob(s) from {args.upload_dir}.")


if __name__ == "__main__":
    main()
