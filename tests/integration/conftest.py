from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from kanban_api.app.storage import PostgresDatabase


def _database_url() -> str:
    if os.getenv("RUN_POSTGRES_INTEGRATION_TESTS") != "1":
        pytest.skip(
            "Set RUN_POSTGRES_INTEGRATION_TESTS=1 and KANBAN_DATABASE_URL "
            "to run integration tests against PostgreSQL."
        )
    database_url = os.getenv("KANBAN_DATABASE_URL")
    if not database_url:
        pytest.skip("KANBAN_DATABASE_URL is required for integration tests.")
    return database_url


@pytest.fixture
def database() -> Iterator[PostgresDatabase]:
    handle = PostgresDatabase(_database_url())
    handle.migrate()
    try:
        yield handle
    finally:
        handle.close()


@pytest.fixture
def api_client(tmp_path: Path) -> Iterator[TestClient]:
    from kanban_api.app.settings import Settings
    from kanban_api.main import create_app

    settings = Settings(
        storage_backend="postgres",
        database_url=_database_url(),
        upload_dir=tmp_path / "uploads",
    )
    with TestClient(create_app(settings_override=settings)) as client:
        yield client
