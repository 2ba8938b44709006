from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from kanban_api.app.blobs import LocalBlobStore
from kanban_api.app.board import BoardService
from kanban_api.app.memory import InMemoryColumnRepository, InMemoryTaskRepository
from kanban_api.app.settings import Settings


@pytest.fixture
def upload_dir(tmp_path: Path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture
def blob_store(upload_dir: Path) -> LocalBlobStore:
    return LocalBlobStore(upload_dir)


@pytest.fixture
def board(blob_store: LocalBlobStore) -> BoardService:
    return BoardService(
        columns=InMemoryColumnRepository(),
        tasks=InMemoryTaskRepository(),
        blobs=blob_store,
    )


@pytest.fixture
def settings(upload_dir: Path) -> Settings:
    return Settings(
        storage_backend="memory",
        upload_dir=upload_dir,
        max_upload_bytes=1024,
    )


@pytest.fixture
def client(settings: Settings) -> Iterator[TestClient]:
    from kanban_api.main import create_app

    app = create_app(settings_override=settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def column_id(client: TestClient) -> str:
    response = client.post("/api/columns", json={"name": "Todo", "color": "#fff"})
    assert response.status_code == 201
    return response.json()["column"]["id"]


@pytest.fixture
def task_id(client: TestClient, column_id: str) -> str:
    response = client.post("/api/tasks", json={"column_id": column_id, "content": "write spec"})
    assert response.status_code == 201
    return response.json()["task"]["id"]
