from __future__ import annotations

from pathlib import Path

from fastapi.testclient import TestClient


def test_health_endpoints(client: TestClient) -> None:
    for route in ("/health", "/healthz", "/live"):
        response = client.get(route)
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


def test_startup_prepares_upload_directory(client: TestClient, upload_dir: Path) -> None:
    assert upload_dir.is_dir()
    assert client.get("/uploads/missing.txt").status_code == 404
