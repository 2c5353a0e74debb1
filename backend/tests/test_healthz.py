from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from learnsync.config import get_settings
from learnsync.db.base import Base
from learnsync.db.session import dispose_engine, get_engine
from learnsync.main import app


@pytest.fixture()
def database_url(tmp_path: Path, monkeypatch) -> str:
    url = f"sqlite:///{tmp_path / 'nested' / 'health.db'}"
    monkeypatch.setenv("LEARNSYNC_DATABASE_URL", url)
    get_settings.cache_clear()
    dispose_engine()
    yield url
    dispose_engine()
    get_settings.cache_clear()


def test_health_endpoint() -> None:
    response = TestClient(app).get("/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_database_health_reports_profile_table(database_url: str, tmp_path: Path) -> None:
    Base.metadata.create_all(get_engine())
    assert (tmp_path / "nested" / "health.db").exists()

    response = TestClient(app).get("/healthz/database")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["dialect"] == "sqlite"
    assert payload["stored_profiles"] == 0
    assert "pool" in payload


def test_database_health_without_schema_is_unavailable(database_url: str) -> None:
    response = TestClient(app).get("/healthz/database")
    assert response.status_code == 503


def test_database_health_endpoint_failure(monkeypatch) -> None:
    def raise_runtime_error():
        raise RuntimeError("missing database url")

    monkeypatch.setattr("learnsync.main.database_status", raise_runtime_error)
    response = TestClient(app).get("/healthz/database")
    assert response.status_code == 503
    assert response.json()["detail"] == "missing database url"
