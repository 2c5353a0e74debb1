from __future__ import annotations

import types
from pathlib import Path

import pytest
from sqlalchemy import create_engine, inspect

from scripts import run_migrations as runner


class DummyConfig:
    def __init__(self) -> None:
        self._options: dict[str, str] = {}

    def set_main_option(self, key: str, value: str) -> None:
        self._options[key] = value

    def get_main_option(self, key: str) -> str:
        return self._options.get(key, "")


def test_resolve_database_url_prefers_config() -> None:
    config = DummyConfig()
    config.set_main_option("sqlalchemy.url", "sqlite:///explicit.db")
    assert runner.resolve_database_url(config) == "sqlite:///explicit.db"


def test_resolve_database_url_falls_back_to_env(monkeypatch) -> None:
    config = DummyConfig()
    monkeypatch.setenv("LEARNSYNC_DATABASE_URL", "sqlite://")
    assert runner.resolve_database_url(config) == "sqlite://"
    assert config.get_main_option("sqlalchemy.url") == "sqlite://"


def test_resolve_database_url_requires_some_url(monkeypatch) -> None:
    monkeypatch.delenv("LEARNSYNC_DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError):
        runner.resolve_database_url(DummyConfig())


def test_wait_for_database_succeeds_with_sqlite(tmp_path: Path) -> None:
    runner.wait_for_database(f"sqlite:///{tmp_path / 'test.sqlite'}", timeout=2, poll_interval=0.1)


def test_wait_for_database_times_out(monkeypatch) -> None:
    class DummyEngine:
        def connect(self) -> types.SimpleNamespace:
            raise runner.OperationalError("SELECT 1", {}, Exception("boom"))

        def dispose(self) -> None:
            pass

    monkeypatch.setattr(runner, "create_engine", lambda *_, **__: DummyEngine())
    with pytest.raises(RuntimeError):
        runner.wait_for_database("postgresql://example", timeout=0, poll_interval=0)


def test_run_migrations_invokes_upgrade(monkeypatch) -> None:
    monkeypatch.setenv("LEARNSYNC_DATABASE_URL", "sqlite://")
    config = DummyConfig()
    config.set_main_option("script_location", "alembic")
    recorded: dict[str, object] = {}

    def fake_wait(url: str, *, timeout: int, poll_interval: float) -> None:
        recorded["wait"] = (url, timeout, poll_interval)

    def fake_upgrade(cfg, revision: str) -> None:
        recorded["revision"] = revision
        recorded["script_location"] = cfg.get_main_option("script_location")

    monkeypatch.setattr(runner, "wait_for_database", fake_wait)
    monkeypatch.setattr(runner.command, "upgrade", fake_upgrade)

    runner.run_migrations("head", timeout=5, poll_interval=0.1, config=config)

    assert recorded["revision"] == "head"
    assert recorded["wait"] == ("sqlite://", 5, 0.1)
    assert recorded["script_location"] == "alembic"


def test_migrations_create_remote_profiles_table(tmp_path: Path, monkeypatch) -> None:
    database_url = f"sqlite:///{tmp_path / 'migrated.db'}"
    monkeypatch.setenv("LEARNSYNC_DATABASE_URL", database_url)

    exit_code = runner.main(["--timeout", "2", "--poll-interval", "0.1"])

    assert exit_code == 0
    engine = create_engine(database_url)
    try:
        inspector = inspect(engine)
        assert "remote_profiles" in inspector.get_table_names()
        columns = {column["name"] for column in inspector.get_columns("remote_profiles")}
        assert {"profile_id", "payload", "updated_at", "last_synced_at"} <= columns
    finally:
        engine.dispose()
