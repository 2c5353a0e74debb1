from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

import pytest

from learnsync.client import build_profile_service, build_question_bank, build_remote_store
from learnsync.config import Settings, get_settings
from learnsync.logging_config import configure_logging
from learnsync.question_bank import LocalQuestionBank, RemoteQuestionBank
from learnsync.stores.remote import HttpRemoteProfileStore
from learnsync.telemetry import clear_listeners, emit_event, register_listener


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    for name in ("LEARNSYNC_REMOTE_URL", "LEARNSYNC_QUESTION_BANK_URL", "LEARNSYNC_QUESTION_BANK_DIR"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_settings_read_prefixed_environment(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("LEARNSYNC_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("LEARNSYNC_REMOTE_URL", "https://sync.example")
    monkeypatch.setenv("LEARNSYNC_SYNC_DEBOUNCE", "0.5")

    settings = get_settings()

    assert settings.remote_url == "https://sync.example"
    assert settings.sync_debounce_seconds == 0.5
    assert settings.profiles_dir == tmp_path / "profiles"
    assert settings.usage_path == tmp_path / "question_usage.json"
    assert settings.resolved_question_bank_dir == tmp_path / "questions"
    assert get_settings() is settings


def test_invalid_configuration_raises_runtime_error(monkeypatch) -> None:
    monkeypatch.setenv("LEARNSYNC_REMOTE_TIMEOUT", "0")

    with pytest.raises(RuntimeError, match="Invalid learnsync configuration"):
        get_settings()


def test_remote_store_is_optional(tmp_path: Path) -> None:
    assert build_remote_store(Settings(data_dir=tmp_path)) is None
    store = build_remote_store(Settings(data_dir=tmp_path, remote_url="https://sync.example/"))
    assert isinstance(store, HttpRemoteProfileStore)


def test_question_bank_falls_back_to_local_directory(tmp_path: Path) -> None:
    assert isinstance(build_question_bank(Settings(data_dir=tmp_path)), LocalQuestionBank)
    remote = build_question_bank(Settings(data_dir=tmp_path, question_bank_url="https://bank.example"))
    assert isinstance(remote, RemoteQuestionBank)


def test_profile_service_starts_anonymous_in_data_dir(tmp_path: Path) -> None:
    service = build_profile_service(Settings(data_dir=tmp_path, device_identifier="device-z"))

    assert service.current.is_anonymous
    assert service.current.metadata.last_device_identifier == "device-z"
    assert (tmp_path / "profiles").is_dir()


def test_telemetry_listeners_receive_sanitized_payloads() -> None:
    seen = []
    failures = []

    def broken(event) -> None:
        raise ValueError("listener bug")

    register_listener(broken)
    register_listener(seen.append)
    register_listener(failures.append, events=["sync_failed"])
    try:
        emit_event(
            "sync_completed",
            profile_id="learner-1",
            last_synced_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
            unlocked={"scholar", "first_quiz"},
        )
    finally:
        clear_listeners()

    assert [event.name for event in seen] == ["sync_completed"]
    assert seen[0].profile_id == "learner-1"
    assert seen[0].payload == {
        "last_synced_at": "2026-03-01T00:00:00+00:00",
        "unlocked": ["first_quiz", "scholar"],
    }
    assert failures == []


def test_logging_levels_follow_environment(monkeypatch) -> None:
    monkeypatch.setenv("LEARNSYNC_LOG_LEVEL", "warning")
    monkeypatch.setenv("LEARNSYNC_SYNC_LOG_LEVEL", "debug")
    monkeypatch.setenv("LEARNSYNC_TELEMETRY", "0")
    try:
        configure_logging()

        assert logging.getLogger().level == logging.WARNING
        assert logging.getLogger("learnsync.sync").level == logging.DEBUG
        assert logging.getLogger("learnsync.stores").level == logging.DEBUG
        assert logging.getLogger("learnsync.telemetry").level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        for name in ("LEARNSYNC_LOG_LEVEL", "LEARNSYNC_SYNC_LOG_LEVEL", "LEARNSYNC_TELEMETRY"):
            monkeypatch.delenv(name)
        configure_logging()
