"""Tests for the on-device profile store."""

from __future__ import annotations

from pathlib import Path

from learnsync.progress_model import LearnerProfile
from learnsync.stores.local import INDEX_FILENAME, LocalProfileStore


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    store = LocalProfileStore(tmp_path)
    profile = LearnerProfile(profile_id="apple|001.abc", auth_method="authenticated", email="a@example.com")
    profile.progress.correct_answers = 3
    profile.progress.total_questions_answered = 3

    store.save_profile(profile)
    loaded = store.load_profile("apple|001.abc")

    assert loaded == profile
    assert [path.name for path in tmp_path.iterdir() if path.suffix == ".tmp"] == []


def test_missing_and_corrupt_profiles_load_as_none(tmp_path: Path, caplog) -> None:
    store = LocalProfileStore(tmp_path)
    assert store.load_profile("nobody") is None

    store.save_profile(LearnerProfile(profile_id="broken"))
    for path in tmp_path.glob("profile_*.json"):
        path.write_text('{"profile_id": 12', encoding="utf-8")

    with caplog.at_level("ERROR", logger="learnsync.stores.local"):
        assert store.load_profile("broken") is None
    assert "Failed to decode stored profile broken" in caplog.text


def test_anonymous_profile_is_created_once(tmp_path: Path) -> None:
    store = LocalProfileStore(tmp_path)

    first = store.load_or_create_anonymous_profile(locale="ru", device_identifier="device-1")
    second = LocalProfileStore(tmp_path).load_or_create_anonymous_profile()

    assert first.profile_id == second.profile_id
    assert first.is_anonymous
    assert first.locale == "ru"
    assert first.metadata.last_device_identifier == "device-1"
    assert store.current_profile_id() == first.profile_id
    assert store.anonymous_profile_id() == first.profile_id


def test_unreadable_anonymous_profile_is_replaced(tmp_path: Path) -> None:
    store = LocalProfileStore(tmp_path)
    original = store.load_or_create_anonymous_profile()
    store.delete_profile(original.profile_id)

    replacement = store.load_or_create_anonymous_profile()

    assert replacement.profile_id != original.profile_id


def test_current_pointer_and_delete(tmp_path: Path) -> None:
    store = LocalProfileStore(tmp_path)
    store.save_profile(LearnerProfile(profile_id="signed-in", auth_method="authenticated"))
    store.set_current_profile_id("signed-in")

    assert store.load_current_profile().profile_id == "signed-in"
    assert (tmp_path / INDEX_FILENAME).exists()

    assert store.delete_profile("signed-in") is True
    assert store.delete_profile("signed-in") is False
    assert store.current_profile_id() is None
    assert store.load_current_profile() is None
