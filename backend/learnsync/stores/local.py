"""On-device profile persistence: one JSON document per profile plus a pointer index."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote

from pydantic import ValidationError

from ..jsonfile import read_json, write_json_atomic
from ..progress_model import DEFAULT_LOCALE, LearnerProfile, new_anonymous_profile

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.json"


class LocalProfileStore:
    """Durable, synchronous profile store.

    Writes go through a temp file and ``os.replace`` so a crash never leaves a
    half-written profile behind. ``index.json`` remembers which profile is
    current and which anonymous profile belongs to this device.
    """

    def __init__(self, directory: Path) -> None:
        self._directory = directory
        self._lock = threading.RLock()

    @property
    def directory(self) -> Path:
        return self._directory

    def _profile_path(self, profile_id: str) -> Path:
        return self._directory / f"profile_{quote(profile_id, safe='')}.json"

    def _index_path(self) -> Path:
        return self._directory / INDEX_FILENAME

    def _load_index_unlocked(self) -> Dict[str, Any]:
        path = self._index_path()
        if not path.exists():
            return {}
        try:
            raw = read_json(path)
        except (OSError, ValueError):
            logger.exception("Failed to read profile index %s; ignoring it", path)
            return {}
        return raw if isinstance(raw, dict) else {}

    def _write_index_unlocked(self, index: Dict[str, Any]) -> None:
        write_json_atomic(self._index_path(), index)

    def _load_unlocked(self, profile_id: str) -> Optional[LearnerProfile]:
        path = self._profile_path(profile_id)
        if not path.exists():
            return None
        try:
            raw = read_json(path)
            return LearnerProfile.model_validate(raw)
        except (OSError, ValueError, ValidationError):
            logger.exception("Failed to decode stored profile %s", profile_id)
            return None

    def load_profile(self, profile_id: str) -> Optional[LearnerProfile]:
        with self._lock:
            return self._load_unlocked(profile_id)

    def save_profile(self, profile: LearnerProfile) -> LearnerProfile:
        clone = profile.model_copy(deep=True)
        with self._lock:
            write_json_atomic(self._profile_path(clone.profile_id), clone.model_dump(mode="json"))
        logger.debug("Saved profile %s locally", clone.profile_id)
        return clone.model_copy(deep=True)

    def delete_profile(self, profile_id: str) -> bool:
        with self._lock:
            path = self._profile_path(profile_id)
            existed = path.exists()
            if existed:
                path.unlink()
            index = self._load_index_unlocked()
            changed = False
            for key in ("current", "anonymous"):
                if index.get(key) == profile_id:
                    index.pop(key)
                    changed = True
            if changed:
                self._write_index_unlocked(index)
            return existed

    def current_profile_id(self) -> Optional[str]:
        with self._lock:
            value = self._load_index_unlocked().get("current")
            return str(value) if value else None

    def anonymous_profile_id(self) -> Optional[str]:
        with self._lock:
            value = self._load_index_unlocked().get("anonymous")
            return str(value) if value else None

    def set_current_profile_id(self, profile_id: Optional[str]) -> None:
        with self._lock:
            index = self._load_index_unlocked()
            if profile_id is None:
                index.pop("current", None)
            else:
                index["current"] = profile_id
            self._write_index_unlocked(index)

    def load_current_profile(self) -> Optional[LearnerProfile]:
        with self._lock:
            profile_id = self.current_profile_id()
            if profile_id is None:
                return None
            return self._load_unlocked(profile_id)

    def load_or_create_anonymous_profile(
        self,
        *,
        locale: str = DEFAULT_LOCALE,
        device_identifier: Optional[str] = None,
    ) -> LearnerProfile:
        with self._lock:
            index = self._load_index_unlocked()
            anonymous_id = index.get("anonymous")
            if anonymous_id:
                existing = self._load_unlocked(str(anonymous_id))
                if existing is not None:
                    return existing
                logger.warning("Anonymous profile %s is missing or unreadable; creating a new one", anonymous_id)

            profile = new_anonymous_profile(locale=locale, device_identifier=device_identifier)
            write_json_atomic(self._profile_path(profile.profile_id), profile.model_dump(mode="json"))
            index["anonymous"] = profile.profile_id
            index.setdefault("current", profile.profile_id)
            self._write_index_unlocked(index)
            logger.info("Created anonymous profile %s", profile.profile_id)
            return profile.model_copy(deep=True)


__all__ = ["INDEX_FILENAME", "LocalProfileStore"]
