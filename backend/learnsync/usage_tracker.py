"""Versioned record of which bank questions a learner has already seen."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, Protocol, Set, Tuple

from .jsonfile import read_json, write_json_atomic

logger = logging.getLogger(__name__)


class UsedQuestionTracker(Protocol):
    def get_used_ids(self, version: int) -> Set[str]: ...

    def mark_used(self, question_ids: Iterable[str], version: int) -> None: ...

    def is_review_mode(self, version: int) -> bool: ...

    def set_review_mode(self, enabled: bool, version: int) -> None: ...

    def reset(self, version: int) -> None: ...

    def progress_stats(self, current_ids: Set[str], version: int) -> Tuple[int, int]: ...

    def is_bank_completed(self, current_ids: Set[str], version: int) -> bool: ...


class FileUsedQuestionTracker:
    """JSON-backed tracker; a version bump wipes the used set and review flag."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.RLock()

    def _load_unlocked(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            raw = read_json(self._path)
        except (OSError, ValueError):
            logger.exception("Failed to read question usage file %s; starting fresh", self._path)
            return {}
        return raw if isinstance(raw, dict) else {}

    def _write_unlocked(self, state: Dict[str, Any]) -> None:
        write_json_atomic(self._path, state)

    def _ensure_version_unlocked(self, version: int) -> Dict[str, Any]:
        state = self._load_unlocked()
        if state.get("version") != version:
            if state:
                logger.info(
                    "Question bank version changed from %s to %s; clearing used questions",
                    state.get("version"),
                    version,
                )
            state = {"version": version, "used_ids": [], "review_mode": False}
            self._write_unlocked(state)
        return state

    def get_used_ids(self, version: int) -> Set[str]:
        with self._lock:
            state = self._ensure_version_unlocked(version)
            return {str(item) for item in state.get("used_ids", [])}

    def mark_used(self, question_ids: Iterable[str], version: int) -> None:
        with self._lock:
            state = self._ensure_version_unlocked(version)
            used = {str(item) for item in state.get("used_ids", [])}
            used.update(question_ids)
            state["used_ids"] = sorted(used)
            self._write_unlocked(state)

    def is_review_mode(self, version: int) -> bool:
        with self._lock:
            state = self._ensure_version_unlocked(version)
            return bool(state.get("review_mode", False))

    def set_review_mode(self, enabled: bool, version: int) -> None:
        with self._lock:
            state = self._ensure_version_unlocked(version)
            state["review_mode"] = bool(enabled)
            self._write_unlocked(state)

    def reset(self, version: int) -> None:
        with self._lock:
            self._write_unlocked({"version": version, "used_ids": [], "review_mode": False})

    def progress_stats(self, current_ids: Set[str], version: int) -> Tuple[int, int]:
        """Return ``(used, remaining)`` counted against the questions currently in the bank."""
        used = len(self.get_used_ids(version) & current_ids)
        return used, max(0, len(current_ids) - used)

    def is_bank_completed(self, current_ids: Set[str], version: int) -> bool:
        if not current_ids:
            return False
        _, remaining = self.progress_stats(current_ids, version)
        return remaining == 0


__all__ = ["FileUsedQuestionTracker", "UsedQuestionTracker"]
