"""Question pool providers: on-disk JSON banks and an HTTP bank with local fallback."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Set

import httpx
from pydantic import ValidationError

from .jsonfile import read_json
from .progress_model import Question

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"


class QuestionBankUnavailable(RuntimeError):
    """Raised when no usable question pool exists for a language."""


class QuestionBank(Protocol):
    def load_questions(self, language: str) -> List[Question]: ...


def _parse_questions(raw: Any, source: str) -> List[Question]:
    entries = raw.get("questions") if isinstance(raw, dict) else raw
    if not isinstance(entries, list):
        raise QuestionBankUnavailable(f"Question bank {source} has no question list.")
    questions: List[Question] = []
    seen: Set[str] = set()
    for index, payload in enumerate(entries):
        try:
            question = Question.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Skipping invalid question #%s in %s: %s", index, source, exc)
            continue
        if question.question_id in seen:
            logger.warning("Skipping duplicate question id %s at #%s in %s", question.question_id, index, source)
            continue
        seen.add(question.question_id)
        questions.append(question)
    return questions


class LocalQuestionBank:
    """Reads ``questions_<language>.json`` files from a directory."""

    def __init__(self, directory: Path, *, default_language: str = DEFAULT_LANGUAGE) -> None:
        self._directory = directory
        self._default_language = default_language

    def _path_for(self, language: str) -> Path:
        return self._directory / f"questions_{language}.json"

    def load_questions(self, language: str) -> List[Question]:
        path = self._path_for(language)
        if not path.exists() and language != self._default_language:
            logger.info("No %s question bank; falling back to %s", language, self._default_language)
            path = self._path_for(self._default_language)
        if not path.exists():
            raise QuestionBankUnavailable(f"No question bank found for language '{language}'.")
        try:
            raw = read_json(path)
        except (OSError, ValueError) as exc:
            raise QuestionBankUnavailable(f"Question bank {path.name} could not be read: {exc}") from exc
        return _parse_questions(raw, path.name)


class RemoteQuestionBank:
    """Fetches ``GET {base_url}/questions/{language}`` and caches per language."""

    def __init__(
        self,
        base_url: str,
        *,
        fallback: Optional[QuestionBank] = None,
        timeout_seconds: float = 15.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._fallback = fallback
        self._timeout = timeout_seconds
        self._client = client
        self._cache: Dict[str, List[Question]] = {}
        self._lock = threading.RLock()

    def load_questions(self, language: str) -> List[Question]:
        with self._lock:
            cached = self._cache.get(language)
        if cached is not None:
            return [question.model_copy(deep=True) for question in cached]

        try:
            questions = self._fetch(language)
        except QuestionBankUnavailable as exc:
            if self._fallback is None:
                raise
            logger.warning("Remote question bank failed for %s; using local bank: %s", language, exc)
            return self._fallback.load_questions(language)

        with self._lock:
            self._cache[language] = questions
        return [question.model_copy(deep=True) for question in questions]

    def invalidate(self, language: Optional[str] = None) -> None:
        with self._lock:
            if language is None:
                self._cache.clear()
            else:
                self._cache.pop(language, None)

    def _fetch(self, language: str) -> List[Question]:
        endpoint = f"{self._base_url}/questions/{language}"
        local_client = self._client or httpx.Client(timeout=self._timeout)
        close_client = self._client is None
        try:
            response = local_client.get(endpoint)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise QuestionBankUnavailable(f"Question bank request failed: {exc}") from exc
        finally:
            if close_client:
                local_client.close()

        try:
            raw = response.json()
        except ValueError as exc:
            raise QuestionBankUnavailable(f"Question bank returned invalid JSON: {exc}") from exc
        return _parse_questions(raw, endpoint)


__all__ = [
    "DEFAULT_LANGUAGE",
    "LocalQuestionBank",
    "QuestionBank",
    "QuestionBankUnavailable",
    "RemoteQuestionBank",
]
