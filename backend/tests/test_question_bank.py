"""Tests for the on-disk and HTTP question banks."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import httpx
import pytest
from pydantic import ValidationError

from learnsync.progress_model import Question
from learnsync.question_bank import LocalQuestionBank, QuestionBankUnavailable, RemoteQuestionBank


def _payload(*ids: str) -> dict:
    return {
        "questions": [
            {
                "question_id": identifier,
                "text": f"Question {identifier}",
                "answers": [{"answer_id": "a", "text": "Yes"}, {"answer_id": "b", "text": "No"}],
                "correct_index": 0,
                "topic": "fiqh",
                "difficulty": "easy",
            }
            for identifier in ids
        ]
    }


def _write_bank(directory: Path, language: str, payload: object) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / f"questions_{language}.json").write_text(json.dumps(payload), encoding="utf-8")


def test_local_bank_reads_language_file(tmp_path: Path) -> None:
    _write_bank(tmp_path, "ru", _payload("r1", "r2"))

    questions = LocalQuestionBank(tmp_path).load_questions("ru")

    assert [question.question_id for question in questions] == ["r1", "r2"]
    assert questions[0].answers[1].text == "No"


def test_local_bank_falls_back_to_default_language(tmp_path: Path) -> None:
    _write_bank(tmp_path, "en", _payload("e1"))

    questions = LocalQuestionBank(tmp_path).load_questions("de")

    assert [question.question_id for question in questions] == ["e1"]


def test_local_bank_skips_invalid_entries(tmp_path: Path) -> None:
    payload = _payload("good")
    payload["questions"].append({"question_id": "broken"})
    _write_bank(tmp_path, "en", payload)

    questions = LocalQuestionBank(tmp_path).load_questions("en")

    assert [question.question_id for question in questions] == ["good"]


def test_local_bank_without_files_is_unavailable(tmp_path: Path) -> None:
    with pytest.raises(QuestionBankUnavailable):
        LocalQuestionBank(tmp_path).load_questions("en")


def test_local_bank_rejects_malformed_json(tmp_path: Path) -> None:
    tmp_path.joinpath("questions_en.json").write_text("[", encoding="utf-8")
    with pytest.raises(QuestionBankUnavailable):
        LocalQuestionBank(tmp_path).load_questions("en")


def test_remote_bank_fetches_once_and_caches() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(200, json=_payload("q1", "q2"))

    client = httpx.Client(transport=httpx.MockTransport(handler))
    bank = RemoteQuestionBank("https://questions.example/", client=client)

    assert len(bank.load_questions("en")) == 2
    assert len(bank.load_questions("en")) == 2
    assert calls == ["/questions/en"]

    bank.invalidate("en")
    bank.load_questions("en")
    assert len(calls) == 2


def test_remote_bank_falls_back_to_local_on_error(tmp_path: Path) -> None:
    _write_bank(tmp_path, "en", _payload("local"))
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    bank = RemoteQuestionBank("https://questions.example", fallback=LocalQuestionBank(tmp_path), client=client)

    questions = bank.load_questions("en")

    assert [question.question_id for question in questions] == ["local"]


def test_remote_bank_without_fallback_raises() -> None:
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"oops")))
    bank = RemoteQuestionBank("https://questions.example", client=client)

    with pytest.raises(QuestionBankUnavailable):
        bank.load_questions("en")


@pytest.mark.parametrize(
    "override",
    [
        {"correct_index": 5},
        {"correct_index": -1},
        {"answers": []},
        {"answers": [{"answer_id": "a", "text": "Only one"}]},
        {"answers": [{"answer_id": "a", "text": "Yes"}, {"answer_id": "b", "text": "  "}]},
        {"text": "   "},
    ],
)
def test_question_entries_are_validated(override: dict) -> None:
    entry = {**_payload("bad")["questions"][0], **override}

    with pytest.raises(ValidationError):
        Question.model_validate(entry)


def test_bank_skips_malformed_and_duplicate_entries(tmp_path: Path, caplog) -> None:
    payload = _payload("q1", "q2", "q1")
    payload["questions"].append({**_payload("q3")["questions"][0], "correct_index": 2})
    _write_bank(tmp_path, "en", payload)

    with caplog.at_level(logging.WARNING, logger="learnsync.question_bank"):
        questions = LocalQuestionBank(tmp_path).load_questions("en")

    assert [question.question_id for question in questions] == ["q1", "q2"]
    assert "duplicate question id q1" in caplog.text
    assert "#3" in caplog.text
