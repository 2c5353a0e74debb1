"""Tests for folding quiz and exam outcomes into learner progress."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from learnsync.aggregator import MAX_RECOMMENDATIONS, ProgressAggregator
from learnsync.progress_model import (
    ExamSessionSummary,
    LearnerProfile,
    QuizQuestionOutcome,
    QuizSessionSummary,
    TopicProgress,
    overall_mastery,
)
from learnsync.telemetry import clear_listeners, register_listener

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _aggregator() -> ProgressAggregator:
    return ProgressAggregator(clock=lambda: NOW)


def _outcomes(topic: str, correct: int, incorrect: int, difficulty: str = "easy") -> list[QuizQuestionOutcome]:
    outcomes = [
        QuizQuestionOutcome(question_id=f"{topic}-ok-{index}", topic=topic, difficulty=difficulty, is_correct=True)
        for index in range(correct)
    ]
    outcomes.extend(
        QuizQuestionOutcome(question_id=f"{topic}-miss-{index}", topic=topic, difficulty=difficulty, is_correct=False)
        for index in range(incorrect)
    )
    return outcomes


def _summary(percentage_correct: int, *, completed_at: datetime = NOW) -> QuizSessionSummary:
    return QuizSessionSummary.from_outcomes(
        _outcomes("fiqh", percentage_correct // 10, 10 - percentage_correct // 10),
        completed_at=completed_at,
    )


def test_first_quiz_updates_topics_and_recommends_weakest_topic() -> None:
    summary = QuizSessionSummary.from_outcomes(
        _outcomes("fiqh", 8, 0) + _outcomes("aqidah", 0, 2),
        completed_at=NOW,
    )
    assert summary.percentage == pytest.approx(80.0)

    profile, recommendations = _aggregator().apply_quiz_outcome(summary, LearnerProfile(profile_id="p1"))
    progress = profile.progress

    assert progress.average_quiz_score == pytest.approx(80.0)
    assert progress.current_streak == 1
    assert progress.longest_streak == 1
    assert progress.topic("fiqh").mastery_level == "expert"
    aqidah = progress.topic("aqidah")
    assert aqidah.total_answers == 2
    assert aqidah.correct_answers == 0
    assert aqidah.mastery_level == "novice"
    assert aqidah.recommended_difficulty == "easy"

    assert recommendations[0].type == "focus_topic"
    assert recommendations[0].topic_id == "aqidah"
    assert recommendations[0].target_difficulty == "easy"
    assert recommendations[0].expires_at == NOW + timedelta(days=7)
    assert progress.recommendations == recommendations
    assert profile.metadata.updated_at == NOW


def test_counters_stay_consistent_and_input_is_not_mutated() -> None:
    original = LearnerProfile(profile_id="p1")
    aggregator = _aggregator()
    profile = original
    for score in (30, 90, 70, 100):
        profile, _ = aggregator.apply_quiz_outcome(_summary(score), profile)
        progress = profile.progress
        assert progress.total_questions_answered == progress.correct_answers + progress.incorrect_answers

    assert profile.progress.total_questions_answered == 40
    assert profile.progress.average_quiz_score == pytest.approx((30 + 90 + 70 + 100) / 4)
    assert original.progress.total_questions_answered == 0
    assert original.progress.quiz_history == []


def test_history_is_capped_newest_first() -> None:
    aggregator = _aggregator()
    profile = LearnerProfile(profile_id="p1")
    start = NOW - timedelta(days=30)
    for index in range(21):
        summary = _summary(50, completed_at=start + timedelta(hours=index))
        profile, _ = aggregator.apply_quiz_outcome(summary, profile)

    history = profile.progress.quiz_history
    assert len(history) == 20
    assert history[0].date == start + timedelta(hours=20)
    assert all(entry.date != start for entry in history)


def test_streak_resets_below_pass_mark_and_longest_is_kept() -> None:
    aggregator = _aggregator()
    profile = LearnerProfile(profile_id="p1")
    for score in (80, 90, 100):
        profile, recommendations = aggregator.apply_quiz_outcome(_summary(score), profile)
    assert profile.progress.current_streak == 3
    assert any(item.type == "maintain_streak" for item in recommendations)

    profile, _ = aggregator.apply_quiz_outcome(_summary(40), profile)
    assert profile.progress.current_streak == 0
    assert profile.progress.longest_streak == 3


def test_difficulty_stats_count_correct_answers_per_difficulty() -> None:
    outcomes = _outcomes("fiqh", 3, 1, difficulty="hard") + _outcomes("seerah", 1, 1, difficulty="medium")
    summary = QuizSessionSummary.from_outcomes(outcomes, completed_at=NOW)

    profile, _ = _aggregator().apply_quiz_outcome(summary, LearnerProfile(profile_id="p1"))

    hard = profile.progress.difficulty_stat("hard")
    medium = profile.progress.difficulty_stat("medium")
    assert (hard.correct_answers, hard.total_answers) == (3, 4)
    assert hard.adaptive_score == pytest.approx(75.0)
    assert hard.mastery_level == "proficient"
    assert (medium.correct_answers, medium.total_answers) == (1, 2)
    assert medium.mastery_level == "learning"
    assert profile.progress.quiz_history[0].topic_breakdown == {"fiqh": 1, "seerah": 1}
    assert profile.progress.quiz_history[0].difficulty_breakdown == {"hard": 4, "medium": 2}


def test_expert_difficulty_triggers_challenge_recommendation() -> None:
    summary = QuizSessionSummary.from_outcomes(_outcomes("fiqh", 10, 0, difficulty="medium"), completed_at=NOW)

    _, recommendations = _aggregator().apply_quiz_outcome(summary, LearnerProfile(profile_id="p1"))

    assert [item.type for item in recommendations] == ["increase_difficulty"]
    assert recommendations[0].target_difficulty == "hard"


def test_recommendations_are_capped_and_ordered() -> None:
    profile = LearnerProfile(profile_id="p1")
    progress = profile.progress
    progress.topic_progress = [
        TopicProgress(topic_id="a", correct_answers=1, total_answers=4),
        TopicProgress(topic_id="b", correct_answers=1, total_answers=4),
    ]
    progress.difficulty_stat("easy").adaptive_score = 95.0
    progress.current_streak = 4

    recommendations = _aggregator().generate_recommendations(progress)

    assert len(recommendations) == MAX_RECOMMENDATIONS
    assert [item.type for item in recommendations] == ["focus_topic", "increase_difficulty", "maintain_streak"]
    assert recommendations[0].topic_id == "a"


def test_outcome_mismatch_is_logged_and_totals_are_trusted(caplog) -> None:
    summary = QuizSessionSummary(total_questions=5, correct_answers=4, percentage=80.0, completed_at=NOW)

    with caplog.at_level("WARNING", logger="learnsync.aggregator"):
        profile, _ = _aggregator().apply_quiz_outcome(summary, LearnerProfile(profile_id="p1"))

    assert profile.progress.total_questions_answered == 5
    assert profile.progress.incorrect_answers == 1
    assert "carries 0 outcomes" in caplog.text


def test_summary_rejects_more_correct_than_total() -> None:
    with pytest.raises(ValidationError):
        QuizSessionSummary(total_questions=2, correct_answers=3, percentage=100.0)


def test_overall_mastery_uses_streak_in_proficient_band() -> None:
    assert overall_mastery(75.0, 4) == "proficient"
    assert overall_mastery(75.0, 5) == "expert"
    assert overall_mastery(49.9, 10) == "novice"
    assert overall_mastery(90.0, 0) == "expert"


def test_exam_outcome_updates_counters_and_history() -> None:
    events: list[str] = []
    register_listener(lambda event: events.append(event.name))
    try:
        summary = ExamSessionSummary(
            total_questions=20,
            correct_answers=15,
            percentage=75.0,
            duration_seconds=600,
            completed_at=NOW,
            passed=True,
        )
        profile = _aggregator().apply_exam_outcome(summary, LearnerProfile(profile_id="p1"))
    finally:
        clear_listeners()

    assert profile.progress.exams_taken == 1
    assert profile.progress.exams_passed == 1
    assert profile.progress.exam_history[0].passed is True
    assert profile.progress.exam_history[0].duration_seconds == 600
    assert profile.progress.total_questions_answered == 0
    assert events == ["exam_outcome_applied"]


def test_corrected_mistakes_accumulate() -> None:
    aggregator = _aggregator()
    profile = aggregator.record_corrected_mistakes(LearnerProfile(profile_id="p1"), 3)
    profile = aggregator.record_corrected_mistakes(profile, 0)
    assert profile.progress.corrected_mistakes == 3
