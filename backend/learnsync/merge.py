"""Reconcile two independently evolved snapshots of the same learner profile."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, TypeVar

from .achievements import merge_achievements
from .progress_model import (
    DIFFICULTIES,
    HISTORY_LIMIT,
    DifficultyPerformance,
    ExamHistoryEntry,
    LearnerProfile,
    MergeStrategy,
    ProfileMetadata,
    ProfilePreferences,
    ProfileProgress,
    QuizHistoryEntry,
    TopicProgress,
    accuracy,
    mastery_for_accuracy,
    overall_mastery,
    recommended_difficulty_for,
)

_T = TypeVar("_T")
_H = TypeVar("_H", QuizHistoryEntry, ExamHistoryEntry)

_IDENTITY_FIELDS = ("full_name", "email", "custom_display_name", "avatar_ref")


def _latest(first: Optional[datetime], second: Optional[datetime]) -> Optional[datetime]:
    if first is None:
        return second
    if second is None:
        return first
    return max(first, second)


def _normalized_difficulty(stat: DifficultyPerformance) -> DifficultyPerformance:
    clone = stat.model_copy(deep=True)
    clone.adaptive_score = accuracy(clone.correct_answers, clone.total_answers)
    clone.mastery_level = mastery_for_accuracy(clone.adaptive_score)
    return clone


def _normalized_topic(topic: TopicProgress) -> TopicProgress:
    clone = topic.model_copy(deep=True)
    clone.mastery_level = mastery_for_accuracy(clone.accuracy)
    if clone.total_answers > 0:
        clone.recommended_difficulty = recommended_difficulty_for(clone.mastery_level)
    return clone


def _merge_keyed(
    local: Iterable[_T],
    remote: Iterable[_T],
    key: Callable[[_T], str],
    normalize: Callable[[_T], _T],
) -> List[_T]:
    """Per key, keep the record with more answers; local wins ties."""
    chosen: Dict[str, _T] = {}
    order: List[str] = []
    for record in local:
        identifier = key(record)
        if identifier not in chosen:
            order.append(identifier)
        chosen[identifier] = record
    for record in remote:
        identifier = key(record)
        existing = chosen.get(identifier)
        if existing is None:
            order.append(identifier)
            chosen[identifier] = record
        elif record.total_answers > existing.total_answers:  # type: ignore[attr-defined]
            chosen[identifier] = record
    return [normalize(chosen[identifier]) for identifier in order]


def _merge_history(local: List[_H], remote: List[_H]) -> List[_H]:
    seen: Dict[str, _H] = {}
    for entry in list(local) + list(remote):
        seen.setdefault(entry.fingerprint, entry)
    ordered = sorted(seen.values(), key=lambda entry: entry.date, reverse=True)
    return [entry.model_copy(deep=True) for entry in ordered[:HISTORY_LIMIT]]


def merge_progress(local: ProfileProgress, remote: ProfileProgress, *, prefer_local: bool) -> ProfileProgress:
    """Combine counters, per-key stats and histories; the preferred side breaks ties of intent."""
    newer = local if prefer_local else remote
    merged = newer.model_copy(deep=True)

    merged.total_questions_answered = max(local.total_questions_answered, remote.total_questions_answered)
    merged.correct_answers = max(local.correct_answers, remote.correct_answers)
    merged.incorrect_answers = max(local.incorrect_answers, remote.incorrect_answers)
    merged.corrected_mistakes = max(local.corrected_mistakes, remote.corrected_mistakes)
    merged.exams_taken = max(local.exams_taken, remote.exams_taken)
    merged.exams_passed = max(local.exams_passed, remote.exams_passed)
    merged.quizzes_completed = max(local.quizzes_completed, remote.quizzes_completed)
    merged.perfect_scores = max(local.perfect_scores, remote.perfect_scores)
    merged.longest_streak = max(local.longest_streak, remote.longest_streak, newer.current_streak)
    merged.current_streak = newer.current_streak
    merged.average_quiz_score = newer.average_quiz_score

    stats = _merge_keyed(
        local.difficulty_stats,
        remote.difficulty_stats,
        lambda stat: stat.difficulty,
        _normalized_difficulty,
    )
    rank = {difficulty: index for index, difficulty in enumerate(DIFFICULTIES)}
    merged.difficulty_stats = sorted(stats, key=lambda stat: rank.get(stat.difficulty, len(rank)))
    merged.topic_progress = _merge_keyed(
        local.topic_progress,
        remote.topic_progress,
        lambda topic: topic.topic_id,
        _normalized_topic,
    )
    merged.quiz_history = _merge_history(local.quiz_history, remote.quiz_history)
    merged.exam_history = _merge_history(local.exam_history, remote.exam_history)
    merged.achievements = merge_achievements(local.achievements, remote.achievements)
    merged.recommendations = [item.model_copy(deep=True) for item in newer.recommendations]
    merged.last_activity_at = _latest(local.last_activity_at, remote.last_activity_at)
    merged.mastery_level = overall_mastery(merged.average_quiz_score, merged.current_streak)
    return merged


def _merge_preferences(winner: ProfilePreferences, loser: ProfilePreferences) -> ProfilePreferences:
    merged = winner.model_copy(deep=True)
    if merged.preferred_difficulty is None:
        merged.preferred_difficulty = loser.preferred_difficulty
    if not merged.preferred_topics:
        merged.preferred_topics = list(loser.preferred_topics)
    return merged


def _merge_metadata(
    local: ProfileMetadata,
    remote: ProfileMetadata,
    winner: ProfileMetadata,
    device_identifier: Optional[str],
) -> ProfileMetadata:
    return ProfileMetadata(
        created_at=min(local.created_at, remote.created_at),
        updated_at=max(local.updated_at, remote.updated_at),
        last_synced_at=_latest(local.last_synced_at, remote.last_synced_at),
        last_device_identifier=device_identifier or winner.last_device_identifier,
    )


def merge_profiles(
    local: LearnerProfile,
    remote: LearnerProfile,
    strategy: MergeStrategy = "newest",
    *,
    device_identifier: Optional[str] = None,
) -> LearnerProfile:
    """Return one reconciled snapshot; pure, total and idempotent.

    ``prefer_local``/``prefer_remote`` take the chosen side's progress and
    identity outright. ``newest`` takes identity from the side with the later
    ``updated_at`` (local on ties) and combines progress: monotonic counters
    use the maximum, per-topic and per-difficulty records come from whichever
    side has more answers for that key, and histories are unioned.
    """
    if strategy in ("prefer_local", "prefer_remote"):
        winner, loser = (local, remote) if strategy == "prefer_local" else (remote, local)
        merged = winner.model_copy(deep=True)
        merged.metadata = _merge_metadata(local.metadata, remote.metadata, winner.metadata, device_identifier)
        return merged

    local_is_newer = local.metadata.updated_at >= remote.metadata.updated_at
    winner, loser = (local, remote) if local_is_newer else (remote, local)
    merged = winner.model_copy(deep=True)
    for field_name in _IDENTITY_FIELDS:
        if getattr(merged, field_name) is None:
            setattr(merged, field_name, getattr(loser, field_name))
    merged.preferences = _merge_preferences(winner.preferences, loser.preferences)
    merged.progress = merge_progress(local.progress, remote.progress, prefer_local=local_is_newer)
    merged.metadata = _merge_metadata(local.metadata, remote.metadata, winner.metadata, device_identifier)
    return merged


__all__ = ["merge_profiles", "merge_progress"]
