"""Fold quiz and exam outcomes into a learner's progress snapshot."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from .achievements import AchievementEvaluator, is_perfect
from .progress_model import (
    HISTORY_LIMIT,
    RECOMMENDATION_TTL,
    DifficultyPerformance,
    ExamHistoryEntry,
    ExamSessionSummary,
    LearnerProfile,
    LearningRecommendation,
    ProfileProgress,
    QuizHistoryEntry,
    QuizSessionSummary,
    TopicProgress,
    accuracy,
    mastery_for_accuracy,
    overall_mastery,
    recommended_difficulty_for,
)
from .telemetry import emit_event

logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS = 3
FOCUS_TOPIC_THRESHOLD = 70.0
CHALLENGE_THRESHOLD = 90.0
STREAK_PASS_PERCENTAGE = 80.0
STREAK_RECOMMENDATION_MIN = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _weighted_average(current: float, sessions: int, new_score: float) -> float:
    if sessions <= 0:
        return new_score
    return (current * sessions + new_score) / (sessions + 1)


class ProgressAggregator:
    """Pure progress folding; inputs are copied, never mutated."""

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        achievements: Optional[AchievementEvaluator] = None,
    ) -> None:
        self._clock = clock or _utcnow
        self._achievements = achievements or AchievementEvaluator(clock=self._clock)

    @property
    def achievements(self) -> AchievementEvaluator:
        return self._achievements

    def apply_quiz_outcome(
        self,
        summary: QuizSessionSummary,
        profile: LearnerProfile,
    ) -> Tuple[LearnerProfile, List[LearningRecommendation]]:
        updated = profile.model_copy(deep=True)
        progress = updated.progress

        if len(summary.outcomes) != summary.total_questions:
            logger.warning(
                "Quiz summary for %s reports %s questions but carries %s outcomes; trusting totals",
                profile.profile_id,
                summary.total_questions,
                len(summary.outcomes),
            )

        sessions_before = len(progress.quiz_history)
        progress.total_questions_answered += summary.total_questions
        progress.correct_answers += summary.correct_answers
        progress.incorrect_answers += summary.incorrect_answers
        progress.quizzes_completed += 1
        if is_perfect(summary):
            progress.perfect_scores += 1
        progress.average_quiz_score = _weighted_average(
            progress.average_quiz_score, sessions_before, summary.percentage
        )
        if summary.percentage >= STREAK_PASS_PERCENTAGE:
            progress.current_streak += 1
        else:
            progress.current_streak = 0
        progress.longest_streak = max(progress.longest_streak, progress.current_streak)
        progress.last_activity_at = summary.completed_at

        self._update_difficulty_stats(progress, summary)
        self._update_topic_progress(progress, summary)

        entry = QuizHistoryEntry(
            date=summary.completed_at,
            percentage=summary.percentage,
            correct_answers=summary.correct_answers,
            total_questions=summary.total_questions,
            difficulty_breakdown={key: value for key, value in summary.difficulty_breakdown.items()},
            topic_breakdown=summary.topic_breakdown,
        )
        progress.quiz_history.insert(0, entry)
        del progress.quiz_history[HISTORY_LIMIT:]

        progress.mastery_level = overall_mastery(progress.average_quiz_score, progress.current_streak)
        recommendations = self.generate_recommendations(progress)
        progress.recommendations = recommendations
        updated.metadata.updated_at = self._clock()

        unlocked = self._achievements.evaluate(progress, summary)
        if unlocked:
            progress.achievements.extend(unlocked)
            emit_event(
                "achievements_unlocked",
                profile_id=profile.profile_id,
                achievements=[item.achievement_id for item in unlocked],
            )

        emit_event(
            "quiz_outcome_applied",
            profile_id=profile.profile_id,
            percentage=summary.percentage,
            total_questions=summary.total_questions,
            mastery_level=progress.mastery_level,
            recommendations=len(recommendations),
        )
        return updated, [item.model_copy(deep=True) for item in recommendations]

    def apply_exam_outcome(self, summary: ExamSessionSummary, profile: LearnerProfile) -> LearnerProfile:
        updated = profile.model_copy(deep=True)
        progress = updated.progress

        progress.exams_taken += 1
        if summary.passed:
            progress.exams_passed += 1
        progress.last_activity_at = summary.completed_at

        entry = ExamHistoryEntry(
            date=summary.completed_at,
            percentage=summary.percentage,
            duration_seconds=summary.duration_seconds,
            correct_answers=summary.correct_answers,
            total_questions=summary.total_questions,
            passed=summary.passed,
            configuration=summary.configuration.model_copy(deep=True),
        )
        progress.exam_history.insert(0, entry)
        del progress.exam_history[HISTORY_LIMIT:]

        progress.mastery_level = overall_mastery(progress.average_quiz_score, progress.current_streak)
        progress.recommendations = self.generate_recommendations(progress)
        updated.metadata.updated_at = self._clock()

        emit_event(
            "exam_outcome_applied",
            profile_id=profile.profile_id,
            percentage=summary.percentage,
            passed=summary.passed,
        )
        return updated

    def record_corrected_mistakes(self, profile: LearnerProfile, count: int) -> LearnerProfile:
        """Credit mistakes fixed during a review round."""
        updated = profile.model_copy(deep=True)
        if count <= 0:
            return updated
        updated.progress.corrected_mistakes += count
        updated.metadata.updated_at = self._clock()
        return updated

    def generate_recommendations(self, progress: ProfileProgress) -> List[LearningRecommendation]:
        now = self._clock()
        expires_at = now + RECOMMENDATION_TTL
        recommendations: List[LearningRecommendation] = []

        weakest: Optional[TopicProgress] = None
        for topic in progress.topic_progress:
            if weakest is None or topic.accuracy < weakest.accuracy:
                weakest = topic
        if weakest is not None and weakest.accuracy < FOCUS_TOPIC_THRESHOLD:
            name = weakest.display_name or weakest.topic_id
            recommendations.append(
                LearningRecommendation(
                    type="focus_topic",
                    title="Focus on a weak topic",
                    message=f"Your accuracy in {name} is {weakest.accuracy:.0f}%. Practice it next.",
                    topic_id=weakest.topic_id,
                    target_difficulty=weakest.recommended_difficulty,
                    created_at=now,
                    expires_at=expires_at,
                )
            )

        strong = next(
            (
                stat
                for stat in progress.difficulty_stats
                if stat.mastery_level == "expert" or stat.adaptive_score > CHALLENGE_THRESHOLD
            ),
            None,
        )
        if strong is not None:
            recommendations.append(
                LearningRecommendation(
                    type="increase_difficulty",
                    title="Try a harder challenge",
                    message=f"You are excelling at {strong.difficulty} questions. Move on to hard ones.",
                    target_difficulty="hard",
                    created_at=now,
                    expires_at=expires_at,
                )
            )

        if progress.current_streak >= STREAK_RECOMMENDATION_MIN:
            recommendations.append(
                LearningRecommendation(
                    type="maintain_streak",
                    title="Keep your streak going",
                    message=f"{progress.current_streak} strong quizzes in a row. Keep it up.",
                    created_at=now,
                    expires_at=expires_at,
                )
            )

        return recommendations[:MAX_RECOMMENDATIONS]

    def _update_difficulty_stats(self, progress: ProfileProgress, summary: QuizSessionSummary) -> None:
        for difficulty, count in summary.difficulty_breakdown.items():
            if count <= 0:
                continue
            correct = sum(
                1 for outcome in summary.outcomes if outcome.difficulty == difficulty and outcome.is_correct
            )
            stat = progress.difficulty_stat(difficulty)
            if stat is None:
                stat = DifficultyPerformance(difficulty=difficulty)
                progress.difficulty_stats.append(stat)
            stat.total_answers += count
            stat.correct_answers += correct
            stat.adaptive_score = accuracy(stat.correct_answers, stat.total_answers)
            stat.mastery_level = mastery_for_accuracy(stat.adaptive_score)

    def _update_topic_progress(self, progress: ProfileProgress, summary: QuizSessionSummary) -> None:
        for outcome in summary.outcomes:
            topic = progress.topic(outcome.topic)
            if topic is None:
                topic = TopicProgress(topic_id=outcome.topic, display_name=outcome.topic)
                progress.topic_progress.append(topic)
            topic.total_answers += 1
            if outcome.is_correct:
                topic.correct_answers += 1
                topic.streak += 1
            else:
                topic.streak = 0
            topic.mastery_level = mastery_for_accuracy(topic.accuracy)
            topic.recommended_difficulty = recommended_difficulty_for(topic.mastery_level)
            topic.last_activity_at = summary.completed_at


__all__ = ["MAX_RECOMMENDATIONS", "ProgressAggregator"]
