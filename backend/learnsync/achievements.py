"""Achievement rules evaluated against a learner's progress after each quiz."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Literal, Optional, Sequence

from .progress_model import AchievementType, ProfileProgress, QuizSessionSummary, UnlockedAchievement

Metric = Literal["quizzes", "questions", "streak", "perfect_scores", "fast_quiz"]

SPEED_RUN_SECONDS = 120.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AchievementRule:
    achievement_id: AchievementType
    title: str
    description: str
    metric: Metric
    requirement: int


ACHIEVEMENT_RULES: tuple[AchievementRule, ...] = (
    AchievementRule("first_quiz", "First steps", "Complete your first quiz", "quizzes", 1),
    AchievementRule("perfect_score", "Perfect result", "Answer every question in a quiz correctly", "perfect_scores", 1),
    AchievementRule("speed_runner", "Speed runner", "Finish a quiz in under two minutes", "fast_quiz", 1),
    AchievementRule("scholar", "Scholar", "Study 100 questions", "questions", 100),
    AchievementRule("dedicated", "Dedicated learner", "Complete 10 quizzes", "quizzes", 10),
    AchievementRule("master", "Master", "Complete 50 quizzes", "quizzes", 50),
    AchievementRule("streak", "Winning streak", "Score above 80% in 5 quizzes in a row", "streak", 5),
    AchievementRule("explorer", "Explorer", "Study 500 questions", "questions", 500),
    AchievementRule("perfectionist", "Perfectionist", "Get a perfect result 10 times", "perfect_scores", 10),
    AchievementRule("legend", "Legend", "Complete 100 quizzes", "quizzes", 100),
)


@dataclass(frozen=True)
class AchievementProgress:
    achievement_id: AchievementType
    current: int
    requirement: int
    unlocked: bool

    @property
    def fraction(self) -> float:
        if self.requirement <= 0:
            return 0.0
        return min(self.current / self.requirement, 1.0)


def is_perfect(summary: QuizSessionSummary) -> bool:
    return summary.total_questions > 0 and summary.correct_answers == summary.total_questions


def is_speed_run(summary: QuizSessionSummary) -> bool:
    """A timed quiz finished under the limit; untimed summaries (duration 0) never count."""
    return 0 < summary.duration_seconds < SPEED_RUN_SECONDS and summary.total_questions > 0


class AchievementEvaluator:
    """Decides which achievements a progress snapshot has earned."""

    def __init__(
        self,
        rules: Sequence[AchievementRule] = ACHIEVEMENT_RULES,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._rules = tuple(rules)
        self._clock = clock or _utcnow

    @property
    def rules(self) -> tuple[AchievementRule, ...]:
        return self._rules

    def _current(
        self,
        rule: AchievementRule,
        progress: ProfileProgress,
        summary: Optional[QuizSessionSummary],
    ) -> int:
        if rule.metric == "quizzes":
            return progress.quizzes_completed
        if rule.metric == "questions":
            return progress.total_questions_answered
        if rule.metric == "streak":
            return progress.current_streak
        if rule.metric == "perfect_scores":
            return progress.perfect_scores
        return 1 if summary is not None and is_speed_run(summary) else 0

    def progress_for(
        self,
        progress: ProfileProgress,
        summary: Optional[QuizSessionSummary] = None,
    ) -> List[AchievementProgress]:
        """Per-rule progress toward each requirement, in rule order."""
        report: List[AchievementProgress] = []
        for rule in self._rules:
            unlocked = progress.has_achievement(rule.achievement_id)
            current = rule.requirement if unlocked else self._current(rule, progress, summary)
            report.append(
                AchievementProgress(
                    achievement_id=rule.achievement_id,
                    current=min(current, rule.requirement),
                    requirement=rule.requirement,
                    unlocked=unlocked,
                )
            )
        return report

    def evaluate(
        self,
        progress: ProfileProgress,
        summary: Optional[QuizSessionSummary] = None,
    ) -> List[UnlockedAchievement]:
        """Achievements newly earned by ``progress``; already unlocked ones are skipped."""
        now = self._clock()
        earned: List[UnlockedAchievement] = []
        for rule in self._rules:
            if progress.has_achievement(rule.achievement_id):
                continue
            if self._current(rule, progress, summary) >= rule.requirement:
                earned.append(UnlockedAchievement(achievement_id=rule.achievement_id, unlocked_at=now))
        return earned


def merge_achievements(
    local: Sequence[UnlockedAchievement],
    remote: Sequence[UnlockedAchievement],
) -> List[UnlockedAchievement]:
    """Union by id, keeping the earliest unlock time, ordered by unlock time."""
    earliest: Dict[str, UnlockedAchievement] = {}
    for item in list(local) + list(remote):
        current = earliest.get(item.achievement_id)
        if current is None or item.unlocked_at < current.unlocked_at:
            earliest[item.achievement_id] = item
    ordered = sorted(earliest.values(), key=lambda item: (item.unlocked_at, item.achievement_id))
    return [item.model_copy(deep=True) for item in ordered]


__all__ = [
    "ACHIEVEMENT_RULES",
    "AchievementEvaluator",
    "AchievementProgress",
    "AchievementRule",
    "SPEED_RUN_SECONDS",
    "is_perfect",
    "is_speed_run",
    "merge_achievements",
]
