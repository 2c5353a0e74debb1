"""Learner profile and progress models shared by every learnsync component."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Difficulty = Literal["easy", "medium", "hard"]
MasteryLevel = Literal["novice", "learning", "proficient", "expert"]
AuthMethod = Literal["anonymous", "authenticated"]
MergeStrategy = Literal["prefer_local", "prefer_remote", "newest"]
RecommendationType = Literal["focus_topic", "increase_difficulty", "repeat_mistakes", "maintain_streak"]
AchievementType = Literal[
    "first_quiz",
    "perfect_score",
    "speed_runner",
    "scholar",
    "dedicated",
    "master",
    "streak",
    "explorer",
    "perfectionist",
    "legend",
]

DIFFICULTIES: tuple[Difficulty, ...] = ("easy", "medium", "hard")
MASTERY_ORDER: tuple[MasteryLevel, ...] = ("novice", "learning", "proficient", "expert")
HISTORY_LIMIT = 20
RECOMMENDATION_TTL = timedelta(days=7)
DEFAULT_LOCALE = "en"
MIN_ANSWERS = 2


def _now() -> datetime:
    return datetime.now(timezone.utc)


def accuracy(correct: int, total: int) -> float:
    """Percentage of correct answers, 0 when nothing was answered."""
    if total <= 0:
        return 0.0
    return correct / total * 100


def mastery_for_accuracy(value: float) -> MasteryLevel:
    if value < 50:
        return "novice"
    if value < 70:
        return "learning"
    if value < 90:
        return "proficient"
    return "expert"


def overall_mastery(average_score: float, streak: int) -> MasteryLevel:
    """Overall level from the running quiz average; streak decides the proficient band."""
    if average_score < 50:
        return "novice"
    if average_score < 70:
        return "learning"
    if average_score < 90:
        return "expert" if streak >= 5 else "proficient"
    return "expert"


def recommended_difficulty_for(level: MasteryLevel) -> Difficulty:
    if level == "novice":
        return "easy"
    if level == "learning":
        return "medium"
    return "hard"


class UtcModel(BaseModel):
    """Base for models carrying timestamps; every datetime is stored as aware UTC."""

    model_config = ConfigDict(validate_assignment=True)

    @field_validator("*", mode="after")
    @classmethod
    def _as_utc(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)
        return value


class DifficultyPerformance(BaseModel):
    difficulty: Difficulty
    correct_answers: int = Field(default=0, ge=0)
    total_answers: int = Field(default=0, ge=0)
    adaptive_score: float = Field(default=0.0, ge=0.0, le=100.0)
    mastery_level: MasteryLevel = "novice"


class TopicProgress(UtcModel):
    topic_id: str
    display_name: Optional[str] = None
    correct_answers: int = Field(default=0, ge=0)
    total_answers: int = Field(default=0, ge=0)
    streak: int = Field(default=0, ge=0)
    mastery_level: MasteryLevel = "novice"
    recommended_difficulty: Optional[Difficulty] = None
    last_activity_at: Optional[datetime] = None

    @property
    def accuracy(self) -> float:
        return accuracy(self.correct_answers, self.total_answers)


class LearningRecommendation(UtcModel):
    """Advisory entry; expiry is informational and never purged automatically."""

    recommendation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: RecommendationType
    title: str
    message: str
    topic_id: Optional[str] = None
    target_difficulty: Optional[Difficulty] = None
    created_at: datetime = Field(default_factory=_now)
    expires_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or _now()) >= self.expires_at


class QuizHistoryEntry(UtcModel):
    entry_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    date: datetime = Field(default_factory=_now)
    percentage: float = Field(ge=0.0, le=100.0)
    correct_answers: int = Field(ge=0)
    total_questions: int = Field(ge=0)
    difficulty_breakdown: Dict[str, int] = Field(default_factory=dict)
    topic_breakdown: Dict[str, int] = Field(default_factory=dict)

    @property
    def fingerprint(self) -> str:
        return f"{self.date.isoformat()}|{self.percentage:.4f}|{self.correct_answers}|{self.total_questions}"


class ExamConfigurationSnapshot(BaseModel):
    total_questions: int = Field(default=20, ge=0)
    time_per_question: float = Field(default=30.0, ge=0.0)
    allow_skip: bool = True
    auto_submit: bool = True
    passing_threshold: float = Field(default=70.0, ge=0.0, le=100.0)


class ExamHistoryEntry(UtcModel):
    entry_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    date: datetime = Field(default_factory=_now)
    percentage: float = Field(ge=0.0, le=100.0)
    duration_seconds: float = Field(default=0.0, ge=0.0)
    correct_answers: int = Field(ge=0)
    total_questions: int = Field(ge=0)
    passed: bool
    configuration: ExamConfigurationSnapshot = Field(default_factory=ExamConfigurationSnapshot)

    @property
    def fingerprint(self) -> str:
        return (
            f"{self.date.isoformat()}|{self.percentage:.4f}|{self.correct_answers}"
            f"|{self.total_questions}|{int(self.passed)}"
        )


class UnlockedAchievement(UtcModel):
    achievement_id: AchievementType
    unlocked_at: datetime = Field(default_factory=_now)


def _default_difficulty_stats() -> List[DifficultyPerformance]:
    return [DifficultyPerformance(difficulty=difficulty) for difficulty in DIFFICULTIES]


class ProfileProgress(UtcModel):
    total_questions_answered: int = Field(default=0, ge=0)
    correct_answers: int = Field(default=0, ge=0)
    incorrect_answers: int = Field(default=0, ge=0)
    corrected_mistakes: int = Field(default=0, ge=0)
    exams_taken: int = Field(default=0, ge=0)
    exams_passed: int = Field(default=0, ge=0)
    quizzes_completed: int = Field(default=0, ge=0)
    perfect_scores: int = Field(default=0, ge=0)
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    average_quiz_score: float = Field(default=0.0, ge=0.0, le=100.0)
    mastery_level: MasteryLevel = "novice"
    difficulty_stats: List[DifficultyPerformance] = Field(default_factory=_default_difficulty_stats)
    topic_progress: List[TopicProgress] = Field(default_factory=list)
    recommendations: List[LearningRecommendation] = Field(default_factory=list)
    quiz_history: List[QuizHistoryEntry] = Field(default_factory=list)
    exam_history: List[ExamHistoryEntry] = Field(default_factory=list)
    achievements: List[UnlockedAchievement] = Field(default_factory=list)
    last_activity_at: Optional[datetime] = None

    def difficulty_stat(self, difficulty: Difficulty) -> Optional[DifficultyPerformance]:
        for stat in self.difficulty_stats:
            if stat.difficulty == difficulty:
                return stat
        return None

    def topic(self, topic_id: str) -> Optional[TopicProgress]:
        for entry in self.topic_progress:
            if entry.topic_id == topic_id:
                return entry
        return None

    def has_achievement(self, achievement_id: str) -> bool:
        return any(item.achievement_id == achievement_id for item in self.achievements)


class ProfilePreferences(BaseModel):
    preferred_difficulty: Optional[Difficulty] = None
    daily_goal: int = Field(default=10, ge=1)
    notifications_enabled: bool = True
    synced_settings: bool = False
    preferred_topics: List[str] = Field(default_factory=list)


class ProfileMetadata(UtcModel):
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    last_synced_at: Optional[datetime] = None
    last_device_identifier: Optional[str] = None


class LearnerProfile(BaseModel):
    profile_id: str
    auth_method: AuthMethod = "anonymous"
    full_name: Optional[str] = None
    email: Optional[str] = None
    custom_display_name: Optional[str] = None
    locale: str = DEFAULT_LOCALE
    avatar_ref: Optional[str] = None
    progress: ProfileProgress = Field(default_factory=ProfileProgress)
    preferences: ProfilePreferences = Field(default_factory=ProfilePreferences)
    metadata: ProfileMetadata = Field(default_factory=ProfileMetadata)

    @property
    def display_name(self) -> Optional[str]:
        return self.custom_display_name or self.full_name

    @property
    def is_anonymous(self) -> bool:
        return self.auth_method == "anonymous"


def new_anonymous_profile(
    *,
    locale: str = DEFAULT_LOCALE,
    device_identifier: Optional[str] = None,
) -> LearnerProfile:
    return LearnerProfile(
        profile_id=str(uuid.uuid4()),
        auth_method="anonymous",
        locale=locale,
        metadata=ProfileMetadata(last_device_identifier=device_identifier),
    )


class QuizQuestionOutcome(BaseModel):
    question_id: str
    topic: str
    difficulty: Difficulty
    is_correct: bool


class QuizSessionSummary(UtcModel):
    """Outcome of one completed quiz, as reported by the session layer."""

    total_questions: int = Field(ge=0)
    correct_answers: int = Field(ge=0)
    percentage: float = Field(ge=0.0, le=100.0)
    duration_seconds: float = Field(default=0.0, ge=0.0)
    completed_at: datetime = Field(default_factory=_now)
    outcomes: List[QuizQuestionOutcome] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_counts(self) -> "QuizSessionSummary":
        if self.correct_answers > self.total_questions:
            raise ValueError("correct_answers cannot exceed total_questions")
        return self

    @property
    def incorrect_answers(self) -> int:
        return self.total_questions - self.correct_answers

    @property
    def difficulty_breakdown(self) -> Dict[Difficulty, int]:
        breakdown: Dict[Difficulty, int] = {}
        for outcome in self.outcomes:
            breakdown[outcome.difficulty] = breakdown.get(outcome.difficulty, 0) + 1
        return breakdown

    @property
    def topic_breakdown(self) -> Dict[str, int]:
        """Incorrect answers per topic."""
        breakdown: Dict[str, int] = {}
        for outcome in self.outcomes:
            if outcome.is_correct:
                continue
            breakdown[outcome.topic] = breakdown.get(outcome.topic, 0) + 1
        return breakdown

    @classmethod
    def from_outcomes(
        cls,
        outcomes: Sequence[QuizQuestionOutcome],
        *,
        duration_seconds: float = 0.0,
        completed_at: Optional[datetime] = None,
    ) -> "QuizSessionSummary":
        total = len(outcomes)
        correct = sum(1 for outcome in outcomes if outcome.is_correct)
        return cls(
            total_questions=total,
            correct_answers=correct,
            percentage=accuracy(correct, total),
            duration_seconds=duration_seconds,
            completed_at=completed_at or _now(),
            outcomes=list(outcomes),
        )


class ExamSessionSummary(UtcModel):
    total_questions: int = Field(ge=0)
    correct_answers: int = Field(ge=0)
    percentage: float = Field(ge=0.0, le=100.0)
    duration_seconds: float = Field(default=0.0, ge=0.0)
    completed_at: datetime = Field(default_factory=_now)
    passed: bool
    configuration: ExamConfigurationSnapshot = Field(default_factory=ExamConfigurationSnapshot)

    @model_validator(mode="after")
    def _check_counts(self) -> "ExamSessionSummary":
        if self.correct_answers > self.total_questions:
            raise ValueError("correct_answers cannot exceed total_questions")
        return self


class Answer(BaseModel):
    answer_id: str
    text: str


class Question(BaseModel):
    question_id: str
    text: str
    answers: List[Answer] = Field(default_factory=list)
    correct_index: int = Field(default=0, ge=0)
    topic: str
    difficulty: Difficulty = "medium"

    @model_validator(mode="after")
    def _check_answers(self) -> "Question":
        if not self.text.strip():
            raise ValueError(f"Question '{self.question_id}': text is empty")
        if len(self.answers) < MIN_ANSWERS:
            raise ValueError(
                f"Question '{self.question_id}': needs at least {MIN_ANSWERS} answers, got {len(self.answers)}"
            )
        for index, answer in enumerate(self.answers):
            if not answer.text.strip():
                raise ValueError(f"Question '{self.question_id}': answer {index} has empty text")
        if self.correct_index >= len(self.answers):
            raise ValueError(
                f"Question '{self.question_id}': correct_index {self.correct_index} is out of range "
                f"for {len(self.answers)} answers"
            )
        return self


__all__ = [
    "AchievementType",
    "AuthMethod",
    "Answer",
    "DEFAULT_LOCALE",
    "DIFFICULTIES",
    "Difficulty",
    "DifficultyPerformance",
    "ExamConfigurationSnapshot",
    "ExamHistoryEntry",
    "ExamSessionSummary",
    "HISTORY_LIMIT",
    "LearnerProfile",
    "LearningRecommendation",
    "MASTERY_ORDER",
    "MIN_ANSWERS",
    "MasteryLevel",
    "MergeStrategy",
    "ProfileMetadata",
    "ProfilePreferences",
    "ProfileProgress",
    "Question",
    "QuizHistoryEntry",
    "QuizQuestionOutcome",
    "QuizSessionSummary",
    "RECOMMENDATION_TTL",
    "RecommendationType",
    "TopicProgress",
    "UnlockedAchievement",
    "accuracy",
    "mastery_for_accuracy",
    "new_anonymous_profile",
    "overall_mastery",
    "recommended_difficulty_for",
]
