"""Adaptive selection of the next quiz batch and the two-phase session planner."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Set

from .progress_model import ProfileProgress, Question
from .question_bank import QuestionBank
from .usage_tracker import UsedQuestionTracker

logger = logging.getLogger(__name__)


def _unique(pool: Iterable[Question]) -> List[Question]:
    seen: Set[str] = set()
    unique: List[Question] = []
    for question in pool:
        if question.question_id in seen:
            continue
        seen.add(question.question_id)
        unique.append(question)
    return unique


class QuestionSelector:
    """Picks a bounded batch biased toward weak topics.

    Weak topics are those at novice or learning mastery, moderate ones are
    proficient. Never-used questions are preferred; previously used ones only
    top up the batch when the fresh pool runs dry.
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def select(
        self,
        pool: Sequence[Question],
        progress: Optional[ProfileProgress],
        used_ids: Set[str],
        session_count: int,
    ) -> List[Question]:
        if session_count <= 0:
            return []
        questions = _unique(pool)
        fresh = [question for question in questions if question.question_id not in used_ids]
        reused = [question for question in questions if question.question_id in used_ids]

        if progress is None:
            selection = self._take(fresh, session_count)
            if len(selection) < session_count:
                selection.extend(self._take(reused, session_count - len(selection)))
            return selection[:session_count]

        weak_topics = {
            topic.topic_id for topic in progress.topic_progress if topic.mastery_level in ("novice", "learning")
        }
        moderate_topics = {topic.topic_id for topic in progress.topic_progress if topic.mastery_level == "proficient"}

        selection: List[Question] = []
        chosen: Set[str] = set()

        def extend(candidates: List[Question], limit: int) -> None:
            available = [question for question in candidates if question.question_id not in chosen]
            for question in self._take(available, limit):
                chosen.add(question.question_id)
                selection.append(question)

        extend([question for question in fresh if question.topic in weak_topics], session_count // 2)

        if len(selection) < session_count:
            extend(
                [
                    question
                    for question in fresh
                    if question.difficulty != "hard"
                    and (question.topic in weak_topics or question.topic in moderate_topics)
                ],
                session_count - len(selection),
            )

        if len(selection) < session_count:
            extend(fresh, session_count - len(selection))

        if len(selection) < session_count:
            extend(reused, session_count - len(selection))

        return selection[:session_count]

    def _take(self, candidates: List[Question], limit: int) -> List[Question]:
        if limit <= 0 or not candidates:
            return []
        shuffled = list(candidates)
        self._rng.shuffle(shuffled)
        return shuffled[:limit]


@dataclass
class SessionPlan:
    language: str
    questions: List[Question] = field(default_factory=list)
    bank_completed: bool = False
    review_mode: bool = False

    @property
    def question_ids(self) -> List[str]:
        return [question.question_id for question in self.questions]


class SessionPlanner:
    """Selection is a dry run; only ``commit`` marks questions as used."""

    def __init__(
        self,
        bank: QuestionBank,
        tracker: UsedQuestionTracker,
        *,
        version: int,
        selector: Optional[QuestionSelector] = None,
    ) -> None:
        self._bank = bank
        self._tracker = tracker
        self._version = version
        self._selector = selector or QuestionSelector()

    def plan(
        self,
        language: str,
        progress: Optional[ProfileProgress],
        session_count: int,
    ) -> SessionPlan:
        pool = self._bank.load_questions(language)
        used_ids = self._tracker.get_used_ids(self._version)
        review_mode = self._tracker.is_review_mode(self._version)
        current_ids = {question.question_id for question in pool}

        if not review_mode and self._tracker.is_bank_completed(current_ids, self._version):
            logger.info("Question bank %s exhausted at version %s", language, self._version)
            return SessionPlan(language=language, bank_completed=True)

        questions = self._selector.select(pool, progress, used_ids, session_count)
        return SessionPlan(language=language, questions=questions, review_mode=review_mode)

    def commit(self, question_ids: Sequence[str]) -> None:
        if not question_ids:
            return
        self._tracker.mark_used(question_ids, self._version)

    def enable_review_mode(self, enabled: bool = True) -> None:
        self._tracker.set_review_mode(enabled, self._version)

    def progress_stats(self, language: str) -> tuple[int, int]:
        pool = self._bank.load_questions(language)
        current_ids = {question.question_id for question in pool}
        return self._tracker.progress_stats(current_ids, self._version)


__all__ = ["QuestionSelector", "SessionPlan", "SessionPlanner"]
