"""Service for recording attempts and aggregating per-quiz statistics."""

from __future__ import annotations

from dataclasses import dataclass

from quiz_runner.core.errors import NotFoundError
from quiz_runner.core.models import Attempt, Quiz


@dataclass(slots=True)
class QuizStatistics:
    quiz_id: str
    total_attempts: int
    average_score: float
    average_percentage: float
    passed_count: int
    average_time_spent_seconds: float
    total_questions: int
    pending_review_count: int


class AttemptLedger:
    """Keeps every attempt together with the quiz definition it was started against.

    Attempts are stored as values: updates replace the stored object instead
    of mutating it, so anything handed out stays consistent.
    """

    def __init__(self) -> None:
        self._attempts: dict[str, Attempt] = {}
        self._quizzes: dict[str, Quiz] = {}

    def add(self, attempt: Attempt, quiz: Quiz) -> None:
        self._attempts[attempt.id] = attempt
        self._quizzes[attempt.id] = quiz

    def replace(self, attempt: Attempt) -> None:
        if attempt.id not in self._attempts:
            raise NotFoundError(f"Attempt {attempt.id!r} not found")
        self._attempts[attempt.id] = attempt

    def get(self, attempt_id: str) -> Attempt:
        attempt = self._attempts.get(attempt_id)
        if attempt is None:
            raise NotFoundError(f"Attempt {attempt_id!r} not found")
        return attempt

    def quiz_for(self, attempt_id: str) -> Quiz:
        """The quiz definition captured when the attempt started."""
        self.get(attempt_id)
        return self._quizzes[attempt_id]

    def for_learner(self, quiz_id: str, learner_id: str) -> list[Attempt]:
        attempts = [
            a for a in self._attempts.values() if a.quiz_id == quiz_id and a.learner_id == learner_id
        ]
        return sorted(attempts, key=lambda a: a.attempt_number)

    def next_attempt_number(self, quiz_id: str, learner_id: str) -> int:
        return len(self.for_learner(quiz_id, learner_id)) + 1

    def statistics(self, quiz: Quiz) -> QuizStatistics:
        completed = [a for a in self._attempts.values() if a.quiz_id == quiz.id and a.is_completed]
        count = len(completed)

        def average(values: list[float]) -> float:
            return round(sum(values) / count, 2) if count else 0.0

        return QuizStatistics(
            quiz_id=quiz.id,
            total_attempts=count,
            average_score=average([a.score for a in completed]),
            average_percentage=average([a.percentage for a in completed]),
            passed_count=sum(1 for a in completed if a.passed),
            average_time_spent_seconds=average([a.time_spent_seconds for a in completed]),
            total_questions=len(quiz.questions),
            pending_review_count=sum(1 for a in completed if a.needs_review),
        )

    def clear(self) -> None:
        self._attempts.clear()
        self._quizzes.clear()
