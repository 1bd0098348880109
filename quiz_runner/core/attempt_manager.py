"""Business logic for quiz attempts shared by every API request."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from datetime import datetime, timezone
import logging
import random
from threading import Lock
from uuid import uuid4

from quiz_runner.constants.quiz_constants import REASON_NO_ATTEMPTS_REMAINING
from quiz_runner.core.errors import (
    AnswerValidationError,
    AttemptLimitError,
    NotFoundError,
    OwnershipError,
    QuizClosedError,
)
from quiz_runner.core.models import (
    Answer,
    Attempt,
    AttemptStatus,
    AttemptSummary,
    Eligibility,
    QuestionType,
    Quiz,
)
from quiz_runner.core.services import scorer
from quiz_runner.core.services.answer_store import coerce_answer
from quiz_runner.core.services.attempt_ledger import AttemptLedger, QuizStatistics
from quiz_runner.core.services.eligibility import EligibilityGate
from quiz_runner.core.services.quiz_repository import QuizRepository

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttemptManager:
    """Facade for attempt services: Repository, Ledger, EligibilityGate and Scorer.

    Request handlers run on uvicorn worker threads, so every operation holds
    one lock for its whole read-modify-write.
    """

    def __init__(
        self,
        *,
        rng: random.Random | None = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._lock = Lock()
        self._repository = QuizRepository()
        self._ledger = AttemptLedger()
        self._gate = EligibilityGate()
        self._rng = rng or random.Random()
        self._now = now

    # --- Quiz Repository Delegation ---

    def load_quiz(self, quiz: Quiz) -> Quiz:
        with self._lock:
            stored = self._repository.save_quiz(quiz)
        logger.info("Loaded quiz %s (%d questions)", stored.id, len(stored.questions))
        return stored

    def load_quizzes(self, quizzes: Iterable[Quiz]) -> list[Quiz]:
        return [self.load_quiz(quiz) for quiz in quizzes]

    def get_quiz(self, quiz_id: str) -> Quiz:
        with self._lock:
            return self._repository.get_quiz(quiz_id)

    def list_quizzes(self) -> list[Quiz]:
        with self._lock:
            return self._repository.get_quizzes()

    # --- Attempt lifecycle ---

    def get_eligibility(self, quiz_id: str, learner_id: str) -> Eligibility:
        with self._lock:
            quiz = self._repository.get_quiz(quiz_id)
            return self._gate.can_start(quiz, self._ledger.for_learner(quiz_id, learner_id))

    def start_attempt(self, quiz_id: str, learner_id: str) -> Attempt:
        with self._lock:
            quiz = self._repository.get_quiz(quiz_id)
            history = self._ledger.for_learner(quiz_id, learner_id)
            eligibility = self._gate.can_start(quiz, history)
            if not eligibility.allowed:
                if eligibility.reason == REASON_NO_ATTEMPTS_REMAINING:
                    raise AttemptLimitError("Maximum attempts reached for this quiz")
                raise QuizClosedError(f"Quiz is not available: {eligibility.reason}")

            order = [question.id for question in quiz.questions]
            if quiz.shuffle_questions:
                self._rng.shuffle(order)
            attempt = Attempt(
                id=uuid4().hex,
                learner_id=learner_id,
                quiz_id=quiz_id,
                attempt_number=self._ledger.next_attempt_number(quiz_id, learner_id),
                started_at=self._now(),
                question_order=order,
            )
            self._ledger.add(attempt, quiz)
        logger.info(
            "Learner %s started attempt %d of quiz %s (%s)",
            learner_id,
            attempt.attempt_number,
            quiz_id,
            attempt.id,
        )
        return attempt

    def get_attempt(self, attempt_id: str, learner_id: str) -> Attempt:
        with self._lock:
            return self._owned_attempt(attempt_id, learner_id)

    def list_attempts(self, quiz_id: str, learner_id: str) -> list[Attempt]:
        with self._lock:
            self._repository.get_quiz(quiz_id)
            return self._ledger.for_learner(quiz_id, learner_id)

    def submit_attempt(self, attempt_id: str, learner_id: str, answers: Sequence[Answer]) -> AttemptSummary:
        """Score and complete an attempt. Resubmitting returns the original summary."""
        with self._lock:
            attempt = self._owned_attempt(attempt_id, learner_id)
            if attempt.is_completed:
                logger.info("Attempt %s already submitted; returning stored summary", attempt_id)
                return attempt.summary()

            quiz = self._ledger.quiz_for(attempt_id)
            submitted = self._validate_answers(quiz, attempt, answers)
            result = scorer.score(quiz, submitted, attempt.question_order)
            scores = {item.question_id: item for item in result.per_question}
            scored = [
                replace(
                    answer,
                    is_correct=scores[answer.question_id].is_correct,
                    points_awarded=scores[answer.question_id].points_awarded,
                    needs_review=scores[answer.question_id].needs_review,
                )
                for answer in submitted
            ]

            completed_at = self._now()
            time_spent = max(0, int((completed_at - attempt.started_at).total_seconds()))
            completed = replace(
                attempt,
                status=AttemptStatus.COMPLETED,
                answers=scored,
                score=result.total_score,
                total_possible=result.total_possible,
                percentage=result.percentage,
                passed=result.passed,
                time_spent_seconds=time_spent,
                completed_at=completed_at,
                needs_review=result.needs_review,
            )
            self._ledger.replace(completed)
        logger.info(
            "Attempt %s scored %s/%s (%s%%)",
            attempt_id,
            completed.score,
            completed.total_possible,
            completed.percentage,
        )
        return completed.summary()

    def review_answer(
        self,
        attempt_id: str,
        question_id: str,
        points: float,
        reviewer_id: str,
    ) -> AttemptSummary:
        """Award points to an essay answer awaiting manual review and recompute totals.

        ``reviewer_id`` identifies the grader; learners cannot grade their own attempts.
        """
        with self._lock:
            attempt = self._ledger.get(attempt_id)
            if reviewer_id == attempt.learner_id:
                raise OwnershipError("Learners cannot review their own attempts")
            if not attempt.is_completed:
                raise RuntimeError("Attempt has not been submitted yet.")
            quiz = self._ledger.quiz_for(attempt_id)
            question = quiz.question_by_id(question_id)
            if question is None or question_id not in attempt.question_order:
                raise NotFoundError(f"Question {question_id!r} is not part of attempt {attempt_id!r}")
            if question.type is not QuestionType.ESSAY:
                raise ValueError("Only essay answers can be reviewed manually.")
            if not 0 <= points <= question.points:
                raise ValueError(f"Points must be between 0 and {question.points}.")

            position = next((i for i, a in enumerate(attempt.answers) if a.question_id == question_id), None)
            if position is None:
                raise ValueError("The learner did not answer this question.")

            answers = list(attempt.answers)
            answers[position] = replace(
                answers[position],
                points_awarded=points,
                is_correct=points >= question.points,
                needs_review=False,
            )
            score = sum(answer.points_awarded for answer in answers)
            percentage = scorer.compute_percentage(score, attempt.total_possible)
            reviewed = replace(
                attempt,
                answers=answers,
                score=score,
                percentage=percentage,
                passed=percentage >= quiz.passing_score,
                needs_review=any(answer.needs_review for answer in answers),
            )
            self._ledger.replace(reviewed)
        logger.info("Reviewed %s on attempt %s: %s points", question_id, attempt_id, points)
        return reviewed.summary()

    def get_statistics(self, quiz_id: str) -> QuizStatistics:
        with self._lock:
            return self._ledger.statistics(self._repository.get_quiz(quiz_id))

    def reset(self) -> None:
        with self._lock:
            self._repository.clear()
            self._ledger.clear()

    # --- Helpers (call with the lock held) ---

    def _owned_attempt(self, attempt_id: str, learner_id: str) -> Attempt:
        attempt = self._ledger.get(attempt_id)
        if attempt.learner_id != learner_id:
            raise OwnershipError(f"Attempt {attempt_id!r} belongs to another learner")
        return attempt

    @staticmethod
    def _validate_answers(quiz: Quiz, attempt: Attempt, answers: Sequence[Answer]) -> list[Answer]:
        allowed = set(attempt.question_order)
        seen: set[str] = set()
        validated: list[Answer] = []
        for answer in answers:
            question = quiz.question_by_id(answer.question_id)
            if question is None or answer.question_id not in allowed:
                raise AnswerValidationError(f"Unknown question {answer.question_id!r}.")
            if answer.question_id in seen:
                raise AnswerValidationError(f"Duplicate answer for {answer.question_id!r}.")
            if answer.time_spent_seconds < 0:
                raise AnswerValidationError("Time spent must not be negative.")
            seen.add(answer.question_id)
            validated.append(
                Answer(
                    question_id=answer.question_id,
                    value=coerce_answer(question, answer.value),
                    time_spent_seconds=answer.time_spent_seconds,
                )
            )
        return validated
