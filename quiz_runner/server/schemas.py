"""Wire schemas shared by the HTTP API and the client gateway."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from quiz_runner.core.models import (
    Answer,
    Attempt,
    AttemptStatus,
    AttemptSummary,
    Eligibility,
    Question,
    QuestionType,
    Quiz,
    answer_from_json,
)
from quiz_runner.core.services.attempt_ledger import QuizStatistics


def _correct_to_wire(correct: str | frozenset[str]) -> str | list[str]:
    return correct if isinstance(correct, str) else sorted(correct)


class QuestionOut(BaseModel):
    id: str
    type: QuestionType
    prompt: str
    options: list[str] = []
    correct_answer: str | list[str] = ""
    points: float = 1
    explanation: str | None = None

    @classmethod
    def from_domain(cls, question: Question) -> QuestionOut:
        return cls(
            id=question.id,
            type=question.type,
            prompt=question.prompt,
            options=list(question.options),
            correct_answer=_correct_to_wire(question.correct_answer),
            points=question.points,
            explanation=question.explanation,
        )

    def to_domain(self) -> Question:
        correct = self.correct_answer if isinstance(self.correct_answer, str) else frozenset(self.correct_answer)
        return Question(
            id=self.id,
            type=self.type,
            prompt=self.prompt,
            options=list(self.options),
            correct_answer=correct,
            points=self.points,
            explanation=self.explanation,
        )


class QuizOut(BaseModel):
    id: str
    title: str
    description: str | None = None
    questions: list[QuestionOut]
    passing_score: float
    max_attempts: int = 1
    time_limit_minutes: int | None = None
    is_active: bool = True
    shuffle_questions: bool = False
    show_correct_answers: bool = False
    allow_review: bool = True

    @classmethod
    def from_domain(cls, quiz: Quiz) -> QuizOut:
        return cls(
            id=quiz.id,
            title=quiz.title,
            description=quiz.description,
            questions=[QuestionOut.from_domain(q) for q in quiz.questions],
            passing_score=quiz.passing_score,
            max_attempts=quiz.max_attempts,
            time_limit_minutes=quiz.time_limit_minutes,
            is_active=quiz.is_active,
            shuffle_questions=quiz.shuffle_questions,
            show_correct_answers=quiz.show_correct_answers,
            allow_review=quiz.allow_review,
        )

    def to_domain(self) -> Quiz:
        return Quiz(
            id=self.id,
            title=self.title,
            description=self.description,
            questions=[q.to_domain() for q in self.questions],
            passing_score=self.passing_score,
            max_attempts=self.max_attempts,
            time_limit_minutes=self.time_limit_minutes,
            is_active=self.is_active,
            shuffle_questions=self.shuffle_questions,
            show_correct_answers=self.show_correct_answers,
            allow_review=self.allow_review,
        )


class QuizListItem(BaseModel):
    id: str
    title: str
    question_count: int
    is_active: bool


class AnswerIn(BaseModel):
    """Payload schema for one submitted answer."""

    question_id: str
    value: str | list[str]
    time_spent_seconds: int = Field(default=0, ge=0)

    @classmethod
    def from_domain(cls, answer: Answer) -> AnswerIn:
        return cls(
            question_id=answer.question_id,
            value=answer.value.to_json(),
            time_spent_seconds=answer.time_spent_seconds,
        )

    def to_domain(self) -> Answer:
        return Answer(
            question_id=self.question_id,
            value=answer_from_json(self.value),
            time_spent_seconds=self.time_spent_seconds,
        )


class AnswerOut(AnswerIn):
    is_correct: bool = False
    points_awarded: float = 0
    needs_review: bool = False

    @classmethod
    def from_domain(cls, answer: Answer) -> AnswerOut:
        return cls(
            question_id=answer.question_id,
            value=answer.value.to_json(),
            time_spent_seconds=answer.time_spent_seconds,
            is_correct=answer.is_correct,
            points_awarded=answer.points_awarded,
            needs_review=answer.needs_review,
        )

    def to_domain(self) -> Answer:
        return Answer(
            question_id=self.question_id,
            value=answer_from_json(self.value),
            is_correct=self.is_correct,
            points_awarded=self.points_awarded,
            time_spent_seconds=self.time_spent_seconds,
            needs_review=self.needs_review,
        )


class SubmitPayload(BaseModel):
    """Payload schema for submitting an attempt; unanswered questions are left out."""

    answers: list[AnswerIn] = []


class ReviewPayload(BaseModel):
    """Payload schema for grading an essay answer."""

    question_id: str
    points: float = Field(ge=0)


class AttemptOut(BaseModel):
    id: str
    learner_id: str
    quiz_id: str
    attempt_number: int
    status: AttemptStatus
    started_at: datetime
    question_order: list[str] = []
    answers: list[AnswerOut] = []
    score: float = 0
    total_possible: float = 0
    percentage: float = 0
    passed: bool = False
    time_spent_seconds: int = 0
    completed_at: datetime | None = None
    needs_review: bool = False

    @classmethod
    def from_domain(cls, attempt: Attempt) -> AttemptOut:
        return cls(
            id=attempt.id,
            learner_id=attempt.learner_id,
            quiz_id=attempt.quiz_id,
            attempt_number=attempt.attempt_number,
            status=attempt.status,
            started_at=attempt.started_at,
            question_order=list(attempt.question_order),
            answers=[AnswerOut.from_domain(a) for a in attempt.answers],
            score=attempt.score,
            total_possible=attempt.total_possible,
            percentage=attempt.percentage,
            passed=attempt.passed,
            time_spent_seconds=attempt.time_spent_seconds,
            completed_at=attempt.completed_at,
            needs_review=attempt.needs_review,
        )

    def to_domain(self) -> Attempt:
        return Attempt(
            id=self.id,
            learner_id=self.learner_id,
            quiz_id=self.quiz_id,
            attempt_number=self.attempt_number,
            started_at=self.started_at,
            status=self.status,
            question_order=list(self.question_order),
            answers=[a.to_domain() for a in self.answers],
            score=self.score,
            total_possible=self.total_possible,
            percentage=self.percentage,
            passed=self.passed,
            time_spent_seconds=self.time_spent_seconds,
            completed_at=self.completed_at,
            needs_review=self.needs_review,
        )


class SummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    score: float
    total_possible: float
    percentage: float
    passed: bool
    time_spent_seconds: int
    completed_at: datetime
    needs_review: bool = False

    def to_domain(self) -> AttemptSummary:
        return AttemptSummary(
            score=self.score,
            total_possible=self.total_possible,
            percentage=self.percentage,
            passed=self.passed,
            time_spent_seconds=self.time_spent_seconds,
            completed_at=self.completed_at,
            needs_review=self.needs_review,
        )


class EligibilityOut(BaseModel):
    can_take: bool
    reason: str | None = None
    attempts_remaining: int | None = None
    max_attempts: int | None = None

    @classmethod
    def from_domain(cls, eligibility: Eligibility) -> EligibilityOut:
        return cls(
            can_take=eligibility.allowed,
            reason=eligibility.reason,
            attempts_remaining=eligibility.attempts_remaining,
            max_attempts=eligibility.max_attempts,
        )

    def to_domain(self) -> Eligibility:
        return Eligibility(
            allowed=self.can_take,
            reason=self.reason,
            attempts_remaining=self.attempts_remaining,
            max_attempts=self.max_attempts,
        )


class StatisticsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    quiz_id: str
    total_attempts: int
    average_score: float
    average_percentage: float
    passed_count: int
    average_time_spent_seconds: float
    total_questions: int
    pending_review_count: int

    @classmethod
    def from_domain(cls, statistics: QuizStatistics) -> StatisticsOut:
        return cls.model_validate(statistics)


class ErrorDetail(BaseModel):
    code: str
    message: str
