"""Domain models for quiz attempts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class QuestionType(str, Enum):
    SINGLE_SELECT = "single_select"
    MULTI_SELECT = "multi_select"
    TRUE_FALSE = "true_false"
    FILL_BLANK = "fill_blank"
    ESSAY = "essay"

    @property
    def is_select(self) -> bool:
        return self in (QuestionType.SINGLE_SELECT, QuestionType.MULTI_SELECT, QuestionType.TRUE_FALSE)

    @property
    def is_multi(self) -> bool:
        return self is QuestionType.MULTI_SELECT


class AttemptStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class SubmitTrigger(str, Enum):
    MANUAL = "manual"
    TIMEOUT = "timeout"


@dataclass(frozen=True, slots=True)
class SingleAnswer:
    """A free-text or single-option answer."""

    text: str

    def is_empty(self) -> bool:
        return not self.text.strip()

    def to_json(self) -> str:
        return self.text


@dataclass(frozen=True, slots=True)
class MultiAnswer:
    """A set of selected options for a multi-select question."""

    values: frozenset[str]

    def is_empty(self) -> bool:
        return not self.values

    def to_json(self) -> list[str]:
        return sorted(self.values)


AnswerValue = SingleAnswer | MultiAnswer


def answer_from_json(raw: object) -> AnswerValue:
    """Decode the wire/snapshot shape (string or list of strings) into a tagged value."""

    if isinstance(raw, str):
        return SingleAnswer(raw)
    if isinstance(raw, (list, tuple, set, frozenset)) and all(isinstance(item, str) for item in raw):
        return MultiAnswer(frozenset(raw))
    raise ValueError(f"Unsupported answer payload: {raw!r}")


@dataclass(slots=True)
class Question:
    """A single quiz question together with its answer key."""

    id: str
    type: QuestionType
    prompt: str
    options: list[str] = field(default_factory=list)
    correct_answer: str | frozenset[str] = ""
    points: float = 1
    explanation: str | None = None


@dataclass(slots=True)
class Quiz:
    """Quiz definition; treated as immutable once an attempt starts."""

    id: str
    title: str
    questions: list[Question]
    passing_score: float
    max_attempts: int = 1
    time_limit_minutes: int | None = None
    is_active: bool = True
    shuffle_questions: bool = False
    show_correct_answers: bool = False
    allow_review: bool = True
    description: str | None = None

    def question_by_id(self, question_id: str) -> Question | None:
        return next((q for q in self.questions if q.id == question_id), None)

    @property
    def time_limit_seconds(self) -> int | None:
        if self.time_limit_minutes is None:
            return None
        return self.time_limit_minutes * 60


@dataclass(slots=True)
class Answer:
    """A learner answer for one question, scored or not yet scored."""

    question_id: str
    value: AnswerValue
    is_correct: bool = False
    points_awarded: float = 0
    time_spent_seconds: int = 0
    needs_review: bool = False


@dataclass(slots=True)
class AttemptSummary:
    """Score summary returned by the attempt service after submission."""

    score: float
    total_possible: float
    percentage: float
    passed: bool
    time_spent_seconds: int
    completed_at: datetime
    needs_review: bool = False


@dataclass(slots=True)
class Attempt:
    """One learner attempt at a quiz."""

    id: str
    learner_id: str
    quiz_id: str
    attempt_number: int
    started_at: datetime
    status: AttemptStatus = AttemptStatus.ACTIVE
    question_order: list[str] = field(default_factory=list)
    answers: list[Answer] = field(default_factory=list)
    score: float = 0
    total_possible: float = 0
    percentage: float = 0
    passed: bool = False
    time_spent_seconds: int = 0
    completed_at: datetime | None = None
    needs_review: bool = False

    @property
    def is_completed(self) -> bool:
        return self.status is AttemptStatus.COMPLETED

    def summary(self) -> AttemptSummary:
        if self.completed_at is None:
            raise RuntimeError("Attempt has not been completed yet.")
        return AttemptSummary(
            score=self.score,
            total_possible=self.total_possible,
            percentage=self.percentage,
            passed=self.passed,
            time_spent_seconds=self.time_spent_seconds,
            completed_at=self.completed_at,
            needs_review=self.needs_review,
        )


@dataclass(frozen=True, slots=True)
class Eligibility:
    """Outcome of an eligibility check; a denial is a normal result, not an error."""

    allowed: bool
    reason: str | None = None
    attempts_remaining: int | None = None
    max_attempts: int | None = None


@dataclass(frozen=True, slots=True)
class QuestionScore:
    question_id: str
    is_correct: bool
    points_awarded: float
    points_possible: float
    answered: bool
    needs_review: bool = False


@dataclass(slots=True)
class ScoreResult:
    """Per-question breakdown and aggregate score of a set of answers."""

    per_question: list[QuestionScore]
    total_score: float
    total_possible: float
    percentage: float
    passed: bool

    @property
    def needs_review(self) -> bool:
        return any(item.needs_review for item in self.per_question)
