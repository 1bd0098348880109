"""Read-only projection of a completed attempt into a review view."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from quiz_runner.core.markdown_math_renderer import MarkdownMathRenderer, renderer as default_renderer
from quiz_runner.core.models import Answer, AnswerValue, Attempt, MultiAnswer, Question, Quiz

NOT_ANSWERED_LABEL = "Not answered"


class QuestionStatus(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    UNANSWERED = "unanswered"
    PENDING_REVIEW = "pending_review"
    UNAVAILABLE = "unavailable"


@dataclass(slots=True)
class ResultSummary:
    score: float
    total_possible: float
    percentage: float
    passed: bool
    time_spent_seconds: int
    time_spent_label: str
    correct_count: int
    incorrect_count: int
    unanswered_count: int
    pending_review_count: int
    unavailable_count: int
    feedback: str


@dataclass(slots=True)
class QuestionReview:
    index: int
    question_id: str
    status: QuestionStatus
    prompt_html: str | None
    learner_answer: str
    correct_answer: str | None
    explanation_html: str | None
    points_awarded: float
    points_possible: float


@dataclass(frozen=True, slots=True)
class NavigatorEntry:
    index: int
    question_id: str
    status: QuestionStatus


@dataclass(slots=True)
class ResultsView:
    summary: ResultSummary
    questions: list[QuestionReview]
    navigator: list[NavigatorEntry]
    review_allowed: bool

    def status_at(self, index: int) -> QuestionStatus:
        return self.navigator[index].status


def format_duration(seconds: int) -> str:
    hours, rest = divmod(max(0, int(seconds)), 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    return f"{minutes}m {secs}s"


def feedback_message(passed: bool, percentage: float) -> str:
    if passed:
        if percentage >= 90:
            return "Excellent work! You've demonstrated a thorough understanding of the material."
        if percentage >= 80:
            return "Great job! You have a solid grasp of the concepts."
        return "Good work! You've passed the quiz successfully."
    if percentage >= 60:
        return "You're close! Review the material and try again."
    return "Keep studying! Focus on the areas where you struggled."


def format_answer(value: AnswerValue | str | frozenset[str] | None) -> str:
    if value is None:
        return NOT_ANSWERED_LABEL
    if isinstance(value, MultiAnswer):
        value = value.values
    elif not isinstance(value, (str, frozenset)):
        value = value.text
    if isinstance(value, frozenset):
        return ", ".join(sorted(value)) if value else NOT_ANSWERED_LABEL
    return value if value.strip() else NOT_ANSWERED_LABEL


class ResultsPresenter:
    """Builds the review view for a completed attempt.

    The quiz passed in is the *current* definition; questions deleted since the
    attempt was taken show up as ``unavailable`` instead of failing the view.
    """

    def __init__(self, markdown: MarkdownMathRenderer | None = None) -> None:
        self._markdown = markdown or default_renderer

    def present(self, attempt: Attempt, quiz: Quiz) -> ResultsView:
        if not attempt.is_completed:
            raise ValueError("Only completed attempts can be reviewed.")

        answers = {answer.question_id: answer for answer in attempt.answers}
        order = attempt.question_order or [answer.question_id for answer in attempt.answers]

        reviews: list[QuestionReview] = []
        for index, question_id in enumerate(order):
            question = quiz.question_by_id(question_id)
            reviews.append(self._review(index, question_id, question, answers.get(question_id), quiz))

        navigator = [NavigatorEntry(r.index, r.question_id, r.status) for r in reviews]
        summary = self._summary(attempt, reviews)
        return ResultsView(
            summary=summary,
            questions=reviews if quiz.allow_review else [],
            navigator=navigator,
            review_allowed=quiz.allow_review,
        )

    def _review(
        self,
        index: int,
        question_id: str,
        question: Question | None,
        answer: Answer | None,
        quiz: Quiz,
    ) -> QuestionReview:
        learner_answer = format_answer(answer.value if answer is not None else None)
        points_awarded = answer.points_awarded if answer is not None else 0

        if question is None:
            return QuestionReview(
                index=index,
                question_id=question_id,
                status=QuestionStatus.UNAVAILABLE,
                prompt_html=None,
                learner_answer=learner_answer,
                correct_answer=None,
                explanation_html=None,
                points_awarded=points_awarded,
                points_possible=0,
            )

        show_key = quiz.show_correct_answers
        return QuestionReview(
            index=index,
            question_id=question_id,
            status=_status_for(answer),
            prompt_html=self._markdown.render_fragment(question.prompt),
            learner_answer=learner_answer,
            correct_answer=format_answer(question.correct_answer) if show_key else None,
            explanation_html=(
                self._markdown.render_fragment(question.explanation)
                if show_key and question.explanation
                else None
            ),
            points_awarded=points_awarded,
            points_possible=question.points,
        )

    @staticmethod
    def _summary(attempt: Attempt, reviews: list[QuestionReview]) -> ResultSummary:
        def count(status: QuestionStatus) -> int:
            return sum(1 for review in reviews if review.status is status)

        return ResultSummary(
            score=attempt.score,
            total_possible=attempt.total_possible,
            percentage=attempt.percentage,
            passed=attempt.passed,
            time_spent_seconds=attempt.time_spent_seconds,
            time_spent_label=format_duration(attempt.time_spent_seconds),
            correct_count=count(QuestionStatus.CORRECT),
            incorrect_count=count(QuestionStatus.INCORRECT),
            unanswered_count=count(QuestionStatus.UNANSWERED),
            pending_review_count=count(QuestionStatus.PENDING_REVIEW),
            unavailable_count=count(QuestionStatus.UNAVAILABLE),
            feedback=feedback_message(attempt.passed, attempt.percentage),
        )


def _status_for(answer: Answer | None) -> QuestionStatus:
    if answer is None or answer.value.is_empty():
        return QuestionStatus.UNANSWERED
    if answer.needs_review:
        return QuestionStatus.PENDING_REVIEW
    return QuestionStatus.CORRECT if answer.is_correct else QuestionStatus.INCORRECT
