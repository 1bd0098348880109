"""Deterministic scoring of quiz answers.

The same function runs in the learner session (advisory, for immediate
review) and in the attempt service (authoritative). Rules:

* single-select, true/false and fill-in-blank compare the stored text exactly
  (case-sensitive, no trimming or fuzzy matching);
* multi-select requires the exact set of correct options;
* essays are never auto-scored: they award 0 points, are flagged
  ``needs_review`` and still count towards the total possible points;
* unanswered questions award 0 points and count towards the total possible.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from quiz_runner.core.models import (
    Answer,
    AnswerValue,
    MultiAnswer,
    Question,
    QuestionScore,
    QuestionType,
    Quiz,
    ScoreResult,
    SingleAnswer,
)

PERCENTAGE_DECIMALS = 2


def check_answer(question: Question, value: AnswerValue) -> bool:
    if question.type is QuestionType.ESSAY:
        return False
    if question.type.is_multi:
        return isinstance(value, MultiAnswer) and value.values == question.correct_answer
    return isinstance(value, SingleAnswer) and value.text == question.correct_answer


def compute_percentage(score: float, total_possible: float) -> float:
    if total_possible <= 0:
        return 0.0
    return round(score / total_possible * 100, PERCENTAGE_DECIMALS)


def score(
    quiz: Quiz,
    answers: Mapping[str, AnswerValue] | Iterable[Answer],
    question_order: Sequence[str] | None = None,
) -> ScoreResult:
    """Score answers against a quiz.

    ``question_order`` restricts and orders the scored questions (an attempt
    captures its own order at start); ids no longer in the quiz are skipped.
    """
    values = _as_value_map(answers)
    questions = _ordered_questions(quiz, question_order)

    per_question: list[QuestionScore] = []
    total_score = 0.0
    total_possible = 0.0
    for question in questions:
        value = values.get(question.id)
        answered = value is not None and not value.is_empty()
        is_correct = answered and check_answer(question, value)
        awarded = question.points if is_correct else 0
        per_question.append(
            QuestionScore(
                question_id=question.id,
                is_correct=is_correct,
                points_awarded=awarded,
                points_possible=question.points,
                answered=answered,
                needs_review=answered and question.type is QuestionType.ESSAY,
            )
        )
        total_score += awarded
        total_possible += question.points

    percentage = compute_percentage(total_score, total_possible)
    return ScoreResult(
        per_question=per_question,
        total_score=total_score,
        total_possible=total_possible,
        percentage=percentage,
        passed=percentage >= quiz.passing_score,
    )


def _as_value_map(answers: Mapping[str, AnswerValue] | Iterable[Answer]) -> dict[str, AnswerValue]:
    if isinstance(answers, Mapping):
        return dict(answers)
    return {answer.question_id: answer.value for answer in answers}


def _ordered_questions(quiz: Quiz, question_order: Sequence[str] | None) -> list[Question]:
    if question_order is None:
        return list(quiz.questions)
    by_id = {q.id: q for q in quiz.questions}
    return [by_id[qid] for qid in question_order if qid in by_id]
