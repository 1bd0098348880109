"""Service for storing validated quiz definitions."""

from __future__ import annotations

from dataclasses import replace
import math

from quiz_runner.constants.quiz_constants import DEFAULT_TRUE_FALSE_OPTIONS
from quiz_runner.core.errors import NotFoundError
from quiz_runner.core.models import Question, QuestionType, Quiz


class QuizRepository:
    """Holds quiz definitions keyed by id, validating them on the way in."""

    def __init__(self) -> None:
        self._quizzes: dict[str, Quiz] = {}

    def save_quiz(self, quiz: Quiz) -> Quiz:
        """Validate and store a quiz, replacing any previous definition with the same id."""
        prepared = prepare_quiz(quiz)
        self._quizzes[prepared.id] = prepared
        return prepared

    def get_quiz(self, quiz_id: str) -> Quiz:
        quiz = self._quizzes.get(quiz_id)
        if quiz is None:
            raise NotFoundError(f"Quiz {quiz_id!r} not found")
        return quiz

    def has_quiz(self, quiz_id: str) -> bool:
        return quiz_id in self._quizzes

    def get_quizzes(self) -> list[Quiz]:
        return list(self._quizzes.values())

    def clear(self) -> None:
        self._quizzes.clear()


def prepare_quiz(quiz: Quiz) -> Quiz:
    title = quiz.title.strip()
    if not title:
        raise ValueError("Quiz title must not be empty.")
    if not math.isfinite(quiz.passing_score) or not 0 <= quiz.passing_score <= 100:
        raise ValueError("Passing score must be a percentage between 0 and 100.")
    if not isinstance(quiz.max_attempts, int) or quiz.max_attempts < 1:
        raise ValueError("Max attempts must be at least 1.")
    if quiz.time_limit_minutes is not None and quiz.time_limit_minutes <= 0:
        raise ValueError("Time limit must be a positive number of minutes.")

    questions = [prepare_question(q) for q in quiz.questions]
    seen: set[str] = set()
    for question in questions:
        if question.id in seen:
            raise ValueError(f"Duplicate question id {question.id!r}.")
        seen.add(question.id)
    return replace(quiz, title=title, questions=questions)


def prepare_question(question: Question) -> Question:
    """Validate and normalize a question before storage."""
    cleaned_prompt = question.prompt.strip()
    if not cleaned_prompt:
        raise ValueError("Question text must not be empty.")
    if not math.isfinite(question.points) or question.points <= 0:
        raise ValueError("Question points must be a positive finite number.")

    options = [option.strip() for option in question.options]
    if question.type is QuestionType.TRUE_FALSE and not options:
        options = list(DEFAULT_TRUE_FALSE_OPTIONS)
    if question.type.is_select:
        if len(options) < 2:
            raise ValueError("Select questions need at least two options.")
        if any(not option for option in options):
            raise ValueError("Option text cannot be empty.")
        if len(set(options)) != len(options):
            raise ValueError("Options must be unique.")

    correct = _normalize_correct_answer(question.type, question.correct_answer, options)
    return replace(question, prompt=cleaned_prompt, options=options, correct_answer=correct)


def _normalize_correct_answer(
    question_type: QuestionType,
    correct: str | frozenset[str],
    options: list[str],
) -> str | frozenset[str]:
    if question_type is QuestionType.ESSAY:
        # graded by a reviewer; any stored model answer is informational
        return correct if isinstance(correct, str) else ""

    if question_type.is_multi:
        values = frozenset([correct]) if isinstance(correct, str) else frozenset(correct)
        if not values:
            raise ValueError("Multi-select questions need at least one correct option.")
        if not values.issubset(options):
            raise ValueError("Correct answers must be among the options.")
        return values

    if not isinstance(correct, str):
        if len(correct) != 1:
            raise ValueError(f"{question_type.value} questions take exactly one correct answer.")
        (correct,) = tuple(correct)
    if not correct:
        raise ValueError("Correct answer must not be empty.")
    if question_type.is_select and correct not in options:
        raise ValueError("Correct answer must be one of the options.")
    return correct
