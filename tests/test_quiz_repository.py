from __future__ import annotations

import pytest

from quiz_runner.core.errors import NotFoundError
from quiz_runner.core.models import Question, QuestionType
from quiz_runner.core.services.quiz_repository import QuizRepository, prepare_question
from tests.fakes import make_quiz


def test_save_and_get_round_trip():
    repository = QuizRepository()

    stored = repository.save_quiz(make_quiz(quiz_id="a"))

    assert repository.get_quiz("a") is stored
    assert repository.has_quiz("a")
    assert [q.id for q in repository.get_quizzes()] == ["a"]


def test_unknown_quiz_raises_not_found():
    with pytest.raises(NotFoundError):
        QuizRepository().get_quiz("missing")


def test_true_false_gets_default_options():
    question = prepare_question(Question(id="t", type=QuestionType.TRUE_FALSE, prompt=" Sky? ", correct_answer="False"))

    assert question.options == ["True", "False"]
    assert question.prompt == "Sky?"


@pytest.mark.parametrize(
    "question",
    [
        Question(id="x", type=QuestionType.SINGLE_SELECT, prompt="", options=["a", "b"], correct_answer="a"),
        Question(id="x", type=QuestionType.SINGLE_SELECT, prompt="?", options=["a"], correct_answer="a"),
        Question(id="x", type=QuestionType.SINGLE_SELECT, prompt="?", options=["a", "a"], correct_answer="a"),
        Question(id="x", type=QuestionType.SINGLE_SELECT, prompt="?", options=["a", "b"], correct_answer="c"),
        Question(id="x", type=QuestionType.SINGLE_SELECT, prompt="?", options=["a", "b"], correct_answer="a", points=0),
        Question(id="x", type=QuestionType.MULTI_SELECT, prompt="?", options=["a", "b"], correct_answer=frozenset()),
        Question(id="x", type=QuestionType.MULTI_SELECT, prompt="?", options=["a", "b"], correct_answer=frozenset({"z"})),
        Question(id="x", type=QuestionType.FILL_BLANK, prompt="?", correct_answer=""),
        Question(id="x", type=QuestionType.FILL_BLANK, prompt="?", correct_answer="y", points=float("nan")),
        Question(id="x", type=QuestionType.FILL_BLANK, prompt="?", correct_answer="y", points=float("inf")),
    ],
)
def test_invalid_questions_are_rejected(question):
    with pytest.raises(ValueError):
        prepare_question(question)


@pytest.mark.parametrize(
    "overrides",
    [
        {"passing_score": 101},
        {"passing_score": float("nan")},
        {"max_attempts": 1.5},
        {"max_attempts": 0},
        {"time_limit_minutes": 0},
        {"title": "  "},
    ],
)
def test_invalid_quiz_settings_are_rejected(overrides):
    quiz = make_quiz()
    for name, value in overrides.items():
        setattr(quiz, name, value)

    with pytest.raises(ValueError):
        QuizRepository().save_quiz(quiz)


def test_duplicate_question_ids_are_rejected():
    question = Question(id="dup", type=QuestionType.FILL_BLANK, prompt="?", correct_answer="x")

    with pytest.raises(ValueError):
        QuizRepository().save_quiz(make_quiz(questions=[question, question]))
