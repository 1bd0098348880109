from __future__ import annotations

import logging
from pathlib import Path

import pytest

from app_main import load_quiz_directory
from quiz_runner.constants.quiz_constants import QUIZ_DIR
from quiz_runner.core.attempt_manager import AttemptManager
from quiz_runner.core.errors import QuizImportError
from quiz_runner.core.models import QuestionType
from quiz_runner.core.quiz_importer import load_quiz_from_file, parse_quiz_text

HEADER = """TITLE: Demo
PASSING: 60
MAXATTEMPTS: 2
TIMELIMIT: 10
SHUFFLE: yes
SHOWANSWERS: yes
REVIEW: no
"""


def test_parses_header_and_every_question_type():
    text = HEADER + """---
TYPE: single
Q: What is $2 + 2$?
A: 3
B: 4
CORRECT: B
POINTS: 2
EXPLANATION: Basic arithmetic.
---
TYPE: multi
ID: primes
Q: Pick the primes.
A: 2
B: 4
C: 5
CORRECT: A, C
---
TYPE: truefalse
Q: The sky is blue.
CORRECT: True
---
TYPE: fill
Q: Capital of France?
CORRECT: Paris
---
TYPE: essay
Q: Explain.
Use two paragraphs.
POINTS: 5
"""

    quiz = parse_quiz_text(text, "demo")

    assert quiz.id == "demo"
    assert quiz.title == "Demo"
    assert quiz.passing_score == 60
    assert quiz.max_attempts == 2
    assert quiz.time_limit_minutes == 10
    assert quiz.shuffle_questions is True
    assert quiz.show_correct_answers is True
    assert quiz.allow_review is False
    assert quiz.is_active is True

    single, multi, tf, fill, essay = quiz.questions
    assert single.id == "q1"
    assert single.options == ["3", "4"]
    assert single.correct_answer == "4"
    assert single.points == 2
    assert single.explanation == "Basic arithmetic."
    assert multi.id == "primes"
    assert multi.type is QuestionType.MULTI_SELECT
    assert multi.correct_answer == frozenset({"2", "5"})
    assert tf.options == ["True", "False"]
    assert tf.correct_answer == "True"
    assert fill.correct_answer == "Paris"
    assert essay.type is QuestionType.ESSAY
    assert essay.prompt == "Explain.\nUse two paragraphs."
    assert essay.points == 5


@pytest.mark.parametrize(
    "text",
    [
        "",
        "DESCRIPTION: no title\n---\nQ: ?\nA: a\nB: b\nCORRECT: A\n",
        HEADER,
        HEADER + "---\nQ: Missing correct\nA: a\nB: b\n",
        HEADER + "---\nQ: Bad letter\nA: a\nB: b\nCORRECT: D\n",
        HEADER + "---\nQ: Gap\nA: a\nC: c\nCORRECT: A\n",
        HEADER + "---\nTYPE: riddle\nQ: ?\nCORRECT: x\n",
        HEADER + "---\nTYPE: fill\nQ: ?\nA: a\nCORRECT: a\n",
        HEADER + "---\nQ: ?\nA: a\nB: b\nCORRECT: A\nPOINTS: lots\n",
        HEADER + "---\nQ: ?\nA: a\nB: b\nCORRECT: A, B\n",
        "TITLE: Bad flag\nSHUFFLE: maybe\n---\nQ: ?\nA: a\nB: b\nCORRECT: A\n",
        "TITLE: Zero passing\nPASSING: 150\n---\nQ: ?\nA: a\nB: b\nCORRECT: A\n",
        HEADER + "---\nQ: ?\nA: a\nB: b\nCORRECT: A\nPOINTS: nan\n",
        HEADER + "---\nQ: ?\nA: a\nB: b\nCORRECT: A\nPOINTS: inf\n",
        "TITLE: T\nMAXATTEMPTS: nan\n---\nQ: ?\nA: a\nB: b\nCORRECT: A\n",
        "TITLE: T\nMAXATTEMPTS: inf\n---\nQ: ?\nA: a\nB: b\nCORRECT: A\n",
        "TITLE: T\nMAXATTEMPTS: 1.5\n---\nQ: ?\nA: a\nB: b\nCORRECT: A\n",
        "TITLE: T\nPASSING: nan\n---\nQ: ?\nA: a\nB: b\nCORRECT: A\n",
    ],
)
def test_malformed_input_raises(text):
    with pytest.raises(QuizImportError):
        parse_quiz_text(text, "bad")


def test_load_from_file_uses_stem_as_id(tmp_path):
    path = tmp_path / "week-1.txt"
    path.write_text("TITLE: Week 1\n---\nQ: ?\nA: a\nB: b\nCORRECT: A\n", encoding="utf-8")

    quiz = load_quiz_from_file(path)

    assert quiz.id == "week-1"
    assert quiz.passing_score == 70
    assert quiz.max_attempts == 1
    assert quiz.time_limit_minutes is None


def test_missing_file_raises_import_error(tmp_path):
    with pytest.raises(QuizImportError):
        load_quiz_from_file(tmp_path / "nope.txt")


def test_bundled_sample_quiz_loads():
    quiz = load_quiz_from_file(Path(QUIZ_DIR) / "cardiology-basics.txt")

    assert quiz.id == "cardiology-basics"
    assert len(quiz.questions) == 5
    assert quiz.time_limit_minutes == 15


def test_directory_load_skips_malformed_files(tmp_path):
    (tmp_path / "good.txt").write_text("TITLE: Good\n---\nQ: ?\nA: a\nB: b\nCORRECT: A\n", encoding="utf-8")
    (tmp_path / "bad.txt").write_text("TITLE: Bad\nMAXATTEMPTS: inf\n---\nQ: ?\nA: a\nB: b\nCORRECT: A\n", encoding="utf-8")
    manager = AttemptManager()

    loaded = load_quiz_directory(manager, tmp_path, logging.getLogger("test"))

    assert loaded == 1
    assert [quiz.id for quiz in manager.list_quizzes()] == ["good"]
