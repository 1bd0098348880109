"""Utilities for importing quizzes from a human-friendly text file.

A file starts with a header block, followed by question blocks. Blocks are
separated by a line containing only ``---``::

    TITLE: Cardiology basics
    DESCRIPTION: Week 3 self-check
    PASSING: 70
    MAXATTEMPTS: 2
    TIMELIMIT: 15          (minutes, optional)
    SHUFFLE: no
    SHOWANSWERS: yes
    REVIEW: yes
    ACTIVE: yes
    ---
    TYPE: single
    Q: Which chamber pumps blood into the aorta?
    A: Left ventricle
    B: Right atrium
    CORRECT: A
    POINTS: 1
    EXPLANATION: The left ventricle ejects into the aorta.
    ---
    TYPE: multi
    Q: Select the *valves* on the left side of the heart.
    A: Mitral
    B: Tricuspid
    C: Aortic
    CORRECT: A, C
    ---
    TYPE: fill
    Q: The normal resting heart rate is about ___ bpm.
    CORRECT: 70

``TYPE`` is one of ``single``, ``multi``, ``truefalse``, ``fill`` or ``essay``
(the full type names are accepted too). Select questions give ``CORRECT`` as
option letters; true/false takes ``True``/``False``; fill-in-blank takes the
exact expected text; essays have no ``CORRECT`` line. Question and explanation
text may continue on following lines and supports markdown + LaTeX.
"""

from __future__ import annotations

import math
from pathlib import Path

from quiz_runner.core.errors import QuizImportError
from quiz_runner.core.models import Question, QuestionType, Quiz
from quiz_runner.core.services.quiz_repository import prepare_quiz

_OPTION_LETTERS = "ABCDEFGH"

_HEADER_KEYS = {
    "TITLE",
    "DESCRIPTION",
    "PASSING",
    "MAXATTEMPTS",
    "TIMELIMIT",
    "SHUFFLE",
    "SHOWANSWERS",
    "REVIEW",
    "ACTIVE",
}

_TYPE_ALIASES = {
    "single": QuestionType.SINGLE_SELECT,
    "multi": QuestionType.MULTI_SELECT,
    "multiple": QuestionType.MULTI_SELECT,
    "truefalse": QuestionType.TRUE_FALSE,
    "tf": QuestionType.TRUE_FALSE,
    "fill": QuestionType.FILL_BLANK,
    "essay": QuestionType.ESSAY,
}

_TRUE_WORDS = {"yes", "true", "1", "on"}
_FALSE_WORDS = {"no", "false", "0", "off"}

DEFAULT_PASSING_SCORE = 70


def load_quiz_from_file(file_path: Path, quiz_id: str | None = None) -> Quiz:
    """Parse a quiz file; the quiz id defaults to the file stem."""
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise QuizImportError(f"Could not read quiz file {file_path}: {exc}") from exc
    return parse_quiz_text(text, quiz_id or file_path.stem)


def parse_quiz_text(text: str, quiz_id: str) -> Quiz:
    blocks = _split_blocks(text)
    if not blocks:
        raise QuizImportError("Quiz file is empty.")

    header = _parse_header(blocks[0])
    questions = [_parse_question(block, position) for position, block in enumerate(blocks[1:], start=1)]
    if not questions:
        raise QuizImportError("Quiz file did not contain any questions.")

    quiz = Quiz(
        id=quiz_id,
        title=header.get("TITLE", ""),
        description=header.get("DESCRIPTION") or None,
        questions=questions,
        passing_score=_parse_number(header, "PASSING", DEFAULT_PASSING_SCORE),
        max_attempts=_parse_int(header, "MAXATTEMPTS", 1),
        time_limit_minutes=_parse_optional_int(header, "TIMELIMIT"),
        shuffle_questions=_parse_flag(header, "SHUFFLE", False),
        show_correct_answers=_parse_flag(header, "SHOWANSWERS", False),
        allow_review=_parse_flag(header, "REVIEW", True),
        is_active=_parse_flag(header, "ACTIVE", True),
    )
    try:
        return prepare_quiz(quiz)
    except ValueError as exc:
        raise QuizImportError(str(exc)) from exc


def _split_blocks(text: str) -> list[list[str]]:
    blocks: list[list[str]] = []
    current: list[str] = []
    for raw_line in text.splitlines():
        if raw_line.strip() == "---":
            if current:
                blocks.append(current)
                current = []
            continue
        if raw_line.strip() or current:
            current.append(raw_line.rstrip())
    if current:
        blocks.append(current)
    return blocks


def _split_marker(line: str) -> tuple[str, str] | None:
    key, sep, value = line.partition(":")
    if not sep:
        return None
    return key.strip().upper(), value.strip()


def _parse_header(lines: list[str]) -> dict[str, str]:
    header: dict[str, str] = {}
    for line in lines:
        if not line.strip():
            continue
        marker = _split_marker(line)
        if marker is None or marker[0] not in _HEADER_KEYS:
            raise QuizImportError(f"Unknown header line: '{line.strip()}'.")
        header[marker[0]] = marker[1]
    if not header.get("TITLE"):
        raise QuizImportError("Quiz header must define a TITLE.")
    return header


def _parse_question(lines: list[str], position: int) -> Question:
    sections: dict[str, list[str]] = {}
    options: dict[str, str] = {}
    current: str | None = None

    for raw_line in lines:
        line = raw_line.strip()
        marker = _split_marker(line) if line else None
        key = marker[0] if marker else None

        if key in ("TYPE", "Q", "CORRECT", "POINTS", "EXPLANATION", "ID"):
            sections[key] = [marker[1]]
            current = key if key in ("Q", "EXPLANATION") else None
            continue
        if key is not None and len(key) == 1 and key in _OPTION_LETTERS:
            options[key] = marker[1]
            current = key
            continue

        if current in ("Q", "EXPLANATION"):
            sections[current].append(line)
        elif current is not None and line:
            options[current] = f"{options[current]}\n{line}"
        elif line:
            raise QuizImportError(f"Question {position}: text outside of a known section: '{line}'.")

    question_type = _parse_type(sections.get("TYPE", ["single"])[0], position)
    prompt = "\n".join(sections.get("Q", [])).strip()
    if not prompt:
        raise QuizImportError(f"Question {position}: question text missing (Q: ...).")

    letters = sorted(options)
    expected = _OPTION_LETTERS[: len(letters)]
    if "".join(letters) != expected:
        raise QuizImportError(f"Question {position}: options must be lettered consecutively from A.")
    option_list = [options[letter].strip() for letter in letters]
    if option_list and not question_type.is_select:
        raise QuizImportError(f"Question {position}: {question_type.value} questions take no options.")

    raw_correct = sections.get("CORRECT", [""])[0]
    explanation = "\n".join(sections.get("EXPLANATION", [])).strip() or None
    question_id = sections.get("ID", [""])[0] or f"q{position}"

    return Question(
        id=question_id,
        type=question_type,
        prompt=prompt,
        options=option_list,
        correct_answer=_parse_correct(question_type, raw_correct, option_list, position),
        points=_parse_points(sections.get("POINTS", ["1"])[0], position),
        explanation=explanation,
    )


def _parse_type(raw: str, position: int) -> QuestionType:
    name = raw.strip().lower().replace("-", "_").replace(" ", "_")
    if name in _TYPE_ALIASES:
        return _TYPE_ALIASES[name]
    try:
        return QuestionType(name)
    except ValueError as exc:
        raise QuizImportError(f"Question {position}: unknown question type '{raw}'.") from exc


def _parse_correct(
    question_type: QuestionType,
    raw: str,
    options: list[str],
    position: int,
) -> str | frozenset[str]:
    if question_type is QuestionType.ESSAY:
        return raw
    if not raw:
        raise QuizImportError(f"Question {position}: CORRECT is required for {question_type.value} questions.")
    if question_type in (QuestionType.FILL_BLANK, QuestionType.TRUE_FALSE) and not options:
        return raw

    letters = [part.strip().upper() for part in raw.split(",") if part.strip()]
    picked: list[str] = []
    for letter in letters:
        if len(letter) != 1 or letter not in _OPTION_LETTERS[: len(options)]:
            raise QuizImportError(f"Question {position}: CORRECT must name option letters, got '{raw}'.")
        picked.append(options[_OPTION_LETTERS.index(letter)])
    if question_type.is_multi:
        return frozenset(picked)
    if len(picked) != 1:
        raise QuizImportError(f"Question {position}: exactly one correct option expected.")
    return picked[0]


def _parse_points(raw: str, position: int) -> float:
    try:
        points = float(raw)
    except ValueError as exc:
        raise QuizImportError(f"Question {position}: POINTS must be a number.") from exc
    if not math.isfinite(points):
        raise QuizImportError(f"Question {position}: POINTS must be a finite number.")
    return int(points) if points.is_integer() else points


def _parse_number(header: dict[str, str], key: str, default: float) -> float:
    raw = header.get(key)
    if not raw:
        return default
    try:
        value = float(raw.rstrip("%"))
    except ValueError as exc:
        raise QuizImportError(f"{key} must be a number.") from exc
    if not math.isfinite(value):
        raise QuizImportError(f"{key} must be a finite number.")
    return int(value) if value.is_integer() else value


def _parse_int(header: dict[str, str], key: str, default: int) -> int:
    raw = header.get(key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise QuizImportError(f"{key} must be a whole number.") from exc


def _parse_optional_int(header: dict[str, str], key: str) -> int | None:
    raw = header.get(key)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise QuizImportError(f"{key} must be a whole number of minutes.") from exc


def _parse_flag(header: dict[str, str], key: str, default: bool) -> bool:
    raw = header.get(key)
    if not raw:
        return default
    lowered = raw.lower()
    if lowered in _TRUE_WORDS:
        return True
    if lowered in _FALSE_WORDS:
        return False
    raise QuizImportError(f"{key} must be yes or no.")
