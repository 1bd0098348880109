"""In-memory answers for the attempt in progress."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping

from quiz_runner.core.errors import AnswerValidationError
from quiz_runner.core.models import AnswerValue, MultiAnswer, Question, SingleAnswer

AnswerListener = Callable[[str, AnswerValue | None], None]


def coerce_answer(question: Question, value: AnswerValue | str | Iterable[str]) -> AnswerValue:
    """Turn a raw UI value into the tagged variant for this question, or raise."""
    if isinstance(value, (SingleAnswer, MultiAnswer)):
        tagged = value
    elif isinstance(value, str):
        tagged = SingleAnswer(value)
    else:
        try:
            items = frozenset(value)
        except TypeError as exc:
            raise AnswerValidationError(f"Unsupported answer value {value!r}") from exc
        if not all(isinstance(item, str) for item in items):
            raise AnswerValidationError("Multi-select answers must be strings.")
        tagged = MultiAnswer(items)

    if question.type.is_multi:
        if not isinstance(tagged, MultiAnswer):
            raise AnswerValidationError(f"Question {question.id!r} expects a set of options.")
        unknown = tagged.values.difference(question.options)
        if unknown:
            raise AnswerValidationError(f"Unknown options for {question.id!r}: {sorted(unknown)}")
        return tagged

    if not isinstance(tagged, SingleAnswer):
        raise AnswerValidationError(f"Question {question.id!r} expects a single value.")
    if question.type.is_select and not tagged.is_empty() and tagged.text not in question.options:
        raise AnswerValidationError(f"{tagged.text!r} is not an option of {question.id!r}.")
    return tagged


class AnswerStore:
    """Maps question id to a validated answer and notifies subscribers on change."""

    def __init__(self, questions: Iterable[Question]) -> None:
        self._questions: dict[str, Question] = {q.id: q for q in questions}
        self._answers: dict[str, AnswerValue] = {}
        self._listeners: list[AnswerListener] = []

    def subscribe(self, listener: AnswerListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def set(self, question_id: str, value: AnswerValue | str | Iterable[str]) -> AnswerValue:
        question = self._questions.get(question_id)
        if question is None:
            raise AnswerValidationError(f"Unknown question {question_id!r}.")
        tagged = coerce_answer(question, value)
        if self._answers.get(question_id) == tagged:
            return tagged
        self._answers[question_id] = tagged
        self._notify(question_id, tagged)
        return tagged

    def clear(self, question_id: str) -> None:
        if question_id not in self._questions:
            raise AnswerValidationError(f"Unknown question {question_id!r}.")
        if self._answers.pop(question_id, None) is not None:
            self._notify(question_id, None)

    def get(self, question_id: str) -> AnswerValue | None:
        return self._answers.get(question_id)

    def seed(self, answers: Mapping[str, AnswerValue]) -> list[str]:
        """Load answers restored from a snapshot; returns ids that were dropped as invalid."""
        dropped: list[str] = []
        for question_id, value in answers.items():
            question = self._questions.get(question_id)
            if question is None:
                dropped.append(question_id)
                continue
            try:
                self._answers[question_id] = coerce_answer(question, value)
            except AnswerValidationError:
                dropped.append(question_id)
        return dropped

    def as_dict(self) -> dict[str, AnswerValue]:
        return dict(self._answers)

    def is_answered(self, question_id: str) -> bool:
        value = self._answers.get(question_id)
        return value is not None and not value.is_empty()

    def answered_count(self) -> int:
        return sum(1 for value in self._answers.values() if not value.is_empty())

    def _notify(self, question_id: str, value: AnswerValue | None) -> None:
        for listener in list(self._listeners):
            listener(question_id, value)
