"""Durable snapshots of attempts in progress.

A snapshot lets a learner reload and resume. Documents are JSON under the key
``quiz_progress_{quizId}_{learnerId}``::

    {"version": 2, "quizId": "...", "attemptId": "...",
     "answers": {"q1": "text", "q2": ["a", "b"]},
     "currentQuestionIndex": 0, "timeRemaining": 120, "flaggedQuestions": [1]}

Version 1 documents (no ``version``/``quizId``/``attemptId``) are still read.
Anything that fails to decode is reported as absent, never raised.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import json
import logging
from threading import Lock

from quiz_runner.constants.quiz_constants import (
    AUTOSAVE_DELAY_MS,
    SNAPSHOT_KEY_TEMPLATE,
    SNAPSHOT_VERSION,
)
from quiz_runner.core.clock import ScheduledCall, Scheduler
from quiz_runner.core.models import AnswerValue, answer_from_json

logger = logging.getLogger(__name__)


def snapshot_key(quiz_id: str, learner_id: str) -> str:
    return SNAPSHOT_KEY_TEMPLATE.format(quiz_id=quiz_id, learner_id=learner_id)


@dataclass(slots=True)
class Snapshot:
    """Resumable state of an active attempt."""

    quiz_id: str | None
    answers: dict[str, AnswerValue] = field(default_factory=dict)
    current_question_index: int = 0
    flagged_questions: set[int] = field(default_factory=set)
    time_remaining: int | None = None
    attempt_id: str | None = None

    def is_compatible_with(self, quiz_id: str) -> bool:
        # legacy documents carry no quiz id; their key already scopes them
        return self.quiz_id is None or self.quiz_id == quiz_id


def encode_snapshot(snapshot: Snapshot) -> str:
    document = {
        "version": SNAPSHOT_VERSION,
        "quizId": snapshot.quiz_id,
        "attemptId": snapshot.attempt_id,
        "answers": {qid: value.to_json() for qid, value in snapshot.answers.items()},
        "currentQuestionIndex": snapshot.current_question_index,
        "timeRemaining": snapshot.time_remaining,
        "flaggedQuestions": sorted(snapshot.flagged_questions),
    }
    return json.dumps(document, separators=(",", ":"))


def decode_snapshot(raw: str) -> Snapshot | None:
    try:
        document = json.loads(raw)
        return _snapshot_from_document(document)
    except (TypeError, ValueError, RecursionError) as exc:
        logger.warning("Discarding unreadable snapshot: %s", exc)
        return None


def _snapshot_from_document(document: object) -> Snapshot:
    if not isinstance(document, dict):
        raise ValueError("snapshot root must be an object")
    version = document.get("version", 1)
    if not isinstance(version, int) or version > SNAPSHOT_VERSION:
        raise ValueError(f"unsupported snapshot version {version!r}")

    raw_answers = document.get("answers") or {}
    if not isinstance(raw_answers, dict):
        raise ValueError("answers must be an object")
    answers = {str(qid): answer_from_json(value) for qid, value in raw_answers.items()}

    index = document.get("currentQuestionIndex", 0)
    if not isinstance(index, int) or index < 0:
        raise ValueError("currentQuestionIndex must be a non-negative integer")

    time_remaining = document.get("timeRemaining")
    if time_remaining is not None and (not isinstance(time_remaining, int) or time_remaining < 0):
        raise ValueError("timeRemaining must be a non-negative integer")

    flagged = document.get("flaggedQuestions") or []
    if not isinstance(flagged, list) or not all(isinstance(i, int) for i in flagged):
        raise ValueError("flaggedQuestions must be a list of integers")

    quiz_id = document.get("quizId")
    attempt_id = document.get("attemptId")
    return Snapshot(
        quiz_id=str(quiz_id) if quiz_id is not None else None,
        answers=answers,
        current_question_index=index,
        flagged_questions=set(flagged),
        time_remaining=time_remaining,
        attempt_id=str(attempt_id) if attempt_id is not None else None,
    )


class SnapshotStore(ABC):
    """Key/value persistence port for snapshots.

    Implementations only move whole documents; a ``save`` replaces the previous
    document atomically, so interleaved writes resolve as last-write-wins.
    """

    def save(self, key: str, snapshot: Snapshot) -> None:
        self._write(key, encode_snapshot(snapshot))

    def load(self, key: str) -> Snapshot | None:
        raw = self._read(key)
        if raw is None:
            return None
        return decode_snapshot(raw)

    def clear(self, key: str) -> None:
        self._delete(key)

    @abstractmethod
    def _read(self, key: str) -> str | None:
        ...

    @abstractmethod
    def _write(self, key: str, document: str) -> None:
        ...

    @abstractmethod
    def _delete(self, key: str) -> None:
        ...


class InMemorySnapshotStore(SnapshotStore):
    def __init__(self) -> None:
        self._lock = Lock()
        self._documents: dict[str, str] = {}

    def _read(self, key: str) -> str | None:
        with self._lock:
            return self._documents.get(key)

    def _write(self, key: str, document: str) -> None:
        with self._lock:
            self._documents[key] = document

    def _delete(self, key: str) -> None:
        with self._lock:
            self._documents.pop(key, None)

    def raw(self, key: str) -> str | None:
        return self._read(key)

    def put_raw(self, key: str, document: str) -> None:
        self._write(key, document)


class AutosaveWriter:
    """Coalesces frequent snapshot saves into one deferred write.

    ``schedule`` never blocks: it records the latest snapshot and arms a single
    deferred flush. Only the newest snapshot is written.
    """

    def __init__(
        self,
        store: SnapshotStore,
        key: str,
        scheduler: Scheduler,
        delay_ms: int = AUTOSAVE_DELAY_MS,
    ) -> None:
        self._store = store
        self._key = key
        self._scheduler = scheduler
        self._delay_ms = delay_ms
        self._pending: Snapshot | None = None
        self._call: ScheduledCall | None = None
        self.writes: int = 0

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def schedule(self, snapshot: Snapshot) -> None:
        self._pending = snapshot
        if self._call is None:
            self._call = self._scheduler.call_later(self._delay_ms, self.flush)

    def flush(self) -> None:
        if self._call is not None:
            self._call.cancel()
            self._call = None
        snapshot, self._pending = self._pending, None
        if snapshot is None:
            return
        self._store.save(self._key, snapshot)
        self.writes += 1

    def cancel(self) -> None:
        """Drop any pending write, e.g. once the attempt has been submitted."""
        if self._call is not None:
            self._call.cancel()
            self._call = None
        self._pending = None
