"""Hand-cranked clock, scheduler and gateway for session tests."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import datetime, timezone

from quiz_runner.core.clock import Clock, ScheduledCall, Scheduler
from quiz_runner.core.errors import GatewayError
from quiz_runner.core.gateway import AttemptGateway, PendingRequest
from quiz_runner.core.models import (
    Answer,
    Attempt,
    AttemptStatus,
    AttemptSummary,
    Eligibility,
    Question,
    QuestionType,
    Quiz,
)
from quiz_runner.core.services import scorer

FIXED_NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def make_quiz(
    *,
    quiz_id: str = "quiz-1",
    time_limit_minutes: int | None = None,
    max_attempts: int = 1,
    passing_score: float = 50,
    questions: list[Question] | None = None,
    **overrides,
) -> Quiz:
    if questions is None:
        questions = [
            Question(id="q1", type=QuestionType.SINGLE_SELECT, prompt="First?", options=["A", "B"], correct_answer="A"),
            Question(id="q2", type=QuestionType.SINGLE_SELECT, prompt="Second?", options=["A", "B"], correct_answer="B"),
        ]
    return Quiz(
        id=quiz_id,
        title="Sample quiz",
        questions=questions,
        passing_score=passing_score,
        max_attempts=max_attempts,
        time_limit_minutes=time_limit_minutes,
        **overrides,
    )


class ManualClock(Clock):
    def __init__(self) -> None:
        super().__init__()
        self.ticking = False
        self.ticks = 0

    def _start_ticking(self) -> None:
        self.ticking = True

    def _stop_ticking(self) -> None:
        self.ticking = False

    def advance(self, seconds: int) -> None:
        for _ in range(seconds):
            if not self.ticking:
                return
            self.ticks += 1
            self._tick()


class ManualCall(ScheduledCall):
    def __init__(self, due: int, seq: int, callback: Callable[[], None]) -> None:
        self.due = due
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    def __init__(self) -> None:
        self.now = 0
        self._seq = 0
        self._calls: list[ManualCall] = []

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> ScheduledCall:
        self._seq += 1
        call = ManualCall(self.now + delay_ms, self._seq, callback)
        self._calls.append(call)
        return call

    @property
    def pending(self) -> list[ManualCall]:
        return [c for c in self._calls if not c.cancelled]

    def advance(self, ms: int) -> None:
        target = self.now + ms
        while True:
            due = [c for c in self.pending if c.due <= target]
            if not due:
                break
            call = min(due, key=lambda c: (c.due, c.seq))
            self._calls.remove(call)
            self.now = call.due
            call.callback()
        self.now = target


class FakePending(PendingRequest):
    def __init__(self, name: str, resolve: Callable[[], None]) -> None:
        self.name = name
        self._resolve = resolve
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def resolve(self, *, ignore_cancel: bool = False) -> None:
        if self.cancelled and not ignore_cancel:
            return
        self._resolve()


class FakeGateway(AttemptGateway):
    """In-process stand-in for the attempt service.

    With ``auto=True`` every call resolves before returning; otherwise calls
    queue up in ``pending`` until the test resolves them.
    """

    def __init__(self, quiz: Quiz, *, auto: bool = True) -> None:
        self.quiz = quiz
        self.auto = auto
        self.eligibility = Eligibility(True, None, quiz.max_attempts, quiz.max_attempts)
        self.quiz_error: GatewayError | None = None
        self.start_error: GatewayError | None = None
        self.submit_errors: list[GatewayError] = []
        self.attempts: dict[str, Attempt] = {}
        self.pending: list[FakePending] = []
        self.calls: list[str] = []
        self.submissions: list[list[Answer]] = []

    @property
    def started(self) -> int:
        return self.calls.count("start_attempt")

    def resolve_next(self, *, ignore_cancel: bool = False) -> FakePending:
        request = self.pending.pop(0)
        request.resolve(ignore_cancel=ignore_cancel)
        return request

    def _dispatch(self, name: str, resolve: Callable[[], None]) -> PendingRequest:
        self.calls.append(name)
        request = FakePending(name, resolve)
        if self.auto:
            request.resolve()
        else:
            self.pending.append(request)
        return request

    def fetch_quiz(self, quiz_id, learner_id, on_success, on_failure) -> PendingRequest:
        def resolve() -> None:
            if self.quiz_error is not None:
                on_failure(self.quiz_error)
            else:
                on_success(self.quiz)

        return self._dispatch("fetch_quiz", resolve)

    def check_eligibility(self, quiz_id, learner_id, on_success, on_failure) -> PendingRequest:
        return self._dispatch("check_eligibility", lambda: on_success(self.eligibility))

    def start_attempt(self, quiz_id, learner_id, on_success, on_failure) -> PendingRequest:
        def resolve() -> None:
            if self.start_error is not None:
                on_failure(self.start_error)
                return
            number = len(self.attempts) + 1
            attempt = Attempt(
                id=f"attempt-{number}",
                learner_id=learner_id,
                quiz_id=quiz_id,
                attempt_number=number,
                started_at=FIXED_NOW,
                question_order=[q.id for q in self.quiz.questions],
            )
            self.attempts[attempt.id] = attempt
            on_success(attempt)

        return self._dispatch("start_attempt", resolve)

    def fetch_attempt(self, attempt_id, learner_id, on_success, on_failure) -> PendingRequest:
        def resolve() -> None:
            attempt = self.attempts.get(attempt_id)
            if attempt is None:
                on_failure(GatewayError("Attempt not found", retryable=False, status=404))
            elif attempt.learner_id != learner_id:
                on_failure(GatewayError("Attempt belongs to another learner", retryable=False, status=403))
            else:
                on_success(attempt)

        return self._dispatch("fetch_attempt", resolve)

    def submit_attempt(
        self,
        attempt_id: str,
        learner_id: str,
        answers: Sequence[Answer],
        on_success,
        on_failure,
    ) -> PendingRequest:
        self.submissions.append(list(answers))

        def resolve() -> None:
            if self.submit_errors:
                on_failure(self.submit_errors.pop(0))
                return
            result = scorer.score(self.quiz, answers)
            summary = AttemptSummary(
                score=result.total_score,
                total_possible=result.total_possible,
                percentage=result.percentage,
                passed=result.passed,
                time_spent_seconds=42,
                completed_at=FIXED_NOW,
                needs_review=result.needs_review,
            )
            if attempt_id in self.attempts:
                self.attempts[attempt_id] = replace(
                    self.attempts[attempt_id], status=AttemptStatus.COMPLETED, completed_at=FIXED_NOW
                )
            on_success(summary)

        return self._dispatch("submit_attempt", resolve)
