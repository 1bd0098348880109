"""Service driving one learner's attempt at one quiz.

``AttemptSession`` is a single-threaded state machine::

    IDLE -> STARTING -> ACTIVE -> SUBMITTING -> COMPLETED
              |           ^           |
              v           +-----------+  (submission failed)
             IDLE  (ineligible or start failed)

All collaborators are injected: the remote service through ``AttemptGateway``,
time through ``Clock`` and ``Scheduler``, and durable progress through
``SnapshotStore``. Every callback is expected on the same event loop, so no
locking is needed; overlapping operations are serialised by the state itself.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from enum import Enum
import logging
import time

from quiz_runner.constants.quiz_constants import (
    AUTOSAVE_DELAY_MS,
    REASON_NO_ATTEMPTS_REMAINING,
    REASON_QUIZ_UNAVAILABLE,
    TIMEOUT_RETRY_DELAYS_MS,
)
from quiz_runner.core.clock import Clock, ScheduledCall, Scheduler
from quiz_runner.core.errors import (
    GatewayError,
    MaxAttemptsReachedError,
    QuizUnavailableError,
    SessionStateError,
)
from quiz_runner.core.gateway import AttemptGateway, PendingRequest
from quiz_runner.core.models import (
    Answer,
    AnswerValue,
    Attempt,
    AttemptStatus,
    AttemptSummary,
    Eligibility,
    Question,
    Quiz,
    ScoreResult,
    SubmitTrigger,
)
from quiz_runner.core.services import scorer
from quiz_runner.core.services.answer_store import AnswerStore
from quiz_runner.core.services.eligibility import EligibilityGate
from quiz_runner.core.services.results_presenter import ResultsPresenter, ResultsView
from quiz_runner.core.services.snapshot_store import (
    AutosaveWriter,
    Snapshot,
    SnapshotStore,
    snapshot_key,
)

logger = logging.getLogger(__name__)

SCORE_TOLERANCE = 1e-6


class SessionState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    SUBMITTING = "submitting"
    COMPLETED = "completed"


class SessionListener:
    """Receives session notifications. Override only what you need."""

    def on_state_changed(self, state: SessionState) -> None:
        pass

    def on_busy_changed(self, busy: bool) -> None:
        pass

    def on_tick(self, remaining_seconds: int) -> None:
        pass

    def on_answer_changed(self, question_id: str, value: AnswerValue | None) -> None:
        pass

    def on_cursor_changed(self, index: int) -> None:
        pass

    def on_flags_changed(self, flagged: frozenset[int]) -> None:
        pass

    def on_ineligible(self, eligibility: Eligibility) -> None:
        pass

    def on_error(self, error: GatewayError) -> None:
        pass

    def on_completed(self, attempt: Attempt) -> None:
        pass


class AttemptSession:
    """Runs a timed, resumable attempt for one learner and one quiz."""

    def __init__(
        self,
        quiz_id: str,
        learner_id: str,
        gateway: AttemptGateway,
        clock: Clock,
        scheduler: Scheduler,
        snapshot_store: SnapshotStore,
        *,
        attempt_history: Iterable[Attempt] = (),
        gate: EligibilityGate | None = None,
        presenter: ResultsPresenter | None = None,
        time_source: Callable[[], float] = time.monotonic,
        autosave_delay_ms: int = AUTOSAVE_DELAY_MS,
        retry_delays_ms: Sequence[int] = TIMEOUT_RETRY_DELAYS_MS,
    ) -> None:
        if not retry_delays_ms:
            raise ValueError("At least one retry delay is required.")
        self._quiz_id = quiz_id
        self._learner_id = learner_id
        self._gateway = gateway
        self._clock = clock
        self._scheduler = scheduler
        self._store = snapshot_store
        self._key = snapshot_key(quiz_id, learner_id)
        self._autosave = AutosaveWriter(snapshot_store, self._key, scheduler, autosave_delay_ms)
        self._history: list[Attempt] = list(attempt_history)
        self._gate = gate or EligibilityGate()
        self._presenter = presenter or ResultsPresenter()
        self._time_source = time_source
        self._retry_delays_ms = tuple(retry_delays_ms)

        self._listeners: list[SessionListener] = []
        self._state = SessionState.IDLE

        self._generation: int = 0
        self._pending: PendingRequest | None = None
        self._retry_call: ScheduledCall | None = None
        self._retry_count: int = 0

        self._quiz: Quiz | None = None
        self._attempt: Attempt | None = None
        self._questions: list[Question] = []
        self._answers: AnswerStore | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._index: int = 0
        self._flagged: set[int] = set()
        self._remaining: int | None = None
        self._time_spent: dict[str, float] = {}
        self._entered_at: float | None = None

        self._eligibility: Eligibility | None = None
        self._last_error: GatewayError | None = None
        self._summary: AttemptSummary | None = None
        self._score_result: ScoreResult | None = None

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_listener(self, listener: SessionListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: str, *args: object) -> None:
        for listener in list(self._listeners):
            getattr(listener, event)(*args)

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def quiz_id(self) -> str:
        return self._quiz_id

    @property
    def learner_id(self) -> str:
        return self._learner_id

    @property
    def quiz(self) -> Quiz | None:
        return self._quiz

    @property
    def attempt(self) -> Attempt | None:
        return self._attempt

    @property
    def questions(self) -> list[Question]:
        return list(self._questions)

    @property
    def question_count(self) -> int:
        return len(self._questions)

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def current_question(self) -> Question | None:
        if not self._questions:
            return None
        return self._questions[self._index]

    @property
    def answered_count(self) -> int:
        if self._answers is None:
            return 0
        return self._answers.answered_count()

    @property
    def flagged(self) -> frozenset[int]:
        return frozenset(self._flagged)

    @property
    def time_remaining(self) -> int | None:
        return self._remaining

    @property
    def is_time_limited(self) -> bool:
        return self._quiz is not None and self._quiz.time_limit_seconds is not None

    @property
    def is_busy(self) -> bool:
        return self._state in (SessionState.STARTING, SessionState.SUBMITTING)

    @property
    def has_pending_retry(self) -> bool:
        return self._retry_call is not None

    @property
    def eligibility(self) -> Eligibility | None:
        return self._eligibility

    @property
    def last_error(self) -> GatewayError | None:
        return self._last_error

    @property
    def summary(self) -> AttemptSummary | None:
        return self._summary

    @property
    def score_result(self) -> ScoreResult | None:
        return self._score_result

    def answer_for(self, question_id: str) -> AnswerValue | None:
        if self._answers is None:
            return None
        return self._answers.get(question_id)

    def is_answered(self, index: int) -> bool:
        question = self._question_at(index)
        return self._answers is not None and self._answers.is_answered(question.id)

    def set_attempt_history(self, attempts: Iterable[Attempt]) -> None:
        """Replace the learner's prior attempts used by the local eligibility check."""
        self._history = list(attempts)

    def results(self) -> ResultsView:
        if self._state is not SessionState.COMPLETED or self._attempt is None or self._quiz is None:
            raise SessionStateError("Results are only available for a completed attempt.")
        return self._presenter.present(self._attempt, self._quiz)

    # ------------------------------------------------------------------
    # Start / resume
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self._state is SessionState.ACTIVE:
            logger.info("Attempt %s already active; resuming", self._attempt.id if self._attempt else "?")
            return
        if self._state is not SessionState.IDLE:
            logger.debug("Ignoring start() while %s", self._state.value)
            return

        self._last_error = None
        self._eligibility = None
        self._set_state(SessionState.STARTING)
        logger.info("Starting quiz %s for learner %s", self._quiz_id, self._learner_id)
        self._issue(
            lambda ok, fail: self._gateway.fetch_quiz(self._quiz_id, self._learner_id, ok, fail),
            self._on_quiz_loaded,
            self._fail_start,
        )

    def _on_quiz_loaded(self, quiz: Quiz) -> None:
        self._quiz = quiz
        snapshot = self._load_snapshot()
        if snapshot is not None and snapshot.attempt_id is not None:
            self._issue(
                lambda ok, fail: self._gateway.fetch_attempt(snapshot.attempt_id, self._learner_id, ok, fail),
                lambda attempt: self._on_saved_attempt(snapshot, attempt),
                lambda error: self._on_saved_attempt_failed(snapshot, error),
            )
            return
        self._check_eligibility(snapshot)

    def _load_snapshot(self) -> Snapshot | None:
        snapshot = self._store.load(self._key)
        if snapshot is None:
            return None
        if not snapshot.is_compatible_with(self._quiz_id):
            logger.warning("Ignoring snapshot for quiz %s under key %s", snapshot.quiz_id, self._key)
            return None
        return snapshot

    def _on_saved_attempt(self, snapshot: Snapshot, attempt: Attempt) -> None:
        resumable = (
            attempt.status is AttemptStatus.ACTIVE
            and attempt.quiz_id == self._quiz_id
            and attempt.learner_id == self._learner_id
        )
        if not resumable:
            logger.info("Discarding snapshot of finished attempt %s", attempt.id)
            self._store.clear(self._key)
            self._check_eligibility(None)
            return
        logger.info("Resuming attempt %s", attempt.id)
        self._activate(attempt, snapshot)

    def _on_saved_attempt_failed(self, snapshot: Snapshot, error: GatewayError) -> None:
        if error.status in (403, 404):
            logger.info("Snapshot names unknown or foreign attempt %s; discarding it", snapshot.attempt_id)
            self._store.clear(self._key)
            self._check_eligibility(None)
            return
        self._fail_start(error)

    def _check_eligibility(self, snapshot: Snapshot | None) -> None:
        local = self._gate.can_start(self._quiz, self._history)
        if not local.allowed:
            self._deny(local)
            return
        self._issue(
            lambda ok, fail: self._gateway.check_eligibility(self._quiz_id, self._learner_id, ok, fail),
            lambda eligibility: self._on_remote_eligibility(snapshot, eligibility),
            self._fail_start,
        )

    def _on_remote_eligibility(self, snapshot: Snapshot | None, eligibility: Eligibility) -> None:
        self._eligibility = eligibility
        if not eligibility.allowed:
            self._deny(eligibility)
            return
        self._issue(
            lambda ok, fail: self._gateway.start_attempt(self._quiz_id, self._learner_id, ok, fail),
            lambda attempt: self._activate(attempt, snapshot),
            self._on_start_rejected,
        )

    def _on_start_rejected(self, error: GatewayError) -> None:
        max_attempts = self._quiz.max_attempts if self._quiz else None
        if isinstance(error, MaxAttemptsReachedError):
            self._deny(Eligibility(False, REASON_NO_ATTEMPTS_REMAINING, 0, max_attempts))
        elif isinstance(error, QuizUnavailableError):
            self._deny(Eligibility(False, REASON_QUIZ_UNAVAILABLE, None, max_attempts))
        else:
            self._fail_start(error)

    def _deny(self, eligibility: Eligibility) -> None:
        logger.info("Learner %s may not start quiz %s: %s", self._learner_id, self._quiz_id, eligibility.reason)
        self._eligibility = eligibility
        self._set_state(SessionState.IDLE)
        self._emit("on_ineligible", eligibility)

    def _fail_start(self, error: GatewayError) -> None:
        logger.warning("Could not start quiz %s: %s", self._quiz_id, error)
        self._last_error = error
        self._set_state(SessionState.IDLE)
        self._emit("on_error", error)

    def _activate(self, attempt: Attempt, snapshot: Snapshot | None) -> None:
        quiz = self._quiz
        self._attempt = attempt
        self._questions = _ordered_questions(quiz, attempt.question_order)
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._answers = AnswerStore(self._questions)
        self._unsubscribe = self._answers.subscribe(self._on_answer_changed)
        self._index = 0
        self._flagged = set()
        self._time_spent = {}
        self._remaining = quiz.time_limit_seconds

        if snapshot is not None and snapshot.attempt_id in (None, attempt.id):
            self._restore(snapshot)

        self._entered_at = self._time_source()
        self._set_state(SessionState.ACTIVE)
        self._persist_now()
        self._emit("on_cursor_changed", self._index)
        if self._remaining is not None:
            # a resumed attempt with no time left expires here and submits
            self._arm_clock()

    def _restore(self, snapshot: Snapshot) -> None:
        dropped = self._answers.seed(snapshot.answers)
        if dropped:
            logger.warning("Dropped %d invalid saved answers: %s", len(dropped), ", ".join(sorted(dropped)))
        count = len(self._questions)
        self._flagged = {index for index in snapshot.flagged_questions if 0 <= index < count}
        if 0 <= snapshot.current_question_index < count:
            self._index = snapshot.current_question_index
        limit = self._quiz.time_limit_seconds
        if limit is not None and snapshot.time_remaining is not None:
            self._remaining = max(0, min(limit, snapshot.time_remaining))

    # ------------------------------------------------------------------
    # Answer entry
    # ------------------------------------------------------------------
    def set_answer(self, question_id: str, value: AnswerValue | str | Iterable[str]) -> AnswerValue:
        self._require_active("set an answer")
        return self._answers.set(question_id, value)

    def clear_answer(self, question_id: str) -> None:
        self._require_active("clear an answer")
        self._answers.clear(question_id)

    def toggle_flag(self, index: int) -> bool:
        """Flag or unflag a question for later; returns the new flag state."""
        self._require_active("flag a question")
        self._question_at(index)
        if index in self._flagged:
            self._flagged.discard(index)
        else:
            self._flagged.add(index)
        self._emit("on_flags_changed", self.flagged)
        self._schedule_autosave()
        return index in self._flagged

    def navigate(self, index: int) -> None:
        if self._state not in (SessionState.ACTIVE, SessionState.SUBMITTING):
            raise SessionStateError(f"Cannot navigate while {self._state.value}.")
        self._question_at(index)
        if index == self._index:
            return
        self._charge_time()
        self._index = index
        self._emit("on_cursor_changed", index)
        self._schedule_autosave()

    def next_question(self) -> bool:
        if self._index + 1 >= len(self._questions):
            return False
        self.navigate(self._index + 1)
        return True

    def previous_question(self) -> bool:
        if self._index == 0:
            return False
        self.navigate(self._index - 1)
        return True

    def _on_answer_changed(self, question_id: str, value: AnswerValue | None) -> None:
        self._emit("on_answer_changed", question_id, value)
        self._schedule_autosave()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    def submit(self, trigger: SubmitTrigger = SubmitTrigger.MANUAL) -> bool:
        """Send the answers once. Returns False (and does nothing) unless ACTIVE."""
        if self._state is not SessionState.ACTIVE:
            logger.debug("Ignoring %s submit while %s", trigger.value, self._state.value)
            return False

        self._cancel_retry()
        self._clock.cancel()
        self._charge_time()
        self._set_state(SessionState.SUBMITTING)
        answers = self._collect_answers()
        attempt_id = self._attempt.id
        logger.info("Submitting attempt %s (%s, %d answers)", attempt_id, trigger.value, len(answers))
        self._issue(
            lambda ok, fail: self._gateway.submit_attempt(attempt_id, self._learner_id, answers, ok, fail),
            lambda summary: self._on_submitted(answers, summary),
            lambda error: self._on_submit_failed(trigger, error),
        )
        return True

    def _collect_answers(self) -> list[Answer]:
        collected: list[Answer] = []
        for question in self._questions:
            if not self._answers.is_answered(question.id):
                continue
            collected.append(
                Answer(
                    question_id=question.id,
                    value=self._answers.get(question.id),
                    time_spent_seconds=round(self._time_spent.get(question.id, 0.0)),
                )
            )
        return collected

    def _on_submitted(self, answers: list[Answer], summary: AttemptSummary) -> None:
        self._autosave.cancel()
        self._store.clear(self._key)
        self._retry_count = 0
        self._last_error = None

        result = scorer.score(self._quiz, answers, [q.id for q in self._questions])
        if abs(result.total_score - summary.score) > SCORE_TOLERANCE or abs(
            result.total_possible - summary.total_possible
        ) > SCORE_TOLERANCE:
            logger.warning(
                "Local score %s/%s differs from service score %s/%s for attempt %s; using the service's",
                result.total_score,
                result.total_possible,
                summary.score,
                summary.total_possible,
                self._attempt.id,
            )

        scores = {item.question_id: item for item in result.per_question}
        scored = [
            replace(
                answer,
                is_correct=scores[answer.question_id].is_correct,
                points_awarded=scores[answer.question_id].points_awarded,
                needs_review=scores[answer.question_id].needs_review,
            )
            for answer in answers
        ]
        self._score_result = result
        self._summary = summary
        self._attempt = replace(
            self._attempt,
            status=AttemptStatus.COMPLETED,
            answers=scored,
            score=summary.score,
            total_possible=summary.total_possible,
            percentage=summary.percentage,
            passed=summary.passed,
            time_spent_seconds=summary.time_spent_seconds,
            completed_at=summary.completed_at,
            needs_review=summary.needs_review,
        )
        logger.info(
            "Attempt %s completed: %s/%s (%s%%, %s)",
            self._attempt.id,
            summary.score,
            summary.total_possible,
            summary.percentage,
            "passed" if summary.passed else "failed",
        )
        self._set_state(SessionState.COMPLETED)
        self._emit("on_completed", self._attempt)

    def _on_submit_failed(self, trigger: SubmitTrigger, error: GatewayError) -> None:
        logger.warning("Submitting attempt %s failed (%s): %s", self._attempt.id, trigger.value, error)
        self._last_error = error
        self._entered_at = self._time_source()
        self._set_state(SessionState.ACTIVE)
        self._persist_now()
        if self._remaining is not None and self._remaining > 0:
            self._arm_clock()
        elif self._remaining == 0 and error.retryable:
            # out of time: keep trying in the background, answer entry stays open
            self._schedule_retry()
        self._emit("on_error", error)

    def _schedule_retry(self) -> None:
        delay = self._retry_delays_ms[min(self._retry_count, len(self._retry_delays_ms) - 1)]
        self._retry_count += 1
        logger.info("Retrying timed-out submission of %s in %d ms", self._attempt.id, delay)
        self._retry_call = self._scheduler.call_later(delay, self._retry_submit)

    def _retry_submit(self) -> None:
        self._retry_call = None
        self.submit(SubmitTrigger.TIMEOUT)

    def _cancel_retry(self) -> None:
        if self._retry_call is not None:
            self._retry_call.cancel()
            self._retry_call = None

    # ------------------------------------------------------------------
    # Leaving / retaking
    # ------------------------------------------------------------------
    def leave(self) -> None:
        """Stop timers and abandon requests; progress stays on disk for a later start()."""
        self._cancel_retry()
        self._clock.cancel()
        self._cancel_pending()
        if self._state in (SessionState.ACTIVE, SessionState.SUBMITTING):
            self._charge_time()
            self._schedule_autosave()
        self._autosave.flush()
        if self._state is not SessionState.COMPLETED:
            self._set_state(SessionState.IDLE)

    def reset(self) -> None:
        """Return a completed session to IDLE so the quiz can be taken again."""
        if self._state is not SessionState.COMPLETED:
            raise SessionStateError(f"Cannot reset while {self._state.value}.")
        if self._attempt is not None and all(a.id != self._attempt.id for a in self._history):
            self._history.append(self._attempt)
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._attempt = None
        self._answers = None
        self._questions = []
        self._index = 0
        self._flagged = set()
        self._remaining = None
        self._summary = None
        self._score_result = None
        self._set_state(SessionState.IDLE)

    # ------------------------------------------------------------------
    # Clock
    # ------------------------------------------------------------------
    def _arm_clock(self) -> None:
        self._clock.arm(self._remaining, self._on_clock_expired, self._on_clock_tick)

    def _on_clock_tick(self, remaining: int) -> None:
        self._remaining = remaining
        self._emit("on_tick", remaining)
        self._schedule_autosave()

    def _on_clock_expired(self) -> None:
        self._remaining = 0
        logger.info("Time is up for attempt %s", self._attempt.id if self._attempt else "?")
        self.submit(SubmitTrigger.TIMEOUT)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _issue(
        self,
        send: Callable[[Callable[[object], None], Callable[[GatewayError], None]], PendingRequest],
        on_success: Callable,
        on_failure: Callable[[GatewayError], None],
    ) -> None:
        """Send one request tagged with a fresh generation.

        Responses are delivered only while their generation is current; any later
        request, a cancel or a delivered response moves the generation on.
        Gateways may resolve synchronously, so the handle is kept only if the
        request is still outstanding when ``send`` returns.
        """
        self._generation += 1
        generation = self._generation

        def deliver(callback: Callable) -> Callable[[object], None]:
            def _deliver(payload: object) -> None:
                if generation != self._generation:
                    logger.debug("Dropping stale response for generation %d", generation)
                    return
                self._generation += 1
                self._pending = None
                callback(payload)

            return _deliver

        handle = send(deliver(on_success), deliver(on_failure))
        if generation == self._generation:
            self._pending = handle

    def _cancel_pending(self) -> None:
        self._generation += 1
        handle, self._pending = self._pending, None
        if handle is not None:
            handle.cancel()

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        was_busy = self.is_busy
        logger.debug("Session %s: %s -> %s", self._key, self._state.value, state.value)
        self._state = state
        self._emit("on_state_changed", state)
        if self.is_busy != was_busy:
            self._emit("on_busy_changed", self.is_busy)

    def _require_active(self, action: str) -> None:
        if self._state is not SessionState.ACTIVE:
            raise SessionStateError(f"Cannot {action} while {self._state.value}.")

    def _question_at(self, index: int) -> Question:
        if not 0 <= index < len(self._questions):
            raise IndexError(f"Question index {index} out of range")
        return self._questions[index]

    def _charge_time(self) -> None:
        if self._entered_at is None or not self._questions:
            return
        now = self._time_source()
        question_id = self._questions[self._index].id
        self._time_spent[question_id] = self._time_spent.get(question_id, 0.0) + max(0.0, now - self._entered_at)
        self._entered_at = now

    def _snapshot(self) -> Snapshot:
        return Snapshot(
            quiz_id=self._quiz_id,
            answers=self._answers.as_dict() if self._answers else {},
            current_question_index=self._index,
            flagged_questions=set(self._flagged),
            time_remaining=self._remaining,
            attempt_id=self._attempt.id if self._attempt else None,
        )

    def _schedule_autosave(self) -> None:
        if self._state not in (SessionState.ACTIVE, SessionState.SUBMITTING):
            return
        self._autosave.schedule(self._snapshot())

    def _persist_now(self) -> None:
        self._schedule_autosave()
        self._autosave.flush()


def _ordered_questions(quiz: Quiz, order: Sequence[str]) -> list[Question]:
    if not order:
        return list(quiz.questions)
    by_id = {question.id: question for question in quiz.questions}
    missing = [qid for qid in order if qid not in by_id]
    if missing:
        logger.warning("Attempt references questions missing from quiz %s: %s", quiz.id, ", ".join(missing))
    return [by_id[qid] for qid in order if qid in by_id]
