"""Decides whether a learner may begin a new attempt."""

from __future__ import annotations

from collections.abc import Sequence

from quiz_runner.constants.quiz_constants import (
    REASON_NO_ATTEMPTS_REMAINING,
    REASON_NO_QUESTIONS,
    REASON_QUIZ_UNAVAILABLE,
)
from quiz_runner.core.models import Attempt, Eligibility, Quiz


class EligibilityGate:
    """Pure decision over quiz metadata and attempt history.

    Callers re-evaluate before every start; history can change between checks
    (another client may have started an attempt), so nothing is cached.
    """

    def can_start(self, quiz: Quiz, attempt_history: Sequence[Attempt]) -> Eligibility:
        prior = sum(1 for attempt in attempt_history if attempt.quiz_id == quiz.id)
        remaining = max(0, quiz.max_attempts - prior)

        if not quiz.is_active:
            return Eligibility(False, REASON_QUIZ_UNAVAILABLE, remaining, quiz.max_attempts)
        if not quiz.questions:
            return Eligibility(False, REASON_NO_QUESTIONS, remaining, quiz.max_attempts)
        if prior >= quiz.max_attempts:
            return Eligibility(False, REASON_NO_ATTEMPTS_REMAINING, 0, quiz.max_attempts)
        return Eligibility(True, None, remaining, quiz.max_attempts)
