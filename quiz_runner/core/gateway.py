"""Port to the remote attempt service.

Every call is asynchronous: it returns a ``PendingRequest`` immediately and
later invokes exactly one of ``on_success`` / ``on_failure`` on the caller's
event loop, unless the request was cancelled first.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import TypeVar

from quiz_runner.core.errors import GatewayError
from quiz_runner.core.models import Answer, Attempt, AttemptSummary, Eligibility, Quiz

T = TypeVar("T")
OnSuccess = Callable[[T], None]
OnFailure = Callable[[GatewayError], None]


class PendingRequest(ABC):
    @abstractmethod
    def cancel(self) -> None:
        """Abandon the request; neither callback fires afterwards."""


class AttemptGateway(ABC):
    @abstractmethod
    def fetch_quiz(
        self, quiz_id: str, learner_id: str, on_success: OnSuccess[Quiz], on_failure: OnFailure
    ) -> PendingRequest:
        ...

    @abstractmethod
    def check_eligibility(
        self, quiz_id: str, learner_id: str, on_success: OnSuccess[Eligibility], on_failure: OnFailure
    ) -> PendingRequest:
        ...

    @abstractmethod
    def start_attempt(
        self, quiz_id: str, learner_id: str, on_success: OnSuccess[Attempt], on_failure: OnFailure
    ) -> PendingRequest:
        ...

    @abstractmethod
    def fetch_attempt(
        self, attempt_id: str, learner_id: str, on_success: OnSuccess[Attempt], on_failure: OnFailure
    ) -> PendingRequest:
        ...

    @abstractmethod
    def submit_attempt(
        self,
        attempt_id: str,
        learner_id: str,
        answers: Sequence[Answer],
        on_success: OnSuccess[AttemptSummary],
        on_failure: OnFailure,
    ) -> PendingRequest:
        ...
