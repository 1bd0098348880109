"""AttemptGateway over HTTP using QNetworkAccessManager.

Replies arrive on the Qt event loop, so session callbacks run on the same
thread as timers and UI handlers. Every request carries a transfer timeout and
can be aborted; an aborted request never reaches its callbacks.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from functools import partial
import json
import logging
from typing import Any, TypeVar

from PySide6.QtCore import QByteArray, QUrl
from PySide6.QtNetwork import QNetworkAccessManager, QNetworkReply, QNetworkRequest

from quiz_runner.constants.network_constants import (
    DEFAULT_API_BASE_URL,
    LEARNER_ID_HEADER,
    REQUEST_TIMEOUT_MS,
)
from quiz_runner.core.errors import (
    MAX_ATTEMPTS_REACHED_CODE,
    QUIZ_UNAVAILABLE_CODE,
    GatewayError,
    MaxAttemptsReachedError,
    QuizUnavailableError,
    RequestTimeoutError,
)
from quiz_runner.core.gateway import AttemptGateway, OnFailure, OnSuccess, PendingRequest
from quiz_runner.core.models import Answer, Attempt, AttemptSummary, Eligibility, Quiz
from quiz_runner.server.schemas import (
    AnswerIn,
    AttemptOut,
    EligibilityOut,
    QuizOut,
    SubmitPayload,
    SummaryOut,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
Parser = Callable[[Any], T]

_RETRYABLE_STATUSES = {408, 425, 429}


def translate_response(status: int, body: bytes, parse: Parser[T]) -> T:
    """Turn an HTTP status and body into a domain value, or raise ``GatewayError``."""
    try:
        payload = json.loads(body) if body else None
    except ValueError:
        payload = None
        if 200 <= status < 300:
            raise GatewayError("Malformed response from attempt service", status=status) from None

    if 200 <= status < 300:
        try:
            return parse(payload)
        except ValueError as exc:
            raise GatewayError(
                f"Unexpected response from attempt service: {exc}", retryable=False, status=status
            ) from exc

    code, message = _error_detail(payload, status)
    if status == 409 and code == MAX_ATTEMPTS_REACHED_CODE:
        raise MaxAttemptsReachedError(message, status=status)
    if status == 409 and code == QUIZ_UNAVAILABLE_CODE:
        raise QuizUnavailableError(message, status=status)
    retryable = status >= 500 or status in _RETRYABLE_STATUSES
    raise GatewayError(message, retryable=retryable, status=status, code=code)


def _error_detail(payload: Any, status: int) -> tuple[str | None, str]:
    detail = payload.get("detail") if isinstance(payload, dict) else None
    if isinstance(detail, dict):
        return detail.get("code"), str(detail.get("message") or f"HTTP {status}")
    if isinstance(detail, str) and detail:
        return None, detail
    return None, f"HTTP {status}"


class _QtPendingRequest(PendingRequest):
    def __init__(self, reply: QNetworkReply) -> None:
        self.reply = reply
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        if self.reply.isRunning():
            self.reply.abort()


class QtAttemptGateway(AttemptGateway):
    """Talks to the attempt service API. Requires a running QCoreApplication."""

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE_URL,
        *,
        timeout_ms: int = REQUEST_TIMEOUT_MS,
        network: QNetworkAccessManager | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_ms = timeout_ms
        self._network = network or QNetworkAccessManager()

    def fetch_quiz(
        self, quiz_id: str, learner_id: str, on_success: OnSuccess[Quiz], on_failure: OnFailure
    ) -> PendingRequest:
        return self._send(
            "GET",
            f"/quizzes/{quiz_id}",
            learner_id,
            None,
            lambda payload: QuizOut.model_validate(payload).to_domain(),
            on_success,
            on_failure,
        )

    def check_eligibility(
        self, quiz_id: str, learner_id: str, on_success: OnSuccess[Eligibility], on_failure: OnFailure
    ) -> PendingRequest:
        return self._send(
            "GET",
            f"/quizzes/{quiz_id}/eligibility",
            learner_id,
            None,
            lambda payload: EligibilityOut.model_validate(payload).to_domain(),
            on_success,
            on_failure,
        )

    def start_attempt(
        self, quiz_id: str, learner_id: str, on_success: OnSuccess[Attempt], on_failure: OnFailure
    ) -> PendingRequest:
        return self._send(
            "POST",
            f"/quizzes/{quiz_id}/attempts",
            learner_id,
            {},
            lambda payload: AttemptOut.model_validate(payload).to_domain(),
            on_success,
            on_failure,
        )

    def fetch_attempt(
        self, attempt_id: str, learner_id: str, on_success: OnSuccess[Attempt], on_failure: OnFailure
    ) -> PendingRequest:
        return self._send(
            "GET",
            f"/attempts/{attempt_id}",
            learner_id,
            None,
            lambda payload: AttemptOut.model_validate(payload).to_domain(),
            on_success,
            on_failure,
        )

    def submit_attempt(
        self,
        attempt_id: str,
        learner_id: str,
        answers: Sequence[Answer],
        on_success: OnSuccess[AttemptSummary],
        on_failure: OnFailure,
    ) -> PendingRequest:
        body = SubmitPayload(answers=[AnswerIn.from_domain(a) for a in answers]).model_dump(mode="json")
        return self._send(
            "POST",
            f"/attempts/{attempt_id}/submit",
            learner_id,
            body,
            lambda payload: SummaryOut.model_validate(payload).to_domain(),
            on_success,
            on_failure,
        )

    def _send(
        self,
        method: str,
        path: str,
        learner_id: str,
        body: dict[str, Any] | None,
        parse: Parser[T],
        on_success: OnSuccess[T],
        on_failure: OnFailure,
    ) -> PendingRequest:
        request = QNetworkRequest(QUrl(f"{self._base_url}{path}"))
        request.setRawHeader(QByteArray(LEARNER_ID_HEADER.encode()), QByteArray(learner_id.encode()))
        request.setHeader(QNetworkRequest.KnownHeaders.ContentTypeHeader, "application/json")
        request.setTransferTimeout(self._timeout_ms)

        logger.debug("%s %s", method, path)
        if method == "GET":
            reply = self._network.get(request)
        else:
            reply = self._network.post(request, QByteArray(json.dumps(body or {}).encode("utf-8")))

        pending = _QtPendingRequest(reply)
        reply.finished.connect(partial(self._on_finished, pending, method, path, parse, on_success, on_failure))
        return pending

    def _on_finished(
        self,
        pending: _QtPendingRequest,
        method: str,
        path: str,
        parse: Parser[T],
        on_success: OnSuccess[T],
        on_failure: OnFailure,
    ) -> None:
        reply = pending.reply
        reply.deleteLater()
        if pending.cancelled:
            logger.debug("%s %s abandoned", method, path)
            return

        status = reply.attribute(QNetworkRequest.Attribute.HttpStatusCodeAttribute)
        if status is None:
            if reply.error() == QNetworkReply.NetworkError.OperationCanceledError:
                error: GatewayError = RequestTimeoutError(f"{method} {path} timed out after {self._timeout_ms} ms")
            else:
                error = GatewayError(f"{method} {path} failed: {reply.errorString()}")
            logger.warning("%s", error)
            on_failure(error)
            return

        try:
            value = translate_response(int(status), bytes(reply.readAll().data()), parse)
        except GatewayError as exc:
            logger.warning("%s %s -> %s: %s", method, path, status, exc)
            on_failure(exc)
            return
        on_success(value)
