"""FastAPI server that exposes the quiz attempt endpoints."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
import logging
from threading import Thread
from typing import Annotated

from fastapi import Depends, FastAPI, Header, HTTPException
import uvicorn

from quiz_runner.constants.about import APP_ABOUT_TEXT, APP_NAME, APP_VERSION
from quiz_runner.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from quiz_runner.core.attempt_manager import AttemptManager
from quiz_runner.core.errors import (
    MAX_ATTEMPTS_REACHED_CODE,
    QUIZ_UNAVAILABLE_CODE,
    AttemptLimitError,
    NotFoundError,
    OwnershipError,
    QuizClosedError,
)
from quiz_runner.server.schemas import (
    AttemptOut,
    EligibilityOut,
    ErrorDetail,
    QuizListItem,
    QuizOut,
    ReviewPayload,
    StatisticsOut,
    SubmitPayload,
    SummaryOut,
)

logger = logging.getLogger(__name__)


def _get_attempt_manager_dependency(attempt_manager: AttemptManager) -> Callable[[], AttemptManager]:
    def dependency() -> AttemptManager:
        return attempt_manager

    return dependency


def learner_id_header(x_learner_id: Annotated[str | None, Header(alias="x-learner-id")] = None) -> str:
    learner_id = (x_learner_id or "").strip()
    if not learner_id:
        raise HTTPException(status_code=401, detail="x-learner-id header required")
    return learner_id


def _error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail=ErrorDetail(code=code, message=message).model_dump())


@contextmanager
def _domain_errors() -> Iterator[None]:
    """Translate domain exceptions raised by the manager into HTTP responses."""
    try:
        yield
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except OwnershipError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except AttemptLimitError as exc:
        raise _error(409, MAX_ATTEMPTS_REACHED_CODE, str(exc)) from exc
    except QuizClosedError as exc:
        raise _error(409, QUIZ_UNAVAILABLE_CODE, str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except RuntimeError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


def create_api_app(attempt_manager: AttemptManager) -> FastAPI:
    """Create a FastAPI application wired to the provided attempt manager."""
    app = FastAPI(title=f"{APP_NAME} API", description=APP_ABOUT_TEXT, version=APP_VERSION)
    manager_dep = _get_attempt_manager_dependency(attempt_manager)

    @app.get("/health")
    def health() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/quizzes", response_model=list[QuizListItem])
    def list_quizzes(manager: AttemptManager = Depends(manager_dep)) -> list[QuizListItem]:
        return [
            QuizListItem(id=q.id, title=q.title, question_count=len(q.questions), is_active=q.is_active)
            for q in manager.list_quizzes()
        ]

    @app.get("/quizzes/{quiz_id}", response_model=QuizOut)
    def get_quiz(quiz_id: str, manager: AttemptManager = Depends(manager_dep)) -> QuizOut:
        with _domain_errors():
            return QuizOut.from_domain(manager.get_quiz(quiz_id))

    @app.get("/quizzes/{quiz_id}/eligibility", response_model=EligibilityOut)
    def get_eligibility(
        quiz_id: str,
        manager: AttemptManager = Depends(manager_dep),
        learner_id: str = Depends(learner_id_header),
    ) -> EligibilityOut:
        with _domain_errors():
            return EligibilityOut.from_domain(manager.get_eligibility(quiz_id, learner_id))

    @app.get("/quizzes/{quiz_id}/attempts", response_model=list[AttemptOut])
    def list_attempts(
        quiz_id: str,
        manager: AttemptManager = Depends(manager_dep),
        learner_id: str = Depends(learner_id_header),
    ) -> list[AttemptOut]:
        with _domain_errors():
            return [AttemptOut.from_domain(a) for a in manager.list_attempts(quiz_id, learner_id)]

    @app.post("/quizzes/{quiz_id}/attempts", response_model=AttemptOut, status_code=201)
    def start_attempt(
        quiz_id: str,
        manager: AttemptManager = Depends(manager_dep),
        learner_id: str = Depends(learner_id_header),
    ) -> AttemptOut:
        with _domain_errors():
            return AttemptOut.from_domain(manager.start_attempt(quiz_id, learner_id))

    @app.get("/quizzes/{quiz_id}/statistics", response_model=StatisticsOut)
    def get_statistics(quiz_id: str, manager: AttemptManager = Depends(manager_dep)) -> StatisticsOut:
        with _domain_errors():
            return StatisticsOut.from_domain(manager.get_statistics(quiz_id))

    @app.get("/attempts/{attempt_id}", response_model=AttemptOut)
    def get_attempt(
        attempt_id: str,
        manager: AttemptManager = Depends(manager_dep),
        learner_id: str = Depends(learner_id_header),
    ) -> AttemptOut:
        with _domain_errors():
            return AttemptOut.from_domain(manager.get_attempt(attempt_id, learner_id))

    @app.post("/attempts/{attempt_id}/submit", response_model=SummaryOut)
    def submit_attempt(
        attempt_id: str,
        payload: SubmitPayload,
        manager: AttemptManager = Depends(manager_dep),
        learner_id: str = Depends(learner_id_header),
    ) -> SummaryOut:
        with _domain_errors():
            answers = [answer.to_domain() for answer in payload.answers]
            summary = manager.submit_attempt(attempt_id, learner_id, answers)
        return SummaryOut.model_validate(summary)

    @app.post("/attempts/{attempt_id}/review", response_model=SummaryOut)
    def review_answer(
        attempt_id: str,
        payload: ReviewPayload,
        manager: AttemptManager = Depends(manager_dep),
        reviewer_id: str = Depends(learner_id_header),
    ) -> SummaryOut:
        """Grade an essay answer. Meant for graders; the caller may not grade their own attempt."""
        with _domain_errors():
            summary = manager.review_answer(attempt_id, payload.question_id, payload.points, reviewer_id)
        return SummaryOut.model_validate(summary)

    return app


def start_api_server(
    attempt_manager: AttemptManager,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> Thread:
    """Start the FastAPI server in a background daemon thread."""
    app = create_api_app(attempt_manager)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)

    def run_server() -> None:
        server.run()

    thread = Thread(target=run_server, name="QuizApiServer", daemon=True)
    thread.start()
    logger.info("API server listening on %s:%d", host, port)
    return thread


def serve_api(
    attempt_manager: AttemptManager,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> None:
    """Run the FastAPI server in the foreground until interrupted."""
    uvicorn.run(create_api_app(attempt_manager), host=host, port=port, log_level="info")
